import io

import numpy as np
import pytest

from interviewer.infrastructure.audio.processing import (
    apply_volume, float_to_pcm16, pcm16_to_float, read_wav, resample, stereo_to_mono,
    to_recognition_pcm16, write_wav,
)


def test_stereo_to_mono_averages_channels():
    stereo = np.array([[1.0, 0.0], [0.5, 0.5]], dtype=np.float32)

    assert np.allclose(stereo_to_mono(stereo), [0.5, 0.5])


def test_resample_changes_length_by_rate_ratio():
    x = np.zeros(4800, dtype=np.float32)

    assert len(resample(x, 48000, 16000)) == 1600
    assert len(resample(x, 16000, 16000)) == 4800


def test_float_to_pcm16_clips():
    assert float_to_pcm16(np.array([2.0, -2.0, 0.0])).tolist() == [32767, -32767, 0]


def test_interleaved_stereo_chunk_becomes_mono_at_target_rate():
    frames = 4410
    stereo = np.zeros((frames, 2), dtype=np.int16)
    stereo[:, 0] = 1000
    raw = stereo.tobytes()

    out = to_recognition_pcm16(raw, channels=2, sr_in=44100, sr_out=16000)

    assert len(out) == 1600 * 2
    assert pcm16_to_float(raw, channels=2).shape == (frames, 2)


@pytest.mark.parametrize("volume, expected", [(1.0, 10000), (0.5, 5000), (3.0, 10000), (-1.0, 0)])
def test_apply_volume_clamps(volume, expected):
    samples = np.full(8, 10000, dtype=np.int16)

    assert int(apply_volume(samples, volume)[0]) == expected


def test_wav_written_to_buffer_reads_back():
    buffer = io.BytesIO()
    samples = np.arange(-50, 50, dtype=np.int16)

    write_wav(buffer, samples, 24000)
    decoded, rate, channels = read_wav(buffer.getvalue())

    assert rate == 24000
    assert channels == 1
    assert decoded.tolist() == samples.tolist()
