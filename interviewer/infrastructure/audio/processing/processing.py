"""
Basic audio processing functions including format conversions and volume.
"""
import io
import wave
from math import gcd
from typing import BinaryIO, Tuple, Union

import numpy as np
from scipy.signal import resample_poly

from ....config import SAMPLE_RATE_TARGET


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio to mono by averaging channels."""
    if x.ndim == 1:
        return x
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    if x.size == 0:
        return x
    return x - np.mean(x)


def resample(x: np.ndarray, sr_in: int, sr_out: int = SAMPLE_RATE_TARGET) -> np.ndarray:
    """Resample mono audio between integer sample rates."""
    if sr_in == sr_out:
        return x.astype(np.float32)
    g = gcd(sr_in, sr_out)
    return resample_poly(x, up=sr_out // g, down=sr_in // g).astype(np.float32)


def pcm16_to_float(raw: bytes, channels: int = 1) -> np.ndarray:
    """Interleaved PCM16 bytes to float samples in [-1, 1], shape (frames, channels)."""
    samples = np.frombuffer(raw, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        samples = samples[: len(samples) - len(samples) % channels].reshape(-1, channels)
    return samples


def float_to_pcm16(x: np.ndarray) -> np.ndarray:
    """Float samples in [-1, 1] to int16, clipping out-of-range values."""
    return (np.clip(x, -1.0, 1.0) * 32767.0).astype(np.int16)


def to_recognition_pcm16(raw: bytes, channels: int, sr_in: int,
                         sr_out: int = SAMPLE_RATE_TARGET) -> bytes:
    """Microphone chunk to mono PCM16 at the recognizer's sample rate."""
    audio = stereo_to_mono(pcm16_to_float(raw, channels))
    audio = resample(remove_dc(audio), sr_in, sr_out)
    return float_to_pcm16(audio).tobytes()


def apply_volume(pcm16: np.ndarray, volume: float) -> np.ndarray:
    """Scale PCM16 samples by a 0.0 - 1.0 volume."""
    volume = max(0.0, min(1.0, volume))
    if volume == 1.0:
        return pcm16
    return (pcm16.astype(np.float32) * volume).astype(np.int16)


def read_wav(data: bytes) -> Tuple[np.ndarray, int, int]:
    """Decode PCM16 WAV bytes. Returns (samples, sample_rate, channels)."""
    with wave.open(io.BytesIO(data), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise ValueError(f"Expected 16-bit WAV, got {wf.getsampwidth() * 8}-bit")
        frames = wf.readframes(wf.getnframes())
        return np.frombuffer(frames, dtype=np.int16), wf.getframerate(), wf.getnchannels()


def write_wav(target: Union[str, BinaryIO], pcm16: np.ndarray, sr: int, channels: int = 1) -> None:
    """Write PCM16 audio data to a WAV file path or binary file object."""
    with wave.open(target, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16.astype(np.int16).tobytes())
