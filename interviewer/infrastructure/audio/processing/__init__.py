"""Audio format conversion and volume processing."""

from .processing import (
    stereo_to_mono,
    remove_dc,
    resample,
    pcm16_to_float,
    float_to_pcm16,
    to_recognition_pcm16,
    apply_volume,
    read_wav,
    write_wav
)

__all__ = [
    "stereo_to_mono",
    "remove_dc",
    "resample",
    "pcm16_to_float",
    "float_to_pcm16",
    "to_recognition_pcm16",
    "apply_volume",
    "read_wav",
    "write_wav"
]
