"""Utility modules for quiet audio imports and logging."""

from .imports import import_quietly, silenced_stderr_fd, with_suppressed_audio_warnings
from .logging import setup_logging

__all__ = ["import_quietly", "silenced_stderr_fd", "with_suppressed_audio_warnings", "setup_logging"]
