"""
Helpers for audio libraries that write noise to stderr (ALSA, JACK, gRPC).
"""
import contextlib
import functools
import importlib
import os
import sys
import warnings


# Must be set before PyAudio or a Google client is first imported
os.environ.setdefault("JACK_NO_START_SERVER", "1")
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GLOG_minloglevel", "2")


@contextlib.contextmanager
def silenced_stderr_fd():
    """Point file descriptor 2 at /dev/null; native libraries bypass sys.stderr."""
    try:
        saved_fd = os.dup(2)
        null_fd = os.open(os.devnull, os.O_WRONLY)
        os.dup2(null_fd, 2)
        os.close(null_fd)
    except OSError:
        saved_fd = None

    try:
        yield
    finally:
        if saved_fd is not None:
            os.dup2(saved_fd, 2)
            os.close(saved_fd)


def import_quietly(module_name: str):
    """
    Import a module with Python warnings and stderr output suppressed.

    Raises:
        ImportError: If the module is not installed
    """
    original_stderr = sys.stderr
    try:
        with warnings.catch_warnings(), open(os.devnull, "w") as devnull, silenced_stderr_fd():
            warnings.simplefilter("ignore")
            sys.stderr = devnull
            return importlib.import_module(module_name)
    finally:
        sys.stderr = original_stderr


def with_suppressed_audio_warnings(func):
    """Decorator running ``func`` with native stderr output silenced."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with silenced_stderr_fd():
            return func(*args, **kwargs)

    return wrapper
