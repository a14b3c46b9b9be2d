"""
Utilities for importing the native audio library quietly.

PortAudio prints ALSA/JACK probing noise straight to file descriptor 2 when it
initialises, which would scribble over the chat transcript.
"""
import os
import importlib
import warnings
from typing import Any

# Keep PortAudio from trying to spawn a JACK server while probing devices
os.environ.setdefault("JACK_NO_START_SERVER", "1")

# Google gRPC clients log to stderr at startup unless told otherwise
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GLOG_minloglevel", "2")


def with_suppressed_audio_warnings(func):
    """
    Decorator that silences native stderr output during a function call.
    Redirects at the file descriptor level so C libraries are covered too.
    """
    def wrapper(*args, **kwargs):
        try:
            saved_fd = os.dup(2)
            null_fd = os.open(os.devnull, os.O_WRONLY)
            os.dup2(null_fd, 2)
            os.close(null_fd)
        except OSError:
            saved_fd = None

        try:
            return func(*args, **kwargs)
        finally:
            if saved_fd is not None:
                os.dup2(saved_fd, 2)
                os.close(saved_fd)

    wrapper.__name__ = getattr(func, "__name__", "wrapper")
    wrapper.__doc__ = getattr(func, "__doc__", None)
    return wrapper


@with_suppressed_audio_warnings
def import_quietly(module_name: str) -> Any:
    """
    Import a module while suppressing Python warnings and native stderr noise.

    Raises:
        ImportError: If the module is not installed
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return importlib.import_module(module_name)
