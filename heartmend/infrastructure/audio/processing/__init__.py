"""Audio processing, capture and spectrum modules."""

# Import processing functions immediately (numpy/scipy only)
from .processing import (
    stereo_to_mono,
    remove_dc,
    resample,
    apply_gain,
    to_pcm16,
    pcm16_to_float
)
from .spectrum import FrequencyAnalyser, render_bars

# Lazy import for capture (avoid touching PyAudio unless a microphone is used)
def _get_microphone_stream():
    from .capture import MicrophoneStream
    return MicrophoneStream


def __getattr__(name):
    if name == "MicrophoneStream":
        return _get_microphone_stream()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "MicrophoneStream",
    "FrequencyAnalyser",
    "render_bars",
    "stereo_to_mono",
    "remove_dc",
    "resample",
    "apply_gain",
    "to_pcm16",
    "pcm16_to_float"
]
