"""
Audio playback, capture and speech services for HeartMend.

This module contains all audio-related functionality organized into clear submodules:
- processing: signal helpers, microphone stream and spectrum analyser
- speech: ElevenLabs text-to-speech and Google streaming speech-to-text
- playback: external-player audio output
"""

# Convenient imports from submodules
from .encoding import encode_data_uri, decode_data_uri
from .resource import ResourceHandle, ResourceBusyError
from .playback import AudioPlayer
from .processing import FrequencyAnalyser, render_bars
from .speech import (
    ElevenLabsClient, SpeechSynthesisError, GoogleStreamingRecognizer,
    RecognitionError, RecognitionFailure
)

__all__ = [
    "encode_data_uri",
    "decode_data_uri",
    "ResourceHandle",
    "ResourceBusyError",
    "AudioPlayer",
    "FrequencyAnalyser",
    "render_bars",
    "ElevenLabsClient",
    "SpeechSynthesisError",
    "GoogleStreamingRecognizer",
    "RecognitionError",
    "RecognitionFailure",
]
