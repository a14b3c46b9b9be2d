"""Infrastructure components for HeartMend.

This module contains the low-level technical pieces the therapy session
is built on: the Gemini client and the audio/speech device layer.
"""

# Audio infrastructure
from .audio import (
    AudioPlayer, FrequencyAnalyser, ResourceHandle,
    ElevenLabsClient, GoogleStreamingRecognizer
)

# LLM infrastructure
from .llm import VertexRestClient

__all__ = [
    # Audio
    "AudioPlayer", "FrequencyAnalyser", "ResourceHandle",

    # Speech services
    "ElevenLabsClient", "GoogleStreamingRecognizer",

    # LLM client
    "VertexRestClient"
]
