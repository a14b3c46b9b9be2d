"""Speech-to-text and text-to-speech modules."""

from .tts import (
    ElevenLabsClient, SpeechSynthesisError, MissingCredentialError,
    AuthorizationError, InvalidRequestError, ProviderError, resolve_voice_id
)
from .stt import GoogleStreamingRecognizer, RecognitionError, RecognitionFailure

__all__ = [
    "ElevenLabsClient", "SpeechSynthesisError", "MissingCredentialError",
    "AuthorizationError", "InvalidRequestError", "ProviderError", "resolve_voice_id",
    "GoogleStreamingRecognizer", "RecognitionError", "RecognitionFailure",
]
