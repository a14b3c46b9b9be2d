"""
Speech-to-text using Google Cloud Speech streaming recognition.

Recognition is single-utterance: the service closes the stream at the first
pause and returns the final transcript.
"""
import logging
from enum import Enum
from typing import Iterable, Iterator, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import speech

from ....config import LANGUAGE_CODE, SAMPLE_RATE_TARGET

logger = logging.getLogger("speech_stt")


class RecognitionFailure(str, Enum):
    """Causes of a failed listening attempt, as surfaced to the user."""
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    NOT_ALLOWED = "not-allowed"
    NETWORK = "network"
    UNKNOWN = "unknown"


class RecognitionError(RuntimeError):
    """Listening failed for one of the RecognitionFailure reasons."""

    def __init__(self, failure: RecognitionFailure, detail: str = ""):
        super().__init__(detail or failure.value)
        self.failure = failure


_NETWORK_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.RetryError,
)


class GoogleStreamingRecognizer:
    """Single-utterance recognizer backed by ``speech.SpeechClient``."""

    def __init__(self, language_code: str = LANGUAGE_CODE, client: Optional[speech.SpeechClient] = None):
        self.language_code = language_code
        self._client = client

    @property
    def client(self) -> speech.SpeechClient:
        if self._client is None:
            self._client = speech.SpeechClient()
        return self._client

    def recognize(self, chunks: Iterable[bytes], sample_rate: int = SAMPLE_RATE_TARGET) -> str:
        """
        Stream PCM16 mono chunks and return the final transcript.

        Returns:
            Final transcript, or "" if no speech was recognised

        Raises:
            RecognitionError: NETWORK for transport failures, UNKNOWN otherwise
        """
        streaming_config = speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=sample_rate,
                language_code=self.language_code,
                enable_automatic_punctuation=True,
            ),
            interim_results=True,
            single_utterance=True,
        )
        requests = (speech.StreamingRecognizeRequest(audio_content=chunk) for chunk in chunks)

        try:
            responses = self.client.streaming_recognize(config=streaming_config, requests=requests)
            return _final_transcript(responses)
        except _NETWORK_ERRORS as e:
            logger.error("Speech recognition network failure: %s", e)
            raise RecognitionError(RecognitionFailure.NETWORK, str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Speech recognition failed: %s", e)
            raise RecognitionError(RecognitionFailure.UNKNOWN, str(e)) from e


def _final_transcript(responses: Iterator) -> str:
    """Join the final results of a streaming response, ignoring interim ones."""
    finals = []
    for response in responses:
        for result in response.results:
            if not result.is_final or not result.alternatives:
                continue
            finals.append(result.alternatives[0].transcript)
        if response.speech_event_type == speech.StreamingRecognizeResponse.SpeechEventType.END_OF_SINGLE_UTTERANCE:
            logger.debug("End of single utterance detected")
    return " ".join(t.strip() for t in finals if t.strip()).strip()
