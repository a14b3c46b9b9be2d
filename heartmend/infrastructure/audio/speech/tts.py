"""
Text-to-speech using the ElevenLabs REST API.

The API key and per-gender voice ids are read from the environment on every
call, so a key added to the environment mid-session is picked up without a
restart.
"""
import os
import logging
from typing import Optional

import requests

from ..encoding import encode_data_uri
from ....config import (
    ELEVENLABS_API_URL, ELEVENLABS_MODEL_ID, ELEVENLABS_OUTPUT_FORMAT,
    ELEVENLABS_FEMALE_VOICE_ID, ELEVENLABS_MALE_VOICE_ID,
    ELEVENLABS_VOICE_SETTINGS, TTS_TIMEOUT
)

logger = logging.getLogger("speech_tts")


class SpeechSynthesisError(RuntimeError):
    """Base class for every speech generation failure."""


class MissingCredentialError(SpeechSynthesisError):
    """ELEVENLABS_API_KEY is not set."""


class AuthorizationError(SpeechSynthesisError):
    """The provider rejected the API key (invalid, expired or lacking permission)."""


class InvalidRequestError(SpeechSynthesisError):
    """The provider refused the request itself (bad voice id, bad payload)."""


class ProviderError(SpeechSynthesisError):
    """Any other provider or transport failure."""


def resolve_voice_id(voice_gender: str) -> str:
    """Map a voice gender to the configured ElevenLabs voice id."""
    if voice_gender == "female":
        return os.getenv("ELEVENLABS_FEMALE_VOICE_ID") or ELEVENLABS_FEMALE_VOICE_ID
    if voice_gender == "male":
        return os.getenv("ELEVENLABS_MALE_VOICE_ID") or ELEVENLABS_MALE_VOICE_ID
    raise ValueError(f"Unknown voice gender: {voice_gender!r}")


class ElevenLabsClient:
    """Synthesizes speech and returns it as an ``audio/mpeg`` data URI."""

    def __init__(self,
                 model_id: str = ELEVENLABS_MODEL_ID,
                 output_format: str = ELEVENLABS_OUTPUT_FORMAT,
                 timeout: int = TTS_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.model_id = model_id
        self.output_format = output_format
        self.timeout = timeout
        self._session = session or requests.Session()

    def synthesize(self, text: str, voice_gender: str) -> str:
        """
        Convert text to speech.

        Args:
            text: Utterance to speak
            voice_gender: "male" or "female"

        Returns:
            ``data:audio/mpeg;base64,...`` string

        Raises:
            MissingCredentialError: ELEVENLABS_API_KEY is not set
            AuthorizationError: HTTP 401/403
            InvalidRequestError: HTTP 400/404/422
            ProviderError: Any other failure
        """
        api_key = os.getenv("ELEVENLABS_API_KEY")
        if not api_key:
            message = ("ELEVENLABS_API_KEY environment variable is not set. "
                       "Please ensure it is correctly defined in your environment.")
            logger.error(message)
            raise MissingCredentialError(message)

        voice_id = resolve_voice_id(voice_gender)
        url = f"{ELEVENLABS_API_URL}/{voice_id}"
        headers = {
            "xi-api-key": api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": dict(ELEVENLABS_VOICE_SETTINGS),
        }

        logger.info("Requesting speech: voice=%s (%s), %d chars", voice_gender, voice_id, len(text))
        try:
            response = self._session.post(
                url, json=payload, headers=headers,
                params={"output_format": self.output_format}, timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("ElevenLabs request failed: %s", e)
            raise ProviderError(f"ElevenLabs API error: {e}") from e

        if response.status_code in (401, 403):
            logger.error("ElevenLabs authorization (%d) error: %s", response.status_code, response.text)
            raise AuthorizationError(
                f"ElevenLabs API Authorization ({response.status_code}) Error. "
                "Please double-check your ELEVENLABS_API_KEY."
            )
        if response.status_code in (400, 404, 422):
            logger.error("ElevenLabs rejected request (%d): %s", response.status_code, response.text)
            raise InvalidRequestError(f"ElevenLabs API rejected the request ({response.status_code}): {response.text}")
        if response.status_code >= 400:
            logger.error("ElevenLabs error (%d): %s", response.status_code, response.text)
            raise ProviderError(f"ElevenLabs API error {response.status_code}: {response.text}")
        if not response.content:
            raise ProviderError("ElevenLabs API returned no audio")

        return encode_data_uri(response.content, "audio/mpeg")
