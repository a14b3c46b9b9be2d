"""
ElevenLabs client: credential handling and HTTP error mapping.
"""
from unittest.mock import Mock

import pytest
import requests

from heartmend.infrastructure.audio.encoding import decode_data_uri
from heartmend.infrastructure.audio.speech import (
    ElevenLabsClient, MissingCredentialError, AuthorizationError,
    InvalidRequestError, ProviderError, SpeechSynthesisError, resolve_voice_id
)
from heartmend.config import ELEVENLABS_FEMALE_VOICE_ID, ELEVENLABS_MALE_VOICE_ID


def _session(status_code=200, content=b"ID3audio", text=""):
    response = Mock(status_code=status_code, content=content, text=text)
    session = Mock()
    session.post.return_value = response
    return session


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("ELEVENLABS_API_KEY", "test-key")


class TestResolveVoiceId:

    def test_defaults(self):
        assert resolve_voice_id("female") == ELEVENLABS_FEMALE_VOICE_ID
        assert resolve_voice_id("male") == ELEVENLABS_MALE_VOICE_ID

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ELEVENLABS_MALE_VOICE_ID", "custom-male")
        assert resolve_voice_id("male") == "custom-male"

    def test_unknown_gender(self):
        with pytest.raises(ValueError):
            resolve_voice_id("robot")


class TestElevenLabsClient:

    def test_success_returns_mpeg_data_uri(self, api_key):
        session = _session(content=b"ID3audio")
        payload = ElevenLabsClient(session=session).synthesize("Hello there", "female")

        assert decode_data_uri(payload) == ("audio/mpeg", b"ID3audio")
        args, kwargs = session.post.call_args
        assert args[0].endswith(f"/{ELEVENLABS_FEMALE_VOICE_ID}")
        assert kwargs["headers"]["xi-api-key"] == "test-key"
        assert kwargs["json"]["text"] == "Hello there"
        assert kwargs["params"] == {"output_format": "mp3_44100_128"}

    def test_missing_key_makes_no_request(self):
        session = _session()
        with pytest.raises(MissingCredentialError):
            ElevenLabsClient(session=session).synthesize("Hello", "female")
        session.post.assert_not_called()

    def test_key_is_read_per_call(self, monkeypatch):
        session = _session()
        client = ElevenLabsClient(session=session)
        with pytest.raises(MissingCredentialError):
            client.synthesize("Hello", "female")

        monkeypatch.setenv("ELEVENLABS_API_KEY", "added-later")
        client.synthesize("Hello", "female")
        assert session.post.call_args.kwargs["headers"]["xi-api-key"] == "added-later"

    @pytest.mark.parametrize("status_code, error_cls", [
        (401, AuthorizationError),
        (403, AuthorizationError),
        (400, InvalidRequestError),
        (404, InvalidRequestError),
        (422, InvalidRequestError),
        (429, ProviderError),
        (500, ProviderError),
    ])
    def test_http_errors(self, api_key, status_code, error_cls):
        session = _session(status_code=status_code, text="nope")
        with pytest.raises(error_cls) as exc_info:
            ElevenLabsClient(session=session).synthesize("Hello", "male")
        assert isinstance(exc_info.value, SpeechSynthesisError)

    def test_authorization_message(self, api_key):
        with pytest.raises(AuthorizationError, match=r"Authorization \(401\)"):
            ElevenLabsClient(session=_session(status_code=401)).synthesize("Hello", "male")

    def test_transport_error(self, api_key):
        session = Mock()
        session.post.side_effect = requests.ConnectionError("offline")
        with pytest.raises(ProviderError):
            ElevenLabsClient(session=session).synthesize("Hello", "female")

    def test_empty_audio(self, api_key):
        with pytest.raises(ProviderError):
            ElevenLabsClient(session=_session(content=b"")).synthesize("Hello", "female")
