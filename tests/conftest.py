"""
Shared fixtures for the HeartMend test suite.

Everything runs against the mocks in ``heartmend.session.testing``; no
network, audio device or PortAudio install is needed.
"""
import pytest

from heartmend.session.testing import (
    MockPlayerFactory, MockResponder, MockSpeechService,
    build_test_session, make_test_profile
)


@pytest.fixture(autouse=True)
def _no_elevenlabs_env(monkeypatch):
    for name in ("ELEVENLABS_API_KEY", "ELEVENLABS_FEMALE_VOICE_ID", "ELEVENLABS_MALE_VOICE_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def profile():
    return make_test_profile()


@pytest.fixture
def player_factory():
    return MockPlayerFactory()


@pytest.fixture
def speech():
    return MockSpeechService()


@pytest.fixture
def responder():
    return MockResponder()


@pytest.fixture
def session(player_factory, speech, responder):
    return build_test_session(responder=responder, speech=speech, player_factory=player_factory)


@pytest.fixture
def chatting_session(session, profile, player_factory):
    """A session past the greeting, with the greeting audio finished."""
    assert session.submit_profile(profile)
    player_factory.last.finish()
    return session
