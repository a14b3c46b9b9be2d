"""
Testing infrastructure with mock services for the therapy session.
"""
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np

from .schemas import (
    UserProfile, ResponderRequest, VoiceGender,
    TherapyRecommendation, AdaptedLanguageStyle, EmpatheticReply
)
from .services import GenerationError
from .bridge import AudioSettings, PlaybackBridge, CaptureBridge
from .orchestrator import SessionOrchestrator
from ..infrastructure.audio.encoding import encode_data_uri
from ..infrastructure.audio.processing import to_pcm16
from ..infrastructure.audio.resource import ResourceHandle
from ..config import SAMPLE_RATE_TARGET

MOCK_AUDIO = encode_data_uri(b"ID3mock-mp3-bytes", "audio/mpeg")


def make_test_profile(**overrides) -> UserProfile:
    """A valid profile; keyword arguments replace individual fields."""
    data: Dict[str, Any] = {
        "age": 30,
        "gender_identity": "Female",
        "ethnicity": "British Asian",
        "vulnerability_score": 6,
        "anxiety_level": "Medium",
        "breakup_type": "Divorce",
        "background": "Married for eight years, separated three months ago.",
    }
    data.update(overrides)
    return UserProfile(**data)


class ImmediateExecutor:
    """Runs submitted work synchronously and returns an already-finished Future."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


class DeferredExecutor:
    """
    Queues submitted work until ``run_next``/``run_pending`` is called.

    With ``defer`` False it behaves like ImmediateExecutor, which lets a test
    get through profile submission before holding work back.
    """

    def __init__(self, defer: bool = True):
        self.defer = defer
        self.pending: List[tuple] = []

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        future: Future = Future()
        if self.defer:
            self.pending.append((future, fn, args, kwargs))
        else:
            self._run(future, fn, args, kwargs)
        return future

    def run_next(self) -> None:
        self._run(*self.pending.pop(0))

    @staticmethod
    def _run(future: Future, fn: Callable, args: tuple, kwargs: dict) -> None:
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)

    def run_pending(self) -> None:
        while self.pending:
            self.run_next()

    def shutdown(self, wait: bool = True) -> None:
        pass


class MockLLMClient:
    """Mock LLM client returning canned JSON objects (or raising canned errors)."""

    def __init__(self, mock_responses: List[Union[Dict[str, Any], Exception]]):
        self.mock_responses = list(mock_responses)
        self.current_response_idx = 0
        self.request_history: List[Dict[str, Any]] = []

    def generate_json(self, prompt: str, temperature: float = 0.0) -> Dict[str, Any]:
        self.request_history.append({"prompt": prompt, "temperature": temperature})
        if self.current_response_idx >= len(self.mock_responses):
            raise RuntimeError("MockLLMClient has no more responses")
        response = self.mock_responses[self.current_response_idx]
        self.current_response_idx += 1
        if isinstance(response, Exception):
            raise response
        return response


class MockRecommendationRequester:
    def __init__(self, result: Optional[TherapyRecommendation] = None, error: Optional[Exception] = None):
        self.result = result or TherapyRecommendation(
            recommendations="Consider grief-focused CBT and a steady sleep routine.",
            identified_therapeutic_needs=["CBT", "Grief Counselling"],
        )
        self.error = error
        self.calls: List[UserProfile] = []

    def personalize(self, profile: UserProfile) -> TherapyRecommendation:
        self.calls.append(profile)
        if self.error is not None:
            raise self.error
        return self.result


class MockAdaptationRequester:
    def __init__(self, result: Optional[AdaptedLanguageStyle] = None, error: Optional[Exception] = None):
        self.result = result or AdaptedLanguageStyle(
            adapted_language="Gentle, validating language with structured reframing exercises."
        )
        self.error = error
        self.calls: List[tuple] = []

    def adapt(self, profile: UserProfile, additional_context: Optional[str] = None) -> AdaptedLanguageStyle:
        self.calls.append((profile, additional_context))
        if self.error is not None:
            raise self.error
        return self.result


class MockResponder:
    """Returns queued replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: Optional[List[Union[EmpatheticReply, Exception]]] = None):
        self.replies = list(replies or [])
        self.requests: List[ResponderRequest] = []

    def respond(self, request: ResponderRequest) -> EmpatheticReply:
        self.requests.append(request)
        if not self.replies:
            return EmpatheticReply(response="I hear you.", updated_rapport_level=request.rapport_level + 1)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class MockSpeechService:
    """Records synthesis calls; raises ``error`` if set."""

    def __init__(self, payload: str = MOCK_AUDIO, error: Optional[Exception] = None):
        self.payload = payload
        self.error = error
        self.calls: List[tuple] = []

    def synthesize(self, text: str, voice: VoiceGender) -> str:
        self.calls.append((text, voice))
        if self.error is not None:
            raise self.error
        return self.payload


class MockPlayer:
    """Stands in for AudioPlayer; tests end playback with ``finish``."""

    def __init__(self, fail_on_start: Optional[Exception] = None):
        self.fail_on_start = fail_on_start
        self.audio: Optional[bytes] = None
        self.mime_type: Optional[str] = None
        self.volume: Optional[float] = None
        self.rate: Optional[float] = None
        self.started = False
        self.stopped = False
        self._on_finished: Optional[Callable[[int], None]] = None

    def start(self, audio: bytes, mime_type: str, volume: float, rate: float,
              on_finished: Callable[[int], None]) -> None:
        if self.fail_on_start is not None:
            raise self.fail_on_start
        self.audio, self.mime_type = audio, mime_type
        self.volume, self.rate = volume, rate
        self.started = True
        self._on_finished = on_finished

    def stop(self) -> None:
        self.stopped = True

    def finish(self, returncode: int = 0) -> None:
        """Simulate the player process exiting (delivered even after stop, like a late callback)."""
        self._on_finished(returncode)


class MockPlayerFactory:
    """Creates MockPlayers and remembers them in creation order."""

    def __init__(self, fail_on_start: Optional[Exception] = None):
        self.fail_on_start = fail_on_start
        self.players: List[MockPlayer] = []

    def __call__(self) -> MockPlayer:
        player = MockPlayer(self.fail_on_start)
        self.players.append(player)
        return player

    @property
    def last(self) -> MockPlayer:
        return self.players[-1]


class MockMicrophone:
    """Microphone stream yielding pre-built float frames at 16 kHz."""

    def __init__(self, frames: Optional[List[np.ndarray]] = None, open_error: Optional[Exception] = None):
        self.frames = list(frames if frames is not None else [np.zeros(1600, dtype=np.float32)] * 3)
        self.open_error = open_error
        self.sr_target = SAMPLE_RATE_TARGET
        self.opened = False
        self.closed = False
        self.close_calls = 0

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def read(self, timeout: float = 0.2) -> Optional[np.ndarray]:
        if self.frames:
            return self.frames.pop(0)
        time.sleep(min(timeout, 0.01))
        return None

    def to_recognizer_chunk(self, frame: np.ndarray) -> bytes:
        return to_pcm16(frame)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class MockRecognizer:
    """Consumes up to ``max_chunks`` chunks, then returns ``transcript`` or raises ``error``."""

    def __init__(self, transcript: str = "", error: Optional[Exception] = None, max_chunks: int = 3):
        self.transcript = transcript
        self.error = error
        self.max_chunks = max_chunks
        self.chunks: List[bytes] = []

    def recognize(self, chunks, sample_rate: int = SAMPLE_RATE_TARGET) -> str:
        for chunk in chunks:
            self.chunks.append(chunk)
            if len(self.chunks) >= self.max_chunks:
                break
        if self.error is not None:
            raise self.error
        return self.transcript


def build_test_session(responder: Optional[MockResponder] = None,
                       speech: Optional[MockSpeechService] = None,
                       recommendation: Optional[MockRecommendationRequester] = None,
                       adaptation: Optional[MockAdaptationRequester] = None,
                       player_factory: Optional[MockPlayerFactory] = None,
                       capture: Optional[CaptureBridge] = None,
                       executor=None,
                       use_tts: bool = True) -> SessionOrchestrator:
    """SessionOrchestrator wired entirely to mocks."""
    settings = AudioSettings()
    playback = PlaybackBridge(settings, player_factory=player_factory or MockPlayerFactory(),
                              resource=ResourceHandle("speaker"))
    return SessionOrchestrator(
        recommendation_requester=recommendation or MockRecommendationRequester(),
        adaptation_requester=adaptation or MockAdaptationRequester(),
        responder=responder or MockResponder(),
        speech_service=speech or MockSpeechService(),
        playback=playback,
        capture=capture,
        executor=executor or ImmediateExecutor(),
        use_tts=use_tts,
        settings=settings,
    )


__all__ = [
    "MOCK_AUDIO", "make_test_profile", "ImmediateExecutor", "DeferredExecutor",
    "MockLLMClient", "MockRecommendationRequester", "MockAdaptationRequester",
    "MockResponder", "MockSpeechService", "MockPlayer", "MockPlayerFactory",
    "MockMicrophone", "MockRecognizer", "build_test_session", "GenerationError",
]
