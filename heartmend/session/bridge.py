"""
Audio/Speech Device Bridge.

Two independent halves share one ``AudioSettings``:

- ``PlaybackBridge`` plays AI speech, at most one payload at a time.
- ``CaptureBridge`` listens for one spoken utterance, feeding the same
  microphone frames to the recognizer and the spectrum visualizer.

Both report back through callbacks that are always invoked outside the
bridge's own lock, so a listener may call back into the bridge.
"""
import time
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional

import numpy as np

from .models import Notification
from .schemas import VoiceGender
from ..infrastructure.audio.encoding import decode_data_uri
from ..infrastructure.audio.playback import AudioPlayer
from ..infrastructure.audio.processing import FrequencyAnalyser
from ..infrastructure.audio.resource import ResourceHandle, ResourceBusyError
from ..infrastructure.audio.speech.stt import RecognitionError, RecognitionFailure
from ..config import (
    SPEAKER_VOLUME, PLAYBACK_RATE, MIN_VOLUME, MAX_VOLUME,
    MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE, MAX_LISTEN_SECONDS, VISUALIZER_FPS
)

logger = logging.getLogger("bridge")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


@dataclass
class AudioSettings:
    """Volume, speed and voice shared by playback and the orchestrator."""
    volume: float = SPEAKER_VOLUME
    playback_rate: float = PLAYBACK_RATE
    selected_voice: VoiceGender = VoiceGender.FEMALE

    def __post_init__(self):
        self.volume = _clamp(self.volume, MIN_VOLUME, MAX_VOLUME)
        self.playback_rate = _clamp(self.playback_rate, MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE)
        self.selected_voice = VoiceGender(self.selected_voice)

    def set_volume(self, volume: float) -> float:
        self.volume = _clamp(volume, MIN_VOLUME, MAX_VOLUME)
        return self.volume

    def set_playback_rate(self, rate: float) -> float:
        self.playback_rate = _clamp(rate, MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE)
        return self.playback_rate


# =============================================================================
# Playback
# =============================================================================

class PlaybackEventKind(str, Enum):
    STARTED = "started"
    ENDED = "ended"
    ERRORED = "errored"


@dataclass(frozen=True)
class PlaybackEvent:
    kind: PlaybackEventKind
    playback_id: int
    tag: Any = None
    voice: Optional[VoiceGender] = None
    error: Optional[str] = None


PlaybackListener = Callable[[PlaybackEvent], None]


class PlaybackBridge:
    """
    Plays AI speech payloads, never more than one at once.

    ``play`` fully stops the current player before starting the next one, and
    any late callback from a replaced or stopped player is dropped.
    """

    def __init__(self,
                 settings: AudioSettings,
                 player_factory: Callable[[], Any] = AudioPlayer,
                 resource: Optional[ResourceHandle] = None):
        self.settings = settings
        self._player_factory = player_factory
        self._resource = resource or ResourceHandle("speaker")
        self._lock = threading.Lock()
        self._listeners: List[PlaybackListener] = []
        self._player = None
        self._owner: Optional[str] = None
        self._playback_id = 0

    def add_listener(self, listener: PlaybackListener) -> None:
        self._listeners.append(listener)

    @property
    def is_playing(self) -> bool:
        return self._player is not None

    @property
    def current_playback_id(self) -> Optional[int]:
        return self._playback_id if self._player is not None else None

    def play(self, payload: str, voice_hint: VoiceGender, tag: Any = None) -> int:
        """
        Stop whatever is playing, then start ``payload``.

        Failures are reported as an ``errored`` event, not raised.

        Returns:
            The id of this playback
        """
        with self._lock:
            self._stop_locked()
            self._playback_id += 1
            playback_id = self._playback_id
            owner = f"playback-{playback_id}"

            try:
                self._resource.acquire(owner)
                mime_type, audio = decode_data_uri(payload)
                player = self._player_factory()
                player.start(
                    audio, mime_type,
                    self.settings.volume, self.settings.playback_rate,
                    on_finished=lambda returncode: self._on_finished(playback_id, tag, voice_hint, returncode),
                )
            except (ValueError, RuntimeError, OSError) as e:
                self._resource.release(owner)
                logger.error("Playback %d failed to start: %s", playback_id, e)
                event = PlaybackEvent(PlaybackEventKind.ERRORED, playback_id, tag, voice_hint, str(e))
            else:
                self._player = player
                self._owner = owner
                logger.info("Playback %d started (%d bytes %s, volume=%.2f rate=%.2f)",
                            playback_id, len(audio), mime_type,
                            self.settings.volume, self.settings.playback_rate)
                event = PlaybackEvent(PlaybackEventKind.STARTED, playback_id, tag, voice_hint)

        self._emit(event)
        return playback_id

    def stop(self) -> bool:
        """Stop playback and release the speaker. Returns False if nothing was playing."""
        with self._lock:
            return self._stop_locked()

    def _stop_locked(self) -> bool:
        player, self._player = self._player, None
        owner, self._owner = self._owner, None
        if player is None:
            return False
        try:
            player.stop()
        finally:
            self._resource.release(owner)
        logger.info("Playback %d stopped", self._playback_id)
        return True

    def _on_finished(self, playback_id: int, tag: Any, voice: VoiceGender, returncode: int) -> None:
        with self._lock:
            if playback_id != self._playback_id or self._player is None:
                logger.debug("Dropping finish of superseded playback %d", playback_id)
                return
            self._player = None
            self._resource.release(self._owner)
            self._owner = None

        if returncode == 0:
            event = PlaybackEvent(PlaybackEventKind.ENDED, playback_id, tag, voice)
        else:
            logger.error("Playback %d exited with code %d", playback_id, returncode)
            event = PlaybackEvent(PlaybackEventKind.ERRORED, playback_id, tag, voice,
                                  f"player exited with code {returncode}")
        self._emit(event)

    def _emit(self, event: PlaybackEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Error in playback listener for %s: %s", event.kind.value, e)


# =============================================================================
# Capture
# =============================================================================

FAILURE_MESSAGES = {
    RecognitionFailure.NO_SPEECH: "No speech was detected. Please try again.",
    RecognitionFailure.AUDIO_CAPTURE: "Audio capture failed. Ensure microphone is connected and permission is granted.",
    RecognitionFailure.NOT_ALLOWED: "Microphone access denied. Please allow microphone access in system settings.",
    RecognitionFailure.NETWORK: "Network error during speech recognition. Please check your connection.",
    RecognitionFailure.UNKNOWN: "An unknown speech error occurred.",
}

UNSUPPORTED_NOTIFICATION = Notification(
    "Speech Recognition Not Supported",
    "Speech recognition is not available on this system.",
    destructive=True,
)
BUSY_NOTIFICATION = Notification(
    "Please wait",
    "You can speak once the AI has finished responding.",
)


def failure_notification(failure: RecognitionFailure) -> Notification:
    return Notification("Speech Error", FAILURE_MESSAGES[failure], destructive=True)


class _ListeningSession:
    """The microphone stream and analyser of one listening attempt, held together."""

    def __init__(self, stream, analyser: FrequencyAnalyser):
        self.stream = stream
        self.analyser = analyser
        self.stop_event = threading.Event()
        self.stopped_by_user = False
        self.released = False


class CaptureBridge:
    """
    Single-utterance listening with a live spectrum tap.

    Call ``bind`` before ``start_listening``; the orchestrator supplies the
    AI-turn gate and receives transcripts and notifications.
    """

    def __init__(self,
                 recognizer=None,
                 microphone_factory: Optional[Callable[[], Any]] = None,
                 analyser_factory: Callable[[], FrequencyAnalyser] = FrequencyAnalyser,
                 supported: bool = True,
                 on_spectrum: Optional[Callable[[np.ndarray], None]] = None,
                 resource: Optional[ResourceHandle] = None,
                 max_listen_seconds: float = MAX_LISTEN_SECONDS,
                 visualizer_fps: int = VISUALIZER_FPS):
        self.recognizer = recognizer
        self.microphone_factory = microphone_factory or _default_microphone
        self.analyser_factory = analyser_factory
        self.supported = supported and recognizer is not None
        self.on_spectrum = on_spectrum
        self.max_listen_seconds = max_listen_seconds
        self.visualizer_fps = visualizer_fps
        self._resource = resource or ResourceHandle("microphone")
        self._lock = threading.Lock()
        self._session: Optional[_ListeningSession] = None
        self._worker: Optional[threading.Thread] = None

        self._is_ai_turn_active: Callable[[], bool] = lambda: False
        self._on_transcript: Callable[[str], None] = lambda text: None
        self._notify: Callable[[Notification], None] = lambda n: None
        self._on_state: Callable[[bool, Optional[str], Optional[RecognitionFailure]], None] = \
            lambda listening, transcript, failure: None

    def bind(self,
             is_ai_turn_active: Callable[[], bool],
             on_transcript: Callable[[str], None],
             notify: Callable[[Notification], None],
             on_state: Optional[Callable[[bool, Optional[str], Optional[RecognitionFailure]], None]] = None) -> None:
        self._is_ai_turn_active = is_ai_turn_active
        self._on_transcript = on_transcript
        self._notify = notify
        if on_state is not None:
            self._on_state = on_state

    @property
    def is_listening(self) -> bool:
        return self._session is not None

    def start_listening(self) -> bool:
        """
        Open the microphone and start recognising one utterance.

        Returns:
            True if listening started
        """
        if not self.supported:
            self._notify(UNSUPPORTED_NOTIFICATION)
            return False
        if self._is_ai_turn_active():
            logger.info("Listening rejected: AI turn active")
            self._notify(BUSY_NOTIFICATION)
            return False

        failure: Optional[RecognitionFailure] = None
        with self._lock:
            if self._session is not None:
                logger.info("Listening rejected: already listening")
                return False

            try:
                self._resource.acquire("capture")
            except ResourceBusyError as e:
                logger.error("Microphone unavailable: %s", e)
                failure = RecognitionFailure.AUDIO_CAPTURE
            else:
                stream = None
                try:
                    stream = self.microphone_factory()
                    stream.open()
                except RecognitionError as e:
                    logger.error("Microphone open failed (%s): %s", e.failure.value, e)
                    failure = e.failure
                    if stream is not None:
                        stream.close()
                    self._resource.release("capture")
                else:
                    session = _ListeningSession(stream, self.analyser_factory())
                    self._session = session
                    worker = threading.Thread(
                        target=self._run, args=(session,), name="heartmend-listen", daemon=True,
                    )
                    self._worker = worker

        if failure is not None:
            self._notify(failure_notification(failure))
            return False

        logger.info("Listening started")
        self._on_state(True, None, None)
        worker.start()
        return True

    def stop_listening(self) -> bool:
        """Stop listening now and release everything. Returns False if not listening."""
        with self._lock:
            session = self._session
            if session is None:
                return False
            session.stopped_by_user = True
            session.stop_event.set()
            self._teardown_locked(session)
        logger.info("Listening stopped by user")
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the current recognition worker to finish."""
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def _run(self, session: _ListeningSession) -> None:
        transcript = ""
        failure: Optional[RecognitionFailure] = None
        try:
            transcript = self.recognizer.recognize(
                self._chunks(session), sample_rate=session.stream.sr_target,
            ) or ""
        except RecognitionError as e:
            logger.error("Recognition failed (%s): %s", e.failure.value, e)
            failure = e.failure
        except Exception as e:
            logger.exception("Unexpected recognition failure: %s", e)
            failure = RecognitionFailure.UNKNOWN
        finally:
            with self._lock:
                self._teardown_locked(session)
        self._finish(session, transcript.strip(), failure)

    def _chunks(self, session: _ListeningSession) -> Iterator[bytes]:
        """Microphone frames as recognizer chunks, feeding the analyser on the way."""
        deadline = time.monotonic() + self.max_listen_seconds
        interval = 1.0 / self.visualizer_fps if self.visualizer_fps > 0 else 0.0
        last_spectrum = 0.0

        while not session.stop_event.is_set():
            if time.monotonic() >= deadline:
                logger.info("Listening limit of %.0fs reached", self.max_listen_seconds)
                return
            frame = session.stream.read(timeout=0.1)
            if frame is None:
                continue

            session.analyser.push(frame)
            now = time.monotonic()
            if self.on_spectrum is not None and now - last_spectrum >= interval:
                last_spectrum = now
                try:
                    self.on_spectrum(session.analyser.byte_frequency_data())
                except Exception as e:
                    logger.error("Error in spectrum callback: %s", e)

            yield session.stream.to_recognizer_chunk(frame)

    def _teardown_locked(self, session: _ListeningSession) -> None:
        if session.released:
            return
        session.released = True
        session.stop_event.set()
        session.stream.close()
        if self._session is session:
            self._session = None
        self._resource.release("capture")

    def _finish(self, session: _ListeningSession, transcript: str,
                failure: Optional[RecognitionFailure]) -> None:
        if failure is None and not transcript and not session.stopped_by_user:
            failure = RecognitionFailure.NO_SPEECH

        reported = None if session.stopped_by_user else failure
        logger.info("Listening ended: transcript=%r failure=%s",
                    transcript, reported.value if reported else None)
        self._on_state(False, transcript, reported)

        if reported is not None and not transcript:
            self._notify(failure_notification(reported))
        elif transcript:
            with self._lock:
                superseded = self._session is not None and self._session is not session
            if superseded:
                logger.info("Dropping transcript from a listening session replaced by a newer one")
                return
            self._on_transcript(transcript)


def _default_microphone():
    from ..infrastructure.audio.processing.capture import MicrophoneStream
    return MicrophoneStream()
