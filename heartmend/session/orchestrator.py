"""
Session orchestrator: the turn-taking state machine of a therapy session.

Stages run ``collecting_profile -> awaiting_initial_ai -> chatting``. Inside
``chatting`` every AI turn cycles ``idle -> awaiting_ai_text ->
awaiting_speech -> speaking -> idle``.

Each AI turn (greeting, reply, relaxation exercise) gets a monotonic turn id.
Speech results and playback events are tagged with it, and anything carrying
an id other than the current one is discarded.

Locking: ``self._lock`` guards all session state and is never held across a
network call. It may be held while calling into the playback bridge (lock
order orchestrator -> bridge); the bridges call back without their own lock.
"""
import time
import uuid
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait, FIRST_EXCEPTION
from functools import partial
from typing import Optional, List, Tuple

from .models import ChatMessage, Notification, SessionContext
from .schemas import (
    UserProfile, Sender, SessionStage, TurnState, VoiceGender,
    TherapyRecommendation, AdaptedLanguageStyle, build_responder_request
)
from .services import (
    RecommendationRequester, AdaptationRequester, ConversationalResponder,
    SpeechService
)
from .bridge import (
    AudioSettings, PlaybackBridge, PlaybackEvent, PlaybackEventKind, CaptureBridge,
    UNSUPPORTED_NOTIFICATION
)
from .prompts import PromptFormatter, FALLBACK_REPLY, RELAXATION_SCRIPT, NOTIFICATIONS
from .events import (
    SessionEventBus, EventLogger, SessionMetrics,
    ProfileSubmittedEvent, SessionReadyEvent, MessageAppendedEvent,
    TurnStateChangedEvent, SpeechStartedEvent, SpeechEndedEvent,
    ListeningStartedEvent, ListeningStoppedEvent, NotificationRaisedEvent,
    ErrorOccurredEvent
)
from ..infrastructure.audio.speech import SpeechSynthesisError, GoogleStreamingRecognizer
from ..infrastructure.llm import VertexRestClient
from ..utils import import_quietly
from ..config import Config, MAX_WORKERS, SUMMARY_PREVIEW_CHARS, RAPPORT_DISPLAY_MAX

logger = logging.getLogger("orchestrator")

_AUDIO_STATES = (TurnState.AWAITING_SPEECH, TurnState.SPEAKING)


class SessionOrchestrator:
    """
    Therapy session controller wiring the AI services to the device bridge.

    All public methods are thread-safe. AI replies and speech synthesis run on
    ``executor``; results are applied through done-callbacks.
    """

    def __init__(self,
                 recommendation_requester: RecommendationRequester,
                 adaptation_requester: AdaptationRequester,
                 responder: ConversationalResponder,
                 speech_service: Optional[SpeechService],
                 playback: PlaybackBridge,
                 capture: Optional[CaptureBridge] = None,
                 event_bus: Optional[SessionEventBus] = None,
                 executor=None,
                 use_tts: bool = True,
                 settings: Optional[AudioSettings] = None):
        self.recommendation_requester = recommendation_requester
        self.adaptation_requester = adaptation_requester
        self.responder = responder
        self.speech_service = speech_service
        self.use_tts = use_tts and speech_service is not None
        self.settings = settings or playback.settings
        self.playback = playback
        self.capture = capture
        self.session_id = uuid.uuid4().hex[:12]

        # Initialize event system
        self.event_bus = event_bus or SessionEventBus()
        self.event_logger = EventLogger()
        self.metrics = SessionMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)

        self._executor = executor or ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="heartmend")
        self._owns_executor = executor is None

        self._lock = threading.RLock()
        self._stage = SessionStage.COLLECTING_PROFILE
        self._turn_state = TurnState.IDLE
        self._turn_id = 0
        self._relaxation_turn: Optional[int] = None
        self._messages: List[ChatMessage] = []
        self._rapport_level = 0
        self._profile: Optional[UserProfile] = None
        self._recommendation: Optional[TherapyRecommendation] = None
        self._adaptation: Optional[AdaptedLanguageStyle] = None
        self.notifications: List[Notification] = []

        self.playback.add_listener(self._on_playback_event)
        if self.capture is not None:
            self.capture.bind(
                is_ai_turn_active=lambda: self.is_ai_turn_active,
                on_transcript=self._on_transcript,
                notify=self.notify,
                on_state=self._on_listening_changed,
            )

    @classmethod
    def from_config(cls,
                    config: Config,
                    use_tts: Optional[bool] = None,
                    settings: Optional[AudioSettings] = None,
                    on_spectrum=None) -> "SessionOrchestrator":
        """Build a session against the real Gemini, ElevenLabs and Google Speech services."""
        llm_client = VertexRestClient(
            project=config.google_cloud_project,
            location=config.vertex_location,
            model=config.model_name,
            credentials_json=config.google_application_credentials,
        )
        if use_tts is None:
            use_tts = config.enable_tts
        if settings is None:
            settings = AudioSettings(
                volume=config.speaker_volume,
                playback_rate=config.playback_rate,
                selected_voice=VoiceGender(config.default_voice),
            )

        # Microphone support needs PyAudio; without it the session stays text/typed only
        try:
            import_quietly("pyaudio")
            capture_supported = True
        except ImportError as e:
            logger.warning("Microphone input not available: %s", e)
            capture_supported = False

        capture = CaptureBridge(
            recognizer=GoogleStreamingRecognizer(language_code=config.language_code),
            supported=capture_supported,
            on_spectrum=on_spectrum,
            max_listen_seconds=config.max_listen_seconds,
        )
        return cls(
            recommendation_requester=RecommendationRequester(llm_client),
            adaptation_requester=AdaptationRequester(llm_client),
            responder=ConversationalResponder(llm_client),
            speech_service=SpeechService() if use_tts else None,
            playback=PlaybackBridge(settings),
            capture=capture,
            use_tts=use_tts,
            settings=settings,
        )

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def stage(self) -> SessionStage:
        return self._stage

    @property
    def turn_state(self) -> TurnState:
        return self._turn_state

    @property
    def turn_id(self) -> int:
        return self._turn_id

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    @property
    def rapport_level(self) -> int:
        return self._rapport_level

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def is_ai_turn_active(self) -> bool:
        """True while the AI is generating or speaking; input and listening are gated on it."""
        with self._lock:
            return (self._stage == SessionStage.AWAITING_INITIAL_AI
                    or self._turn_state != TurnState.IDLE)

    @property
    def is_relaxation_playing(self) -> bool:
        with self._lock:
            return (self._relaxation_turn is not None
                    and self._relaxation_turn == self._turn_id
                    and self._turn_state in _AUDIO_STATES)

    @property
    def is_listening(self) -> bool:
        return self.capture is not None and self.capture.is_listening

    # ------------------------------------------------------------------
    # Profile submission
    # ------------------------------------------------------------------

    def submit_profile(self, profile: UserProfile) -> bool:
        """
        Run both startup requests in parallel and open the chat.

        Blocks until both finish or the first one fails. On failure the
        session returns to ``collecting_profile`` so the form can be resubmitted.

        Returns:
            True if the session moved to ``chatting``
        """
        with self._lock:
            if self._stage != SessionStage.COLLECTING_PROFILE:
                logger.warning("Profile submitted in stage %s, ignoring", self._stage.value)
                return False
            self._profile = profile
            self._stage = SessionStage.AWAITING_INITIAL_AI

        self.event_bus.emit(ProfileSubmittedEvent(
            self.session_id, time.time(), profile.anxiety_level.value, profile.breakup_type.value
        ))

        recommendation_future = self._executor.submit(self.recommendation_requester.personalize, profile)
        adaptation_future = self._executor.submit(
            self.adaptation_requester.adapt, profile, additional_context=profile.background
        )
        done, pending = wait([recommendation_future, adaptation_future], return_when=FIRST_EXCEPTION)
        error = next((f.exception() for f in done if f.exception() is not None), None)

        if error is not None:
            for future in pending:
                future.cancel()
            with self._lock:
                self._stage = SessionStage.COLLECTING_PROFILE
                self._profile = None
            logger.error("Error processing profile: %s", error)
            self._report_error(error, "submit_profile")
            self.notify(Notification(*NOTIFICATIONS["profile_failed"], destructive=True))
            return False

        recommendation = recommendation_future.result()
        adaptation = adaptation_future.result()
        greeting = PromptFormatter.compose_greeting(recommendation.recommendations, adaptation.adapted_language)

        with self._lock:
            self._recommendation = recommendation
            self._adaptation = adaptation
            self._append_locked(Sender.AI, greeting)
            self._stage = SessionStage.CHATTING
            turn_id = self._next_turn_locked()
            if self.use_tts:
                self._set_turn_state_locked(TurnState.AWAITING_SPEECH)
            voice = self.settings.selected_voice

        self.event_bus.emit(SessionReadyEvent(
            self.session_id, time.time(), recommendation.identified_therapeutic_needs
        ))
        self.notify(Notification(*NOTIFICATIONS["profile_ready"]))
        if self.use_tts:
            self._synthesize(turn_id, greeting, voice)
        return True

    # ------------------------------------------------------------------
    # Chat turns
    # ------------------------------------------------------------------

    def send_message(self, text: str) -> bool:
        """
        Accept user input (typed or transcribed) and start an AI reply.

        Rejected while the AI is still writing its previous reply. Any AI
        speech in progress is cancelled before the new turn starts.

        Returns:
            True if the message was accepted
        """
        text = (text or "").strip()
        if not text:
            return False

        with self._lock:
            if self._stage != SessionStage.CHATTING:
                logger.warning("Message ignored in stage %s", self._stage.value)
                return False
            if self._turn_state == TurnState.AWAITING_AI_TEXT:
                logger.info("Message rejected: AI reply still pending for turn %d", self._turn_id)
                return False

            self._stop_ai_audio_locked()
            prior_messages = tuple(self._messages)
            self._append_locked(Sender.USER, text)
            turn_id = self._next_turn_locked()
            self._set_turn_state_locked(TurnState.AWAITING_AI_TEXT)
            request = build_responder_request(self._profile, text, self._rapport_level, prior_messages)

        if self.capture is not None:
            self.capture.stop_listening()

        future = self._executor.submit(self.responder.respond, request)
        future.add_done_callback(partial(self._on_reply_ready, turn_id))
        return True

    def _on_reply_ready(self, turn_id: int, future: Future) -> None:
        error = future.exception()
        reply = future.result() if error is None else None

        with self._lock:
            if turn_id != self._turn_id:
                logger.info("Discarding stale reply for turn %d (current %d)", turn_id, self._turn_id)
                return

            if reply is None:
                self._append_locked(Sender.AI, FALLBACK_REPLY)
                self._set_turn_state_locked(TurnState.IDLE)
            else:
                self._append_locked(Sender.AI, reply.response, reply.detected_sentiment)
                logger.info("Rapport level %d -> %d", self._rapport_level, reply.updated_rapport_level)
                self._rapport_level = reply.updated_rapport_level
                self._set_turn_state_locked(TurnState.AWAITING_SPEECH if self.use_tts else TurnState.IDLE)
            voice = self.settings.selected_voice

        if reply is None:
            logger.error("Error getting AI response: %s", error)
            self._report_error(error, "responder")
            self.notify(Notification(*NOTIFICATIONS["reply_failed"], destructive=True))
        elif self.use_tts:
            self._synthesize(turn_id, reply.response, voice)

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    def _synthesize(self, turn_id: int, text: str, voice: VoiceGender) -> None:
        future = self._executor.submit(self.speech_service.synthesize, text, voice)
        future.add_done_callback(partial(self._on_speech_ready, turn_id))

    def _on_speech_ready(self, turn_id: int, future: Future) -> None:
        error = future.exception()

        with self._lock:
            if turn_id != self._turn_id or self._turn_state != TurnState.AWAITING_SPEECH:
                logger.info("Discarding stale speech for turn %d (current %d, %s)",
                            turn_id, self._turn_id, self._turn_state.value)
                return

            if error is None:
                # Held across play() so a newer turn cannot slip in before playback starts
                self.playback.play(future.result(), self.settings.selected_voice, tag=turn_id)
                return

            was_relaxation = self._relaxation_turn == turn_id
            self._relaxation_turn = None
            self._set_turn_state_locked(TurnState.IDLE)

        if isinstance(error, SpeechSynthesisError):
            logger.error("Speech generation failed (%s): %s", type(error).__name__, error)
        else:
            logger.error("Unexpected speech generation failure: %s", error, exc_info=error)
        self._report_error(error, "speech")
        key = "relaxation_failed" if was_relaxation else "speech_failed"
        self.notify(Notification(*NOTIFICATIONS[key], destructive=True))

    def _on_playback_event(self, event: PlaybackEvent) -> None:
        with self._lock:
            if event.tag != self._turn_id:
                logger.debug("Ignoring %s from superseded turn %s", event.kind.value, event.tag)
                return

            if event.kind == PlaybackEventKind.STARTED:
                if self._turn_state == TurnState.AWAITING_SPEECH:
                    self._set_turn_state_locked(TurnState.SPEAKING)
                self.event_bus.emit(SpeechStartedEvent(
                    self.session_id, time.time(), event.tag,
                    event.voice.value if event.voice else "",
                ))
                return

            if self._turn_state in _AUDIO_STATES:
                self._set_turn_state_locked(TurnState.IDLE)
            if self._relaxation_turn == event.tag:
                self._relaxation_turn = None
            errored = event.kind == PlaybackEventKind.ERRORED
            self.event_bus.emit(SpeechEndedEvent(self.session_id, time.time(), event.tag, errored))

        if errored:
            self._report_error(RuntimeError(event.error or "playback failed"), "playback")
            self.notify(Notification(*NOTIFICATIONS["playback_failed"], destructive=True))

    def stop_speaking(self) -> bool:
        """Cancel the current AI speech, if any."""
        with self._lock:
            return self._stop_ai_audio_locked()

    def _stop_ai_audio_locked(self) -> bool:
        """
        Cancel pending synthesis and playback for the current turn.

        Bumping the turn id invalidates an in-flight synthesis result.
        """
        if self._turn_state not in _AUDIO_STATES:
            return False
        stale_turn = self._turn_id
        self._next_turn_locked()
        self._relaxation_turn = None
        self._set_turn_state_locked(TurnState.IDLE)
        self.playback.stop()
        logger.info("Stopped AI speech for turn %d", stale_turn)
        return True

    # ------------------------------------------------------------------
    # Audio controls
    # ------------------------------------------------------------------

    def set_voice(self, voice: VoiceGender) -> None:
        """Select the AI voice. Speech in progress is stopped."""
        voice = VoiceGender(voice)
        with self._lock:
            self.settings.selected_voice = voice
            self._stop_ai_audio_locked()
        logger.info("Voice changed to %s", voice.value)

    def set_volume(self, volume: float) -> float:
        """Set playback volume for the next utterance. Returns the clamped value."""
        return self.settings.set_volume(volume)

    def set_playback_rate(self, rate: float) -> float:
        """Set playback speed for the next utterance. Returns the clamped value."""
        return self.settings.set_playback_rate(rate)

    def toggle_relaxation_exercise(self) -> bool:
        """
        Start the guided breathing exercise, or stop it if it is playing.

        Returns:
            True if the exercise is now starting
        """
        with self._lock:
            if self._stage != SessionStage.CHATTING:
                return False
            if self.is_relaxation_playing:
                self._stop_ai_audio_locked()
                return False
            if not self.use_tts:
                text_only = True
            elif self._turn_state == TurnState.AWAITING_AI_TEXT:
                logger.info("Relaxation exercise deferred: AI reply pending")
                return False
            else:
                text_only = False
                self._stop_ai_audio_locked()
                turn_id = self._next_turn_locked()
                self._relaxation_turn = turn_id
                self._set_turn_state_locked(TurnState.AWAITING_SPEECH)
                voice = self.settings.selected_voice

        if text_only:
            self.notify(Notification(*NOTIFICATIONS["relaxation_text_only"]))
            return False
        if self.capture is not None:
            self.capture.stop_listening()
        self._synthesize(turn_id, RELAXATION_SCRIPT, voice)
        return True

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    def start_listening(self) -> bool:
        if self.capture is None:
            self.notify(UNSUPPORTED_NOTIFICATION)
            return False
        return self.capture.start_listening()

    def stop_listening(self) -> bool:
        return self.capture is not None and self.capture.stop_listening()

    def _on_transcript(self, transcript: str) -> None:
        logger.info("Transcript received (%d chars)", len(transcript))
        self.send_message(transcript)

    def _on_listening_changed(self, listening: bool, transcript, failure) -> None:
        if listening:
            self.event_bus.emit(ListeningStartedEvent(self.session_id, time.time()))
        else:
            self.event_bus.emit(ListeningStoppedEvent(
                self.session_id, time.time(), transcript or "", failure.value if failure else None
            ))

    # ------------------------------------------------------------------
    # Context, notifications, shutdown
    # ------------------------------------------------------------------

    def session_context(self) -> Optional[SessionContext]:
        """Profile summary, focus, style and rapport for display; None before a profile exists."""
        with self._lock:
            if self._profile is None:
                return None
            recommendation, adaptation = self._recommendation, self._adaptation
            return SessionContext(
                profile_summary=self._profile.summary(),
                focus=recommendation.recommendations[:SUMMARY_PREVIEW_CHARS] if recommendation else None,
                style=adaptation.adapted_language[:SUMMARY_PREVIEW_CHARS] if adaptation else None,
                rapport=f"{self._rapport_level}/{RAPPORT_DISPLAY_MAX}",
                identified_needs=list(recommendation.identified_therapeutic_needs) if recommendation else [],
            )

    def notify(self, notification: Notification) -> None:
        """Record a user notification and publish it on the event bus."""
        with self._lock:
            self.notifications.append(notification)
        self.event_bus.emit(NotificationRaisedEvent(
            self.session_id, time.time(), notification.title,
            notification.description, notification.destructive
        ))

    def shutdown(self) -> None:
        """Stop audio and listening and release the worker threads."""
        self.stop_listening()
        with self._lock:
            self._stop_ai_audio_locked()
        self.playback.stop()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        logger.info("Session %s shut down. Metrics: %s", self.session_id, self.metrics.get_metrics())

    def _append_locked(self, sender: Sender, text: str, sentiment: Optional[str] = None) -> ChatMessage:
        message = ChatMessage(sender=sender, text=text, detected_sentiment=sentiment)
        self._messages.append(message)
        self.event_bus.emit(MessageAppendedEvent(
            self.session_id, time.time(), message.id, sender.value, text, sentiment
        ))
        return message

    def _next_turn_locked(self) -> int:
        self._turn_id += 1
        return self._turn_id

    def _set_turn_state_locked(self, state: TurnState) -> None:
        if state == self._turn_state:
            return
        previous, self._turn_state = self._turn_state, state
        self.event_bus.emit(TurnStateChangedEvent(
            self.session_id, time.time(), self._turn_id, previous.value, state.value
        ))

    def _report_error(self, error: BaseException, component: str) -> None:
        self.event_bus.emit(ErrorOccurredEvent(
            self.session_id, time.time(), type(error).__name__, str(error), component
        ))
