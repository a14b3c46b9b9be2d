"""
Event-driven architecture for the therapy session.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of session events."""
    PROFILE_SUBMITTED = "profile_submitted"
    SESSION_READY = "session_ready"
    MESSAGE_APPENDED = "message_appended"
    TURN_STATE_CHANGED = "turn_state_changed"
    SPEECH_STARTED = "speech_started"
    SPEECH_ENDED = "speech_ended"
    LISTENING_STARTED = "listening_started"
    LISTENING_STOPPED = "listening_stopped"
    NOTIFICATION_RAISED = "notification_raised"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class SessionEvent(ABC):
    """Base class for all session events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class ProfileSubmittedEvent(SessionEvent):
    """Event fired when a validated profile is submitted."""
    def __init__(self, session_id: str, timestamp: float, anxiety_level: str, breakup_type: str):
        super().__init__(
            event_type=EventType.PROFILE_SUBMITTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"anxiety_level": anxiety_level, "breakup_type": breakup_type}
        )


@dataclass
class SessionReadyEvent(SessionEvent):
    """Event fired when both startup results arrived and chatting begins."""
    def __init__(self, session_id: str, timestamp: float, identified_needs: List[str]):
        super().__init__(
            event_type=EventType.SESSION_READY,
            session_id=session_id,
            timestamp=timestamp,
            data={"identified_needs": list(identified_needs)}
        )


@dataclass
class MessageAppendedEvent(SessionEvent):
    """Event fired for every chat message appended."""
    def __init__(self, session_id: str, timestamp: float, message_id: str,
                 sender: str, text: str, detected_sentiment: Optional[str] = None):
        super().__init__(
            event_type=EventType.MESSAGE_APPENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "message_id": message_id,
                "sender": sender,
                "text": text,
                "detected_sentiment": detected_sentiment
            }
        )


@dataclass
class TurnStateChangedEvent(SessionEvent):
    """Event fired when the turn sub-state changes."""
    def __init__(self, session_id: str, timestamp: float, turn_id: int,
                 previous: str, current: str):
        super().__init__(
            event_type=EventType.TURN_STATE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"turn_id": turn_id, "previous": previous, "current": current}
        )


@dataclass
class SpeechStartedEvent(SessionEvent):
    """Event fired when AI audio starts playing."""
    def __init__(self, session_id: str, timestamp: float, turn_id: int, voice: str):
        super().__init__(
            event_type=EventType.SPEECH_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"turn_id": turn_id, "voice": voice}
        )


@dataclass
class SpeechEndedEvent(SessionEvent):
    """Event fired when AI audio ends, naturally or by error."""
    def __init__(self, session_id: str, timestamp: float, turn_id: int, errored: bool):
        super().__init__(
            event_type=EventType.SPEECH_ENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={"turn_id": turn_id, "errored": errored}
        )


@dataclass
class ListeningStartedEvent(SessionEvent):
    """Event fired when the microphone starts listening."""
    def __init__(self, session_id: str, timestamp: float):
        super().__init__(
            event_type=EventType.LISTENING_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={}
        )


@dataclass
class ListeningStoppedEvent(SessionEvent):
    """Event fired when listening ends for any reason."""
    def __init__(self, session_id: str, timestamp: float, transcript: str, failure: Optional[str]):
        super().__init__(
            event_type=EventType.LISTENING_STOPPED,
            session_id=session_id,
            timestamp=timestamp,
            data={"transcript": transcript, "failure": failure}
        )


@dataclass
class NotificationRaisedEvent(SessionEvent):
    """Event fired for every user-facing notification."""
    def __init__(self, session_id: str, timestamp: float, title: str,
                 description: str, destructive: bool):
        super().__init__(
            event_type=EventType.NOTIFICATION_RAISED,
            session_id=session_id,
            timestamp=timestamp,
            data={"title": title, "description": description, "destructive": destructive}
        )


@dataclass
class ErrorOccurredEvent(SessionEvent):
    """Event fired when an error occurs."""
    def __init__(self, session_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


EventHandler = Callable[[SessionEvent], None]


class SessionEventBus:
    """Event bus for session communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to %s", event_type.value)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from specific event type."""
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug("Unsubscribed handler from %s", event_type.value)
            except ValueError:
                logger.warning("Handler not found for %s", event_type.value)

    def emit(self, event: SessionEvent) -> None:
        """
        Emit an event to all subscribers.

        A failing handler is logged and does not stop the others.
        """
        logger.debug("Emitting event: %s for session %s", event.event_type.value, event.session_id)

        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in event handler for %s: %s", event.event_type.value, e)

        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in global event handler: %s", e)

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: SessionEvent) -> None:
        """Log event details. Message text is reduced to its length."""
        data = dict(event.data)
        if "text" in data:
            data["text"] = f"<{len(data['text'] or '')} chars>"
        self.logger.info("Event: %s | Session: %s | Data: %s", event.event_type.value, event.session_id, data)


class SessionMetrics:
    """Collects metrics from session events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: SessionEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.PROFILE_SUBMITTED:
            self.profiles_submitted += 1
        elif event.event_type == EventType.SESSION_READY:
            self.sessions_ready += 1
        elif event.event_type == EventType.MESSAGE_APPENDED:
            if event.data.get("sender") == "user":
                self.user_messages += 1
            else:
                self.ai_messages += 1
        elif event.event_type == EventType.SPEECH_STARTED:
            self.speech_played += 1
        elif event.event_type == EventType.LISTENING_STARTED:
            self.listening_sessions += 1
        elif event.event_type == EventType.NOTIFICATION_RAISED:
            self.notifications += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "profiles_submitted": self.profiles_submitted,
            "sessions_ready": self.sessions_ready,
            "user_messages": self.user_messages,
            "ai_messages": self.ai_messages,
            "speech_played": self.speech_played,
            "listening_sessions": self.listening_sessions,
            "notifications": self.notifications,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.profiles_submitted = 0
        self.sessions_ready = 0
        self.user_messages = 0
        self.ai_messages = 0
        self.speech_played = 0
        self.listening_sessions = 0
        self.notifications = 0
        self.errors_occurred = 0
