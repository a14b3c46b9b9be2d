"""Therapy session components.

This module contains the business logic of a HeartMend session: profile
capture, the AI requesters, the audio/speech device bridge and the
orchestrator that sequences them.
"""

# Core orchestrator class
from .orchestrator import SessionOrchestrator

# Data models
from .models import ChatMessage, Notification, SessionContext

# Structured schemas and state
from .schemas import (
    UserProfile, GenderIdentity, AnxietyLevel, BreakupType, VoiceGender,
    Sender, SessionStage, TurnState, ResponderRequest,
    TherapyRecommendation, AdaptedLanguageStyle, EmpatheticReply,
    build_responder_request, normalize_anxiety,
    parse_recommendation, parse_adaptation, parse_reply
)

# Profile capture
from .profile import validate_profile, collect_profile, ProfileValidationError

# Service classes
from .services import (
    RecommendationRequester, AdaptationRequester, ConversationalResponder,
    SpeechService, GenerationError
)

# Device bridge
from .bridge import (
    AudioSettings, PlaybackBridge, PlaybackEvent, PlaybackEventKind,
    CaptureBridge, FAILURE_MESSAGES
)

# Event system
from .events import (
    SessionEventBus, EventLogger, SessionMetrics, EventType, SessionEvent
)

__all__ = [
    # Orchestrator
    "SessionOrchestrator",

    # Data models
    "ChatMessage", "Notification", "SessionContext",

    # Schemas and state
    "UserProfile", "GenderIdentity", "AnxietyLevel", "BreakupType", "VoiceGender",
    "Sender", "SessionStage", "TurnState", "ResponderRequest",
    "TherapyRecommendation", "AdaptedLanguageStyle", "EmpatheticReply",
    "build_responder_request", "normalize_anxiety",
    "parse_recommendation", "parse_adaptation", "parse_reply",

    # Profile capture
    "validate_profile", "collect_profile", "ProfileValidationError",

    # Services
    "RecommendationRequester", "AdaptationRequester", "ConversationalResponder",
    "SpeechService", "GenerationError",

    # Device bridge
    "AudioSettings", "PlaybackBridge", "PlaybackEvent", "PlaybackEventKind",
    "CaptureBridge", "FAILURE_MESSAGES",

    # Events
    "SessionEventBus", "EventLogger", "SessionMetrics", "EventType", "SessionEvent",
]
