"""
HeartMend: AI-guided breakup recovery sessions with spoken responses.

A terminal therapy session that collects a short profile, personalises its
approach with Gemini, replies empathetically and speaks through ElevenLabs,
with optional microphone input via Google speech recognition.
"""

__version__ = "1.0.0"

# Main entry points
from .session.orchestrator import SessionOrchestrator
from .session.schemas import UserProfile
from .session.models import ChatMessage

__all__ = ["SessionOrchestrator", "UserProfile", "ChatMessage"]
