"""
Data models for the therapy session.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

from .schemas import Sender


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    """A single chat line. Never modified once appended."""
    sender: Sender
    text: str
    detected_sentiment: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_ai(self) -> bool:
        return self.sender == Sender.AI


@dataclass(frozen=True)
class Notification:
    """Toast-style message for the user."""
    title: str
    description: str
    destructive: bool = False


@dataclass
class SessionContext:
    """Snapshot shown in the session context panel."""
    profile_summary: str
    focus: Optional[str] = None
    style: Optional[str] = None
    rapport: str = "0/5"
    identified_needs: List[str] = field(default_factory=list)

    def lines(self) -> List[str]:
        out = [f"Your Profile: {self.profile_summary}"]
        if self.focus is not None:
            out.append(f"Focus: {self.focus}...")
        if self.style is not None:
            out.append(f"Style: {self.style}...")
        if self.identified_needs:
            out.append(f"Identified needs: {', '.join(self.identified_needs)}")
        out.append(f"AI Rapport Level: {self.rapport}")
        return out
