"""
Structured data models and schemas for the therapy session.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Sequence, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import HISTORY_TURNS

if TYPE_CHECKING:
    from .models import ChatMessage


class GenderIdentity(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    NON_BINARY = "Non-Binary"


class AnxietyLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class BreakupType(str, Enum):
    MUTUAL = "Mutual"
    GHOSTING = "Ghosting"
    CHEATING = "Cheating"
    DEMISE = "Demise"
    DIVORCE = "Divorce"


class VoiceGender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Sender(str, Enum):
    USER = "user"
    AI = "ai"


class SessionStage(str, Enum):
    """Top-level session stages."""
    COLLECTING_PROFILE = "collecting_profile"
    AWAITING_INITIAL_AI = "awaiting_initial_ai"
    CHATTING = "chatting"


class TurnState(str, Enum):
    """Sub-cycle of the chatting stage. Anything but IDLE means an AI turn is active."""
    IDLE = "idle"
    AWAITING_AI_TEXT = "awaiting_ai_text"
    AWAITING_SPEECH = "awaiting_speech"
    SPEAKING = "speaking"


class UserProfile(BaseModel):
    """Validated profile, immutable once submitted."""
    model_config = ConfigDict(frozen=True)

    age: int = Field(ge=13, le=100)
    gender_identity: GenderIdentity
    ethnicity: str = Field(min_length=1)
    vulnerability_score: int = Field(ge=0, le=10)
    anxiety_level: AnxietyLevel
    breakup_type: BreakupType
    background: str = Field(min_length=10, max_length=5000)

    @field_validator("ethnicity", "background", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    def summary(self) -> str:
        """One-line description used in the session context panel."""
        return (f"Age {self.age}, {self.gender_identity.value}, "
                f"Anxiety: {self.anxiety_level.value}.")

    def prompt_fields(self) -> Dict[str, Any]:
        """Profile values as they appear in prompts."""
        return {
            "Age": self.age,
            "Gender Identity": self.gender_identity.value,
            "Ethnicity": self.ethnicity,
            "Vulnerability Score": self.vulnerability_score,
            "Anxiety Level": self.anxiety_level.value,
            "Breakup Type": self.breakup_type.value,
        }


# Result structures returned by the requesters and the responder
@dataclass
class TherapyRecommendation:
    recommendations: str
    identified_therapeutic_needs: List[str] = field(default_factory=list)


@dataclass
class AdaptedLanguageStyle:
    adapted_language: str


@dataclass
class EmpatheticReply:
    response: str
    updated_rapport_level: int
    detected_sentiment: Optional[str] = None


@dataclass
class ResponderRequest:
    """Everything the conversational responder is given for one turn."""
    age: int
    gender_identity: str
    ethnicity: str
    vulnerability_score: int
    anxiety_level: str  # Low | High only
    breakup_type: str
    background: str
    current_message: str
    rapport_level: int
    recent_history: List[Dict[str, str]] = field(default_factory=list)


def normalize_anxiety(level: AnxietyLevel) -> AnxietyLevel:
    """The responder knows only Low and High; Medium is treated as High."""
    if level == AnxietyLevel.MEDIUM:
        return AnxietyLevel.HIGH
    return level


def build_responder_request(profile: UserProfile,
                            current_message: str,
                            rapport_level: int,
                            prior_messages: Sequence["ChatMessage"],
                            history_turns: int = HISTORY_TURNS) -> ResponderRequest:
    """
    Assemble the responder input for one turn.

    ``prior_messages`` is the conversation before ``current_message``; only the
    last ``history_turns`` of it are sent.
    """
    recent = list(prior_messages)[-history_turns:] if history_turns > 0 else []
    history = [
        {"role": "user" if msg.sender == Sender.USER else "assistant", "text": msg.text}
        for msg in recent
    ]
    return ResponderRequest(
        age=profile.age,
        gender_identity=profile.gender_identity.value,
        ethnicity=profile.ethnicity,
        vulnerability_score=profile.vulnerability_score,
        anxiety_level=normalize_anxiety(profile.anxiety_level).value,
        breakup_type=profile.breakup_type.value,
        background=profile.background,
        current_message=current_message,
        rapport_level=rapport_level,
        recent_history=history,
    )


def _require_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing or empty '{key}' in LLM response: {data}")
    return value.strip()


def parse_recommendation(data: Dict[str, Any]) -> TherapyRecommendation:
    """
    Validate the recommendation requester's JSON.

    Raises:
        ValueError: If required fields are missing or of the wrong type
    """
    needs = data.get("identifiedTherapeuticNeeds", [])
    if not isinstance(needs, list) or not all(isinstance(n, str) for n in needs):
        raise ValueError(f"'identifiedTherapeuticNeeds' must be a list of strings: {needs!r}")
    return TherapyRecommendation(
        recommendations=_require_text(data, "recommendations"),
        identified_therapeutic_needs=[n.strip() for n in needs if n.strip()],
    )


def parse_adaptation(data: Dict[str, Any]) -> AdaptedLanguageStyle:
    """
    Validate the adaptation requester's JSON.

    Raises:
        ValueError: If 'adaptedLanguage' is missing
    """
    return AdaptedLanguageStyle(adapted_language=_require_text(data, "adaptedLanguage"))


def parse_reply(data: Dict[str, Any]) -> EmpatheticReply:
    """
    Validate the conversational responder's JSON.

    The rapport level is kept exactly as returned; bool and non-integral
    numbers are rejected.

    Raises:
        ValueError: If the reply text or rapport level is missing or malformed
    """
    rapport = data.get("updatedRapportLevel")
    if isinstance(rapport, bool) or not isinstance(rapport, (int, float)) or int(rapport) != rapport:
        raise ValueError(f"'updatedRapportLevel' must be an integer: {rapport!r}")

    sentiment = data.get("detectedSentiment")
    if sentiment is not None and not isinstance(sentiment, str):
        raise ValueError(f"'detectedSentiment' must be a string: {sentiment!r}")

    return EmpatheticReply(
        response=_require_text(data, "response"),
        updated_rapport_level=int(rapport),
        detected_sentiment=(sentiment.strip() or None) if sentiment else None,
    )
