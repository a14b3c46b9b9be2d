"""
Profile capture: turns raw form answers into a validated UserProfile.
"""
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type
from enum import Enum

from pydantic import ValidationError

from .schemas import UserProfile, GenderIdentity, AnxietyLevel, BreakupType

logger = logging.getLogger("profile")


class ProfileValidationError(ValueError):
    """Raised when one or more profile fields are invalid."""

    def __init__(self, field_errors: Dict[str, str]):
        self.field_errors = dict(field_errors)
        detail = "; ".join(f"{name}: {msg}" for name, msg in self.field_errors.items())
        super().__init__(f"Invalid profile ({detail})")


# (field name, prompt label, enum for choice fields)
PROFILE_FIELDS: List[Tuple[str, str, Optional[Type[Enum]]]] = [
    ("age", "Age (13-100)", None),
    ("gender_identity", "Gender identity", GenderIdentity),
    ("ethnicity", "Ethnicity", None),
    ("vulnerability_score", "How vulnerable do you feel right now? (0-10)", None),
    ("anxiety_level", "Anxiety level", AnxietyLevel),
    ("breakup_type", "Type of breakup", BreakupType),
    ("background", "Tell us a little about what happened (at least 10 characters)", None),
]

_CHOICE_FIELDS = {name: enum for name, _, enum in PROFILE_FIELDS if enum is not None}

# Form wording per (field, pydantic error type); anything else keeps pydantic's message
FIELD_MESSAGES: Dict[Tuple[str, str], str] = {
    ("age", "greater_than_equal"): "Must be at least 13",
    ("age", "less_than_equal"): "Max age is 100",
    ("age", "int_parsing"): "Age must be a whole number",
    ("ethnicity", "string_too_short"): "Ethnicity is required",
    ("vulnerability_score", "greater_than_equal"): "Score must be between 0 and 10",
    ("vulnerability_score", "less_than_equal"): "Score must be between 0 and 10",
    ("vulnerability_score", "int_parsing"): "Score must be a whole number between 0 and 10",
    ("background", "string_too_short"): "Please provide some background information (min 10 characters).",
    ("background", "string_too_long"): "Background must be at most 5000 characters.",
}


def _match_choice(enum_cls: Type[Enum], value: Any) -> Any:
    """Accept enum values case-insensitively ("non-binary" -> "Non-Binary")."""
    if not isinstance(value, str):
        return value
    wanted = value.strip().lower()
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member.value
    return value.strip()


def validate_profile(raw: Mapping[str, Any]) -> UserProfile:
    """
    Validate raw form answers.

    Numeric strings are coerced and choice fields matched case-insensitively.

    Raises:
        ProfileValidationError: With a message per failing field
    """
    data = dict(raw)
    for name, enum_cls in _CHOICE_FIELDS.items():
        if name in data:
            data[name] = _match_choice(enum_cls, data[name])

    try:
        return UserProfile(**data)
    except ValidationError as e:
        field_errors: Dict[str, str] = {}
        for error in e.errors():
            name = str(error["loc"][0]) if error.get("loc") else "profile"
            field_errors.setdefault(name, FIELD_MESSAGES.get((name, error["type"]), error["msg"]))
        logger.info("Profile rejected: %s", field_errors)
        raise ProfileValidationError(field_errors) from e


def _field_error(answers: Mapping[str, Any], name: str) -> Optional[str]:
    """Validation message for ``name`` alone, ignoring fields not asked yet."""
    try:
        validate_profile(answers)
    except ProfileValidationError as e:
        return e.field_errors.get(name)
    return None


def collect_profile(input_fn: Callable[[str], str] = input,
                    output_fn: Callable[[str], None] = print) -> UserProfile:
    """
    Ask for every profile field on the terminal until each one is valid.

    Returns:
        The validated profile
    """
    answers: Dict[str, Any] = {}
    for name, label, enum_cls in PROFILE_FIELDS:
        if enum_cls is not None:
            label = f"{label} [{' / '.join(m.value for m in enum_cls)}]"
        while True:
            answers[name] = input_fn(f"{label}: ").strip()
            error = _field_error(answers, name)
            if error is None:
                break
            output_fn(f"  ⚠️  {error}")

    return validate_profile(answers)
