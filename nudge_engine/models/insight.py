"""Conversation-ready insight and engagement models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


class EmotionalTone(str, Enum):
    """How an insight is likely to land with the user."""

    ENCOURAGING = "encouraging"
    REFLECTIVE = "reflective"
    CHALLENGING = "challenging"


class SuggestedTiming(str, Enum):
    """When in a session an insight fits best."""

    SESSION_START = "session_start"
    NATURAL_PAUSE = "natural_pause"
    SESSION_END = "session_end"


class UserResponse(str, Enum):
    """Outcome of one insight delivery."""

    EXPLORED = "explored"
    DISMISSED = "dismissed"
    DEFERRED = "deferred"


DEFAULT_MOOD_GATE_THRESHOLD = 0.5


class ConversationReadyInsight(BaseModel):
    """A precomputed observation queued for a live session."""

    insight_id: str
    summary: str
    full_context: str = ""
    confidence: float
    emotional_tone: EmotionalTone = EmotionalTone.REFLECTIVE
    related_entry_ids: list[str] = Field(default_factory=list)
    suggested_timing: SuggestedTiming = SuggestedTiming.NATURAL_PAUSE
    mood_gate_threshold: float = DEFAULT_MOOD_GATE_THRESHOLD

    @field_validator("full_context", mode="before")
    @classmethod
    def _text_or_empty(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("emotional_tone", mode="before")
    @classmethod
    def _known_tone(cls, v: Any) -> Any:
        if isinstance(v, EmotionalTone):
            return v
        valid = {t.value for t in EmotionalTone}
        return v if isinstance(v, str) and v in valid else EmotionalTone.REFLECTIVE

    @field_validator("suggested_timing", mode="before")
    @classmethod
    def _known_timing(cls, v: Any) -> Any:
        if isinstance(v, SuggestedTiming):
            return v
        valid = {t.value for t in SuggestedTiming}
        return v if isinstance(v, str) and v in valid else SuggestedTiming.NATURAL_PAUSE

    @field_validator("related_entry_ids", mode="before")
    @classmethod
    def _string_ids(cls, v: Any) -> list[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [item for item in v if isinstance(item, str)]

    @field_validator("mood_gate_threshold", mode="before")
    @classmethod
    def _clamped_threshold(cls, v: Any) -> float:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return DEFAULT_MOOD_GATE_THRESHOLD
        try:
            value = float(v)
        except OverflowError:
            return 1.0 if v > 0 else 0.0
        return min(1.0, max(0.0, value))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_insight(raw: Any) -> Optional[ConversationReadyInsight]:
    """Validate one raw queue element.

    Returns None unless the record carries a string ``insight_id``, a string
    ``summary`` and a numeric ``confidence``. Other fields fall back to
    defaults when missing or invalid.
    """
    if not isinstance(raw, dict):
        return None
    if not isinstance(raw.get("insight_id"), str):
        return None
    if not isinstance(raw.get("summary"), str):
        return None
    if not _is_number(raw.get("confidence")):
        return None

    # Drop explicit nulls so field defaults apply
    fields = {k: v for k, v in raw.items() if v is not None}
    try:
        return ConversationReadyInsight.model_validate(fields)
    except ValidationError:
        # e.g. an integer confidence too large for a float
        return None


def parse_insight_queue(raw: Any) -> list[ConversationReadyInsight]:
    """Parse a raw ``insights`` array, keeping source order and dropping malformed items."""
    if not isinstance(raw, list):
        return []
    parsed = (parse_insight(item) for item in raw)
    return [insight for insight in parsed if insight is not None]


class InsightEngagementRecord(BaseModel):
    """Outcome of one insight delivered in one session."""

    insight_id: str
    session_id: str
    delivery_timing: str
    user_response: UserResponse = UserResponse.DEFERRED
    exploration_depth: int = Field(default=0, ge=0)
    mood_before: Optional[float] = None
    mood_after: Optional[float] = None
    timestamp: datetime

    @property
    def document_key(self) -> str:
        return f"{self.insight_id}_{self.session_id}"
