"""Nudge models: kinds, detector sources, candidate bags and responses."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class NudgeKind(str, Enum):
    """Closed set of nudge kinds competing for the user's attention slot."""

    CRISIS = "CRISIS"
    BURNOUT_CRITICAL = "BURNOUT_CRITICAL"
    BURNOUT_HIGH = "BURNOUT_HIGH"
    ANTICIPATORY_IMMINENT = "ANTICIPATORY_IMMINENT"
    ANTICIPATORY_TODAY = "ANTICIPATORY_TODAY"
    SOCIAL_ISOLATION_HIGH = "SOCIAL_ISOLATION_HIGH"
    SOCIAL_ISOLATION_MODERATE = "SOCIAL_ISOLATION_MODERATE"
    EVENT_REFLECTION = "EVENT_REFLECTION"
    GAP_PROMPT = "GAP_PROMPT"
    VALUE_CHECK = "VALUE_CHECK"
    SOCIAL_RECONNECTION = "SOCIAL_RECONNECTION"
    POSITIVE_REINFORCEMENT = "POSITIVE_REINFORCEMENT"


class NudgeSource(str, Enum):
    """Detector that produced a candidate.

    Member order is the fixed source precedence used to break priority ties.
    """

    BURNOUT = "burnout"
    ANTICIPATORY = "anticipatory"
    SOCIAL = "social"
    VALUE_GAP = "value_gap"
    GAP_PROMPT = "gap_prompt"
    REFLECTION = "reflection"


# Label reported in the decision audit block
SOURCE_LABELS = {
    NudgeSource.BURNOUT: "burnout",
    NudgeSource.ANTICIPATORY: "anticipatory",
    NudgeSource.SOCIAL: "social",
    NudgeSource.VALUE_GAP: "values",
    NudgeSource.GAP_PROMPT: "gap_detector",
    NudgeSource.REFLECTION: "reflection",
}


class NudgeResponseType(str, Enum):
    """How the user reacted to a shown nudge."""

    DISMISSED = "dismissed"
    ACTED = "acted"
    POSTPONED = "postponed"


class NudgeInputs(BaseModel):
    """At most one candidate payload per detector source.

    Payloads are opaque detector output; only the keys needed for
    classification are read (burnout ``risk_level``, anticipatory
    ``hours_until_event``, social ``type`` and ``priority``).
    """

    burnout: Optional[dict] = None
    anticipatory: Optional[dict] = None
    social: Optional[dict] = None
    value_gap: Optional[dict] = None
    gap_prompt: Optional[dict] = None
    reflection: Optional[dict] = None

    def present(self) -> list[tuple[NudgeSource, dict]]:
        """Supplied candidates in source precedence order."""
        return [
            (source, payload)
            for source in NudgeSource
            if (payload := getattr(self, source.value)) is not None
        ]

    @classmethod
    def from_detector_outputs(
        cls,
        burnout_risk: Optional[dict] = None,
        social_health: Optional[dict] = None,
        anticipatory_event: Optional[dict] = None,
        value_gap: Optional[dict] = None,
        pending_reflections: Optional[list] = None,
        gap_prompt: Optional[dict] = None,
    ) -> "NudgeInputs":
        """Build candidates from raw detector outputs.

        Each detector only yields a candidate when its own trigger flag is set.
        """
        social = None
        if social_health and (
            social_health.get("isolation_risk") or social_health.get("is_imbalanced")
        ):
            isolated = bool(social_health.get("isolation_risk"))
            social = {
                "type": "isolation_alert" if isolated else "balance_nudge",
                "priority": "high" if isolated else "medium",
                **social_health,
            }

        return cls(
            burnout=burnout_risk if burnout_risk and burnout_risk.get("trigger_shelter_mode") else None,
            anticipatory=anticipatory_event if anticipatory_event and anticipatory_event.get("show") else None,
            social=social,
            value_gap=value_gap if value_gap and value_gap.get("has_significant_gap") else None,
            gap_prompt=gap_prompt or None,
            reflection=pending_reflections[0] if pending_reflections else None,
        )


class NudgeCandidate(BaseModel):
    """A classified candidate awaiting arbitration."""

    kind: NudgeKind
    priority: int
    source: NudgeSource
    payload: dict[str, Any]


class OrchestratorDecision(BaseModel):
    """Audit block attached to the selected nudge."""

    type: NudgeKind
    priority: int
    source: str
    suppressed: int


class NudgeResponseEntry(BaseModel):
    """One entry of the per-user nudge response log."""

    type: NudgeKind
    response: NudgeResponseType
    timestamp: datetime
