"""Models package exports."""

from nudge_engine.models.insight import (
    ConversationReadyInsight,
    EmotionalTone,
    InsightEngagementRecord,
    SuggestedTiming,
    UserResponse,
    parse_insight,
    parse_insight_queue,
)
from nudge_engine.models.nudge import (
    NudgeCandidate,
    NudgeInputs,
    NudgeKind,
    NudgeResponseEntry,
    NudgeResponseType,
    NudgeSource,
    OrchestratorDecision,
)

__all__ = [
    "ConversationReadyInsight",
    "EmotionalTone",
    "InsightEngagementRecord",
    "NudgeCandidate",
    "NudgeInputs",
    "NudgeKind",
    "NudgeResponseEntry",
    "NudgeResponseType",
    "NudgeSource",
    "OrchestratorDecision",
    "SuggestedTiming",
    "UserResponse",
    "parse_insight",
    "parse_insight_queue",
]
