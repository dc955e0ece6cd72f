"""Services package exports."""

from nudge_engine.services.engagement_recorder import EngagementRecorder
from nudge_engine.services.insight_injector import InsightInjector, open_insight_session
from nudge_engine.services.logging_service import configure_logging, get_logger
from nudge_engine.services.nudge_orchestrator import NudgeOrchestrator

__all__ = [
    "EngagementRecorder",
    "InsightInjector",
    "NudgeOrchestrator",
    "configure_logging",
    "get_logger",
    "open_insight_session",
]
