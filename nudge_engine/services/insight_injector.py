"""Conversation-ready insight injection for chat and voice sessions.

Manages the lifecycle of insight delivery during one session:
1. Loads the user's precomputed conversation queue
2. Builds the system prompt fragment that lets the agent surface insights
3. Tracks session delivery state (at most 2 insights per session)
4. Gates delivery on the current mood estimate
5. Collects engagement outcomes for write-back at session end

One injector per session. Instances are single-use: once closed they refuse
further updates.
"""

from enum import Enum
from typing import Optional

import structlog
from pydantic import ValidationError

from nudge_engine.models.insight import (
    ConversationReadyInsight,
    EmotionalTone,
    InsightEngagementRecord,
    UserResponse,
    parse_insight_queue,
)
from nudge_engine.paths import conversation_queue_path
from nudge_engine.services.document_store import DocumentStore, get_document_store
from nudge_engine.services.engagement_recorder import EngagementRecorder
from nudge_engine.services.nudge_orchestrator import Clock, utc_now

logger = structlog.get_logger(__name__)

MAX_INSIGHTS_PER_SESSION = 2

INSIGHT_PROMPT_TEMPLATE = """
## Insights About This User

You have access to these insights about the user's recent patterns.
Surface AT MOST 1-2 of these during the conversation, but ONLY when
it feels natural and contextually relevant. Never force an insight.
If the user seems distressed (low mood), do not surface insights.

Available insights:
{insight_list}

When surfacing an insight, use phrases like:
- "I noticed something interesting about your past few weeks..."
- "This connects to something I've been observing..."
- "Would you like to explore a pattern I've noticed?"

If the user says "not now" or deflects, respect that immediately
and move on. Do not bring up the same insight again.
"""


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    CLOSED = "closed"


class InsightInjector:
    """Insight delivery state for a single session. Not shared across sessions."""

    def __init__(
        self,
        user_id: str,
        session_id: str,
        store: Optional[DocumentStore] = None,
        recorder: Optional[EngagementRecorder] = None,
        clock: Optional[Clock] = None,
    ):
        self.user_id = user_id
        self.session_id = session_id
        self.store = store or get_document_store()
        self.recorder = recorder or EngagementRecorder(self.store)
        self.clock = clock or utc_now

        self.state = SessionState.UNINITIALIZED
        self._insights: list[ConversationReadyInsight] = []
        self._engagement_records: dict[str, InsightEngagementRecord] = {}
        self._surfaced_count = 0
        self._dismissed_ids: set[str] = set()

    async def __aenter__(self) -> "InsightInjector":
        await self.initialize()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def insights(self) -> list[ConversationReadyInsight]:
        return list(self._insights)

    @property
    def surfaced_count(self) -> int:
        return self._surfaced_count

    @property
    def dismissed_ids(self) -> frozenset[str]:
        return frozenset(self._dismissed_ids)

    @property
    def pending_engagement(self) -> list[InsightEngagementRecord]:
        return list(self._engagement_records.values())

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def _refuse_if_closed(self, operation: str) -> bool:
        if self.is_closed:
            logger.warning(
                "insight_session_closed_call_refused",
                operation=operation,
                user_id=self.user_id,
                session_id=self.session_id,
            )
            return True
        return False

    def _refuse_update(self, operation: str, insight_id: object) -> bool:
        if self._refuse_if_closed(operation):
            return True
        if not isinstance(insight_id, str):
            logger.warning(
                "insight_id_invalid",
                operation=operation,
                user_id=self.user_id,
                session_id=self.session_id,
                kind=type(insight_id).__name__,
            )
            return True
        return False

    async def initialize(self) -> None:
        """Load the user's conversation queue.

        A missing document, a malformed ``insights`` field or a store error
        all leave the session with no insights.
        """
        if self._refuse_if_closed("initialize"):
            return

        self._insights = []
        self.state = SessionState.LOADED

        try:
            snapshot = await self.store.get(conversation_queue_path(self.user_id))
        except Exception as e:
            logger.error(
                "insight_queue_fetch_failed",
                user_id=self.user_id,
                session_id=self.session_id,
                error=str(e),
            )
            return

        if not snapshot.exists:
            logger.info("insight_queue_missing", user_id=self.user_id)
            return

        raw = snapshot.get_field("insights")
        self._insights = parse_insight_queue(raw)

        logger.info(
            "insight_queue_loaded",
            user_id=self.user_id,
            session_id=self.session_id,
            loaded=len(self._insights),
            discarded=len(raw) - len(self._insights) if isinstance(raw, list) else 0,
        )

    def build_insight_system_prompt(self) -> str:
        """Prompt fragment listing loaded insights, or "" when there are none."""
        if not self._insights:
            return ""

        insight_list = "\n".join(
            f"{i}. {insight.summary}" for i, insight in enumerate(self._insights, start=1)
        )
        return INSIGHT_PROMPT_TEMPLATE.format(insight_list=insight_list)

    def can_surface_insight(self) -> bool:
        """Whether another insight may be surfaced this session."""
        if self.is_closed:
            return False
        return self._surfaced_count < MAX_INSIGHTS_PER_SESSION

    def check_mood_gate(
        self, insight: ConversationReadyInsight, current_mood_score: Optional[float]
    ) -> bool:
        """Whether the current mood allows surfacing this insight.

        Without a mood score, encouraging and reflective insights are allowed
        and challenging ones are blocked.
        """
        if current_mood_score is None:
            return insight.emotional_tone != EmotionalTone.CHALLENGING
        return current_mood_score >= insight.mood_gate_threshold

    def mark_insight_surfaced(
        self, insight_id: str, timing: str, mood_score: Optional[float]
    ) -> None:
        """Record that an insight was shown. Callers check can_surface_insight() first."""
        if self._refuse_update("mark_insight_surfaced", insight_id):
            return

        try:
            record = InsightEngagementRecord(
                insight_id=insight_id,
                session_id=self.session_id,
                delivery_timing=timing,
                user_response=UserResponse.DEFERRED,
                exploration_depth=0,
                mood_before=mood_score,
                mood_after=None,
                timestamp=self.clock(),
            )
        except ValidationError as e:
            logger.warning(
                "insight_surface_ignored",
                user_id=self.user_id,
                session_id=self.session_id,
                error=str(e),
            )
            return

        self._surfaced_count += 1
        self._engagement_records[insight_id] = record

    def mark_insight_explored(self, insight_id: str, exploration_depth: int) -> None:
        if self._refuse_update("mark_insight_explored", insight_id):
            return

        record = self._engagement_records.get(insight_id)
        if record is None:
            return

        try:
            depth = max(0, int(exploration_depth))
        except (TypeError, ValueError, OverflowError):
            logger.warning(
                "insight_exploration_depth_invalid",
                user_id=self.user_id,
                insight_id=insight_id,
            )
            depth = 0

        record.user_response = UserResponse.EXPLORED
        record.exploration_depth = depth

    def mark_insight_dismissed(self, insight_id: str) -> None:
        if self._refuse_update("mark_insight_dismissed", insight_id):
            return

        record = self._engagement_records.get(insight_id)
        if record is not None:
            record.user_response = UserResponse.DISMISSED
        self._dismissed_ids.add(insight_id)

    def is_dismissed(self, insight_id: str) -> bool:
        return isinstance(insight_id, str) and insight_id in self._dismissed_ids

    async def flush_engagement(self) -> bool:
        """Write pending engagement records in one batch.

        Pending records are cleared only after a successful write, so a
        failed flush can be retried and a second successful flush is a no-op.

        Returns:
            True if nothing is left pending, False if the write failed
        """
        if not self._engagement_records:
            return True

        written = await self.recorder.write_batch(
            self.user_id, self._engagement_records.values()
        )
        if not written:
            logger.error(
                "engagement_flush_failed",
                user_id=self.user_id,
                session_id=self.session_id,
                pending=len(self._engagement_records),
            )
            return False

        self._engagement_records.clear()
        return True

    async def close(self) -> bool:
        """Flush pending engagement and end the session."""
        flushed = await self.flush_engagement()
        self.state = SessionState.CLOSED
        logger.info(
            "insight_session_closed",
            user_id=self.user_id,
            session_id=self.session_id,
            surfaced=self._surfaced_count,
            flushed=flushed,
        )
        return flushed


async def open_insight_session(
    user_id: str,
    session_id: str,
    store: Optional[DocumentStore] = None,
) -> InsightInjector:
    """Create and initialize a single-use injector for one session."""
    injector = InsightInjector(user_id, session_id, store=store)
    await injector.initialize()
    return injector
