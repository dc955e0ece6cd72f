"""Batched write-back of insight engagement records at session end."""

from typing import Iterable, Optional

import structlog

from nudge_engine.models.insight import InsightEngagementRecord, UserResponse
from nudge_engine.paths import insight_engagement_path
from nudge_engine.services.document_store import DocumentStore, get_document_store

logger = structlog.get_logger(__name__)


def clamp_mood(value: Optional[float]) -> Optional[float]:
    """Clamp a mood score to [0, 1]; None stays None."""
    if value is None:
        return None
    return min(1.0, max(0.0, float(value)))


class EngagementRecorder:
    """Writes engagement records keyed by ``{insight_id}_{session_id}``.

    Writes overwrite rather than append, so re-sending the same records after
    a failed attempt is safe.
    """

    def __init__(self, store: Optional[DocumentStore] = None):
        self.store = store or get_document_store()

    async def write_batch(
        self, user_id: str, records: Iterable[InsightEngagementRecord]
    ) -> bool:
        """Persist all records in one batched write.

        Returns:
            True if persisted (or nothing to write), False otherwise
        """
        records = list(records)
        if not records:
            return True

        writes = []
        for record in records:
            data = record.model_dump(mode="json")
            data["mood_before"] = clamp_mood(record.mood_before)
            data["mood_after"] = clamp_mood(record.mood_after)
            writes.append(
                (insight_engagement_path(user_id, record.insight_id, record.session_id), data)
            )

        try:
            await self.store.batch_set(writes)
        except Exception as e:
            logger.error(
                "engagement_batch_write_failed",
                user_id=user_id,
                record_count=len(records),
                error=str(e),
            )
            return False

        logger.info(
            "engagement_batch_written",
            user_id=user_id,
            record_count=len(records),
            explored=sum(1 for r in records if r.user_response == UserResponse.EXPLORED),
            dismissed=sum(1 for r in records if r.user_response == UserResponse.DISMISSED),
        )
        return True
