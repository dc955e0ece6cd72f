"""Nudge orchestrator: picks the single nudge a user may see right now.

Detectors (burnout, anticipatory anxiety, social isolation, value gap, gap
prompt, event reflection) run independently and each may offer one candidate.
Showing several wellness nudges at once during a stressful stretch adds
stress, so only the highest priority candidate that is out of cooldown is
returned, and its kind is stamped into the user's nudge history.

All store access is best-effort: failed reads behave as "no history" and
failed writes are logged without undoing a decision already made.
"""

from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Callable, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from nudge_engine.models.nudge import (
    SOURCE_LABELS,
    NudgeCandidate,
    NudgeInputs,
    NudgeKind,
    NudgeResponseEntry,
    NudgeResponseType,
    NudgeSource,
    OrchestratorDecision,
)
from nudge_engine.paths import nudge_history_path, nudge_responses_path
from nudge_engine.services.document_store import DocumentStore, get_document_store
from nudge_engine.services.nudge_registry import (
    CRITICAL_PRIORITY_THRESHOLD,
    cooldown_for,
    priority_for,
)
from nudge_engine.services.redis_service import user_lock

logger = structlog.get_logger(__name__)

# Response log keeps only the most recent entries
MAX_RESPONSE_LOG = 50

# Anticipatory events closer than this are imminent
IMMINENT_EVENT_HOURS = 4

Clock = Callable[[], datetime]
LockFactory = Callable[[str], AsyncContextManager[Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def classify(source: NudgeSource, payload: Mapping[str, Any]) -> NudgeKind:
    """Map a detector's candidate onto exactly one nudge kind."""
    if source == NudgeSource.BURNOUT:
        if payload.get("risk_level") == "critical":
            return NudgeKind.BURNOUT_CRITICAL
        return NudgeKind.BURNOUT_HIGH

    if source == NudgeSource.ANTICIPATORY:
        hours = payload.get("hours_until_event")
        is_number = isinstance(hours, (int, float)) and not isinstance(hours, bool)
        if is_number and hours < IMMINENT_EVENT_HOURS:
            return NudgeKind.ANTICIPATORY_IMMINENT
        return NudgeKind.ANTICIPATORY_TODAY

    if source == NudgeSource.SOCIAL:
        if payload.get("type") == "isolation_alert" or payload.get("priority") == "high":
            return NudgeKind.SOCIAL_ISOLATION_HIGH
        return NudgeKind.SOCIAL_ISOLATION_MODERATE

    if source == NudgeSource.VALUE_GAP:
        return NudgeKind.VALUE_CHECK

    if source == NudgeSource.GAP_PROMPT:
        return NudgeKind.GAP_PROMPT

    return NudgeKind.EVENT_REFLECTION


def rank_candidates(inputs: NudgeInputs) -> list[NudgeCandidate]:
    """Classify supplied candidates and order them by priority, highest first.

    The sort is stable, so equal priorities keep source precedence.
    """
    candidates = []
    for source, payload in inputs.present():
        kind = classify(source, payload)
        candidates.append(
            NudgeCandidate(kind=kind, priority=priority_for(kind), source=source, payload=payload)
        )
    return sorted(candidates, key=lambda c: c.priority, reverse=True)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_inputs(
    candidates: Union[NudgeInputs, Mapping[str, Any], None], user_id: Optional[str] = None
) -> Optional[NudgeInputs]:
    """Build inputs from a raw mapping, dropping any source whose payload is not an object."""
    if isinstance(candidates, NudgeInputs):
        return candidates
    if candidates is None:
        return NudgeInputs()
    if not isinstance(candidates, Mapping):
        logger.warning(
            "nudge_candidates_invalid",
            user_id=user_id,
            kind=type(candidates).__name__,
        )
        return None

    accepted = {}
    for source in NudgeSource:
        payload = candidates.get(source.value)
        if payload is None:
            continue
        if not isinstance(payload, Mapping):
            logger.warning(
                "nudge_candidate_dropped",
                user_id=user_id,
                source=SOURCE_LABELS[source],
                kind=type(payload).__name__,
            )
            continue
        accepted[source.value] = dict(payload)

    try:
        return NudgeInputs.model_validate(accepted)
    except ValidationError as e:
        logger.warning("nudge_candidates_invalid", user_id=user_id, error=str(e))
        return None


def passes_rate_limit(
    candidate: NudgeCandidate, history: Mapping[str, Any], now: datetime
) -> bool:
    """Whether a candidate may be shown given the user's nudge history.

    Critical candidates always pass. Kinds never shown (or with an unreadable
    timestamp) pass. Otherwise the kind's cooldown must have elapsed.
    """
    if candidate.priority >= CRITICAL_PRIORITY_THRESHOLD:
        return True

    last_shown = _parse_timestamp(history.get(candidate.kind.value))
    if last_shown is None:
        return True

    return now - last_shown >= cooldown_for(candidate.kind)


class NudgeOrchestrator:
    """Arbitrates between competing nudge candidates for one user at a time."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        clock: Optional[Clock] = None,
        lock: Optional[LockFactory] = None,
    ):
        self.store = store or get_document_store()
        self.clock = clock or utc_now
        self.lock = lock or user_lock

    async def orchestrate(
        self,
        candidates: Union[NudgeInputs, Mapping[str, Any]],
        user_id: str,
    ) -> Optional[dict]:
        """Return the one nudge to show, or None.

        The winning payload is returned with an ``_orchestrator`` audit block
        holding its kind, priority, source and how many candidates lost.
        """
        inputs = _coerce_inputs(candidates, user_id)
        if inputs is None:
            return None

        ranked = rank_candidates(inputs)
        if not ranked:
            return None

        async with self.lock(user_id):
            history = await self._load_history(user_id)
            now = self.clock()

            for candidate in ranked:
                if not passes_rate_limit(candidate, history, now):
                    continue

                await self._record_shown(user_id, candidate, now)

                decision = OrchestratorDecision(
                    type=candidate.kind,
                    priority=candidate.priority,
                    source=SOURCE_LABELS[candidate.source],
                    suppressed=len(ranked) - 1,
                )
                logger.info(
                    "nudge_selected",
                    user_id=user_id,
                    nudge_type=candidate.kind.value,
                    priority=candidate.priority,
                    suppressed=decision.suppressed,
                )
                return {**candidate.payload, "_orchestrator": decision.model_dump(mode="json")}

        logger.info(
            "nudges_rate_limited",
            user_id=user_id,
            candidates=[c.kind.value for c in ranked],
        )
        return None

    async def _load_history(self, user_id: str) -> dict:
        """Read last-shown timestamps per kind. Failures read as empty history."""
        try:
            snapshot = await self.store.get(nudge_history_path(user_id))
        except Exception as e:
            logger.warning("nudge_history_read_failed", user_id=user_id, error=str(e))
            return {}

        history = snapshot.get_field("history")
        return history if isinstance(history, dict) else {}

    async def _record_shown(
        self, user_id: str, candidate: NudgeCandidate, now: datetime
    ) -> bool:
        """Stamp the candidate's kind into the user's nudge history."""
        path = nudge_history_path(user_id)
        shown_at = now.isoformat()

        try:
            snapshot = await self.store.get(path)
            existing = snapshot.get_field("history")
            history = existing if isinstance(existing, dict) else {}

            await self.store.set(
                path,
                {
                    "history": {**history, candidate.kind.value: shown_at},
                    "last_nudge": {
                        "type": candidate.kind.value,
                        "source": SOURCE_LABELS[candidate.source],
                        "shown_at": shown_at,
                    },
                },
            )
            return True
        except Exception as e:
            logger.error(
                "nudge_history_write_failed",
                user_id=user_id,
                nudge_type=candidate.kind.value,
                error=str(e),
            )
            return False

    async def record_response(
        self,
        user_id: str,
        kind: Union[NudgeKind, str],
        response: Union[NudgeResponseType, str],
    ) -> bool:
        """Append the user's reaction to a nudge to their response log.

        Returns:
            True if persisted, False otherwise
        """
        try:
            entry = NudgeResponseEntry(type=kind, response=response, timestamp=self.clock())
        except ValidationError as e:
            logger.warning("nudge_response_invalid", user_id=user_id, error=str(e))
            return False

        path = nudge_responses_path(user_id)

        try:
            snapshot = await self.store.get(path)
            existing = snapshot.get_field("responses")
            responses = existing if isinstance(existing, list) else []

            responses = [*responses, entry.model_dump(mode="json")][-MAX_RESPONSE_LOG:]

            await self.store.set(
                path,
                {
                    "responses": responses,
                    "updated_at": entry.timestamp.isoformat(),
                },
            )
        except Exception as e:
            logger.error("nudge_response_record_failed", user_id=user_id, error=str(e))
            return False

        logger.info(
            "nudge_response_recorded",
            user_id=user_id,
            nudge_type=entry.type.value,
            response=entry.response.value,
        )
        return True

    async def reset_cooldowns(self, user_id: str) -> bool:
        """Clear the user's nudge history so every kind is eligible again."""
        try:
            await self.store.set(
                nudge_history_path(user_id),
                {"history": {}, "reset_at": self.clock().isoformat()},
            )
        except Exception as e:
            logger.error("nudge_cooldown_reset_failed", user_id=user_id, error=str(e))
            return False

        logger.info("nudge_cooldowns_reset", user_id=user_id)
        return True

    @staticmethod
    def get_all_pending_nudges(
        candidates: Union[NudgeInputs, Mapping[str, Any]],
    ) -> list[dict]:
        """List every supplied candidate without arbitration (debug/admin view)."""
        inputs = _coerce_inputs(candidates)
        if inputs is None:
            return []

        return [
            {"source": SOURCE_LABELS[source], "nudge": payload}
            for source, payload in inputs.present()
        ]
