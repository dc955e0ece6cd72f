"""Document paths used by the nudge and insight services."""

from nudge_engine.config import get_settings


def nudge_history_path(user_id: str) -> str:
    return f"users/{user_id}/settings/nudge_history"


def nudge_responses_path(user_id: str) -> str:
    return f"users/{user_id}/settings/nudge_responses"


def _nexus_base(user_id: str) -> str:
    app_id = get_settings().app_collection_id
    return f"artifacts/{app_id}/users/{user_id}/nexus"


def conversation_queue_path(user_id: str) -> str:
    """Precomputed conversation-ready insights for a user."""
    return f"{_nexus_base(user_id)}/conversation_queue"


def insight_engagement_path(user_id: str, insight_id: str, session_id: str) -> str:
    """One engagement record per (insight, session) pair."""
    return f"{_nexus_base(user_id)}/insight_engagement/{insight_id}_{session_id}"
