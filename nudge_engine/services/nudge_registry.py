"""Priority and cooldown table for every nudge kind."""

from datetime import timedelta

from nudge_engine.models.nudge import NudgeKind

# Higher = more urgent
NUDGE_PRIORITY: dict[NudgeKind, int] = {
    # Crisis-level nudges
    NudgeKind.CRISIS: 100,
    # Burnout detection
    NudgeKind.BURNOUT_CRITICAL: 90,
    NudgeKind.BURNOUT_HIGH: 80,
    # Anticipatory anxiety, time-sensitive
    NudgeKind.ANTICIPATORY_IMMINENT: 75,  # Event in the next few hours
    NudgeKind.SOCIAL_ISOLATION_HIGH: 70,
    NudgeKind.ANTICIPATORY_TODAY: 60,
    # Follow-up prompts
    NudgeKind.EVENT_REFLECTION: 50,
    NudgeKind.GAP_PROMPT: 45,  # Below anticipatory, above value checks
    NudgeKind.SOCIAL_ISOLATION_MODERATE: 40,
    NudgeKind.VALUE_CHECK: 30,
    # Gentle nudges
    NudgeKind.SOCIAL_RECONNECTION: 25,
    NudgeKind.POSITIVE_REINFORCEMENT: 10,
}

# Minimum spacing between two nudges of the same kind for one user
NUDGE_COOLDOWNS: dict[NudgeKind, timedelta] = {
    NudgeKind.BURNOUT_CRITICAL: timedelta(hours=4),
    NudgeKind.BURNOUT_HIGH: timedelta(hours=8),
    NudgeKind.ANTICIPATORY_IMMINENT: timedelta(hours=2),
    NudgeKind.ANTICIPATORY_TODAY: timedelta(hours=6),
    NudgeKind.SOCIAL_ISOLATION_HIGH: timedelta(hours=24),
    NudgeKind.SOCIAL_ISOLATION_MODERATE: timedelta(hours=48),
    NudgeKind.EVENT_REFLECTION: timedelta(hours=4),
    NudgeKind.GAP_PROMPT: timedelta(hours=24),
    NudgeKind.VALUE_CHECK: timedelta(hours=24),
    NudgeKind.SOCIAL_RECONNECTION: timedelta(hours=72),
    NudgeKind.POSITIVE_REINFORCEMENT: timedelta(hours=24),
}

DEFAULT_COOLDOWN = timedelta(hours=24)

# Candidates at or above this priority ignore cooldowns
CRITICAL_PRIORITY_THRESHOLD = NUDGE_PRIORITY[NudgeKind.BURNOUT_CRITICAL]


def priority_for(kind: NudgeKind) -> int:
    return NUDGE_PRIORITY[kind]


def cooldown_for(kind: NudgeKind) -> timedelta:
    return NUDGE_COOLDOWNS.get(kind, DEFAULT_COOLDOWN)


def cooldown_ms(kind: NudgeKind) -> int:
    """Cooldown in whole milliseconds."""
    return int(cooldown_for(kind).total_seconds() * 1000)
