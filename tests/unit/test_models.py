"""Unit tests for nudge and insight models."""

import pytest
from pydantic import ValidationError

from nudge_engine.models.insight import (
    DEFAULT_MOOD_GATE_THRESHOLD,
    EmotionalTone,
    InsightEngagementRecord,
    SuggestedTiming,
    parse_insight,
    parse_insight_queue,
)
from nudge_engine.models.nudge import NudgeInputs, NudgeSource


class TestParseInsight:
    def test_minimal_record_gets_defaults(self):
        insight = parse_insight({"insight_id": "i1", "summary": "s", "confidence": 1})

        assert insight.confidence == 1.0
        assert insight.full_context == ""
        assert insight.emotional_tone == EmotionalTone.REFLECTIVE
        assert insight.suggested_timing == SuggestedTiming.NATURAL_PAUSE
        assert insight.related_entry_ids == []
        assert insight.mood_gate_threshold == DEFAULT_MOOD_GATE_THRESHOLD

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            "insight",
            {"summary": "s", "confidence": 0.5},
            {"insight_id": 7, "summary": "s", "confidence": 0.5},
            {"insight_id": "i1", "confidence": 0.5},
            {"insight_id": "i1", "summary": "s"},
            {"insight_id": "i1", "summary": "s", "confidence": "0.5"},
            {"insight_id": "i1", "summary": "s", "confidence": True},
        ],
    )
    def test_rejects_records_missing_required_fields(self, raw):
        assert parse_insight(raw) is None

    def test_invalid_optional_fields_fall_back(self):
        insight = parse_insight(
            {
                "insight_id": "i1",
                "summary": "s",
                "confidence": 0.7,
                "emotional_tone": "furious",
                "suggested_timing": ["later"],
                "related_entry_ids": ["e1", 2, None, "e2"],
                "mood_gate_threshold": 3.5,
                "full_context": None,
            }
        )

        assert insight.emotional_tone == EmotionalTone.REFLECTIVE
        assert insight.suggested_timing == SuggestedTiming.NATURAL_PAUSE
        assert insight.related_entry_ids == ["e1", "e2"]
        assert insight.mood_gate_threshold == 1.0
        assert insight.full_context == ""

    def test_confidence_too_large_for_float_is_dropped(self):
        assert parse_insight({"insight_id": "i1", "summary": "s", "confidence": 10**400}) is None

    def test_huge_threshold_is_clamped(self):
        insight = parse_insight(
            {"insight_id": "i1", "summary": "s", "confidence": 0.5, "mood_gate_threshold": 10**400}
        )
        assert insight.mood_gate_threshold == 1.0

    def test_queue_skips_unconvertible_record(self):
        raw = [
            {"insight_id": "a", "summary": "fits", "confidence": 0.8},
            {"insight_id": "b", "summary": "big", "confidence": 10**400},
        ]
        assert [i.insight_id for i in parse_insight_queue(raw)] == ["a"]

    def test_queue_filters_and_keeps_order(self):
        raw = [
            {"insight_id": "b", "summary": "s", "confidence": 0.2},
            {"insight_id": "x"},
            {"insight_id": "a", "summary": "s", "confidence": 0.9},
        ]
        assert [i.insight_id for i in parse_insight_queue(raw)] == ["b", "a"]

    def test_queue_non_list_is_empty(self):
        assert parse_insight_queue({"insight_id": "a"}) == []
        assert parse_insight_queue(None) == []


class TestEngagementRecord:
    def test_document_key(self, clock):
        record = InsightEngagementRecord(
            insight_id="i1", session_id="s1", delivery_timing="session_end", timestamp=clock.now
        )
        assert record.document_key == "i1_s1"

    def test_negative_depth_rejected(self, clock):
        with pytest.raises(ValidationError):
            InsightEngagementRecord(
                insight_id="i1",
                session_id="s1",
                delivery_timing="session_end",
                exploration_depth=-1,
                timestamp=clock.now,
            )


class TestNudgeInputs:
    def test_present_follows_source_precedence(self):
        inputs = NudgeInputs(reflection={"r": 1}, burnout={"b": 1}, gap_prompt={"g": 1})
        assert [source for source, _ in inputs.present()] == [
            NudgeSource.BURNOUT,
            NudgeSource.GAP_PROMPT,
            NudgeSource.REFLECTION,
        ]

    def test_from_detector_outputs_applies_trigger_flags(self):
        inputs = NudgeInputs.from_detector_outputs(
            burnout_risk={"risk_level": "high", "trigger_shelter_mode": False},
            anticipatory_event={"show": False, "hours_until_event": 2},
            value_gap={"has_significant_gap": False},
            social_health={"isolation_risk": False, "is_imbalanced": False},
            pending_reflections=[],
        )
        assert inputs.present() == []

    def test_from_detector_outputs_builds_candidates(self):
        inputs = NudgeInputs.from_detector_outputs(
            burnout_risk={"risk_level": "critical", "trigger_shelter_mode": True},
            anticipatory_event={"show": True, "hours_until_event": 2},
            value_gap={"has_significant_gap": True},
            pending_reflections=[{"event_id": "first"}, {"event_id": "second"}],
            gap_prompt={"domain": "health"},
        )

        assert inputs.burnout["risk_level"] == "critical"
        assert inputs.anticipatory["hours_until_event"] == 2
        assert inputs.value_gap == {"has_significant_gap": True}
        assert inputs.reflection == {"event_id": "first"}
        assert inputs.gap_prompt == {"domain": "health"}
        assert inputs.social is None

    def test_social_isolation_marked_high(self):
        inputs = NudgeInputs.from_detector_outputs(social_health={"isolation_risk": True, "days_alone": 6})

        assert inputs.social["type"] == "isolation_alert"
        assert inputs.social["priority"] == "high"
        assert inputs.social["days_alone"] == 6

    def test_social_imbalance_marked_medium(self):
        inputs = NudgeInputs.from_detector_outputs(social_health={"is_imbalanced": True})

        assert inputs.social["type"] == "balance_nudge"
        assert inputs.social["priority"] == "medium"
