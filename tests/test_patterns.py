"""Tests for longitudinal fracture mining and the cognitive profile."""

import pytest

from antifragile_learning import (
    CognitiveProfile,
    FailurePathwayAnalyzer,
    Frame,
    PatternMiner,
    state_key,
)
from antifragile_learning.types import PersonalityFactors


def _event(timestamp=0.0, domain="unknown", task="unknown", pre=None, fi=0.9):
    trigger = Frame(fi=fi, domain=domain, task=task, timestamp=timestamp)
    return FailurePathwayAnalyzer().analyze(trigger, pre or [])


def _miner(**factors) -> PatternMiner:
    profile = CognitiveProfile(personality_factors=PersonalityFactors(**factors))
    return PatternMiner(profile, clock=lambda: 1000.0)


# ================================================================
# TEMPORAL PATTERNS
# ================================================================


class TestTemporalPatterns:
    def test_evenly_spaced_fractures_are_periodic(self):
        events = [_event(timestamp=t * 60_000.0) for t in range(4)]
        patterns = _miner().find_temporal_patterns(events)
        assert len(patterns) == 1
        assert patterns[0]["type"] == "periodic_fracture"
        assert abs(patterns[0]["interval"] - 60_000) < 100
        assert patterns[0]["confidence"] == pytest.approx(1.0)

    def test_order_of_history_does_not_matter(self):
        events = [_event(timestamp=t * 60_000.0) for t in (3, 0, 2, 1)]
        patterns = _miner().find_temporal_patterns(events)
        assert [p["type"] for p in patterns] == ["periodic_fracture"]

    def test_bursts(self):
        events = [_event(timestamp=t) for t in (0.0, 1000.0, 2000.0, 100_000.0, 101_000.0)]
        patterns = _miner().find_temporal_patterns(events)
        assert [p["type"] for p in patterns] == ["burst_pattern"]
        assert patterns[0]["intensity"] == pytest.approx(0.75)
        assert patterns[0]["confidence"] == 0.8

    def test_needs_three_fractures(self):
        events = [_event(timestamp=0.0), _event(timestamp=10.0)]
        assert _miner().find_temporal_patterns(events) == []


# ================================================================
# CONTEXTS / FACTORS / VULNERABILITIES
# ================================================================


class TestContextualTriggers:
    def test_dominant_context(self):
        events = [_event(domain="coding", task="debugging") for _ in range(3)]
        events.append(_event(domain="writing", task="email"))
        triggers = _miner().find_contextual_triggers(events)
        assert len(triggers) == 1
        assert triggers[0]["context"] == "coding:debugging"
        assert triggers[0]["domain"] == "coding"
        assert triggers[0]["task"] == "debugging"
        assert triggers[0]["count"] == 3
        assert triggers[0]["frequency"] == 0.75

    def test_no_events(self):
        assert _miner().find_contextual_triggers([]) == []


class TestCommonFactors:
    def test_factor_shares(self):
        noisy = [Frame(fi=0.5, notification_count=9)]
        cluttered = [Frame(fi=0.5, ui_complexity=0.9)]
        events = [_event(pre=noisy), _event(pre=noisy), _event(pre=cluttered), _event()]
        common = _miner().find_common_factors(events)
        assert common == {"notification_pressure": 0.5, "ui_complexity": 0.25}


class TestVulnerabilities:
    def test_stress_and_complexity(self):
        miner = _miner(
            stress_sensitivity=0.8,
            complexity_tolerance=0.2,
            notification_sensitivity=0.5,
        )
        kinds = [v["type"] for v in miner.identify_user_vulnerabilities([])]
        assert kinds == ["high_stress_sensitivity", "low_complexity_tolerance"]

    def test_notification_distractibility(self):
        miner = _miner(notification_sensitivity=0.9)
        vulns = miner.identify_user_vulnerabilities()
        assert [v["type"] for v in vulns] == ["notification_distractibility"]
        assert vulns[0]["level"] == 0.9

    def test_default_profile_is_not_vulnerable(self):
        assert _miner().identify_user_vulnerabilities() == []


# ================================================================
# PROFILE UPDATES
# ================================================================


class TestCognitiveProfile:
    def test_personality_nudged_by_factor_severity(self):
        miner = _miner()
        pre = [Frame(fi=0.6, stress_level=0.8, ui_complexity=0.9, notification_count=7)]
        miner.update_cognitive_profile(_event(pre=pre))
        factors = miner.profile.personality_factors
        assert factors.stress_sensitivity == pytest.approx(0.58)
        assert factors.complexity_tolerance == pytest.approx(0.41)
        assert factors.notification_sensitivity == pytest.approx(0.57)

    def test_factors_stay_in_unit_interval(self):
        miner = _miner()
        pre = [Frame(fi=0.6, stress_level=1.0, ui_complexity=1.0, notification_count=40)]
        for _ in range(30):
            miner.update_cognitive_profile(_event(pre=pre))
        factors = miner.profile.personality_factors
        assert factors.stress_sensitivity == 1.0
        assert factors.complexity_tolerance == 0.0
        assert factors.notification_sensitivity == 1.0

    def test_vulnerable_states_counted(self):
        miner = _miner()
        event = _event()
        miner.update_cognitive_profile(event)
        miner.update_cognitive_profile(event)
        assert miner.profile.vulnerable_states[state_key(event.fracture_frame)] == 2

    def test_trigger_sequences(self):
        miner = _miner()
        pre = [Frame(fi=fi) for fi in (0.12, 0.51, 0.68, 0.79)]
        miner.update_cognitive_profile(_event(pre=pre))
        miner.update_cognitive_profile(_event(pre=pre))
        sequences = miner.profile.trigger_sequences
        assert len(sequences) == 1
        assert sequences[0].pattern == (0.5, 0.7, 0.8)
        assert sequences[0].count == 2
        assert sequences[0].last_seen == 1000.0

    def test_short_window_records_no_sequence(self):
        miner = _miner()
        miner.update_cognitive_profile(_event(pre=[Frame(fi=0.5), Frame(fi=0.7)]))
        assert miner.profile.trigger_sequences == []

    def test_snapshot(self):
        snapshot = _miner().profile.snapshot()
        assert snapshot["personality_factors"]["stress_sensitivity"] == 0.5
        assert snapshot["vulnerable_states"] == {}


# ================================================================
# PROPOSALS
# ================================================================


class TestStructuralProposals:
    def test_proposals_gated_by_confidence(self):
        insights = {
            "common_factors": {"ui_complexity": 0.8, "notification_pressure": 0.65},
            "contextual_triggers": [
                {"context": "coding:debugging", "frequency": 0.6},
                {"context": "writing:email", "frequency": 0.35},
            ],
        }
        changes = _miner().propose_structural_changes(insights)
        assert [c["type"] for c in changes] == [
            "layout_simplification",
            "notification_policy",
            "context_adaptation",
        ]
        assert changes[2]["context"] == "coding:debugging"
        assert changes[0]["impact"] == "high"

    def test_weak_evidence_proposes_nothing(self):
        insights = {
            "common_factors": {"ui_complexity": 0.7, "notification_pressure": 0.6},
            "contextual_triggers": [{"context": "a:b", "frequency": 0.5}],
        }
        assert _miner().propose_structural_changes(insights) == []

    def test_analyze_structural_patterns(self):
        events = [_event(timestamp=t * 1000.0, domain="ide", task="review") for t in range(4)]
        insights = _miner().analyze_structural_patterns(events)
        assert set(insights) == {
            "common_factors",
            "temporal_patterns",
            "contextual_triggers",
            "user_vulnerabilities",
        }
        assert insights["contextual_triggers"][0]["frequency"] == 1.0
