"""
PatternMiner: longitudinal analysis across many fractures.

Where the pathway analyzer explains one fracture, the miner looks for
what fractures have in common:
  - which contributing factors keep recurring
  - whether fractures arrive on a rhythm or in bursts
  - which domain:task contexts produce them
  - what the user's cognitive profile says they are sensitive to

It also keeps that profile current, one fracture at a time.

Everything it proposes is advisory. Nothing here changes the host.
"""

import time
from collections import Counter
from typing import Callable, Dict, List, Optional

import numpy as np

from .policy import discretize, state_key
from .types import CognitiveProfile, FractureEvent, TriggerSequence

PERIODIC_CV = 0.2
BURST_RATIO = 0.5
BURST_SHARE = 0.3
BURST_CONFIDENCE = 0.8
TRIGGER_SHARE = 0.3

HIGH_STRESS_SENSITIVITY = 0.7
LOW_COMPLEXITY_TOLERANCE = 0.3
HIGH_NOTIFICATION_SENSITIVITY = 0.7

PERSONALITY_STEP = 0.1


class PatternMiner:
    """Mines the fracture history against one user's cognitive profile."""

    def __init__(
        self,
        profile: Optional[CognitiveProfile] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.profile = profile if profile is not None else CognitiveProfile()
        self.clock = clock if clock is not None else (lambda: time.time() * 1000.0)

    # ================================================================
    # PROFILE UPDATES
    # ================================================================

    def update_cognitive_profile(self, event: FractureEvent) -> None:
        profile = self.profile

        key = state_key(event.fracture_frame)
        profile.vulnerable_states[key] = profile.vulnerable_states.get(key, 0) + 1

        fi_values = event.failure_pathway.fi_progression
        if len(fi_values) > 2:
            pattern = tuple(t / 10 for t in discretize(fi_values[-3:]))
            for seq in profile.trigger_sequences:
                if seq.pattern == pattern:
                    seq.count += 1
                    seq.last_seen = self.clock()
                    break
            else:
                profile.trigger_sequences.append(
                    TriggerSequence(pattern=pattern, count=1, last_seen=self.clock())
                )

        self.update_personality_factors(event)

    def update_personality_factors(self, event: FractureEvent) -> None:
        """Nudge each factor by the severity of its matching contributor.

        Additive, then clamped to [0, 1].
        """
        factors = self.profile.personality_factors

        stress = event.factor("stress_accumulation")
        if stress is not None:
            factors.stress_sensitivity += stress.severity * PERSONALITY_STEP

        complexity = event.factor("ui_complexity")
        if complexity is not None:
            factors.complexity_tolerance -= complexity.severity * PERSONALITY_STEP

        notifications = event.factor("notification_pressure")
        if notifications is not None:
            factors.notification_sensitivity += (
                notifications.severity * PERSONALITY_STEP
            )

        factors.clamp()

    # ================================================================
    # MINING
    # ================================================================

    def analyze_structural_patterns(self, events: List[FractureEvent]) -> dict:
        return {
            "common_factors": self.find_common_factors(events),
            "temporal_patterns": self.find_temporal_patterns(events),
            "contextual_triggers": self.find_contextual_triggers(events),
            "user_vulnerabilities": self.identify_user_vulnerabilities(events),
        }

    def find_common_factors(self, events: List[FractureEvent]) -> Dict[str, float]:
        """Share of fractures in which each factor type appeared."""
        if not events:
            return {}
        counts: Counter = Counter()
        for e in events:
            for factor in e.contributing_factors:
                counts[factor.type] += 1
        return {kind: n / len(events) for kind, n in counts.items()}

    def find_temporal_patterns(self, events: List[FractureEvent]) -> List[dict]:
        """Detect periodic and bursty fracture timing.

        Needs at least three fractures (two intervals).
        """
        if len(events) < 3:
            return []

        timestamps = np.sort([e.timestamp for e in events])
        intervals = np.diff(timestamps)
        mean = float(np.mean(intervals))
        std = float(np.std(intervals))

        patterns = []
        if mean > 0 and std < mean * PERIODIC_CV:
            patterns.append(
                {
                    "type": "periodic_fracture",
                    "interval": mean,
                    "confidence": 1 - std / mean,
                }
            )

        bursts = int(np.sum(intervals < mean * BURST_RATIO))
        if bursts > len(intervals) * BURST_SHARE:
            patterns.append(
                {
                    "type": "burst_pattern",
                    "intensity": bursts / len(intervals),
                    "confidence": BURST_CONFIDENCE,
                }
            )

        return patterns

    def find_contextual_triggers(self, events: List[FractureEvent]) -> List[dict]:
        """domain:task contexts responsible for over 30% of fractures."""
        if not events:
            return []
        counts: Counter = Counter(
            (e.context.get("domain", "unknown"), e.context.get("task", "unknown"))
            for e in events
        )
        triggers = []
        for (domain, task), count in counts.items():
            frequency = count / len(events)
            if frequency > TRIGGER_SHARE:
                triggers.append(
                    {
                        "context": f"{domain}:{task}",
                        "domain": domain,
                        "task": task,
                        "frequency": frequency,
                        "count": count,
                    }
                )
        return triggers

    def identify_user_vulnerabilities(
        self, events: Optional[List[FractureEvent]] = None
    ) -> List[dict]:
        """Read vulnerabilities off the personality factors.

        ``events`` is accepted for symmetry with the other miners; the
        profile already integrates them.
        """
        factors = self.profile.personality_factors
        vulnerabilities = []

        if factors.stress_sensitivity > HIGH_STRESS_SENSITIVITY:
            vulnerabilities.append(
                {
                    "type": "high_stress_sensitivity",
                    "level": factors.stress_sensitivity,
                    "implication": "Requires earlier stress mitigation",
                }
            )
        if factors.complexity_tolerance < LOW_COMPLEXITY_TOLERANCE:
            vulnerabilities.append(
                {
                    "type": "low_complexity_tolerance",
                    "level": factors.complexity_tolerance,
                    "implication": "Requires aggressive simplification",
                }
            )
        if factors.notification_sensitivity > HIGH_NOTIFICATION_SENSITIVITY:
            vulnerabilities.append(
                {
                    "type": "notification_distractibility",
                    "level": factors.notification_sensitivity,
                    "implication": "Requires strict notification filtering",
                }
            )
        return vulnerabilities

    # ================================================================
    # PROPOSALS
    # ================================================================

    def propose_structural_changes(self, insights: dict) -> List[dict]:
        """Advisory structural changes, gated on how consistent the evidence is."""
        common = insights.get("common_factors", {})
        changes = []

        ui = common.get("ui_complexity", 0.0)
        if ui > 0.7:
            changes.append(
                {
                    "type": "layout_simplification",
                    "description": "Permanently reduce default UI complexity",
                    "confidence": ui,
                    "impact": "high",
                }
            )

        notifications = common.get("notification_pressure", 0.0)
        if notifications > 0.6:
            changes.append(
                {
                    "type": "notification_policy",
                    "description": "Implement stricter notification filtering",
                    "confidence": notifications,
                    "impact": "medium",
                }
            )

        for trigger in insights.get("contextual_triggers", []):
            if trigger["frequency"] > 0.5:
                changes.append(
                    {
                        "type": "context_adaptation",
                        "description": f"Adapt interface for {trigger['context']} context",
                        "confidence": trigger["frequency"],
                        "impact": "medium",
                        "context": trigger["context"],
                    }
                )

        return changes
