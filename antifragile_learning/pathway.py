"""
FailurePathwayAnalyzer: the post-mortem of a single fracture.

Given the frame that fractured and the frames leading up to it, answers
three questions:
  1. How did FI get here? (progressions, trend, acceleration point)
  2. What pushed it? (contributing factors)
  3. Where could we have stepped in? (intervention points)

The answers become a FractureEvent, which the learner turns into
training signal and the pattern miner aggregates over time.
"""

from typing import List, Optional, Tuple

from .features import linear_trend
from .types import (
    ContributingFactor,
    FailurePathway,
    Frame,
    FractureEvent,
    InterventionPoint,
    InterventionType,
)

FI_SPIKE_DELTA = 0.15
STRESS_THRESHOLD = 0.6
COMPLEXITY_JUMP_DELTA = 0.2

HIGH_UI_COMPLEXITY = 0.7
NOTIFICATION_PRESSURE_COUNT = 5
TASK_SWITCH_COUNT = 2

FACTOR_DESCRIPTIONS = {
    "ui_complexity": "High interface complexity contributed to cognitive overload",
    "notification_pressure": "Excessive notifications disrupted focus",
    "task_switching": "Frequent task switching fragmented attention",
    "stress_accumulation": "Gradual stress buildup reached breaking point",
}

OPPORTUNITIES = {
    InterventionType.FI_SPIKE: ("Apply immediate complexity reduction", "high"),
    InterventionType.STRESS_THRESHOLD: ("Trigger calming intervention", "medium"),
    InterventionType.COMPLEXITY_JUMP: ("Provide contextual guidance", "high"),
}


class FailurePathwayAnalyzer:
    """Inspects the pre-fracture window. Holds no state beyond config."""

    def __init__(self, fracture_threshold: float = 0.85):
        self.fracture_threshold = fracture_threshold

    def analyze(
        self,
        fracture_frame: Frame,
        pre_frames: List[Frame],
        timestamp: Optional[float] = None,
    ) -> FractureEvent:
        """Build the full post-mortem record for one fracture."""
        if timestamp is None:
            timestamp = fracture_frame.timestamp or 0.0
        return FractureEvent(
            timestamp=timestamp,
            fracture_frame=fracture_frame,
            pre_frames=list(pre_frames),
            failure_pathway=self.analyze_failure_pathway(pre_frames, fracture_frame),
            contributing_factors=self.identify_contributing_factors(pre_frames),
            intervention_points=self.find_intervention_points(pre_frames),
            severity=fracture_frame.fi,
            context={"domain": fracture_frame.domain, "task": fracture_frame.task},
        )

    # ================================================================
    # PATHWAY
    # ================================================================

    def analyze_failure_pathway(
        self, pre_frames: List[Frame], fracture_frame: Frame
    ) -> FailurePathway:
        fi_values = [f.fi for f in pre_frames]
        return FailurePathway(
            fi_progression=fi_values,
            stress_progression=[f.stress_level for f in pre_frames],
            complexity_progression=[f.task_complexity for f in pre_frames],
            interaction_pattern=[f.recent_interactions for f in pre_frames],
            fi_trend=linear_trend(fi_values)["slope"] if len(fi_values) >= 2 else 0.0,
            acceleration_point=self.find_acceleration_point(pre_frames),
            critical_threshold=self.find_critical_threshold(
                pre_frames, fracture_frame
            ),
        )

    @staticmethod
    def _max_acceleration(fi_values: List[float]) -> Tuple[int, float]:
        """Index and size of the largest positive second difference.

        Returns (-1, 0.0) when no positive acceleration exists.
        """
        best_index, best = -1, 0.0
        for i in range(2, len(fi_values)):
            accel = fi_values[i] - 2 * fi_values[i - 1] + fi_values[i - 2]
            if accel > best:
                best, best_index = accel, i
        return best_index, best

    def find_acceleration_point(self, pre_frames: List[Frame]) -> int:
        index, _ = self._max_acceleration([f.fi for f in pre_frames])
        return max(index, 0)

    def find_critical_threshold(
        self, pre_frames: List[Frame], fracture_frame: Frame
    ) -> float:
        """FI at the point where the run-up accelerated hardest.

        Falls back to the configured fracture threshold when the window
        is too short or FI never accelerated.
        """
        fi_values = [f.fi for f in pre_frames]
        index, _ = self._max_acceleration(fi_values)
        if index == -1:
            return self.fracture_threshold
        return fi_values[index]

    # ================================================================
    # CONTRIBUTING FACTORS
    # ================================================================

    def identify_contributing_factors(
        self, pre_frames: List[Frame]
    ) -> List[ContributingFactor]:
        if not pre_frames:
            return []

        factors = []

        def add(kind: str, severity: float):
            factors.append(
                ContributingFactor(
                    type=kind,
                    severity=severity,
                    description=FACTOR_DESCRIPTIONS[kind],
                )
            )

        ui = [f.ui_complexity for f in pre_frames]
        if any(v > HIGH_UI_COMPLEXITY for v in ui):
            add("ui_complexity", max(ui))

        notifications = [f.notification_count for f in pre_frames]
        if any(v > NOTIFICATION_PRESSURE_COUNT for v in notifications):
            add("notification_pressure", max(notifications) / 10)

        switches = [f.task_switches for f in pre_frames]
        if any(v > TASK_SWITCH_COUNT for v in switches):
            add("task_switching", max(switches) / 5)

        stress = [f.stress_level for f in pre_frames]
        if any(v > STRESS_THRESHOLD for v in stress):
            add("stress_accumulation", max(stress))

        return factors

    # ================================================================
    # INTERVENTION POINTS
    # ================================================================

    def find_intervention_points(
        self, pre_frames: List[Frame]
    ) -> List[InterventionPoint]:
        """Scan consecutive frame pairs for moments an intervention would
        likely have helped.
        """
        points = []

        def add(i: int, kind: InterventionType):
            opportunity, potential = OPPORTUNITIES[kind]
            points.append(
                InterventionPoint(
                    frame_index=i,
                    type=kind,
                    opportunity=opportunity,
                    potential=potential,
                )
            )

        for i in range(1, len(pre_frames)):
            frame, prev = pre_frames[i], pre_frames[i - 1]

            if frame.fi - prev.fi > FI_SPIKE_DELTA:
                add(i, InterventionType.FI_SPIKE)

            if frame.stress_level > STRESS_THRESHOLD >= prev.stress_level:
                add(i, InterventionType.STRESS_THRESHOLD)

            if frame.task_complexity > prev.task_complexity + COMPLEXITY_JUMP_DELTA:
                add(i, InterventionType.COMPLEXITY_JUMP)

        return points
