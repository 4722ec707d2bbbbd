"""
Shared data structures for the antifragile learning core.

Frame flows in from the host once per tick.
FractureEvent is the post-mortem record of one fracture.
Experience is what the learner trains on.
CognitiveProfile tracks how this particular user tends to break.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Discretized state: each of the 8 state features in tenths.
StateKey = Tuple[int, ...]


class Action(str, Enum):
    """The intervention vocabulary the policy chooses from."""

    REDUCE_COMPLEXITY = "reduce_complexity"
    INCREASE_SPACING = "increase_spacing"
    DIM_PERIPHERY = "dim_periphery"
    HIGHLIGHT_FOCUS = "highlight_focus"
    DELAY_NOTIFICATIONS = "delay_notifications"
    SIMPLIFY_NAVIGATION = "simplify_navigation"
    INCREASE_CONTRAST = "increase_contrast"
    REDUCE_ANIMATION = "reduce_animation"
    GROUP_RELATED_ELEMENTS = "group_related_elements"
    PROVIDE_CONTEXT_HINT = "provide_context_hint"
    ADJUST_COLOR_TEMPERATURE = "adjust_color_temperature"
    MODIFY_LAYOUT_DENSITY = "modify_layout_density"


ACTION_SPACE: Tuple[str, ...] = tuple(a.value for a in Action)

# What the host actually did before a fracture. Not a learnable action.
NO_ACTION = "no_action"


class InterventionType(str, Enum):
    FI_SPIKE = "fi_spike"
    STRESS_THRESHOLD = "stress_threshold"
    COMPLEXITY_JUMP = "complexity_jump"


class Frame(BaseModel):
    """One tick's signal summary, validated at the ingestion boundary.

    Accepts both snake_case names and the camelCase keys hosts send
    (``stressLevel``, ``uiComplexity`` ...). Only ``fi`` is required.
    NaN and infinite readings are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        allow_inf_nan=False,
    )

    fi: float = Field(validation_alias=AliasChoices("fi", "fractureIndex"))
    stress_level: float = 0.0
    task_complexity: float = 0.0
    time_in_session: float = Field(default=0.0, ge=0)  # milliseconds
    recent_interactions: float = Field(default=0.0, ge=0)
    notification_count: float = Field(default=0.0, ge=0)
    ui_complexity: float = 0.0
    cognitive_load_trend: float = 0.0
    domain: str = "unknown"
    task: str = "unknown"
    task_switches: float = Field(default=0.0, ge=0)
    timestamp: Optional[float] = None  # epoch milliseconds


@dataclass
class Experience:
    """One RL training tuple over discretized states."""

    state: StateKey
    action: str
    reward: float
    next_state: StateKey
    terminal: bool = False
    hypothetical: bool = False


@dataclass
class ContributingFactor:
    type: str
    severity: float
    description: str


@dataclass
class InterventionPoint:
    frame_index: int
    type: InterventionType
    opportunity: str
    potential: str  # "high" | "medium" | "low"


@dataclass
class FailurePathway:
    """How FI and its drivers evolved in the window before a fracture."""

    fi_progression: List[float]
    stress_progression: List[float]
    complexity_progression: List[float]
    interaction_pattern: List[float]
    fi_trend: float
    acceleration_point: int
    critical_threshold: float


@dataclass
class FractureEvent:
    """Post-mortem record of a single fracture."""

    timestamp: float
    fracture_frame: Frame
    pre_frames: List[Frame]
    failure_pathway: FailurePathway
    contributing_factors: List[ContributingFactor]
    intervention_points: List[InterventionPoint]
    severity: float
    context: Dict[str, str]

    def factor(self, factor_type: str) -> Optional[ContributingFactor]:
        for f in self.contributing_factors:
            if f.type == factor_type:
                return f
        return None


@dataclass
class LearningSignal:
    """Training material extracted from one fracture."""

    examples: List[Experience]
    failure_pattern: str
    severity: float
    learnability: float


@dataclass
class PersonalityFactors:
    stress_sensitivity: float = 0.5
    complexity_tolerance: float = 0.5
    notification_sensitivity: float = 0.5

    def clamp(self) -> None:
        self.stress_sensitivity = min(1.0, max(0.0, self.stress_sensitivity))
        self.complexity_tolerance = min(1.0, max(0.0, self.complexity_tolerance))
        self.notification_sensitivity = min(
            1.0, max(0.0, self.notification_sensitivity)
        )


@dataclass
class TriggerSequence:
    pattern: Tuple[float, ...]
    count: int = 1
    last_seen: float = 0.0


@dataclass
class CognitiveProfile:
    """Per-user record of the states and sequences that precede fractures."""

    vulnerable_states: Dict[StateKey, int] = field(default_factory=dict)
    trigger_sequences: List[TriggerSequence] = field(default_factory=list)
    personality_factors: PersonalityFactors = field(
        default_factory=PersonalityFactors
    )

    def snapshot(self) -> dict:
        return {
            "vulnerable_states": dict(self.vulnerable_states),
            "trigger_sequences": [
                {
                    "pattern": list(s.pattern),
                    "count": s.count,
                    "last_seen": s.last_seen,
                }
                for s in self.trigger_sequences
            ],
            "personality_factors": {
                "stress_sensitivity": self.personality_factors.stress_sensitivity,
                "complexity_tolerance": self.personality_factors.complexity_tolerance,
                "notification_sensitivity": (
                    self.personality_factors.notification_sensitivity
                ),
            },
        }


# ================================================================
# EVENTS (dispatched to subscribers, also returned per tick)
# ================================================================


@dataclass
class FractureProcessed:
    analysis: FractureEvent
    learning: LearningSignal
    adaptation_count: int
    name: str = "fractureProcessed"


@dataclass
class PolicyUpdated:
    states_learned: int
    adaptation_count: int
    name: str = "policyUpdated"


@dataclass
class StructuralAdaptation:
    insights: Dict[str, Any]
    proposed_changes: List[Dict[str, Any]]
    fracture_count: int
    name: str = "structuralAdaptation"
