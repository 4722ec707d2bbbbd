"""
AntifragileConfig: every tunable coefficient of the learning core.

Validated once at construction; an out-of-range value raises
``pydantic.ValidationError`` there rather than misbehaving later.
Keys may be given in snake_case or in the camelCase form hosts use
(``learningRate``, ``fractureThreshold`` ...).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AntifragileConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
    )

    enabled: bool = True

    # ── Reinforcement learning ─────────────────────────────
    learning_rate: float = Field(default=0.1, gt=0, le=1)
    exploration_rate: float = Field(default=0.15, ge=0, le=1)  # ε for ε-greedy
    exploration_decay: float = Field(default=0.995, gt=0, le=1)
    min_exploration_rate: float = Field(default=0.01, ge=0, le=1)
    discount_factor: float = Field(default=0.95, ge=0, le=1)
    softmax_temperature: float = Field(default=1.0, gt=0)
    memory_size: int = Field(default=1000, gt=0)  # replay buffer capacity
    batch_size: int = Field(default=32, gt=0)
    update_frequency: int = Field(default=10, ge=1)
    max_states: Optional[int] = Field(default=None, gt=0)  # None = unbounded

    # ── Fracture analysis ──────────────────────────────────
    fracture_threshold: float = Field(default=0.85, ge=0, le=1)
    pre_frame_analysis: int = Field(default=10, ge=0)
    post_frame_analysis: int = Field(default=5, ge=0)

    # ── Policy evolution ───────────────────────────────────
    policy_update_threshold: int = Field(default=5, ge=1)
    structural_change_threshold: int = Field(default=20, gt=0)
    fracture_history_size: int = Field(default=1000, gt=0)

    @property
    def frame_buffer_size(self) -> int:
        return self.pre_frame_analysis + self.post_frame_analysis + 5

    def to_dict(self) -> dict:
        return self.model_dump()
