"""
PolicyLearner: tabular Q-learning driven by fractures.

Fractures are not just costs here; they are the richest training signal
the system gets. Each post-mortem is turned into two kinds of
experience:

  - NEGATIVE: the high-FI states that actually preceded the fracture,
    paired with what was actually done (nothing), rewarded -FI^2.
  - HYPOTHETICAL: the intervention points the analyzer found, paired
    with the action that would have addressed them, rewarded by their
    estimated potential. No forward simulation is done, so the next
    state is the state itself.

Learning happens three ways:
  1. Urgent: severe fractures (FI > 0.8) update immediately from the
     real experiences only, at double learning rate.
  2. Batch: once the replay buffer holds a batch, every frame replays
     a uniformly sampled batch.
  3. Policy: after either, the softmax policy is rebuilt from the
     whole Q-table.
"""

import logging
import math
import time
from collections import Counter, OrderedDict
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from .config import AntifragileConfig
from .memory import ReplayBuffer
from .types import (
    ACTION_SPACE,
    NO_ACTION,
    Action,
    Experience,
    Frame,
    FractureEvent,
    InterventionType,
    LearningSignal,
    PolicyUpdated,
    StateKey,
)

logger = logging.getLogger(__name__)

SESSION_NORMALIZER_MS = 3_600_000.0
INTERACTION_NORMALIZER = 100.0
NOTIFICATION_NORMALIZER = 20.0

NEGATIVE_FI_FLOOR = 0.5
URGENT_SEVERITY = 0.8

INTERVENTION_ACTIONS: Dict[InterventionType, Action] = {
    InterventionType.FI_SPIKE: Action.REDUCE_COMPLEXITY,
    InterventionType.STRESS_THRESHOLD: Action.DIM_PERIPHERY,
    InterventionType.COMPLEXITY_JUMP: Action.PROVIDE_CONTEXT_HINT,
}

OPPORTUNITY_ACTIONS: Dict[str, Action] = {
    "Apply immediate complexity reduction": Action.REDUCE_COMPLEXITY,
    "Trigger calming intervention": Action.DIM_PERIPHERY,
    "Provide contextual guidance": Action.PROVIDE_CONTEXT_HINT,
}

INTERVENTION_REWARDS = {"high": 0.8, "medium": 0.5, "low": 0.2}

_ACTION_INDEX = {a: i for i, a in enumerate(ACTION_SPACE)}


# ================================================================
# STATE REPRESENTATION
# ================================================================


def extract_state_vector(frame: Frame) -> np.ndarray:
    """The 8 state features, with the unbounded counts squashed to [0, 1]."""
    return np.array(
        [
            frame.fi,
            frame.stress_level,
            frame.task_complexity,
            min(1.0, frame.time_in_session / SESSION_NORMALIZER_MS),
            min(1.0, frame.recent_interactions / INTERACTION_NORMALIZER),
            min(1.0, frame.notification_count / NOTIFICATION_NORMALIZER),
            frame.ui_complexity,
            frame.cognitive_load_trend,
        ]
    )


def discretize(state_vector) -> StateKey:
    """Round every feature to the nearest 0.1 and key on the tenths.

    Lossy on purpose: nearby states share one key, and with it their
    learned values.
    """
    return tuple(int(math.floor(v * 10 + 0.5)) for v in state_vector)


def state_key(frame: Frame) -> StateKey:
    return discretize(extract_state_vector(frame))


def softmax(q_values: np.ndarray, temperature: float = 1.0) -> np.ndarray:
    scaled = np.asarray(q_values, dtype=float) / temperature
    exp = np.exp(scaled - np.max(scaled))
    return exp / np.sum(exp)


def map_opportunity_to_action(opportunity: Union[InterventionType, str]) -> str:
    """Action that addresses an intervention opportunity.

    Accepts an InterventionType or the opportunity's description;
    anything unrecognised falls back to reducing complexity.
    """
    if isinstance(opportunity, InterventionType):
        return INTERVENTION_ACTIONS[opportunity].value
    try:
        return INTERVENTION_ACTIONS[InterventionType(opportunity)].value
    except ValueError:
        pass
    return OPPORTUNITY_ACTIONS.get(opportunity, Action.REDUCE_COMPLEXITY).value


def intervention_reward(potential: str) -> float:
    return INTERVENTION_REWARDS.get(potential, INTERVENTION_REWARDS["low"])


# ================================================================
# Q-TABLE
# ================================================================


class QTable:
    """State -> action-value vectors, ordered by recency of update.

    With ``max_states`` set, the least recently updated state is evicted
    once the table is full. Without it the table grows with every new
    discretized state observed.
    """

    def __init__(
        self, n_actions: int = len(ACTION_SPACE), max_states: Optional[int] = None
    ):
        self.n_actions = n_actions
        self.max_states = max_states
        self._values: "OrderedDict[StateKey, np.ndarray]" = OrderedDict()

    def get(self, key: StateKey) -> Optional[np.ndarray]:
        return self._values.get(key)

    def values_or_zeros(self, key: StateKey) -> np.ndarray:
        values = self._values.get(key)
        return values if values is not None else np.zeros(self.n_actions)

    def row(self, key: StateKey) -> np.ndarray:
        """Live value vector for ``key``, created as zeros if missing."""
        if key in self._values:
            self._values.move_to_end(key)
            return self._values[key]
        self._values[key] = np.zeros(self.n_actions)
        if self.max_states is not None and len(self._values) > self.max_states:
            evicted, _ = self._values.popitem(last=False)
            logger.debug("Q-table full, evicted state %s", evicted)
        return self._values[key]

    def items(self) -> Iterator[Tuple[StateKey, np.ndarray]]:
        return iter(self._values.items())

    def clear(self) -> None:
        self._values.clear()

    def __contains__(self, key) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


# ================================================================
# LEARNER
# ================================================================


class PolicyLearner:
    """Owns the Q-table, replay buffer and derived softmax policy."""

    def __init__(
        self,
        config: Optional[AntifragileConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], float]] = None,
        on_event: Optional[Callable[[PolicyUpdated], None]] = None,
    ):
        self.config = config if config is not None else AntifragileConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock if clock is not None else (lambda: time.time() * 1000.0)
        self.on_event = on_event

        self.learning_rate = self.config.learning_rate
        self.exploration_rate = self.config.exploration_rate

        self.q_table = QTable(max_states=self.config.max_states)
        self.replay = ReplayBuffer(self.config.memory_size, rng=self.rng)
        self.policy: Dict[StateKey, np.ndarray] = {}
        self.failure_patterns: Counter = Counter()

        self.adaptation_count = 0
        self.last_policy_update = self.clock()

    # ================================================================
    # LEARNING SIGNAL
    # ================================================================

    def extract_learning_signal(self, event: FractureEvent) -> LearningSignal:
        """Turn one fracture post-mortem into training experiences."""
        pre = event.pre_frames
        fi_values = event.failure_pathway.fi_progression
        examples: List[Experience] = []

        for i, fi in enumerate(fi_values):
            if fi <= NEGATIVE_FI_FLOOR:
                continue
            last = i == len(fi_values) - 1
            nxt = pre[i] if last else pre[i + 1]
            examples.append(
                Experience(
                    state=state_key(pre[i]),
                    action=NO_ACTION,
                    reward=-(fi**2),
                    next_state=state_key(nxt),
                    terminal=last,
                    hypothetical=False,
                )
            )

        for point in event.intervention_points:
            key = state_key(pre[point.frame_index])
            examples.append(
                Experience(
                    state=key,
                    action=map_opportunity_to_action(point.type),
                    reward=intervention_reward(point.potential),
                    next_state=key,  # no simulation of the intervention
                    terminal=False,
                    hypothetical=True,
                )
            )

        return LearningSignal(
            examples=examples,
            failure_pattern="_".join(f.type for f in event.contributing_factors),
            severity=event.severity,
            learnability=0.8 if event.intervention_points else 0.3,
        )

    def update_from_failure(self, signal: LearningSignal) -> None:
        """Store the signal's experiences and react to its severity."""
        self.replay.extend(signal.examples)

        if signal.severity > URGENT_SEVERITY:
            self.perform_urgent_learning(signal.examples)

        self.failure_patterns[signal.failure_pattern] += 1
        self.adaptation_count += 1

    # ================================================================
    # TD LEARNING
    # ================================================================

    def update_q_value(
        self, experience: Experience, learning_rate: Optional[float] = None
    ) -> None:
        """One temporal-difference step on Q[s][a].

        Actions outside the action space (including ``no_action``)
        are skipped without touching the table.
        """
        index = _ACTION_INDEX.get(experience.action)
        if index is None:
            return
        alpha = self.learning_rate if learning_rate is None else learning_rate

        target = experience.reward
        if not experience.terminal:
            next_values = self.q_table.values_or_zeros(experience.next_state)
            target += self.config.discount_factor * float(np.max(next_values))

        q = self.q_table.row(experience.state)
        q[index] += alpha * (target - q[index])

    def perform_batch_learning(self) -> int:
        batch = self.replay.sample(self.config.batch_size)
        for experience in batch:
            self.update_q_value(experience)
        logger.debug("Batch learning over %d experiences", len(batch))
        self.update_policy()
        return len(batch)

    def perform_urgent_learning(self, examples: List[Experience]) -> None:
        """Learn from the real experiences of a severe fracture right now.

        The learning rate is doubled for this call only. Above 0.5 the
        doubled step overshoots the TD target.
        """
        logger.warning("Performing urgent learning from severe fracture")
        original = self.learning_rate
        self.learning_rate = original * 2
        try:
            for e in examples:
                if not e.hypothetical:
                    self.update_q_value(e)
        finally:
            self.learning_rate = original
        self.update_policy()

    def update_policy(self) -> PolicyUpdated:
        """Rebuild the softmax policy from every state in the Q-table."""
        temperature = self.config.softmax_temperature
        self.policy = {
            key: softmax(values, temperature) for key, values in self.q_table.items()
        }
        self.last_policy_update = self.clock()
        logger.debug("Policy recomputed over %d states", len(self.policy))

        event = PolicyUpdated(
            states_learned=len(self.q_table),
            adaptation_count=self.adaptation_count,
        )
        if self.on_event is not None:
            self.on_event(event)
        return event

    # ================================================================
    # SERVING
    # ================================================================

    def get_optimal_action(self, frame: Frame) -> str:
        """ε-greedy over the policy's most probable action.

        States never learned get a uniformly random action.
        """
        probabilities = self.policy.get(state_key(frame))
        if probabilities is None or self.rng.random() < self.exploration_rate:
            return ACTION_SPACE[int(self.rng.integers(len(ACTION_SPACE)))]
        return ACTION_SPACE[int(np.argmax(probabilities))]

    def decay_exploration(self) -> float:
        # A rate configured below the floor stays where it is.
        floor = min(self.config.min_exploration_rate, self.exploration_rate)
        self.exploration_rate = max(
            floor, self.exploration_rate * self.config.exploration_decay
        )
        return self.exploration_rate

    def reset(self) -> None:
        self.q_table.clear()
        self.replay.clear()
        self.policy = {}
        self.failure_patterns.clear()
        self.learning_rate = self.config.learning_rate
        self.exploration_rate = self.config.exploration_rate
        self.adaptation_count = 0
        self.last_policy_update = self.clock()

    def stats(self) -> dict:
        return {
            "q_table_size": len(self.q_table),
            "policy_size": len(self.policy),
            "experience_buffer_size": len(self.replay),
            "exploration_rate": self.exploration_rate,
            "adaptation_count": self.adaptation_count,
        }
