"""Tests for state discretization, TD learning and policy serving."""

import numpy as np
import pytest

from antifragile_learning import (
    ACTION_SPACE,
    NO_ACTION,
    Action,
    AntifragileConfig,
    Experience,
    FailurePathwayAnalyzer,
    Frame,
    InterventionType,
    PolicyLearner,
    QTable,
    discretize,
    extract_state_vector,
    map_opportunity_to_action,
    softmax,
    state_key,
)
from antifragile_learning.policy import INTERVENTION_ACTIONS

KEY_A = (5, 3, 2, 0, 0, 0, 4, 0)
KEY_B = (9, 3, 2, 0, 0, 0, 4, 0)


def _learner(**overrides) -> PolicyLearner:
    return PolicyLearner(
        AntifragileConfig(**overrides), rng=np.random.default_rng(42)
    )


# ================================================================
# STATE REPRESENTATION
# ================================================================


class TestStateRepresentation:
    def test_state_vector_normalizes_counts(self):
        frame = Frame(
            fi=0.7,
            stress_level=0.4,
            task_complexity=0.5,
            time_in_session=1_800_000,
            recent_interactions=250,
            notification_count=5,
            ui_complexity=0.6,
            cognitive_load_trend=-0.2,
        )
        vector = extract_state_vector(frame)
        assert vector.shape == (8,)
        assert vector[3] == pytest.approx(0.5)
        assert vector[4] == 1.0  # capped
        assert vector[5] == pytest.approx(0.25)

    def test_discretize_rounds_to_tenths(self):
        assert discretize([0.84, 0.86, 0.0, 1.0]) == (8, 9, 0, 10)

    def test_nearby_states_share_a_key(self):
        a = Frame(fi=0.81, stress_level=0.42)
        b = Frame(fi=0.79, stress_level=0.38)
        assert state_key(a) == state_key(b)

    def test_distinct_states_differ(self):
        assert state_key(Frame(fi=0.5)) != state_key(Frame(fi=0.9))

    def test_discretization_is_deterministic(self):
        frame = Frame(fi=0.63, task_complexity=0.27, notification_count=7)
        assert state_key(frame) == state_key(frame)
        assert len(state_key(frame)) == 8

    def test_softmax(self):
        p = softmax(np.array([1.0, 2.0, 3.0]))
        assert p.sum() == pytest.approx(1.0)
        assert np.argmax(p) == 2
        assert np.allclose(softmax(np.zeros(4)), 0.25)


class TestOpportunityMapping:
    def test_every_intervention_type_is_mapped(self):
        for kind in InterventionType:
            assert kind in INTERVENTION_ACTIONS
            assert map_opportunity_to_action(kind) in ACTION_SPACE

    def test_known_mappings(self):
        assert map_opportunity_to_action(InterventionType.FI_SPIKE) == "reduce_complexity"
        assert map_opportunity_to_action("stress_threshold") == "dim_periphery"
        assert (
            map_opportunity_to_action("Provide contextual guidance")
            == "provide_context_hint"
        )

    def test_unknown_opportunity_defaults(self):
        assert map_opportunity_to_action("something new") == "reduce_complexity"

    def test_action_space_is_fixed(self):
        assert len(ACTION_SPACE) == 12
        assert NO_ACTION not in ACTION_SPACE


# ================================================================
# Q-TABLE / TD UPDATES
# ================================================================


class TestQTable:
    def test_row_created_as_zeros(self):
        table = QTable()
        assert table.get(KEY_A) is None
        assert np.all(table.row(KEY_A) == 0)
        assert len(table) == 1

    def test_missing_state_reads_as_zeros_without_insert(self):
        table = QTable()
        assert np.all(table.values_or_zeros(KEY_A) == 0)
        assert len(table) == 0

    def test_max_states_evicts_least_recently_updated(self):
        table = QTable(max_states=2)
        table.row(KEY_A)
        table.row(KEY_B)
        table.row(KEY_A)  # refresh A
        table.row((0,) * 8)
        assert KEY_A in table
        assert KEY_B not in table
        assert len(table) == 2


class TestTemporalDifference:
    def test_terminal_update_moves_toward_reward(self):
        learner = _learner(learning_rate=0.5)
        exp = Experience(KEY_A, "reduce_complexity", 1.0, KEY_A, terminal=True)
        learner.update_q_value(exp)
        assert learner.q_table.get(KEY_A)[0] == pytest.approx(0.5)

    def test_repeated_updates_converge_without_overshoot(self):
        learner = _learner(learning_rate=0.3)
        exp = Experience(KEY_A, "dim_periphery", -0.81, KEY_B, terminal=True)
        index = ACTION_SPACE.index("dim_periphery")
        previous = 0.0
        for _ in range(50):
            learner.update_q_value(exp)
            q = learner.q_table.get(KEY_A)[index]
            assert q <= previous  # moving monotonically toward -0.81
            assert q >= -0.81  # never past it
            previous = q
        assert previous == pytest.approx(-0.81, abs=1e-6)

    def test_non_terminal_bootstraps_from_next_state(self):
        learner = _learner(learning_rate=1.0)
        learner.q_table.row(KEY_B)[3] = 2.0
        exp = Experience(KEY_A, "reduce_complexity", 0.5, KEY_B, terminal=False)
        learner.update_q_value(exp)
        assert learner.q_table.get(KEY_A)[0] == pytest.approx(0.5 + 0.95 * 2.0)

    def test_missing_next_state_counts_as_zero(self):
        learner = _learner(learning_rate=1.0)
        exp = Experience(KEY_A, "reduce_complexity", 0.5, KEY_B, terminal=False)
        learner.update_q_value(exp)
        assert learner.q_table.get(KEY_A)[0] == pytest.approx(0.5)
        assert KEY_B not in learner.q_table

    def test_unknown_action_is_a_no_op(self):
        learner = _learner()
        learner.update_q_value(Experience(KEY_A, NO_ACTION, -0.9, KEY_B))
        learner.update_q_value(Experience(KEY_A, "teleport", 1.0, KEY_B))
        assert len(learner.q_table) == 0


class TestUrgentLearning:
    def test_doubles_rate_and_restores_it(self):
        learner = _learner(learning_rate=0.2)
        real = Experience(KEY_A, "reduce_complexity", 1.0, KEY_A, terminal=True)
        learner.perform_urgent_learning([real])
        assert learner.q_table.get(KEY_A)[0] == pytest.approx(0.4)
        assert learner.learning_rate == 0.2

    def test_doubling_is_not_capped(self):
        learner = _learner(learning_rate=0.6)
        real = Experience(KEY_A, "reduce_complexity", 1.0, KEY_A, terminal=True)
        learner.perform_urgent_learning([real])
        assert learner.q_table.get(KEY_A)[0] == pytest.approx(1.2)
        assert learner.learning_rate == 0.6

    def test_skips_hypothetical_experiences(self):
        learner = _learner()
        hypothetical = Experience(KEY_A, "reduce_complexity", 0.8, KEY_A, hypothetical=True)
        learner.perform_urgent_learning([hypothetical])
        assert len(learner.q_table) == 0

    def test_always_recomputes_policy(self):
        events = []
        learner = _learner()
        learner.on_event = events.append
        learner.perform_urgent_learning([])
        assert len(events) == 1
        assert events[0].name == "policyUpdated"


class TestBatchLearning:
    def test_updates_q_table_and_policy(self):
        learner = _learner(batch_size=4)
        learner.replay.extend(
            [Experience(KEY_A, "highlight_focus", 0.5, KEY_A) for _ in range(4)]
        )
        assert learner.perform_batch_learning() == 4
        assert KEY_A in learner.policy
        assert np.argmax(learner.policy[KEY_A]) == ACTION_SPACE.index("highlight_focus")

    def test_policy_is_fully_replaced(self):
        learner = _learner()
        learner.policy = {KEY_B: np.ones(12) / 12}
        learner.q_table.row(KEY_A)
        learner.update_policy()
        assert set(learner.policy) == {KEY_A}
        assert learner.policy[KEY_A].sum() == pytest.approx(1.0)


# ================================================================
# LEARNING SIGNAL
# ================================================================


class TestLearningSignal:
    def _event(self, severity=0.9):
        pre = [
            Frame(fi=0.3),
            Frame(fi=0.55),
            Frame(fi=0.6, stress_level=0.7),
            Frame(fi=0.8, stress_level=0.7, ui_complexity=0.9),
        ]
        return FailurePathwayAnalyzer().analyze(Frame(fi=severity), pre)

    def test_negative_examples(self):
        signal = _learner().extract_learning_signal(self._event())
        negatives = [e for e in signal.examples if not e.hypothetical]
        assert len(negatives) == 3  # fi 0.55, 0.6, 0.8
        assert all(e.action == NO_ACTION for e in negatives)
        assert negatives[0].reward == pytest.approx(-(0.55**2))
        assert [e.terminal for e in negatives] == [False, False, True]
        assert negatives[0].next_state == state_key(Frame(fi=0.6, stress_level=0.7))
        # Last frame has no successor: it points at itself.
        assert negatives[-1].next_state == negatives[-1].state

    def test_hypothetical_examples(self):
        signal = _learner().extract_learning_signal(self._event())
        hypothetical = [e for e in signal.examples if e.hypothetical]
        # fi 0.3 -> 0.55 spike, stress crossing at index 2, fi 0.6 -> 0.8 spike
        assert [e.action for e in hypothetical] == [
            "reduce_complexity",
            "dim_periphery",
            "reduce_complexity",
        ]
        assert [e.reward for e in hypothetical] == [0.8, 0.5, 0.8]
        assert all(e.next_state == e.state and not e.terminal for e in hypothetical)

    def test_pattern_and_learnability(self):
        signal = _learner().extract_learning_signal(self._event())
        assert signal.failure_pattern == "ui_complexity_stress_accumulation"
        assert signal.learnability == 0.8
        assert signal.severity == 0.9

    def test_update_from_severe_failure(self):
        learner = _learner()
        signal = learner.extract_learning_signal(self._event(severity=0.95))
        learner.update_from_failure(signal)
        assert len(learner.replay) == len(signal.examples)
        assert learner.adaptation_count == 1
        assert learner.failure_patterns[signal.failure_pattern] == 1

    def test_replay_capped_at_memory_size(self):
        learner = _learner(memory_size=5)
        for _ in range(4):
            learner.update_from_failure(learner.extract_learning_signal(self._event()))
        assert len(learner.replay) == 5


# ================================================================
# SERVING
# ================================================================


class TestServing:
    def test_unknown_state_gets_some_action(self):
        learner = _learner()
        assert learner.get_optimal_action(Frame(fi=0.4)) in ACTION_SPACE

    def test_exploits_policy_mode(self):
        learner = _learner()
        learner.exploration_rate = 0.0
        frame = Frame(fi=0.5, stress_level=0.3)
        key = state_key(frame)
        learner.q_table.row(key)[ACTION_SPACE.index("delay_notifications")] = 3.0
        learner.update_policy()
        for _ in range(20):
            assert learner.get_optimal_action(frame) == Action.DELAY_NOTIFICATIONS.value

    def test_full_exploration_is_random(self):
        learner = _learner()
        learner.exploration_rate = 1.0
        frame = Frame(fi=0.5)
        learner.q_table.row(state_key(frame))[0] = 3.0
        learner.update_policy()
        chosen = {learner.get_optimal_action(frame) for _ in range(200)}
        assert len(chosen) > 1

    def test_exploration_decays_to_floor(self):
        learner = _learner(exploration_rate=0.5, exploration_decay=0.9)
        previous = learner.exploration_rate
        for _ in range(200):
            rate = learner.decay_exploration()
            assert rate <= previous
            assert rate >= 0.01
            previous = rate
        assert previous == 0.01

    def test_reset(self):
        learner = _learner()
        learner.q_table.row(KEY_A)
        learner.update_policy()
        learner.exploration_rate = 0.02
        learner.reset()
        assert len(learner.q_table) == 0
        assert learner.policy == {}
        assert learner.exploration_rate == 0.15
