#!/usr/bin/env python3
"""
Demo: Antifragile learning from repeated fractures

A synthetic session drifts toward overload again and again:
  calm -> FI spike -> sustained high FI -> fracture

Each fracture is analysed post-mortem and fed to the Q-learner.
Watch the policy settle on an intervention for the spike state,
and the pattern miner notice the rhythm and the context.
"""

import sys
import os
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from antifragile_learning import (
    AntifragileConfig,
    AntifragileEngine,
    Frame,
    StructuralAdaptation,
    features,
)


def session_fi(rng: np.random.Generator, n_cycles: int) -> list:
    """FI samples for n overload cycles with a little noise."""
    cycle = [0.3, 0.35, 0.6, 0.65, 0.7, 0.92]
    values = []
    for _ in range(n_cycles):
        values.extend(np.clip(np.array(cycle) + rng.normal(0, 0.01, len(cycle)), 0, 1))
    return values


def scenario_features(rng: np.random.Generator):
    print("-" * 64)
    print("  SCENARIO 1: FEATURES OF A RAW FI WINDOW")
    print("-" * 64)
    window = session_fi(rng, 10)
    record = features.compute_features(window, max_window=120)
    print(f"  mean            {record['basic']['mean']:.3f}")
    print(f"  std dev         {record['basic']['std_dev']:.3f}")
    print(f"  skewness        {record['moments']['skewness']:.3f}")
    print(f"  lag-1 acf       {record['autocorrelation']['lag1']:.3f}")
    print(f"  shannon (bits)  {record['entropy']['shannon']:.3f}")
    print(f"  approx entropy  {record['entropy']['approximate']:.3f}")
    print(f"  persistence     {record['time_series']['persistence']:.3f}")
    print()


def scenario_learning(rng: np.random.Generator):
    print("-" * 64)
    print("  SCENARIO 2: LEARNING FROM 100 FRACTURES")
    print("-" * 64)

    clock = {"now": 0.0}
    engine = AntifragileEngine(
        AntifragileConfig(structural_change_threshold=25),
        rng=rng,
        clock=lambda: clock["now"],
    )

    def on_event(event):
        if isinstance(event, StructuralAdaptation):
            kinds = [c["type"] for c in event.proposed_changes]
            print(f"  [fracture {event.fracture_count}] proposals: {kinds}")

    engine.subscribe(on_event)

    for fi in session_fi(rng, 100):
        engine.process_frame(
            {
                "fi": float(fi),
                "stressLevel": 0.2,
                "taskComplexity": 0.4,
                "uiComplexity": 0.8,
                "domain": "coding",
                "task": "debugging",
            }
        )
        clock["now"] += 2000.0

    spike = Frame(fi=0.6, stress_level=0.2, task_complexity=0.4, ui_complexity=0.8)
    status = engine.get_status()
    print()
    print(f"  fractures        {status['total_fractures']}")
    print(f"  states learned   {status['q_table_size']}")
    print(f"  exploration      {status['exploration_rate']:.3f}")
    print(f"  effectiveness    {status['learning_effectiveness']:.3f}")
    print(f"  action at spike  {engine.get_optimal_action(spike)}")
    print()


if __name__ == "__main__":
    rng = np.random.default_rng(2024)
    scenario_features(rng)
    scenario_learning(rng)
