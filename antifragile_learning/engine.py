"""
The AntifragileEngine: runs the per-tick learning loop.

IMPORTANT: This engine does NOT contain learning logic.
Learning lives in PolicyLearner, analysis in FailurePathwayAnalyzer,
mining in PatternMiner. The engine's job is:

  1. Validate and buffer each incoming frame
  2. Detect fractures (FI above the configured threshold)
  3. Route each fracture through post-mortem -> learning -> profile
  4. Trigger batch replay and exploration decay every tick
  5. Periodically ask the miner for structural proposals
  6. Tell subscribers what happened

One call to process_frame does all of this synchronously. Every public
method holds the engine's lock, so a threaded host gets exclusive
access per call.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Union

import numpy as np

from .config import AntifragileConfig
from .memory import FractureHistory, FrameBuffer
from .pathway import FailurePathwayAnalyzer
from .patterns import PatternMiner
from .policy import PolicyLearner
from .types import (
    CognitiveProfile,
    FractureEvent,
    FractureProcessed,
    Frame,
    LearningSignal,
    StructuralAdaptation,
)

logger = logging.getLogger(__name__)

RECENT_WINDOW_MS = 3_600_000.0
MIN_FRACTURES_FOR_EFFECTIVENESS = 5

FrameInput = Union[Frame, Mapping[str, Any]]
Listener = Callable[[Any], None]


@dataclass
class FrameResult:
    """Everything one tick produced, for hosts that prefer return values
    over subscriptions.
    """

    frame: Optional[Frame]
    fracture: Optional[FractureEvent] = None
    learning: Optional[LearningSignal] = None
    events: List[Any] = field(default_factory=list)
    exploration_rate: float = 0.0

    @property
    def fractured(self) -> bool:
        return self.fracture is not None


def to_frame(data: FrameInput) -> Frame:
    if isinstance(data, Frame):
        return data
    return Frame.model_validate(dict(data))


class AntifragileEngine:
    """Orchestrates fracture detection, analysis and policy learning."""

    def __init__(
        self,
        config: Optional[Union[AntifragileConfig, Mapping[str, Any]]] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if config is None:
            config = AntifragileConfig()
        elif not isinstance(config, AntifragileConfig):
            config = AntifragileConfig.model_validate(dict(config))
        self.config = config
        self.clock = clock if clock is not None else (lambda: time.time() * 1000.0)

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._tick_events: List[Any] = []

        self.frames = FrameBuffer(config.frame_buffer_size)
        self.history = FractureHistory(config.fracture_history_size)
        self.analyzer = FailurePathwayAnalyzer(config.fracture_threshold)
        self.learner = PolicyLearner(
            config, rng=rng, clock=self.clock, on_event=self._emit
        )
        self.miner = PatternMiner(CognitiveProfile(), clock=self.clock)

        self.total_fractures = 0
        self.prevented_fractures = 0

    # ================================================================
    # EVENTS
    # ================================================================

    def subscribe(self, listener: Listener) -> None:
        """Register ``listener(event)`` for every emitted event.

        Listeners run at the end of each tick, in emission order.
        """
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event: Any) -> None:
        self._tick_events.append(event)

    def _dispatch(self, events: List[Any]) -> None:
        # Runs once the tick's state changes are complete, so a raising
        # listener cannot leave the engine half-updated.
        for event in events:
            for listener in list(self._listeners):
                listener(event)

    # ================================================================
    # MAIN LOOP
    # ================================================================

    def process_frame(self, data: FrameInput) -> FrameResult:
        """One full tick of the antifragile loop.

        1. Validate and timestamp the frame, append to the buffer
        2. If FI crosses the threshold, run the fracture pipeline
        3. Replay a batch once enough experience has accumulated
        4. Decay exploration

        Raises pydantic.ValidationError for a malformed frame.
        """
        frame = to_frame(data)
        with self._lock:
            if not self.config.enabled:
                return FrameResult(
                    frame=frame, exploration_rate=self.learner.exploration_rate
                )

            self._tick_events = []
            if frame.timestamp is None:
                frame = frame.model_copy(update={"timestamp": self.clock()})
            self.frames.append(frame)

            result = FrameResult(frame=frame)
            if self.detect_fracture(frame):
                result.fracture, result.learning = self._handle_fracture(frame)

            if len(self.learner.replay) >= self.config.batch_size:
                self.learner.perform_batch_learning()

            result.exploration_rate = self.learner.decay_exploration()
            result.events = self._tick_events
            self._tick_events = []
            self._dispatch(result.events)
            return result

    def detect_fracture(self, frame: Frame) -> bool:
        return frame.fi > self.config.fracture_threshold

    def _handle_fracture(self, frame: Frame):
        self.total_fractures += 1
        logger.info(
            "Fracture detected (FI %.3f), running post-mortem analysis", frame.fi
        )

        pre_frames = self.frames.window_before_latest(self.config.pre_frame_analysis)
        event = self.analyzer.analyze(frame, pre_frames, timestamp=frame.timestamp)
        self.history.append(event)

        signal = self.learner.extract_learning_signal(event)
        self.learner.update_from_failure(signal)

        self._evaluate_structural_changes()
        self.miner.update_cognitive_profile(event)

        self._emit(
            FractureProcessed(
                analysis=event,
                learning=signal,
                adaptation_count=self.learner.adaptation_count,
            )
        )
        return event, signal

    def _evaluate_structural_changes(self) -> Optional[StructuralAdaptation]:
        threshold = self.config.structural_change_threshold
        if self.total_fractures % threshold != 0:
            return None

        logger.info(
            "Evaluating structural adaptations after %d fractures",
            self.total_fractures,
        )
        insights = self.miner.analyze_structural_patterns(self.history.recent(threshold))
        proposed = self.miner.propose_structural_changes(insights)
        if not proposed:
            return None

        adaptation = StructuralAdaptation(
            insights=insights,
            proposed_changes=proposed,
            fracture_count=self.total_fractures,
        )
        self._emit(adaptation)
        return adaptation

    # ================================================================
    # SERVING / HOST FEEDBACK
    # ================================================================

    def get_optimal_action(self, data: FrameInput) -> str:
        frame = to_frame(data)
        with self._lock:
            return self.learner.get_optimal_action(frame)

    def mark_prevented(self, count: int = 1) -> None:
        """Host reports that an intervention headed off a fracture."""
        with self._lock:
            self.prevented_fractures += count

    def reset(self) -> None:
        with self._lock:
            self.frames.clear()
            self.history.clear()
            self.learner.reset()
            self.miner.profile = CognitiveProfile()
            self.total_fractures = 0
            self.prevented_fractures = 0
            logger.info("Antifragile engine reset")

    # ================================================================
    # STATUS
    # ================================================================

    def recent_fracture_rate(self) -> float:
        """Fractures per minute over the last hour."""
        recent = self.history.since(self.clock() - RECENT_WINDOW_MS)
        return len(recent) / (RECENT_WINDOW_MS / 60_000.0)

    def learning_effectiveness(self) -> float:
        """Relative drop in average severity, last 10 vs the 10 before."""
        if self.total_fractures < MIN_FRACTURES_FOR_EFFECTIVENESS:
            return 0.0
        events = self.history.recent(20)
        older, recent = events[:-10], events[-10:]
        if not older:
            return 0.0
        older_avg = float(np.mean([e.severity for e in older]))
        recent_avg = float(np.mean([e.severity for e in recent]))
        if older_avg <= 0:
            return 0.0
        return max(0.0, (older_avg - recent_avg) / older_avg)

    def get_status(self) -> dict:
        with self._lock:
            return {
                "enabled": self.config.enabled,
                "total_fractures": self.total_fractures,
                "prevented_fractures": self.prevented_fractures,
                "adaptation_count": self.learner.adaptation_count,
                "exploration_rate": self.learner.exploration_rate,
                "q_table_size": len(self.learner.q_table),
                "experience_buffer_size": len(self.learner.replay),
                "last_policy_update": self.learner.last_policy_update,
                "cognitive_profile": self.miner.profile.snapshot(),
                "failure_patterns": dict(self.learner.failure_patterns),
                "recent_fracture_rate": self.recent_fracture_rate(),
                "learning_effectiveness": self.learning_effectiveness(),
            }
