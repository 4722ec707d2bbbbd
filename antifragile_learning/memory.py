"""
Bounded rolling memories for the learning core.

FrameBuffer:     the last few ticks, feeding post-mortem analysis.
ReplayBuffer:    past experiences reused for batched TD learning.
FractureHistory: the longitudinal record the pattern miner scans.

All three evict oldest-first once full. None of them ever grows past
its capacity.
"""

from collections import deque
from typing import Deque, Iterator, List, Optional

import numpy as np

from .types import Experience, Frame, FractureEvent


class FrameBuffer:
    """Rolling window of the most recent frames."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._frames: Deque[Frame] = deque(maxlen=capacity)

    def append(self, frame: Frame) -> None:
        self._frames.append(frame)

    def latest(self) -> Optional[Frame]:
        return self._frames[-1] if self._frames else None

    def window_before_latest(self, size: int) -> List[Frame]:
        """Up to ``size`` frames immediately preceding the newest frame."""
        frames = list(self._frames)[:-1]
        if size <= 0:
            return []
        return frames[-size:]

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self._frames)


class ReplayBuffer:
    """Experience replay with uniform sampling (with replacement)."""

    def __init__(self, capacity: int, rng: Optional[np.random.Generator] = None):
        self.capacity = capacity
        self._experiences: Deque[Experience] = deque(maxlen=capacity)
        self._rng = rng if rng is not None else np.random.default_rng()

    def add(self, experience: Experience) -> None:
        self._experiences.append(experience)

    def extend(self, experiences: List[Experience]) -> None:
        for e in experiences:
            self.add(e)

    def sample(self, batch_size: int) -> List[Experience]:
        """Draw ``min(batch_size, len)`` experiences uniformly at random.

        Sampling is with replacement, so duplicates are expected.
        """
        n = min(batch_size, len(self._experiences))
        if n == 0:
            return []
        indices = self._rng.integers(0, len(self._experiences), size=n)
        return [self._experiences[int(i)] for i in indices]

    def clear(self) -> None:
        self._experiences.clear()

    def __len__(self) -> int:
        return len(self._experiences)

    def __iter__(self) -> Iterator[Experience]:
        return iter(self._experiences)


class FractureHistory:
    """Bounded, append-only log of fracture post-mortems."""

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._events: Deque[FractureEvent] = deque(maxlen=capacity)

    def append(self, event: FractureEvent) -> None:
        self._events.append(event)

    def recent(self, n: int) -> List[FractureEvent]:
        """The last ``n`` events, oldest first."""
        if n <= 0:
            return []
        return list(self._events)[-n:]

    def since(self, timestamp: float) -> List[FractureEvent]:
        return [e for e in self._events if e.timestamp > timestamp]

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[FractureEvent]:
        return iter(self._events)

    def stats(self) -> dict:
        severities = [e.severity for e in self._events]
        return {
            "count": len(self._events),
            "capacity": self.capacity,
            "avg_severity": float(np.mean(severities)) if severities else 0.0,
        }
