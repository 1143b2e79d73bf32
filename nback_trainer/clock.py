from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source injected into the trial engine.

    The engine never reads real time directly, so tests can drive whole
    sessions with a fake clock.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


def elapsed_ms(clock: Clock, since_s: float) -> float:
    """Milliseconds elapsed on ``clock`` since ``since_s`` (never negative)."""

    return max(0.0, (clock.now() - since_s) * 1000.0)
