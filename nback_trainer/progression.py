from __future__ import annotations

import logging
from dataclasses import dataclass

from .core import TRAINING_PHASES, Mode, ProgressionPolicy, SessionStatus
from .history import HistoryStore
from .scoring import BlockStats

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "Fixed Mode assessment complete."
FAILED_MESSAGE = "Game Over: Failed to meet accuracy threshold."
TRANSITION_MESSAGE = "Get Ready for the Next Phase..."


@dataclass(slots=True)
class SessionState:
    mode: Mode
    n: int
    phase_index: int
    policy: ProgressionPolicy
    consecutive_failures: int = 0
    status: SessionStatus = SessionStatus.RUNNING


@dataclass(frozen=True, slots=True)
class BlockDecision:
    accuracy: float
    advanced: bool
    mode: Mode
    n: int
    n_changed: bool
    consecutive_failures: int
    status: SessionStatus
    message: str | None = None

    @property
    def terminal(self) -> bool:
        return self.status.is_terminal


def initial_state(*, n: int, policy: ProgressionPolicy) -> SessionState:
    # Sessions at N<=2 walk the training phases; higher starts go straight to Combined.
    phase_index = 0 if n <= 2 else len(TRAINING_PHASES) - 1
    return SessionState(mode=TRAINING_PHASES[phase_index], n=int(n), phase_index=phase_index, policy=policy)


class ProgressionStateMachine:
    """Block-boundary difficulty control.

    Owns the session state. Called once per finished block; every call resets
    the block counters it was handed.
    """

    def __init__(
        self,
        *,
        state: SessionState,
        history: HistoryStore,
        accuracy_threshold: float,
        max_consecutive_failures: int,
    ) -> None:
        self._state = state
        self._history = history
        self._threshold = float(accuracy_threshold)
        self._max_failures = int(max_consecutive_failures)

    @property
    def state(self) -> SessionState:
        return self._state

    def evaluate(self, block: BlockStats) -> BlockDecision:
        st = self._state
        if st.status.is_terminal:
            raise RuntimeError(f"session already {st.status.value}")

        accuracy = block.accuracy()
        advance = st.policy is ProgressionPolicy.FIXED or accuracy >= self._threshold
        logger.info(
            "Block ended for %s (N=%d). Correct: %d, False alarms: %d, Expected: %d, Accuracy: %.0f%%",
            st.mode.value,
            st.n,
            block.correct_responses,
            block.false_alarms,
            block.expected_matches,
            accuracy * 100.0,
        )

        message: str | None = None
        n_before = st.n
        if advance:
            st.consecutive_failures = 0
            message = self._advance()
        else:
            st.consecutive_failures += 1
            logger.info("Accuracy below threshold. Failure count: %d", st.consecutive_failures)
            if st.consecutive_failures >= self._max_failures:
                st.status = SessionStatus.FAILED
                message = FAILED_MESSAGE

        block.reset()
        return BlockDecision(
            accuracy=accuracy,
            advanced=advance,
            mode=st.mode,
            n=st.n,
            n_changed=st.n != n_before,
            consecutive_failures=st.consecutive_failures,
            status=st.status,
            message=message,
        )

    def _advance(self) -> str | None:
        st = self._state
        last_phase = len(TRAINING_PHASES) - 1

        if st.n == 2 and st.phase_index < last_phase:
            st.phase_index += 1
            st.mode = TRAINING_PHASES[st.phase_index]
            logger.info("New phase starting: %s at N=%d", st.mode.value, st.n)
            return None

        if st.n < 3:
            self._set_n(3)
            return None

        if st.policy is ProgressionPolicy.FIXED:
            st.status = SessionStatus.COMPLETED
            return COMPLETED_MESSAGE

        self._set_n(st.n + 1)
        return None

    def _set_n(self, n: int) -> None:
        st = self._state
        st.n = n
        st.mode = Mode.COMBINED
        st.phase_index = len(TRAINING_PHASES) - 1
        self._history.reset_all()
        logger.info("Level up: N=%d, mode Combined", n)
