from __future__ import annotations

import logging
from enum import StrEnum

from .clock import Clock, elapsed_ms
from .core import Modality, TrialOutcome
from .recorder import OpenTrial
from .scoring import Scorer

logger = logging.getLogger(__name__)


class WindowState(StrEnum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"


class ResponseWindow:
    """Timed input window for one trial.

    The window always stays open for the full ``duration_s``; responses are
    scored as they arrive and misses are settled when it closes.
    """

    def __init__(self, *, clock: Clock, duration_s: float, scorer: Scorer) -> None:
        if duration_s <= 0.0:
            raise ValueError("duration_s must be > 0")
        self._clock = clock
        self._duration_s = float(duration_s)
        self._scorer = scorer
        self._state = WindowState.IDLE
        self._trial: OpenTrial | None = None
        self._opened_at_s = 0.0

    @property
    def state(self) -> WindowState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is WindowState.AWAITING_INPUT

    @property
    def trial(self) -> OpenTrial | None:
        return self._trial

    @property
    def closes_at_s(self) -> float | None:
        if not self.is_open:
            return None
        return self._opened_at_s + self._duration_s

    def time_remaining_s(self) -> float | None:
        closes_at = self.closes_at_s
        if closes_at is None:
            return None
        return max(0.0, closes_at - self._clock.now())

    def open(self, trial: OpenTrial, *, opened_at_s: float) -> None:
        if self.is_open:
            raise RuntimeError("response window is already open")
        self._trial = trial
        self._opened_at_s = float(opened_at_s)
        self._state = WindowState.AWAITING_INPUT

    def respond(self, modality: Modality) -> TrialOutcome | None:
        """Score a key press. Returns the classification, or None if ignored."""

        trial = self._trial
        if not self.is_open or trial is None:
            return None
        if self._clock.now() >= self._opened_at_s + self._duration_s:
            # Late press; the window is due to close on the next update.
            return None
        if trial.has_responded(modality):
            return None

        trial.response_keys.append(modality)
        if trial.reaction_time_ms is None:
            trial.reaction_time_ms = elapsed_ms(self._clock, self._opened_at_s)

        if trial.is_pending(modality):
            trial.consume(modality)
            outcome = TrialOutcome.CORRECT
        else:
            outcome = TrialOutcome.FALSE_ALARM

        trial.outcome = outcome
        trial.points += self._scorer.apply(outcome)
        logger.debug("Trial %d: %s response -> %s", trial.trial_number, modality.value, outcome.value)
        return outcome

    def close(self) -> OpenTrial:
        """Close the window, settling a miss if nothing was pressed."""

        trial = self._trial
        if not self.is_open or trial is None:
            raise RuntimeError("response window is not open")

        if not trial.response_keys:
            pending = trial.pending_modalities()
            if pending:
                outcome = TrialOutcome.miss_for(pending[0])
                trial.outcome = outcome
                trial.points = self._scorer.apply(outcome)
                logger.debug("Trial %d: missed %s", trial.trial_number, ", ".join(m.value for m in pending))

        self._state = WindowState.IDLE
        self._trial = None
        return trial

    def cancel(self) -> None:
        self._state = WindowState.IDLE
        self._trial = None
