from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from .core import TrialOutcome


@dataclass(slots=True)
class BlockStats:
    correct_responses: int = 0
    expected_matches: int = 0
    false_alarms: int = 0

    def reset(self) -> None:
        self.correct_responses = 0
        self.expected_matches = 0
        self.false_alarms = 0

    def accuracy(self) -> float:
        return block_accuracy(
            correct_responses=self.correct_responses,
            expected_matches=self.expected_matches,
            false_alarms=self.false_alarms,
        )


def block_accuracy(*, correct_responses: int, expected_matches: int, false_alarms: int) -> float:
    """(hits - false alarms) / expected matches, floored at 0; 1.0 when nothing was expected."""

    if expected_matches <= 0:
        return 1.0
    return max(0.0, (correct_responses - false_alarms) / float(expected_matches))


class Scorer:
    """Point deltas per outcome, the running score, and the current block counters."""

    def __init__(
        self,
        *,
        points_for_correct: int,
        points_for_false_alarm: int,
        points_for_miss: int,
        on_score_changed: Callable[[int], None] | None = None,
    ) -> None:
        self._points_for_correct = int(points_for_correct)
        self._points_for_false_alarm = int(points_for_false_alarm)
        self._points_for_miss = int(points_for_miss)
        self._on_score_changed = on_score_changed
        self._score = 0
        self.block = BlockStats()

    @property
    def score(self) -> int:
        return self._score

    def points_for(self, outcome: TrialOutcome) -> int:
        if outcome is TrialOutcome.CORRECT:
            return self._points_for_correct
        if outcome is TrialOutcome.FALSE_ALARM:
            return self._points_for_false_alarm
        if outcome.is_miss:
            return self._points_for_miss
        return 0

    def record_expected_match(self) -> None:
        self.block.expected_matches += 1

    def apply(self, outcome: TrialOutcome) -> int:
        """Count ``outcome`` towards the block and score; returns the point delta."""

        if outcome is TrialOutcome.CORRECT:
            self.block.correct_responses += 1
        elif outcome is TrialOutcome.FALSE_ALARM:
            self.block.false_alarms += 1

        delta = self.points_for(outcome)
        if delta != 0:
            self._score += delta
            self._notify()
        return delta

    def reset(self) -> None:
        self._score = 0
        self.block.reset()
        self._notify()

    def _notify(self) -> None:
        if self._on_score_changed is not None:
            self._on_score_changed(self._score)
