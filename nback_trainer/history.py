from __future__ import annotations

from collections.abc import Hashable
from typing import Final

from .core import Modality


class _Absent:
    """Placeholder recorded for a modality that was not presented on a trial."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Final = _Absent()

StimulusValue = Hashable


class HistoryStore:
    """Per-modality, append-only record of what was shown on each trial.

    All three sequences grow together: every trial appends exactly one entry
    to each modality (the value, or ``ABSENT``), so index ``i`` refers to the
    same trial everywhere.
    """

    def __init__(self) -> None:
        self._seqs: dict[Modality, list[StimulusValue]] = {m: [] for m in Modality}

    def record(self, modality: Modality, value: StimulusValue) -> None:
        self._seqs[modality].append(value)

    def look_back(self, modality: Modality, n: int) -> StimulusValue | None:
        """Value presented ``n`` trials ago, or None if the history is too short."""

        seq = self._seqs[modality]
        if n <= 0 or len(seq) < n:
            return None
        return seq[len(seq) - n]

    def reset_all(self) -> None:
        for seq in self._seqs.values():
            seq.clear()

    def length(self, modality: Modality) -> int:
        return len(self._seqs[modality])

    def values(self, modality: Modality) -> tuple[StimulusValue, ...]:
        return tuple(self._seqs[modality])


class MatchEvaluator:
    def __init__(self, history: HistoryStore) -> None:
        self._history = history

    def expected_match(self, modality: Modality, n: int, current: StimulusValue) -> bool:
        if current is ABSENT or self._history.length(modality) < n:
            return False
        previous = self._history.look_back(modality, n)
        if previous is None or previous is ABSENT:
            return False
        return previous == current
