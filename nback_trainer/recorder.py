from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from .collaborators import Display, TrialExporter
from .core import Modality, Mode, TrialOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrialRecord:
    trial_number: int
    timestamp_s: float  # seconds since session start on the engine clock, not wall-clock time
    mode: Mode
    n: int
    location_match_expected: bool
    color_match_expected: bool
    audio_match_expected: bool
    response_keys: tuple[Modality, ...]
    outcome: TrialOutcome
    points: int
    reaction_time_ms: float | None

    def expected(self, modality: Modality) -> bool:
        if modality is Modality.LOCATION:
            return self.location_match_expected
        if modality is Modality.COLOR:
            return self.color_match_expected
        return self.audio_match_expected


@dataclass(slots=True)
class OpenTrial:
    """The trial currently inside its response window.

    Expectation flags are set once by the sequencer. ``pending`` flags are
    consumed by correct responses; ``expected`` keeps the initial value for
    the record.
    """

    trial_number: int
    timestamp_s: float
    mode: Mode
    n: int
    expected: dict[Modality, bool] = field(default_factory=lambda: {m: False for m in Modality})
    pending: dict[Modality, bool] = field(default_factory=lambda: {m: False for m in Modality})
    response_keys: list[Modality] = field(default_factory=list)
    outcome: TrialOutcome = TrialOutcome.NO_RESPONSE
    points: int = 0
    reaction_time_ms: float | None = None

    def set_expected(self, modality: Modality, is_match: bool) -> None:
        self.expected[modality] = bool(is_match)
        self.pending[modality] = bool(is_match)

    def is_pending(self, modality: Modality) -> bool:
        return self.pending[modality]

    def consume(self, modality: Modality) -> None:
        self.pending[modality] = False

    def pending_modalities(self) -> list[Modality]:
        return [m for m in Modality if self.pending[m]]

    def has_responded(self, modality: Modality) -> bool:
        return modality in self.response_keys

    def freeze(self) -> TrialRecord:
        return TrialRecord(
            trial_number=self.trial_number,
            timestamp_s=self.timestamp_s,
            mode=self.mode,
            n=self.n,
            location_match_expected=self.expected[Modality.LOCATION],
            color_match_expected=self.expected[Modality.COLOR],
            audio_match_expected=self.expected[Modality.AUDIO],
            response_keys=tuple(self.response_keys),
            outcome=self.outcome,
            points=self.points,
            reaction_time_ms=self.reaction_time_ms,
        )


class TrialRecorder:
    def __init__(self) -> None:
        self._records: list[TrialRecord] = []

    def begin(self, *, trial_number: int, timestamp_s: float, mode: Mode, n: int) -> OpenTrial:
        return OpenTrial(trial_number=trial_number, timestamp_s=timestamp_s, mode=mode, n=n)

    def finalize(self, trial: OpenTrial) -> TrialRecord:
        record = trial.freeze()
        self._records.append(record)
        return record

    def records(self) -> list[TrialRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def export(self, exporter: TrialExporter, *, display: Display) -> bool:
        """Hand every record to ``exporter``. Failures become a display warning."""

        if not self._records:
            return False
        try:
            exporter.export(list(self._records))
        except (OSError, sqlite3.Error, ValueError) as exc:
            logger.warning("Trial export failed: %s", exc)
            display.show_warning(f"Could not save trial data: {exc}")
            return False
        logger.info("Exported %d trials", len(self._records))
        return True
