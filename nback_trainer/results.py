from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .core import SessionStatus, TrialOutcome
from .recorder import TrialRecord


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Flat roll-up of a session's trial records, for the results screen and storage."""

    status: SessionStatus | None
    trials: int
    hits: int
    false_alarms: int
    misses: int
    no_response: int
    final_score: int
    max_n: int
    mean_rt_ms: float | None
    median_rt_ms: float | None


def summarize_records(
    records: Sequence[TrialRecord],
    *,
    status: SessionStatus | None = None,
    final_score: int | None = None,
) -> SessionSummary:
    hits = 0
    false_alarms = 0
    for rec in records:
        # Hits and false alarms are per key, so rebuild them from the keys pressed.
        for modality in rec.response_keys:
            if rec.expected(modality):
                hits += 1
            else:
                false_alarms += 1

    misses = sum(1 for rec in records if rec.outcome.is_miss)
    no_response = sum(1 for rec in records if rec.outcome is TrialOutcome.NO_RESPONSE)

    rts_ms = sorted(int(round(rec.reaction_time_ms)) for rec in records if rec.reaction_time_ms is not None)
    mean_ms: float | None
    median_ms: float | None
    if not rts_ms:
        mean_ms = None
        median_ms = None
    else:
        mean_ms = float(sum(rts_ms)) / float(len(rts_ms))
        mid = len(rts_ms) // 2
        if len(rts_ms) % 2 == 1:
            median_ms = float(rts_ms[mid])
        else:
            median_ms = float(rts_ms[mid - 1] + rts_ms[mid]) / 2.0

    score = sum(rec.points for rec in records) if final_score is None else int(final_score)
    return SessionSummary(
        status=status,
        trials=len(records),
        hits=hits,
        false_alarms=false_alarms,
        misses=misses,
        no_response=no_response,
        final_score=score,
        max_n=max((rec.n for rec in records), default=0),
        mean_rt_ms=mean_ms,
        median_rt_ms=median_ms,
    )
