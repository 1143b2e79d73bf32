from __future__ import annotations

import pytest

from nback_trainer.core import Modality
from nback_trainer.history import ABSENT, HistoryStore, MatchEvaluator


def test_look_back_returns_none_until_history_is_long_enough() -> None:
    h = HistoryStore()
    h.record(Modality.LOCATION, 4)
    assert h.look_back(Modality.LOCATION, 2) is None

    h.record(Modality.LOCATION, 7)
    assert h.look_back(Modality.LOCATION, 2) == 4
    assert h.look_back(Modality.LOCATION, 1) == 7


def test_cell_zero_is_a_real_value_not_missing() -> None:
    h = HistoryStore()
    h.record(Modality.LOCATION, 0)
    h.record(Modality.LOCATION, 3)
    ev = MatchEvaluator(h)
    assert ev.expected_match(Modality.LOCATION, 2, 0) is True


@pytest.mark.parametrize(
    ("seq", "n", "current", "expected"),
    [
        (["RED", "BLUE"], 2, "RED", True),
        (["RED", "BLUE"], 2, "BLUE", False),
        (["RED", "BLUE"], 1, "BLUE", True),
        (["RED"], 2, "RED", False),
        ([], 1, "RED", False),
        (["RED", "BLUE", "GREEN"], 3, "RED", True),
        (["RED", "BLUE", "GREEN"], 3, "GREEN", False),
    ],
)
def test_expected_match_iff_value_n_back_equals_current(
    seq: list[str], n: int, current: str, expected: bool
) -> None:
    h = HistoryStore()
    for value in seq:
        h.record(Modality.COLOR, value)
    assert MatchEvaluator(h).expected_match(Modality.COLOR, n, current) is expected


def test_absent_entries_never_match() -> None:
    h = HistoryStore()
    h.record(Modality.AUDIO, ABSENT)
    h.record(Modality.AUDIO, "C4")
    ev = MatchEvaluator(h)
    assert ev.expected_match(Modality.AUDIO, 2, "C4") is False
    assert ev.expected_match(Modality.AUDIO, 2, ABSENT) is False


def test_modalities_are_kept_apart() -> None:
    h = HistoryStore()
    h.record(Modality.LOCATION, 1)
    h.record(Modality.COLOR, "RED")
    h.record(Modality.AUDIO, ABSENT)
    assert h.values(Modality.LOCATION) == (1,)
    assert h.values(Modality.COLOR) == ("RED",)
    assert h.values(Modality.AUDIO) == (ABSENT,)


def test_reset_all_clears_every_modality() -> None:
    h = HistoryStore()
    for m in Modality:
        h.record(m, ABSENT)
        h.record(m, ABSENT)
    h.reset_all()
    assert all(h.length(m) == 0 for m in Modality)
    assert h.look_back(Modality.COLOR, 1) is None
