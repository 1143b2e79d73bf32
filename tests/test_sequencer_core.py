from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from nback_trainer.config import NBackConfig
from nback_trainer.core import Modality, Mode, SeededRng
from nback_trainer.history import ABSENT, HistoryStore, MatchEvaluator
from nback_trainer.recorder import OpenTrial
from nback_trainer.scoring import Scorer
from nback_trainer.sequencer import StimulusPlan, StimulusSequencer


@dataclass
class RecordingPresenter:
    calls: list[tuple[str, object]] = field(default_factory=list)

    def highlight(self, cell_index: int, color: str) -> None:
        self.calls.append(("highlight", (cell_index, color)))

    def reset_cell(self, cell_index: int) -> None:
        self.calls.append(("reset", cell_index))

    def play_sound(self, clip_id: str) -> None:
        self.calls.append(("sound", clip_id))


class ScriptedRng:
    """Feeds fixed answers to chance() and takes the first palette entry."""

    def __init__(self, chances: Sequence[bool]) -> None:
        self._chances = list(chances)

    def chance(self, probability: float) -> bool:
        return self._chances.pop(0)

    def randrange(self, stop: int) -> int:
        return 0

    def choice(self, seq: Sequence[Any]) -> Any:
        return seq[0]


def _build(rng: Any, **cfg: Any) -> tuple[StimulusSequencer, HistoryStore, Scorer, RecordingPresenter]:
    config = NBackConfig(**cfg)
    history = HistoryStore()
    scorer = Scorer(points_for_correct=10, points_for_false_alarm=-5, points_for_miss=-5)
    presenter = RecordingPresenter()
    seq = StimulusSequencer(
        config=config,
        rng=rng,
        history=history,
        evaluator=MatchEvaluator(history),
        scorer=scorer,
        presenter=presenter,
    )
    return seq, history, scorer, presenter


def _trial(mode: Mode, n: int = 2) -> OpenTrial:
    return OpenTrial(trial_number=1, timestamp_s=0.0, mode=mode, n=n)


@pytest.mark.parametrize(
    ("mode", "active"),
    [
        (Mode.VISUAL, (Modality.COLOR,)),
        (Mode.AUDITORY, (Modality.AUDIO,)),
        (Mode.SPATIAL, (Modality.LOCATION,)),
    ],
)
def test_single_modality_modes_present_one_modality(mode: Mode, active: tuple[Modality, ...]) -> None:
    seq, history, _, _ = _build(SeededRng(3))
    plan = seq.next_plan(mode)
    assert plan.active_modalities == active

    seq.present(plan, _trial(mode))
    seq.withdraw(plan)
    for m in Modality:
        assert history.length(m) == 1
        if m not in active:
            assert history.values(m) == (ABSENT,)


def test_visual_mode_highlights_a_host_cell_without_location() -> None:
    seq, _, _, presenter = _build(SeededRng(5))
    plan = seq.next_plan(Mode.VISUAL)
    assert plan.cell_index is None
    assert plan.highlight_cell is not None
    assert plan.highlight_color == plan.color

    seq.present(plan, _trial(Mode.VISUAL))
    assert presenter.calls == [("highlight", (plan.highlight_cell, plan.color))]
    seq.withdraw(plan)
    assert presenter.calls[-1] == ("reset", plan.highlight_cell)


def test_spatial_mode_uses_configured_highlight_color() -> None:
    seq, _, _, _ = _build(SeededRng(5), spatial_highlight_color="WHITE")
    plan = seq.next_plan(Mode.SPATIAL)
    assert plan.highlight_color == "WHITE"
    assert plan.color is None


def test_combined_audio_only_trial_records_absent_visual() -> None:
    # visual draw fails, audio draw succeeds
    seq, history, _, presenter = _build(ScriptedRng([False, True]))
    plan = seq.next_plan(Mode.COMBINED)
    assert plan.active_modalities == (Modality.AUDIO,)

    seq.present(plan, _trial(Mode.COMBINED))
    seq.withdraw(plan)
    assert history.values(Modality.LOCATION) == (ABSENT,)
    assert history.values(Modality.COLOR) == (ABSENT,)
    assert history.values(Modality.AUDIO) == ("C4",)
    assert [c[0] for c in presenter.calls] == ["sound"]


@pytest.mark.parametrize(
    ("forced_visual", "active"),
    [
        (True, (Modality.LOCATION, Modality.COLOR)),
        (False, (Modality.AUDIO,)),
    ],
)
def test_combined_forces_exactly_one_channel_when_both_draws_fail(
    forced_visual: bool, active: tuple[Modality, ...]
) -> None:
    seq, _, _, _ = _build(ScriptedRng([False, False, forced_visual]))
    plan = seq.next_plan(Mode.COMBINED)
    assert plan.active_modalities == active


def test_combined_always_presents_something_with_real_rng() -> None:
    seq, _, _, _ = _build(SeededRng(1234))
    for _ in range(300):
        plan = seq.next_plan(Mode.COMBINED)
        assert plan.visual_presented or plan.audio_presented
        # Location and color travel together.
        assert (plan.cell_index is None) == (plan.color is None)


def test_combined_double_match_counts_twice() -> None:
    seq, _, scorer, _ = _build(ScriptedRng([True, False] * 3))
    for _ in range(2):
        plan = seq.next_plan(Mode.COMBINED)
        trial = _trial(Mode.COMBINED)
        seq.present(plan, trial)
        seq.withdraw(plan)
    assert scorer.block.expected_matches == 0

    plan = seq.next_plan(Mode.COMBINED)
    trial = _trial(Mode.COMBINED)
    seq.present(plan, trial)
    assert trial.expected[Modality.LOCATION] is True
    assert trial.expected[Modality.COLOR] is True
    assert trial.expected[Modality.AUDIO] is False
    assert scorer.block.expected_matches == 2


def test_present_rejects_modality_outside_mode() -> None:
    seq, _, _, _ = _build(SeededRng(1))
    plan = StimulusPlan(mode=Mode.AUDITORY, cell_index=2, highlight_cell=2, highlight_color="RED")
    with pytest.raises(ValueError):
        seq.present(plan, _trial(Mode.AUDITORY))


def test_clear_resets_cell_without_touching_history() -> None:
    seq, history, _, presenter = _build(SeededRng(9))
    plan = seq.next_plan(Mode.SPATIAL)
    seq.present(plan, _trial(Mode.SPATIAL))
    seq.clear(plan)
    assert presenter.calls[-1] == ("reset", plan.highlight_cell)
    assert history.length(Modality.LOCATION) == 0
