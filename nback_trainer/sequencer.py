from __future__ import annotations

import logging
from dataclasses import dataclass

from .collaborators import Presenter
from .config import NBackConfig
from .core import MODE_MODALITIES, Modality, Mode, SeededRng
from .history import ABSENT, HistoryStore, MatchEvaluator, StimulusValue
from .recorder import OpenTrial
from .scoring import Scorer

logger = logging.getLogger(__name__)

# Independent per-channel presentation odds in Combined mode.
COMBINED_CHANNEL_PROBABILITY = 0.7


@dataclass(frozen=True, slots=True)
class StimulusPlan:
    """What one trial shows.

    ``cell_index``/``color``/``clip_id`` are the n-back stimulus values (None
    when that modality is not part of the trial). ``highlight_cell`` and
    ``highlight_color`` describe what is lit on the grid, which in Visual mode
    is a random host cell that carries no location information.
    """

    mode: Mode
    cell_index: int | None = None
    color: str | None = None
    clip_id: str | None = None
    highlight_cell: int | None = None
    highlight_color: str | None = None

    def value_for(self, modality: Modality) -> StimulusValue:
        if modality is Modality.LOCATION:
            value: StimulusValue | None = self.cell_index
        elif modality is Modality.COLOR:
            value = self.color
        else:
            value = self.clip_id
        return ABSENT if value is None else value

    @property
    def active_modalities(self) -> tuple[Modality, ...]:
        return tuple(m for m in Modality if self.value_for(m) is not ABSENT)

    @property
    def visual_presented(self) -> bool:
        return self.highlight_cell is not None

    @property
    def audio_presented(self) -> bool:
        return self.clip_id is not None


class StimulusSequencer:
    def __init__(
        self,
        *,
        config: NBackConfig,
        rng: SeededRng,
        history: HistoryStore,
        evaluator: MatchEvaluator,
        scorer: Scorer,
        presenter: Presenter,
    ) -> None:
        self._cfg = config
        self._rng = rng
        self._history = history
        self._evaluator = evaluator
        self._scorer = scorer
        self._presenter = presenter

    def next_plan(self, mode: Mode) -> StimulusPlan:
        if mode is Mode.VISUAL:
            color = self._random_color()
            return StimulusPlan(
                mode=mode,
                color=color,
                highlight_cell=self._random_cell(),
                highlight_color=color,
            )

        if mode is Mode.AUDITORY:
            return StimulusPlan(mode=mode, clip_id=self._random_clip())

        if mode is Mode.SPATIAL:
            index = self._random_cell()
            return StimulusPlan(
                mode=mode,
                cell_index=index,
                highlight_cell=index,
                highlight_color=self._cfg.spatial_highlight_color,
            )

        present_visual = self._rng.chance(COMBINED_CHANNEL_PROBABILITY)
        present_audio = self._rng.chance(COMBINED_CHANNEL_PROBABILITY)
        if not present_visual and not present_audio:
            # Every combined trial shows something.
            if self._rng.chance(0.5):
                present_visual = True
            else:
                present_audio = True

        cell: int | None = None
        color: str | None = None
        if present_visual:
            cell = self._random_cell()
            color = self._random_color()
        clip = self._random_clip() if present_audio else None
        return StimulusPlan(
            mode=mode,
            cell_index=cell,
            color=color,
            clip_id=clip,
            highlight_cell=cell,
            highlight_color=color,
        )

    def present(self, plan: StimulusPlan, trial: OpenTrial) -> None:
        """Evaluate expectations for ``plan`` onto ``trial`` and show it."""

        allowed = MODE_MODALITIES[plan.mode]
        for modality in plan.active_modalities:
            if modality not in allowed:
                raise ValueError(f"{modality.value} is not presented in {plan.mode.value} mode")
            is_match = self._evaluator.expected_match(modality, trial.n, plan.value_for(modality))
            trial.set_expected(modality, is_match)
            if is_match:
                self._scorer.record_expected_match()

        if plan.highlight_cell is not None and plan.highlight_color is not None:
            self._presenter.highlight(plan.highlight_cell, plan.highlight_color)
        if plan.clip_id is not None:
            self._presenter.play_sound(plan.clip_id)

        logger.debug(
            "Trial %d (%s, N=%d): cell=%s color=%s clip=%s expected=%s",
            trial.trial_number,
            plan.mode.value,
            trial.n,
            plan.cell_index,
            plan.color,
            plan.clip_id,
            [m.value for m in trial.pending_modalities()],
        )

    def withdraw(self, plan: StimulusPlan) -> None:
        """Commit ``plan`` to the history and clear it from the screen."""

        for modality in Modality:
            self._history.record(modality, plan.value_for(modality))
        self.clear(plan)

    def clear(self, plan: StimulusPlan) -> None:
        if plan.highlight_cell is not None:
            self._presenter.reset_cell(plan.highlight_cell)

    def _random_cell(self) -> int:
        return self._rng.randrange(self._cfg.cell_count)

    def _random_color(self) -> str:
        return str(self._rng.choice(self._cfg.colors))

    def _random_clip(self) -> str:
        return str(self._rng.choice(self._cfg.audio_clips))
