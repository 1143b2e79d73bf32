from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from .clock import Clock
from .collaborators import Display, NullDisplay, NullPresenter, Presenter, TrialExporter
from .config import NBackConfig
from .core import Modality, Mode, ProgressionPolicy, SeededRng, SessionStatus, parse_modality
from .history import HistoryStore, MatchEvaluator
from .progression import (
    TRANSITION_MESSAGE,
    BlockDecision,
    ProgressionStateMachine,
    SessionState,
    initial_state,
)
from .recorder import TrialRecord, TrialRecorder
from .response_window import ResponseWindow
from .results import SessionSummary, summarize_records
from .scoring import Scorer
from .sequencer import StimulusPlan, StimulusSequencer

logger = logging.getLogger(__name__)


class _Stage(StrEnum):
    AWAITING_INPUT = "awaiting_input"
    INTER_TRIAL = "inter_trial"
    PHASE_TRANSITION = "phase_transition"


@dataclass(frozen=True, slots=True)
class NBackSnapshot:
    """View model for the UI (pure data)."""

    status: SessionStatus
    policy: ProgressionPolicy
    mode: Mode
    n: int
    phase_index: int
    score: int
    trial_number: int
    awaiting_input: bool
    in_transition: bool
    stimulus: StimulusPlan | None
    responded: tuple[Modality, ...]
    window_remaining_s: float | None
    block_correct: int
    block_expected: int
    block_false_alarms: int
    consecutive_failures: int
    info_text: str
    message: str | None


def info_text_for(mode: Mode, n: int) -> str:
    if mode is Mode.VISUAL:
        return f"Phase: Color Matching (N={n})"
    if mode is Mode.AUDITORY:
        return f"Phase: Sound Matching (N={n})"
    if mode is Mode.SPATIAL:
        return f"Phase: Location Matching (N={n})"
    if n > 2:
        return f"Challenge: Combined Mode (N={n})"
    return f"Phase: Combined Mode (N={n})"


class NBackEngine:
    """Adaptive multi-modality N-back session.

    Driven entirely by ``update()`` and an injected clock: each call settles
    every stage deadline that has passed (response window, inter-stimulus
    delay, phase transition pause). Key presses arrive through ``respond()``
    between updates and never move a deadline.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        config: NBackConfig | None = None,
        presenter: Presenter | None = None,
        display: Display | None = None,
        exporter: TrialExporter | None = None,
    ) -> None:
        cfg = config or NBackConfig()
        cfg.validate()

        self._clock = clock
        self._seed = int(seed)
        self._cfg = cfg
        self._presenter: Presenter = presenter or NullPresenter()
        self._display: Display = display or NullDisplay()
        self._exporter = exporter

        self._rng = SeededRng(self._seed)
        self._history = HistoryStore()
        self._scorer = Scorer(
            points_for_correct=cfg.points_for_correct,
            points_for_false_alarm=cfg.points_for_false_alarm,
            points_for_miss=cfg.points_for_miss,
            on_score_changed=self._display.show_score,
        )
        self._recorder = TrialRecorder()
        self._window = ResponseWindow(clock=clock, duration_s=cfg.stimulus_duration_s, scorer=self._scorer)
        self._sequencer = StimulusSequencer(
            config=cfg,
            rng=self._rng,
            history=self._history,
            evaluator=MatchEvaluator(self._history),
            scorer=self._scorer,
            presenter=self._presenter,
        )
        self._progression = self._new_progression()

        self._status = SessionStatus.IDLE
        self._stage: _Stage | None = None
        self._deadline_s: float | None = None
        self._plan: StimulusPlan | None = None
        self._last_decision: BlockDecision | None = None
        self._trial_count = 0
        self._session_started_at_s = 0.0
        self._message: str | None = None
        self._exported = False
        self._export_attempted = False

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def config(self) -> NBackConfig:
        return self._cfg

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def state(self) -> SessionState:
        return self._progression.state

    @property
    def score(self) -> int:
        return self._scorer.score

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def exported(self) -> bool:
        return self._exported

    @property
    def export_attempted(self) -> bool:
        return self._export_attempted

    def start(self) -> None:
        """Begin a fresh session, tearing down any session still in flight."""

        self._cancel_active()

        self._history.reset_all()
        self._scorer.reset()
        self._recorder.clear()
        self._progression = self._new_progression()

        now = self._clock.now()
        self._status = SessionStatus.RUNNING
        self._session_started_at_s = now
        self._trial_count = 0
        self._last_decision = None
        self._exported = False
        self._export_attempted = False

        st = self._progression.state
        logger.info("Session started: %s policy, mode %s, N=%d", st.policy.value, st.mode.value, st.n)
        self._show(info_text_for(st.mode, st.n))
        self._begin_trial(now)

    def can_exit(self) -> bool:
        # A running Fixed assessment must be played to its verdict.
        return not (self._status is SessionStatus.RUNNING and self._cfg.policy is ProgressionPolicy.FIXED)

    def abort(self) -> None:
        """Stop the running session without a verdict; records are kept."""

        if self._status is not SessionStatus.RUNNING:
            return
        self._cancel_active()
        self._status = SessionStatus.IDLE
        logger.info("Session aborted after %d trials", self._trial_count)

    def update(self) -> None:
        if self._status is not SessionStatus.RUNNING:
            return
        now = self._clock.now()
        while (
            self._status is SessionStatus.RUNNING
            and self._deadline_s is not None
            and now >= self._deadline_s
        ):
            self._advance_stage(self._deadline_s)

    def respond(self, modality: Modality) -> bool:
        """Register a match key for ``modality``. Returns True if it was scored."""

        if self._status is not SessionStatus.RUNNING:
            return False
        return self._window.respond(modality) is not None

    def submit_answer(self, raw: str) -> bool:
        modality = parse_modality(raw)
        if modality is None:
            return False
        return self.respond(modality)

    def records(self) -> list[TrialRecord]:
        return self._recorder.records()

    def summary(self) -> SessionSummary:
        return summarize_records(self._recorder.records(), status=self._status, final_score=self._scorer.score)

    def export_records(self) -> bool:
        if self._exporter is None:
            return False
        if not self._recorder.records():
            return False
        self._export_attempted = True
        ok = self._recorder.export(self._exporter, display=self._display)
        if ok:
            self._exported = True
        return ok

    def snapshot(self) -> NBackSnapshot:
        st = self._progression.state
        trial = self._window.trial
        block = self._scorer.block
        return NBackSnapshot(
            status=self._status,
            policy=st.policy,
            mode=st.mode,
            n=st.n,
            phase_index=st.phase_index,
            score=self._scorer.score,
            trial_number=self._trial_count,
            awaiting_input=self._window.is_open,
            in_transition=self._stage is _Stage.PHASE_TRANSITION,
            stimulus=self._plan if self._window.is_open else None,
            responded=() if trial is None else tuple(trial.response_keys),
            window_remaining_s=self._window.time_remaining_s(),
            block_correct=block.correct_responses,
            block_expected=block.expected_matches,
            block_false_alarms=block.false_alarms,
            consecutive_failures=st.consecutive_failures,
            info_text=info_text_for(st.mode, st.n),
            message=self._message,
        )

    def _new_progression(self) -> ProgressionStateMachine:
        return ProgressionStateMachine(
            state=initial_state(n=self._cfg.initial_n, policy=self._cfg.policy),
            history=self._history,
            accuracy_threshold=self._cfg.accuracy_threshold,
            max_consecutive_failures=self._cfg.max_consecutive_failures,
        )

    def _advance_stage(self, at_s: float) -> None:
        if self._stage is _Stage.AWAITING_INPUT:
            self._close_trial(at_s)
        elif self._stage is _Stage.INTER_TRIAL:
            self._after_inter_trial(at_s)
        elif self._stage is _Stage.PHASE_TRANSITION:
            self._continue_after_block(at_s)
        else:
            raise RuntimeError("engine has a deadline but no active stage")

    def _begin_trial(self, at_s: float) -> None:
        self._trial_count += 1
        st = self._progression.state
        trial = self._recorder.begin(
            trial_number=self._trial_count,
            timestamp_s=at_s - self._session_started_at_s,
            mode=st.mode,
            n=st.n,
        )
        plan = self._sequencer.next_plan(st.mode)
        self._sequencer.present(plan, trial)
        self._window.open(trial, opened_at_s=at_s)

        self._plan = plan
        self._stage = _Stage.AWAITING_INPUT
        self._deadline_s = at_s + self._cfg.stimulus_duration_s

    def _close_trial(self, at_s: float) -> None:
        trial = self._window.close()
        plan = self._plan
        self._plan = None
        if plan is not None:
            self._sequencer.withdraw(plan)
        record = self._recorder.finalize(trial)
        logger.debug(
            "Trial %d closed: %s, %+d points",
            record.trial_number,
            record.outcome.value,
            record.points,
        )

        self._stage = _Stage.INTER_TRIAL
        self._deadline_s = at_s + self._cfg.delay_between_stimuli_s

    def _after_inter_trial(self, at_s: float) -> None:
        if self._trial_count % self._cfg.trials_per_block != 0:
            self._begin_trial(at_s)
            return

        decision = self._progression.evaluate(self._scorer.block)
        self._last_decision = decision
        if decision.advanced and self._cfg.delay_between_phases_s > 0.0:
            self._show(TRANSITION_MESSAGE)
            self._stage = _Stage.PHASE_TRANSITION
            self._deadline_s = at_s + self._cfg.delay_between_phases_s
            return
        self._continue_after_block(at_s)

    def _continue_after_block(self, at_s: float) -> None:
        decision = self._last_decision
        if decision is not None and decision.terminal:
            self._finish(decision)
            return
        st = self._progression.state
        self._show(info_text_for(st.mode, st.n))
        self._begin_trial(at_s)

    def _finish(self, decision: BlockDecision) -> None:
        self._status = decision.status
        self._stage = None
        self._deadline_s = None
        message = decision.message or decision.status.value
        self._show(message)
        logger.warning("%s (trials=%d, score=%d)", message, self._trial_count, self._scorer.score)
        if self._exporter is not None:
            self.export_records()

    def _cancel_active(self) -> None:
        if self._window.is_open:
            self._window.cancel()
        if self._plan is not None:
            self._sequencer.clear(self._plan)
            self._plan = None
        self._stage = None
        self._deadline_s = None

    def _show(self, text: str) -> None:
        self._message = text
        self._display.show_message(text)


def build_nback_session(
    *,
    clock: Clock,
    seed: int,
    config: NBackConfig | None = None,
    presenter: Presenter | None = None,
    display: Display | None = None,
    exporter: TrialExporter | None = None,
) -> NBackEngine:
    return NBackEngine(
        clock=clock,
        seed=seed,
        config=config,
        presenter=presenter,
        display=display,
        exporter=exporter,
    )
