"""Boundary interfaces between the trial engine and the outside world.

The engine only talks to presentation, display and export through these
protocols. The pygame front end and the file exporters implement them;
tests use small recording fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .recorder import TrialRecord


class Presenter(Protocol):
    def highlight(self, cell_index: int, color: str) -> None: ...
    def reset_cell(self, cell_index: int) -> None: ...
    def play_sound(self, clip_id: str) -> None: ...


class Display(Protocol):
    def show_score(self, score: int) -> None: ...
    def show_message(self, text: str) -> None: ...
    def show_warning(self, text: str) -> None: ...


class TrialExporter(Protocol):
    def export(self, records: Sequence["TrialRecord"]) -> object:
        """Persist ``records``; may raise OSError/sqlite3.Error/ValueError."""
        ...


class NullPresenter:
    def highlight(self, cell_index: int, color: str) -> None:
        pass

    def reset_cell(self, cell_index: int) -> None:
        pass

    def play_sound(self, clip_id: str) -> None:
        pass


class NullDisplay:
    def show_score(self, score: int) -> None:
        pass

    def show_message(self, text: str) -> None:
        pass

    def show_warning(self, text: str) -> None:
        pass
