"""Pygame UI shell for the N-Back Trainer.

The main menu offers two sessions:
- Adaptive N-Back (N keeps rising while block accuracy holds)
- Fixed Assessment (training phases, one N=3 block, then done)

Deterministic timing/scoring/RNG/state lives in nback_trainer/* (core
modules). This module only implements the presenter and display
collaborators and forwards L/C/A key presses.
"""

from __future__ import annotations

import logging
import math
import os
import random
import zlib
from array import array
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol

import pygame

from . import __version__
from .clock import RealClock
from .config import ConfigError, NBackConfig, load_config
from .core import Modality, ProgressionPolicy, SessionStatus
from .engine import NBackEngine, build_nback_session
from .persistence import CsvTrialExporter, ExporterChain, SqliteTrialExporter

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "NBACK_DATA_DIR"

UNSAVED_MESSAGE = "Trials were not saved. Press Enter again to discard them."

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

_NAMED_COLORS: dict[str, tuple[int, int, int]] = {
    "RED": (220, 60, 60),
    "GREEN": (60, 190, 90),
    "BLUE": (70, 110, 230),
    "YELLOW": (240, 210, 60),
    "PURPLE": (160, 80, 200),
    "ORANGE": (240, 140, 40),
    "CYAN": (60, 200, 210),
    "WHITE": (240, 240, 240),
    "PINK": (240, 120, 180),
}

# Semitone offsets from A within an octave.
_NOTE_OFFSETS = {"C": -9, "D": -7, "E": -5, "F": -4, "G": -2, "A": 0, "B": 2}

_KEY_TO_MODALITY = {
    pygame.K_l: Modality.LOCATION,
    pygame.K_c: Modality.COLOR,
    pygame.K_a: Modality.AUDIO,
}


def color_rgb(name: str) -> tuple[int, int, int]:
    token = str(name).strip().upper()
    known = _NAMED_COLORS.get(token)
    if known is not None:
        return known
    h = zlib.crc32(token.encode("utf-8"))
    return (80 + (h & 0x7F), 80 + ((h >> 8) & 0x7F), 80 + ((h >> 16) & 0x7F))


def clip_frequency_hz(clip_id: str) -> float:
    """Tone pitch for a clip id: note names ("C4", "F#5") map to their pitch."""

    token = str(clip_id).strip().upper()
    if len(token) >= 2 and token[0] in _NOTE_OFFSETS:
        sharp = token[1] == "#"
        octave = token[2:] if sharp else token[1:]
        if octave.isdigit():
            semis = _NOTE_OFFSETS[token[0]] + (1 if sharp else 0) + 12 * (int(octave) - 4)
            return 440.0 * (2.0 ** (semis / 12.0))
    return 300.0 + float(zlib.crc32(token.encode("utf-8")) % 600)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class _ToneAudioAdapter:
    """Synthesizes one short tone per audio clip id and plays it on demand."""

    _sample_rate = 22050
    _amp = 32767

    def __init__(self, *, duration_s: float = 0.45) -> None:
        self._duration_s = float(duration_s)
        self._cache: dict[str, pygame.mixer.Sound] = {}
        self._channel: pygame.mixer.Channel | None = None
        self._available = False
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            self._channel = pygame.mixer.Channel(0)
            self._available = True
        except pygame.error as exc:
            logger.warning("Audio unavailable: %s", exc)

    def play(self, clip_id: str) -> None:
        if not self._available or self._channel is None:
            return
        sound = self._cache.get(clip_id)
        if sound is None:
            pcm = self._render_tone_pcm(clip_frequency_hz(clip_id), self._duration_s, gain=0.35)
            sound = pygame.mixer.Sound(buffer=pcm.tobytes())
            self._cache[clip_id] = sound
        self._channel.play(sound)

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()

    def _render_tone_pcm(self, frequency_hz: float, duration_s: float, *, gain: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        fade_n = max(1, int(self._sample_rate * 0.008))
        out = array("h")
        for idx in range(sample_count):
            envelope = 1.0
            if idx < fade_n:
                envelope = idx / float(fade_n)
            tail = sample_count - idx - 1
            if tail < fade_n:
                envelope = min(envelope, tail / float(fade_n))
            phase = (2.0 * math.pi * float(frequency_hz) * idx) / float(self._sample_rate)
            sample = math.sin(phase) * gain * max(0.0, envelope)
            out.append(int(max(-1.0, min(1.0, sample)) * self._amp))
        return out


class GridPresenter:
    """Presenter collaborator: remembers lit cells for drawing and plays tones."""

    def __init__(self, *, cell_count: int, audio: _ToneAudioAdapter | None) -> None:
        self.cell_count = int(cell_count)
        self.lit: dict[int, str] = {}
        self._audio = audio

    def highlight(self, cell_index: int, color: str) -> None:
        self.lit[int(cell_index)] = str(color)

    def reset_cell(self, cell_index: int) -> None:
        self.lit.pop(int(cell_index), None)

    def play_sound(self, clip_id: str) -> None:
        if self._audio is not None:
            self._audio.play(clip_id)


class ScreenDisplay:
    """Display collaborator: keeps the latest score and texts for rendering."""

    def __init__(self) -> None:
        self.score = 0
        self.message = ""
        self.warning: str | None = None

    def show_score(self, score: int) -> None:
        self.score = int(score)

    def show_message(self, text: str) -> None:
        self.message = str(text)

    def show_warning(self, text: str) -> None:
        self.warning = str(text)


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)

    def close(self) -> None:
        # Give every screen a chance to flush data before the window goes away.
        for screen in reversed(self._screens):
            closer = getattr(screen, "close", None)
            if callable(closer):
                closer()
        self._screens.clear()


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        border = (226, 236, 255)
        text_main = (238, 245, 255)
        text_muted = (186, 200, 224)

        surface.fill((3, 9, 78))
        frame = pygame.Rect(20, 20, max(260, w - 40), max(220, h - 40))
        pygame.draw.rect(surface, (8, 18, 104), frame)
        pygame.draw.rect(surface, border, frame, 2)

        title = self._title_font.render(self._title, True, text_main)
        surface.blit(title, title.get_rect(midtop=(frame.centerx, frame.y + 16)))

        row_h = 44
        y = frame.y + 90
        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.x + 40, y, frame.w - 80, row_h - 8)
            selected = idx == self._selected
            pygame.draw.rect(surface, (244, 248, 255) if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (62, 84, 152), row, 1)
            color = (14, 26, 74) if selected else text_main
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, (row.x + 10, row.y + (row.h - text.get_height()) // 2))
            y += row_h

        foot = self._hint_font.render("Enter/Space: Select  |  Esc/Backspace: Back", True, text_muted)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class NBackScreen:
    def __init__(
        self,
        app: App,
        *,
        engine_factory: Callable[[GridPresenter, ScreenDisplay], NBackEngine],
        cell_count: int,
        audio: _ToneAudioAdapter | None,
    ) -> None:
        self._app = app
        self._presenter = GridPresenter(cell_count=cell_count, audio=audio)
        self._display = ScreenDisplay()
        self._engine = engine_factory(self._presenter, self._display)
        self._audio = audio

        self._big_font = pygame.font.Font(None, 44)
        self._small_font = pygame.font.Font(None, 26)
        self._tiny_font = pygame.font.Font(None, 20)

        self._discard_unsaved = False
        self._display.show_message("Press Enter to start. Respond with L / C / A.")

    @property
    def engine(self) -> NBackEngine:
        return self._engine

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if not self._engine.can_exit():
                return
            self.close()
            self._app.pop()
            return
        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            if self._engine.status is not SessionStatus.RUNNING:
                self._start_session()
            return
        modality = _KEY_TO_MODALITY.get(event.key)
        if modality is not None:
            self._engine.respond(modality)

    def _start_session(self) -> None:
        # Starting over clears the records; unsaved ones need a save retry or a second Enter.
        if self._engine.records() and not self._engine.exported and not self._discard_unsaved:
            if not self._engine.export_records():
                self._discard_unsaved = True
                self._display.show_message(UNSAVED_MESSAGE)
                return
        self._discard_unsaved = False
        self._display.warning = None
        self._engine.start()

    def close(self) -> None:
        self._engine.abort()
        if self._audio is not None:
            self._audio.stop()
        if self._engine.records() and not self._engine.export_attempted:
            self._engine.export_records()

    def render(self, surface: pygame.Surface) -> None:
        self._engine.update()
        snap = self._engine.snapshot()

        w, h = surface.get_size()
        surface.fill((10, 12, 24))
        text_main = (235, 235, 245)
        text_muted = (170, 176, 196)

        # Grid on the left.
        count = self._presenter.cell_count
        cols = max(1, int(math.ceil(math.sqrt(count))))
        rows = max(1, int(math.ceil(count / cols)))
        grid_size = min(h - 80, w // 2)
        cell = max(8, grid_size // max(cols, rows))
        gx = 40
        gy = (h - cell * rows) // 2
        for idx in range(count):
            r, c = divmod(idx, cols)
            rect = pygame.Rect(gx + c * cell + 3, gy + r * cell + 3, cell - 6, cell - 6)
            lit = self._presenter.lit.get(idx)
            fill = (36, 40, 62) if lit is None else color_rgb(lit)
            pygame.draw.rect(surface, fill, rect)
            pygame.draw.rect(surface, (90, 96, 130), rect, 1)

        # Status panel on the right.
        x = gx + cell * cols + 40
        y = 40
        surface.blit(self._big_font.render(snap.info_text, True, text_main), (x, y))
        y += 50
        surface.blit(self._small_font.render(f"Score: {self._display.score}", True, text_main), (x, y))
        y += 30
        policy = "Adaptive" if snap.policy is ProgressionPolicy.ADAPTIVE else "Fixed"
        surface.blit(
            self._small_font.render(f"Trial {snap.trial_number}  |  {policy}", True, text_muted),
            (x, y),
        )
        y += 40

        for modality in Modality:
            pressed = modality in snap.responded
            label = f"[{modality.key}] {modality.value}"
            color = (250, 220, 90) if pressed else text_muted
            surface.blit(self._small_font.render(label, True, color), (x, y))
            y += 28

        y += 16
        if self._display.message:
            surface.blit(self._small_font.render(self._display.message, True, text_main), (x, y))
            y += 30
        if self._display.warning:
            surface.blit(self._tiny_font.render(self._display.warning, True, (240, 120, 110)), (x, y))

        hint = "Enter: start  |  L/C/A: match  |  Esc: back"
        foot = self._tiny_font.render(hint, True, text_muted)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 10)))


def default_data_dir() -> Path:
    explicit = os.environ.get(DATA_DIR_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".nback_trainer"


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    try:
        base_config = load_config()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    pygame.init()
    pygame.display.set_caption("N-Back Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    real_clock = RealClock()
    audio = _ToneAudioAdapter()
    data_dir = default_data_dir()
    exporter = ExporterChain(
        CsvTrialExporter(data_dir),
        SqliteTrialExporter(data_dir / "results.sqlite3", app_version=__version__),
    )

    def open_session(policy: ProgressionPolicy) -> None:
        cfg: NBackConfig = replace(base_config, policy=policy)
        seed = cfg.seed if cfg.seed is not None else _new_seed()
        app.push(
            NBackScreen(
                app,
                engine_factory=lambda presenter, display: build_nback_session(
                    clock=real_clock,
                    seed=seed,
                    config=cfg,
                    presenter=presenter,
                    display=display,
                    exporter=exporter,
                ),
                cell_count=cfg.cell_count,
                audio=audio,
            )
        )

    main_items = [
        MenuItem("Adaptive N-Back", lambda: open_session(ProgressionPolicy.ADAPTIVE)),
        MenuItem("Fixed Assessment", lambda: open_session(ProgressionPolicy.FIXED)),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "N-Back Trainer", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        app.close()
        pygame.quit()

    return 0
