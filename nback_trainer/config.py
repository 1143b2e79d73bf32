from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from .core import ProgressionPolicy

CONFIG_PATH_ENV = "NBACK_CONFIG_PATH"

_INT_FIELDS = (
    "trials_per_block",
    "max_consecutive_failures",
    "initial_n",
    "points_for_correct",
    "points_for_miss",
    "points_for_false_alarm",
    "cell_count",
)
_FLOAT_FIELDS = (
    "accuracy_threshold",
    "stimulus_duration_s",
    "delay_between_stimuli_s",
    "delay_between_phases_s",
)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ConfigError(ValueError):
    """Raised when a session is configured with values it cannot run on."""


@dataclass(frozen=True, slots=True)
class NBackConfig:
    # Block progression.
    trials_per_block: int = 20
    accuracy_threshold: float = 0.85
    max_consecutive_failures: int = 3
    policy: ProgressionPolicy = ProgressionPolicy.ADAPTIVE
    initial_n: int = 2

    # Scoring.
    points_for_correct: int = 10
    points_for_miss: int = -5
    points_for_false_alarm: int = -5

    # Timing.
    stimulus_duration_s: float = 1.5
    delay_between_stimuli_s: float = 1.0
    delay_between_phases_s: float = 2.0

    # Stimulus palettes.
    colors: tuple[str, ...] = ("RED", "GREEN", "BLUE", "YELLOW", "PURPLE", "ORANGE")
    audio_clips: tuple[str, ...] = ("C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5")
    cell_count: int = 16
    spatial_highlight_color: str = "YELLOW"

    seed: int | None = None

    def validate(self) -> None:
        self._check_types()
        if not self.colors:
            raise ConfigError("colors palette must not be empty")
        if not self.audio_clips:
            raise ConfigError("audio_clips palette must not be empty")
        if self.cell_count <= 0:
            raise ConfigError("cell_count must be > 0")
        if self.trials_per_block <= 0:
            raise ConfigError("trials_per_block must be > 0")
        if not (0.0 <= self.accuracy_threshold <= 1.0):
            raise ConfigError("accuracy_threshold must be in [0.0, 1.0]")
        if self.max_consecutive_failures <= 0:
            raise ConfigError("max_consecutive_failures must be > 0")
        if self.initial_n < 1:
            raise ConfigError("initial_n must be >= 1")
        if self.stimulus_duration_s <= 0.0:
            raise ConfigError("stimulus_duration_s must be > 0")
        if self.delay_between_stimuli_s < 0.0:
            raise ConfigError("delay_between_stimuli_s must be >= 0")
        if self.delay_between_phases_s < 0.0:
            raise ConfigError("delay_between_phases_s must be >= 0")
        if str(self.spatial_highlight_color).strip() == "":
            raise ConfigError("spatial_highlight_color must not be empty")

    def _check_types(self) -> None:
        for name in _INT_FIELDS:
            if not _is_int(getattr(self, name)):
                raise ConfigError(f"{name} must be an integer, got {getattr(self, name)!r}")
        for name in _FLOAT_FIELDS:
            value = getattr(self, name)
            if not (_is_int(value) or isinstance(value, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
        if not isinstance(self.policy, ProgressionPolicy):
            raise ConfigError(f"policy must be a ProgressionPolicy, got {self.policy!r}")
        if self.seed is not None and not _is_int(self.seed):
            raise ConfigError(f"seed must be an integer or null, got {self.seed!r}")
        if not isinstance(self.spatial_highlight_color, str):
            raise ConfigError("spatial_highlight_color must be a string")
        for name in ("colors", "audio_clips"):
            if not all(isinstance(v, str) for v in getattr(self, name)):
                raise ConfigError(f"{name} entries must be strings")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["policy"] = self.policy.value
        data["colors"] = list(self.colors)
        data["audio_clips"] = list(self.audio_clips)
        return data

    @classmethod
    def from_dict(cls, data: object) -> "NBackConfig":
        """Build a config from a JSON-style mapping; missing keys keep defaults."""

        if not isinstance(data, dict):
            raise ConfigError("configuration must be a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = sorted(str(k) for k in data if k not in known)
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")

        values: dict[str, Any] = dict(data)
        if "policy" in values:
            try:
                values["policy"] = ProgressionPolicy(str(values["policy"]).strip().capitalize())
            except ValueError as exc:
                raise ConfigError(f"unknown progression policy: {values['policy']!r}") from exc
        for key in ("colors", "audio_clips"):
            if key in values:
                raw = values[key]
                if not isinstance(raw, list | tuple):
                    raise ConfigError(f"{key} must be a list")
                values[key] = tuple(str(v) for v in raw)

        cfg = cls(**values)
        cfg.validate()
        return cfg


def default_config_path() -> Path:
    explicit = os.environ.get(CONFIG_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".nback_trainer.json"


def load_config(path: Path | None = None) -> NBackConfig:
    """Load a config file, falling back to defaults when it does not exist."""

    target = default_config_path() if path is None else path
    if not target.exists():
        return NBackConfig()
    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{target}: invalid JSON ({exc.msg})") from exc
    return NBackConfig.from_dict(payload)
