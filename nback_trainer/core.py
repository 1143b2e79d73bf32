from __future__ import annotations

import random
from collections.abc import Sequence
from enum import StrEnum
from typing import TypeVar

T = TypeVar("T")


class Modality(StrEnum):
    # Declaration order doubles as the miss-reporting priority.
    LOCATION = "Location"
    COLOR = "Color"
    AUDIO = "Audio"

    @property
    def key(self) -> str:
        return _MODALITY_KEYS[self]


_MODALITY_KEYS: dict[Modality, str] = {
    Modality.LOCATION: "L",
    Modality.COLOR: "C",
    Modality.AUDIO: "A",
}


class Mode(StrEnum):
    VISUAL = "Visual"
    AUDITORY = "Auditory"
    SPATIAL = "Spatial"
    COMBINED = "Combined"


class ProgressionPolicy(StrEnum):
    ADAPTIVE = "Adaptive"
    FIXED = "Fixed"


class SessionStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class TrialOutcome(StrEnum):
    NO_RESPONSE = "NoResponse"
    CORRECT = "Correct"
    FALSE_ALARM = "FalseAlarm"
    MISS_LOCATION = "Miss_Location"
    MISS_COLOR = "Miss_Color"
    MISS_AUDIO = "Miss_Audio"

    @classmethod
    def miss_for(cls, modality: Modality) -> "TrialOutcome":
        return cls(f"Miss_{modality.value}")

    @property
    def is_miss(self) -> bool:
        return self.value.startswith("Miss_")


# N=2 training phases, in the order they are unlocked.
TRAINING_PHASES: tuple[Mode, ...] = (Mode.VISUAL, Mode.AUDITORY, Mode.SPATIAL, Mode.COMBINED)

MODE_MODALITIES: dict[Mode, tuple[Modality, ...]] = {
    Mode.VISUAL: (Modality.COLOR,),
    Mode.AUDITORY: (Modality.AUDIO,),
    Mode.SPATIAL: (Modality.LOCATION,),
    Mode.COMBINED: (Modality.LOCATION, Modality.COLOR, Modality.AUDIO),
}


def parse_modality(raw: str) -> Modality | None:
    """Map a raw key/command ("L", "color", "AUDIO", ...) to a modality."""

    token = str(raw).strip().upper()
    if token == "":
        return None
    for modality in Modality:
        if token in (modality.key, modality.value.upper()):
            return modality
    if token == "AUDITORY":
        return Modality.AUDIO
    return None


def format_response_keys(keys: Sequence[Modality]) -> str:
    """Render a response key sequence as "L;C;" or "None" when empty."""

    if not keys:
        return "None"
    return "".join(f"{m.key};" for m in keys)


class SeededRng:
    """Seeded RNG wrapper so every random draw in a session is reproducible."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def random(self) -> float:
        return self._rng.random()

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(int(stop))

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def chance(self, probability: float) -> bool:
        return self._rng.random() < float(probability)
