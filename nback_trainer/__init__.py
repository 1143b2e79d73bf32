"""Adaptive multi-modality N-back working-memory trainer."""

from __future__ import annotations

__version__ = "0.1.0"
