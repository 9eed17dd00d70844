"""Difficulty classification for article metadata."""

from __future__ import annotations

import math

UNRATED = "unrated"

# Ordered from easiest; level N (1-based) maps to LABELS[N - 1]
LABELS: tuple[str, ...] = ("beginner", "intermediate", "advanced", "expert")


def _label_for_level(level: float) -> str:
    if not math.isfinite(level):
        return UNRATED
    rounded = math.floor(level + 0.5)
    index = min(max(rounded, 1), len(LABELS)) - 1
    return LABELS[index]


def difficulty_label(value: int | float | str) -> str:
    """Map a raw ``meta.difficulty`` value to a human-readable label.

    Numbers are rounded half up and clamped to the known levels, so
    ``0`` and ``1`` are beginner and anything from ``4`` up is expert.
    Strings may name a label directly (case-insensitive) or hold a
    number. Anything else is ``"unrated"``.

    Args:
        value: The authored difficulty.

    Returns:
        One of ``LABELS`` or ``UNRATED``.
    """
    if isinstance(value, bool):
        return UNRATED
    if isinstance(value, int | float):
        return _label_for_level(float(value))
    if isinstance(value, str):
        text = value.strip().lower()
        if text in LABELS:
            return text
        try:
            return _label_for_level(float(text))
        except ValueError:
            return UNRATED
    return UNRATED
