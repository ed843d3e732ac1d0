"""Machine-readable reasons attached to discarded or skipped candidates."""

from __future__ import annotations

from enum import Enum


class ReasonCode(str, Enum):
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    NO_SIGNAL = "NO_SIGNAL"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    MALFORMED_FACTOR = "MALFORMED_FACTOR"
    DUPLICATE_SUPPRESSED = "DUPLICATE_SUPPRESSED"
    SUPERSEDED = "superseded"
    WINDOW_ELAPSED = "window_elapsed"

    def __str__(self) -> str:
        return self.value
