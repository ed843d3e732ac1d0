"""Protocol for external signal providers (forecasting, health, routing, ...)."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from suggestion_engine.models.domain import FactorKind, SignalReading


class SignalProvider(Protocol):
    kind: FactorKind

    async def fetch(
        self, subject_id: str, window_start: datetime, window_end: datetime
    ) -> SignalReading | None: ...
