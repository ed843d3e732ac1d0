"""In-memory signal provider and subject source for seeding and local runs."""

from __future__ import annotations

from datetime import datetime

from suggestion_engine.models.domain import FactorKind, Scope, SignalReading, Subject


class InMemorySignalProvider:
    """Serves fixed readings per subject for one factor kind."""

    def __init__(
        self, kind: FactorKind, readings: dict[str, SignalReading] | None = None
    ) -> None:
        self.kind = kind
        self._readings: dict[str, SignalReading] = dict(readings or {})
        self.calls = 0

    def set(self, subject_id: str, value: float | str | bool, confidence: float = 1.0) -> None:
        self._readings[subject_id] = SignalReading(value=value, confidence=confidence)

    def clear(self, subject_id: str) -> None:
        self._readings.pop(subject_id, None)

    async def fetch(
        self, subject_id: str, window_start: datetime, window_end: datetime
    ) -> SignalReading | None:
        self.calls += 1
        return self._readings.get(subject_id)


class InMemorySubjectSource:
    def __init__(self) -> None:
        self._subjects: dict[str, dict[str, Subject]] = {}

    def add(self, scope: Scope, subject: Subject) -> None:
        self._subjects.setdefault(scope.key, {})[subject.subject_id] = subject

    def remove(self, scope: Scope, subject_id: str) -> None:
        self._subjects.get(scope.key, {}).pop(subject_id, None)

    async def list_active(self, scope: Scope) -> list[Subject]:
        return sorted(
            self._subjects.get(scope.key, {}).values(), key=lambda s: s.subject_id
        )
