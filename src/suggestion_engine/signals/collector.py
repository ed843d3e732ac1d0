"""Time-bounded fan-out to signal providers."""

from __future__ import annotations

import asyncio

from suggestion_engine.models.domain import (
    EvaluationWindow,
    FactorKind,
    SignalReading,
    Subject,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.protocols.signal_provider import SignalProvider

logger = get_logger("signal_collector")

Readings = dict[FactorKind, SignalReading | None]


class SignalCollector:
    """Fetches every registered factor for a subject; slow or failing providers read as absent."""

    def __init__(
        self,
        providers: list[SignalProvider],
        timeout_seconds: float = 2.0,
        max_concurrency: int = 16,
    ) -> None:
        self._providers: dict[FactorKind, SignalProvider] = {}
        for provider in providers:
            self._providers[provider.kind] = provider
        self._timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @property
    def kinds(self) -> list[FactorKind]:
        return sorted(self._providers, key=lambda k: k.order)

    async def collect(self, subject: Subject, window: EvaluationWindow) -> Readings:
        kinds = list(FactorKind)
        results = await asyncio.gather(
            *(self._fetch_one(kind, subject, window) for kind in kinds)
        )
        return dict(zip(kinds, results))

    async def collect_many(
        self, subjects: list[Subject], window: EvaluationWindow
    ) -> dict[str, Readings]:
        results = await asyncio.gather(
            *(self.collect(subject, window) for subject in subjects)
        )
        return {s.subject_id: r for s, r in zip(subjects, results)}

    async def _fetch_one(
        self, kind: FactorKind, subject: Subject, window: EvaluationWindow
    ) -> SignalReading | None:
        provider = self._providers.get(kind)
        if provider is None:
            return None

        async with self._semaphore:
            try:
                reading = await asyncio.wait_for(
                    provider.fetch(subject.subject_id, window.start, window.end),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "signal_timeout",
                    kind=kind.value,
                    subject_id=subject.subject_id,
                    timeout_s=self._timeout,
                )
                return None
            except Exception as e:
                logger.warning(
                    "signal_unavailable",
                    kind=kind.value,
                    subject_id=subject.subject_id,
                    error=str(e),
                )
                return None

        if reading is None:
            logger.debug("signal_no_data", kind=kind.value, subject_id=subject.subject_id)
        return reading
