"""Recurring and on-demand evaluation cycles."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from suggestion_engine.exceptions import CycleAborted, WeightStoreUnavailable
from suggestion_engine.feedback.adapter import FeedbackAdapter
from suggestion_engine.models.domain import CycleReport, Scope
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.pipeline.evaluation_cycle import EvaluationCycle

logger = get_logger("scheduler")


class CycleScheduler:
    """Runs a cycle per registered scope every ``interval_seconds``, or sooner when triggered.

    Triggers for the same scope that arrive while a cycle is pending are merged.
    An aborted cycle is logged and retried on the next tick.
    """

    def __init__(
        self,
        cycle: EvaluationCycle,
        feedback_adapter: FeedbackAdapter,
        interval_seconds: float,
    ) -> None:
        self._cycle = cycle
        self._feedback = feedback_adapter
        self._interval = interval_seconds
        self._scopes: dict[str, Scope] = {}
        self._pending: dict[str, set[str]] = {}
        self._wakeup = asyncio.Event()
        self._cancel = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.last_reports: dict[str, CycleReport] = {}

    def register(self, scope: Scope) -> None:
        self._scopes[scope.key] = scope

    @property
    def scopes(self) -> list[Scope]:
        return list(self._scopes.values())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, scope: Scope, subject_ids: Iterable[str] = ()) -> None:
        """Request an out-of-schedule cycle, e.g. after a material state change."""
        self.register(scope)
        self._pending.setdefault(scope.key, set()).update(subject_ids)
        self._wakeup.set()

    def start(self) -> None:
        if self.running:
            return
        self._cancel.clear()
        self._task = asyncio.create_task(self._loop(), name="cycle-scheduler")
        logger.info("scheduler_started", interval_s=self._interval, scopes=len(self._scopes))

    async def stop(self) -> None:
        """Abort between candidates and wait for the loop to finish."""
        if self._task is None:
            return
        self._cancel.set()
        self._wakeup.set()
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("scheduler_stopped")

    async def run_once(self, scope: Scope, triggered: Iterable[str] = ()) -> CycleReport | None:
        try:
            await self._feedback.replay_deferred(scope.key)
        except WeightStoreUnavailable as e:
            logger.warning("deferred_replay_failed", scope_key=scope.key, error=str(e))
        try:
            report = await self._cycle.run(scope, triggered=triggered, cancel=self._cancel)
        except CycleAborted as e:
            logger.error("cycle_retry_scheduled", scope_key=scope.key, error=str(e))
            return None
        self.last_reports[scope.key] = report
        return report

    async def _loop(self) -> None:
        while not self._cancel.is_set():
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._interval)
                scheduled = False
            except asyncio.TimeoutError:
                scheduled = True
            self._wakeup.clear()

            if scheduled:
                due = {key: self._pending.pop(key, set()) for key in self._scopes}
            else:
                due, self._pending = self._pending, {}

            for key, triggered in due.items():
                if self._cancel.is_set():
                    break
                try:
                    await self.run_once(self._scopes[key], triggered)
                except Exception:
                    logger.exception("cycle_failed", scope_key=key)
