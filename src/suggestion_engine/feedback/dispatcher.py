"""Per-scope feedback queues, each drained by a single consumer task."""

from __future__ import annotations

import asyncio

from suggestion_engine.feedback.adapter import FeedbackAdapter, require_suggestion
from suggestion_engine.models.domain import FeedbackEvent, FeedbackOutcome
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger

logger = get_logger("feedback_dispatcher")

_Item = tuple[FeedbackEvent, "asyncio.Future[FeedbackOutcome]"]


class FeedbackDispatcher:
    """Serialises feedback per scope; different scopes never wait on each other."""

    def __init__(self, adapter: FeedbackAdapter, ledger: SQLiteSuggestionLedger) -> None:
        self._adapter = adapter
        self._ledger = ledger
        self._queues: dict[str, asyncio.Queue[_Item]] = {}
        self._workers: dict[str, asyncio.Task] = {}

    async def submit(self, event: FeedbackEvent) -> FeedbackOutcome:
        suggestion = await require_suggestion(self._ledger, event.suggestion_id)
        scope_key = suggestion.scope.key

        future: asyncio.Future[FeedbackOutcome] = asyncio.get_running_loop().create_future()
        await self._queue_for(scope_key).put((event, future))
        return await future

    def _queue_for(self, scope_key: str) -> asyncio.Queue[_Item]:
        queue = self._queues.get(scope_key)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[scope_key] = queue
            self._workers[scope_key] = asyncio.create_task(
                self._consume(scope_key, queue), name=f"feedback:{scope_key}"
            )
        return queue

    async def _consume(self, scope_key: str, queue: asyncio.Queue[_Item]) -> None:
        while True:
            event, future = await queue.get()
            try:
                outcome = await self._adapter.apply(event)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(outcome)
            finally:
                queue.task_done()

    async def close(self) -> None:
        for task in self._workers.values():
            task.cancel()
        await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        logger.info("feedback_dispatcher_closed")
