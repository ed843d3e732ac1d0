"""Feedback Adapter: apply an accept/decline decision to the ledger and the weight profile."""

from __future__ import annotations

from suggestion_engine.exceptions import (
    SuggestionNotFound,
    WeightProfileConflict,
    WeightStoreUnavailable,
)
from suggestion_engine.feedback.nudge import compute_nudge
from suggestion_engine.models.domain import (
    FeedbackEvent,
    FeedbackOutcome,
    Suggestion,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.metrics import log_feedback_metrics
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore

logger = get_logger("feedback_adapter")


class FeedbackAdapter:
    def __init__(
        self,
        ledger: SQLiteSuggestionLedger,
        weight_store: SQLiteWeightProfileStore,
        max_retries: int = 3,
    ) -> None:
        self._ledger = ledger
        self._weights = weight_store
        self._max_retries = max_retries

    async def apply(self, event: FeedbackEvent) -> FeedbackOutcome:
        """Transition the suggestion, then nudge weights exactly once.

        StaleSuggestion from the ledger propagates before any weight is touched.
        Once the transition is committed the nudge is never dropped: it is either
        applied, queued in the weights database, or parked in the ledger.
        """
        decided = await self._ledger.transition(
            event.suggestion_id,
            event.action.resulting_state,
            occurred_at=event.timestamp,
            actor=event.actor,
            reason=event.reason,
        )

        revision = await self._nudge_with_retry(decided, event)
        if revision is None:
            outcome = FeedbackOutcome(
                suggestion_id=decided.id,
                state=decided.state,
                applied=False,
                deferred=True,
                profile_revision=await self._defer(decided.scope.key, event),
            )
        else:
            outcome = FeedbackOutcome(
                suggestion_id=decided.id,
                state=decided.state,
                applied=True,
                deferred=False,
                profile_revision=revision,
            )

        log_feedback_metrics(
            suggestion_id=decided.id,
            scope_key=decided.scope.key,
            action=event.action.value,
            applied=outcome.applied,
            revision=outcome.profile_revision,
        )
        return outcome

    async def replay_deferred(self, scope_key: str) -> int:
        """Reapply queued and ledger-parked nudges for a scope. Returns how many were applied."""
        events = await self._weights.list_deferred(scope_key)
        queued = {e.suggestion_id for e in events}
        events += [
            e for e in await self._ledger.list_pending_nudges(scope_key)
            if e.suggestion_id not in queued
        ]

        applied = 0
        for event in events:
            suggestion = await self._ledger.get(event.suggestion_id)
            if suggestion is None or suggestion.state is not event.action.resulting_state:
                logger.warning(
                    "deferred_feedback_dropped",
                    suggestion_id=event.suggestion_id,
                    reason="ledger state does not match the queued decision",
                )
                await self._forget(event.suggestion_id)
                continue

            revision = await self._nudge_with_retry(suggestion, event)
            if revision is None:
                await self._weights.mark_deferred_attempt(event.suggestion_id)
                continue
            await self._forget(event.suggestion_id)
            applied += 1

        if applied:
            logger.info("deferred_feedback_replayed", scope_key=scope_key, applied=applied)
        return applied

    async def _defer(self, scope_key: str, event: FeedbackEvent) -> int | None:
        """Queue the nudge; park it in the ledger if the weights database is down."""
        try:
            await self._weights.enqueue_deferred(scope_key, event)
            return (await self._weights.get(scope_key)).revision
        except WeightStoreUnavailable as e:
            logger.warning(
                "weight_store_unavailable",
                scope_key=scope_key,
                suggestion_id=event.suggestion_id,
                error=str(e),
            )
            await self._ledger.record_pending_nudge(scope_key, event)
            return None

    async def _forget(self, suggestion_id: str) -> None:
        await self._weights.remove_deferred(suggestion_id)
        await self._ledger.clear_pending_nudge(suggestion_id)

    async def _nudge_with_retry(
        self, suggestion: Suggestion, event: FeedbackEvent
    ) -> int | None:
        """Read-modify-write against the latest revision; None when retries run out
        or the weights database cannot be reached."""
        scope_key = suggestion.scope.key
        for attempt in range(1, self._max_retries + 1):
            try:
                profile = await self._weights.get(scope_key)
                nudged = compute_nudge(profile, suggestion, event.action)
                written = await self._weights.compare_and_swap(
                    nudged, expected_revision=profile.revision, updated_by=event.actor
                )
                return written.revision
            except WeightProfileConflict:
                logger.info(
                    "weight_profile_conflict",
                    scope_key=scope_key,
                    suggestion_id=suggestion.id,
                    attempt=attempt,
                )
            except WeightStoreUnavailable as e:
                logger.warning(
                    "weight_store_unavailable",
                    scope_key=scope_key,
                    suggestion_id=suggestion.id,
                    error=str(e),
                )
                return None
        logger.warning(
            "weight_update_retries_exhausted",
            scope_key=scope_key,
            suggestion_id=suggestion.id,
            attempts=self._max_retries,
        )
        return None


async def require_suggestion(
    ledger: SQLiteSuggestionLedger, suggestion_id: str
) -> Suggestion:
    suggestion = await ledger.get(suggestion_id)
    if suggestion is None:
        raise SuggestionNotFound(suggestion_id)
    return suggestion
