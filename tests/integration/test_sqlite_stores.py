"""Integration tests for the SQLite suggestion ledger and weight profile store."""

import tempfile
from dataclasses import replace
from datetime import timedelta

import pytest

from suggestion_engine.exceptions import (
    StaleSuggestion,
    SuggestionNotFound,
    WeightProfileConflict,
    WeightStoreUnavailable,
)
from suggestion_engine.models.domain import (
    FactorKind,
    FeedbackAction,
    FeedbackEvent,
    SuggestionState,
    SuggestionType,
)
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore


@pytest.mark.asyncio
async def test_append_and_get_suggestion(ledger, suggestion_factory):
    suggestion = suggestion_factory()
    assert await ledger.append(suggestion, state_fingerprint="fp-1")

    stored = await ledger.get(suggestion.id)
    assert stored is not None
    assert stored.state is SuggestionState.OPEN
    assert stored.score == pytest.approx(88.3)
    assert stored.contributions[0] == (FactorKind.DEMAND, 28.8)
    assert stored.factors[2].raw_value == "watch"
    assert stored.subject.state_fingerprint == "fp-1"
    assert stored.scope == suggestion.scope
    assert stored.decided_at is None


@pytest.mark.asyncio
async def test_second_open_for_same_key_is_rejected(ledger, suggestion_factory):
    assert await ledger.append(suggestion_factory())
    assert not await ledger.append(suggestion_factory())
    assert await ledger.append(suggestion_factory(suggestion_type=SuggestionType.END_RENTAL))

    index = await ledger.open_index(suggestion_factory().scope.key)
    assert set(index) == {
        ("asset-1", SuggestionType.REPOSITION),
        ("asset-1", SuggestionType.END_RENTAL),
    }


@pytest.mark.asyncio
async def test_transition_records_decision(ledger, suggestion_factory, now):
    suggestion = suggestion_factory()
    await ledger.append(suggestion)

    decided = await ledger.transition(
        suggestion.id,
        SuggestionState.ACCEPTED,
        occurred_at=now + timedelta(minutes=5),
        actor="dispatcher-1",
        reason="unit needed in Leeds",
    )

    assert decided.state is SuggestionState.ACCEPTED
    assert decided.decided_by == "dispatcher-1"
    assert decided.decision_reason == "unit needed in Leeds"
    assert decided.decided_at == now + timedelta(minutes=5)
    assert [e.state for e in await ledger.history(suggestion.id)] == [
        SuggestionState.OPEN,
        SuggestionState.ACCEPTED,
    ]
    # the key is free again
    assert await ledger.open_index(suggestion.scope.key) == {}
    assert await ledger.append(suggestion_factory())


@pytest.mark.asyncio
async def test_terminal_suggestion_is_stale(ledger, suggestion_factory, now):
    suggestion = suggestion_factory()
    await ledger.append(suggestion)
    await ledger.transition(suggestion.id, SuggestionState.DECLINED, occurred_at=now)

    with pytest.raises(StaleSuggestion) as exc_info:
        await ledger.transition(suggestion.id, SuggestionState.ACCEPTED, occurred_at=now)
    assert exc_info.value.state == "DECLINED"
    assert len(await ledger.history(suggestion.id)) == 2


@pytest.mark.asyncio
async def test_transition_raises_when_suggestion_cannot_be_reread(
    ledger, settings, suggestion_factory, now
):
    class VanishingLedger(SQLiteSuggestionLedger):
        async def get(self, suggestion_id):
            return None

    suggestion = suggestion_factory()
    await ledger.append(suggestion)

    with pytest.raises(SuggestionNotFound):
        await VanishingLedger(settings.ledger_db_path).transition(
            suggestion.id, SuggestionState.ACCEPTED, occurred_at=now
        )


@pytest.mark.asyncio
async def test_pending_nudges_round_trip(ledger, suggestion_factory, scope, now):
    suggestion = suggestion_factory()
    await ledger.append(suggestion)
    event = FeedbackEvent(
        suggestion.id, FeedbackAction.DECLINE, reason="no driver", actor="u1", timestamp=now
    )

    await ledger.record_pending_nudge(scope.key, event)
    await ledger.record_pending_nudge(scope.key, event)
    assert await ledger.list_pending_nudges(scope.key) == [event]
    assert await ledger.list_pending_nudges("other/*/*/*") == []

    await ledger.clear_pending_nudge(suggestion.id)
    assert await ledger.list_pending_nudges(scope.key) == []


@pytest.mark.asyncio
async def test_transition_unknown_or_non_terminal(ledger, suggestion_factory, now):
    with pytest.raises(SuggestionNotFound):
        await ledger.transition("missing", SuggestionState.ACCEPTED, occurred_at=now)
    suggestion = suggestion_factory()
    await ledger.append(suggestion)
    with pytest.raises(ValueError):
        await ledger.transition(suggestion.id, SuggestionState.OPEN, occurred_at=now)


@pytest.mark.asyncio
async def test_expire_due_only_touches_elapsed_windows(ledger, suggestion_factory, now):
    short = suggestion_factory(window_hours=1)
    long = suggestion_factory(subject_id="asset-2", window_hours=48)
    await ledger.append(short)
    await ledger.append(long)

    expired = await ledger.expire_due(short.scope.key, now + timedelta(hours=2))

    assert expired == [short.id]
    events = await ledger.history(short.id)
    assert events[-1].state is SuggestionState.EXPIRED
    assert events[-1].reason == "window_elapsed"
    assert (await ledger.get(long.id)).state is SuggestionState.OPEN


@pytest.mark.asyncio
async def test_list_and_count_by_state(ledger, suggestion_factory, now):
    first = suggestion_factory()
    second = suggestion_factory(subject_id="asset-2")
    await ledger.append(first)
    await ledger.append(second)
    await ledger.transition(first.id, SuggestionState.ACCEPTED, occurred_at=now)

    open_only = await ledger.list_suggestions(
        scope_key=first.scope.key, state=SuggestionState.OPEN
    )
    assert [s.id for s in open_only] == [second.id]
    assert await ledger.list_suggestions(scope_key="other/*/*/*") == []

    counts = await ledger.count_by_state(first.scope.key)
    assert counts == {"OPEN": 1, "ACCEPTED": 1, "DECLINED": 0, "EXPIRED": 0}


@pytest.mark.asyncio
async def test_weight_store_defaults_to_revision_zero(weight_store, scope):
    profile = await weight_store.get(scope.key)
    assert profile.revision == 0
    assert profile.weight(SuggestionType.REPOSITION, FactorKind.DEMAND) == 40.0


@pytest.mark.asyncio
async def test_compare_and_swap_increments_revision(weight_store, scope):
    profile = await weight_store.get(scope.key)
    changed = profile.with_type_weights(
        SuggestionType.REPOSITION, {FactorKind.DEMAND: 41.5, FactorKind.CARBON: 5.0}
    )

    written = await weight_store.compare_and_swap(changed, expected_revision=0, updated_by="u1")

    assert written.revision == 1
    latest = await weight_store.get(scope.key)
    assert latest.revision == 1
    assert latest.weights_for(SuggestionType.REPOSITION) == {
        FactorKind.DEMAND: 41.5,
        FactorKind.CARBON: 5.0,
    }
    assert latest.updated_at is not None


@pytest.mark.asyncio
async def test_stale_compare_and_swap_conflicts(weight_store, scope):
    profile = await weight_store.get(scope.key)
    await weight_store.compare_and_swap(profile, expected_revision=0)

    with pytest.raises(WeightProfileConflict):
        await weight_store.compare_and_swap(
            replace(profile, learning_rate=9.0), expected_revision=0
        )
    assert (await weight_store.get(scope.key)).learning_rate == profile.learning_rate


@pytest.mark.asyncio
async def test_compare_and_swap_rejects_revision_ahead_of_latest(weight_store, scope):
    profile = await weight_store.get(scope.key)

    with pytest.raises(WeightProfileConflict):
        await weight_store.override(profile, expected_revision=7, actor="ops")

    assert await weight_store.revisions(scope.key) == []
    written = await weight_store.override(profile, expected_revision=0, actor="ops")
    assert written.revision == 1


@pytest.mark.asyncio
async def test_override_keeps_revision_history(weight_store, scope):
    profile = await weight_store.get(scope.key)
    first = await weight_store.override(profile, expected_revision=0, actor="ops")
    await weight_store.override(first, expected_revision=1, actor="ops")

    revisions = await weight_store.revisions(scope.key)
    assert [p.revision for p in revisions] == [2, 1]


@pytest.mark.asyncio
async def test_deferred_feedback_queue(weight_store, scope, now):
    event = FeedbackEvent("s-1", FeedbackAction.ACCEPT, reason=None, actor="u1", timestamp=now)
    await weight_store.enqueue_deferred(scope.key, event)
    await weight_store.enqueue_deferred(scope.key, event)

    queued = await weight_store.list_deferred(scope.key)
    assert queued == [event]

    await weight_store.mark_deferred_attempt("s-1")
    await weight_store.remove_deferred("s-1")
    assert await weight_store.list_deferred(scope.key) == []


@pytest.mark.asyncio
async def test_unreachable_weight_store_raises_unavailable(settings, scope):
    store = SQLiteWeightProfileStore(tempfile.mkdtemp(), settings)
    with pytest.raises(WeightStoreUnavailable):
        await store.get(scope.key)
