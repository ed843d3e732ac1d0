"""Suggestion read endpoints and feedback intake."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from suggestion_engine.api.dependencies import get_dispatcher, get_ledger
from suggestion_engine.exceptions import (
    StaleSuggestion,
    SuggestionEngineError,
    SuggestionNotFound,
)
from suggestion_engine.feedback.dispatcher import FeedbackDispatcher
from suggestion_engine.models.domain import (
    FeedbackAction,
    FeedbackEvent,
    Scope,
    SuggestionState,
    SuggestionType,
)
from suggestion_engine.models.schemas import (
    FeedbackRequest,
    FeedbackResponse,
    LedgerEventRecord,
    SuggestionRecord,
)
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger

router = APIRouter()


@router.get("/suggestions", response_model=list[SuggestionRecord])
async def list_suggestions(
    tenant_id: str | None = None,
    dealer_id: str | None = None,
    customer_id: str | None = None,
    role: str | None = None,
    state: SuggestionState | None = None,
    type: SuggestionType | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    ledger: SQLiteSuggestionLedger = Depends(get_ledger),
) -> list[SuggestionRecord]:
    scope_key = None
    if tenant_id is not None:
        scope_key = Scope(tenant_id, dealer_id, customer_id, role).key
    suggestions = await ledger.list_suggestions(
        scope_key=scope_key, state=state, suggestion_type=type, limit=limit
    )
    return [SuggestionRecord.from_domain(s) for s in suggestions]


@router.get("/suggestions/{suggestion_id}", response_model=SuggestionRecord)
async def get_suggestion(
    suggestion_id: str,
    ledger: SQLiteSuggestionLedger = Depends(get_ledger),
) -> SuggestionRecord:
    suggestion = await ledger.get(suggestion_id)
    if suggestion is None:
        raise HTTPException(status_code=404, detail=f"suggestion {suggestion_id} not found")
    return SuggestionRecord.from_domain(suggestion)


@router.get("/suggestions/{suggestion_id}/history", response_model=list[LedgerEventRecord])
async def suggestion_history(
    suggestion_id: str,
    ledger: SQLiteSuggestionLedger = Depends(get_ledger),
) -> list[LedgerEventRecord]:
    events = await ledger.history(suggestion_id)
    if not events:
        raise HTTPException(status_code=404, detail=f"suggestion {suggestion_id} not found")
    return [LedgerEventRecord.from_domain(e) for e in events]


@router.post("/suggestions/{suggestion_id}/feedback", response_model=FeedbackResponse)
async def post_feedback(
    suggestion_id: str,
    request: FeedbackRequest,
    dispatcher: FeedbackDispatcher = Depends(get_dispatcher),
) -> FeedbackResponse:
    event = FeedbackEvent(
        suggestion_id=suggestion_id,
        action=FeedbackAction(request.action),
        reason=request.reason,
        actor=request.actor,
    )
    try:
        outcome = await dispatcher.submit(event)
    except SuggestionNotFound:
        raise HTTPException(status_code=404, detail=f"suggestion {suggestion_id} not found")
    except StaleSuggestion as e:
        raise HTTPException(
            status_code=409,
            detail={"error": "StaleSuggestion", "state": e.state, "message": str(e)},
        )
    except SuggestionEngineError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return FeedbackResponse.from_domain(outcome)
