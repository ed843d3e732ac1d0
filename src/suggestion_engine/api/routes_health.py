"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from suggestion_engine.api.dependencies import get_ledger, get_scheduler
from suggestion_engine.models.schemas import HealthResponse
from suggestion_engine.pipeline.scheduler import CycleScheduler
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    ledger: SQLiteSuggestionLedger = Depends(get_ledger),
    scheduler: CycleScheduler = Depends(get_scheduler),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        suggestions=await ledger.count_by_state(),
        scheduler_running=scheduler.running,
    )
