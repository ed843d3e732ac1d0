"""On-demand evaluation cycles."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from suggestion_engine.api.dependencies import get_scheduler
from suggestion_engine.models.schemas import CycleRequest, CycleResponse
from suggestion_engine.pipeline.scheduler import CycleScheduler

router = APIRouter()


@router.post("/cycles", response_model=CycleResponse)
async def run_cycle(
    request: CycleRequest,
    scheduler: CycleScheduler = Depends(get_scheduler),
) -> CycleResponse:
    scope = request.to_scope()
    scheduler.register(scope)
    report = await scheduler.run_once(scope, triggered=request.subject_ids)
    if report is None:
        raise HTTPException(
            status_code=503, detail="cycle aborted: weight profile store unavailable"
        )
    return CycleResponse.from_domain(report)
