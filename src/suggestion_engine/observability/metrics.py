"""Metric recording helpers for cycles and feedback."""

from __future__ import annotations

from suggestion_engine.observability.logger import get_logger

logger = get_logger("metrics")


def log_cycle_metrics(
    cycle_id: str,
    scope_key: str,
    candidates: int,
    emitted: int,
    discarded: int,
    skipped: int,
    suppressed: int,
    expired: int,
) -> None:
    logger.info(
        "cycle_metrics",
        cycle_id=cycle_id,
        scope_key=scope_key,
        candidates=candidates,
        emitted=emitted,
        discarded=discarded,
        skipped=skipped,
        suppressed=suppressed,
        expired=expired,
    )


def log_feedback_metrics(
    suggestion_id: str,
    scope_key: str,
    action: str,
    applied: bool,
    revision: int | None,
) -> None:
    logger.info(
        "feedback_metrics",
        suggestion_id=suggestion_id,
        scope_key=scope_key,
        action=action,
        applied=applied,
        revision=revision,
    )


def log_latency(cycle_id: str, stage: str, duration_ms: float) -> None:
    logger.info(
        "latency",
        cycle_id=cycle_id,
        stage=stage,
        duration_ms=round(duration_ms, 2),
    )
