"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from suggestion_engine.feedback.dispatcher import FeedbackDispatcher
from suggestion_engine.pipeline.scheduler import CycleScheduler
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore


def get_ledger(request: Request) -> SQLiteSuggestionLedger:
    return request.app.state.ledger


def get_weight_store(request: Request) -> SQLiteWeightProfileStore:
    return request.app.state.weight_store


def get_dispatcher(request: Request) -> FeedbackDispatcher:
    return request.app.state.dispatcher


def get_scheduler(request: Request) -> CycleScheduler:
    return request.app.state.scheduler
