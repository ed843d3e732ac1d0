"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from suggestion_engine.config.settings import Settings
from suggestion_engine.models.domain import (
    EvaluationWindow,
    FactorKind,
    FactorValue,
    Scope,
    Subject,
    SubjectKind,
    Suggestion,
    SuggestionType,
    TypeThreshold,
    WeightProfile,
)
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    """Test settings with temp paths and no background scheduler."""
    tmp = tempfile.mkdtemp()
    return Settings(
        ledger_db_path=str(Path(tmp) / "test_ledger.db"),
        weights_db_path=str(Path(tmp) / "test_weights.db"),
        scheduler_enabled=False,
        log_json=False,
        log_level="WARNING",
    )


@pytest.fixture
def scope():
    return Scope(tenant_id="acme-rentals", dealer_id="north")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
async def ledger(settings):
    store = SQLiteSuggestionLedger(settings.ledger_db_path)
    await store.initialize()
    return store


@pytest.fixture
async def weight_store(settings):
    store = SQLiteWeightProfileStore(settings.weights_db_path, settings)
    await store.initialize()
    return store


@pytest.fixture
def reposition_profile(scope):
    """Profile with the demand/utilization/health weights used in the worked example."""
    return WeightProfile(
        scope_key=scope.key,
        weights={
            SuggestionType.REPOSITION: {
                FactorKind.DEMAND: 40.0,
                FactorKind.UTILIZATION: 25.0,
                FactorKind.HEALTH: 15.0,
            }
        },
        thresholds={
            SuggestionType.REPOSITION: TypeThreshold(
                activation_threshold=20.0, min_actionable_score=70.0
            )
        },
        learning_rate=2.0,
        weight_bound=100.0,
    )


@pytest.fixture
def example_factors():
    return (
        FactorValue(FactorKind.DEMAND, 0.8, 0.8, 0.9),
        FactorValue(FactorKind.UTILIZATION, 0.7, 0.4, 0.8),
        FactorValue(FactorKind.HEALTH, "watch", 0.2, 0.5),
    )


def make_subject(subject_id: str = "asset-1", fingerprint: str | None = None) -> Subject:
    return Subject(
        subject_id=subject_id,
        kind=SubjectKind.ASSET,
        site_id="site-7",
        equipment_ids=(subject_id,),
        state_fingerprint=fingerprint,
    )


def make_suggestion(
    scope: Scope,
    subject_id: str = "asset-1",
    suggestion_type: SuggestionType = SuggestionType.REPOSITION,
    created_at: datetime = NOW,
    window_hours: float = 24.0,
    contributions: list[tuple[FactorKind, float]] | None = None,
    factors: list[FactorValue] | None = None,
) -> Suggestion:
    return Suggestion(
        id=str(uuid4()),
        suggestion_type=suggestion_type,
        scope=scope,
        subject=make_subject(subject_id),
        score=88.3,
        confidence=0.79375,
        contributions=contributions
        if contributions is not None
        else [(FactorKind.DEMAND, 28.8), (FactorKind.UTILIZATION, 8.0), (FactorKind.HEALTH, 1.5)],
        explanation="Demand strongly supports this (+28.8).",
        window=EvaluationWindow(
            start=created_at, end=created_at + timedelta(hours=window_hours)
        ),
        created_at=created_at,
        factors=factors
        if factors is not None
        else [
            FactorValue(FactorKind.DEMAND, 0.8, 0.8, 0.9),
            FactorValue(FactorKind.UTILIZATION, 0.7, 0.4, 0.8),
            FactorValue(FactorKind.HEALTH, "watch", 0.2, 0.5),
        ],
    )


@pytest.fixture
def subject_factory():
    return make_subject


@pytest.fixture
def suggestion_factory(scope):
    def factory(**kwargs) -> Suggestion:
        return make_suggestion(kwargs.pop("scope", scope), **kwargs)

    return factory
