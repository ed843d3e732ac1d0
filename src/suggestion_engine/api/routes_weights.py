"""Weight profile inspection and administrative override."""

from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException

from suggestion_engine.api.dependencies import get_weight_store
from suggestion_engine.exceptions import WeightProfileConflict, WeightStoreUnavailable
from suggestion_engine.models.domain import (
    FactorKind,
    Scope,
    SuggestionType,
    TypeThreshold,
    WeightProfile,
)
from suggestion_engine.models.schemas import WeightOverrideRequest, WeightProfileResponse
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore

router = APIRouter()


@router.get("/weights", response_model=WeightProfileResponse)
async def get_weights(
    tenant_id: str,
    dealer_id: str | None = None,
    customer_id: str | None = None,
    role: str | None = None,
    store: SQLiteWeightProfileStore = Depends(get_weight_store),
) -> WeightProfileResponse:
    scope = Scope(tenant_id, dealer_id, customer_id, role)
    try:
        profile = await store.get(scope.key)
    except WeightStoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return WeightProfileResponse.from_domain(profile)


@router.put("/weights", response_model=WeightProfileResponse)
async def override_weights(
    request: WeightOverrideRequest,
    store: SQLiteWeightProfileStore = Depends(get_weight_store),
) -> WeightProfileResponse:
    scope = request.to_scope()
    try:
        current = await store.get(scope.key)
        updated = _apply_override(current, request)
        written = await store.override(updated, request.expected_revision, actor=request.actor)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except WeightProfileConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except WeightStoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return WeightProfileResponse.from_domain(written)


def _apply_override(profile: WeightProfile, request: WeightOverrideRequest) -> WeightProfile:
    weights = {t: dict(w) for t, w in profile.weights.items()}
    for type_name, type_weights in (request.weights or {}).items():
        suggestion_type = SuggestionType(type_name)
        for kind_name, value in type_weights.items():
            if abs(value) > profile.weight_bound:
                raise ValueError(f"weight {value} exceeds bound {profile.weight_bound}")
            weights.setdefault(suggestion_type, {})[FactorKind(kind_name)] = value

    thresholds = dict(profile.thresholds)
    for type_name, th in (request.thresholds or {}).items():
        thresholds[SuggestionType(type_name)] = TypeThreshold(
            activation_threshold=th.activation_threshold,
            min_actionable_score=th.min_actionable_score,
        )

    return replace(
        profile,
        weights=weights,
        thresholds=thresholds,
        learning_rate=request.learning_rate or profile.learning_rate,
    )
