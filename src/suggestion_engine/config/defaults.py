"""Starting weight tables for a scope that has never been adapted."""

from __future__ import annotations

from suggestion_engine.config.settings import Settings
from suggestion_engine.models.domain import (
    FactorKind,
    SuggestionType,
    TypeThreshold,
    WeightProfile,
)

F = FactorKind

DEFAULT_WEIGHTS: dict[SuggestionType, dict[FactorKind, float]] = {
    # Move idle units toward sites where demand outstrips local stock
    SuggestionType.REPOSITION: {
        F.DEMAND: 40.0,
        F.UTILIZATION: -25.0,
        F.INVENTORY: -20.0,
        F.PROXIMITY: 15.0,
        F.CARBON: 5.0,
    },
    SuggestionType.SCHEDULE_MAINTENANCE: {
        F.HEALTH: -45.0,
        F.SLA_RISK: 25.0,
        F.UTILIZATION: -15.0,
        F.CALENDAR: 15.0,
    },
    SuggestionType.EXTEND_RENTAL: {
        F.UTILIZATION: 35.0,
        F.CALENDAR: 30.0,
        F.HEALTH: 10.0,
        F.DEMAND: -10.0,
        F.SLA_RISK: -10.0,
    },
    SuggestionType.END_RENTAL: {
        F.UTILIZATION: -40.0,
        F.CALENDAR: -20.0,
        F.DEMAND: 20.0,
        F.CARBON: 10.0,
    },
    SuggestionType.SWAP_UNIT: {
        F.HEALTH: -40.0,
        F.SLA_RISK: 35.0,
        F.INVENTORY: 15.0,
        F.PROXIMITY: 10.0,
    },
}


def default_profile(scope_key: str, settings: Settings) -> WeightProfile:
    """Revision-0 profile built from DEFAULT_WEIGHTS and the configured thresholds."""
    threshold = TypeThreshold(
        activation_threshold=settings.default_activation_threshold,
        min_actionable_score=settings.default_min_actionable_score,
    )
    return WeightProfile(
        scope_key=scope_key,
        weights={t: dict(w) for t, w in DEFAULT_WEIGHTS.items()},
        thresholds={t: threshold for t in SuggestionType},
        learning_rate=settings.learning_rate,
        weight_bound=settings.weight_bound,
        revision=0,
    )
