"""Weight nudge: w_k += eta * decision * |c_k| / sum|c| * sign(c_k), clamped to +/- bound."""

from __future__ import annotations

import math

from suggestion_engine.models.domain import (
    FactorKind,
    FeedbackAction,
    Suggestion,
    WeightProfile,
)


def contribution_shares(
    contributions: list[tuple[FactorKind, float]],
) -> dict[FactorKind, float]:
    """Each factor's share of total absolute contribution, in [0, 1]."""
    total = sum(abs(c) for _, c in contributions)
    if total == 0.0:
        return {}
    return {kind: abs(c) / total for kind, c in contributions if c != 0.0}


def compute_nudge(
    profile: WeightProfile, suggestion: Suggestion, action: FeedbackAction
) -> WeightProfile:
    """Return ``profile`` with the decided suggestion's type weights nudged.

    Acceptance raises the weight of every factor that pushed the score up and
    lowers the weight of every factor that held it down; a decline does the
    opposite. Step size is the factor's share of the total contribution.
    """
    shares = contribution_shares(suggestion.contributions)
    if not shares:
        return profile

    signs = {kind: math.copysign(1.0, c) for kind, c in suggestion.contributions if c != 0.0}
    type_weights = profile.weights_for(suggestion.suggestion_type)
    bound = profile.weight_bound

    for kind, share in shares.items():
        current = type_weights.get(kind, 0.0)
        updated = current + profile.learning_rate * action.sign * share * signs[kind]
        type_weights[kind] = max(-bound, min(bound, updated))

    return profile.with_type_weights(suggestion.suggestion_type, type_weights)
