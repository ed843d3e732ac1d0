"""Weighted scoring: raw = sum(w_k * v_k * c_k), mapped affinely onto [0, 100]."""

from __future__ import annotations

import math

import numpy as np

from suggestion_engine.exceptions import ConfigurationError, MalformedFactorError
from suggestion_engine.models.domain import (
    Candidate,
    FactorKind,
    FactorValue,
    ScoreResult,
    SuggestionType,
    TypeThreshold,
    WeightProfile,
)
from suggestion_engine.scoring.confidence import ConfidenceScorer
from suggestion_engine.scoring.reason_codes import ReasonCode

NEUTRAL_SCORE = 50.0


def map_score(raw_score: float, threshold: TypeThreshold) -> float:
    """Affine map with raw 0 -> 50 and the activation threshold -> the minimum actionable score."""
    if threshold.activation_threshold <= 0:
        raise ConfigurationError("activation threshold must be positive")
    if not NEUTRAL_SCORE < threshold.min_actionable_score <= 100.0:
        raise ConfigurationError("minimum actionable score must be in (50, 100]")
    slope = (threshold.min_actionable_score - NEUTRAL_SCORE) / threshold.activation_threshold
    return max(0.0, min(100.0, NEUTRAL_SCORE + slope * raw_score))


def order_contributions(
    contributions: list[tuple[FactorKind, float]] | tuple[tuple[FactorKind, float], ...],
) -> list[tuple[FactorKind, float]]:
    """Descending magnitude; equal magnitudes fall back to factor enumeration order."""
    return sorted(contributions, key=lambda item: (-abs(item[1]), item[0].order))


class Scorer:
    def __init__(self, min_confidence: float = 0.0) -> None:
        self._min_confidence = min_confidence
        self._confidence = ConfidenceScorer()

    def score(self, candidate: Candidate, profile: WeightProfile) -> ScoreResult:
        """Raises MalformedFactorError if a factor this type weighs could not be normalized."""
        type_weights = profile.weights_for(candidate.suggestion_type)
        for kind, error in candidate.malformed:
            if type_weights.get(kind, 0.0) != 0.0:
                raise MalformedFactorError(error)
        factors = self._index_factors(candidate.factors)

        # Missing kinds count as defaulted (value 0, confidence 0)
        kinds = sorted(
            [k for k, w in type_weights.items() if w != 0.0], key=lambda k: k.order
        )
        weights = np.array([type_weights[k] for k in kinds], dtype=float)
        values = np.array(
            [factors[k].normalized_value if k in factors else 0.0 for k in kinds],
            dtype=float,
        )
        confidences = np.array(
            [factors[k].confidence if k in factors else 0.0 for k in kinds],
            dtype=float,
        )

        contrib = weights * values * confidences
        raw_score = float(contrib.sum())
        confidence = self._confidence.score(weights, confidences)
        threshold = profile.threshold(candidate.suggestion_type)
        score = map_score(raw_score, threshold)

        reason: str | None = None
        if confidence == 0.0:
            reason = ReasonCode.NO_SIGNAL
        elif confidence < self._min_confidence:
            reason = ReasonCode.LOW_CONFIDENCE
        elif score < threshold.min_actionable_score:
            reason = ReasonCode.BELOW_THRESHOLD

        return ScoreResult(
            score=score,
            raw_score=raw_score,
            confidence=confidence,
            contributions=tuple(
                order_contributions([(k, float(c)) for k, c in zip(kinds, contrib)])
            ),
            actionable=reason is None,
            reason=str(reason) if reason else None,
        )

    @staticmethod
    def _index_factors(factors: tuple[FactorValue, ...]) -> dict[FactorKind, FactorValue]:
        indexed: dict[FactorKind, FactorValue] = {}
        for f in factors:
            if f.kind in indexed:
                raise MalformedFactorError(f"duplicate factor {f.kind.value}")
            if not (math.isfinite(f.normalized_value) and -1.0 <= f.normalized_value <= 1.0):
                raise MalformedFactorError(
                    f"{f.kind.value}: normalized value {f.normalized_value!r} outside [-1, 1]"
                )
            if not (math.isfinite(f.confidence) and 0.0 <= f.confidence <= 1.0):
                raise MalformedFactorError(
                    f"{f.kind.value}: confidence {f.confidence!r} outside [0, 1]"
                )
            indexed[f.kind] = f
        return indexed


def rank_key(
    suggestion_type: SuggestionType, score: float, profile: WeightProfile
) -> tuple[float, float, int]:
    """Higher score first; on ties prefer the more signal-driven type."""
    return (-score, -profile.aggregate_abs_weight(suggestion_type), suggestion_type.order)
