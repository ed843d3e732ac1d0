"""Render factor contributions as one human-readable sentence."""

from __future__ import annotations

from suggestion_engine.models.domain import FactorKind
from suggestion_engine.scoring.scorer import order_contributions

FACTOR_LABELS: dict[FactorKind, str] = {
    FactorKind.DEMAND: "demand",
    FactorKind.UTILIZATION: "utilization",
    FactorKind.HEALTH: "equipment health",
    FactorKind.PROXIMITY: "proximity",
    FactorKind.SLA_RISK: "SLA risk",
    FactorKind.INVENTORY: "inventory",
    FactorKind.CALENDAR: "calendar",
    FactorKind.CARBON: "carbon impact",
}

STRONG_CONTRIBUTION = 20.0
WEAK_CONTRIBUTION = 5.0

NO_SIGNAL_TEXT = "No factor contributed to this suggestion."


class ExplanationSynthesizer:
    def __init__(self, top_n: int = 4) -> None:
        if top_n < 1:
            raise ValueError("top_n must be at least 1")
        self._top_n = top_n

    def explain(self, contributions: list[tuple[FactorKind, float]]) -> str:
        """Top-N factors by |contribution|, strongest first, e.g.
        "Demand strongly supports this (+28.8) and equipment health slightly weighs against it (-1.5)."
        """
        ranked = [c for c in order_contributions(contributions) if c[1] != 0.0]
        clauses = [self._clause(kind, value) for kind, value in ranked[: self._top_n]]
        if not clauses:
            return NO_SIGNAL_TEXT

        if len(clauses) == 1:
            body = clauses[0]
        else:
            body = ", ".join(clauses[:-1]) + " and " + clauses[-1]
        return body[0].upper() + body[1:] + "."

    @staticmethod
    def _clause(kind: FactorKind, value: float) -> str:
        magnitude = abs(value)
        if magnitude >= STRONG_CONTRIBUTION:
            adverb = "strongly "
        elif magnitude < WEAK_CONTRIBUTION:
            adverb = "slightly "
        else:
            adverb = ""
        effect = "supports this" if value > 0 else "weighs against it"
        return f"{FACTOR_LABELS[kind]} {adverb}{effect} ({value:+.1f})"
