"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


class FactorKind(str, Enum):
    """Independently sourced signals. Declaration order is the tie-break order."""

    DEMAND = "demand"
    UTILIZATION = "utilization"
    HEALTH = "health"
    PROXIMITY = "proximity"
    SLA_RISK = "sla_risk"
    INVENTORY = "inventory"
    CALENDAR = "calendar"
    CARBON = "carbon"

    @property
    def order(self) -> int:
        return _FACTOR_ORDER[self]


_FACTOR_ORDER = {kind: i for i, kind in enumerate(FactorKind)}


class SubjectKind(str, Enum):
    ASSET = "asset"
    SITE = "site"
    ASSET_TYPE_SITE = "asset_type_site"


class SuggestionType(str, Enum):
    REPOSITION = "reposition"
    SCHEDULE_MAINTENANCE = "schedule_maintenance"
    EXTEND_RENTAL = "extend_rental"
    END_RENTAL = "end_rental"
    SWAP_UNIT = "swap_unit"

    @property
    def order(self) -> int:
        return _TYPE_ORDER[self]

    @property
    def subject_kinds(self) -> frozenset[SubjectKind]:
        return SUBJECT_KINDS_BY_TYPE[self]


_TYPE_ORDER = {t: i for i, t in enumerate(SuggestionType)}

SUBJECT_KINDS_BY_TYPE: dict[SuggestionType, frozenset[SubjectKind]] = {
    SuggestionType.REPOSITION: frozenset(
        {SubjectKind.ASSET, SubjectKind.SITE, SubjectKind.ASSET_TYPE_SITE}
    ),
    SuggestionType.SCHEDULE_MAINTENANCE: frozenset({SubjectKind.ASSET}),
    SuggestionType.EXTEND_RENTAL: frozenset({SubjectKind.ASSET}),
    SuggestionType.END_RENTAL: frozenset({SubjectKind.ASSET}),
    SuggestionType.SWAP_UNIT: frozenset({SubjectKind.ASSET}),
}


class SuggestionState(str, Enum):
    OPEN = "OPEN"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not SuggestionState.OPEN


class FeedbackAction(str, Enum):
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"

    @property
    def sign(self) -> int:
        return 1 if self is FeedbackAction.ACCEPT else -1

    @property
    def resulting_state(self) -> SuggestionState:
        if self is FeedbackAction.ACCEPT:
            return SuggestionState.ACCEPTED
        return SuggestionState.DECLINED


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Scope:
    """Tenant/organisational boundary for weights and suggestions."""

    tenant_id: str
    dealer_id: str | None = None
    customer_id: str | None = None
    role: str | None = None

    @property
    def key(self) -> str:
        parts = (self.tenant_id, self.dealer_id, self.customer_id, self.role)
        return "/".join(p if p else "*" for p in parts)

    def to_dict(self) -> dict:
        return {
            "tenantId": self.tenant_id,
            "dealerId": self.dealer_id,
            "customerId": self.customer_id,
            "role": self.role,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Scope:
        return cls(
            tenant_id=data["tenantId"],
            dealer_id=data.get("dealerId"),
            customer_id=data.get("customerId"),
            role=data.get("role"),
        )


@dataclass(frozen=True)
class Subject:
    """Something a suggestion can be about: an asset, a site, or an asset type at a site."""

    subject_id: str
    kind: SubjectKind
    site_id: str | None = None
    equipment_ids: tuple[str, ...] = ()
    state_fingerprint: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.subject_id,
            "kind": self.kind.value,
            "siteId": self.site_id,
            "equipmentIds": list(self.equipment_ids),
        }


@dataclass(frozen=True)
class SignalReading:
    """What a signal provider returns for one subject and window."""

    value: float | str | bool
    confidence: float


@dataclass(frozen=True)
class FactorValue:
    kind: FactorKind
    raw_value: float | str | bool | None
    normalized_value: float
    confidence: float

    @classmethod
    def neutral(cls, kind: FactorKind) -> FactorValue:
        return cls(kind=kind, raw_value=None, normalized_value=0.0, confidence=0.0)

    @property
    def is_defaulted(self) -> bool:
        return self.raw_value is None and self.confidence == 0.0


@dataclass(frozen=True)
class EvaluationWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Candidate:
    """Unscored (subject, type) pair for one evaluation pass. Never persisted."""

    subject: Subject
    suggestion_type: SuggestionType
    window: EvaluationWindow
    factors: tuple[FactorValue, ...]
    supersedes: str | None = None
    # Kinds whose reading could not be normalized, with the error
    malformed: tuple[tuple[FactorKind, str], ...] = ()


@dataclass(frozen=True)
class TypeThreshold:
    """Raw activation threshold and the score it maps to."""

    activation_threshold: float
    min_actionable_score: float


@dataclass(frozen=True)
class WeightProfile:
    scope_key: str
    weights: dict[SuggestionType, dict[FactorKind, float]]
    thresholds: dict[SuggestionType, TypeThreshold]
    learning_rate: float
    weight_bound: float
    revision: int = 0
    updated_at: datetime | None = None

    def weight(self, suggestion_type: SuggestionType, kind: FactorKind) -> float:
        return self.weights.get(suggestion_type, {}).get(kind, 0.0)

    def weights_for(self, suggestion_type: SuggestionType) -> dict[FactorKind, float]:
        return dict(self.weights.get(suggestion_type, {}))

    def aggregate_abs_weight(self, suggestion_type: SuggestionType) -> float:
        return sum(abs(w) for w in self.weights.get(suggestion_type, {}).values())

    def threshold(self, suggestion_type: SuggestionType) -> TypeThreshold:
        return self.thresholds[suggestion_type]

    def with_type_weights(
        self, suggestion_type: SuggestionType, type_weights: dict[FactorKind, float]
    ) -> WeightProfile:
        weights = {t: dict(w) for t, w in self.weights.items()}
        weights[suggestion_type] = dict(type_weights)
        return replace(self, weights=weights)

    def to_payload(self) -> dict:
        return {
            "weights": {
                t.value: {k.value: w for k, w in sorted(kw.items(), key=lambda i: i[0].order)}
                for t, kw in sorted(self.weights.items(), key=lambda i: i[0].order)
            },
            "thresholds": {
                t.value: {
                    "activationThreshold": th.activation_threshold,
                    "minActionableScore": th.min_actionable_score,
                }
                for t, th in sorted(self.thresholds.items(), key=lambda i: i[0].order)
            },
            "learningRate": self.learning_rate,
            "weightBound": self.weight_bound,
        }

    @classmethod
    def from_payload(
        cls,
        scope_key: str,
        payload: dict,
        revision: int,
        updated_at: datetime | None = None,
    ) -> WeightProfile:
        return cls(
            scope_key=scope_key,
            weights={
                SuggestionType(t): {FactorKind(k): float(w) for k, w in kw.items()}
                for t, kw in payload["weights"].items()
            },
            thresholds={
                SuggestionType(t): TypeThreshold(
                    activation_threshold=float(th["activationThreshold"]),
                    min_actionable_score=float(th["minActionableScore"]),
                )
                for t, th in payload["thresholds"].items()
            },
            learning_rate=float(payload["learningRate"]),
            weight_bound=float(payload["weightBound"]),
            revision=revision,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class ScoreResult:
    score: float
    raw_score: float
    confidence: float
    contributions: tuple[tuple[FactorKind, float], ...]
    actionable: bool
    reason: str | None = None


@dataclass
class Suggestion:
    id: str
    suggestion_type: SuggestionType
    scope: Scope
    subject: Subject
    score: float
    confidence: float
    contributions: list[tuple[FactorKind, float]]
    explanation: str
    window: EvaluationWindow
    created_at: datetime
    state: SuggestionState = SuggestionState.OPEN
    decided_at: datetime | None = None
    decided_by: str | None = None
    decision_reason: str | None = None
    factors: list[FactorValue] = field(default_factory=list)
    profile_revision: int = 0


@dataclass(frozen=True)
class LedgerEvent:
    seq: int
    suggestion_id: str
    state: SuggestionState
    occurred_at: datetime
    actor: str | None
    reason: str | None


@dataclass(frozen=True)
class OpenSuggestionRef:
    suggestion_id: str
    created_at: datetime
    window_end: datetime
    state_fingerprint: str | None


@dataclass(frozen=True)
class FeedbackEvent:
    suggestion_id: str
    action: FeedbackAction
    reason: str | None
    actor: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class FeedbackOutcome:
    suggestion_id: str
    state: SuggestionState
    applied: bool
    deferred: bool
    profile_revision: int | None


@dataclass
class CycleReport:
    cycle_id: str
    scope_key: str
    started_at: datetime
    profile_revision: int = 0
    subjects: int = 0
    candidates: int = 0
    suppressed: int = 0
    expired: int = 0
    superseded: int = 0
    emitted: list[Suggestion] = field(default_factory=list)
    discarded: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    cancelled: bool = False
    spans: list[dict] = field(default_factory=list)
    duration_ms: float = 0.0
