"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from suggestion_engine.models.domain import (
    CycleReport,
    FeedbackOutcome,
    LedgerEvent,
    Scope,
    Suggestion,
    WeightProfile,
)

StateLiteral = Literal["OPEN", "ACCEPTED", "DECLINED", "EXPIRED"]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScopeSchema(WireModel):
    tenant_id: str
    dealer_id: str | None = None
    customer_id: str | None = None


class SubjectSchema(WireModel):
    id: str
    kind: str
    site_id: str | None = None
    equipment_ids: list[str] = Field(default_factory=list)


class FactorContribution(WireModel):
    kind: str
    contribution: float


class SuggestionRecord(WireModel):
    id: str
    type: str
    scope: ScopeSchema
    subject: SubjectSchema
    score: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(ge=0.0, le=1.0)
    factors: list[FactorContribution]
    explanation: str
    state: StateLiteral
    created_at: datetime
    decided_at: datetime | None = None
    decided_by: str | None = None
    decision_reason: str | None = None

    @classmethod
    def from_domain(cls, suggestion: Suggestion) -> SuggestionRecord:
        return cls(
            id=suggestion.id,
            type=suggestion.suggestion_type.value,
            scope=ScopeSchema(
                tenant_id=suggestion.scope.tenant_id,
                dealer_id=suggestion.scope.dealer_id,
                customer_id=suggestion.scope.customer_id,
            ),
            subject=SubjectSchema(
                id=suggestion.subject.subject_id,
                kind=suggestion.subject.kind.value,
                site_id=suggestion.subject.site_id,
                equipment_ids=list(suggestion.subject.equipment_ids),
            ),
            score=round(suggestion.score, 4),
            confidence=round(suggestion.confidence, 4),
            factors=[
                FactorContribution(kind=k.value, contribution=round(c, 4))
                for k, c in suggestion.contributions
            ],
            explanation=suggestion.explanation,
            state=suggestion.state.value,
            created_at=suggestion.created_at,
            decided_at=suggestion.decided_at,
            decided_by=suggestion.decided_by,
            decision_reason=suggestion.decision_reason,
        )


class LedgerEventRecord(WireModel):
    seq: int
    state: StateLiteral
    occurred_at: datetime
    actor: str | None = None
    reason: str | None = None

    @classmethod
    def from_domain(cls, event: LedgerEvent) -> LedgerEventRecord:
        return cls(
            seq=event.seq,
            state=event.state.value,
            occurred_at=event.occurred_at,
            actor=event.actor,
            reason=event.reason,
        )


class FeedbackRequest(WireModel):
    action: Literal["ACCEPT", "DECLINE"]
    reason: str | None = None
    actor: str = Field(min_length=1)


class FeedbackResponse(WireModel):
    suggestion_id: str
    state: StateLiteral
    applied: bool
    deferred: bool
    profile_revision: int | None = None

    @classmethod
    def from_domain(cls, outcome: FeedbackOutcome) -> FeedbackResponse:
        return cls(
            suggestion_id=outcome.suggestion_id,
            state=outcome.state.value,
            applied=outcome.applied,
            deferred=outcome.deferred,
            profile_revision=outcome.profile_revision,
        )


class ScopeRequest(WireModel):
    tenant_id: str = Field(min_length=1)
    dealer_id: str | None = None
    customer_id: str | None = None
    role: str | None = None

    def to_scope(self) -> Scope:
        return Scope(
            tenant_id=self.tenant_id,
            dealer_id=self.dealer_id,
            customer_id=self.customer_id,
            role=self.role,
        )


class CycleRequest(ScopeRequest):
    subject_ids: list[str] = Field(default_factory=list)


class CycleResponse(WireModel):
    cycle_id: str
    scope_key: str
    profile_revision: int
    subjects: int
    candidates: int
    suppressed: int
    expired: int
    superseded: int
    cancelled: bool
    emitted: list[SuggestionRecord]
    discarded: list[dict]
    skipped: list[dict]
    duration_ms: float

    @classmethod
    def from_domain(cls, report: CycleReport) -> CycleResponse:
        return cls(
            cycle_id=report.cycle_id,
            scope_key=report.scope_key,
            profile_revision=report.profile_revision,
            subjects=report.subjects,
            candidates=report.candidates,
            suppressed=report.suppressed,
            expired=report.expired,
            superseded=report.superseded,
            cancelled=report.cancelled,
            emitted=[SuggestionRecord.from_domain(s) for s in report.emitted],
            discarded=report.discarded,
            skipped=report.skipped,
            duration_ms=report.duration_ms,
        )


class ThresholdSchema(WireModel):
    activation_threshold: float = Field(gt=0.0)
    min_actionable_score: float = Field(gt=50.0, le=100.0)


class WeightProfileResponse(WireModel):
    scope_key: str
    revision: int
    weights: dict[str, dict[str, float]]
    thresholds: dict[str, ThresholdSchema]
    learning_rate: float
    weight_bound: float
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, profile: WeightProfile) -> WeightProfileResponse:
        payload = profile.to_payload()
        return cls(
            scope_key=profile.scope_key,
            revision=profile.revision,
            weights=payload["weights"],
            thresholds={
                t: ThresholdSchema.model_validate(th) for t, th in payload["thresholds"].items()
            },
            learning_rate=profile.learning_rate,
            weight_bound=profile.weight_bound,
            updated_at=profile.updated_at,
        )


class WeightOverrideRequest(ScopeRequest):
    expected_revision: int = Field(ge=0)
    actor: str = Field(min_length=1)
    weights: dict[str, dict[str, float]] | None = None
    thresholds: dict[str, ThresholdSchema] | None = None
    learning_rate: float | None = Field(default=None, gt=0.0)


class HealthResponse(WireModel):
    status: str
    suggestions: dict[str, int]
    scheduler_running: bool
