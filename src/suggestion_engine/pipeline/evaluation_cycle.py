"""One evaluation cycle: candidates -> factors -> score -> explanation -> ledger."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import datetime
from uuid import uuid4

import structlog

from suggestion_engine.candidates.generator import CandidateGenerator
from suggestion_engine.exceptions import (
    CycleAborted,
    MalformedFactorError,
    StaleSuggestion,
    WeightStoreUnavailable,
)
from suggestion_engine.explanation.synthesizer import ExplanationSynthesizer
from suggestion_engine.models.domain import (
    Candidate,
    CycleReport,
    ScoreResult,
    Scope,
    Suggestion,
    SuggestionState,
    WeightProfile,
    utcnow,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.metrics import log_cycle_metrics
from suggestion_engine.observability.tracing import CycleTrace
from suggestion_engine.protocols.subject_source import SubjectSource
from suggestion_engine.scoring.reason_codes import ReasonCode
from suggestion_engine.scoring.scorer import Scorer, rank_key
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore

logger = get_logger("evaluation_cycle")


class EvaluationCycle:
    def __init__(
        self,
        subject_source: SubjectSource,
        generator: CandidateGenerator,
        scorer: Scorer,
        synthesizer: ExplanationSynthesizer,
        ledger: SQLiteSuggestionLedger,
        weight_store: SQLiteWeightProfileStore,
    ) -> None:
        self._subjects = subject_source
        self._generator = generator
        self._scorer = scorer
        self._synthesizer = synthesizer
        self._ledger = ledger
        self._weights = weight_store

    async def run(
        self,
        scope: Scope,
        now: datetime | None = None,
        triggered: Iterable[str] = (),
        cancel: asyncio.Event | None = None,
    ) -> CycleReport:
        now = now or utcnow()
        trace = CycleTrace()
        report = CycleReport(cycle_id=trace.cycle_id, scope_key=scope.key, started_at=now)

        with structlog.contextvars.bound_contextvars(cycle_id=trace.cycle_id):
            # Profile is loaded once and read-only for the rest of the cycle
            try:
                profile = await self._weights.get(scope.key)
            except WeightStoreUnavailable as e:
                logger.error("cycle_aborted", scope_key=scope.key, error=str(e))
                raise CycleAborted(f"weight store unavailable for {scope.key}") from e
            report.profile_revision = profile.revision

            with trace.span("expire"):
                report.expired = len(await self._ledger.expire_due(scope.key, now))

            with trace.span("collect"):
                subjects = await self._subjects.list_active(scope)
                open_index = await self._ledger.open_index(scope.key)
                batch = await self._generator.generate(
                    subjects, open_index, now, frozenset(triggered)
                )
            report.subjects = len(subjects)
            report.candidates = len(batch.candidates)
            report.suppressed = batch.suppressed

            with trace.span("score"):
                actionable, retire_only = self._score_all(batch.candidates, profile, report, cancel)

            with trace.span("persist"):
                await self._persist(scope, actionable, retire_only, profile, now, report, cancel)

            report.spans = trace.span_dicts()
            report.duration_ms = round(trace.elapsed_ms, 2)
            log_cycle_metrics(
                cycle_id=report.cycle_id,
                scope_key=report.scope_key,
                candidates=report.candidates,
                emitted=len(report.emitted),
                discarded=len(report.discarded),
                skipped=len(report.skipped),
                suppressed=report.suppressed,
                expired=report.expired,
            )
        return report

    def _score_all(
        self,
        candidates: list[Candidate],
        profile: WeightProfile,
        report: CycleReport,
        cancel: asyncio.Event | None,
    ) -> tuple[list[tuple[Candidate, ScoreResult]], list[Candidate]]:
        actionable: list[tuple[Candidate, ScoreResult]] = []
        retire_only: list[Candidate] = []

        for candidate in candidates:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                break
            try:
                result = self._scorer.score(candidate, profile)
            except MalformedFactorError as e:
                logger.warning(
                    "candidate_skipped",
                    subject_id=candidate.subject.subject_id,
                    suggestion_type=candidate.suggestion_type.value,
                    error=str(e),
                )
                report.skipped.append(
                    {
                        "subjectId": candidate.subject.subject_id,
                        "type": candidate.suggestion_type.value,
                        "reason": str(ReasonCode.MALFORMED_FACTOR),
                        "error": str(e),
                    }
                )
                continue

            if result.actionable:
                actionable.append((candidate, result))
                continue

            report.discarded.append(
                {
                    "subjectId": candidate.subject.subject_id,
                    "type": candidate.suggestion_type.value,
                    "score": round(result.score, 4),
                    "confidence": round(result.confidence, 4),
                    "reason": result.reason,
                }
            )
            if candidate.supersedes is not None:
                retire_only.append(candidate)

        actionable.sort(
            key=lambda cr: (
                *rank_key(cr[0].suggestion_type, cr[1].score, profile),
                cr[0].subject.subject_id,
            )
        )
        return actionable, retire_only

    async def _persist(
        self,
        scope: Scope,
        actionable: list[tuple[Candidate, ScoreResult]],
        retire_only: list[Candidate],
        profile: WeightProfile,
        now: datetime,
        report: CycleReport,
        cancel: asyncio.Event | None,
    ) -> None:
        for candidate, result in actionable:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                return
            if candidate.supersedes is not None:
                await self._retire(candidate.supersedes, now, report)

            suggestion = Suggestion(
                id=str(uuid4()),
                suggestion_type=candidate.suggestion_type,
                scope=scope,
                subject=candidate.subject,
                score=result.score,
                confidence=result.confidence,
                contributions=list(result.contributions),
                explanation=self._synthesizer.explain(list(result.contributions)),
                window=candidate.window,
                created_at=now,
                factors=list(candidate.factors),
                profile_revision=profile.revision,
            )
            if await self._ledger.append(suggestion, candidate.subject.state_fingerprint):
                report.emitted.append(suggestion)
                logger.info(
                    "suggestion_emitted",
                    suggestion_id=suggestion.id,
                    subject_id=candidate.subject.subject_id,
                    suggestion_type=candidate.suggestion_type.value,
                    score=round(suggestion.score, 2),
                    confidence=round(suggestion.confidence, 4),
                )
            else:
                report.suppressed += 1

        for candidate in retire_only:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                return
            await self._retire(candidate.supersedes, now, report)

    async def _retire(self, suggestion_id: str, now: datetime, report: CycleReport) -> None:
        try:
            await self._ledger.transition(
                suggestion_id,
                SuggestionState.EXPIRED,
                occurred_at=now,
                actor="system",
                reason=str(ReasonCode.SUPERSEDED),
            )
        except StaleSuggestion:
            # Decided or retired concurrently
            return
        report.superseded += 1
