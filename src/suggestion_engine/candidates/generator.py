"""Candidate generation with dedup against already-open suggestions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from suggestion_engine.models.domain import (
    Candidate,
    EvaluationWindow,
    FactorKind,
    FactorValue,
    OpenSuggestionRef,
    Subject,
    SuggestionType,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.scoring.reason_codes import ReasonCode
from suggestion_engine.signals.collector import SignalCollector
from suggestion_engine.signals.normalizer import SignalNormalizer

logger = get_logger("candidate_generator")


class AdmissionKind(str, Enum):
    NEW = "new"
    SUPERSEDE = "supersede"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class Admission:
    subject: Subject
    suggestion_type: SuggestionType
    kind: AdmissionKind
    supersedes: str | None = None
    reason: str | None = None


@dataclass
class CandidateBatch:
    window: EvaluationWindow
    candidates: list[Candidate] = field(default_factory=list)
    suppressed: int = 0


class CandidateGenerator:
    def __init__(
        self,
        collector: SignalCollector,
        normalizer: SignalNormalizer,
        reevaluation_interval: timedelta,
        window_length: timedelta,
        suggestion_types: list[SuggestionType] | None = None,
    ) -> None:
        self._collector = collector
        self._normalizer = normalizer
        self._reevaluation_interval = reevaluation_interval
        self._window_length = window_length
        self._types = suggestion_types or list(SuggestionType)

    def admit(
        self,
        subjects: list[Subject],
        open_index: dict[tuple[str, SuggestionType], OpenSuggestionRef],
        now: datetime,
        triggered: frozenset[str] = frozenset(),
    ) -> list[Admission]:
        """Decide, per (subject, type), whether it is evaluated this cycle. One entry per key."""
        admissions: list[Admission] = []
        seen: set[tuple[str, SuggestionType]] = set()

        for subject in subjects:
            for suggestion_type in self._types:
                if subject.kind not in suggestion_type.subject_kinds:
                    continue
                key = (subject.subject_id, suggestion_type)
                if key in seen:
                    continue
                seen.add(key)

                ref = open_index.get(key)
                if ref is None:
                    admissions.append(Admission(subject, suggestion_type, AdmissionKind.NEW))
                    continue

                reason = self._supersede_reason(subject, ref, now, triggered)
                if reason is None:
                    admissions.append(
                        Admission(
                            subject,
                            suggestion_type,
                            AdmissionKind.SUPPRESSED,
                            reason=str(ReasonCode.DUPLICATE_SUPPRESSED),
                        )
                    )
                else:
                    admissions.append(
                        Admission(
                            subject,
                            suggestion_type,
                            AdmissionKind.SUPERSEDE,
                            supersedes=ref.suggestion_id,
                            reason=reason,
                        )
                    )
        return admissions

    async def generate(
        self,
        subjects: list[Subject],
        open_index: dict[tuple[str, SuggestionType], OpenSuggestionRef],
        now: datetime,
        triggered: frozenset[str] = frozenset(),
    ) -> CandidateBatch:
        window = EvaluationWindow(start=now, end=now + self._window_length)
        batch = CandidateBatch(window=window)

        admissions = self.admit(subjects, open_index, now, triggered)
        admitted = [a for a in admissions if a.kind is not AdmissionKind.SUPPRESSED]
        batch.suppressed = len(admissions) - len(admitted)
        if not admitted:
            return batch

        to_fetch: dict[str, Subject] = {}
        for a in admitted:
            to_fetch.setdefault(a.subject.subject_id, a.subject)
        readings = await self._collector.collect_many(list(to_fetch.values()), window)

        vectors: dict[str, tuple[tuple[FactorValue, ...], dict[FactorKind, str]]] = {}
        for subject_id, subject_readings in readings.items():
            vector, malformed = self._normalizer.normalize_vector(subject_readings)
            for kind, error in malformed.items():
                logger.warning(
                    "factor_malformed", subject_id=subject_id, kind=kind.value, error=error
                )
            vectors[subject_id] = (vector, malformed)

        for a in admitted:
            vector, malformed = vectors[a.subject.subject_id]
            batch.candidates.append(
                Candidate(
                    subject=a.subject,
                    suggestion_type=a.suggestion_type,
                    window=window,
                    factors=vector,
                    supersedes=a.supersedes,
                    malformed=tuple(malformed.items()),
                )
            )

        logger.debug(
            "candidates_generated",
            admitted=len(admitted),
            candidates=len(batch.candidates),
            suppressed=batch.suppressed,
        )
        return batch

    def _supersede_reason(
        self,
        subject: Subject,
        ref: OpenSuggestionRef,
        now: datetime,
        triggered: frozenset[str],
    ) -> str | None:
        if subject.subject_id in triggered:
            return "triggered"
        if (
            subject.state_fingerprint is not None
            and subject.state_fingerprint != ref.state_fingerprint
        ):
            return "state_changed"
        if now - ref.created_at >= self._reevaluation_interval:
            return "reevaluation_due"
        return None
