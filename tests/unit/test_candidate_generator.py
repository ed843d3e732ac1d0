"""Tests for candidate admission and generation."""

from datetime import timedelta

import pytest

from suggestion_engine.candidates.generator import AdmissionKind, CandidateGenerator
from suggestion_engine.models.domain import (
    FactorKind,
    OpenSuggestionRef,
    Subject,
    SubjectKind,
    SuggestionType,
)
from suggestion_engine.scoring.reason_codes import ReasonCode
from suggestion_engine.signals.collector import SignalCollector
from suggestion_engine.signals.memory import InMemorySignalProvider
from suggestion_engine.signals.normalizer import SignalNormalizer


def make_generator(providers=(), types=None):
    return CandidateGenerator(
        collector=SignalCollector(list(providers)),
        normalizer=SignalNormalizer(),
        reevaluation_interval=timedelta(hours=4),
        window_length=timedelta(hours=24),
        suggestion_types=types,
    )


def open_ref(now, suggestion_id="s-1", age=timedelta(minutes=10), fingerprint="fp-1"):
    return OpenSuggestionRef(
        suggestion_id=suggestion_id,
        created_at=now - age,
        window_end=now + timedelta(hours=20),
        state_fingerprint=fingerprint,
    )


def test_site_subjects_only_get_reposition(now):
    site = Subject(subject_id="site-7", kind=SubjectKind.SITE)
    admissions = make_generator().admit([site], {}, now)
    assert [(a.suggestion_type, a.kind) for a in admissions] == [
        (SuggestionType.REPOSITION, AdmissionKind.NEW)
    ]


def test_asset_gets_one_admission_per_type(now, subject_factory):
    admissions = make_generator().admit([subject_factory(), subject_factory()], {}, now)
    assert [a.suggestion_type for a in admissions] == list(SuggestionType)


def test_open_suggestion_suppresses_duplicate(now, subject_factory):
    subject = subject_factory(fingerprint="fp-1")
    index = {(subject.subject_id, SuggestionType.REPOSITION): open_ref(now)}
    admissions = make_generator(types=[SuggestionType.REPOSITION]).admit([subject], index, now)
    assert admissions[0].kind is AdmissionKind.SUPPRESSED
    assert admissions[0].reason == ReasonCode.DUPLICATE_SUPPRESSED.value


@pytest.mark.parametrize(
    "fingerprint,age,triggered,reason",
    [
        ("fp-1", timedelta(minutes=10), frozenset({"asset-1"}), "triggered"),
        ("fp-2", timedelta(minutes=10), frozenset(), "state_changed"),
        ("fp-1", timedelta(hours=5), frozenset(), "reevaluation_due"),
    ],
)
def test_supersede_reasons(now, subject_factory, fingerprint, age, triggered, reason):
    subject = subject_factory(fingerprint=fingerprint)
    index = {(subject.subject_id, SuggestionType.REPOSITION): open_ref(now, age=age)}
    admissions = make_generator(types=[SuggestionType.REPOSITION]).admit(
        [subject], index, now, triggered
    )
    assert admissions[0].kind is AdmissionKind.SUPERSEDE
    assert admissions[0].supersedes == "s-1"
    assert admissions[0].reason == reason


def test_unknown_fingerprint_does_not_supersede(now, subject_factory):
    subject = subject_factory(fingerprint=None)
    index = {(subject.subject_id, SuggestionType.REPOSITION): open_ref(now)}
    admissions = make_generator(types=[SuggestionType.REPOSITION]).admit([subject], index, now)
    assert admissions[0].kind is AdmissionKind.SUPPRESSED


@pytest.mark.asyncio
async def test_generate_fetches_each_subject_once(now, subject_factory):
    demand = InMemorySignalProvider(FactorKind.DEMAND)
    demand.set("asset-1", 1.0, confidence=0.9)
    generator = make_generator([demand])

    batch = await generator.generate([subject_factory()], {}, now)

    assert demand.calls == 1
    assert len(batch.candidates) == len(SuggestionType)
    assert batch.window.end - batch.window.start == timedelta(hours=24)
    first = batch.candidates[0]
    assert [f.kind for f in first.factors] == list(FactorKind)
    assert first.factors[0].confidence == 0.9


@pytest.mark.asyncio
async def test_generate_records_malformed_kinds_per_subject(now, subject_factory):
    health = InMemorySignalProvider(FactorKind.HEALTH)
    carbon = InMemorySignalProvider(FactorKind.CARBON)
    health.set("asset-1", "on fire")
    health.set("asset-2", "healthy")
    carbon.set("asset-2", "lots")
    generator = make_generator([health, carbon], types=[SuggestionType.SWAP_UNIT])

    batch = await generator.generate(
        [subject_factory("asset-1"), subject_factory("asset-2")], {}, now
    )

    by_subject = {c.subject.subject_id: c for c in batch.candidates}
    assert set(by_subject) == {"asset-1", "asset-2"}
    assert [kind for kind, _ in by_subject["asset-1"].malformed] == [FactorKind.HEALTH]
    assert [kind for kind, _ in by_subject["asset-2"].malformed] == [FactorKind.CARBON]
    healthy = {f.kind: f for f in by_subject["asset-2"].factors}[FactorKind.HEALTH]
    assert healthy.normalized_value == 1.0


@pytest.mark.asyncio
async def test_generate_counts_suppressed_without_fetching(now, subject_factory):
    demand = InMemorySignalProvider(FactorKind.DEMAND)
    subject = subject_factory(fingerprint="fp-1")
    index = {(subject.subject_id, SuggestionType.REPOSITION): open_ref(now)}
    generator = make_generator([demand], types=[SuggestionType.REPOSITION])

    batch = await generator.generate([subject], index, now)

    assert batch.candidates == []
    assert batch.suppressed == 1
    assert demand.calls == 0
