"""Seed the ledger with a small demo fleet and run one evaluation cycle."""

from __future__ import annotations

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from suggestion_engine.candidates.generator import CandidateGenerator
from suggestion_engine.config.settings import Settings
from suggestion_engine.explanation.synthesizer import ExplanationSynthesizer
from suggestion_engine.models.domain import FactorKind, Scope, Subject, SubjectKind
from suggestion_engine.observability.logger import setup_logging
from suggestion_engine.pipeline.evaluation_cycle import EvaluationCycle
from suggestion_engine.scoring.scorer import Scorer
from suggestion_engine.signals.collector import SignalCollector
from suggestion_engine.signals.memory import InMemorySignalProvider, InMemorySubjectSource
from suggestion_engine.signals.normalizer import SignalNormalizer
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore

DEMO_SCOPE = Scope(tenant_id="demo-rentals", dealer_id="north")

# subject id -> (kind, site, {factor: (value, confidence)})
DEMO_FLEET = {
    "excavator-017": (
        SubjectKind.ASSET,
        "leeds-depot",
        {
            FactorKind.DEMAND: (2.5, 0.9),
            FactorKind.UTILIZATION: (0.05, 0.95),
            FactorKind.INVENTORY: (-4.0, 0.8),
            FactorKind.PROXIMITY: (35.0, 1.0),
            FactorKind.CARBON: (40.0, 0.6),
        },
    ),
    "telehandler-204": (
        SubjectKind.ASSET,
        "york-site-3",
        {
            FactorKind.HEALTH: ("critical", 0.9),
            FactorKind.SLA_RISK: (0.8, 0.7),
            FactorKind.UTILIZATION: (0.3, 0.9),
            FactorKind.CALENDAR: (0.6, 0.8),
            FactorKind.INVENTORY: (2.0, 0.8),
            FactorKind.PROXIMITY: (60.0, 1.0),
        },
    ),
    "generator-88": (
        SubjectKind.ASSET,
        "hull-wharf",
        {
            FactorKind.UTILIZATION: (0.95, 0.9),
            FactorKind.CALENDAR: (0.9, 0.9),
            FactorKind.HEALTH: ("healthy", 1.0),
            FactorKind.DEMAND: (-0.5, 0.6),
        },
    ),
    "leeds-depot": (
        SubjectKind.SITE,
        "leeds-depot",
        {
            FactorKind.DEMAND: (0.2, 0.5),
        },
    ),
}


async def main():
    settings = Settings()
    setup_logging(settings.log_level, json=False)

    for path in [settings.ledger_db_path, settings.weights_db_path]:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    ledger = SQLiteSuggestionLedger(settings.ledger_db_path, settings.sqlite_timeout_seconds)
    await ledger.initialize()
    weight_store = SQLiteWeightProfileStore(settings.weights_db_path, settings)
    await weight_store.initialize()

    subjects = InMemorySubjectSource()
    providers = {kind: InMemorySignalProvider(kind) for kind in FactorKind}
    for subject_id, (kind, site_id, readings) in DEMO_FLEET.items():
        subjects.add(DEMO_SCOPE, Subject(subject_id=subject_id, kind=kind, site_id=site_id))
        for factor, (value, confidence) in readings.items():
            providers[factor].set(subject_id, value, confidence)

    cycle = EvaluationCycle(
        subject_source=subjects,
        generator=CandidateGenerator(
            collector=SignalCollector(list(providers.values())),
            normalizer=SignalNormalizer(settings.normalization_rules),
            reevaluation_interval=timedelta(minutes=settings.reevaluation_interval_minutes),
            window_length=timedelta(hours=settings.evaluation_window_hours),
        ),
        scorer=Scorer(min_confidence=settings.min_confidence),
        synthesizer=ExplanationSynthesizer(top_n=settings.explanation_top_n),
        ledger=ledger,
        weight_store=weight_store,
    )
    report = await cycle.run(DEMO_SCOPE)

    print(f"Cycle {report.cycle_id} for {report.scope_key}")
    print(f"  subjects={report.subjects} candidates={report.candidates} "
          f"suppressed={report.suppressed} discarded={len(report.discarded)}")
    for s in report.emitted:
        print(f"\n  [{s.score:5.1f}] {s.suggestion_type.value} {s.subject.subject_id} ({s.id})")
        print(f"          confidence {s.confidence:.2f}: {s.explanation}")

    print(f"\nLedger: {await ledger.count_by_state(DEMO_SCOPE.key)}")


if __name__ == "__main__":
    asyncio.run(main())
