"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from fastapi import FastAPI

from suggestion_engine.api.middleware import RequestContextMiddleware
from suggestion_engine.api.routes_cycles import router as cycles_router
from suggestion_engine.api.routes_health import router as health_router
from suggestion_engine.api.routes_suggestions import router as suggestions_router
from suggestion_engine.api.routes_weights import router as weights_router
from suggestion_engine.candidates.generator import CandidateGenerator
from suggestion_engine.config.settings import Settings
from suggestion_engine.explanation.synthesizer import ExplanationSynthesizer
from suggestion_engine.feedback.adapter import FeedbackAdapter
from suggestion_engine.feedback.dispatcher import FeedbackDispatcher
from suggestion_engine.models.domain import Scope
from suggestion_engine.observability.logger import get_logger, setup_logging
from suggestion_engine.pipeline.evaluation_cycle import EvaluationCycle
from suggestion_engine.pipeline.scheduler import CycleScheduler
from suggestion_engine.protocols.signal_provider import SignalProvider
from suggestion_engine.protocols.subject_source import SubjectSource
from suggestion_engine.scoring.scorer import Scorer
from suggestion_engine.signals.collector import SignalCollector
from suggestion_engine.signals.memory import InMemorySubjectSource
from suggestion_engine.signals.normalizer import SignalNormalizer
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore

logger = get_logger("app")


def create_app(
    settings: Settings | None = None,
    subject_source: SubjectSource | None = None,
    providers: list[SignalProvider] | None = None,
) -> FastAPI:
    """Build the app. Subject source and signal providers are external collaborators
    injected by the host; without them the engine runs but has nothing to evaluate.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_json)

        # Ensure data directories exist
        for path in [settings.ledger_db_path, settings.weights_db_path]:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        # Storage
        ledger = SQLiteSuggestionLedger(
            settings.ledger_db_path, timeout=settings.sqlite_timeout_seconds
        )
        await ledger.initialize()
        weight_store = SQLiteWeightProfileStore(settings.weights_db_path, settings)
        await weight_store.initialize()

        # Signals
        collector = SignalCollector(
            providers or [],
            timeout_seconds=settings.provider_timeout_seconds,
            max_concurrency=settings.max_concurrent_fetches,
        )
        normalizer = SignalNormalizer(settings.normalization_rules)

        # Cycle
        generator = CandidateGenerator(
            collector=collector,
            normalizer=normalizer,
            reevaluation_interval=timedelta(minutes=settings.reevaluation_interval_minutes),
            window_length=timedelta(hours=settings.evaluation_window_hours),
        )
        cycle = EvaluationCycle(
            subject_source=subject_source or InMemorySubjectSource(),
            generator=generator,
            scorer=Scorer(min_confidence=settings.min_confidence),
            synthesizer=ExplanationSynthesizer(top_n=settings.explanation_top_n),
            ledger=ledger,
            weight_store=weight_store,
        )

        # Feedback
        adapter = FeedbackAdapter(
            ledger=ledger,
            weight_store=weight_store,
            max_retries=settings.feedback_max_retries,
        )
        dispatcher = FeedbackDispatcher(adapter=adapter, ledger=ledger)

        scheduler = CycleScheduler(
            cycle=cycle,
            feedback_adapter=adapter,
            interval_seconds=settings.cycle_interval_seconds,
        )
        for tenant_id in settings.scheduled_tenants:
            scheduler.register(Scope(tenant_id=tenant_id))
        if settings.scheduler_enabled:
            scheduler.start()

        # Attach to app state
        app.state.settings = settings
        app.state.ledger = ledger
        app.state.weight_store = weight_store
        app.state.dispatcher = dispatcher
        app.state.scheduler = scheduler

        logger.info(
            "startup_complete",
            providers=[k.value for k in collector.kinds],
            scheduled_scopes=len(scheduler.scopes),
            suggestions=await ledger.count_by_state(),
        )

        yield

        await scheduler.stop()
        await dispatcher.close()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="Fleet Suggestion Engine",
        version="1.0.0",
        description="Scored, explained operational suggestions for rental fleets",
        lifespan=lifespan,
    )
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(suggestions_router, tags=["suggestions"])
    app.include_router(cycles_router, tags=["cycles"])
    app.include_router(weights_router, tags=["weights"])
    return app
