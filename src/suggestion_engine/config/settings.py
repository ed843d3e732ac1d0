"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage paths
    ledger_db_path: str = "data/ledger.db"
    weights_db_path: str = "data/weights.db"
    sqlite_timeout_seconds: float = 5.0

    # Signal collection
    provider_timeout_seconds: float = 2.0
    max_concurrent_fetches: int = 16

    # Evaluation cycle
    evaluation_window_hours: float = 24.0
    reevaluation_interval_minutes: float = 240.0
    cycle_interval_seconds: float = 300.0
    scheduler_enabled: bool = True
    scheduled_tenants: list[str] = []

    # Scoring
    min_confidence: float = 0.2
    default_activation_threshold: float = 20.0
    default_min_actionable_score: float = 70.0

    # Explanation
    explanation_top_n: int = 4

    # Weight adaptation
    learning_rate: float = 2.0
    weight_bound: float = 100.0
    feedback_max_retries: int = 3

    # Per-kind normalization overrides, e.g.
    # {"demand": {"transform": "saturating", "scale": 2.0}}
    normalization_rules: dict[str, dict] = {}

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "env_prefix": "SUGGEST_"}
