"""Apply queued weight nudges that were deferred after repeated write conflicts."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from suggestion_engine.config.settings import Settings
from suggestion_engine.feedback.adapter import FeedbackAdapter
from suggestion_engine.models.domain import Scope
from suggestion_engine.observability.logger import setup_logging
from suggestion_engine.storage.sqlite_ledger import SQLiteSuggestionLedger
from suggestion_engine.storage.sqlite_weight_store import SQLiteWeightProfileStore


async def main(scope: Scope) -> None:
    settings = Settings()
    setup_logging(settings.log_level, json=False)

    ledger = SQLiteSuggestionLedger(settings.ledger_db_path, settings.sqlite_timeout_seconds)
    weight_store = SQLiteWeightProfileStore(settings.weights_db_path, settings)
    await weight_store.initialize()
    adapter = FeedbackAdapter(ledger, weight_store, max_retries=settings.feedback_max_retries)

    pending = await weight_store.list_deferred(scope.key)
    print(f"{len(pending)} deferred feedback event(s) for {scope.key}")
    applied = await adapter.replay_deferred(scope.key)
    profile = await weight_store.get(scope.key)
    print(f"Applied {applied}; weight profile now at revision {profile.revision}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay deferred feedback for one scope")
    parser.add_argument("tenant_id", help="Tenant whose queue should be replayed")
    parser.add_argument("--dealer-id", default=None)
    parser.add_argument("--customer-id", default=None)
    parser.add_argument("--role", default=None)
    args = parser.parse_args()
    asyncio.run(main(Scope(args.tenant_id, args.dealer_id, args.customer_id, args.role)))
