"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

SUGGESTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS suggestions (
    suggestion_id TEXT PRIMARY KEY,
    scope_key TEXT NOT NULL,
    scope TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    subject TEXT NOT NULL,
    suggestion_type TEXT NOT NULL,
    score REAL NOT NULL,
    confidence REAL NOT NULL,
    contributions TEXT NOT NULL DEFAULT '[]',
    factors TEXT NOT NULL DEFAULT '[]',
    explanation TEXT NOT NULL,
    window_start TEXT NOT NULL,
    window_end TEXT NOT NULL,
    state_fingerprint TEXT,
    profile_revision INTEGER NOT NULL,
    created_at TEXT NOT NULL
)
"""

SUGGESTIONS_SCOPE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_suggestions_scope ON suggestions(scope_key, created_at)
"""

# Append-only lifecycle log; current state is the latest row per suggestion
SUGGESTION_EVENTS_TABLE = """
CREATE TABLE IF NOT EXISTS suggestion_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    suggestion_id TEXT NOT NULL,
    state TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    actor TEXT,
    reason TEXT,
    FOREIGN KEY (suggestion_id) REFERENCES suggestions(suggestion_id)
)
"""

SUGGESTION_EVENTS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_events_suggestion ON suggestion_events(suggestion_id, seq)
"""

# Idempotency lock: at most one OPEN suggestion per (scope, subject, type)
OPEN_SUGGESTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS open_suggestions (
    scope_key TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    suggestion_type TEXT NOT NULL,
    suggestion_id TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    window_end TEXT NOT NULL,
    state_fingerprint TEXT,
    PRIMARY KEY (scope_key, subject_id, suggestion_type)
)
"""

# Feedback whose nudge could not be applied or queued in the weights database
PENDING_NUDGES_TABLE = """
CREATE TABLE IF NOT EXISTS pending_nudges (
    suggestion_id TEXT PRIMARY KEY,
    scope_key TEXT NOT NULL,
    action TEXT NOT NULL,
    actor TEXT NOT NULL,
    reason TEXT,
    occurred_at TEXT NOT NULL,
    FOREIGN KEY (suggestion_id) REFERENCES suggestions(suggestion_id)
)
"""

WEIGHT_PROFILES_TABLE = """
CREATE TABLE IF NOT EXISTS weight_profiles (
    scope_key TEXT NOT NULL,
    revision INTEGER NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    updated_by TEXT,
    PRIMARY KEY (scope_key, revision)
)
"""

DEFERRED_FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS deferred_feedback (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    scope_key TEXT NOT NULL,
    suggestion_id TEXT NOT NULL UNIQUE,
    action TEXT NOT NULL,
    actor TEXT NOT NULL,
    reason TEXT,
    occurred_at TEXT NOT NULL,
    enqueued_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0
)
"""


async def initialize_ledger_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(SUGGESTIONS_TABLE)
        await db.execute(SUGGESTIONS_SCOPE_INDEX)
        await db.execute(SUGGESTION_EVENTS_TABLE)
        await db.execute(SUGGESTION_EVENTS_INDEX)
        await db.execute(OPEN_SUGGESTIONS_TABLE)
        await db.execute(PENDING_NUDGES_TABLE)
        await db.commit()


async def initialize_weights_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(WEIGHT_PROFILES_TABLE)
        await db.execute(DEFERRED_FEEDBACK_TABLE)
        await db.commit()
