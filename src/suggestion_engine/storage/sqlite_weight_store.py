"""SQLite-backed weight profile store with revisioned compare-and-swap writes."""

from __future__ import annotations

import json
from datetime import datetime

import aiosqlite

from suggestion_engine.config.defaults import default_profile
from suggestion_engine.config.settings import Settings
from suggestion_engine.exceptions import WeightProfileConflict, WeightStoreUnavailable
from suggestion_engine.models.domain import (
    FeedbackAction,
    FeedbackEvent,
    WeightProfile,
    utcnow,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.storage.migrations import initialize_weights_db

logger = get_logger("weight_store")


class SQLiteWeightProfileStore:
    """Each write inserts revision N+1; the (scope_key, revision) key makes a lost race fail loudly."""

    def __init__(self, db_path: str, settings: Settings) -> None:
        self._db_path = db_path
        self._settings = settings

    async def initialize(self) -> None:
        await initialize_weights_db(self._db_path)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self._db_path, timeout=self._settings.sqlite_timeout_seconds)

    async def get(self, scope_key: str) -> WeightProfile:
        """Latest revision for the scope, or the revision-0 defaults if none was ever written."""
        try:
            async with self._connect() as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    "SELECT * FROM weight_profiles WHERE scope_key = ? "
                    "ORDER BY revision DESC LIMIT 1",
                    (scope_key,),
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise WeightStoreUnavailable(str(e)) from e

        if row is None:
            return default_profile(scope_key, self._settings)
        return self._row_to_profile(row)

    async def compare_and_swap(
        self,
        profile: WeightProfile,
        expected_revision: int,
        updated_by: str | None = None,
    ) -> WeightProfile:
        """Persist ``profile`` as ``expected_revision + 1``.

        Raises WeightProfileConflict unless ``expected_revision`` is the latest
        stored revision (0 when the scope still runs on defaults).
        """
        new_revision = expected_revision + 1
        updated_at = utcnow()
        try:
            async with self._connect() as db:
                await db.execute("BEGIN IMMEDIATE")
                try:
                    async with db.execute(
                        "SELECT COALESCE(MAX(revision), 0) FROM weight_profiles WHERE scope_key = ?",
                        (profile.scope_key,),
                    ) as cursor:
                        (current,) = await cursor.fetchone()
                    if current != expected_revision:
                        raise WeightProfileConflict(
                            f"{profile.scope_key}: expected revision {expected_revision}, "
                            f"latest is {current}"
                        )
                    await db.execute(
                        "INSERT INTO weight_profiles (scope_key, revision, payload, updated_at, updated_by) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (
                            profile.scope_key,
                            new_revision,
                            json.dumps(profile.to_payload()),
                            updated_at.isoformat(),
                            updated_by,
                        ),
                    )
                    await db.commit()
                except aiosqlite.IntegrityError as e:
                    await db.rollback()
                    raise WeightProfileConflict(
                        f"{profile.scope_key}: revision {new_revision} already exists"
                    ) from e
                except BaseException:
                    await db.rollback()
                    raise
        except aiosqlite.Error as e:
            raise WeightStoreUnavailable(str(e)) from e

        logger.info(
            "weight_profile_written",
            scope_key=profile.scope_key,
            revision=new_revision,
            updated_by=updated_by,
        )
        return WeightProfile.from_payload(
            profile.scope_key, profile.to_payload(), new_revision, updated_at
        )

    async def override(
        self, profile: WeightProfile, expected_revision: int, actor: str
    ) -> WeightProfile:
        """Administrative replacement; still subject to the revision check."""
        logger.info("weight_profile_override", scope_key=profile.scope_key, actor=actor)
        return await self.compare_and_swap(profile, expected_revision, updated_by=f"admin:{actor}")

    async def revisions(self, scope_key: str, limit: int = 20) -> list[WeightProfile]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM weight_profiles WHERE scope_key = ? ORDER BY revision DESC LIMIT ?",
                (scope_key, limit),
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_profile(row) for row in rows]

    # --- Deferred feedback queue ---

    async def enqueue_deferred(self, scope_key: str, event: FeedbackEvent) -> None:
        try:
            async with self._connect() as db:
                await db.execute(
                    "INSERT OR IGNORE INTO deferred_feedback "
                    "(scope_key, suggestion_id, action, actor, reason, occurred_at, enqueued_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        scope_key,
                        event.suggestion_id,
                        event.action.value,
                        event.actor,
                        event.reason,
                        event.timestamp.isoformat(),
                        utcnow().isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise WeightStoreUnavailable(str(e)) from e
        logger.warning(
            "feedback_deferred", scope_key=scope_key, suggestion_id=event.suggestion_id
        )

    async def list_deferred(self, scope_key: str) -> list[FeedbackEvent]:
        try:
            async with self._connect() as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    "SELECT * FROM deferred_feedback WHERE scope_key = ? ORDER BY seq",
                    (scope_key,),
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise WeightStoreUnavailable(str(e)) from e
        return [
            FeedbackEvent(
                suggestion_id=row["suggestion_id"],
                action=FeedbackAction(row["action"]),
                reason=row["reason"],
                actor=row["actor"],
                timestamp=datetime.fromisoformat(row["occurred_at"]),
            )
            for row in rows
        ]

    async def remove_deferred(self, suggestion_id: str) -> None:
        await self._execute(
            "DELETE FROM deferred_feedback WHERE suggestion_id = ?", (suggestion_id,)
        )

    async def mark_deferred_attempt(self, suggestion_id: str) -> None:
        await self._execute(
            "UPDATE deferred_feedback SET attempts = attempts + 1 WHERE suggestion_id = ?",
            (suggestion_id,),
        )

    async def _execute(self, sql: str, params: tuple) -> None:
        try:
            async with self._connect() as db:
                await db.execute(sql, params)
                await db.commit()
        except aiosqlite.Error as e:
            raise WeightStoreUnavailable(str(e)) from e

    @staticmethod
    def _row_to_profile(row: aiosqlite.Row) -> WeightProfile:
        return WeightProfile.from_payload(
            row["scope_key"],
            json.loads(row["payload"]),
            revision=row["revision"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
