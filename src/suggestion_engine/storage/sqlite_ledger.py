"""SQLite-backed append-only suggestion ledger."""

from __future__ import annotations

import json
from datetime import datetime

import aiosqlite

from suggestion_engine.exceptions import StaleSuggestion, SuggestionNotFound
from suggestion_engine.models.domain import (
    EvaluationWindow,
    FactorKind,
    FactorValue,
    FeedbackAction,
    FeedbackEvent,
    LedgerEvent,
    OpenSuggestionRef,
    Scope,
    Subject,
    SubjectKind,
    Suggestion,
    SuggestionState,
    SuggestionType,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.scoring.reason_codes import ReasonCode
from suggestion_engine.storage.migrations import initialize_ledger_db

logger = get_logger("ledger")

_SELECT_CURRENT = """
SELECT s.*, e.state AS state, e.occurred_at AS state_at, e.actor AS actor, e.reason AS reason
FROM suggestions s
JOIN suggestion_events e
  ON e.seq = (SELECT MAX(seq) FROM suggestion_events WHERE suggestion_id = s.suggestion_id)
"""


class SQLiteSuggestionLedger:
    """Suggestions are written once; every state change is a new event row."""

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout

    async def initialize(self) -> None:
        await initialize_ledger_db(self._db_path)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self._db_path, timeout=self._timeout)

    async def append(self, suggestion: Suggestion, state_fingerprint: str | None = None) -> bool:
        """Record a new OPEN suggestion. False if its key already has one."""
        async with self._connect() as db:
            try:
                await db.execute(
                    "INSERT INTO open_suggestions "
                    "(scope_key, subject_id, suggestion_type, suggestion_id, created_at, window_end, state_fingerprint) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        suggestion.scope.key,
                        suggestion.subject.subject_id,
                        suggestion.suggestion_type.value,
                        suggestion.id,
                        suggestion.created_at.isoformat(),
                        suggestion.window.end.isoformat(),
                        state_fingerprint,
                    ),
                )
                await db.execute(
                    "INSERT INTO suggestions "
                    "(suggestion_id, scope_key, scope, subject_id, subject, suggestion_type, score, confidence, "
                    "contributions, factors, explanation, window_start, window_end, state_fingerprint, "
                    "profile_revision, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        suggestion.id,
                        suggestion.scope.key,
                        json.dumps(suggestion.scope.to_dict()),
                        suggestion.subject.subject_id,
                        json.dumps(suggestion.subject.to_dict()),
                        suggestion.suggestion_type.value,
                        suggestion.score,
                        suggestion.confidence,
                        json.dumps(
                            [{"kind": k.value, "contribution": c} for k, c in suggestion.contributions]
                        ),
                        json.dumps([_factor_to_dict(f) for f in suggestion.factors]),
                        suggestion.explanation,
                        suggestion.window.start.isoformat(),
                        suggestion.window.end.isoformat(),
                        state_fingerprint,
                        suggestion.profile_revision,
                        suggestion.created_at.isoformat(),
                    ),
                )
                await db.execute(
                    "INSERT INTO suggestion_events (suggestion_id, state, occurred_at, actor, reason) "
                    "VALUES (?, ?, ?, NULL, NULL)",
                    (suggestion.id, SuggestionState.OPEN.value, suggestion.created_at.isoformat()),
                )
                await db.commit()
            except aiosqlite.IntegrityError:
                await db.rollback()
                logger.debug(
                    "duplicate_open_suppressed",
                    subject_id=suggestion.subject.subject_id,
                    suggestion_type=suggestion.suggestion_type.value,
                )
                return False
        return True

    async def transition(
        self,
        suggestion_id: str,
        new_state: SuggestionState,
        occurred_at: datetime,
        actor: str | None = None,
        reason: str | None = None,
    ) -> Suggestion:
        """Move an OPEN suggestion to a terminal state.

        Raises SuggestionNotFound for unknown ids and StaleSuggestion when the
        suggestion is already terminal.
        """
        if not new_state.is_terminal:
            raise ValueError("suggestions can only transition to a terminal state")

        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                async with db.execute(
                    "SELECT state FROM suggestion_events WHERE suggestion_id = ? "
                    "ORDER BY seq DESC LIMIT 1",
                    (suggestion_id,),
                ) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    raise SuggestionNotFound(suggestion_id)
                current = SuggestionState(row[0])
                if current.is_terminal:
                    raise StaleSuggestion(suggestion_id, current.value)

                await db.execute(
                    "INSERT INTO suggestion_events (suggestion_id, state, occurred_at, actor, reason) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (suggestion_id, new_state.value, occurred_at.isoformat(), actor, reason),
                )
                await db.execute(
                    "DELETE FROM open_suggestions WHERE suggestion_id = ?", (suggestion_id,)
                )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

        logger.info(
            "suggestion_transitioned",
            suggestion_id=suggestion_id,
            state=new_state.value,
            actor=actor,
        )
        suggestion = await self.get(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFound(suggestion_id)
        return suggestion

    async def get(self, suggestion_id: str) -> Suggestion | None:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                _SELECT_CURRENT + " WHERE s.suggestion_id = ?", (suggestion_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return self._row_to_suggestion(row)

    async def list_suggestions(
        self,
        scope_key: str | None = None,
        state: SuggestionState | None = None,
        suggestion_type: SuggestionType | None = None,
        limit: int = 100,
    ) -> list[Suggestion]:
        clauses: list[str] = []
        params: list = []
        if scope_key is not None:
            clauses.append("s.scope_key = ?")
            params.append(scope_key)
        if state is not None:
            clauses.append("e.state = ?")
            params.append(state.value)
        if suggestion_type is not None:
            clauses.append("s.suggestion_type = ?")
            params.append(suggestion_type.value)
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        params.append(limit)

        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                _SELECT_CURRENT + where + " ORDER BY s.created_at DESC, s.suggestion_id LIMIT ?",
                params,
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_suggestion(row) for row in rows]

    async def history(self, suggestion_id: str) -> list[LedgerEvent]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM suggestion_events WHERE suggestion_id = ? ORDER BY seq",
                (suggestion_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            LedgerEvent(
                seq=row["seq"],
                suggestion_id=row["suggestion_id"],
                state=SuggestionState(row["state"]),
                occurred_at=datetime.fromisoformat(row["occurred_at"]),
                actor=row["actor"],
                reason=row["reason"],
            )
            for row in rows
        ]

    async def open_index(
        self, scope_key: str
    ) -> dict[tuple[str, SuggestionType], OpenSuggestionRef]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM open_suggestions WHERE scope_key = ?", (scope_key,)
            ) as cursor:
                rows = await cursor.fetchall()
        return {
            (row["subject_id"], SuggestionType(row["suggestion_type"])): OpenSuggestionRef(
                suggestion_id=row["suggestion_id"],
                created_at=datetime.fromisoformat(row["created_at"]),
                window_end=datetime.fromisoformat(row["window_end"]),
                state_fingerprint=row["state_fingerprint"],
            )
            for row in rows
        }

    async def expire_due(self, scope_key: str, now: datetime) -> list[str]:
        """Expire every OPEN suggestion in scope whose evaluation window has elapsed."""
        open_refs = await self.open_index(scope_key)
        expired: list[str] = []
        for ref in open_refs.values():
            if ref.window_end > now:
                continue
            try:
                await self.transition(
                    ref.suggestion_id,
                    SuggestionState.EXPIRED,
                    occurred_at=now,
                    actor="system",
                    reason=str(ReasonCode.WINDOW_ELAPSED),
                )
            except StaleSuggestion:
                # Decided concurrently
                continue
            expired.append(ref.suggestion_id)
        if expired:
            logger.info("suggestions_expired", scope_key=scope_key, count=len(expired))
        return expired

    # --- Pending nudges ---

    async def record_pending_nudge(self, scope_key: str, event: FeedbackEvent) -> None:
        """Keep a decided suggestion's feedback until its weight nudge lands."""
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO pending_nudges "
                "(suggestion_id, scope_key, action, actor, reason, occurred_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    event.suggestion_id,
                    scope_key,
                    event.action.value,
                    event.actor,
                    event.reason,
                    event.timestamp.isoformat(),
                ),
            )
            await db.commit()
        logger.warning(
            "nudge_pending_in_ledger", scope_key=scope_key, suggestion_id=event.suggestion_id
        )

    async def list_pending_nudges(self, scope_key: str) -> list[FeedbackEvent]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM pending_nudges WHERE scope_key = ? ORDER BY occurred_at",
                (scope_key,),
            ) as cursor:
                rows = await cursor.fetchall()
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

    async def clear_pending_nudge(self, suggestion_id: str) -> None:
        async with self._connect() as db:
            await db.execute(
                "DELETE FROM pending_nudges WHERE suggestion_id = ?", (suggestion_id,)
            )
            await db.commit()

    async def count_by_state(self, scope_key: str | None = None) -> dict[str, int]:
        counts = {state.value: 0 for state in SuggestionState}
        where = " WHERE s.scope_key = ?" if scope_key is not None else ""
        params = (scope_key,) if scope_key is not None else ()
        async with self._connect() as db:
            async with db.execute(
                "SELECT state, COUNT(*) FROM (" + _SELECT_CURRENT + where + ") GROUP BY state",
                params,
            ) as cursor:
                async for row in cursor:
                    counts[row[0]] = row[1]
        return counts

    @staticmethod
    def _row_to_suggestion(row: aiosqlite.Row) -> Suggestion:
        state = SuggestionState(row["state"])
        subject_data = json.loads(row["subject"])
        decided = state.is_terminal
        return Suggestion(
            id=row["suggestion_id"],
            suggestion_type=SuggestionType(row["suggestion_type"]),
            scope=Scope.from_dict(json.loads(row["scope"])),
            subject=Subject(
                subject_id=subject_data["id"],
                kind=SubjectKind(subject_data["kind"]),
                site_id=subject_data.get("siteId"),
                equipment_ids=tuple(subject_data.get("equipmentIds", [])),
                state_fingerprint=row["state_fingerprint"],
            ),
            score=row["score"],
            confidence=row["confidence"],
            contributions=[
                (FactorKind(c["kind"]), c["contribution"]) for c in json.loads(row["contributions"])
            ],
            explanation=row["explanation"],
            window=EvaluationWindow(
                start=datetime.fromisoformat(row["window_start"]),
                end=datetime.fromisoformat(row["window_end"]),
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            state=state,
            decided_at=datetime.fromisoformat(row["state_at"]) if decided else None,
            decided_by=row["actor"] if decided else None,
            decision_reason=row["reason"] if decided else None,
            factors=[_factor_from_dict(f) for f in json.loads(row["factors"])],
            profile_revision=row["profile_revision"],
        )


def _factor_to_dict(f: FactorValue) -> dict:
    return {
        "kind": f.kind.value,
        "rawValue": f.raw_value,
        "normalizedValue": f.normalized_value,
        "confidence": f.confidence,
    }


def _factor_from_dict(data: dict) -> FactorValue:
    return FactorValue(
        kind=FactorKind(data["kind"]),
        raw_value=data["rawValue"],
        normalized_value=data["normalizedValue"],
        confidence=data["confidence"],
    )
