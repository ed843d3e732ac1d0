"""Protocol for the collaborator that knows which subjects are active."""

from __future__ import annotations

from typing import Protocol

from suggestion_engine.models.domain import Scope, Subject


class SubjectSource(Protocol):
    async def list_active(self, scope: Scope) -> list[Subject]: ...
