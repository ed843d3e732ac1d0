"""Lightweight cycle tracing with spans."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import uuid4

from suggestion_engine.observability.metrics import log_latency


@dataclass
class Span:
    name: str
    start_ms: float
    end_ms: float = 0.0

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


class CycleTrace:
    def __init__(self, cycle_id: str | None = None) -> None:
        self.cycle_id = cycle_id or str(uuid4())
        self.spans: list[Span] = []
        self.start_time = time.monotonic()

    @contextmanager
    def span(self, name: str):
        s = Span(name=name, start_ms=(time.monotonic() - self.start_time) * 1000)
        try:
            yield s
        finally:
            s.end_ms = (time.monotonic() - self.start_time) * 1000
            self.spans.append(s)
            log_latency(self.cycle_id, name, s.duration_ms)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def span_dicts(self) -> list[dict]:
        return [
            {
                "name": s.name,
                "start_ms": round(s.start_ms, 2),
                "end_ms": round(s.end_ms, 2),
                "duration_ms": round(s.duration_ms, 2),
            }
            for s in self.spans
        ]
