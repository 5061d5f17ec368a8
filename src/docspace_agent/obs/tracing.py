"""Latency timing and per-turn tool trace helpers."""

from __future__ import annotations

import time
from typing import Any

from docspace_agent.types import ToolCallRecord


class Timer:
    """Simple context timer used by the registry and the orchestrator."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def summarize_tool_calls(records: list[ToolCallRecord]) -> dict[str, Any]:
    """Aggregate one turn's tool trace for a single log line."""
    return {
        "count": len(records),
        "failed": sum(1 for record in records if not record.ok),
        "total_latency_ms": round(sum(record.latency_ms for record in records), 1),
        "calls": [record.name for record in records],
    }
