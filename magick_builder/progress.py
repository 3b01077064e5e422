"""Progress tracking for the build pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Literal

import structlog

log = structlog.get_logger("magick_builder.progress")

State = Literal[
    "pending",
    "resolving",
    "skipped",
    "fetching",
    "building",
    "recorded",
    "built",  # final target: built but never recorded
    "failed",
]

TERMINAL_STATES = frozenset({"skipped", "recorded", "built", "failed"})

# Legal transitions; anything else is a driver bug
_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"resolving", "failed"}),
    "resolving": frozenset({"skipped", "fetching", "failed"}),
    "fetching": frozenset({"building", "failed"}),
    "building": frozenset({"recorded", "built", "failed"}),
}


@dataclass
class DependencyProgress:
    name: str
    state: State = "pending"
    version: str | None = None
    start_time: float | None = None
    end_time: float | None = None
    error: str | None = None

    @property
    def duration(self) -> float | None:
        if self.start_time is not None and self.end_time is not None:
            return round(self.end_time - self.start_time, 2)
        return None


class ProgressTracker:
    """Track each dependency through Pending → Resolving → … → terminal state."""

    def __init__(self) -> None:
        self.items: list[DependencyProgress] = []
        self._by_name: dict[str, DependencyProgress] = {}
        self.callbacks: list[Callable[[DependencyProgress], None]] = []

    def add(self, name: str) -> DependencyProgress:
        p = DependencyProgress(name=name)
        self.items.append(p)
        self._by_name[name] = p
        return p

    def get(self, name: str) -> DependencyProgress:
        return self._by_name[name]

    def transition(
        self,
        name: str,
        state: State,
        *,
        version: str | None = None,
        error: str | None = None,
    ) -> None:
        p = self._by_name[name]
        allowed = _TRANSITIONS.get(p.state, frozenset())
        if state not in allowed:
            raise ValueError(f"illegal transition for {name}: {p.state} -> {state}")
        if p.start_time is None:
            p.start_time = time.monotonic()
        p.state = state
        if version is not None:
            p.version = version
        if error is not None:
            p.error = error
        if state in TERMINAL_STATES:
            p.end_time = time.monotonic()
        self._notify(p)

    def counts(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for p in self.items:
            out[p.state] = out.get(p.state, 0) + 1
        return out

    def get_summary(self) -> dict[str, Any]:
        total_duration = sum(p.duration or 0 for p in self.items)
        return {
            "dependencies": [
                {
                    "name": p.name,
                    "state": p.state,
                    "version": p.version,
                    "duration": p.duration,
                    "error": p.error,
                }
                for p in self.items
            ],
            "counts": self.counts(),
            "total_duration": round(total_duration, 2),
        }

    def _notify(self, p: DependencyProgress) -> None:
        for cb in self.callbacks:
            try:
                cb(p)
            except Exception:
                log.debug("progress.callback_error", name=p.name, exc_info=True)
