"""Process-wide run state: single-flight guard plus latest run statistics."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterator

from .errors import ReentrancyError

LOGGER = logging.getLogger(__name__)

_TWENTY_FIVE_HOUR_TOKEN = "*/25"


class RunPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(slots=True)
class RunState:
    phase: RunPhase = RunPhase.IDLE
    process_id: str | None = None
    last_run_at: datetime | None = None
    total_found: int = 0
    total_dispatched: int = 0
    error_count: int = 0
    total_scanned: int = 0
    skipped_unpublished: int = 0

    @property
    def is_running(self) -> bool:
        return self.phase is RunPhase.RUNNING


@dataclass(slots=True)
class RunStatus:
    is_running: bool
    last_run_at: datetime | None
    next_scheduled_run_estimate: datetime | None
    total_found: int
    total_dispatched: int
    error_count: int
    process_id: str | None
    total_scanned: int
    skipped_unpublished: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "next_scheduled_run_estimate": (
                self.next_scheduled_run_estimate.isoformat() if self.next_scheduled_run_estimate else None
            ),
            "total_found": self.total_found,
            "total_dispatched": self.total_dispatched,
            "error_count": self.error_count,
            "process_id": self.process_id,
            "total_scanned": self.total_scanned,
            "skipped_unpublished": self.skipped_unpublished,
        }


def estimate_next_run(last_run_at: datetime | None, schedule: str | None) -> datetime | None:
    """Naive next-run estimate: 25 hours after the last run for ``*/25`` schedules, else 24."""
    if last_run_at is None:
        return None
    if schedule and _TWENTY_FIVE_HOUR_TOKEN in schedule:
        return last_run_at + timedelta(hours=25)
    return last_run_at + timedelta(hours=24)


class RunStateTracker:
    """Owns the single ``RunState`` and is the only thing that mutates it.

    Transitions are serialized with a lock so worker threads sharing one
    tracker observe a single active run. ``begin(force_run=True)`` skips the
    idle check, so two runs can be active at once; they share the counters
    and the first to finish returns the tracker to ``Idle``.
    """

    def __init__(
        self,
        *,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._state = RunState()
        self._lock = threading.Lock()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.is_running

    def begin(self, *, force_run: bool = False) -> str:
        with self._lock:
            if self._state.is_running:
                if not force_run:
                    raise ReentrancyError(self._state.process_id)
                LOGGER.warning("Forcing a new run while run %s is still active", self._state.process_id)

            process_id = self._id_factory()
            self._state.phase = RunPhase.RUNNING
            self._state.process_id = process_id
            self._state.total_found = 0
            self._state.total_dispatched = 0
            self._state.error_count = 0
            self._state.total_scanned = 0
            self._state.skipped_unpublished = 0
            return process_id

    def record_discovery(self, *, total_found: int, total_scanned: int, skipped_unpublished: int) -> None:
        with self._lock:
            self._state.total_found = total_found
            self._state.total_scanned = total_scanned
            self._state.skipped_unpublished = skipped_unpublished

    def record_completion(self, *, total_dispatched: int, error_count: int) -> None:
        with self._lock:
            self._state.total_dispatched = total_dispatched
            self._state.error_count = error_count
            self._state.last_run_at = self._clock()

    def finish(self, process_id: str) -> None:
        with self._lock:
            if self._state.process_id != process_id:
                LOGGER.debug(
                    "Run %s finished while run %s owned the state", process_id, self._state.process_id
                )
            self._state.phase = RunPhase.IDLE
            self._state.process_id = None

    @contextmanager
    def run(self, *, force_run: bool = False) -> Iterator[str]:
        """Enter ``Running`` for the duration of the block; always returns to ``Idle``."""
        process_id = self.begin(force_run=force_run)
        try:
            yield process_id
        finally:
            self.finish(process_id)

    def snapshot(self) -> RunState:
        with self._lock:
            return replace(self._state)

    def status(self, schedule: str | None = None) -> RunStatus:
        state = self.snapshot()
        return RunStatus(
            is_running=state.is_running,
            last_run_at=state.last_run_at,
            next_scheduled_run_estimate=estimate_next_run(state.last_run_at, schedule),
            total_found=state.total_found,
            total_dispatched=state.total_dispatched,
            error_count=state.error_count,
            process_id=state.process_id,
            total_scanned=state.total_scanned,
            skipped_unpublished=state.skipped_unpublished,
        )
