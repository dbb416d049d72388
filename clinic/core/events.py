"""Structured stage events for backup and restore runs."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum

from loguru import logger


class Stage(StrEnum):
    # backup
    RESOLVE = "resolve"
    PROBE_SOURCE = "probe_source"
    WRITE = "write"
    VERIFY_ARTIFACT = "verify_artifact"
    REGISTER = "register"
    # restore
    CLASSIFY = "classify"
    EXTRACT = "extract"
    VALIDATE = "validate"
    SNAPSHOT = "snapshot"
    SWAP = "swap"
    VERIFY = "verify"
    COMMIT = "commit"
    ROLLBACK = "rollback"
    CLEANUP = "cleanup"


class StageStatus(StrEnum):
    ENTERED = "entered"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StageEvent:
    operation: str  # "backup" | "restore"
    run_id: int
    stage: Stage
    status: StageStatus
    error_kind: str | None = None
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


StageListener = Callable[[StageEvent], None]


class EventLog:
    """
    Bounded history of stage events plus listener fan-out.

    Tests and the UI read the sequence of stages a run reached from here
    instead of parsing log lines.
    """

    def __init__(self, maxlen: int = 500) -> None:
        self._events: deque[StageEvent] = deque(maxlen=maxlen)
        self._listeners: list[StageListener] = []
        self._lock = threading.Lock()
        self._run_counter = 0

    def subscribe(self, listener: StageListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def begin_run(self) -> int:
        with self._lock:
            self._run_counter += 1
            return self._run_counter

    def emit(self, event: StageEvent) -> None:
        with self._lock:
            self._events.append(event)

        log = logger.bind(operation=event.operation, stage=str(event.stage), status=str(event.status))
        if event.status is StageStatus.FAILED:
            log.warning(f"[{event.operation}] {event.stage} failed ({event.error_kind}): {event.detail}")
        else:
            log.debug(f"[{event.operation}] {event.stage} {event.status}")

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:  # listener bugs must not break a restore
                logger.error(f"Stage listener {listener!r} raised: {e}")

    @contextmanager
    def track(self, operation: str, run_id: int, stage: Stage) -> Iterator[None]:
        """Emit ``entered``, then ``succeeded`` or ``failed`` (re-raising)."""
        self.emit(StageEvent(operation, run_id, stage, StageStatus.ENTERED))
        try:
            yield
        except Exception as e:
            self.emit(
                StageEvent(
                    operation, run_id, stage, StageStatus.FAILED,
                    error_kind=type(e).__name__, detail=str(e),
                )
            )
            raise
        self.emit(StageEvent(operation, run_id, stage, StageStatus.SUCCEEDED))

    @property
    def events(self) -> list[StageEvent]:
        with self._lock:
            return list(self._events)

    def last_run(self, operation: str) -> list[StageEvent]:
        """Events of the most recent run of *operation*, in order."""
        events = [e for e in self.events if e.operation == operation]
        if not events:
            return []
        run_id = events[-1].run_id
        return [e for e in events if e.run_id == run_id]

    def stages(self, operation: str) -> list[tuple[Stage, StageStatus]]:
        return [(e.stage, e.status) for e in self.last_run(operation)]
