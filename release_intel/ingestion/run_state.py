"""
Run-State Module
================

Single-flight tracking for pipeline runs. ``begin`` is an atomic
check-and-set: it either claims the slot for a new run or reports the run
that already holds it. It never waits.

Two backends:
- InMemoryRunStateTracker: one process, guarded by a threading.Lock
- DatabaseRunStateTracker: ``pipeline_runs`` table with a partial unique
  index on (pipeline) WHERE status = 'running', safe across instances
"""

from __future__ import annotations

import logging
import os
import secrets
import string
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from release_intel.core.enums import RunStatus, RunTrigger
from release_intel.core.schema import PipelineRunRecord
from release_intel.db.repositories import PipelineRunRepository

logger = logging.getLogger(__name__)

DEFAULT_PIPELINE = "release_sync"
DEFAULT_STALE_AFTER = timedelta(hours=3)

_RUN_ID_ALPHABET = string.ascii_lowercase + string.digits


def create_run_id() -> str:
    """Run ids look like ``release_<epoch ms>_<6 random chars>``."""
    suffix = "".join(secrets.choice(_RUN_ID_ALPHABET) for _ in range(6))
    return f"release_{int(time.time() * 1000)}_{suffix}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _duration_ms(started_at: datetime, ended_at: datetime) -> int:
    return int((ended_at - started_at).total_seconds() * 1000)


@dataclass
class BeginResult:
    """Outcome of trying to start a run."""

    accepted: bool
    run: PipelineRunRecord


@dataclass
class RunStateSnapshot:
    """Current view of a pipeline's runs."""

    status: RunStatus
    current_run: PipelineRunRecord | None = None
    last_run: PipelineRunRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "currentRun": _run_to_dict(self.current_run),
            "lastRun": _run_to_dict(self.last_run),
        }


def _run_to_dict(run: PipelineRunRecord | None) -> dict[str, Any] | None:
    if run is None:
        return None
    return {
        "runId": run.run_id,
        "trigger": run.trigger.value,
        "status": run.status.value,
        "startedAt": run.started_at.isoformat(),
        "endedAt": run.ended_at.isoformat() if run.ended_at else None,
        "durationMs": run.duration_ms,
        "result": run.result,
        "error": run.error,
    }


class RunStateTracker(ABC):
    """Interface shared by the run-state backends."""

    pipeline: str

    @abstractmethod
    def begin(self, trigger: RunTrigger) -> BeginResult:
        """Claim the slot for a new run, or report the run holding it."""

    @abstractmethod
    def finish_success(self, run_id: str, result: dict[str, Any]) -> None:
        """Mark a run completed. Ignored if run_id is not the current run."""

    @abstractmethod
    def finish_failure(self, run_id: str, error: BaseException | str) -> None:
        """Mark a run failed. Ignored if run_id is not the current run."""

    @abstractmethod
    def get_state(self) -> RunStateSnapshot:
        """Return the current and last run."""


class InMemoryRunStateTracker(RunStateTracker):
    """Process-local run-state."""

    def __init__(self, pipeline: str = DEFAULT_PIPELINE) -> None:
        self.pipeline = pipeline
        self._lock = threading.Lock()
        self._current: PipelineRunRecord | None = None
        self._last: PipelineRunRecord | None = None

    def begin(self, trigger: RunTrigger) -> BeginResult:
        with self._lock:
            if self._current is not None and self._current.status == RunStatus.RUNNING:
                return BeginResult(accepted=False, run=self._current)

            run = PipelineRunRecord(
                run_id=create_run_id(),
                pipeline=self.pipeline,
                trigger=trigger,
                status=RunStatus.RUNNING,
                started_at=_utc_now(),
            )
            self._current = run
            return BeginResult(accepted=True, run=run)

    def _finish(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        with self._lock:
            if self._current is None or self._current.run_id != run_id:
                logger.debug(f"Ignoring stale finish for run {run_id}")
                return
            ended_at = _utc_now()
            self._last = self._current.model_copy(
                update={
                    "status": status,
                    "ended_at": ended_at,
                    "duration_ms": _duration_ms(self._current.started_at, ended_at),
                    "result": result,
                    "error": error,
                }
            )
            self._current = None

    def finish_success(self, run_id: str, result: dict[str, Any]) -> None:
        self._finish(run_id, RunStatus.COMPLETED, result=result)

    def finish_failure(self, run_id: str, error: BaseException | str) -> None:
        self._finish(run_id, RunStatus.FAILED, error=str(error))

    def get_state(self) -> RunStateSnapshot:
        with self._lock:
            if self._current is not None:
                return RunStateSnapshot(RunStatus.RUNNING, self._current, self._last)
            if self._last is not None:
                return RunStateSnapshot(self._last.status, None, self._last)
            return RunStateSnapshot(RunStatus.IDLE)


class DatabaseRunStateTracker(RunStateTracker):
    """
    Run-state stored in the ``pipeline_runs`` table.

    The partial unique index makes the insert in ``begin`` the atomic
    check-and-set: a concurrent insert fails with IntegrityError.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager[Session]],
        pipeline: str = DEFAULT_PIPELINE,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self.pipeline = pipeline
        self.stale_after = stale_after
        self._session_factory = session_factory

    def begin(self, trigger: RunTrigger) -> BeginResult:
        with self._session_factory() as session:
            repo = PipelineRunRepository(session)
            abandoned = repo.abandon_stale(self.pipeline, _utc_now() - self.stale_after)
            if abandoned:
                logger.warning(f"Marked {abandoned} stale {self.pipeline} run(s) as abandoned")
            session.commit()

            run = PipelineRunRecord(
                run_id=create_run_id(),
                pipeline=self.pipeline,
                trigger=trigger,
                status=RunStatus.RUNNING,
                started_at=_utc_now(),
            )
            try:
                repo.create(run)
                session.commit()
            except IntegrityError:
                session.rollback()
                current = repo.get_running(self.pipeline)
                if current is None:
                    # Holder finished between our insert and this read
                    raise
                return BeginResult(accepted=False, run=current)

            return BeginResult(accepted=True, run=run)

    def _finish(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        with self._session_factory() as session:
            repo = PipelineRunRepository(session)
            run = repo.get(run_id)
            if run is None or run.status != RunStatus.RUNNING:
                logger.debug(f"Ignoring stale finish for run {run_id}")
                return
            ended_at = _utc_now()
            repo.finish(
                run_id,
                status,
                ended_at=ended_at,
                duration_ms=_duration_ms(run.started_at, ended_at),
                result=result,
                error=error,
            )
            session.commit()

    def finish_success(self, run_id: str, result: dict[str, Any]) -> None:
        self._finish(run_id, RunStatus.COMPLETED, result=result)

    def finish_failure(self, run_id: str, error: BaseException | str) -> None:
        self._finish(run_id, RunStatus.FAILED, error=str(error))

    def get_state(self) -> RunStateSnapshot:
        with self._session_factory() as session:
            repo = PipelineRunRepository(session)
            current = repo.get_running(self.pipeline)
            last = repo.get_last_finished(self.pipeline)

        if current is not None:
            return RunStateSnapshot(RunStatus.RUNNING, current, last)
        if last is not None:
            return RunStateSnapshot(last.status, None, last)
        return RunStateSnapshot(RunStatus.IDLE)


# Global tracker instance
_default_tracker: RunStateTracker | None = None


def get_default_tracker() -> RunStateTracker:
    """
    Get the process-wide run-state tracker.

    RUN_STATE_BACKEND selects ``database`` (default) or ``memory``.
    """
    global _default_tracker

    if _default_tracker is None:
        backend = os.environ.get("RUN_STATE_BACKEND", "database").lower()
        if backend == "memory":
            _default_tracker = InMemoryRunStateTracker()
        elif backend == "database":
            from release_intel.db.engine import get_session

            _default_tracker = DatabaseRunStateTracker(get_session)
        else:
            raise ValueError(f"Unknown RUN_STATE_BACKEND: {backend}")

    return _default_tracker


def reset_default_tracker() -> None:
    """Reset the default tracker (useful for testing)."""
    global _default_tracker
    _default_tracker = None
