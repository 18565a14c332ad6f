"""Audit trail for sync runs.

A run moves ``pending -> in_progress -> completed | failed`` and never back.
Once sealed it is read-only.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from toolkit.config import get_settings
from toolkit.models import SyncRun, as_utc, utcnow
from toolkit.schemas import SyncDirection, SyncOutcome, SyncRunStatus
from toolkit.services.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

MAX_RECORDED_FAILURES = 100
ERROR_MESSAGE_LIMIT = 2000

_STATUS_ORDER = {
    SyncRunStatus.PENDING.value: 0,
    SyncRunStatus.IN_PROGRESS.value: 1,
    SyncRunStatus.COMPLETED.value: 2,
    SyncRunStatus.FAILED.value: 2,
}
_SEALED = {SyncRunStatus.COMPLETED.value, SyncRunStatus.FAILED.value}


def open_run(session: Session, direction: SyncDirection | str, triggered_by: str | None) -> SyncRun:
    run = SyncRun(
        direction=SyncDirection(direction).value,
        status=SyncRunStatus.PENDING.value,
        records_synced=0,
        records_failed=0,
        triggered_by=triggered_by,
        started_at=utcnow(),
    )
    session.add(run)
    session.flush()
    return run


def _advance(run: SyncRun, target: SyncRunStatus) -> None:
    if run.status in _SEALED:
        raise ConflictError(f"Sync run {run.id} is already {run.status} and cannot change.")
    if _STATUS_ORDER[target.value] <= _STATUS_ORDER[run.status]:
        raise ConflictError(f"Sync run {run.id} cannot move from {run.status} to {target.value}.")
    run.status = target.value


def mark_in_progress(session: Session, run: SyncRun) -> SyncRun:
    _advance(run, SyncRunStatus.IN_PROGRESS)
    session.flush()
    return run


def seal_run(
    session: Session,
    run: SyncRun,
    *,
    status: SyncRunStatus,
    records_synced: int,
    records_failed: int,
    failures: list[dict[str, Any]] | None = None,
    error_message: str | None = None,
) -> SyncRun:
    if status.value not in _SEALED:
        raise ValueError("Runs can only be sealed as completed or failed.")
    _advance(run, status)
    run.records_synced = records_synced
    run.records_failed = records_failed
    run.failures = list(failures or [])[:MAX_RECORDED_FAILURES]
    if error_message is None and failures:
        error_message = "; ".join(item["message"] for item in failures[:5])
    run.error_message = error_message[:ERROR_MESSAGE_LIMIT] if error_message else None
    run.completed_at = utcnow()
    session.flush()
    return run


def outcome_for(run: SyncRun) -> SyncOutcome | None:
    if run.status == SyncRunStatus.FAILED.value:
        return SyncOutcome.FAILED
    if run.status != SyncRunStatus.COMPLETED.value:
        return None
    if run.records_failed:
        return SyncOutcome.SUCCESS_WITH_WARNINGS
    return SyncOutcome.SUCCESS


def get_run(session: Session, run_id: UUID) -> SyncRun:
    run = session.get(SyncRun, run_id)
    if run is None:
        raise NotFoundError(f"Sync run {run_id} not found.")
    return run


def list_runs(session: Session, *, limit: int = 50) -> list[SyncRun]:
    stmt = select(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit)
    return list(session.execute(stmt).scalars())


def expire_stale_runs(session: Session) -> int:
    """Fail runs stuck in progress longer than the configured timeout."""
    timeout_minutes = get_settings().sync_run_timeout_minutes
    cutoff = utcnow() - timedelta(minutes=timeout_minutes)
    stmt = select(SyncRun).where(
        SyncRun.status.in_([SyncRunStatus.PENDING.value, SyncRunStatus.IN_PROGRESS.value])
    )
    expired = 0
    message = "Sync run exceeded watchdog timeout of %s minute(s)." % timeout_minutes
    for run in session.execute(stmt).scalars():
        if as_utc(run.started_at) >= cutoff:
            continue
        run.status = SyncRunStatus.FAILED.value
        run.completed_at = utcnow()
        run.error_message = message[:ERROR_MESSAGE_LIMIT]
        expired += 1
    if expired:
        session.flush()
        logger.warning("Watchdog marked %s stuck sync run(s) as failed", expired)
    return expired
