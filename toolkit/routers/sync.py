from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from toolkit.database import get_db, get_session_factory
from toolkit.models import SyncRun
from toolkit.schemas import SyncRunRead, SyncTriggerRequest
from toolkit.services import sync_log
from toolkit.services.apps_script import AppsScriptClient, get_external_store_client
from toolkit.services.sync_engine import SyncEngine

router = APIRouter(prefix="/sync", tags=["Sync"])


def _to_read(run: SyncRun) -> SyncRunRead:
    data = SyncRunRead.model_validate(run)
    data.outcome = sync_log.outcome_for(run)
    return data


@router.post("", response_model=SyncRunRead, status_code=status.HTTP_201_CREATED)
def trigger_sync(
    payload: SyncTriggerRequest,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    client: AppsScriptClient = Depends(get_external_store_client),
) -> SyncRunRead:
    engine = SyncEngine(session_factory, client=client)
    run = engine.run_sync(payload.direction, triggered_by=payload.triggered_by)
    return _to_read(run)


@router.get("/runs", response_model=list[SyncRunRead])
def list_sync_runs(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[SyncRunRead]:
    return [_to_read(run) for run in sync_log.list_runs(db, limit=limit)]


@router.get("/runs/{run_id}", response_model=SyncRunRead)
def get_sync_run(run_id: UUID, db: Session = Depends(get_db)) -> SyncRunRead:
    return _to_read(sync_log.get_run(db, run_id))
