from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from toolkit.database import get_db, get_session_factory
from toolkit.schemas import (
    DuplicateCheckResponse,
    DuplicateGroupError,
    DuplicateGroupRead,
    DuplicateRemovalResponse,
)
from toolkit.services.duplicates import DuplicateResolver, find_duplicates

router = APIRouter(prefix="/duplicates", tags=["Duplicates"])

MAX_LISTED_GROUPS = 100


@router.get("", response_model=DuplicateCheckResponse)
def check_duplicates(db: Session = Depends(get_db)) -> DuplicateCheckResponse:
    report = find_duplicates(db)
    groups = [
        DuplicateGroupRead(
            product=group.product,
            identity_key=str(group.identity_key),
            count=len(group.rows),
            ids=[row.id for row in group.rows],
            keep_id=group.survivor.id,
            remove_ids=[row.id for row in group.to_remove],
        )
        for group in report.groups[:MAX_LISTED_GROUPS]
    ]
    return DuplicateCheckResponse(
        total_apps=report.total_entries,
        duplicate_groups=len(report.groups),
        total_duplicates=report.total_duplicates,
        duplicates=groups,
        unresolvable_ids=report.unresolvable_ids,
    )


@router.post("/remove", response_model=DuplicateRemovalResponse)
def remove_duplicates(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> DuplicateRemovalResponse:
    report = DuplicateResolver(session_factory).remove_duplicates()
    return DuplicateRemovalResponse(
        message=report.message,
        removed_count=report.removed_count,
        groups_processed=report.groups_processed,
        errors=[DuplicateGroupError(**error) for error in report.errors],
    )
