from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from toolkit.database import get_db
from toolkit.schemas import ActorRole, CatalogEntryCreate, CatalogEntryRead
from toolkit.services.catalog import create_entry, delete_entry, get_entry, list_entries

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get("", response_model=list[CatalogEntryRead])
def list_catalog_entries(db: Session = Depends(get_db)) -> list[CatalogEntryRead]:
    return list_entries(db)


@router.get("/{entry_id}", response_model=CatalogEntryRead)
def get_catalog_entry(entry_id: UUID, db: Session = Depends(get_db)) -> CatalogEntryRead:
    return get_entry(db, entry_id)


@router.post("", response_model=CatalogEntryRead, status_code=status.HTTP_201_CREATED)
def create_catalog_entry(payload: CatalogEntryCreate, db: Session = Depends(get_db)) -> CatalogEntryRead:
    entry = create_entry(db, payload.model_dump())
    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_catalog_entry(
    entry_id: UUID,
    actor_role: ActorRole = Query(...),
    db: Session = Depends(get_db),
) -> Response:
    delete_entry(db, entry_id, actor_role)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
