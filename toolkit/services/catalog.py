"""Single write path for catalog entries.

Sync, renewal terms and manual edits all go through here so ``updated_at``
and ``synced_at`` stay meaningful for change detection.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from toolkit.models import CatalogEntry, as_utc, utcnow
from toolkit.schemas import ActorRole
from toolkit.services.errors import ConflictError, NotFoundError, ValidationError
from toolkit.services.identity import IdentityKey, name_key, normalize_name, resolve_identity
from toolkit.services.roles import require_role
from toolkit.services.transforms import CANONICAL_FIELDS

logger = logging.getLogger(__name__)

_COST_TOLERANCE = 0.005


def is_dirty(entry: CatalogEntry) -> bool:
    """True when the row carries local changes that have not been pushed yet."""
    synced_at = as_utc(entry.synced_at)
    if synced_at is None:
        return True
    updated_at = as_utc(entry.updated_at)
    return updated_at is not None and updated_at > synced_at


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def values_equal(left: Any, right: Any) -> bool:
    if is_blank(left) and is_blank(right):
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return left is right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return abs(float(left) - float(right)) < _COST_TOLERANCE
    if isinstance(left, datetime) and isinstance(right, datetime):
        return as_utc(left) == as_utc(right)
    if isinstance(left, date) and isinstance(right, date):
        return left == right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return list(left) == list(right)
    return left == right


def get_entry(session: Session, entry_id: UUID) -> CatalogEntry:
    entry = session.get(CatalogEntry, entry_id)
    if entry is None:
        raise NotFoundError(f"Catalog entry {entry_id} not found.")
    return entry


def list_entries(session: Session) -> list[CatalogEntry]:
    stmt = select(CatalogEntry).order_by(CatalogEntry.product, CatalogEntry.created_at)
    return list(session.execute(stmt).scalars())


def rows_for_key(session: Session, key: IdentityKey) -> list[CatalogEntry]:
    """Rows sharing ``key``, oldest first."""
    if not key.resolvable:
        return []
    order = (CatalogEntry.created_at, CatalogEntry.id)
    if key.kind == "id":
        stmt = select(CatalogEntry).where(CatalogEntry.product_id == key.value).order_by(*order)
        return list(session.execute(stmt).scalars())
    stmt = (
        select(CatalogEntry)
        .where(or_(CatalogEntry.product_id.is_(None), CatalogEntry.product_id == ""))
        .order_by(*order)
    )
    return [row for row in session.execute(stmt).scalars() if normalize_name(row.product) == key.value]


def find_match(session: Session, record: Mapping[str, Any]) -> CatalogEntry | None:
    """Locate the row an incoming record reconciles with.

    A record carrying a product id that no row has yet may adopt a legacy row
    stored without one, provided the names match.
    """
    key = resolve_identity(record)
    if not key.resolvable:
        return None
    rows = rows_for_key(session, key)
    if not rows and key.kind == "id":
        legacy = name_key(record)
        if legacy is not None:
            rows = rows_for_key(session, legacy)
    if len(rows) > 1:
        logger.warning("Identity %s matches %s catalog rows; using the oldest", key, len(rows))
    return rows[0] if rows else None


def index_by_identity(records: Iterable[Any]) -> dict[IdentityKey, Any]:
    """Map each resolvable identity to the first record carrying it."""
    index: dict[IdentityKey, Any] = {}
    for record in records:
        if not isinstance(record, (Mapping, CatalogEntry)):
            continue
        key = resolve_identity(record)
        if key.resolvable:
            index.setdefault(key, record)
    return index


def _clean_values(values: Mapping[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for field in CANONICAL_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[field] = value
    return cleaned


def insert_entry(session: Session, values: Mapping[str, Any], *, synced_at: datetime | None = None) -> CatalogEntry:
    cleaned = _clean_values(values)
    if is_blank(cleaned.get("product")):
        raise ValidationError("Catalog entry requires a product name.")
    now = synced_at or utcnow()
    entry = CatalogEntry(**cleaned)
    entry.created_at = now
    entry.updated_at = now
    entry.synced_at = synced_at
    session.add(entry)
    session.flush()
    return entry


def create_entry(session: Session, values: Mapping[str, Any]) -> CatalogEntry:
    """Manual creation; refuses identities that already exist."""
    cleaned = _clean_values(values)
    existing = find_match(session, cleaned)
    if existing is not None:
        raise ConflictError(
            f"Catalog entry '{existing.product}' already exists with the same identity."
        )
    return insert_entry(session, cleaned)


def merge_into_entry(entry: CatalogEntry, incoming: Mapping[str, Any], *, prefer_local: bool) -> list[str]:
    """Apply external values to ``entry`` without destroying local data.

    Blank incoming values never overwrite. Diverging non-blank values win
    unless ``prefer_local`` is set. Returns the names of changed fields.
    """
    changed: list[str] = []
    for field in CANONICAL_FIELDS:
        if field not in incoming:
            continue
        value = incoming[field]
        if is_blank(value):
            continue
        current = getattr(entry, field)
        if values_equal(current, value):
            continue
        if not is_blank(current) and prefer_local:
            continue
        setattr(entry, field, value)
        changed.append(field)
    return changed


def fill_blank_fields(entry: CatalogEntry, donor: CatalogEntry) -> list[str]:
    filled: list[str] = []
    for field in CANONICAL_FIELDS:
        if is_blank(getattr(entry, field)) and not is_blank(getattr(donor, field)):
            setattr(entry, field, getattr(donor, field))
            filled.append(field)
    return filled


def update_entry(session: Session, entry: CatalogEntry, values: Mapping[str, Any]) -> CatalogEntry:
    """Local edit. Bumps ``updated_at`` so the next push carries the change."""
    for field, value in _clean_values(values).items():
        if field == "product" and is_blank(value):
            raise ValidationError("Catalog entry requires a product name.")
        setattr(entry, field, value)
    entry.updated_at = utcnow()
    session.flush()
    return entry


def delete_entry(session: Session, entry_id: UUID, actor_role: ActorRole | str) -> None:
    require_role(actor_role, ActorRole.ADMIN, "delete catalog entries")
    entry = get_entry(session, entry_id)
    logger.info("Deleting catalog entry %s (%s)", entry.id, entry.product)
    session.delete(entry)
    session.flush()
