from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from toolkit.database import SessionLocal
from toolkit.models import Assessment, CatalogEntry, RenewalDecision, as_utc, utcnow
from toolkit.services.catalog import fill_blank_fields, list_entries, rows_for_key
from toolkit.services.errors import DataIntegrityError, ToolkitError, TransientIOError
from toolkit.services.identity import IdentityKey, resolve_identity

logger = logging.getLogger(__name__)

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DuplicateGroup:
    identity_key: IdentityKey
    product: str
    rows: list[CatalogEntry]
    survivor: CatalogEntry
    to_remove: list[CatalogEntry]


@dataclass(frozen=True)
class DuplicateReport:
    total_entries: int
    groups: list[DuplicateGroup]
    unresolvable_ids: list[UUID]

    @property
    def total_duplicates(self) -> int:
        return sum(len(group.to_remove) for group in self.groups)


@dataclass
class RemovalReport:
    groups_processed: int = 0
    removed_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.groups_processed and not self.errors:
            return "No duplicates found."
        message = f"Removed {self.removed_count} duplicate entries across {self.groups_processed} group(s)."
        if self.errors:
            message += f" {len(self.errors)} group(s) need manual review."
        return message


def _survivor_sort_key(row: CatalogEntry) -> tuple[datetime, UUID]:
    return (as_utc(row.created_at) or _LATEST, row.id)


def select_survivor(rows: Sequence[CatalogEntry]) -> CatalogEntry:
    """Oldest row wins; ties go to the lowest id, whatever the input order."""
    if not rows:
        raise ValueError("Cannot select a survivor from an empty group.")
    return min(rows, key=_survivor_sort_key)


def find_duplicates(session: Session) -> DuplicateReport:
    rows = list_entries(session)
    grouped: OrderedDict[IdentityKey, list[CatalogEntry]] = OrderedDict()
    unresolvable: list[UUID] = []
    for row in rows:
        key = resolve_identity(row)
        if not key.resolvable:
            unresolvable.append(row.id)
            continue
        grouped.setdefault(key, []).append(row)

    groups: list[DuplicateGroup] = []
    for key, members in grouped.items():
        if len(members) < 2:
            continue
        survivor = select_survivor(members)
        ordered = sorted(members, key=_survivor_sort_key)
        groups.append(
            DuplicateGroup(
                identity_key=key,
                product=survivor.product,
                rows=ordered,
                survivor=survivor,
                to_remove=[row for row in ordered if row.id != survivor.id],
            )
        )
    if unresolvable:
        logger.warning("%s catalog entr(ies) have no usable identity and need manual review", len(unresolvable))
    return DuplicateReport(total_entries=len(rows), groups=groups, unresolvable_ids=unresolvable)


class DuplicateResolver:
    """Collapses duplicate groups onto their survivor, one transaction per group."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def remove_duplicates(self) -> RemovalReport:
        with self._session_scope() as session:
            plan = [
                (group.identity_key, group.product, group.survivor.id)
                for group in find_duplicates(session).groups
            ]

        report = RemovalReport()
        for key, product, survivor_id in plan:
            try:
                with self._session_scope() as session:
                    removed = self._resolve_group(session, key, survivor_id)
            except OperationalError as exc:
                raise TransientIOError(f"Canonical store unavailable: {exc}") from exc
            except (ToolkitError, SQLAlchemyError) as exc:
                logger.warning("Could not resolve duplicate group %s (%s): %s", key, product, exc)
                report.errors.append(
                    {
                        "identity_key": str(key),
                        "product": product,
                        "kind": getattr(exc, "kind", "data_integrity"),
                        "message": str(exc)[:500],
                    }
                )
                continue
            report.groups_processed += 1
            report.removed_count += removed
        logger.info(
            "Duplicate removal finished: %s group(s), %s removed, %s error(s)",
            report.groups_processed,
            report.removed_count,
            len(report.errors),
        )
        return report

    def _resolve_group(self, session: Session, key: IdentityKey, survivor_id: UUID) -> int:
        rows = rows_for_key(session, key)
        if not any(row.id == survivor_id for row in rows):
            raise DataIntegrityError(f"Survivor {survivor_id} for {key} no longer exists.")
        survivor = select_survivor(rows)
        if survivor.id != survivor_id:
            raise DataIntegrityError(
                f"Survivor for {key} changed from {survivor_id} to {survivor.id} since detection."
            )
        others = [row for row in rows if row.id != survivor.id]
        if not others:
            return 0
        other_ids = [row.id for row in others]

        taken_cycles = set(
            session.execute(
                select(RenewalDecision.cycle_year).where(RenewalDecision.app_id == survivor.id)
            ).scalars()
        )
        moving = session.execute(
            select(RenewalDecision).where(RenewalDecision.app_id.in_(other_ids))
        ).scalars().all()
        for decision in moving:
            if decision.cycle_year in taken_cycles:
                raise DataIntegrityError(
                    f"Entries in group {key} each hold a renewal decision for {decision.cycle_year}."
                )
            taken_cycles.add(decision.cycle_year)

        filled: list[str] = []
        for other in others:
            filled.extend(fill_blank_fields(survivor, other))

        session.execute(
            update(Assessment)
            .where(Assessment.app_id.in_(other_ids))
            .values(app_id=survivor.id)
            .execution_options(synchronize_session="fetch")
        )
        for decision in moving:
            decision.app_id = survivor.id
        if filled:
            survivor.updated_at = utcnow()
        session.flush()

        for other in others:
            session.expire(other)
            session.delete(other)
        session.flush()
        logger.info("Merged %s duplicate(s) of %s into %s", len(others), key, survivor.id)
        return len(others)

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        session.expire_on_commit = False
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
