from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from toolkit.database import SessionLocal
from toolkit.models import CatalogEntry, SyncRun, utcnow
from toolkit.schemas import SyncDirection, SyncRunStatus
from toolkit.services import sync_log
from toolkit.services.apps_script import AppsScriptClient
from toolkit.services.catalog import (
    find_match,
    index_by_identity,
    insert_entry,
    is_dirty,
    list_entries,
    merge_into_entry,
)
from toolkit.services.errors import DataIntegrityError, TransientIOError
from toolkit.services.identity import UNRESOLVABLE, IdentityKey, name_key, resolve_identity
from toolkit.services.transforms import resolve_alias, to_canonical, to_external

logger = logging.getLogger(__name__)


@dataclass
class SyncTally:
    synced: int = 0
    failed: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def record_failure(self, key: IdentityKey, product: str | None, exc: Exception) -> None:
        self.failed += 1
        self.failures.append(
            {
                "identity": str(key),
                "product": product,
                "kind": getattr(exc, "kind", "unexpected_error"),
                "message": str(exc)[:500] or exc.__class__.__name__,
            }
        )


def _record_product(raw: Any) -> str | None:
    if not isinstance(raw, Mapping):
        return None
    value = resolve_alias(raw, "product")
    return str(value).strip() if value is not None else None


class SyncEngine:
    """Reconciles the spreadsheet catalog with the canonical database."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        client: AppsScriptClient,
    ) -> None:
        self._session_factory = session_factory
        self._client = client

    def run_sync(self, direction: SyncDirection | str, triggered_by: str | None = None) -> SyncRun:
        direction = SyncDirection(direction)
        with self._session_scope() as session:
            sync_log.expire_stale_runs(session)
            run = sync_log.open_run(session, direction, triggered_by or "manual")
            sync_log.mark_in_progress(session, run)
            run_id = run.id
        logger.info("Starting %s sync run %s (triggered by %s)", direction.value, run_id, triggered_by or "manual")

        tally = SyncTally()
        status = SyncRunStatus.COMPLETED
        error_message: str | None = None
        try:
            if direction in (SyncDirection.PULL, SyncDirection.BIDIRECTIONAL):
                self._pull(tally)
            if direction in (SyncDirection.PUSH, SyncDirection.BIDIRECTIONAL):
                self._push(tally)
        except (TransientIOError, SQLAlchemyError) as exc:
            status = SyncRunStatus.FAILED
            error_message = str(exc)
            logger.error("Sync run %s failed: %s", run_id, exc)
        except Exception as exc:  # noqa: B902
            self._seal(run_id, SyncRunStatus.FAILED, tally, str(exc) or exc.__class__.__name__)
            logger.exception("Sync run %s failed unexpectedly", run_id)
            raise

        run = self._seal(run_id, status, tally, error_message)
        logger.info(
            "Finished sync run %s: status=%s synced=%s failed=%s",
            run_id,
            run.status,
            run.records_synced,
            run.records_failed,
        )
        return run

    def _seal(self, run_id, status: SyncRunStatus, tally: SyncTally, error_message: str | None) -> SyncRun:
        with self._session_scope() as session:
            run = sync_log.get_run(session, run_id)
            return sync_log.seal_run(
                session,
                run,
                status=status,
                records_synced=tally.synced,
                records_failed=tally.failed,
                failures=tally.failures,
                error_message=error_message,
            )

    def _pull(self, tally: SyncTally) -> None:
        records = self._client.fetch_records()
        logger.info("Pulling %s external record(s)", len(records))
        for raw in records:
            key = resolve_identity(raw) if isinstance(raw, Mapping) else IdentityKey(UNRESOLVABLE, "")
            try:
                with self._session_scope() as session:
                    self._apply_record(session, raw, utcnow())
            except OperationalError as exc:
                raise TransientIOError(f"Canonical store unavailable: {exc}") from exc
            except Exception as exc:  # noqa: B902
                product = _record_product(raw)
                logger.warning("Failed to pull record %s (%s): %s", key, product, exc)
                tally.record_failure(key, product, exc)
            else:
                tally.synced += 1

    def _apply_record(self, session: Session, raw: Any, synced_at: datetime) -> None:
        canonical = to_canonical(raw)
        key = resolve_identity(canonical)
        if not key.resolvable:
            raise DataIntegrityError("External record has no usable identity.")

        entry = find_match(session, canonical)
        if entry is None:
            entry = insert_entry(session, canonical, synced_at=synced_at)
            logger.debug("Created catalog entry %s for %s", entry.id, key)
            return

        dirty = is_dirty(entry)
        changed = merge_into_entry(entry, canonical, prefer_local=dirty)
        if not changed:
            return
        entry.updated_at = synced_at
        if not dirty:
            entry.synced_at = synced_at
        session.flush()
        logger.debug("Updated catalog entry %s for %s: %s", entry.id, key, ", ".join(changed))

    def _push(self, tally: SyncTally) -> None:
        external = self._client.fetch_records(allow_empty=True)
        base_index = index_by_identity(external)

        payloads: list[dict[str, Any]] = []
        pushed: list[tuple[Any, datetime]] = []
        with self._session_scope() as session:
            for entry in list_entries(session):
                key = resolve_identity(entry)
                if not key.resolvable:
                    tally.record_failure(
                        key,
                        entry.product,
                        DataIntegrityError(f"Catalog entry {entry.id} has no usable identity."),
                    )
                    logger.warning("Skipping catalog entry %s during push: no usable identity", entry.id)
                    continue
                base = base_index.get(key)
                if base is None and key.kind == "id":
                    legacy = name_key(entry)
                    base = base_index.get(legacy) if legacy is not None else None
                try:
                    payloads.append(to_external(entry, base))
                except Exception as exc:  # noqa: B902
                    logger.warning("Failed to render catalog entry %s (%s): %s", key, entry.product, exc)
                    tally.record_failure(key, entry.product, exc)
                    continue
                pushed.append((entry.id, entry.updated_at))

        if not payloads:
            return
        logger.info("Pushing %s catalog entr(ies) to the spreadsheet", len(payloads))
        self._client.write_records(payloads)

        synced_at = utcnow()
        with self._session_scope() as session:
            for entry_id, updated_at in pushed:
                session.execute(
                    update(CatalogEntry)
                    .where(CatalogEntry.id == entry_id, CatalogEntry.updated_at == updated_at)
                    .values(synced_at=synced_at, updated_at=CatalogEntry.updated_at)
                    .execution_options(synchronize_session=False)
                )
        tally.synced += len(pushed)

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
