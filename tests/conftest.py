import copy
import os
import sys
from pathlib import Path

from collections.abc import Generator
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DATABASE_URL = "sqlite://"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("SYNC_SCHEDULE_CRON", "")

from toolkit.database import Base, get_db, get_session_factory  # noqa: E402
from toolkit.main import app  # noqa: E402
from toolkit.models import CatalogEntry  # noqa: E402
from toolkit.services.apps_script import get_external_store_client  # noqa: E402
from toolkit.services.catalog import insert_entry  # noqa: E402
from toolkit.services.errors import ExternalStoreError  # noqa: E402
from toolkit.services.summary_generator import get_summary_generator  # noqa: E402


def _create_testing_engine():
    return create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


@pytest.fixture(scope="session")
def engine():
    engine = _create_testing_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(engine) -> Callable[[], Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    # Services open their own sessions on the same connection, so tests must
    # commit fixture data before calling them.
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_entry(db_session: Session):
    def _make(**values: Any) -> CatalogEntry:
        values.setdefault("product", "Kami")
        synced_at = values.pop("synced_at", None)
        created_at = values.pop("created_at", None)
        entry = insert_entry(db_session, values, synced_at=synced_at)
        if created_at is not None:
            entry.created_at = created_at
        db_session.commit()
        return entry

    return _make


class FakeAppsScriptClient:
    """In-memory spreadsheet that mirrors the real client's contract."""

    def __init__(self, records: list[Any] | None = None) -> None:
        self.records: list[Any] = list(records or [])
        self.writes: list[list[dict[str, Any]]] = []
        self.fetch_error: Exception | None = None
        self.write_error: Exception | None = None

    def fetch_records(self, *, allow_empty: bool = False) -> list[Any]:
        if self.fetch_error is not None:
            raise self.fetch_error
        if not self.records and not allow_empty:
            raise ExternalStoreError("Apps Script returned no catalog records.")
        return copy.deepcopy(self.records)

    def write_records(self, records):
        if self.write_error is not None:
            raise self.write_error
        payload = [dict(record) for record in records]
        self.writes.append(payload)
        self.records = copy.deepcopy(payload)
        return {"success": True, "updated": len(payload)}


class FakeSummaryGenerator:
    def __init__(self, text: str = "Staff broadly support renewal.", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[Any, list[Any]]] = []

    def generate(self, entry, assessments):
        self.calls.append((entry, list(assessments)))
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture()
def sheet() -> FakeAppsScriptClient:
    return FakeAppsScriptClient()


@pytest.fixture()
def summary_generator() -> FakeSummaryGenerator:
    return FakeSummaryGenerator()


class PrefixedTestClient(TestClient):
    api_prefix = "/api"

    def request(self, method: str, url: str, *args, **kwargs):  # type: ignore[override]
        if url.startswith("/"):
            url = f"{self.api_prefix}{url}"
        return super().request(method, url, *args, **kwargs)


@pytest.fixture()
def client(session_factory, sheet, summary_generator) -> Generator[TestClient, None, None]:
    def override_get_db():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_external_store_client] = lambda: sheet
    app.dependency_overrides[get_summary_generator] = lambda: summary_generator

    client = PrefixedTestClient(app)
    try:
        yield client
    finally:
        for dependency in (get_db, get_session_factory, get_external_store_client, get_summary_generator):
            app.dependency_overrides.pop(dependency, None)
