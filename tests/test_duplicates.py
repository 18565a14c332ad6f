from __future__ import annotations

import itertools
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from toolkit.models import Assessment, CatalogEntry, RenewalDecision
from toolkit.services.duplicates import DuplicateResolver, find_duplicates, select_survivor

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _row(product: str, minutes: int, *, product_id: str | None = None, row_id: uuid.UUID | None = None) -> CatalogEntry:
    return CatalogEntry(
        id=row_id or uuid.uuid4(),
        product=product,
        product_id=product_id,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


def _assessment(app_id, email: str, recommendation: str = "renew") -> Assessment:
    return Assessment(
        app_id=app_id,
        cycle_year=2026,
        submitter_email=email,
        recommendation=recommendation,
        justification="Used daily in class.",
        status="submitted",
    )


def test_survivor_ignores_input_order():
    rows = [_row("Kami", 5), _row("Kami", 1), _row("kami ", 9), _row("KAMI", 3)]
    expected = rows[1]

    for permutation in itertools.permutations(rows):
        assert select_survivor(list(permutation)) is expected


def test_survivor_ties_break_on_lowest_id():
    low = _row("Kami", 0, row_id=uuid.UUID(int=1))
    high = _row("Kami", 0, row_id=uuid.UUID(int=2))

    assert select_survivor([high, low]) is low
    assert select_survivor([low, high]) is low


def test_find_duplicates_groups_by_identity(db_session):
    db_session.add_all(
        [
            _row("Kami", 2),
            _row("  kami", 1),
            _row("Seesaw", 0, product_id="S-1"),
            _row("Seesaw Classic", 4, product_id="S-1"),
            _row("Desmos", 0),
            _row("   ", 0),
            _row("", 1),
        ]
    )
    db_session.commit()

    report = find_duplicates(db_session)

    assert report.total_entries == 7
    assert {str(group.identity_key) for group in report.groups} == {"name:kami", "id:S-1"}
    assert report.total_duplicates == 2
    assert len(report.unresolvable_ids) == 2
    kami = next(group for group in report.groups if str(group.identity_key) == "name:kami")
    assert kami.survivor.product == "  kami"
    assert [row.product for row in kami.to_remove] == ["Kami"]


def test_remove_duplicates_moves_assessments_and_fills_blanks(session_factory, db_session):
    survivor = _row("Kami", 0)
    duplicate = _row("Kami", 10)
    duplicate.vendor = "Kami Inc"
    survivor.category = "Annotation"
    duplicate.category = "Ignored"
    db_session.add_all([survivor, duplicate])
    db_session.flush()
    db_session.add_all([_assessment(duplicate.id, "a@school.edu"), _assessment(survivor.id, "b@school.edu")])
    db_session.commit()
    survivor_id, duplicate_id = survivor.id, duplicate.id

    report = DuplicateResolver(session_factory).remove_duplicates()

    assert report.groups_processed == 1
    assert report.removed_count == 1
    assert report.errors == []
    with session_factory() as session:
        assert session.get(CatalogEntry, duplicate_id) is None
        kept = session.get(CatalogEntry, survivor_id)
        assert kept.vendor == "Kami Inc"
        assert kept.category == "Annotation"
        owners = set(session.execute(select(Assessment.app_id)).scalars())
        assert owners == {survivor_id}
        assert len(session.execute(select(Assessment)).scalars().all()) == 2


def test_remove_duplicates_isolates_conflicting_groups(session_factory, db_session):
    kami_a, kami_b = _row("Kami", 0), _row("Kami", 1)
    seesaw_a, seesaw_b = _row("Seesaw", 0), _row("Seesaw", 1)
    db_session.add_all([kami_a, kami_b, seesaw_a, seesaw_b])
    db_session.flush()
    db_session.add_all(
        [
            RenewalDecision(app_id=kami_a.id, cycle_year=2026, status="collecting"),
            RenewalDecision(app_id=kami_b.id, cycle_year=2026, status="collecting"),
            RenewalDecision(app_id=seesaw_b.id, cycle_year=2026, status="collecting"),
        ]
    )
    db_session.commit()

    report = DuplicateResolver(session_factory).remove_duplicates()

    assert report.groups_processed == 1
    assert report.removed_count == 1
    assert len(report.errors) == 1
    assert report.errors[0]["identity_key"] == "name:kami"
    assert report.errors[0]["kind"] == "data_integrity"
    with session_factory() as session:
        assert session.get(CatalogEntry, kami_b.id) is not None
        assert session.get(CatalogEntry, seesaw_b.id) is None
        moved = session.execute(select(RenewalDecision).where(RenewalDecision.app_id == seesaw_a.id)).scalar_one()
        assert moved.cycle_year == 2026


def test_remove_duplicates_with_clean_catalog(session_factory, db_session):
    db_session.add_all([_row("Kami", 0), _row("Seesaw", 0)])
    db_session.commit()

    report = DuplicateResolver(session_factory).remove_duplicates()

    assert report.removed_count == 0
    assert report.message == "No duplicates found."
