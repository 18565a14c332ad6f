from __future__ import annotations

import uuid
from datetime import date

import pytest

from toolkit.config import get_settings
from toolkit.schemas import AssessmentCreate, Recommendation
from toolkit.services import assessments as service
from toolkit.services.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)


@pytest.fixture(autouse=True)
def _fixed_cycle(monkeypatch):
    monkeypatch.setattr(get_settings(), "renewal_cycle_year", 2026)
    monkeypatch.setattr(get_settings(), "submitter_email_domain", None)


def _payload(app_id, **overrides) -> AssessmentCreate:
    values = {
        "app_id": app_id,
        "submitter_email": "Teacher@School.edu",
        "submitter_name": "Pat Teacher",
        "recommendation": "renew",
        "justification": "Students rely on it for annotation.",
        "usage_frequency": "daily",
    }
    values.update(overrides)
    return AssessmentCreate(**values)


def test_submit_snapshots_entry_terms_and_opens_decision(db_session, make_entry):
    entry = make_entry(product="Kami", annual_cost=1200.0, licenses=150, renewal_date=date(2026, 6, 30))

    assessment = service.submit_assessment(db_session, _payload(entry.id))
    db_session.commit()

    assert assessment.cycle_year == 2026
    assert assessment.submitter_email == "teacher@school.edu"
    assert assessment.status == "submitted"
    assert assessment.current_annual_cost == 1200.0
    assert assessment.current_licenses == 150
    assert assessment.current_renewal_date == date(2026, 6, 30)

    decision = service.get_decision_for(db_session, entry.id, 2026)
    assert decision is not None
    assert decision.status == "collecting"
    assert decision.total_submissions == 1
    assert decision.renew_count == 1


def test_tallies_follow_every_submission(db_session, make_entry):
    entry = make_entry(product="Kami")
    service.submit_assessment(db_session, _payload(entry.id))
    service.submit_assessment(db_session, _payload(entry.id, submitter_email="b@school.edu", recommendation="retire"))
    service.submit_assessment(
        db_session, _payload(entry.id, submitter_email="c@school.edu", recommendation="renew_with_changes")
    )
    db_session.commit()

    decision = service.get_decision_for(db_session, entry.id, 2026)
    summary = service.aggregate(db_session, entry.id, 2026)

    assert summary.total == 3
    assert summary.counts[Recommendation.RENEW] == 1
    assert summary.counts[Recommendation.RETIRE] == 1
    assert summary.counts[Recommendation.RENEW_WITH_CHANGES] == 1
    assert summary.counts[Recommendation.REPLACE] == 0
    assert sum(summary.counts.values()) == summary.total
    assert decision.total_submissions == 3
    assert decision.retire_count == 1
    assert decision.replace_count == 0


def test_aggregate_of_entry_without_assessments(db_session, make_entry):
    entry = make_entry(product="Kami")

    summary = service.aggregate(db_session, entry.id, 2026)

    assert summary.total == 0
    assert set(summary.counts.values()) == {0}
    assert summary.assessments == []


def test_tallies_freeze_after_assessor_review(db_session, make_entry):
    entry = make_entry(product="Kami")
    service.submit_assessment(db_session, _payload(entry.id))
    decision = service.get_decision_for(db_session, entry.id, 2026)
    decision.status = "final_review"
    db_session.commit()

    service.submit_assessment(db_session, _payload(entry.id, submitter_email="late@school.edu"))
    db_session.commit()

    assert decision.total_submissions == 1
    assert service.aggregate(db_session, entry.id, 2026).total == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"recommendation": "keep forever"},
        {"justification": "   "},
        {"submitter_email": "not-an-email"},
    ],
)
def test_submit_rejects_invalid_input(db_session, make_entry, overrides):
    entry = make_entry(product="Kami")

    with pytest.raises(ValidationError):
        service.submit_assessment(db_session, _payload(entry.id, **overrides))


def test_submit_for_unknown_entry(db_session):
    with pytest.raises(NotFoundError):
        service.submit_assessment(db_session, _payload(uuid.uuid4()))


def test_submitter_domain_is_enforced_when_configured(db_session, make_entry, monkeypatch):
    monkeypatch.setattr(get_settings(), "submitter_email_domain", "school.edu")
    entry = make_entry(product="Kami")

    with pytest.raises(ValidationError):
        service.submit_assessment(db_session, _payload(entry.id, submitter_email="someone@gmail.com"))
    assert service.submit_assessment(db_session, _payload(entry.id)).submitter_email == "teacher@school.edu"


def test_resubmitting_the_same_assessment_is_a_no_op(db_session, make_entry):
    entry = make_entry(product="Kami")
    first = service.submit_assessment(db_session, _payload(entry.id))
    db_session.commit()

    again = service.submit_assessment(db_session, _payload(entry.id, submitter_email="teacher@school.edu "))
    db_session.commit()

    assert again.id == first.id
    assert service.aggregate(db_session, entry.id, 2026).total == 1
    assert service.get_decision_for(db_session, entry.id, 2026).total_submissions == 1


def test_decision_opened_by_a_concurrent_submission_is_stale(db_session, make_entry, monkeypatch):
    entry = make_entry(product="Kami")
    service.submit_assessment(db_session, _payload(entry.id))
    db_session.commit()
    get_decision_for = service.get_decision_for
    # A request that looked before the first one committed sees no decision yet.
    monkeypatch.setattr(service, "get_decision_for", lambda session, app_id, cycle_year: None)

    with pytest.raises(StaleStateError) as excinfo:
        service.submit_assessment(db_session, _payload(entry.id, submitter_email="b@school.edu"))
    db_session.rollback()

    assert excinfo.value.kind == "stale_state"
    assert excinfo.value.retryable
    assert service.aggregate(db_session, entry.id, 2026).total == 1
    assert get_decision_for(db_session, entry.id, 2026).total_submissions == 1


def test_status_transitions(db_session, make_entry):
    entry = make_entry(product="Kami")
    assessment = service.submit_assessment(db_session, _payload(entry.id))
    db_session.commit()

    with pytest.raises(AuthorizationError):
        service.update_assessment_status(db_session, assessment.id, "in_review", "staff")
    with pytest.raises(InvalidTransitionError):
        service.update_assessment_status(db_session, assessment.id, "approved", "assessor")

    reviewed = service.update_assessment_status(
        db_session, assessment.id, "in_review", "assessor", reviewed_by="Dana", admin_notes="Looking into it"
    )
    assert reviewed.status == "in_review"
    assert reviewed.reviewed_by == "Dana"
    assert reviewed.reviewed_at is not None

    assert service.update_assessment_status(db_session, assessment.id, "in_review", "assessor").status == "in_review"
    assert service.update_assessment_status(db_session, assessment.id, "rejected", "approver").status == "rejected"
    with pytest.raises(InvalidTransitionError):
        service.update_assessment_status(db_session, assessment.id, "completed", "admin")


def test_status_update_validates_before_lookup(db_session):
    with pytest.raises(ValidationError):
        service.update_assessment_status(db_session, uuid.uuid4(), "archived", "admin")
    with pytest.raises(NotFoundError):
        service.update_assessment_status(db_session, uuid.uuid4(), "in_review", "admin")
