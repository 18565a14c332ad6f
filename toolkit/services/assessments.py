from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from toolkit.config import get_settings
from toolkit.models import Assessment, RenewalDecision, utcnow
from toolkit.schemas import ActorRole, AssessmentCreate, AssessmentStatus, DecisionStatus, Recommendation
from toolkit.services.catalog import get_entry
from toolkit.services.errors import InvalidTransitionError, NotFoundError, StaleStateError, ValidationError
from toolkit.services.roles import require_role

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: dict[AssessmentStatus, frozenset[AssessmentStatus]] = {
    AssessmentStatus.SUBMITTED: frozenset({AssessmentStatus.IN_REVIEW}),
    AssessmentStatus.IN_REVIEW: frozenset(
        {AssessmentStatus.APPROVED, AssessmentStatus.REJECTED, AssessmentStatus.COMPLETED}
    ),
    AssessmentStatus.APPROVED: frozenset({AssessmentStatus.COMPLETED}),
    AssessmentStatus.REJECTED: frozenset(),
    AssessmentStatus.COMPLETED: frozenset(),
}

# Tallies stop moving once the assessor has signed off.
_TALLY_STAGES = frozenset(
    {DecisionStatus.COLLECTING.value, DecisionStatus.SUMMARIZING.value, DecisionStatus.ASSESSOR_REVIEW.value}
)


@dataclass(frozen=True)
class Aggregate:
    app_id: UUID
    cycle_year: int
    counts: dict[Recommendation, int]
    total: int
    assessments: list[Assessment]


def current_cycle_year(today: date | None = None) -> int:
    override = get_settings().renewal_cycle_year
    if override:
        return override
    return (today or date.today()).year


def parse_recommendation(value: Any) -> Recommendation:
    try:
        return Recommendation(value)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Recommendation)
        raise ValidationError(f"Unknown recommendation '{value}'. Expected one of: {allowed}.") from exc


def aggregate(session: Session, app_id: UUID, cycle_year: int) -> Aggregate:
    """Tally every assessment of one entry for one cycle. Read-only."""
    stmt = (
        select(Assessment)
        .where(Assessment.app_id == app_id, Assessment.cycle_year == cycle_year)
        .order_by(Assessment.submission_date.desc(), Assessment.id)
    )
    rows = list(session.execute(stmt).scalars())
    counts = {recommendation: 0 for recommendation in Recommendation}
    for row in rows:
        counts[Recommendation(row.recommendation)] += 1
    return Aggregate(app_id=app_id, cycle_year=cycle_year, counts=counts, total=len(rows), assessments=rows)


def get_decision_for(session: Session, app_id: UUID, cycle_year: int) -> RenewalDecision | None:
    stmt = select(RenewalDecision).where(
        RenewalDecision.app_id == app_id, RenewalDecision.cycle_year == cycle_year
    )
    return session.execute(stmt).scalars().first()


def _flush_decision(session: Session, app_id: UUID, cycle_year: int) -> None:
    # The caller must roll back after either error; resubmitting then succeeds.
    try:
        session.flush()
    except IntegrityError as exc:
        raise StaleStateError(
            f"Renewal decision for app {app_id} cycle {cycle_year} was opened by a concurrent submission."
        ) from exc
    except StaleDataError as exc:
        raise StaleStateError(
            f"Renewal decision for app {app_id} cycle {cycle_year} was changed by another request."
        ) from exc


def get_or_create_decision(session: Session, app_id: UUID, cycle_year: int) -> RenewalDecision:
    decision = get_decision_for(session, app_id, cycle_year)
    if decision is not None:
        return decision
    decision = RenewalDecision(
        app_id=app_id,
        cycle_year=cycle_year,
        status=DecisionStatus.COLLECTING.value,
    )
    session.add(decision)
    _flush_decision(session, app_id, cycle_year)
    logger.info("Opened renewal decision %s for app %s cycle %s", decision.id, app_id, cycle_year)
    return decision


def refresh_tallies(session: Session, decision: RenewalDecision) -> Aggregate:
    summary = aggregate(session, decision.app_id, decision.cycle_year)
    values = {
        "total_submissions": summary.total,
        "renew_count": summary.counts[Recommendation.RENEW],
        "renew_with_changes_count": summary.counts[Recommendation.RENEW_WITH_CHANGES],
        "replace_count": summary.counts[Recommendation.REPLACE],
        "retire_count": summary.counts[Recommendation.RETIRE],
    }
    for name, value in values.items():
        if getattr(decision, name) != value:
            setattr(decision, name, value)
    return summary


def _validate_submitter(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("A valid submitter email is required.")
    domain = get_settings().submitter_email_domain
    if domain and not email.endswith("@" + domain.lower().lstrip("@")):
        raise ValidationError(f"Submitter email must use the @{domain.lstrip('@')} domain.")
    return email


def _find_retry(session: Session, payload: AssessmentCreate, email: str, cycle_year: int, justification: str):
    stmt = select(Assessment).where(
        Assessment.app_id == payload.app_id,
        Assessment.cycle_year == cycle_year,
        func.lower(Assessment.submitter_email) == email,
        Assessment.recommendation == payload.recommendation,
        Assessment.justification == justification,
    )
    return session.execute(stmt).scalars().first()


def submit_assessment(session: Session, payload: AssessmentCreate) -> Assessment:
    recommendation = parse_recommendation(payload.recommendation)
    justification = (payload.justification or "").strip()
    if not justification:
        raise ValidationError("A justification is required.")
    email = _validate_submitter(payload.submitter_email)
    entry = get_entry(session, payload.app_id)
    cycle_year = current_cycle_year()

    existing = _find_retry(session, payload, email, cycle_year, justification)
    if existing is not None:
        logger.info("Ignoring repeated assessment from %s for app %s", email, entry.id)
        return existing

    fields = payload.model_dump(exclude={"app_id", "submitter_email", "recommendation", "justification"})
    assessment = Assessment(
        app_id=entry.id,
        cycle_year=cycle_year,
        submitter_email=email,
        recommendation=recommendation.value,
        justification=justification,
        submission_date=utcnow(),
        status=AssessmentStatus.SUBMITTED.value,
        current_renewal_date=entry.renewal_date,
        current_annual_cost=entry.annual_cost,
        current_licenses=entry.licenses,
        **fields,
    )
    session.add(assessment)
    session.flush()

    decision = get_or_create_decision(session, entry.id, cycle_year)
    if decision.status in _TALLY_STAGES:
        refresh_tallies(session, decision)
    _flush_decision(session, entry.id, cycle_year)
    logger.info(
        "Recorded %s assessment %s for app %s cycle %s",
        recommendation.value,
        assessment.id,
        entry.id,
        cycle_year,
    )
    return assessment


def get_assessment(session: Session, assessment_id: UUID) -> Assessment:
    assessment = session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFoundError(f"Assessment {assessment_id} not found.")
    return assessment


def list_assessments(
    session: Session,
    *,
    app_id: UUID | None = None,
    cycle_year: int | None = None,
    status: AssessmentStatus | None = None,
) -> list[Assessment]:
    stmt = select(Assessment).order_by(Assessment.submission_date.desc())
    if app_id is not None:
        stmt = stmt.where(Assessment.app_id == app_id)
    if cycle_year is not None:
        stmt = stmt.where(Assessment.cycle_year == cycle_year)
    if status is not None:
        stmt = stmt.where(Assessment.status == AssessmentStatus(status).value)
    return list(session.execute(stmt).scalars())


def update_assessment_status(
    session: Session,
    assessment_id: UUID,
    status: AssessmentStatus | str,
    actor_role: ActorRole | str,
    *,
    reviewed_by: str | None = None,
    admin_notes: str | None = None,
) -> Assessment:
    try:
        target = AssessmentStatus(status)
    except ValueError as exc:
        raise ValidationError(f"Unknown assessment status '{status}'.") from exc
    require_role(actor_role, ActorRole.ASSESSOR, "review assessments")
    assessment = get_assessment(session, assessment_id)

    current = AssessmentStatus(assessment.status)
    if current == target:
        return assessment
    if target not in STATUS_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Assessment {assessment.id} cannot move from {current.value} to {target.value}."
        )
    assessment.status = target.value
    assessment.reviewed_at = utcnow()
    if reviewed_by:
        assessment.reviewed_by = reviewed_by
    if admin_notes is not None:
        assessment.admin_notes = admin_notes
    session.flush()
    return assessment
