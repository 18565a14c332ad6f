"""Renewal decision state machine.

One decision exists per catalog entry and renewal cycle. It moves strictly
forward::

    collecting -> summarizing -> assessor_review -> final_review -> decided -> implemented

Every action checks, in order: its payload, the actor's role, the current
stage, and the caller's ``expected_version``. Re-sending an action while the
decision already sits in that action's target stage rewrites the stage's
fields without moving further.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from toolkit.models import CatalogEntry, RenewalDecision, utcnow
from toolkit.schemas import ActorRole, DecisionAction, DecisionStatus
from toolkit.services.assessments import aggregate, parse_recommendation, refresh_tallies
from toolkit.services.errors import InvalidTransitionError, NotFoundError, StaleStateError, ValidationError
from toolkit.services.roles import require_role
from toolkit.services.summary_generator import SummaryGenerator
from toolkit.services.terms import apply_terms

logger = logging.getLogger(__name__)

TRANSITIONS: dict[tuple[DecisionStatus, DecisionAction], DecisionStatus] = {
    (DecisionStatus.COLLECTING, DecisionAction.SKIP_SUMMARY): DecisionStatus.ASSESSOR_REVIEW,
    (DecisionStatus.SUMMARIZING, DecisionAction.SKIP_SUMMARY): DecisionStatus.ASSESSOR_REVIEW,
    (DecisionStatus.ASSESSOR_REVIEW, DecisionAction.ASSESSOR_REVIEW): DecisionStatus.FINAL_REVIEW,
    (DecisionStatus.FINAL_REVIEW, DecisionAction.DIRECTOR_DECISION): DecisionStatus.DECIDED,
    (DecisionStatus.DECIDED, DecisionAction.IMPLEMENT): DecisionStatus.IMPLEMENTED,
}

ACTION_TARGETS: dict[DecisionAction, DecisionStatus] = {
    action: target for (_, action), target in TRANSITIONS.items()
}

ACTION_ROLES: dict[DecisionAction, ActorRole] = {
    DecisionAction.SKIP_SUMMARY: ActorRole.ASSESSOR,
    DecisionAction.ASSESSOR_REVIEW: ActorRole.ASSESSOR,
    DecisionAction.DIRECTOR_DECISION: ActorRole.APPROVER,
    DecisionAction.IMPLEMENT: ActorRole.APPROVER,
}

SUMMARY_ROLE = ActorRole.ASSESSOR
SUMMARY_STAGES = frozenset(
    {DecisionStatus.COLLECTING, DecisionStatus.SUMMARIZING, DecisionStatus.ASSESSOR_REVIEW}
)


def get_decision(session: Session, decision_id: UUID) -> RenewalDecision:
    decision = session.get(RenewalDecision, decision_id)
    if decision is None:
        raise NotFoundError(f"Renewal decision {decision_id} not found.")
    return decision


def list_decisions(
    session: Session,
    *,
    cycle_year: int | None = None,
    status: DecisionStatus | None = None,
    app_id: UUID | None = None,
) -> list[RenewalDecision]:
    stmt = select(RenewalDecision).order_by(RenewalDecision.cycle_year.desc(), RenewalDecision.updated_at.desc())
    if cycle_year is not None:
        stmt = stmt.where(RenewalDecision.cycle_year == cycle_year)
    if status is not None:
        stmt = stmt.where(RenewalDecision.status == DecisionStatus(status).value)
    if app_id is not None:
        stmt = stmt.where(RenewalDecision.app_id == app_id)
    return list(session.execute(stmt).scalars())


def _coerce_action(action: DecisionAction | str) -> DecisionAction:
    try:
        return DecisionAction(action)
    except ValueError as exc:
        raise ValidationError(f"Unknown renewal action '{action}'.") from exc


def _text(payload: Mapping[str, Any], name: str) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _validate_payload(action: DecisionAction, payload: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {
        "actor_email": _text(payload, "actor_email"),
        "actor_name": _text(payload, "actor_name"),
        "comment": _text(payload, "comment"),
    }
    if action is DecisionAction.ASSESSOR_REVIEW:
        if payload.get("recommendation") is None:
            raise ValidationError("The assessor review needs a recommendation.")
        if not cleaned["comment"]:
            raise ValidationError("The assessor review needs a comment.")
        cleaned["recommendation"] = parse_recommendation(payload["recommendation"]).value
    elif action is DecisionAction.DIRECTOR_DECISION:
        if payload.get("final_decision") is None:
            raise ValidationError("A final decision is required.")
        cleaned["final_decision"] = parse_recommendation(payload["final_decision"]).value
        for name in ("new_renewal_date", "new_annual_cost", "new_licenses"):
            cleaned[name] = payload.get(name)
        for name in ("new_annual_cost", "new_licenses"):
            if cleaned[name] is not None and cleaned[name] < 0:
                raise ValidationError(f"{name} cannot be negative.")
    elif action is DecisionAction.IMPLEMENT:
        notes = _text(payload, "implementation_notes")
        if not notes:
            raise ValidationError("Implementation notes are required.")
        cleaned["implementation_notes"] = notes
    return cleaned


def _check_version(decision: RenewalDecision, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != decision.version:
        raise StaleStateError(
            f"Renewal decision {decision.id} is at version {decision.version}, not {expected_version}."
        )


def _flush(session: Session, decision: RenewalDecision) -> None:
    try:
        session.flush()
    except StaleDataError as exc:
        raise StaleStateError(f"Renewal decision {decision.id} was changed by another request.") from exc


def advance(
    session: Session,
    decision_id: UUID,
    action: DecisionAction | str,
    payload: Mapping[str, Any],
    actor_role: ActorRole | str,
    expected_version: int | None = None,
) -> RenewalDecision:
    action = _coerce_action(action)
    cleaned = _validate_payload(action, payload)
    require_role(actor_role, ACTION_ROLES[action], f"perform {action.value}")
    decision = get_decision(session, decision_id)

    current = DecisionStatus(decision.status)
    target = TRANSITIONS.get((current, action))
    repeat = target is None and current is ACTION_TARGETS[action]
    if target is None and not repeat:
        raise InvalidTransitionError(
            f"Cannot {action.value} a renewal decision in the {current.value} stage."
        )
    _check_version(decision, expected_version)

    now = utcnow()
    if action is DecisionAction.SKIP_SUMMARY:
        if not repeat:
            refresh_tallies(session, decision)
    elif action is DecisionAction.ASSESSOR_REVIEW:
        decision.assessor_email = cleaned["actor_email"]
        decision.assessor_name = cleaned["actor_name"]
        decision.assessor_comment = cleaned["comment"]
        decision.assessor_recommendation = cleaned["recommendation"]
        decision.assessor_reviewed_at = now
    elif action is DecisionAction.DIRECTOR_DECISION:
        decision.approver_email = cleaned["actor_email"]
        decision.approver_name = cleaned["actor_name"]
        decision.approver_comment = cleaned["comment"]
        decision.final_decision = cleaned["final_decision"]
        decision.final_decided_at = now
        decision.new_renewal_date = cleaned["new_renewal_date"]
        decision.new_annual_cost = cleaned["new_annual_cost"]
        decision.new_licenses = cleaned["new_licenses"]
    elif action is DecisionAction.IMPLEMENT:
        decision.implementation_notes = cleaned["implementation_notes"]
        if not repeat:
            decision.implemented_at = now
            apply_terms(session, decision)

    if target is not None:
        decision.status = target.value
    decision.updated_at = now
    _flush(session, decision)
    logger.info(
        "Renewal decision %s: %s by %s (%s -> %s)",
        decision.id,
        action.value,
        getattr(actor_role, "value", actor_role),
        current.value,
        decision.status,
    )
    return decision


def request_summary(
    session: Session,
    decision_id: UUID,
    actor_role: ActorRole | str,
    generator: SummaryGenerator,
    expected_version: int | None = None,
) -> RenewalDecision:
    """Generate the narrative summary and move the decision to assessor review.

    The external call happens before anything is written; if it fails the
    decision is left exactly as it was and the error is retryable.
    """
    require_role(actor_role, SUMMARY_ROLE, "request a renewal summary")
    decision = get_decision(session, decision_id)
    current = DecisionStatus(decision.status)
    if current not in SUMMARY_STAGES:
        raise InvalidTransitionError(
            f"Cannot generate a summary for a renewal decision in the {current.value} stage."
        )
    _check_version(decision, expected_version)

    corpus = aggregate(session, decision.app_id, decision.cycle_year)
    if not corpus.total:
        raise ValidationError("There are no assessments to summarize yet.")
    entry = session.get(CatalogEntry, decision.app_id)
    text = generator.generate(entry, corpus.assessments)

    now = utcnow()
    decision.ai_summary = text
    decision.ai_summary_generated_at = now
    refresh_tallies(session, decision)
    decision.status = DecisionStatus.ASSESSOR_REVIEW.value
    decision.updated_at = now
    _flush(session, decision)
    logger.info("Stored summary for renewal decision %s (%s assessments)", decision.id, corpus.total)
    return decision
