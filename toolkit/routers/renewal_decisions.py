from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from toolkit.database import get_db
from toolkit.schemas import (
    AggregateRead,
    AssessmentRead,
    DecisionAdvanceRequest,
    DecisionStatus,
    RenewalDecisionRead,
    SummaryRequest,
)
from toolkit.services.assessments import aggregate
from toolkit.services.renewal_workflow import advance, get_decision, list_decisions, request_summary
from toolkit.services.summary_generator import SummaryGenerator, get_summary_generator

router = APIRouter(prefix="/renewal-decisions", tags=["Renewal Decisions"])


@router.get("", response_model=list[RenewalDecisionRead])
def read_decisions(
    cycle_year: Optional[int] = None,
    status_filter: Optional[DecisionStatus] = None,
    app_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
) -> list[RenewalDecisionRead]:
    return list_decisions(db, cycle_year=cycle_year, status=status_filter, app_id=app_id)


@router.get("/{decision_id}", response_model=RenewalDecisionRead)
def read_decision(decision_id: UUID, db: Session = Depends(get_db)) -> RenewalDecisionRead:
    return get_decision(db, decision_id)


@router.get("/{decision_id}/aggregate", response_model=AggregateRead)
def read_decision_aggregate(decision_id: UUID, db: Session = Depends(get_db)) -> AggregateRead:
    decision = get_decision(db, decision_id)
    result = aggregate(db, decision.app_id, decision.cycle_year)
    return AggregateRead(
        app_id=result.app_id,
        cycle_year=result.cycle_year,
        total=result.total,
        counts=result.counts,
        assessments=[AssessmentRead.model_validate(row) for row in result.assessments],
    )


@router.post("/{decision_id}/summary", response_model=RenewalDecisionRead)
def generate_decision_summary(
    decision_id: UUID,
    payload: SummaryRequest,
    db: Session = Depends(get_db),
    generator: SummaryGenerator = Depends(get_summary_generator),
) -> RenewalDecisionRead:
    decision = request_summary(
        db,
        decision_id,
        payload.actor_role,
        generator,
        expected_version=payload.expected_version,
    )
    db.commit()
    db.refresh(decision)
    return decision


@router.post("/{decision_id}/advance", response_model=RenewalDecisionRead)
def advance_decision(
    decision_id: UUID,
    payload: DecisionAdvanceRequest,
    db: Session = Depends(get_db),
) -> RenewalDecisionRead:
    stage_fields = payload.model_dump(exclude={"action", "actor_role", "expected_version"})
    decision = advance(
        db,
        decision_id,
        payload.action,
        stage_fields,
        payload.actor_role,
        expected_version=payload.expected_version,
    )
    db.commit()
    db.refresh(decision)
    return decision
