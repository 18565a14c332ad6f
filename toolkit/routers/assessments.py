from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from toolkit.database import get_db
from toolkit.schemas import AssessmentCreate, AssessmentRead, AssessmentStatus, AssessmentStatusUpdate
from toolkit.services.assessments import (
    get_assessment,
    list_assessments,
    submit_assessment,
    update_assessment_status,
)

router = APIRouter(prefix="/renewal-assessments", tags=["Renewal Assessments"])


@router.post("", response_model=AssessmentRead, status_code=status.HTTP_201_CREATED)
def create_assessment(payload: AssessmentCreate, db: Session = Depends(get_db)) -> AssessmentRead:
    assessment = submit_assessment(db, payload)
    db.commit()
    db.refresh(assessment)
    return assessment


@router.get("", response_model=list[AssessmentRead])
def read_assessments(
    app_id: Optional[UUID] = None,
    cycle_year: Optional[int] = None,
    status_filter: Optional[AssessmentStatus] = None,
    db: Session = Depends(get_db),
) -> list[AssessmentRead]:
    return list_assessments(db, app_id=app_id, cycle_year=cycle_year, status=status_filter)


@router.get("/{assessment_id}", response_model=AssessmentRead)
def read_assessment(assessment_id: UUID, db: Session = Depends(get_db)) -> AssessmentRead:
    return get_assessment(db, assessment_id)


@router.patch("/{assessment_id}/status", response_model=AssessmentRead)
def change_assessment_status(
    assessment_id: UUID,
    payload: AssessmentStatusUpdate,
    db: Session = Depends(get_db),
) -> AssessmentRead:
    assessment = update_assessment_status(
        db,
        assessment_id,
        payload.status,
        payload.actor_role,
        reviewed_by=payload.reviewed_by,
        admin_notes=payload.admin_notes,
    )
    db.commit()
    db.refresh(assessment)
    return assessment
