from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TimestampSchema(BaseModel):
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SyncDirection(str, Enum):
    PULL = "pull"
    PUSH = "push"
    BIDIRECTIONAL = "bidirectional"


class SyncRunStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncOutcome(str, Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"
    FAILED = "failed"


class Recommendation(str, Enum):
    RENEW = "renew"
    RENEW_WITH_CHANGES = "renew_with_changes"
    REPLACE = "replace"
    RETIRE = "retire"


class AssessmentStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class DecisionStatus(str, Enum):
    COLLECTING = "collecting"
    SUMMARIZING = "summarizing"
    ASSESSOR_REVIEW = "assessor_review"
    FINAL_REVIEW = "final_review"
    DECIDED = "decided"
    IMPLEMENTED = "implemented"


class DecisionAction(str, Enum):
    SKIP_SUMMARY = "skip_summary"
    ASSESSOR_REVIEW = "assessor_review"
    DIRECTOR_DECISION = "director_decision"
    IMPLEMENT = "implement"


class ActorRole(str, Enum):
    STAFF = "staff"
    ASSESSOR = "assessor"
    APPROVER = "approver"
    ADMIN = "admin"


class CatalogEntryBase(BaseModel):
    product: str = Field(..., max_length=300)
    product_id: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=200)
    subject: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=200)
    division: Optional[str] = Field(None, max_length=200)
    audience: Optional[List[str]] = None
    website: Optional[str] = Field(None, max_length=500)
    tutorial_link: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[str] = Field(None, max_length=500)
    sso_enabled: Optional[bool] = None
    mobile_app: Optional[bool] = None
    grade_levels: Optional[str] = Field(None, max_length=200)
    is_new: Optional[bool] = None
    vendor: Optional[str] = Field(None, max_length=200)
    license_type: Optional[str] = Field(None, max_length=100)
    renewal_date: Optional[date] = None
    annual_cost: Optional[float] = Field(None, ge=0)
    licenses: Optional[int] = Field(None, ge=0)
    utilization: Optional[int] = None
    status: Optional[str] = Field(None, max_length=50)
    enterprise: Optional[bool] = None
    budget: Optional[str] = Field(None, max_length=200)
    support_email: Optional[str] = Field(None, max_length=200)
    date_added: Optional[date] = None
    is_whole_school: Optional[bool] = None

    @field_validator("product")
    @classmethod
    def _product_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Product name is required.")
        return value


class CatalogEntryCreate(CatalogEntryBase):
    pass


class CatalogEntryRead(CatalogEntryBase, TimestampSchema):
    id: UUID
    external_row_id: Optional[str] = None
    synced_at: Optional[datetime] = None


class SyncTriggerRequest(BaseModel):
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    triggered_by: Optional[str] = Field(None, max_length=200)


class SyncFailureRead(BaseModel):
    identity: str
    product: Optional[str] = None
    kind: str
    message: str


class SyncRunRead(BaseModel):
    id: UUID
    direction: SyncDirection
    status: SyncRunStatus
    outcome: Optional[SyncOutcome] = None
    records_synced: int
    records_failed: int
    error_message: Optional[str] = None
    failures: List[SyncFailureRead] = Field(default_factory=list)
    triggered_by: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("failures", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []


class DuplicateGroupRead(BaseModel):
    product: str
    identity_key: str
    count: int
    ids: List[UUID]
    keep_id: UUID
    remove_ids: List[UUID]


class DuplicateCheckResponse(BaseModel):
    total_apps: int = Field(..., alias="totalApps")
    duplicate_groups: int = Field(..., alias="duplicateGroups")
    total_duplicates: int = Field(..., alias="totalDuplicates")
    duplicates: List[DuplicateGroupRead]
    unresolvable_ids: List[UUID] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class DuplicateGroupError(BaseModel):
    identity_key: str
    product: Optional[str] = None
    kind: str
    message: str


class DuplicateRemovalResponse(BaseModel):
    message: str
    removed_count: int
    groups_processed: int
    errors: List[DuplicateGroupError] = Field(default_factory=list)


class AssessmentCreate(BaseModel):
    app_id: UUID
    submitter_email: str = Field(..., max_length=200)
    submitter_name: Optional[str] = Field(None, max_length=200)
    submitter_department: Optional[str] = Field(None, max_length=200)
    submitter_division: Optional[str] = Field(None, max_length=200)
    recommendation: str
    justification: str
    usage_frequency: Optional[str] = Field(None, max_length=100)
    primary_use_cases: Optional[str] = None
    learning_impact: Optional[str] = None
    workflow_integration: Optional[str] = None
    alternatives_considered: Optional[str] = None
    unique_value: Optional[str] = None
    stakeholder_feedback: Optional[str] = None
    proposed_changes: Optional[str] = None
    proposed_cost: Optional[float] = Field(None, ge=0)
    proposed_licenses: Optional[int] = Field(None, ge=0)


class AssessmentRead(TimestampSchema):
    id: UUID
    app_id: UUID
    cycle_year: int
    submitter_email: str
    submitter_name: Optional[str] = None
    submitter_department: Optional[str] = None
    submitter_division: Optional[str] = None
    submission_date: datetime
    recommendation: Recommendation
    justification: str
    usage_frequency: Optional[str] = None
    primary_use_cases: Optional[str] = None
    learning_impact: Optional[str] = None
    workflow_integration: Optional[str] = None
    alternatives_considered: Optional[str] = None
    unique_value: Optional[str] = None
    stakeholder_feedback: Optional[str] = None
    proposed_changes: Optional[str] = None
    proposed_cost: Optional[float] = None
    proposed_licenses: Optional[int] = None
    current_renewal_date: Optional[date] = None
    current_annual_cost: Optional[float] = None
    current_licenses: Optional[int] = None
    status: AssessmentStatus
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class AssessmentStatusUpdate(BaseModel):
    status: AssessmentStatus
    actor_role: ActorRole
    reviewed_by: Optional[str] = Field(None, max_length=200)
    admin_notes: Optional[str] = None


class AggregateRead(BaseModel):
    app_id: UUID
    cycle_year: int
    total: int
    counts: dict[Recommendation, int]
    assessments: List[AssessmentRead]


class RenewalDecisionRead(TimestampSchema):
    id: UUID
    app_id: UUID
    cycle_year: int
    status: DecisionStatus
    version: int
    total_submissions: int
    renew_count: int
    renew_with_changes_count: int
    replace_count: int
    retire_count: int
    ai_summary: Optional[str] = None
    ai_summary_generated_at: Optional[datetime] = None
    assessor_email: Optional[str] = None
    assessor_name: Optional[str] = None
    assessor_comment: Optional[str] = None
    assessor_recommendation: Optional[str] = None
    assessor_reviewed_at: Optional[datetime] = None
    approver_email: Optional[str] = None
    approver_name: Optional[str] = None
    approver_comment: Optional[str] = None
    final_decision: Optional[str] = None
    final_decided_at: Optional[datetime] = None
    new_renewal_date: Optional[date] = None
    new_annual_cost: Optional[float] = None
    new_licenses: Optional[int] = None
    implementation_notes: Optional[str] = None
    implemented_at: Optional[datetime] = None


class SummaryRequest(BaseModel):
    actor_role: ActorRole
    expected_version: Optional[int] = None


class DecisionAdvanceRequest(BaseModel):
    """Stage fields are optional here; the workflow validates what each action needs."""

    action: DecisionAction
    actor_role: ActorRole
    expected_version: Optional[int] = None
    actor_email: Optional[str] = Field(None, max_length=200)
    actor_name: Optional[str] = Field(None, max_length=200)
    comment: Optional[str] = None
    recommendation: Optional[str] = None
    final_decision: Optional[str] = None
    new_renewal_date: Optional[date] = None
    new_annual_cost: Optional[float] = Field(None, ge=0)
    new_licenses: Optional[int] = Field(None, ge=0)
    implementation_notes: Optional[str] = None
