from toolkit.schemas.entities import (
    ActorRole,
    AggregateRead,
    AssessmentCreate,
    AssessmentRead,
    AssessmentStatus,
    AssessmentStatusUpdate,
    CatalogEntryCreate,
    CatalogEntryRead,
    DecisionAction,
    DecisionAdvanceRequest,
    DecisionStatus,
    DuplicateCheckResponse,
    DuplicateGroupError,
    DuplicateGroupRead,
    DuplicateRemovalResponse,
    Recommendation,
    RenewalDecisionRead,
    SummaryRequest,
    SyncDirection,
    SyncFailureRead,
    SyncOutcome,
    SyncRunRead,
    SyncRunStatus,
    SyncTriggerRequest,
)

__all__ = [
    "ActorRole",
    "AggregateRead",
    "AssessmentCreate",
    "AssessmentRead",
    "AssessmentStatus",
    "AssessmentStatusUpdate",
    "CatalogEntryCreate",
    "CatalogEntryRead",
    "DecisionAction",
    "DecisionAdvanceRequest",
    "DecisionStatus",
    "DuplicateCheckResponse",
    "DuplicateGroupError",
    "DuplicateGroupRead",
    "DuplicateRemovalResponse",
    "Recommendation",
    "RenewalDecisionRead",
    "SummaryRequest",
    "SyncDirection",
    "SyncFailureRead",
    "SyncOutcome",
    "SyncRunRead",
    "SyncRunStatus",
    "SyncTriggerRequest",
]
