import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from toolkit.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat those as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class CatalogEntry(Base, TimestampMixin):
    __tablename__ = "catalog_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    product_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    product: Mapped[str] = mapped_column(String(300), nullable=False)
    external_row_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    division: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    audience: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    tutorial_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    sso_enabled: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    mobile_app: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    grade_levels: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_new: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    vendor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    license_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    renewal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    annual_cost: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(12, 2, asdecimal=False), nullable=True
    )
    licenses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    utilization: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    enterprise: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    budget: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    support_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    date_added: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_whole_school: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    assessments: Mapped[list["Assessment"]] = relationship(
        "Assessment",
        back_populates="entry",
        cascade="all, delete-orphan",
    )
    decisions: Mapped[list["RenewalDecision"]] = relationship(
        "RenewalDecision",
        back_populates="entry",
        cascade="all, delete-orphan",
    )


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    direction: Mapped[str] = mapped_column(
        sa.Enum("pull", "push", "bidirectional", name="sync_direction_enum"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        sa.Enum(
            "pending",
            "in_progress",
            "completed",
            "failed",
            name="sync_run_status_enum",
        ),
        nullable=False,
        default="pending",
    )
    records_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    records_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failures: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    triggered_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Assessment(Base, TimestampMixin):
    __tablename__ = "renewal_assessments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    app_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("catalog_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cycle_year: Mapped[int] = mapped_column(Integer, nullable=False)
    submitter_email: Mapped[str] = mapped_column(String(200), nullable=False)
    submitter_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    submitter_department: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    submitter_division: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    submission_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    recommendation: Mapped[str] = mapped_column(
        sa.Enum(
            "renew",
            "renew_with_changes",
            "replace",
            "retire",
            name="assessment_recommendation_enum",
        ),
        nullable=False,
    )
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    usage_frequency: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    primary_use_cases: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    learning_impact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    workflow_integration: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    alternatives_considered: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    unique_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stakeholder_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proposed_changes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proposed_cost: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(12, 2, asdecimal=False), nullable=True
    )
    proposed_licenses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_renewal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    current_annual_cost: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(12, 2, asdecimal=False), nullable=True
    )
    current_licenses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        sa.Enum(
            "submitted",
            "in_review",
            "approved",
            "rejected",
            "completed",
            name="assessment_status_enum",
        ),
        nullable=False,
        default="submitted",
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    entry: Mapped[CatalogEntry] = relationship("CatalogEntry", back_populates="assessments")


class RenewalDecision(Base, TimestampMixin):
    __tablename__ = "renewal_decisions"
    __table_args__ = (
        UniqueConstraint("app_id", "cycle_year", name="uq_renewal_decisions_app_cycle"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    app_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("catalog_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cycle_year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        sa.Enum(
            "collecting",
            "summarizing",
            "assessor_review",
            "final_review",
            "decided",
            "implemented",
            name="renewal_decision_status_enum",
        ),
        nullable=False,
        default="collecting",
    )
    total_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    renew_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    renew_with_changes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    replace_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retire_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_summary_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    assessor_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    assessor_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    assessor_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assessor_recommendation: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    assessor_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approver_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    approver_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    approver_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_decision: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    final_decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    new_renewal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    new_annual_cost: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(12, 2, asdecimal=False), nullable=True
    )
    new_licenses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    implementation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    implemented_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    entry: Mapped[CatalogEntry] = relationship("CatalogEntry", back_populates="decisions")

    __mapper_args__ = {"version_id_col": version}
