"""
Database models for campus issue triage and prioritization.

Uses async SQLAlchemy 2.0 typed ORM patterns. Reports, metrics, snapshots
and admin actions are append-only; only AggregatedIssue and
AutomationMetadata rows are ever updated.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from campus_pulse.core.taxonomy import (
    OPEN_STATUSES,
    ImpactScope,
    IssueStatus,
    LocationType,
    ReportType,
    UrgencyLevel,
)

# =============================================================================
# Base Configuration
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict: JSONB,
        UUID: PGUUID(as_uuid=True),
    }


def _in_list(column: str, values: list[str]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


ISSUE_STATUSES = [status.value for status in IssueStatus]
LOCATION_TYPES = [location_type.value for location_type in LocationType]
URGENCY_LEVELS = [level.value for level in UrgencyLevel]
REPORT_TYPES = [report_type.value for report_type in ReportType]
IMPACT_SCOPES = [scope.value for scope in ImpactScope]
TRIAGE_STATUSES = ["completed", "degraded", "pending"]
ADMIN_ACTION_TYPES = [
    "assign",
    "override_priority",
    "resolve",
    "reopen",
    "change_status",
    "note",
    "mark_not_spam",
]
OPEN_ISSUE_PREDICATE = _in_list("status", list(OPEN_STATUSES))


# =============================================================================
# Reference Data
# =============================================================================


class Authority(Base):
    """A body that handles issues (Provost, Security In-Charge, ...)."""

    __tablename__ = "authorities"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class IssueCategory(Base):
    """
    A triage category.

    Attributes:
        name: Category slug (wifi, water, ...)
        default_authority_id: Authority suggested when routing rules are silent
        is_environmental: Whether the category affects shared surroundings
    """

    __tablename__ = "issue_categories"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    default_authority_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("authorities.id", ondelete="SET NULL"),
    )
    is_environmental: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    default_authority: Mapped[Authority | None] = relationship()


class Location(Base):
    """A known campus location."""

    __tablename__ = "locations"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Numeric(9, 6, asdecimal=False))
    longitude: Mapped[float | None] = mapped_column(Numeric(9, 6, asdecimal=False))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(_in_list("type", LOCATION_TYPES), name="check_location_type"),
        Index("idx_locations_active", "is_active"),
    )


# =============================================================================
# Reports and Triage
# =============================================================================


class IssueReport(Base):
    """
    One submission, written by the submission flow before the pipeline runs.

    Never updated or deleted.
    """

    __tablename__ = "issue_reports"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    reporter_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("issue_categories.id"),
        nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("locations.id"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    category: Mapped[IssueCategory] = relationship()
    location: Mapped[Location] = relationship()

    __table_args__ = (
        Index("idx_issue_reports_created", "created_at"),
        Index("idx_issue_reports_reporter", "reporter_id"),
    )


class AutomationMetadata(Base):
    """
    Triage output for one report (exactly one row per report).

    Upserted on issue_report_id; admin corrections patch the spam fields only.
    """

    __tablename__ = "automation_metadata"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    issue_report_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("issue_reports.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    extracted_category: Mapped[str] = mapped_column(String(100), nullable=False)
    urgency_score: Mapped[float] = mapped_column(Numeric(4, 3, asdecimal=False), nullable=False)
    impact_scope: Mapped[str] = mapped_column(
        String(10),
        default=ImpactScope.SINGLE.value,
        nullable=False,
    )
    is_environmental: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    confidence_score: Mapped[float] = mapped_column(
        Numeric(4, 3, asdecimal=False),
        nullable=False,
    )
    urgency_level: Mapped[str] = mapped_column(String(10), nullable=False)
    report_type: Mapped[str] = mapped_column(
        String(20),
        default=ReportType.GENERAL.value,
        nullable=False,
    )
    reporter_welfare_flag: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_immediate_action: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    spam_confidence: Mapped[float] = mapped_column(
        Numeric(4, 3, asdecimal=False),
        default=0.0,
        nullable=False,
    )
    triage_status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    raw_model_output: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "urgency_score >= 0 AND urgency_score <= 1",
            name="check_metadata_urgency_range",
        ),
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="check_metadata_confidence_range",
        ),
        CheckConstraint(_in_list("urgency_level", URGENCY_LEVELS), name="check_urgency_level"),
        CheckConstraint(_in_list("report_type", REPORT_TYPES), name="check_report_type"),
        CheckConstraint(_in_list("impact_scope", IMPACT_SCOPES), name="check_impact_scope"),
        CheckConstraint(_in_list("triage_status", TRIAGE_STATUSES), name="check_triage_status"),
        Index("idx_metadata_report_type", "report_type"),
    )


# =============================================================================
# Aggregation
# =============================================================================


class AggregatedIssue(Base):
    """
    Canonical issue grouping reports that share (category, location) while unresolved.

    At most one open or in-progress issue exists per tuple, enforced by a
    partial unique index.
    """

    __tablename__ = "aggregated_issues"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    canonical_category_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("issue_categories.id"),
        nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("locations.id"),
        nullable=False,
    )
    authority_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("authorities.id", ondelete="SET NULL"),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=IssueStatus.OPEN.value,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", ISSUE_STATUSES), name="check_issue_status"),
        Index(
            "uq_aggregated_issues_open_tuple",
            "canonical_category_id",
            "location_id",
            unique=True,
            postgresql_where=text(OPEN_ISSUE_PREDICATE),
        ),
        Index("idx_aggregated_issues_status", "status"),
    )


class IssueAggregationMap(Base):
    """Edge from a report to its canonical issue; one per report."""

    __tablename__ = "issue_aggregation_map"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    issue_report_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("issue_reports.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    aggregated_issue_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("aggregated_issues.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("idx_aggregation_map_issue", "aggregated_issue_id"),)


# =============================================================================
# Metrics and Snapshots
# =============================================================================


class FrequencyMetric(Base):
    """Rolling-window report count snapshot; the latest row is authoritative."""

    __tablename__ = "frequency_metrics"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    aggregated_issue_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("aggregated_issues.id", ondelete="CASCADE"),
        nullable=False,
    )
    time_window_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    report_count: Mapped[int] = mapped_column(Integer, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("report_count >= 0", name="check_frequency_count_non_negative"),
        Index("idx_frequency_issue_calculated", "aggregated_issue_id", "calculated_at"),
    )


class PrioritySnapshot(Base):
    """
    Priority breakdown at a point in time.

    Components are stored with two decimals so a breakdown reads back exactly.
    Override snapshots carry only the total.
    """

    __tablename__ = "priority_snapshots"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    aggregated_issue_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("aggregated_issues.id", ondelete="CASCADE"),
        nullable=False,
    )
    total_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    urgency_component: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False))
    impact_component: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False))
    frequency_component: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False))
    environmental_component: Mapped[float | None] = mapped_column(
        Numeric(5, 2, asdecimal=False)
    )
    is_override: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "total_score >= 0 AND total_score <= 100",
            name="check_priority_total_range",
        ),
        Index("idx_priority_issue_created", "aggregated_issue_id", "created_at"),
    )


# =============================================================================
# Audit
# =============================================================================


class AdminAction(Base):
    """Immutable audit record of a human decision."""

    __tablename__ = "admin_actions"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    admin_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    aggregated_issue_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("aggregated_issues.id", ondelete="SET NULL"),
    )
    issue_report_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("issue_reports.id", ondelete="SET NULL"),
    )
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    previous_value: Mapped[dict | None] = mapped_column(JSONB)
    new_value: Mapped[dict | None] = mapped_column(JSONB)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(_in_list("action_type", ADMIN_ACTION_TYPES), name="check_admin_action"),
        Index("idx_admin_actions_issue", "aggregated_issue_id", "created_at"),
    )
