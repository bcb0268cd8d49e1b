"""Initial database schema with seeded campus reference data.

Revision ID: 0001_initial_schema
Revises: None
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

AUTHORITIES = [
    ("Provost", "Handles hostel issues, hostel water/electricity issues"),
    ("Administrative Office", "Handles classroom water/electricity, sanitation issues"),
    ("Security In-Charge", "Handles safety and security issues"),
    ("Academic Affairs", "Handles academic scheduling, results, department issues"),
]

CATEGORIES = [
    ("wifi", "Administrative Office", False),
    ("water", "Administrative Office", True),
    ("sanitation", "Administrative Office", True),
    ("electricity", "Administrative Office", True),
    ("hostel", "Provost", False),
    ("academics", "Academic Affairs", False),
    ("safety", "Security In-Charge", False),
    ("food", "Provost", False),
    ("infrastructure", "Administrative Office", True),
]

LOCATIONS = [
    ("Boys Hostel A", "hostel", 28.5494, 77.2805),
    ("Boys Hostel B", "hostel", 28.5496, 77.2808),
    ("Boys Hostel C", "hostel", 28.5498, 77.2810),
    ("Girls Hostel A", "hostel", 28.5500, 77.2815),
    ("Girls Hostel B", "hostel", 28.5502, 77.2818),
    ("Faculty of Pharmacy", "academic_block", 28.5485, 77.2800),
    ("Faculty of Medicine", "academic_block", 28.5480, 77.2795),
    ("Faculty of Nursing", "academic_block", 28.5475, 77.2790),
    ("Faculty of Science", "academic_block", 28.5470, 77.2785),
    ("Faculty of Management", "academic_block", 28.5465, 77.2780),
    ("Faculty of Engineering", "academic_block", 28.5460, 77.2775),
    ("Central Library", "common_area", 28.5490, 77.2800),
    ("Administration Block", "common_area", 28.5488, 77.2798),
    ("Examination Hall", "common_area", 28.5486, 77.2796),
    ("HAH Centenary Hospital", "hospital", 28.5510, 77.2820),
    ("Sports Complex", "sports", 28.5520, 77.2830),
    ("Cricket Ground", "sports", 28.5525, 77.2835),
    ("Main Canteen", "canteen", 28.5492, 77.2802),
    ("Hostel Canteen", "canteen", 28.5494, 77.2804),
]


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    # ---------------------------------------------------------------------
    # Reference tables
    # ---------------------------------------------------------------------
    op.create_table(
        "authorities",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("name", name="uq_authorities_name"),
    )
    op.create_table(
        "issue_categories",
        _uuid_pk(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "default_authority_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("authorities.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_environmental", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.UniqueConstraint("name", name="uq_issue_categories_name"),
    )
    op.create_table(
        "locations",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("latitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("longitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint("name", name="uq_locations_name"),
        sa.CheckConstraint(
            "type IN ('hostel', 'academic_block', 'common_area', 'hospital', 'sports', 'canteen')",
            name="check_location_type",
        ),
    )
    op.create_index("idx_locations_active", "locations", ["is_active"])

    # ---------------------------------------------------------------------
    # Reports and triage
    # ---------------------------------------------------------------------
    op.create_table(
        "issue_reports",
        _uuid_pk(),
        sa.Column("reporter_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("issue_categories.id"),
            nullable=False,
        ),
        sa.Column(
            "location_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("locations.id"),
            nullable=False,
        ),
        _created_at(),
    )
    op.create_index("idx_issue_reports_created", "issue_reports", ["created_at"])
    op.create_index("idx_issue_reports_reporter", "issue_reports", ["reporter_id"])

    op.create_table(
        "automation_metadata",
        _uuid_pk(),
        sa.Column(
            "issue_report_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("issue_reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("extracted_category", sa.String(length=100), nullable=False),
        sa.Column("urgency_score", sa.Numeric(4, 3), nullable=False),
        sa.Column("impact_scope", sa.String(length=10), nullable=False, server_default="single"),
        sa.Column("is_environmental", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("confidence_score", sa.Numeric(4, 3), nullable=False),
        sa.Column("urgency_level", sa.String(length=10), nullable=False),
        sa.Column("report_type", sa.String(length=20), nullable=False, server_default="GENERAL"),
        sa.Column(
            "reporter_welfare_flag",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "requires_immediate_action",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("spam_confidence", sa.Numeric(4, 3), nullable=False, server_default="0"),
        sa.Column(
            "triage_status",
            sa.String(length=20),
            nullable=False,
            server_default="completed",
        ),
        sa.Column(
            "raw_model_output",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("issue_report_id", name="uq_automation_metadata_report"),
        sa.CheckConstraint(
            "urgency_score >= 0 AND urgency_score <= 1",
            name="check_metadata_urgency_range",
        ),
        sa.CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="check_metadata_confidence_range",
        ),
        sa.CheckConstraint(
            "urgency_level IN ('CRITICAL', 'HIGH', 'MEDIUM', 'LOW')",
            name="check_urgency_level",
        ),
        sa.CheckConstraint(
            "report_type IN ('GENERAL', 'SPAM', 'EMERGENCY')",
            name="check_report_type",
        ),
        sa.CheckConstraint("impact_scope IN ('single', 'multi')", name="check_impact_scope"),
        sa.CheckConstraint(
            "triage_status IN ('completed', 'degraded', 'pending')",
            name="check_triage_status",
        ),
    )
    op.create_index("idx_metadata_report_type", "automation_metadata", ["report_type"])

    # ---------------------------------------------------------------------
    # Aggregation
    # ---------------------------------------------------------------------
    op.create_table(
        "aggregated_issues",
        _uuid_pk(),
        sa.Column(
            "canonical_category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("issue_categories.id"),
            nullable=False,
        ),
        sa.Column(
            "location_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("locations.id"),
            nullable=False,
        ),
        sa.Column(
            "authority_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("authorities.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved')",
            name="check_issue_status",
        ),
    )
    op.create_index(
        "uq_aggregated_issues_open_tuple",
        "aggregated_issues",
        ["canonical_category_id", "location_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('open', 'in_progress')"),
    )
    op.create_index("idx_aggregated_issues_status", "aggregated_issues", ["status"])

    op.create_table(
        "issue_aggregation_map",
        _uuid_pk(),
        sa.Column(
            "issue_report_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("issue_reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "aggregated_issue_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("aggregated_issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint("issue_report_id", name="uq_issue_aggregation_map_report"),
    )
    op.create_index("idx_aggregation_map_issue", "issue_aggregation_map", ["aggregated_issue_id"])

    # ---------------------------------------------------------------------
    # Metrics, snapshots and audit
    # ---------------------------------------------------------------------
    op.create_table(
        "frequency_metrics",
        _uuid_pk(),
        sa.Column(
            "aggregated_issue_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("aggregated_issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("time_window_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("report_count", sa.Integer(), nullable=False),
        sa.Column(
            "calculated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("report_count >= 0", name="check_frequency_count_non_negative"),
    )
    op.create_index(
        "idx_frequency_issue_calculated",
        "frequency_metrics",
        ["aggregated_issue_id", "calculated_at"],
    )

    op.create_table(
        "priority_snapshots",
        _uuid_pk(),
        sa.Column(
            "aggregated_issue_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("aggregated_issues.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("total_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("urgency_component", sa.Numeric(5, 2), nullable=True),
        sa.Column("impact_component", sa.Numeric(5, 2), nullable=True),
        sa.Column("frequency_component", sa.Numeric(5, 2), nullable=True),
        sa.Column("environmental_component", sa.Numeric(5, 2), nullable=True),
        sa.Column("is_override", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.CheckConstraint(
            "total_score >= 0 AND total_score <= 100",
            name="check_priority_total_range",
        ),
    )
    op.create_index(
        "idx_priority_issue_created",
        "priority_snapshots",
        ["aggregated_issue_id", "created_at"],
    )

    op.create_table(
        "admin_actions",
        _uuid_pk(),
        sa.Column("admin_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "aggregated_issue_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("aggregated_issues.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "issue_report_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("issue_reports.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action_type", sa.String(length=30), nullable=False),
        sa.Column("previous_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "action_type IN ('assign', 'override_priority', 'resolve', 'reopen', "
            "'change_status', 'note', 'mark_not_spam')",
            name="check_admin_action",
        ),
    )
    op.create_index(
        "idx_admin_actions_issue",
        "admin_actions",
        ["aggregated_issue_id", "created_at"],
    )

    # ---------------------------------------------------------------------
    # Seed reference data
    # ---------------------------------------------------------------------
    authorities = sa.table(
        "authorities",
        sa.column("name", sa.String),
        sa.column("description", sa.Text),
    )
    op.bulk_insert(
        authorities,
        [{"name": name, "description": description} for name, description in AUTHORITIES],
    )
    for name, authority_name, is_environmental in CATEGORIES:
        op.execute(
            sa.text(
                "INSERT INTO issue_categories (name, default_authority_id, is_environmental) "
                "SELECT :name, id, :is_environmental FROM authorities WHERE name = :authority"
            ).bindparams(name=name, is_environmental=is_environmental, authority=authority_name)
        )
    locations = sa.table(
        "locations",
        sa.column("name", sa.String),
        sa.column("type", sa.String),
        sa.column("latitude", sa.Numeric),
        sa.column("longitude", sa.Numeric),
    )
    op.bulk_insert(
        locations,
        [
            {"name": name, "type": location_type, "latitude": latitude, "longitude": longitude}
            for name, location_type, latitude, longitude in LOCATIONS
        ],
    )


def downgrade() -> None:
    op.drop_index("idx_admin_actions_issue", table_name="admin_actions")
    op.drop_table("admin_actions")
    op.drop_index("idx_priority_issue_created", table_name="priority_snapshots")
    op.drop_table("priority_snapshots")
    op.drop_index("idx_frequency_issue_calculated", table_name="frequency_metrics")
    op.drop_table("frequency_metrics")
    op.drop_index("idx_aggregation_map_issue", table_name="issue_aggregation_map")
    op.drop_table("issue_aggregation_map")
    op.drop_index("idx_aggregated_issues_status", table_name="aggregated_issues")
    op.drop_index("uq_aggregated_issues_open_tuple", table_name="aggregated_issues")
    op.drop_table("aggregated_issues")
    op.drop_index("idx_metadata_report_type", table_name="automation_metadata")
    op.drop_table("automation_metadata")
    op.drop_index("idx_issue_reports_reporter", table_name="issue_reports")
    op.drop_index("idx_issue_reports_created", table_name="issue_reports")
    op.drop_table("issue_reports")
    op.drop_index("idx_locations_active", table_name="locations")
    op.drop_table("locations")
    op.drop_table("issue_categories")
    op.drop_table("authorities")
