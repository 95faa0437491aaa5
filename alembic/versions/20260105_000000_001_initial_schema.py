"""Initial schema for departments, patients, triage and queues.

Revision ID: 001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # Departments table
    op.create_table(
        "departments",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("average_treatment_minutes", sa.Integer(), nullable=False, default=20),
        sa.Column("current_load", sa.Integer(), nullable=False, default=0),
        sa.Column("max_capacity", sa.Integer(), nullable=False, default=50),
        sa.Column("is_active", sa.Boolean(), nullable=False, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_departments"),
        sa.UniqueConstraint("code", name="uq_departments_code"),
    )
    op.create_index("ix_departments_code", "departments", ["code"], unique=True)

    # Patients table
    op.create_table(
        "patients",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("medical_record_number", sa.String(50), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("sex", sa.String(20), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        # Soft delete
        sa.Column("is_deleted", sa.Boolean(), nullable=False, default=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_patients"),
        sa.UniqueConstraint(
            "medical_record_number", name="uq_patients_medical_record_number"
        ),
    )
    op.create_index(
        "ix_patients_medical_record_number",
        "patients",
        ["medical_record_number"],
        unique=True,
    )
    op.create_index("ix_patients_is_deleted", "patients", ["is_deleted"])

    # Triage assessments table (immutable, one row per intake)
    op.create_table(
        "triage_assessments",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("patient_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("nurse_id", sa.String(64), nullable=False),
        sa.Column("vitals", postgresql.JSON(), nullable=False),
        sa.Column("pain_scale", sa.Integer(), nullable=False),
        sa.Column("symptoms", postgresql.JSON(), nullable=False),
        sa.Column("chief_complaint", sa.Text(), nullable=True),
        sa.Column("bmi", sa.Float(), nullable=True),
        sa.Column("acuity_score", sa.Integer(), nullable=False),
        sa.Column("urgency", sa.String(10), nullable=False),
        sa.Column("low_confidence", sa.Boolean(), nullable=False, default=False),
        sa.Column("score_breakdown", postgresql.JSON(), nullable=True),
        sa.Column("recommended_department", sa.String(20), nullable=False),
        sa.Column("department_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("routing_rule_id", sa.String(100), nullable=False),
        sa.Column("routing_ruleset_hash", sa.String(64), nullable=False),
        sa.Column("estimated_wait_minutes", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_triage_assessments"),
        sa.ForeignKeyConstraint(
            ["patient_id"],
            ["patients.id"],
            name="fk_triage_assessments_patient_id_patients",
        ),
        sa.ForeignKeyConstraint(
            ["department_id"],
            ["departments.id"],
            name="fk_triage_assessments_department_id_departments",
        ),
    )
    op.create_index("ix_triage_assessments_patient_id", "triage_assessments", ["patient_id"])
    op.create_index("ix_triage_assessments_urgency", "triage_assessments", ["urgency"])
    op.create_index(
        "ix_triage_assessments_department_id", "triage_assessments", ["department_id"]
    )

    # Queue entries table
    op.create_table(
        "queue_entries",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("department_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("patient_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("urgency", sa.String(10), nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("expected_wait_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("called_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_staff_id", sa.String(64), nullable=True),
        sa.Column("status_reason", sa.Text(), nullable=True),
        # Manual reposition
        sa.Column("position_overridden_by", sa.String(64), nullable=True),
        sa.Column("position_overridden_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_queue_entries"),
        sa.ForeignKeyConstraint(
            ["department_id"],
            ["departments.id"],
            name="fk_queue_entries_department_id_departments",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"],
            ["patients.id"],
            name="fk_queue_entries_patient_id_patients",
        ),
        sa.ForeignKeyConstraint(
            ["assessment_id"],
            ["triage_assessments.id"],
            name="fk_queue_entries_assessment_id_triage_assessments",
        ),
    )
    op.create_index(
        "ix_queue_entries_department_status",
        "queue_entries",
        ["department_id", "status"],
    )
    op.create_index("ix_queue_entries_patient_id", "queue_entries", ["patient_id"])

    # Audit events table (append-only)
    op.create_table(
        "audit_events",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("actor_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("action_category", sa.String(50), nullable=True),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("metadata", postgresql.JSON(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_events"),
    )
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("audit_events")
    op.drop_table("queue_entries")
    op.drop_table("triage_assessments")
    op.drop_table("patients")
    op.drop_table("departments")
