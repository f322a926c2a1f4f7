"""Applications table with optimistic-locking version and admission uniqueness.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "applications",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("institution_id", sa.String(64), nullable=False),
        sa.Column("course_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(64), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected')",
            name="check_application_status",
        ),
        sa.CheckConstraint("version > 0", name="check_application_version_positive"),
    )
    op.create_index("ix_applications_institution_id", "applications", ["institution_id"])
    # Competing-set lookup: every application of a student at one institution
    op.create_index(
        "ix_applications_student_institution",
        "applications",
        ["student_id", "institution_id"],
    )
    # ONE ADMISSION PER INSTITUTION: partial unique index.
    # The engine already guarantees this through version-checked writes;
    # the index makes a second approved row impossible even for writers that
    # bypass the engine.
    op.create_index(
        "uq_applications_one_admission",
        "applications",
        ["student_id", "institution_id"],
        unique=True,
        postgresql_where=sa.text("status = 'approved'"),
    )


def downgrade() -> None:
    op.drop_index("uq_applications_one_admission", table_name="applications")
    op.drop_index("ix_applications_student_institution", table_name="applications")
    op.drop_index("ix_applications_institution_id", table_name="applications")
    op.drop_table("applications")
