"""
Application model: one student's request against one (institution, course) pair.

Key design decisions:
- `version` column is the optimistic-concurrency clock; every status write
  is an UPDATE conditioned on the version that was read
- Composite index on (student_id, institution_id) serves competing-set reads
- Partial unique index on (student_id, institution_id) WHERE status = 'approved'
  is the database-level safety net for the one-admission-per-institution rule
- Status is restricted to the closed set by a CHECK constraint
"""

import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, Index, CheckConstraint, text

from admissions.db.base import Base, TimestampMixin


def _new_application_id() -> str:
    return uuid.uuid4().hex


class Application(Base, TimestampMixin):
    __tablename__ = "applications"

    id = Column(String(64), primary_key=True, default=_new_application_id)
    student_id = Column(String(64), nullable=False)
    institution_id = Column(String(64), nullable=False, index=True)
    course_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default="pending")

    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(64), nullable=True)
    review_notes = Column(Text, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected')",
            name="check_application_status",
        ),
        CheckConstraint("version > 0", name="check_application_version_positive"),
        Index("ix_applications_student_institution", "student_id", "institution_id"),
        # At most one approved application per (student, institution)
        Index(
            "uq_applications_one_admission",
            "student_id",
            "institution_id",
            unique=True,
            postgresql_where=text("status = 'approved'"),
            sqlite_where=text("status = 'approved'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Application(id={self.id}, student={self.student_id}, "
            f"institution={self.institution_id}, status={self.status}, v={self.version})>"
        )
