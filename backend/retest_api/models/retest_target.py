"""
RetestTarget model - one student's instance of a retest assignment.

The target carries the remediation state machine:

    IN_PROGRESS ──pass──────────────▶ PASSED
         │
         └──fail, budget exhausted──▶ FAILED

PASSED and FAILED are terminal. ``is_completed`` is true exactly when the
status is terminal, ``completed_at`` is written once, and ``attempt_number``
never decreases.
"""

import uuid
from sqlalchemy import (
    Column, Integer, Boolean, DateTime, ForeignKey, String, UniqueConstraint, Index,
    CheckConstraint
)
from sqlalchemy.orm import relationship

from retest_api.database import Base
from retest_api.timestamps import utcnow

STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_PASSED = "PASSED"
STATUS_FAILED = "FAILED"


class RetestTarget(Base):
    """SQLAlchemy model for the retest_targets table."""
    __tablename__ = "retest_targets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique target identifier")
    retest_assignment_id = Column(String(36), ForeignKey("retest_assignments.id"), nullable=False,
                                  doc="The assignment this target belongs to")
    student_id = Column(String(36), nullable=False,
                        doc="The student who owns this target")
    max_attempts = Column(Integer, nullable=True,
                          doc="Per-student override of the assignment's attempt budget")
    attempt_number = Column(Integer, nullable=False, default=0,
                            doc="Attempt pointer, starts at 0 and never decreases")
    attempt_count = Column(Integer, nullable=False, default=0,
                           doc="Mirror of attempt_number, only written by the status update")
    is_completed = Column(Boolean, nullable=False, default=False)
    passed = Column(Boolean, nullable=True,
                    doc="Outcome of the latest attempt, NULL until the first one")
    status = Column(String(16), nullable=False, default=STATUS_IN_PROGRESS,
                    doc="IN_PROGRESS | PASSED | FAILED")
    completed_at = Column(DateTime, nullable=True,
                          doc="Set on the first terminal transition, never overwritten")
    last_attempt_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    assignment = relationship("RetestAssignment", back_populates="targets")

    __table_args__ = (
        UniqueConstraint("retest_assignment_id", "student_id", name="uq_retest_targets_assignment_student"),
        Index("ix_retest_targets_student_id", "student_id"),
        CheckConstraint("status IN ('IN_PROGRESS', 'PASSED', 'FAILED')",
                        name="ck_retest_targets_status"),
        CheckConstraint("is_completed = (status <> 'IN_PROGRESS')",
                        name="ck_retest_targets_completed_matches_status"),
    )

    def effective_max_attempts(self, assignment=None) -> int:
        """Per-target override, then the assignment's budget, then a single attempt."""
        assignment = assignment or self.assignment
        return self.max_attempts or (assignment.max_attempts if assignment else None) or 1

    def __repr__(self):
        return (f"<RetestTarget(id={self.id}, student={self.student_id}, "
                f"attempt={self.attempt_number}, status='{self.status}')>")
