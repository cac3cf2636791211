"""
RetestAssignment model - a teacher-authored remediation task for a test.

Assignments are created by the teacher flow and are read-only for the
submission pipeline. They define the attempt budget, the eligibility
window and the passing threshold shared by every target of the assignment.
"""

import uuid
from sqlalchemy import Column, Text, Integer, Float, DateTime, String
from sqlalchemy.orm import relationship

from retest_api.database import Base
from retest_api.timestamps import utcnow


class RetestAssignment(Base):
    """SQLAlchemy model for the retest_assignments table."""
    __tablename__ = "retest_assignments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique retest assignment identifier")
    test_id = Column(String(36), nullable=False,
                     doc="The original test being remediated")
    test_type = Column(Text, nullable=True,
                       doc="Kind of test (multiple_choice, input, ...)")
    teacher_id = Column(String(36), nullable=True,
                        doc="Teacher who created the assignment")
    subject_id = Column(String(36), nullable=True,
                        doc="Subject the original test belongs to")
    max_attempts = Column(Integer, nullable=False, default=1,
                          doc="Attempt budget shared by default across all targets")
    window_start = Column(DateTime, nullable=False,
                          doc="Submissions are accepted from this moment (naive UTC)")
    window_end = Column(DateTime, nullable=False,
                        doc="Submissions are accepted until this moment (naive UTC)")
    passing_threshold = Column(Float, nullable=False, default=50.0,
                               doc="Percentage at or above which an attempt passes")
    scoring_policy = Column(Text, nullable=False, default="BEST",
                            doc="How retest results are summarised for reporting")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    targets = relationship("RetestTarget", back_populates="assignment")

    def __repr__(self):
        return f"<RetestAssignment(id={self.id}, test={self.test_id}, max_attempts={self.max_attempts})>"
