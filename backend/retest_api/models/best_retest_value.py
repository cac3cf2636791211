"""
BestRetestValue model - the student's best recorded retest outcome per test.

A denormalised summary maintained by the best-value aggregator after each
successful retest submission and read by reporting views.
"""

import uuid
from sqlalchemy import Column, Integer, Float, DateTime, String, UniqueConstraint

from retest_api.database import Base
from retest_api.timestamps import utcnow


class BestRetestValue(Base):
    """SQLAlchemy model for the best_retest_values table."""
    __tablename__ = "best_retest_values"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String(36), nullable=False)
    parent_test_id = Column(String(36), nullable=False)
    best_attempt_id = Column(String(36), nullable=False,
                             doc="The test_attempts row holding the best outcome")
    best_score = Column(Float, nullable=False)
    best_max_score = Column(Float, nullable=False)
    best_percentage = Column(Float, nullable=False)
    attempts_recorded = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("student_id", "parent_test_id", name="uq_best_retest_values_student_test"),
    )

    def __repr__(self):
        return (f"<BestRetestValue(student={self.student_id}, test={self.parent_test_id}, "
                f"best={self.best_percentage}%)>")
