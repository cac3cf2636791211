"""
Pydantic schemas shared by the submission routes and services.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


class StudentClaims(BaseModel):
    """Verified student identity as forwarded by the authentication layer."""
    student_id: str
    name: Optional[str] = None
    surname: Optional[str] = None
    nickname: Optional[str] = None
    grade: Optional[int] = None
    class_name: Optional[int] = None
    number: Optional[int] = None


class SubmissionRequest(BaseModel):
    """
    Schema for a test submission (regular or retest).

    The portal sends numeric ids for tests, teachers, subjects and retest
    assignments; they are accepted and kept as strings. Null flags and
    counters mean "not reported".
    """
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    test_id: str = Field(..., min_length=1, description="Test the student just took")
    test_name: Optional[str] = None
    teacher_id: Optional[str] = None
    subject_id: Optional[str] = None
    academic_period_id: Optional[str] = None
    score: float = Field(..., ge=0, description="Score computed by the client")
    max_score: float = Field(..., gt=0, description="Maximum achievable score")
    answers: Optional[Dict[str, Any]] = Field(None, description="Legacy flat answers map")
    answers_by_id: Optional[Dict[str, Any]] = Field(None, description="Answers keyed by question id")
    question_order: Optional[List[Any]] = Field(None, description="Question ids in presented order")
    time_taken: Optional[int] = Field(None, ge=0, description="Seconds spent on the test")
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    is_completed: Optional[bool] = False
    caught_cheating: Optional[bool] = False
    visibility_change_times: Optional[int] = Field(0, ge=0)
    retest_assignment_id: Optional[str] = Field(None, description="Present only for retest submissions")
    parent_test_id: Optional[str] = Field(None, description="Remediated test, defaults to test_id")

    @field_validator("is_completed", "caught_cheating", mode="before")
    @classmethod
    def null_flag_is_false(cls, value):
        return False if value is None else value

    @field_validator("visibility_change_times", mode="before")
    @classmethod
    def null_count_is_zero(cls, value):
        return 0 if value is None else value

    @model_validator(mode="after")
    def require_answers(self):
        if self.answers is None and self.answers_by_id is None:
            raise ValueError("Either answers or answers_by_id is required")
        return self

    @property
    def effective_parent_test_id(self) -> str:
        return self.parent_test_id or self.test_id

    @property
    def completed_flag(self) -> bool:
        """A submission is final once it has a submitted_at or the client says so."""
        return self.submitted_at is not None or self.is_completed


class SubmissionResponse(BaseModel):
    success: bool = True
    result_id: str
    score: float
    max_score: float
    percentage_score: int
    attempt_number: Optional[int] = None
    retest_status: Optional[str] = None
