"""
Attempt Persister - writes the per-attempt record, at most once per slot.

A submission for an attempt slot that already has a row (client retry,
double tap) returns the existing row's id and leaves its payload untouched.
The unique constraint on (student_id, test_id, attempt_number) backs this
up when two requests race past the existence check; the resulting
IntegrityError is handled by the submission service.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
from sqlalchemy import select
from sqlalchemy.orm import Session

from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.test_attempt import TestAttempt, ANSWERS_FLAT, ANSWERS_INDEXED
from retest_api.schemas import StudentClaims, SubmissionRequest
from retest_api.services.attempt_resolver import ResolvedAttempt
from retest_api.timestamps import to_naive_utc

logger = get_logger("db")


@dataclass(frozen=True)
class FlatAnswers:
    """Legacy shape: {question_no: answer}."""
    answers: Dict[str, Any]
    format = ANSWERS_FLAT

    def to_json(self) -> str:
        return json.dumps(self.answers)


@dataclass(frozen=True)
class IndexedAnswers:
    """Order-agnostic shape: answers keyed by question id plus the presented order."""
    answers_by_id: Dict[str, Any]
    question_order: List[Any] = field(default_factory=list)
    format = ANSWERS_INDEXED

    def to_json(self) -> str:
        return json.dumps({"answers_by_id": self.answers_by_id,
                           "question_order": self.question_order})


AnswerPayload = Union[FlatAnswers, IndexedAnswers]


def answer_payload_from(answers: Optional[dict], answers_by_id: Optional[dict] = None,
                        question_order: Optional[list] = None) -> AnswerPayload:
    """Prefer the order-agnostic shape when the client sends it."""
    if answers_by_id is not None:
        return IndexedAnswers(answers_by_id=answers_by_id, question_order=list(question_order or []))
    return FlatAnswers(answers=answers or {})


def decode_answers(stored: Union[str, bytes, dict, None]) -> Dict[str, Any]:
    """
    Stored answers as a dict. SQLite hands back the JSON text, a PostgreSQL
    JSONB column comes back already decoded.
    """
    if not stored:
        return {}
    if isinstance(stored, dict):
        return stored
    return json.loads(stored)


def load_answer_payload(stored_answers: Union[str, bytes, dict, None],
                        answers_format: str) -> AnswerPayload:
    """Rebuild the tagged payload from a stored row."""
    data = decode_answers(stored_answers)
    if answers_format == ANSWERS_INDEXED:
        return IndexedAnswers(answers_by_id=data.get("answers_by_id", {}),
                              question_order=data.get("question_order", []))
    return FlatAnswers(answers=data)


def find_attempt(db: Session, student_id: str, parent_test_id: str,
                 attempt_number: int) -> Optional[TestAttempt]:
    return db.execute(
        select(TestAttempt).where(
            TestAttempt.student_id == student_id,
            TestAttempt.test_id == parent_test_id,
            TestAttempt.attempt_number == attempt_number,
        )
    ).scalar_one_or_none()


def persist_attempt(db: Session, submission: SubmissionRequest, student: StudentClaims,
                    parent_test_id: str, resolved: ResolvedAttempt) -> Tuple[str, bool]:
    """
    Insert the attempt row for the resolved slot, or reuse the existing one.

    Returns:
        (attempt_id, created) where created is False for a reused row
    """
    context = {
        "student_id": student.student_id,
        "parent_test_id": parent_test_id,
        "attempt_number": resolved.attempt_number,
    }

    existing = find_attempt(db, student.student_id, parent_test_id, resolved.attempt_number)
    if existing is not None:
        log_with_context(logger, "INFO", "Attempt slot already recorded, reusing row",
                         context={**context, "attempt_id": existing.id})
        return existing.id, False

    payload = answer_payload_from(submission.answers, submission.answers_by_id,
                                  submission.question_order)
    attempt = TestAttempt(
        student_id=student.student_id,
        test_id=parent_test_id,
        attempt_number=resolved.attempt_number,
        retest_assignment_id=submission.retest_assignment_id,
        score=submission.score,
        max_score=submission.max_score,
        percentage=resolved.percentage,
        answers=payload.to_json(),
        answers_format=payload.format,
        time_taken=submission.time_taken,
        started_at=to_naive_utc(submission.started_at),
        submitted_at=to_naive_utc(submission.submitted_at),
        is_completed=submission.completed_flag,
        caught_cheating=submission.caught_cheating,
        visibility_change_times=submission.visibility_change_times,
        test_name=submission.test_name,
        teacher_id=submission.teacher_id,
        subject_id=submission.subject_id,
        academic_period_id=submission.academic_period_id,
        name=student.name,
        surname=student.surname,
        nickname=student.nickname,
        grade=student.grade,
        class_name=student.class_name,
        number=student.number,
    )
    db.add(attempt)
    db.flush()

    log_with_context(logger, "INFO", "Recorded retest attempt",
                     context={**context, "attempt_id": attempt.id},
                     extra_data={"percentage": resolved.percentage,
                                 "answers_format": payload.format,
                                 "caught_cheating": submission.caught_cheating})
    return attempt.id, True
