"""
Retest API routes - read-only views over retest state.

Provides endpoints for:
- The calling student's own target on an assignment
- All targets of an assignment, paginated
- A student's attempt log and best retest value for a test
"""

import time
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from retest_api.database import get_db
from retest_api.deps import get_current_student
from retest_api.errors import NotFound
from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.best_retest_value import BestRetestValue
from retest_api.models.retest_assignment import RetestAssignment
from retest_api.models.retest_target import RetestTarget
from retest_api.models.test_attempt import TestAttempt
from retest_api.schemas import StudentClaims
from retest_api.services.attempt_persister import load_answer_payload
from retest_api.services.eligibility import passing_threshold_of
from retest_api.timestamps import isoformat

router = APIRouter()
logger = get_logger("http")


def serialize_target(target: RetestTarget, assignment: RetestAssignment) -> dict:
    return {
        "id": target.id,
        "retest_assignment_id": target.retest_assignment_id,
        "student_id": target.student_id,
        "status": target.status,
        "attempt_number": target.attempt_number,
        "attempt_count": target.attempt_count,
        "max_attempts": target.effective_max_attempts(assignment),
        "is_completed": target.is_completed,
        "passed": target.passed,
        "completed_at": isoformat(target.completed_at),
        "last_attempt_at": isoformat(target.last_attempt_at),
        "window_start": isoformat(assignment.window_start),
        "window_end": isoformat(assignment.window_end),
        "passing_threshold": passing_threshold_of(assignment),
    }


def serialize_attempt(attempt: TestAttempt) -> dict:
    payload = load_answer_payload(attempt.answers, attempt.answers_format)
    answers = {"format": payload.format}
    if payload.format == "indexed":
        answers.update({"answers_by_id": payload.answers_by_id,
                        "question_order": payload.question_order})
    else:
        answers["answers"] = payload.answers
    return {
        "id": attempt.id,
        "attempt_number": attempt.attempt_number,
        "retest_assignment_id": attempt.retest_assignment_id,
        "score": attempt.score,
        "max_score": attempt.max_score,
        "percentage": attempt.percentage,
        "answers": answers,
        "time_taken": attempt.time_taken,
        "started_at": isoformat(attempt.started_at),
        "submitted_at": isoformat(attempt.submitted_at),
        "is_completed": attempt.is_completed,
        "caught_cheating": attempt.caught_cheating,
        "visibility_change_times": attempt.visibility_change_times,
        "created_at": isoformat(attempt.created_at),
    }


@router.get("/api/retests/{retest_assignment_id}/target")
def get_my_target(retest_assignment_id: str,
                  student: StudentClaims = Depends(get_current_student),
                  db: Session = Depends(get_db)):
    """The calling student's target on a retest assignment."""
    row = db.execute(
        select(RetestTarget, RetestAssignment)
        .join(RetestAssignment, RetestAssignment.id == RetestTarget.retest_assignment_id)
        .where(RetestTarget.retest_assignment_id == retest_assignment_id,
               RetestTarget.student_id == student.student_id)
    ).first()

    if row is None:
        raise NotFound("Retest not assigned to this student")

    target, assignment = row
    return serialize_target(target, assignment)


@router.get("/api/retests/{retest_assignment_id}/targets")
def list_targets(
    retest_assignment_id: str,
    status: Optional[str] = Query(None, description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=200, description="Results per page"),
    db: Session = Depends(get_db)
):
    """List every target of a retest assignment."""
    start_time = time.time()

    assignment = db.get(RetestAssignment, retest_assignment_id)
    if assignment is None:
        raise NotFound("Retest assignment not found")

    query = select(RetestTarget).where(RetestTarget.retest_assignment_id == retest_assignment_id)
    if status:
        query = query.where(RetestTarget.status == status.upper())

    total_count = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()

    offset = (page - 1) * per_page
    targets = db.execute(
        query.order_by(RetestTarget.student_id, RetestTarget.id).offset(offset).limit(per_page)
    ).scalars().all()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} retest targets (page {}, total {})".format(len(targets), page, total_count),
        context={"retest_assignment_id": retest_assignment_id},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "data": [serialize_target(t, assignment) for t in targets],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total_count,
            "total_pages": (total_count + per_page - 1) // per_page
        }
    }


@router.get("/api/students/{student_id}/tests/{parent_test_id}/attempts")
def list_attempts(student_id: str, parent_test_id: str, db: Session = Depends(get_db)):
    """A student's retest attempts for a test, oldest slot first, with the best value."""
    attempts = db.execute(
        select(TestAttempt)
        .where(TestAttempt.student_id == student_id, TestAttempt.test_id == parent_test_id)
        .order_by(TestAttempt.attempt_number)
    ).scalars().all()

    best = db.execute(
        select(BestRetestValue).where(BestRetestValue.student_id == student_id,
                                      BestRetestValue.parent_test_id == parent_test_id)
    ).scalar_one_or_none()

    return {
        "student_id": student_id,
        "parent_test_id": parent_test_id,
        "attempts": [serialize_attempt(a) for a in attempts],
        "best": {
            "attempt_id": best.best_attempt_id,
            "score": best.best_score,
            "max_score": best.best_max_score,
            "percentage": best.best_percentage,
            "attempts_recorded": best.attempts_recorded,
            "updated_at": isoformat(best.updated_at),
        } if best else None,
    }
