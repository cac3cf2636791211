"""
Submission Service - runs a test submission through the retest pipeline.

Retest submissions go through, inside one transaction:
1. Eligibility check (locks the target row)
2. Attempt slot resolution
3. Idempotent attempt write
4. Target status transition (compare-and-swap)

and are committed together. Losing a race on the target row or on the
attempt slot's unique key rolls the transaction back and replays the
sequence from step 1, so a request that arrives second sees the state the
first one left behind. The best-value refresh is not part of this; the
route schedules it after the commit.

Regular submissions are a single insert into test_results.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from retest_api.config import RETEST_MAX_RETRIES
from retest_api.errors import PersistenceError, RetestError, StaleTargetError
from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.test_result import TestResult
from retest_api.schemas import StudentClaims, SubmissionRequest
from retest_api.services.attempt_persister import answer_payload_from, persist_attempt
from retest_api.services.attempt_resolver import resolve_attempt_number
from retest_api.services.eligibility import check_eligibility
from retest_api.services.status_updater import StatusTransition, apply_attempt_outcome
from retest_api.timestamps import to_naive_utc, utcnow

logger = get_logger("retest")


@dataclass(frozen=True)
class RetestSubmissionOutcome:
    result_id: str
    created: bool
    student_id: str
    parent_test_id: str
    attempt_number: int
    percentage: float
    transition: StatusTransition


def _run_retest_pipeline(db: Session, submission: SubmissionRequest, student: StudentClaims,
                         parent_test_id: str, now: datetime) -> RetestSubmissionOutcome:
    eligible = check_eligibility(db, submission.retest_assignment_id, student.student_id, now)
    resolved = resolve_attempt_number(db, student.student_id, parent_test_id,
                                      submission.score, submission.max_score, eligible)
    result_id, created = persist_attempt(db, submission, student, parent_test_id, resolved)
    transition = apply_attempt_outcome(db, eligible, resolved.percentage, now)
    return RetestSubmissionOutcome(
        result_id=result_id,
        created=created,
        student_id=student.student_id,
        parent_test_id=parent_test_id,
        attempt_number=resolved.attempt_number,
        percentage=resolved.percentage,
        transition=transition,
    )


def submit_retest(db: Session, submission: SubmissionRequest, student: StudentClaims,
                  now: Optional[datetime] = None) -> RetestSubmissionOutcome:
    """
    Record a retest submission and advance the student's retest target.

    Args:
        db: Database session, committed on success and rolled back on failure
        submission: Validated request body with retest_assignment_id set
        student: Identity of the submitting student
        now: Evaluation time, defaults to the current UTC time

    Raises:
        NotAssigned, WindowClosed, AlreadyCompleted, AttemptsExhausted:
            before anything is written
        PersistenceError: the store failed, or conflicts persisted past
            RETEST_MAX_RETRIES replays
    """
    start_time = time.time()
    parent_test_id = submission.effective_parent_test_id
    context = {
        "student_id": student.student_id,
        "retest_assignment_id": submission.retest_assignment_id,
        "parent_test_id": parent_test_id,
    }

    last_conflict = None
    for replay in range(1, RETEST_MAX_RETRIES + 1):
        try:
            outcome = _run_retest_pipeline(db, submission, student, parent_test_id,
                                           to_naive_utc(now) or utcnow())
            db.commit()
        except RetestError:
            db.rollback()
            raise
        except (StaleTargetError, IntegrityError) as e:
            db.rollback()
            last_conflict = e
            log_with_context(logger, "WARNING",
                "Concurrent retest submission detected, replaying ({}/{})".format(
                    replay, RETEST_MAX_RETRIES),
                context=context, extra_data={"conflict": type(e).__name__})
            continue
        except SQLAlchemyError as e:
            db.rollback()
            log_with_context(logger, "ERROR", "Retest submission failed: {}".format(e),
                             context=context, exc_info=True)
            raise PersistenceError(str(e)) from e

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO",
            "Retest submission recorded: attempt {} ({}%), status {}".format(
                outcome.attempt_number, outcome.percentage, outcome.transition.status),
            context={**context, "attempt_id": outcome.result_id},
            extra_data={"duration_ms": round(duration_ms, 2), "created": outcome.created,
                        "replays": replay - 1})
        return outcome

    log_with_context(logger, "ERROR", "Retest submission gave up after repeated conflicts",
                     context=context, extra_data={"conflict": repr(last_conflict)})
    raise PersistenceError("Retest target kept changing: {!r}".format(last_conflict))


def submit_regular(db: Session, submission: SubmissionRequest, student: StudentClaims) -> str:
    """Insert a regular (non-retest) result row and return its id."""
    payload = answer_payload_from(submission.answers, submission.answers_by_id,
                                  submission.question_order)
    result = TestResult(
        student_id=student.student_id,
        test_id=submission.test_id,
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
        score=submission.score,
        max_score=submission.max_score,
        answers=payload.to_json(),
        answers_format=payload.format,
        time_taken=submission.time_taken,
        started_at=to_naive_utc(submission.started_at),
        submitted_at=to_naive_utc(submission.submitted_at),
        is_completed=submission.completed_flag,
        caught_cheating=submission.caught_cheating,
        visibility_change_times=submission.visibility_change_times,
    )
    try:
        db.add(result)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Regular submission failed: {}".format(e),
                         context={"student_id": student.student_id, "test_id": submission.test_id},
                         exc_info=True)
        raise PersistenceError(str(e)) from e

    log_with_context(logger, "INFO", "Regular test result recorded",
                     context={"student_id": student.student_id, "test_id": submission.test_id,
                              "result_id": result.id})
    return result.id
