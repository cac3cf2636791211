"""
Eligibility Service - decides whether a retest submission may proceed.

Checks, in order:
1. The student has a target for the assignment
2. The current time is inside the assignment window
3. The target is not already completed (a target that failed after using
   its whole budget is reported as exhausted)
4. The attempt budget is not used up

The target row is read with FOR UPDATE so that concurrent submissions for
the same target queue behind each other for the rest of the transaction.
Nothing is written here.
"""

from dataclasses import dataclass
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.orm import Session

from retest_api.config import DEFAULT_PASSING_THRESHOLD
from retest_api.errors import NotAssigned, WindowClosed, AlreadyCompleted, AttemptsExhausted
from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.retest_assignment import RetestAssignment
from retest_api.models.retest_target import RetestTarget, STATUS_FAILED

logger = get_logger("retest")


@dataclass
class EligibleRetest:
    target: RetestTarget
    assignment: RetestAssignment
    effective_max_attempts: int
    passing_threshold: float


def passing_threshold_of(assignment: RetestAssignment) -> float:
    if assignment.passing_threshold is None:
        return DEFAULT_PASSING_THRESHOLD
    return float(assignment.passing_threshold)


def check_eligibility(db: Session, retest_assignment_id: str, student_id: str,
                      now: datetime) -> EligibleRetest:
    """
    Load and lock the (target, assignment) pair and reject ineligible submissions.

    Raises:
        NotAssigned, WindowClosed, AlreadyCompleted, AttemptsExhausted
    """
    context = {"retest_assignment_id": retest_assignment_id, "student_id": student_id}

    row = db.execute(
        select(RetestTarget, RetestAssignment)
        .join(RetestAssignment, RetestAssignment.id == RetestTarget.retest_assignment_id)
        .where(
            RetestTarget.retest_assignment_id == retest_assignment_id,
            RetestTarget.student_id == student_id,
        )
        .with_for_update(of=RetestTarget)
    ).first()

    if row is None:
        log_with_context(logger, "INFO", "Rejected: no retest target", context=context)
        raise NotAssigned()

    target, assignment = row

    if not (assignment.window_start <= now <= assignment.window_end):
        log_with_context(logger, "INFO", "Rejected: outside retest window", context=context,
                         extra_data={"window_start": assignment.window_start,
                                     "window_end": assignment.window_end, "now": now})
        raise WindowClosed()

    effective_max = target.effective_max_attempts(assignment)
    budget_used = (target.attempt_number or 0) >= effective_max

    if target.is_completed:
        log_with_context(logger, "INFO", "Rejected: retest already completed", context=context,
                         extra_data={"status": target.status})
        # A target that failed by running out of attempts reports the budget
        if target.status == STATUS_FAILED and budget_used:
            raise AttemptsExhausted()
        raise AlreadyCompleted()

    if budget_used:
        log_with_context(logger, "INFO", "Rejected: attempt budget exhausted", context=context,
                         extra_data={"attempt_number": target.attempt_number,
                                     "max_attempts": effective_max})
        raise AttemptsExhausted()

    return EligibleRetest(
        target=target,
        assignment=assignment,
        effective_max_attempts=effective_max,
        passing_threshold=passing_threshold_of(assignment),
    )
