"""
Status Updater - advances a retest target after an attempt is recorded.

    passed          = percentage >= passing_threshold
    next_attempt    = max_attempts if passed else attempt_number + 1
    exhausted       = next_attempt >= max_attempts
    should_complete = passed or exhausted
    status          = PASSED if passed else FAILED if exhausted else IN_PROGRESS

The write is a compare-and-swap on (attempt_number, status): it only
matches the row if nobody else advanced it since eligibility read it.
A miss raises StaleTargetError and the whole submission is replayed.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy import case, update
from sqlalchemy.orm import Session

from retest_api.errors import StaleTargetError
from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.retest_target import (
    RetestTarget, STATUS_IN_PROGRESS, STATUS_PASSED, STATUS_FAILED
)
from retest_api.services.eligibility import EligibleRetest

logger = get_logger("retest")


@dataclass(frozen=True)
class StatusTransition:
    previous_status: str
    status: str
    previous_attempt_number: int
    attempt_number: int
    passed: bool
    is_completed: bool
    completed_at: Optional[datetime]


def plan_transition(attempt_number: int, max_attempts: int, percentage: float,
                    passing_threshold: float) -> tuple:
    """Pure part of the state machine: (passed, next_attempt, exhausted, should_complete, status)."""
    passed = percentage >= passing_threshold
    next_attempt = max_attempts if passed else attempt_number + 1
    exhausted = next_attempt >= max_attempts
    should_complete = exhausted or passed
    if passed:
        status = STATUS_PASSED
    elif exhausted:
        status = STATUS_FAILED
    else:
        status = STATUS_IN_PROGRESS
    return passed, next_attempt, exhausted, should_complete, status


def apply_attempt_outcome(db: Session, eligible: EligibleRetest, percentage: float,
                          now: datetime) -> StatusTransition:
    target = eligible.target
    current_attempt = target.attempt_number or 0
    previous_status = target.status

    passed, next_attempt, exhausted, should_complete, status = plan_transition(
        current_attempt, eligible.effective_max_attempts, percentage, eligible.passing_threshold)

    values = {
        "attempt_number": next_attempt,
        "attempt_count": next_attempt,
        "passed": passed,
        "last_attempt_at": now,
        "updated_at": now,
    }
    if should_complete:
        values.update({
            "is_completed": True,
            "status": status,
            # completed_at is write-once
            "completed_at": case(
                (RetestTarget.completed_at.is_(None), now),
                else_=RetestTarget.completed_at,
            ),
        })

    result = db.execute(
        update(RetestTarget)
        .where(
            RetestTarget.id == target.id,
            RetestTarget.attempt_number == current_attempt,
            RetestTarget.status == STATUS_IN_PROGRESS,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        log_with_context(logger, "WARNING", "Retest target changed concurrently",
                         context={"target_id": target.id, "student_id": target.student_id},
                         extra_data={"expected_attempt_number": current_attempt})
        raise StaleTargetError(target.id)

    db.refresh(target)

    transition = StatusTransition(
        previous_status=previous_status,
        status=target.status,
        previous_attempt_number=current_attempt,
        attempt_number=target.attempt_number,
        passed=passed,
        is_completed=target.is_completed,
        completed_at=target.completed_at,
    )

    log_with_context(logger, "INFO",
        "Retest target {} -> {} (attempt {} -> {})".format(
            previous_status, transition.status, current_attempt, next_attempt),
        context={"target_id": target.id, "student_id": target.student_id,
                 "retest_assignment_id": target.retest_assignment_id},
        extra_data={"percentage": percentage, "passed": passed, "exhausted": exhausted,
                    "max_attempts": eligible.effective_max_attempts})
    return transition
