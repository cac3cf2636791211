"""
Attempt Resolver - works out which attempt slot a retest submission occupies.

Rules:
1. percentage = round_half_up(score / max_score * 10000) / 100
2. A passing attempt (percentage >= the assignment's passing threshold)
   is recorded in the final slot, i.e. the effective max attempts
   ("early pass").
3. Otherwise the slot is the larger of
   - the highest attempt_number already recorded for (student, parent test) + 1
   - the target's attempt_count + 1
"""

import math
from dataclasses import dataclass
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.test_attempt import TestAttempt
from retest_api.services.eligibility import EligibleRetest

logger = get_logger("retest")


@dataclass(frozen=True)
class ResolvedAttempt:
    attempt_number: int
    percentage: float
    passed: bool


def round_half_up(value: float) -> int:
    """Round .5 upwards (towards +inf) instead of Python's round-half-to-even."""
    return int(math.floor(value + 0.5))


def compute_percentage(score: float, max_score: float) -> float:
    """
    Percentage with two decimals, e.g. 7/9 -> 77.78.

    The scaling order (x * 10000, round, / 100) is kept exactly so that
    ties between scores round identically everywhere they are compared.
    """
    return round_half_up(score / max_score * 10000) / 100


def compute_percentage_score(score: float, max_score: float) -> int:
    """Whole-number percentage reported back to the client."""
    return round_half_up(score / max_score * 100)


def max_recorded_attempt(db: Session, student_id: str, parent_test_id: str) -> int:
    return db.execute(
        select(func.coalesce(func.max(TestAttempt.attempt_number), 0))
        .where(TestAttempt.student_id == student_id, TestAttempt.test_id == parent_test_id)
    ).scalar_one()


def resolve_attempt_number(db: Session, student_id: str, parent_test_id: str,
                           score: float, max_score: float,
                           eligible: EligibleRetest) -> ResolvedAttempt:
    percentage = compute_percentage(score, max_score)
    passed = percentage >= eligible.passing_threshold

    from_records = max_recorded_attempt(db, student_id, parent_test_id) + 1
    from_counter = (eligible.target.attempt_count or 0) + 1

    if passed:
        attempt_number = eligible.effective_max_attempts
    else:
        attempt_number = max(from_records, from_counter)

    log_with_context(logger, "DEBUG",
        "Resolved attempt slot {} (percentage={}, passed={})".format(attempt_number, percentage, passed),
        context={"student_id": student_id, "parent_test_id": parent_test_id},
        extra_data={
            "from_records": from_records,
            "from_counter": from_counter,
            "max_attempts": eligible.effective_max_attempts,
            "passing_threshold": eligible.passing_threshold,
        })

    return ResolvedAttempt(attempt_number=attempt_number, percentage=percentage, passed=passed)
