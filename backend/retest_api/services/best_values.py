"""
Best-Value Aggregator - keeps the student's best retest outcome per test.

Best attempt = highest percentage, then highest score, then the lowest
attempt number. The result is upserted into best_retest_values and copied
onto the student's regular test_results rows for the same test.

Runs after the submission transaction has committed. Recomputing from the
attempt log makes it safe to run more than once, and a failure only leaves
the summary stale; it is logged and never reaches the client.
"""

import time
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from retest_api import database
from retest_api.logging_config import get_logger, log_with_context
from retest_api.models.best_retest_value import BestRetestValue
from retest_api.models.test_attempt import TestAttempt
from retest_api.models.test_result import TestResult
from retest_api.timestamps import utcnow

logger = get_logger("aggregator")


def pick_best_attempt(attempts) -> Optional[TestAttempt]:
    best = None
    for attempt in attempts:
        if best is None:
            best = attempt
            continue
        current_key = (attempt.percentage, attempt.score, -attempt.attempt_number)
        best_key = (best.percentage, best.score, -best.attempt_number)
        if current_key > best_key:
            best = attempt
    return best


def refresh_best_retest_value(db: Session, student_id: str,
                              parent_test_id: str) -> Optional[BestRetestValue]:
    """Recompute the summary row for (student, parent test). Caller commits."""
    attempts = db.execute(
        select(TestAttempt).where(
            TestAttempt.student_id == student_id,
            TestAttempt.test_id == parent_test_id,
        )
    ).scalars().all()

    best = pick_best_attempt(attempts)
    if best is None:
        return None

    summary = db.execute(
        select(BestRetestValue).where(
            BestRetestValue.student_id == student_id,
            BestRetestValue.parent_test_id == parent_test_id,
        )
    ).scalar_one_or_none()

    if summary is None:
        summary = BestRetestValue(student_id=student_id, parent_test_id=parent_test_id)
        db.add(summary)

    summary.best_attempt_id = best.id
    summary.best_score = best.score
    summary.best_max_score = best.max_score
    summary.best_percentage = best.percentage
    summary.attempts_recorded = len(attempts)
    summary.updated_at = utcnow()

    db.execute(
        update(TestResult)
        .where(TestResult.student_id == student_id, TestResult.test_id == parent_test_id)
        .values(
            retest_best_score=best.score,
            retest_best_max_score=best.max_score,
            retest_best_percentage=best.percentage,
            retest_best_attempt_id=best.id,
        )
        .execution_options(synchronize_session=False)
    )
    db.flush()
    return summary


def run_best_value_refresh(student_id: str, parent_test_id: str) -> bool:
    """
    Post-commit hook: refresh the summary in its own session.

    Returns False when the refresh failed; the failure is logged as a warning.
    """
    start_time = time.time()
    context = {"student_id": student_id, "parent_test_id": parent_test_id}
    try:
        with database.session_scope() as db:
            summary = refresh_best_retest_value(db, student_id, parent_test_id)
            best_percentage = summary.best_percentage if summary else None
    except Exception as e:
        log_with_context(logger, "WARNING", "Best retest value refresh failed: {}".format(e),
                         context=context, exc_info=True)
        return False

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Best retest value refreshed",
                     context=context,
                     extra_data={
                         "duration_ms": round(duration_ms, 2),
                         "best_percentage": best_percentage,
                     })
    return True
