"""
Submission API route - accepts finished tests from the student portal.

A body carrying retest_assignment_id goes through the retest pipeline
(eligibility, attempt slot, idempotent write, status transition); anything
else is stored as a regular result.
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from retest_api.database import get_db
from retest_api.deps import get_current_student
from retest_api.logging_config import get_logger, log_with_context
from retest_api.schemas import StudentClaims, SubmissionRequest, SubmissionResponse
from retest_api.services.attempt_resolver import compute_percentage_score
from retest_api.services.best_values import run_best_value_refresh
from retest_api.services.submission import submit_regular, submit_retest

router = APIRouter()
logger = get_logger("http")


@router.post("/api/submissions", response_model=SubmissionResponse, response_model_exclude_none=True)
def submit_test(request: SubmissionRequest, background_tasks: BackgroundTasks,
                student: StudentClaims = Depends(get_current_student),
                db: Session = Depends(get_db)):
    """Submit a finished test, regular or retest."""
    log_with_context(logger, "INFO", "Submission received",
                     context={"student_id": student.student_id, "test_id": request.test_id},
                     extra_data={
                         "retest": request.retest_assignment_id is not None,
                         "caught_cheating": request.caught_cheating,
                         "visibility_change_times": request.visibility_change_times,
                     })

    percentage_score = compute_percentage_score(request.score, request.max_score)

    if request.retest_assignment_id is None:
        result_id = submit_regular(db, request, student)
        return SubmissionResponse(
            result_id=result_id,
            score=request.score,
            max_score=request.max_score,
            percentage_score=percentage_score,
        )

    outcome = submit_retest(db, request, student)
    background_tasks.add_task(run_best_value_refresh, outcome.student_id, outcome.parent_test_id)

    return SubmissionResponse(
        result_id=outcome.result_id,
        score=request.score,
        max_score=request.max_score,
        percentage_score=percentage_score,
        attempt_number=outcome.attempt_number,
        retest_status=outcome.transition.status,
    )
