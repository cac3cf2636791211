"""The retest pipeline end to end at the service layer."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from retest_api.errors import (
    AlreadyCompleted, AttemptsExhausted, NotAssigned, PersistenceError, StaleTargetError, WindowClosed
)
from retest_api.models import TestAttempt, TestResult
from retest_api.services import attempt_persister, submission as submission_service
from retest_api.services.submission import submit_regular, submit_retest

from conftest import PARENT_TEST_ID, STUDENT_ID, build_submission, student_claims


def submit(db, assignment_id, score, max_score=10, **overrides):
    return submit_retest(db, build_submission(score, max_score, retest_assignment_id=assignment_id,
                                              **overrides), student_claims())


class TestRetestPipeline:

    def test_early_pass_on_first_attempt(self, db, make_retest, load_target, count_attempts):
        assignment_id, target_id = make_retest(max_attempts=3)
        outcome = submit(db, assignment_id, 8)

        assert outcome.attempt_number == 3
        assert outcome.created is True
        assert outcome.transition.status == "PASSED"
        target = load_target(target_id)
        assert target.status == "PASSED"
        assert target.is_completed is True
        assert target.attempt_number == 3
        assert count_attempts() == 1

    def test_exhaustion_after_two_failures(self, db, make_retest, load_target):
        assignment_id, target_id = make_retest(max_attempts=2)

        first = submit(db, assignment_id, 2)
        assert first.attempt_number == 1
        assert first.transition.status == "IN_PROGRESS"

        second = submit(db, assignment_id, 3)
        assert second.attempt_number == 2
        assert second.transition.status == "FAILED"

        target = load_target(target_id)
        assert target.is_completed is True
        assert target.passed is False

        with pytest.raises(AttemptsExhausted):
            submit(db, assignment_id, 9)

    def test_attempt_numbers_never_decrease(self, db, make_retest, load_target):
        assignment_id, target_id = make_retest(max_attempts=4)
        seen = []
        for score in (1, 2, 3, 9):
            seen.append(submit(db, assignment_id, score).attempt_number)
            seen.append(load_target(target_id).attempt_number)
        assert seen == sorted(seen)
        assert load_target(target_id).status == "PASSED"

        with pytest.raises(AlreadyCompleted):
            submit(db, assignment_id, 10)
        assert load_target(target_id).attempt_number == 4

    def test_parent_test_defaults_to_test_id(self, db, make_retest):
        assignment_id, _ = make_retest()
        outcome = submit(db, assignment_id, 1, test_id="retest-copy", parent_test_id="original-7")
        assert outcome.parent_test_id == "original-7"
        assert db.get(TestAttempt, outcome.result_id).test_id == "original-7"

        outcome = submit(db, assignment_id, 1)
        assert outcome.parent_test_id == PARENT_TEST_ID

    def test_existing_row_in_resolved_slot_is_reused(self, db, make_retest, count_attempts):
        assignment_id, _ = make_retest(max_attempts=3)
        db.add(TestAttempt(id="earlier-pass", student_id=STUDENT_ID, test_id=PARENT_TEST_ID,
                           attempt_number=3, score=7, max_score=10, percentage=70.0))
        db.commit()

        outcome = submit(db, assignment_id, 9)
        assert outcome.result_id == "earlier-pass"
        assert outcome.created is False
        assert count_attempts() == 1

    def test_eligibility_failures_write_nothing(self, db, make_retest, count_attempts):
        with pytest.raises(NotAssigned):
            submit(db, "unknown", 5)
        assert count_attempts() == 0


class TestConflictHandling:

    def test_stale_target_is_replayed(self, db, make_retest, monkeypatch, load_target, count_attempts):
        assignment_id, target_id = make_retest(max_attempts=3)
        real_apply = submission_service.apply_attempt_outcome
        calls = []

        def flaky_apply(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise StaleTargetError(target_id)
            return real_apply(*args, **kwargs)

        monkeypatch.setattr(submission_service, "apply_attempt_outcome", flaky_apply)
        outcome = submit(db, assignment_id, 2)

        assert len(calls) == 2
        assert outcome.attempt_number == 1
        assert count_attempts() == 1
        assert load_target(target_id).attempt_number == 1

    def test_duplicate_slot_insert_falls_back_to_existing_row(self, db, make_retest, monkeypatch,
                                                              count_attempts):
        assignment_id, _ = make_retest(max_attempts=3)
        db.add(TestAttempt(id="raced-in", student_id=STUDENT_ID, test_id=PARENT_TEST_ID,
                           attempt_number=3, score=8, max_score=10, percentage=80.0))
        db.commit()

        real_find = attempt_persister.find_attempt
        lookups = []

        def racing_find(*args, **kwargs):
            lookups.append(1)
            # the first lookup runs before the competing insert became visible
            return None if len(lookups) == 1 else real_find(*args, **kwargs)

        monkeypatch.setattr(attempt_persister, "find_attempt", racing_find)
        outcome = submit(db, assignment_id, 9)

        assert outcome.result_id == "raced-in"
        assert count_attempts() == 1

    def test_gives_up_after_repeated_conflicts(self, db, make_retest, monkeypatch, load_target):
        assignment_id, target_id = make_retest(max_attempts=3)

        def always_stale(*args, **kwargs):
            raise StaleTargetError(target_id)

        monkeypatch.setattr(submission_service, "apply_attempt_outcome", always_stale)
        with pytest.raises(PersistenceError):
            submit(db, assignment_id, 2)
        assert load_target(target_id).attempt_number == 0

    def test_store_failure_becomes_persistence_error(self, db, make_retest, monkeypatch, count_attempts):
        assignment_id, _ = make_retest()

        def broken_persist(*args, **kwargs):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(submission_service, "persist_attempt", broken_persist)
        with pytest.raises(PersistenceError) as exc_info:
            submit(db, assignment_id, 2)
        assert exc_info.value.status_code == 500
        assert "connection reset" in exc_info.value.detail


class TestRegularSubmission:

    def test_single_row_insert(self, db):
        result_id = submit_regular(db, build_submission(6), student_claims())
        result = db.get(TestResult, result_id)
        assert result.score == 6
        assert result.test_id == PARENT_TEST_ID
        assert db.query(TestAttempt).count() == 0
