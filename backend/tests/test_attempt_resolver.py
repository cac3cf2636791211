"""Attempt slot resolution and percentage rounding."""

from retest_api.models import RetestAssignment, RetestTarget, TestAttempt
from retest_api.services.attempt_resolver import (
    compute_percentage, compute_percentage_score, resolve_attempt_number, round_half_up
)
from retest_api.services.eligibility import EligibleRetest

from conftest import STUDENT_ID, PARENT_TEST_ID


def eligible(max_attempts=3, attempt_number=0, attempt_count=0, passing_threshold=50.0):
    assignment = RetestAssignment(max_attempts=max_attempts, passing_threshold=passing_threshold)
    target = RetestTarget(student_id=STUDENT_ID, attempt_number=attempt_number,
                          attempt_count=attempt_count)
    return EligibleRetest(target=target, assignment=assignment,
                          effective_max_attempts=max_attempts,
                          passing_threshold=passing_threshold)


def record(db, attempt_number, student_id=STUDENT_ID, test_id=PARENT_TEST_ID):
    db.add(TestAttempt(student_id=student_id, test_id=test_id, attempt_number=attempt_number,
                       score=1, max_score=10, percentage=10.0))
    db.commit()


class TestPercentage:

    def test_two_decimal_rounding(self):
        assert compute_percentage(7, 9) == 77.78

    def test_thirds(self):
        assert compute_percentage(1, 3) == 33.33
        assert compute_percentage(2, 3) == 66.67

    def test_half_rounds_up_not_to_even(self):
        # 1/32 * 10000 == 312.5 exactly
        assert compute_percentage(1, 32) == 3.13
        assert round_half_up(312.5) == 313
        assert round_half_up(313.5) == 314

    def test_full_and_zero_scores(self):
        assert compute_percentage(10, 10) == 100.0
        assert compute_percentage(0, 10) == 0.0

    def test_whole_percentage_for_response(self):
        assert compute_percentage_score(1, 8) == 13
        assert compute_percentage_score(7, 9) == 78


class TestResolveAttemptNumber:

    def test_first_failing_attempt_takes_slot_one(self, db):
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 3, 10, eligible())
        assert resolved.attempt_number == 1
        assert resolved.percentage == 30.0
        assert resolved.passed is False

    def test_early_pass_jumps_to_final_slot(self, db):
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 6, 10, eligible(max_attempts=3))
        assert resolved.attempt_number == 3
        assert resolved.passed is True

    def test_exact_threshold_counts_as_pass(self, db):
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 5, 10, eligible(max_attempts=4))
        assert resolved.attempt_number == 4

    def test_uses_assignment_threshold(self, db):
        strict = eligible(max_attempts=3, passing_threshold=80.0)
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 7, 10, strict)
        assert resolved.passed is False
        assert resolved.attempt_number == 1

    def test_recorded_attempts_ahead_of_counter(self, db):
        record(db, 1)
        record(db, 2)
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 1, 10,
                                          eligible(max_attempts=5, attempt_count=0))
        assert resolved.attempt_number == 3

    def test_counter_ahead_of_recorded_attempts(self, db):
        record(db, 1)
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 1, 10,
                                          eligible(max_attempts=5, attempt_count=3))
        assert resolved.attempt_number == 4

    def test_other_students_and_tests_are_ignored(self, db):
        record(db, 4, student_id="someone-else")
        record(db, 4, test_id="other-test")
        resolved = resolve_attempt_number(db, STUDENT_ID, PARENT_TEST_ID, 1, 10, eligible(max_attempts=5))
        assert resolved.attempt_number == 1
