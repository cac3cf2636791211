"""Best retest value summary."""

import logging

from retest_api.models import BestRetestValue, TestAttempt, TestResult
from retest_api.services import best_values
from retest_api.services.best_values import (
    pick_best_attempt, refresh_best_retest_value, run_best_value_refresh
)

from conftest import PARENT_TEST_ID, STUDENT_ID


def add_attempt(db, attempt_number, score, max_score=10, percentage=None):
    attempt = TestAttempt(student_id=STUDENT_ID, test_id=PARENT_TEST_ID,
                          attempt_number=attempt_number, score=score, max_score=max_score,
                          percentage=percentage if percentage is not None else score * 100.0 / max_score)
    db.add(attempt)
    db.commit()
    return attempt.id


class TestPickBestAttempt:

    def test_highest_percentage_wins(self):
        attempts = [
            TestAttempt(attempt_number=1, score=3, percentage=30.0),
            TestAttempt(attempt_number=2, score=7, percentage=70.0),
            TestAttempt(attempt_number=3, score=5, percentage=50.0),
        ]
        assert pick_best_attempt(attempts).attempt_number == 2

    def test_ties_prefer_higher_score_then_earlier_slot(self):
        attempts = [
            TestAttempt(attempt_number=1, score=5, percentage=50.0),
            TestAttempt(attempt_number=2, score=10, percentage=50.0),
            TestAttempt(attempt_number=3, score=10, percentage=50.0),
        ]
        assert pick_best_attempt(attempts).attempt_number == 2

    def test_no_attempts(self):
        assert pick_best_attempt([]) is None


class TestRefreshBestRetestValue:

    def test_upserts_summary(self, db):
        add_attempt(db, 1, 3)
        summary = refresh_best_retest_value(db, STUDENT_ID, PARENT_TEST_ID)
        db.commit()
        assert summary.best_percentage == 30.0
        assert summary.attempts_recorded == 1

        best_id = add_attempt(db, 2, 8)
        refresh_best_retest_value(db, STUDENT_ID, PARENT_TEST_ID)
        db.commit()

        rows = db.query(BestRetestValue).all()
        assert len(rows) == 1
        assert rows[0].best_attempt_id == best_id
        assert rows[0].best_percentage == 80.0
        assert rows[0].attempts_recorded == 2

    def test_mirrors_onto_regular_results(self, db):
        db.add(TestResult(id="original", student_id=STUDENT_ID, test_id=PARENT_TEST_ID,
                          score=2, max_score=10))
        db.commit()
        best_id = add_attempt(db, 1, 6)

        refresh_best_retest_value(db, STUDENT_ID, PARENT_TEST_ID)
        db.commit()
        db.expire_all()

        result = db.get(TestResult, "original")
        assert result.retest_best_attempt_id == best_id
        assert result.retest_best_score == 6
        assert result.retest_best_percentage == 60.0

    def test_nothing_to_summarise(self, db):
        assert refresh_best_retest_value(db, STUDENT_ID, PARENT_TEST_ID) is None
        assert db.query(BestRetestValue).count() == 0


class TestRunBestValueRefresh:

    def test_runs_in_own_session(self, db):
        add_attempt(db, 1, 4)
        assert run_best_value_refresh(STUDENT_ID, PARENT_TEST_ID) is True
        assert db.query(BestRetestValue).one().best_percentage == 40.0

    def test_is_repeatable(self, db):
        add_attempt(db, 1, 4)
        run_best_value_refresh(STUDENT_ID, PARENT_TEST_ID)
        run_best_value_refresh(STUDENT_ID, PARENT_TEST_ID)
        assert db.query(BestRetestValue).count() == 1

    def test_failure_is_logged_not_raised(self, monkeypatch, caplog):
        def broken(*args, **kwargs):
            raise RuntimeError("summary table locked")

        monkeypatch.setattr(best_values, "refresh_best_retest_value", broken)
        with caplog.at_level(logging.WARNING, logger="retest_api.aggregator"):
            assert run_best_value_refresh(STUDENT_ID, PARENT_TEST_ID) is False
        assert any("summary table locked" in r.getMessage() for r in caplog.records)
