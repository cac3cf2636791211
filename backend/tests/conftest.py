"""
Shared fixtures: a throwaway SQLite database, the FastAPI test client and
factories that seed retest assignments the way the teacher flow would.
"""

import os
import tempfile
from datetime import timedelta

# Must be set before retest_api.config is imported
_DB_DIR = tempfile.mkdtemp(prefix="retest-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "retest_test.db")

import pytest
from fastapi.testclient import TestClient

from retest_api import database
from retest_api.main import app
from retest_api.models import RetestAssignment, RetestTarget, TestAttempt
from retest_api.schemas import StudentClaims, SubmissionRequest
from retest_api.timestamps import utcnow

STUDENT_ID = "student-1"
PARENT_TEST_ID = "test-42"


@pytest.fixture(autouse=True)
def fresh_tables():
    database.drop_tables()
    database.create_tables()
    yield


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_retest(db):
    """Create an assignment plus one target, returning (assignment_id, target_id)."""
    def _make(student_id=STUDENT_ID, test_id=PARENT_TEST_ID, max_attempts=3,
              target_max_attempts=None, passing_threshold=50.0,
              window_start=None, window_end=None, **target_fields):
        now = utcnow()
        assignment = RetestAssignment(
            test_id=test_id,
            test_type="multiple_choice",
            max_attempts=max_attempts,
            passing_threshold=passing_threshold,
            window_start=window_start or now - timedelta(days=1),
            window_end=window_end or now + timedelta(days=1),
        )
        db.add(assignment)
        db.flush()
        target = RetestTarget(
            retest_assignment_id=assignment.id,
            student_id=student_id,
            max_attempts=target_max_attempts,
            **target_fields,
        )
        db.add(target)
        db.commit()
        return assignment.id, target.id
    return _make


@pytest.fixture
def load_target(db):
    def _load(target_id):
        db.expire_all()
        return db.get(RetestTarget, target_id)
    return _load


@pytest.fixture
def count_attempts(db):
    def _count(student_id=STUDENT_ID, test_id=PARENT_TEST_ID):
        db.expire_all()
        return db.query(TestAttempt).filter(
            TestAttempt.student_id == student_id,
            TestAttempt.test_id == test_id,
        ).count()
    return _count


def build_submission(score, max_score=10, retest_assignment_id=None, **overrides) -> SubmissionRequest:
    fields = {
        "test_id": PARENT_TEST_ID,
        "test_name": "Fractions quiz",
        "score": score,
        "max_score": max_score,
        "answers": {"1": "A", "2": "C"},
        "retest_assignment_id": retest_assignment_id,
    }
    fields.update(overrides)
    return SubmissionRequest(**fields)


def student_claims(student_id=STUDENT_ID) -> StudentClaims:
    return StudentClaims(student_id=student_id, name="Anong", surname="Sukjai", grade=1, class_name=15)


def student_headers(student_id=STUDENT_ID) -> dict:
    return {
        "X-Student-Id": student_id,
        "X-Student-Name": "Anong",
        "X-Student-Class": "1/15",
        "X-Student-Grade": "1",
    }
