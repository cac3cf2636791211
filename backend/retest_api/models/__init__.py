from retest_api.models.retest_assignment import RetestAssignment
from retest_api.models.retest_target import RetestTarget
from retest_api.models.test_attempt import TestAttempt
from retest_api.models.test_result import TestResult
from retest_api.models.best_retest_value import BestRetestValue

__all__ = ["RetestAssignment", "RetestTarget", "TestAttempt", "TestResult", "BestRetestValue"]
