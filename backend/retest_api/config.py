"""
Configuration - environment variables and service-wide constants.
"""

import os

# "development" echoes internal error details back to the client
APP_ENV = os.getenv("APP_ENV", "production").lower()

# Fallback to SQLite for local development when PostgreSQL is not available
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./retest_service.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# PostgreSQL connection pool; ignored for SQLite
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))

# Seconds SQLite waits on a locked database before failing the statement
SQLITE_BUSY_TIMEOUT = int(os.getenv("SQLITE_BUSY_TIMEOUT", "15"))

# Used when an assignment carries no passing threshold of its own
DEFAULT_PASSING_THRESHOLD = float(os.getenv("DEFAULT_PASSING_THRESHOLD", "50"))

# How many times a submission is replayed after losing a race on the target row
RETEST_MAX_RETRIES = int(os.getenv("RETEST_MAX_RETRIES", "3"))


def is_development() -> bool:
    return APP_ENV == "development"
