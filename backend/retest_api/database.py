"""
Engine, session factory and declarative base.

PostgreSQL in production; SQLite for local development and the test suite.
Request handlers get their session from get_db(); work that runs outside a
request (the post-commit best value refresh) uses session_scope().
"""

from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from retest_api.config import (
    DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, SQLITE_BUSY_TIMEOUT
)


def is_sqlite(url: str = DATABASE_URL) -> bool:
    return url.startswith("sqlite")


def engine_options(url: str) -> dict:
    """Dialect-specific create_engine() keyword arguments."""
    if url.startswith("postgresql"):
        return {
            "pool_size": DB_POOL_SIZE,
            "max_overflow": DB_MAX_OVERFLOW,
            "pool_pre_ping": True,
        }
    if is_sqlite(url):
        # FastAPI runs sync handlers in a thread pool
        return {"connect_args": {"check_same_thread": False,
                                 "timeout": SQLITE_BUSY_TIMEOUT}}
    return {}


engine = create_engine(DATABASE_URL, echo=False, **engine_options(DATABASE_URL))

if is_sqlite():
    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """Standalone unit of work: commit on success, roll back on any error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_tables():
    """Create tables from the ORM metadata. PostgreSQL deployments use Alembic."""
    Base.metadata.create_all(bind=engine)


def drop_tables():
    Base.metadata.drop_all(bind=engine)
