"""
Database connection and session management.

The grading engine never talks to the store through anything but a
SQLAlchemy session. PostgreSQL is the production target; SQLite is the
local development fallback and what the test-suite runs against.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./phynetix.db")


def build_engine_kwargs(url: str) -> dict:
    """Engine options per backend (SQLite has no connection pool options)."""
    kwargs = {"echo": os.getenv("SQL_ECHO", "0") == "1"}
    if url.startswith("postgresql"):
        kwargs.update({
            "pool_size": int(os.getenv("DB_POOL_SIZE", "10")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "20")),
            "pool_pre_ping": True,
        })
    elif url.startswith("sqlite"):
        # FastAPI runs sync routes in a threadpool
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


def enable_sqlite_pragmas(target_engine):
    """Turn on WAL and foreign key enforcement for every new SQLite connection."""
    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_engine(DATABASE_URL, **build_engine_kwargs(DATABASE_URL))

if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_pragmas(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all PhyNetix ORM models."""
    pass


def get_db():
    """
    FastAPI dependency yielding one session per request.

    The session is always closed, which returns the connection to the pool
    even when grading raises.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create every table directly (SQLite dev only; PostgreSQL uses Alembic)."""
    Base.metadata.create_all(bind=engine)
