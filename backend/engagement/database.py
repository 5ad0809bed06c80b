"""
Database connection and session management module.

Uses SQLAlchemy for ORM operations. The default URL is an in-memory SQLite
database shared by every connection (StaticPool), so registered students and
finished session reports live exactly as long as the process.

StaticPool hands the same DBAPI connection to every SessionLocal, so there
is no isolation between concurrent requests: a session that rolls back (or
closes with uncommitted work) can discard another request's pending flush.
Routes therefore commit as soon as they write, and the service assumes a
single operator. Set DATABASE_URL to a file or server database for anything
more.

Provides the session factory and the FastAPI dependency for routes.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from engagement.config import DATABASE_URL

engine_kwargs = {"echo": False}

if DATABASE_URL.startswith("sqlite"):
    # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise each connection gets its own empty database
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, **engine_kwargs)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Session factory - creates new database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    Yields a session and closes it after the request completes, even if an
    exception occurs during request processing.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)


def drop_tables():
    """Drop all database tables (used to reset state between test runs)."""
    Base.metadata.drop_all(bind=engine)
