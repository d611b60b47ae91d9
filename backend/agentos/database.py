import logging
from contextlib import contextmanager
from typing import Any
from typing import Iterator

from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from agentos.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()

# Create Base class
Base = declarative_base()


def make_engine(db_url: str, **kwargs) -> Engine:
    """Create a SQLAlchemy engine with the given URL and options.

    Args:
        db_url: Database connection URL
        **kwargs: Additional arguments for create_engine

    Returns:
        A SQLAlchemy Engine instance
    """
    connect_args = kwargs.pop("connect_args", {})
    if "sqlite" in db_url:
        connect_args.setdefault("check_same_thread", False)
        connect_args["timeout"] = 30

    return create_engine(db_url, connect_args=connect_args, **kwargs)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps attributes readable after a commit so
    route handlers can serialise rows they just wrote.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def _resolve_db_url() -> str:
    # Importing this module must never crash: fall back to SQLite when
    # DATABASE_URL is unset (in-memory under TESTING).
    if _settings.database_url:
        return _settings.database_url
    return "sqlite:///:memory:" if _settings.testing else "sqlite:///./app.db"


# Default engine and sessionmaker instances for app usage.  Tests replace
# ``default_session_factory`` with one bound to their own engine.
default_engine = make_engine(_resolve_db_url())
default_session_factory = make_sessionmaker(default_engine)


def get_session_factory() -> sessionmaker:
    """Return the default session factory for the application."""
    return default_session_factory


def get_db(session_factory: Any = None) -> Iterator[Session]:
    """Dependency provider for database sessions.

    Args:
        session_factory: Optional custom session factory

    Yields:
        SQLAlchemy Session object
    """
    factory = session_factory or get_session_factory()
    db = factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session(session_factory: Any = None):
    """Session context manager for services and background jobs.

    Commits on success, rolls back and re-raises on error, always closes.

    Usage:
        with db_session() as db:
            repo = SQLAlchemyRepository(db)
            repo.add_dead_letter(...)
    """
    factory = session_factory or get_session_factory()
    session = factory()

    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database session rolled back due to error: {e}")
        raise
    finally:
        session.close()


def initialize_database(engine: Engine | None = None) -> None:
    """Create all tables registered on :data:`Base`."""

    # Import models so they are registered with Base before create_all
    from agentos.models import models  # noqa: F401

    Base.metadata.create_all(bind=engine or default_engine)
