"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
The database only backs the persistent cache tier and a handful of
persisted settings, so a single SQLite file is the default.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from sitmon.config import config


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine with settings appropriate for the database type.

    In-memory SQLite databases share a single connection so that every
    thread sees the same tables.
    """
    engine_kwargs = {'echo': echo}

    is_sqlite = url.startswith('sqlite')
    if is_sqlite:
        engine_kwargs['connect_args'] = {'check_same_thread': False}
        if ':memory:' in url or url in ('sqlite://', 'sqlite:///'):
            engine_kwargs['poolclass'] = StaticPool

    db_engine = create_engine(url, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(db_engine, 'connect')
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """
            Configure SQLite for concurrent access.

            WAL mode lets the cache keep serving reads while fetch
            threads write through new entries.
            """
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.execute('PRAGMA synchronous=NORMAL')
            cursor.close()

    return db_engine


def create_session_factory(db_engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine."""
    return sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Avoid lazy loading issues
    )


engine = create_db_engine(config.database.url, echo=config.debug)

# Session factory
SessionLocal = create_session_factory(engine)


@contextmanager
def get_session(session_factory: sessionmaker = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            session.get(StoredValue, key)

    Automatically handles commit/rollback and session cleanup.
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_engine: Engine = None) -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist.
    """
    Base.metadata.create_all(bind=db_engine or engine)
