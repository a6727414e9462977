"""
Engine and session factory for the progress-cache database.

Only the server-side progress cache lives in SQL; assessment data itself is
read from and written to Airtable.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig, get_settings
from .logging import get_logger
from .models import Base

logger = get_logger(__name__)


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Create SQLAlchemy engine with proper configuration.

    An in-memory SQLite database is shared by every connection of the engine,
    so tables created once stay visible to later sessions.

    Example:
        >>> engine = create_database_engine(DatabaseConfig(sqlite_path=":memory:"))
    """
    if config is None:
        config = get_settings().database

    connection_url = config.get_connection_url()
    engine_options = config.get_engine_options()
    if config.backend == "sqlite":
        engine_options["connect_args"] = {"check_same_thread": False}
        if config.sqlite_path == ":memory:":
            engine_options["poolclass"] = StaticPool

    logger.info(f"Creating database engine for {config.backend} backend")
    logger.debug(f"Connection URL: {connection_url.split('@')[0]}@***")  # Hide credentials in logs

    try:
        engine = create_engine(connection_url, **engine_options)
        logger.info("Database engine created successfully")
        return engine
    except Exception as e:
        logger.error(f"Failed to create database engine: {str(e)}")
        raise


def create_session_factory(engine: Engine | None = None) -> sessionmaker:
    if engine is None:
        engine = create_database_engine()

    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )


def init_database(engine: Engine) -> None:
    """
    Create missing cache tables.

    Alembic owns the schema in deployed databases; this covers SQLite files
    and in-memory databases created on the fly.
    """
    Base.metadata.create_all(engine)
    logger.info("Progress cache tables ready")


def make_engine_and_session(
    config: DatabaseConfig | None = None,
) -> tuple[Engine, sessionmaker]:
    """
    Engine plus session factory with the cache tables created.

    Example:
        >>> engine, SessionLocal = make_engine_and_session()
        >>> with SessionLocal() as session:
        ...     pass
    """
    engine = create_database_engine(config)
    init_database(engine)
    return engine, create_session_factory(engine)
