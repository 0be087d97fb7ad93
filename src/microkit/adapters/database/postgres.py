"""Engine/session helpers for PostgreSQL."""

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...infrastructure.exceptions import DatabaseError

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432
DEFAULT_SSL_MODE = "prefer"
DEFAULT_TIMEZONE = "UTC"


def build_database_url(config: "ConfigurationStore") -> URL:
    """
    Connection URL from the ``postgres_*`` keys.

    ``postgres_ssl`` is passed through as libpq's ``sslmode`` and
    ``postgres_timezone`` sets the session time zone.
    """
    port = config.get_int("postgres_port")
    return URL.create(
        "postgresql+psycopg2",
        username=config.get_string("postgres_user") or None,
        password=config.get_string("postgres_password") or None,
        host=config.get_string("postgres_host") or None,
        port=port if port > 0 else DEFAULT_PORT,
        database=config.get_string("postgres_database") or None,
        query={
            "sslmode": config.get_string("postgres_ssl") or DEFAULT_SSL_MODE,
            "options": f"-c timezone={config.get_string('postgres_timezone') or DEFAULT_TIMEZONE}",
        },
    )


def new_db_engine(config: "ConfigurationStore", echo: Optional[bool] = None) -> Engine:
    """
    Create an engine and check that the database answers.

    SQL echo follows the service log level unless ``echo`` is given.

    Raises:
        DatabaseError: the engine cannot be created or ``SELECT 1`` fails
    """
    url = build_database_url(config)
    if echo is None:
        echo = config.get_string("log_level").strip().lower() == "debug"

    try:
        engine = create_engine(url, pool_pre_ping=True, echo=echo)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Invalid database configuration: {e}", host=url.host, database=url.database, cause=e) from e

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        engine.dispose()
        raise DatabaseError(
            f"Failed to connect to database {url.database} on {url.host}:{url.port}",
            host=url.host,
            database=url.database,
            cause=e
        ) from e

    logger.info(f"Connected to database {url.database}")
    return engine


def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
