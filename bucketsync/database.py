"""Database engine and session management."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(
    database_url: str,
    echo: bool = False,
) -> tuple[Engine, sessionmaker[Session]]:
    """Create the engine and session factory, creating tables if needed.

    Returns (engine, session_factory) tuple.
    """
    if database_url.startswith("sqlite:///"):
        db_file = database_url[len("sqlite:///") :]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        database_url,
        echo=echo,
        # Sync runs use the engine from worker threads
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    logger.debug("Opened state database %s", database_url)

    session_factory = sessionmaker(engine, expire_on_commit=False)
    return engine, session_factory
