"""Engine and session handling for the patient store.

SQLite is used for local development (a ``queue.db`` file beside the code)
and PostgreSQL, through psycopg2, when ``DATABASE_URL`` points at one.
"""

from __future__ import annotations

import logging
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

import config

logger = logging.getLogger(__name__)


def make_engine(url: str = config.DATABASE_URL, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


engine = make_engine()


def init_db(bind: Engine = None) -> None:
    """Create tables if they do not exist."""
    # Register the table on SQLModel.metadata before create_all runs.
    import models  # noqa: F401

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    logger.info("Patient store ready (%s)", bind.url.get_backend_name())


def get_session() -> Iterator[Session]:
    """Yield one session per request; used as a FastAPI dependency."""
    with Session(engine) as session:
        yield session
