"""Engine / session factory helpers for the row store."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from finsight.config import settings
from finsight.storage.orm import Base

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def create_db_engine(database_url: str | None = None) -> Engine:
    """Create an engine for *database_url* (defaults to ``settings.database_url``).

    In-memory SQLite URLs get a :class:`StaticPool` so every session sees
    the same database, which is what the unit tests rely on.
    """
    url = database_url or settings.database_url
    kwargs: dict[str, Any] = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in _IN_MEMORY_URLS:
            kwargs["poolclass"] = StaticPool
    logger.info("Connecting row store: %s", url.split("@")[-1])
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


def dialect_insert(session: Session, model: Any) -> Any:
    """Return an ``INSERT`` construct that supports ``ON CONFLICT`` clauses.

    Both SQLite and PostgreSQL expose ``on_conflict_do_update`` /
    ``on_conflict_do_nothing`` on their dialect-specific insert.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on dialect {dialect!r}")
    return insert(model)
