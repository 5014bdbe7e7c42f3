# backend/tanker/repositories/remote/database.py
"""
Engine and session factory for the remote relational store.
"""

import logging
from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_store_engine(url: str, **kwargs: Any) -> Engine:
    """
    Create an engine for the remote store.

    SQLite URLs (local development and tests) get foreign keys switched on;
    in-memory SQLite shares one connection across threads so every
    to_thread call sees the same database.
    """
    parsed = make_url(url)
    options: Dict[str, Any] = {"future": True}
    if parsed.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    else:
        options.update(pool_pre_ping=True, pool_recycle=300)
    options.update(kwargs)

    engine = create_engine(url, **options)

    if parsed.get_backend_name() == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info("Remote store engine created for %s", parsed.render_as_string(hide_password=True))
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
