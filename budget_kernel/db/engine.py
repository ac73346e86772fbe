"""
Module: budget_kernel.db.engine
Responsibility: Owns the process-wide SQLAlchemy engine and session factory
    for the ledger store, and the ``session_scope`` unit of work every
    service writes through.
Architecture position: Kernel > DB.  Imports db/base.py only; the ORM
    registry in budget_modules is imported lazily by create_tables so that
    every mapped table is known before metadata.create_all runs.

Invariants enforced:
    - An in-memory SQLite URL gets exactly one shared connection, otherwise
      each pooled connection would see its own empty database.
    - A session_scope either commits everything written inside it or
      nothing: any exception rolls back and propagates.

Failure modes:
    - RuntimeError from any accessor used before init_engine_from_url().
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from budget_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_INITIALIZED = "Ledger store not initialized; call init_engine_from_url() first"

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _engine_options(url: URL) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Create the engine for ``database_url`` and bind a session factory to it.

    Calling this again replaces (but does not dispose) the previous engine;
    use ``reset_engine`` for a clean teardown.  Also configures structured
    logging if nothing else has yet.
    """
    global _engine, _factory

    url = make_url(database_url)
    _engine = create_engine(url, echo=echo, **_engine_options(url))
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "database": url.database or ":memory:"},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The shared factory.  Managers hold the factory, not a session, and open
    one ``session_scope`` per operation.
    """
    if _factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(session_factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Unit of work: commit on clean exit, roll back and re-raise otherwise.

    Usage::

        with session_scope(factory) as session:
            session.add(model)
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from budget_kernel.db.base import Base
    from budget_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every table.  Test teardown only."""
    from budget_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the factory."""
    global _engine, _factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _factory = None


atexit.register(reset_engine)
