from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Generator

from loguru import logger
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.models.base import Base


def _unicode_lower(value: str | None) -> str | None:
    return value.lower() if value is not None else None


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    is_sqlite = url.drivername.startswith("sqlite")

    if is_sqlite and url.database and url.database != ":memory:":
        db_path = Path(url.database).expanduser()
        if db_path.parent:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        # Rebuild URL so SQLAlchemy can handle relative paths nicely
        database_url = f"sqlite:///{db_path}"

    engine = create_engine(
        database_url,
        echo=False,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )

    if is_sqlite:
        # Built-in lower() only folds ASCII, so "ÁLVARO" would never match "álvaro"
        @event.listens_for(engine, "connect")
        def _register_lower(dbapi_connection, connection_record) -> None:  # noqa: ARG001
            dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)

    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@lru_cache
def get_engine() -> Engine:
    return build_engine(get_settings().database_url)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return build_session_factory(get_engine())


def init_db(engine: Engine | None = None) -> None:
    # Register the mapped tables on Base.metadata
    from app.models import audit, patient  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def db_session() -> Generator[Session, None, None]:
    session: Session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    with db_session() as session:
        yield session


@dataclass
class Deadline:
    timeout: float | None
    started_at: float

    @classmethod
    def start(cls, timeout: float | None) -> "Deadline":
        return cls(timeout=timeout, started_at=time.monotonic())

    @property
    def expires_at(self) -> float | None:
        if self.timeout is None:
            return None
        return self.started_at + self.timeout

    @property
    def expired(self) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and time.monotonic() >= expires_at


@contextmanager
def query_deadline(session: Session, deadline: Deadline) -> Generator[Deadline, None, None]:
    """Bound the statements run inside the block by ``deadline``.

    PostgreSQL gets a transaction-local ``statement_timeout``; SQLite gets a
    progress handler that interrupts the running statement. Other dialects
    only get the after-the-fact ``Deadline.expired`` check.
    """
    timeout = deadline.timeout
    if timeout is None:
        yield deadline
        return

    connection = session.connection()
    dialect = connection.dialect.name

    if dialect == "postgresql":
        timeout_ms = max(int(timeout * 1000), 1)
        connection.execute(
            text("SELECT set_config('statement_timeout', :timeout_value, true)"),
            {"timeout_value": f"{timeout_ms}ms"},
        )
        yield deadline
        return

    if dialect == "sqlite":
        raw = connection.connection.dbapi_connection
        raw.set_progress_handler(lambda: 1 if deadline.expired else 0, 1000)
        try:
            yield deadline
        finally:
            raw.set_progress_handler(None, 1000)
        return

    logger.debug("No server-side statement timeout for dialect={dialect}", dialect=dialect)
    yield deadline
