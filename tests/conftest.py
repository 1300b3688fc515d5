"""Shared fixtures: a file-backed SQLite database per test."""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import date, datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import AppConfig
from app.models.patient import Patient
from app.services.db import build_engine, build_session_factory, get_db, init_db
from app.services.mapping import new_version_token
from app.services.patients import PatientService


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    engine = build_engine(f"sqlite:///{tmp_path / 'patients.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings() -> AppConfig:
    return AppConfig(
        DEFAULT_PAGE_SIZE=10,
        MAX_PAGE_SIZE=100,
        NAME_FILTER_CASE_SENSITIVE=False,
        QUERY_TIMEOUT_SEC=30.0,
        AUDIT_ACTOR="system",
    )


@pytest.fixture
def service(session: Session, settings: AppConfig) -> PatientService:
    return PatientService(session, settings=settings)


@pytest.fixture
def make_patient(session: Session) -> Callable[..., Patient]:
    """Insert a patient row directly, bypassing the service.

    Usage:
        def test_something(make_patient):
            patient = make_patient(first_name="Ana", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    """
    counter = {"n": 0}

    def _make(**overrides) -> Patient:
        counter["n"] += 1
        values = {
            "document_type": "CC",
            "document_number": f"{100000 + counter['n']}",
            "first_name": "Juan",
            "last_name": "Pérez",
            "birth_date": date(1990, 1, 1),
            "phone_number": None,
            "email": None,
            "created_at": datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc),
            "row_version": new_version_token(),
        }
        values.update(overrides)
        patient = Patient(**values)
        session.add(patient)
        session.commit()
        return patient

    return _make


@pytest.fixture
def client(session_factory: sessionmaker[Session]) -> Generator[TestClient, None, None]:
    from app.main import app

    def _override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
