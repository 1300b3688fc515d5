"""Tests for the audit recorder."""

from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.models.audit import AuditLog
from app.services.audit import AuditAction, AuditRecorder, serialize_changes


def _entries(session) -> list[AuditLog]:
    return list(session.scalars(select(AuditLog).order_by(AuditLog.id)))


def test_records_entry_with_default_actor(session) -> None:
    recorder = AuditRecorder(session)

    assert recorder.record("Patient", 7, AuditAction.DELETE) is True

    [entry] = _entries(session)
    assert entry.entity == "Patient"
    assert entry.entity_id == 7
    assert entry.action == "Delete"
    assert entry.username == "system"
    assert entry.changes is None
    assert entry.created_at is not None


def test_explicit_actor_and_changes(session) -> None:
    recorder = AuditRecorder(session, default_actor="back-office")

    recorder.record("Patient", 1, AuditAction.UPDATE, actor="maria", changes={"firstName": "Ana"})
    recorder.record("Patient", 1, AuditAction.UPDATE, changes={"firstName": "Eva"})

    first, second = _entries(session)
    assert first.username == "maria"
    assert json.loads(first.changes) == {"firstName": "Ana"}
    assert second.username == "back-office"


def test_entries_are_sequential(session) -> None:
    recorder = AuditRecorder(session)
    for action in (AuditAction.CREATE, AuditAction.UPDATE, AuditAction.DELETE):
        recorder.record("Patient", 3, action)

    entries = _entries(session)
    assert [e.action for e in entries] == ["Create", "Update", "Delete"]
    assert [e.id for e in entries] == sorted(e.id for e in entries)


def test_store_failure_is_reported_not_raised(session, monkeypatch) -> None:
    recorder = AuditRecorder(session)

    def _fail(entry: AuditLog) -> None:
        raise SQLAlchemyError("audit store unavailable")

    monkeypatch.setattr(recorder, "_persist", _fail)

    assert recorder.record("Patient", 1, AuditAction.CREATE) is False
    assert _entries(session) == []


def test_bytes_in_changes_serialize_as_base64() -> None:
    assert json.loads(serialize_changes({"token": b"\x00\xff\x10"})) == {"token": "AP8Q"}
