"""Tests for the explicit wire <-> row conversions."""

from __future__ import annotations

import base64
from datetime import date

from app.schemas.patient import PatientCreate, PatientUpdate
from app.services.mapping import (
    VERSION_TOKEN_SIZE,
    apply_update,
    decode_version,
    new_version_token,
    snapshot,
    to_patient,
    to_read,
    update_changes,
)


def _create_payload(**overrides) -> PatientCreate:
    values = {
        "documentType": "CC",
        "documentNumber": "123456789",
        "firstName": "Juan",
        "lastName": "Pérez",
        "birthDate": "1990-01-01",
    }
    values.update(overrides)
    return PatientCreate.model_validate(values)


def test_new_version_tokens_are_fresh() -> None:
    first, second = new_version_token(), new_version_token()

    assert len(first) == VERSION_TOKEN_SIZE
    assert first != second


def test_to_patient_copies_fields_and_assigns_token() -> None:
    patient = to_patient(_create_payload(email="juan@example.com", phoneNumber="3001234567"))

    assert patient.document_type == "CC"
    assert patient.document_number == "123456789"
    assert patient.birth_date == date(1990, 1, 1)
    assert patient.email == "juan@example.com"
    assert patient.phone_number == "3001234567"
    assert patient.row_version is not None
    assert patient.id is None


def test_apply_update_rotates_token_even_without_changes(make_patient) -> None:
    patient = make_patient(document_number="123456789")
    created_at = patient.created_at
    before = patient.row_version

    payload = PatientUpdate.model_validate(
        {
            "documentType": patient.document_type,
            "documentNumber": patient.document_number,
            "firstName": patient.first_name,
            "lastName": patient.last_name,
            "birthDate": patient.birth_date.isoformat(),
        }
    )
    apply_update(patient, payload)

    assert patient.row_version != before
    assert patient.created_at == created_at


def test_to_read_exposes_token_as_base64(make_patient) -> None:
    patient = make_patient()

    read = to_read(patient)

    assert decode_version(read.row_version) == patient.row_version
    assert read.created_at.tzinfo is not None
    dumped = read.model_dump(mode="json", by_alias=True)
    assert dumped["rowVersion"] == base64.b64encode(patient.row_version).decode("ascii")
    assert dumped["documentType"] == patient.document_type


def test_snapshot_and_update_changes_leave_out_token(make_patient) -> None:
    patient = make_patient()
    payload = PatientUpdate.model_validate(
        {
            "documentType": "CC",
            "documentNumber": "1",
            "firstName": "Ana",
            "lastName": "Ruiz",
            "birthDate": "1985-05-05",
            "rowVersion": base64.b64encode(b"whatever").decode("ascii"),
        }
    )

    assert "rowVersion" not in snapshot(patient)
    assert "rowVersion" not in update_changes(payload)
    assert update_changes(payload)["firstName"] == "Ana"
    assert snapshot(patient)["createdAt"].startswith("2024-01-01T08:00:00")


def test_decode_version_handles_absent_token() -> None:
    assert decode_version(None) is None
