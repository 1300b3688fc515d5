"""Field-by-field conversions between wire models and the Patient row."""

from __future__ import annotations

import base64
from typing import Any

from nanoid import generate

from app.models.patient import Patient
from app.schemas.patient import PatientCreate, PatientRead, PatientUpdate
from app.utils.time import ensure_utc

VERSION_TOKEN_SIZE = 16


def new_version_token() -> bytes:
    return generate(size=VERSION_TOKEN_SIZE).encode("ascii")


def encode_version(token: bytes) -> str:
    return base64.b64encode(token).decode("ascii")


def decode_version(value: str | None) -> bytes | None:
    if value is None:
        return None
    return base64.b64decode(value, validate=True)


def to_patient(payload: PatientCreate) -> Patient:
    return Patient(
        document_type=payload.document_type,
        document_number=payload.document_number,
        first_name=payload.first_name,
        last_name=payload.last_name,
        birth_date=payload.birth_date,
        phone_number=payload.phone_number,
        email=payload.email,
        row_version=new_version_token(),
    )


def apply_update(patient: Patient, payload: PatientUpdate) -> Patient:
    """Copy the mutable fields onto ``patient`` and rotate its version token.

    ``id`` and ``created_at`` are never touched. The token is rotated even
    when nothing else changed so every accepted update is observable.
    """
    patient.document_type = payload.document_type
    patient.document_number = payload.document_number
    patient.first_name = payload.first_name
    patient.last_name = payload.last_name
    patient.birth_date = payload.birth_date
    patient.phone_number = payload.phone_number
    patient.email = payload.email
    patient.row_version = new_version_token()
    return patient


def to_read(patient: Patient) -> PatientRead:
    return PatientRead(
        id=patient.id,
        document_type=patient.document_type,
        document_number=patient.document_number,
        first_name=patient.first_name,
        last_name=patient.last_name,
        birth_date=patient.birth_date,
        phone_number=patient.phone_number,
        email=patient.email,
        created_at=ensure_utc(patient.created_at),
        row_version=encode_version(patient.row_version),
    )


def snapshot(patient: Patient) -> dict[str, Any]:
    return to_read(patient).model_dump(mode="json", by_alias=True, exclude={"row_version"})


def update_changes(payload: PatientUpdate) -> dict[str, Any]:
    return payload.model_dump(mode="json", by_alias=True, exclude={"row_version"})
