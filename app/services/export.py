from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from loguru import logger

from app.core.result import ErrorKind, Result
from app.models.patient import Patient
from app.schemas.patient import PatientFilter
from app.services.query import PatientQueryEngine
from app.utils.time import export_filename, format_date, format_timestamp

CSV_HEADER = ("DocumentType", "DocumentNumber", "FirstName", "LastName", "Email", "BirthDate", "CreatedAt")
CSV_MEDIA_TYPE = "text/csv"
_NEEDS_QUOTES = (",", '"', "\n", "\r")


@dataclass(frozen=True)
class CsvExport:
    filename: str
    content: bytes
    row_count: int
    media_type: str = CSV_MEDIA_TYPE


def escape_field(value: str | None) -> str:
    if not value:
        return ""
    if any(token in value for token in _NEEDS_QUOTES):
        return '"' + value.replace('"', '""') + '"'
    return value


def render_row(patient: Patient) -> str:
    return ",".join(
        [
            escape_field(patient.document_type),
            escape_field(patient.document_number),
            escape_field(patient.first_name),
            escape_field(patient.last_name),
            escape_field(patient.email),
            format_date(patient.birth_date),
            format_timestamp(patient.created_at),
        ]
    )


def render_csv(patients: Iterable[Patient]) -> str:
    lines = [",".join(CSV_HEADER)]
    lines.extend(render_row(patient) for patient in patients)
    return "\n".join(lines) + "\n"


class CsvExporter:
    def __init__(self, query_engine: PatientQueryEngine) -> None:
        self.query_engine = query_engine

    def export(self, filters: PatientFilter, *, now: datetime | None = None) -> Result[CsvExport]:
        if filters.created_from is None:
            return Result.failure(ErrorKind.INVALID_ARGUMENT, "The 'createdFrom' parameter is required to export patients.")

        patients = self.query_engine.for_export(filters)
        if not patients:
            return Result.failure(ErrorKind.NOT_FOUND, "No patients matched the export filters.")

        content = render_csv(patients).encode("utf-8")
        export = CsvExport(filename=export_filename("patients", now), content=content, row_count=len(patients))
        logger.info("Exported {count} patients to {filename}", count=export.row_count, filename=export.filename)
        return Result.success(export)
