from __future__ import annotations

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import AppConfig, get_settings
from app.core.result import CONCURRENCY_MESSAGE, ErrorKind, Result
from app.models.patient import Patient
from app.schemas.patient import PagedResult, PatientCreate, PatientFilter, PatientQuery, PatientRead, PatientUpdate
from app.services.audit import AuditAction, AuditRecorder
from app.services.db import Deadline, query_deadline
from app.services.export import CsvExport, CsvExporter
from app.services.guards import ConcurrencyGuard, DuplicateChecker
from app.services.mapping import apply_update, decode_version, snapshot, to_patient, to_read, update_changes
from app.services.query import PatientQueryEngine

PATIENT_ENTITY = "Patient"
DUPLICATE_MESSAGE = "A patient with the same document type and document number already exists."
TIMEOUT_MESSAGE = "The query did not finish before its deadline. Try again or narrow the filters."


class PatientService:
    """Record service: list, get, create, update, delete and export patients.

    Every operation returns a ``Result``. Mutations commit first and are
    audited afterwards; an audit failure never changes the outcome.
    """

    def __init__(self, session: Session, *, settings: AppConfig | None = None, actor: str | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.actor = actor
        self.query_engine = PatientQueryEngine(
            session,
            case_sensitive=self.settings.name_filter_case_sensitive,
            default_page_size=self.settings.default_page_size,
            max_page_size=self.settings.max_page_size,
        )
        self.duplicates = DuplicateChecker(session)
        self.guard = ConcurrencyGuard()
        self.exporter = CsvExporter(self.query_engine)
        self.audit = AuditRecorder(session, default_actor=self.settings.audit_actor)

    def list_patients(self, query: PatientQuery, *, timeout: float | None = None) -> Result[PagedResult[PatientRead]]:
        deadline = Deadline.start(self._timeout(timeout))
        try:
            with query_deadline(self.session, deadline):
                page = self.query_engine.search(query)
                if deadline.expired:
                    return self._timed_out("list")
        except OperationalError:
            if not deadline.expired:
                raise
            return self._timed_out("list")

        return Result.success(
            PagedResult[PatientRead](
                items=[to_read(patient) for patient in page.items],
                total_count=page.total_count,
                page=page.page,
                page_size=page.page_size,
            )
        )

    def get_patient(self, patient_id: int) -> Result[PatientRead]:
        patient = self.session.get(Patient, patient_id, populate_existing=True)
        if patient is None:
            return self._not_found(patient_id)
        return Result.success(to_read(patient))

    def create_patient(self, payload: PatientCreate) -> Result[PatientRead]:
        if self.duplicates.exists(payload.document_type, payload.document_number):
            logger.warning(
                "Rejected duplicate patient {document_type}/{document_number}",
                document_type=payload.document_type,
                document_number=payload.document_number,
            )
            return Result.failure(ErrorKind.DUPLICATE_ENTITY, DUPLICATE_MESSAGE)

        patient = to_patient(payload)
        self.session.add(patient)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost the race to a concurrent create; the unique constraint decided
            self.session.rollback()
            logger.warning("Unique constraint rejected patient {document_number}", document_number=payload.document_number)
            return Result.failure(ErrorKind.DUPLICATE_ENTITY, DUPLICATE_MESSAGE)

        logger.info("Created patient id={patient_id}", patient_id=patient.id)
        created = to_read(patient)
        self.audit.record(PATIENT_ENTITY, patient.id, AuditAction.CREATE, self.actor, snapshot(patient))
        return Result.success(created)

    def update_patient(self, patient_id: int, payload: PatientUpdate) -> Result[PatientRead]:
        patient = self.session.get(Patient, patient_id, populate_existing=True)
        if patient is None:
            return self._not_found(patient_id)

        if self.duplicates.exists(payload.document_type, payload.document_number, exclude_id=patient_id):
            logger.warning("Rejected update of patient id={patient_id}: duplicate document", patient_id=patient_id)
            return Result.failure(ErrorKind.DUPLICATE_ENTITY, DUPLICATE_MESSAGE)

        if not self.guard.check_token(decode_version(payload.row_version), patient.row_version):
            logger.warning("Stale version token for patient id={patient_id}", patient_id=patient_id)
            self.session.rollback()
            return Result.failure(ErrorKind.CONCURRENCY_CONFLICT, CONCURRENCY_MESSAGE)

        apply_update(patient, payload)
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            logger.warning("Concurrent write detected at commit for patient id={patient_id}", patient_id=patient_id)
            return Result.failure(ErrorKind.CONCURRENCY_CONFLICT, CONCURRENCY_MESSAGE)
        except IntegrityError:
            self.session.rollback()
            logger.warning("Unique constraint rejected update of patient id={patient_id}", patient_id=patient_id)
            return Result.failure(ErrorKind.DUPLICATE_ENTITY, DUPLICATE_MESSAGE)

        logger.info("Updated patient id={patient_id}", patient_id=patient_id)
        updated = to_read(patient)
        self.audit.record(PATIENT_ENTITY, patient_id, AuditAction.UPDATE, self.actor, update_changes(payload))
        return Result.success(updated)

    def delete_patient(self, patient_id: int) -> Result[None]:
        patient = self.session.get(Patient, patient_id, populate_existing=True)
        if patient is None:
            return self._not_found(patient_id)

        self.session.delete(patient)
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            logger.warning("Concurrent write detected while deleting patient id={patient_id}", patient_id=patient_id)
            return Result.failure(ErrorKind.CONCURRENCY_CONFLICT, CONCURRENCY_MESSAGE)

        logger.info("Deleted patient id={patient_id}", patient_id=patient_id)
        self.audit.record(PATIENT_ENTITY, patient_id, AuditAction.DELETE, self.actor)
        return Result.success(None)

    def export_patients(self, filters: PatientFilter, *, timeout: float | None = None) -> Result[CsvExport]:
        deadline = Deadline.start(self._timeout(timeout))
        try:
            with query_deadline(self.session, deadline):
                result = self.exporter.export(filters)
                if deadline.expired:
                    return self._timed_out("export")
        except OperationalError:
            if not deadline.expired:
                raise
            return self._timed_out("export")
        return result

    def _timeout(self, timeout: float | None) -> float | None:
        if timeout is None:
            return self.settings.query_timeout_sec
        return timeout

    def _timed_out(self, operation: str) -> Result:
        self.session.rollback()
        logger.warning("Patient {operation} exceeded its deadline", operation=operation)
        return Result.failure(ErrorKind.TRANSIENT_FAILURE, TIMEOUT_MESSAGE)

    def _not_found(self, patient_id: int) -> Result:
        logger.warning("Patient id={patient_id} not found", patient_id=patient_id)
        return Result.failure(ErrorKind.NOT_FOUND, f"Patient {patient_id} was not found.")
