from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session

from app.core.result import ErrorKind, ServiceError
from app.schemas import ErrorBody, PatientCreate, PatientFilter, PatientQuery, PatientUpdate
from app.services.db import get_db
from app.services.patients import PatientService
from app.utils.time import parse_timestamp, utcnow

router = APIRouter()

STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE_ENTITY: status.HTTP_409_CONFLICT,
    ErrorKind.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TRANSIENT_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(error: ServiceError) -> JSONResponse:
    status_code = STATUS_BY_KIND[error.kind]
    body = ErrorBody(
        status=status_code,
        error=error.kind.value,
        message=error.message,
        errors=error.errors,
        timestamp=utcnow(),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def get_patient_service(session: Session = Depends(get_db)) -> PatientService:
    return PatientService(session=session)


def _parse_bounds(created_from: str | None, created_to: str | None) -> PatientFilter | ServiceError:
    bounds = {}
    for field, raw in (("createdFrom", created_from), ("createdTo", created_to)):
        try:
            bounds[field] = parse_timestamp(raw)
        except ValueError as exc:
            logger.warning("Invalid {field} value {value}: {error}", field=field, value=raw, error=exc)
            return ServiceError(kind=ErrorKind.INVALID_ARGUMENT, message=f"'{field}' is not a valid date or timestamp.")
    return PatientFilter(created_from=bounds["createdFrom"], created_to=bounds["createdTo"])


def _request_timeout(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value


@router.get("/patients")
def list_patients(
    name: str | None = Query(default=None),
    document_number: str | None = Query(default=None, alias="documentNumber"),
    created_from: str | None = Query(default=None, alias="createdFrom"),
    created_to: str | None = Query(default=None, alias="createdTo"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_dir: str | None = Query(default="asc", alias="sortDir"),
    page: int = Query(default=1),
    page_size: int = Query(default=10, alias="pageSize"),
    x_request_timeout: float | None = Header(default=None, alias="x-request-timeout"),
    service: PatientService = Depends(get_patient_service),
):
    bounds = _parse_bounds(created_from, created_to)
    if isinstance(bounds, ServiceError):
        return error_response(bounds)

    query = PatientQuery(
        name=name,
        document_number=document_number,
        created_from=bounds.created_from,
        created_to=bounds.created_to,
        sort_by=sort_by,
        sort_dir=sort_dir,
        page=page,
        page_size=page_size,
    )
    result = service.list_patients(query, timeout=_request_timeout(x_request_timeout))
    if not result.ok:
        return error_response(result.error)
    return JSONResponse(content=result.value.model_dump(mode="json", by_alias=True))


# Declared before /patients/{patient_id} so "export" is never read as an id
@router.get("/patients/export")
def export_patients(
    name: str | None = Query(default=None),
    document_number: str | None = Query(default=None, alias="documentNumber"),
    created_from: str | None = Query(default=None, alias="createdFrom"),
    created_to: str | None = Query(default=None, alias="createdTo"),
    x_request_timeout: float | None = Header(default=None, alias="x-request-timeout"),
    service: PatientService = Depends(get_patient_service),
):
    bounds = _parse_bounds(created_from, created_to)
    if isinstance(bounds, ServiceError):
        return error_response(bounds)

    filters = bounds.model_copy(update={"name": name, "document_number": document_number})
    result = service.export_patients(filters, timeout=_request_timeout(x_request_timeout))
    if not result.ok:
        return error_response(result.error)

    export = result.value
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/patients/{patient_id}", name="get_patient")
def get_patient(patient_id: int, service: PatientService = Depends(get_patient_service)):
    result = service.get_patient(patient_id)
    if not result.ok:
        return error_response(result.error)
    return JSONResponse(content=result.value.model_dump(mode="json", by_alias=True))


@router.post("/patients", status_code=status.HTTP_201_CREATED)
def create_patient(
    payload: PatientCreate,
    request: Request,
    service: PatientService = Depends(get_patient_service),
):
    result = service.create_patient(payload)
    if not result.ok:
        return error_response(result.error)

    created = result.value
    location = request.url_for("get_patient", patient_id=created.id)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=created.model_dump(mode="json", by_alias=True),
        headers={"Location": str(location)},
    )


@router.put("/patients/{patient_id}")
def update_patient(
    patient_id: int,
    payload: PatientUpdate,
    service: PatientService = Depends(get_patient_service),
):
    result = service.update_patient(patient_id, payload)
    if not result.ok:
        return error_response(result.error)
    return JSONResponse(content=result.value.model_dump(mode="json", by_alias=True))


@router.delete("/patients/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(patient_id: int, service: PatientService = Depends(get_patient_service)):
    result = service.delete_patient(patient_id)
    if not result.ok:
        return error_response(result.error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
