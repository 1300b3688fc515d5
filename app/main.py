from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.routes import error_response, router as api_router
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.core.result import validation_failure
from app.schemas import ErrorBody
from app.services.db import init_db
from app.utils.time import utcnow

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(title="Patient Records Service", version="0.1.0")

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Validation failed for {method} {path}", method=request.method, path=request.url.path)
    return error_response(validation_failure(exc.errors()))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: ARG001
    logger.exception("Unhandled error for {method} {path}", method=request.method, path=request.url.path)
    body = ErrorBody(
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error="InternalServerError",
        message="An unexpected error occurred.",
        timestamp=utcnow(),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(mode="json", exclude_none=True),
    )


@app.on_event("startup")
async def on_startup() -> None:
    logger.info("Starting patient records service env={env}", env=settings.env)
    init_db()
