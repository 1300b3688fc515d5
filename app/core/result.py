"""Outcome types returned by the record service.

Expected failure conditions travel as values; the HTTP layer maps
``ErrorKind`` to a status code.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Iterable, Mapping, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION_FAILED = "ValidationFailed"
    DUPLICATE_ENTITY = "DuplicateEntity"
    CONCURRENCY_CONFLICT = "ConcurrencyConflict"
    NOT_FOUND = "NotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    TRANSIENT_FAILURE = "TransientFailure"


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str
    errors: dict[str, list[str]] | None = None


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        errors: Mapping[str, list[str]] | None = None,
    ) -> "Result[T]":
        return cls(error=ServiceError(kind=kind, message=message, errors=dict(errors) if errors else None))


CONCURRENCY_MESSAGE = "The record was modified by another user. Reload it and try again."


def validation_failure(details: Iterable[Mapping[str, Any]]) -> ServiceError:
    """Group pydantic-style error dicts into field name -> messages."""
    errors: dict[str, list[str]] = {}
    for detail in details:
        loc = [part for part in detail.get("loc", ()) if part not in {"body", "query", "path", "header"}]
        name = str(loc[-1]) if loc else "__root__"
        errors.setdefault(name, []).append(str(detail.get("msg", "Invalid value")))
    return ServiceError(
        kind=ErrorKind.VALIDATION_FAILED,
        message="One or more validation errors occurred.",
        errors=errors,
    )
