from __future__ import annotations

import base64
import binascii
import math
from datetime import date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from app.utils.time import utcnow

T = TypeVar("T")

EMAIL_MAX_LENGTH = 120


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PatientCreate(CamelModel):
    document_type: str = Field(min_length=1, max_length=10)
    document_number: str = Field(min_length=1, max_length=20)
    first_name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(min_length=1, max_length=80)
    birth_date: date
    phone_number: str | None = Field(default=None, max_length=20)
    email: EmailStr | None = None

    @field_validator("document_type", "document_number", "first_name", "last_name", "phone_number", mode="before")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("phone_number", "email", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("email")
    @classmethod
    def _email_length(cls, value: str | None) -> str | None:
        if value is not None and len(value) > EMAIL_MAX_LENGTH:
            raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters")
        return value

    @field_validator("birth_date")
    @classmethod
    def _not_in_future(cls, value: date) -> date:
        if value > utcnow().date():
            raise ValueError("Birth date cannot be in the future")
        return value


class PatientUpdate(PatientCreate):
    # Base64 of the last version token the caller observed; omit to skip the check
    row_version: str | None = None

    @field_validator("row_version")
    @classmethod
    def _base64_token(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("rowVersion must be base64 encoded") from exc
        return value


class PatientRead(CamelModel):
    id: int
    document_type: str
    document_number: str
    first_name: str
    last_name: str
    birth_date: date
    phone_number: str | None = None
    email: str | None = None
    created_at: datetime
    row_version: str


class PatientFilter(BaseModel):
    """Filters shared by listing and export."""

    name: str | None = None
    document_number: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class PatientQuery(PatientFilter):
    sort_by: str | None = None
    sort_dir: str | None = "asc"
    page: int = 1
    page_size: int = 10


class PagedResult(CamelModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10

    @computed_field(alias="totalPages")  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)
