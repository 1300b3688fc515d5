from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ErrorBody(BaseModel):
    status: int
    error: str
    message: str
    errors: dict[str, list[str]] | None = None
    timestamp: datetime
