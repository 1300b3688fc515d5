from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.utils.time import utcnow

from .base import Base


class Patient(Base):
    __table_args__ = (
        UniqueConstraint("document_type", "document_number", name="uq_patient_document"),
        # Ids of deleted rows are never handed out again
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    document_type: Mapped[str] = mapped_column(String(10), nullable=False)
    document_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    # Assigned explicitly on every write; see app.services.mapping.new_version_token
    row_version: Mapped[bytes] = mapped_column(LargeBinary(16), nullable=False)

    __mapper_args__ = {
        "version_id_col": row_version,
        "version_id_generator": False,
    }
