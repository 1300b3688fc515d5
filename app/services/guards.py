from __future__ import annotations

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from app.models.patient import Patient


class DuplicateChecker:
    def __init__(self, session: Session) -> None:
        self.session = session

    def exists(self, document_type: str, document_number: str, exclude_id: int | None = None) -> bool:
        """Return True when another record already holds this document identity."""
        criteria = [
            Patient.document_type == document_type,
            Patient.document_number == document_number,
        ]
        if exclude_id is not None:
            criteria.append(Patient.id != exclude_id)
        stmt = select(exists().where(*criteria))
        return bool(self.session.scalar(stmt))


class ConcurrencyGuard:
    """Application-level version check, run once before the write.

    The authoritative check is the conditional UPDATE issued by the mapper's
    ``version_id_col``; this only fails fast.
    """

    @staticmethod
    def check_token(expected: bytes | None, actual: bytes | None) -> bool:
        if expected is None:
            return True
        if actual is None:
            return False
        return bytes(expected) == bytes(actual)
