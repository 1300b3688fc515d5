from __future__ import annotations

from enum import Enum
from typing import Any

from loguru import logger
from pydantic_core import to_json
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit import AuditLog


class AuditAction(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class AuditRecorder:
    """Appends audit entries after a mutation has committed.

    Failures are logged and reported through the return value only; they
    never undo or fail the mutation that triggered them.
    """

    def __init__(self, session: Session, *, default_actor: str = "system") -> None:
        self.session = session
        self.default_actor = default_actor

    def record(
        self,
        entity: str,
        entity_id: int,
        action: AuditAction,
        actor: str | None = None,
        changes: Any | None = None,
    ) -> bool:
        try:
            entry = AuditLog(
                entity=entity,
                entity_id=entity_id,
                action=action.value,
                username=actor or self.default_actor,
                changes=serialize_changes(changes),
            )
            self._persist(entry)
        except (SQLAlchemyError, ValueError, TypeError):
            self.session.rollback()
            logger.exception(
                "Failed to record audit entry entity={entity} id={entity_id} action={action}",
                entity=entity,
                entity_id=entity_id,
                action=action.value,
            )
            return False
        logger.debug("Audit {action} {entity}#{entity_id}", action=action.value, entity=entity, entity_id=entity_id)
        return True

    def _persist(self, entry: AuditLog) -> None:
        self.session.add(entry)
        self.session.commit()


def serialize_changes(changes: Any | None) -> str | None:
    if changes is None:
        return None
    return to_json(changes, bytes_mode="base64").decode("utf-8")
