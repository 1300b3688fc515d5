"""Filtering, sorting and pagination over the patient collection.

Listing and export share ``build_filtered``, so the same filters match the
same rows through both paths.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from app.models.patient import Patient
from app.schemas.patient import PatientFilter, PatientQuery
from app.utils.time import ensure_utc

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

SORT_COLUMNS = {
    "firstname": Patient.first_name,
    "lastname": Patient.last_name,
    "createdat": Patient.created_at,
}


@dataclass
class QueryPage:
    items: list[Patient] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


def normalize_page(page: int | None) -> int:
    if page is None or page <= 0:
        return 1
    return page


def normalize_page_size(page_size: int | None, *, default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> int:
    if page_size is None or page_size <= 0:
        return default
    return min(page_size, maximum)


def resolve_sort(sort_by: str | None, sort_dir: str | None) -> list[ColumnElement]:
    """Translate sort parameters into ORDER BY clauses.

    Keys are matched case-insensitively with underscores ignored, so
    ``createdAt``, ``CreatedAt`` and ``created_at`` are equivalent. Unknown
    keys fall back to ascending id regardless of direction.
    """
    key = (sort_by or "").replace("_", "").lower()
    column = SORT_COLUMNS.get(key)
    if column is None:
        return [Patient.id.asc()]

    descending = (sort_dir or "").strip().lower() == "desc"
    return [column.desc() if descending else column.asc(), Patient.id.asc()]


class PatientQueryEngine:
    def __init__(
        self,
        session: Session,
        *,
        case_sensitive: bool = False,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self.session = session
        self.case_sensitive = case_sensitive
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def build_filtered(self, filters: PatientFilter) -> Select[tuple[Patient]]:
        stmt = select(Patient)

        name = (filters.name or "").strip()
        if name:
            logger.debug("Filtering patients by name={name}", name=name)
            stmt = stmt.where(
                or_(
                    self._name_match(Patient.first_name, name),
                    self._name_match(Patient.last_name, name),
                )
            )
        document_number = (filters.document_number or "").strip()
        if document_number:
            stmt = stmt.where(Patient.document_number == document_number)
        if filters.created_from is not None:
            stmt = stmt.where(Patient.created_at >= ensure_utc(filters.created_from))
        if filters.created_to is not None:
            stmt = stmt.where(Patient.created_at <= ensure_utc(filters.created_to))

        return stmt

    def search(self, query: PatientQuery) -> QueryPage:
        page = normalize_page(query.page)
        page_size = normalize_page_size(query.page_size, default=self.default_page_size, maximum=self.max_page_size)

        filtered = self.build_filtered(query)
        total_count = self.count(filtered)

        offset = (page - 1) * page_size
        items: list[Patient] = []
        # Past the last row; also keeps huge offsets away from the store's integer range
        if offset < total_count:
            stmt = filtered.order_by(*resolve_sort(query.sort_by, query.sort_dir)).offset(offset).limit(page_size)
            items = list(self.session.scalars(stmt))
        logger.debug(
            "Patient search page={page} size={page_size} total={total}",
            page=page,
            page_size=page_size,
            total=total_count,
        )
        return QueryPage(items=items, total_count=total_count, page=page, page_size=page_size)

    def count(self, filtered: Select[tuple[Patient]]) -> int:
        stmt = select(func.count()).select_from(filtered.subquery())
        return int(self.session.scalar(stmt) or 0)

    def for_export(self, filters: PatientFilter) -> list[Patient]:
        stmt = self.build_filtered(filters).order_by(Patient.created_at.desc(), Patient.id.desc())
        return list(self.session.scalars(stmt))

    def _name_match(self, column, name: str) -> ColumnElement[bool]:
        if not self.case_sensitive:
            return column.icontains(name, autoescape=True)
        # SQLite's LIKE ignores ASCII case, instr() never does
        if self.session.get_bind().dialect.name == "sqlite":
            return func.instr(column, name) > 0
        return column.contains(name, autoescape=True)
