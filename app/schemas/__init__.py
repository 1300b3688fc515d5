from .errors import ErrorBody
from .patient import (
    PagedResult,
    PatientCreate,
    PatientFilter,
    PatientQuery,
    PatientRead,
    PatientUpdate,
)

__all__ = [
    "ErrorBody",
    "PagedResult",
    "PatientCreate",
    "PatientFilter",
    "PatientQuery",
    "PatientRead",
    "PatientUpdate",
]
