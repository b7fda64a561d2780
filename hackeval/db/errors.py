"""Classification of persistence failures into typed kinds.

Workflows branch on :class:`StoreErrorKind` instead of inspecting driver
error codes, so conflict, not-found and transient failures stay distinct.
"""

from __future__ import annotations

import enum
from typing import Optional

from sqlalchemy import exc as sa_exc


class StoreErrorKind(str, enum.Enum):
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# SQLSTATE values reported by the PostgreSQL and MySQL drivers.
_UNIQUE_SQLSTATES = {"23505", "23000"}
_FK_SQLSTATES = {"23503"}
_TIMEOUT_SQLSTATES = {"57014", "55P03", "40001", "40P01", "HYT00"}


def _sqlstate(error: sa_exc.DBAPIError) -> Optional[str]:
    orig = error.orig
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def _message(error: sa_exc.DBAPIError) -> str:
    return str(error.orig).lower() if error.orig is not None else ""


def classify(error: BaseException) -> StoreErrorKind:
    """Map a SQLAlchemy exception onto a :class:`StoreErrorKind`."""

    if isinstance(error, sa_exc.NoResultFound):
        return StoreErrorKind.NOT_FOUND
    if isinstance(error, sa_exc.TimeoutError):
        return StoreErrorKind.TIMEOUT
    if isinstance(error, sa_exc.IntegrityError):
        state = _sqlstate(error)
        message = _message(error)
        # MySQL reports both unique and FK failures as 23000.
        if state in _FK_SQLSTATES or "foreign key" in message:
            return StoreErrorKind.FOREIGN_KEY_VIOLATION
        if state in _UNIQUE_SQLSTATES or "unique" in message or "duplicate" in message:
            return StoreErrorKind.UNIQUE_VIOLATION
        return StoreErrorKind.UNKNOWN
    if isinstance(error, sa_exc.OperationalError):
        state = _sqlstate(error)
        message = _message(error)
        if state in _TIMEOUT_SQLSTATES or "locked" in message or "timeout" in message:
            return StoreErrorKind.TIMEOUT
        return StoreErrorKind.UNKNOWN
    return StoreErrorKind.UNKNOWN

