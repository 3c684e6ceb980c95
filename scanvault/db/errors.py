"""
Document store error taxonomy.

Every store failure carries a string ``code`` in the same style as hosted
document databases (``already-exists``, ``permission-denied``, ...). Callers
classify failures by *code signature* rather than by exception class, so
errors raised by other store implementations with the same codes classify
the same way.
"""

from __future__ import annotations


class DocumentStoreError(Exception):
    """Base class for document store failures."""

    code: str = "unknown"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class DocumentAlreadyExistsError(DocumentStoreError):
    """A create-only write hit an existing document."""

    code = "already-exists"


class PermissionDeniedError(DocumentStoreError):
    """The write is not allowed, e.g. overwriting a create-only document."""

    code = "permission-denied"


def error_code(exc: BaseException) -> str:
    """Lower-cased ``code`` attribute of ``exc``, or ``""``."""
    return str(getattr(exc, "code", "") or "").lower()


def is_duplicate_signature(exc: BaseException) -> bool:
    """``True`` when ``exc`` reports that the document already exists."""
    code = error_code(exc)
    return "already" in code and "exist" in code


def is_permission_or_duplicate(exc: BaseException) -> bool:
    """``True`` for permission, already-exists and failed-precondition codes."""
    code = error_code(exc)
    return "permission" in code or "already" in code or "failed-precondition" in code
