"""
Error taxonomy shared by the stores, services and HTTP layer.

Stores raise these; the handler registered in `create_app` turns them into
JSON responses. Anything not derived from `CatalogError` is a bug or an
infrastructure failure and ends up in the generic 500 handler.
"""
from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(CatalogError):
    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None, **extra: Any) -> None:
        if field:
            extra["field"] = field
        super().__init__(message, **extra)


class ConflictError(CatalogError):
    code = "conflict"


class NotFoundError(CatalogError):
    status_code = 404
    code = "not_found"


class PreconditionError(CatalogError):
    code = "precondition_failed"

    def __init__(self, message: str, *, usage_count: int | None = None, **extra: Any) -> None:
        if usage_count is not None:
            extra["usageCount"] = usage_count
        super().__init__(message, **extra)
        self.usage_count = usage_count


class UnauthorizedError(CatalogError):
    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Not authenticated. Please log in.", **extra: Any) -> None:
        super().__init__(message, **extra)


class ForbiddenError(CatalogError):
    status_code = 403
    code = "forbidden"


class StorageFault(CatalogError):
    status_code = 500
    code = "storage_fault"

    def to_dict(self) -> dict[str, Any]:
        # Never leak datastore/filesystem details to the caller.
        return {"error": "Internal storage error. Please try again.", "code": self.code}
