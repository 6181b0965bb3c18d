"""
Domain error taxonomy shared by the catalog, lead pipeline and activity ledger.

Services raise these; ``nibret.main`` registers handlers that turn them into
structured JSON responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_REQUEST_LOCATIONS = ("body", "query", "path", "header")


class DomainError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(DomainError):
    """Input violated a field constraint. Carries the first offending field."""

    status_code = 400
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        return payload


class AuthorizationError(DomainError):
    """Caller lacks the role or ownership required for the operation."""

    status_code = 403
    default_message = "Not authorized to perform this action"


class NotFoundError(DomainError):
    """Unknown id. The message never distinguishes deleted from never-existed."""

    status_code = 404

    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(f"{resource} not found")


class ConflictError(DomainError):
    """Write conflicts with existing state (e.g. duplicate contact)."""

    status_code = 409
    default_message = "Conflict with existing record"


class StorageError(DomainError):
    """Persistence failure on the primary path."""

    status_code = 500
    default_message = "Storage failure"


def first_error(exc: Any) -> ValidationError:
    """Reduce a pydantic (or FastAPI request) failure to the first violated constraint."""
    errors = exc.errors()
    if not errors:
        return ValidationError()
    error = errors[0]
    loc = [str(part) for part in error.get("loc", ()) if part not in _REQUEST_LOCATIONS]
    field = ".".join(loc) or None
    message = error.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    if field:
        message = f"{field}: {message}"
    return ValidationError(message, field=field)


def parse_payload(model: Type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` into ``model`` raising the domain ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise first_error(exc) from exc


__all__ = [
    "DomainError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "first_error",
    "parse_payload",
]
