"""
Typed failures raised by the composition components.

Each error carries the HTTP status the API layer maps it to, so nothing
below the routers needs to know about HTTP.
"""
from typing import Any, Optional


class AppError(Exception):
    """Base class for every failure surfaced to the caller."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AppError):
    """Caller-supplied data violates a structural invariant."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    """Referenced entity does not exist or is soft-deleted."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message, {"entity": entity, "id": entity_id})


class ConflictError(AppError):
    """Uniqueness violation (duplicate code, name or menu pairing)."""

    status_code = 409
    error_code = "CONFLICT"


class DependencyError(AppError):
    """Delete blocked by a live referencing entity."""

    status_code = 409
    error_code = "DEPENDENCY_CONFLICT"

    def __init__(self, entity: str, entity_id: Any, blocked_by: str, blocking_ids: list):
        super().__init__(
            f"{entity} {entity_id} is still referenced by {len(blocking_ids)} {blocked_by}",
            {"entity": entity, "id": entity_id, "blocked_by": blocked_by, "blocking_ids": blocking_ids},
        )


class InvalidReferenceError(AppError):
    """A line or component points at an unknown or unusable entity."""

    status_code = 422
    error_code = "INVALID_REFERENCE"

    def __init__(self, entity: str, missing_ids: list, reason: str = "unknown or deleted"):
        super().__init__(
            f"{entity} reference(s) {sorted(missing_ids)} are {reason}",
            {"entity": entity, "ids": sorted(missing_ids), "reason": reason},
        )


class ServiceUnavailableError(AppError):
    """Relational store or cache could not be reached."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
