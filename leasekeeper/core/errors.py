from __future__ import annotations

from typing import Any


class LeaseKeeperError(Exception):
    """Base error for leasekeeper governance failures."""

    code = "LEASEKEEPER_ERROR"
    status_code = 500

    def __init__(self, message: str, *, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Machine-readable cause so callers branch on reason, not on status code.
        self.reason = reason
        self.details: dict[str, Any] = dict(details or {})

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "reason": self.reason, **self.details}


class NotFoundError(LeaseKeeperError):
    """Resource absent, soft-deleted, or owned by another client."""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(LeaseKeeperError):
    """Access strategy denial or role-based gate."""

    code = "AUTH_FORBIDDEN"
    status_code = 403


class LeaseValidationError(LeaseKeeperError):
    """Blocked field, invalid transition, or unmet lifecycle precondition."""

    code = "VALIDATION_ERROR"
    status_code = 422


class ConflictError(LeaseKeeperError):
    """Competing change on the same lease; the caller should reload and retry."""

    code = "CONFLICT"
    status_code = 409


class TenantPredicateError(LeaseKeeperError):
    """Repository call issued without a tenant id while guard enforcement is enabled."""

    code = "TENANT_PREDICATE_REQUIRED"
    status_code = 500
