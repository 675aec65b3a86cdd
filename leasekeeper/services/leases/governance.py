from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from leasekeeper.core.errors import LeaseValidationError
from leasekeeper.domain.lease import TERMINAL_STATUSES, LeaseStatus


class ChangeImpact(str, Enum):
    BLOCKED = "blocked"
    LOW_IMPACT = "low_impact"
    HIGH_IMPACT = "high_impact"


# Contract terms locked once a lease is ACTIVE; nested paths are locked with their root.
ACTIVE_IMMUTABLE_ROOTS: tuple[str, ...] = (
    "tenant_user_id",
    "tenant_id",
    "property",
    "duration",
    "fees",
    "type",
)

# Financial and contractual terms routed through approval for non-management actors.
HIGH_IMPACT_ROOTS: tuple[str, ...] = ("property", "fees", "duration")

# Owned by the lifecycle and approval workflows; no change set may write them.
RESERVED_ROOTS: tuple[str, ...] = (
    "id",
    "tenant_id",
    "lease_number",
    "status",
    "approval_status",
    "pending_changes",
    "approval_details",
    "modifications",
    "created_by",
    "created_at",
    "updated_at",
    "updated_by",
    "deleted_at",
    "version",
    # Signature evidence is written by the signing flow only.
    "signing_method",
    "e_signature",
    "signatures",
    "signed_date",
    "documents",
)

# Ownership fields the lease access rules check; only management may reassign them.
OWNERSHIP_ROOTS: tuple[str, ...] = ("managed_by", "assigned_users")

# Terms a collected signature attests to; editing them while signing is in flight voids the signatures.
SIGNATURE_INVALIDATING_ROOTS: tuple[str, ...] = ("tenant_user_id", "property", "duration", "fees", "type")


def path_under(path: str, root: str) -> bool:
    return path == root or path.startswith(root + ".")


def _matching(paths: Iterable[str], roots: Iterable[str]) -> list[str]:
    roots = tuple(roots)
    return [path for path in paths if any(path_under(path, root) for root in roots)]


def blocked_paths(current_status: LeaseStatus, changed_paths: Iterable[str]) -> list[str]:
    if current_status != LeaseStatus.ACTIVE:
        return []
    return _matching(changed_paths, ACTIVE_IMMUTABLE_ROOTS)


def high_impact_paths(changed_paths: Iterable[str]) -> list[str]:
    return _matching(changed_paths, HIGH_IMPACT_ROOTS)


def reserved_paths(changed_paths: Iterable[str], *, management: bool = False) -> list[str]:
    roots = RESERVED_ROOTS if management else RESERVED_ROOTS + OWNERSHIP_ROOTS
    return _matching(changed_paths, roots)


def signature_invalidating_paths(current_status: LeaseStatus, changed_paths: Iterable[str]) -> list[str]:
    if current_status != LeaseStatus.PENDING_SIGNATURE:
        return []
    return _matching(changed_paths, SIGNATURE_INVALIDATING_ROOTS)


def classify(current_status: LeaseStatus, changed_paths: Iterable[str]) -> ChangeImpact:
    """Classify a change set against the lease's current status.

    The result does not depend on who is asking; routing by role happens in the orchestrator.
    """
    paths = list(changed_paths)
    if blocked_paths(current_status, paths):
        return ChangeImpact.BLOCKED
    if current_status not in TERMINAL_STATUSES and high_impact_paths(paths):
        return ChangeImpact.HIGH_IMPACT
    return ChangeImpact.LOW_IMPACT


def ensure_not_blocked(current_status: LeaseStatus, changed_paths: Iterable[str]) -> None:
    blocked = blocked_paths(current_status, changed_paths)
    if blocked:
        raise LeaseValidationError(
            "The following fields cannot be modified on an ACTIVE lease: "
            f"{', '.join(blocked)}. These fields are locked to maintain lease integrity.",
            reason="immutable_fields",
            details={"fields": blocked},
        )


def ensure_not_reserved(changed_paths: Iterable[str], *, management: bool = False) -> None:
    reserved = reserved_paths(changed_paths, management=management)
    if reserved:
        raise LeaseValidationError(
            f"The following fields are managed by the lease workflow and cannot be edited: {', '.join(reserved)}",
            reason="reserved_fields",
            details={"fields": reserved},
        )


def ensure_signatures_intact(current_status: LeaseStatus, changed_paths: Iterable[str]) -> None:
    invalidating = signature_invalidating_paths(current_status, changed_paths)
    if invalidating:
        raise LeaseValidationError(
            "Cannot modify lease fields that invalidate signatures while pending signature: "
            f"{', '.join(invalidating)}",
            reason="signature_invalidating_fields",
            details={"fields": invalidating},
        )
