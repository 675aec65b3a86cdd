from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from leasekeeper.domain.lease import Lease
from leasekeeper.domain.patches import changed_paths
from leasekeeper.domain.principal import Actor, Role


_BASE_FIELDS: frozenset[str] = frozenset(
    {
        "id",
        "lease_number",
        "status",
        "type",
        "tenant_user_id",
        "property",
        "fees",
        "duration",
        "signing_method",
        "signed_date",
        "renewal_options",
        "pet_policy",
        "co_tenants",
        "utilities_included",
        "legal_terms",
        "created_at",
        "updated_at",
    }
)

# Staff-only and audit fields never shown to tenants or vendors.
_EMPLOYEE_FIELDS: frozenset[str] = _BASE_FIELDS | {
    "internal_notes",
    "approval_status",
    "approval_details",
    "pending_changes",
    "termination_reason",
    "created_by",
    "updated_by",
    "managed_by",
    "assigned_users",
    "e_signature",
    "signatures",
    "documents",
}


def filter_lease_by_role(lease: Lease, actor: Actor) -> dict[str, Any]:
    # Management-tier sees the full document; everyone else gets a projection.
    if actor.is_management:
        return lease.model_dump(mode="json", exclude_none=True)
    fields = _EMPLOYEE_FIELDS if actor.role is Role.STAFF else _BASE_FIELDS
    return lease.model_dump(mode="json", include=set(fields), exclude_none=True)


def field_label(path: str) -> str:
    parts = path.split(".")
    return " > ".join(" ".join(word.capitalize() for word in part.split("_")) for part in parts)


def changes_summary(paths: Iterable[str]) -> str:
    labels = [field_label(path) for path in paths]
    if not labels:
        return "No changes"
    if len(labels) == 1:
        return f"Modified {labels[0]}"
    if len(labels) == 2:
        return f"Modified {labels[0]} and {labels[1]}"
    return f"Modified {', '.join(labels[:-1])}, and {labels[-1]}"


def can_view_pending_changes(actor: Actor, lease: Lease) -> bool:
    if lease.pending_changes is None:
        return False
    if actor.is_management:
        return True
    # Staff only see the proposal they made themselves.
    return actor.role is Role.STAFF and lease.pending_changes.proposed_by == actor.id


def pending_changes_preview(lease: Lease, actor: Actor) -> dict[str, Any] | None:
    pending = lease.pending_changes
    if pending is None or not can_view_pending_changes(actor, lease):
        return None
    fields = changed_paths(pending.changes)
    return {
        "updated_fields": fields,
        "summary": changes_summary(fields),
        "proposed_by": pending.proposed_by,
        "proposed_at": pending.proposed_at.isoformat(),
        "display_name": pending.display_name,
        "changes": pending.changes,
    }
