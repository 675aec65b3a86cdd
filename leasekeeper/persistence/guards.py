from __future__ import annotations

from leasekeeper.core.config import get_settings
from leasekeeper.core.errors import TenantPredicateError


def require_tenant_id(tenant_id: str | None) -> None:
    # Enforce non-empty client identifiers when guard checks are enabled.
    settings = get_settings()
    if not settings.authz_require_tenant_predicate:
        return
    if not tenant_id:
        raise TenantPredicateError(
            "Tenant predicate required but tenant_id is missing",
            reason="tenant_predicate_missing",
        )


def tenant_predicate(model, tenant_id: str) -> object:
    # Build tenant predicates through a single helper to guarantee guard coverage.
    require_tenant_id(tenant_id)
    return model.tenant_id == tenant_id
