from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from leasekeeper.domain.principal import Actor, normalize_role
from leasekeeper.services.leases.orchestrator import LeaseUpdateOrchestrator


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
    )


async def get_actor(
    x_tenant_id: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
    x_role: str | None = Header(default=None),
    x_actor_email: str | None = Header(default=None),
    x_linked_vendor_id: str | None = Header(default=None),
) -> Actor:
    # The gateway authenticates the caller and forwards the resolved identity as headers.
    if not x_tenant_id or not x_actor_id or not x_role:
        raise _auth_error("Missing caller identity headers")
    try:
        role = normalize_role(x_role)
    except ValueError as exc:
        raise _auth_error(f"Unknown role: {x_role}") from exc
    return Actor(
        id=x_actor_id,
        role=role,
        tenant_id=x_tenant_id,
        email=x_actor_email,
        linked_vendor_id=x_linked_vendor_id,
    )


def get_orchestrator(request: Request) -> LeaseUpdateOrchestrator:
    return request.app.state.orchestrator
