from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    TENANT = "tenant"
    VENDOR = "vendor"


MANAGEMENT_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.MANAGER})
EMPLOYEE_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.MANAGER, Role.STAFF})


def normalize_role(role: str | Role) -> Role:
    # Enforce a stable, lowercased role vocabulary before any rule lookup.
    if isinstance(role, Role):
        return role
    try:
        return Role(role.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported role: {role}") from exc


class Actor(BaseModel):
    # Authenticated caller in the context of one client; built per request, never persisted.
    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    tenant_id: str
    email: str | None = None
    # Vendor users act on behalf of one vendor company.
    linked_vendor_id: str | None = None

    @property
    def is_management(self) -> bool:
        return self.role in MANAGEMENT_ROLES

    @property
    def is_employee(self) -> bool:
        return self.role in EMPLOYEE_ROLES
