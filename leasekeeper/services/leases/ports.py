from __future__ import annotations

from typing import Any, Protocol

from leasekeeper.domain.lease import Lease
from leasekeeper.domain.patches import LeasePatch


class LeaseRepository(Protocol):
    async def find_by_id(self, tenant_id: str, lease_id: str) -> Lease | None:
        ...

    async def update(self, tenant_id: str, lease_id: str, patch: LeasePatch) -> Lease | None:
        """Apply ``patch`` in one write; ``None`` when the lease is gone or a guard failed."""
        ...


class LeaseCache(Protocol):
    async def invalidate(self, tenant_id: str, lease_id: str) -> None:
        ...


class EventSink(Protocol):
    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class ProfileLookup(Protocol):
    async def display_name(self, tenant_id: str, user_id: str) -> str | None:
        ...
