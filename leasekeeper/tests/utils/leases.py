from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

from leasekeeper.domain.lease import (
    ApprovalStatus,
    Lease,
    LeaseDocumentRef,
    LeaseDuration,
    LeaseFees,
    LeaseProperty,
    LeaseSignature,
    LeaseStatus,
    SigningMethod,
)
from leasekeeper.domain.patches import LeasePatch, apply_patch, preconditions_hold
from leasekeeper.domain.principal import Actor, Role
from leasekeeper.services.authz.strategies import build_default_registry
from leasekeeper.services.leases.orchestrator import LeaseUpdateOrchestrator


CLIENT_ID = "client-a"
OTHER_CLIENT_ID = "client-b"
ADMIN_ID = "user-admin"
MANAGER_ID = "user-manager"
STAFF_ID = "user-staff"
OTHER_STAFF_ID = "user-staff-2"
TENANT_USER_ID = "user-tenant"
VENDOR_ID = "user-vendor"
BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

_DEFAULT_IDS = {
    Role.ADMIN: ADMIN_ID,
    Role.MANAGER: MANAGER_ID,
    Role.STAFF: STAFF_ID,
    Role.TENANT: TENANT_USER_ID,
    Role.VENDOR: VENDOR_ID,
}


def make_actor(role: Role | str, *, actor_id: str | None = None, tenant_id: str = CLIENT_ID) -> Actor:
    resolved = Role(role)
    return Actor(id=actor_id or _DEFAULT_IDS[resolved], role=resolved, tenant_id=tenant_id)


def make_lease(**overrides: Any) -> Lease:
    # Draft lease managed by MANAGER_ID with STAFF_ID assigned.
    data: dict[str, Any] = {
        "id": "lease-1",
        "tenant_id": CLIENT_ID,
        "lease_number": "L-0001",
        "tenant_user_id": TENANT_USER_ID,
        "property": LeaseProperty(id="prop-1", unit_id="unit-101", address="101 Harbor St"),
        "fees": LeaseFees(monthly_rent=Decimal("1450.00"), security_deposit=Decimal("1450.00")),
        "duration": LeaseDuration(start_date=date(2026, 11, 1), end_date=date(2027, 10, 31)),
        "internal_notes": "Guarantor on file",
        "created_by": MANAGER_ID,
        "managed_by": MANAGER_ID,
        "assigned_users": [STAFF_ID],
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
    }
    data.update(overrides)
    return Lease(**data)


def make_signed_lease(**overrides: Any) -> Lease:
    # Satisfies every activation precondition while still in draft.
    data: dict[str, Any] = {
        "approval_status": ApprovalStatus.APPROVED,
        "signing_method": SigningMethod.MANUAL,
        "signed_date": BASE_TIME,
        "signatures": [
            LeaseSignature(
                user_id=TENANT_USER_ID,
                role="tenant",
                signature_method="manual",
                signed_at=BASE_TIME,
            )
        ],
        "documents": [LeaseDocumentRef(key="leases/L-0001.pdf", filename="L-0001.pdf")],
    }
    data.update(overrides)
    return make_lease(**data)


def make_active_lease(**overrides: Any) -> Lease:
    return make_signed_lease(status=LeaseStatus.ACTIVE, **overrides)


class StepClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self._current = start

    def __call__(self) -> datetime:
        self._current = self._current + timedelta(seconds=1)
        return self._current


class InMemoryLeaseRepository:
    """Stores serialized documents so every read sees exactly what was written."""

    def __init__(self, *leases: Lease) -> None:
        self._documents: dict[tuple[str, str], dict[str, Any]] = {}
        self.writes: list[LeasePatch] = []
        self.failed_guards = 0
        # Runs after the read inside ``update`` to simulate a concurrent writer.
        self.before_update: Callable[[], None] | None = None
        for lease in leases:
            self.put(lease)

    def put(self, lease: Lease) -> None:
        self._documents[(lease.tenant_id, lease.id)] = lease.to_document()

    def get(self, tenant_id: str, lease_id: str) -> Lease:
        return Lease.model_validate(self._documents[(tenant_id, lease_id)])

    async def find_by_id(self, tenant_id: str, lease_id: str) -> Lease | None:
        document = self._documents.get((tenant_id, lease_id))
        return Lease.model_validate(document) if document is not None else None

    async def update(self, tenant_id: str, lease_id: str, patch: LeasePatch) -> Lease | None:
        if self.before_update is not None:
            hook, self.before_update = self.before_update, None
            hook()
        document = self._documents.get((tenant_id, lease_id))
        if document is None:
            return None
        current = Lease.model_validate(document)
        if current.deleted_at is not None:
            return None
        if not preconditions_hold(current, patch):
            self.failed_guards += 1
            return None
        updated = apply_patch(current, patch).model_copy(update={"version": current.version + 1})
        self._documents[(tenant_id, lease_id)] = updated.to_document()
        self.writes.append(patch)
        return updated


class RecordingCache:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.invalidated: list[tuple[str, str]] = []

    async def invalidate(self, tenant_id: str, lease_id: str) -> None:
        if self.fail:
            raise ConnectionError("cache unavailable")
        self.invalidated.append((tenant_id, lease_id))


class RecordingEvents:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("event bus unavailable")
        self.events.append((event_name, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _payload in self.events]


class StaticProfiles:
    def __init__(self, names: dict[str, str] | None = None, *, fail: bool = False) -> None:
        self._names = names or {}
        self.fail = fail

    async def display_name(self, tenant_id: str, user_id: str) -> str | None:
        if self.fail:
            raise ConnectionError("profile service unavailable")
        return self._names.get(user_id)


def build_orchestrator(
    *leases: Lease,
    cache: RecordingCache | None = None,
    events: RecordingEvents | None = None,
    profiles: StaticProfiles | None = None,
    pending_changes_policy: str = "reject",
) -> tuple[LeaseUpdateOrchestrator, InMemoryLeaseRepository, RecordingCache, RecordingEvents]:
    repository = InMemoryLeaseRepository(*leases)
    cache = cache or RecordingCache()
    events = events or RecordingEvents()
    orchestrator = LeaseUpdateOrchestrator(
        repository=repository,
        registry=build_default_registry(),
        cache=cache,
        events=events,
        profiles=profiles or StaticProfiles({STAFF_ID: "Sam Okafor"}),
        pending_changes_policy=pending_changes_policy,
        clock=StepClock(),
    )
    return orchestrator, repository, cache, events
