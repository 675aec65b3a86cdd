from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from leasekeeper.core.errors import TenantPredicateError
from leasekeeper.domain.lease import LeaseStatus
from leasekeeper.domain.models import AuditEvent, Base, LeaseRecord, UserProfile
from leasekeeper.domain.patches import LeasePatch, sanitize_changes
from leasekeeper.domain.principal import Role
from leasekeeper.persistence.repos.leases import SqlLeaseRepository
from leasekeeper.persistence.repos.profiles import SqlProfileLookup
from leasekeeper.services.audit import AuditEventSink
from leasekeeper.services.authz.strategies import build_default_registry
from leasekeeper.services.cache import NullLeaseCache
from leasekeeper.services.leases.orchestrator import LeaseUpdateOrchestrator
from leasekeeper.tests.utils.leases import (
    CLIENT_ID,
    OTHER_CLIENT_ID,
    STAFF_ID,
    StepClock,
    make_actor,
    make_lease,
)


@pytest_asyncio.fixture
async def session_factory():
    # One shared in-memory sqlite connection per test.
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.mark.asyncio
async def test_create_find_and_scope_by_client(session_factory) -> None:
    repository = SqlLeaseRepository(session_factory)
    await repository.create(make_lease())

    found = await repository.find_by_id(CLIENT_ID, "lease-1")
    foreign = await repository.find_by_id(OTHER_CLIENT_ID, "lease-1")

    assert found is not None
    assert found.fees.monthly_rent == Decimal("1450.00")
    assert foreign is None


@pytest.mark.asyncio
async def test_update_applies_patch_and_bumps_version(session_factory) -> None:
    repository = SqlLeaseRepository(session_factory)
    await repository.create(make_lease())

    updated = await repository.update(
        CLIENT_ID,
        "lease-1",
        sanitize_changes({"fees": {"monthly_rent": "1600.00"}, "property": {"unit_id": ""}}),
    )

    assert updated is not None
    assert updated.version == 2
    stored = await repository.find_by_id(CLIENT_ID, "lease-1")
    assert stored.fees.monthly_rent == Decimal("1600.00")
    assert stored.property.unit_id is None
    async with session_factory() as session:
        record = (await session.execute(select(LeaseRecord))).scalar_one()
    assert record.version == 2
    assert "unit_id" not in record.document["property"]


@pytest.mark.asyncio
async def test_update_returns_none_when_guard_fails(session_factory) -> None:
    repository = SqlLeaseRepository(session_factory)
    await repository.create(make_lease())

    result = await repository.update(
        CLIENT_ID,
        "lease-1",
        LeasePatch(set_fields={"status": "cancelled"}, expect_status=LeaseStatus.ACTIVE),
    )

    assert result is None
    stored = await repository.find_by_id(CLIENT_ID, "lease-1")
    assert stored.status == LeaseStatus.DRAFT
    assert stored.version == 1


@pytest.mark.asyncio
async def test_missing_tenant_id_is_refused(session_factory) -> None:
    repository = SqlLeaseRepository(session_factory)

    with pytest.raises(TenantPredicateError):
        await repository.find_by_id("", "lease-1")


@pytest.mark.asyncio
async def test_orchestrator_over_sql_adapters(session_factory) -> None:
    repository = SqlLeaseRepository(session_factory)
    await repository.create(make_lease())
    async with session_factory() as session:
        session.add(UserProfile(id=STAFF_ID, tenant_id=CLIENT_ID, first_name="Sam", last_name="Okafor"))
        await session.commit()
    orchestrator = LeaseUpdateOrchestrator(
        repository=repository,
        registry=build_default_registry(),
        cache=NullLeaseCache(),
        events=AuditEventSink(session_factory, enabled=True),
        profiles=SqlProfileLookup(session_factory),
        pending_changes_policy="reject",
        clock=StepClock(),
    )

    await orchestrator.propose_update(make_actor(Role.STAFF), "lease-1", {"fees": {"monthly_rent": "1600.00"}})
    await orchestrator.resolve_pending_changes(make_actor(Role.MANAGER), "lease-1", "approve")

    stored = await repository.find_by_id(CLIENT_ID, "lease-1")
    assert stored.fees.monthly_rent == Decimal("1600.00")
    assert stored.pending_changes is None
    assert stored.version == 3
    async with session_factory() as session:
        events = (await session.execute(select(AuditEvent).order_by(AuditEvent.id))).scalars().all()
    assert [event.event_type for event in events] == ["lease.approval_requested", "lease.approved"]
    assert events[0].resource_id == "lease-1"
    assert events[0].metadata_json["display_name"] == "Sam Okafor"
