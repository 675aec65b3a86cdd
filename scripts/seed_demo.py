from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
import sys

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
from leasekeeper.domain.models import UserProfile
from leasekeeper.persistence.db import SessionLocal
from leasekeeper.persistence.repos.leases import SqlLeaseRepository


DEMO_TENANT_ID = "client-demo"
DEMO_MANAGER_ID = "user-manager"
DEMO_STAFF_ID = "user-staff"
DEMO_TENANT_USER_ID = "user-tenant"


def build_demo_profiles() -> list[UserProfile]:
    return [
        UserProfile(id=DEMO_MANAGER_ID, tenant_id=DEMO_TENANT_ID, first_name="Morgan", last_name="Reyes"),
        UserProfile(id=DEMO_STAFF_ID, tenant_id=DEMO_TENANT_ID, first_name="Sam", last_name="Okafor"),
        UserProfile(id=DEMO_TENANT_USER_ID, tenant_id=DEMO_TENANT_ID, email="tenant@example.com"),
    ]


def build_demo_leases() -> list[Lease]:
    # One lease per interesting governance state so every flow can be exercised locally.
    now = datetime.now(timezone.utc)
    common = {
        "tenant_id": DEMO_TENANT_ID,
        "tenant_user_id": DEMO_TENANT_USER_ID,
        "created_by": DEMO_MANAGER_ID,
        "managed_by": DEMO_MANAGER_ID,
        "assigned_users": [DEMO_STAFF_ID],
        "created_at": now,
        "updated_at": now,
    }
    draft = Lease(
        id="lease-draft",
        lease_number="L-0001",
        property=LeaseProperty(id="prop-1", unit_id="unit-101", address="101 Harbor St"),
        fees=LeaseFees(monthly_rent=Decimal("1450.00"), security_deposit=Decimal("1450.00")),
        duration=LeaseDuration(start_date=date(2026, 11, 1), end_date=date(2027, 10, 31)),
        **common,
    )
    active = Lease(
        id="lease-active",
        lease_number="L-0002",
        status=LeaseStatus.ACTIVE,
        approval_status=ApprovalStatus.APPROVED,
        property=LeaseProperty(id="prop-1", unit_id="unit-102", address="101 Harbor St"),
        fees=LeaseFees(monthly_rent=Decimal("1600.00"), security_deposit=Decimal("1600.00")),
        duration=LeaseDuration(start_date=date(2026, 1, 1), end_date=date(2026, 12, 31)),
        signing_method=SigningMethod.MANUAL,
        signed_date=now,
        signatures=[
            LeaseSignature(
                user_id=DEMO_TENANT_USER_ID,
                role="tenant",
                signature_method="manual",
                signed_at=now,
            )
        ],
        documents=[LeaseDocumentRef(key="leases/L-0002.pdf", filename="L-0002.pdf", uploaded_at=now)],
        **common,
    )
    return [draft, active]


async def seed_demo() -> int:
    repository = SqlLeaseRepository(SessionLocal)
    async with SessionLocal() as session:
        for profile in build_demo_profiles():
            if await session.get(UserProfile, profile.id) is None:
                session.add(profile)
        await session.commit()

    seeded = 0
    for lease in build_demo_leases():
        if await repository.find_by_id(lease.tenant_id, lease.id) is not None:
            continue
        await repository.create(lease)
        seeded += 1
    if seeded == 0:
        print("Demo leases already seeded; skipping.")
    else:
        print(f"Seeded {seeded} demo leases for {DEMO_TENANT_ID}.")
    return 0


def main() -> int:
    # Surface clear failures and exit non-zero so CI/dev scripts can detect issues.
    try:
        return asyncio.run(seed_demo())
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
