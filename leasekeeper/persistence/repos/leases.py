from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leasekeeper.domain.lease import Lease
from leasekeeper.domain.models import LeaseRecord
from leasekeeper.domain.patches import LeasePatch, apply_patch, preconditions_hold
from leasekeeper.persistence.guards import tenant_predicate


logger = logging.getLogger(__name__)


def _to_lease(record: LeaseRecord) -> Lease:
    return Lease.model_validate(record.document)


class SqlLeaseRepository:
    """Lease storage backed by one JSON document per row.

    ``update`` reads, checks guards and writes inside a single transaction with a row lock, so a
    patch is applied completely or not at all.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, tenant_id: str, lease_id: str) -> Lease | None:
        # Return None for tenant mismatch to keep 404 semantics.
        async with self._session_factory() as session:
            result = await session.execute(
                select(LeaseRecord).where(
                    LeaseRecord.id == lease_id,
                    tenant_predicate(LeaseRecord, tenant_id),
                )
            )
            record = result.scalar_one_or_none()
            return _to_lease(record) if record is not None else None

    async def create(self, lease: Lease) -> Lease:
        async with self._session_factory() as session:
            session.add(
                LeaseRecord(
                    id=lease.id,
                    tenant_id=lease.tenant_id,
                    lease_number=lease.lease_number,
                    status=lease.status.value,
                    document=lease.to_document(),
                    version=lease.version,
                    deleted_at=lease.deleted_at,
                )
            )
            await session.commit()
        return lease

    async def update(self, tenant_id: str, lease_id: str, patch: LeasePatch) -> Lease | None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(LeaseRecord)
                    .where(
                        LeaseRecord.id == lease_id,
                        tenant_predicate(LeaseRecord, tenant_id),
                        LeaseRecord.deleted_at.is_(None),
                    )
                    .with_for_update()
                )
                record = result.scalar_one_or_none()
                if record is None:
                    return None
                current = _to_lease(record)
                if not preconditions_hold(current, patch):
                    logger.info(
                        "lease_write_guard_failed tenant=%s lease=%s paths=%s",
                        tenant_id,
                        lease_id,
                        ",".join(patch.changed_paths),
                    )
                    return None
                updated = apply_patch(current, patch).model_copy(update={"version": record.version + 1})
                record.document = updated.to_document()
                record.status = updated.status.value
                record.deleted_at = updated.deleted_at
                record.version = updated.version
            return updated
