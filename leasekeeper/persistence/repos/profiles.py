from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leasekeeper.domain.models import UserProfile
from leasekeeper.persistence.guards import tenant_predicate


def format_display_name(profile: UserProfile) -> str | None:
    full_name = " ".join(part for part in (profile.first_name, profile.last_name) if part)
    return full_name or profile.email or None


class SqlProfileLookup:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def display_name(self, tenant_id: str, user_id: str) -> str | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserProfile).where(
                    UserProfile.id == user_id,
                    tenant_predicate(UserProfile, tenant_id),
                )
            )
            profile = result.scalar_one_or_none()
            return format_display_name(profile) if profile is not None else None
