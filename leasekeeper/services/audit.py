from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leasekeeper.core.config import get_settings
from leasekeeper.domain.models import AuditEvent


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["authorization", "token", "secret", "password", "ssn", "bank_account"]
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    # Match sensitive key fragments case-insensitively to enforce redaction policy.
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, (list, tuple)):
        return [sanitize_metadata(item) for item in value]
    return value


async def record_event(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    occurred_at: datetime | None = None,
    tenant_id: str | None,
    actor_type: str,
    actor_id: str | None,
    actor_role: str | None,
    event_type: str,
    outcome: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    best_effort: bool = True,
) -> None:
    # Write audit rows in a best-effort manner to avoid breaking lease flows.
    event = AuditEvent(
        occurred_at=occurred_at or datetime.now(timezone.utc),
        tenant_id=tenant_id,
        actor_type=actor_type,
        actor_id=actor_id,
        actor_role=actor_role,
        event_type=event_type,
        outcome=outcome,
        resource_type=resource_type,
        resource_id=resource_id,
        metadata_json=sanitize_metadata(metadata or {}),
    )
    async with session_factory() as audit_session:
        try:
            audit_session.add(event)
            await audit_session.commit()
        except SQLAlchemyError as exc:
            await audit_session.rollback()
            if not best_effort:
                raise
            logger.warning("audit_event_write_failed event_type=%s", event_type, exc_info=exc)


class AuditEventSink:
    """Lease lifecycle events persisted as audit rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, enabled: bool | None = None) -> None:
        self._session_factory = session_factory
        self._enabled = get_settings().audit_events_enabled if enabled is None else enabled

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        if not self._enabled:
            return
        metadata = {
            key: value
            for key, value in payload.items()
            if key not in {"tenant_id", "lease_id", "actor_id", "actor_role"}
        }
        await record_event(
            self._session_factory,
            tenant_id=payload.get("tenant_id"),
            actor_type="user",
            actor_id=payload.get("actor_id"),
            actor_role=payload.get("actor_role"),
            event_type=event_name,
            outcome="success",
            resource_type="lease",
            resource_id=payload.get("lease_id"),
            metadata=metadata,
        )
