from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
import logging
from typing import Any

from leasekeeper.core.config import PENDING_CHANGES_POLICIES, get_settings
from leasekeeper.core.errors import ConflictError, ForbiddenError, LeaseValidationError, NotFoundError
from leasekeeper.domain.lease import (
    ApprovalEntry,
    ApprovalStatus,
    Lease,
    LeaseStatus,
    Modification,
    PendingChanges,
)
from leasekeeper.domain.patches import LeasePatch, apply_patch, changed_paths, sanitize_changes
from leasekeeper.domain.principal import Actor
from leasekeeper.services.authz.strategies import AccessStrategyRegistry, Action, ResourceType
from leasekeeper.services.leases import governance
from leasekeeper.services.leases.governance import ChangeImpact
from leasekeeper.services.leases.ports import EventSink, LeaseCache, LeaseRepository, ProfileLookup
from leasekeeper.services.leases.state_machine import (
    status_label,
    validate_candidate_transition,
    validate_status_invariants,
)
from leasekeeper.services.leases.views import changes_summary, filter_lease_by_role, pending_changes_preview


logger = logging.getLogger(__name__)

EVENT_LEASE_UPDATED = "lease.updated"
EVENT_APPROVAL_REQUESTED = "lease.approval_requested"
EVENT_LEASE_APPROVED = "lease.approved"
EVENT_LEASE_REJECTED = "lease.rejected"
EVENT_STATUS_CHANGED = "lease.status_changed"
EVENT_LEASE_ARCHIVED = "lease.archived"

# Once signature is in flight or the lease is closed, only management may edit it.
_MANAGEMENT_ONLY_STATUSES: frozenset[LeaseStatus] = frozenset(
    {
        LeaseStatus.PENDING_SIGNATURE,
        LeaseStatus.EXPIRED,
        LeaseStatus.TERMINATED,
        LeaseStatus.CANCELLED,
    }
)


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class UpdateResult:
    applied: bool
    requires_approval: bool
    lease: Lease

    def to_payload(self, actor: Actor) -> dict[str, Any]:
        # The lease is always projected for the caller's role before it leaves the service.
        data: dict[str, Any] = {
            "lease": filter_lease_by_role(self.lease, actor),
            "requires_approval": self.requires_approval,
        }
        if self.requires_approval and self.lease.pending_changes is not None:
            data["pending_changes"] = self.lease.pending_changes.model_dump(mode="json", exclude_none=True)
        return data

    def to_response(self, actor: Actor) -> dict[str, Any]:
        return {"success": True, "data": self.to_payload(actor)}


def _utc_now() -> datetime:
    # Keep governance timestamps in UTC.
    return datetime.now(timezone.utc)


class LeaseUpdateOrchestrator:
    """Decides whether a lease change is applied, queued for approval, or rejected.

    Every call reads the lease once and writes it at most once. Governance failures raise before
    the write; cache invalidation, event emission and display-name lookup are best effort.
    """

    def __init__(
        self,
        *,
        repository: LeaseRepository,
        registry: AccessStrategyRegistry,
        cache: LeaseCache,
        events: EventSink,
        profiles: ProfileLookup | None = None,
        pending_changes_policy: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        policy = pending_changes_policy or get_settings().lease_pending_changes_policy
        if policy not in PENDING_CHANGES_POLICIES:
            raise ValueError(f"Unsupported pending changes policy: {policy}")
        self._repository = repository
        self._registry = registry
        self._cache = cache
        self._events = events
        self._profiles = profiles
        self._pending_changes_policy = policy
        self._clock = clock or _utc_now

    async def propose_update(self, actor: Actor, lease_id: str, change_set: Mapping[str, Any]) -> UpdateResult:
        lease = await self._load(actor, lease_id)
        self._authorize(actor, Action.UPDATE, lease)
        if lease.status in _MANAGEMENT_ONLY_STATUSES and not actor.is_management:
            raise ForbiddenError(
                f"Cannot update a lease with status {status_label(lease.status)}. Contact an administrator.",
                reason="status_requires_management",
                details={"action": Action.UPDATE.value, "status": lease.status.value},
            )
        if not change_set:
            raise LeaseValidationError("No changes were provided", reason="empty_change_set")

        paths = changed_paths(change_set)
        governance.ensure_not_reserved(paths, management=actor.is_management)
        governance.ensure_not_blocked(lease.status, paths)
        governance.ensure_signatures_intact(lease.status, paths)
        impact = governance.classify(lease.status, paths)

        if impact == ChangeImpact.HIGH_IMPACT and not actor.is_management:
            updated = await self._store_pending_changes(actor, lease, change_set)
            return UpdateResult(applied=False, requires_approval=True, lease=updated)

        pending = lease.pending_changes
        if actor.is_management and pending is not None and pending.proposed_by != actor.id:
            logger.info(
                "lease_pending_changes_overridden tenant=%s lease=%s actor=%s proposed_by=%s",
                lease.tenant_id,
                lease.id,
                actor.id,
                pending.proposed_by,
            )
        updated = await self._apply_direct(
            actor,
            lease,
            sanitize_changes(change_set),
            event_name=EVENT_LEASE_UPDATED,
        )
        return UpdateResult(applied=True, requires_approval=False, lease=updated)

    async def resolve_pending_changes(
        self,
        actor: Actor,
        lease_id: str,
        decision: ApprovalDecision | str,
        reason: str | None = None,
    ) -> UpdateResult:
        try:
            resolved = ApprovalDecision(decision)
        except ValueError as exc:
            raise LeaseValidationError(
                f"Unsupported approval decision: {decision}",
                reason="invalid_decision",
                details={"allowed": [item.value for item in ApprovalDecision]},
            ) from exc
        lease = await self._load(actor, lease_id)
        if not actor.is_management:
            raise ForbiddenError(
                "Only administrators and managers can approve or reject lease changes",
                reason="approval_requires_management",
                details={"action": Action.APPROVE.value},
            )
        self._authorize(actor, Action.APPROVE, lease)
        if resolved is ApprovalDecision.APPROVE:
            return await self._approve(actor, lease, reason)
        return await self._reject(actor, lease, reason)

    async def transition_status(
        self,
        actor: Actor,
        lease_id: str,
        target: LeaseStatus | str,
        *,
        termination_date: date | None = None,
        termination_reason: str | None = None,
    ) -> UpdateResult:
        try:
            target_status = LeaseStatus(target)
        except ValueError as exc:
            raise LeaseValidationError(
                f"Unknown lease status: {target}",
                reason="invalid_status",
                details={"allowed": [status.value for status in LeaseStatus]},
            ) from exc
        lease = await self._load(actor, lease_id)
        self._authorize(actor, Action.UPDATE, lease)
        if not actor.is_management:
            raise ForbiddenError(
                "Only administrators and managers can change lease status",
                reason="status_change_requires_management",
                details={"action": Action.UPDATE.value, "status": target_status.value},
            )
        if target_status == lease.status:
            return UpdateResult(applied=False, requires_approval=False, lease=lease)

        now = self._clock()
        set_fields: dict[str, Any] = {
            "status": target_status.value,
            "updated_at": now,
            "updated_by": actor.id,
        }
        if target_status == LeaseStatus.TERMINATED:
            if termination_date is not None:
                set_fields["duration.termination_date"] = termination_date
            if termination_reason is not None:
                set_fields["termination_reason"] = termination_reason
        patch = LeasePatch(
            set_fields=set_fields,
            push={
                "modifications": [
                    Modification(
                        type="status_changed",
                        date=now,
                        performed_by=actor.id,
                        changes=sorted(set_fields),
                    )
                ]
            },
            expect_status=lease.status,
        )
        candidate = apply_patch(lease, patch)
        validate_candidate_transition(lease, candidate)
        updated = await self._write(lease, patch)
        await self._after_write(
            actor,
            updated,
            EVENT_STATUS_CHANGED,
            {"from_status": lease.status.value, "to_status": updated.status.value},
        )
        return UpdateResult(applied=True, requires_approval=False, lease=updated)

    async def get_lease(self, actor: Actor, lease_id: str) -> dict[str, Any]:
        lease = await self._load(actor, lease_id)
        self._authorize(actor, Action.READ, lease)
        view = filter_lease_by_role(lease, actor)
        preview = pending_changes_preview(lease, actor)
        if preview is not None:
            view["pending_changes_preview"] = preview
        return view

    async def archive_lease(self, actor: Actor, lease_id: str) -> UpdateResult:
        lease = await self._load(actor, lease_id)
        self._authorize(actor, Action.DELETE, lease)
        if lease.status == LeaseStatus.ACTIVE:
            raise LeaseValidationError(
                "Active leases cannot be deleted; terminate the lease first",
                reason="active_lease_delete",
                details={"status": lease.status.value},
            )
        now = self._clock()
        patch = LeasePatch(
            set_fields={"deleted_at": now, "updated_at": now, "updated_by": actor.id},
            push={"modifications": [Modification(type="archived", date=now, performed_by=actor.id)]},
            expect_status=lease.status,
        )
        updated = await self._write(lease, patch)
        await self._after_write(actor, updated, EVENT_LEASE_ARCHIVED, {})
        return UpdateResult(applied=True, requires_approval=False, lease=updated)

    async def _load(self, actor: Actor, lease_id: str) -> Lease:
        # Missing, soft-deleted and cross-client leases look identical to the caller.
        lease = await self._repository.find_by_id(actor.tenant_id, lease_id)
        if lease is None or lease.deleted_at is not None or lease.tenant_id != actor.tenant_id:
            raise NotFoundError("Lease not found", reason="lease_not_found", details={"lease_id": lease_id})
        return lease

    def _authorize(self, actor: Actor, action: Action, lease: Lease) -> None:
        if not self._registry.can_access(actor, ResourceType.LEASE, action, lease):
            raise ForbiddenError(
                f"You are not authorized to {action.value} this lease",
                reason="access_denied",
                details={"action": action.value, "resource_type": ResourceType.LEASE.value},
            )

    async def _store_pending_changes(self, actor: Actor, lease: Lease, change_set: Mapping[str, Any]) -> Lease:
        existing = lease.pending_changes
        if existing is not None and self._pending_changes_policy == "reject":
            raise ConflictError(
                "This lease already has pending changes awaiting approval",
                reason="pending_changes_exist",
                details={
                    "proposed_by": existing.proposed_by,
                    "proposed_at": existing.proposed_at.isoformat(),
                },
            )
        # Invalid values fail at proposal time rather than at approval time.
        apply_patch(lease, sanitize_changes(change_set))

        display_name = await self._display_name(actor)
        envelope = PendingChanges(
            changes=dict(change_set),
            proposed_by=actor.id,
            proposed_at=self._clock(),
            display_name=display_name,
        )
        patch = LeasePatch(
            set_fields={"pending_changes": envelope},
            expect_pending_at=existing.proposed_at if existing is not None else None,
            expect_no_pending=existing is None,
        )
        updated = await self._write(lease, patch)
        paths = changed_paths(change_set)
        await self._after_write(
            actor,
            updated,
            EVENT_APPROVAL_REQUESTED,
            {
                "changed_fields": paths,
                "summary": changes_summary(paths),
                "proposed_by": actor.id,
                "display_name": display_name,
                "replaced_pending_changes": existing is not None,
            },
        )
        return updated

    async def _apply_direct(
        self,
        actor: Actor,
        lease: Lease,
        patch: LeasePatch,
        *,
        event_name: str,
        event_payload: dict[str, Any] | None = None,
        resolution: LeasePatch | None = None,
    ) -> Lease:
        # Only the business paths are recorded; resolution and audit fields ride along.
        now = self._clock()
        paths = patch.changed_paths
        audit = LeasePatch(
            set_fields={"updated_at": now, "updated_by": actor.id},
            push={"modifications": [Modification(type="modified", date=now, performed_by=actor.id, changes=paths)]},
        )
        full_patch = patch.merged(audit)
        if resolution is not None:
            full_patch = full_patch.merged(resolution)
        candidate = apply_patch(lease, full_patch)
        validate_status_invariants(candidate)
        updated = await self._write(lease, full_patch)
        await self._after_write(
            actor,
            updated,
            event_name,
            {"changed_fields": paths, "summary": changes_summary(paths), **(event_payload or {})},
        )
        return updated

    async def _approve(self, actor: Actor, lease: Lease, notes: str | None) -> UpdateResult:
        now = self._clock()
        entry = ApprovalEntry(action="approved", actor=actor.id, timestamp=now, notes=notes)
        pending = lease.pending_changes
        if pending is None:
            if lease.approval_status == ApprovalStatus.APPROVED:
                raise ConflictError(
                    "Lease is already approved and has no pending changes",
                    reason="nothing_to_approve",
                )
            patch = LeasePatch(
                set_fields={
                    "approval_status": ApprovalStatus.APPROVED.value,
                    "updated_at": now,
                    "updated_by": actor.id,
                },
                push={"approval_details": [entry]},
                expect_no_pending=True,
            )
            updated = await self._write(lease, patch)
            await self._after_write(actor, updated, EVENT_LEASE_APPROVED, {"had_pending_changes": False})
            return UpdateResult(applied=True, requires_approval=False, lease=updated)

        # The stored proposal goes through the same governance as a direct edit by the approver.
        paths = changed_paths(pending.changes)
        governance.ensure_not_reserved(paths)
        governance.ensure_not_blocked(lease.status, paths)
        governance.ensure_signatures_intact(lease.status, paths)
        resolution = LeasePatch(
            set_fields={"pending_changes": None, "approval_status": ApprovalStatus.APPROVED.value},
            push={"approval_details": [entry]},
            expect_pending_at=pending.proposed_at,
        )
        updated = await self._apply_direct(
            actor,
            lease,
            sanitize_changes(pending.changes),
            event_name=EVENT_LEASE_APPROVED,
            event_payload={"had_pending_changes": True, "proposed_by": pending.proposed_by},
            resolution=resolution,
        )
        return UpdateResult(applied=True, requires_approval=False, lease=updated)

    async def _reject(self, actor: Actor, lease: Lease, reason: str | None) -> UpdateResult:
        if not (reason or "").strip():
            raise LeaseValidationError("Rejection reason is required", reason="rejection_reason_required")
        now = self._clock()
        entry = ApprovalEntry(action="rejected", actor=actor.id, timestamp=now, notes=reason)
        pending = lease.pending_changes
        if pending is not None:
            # The lease body stays untouched; only the envelope is discarded.
            patch = LeasePatch(
                set_fields={"pending_changes": None},
                push={"approval_details": [entry]},
                expect_pending_at=pending.proposed_at,
            )
        elif lease.approval_status == ApprovalStatus.PENDING:
            patch = LeasePatch(
                set_fields={
                    "approval_status": ApprovalStatus.REJECTED.value,
                    "updated_at": now,
                    "updated_by": actor.id,
                },
                push={"approval_details": [entry]},
                expect_no_pending=True,
            )
        else:
            raise ConflictError(
                "Lease has no pending changes or approval request to reject",
                reason="nothing_to_reject",
            )
        updated = await self._write(lease, patch)
        await self._after_write(
            actor,
            updated,
            EVENT_LEASE_REJECTED,
            {
                "reason": reason,
                "had_pending_changes": pending is not None,
                "proposed_by": pending.proposed_by if pending is not None else None,
            },
        )
        return UpdateResult(applied=False, requires_approval=False, lease=updated)

    async def _write(self, lease: Lease, patch: LeasePatch) -> Lease:
        updated = await self._repository.update(lease.tenant_id, lease.id, patch)
        if updated is not None:
            return updated
        if patch.is_guarded:
            raise ConflictError(
                "Lease was modified by another request; reload and retry",
                reason="write_conflict",
                details={"lease_id": lease.id},
            )
        raise NotFoundError("Lease not found", reason="lease_not_found", details={"lease_id": lease.id})

    async def _after_write(self, actor: Actor, lease: Lease, event_name: str, extra: dict[str, Any]) -> None:
        # The write is committed; nothing below may fail the request.
        try:
            await self._cache.invalidate(lease.tenant_id, lease.id)
        except Exception as exc:  # noqa: BLE001 - cache outages must not roll back the write
            logger.warning(
                "lease_cache_invalidate_failed tenant=%s lease=%s",
                lease.tenant_id,
                lease.id,
                exc_info=exc,
            )
        payload = {
            "tenant_id": lease.tenant_id,
            "lease_id": lease.id,
            "lease_number": lease.lease_number,
            "status": lease.status.value,
            "actor_id": actor.id,
            "actor_role": actor.role.value,
            **extra,
        }
        try:
            await self._events.emit(event_name, payload)
        except Exception as exc:  # noqa: BLE001 - event delivery is fire-and-forget
            logger.warning(
                "lease_event_emit_failed event=%s tenant=%s lease=%s",
                event_name,
                lease.tenant_id,
                lease.id,
                exc_info=exc,
            )

    async def _display_name(self, actor: Actor) -> str | None:
        if self._profiles is None:
            return None
        try:
            return await self._profiles.display_name(actor.tenant_id, actor.id)
        except Exception as exc:  # noqa: BLE001 - display names are cosmetic
            logger.warning("lease_profile_lookup_failed tenant=%s user=%s", actor.tenant_id, actor.id, exc_info=exc)
            return None
