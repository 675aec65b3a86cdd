from __future__ import annotations

from datetime import date
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, Field

from leasekeeper.apps.api.deps import get_actor, get_orchestrator
from leasekeeper.apps.api.response import success_response
from leasekeeper.domain.lease import LeaseStatus
from leasekeeper.domain.principal import Actor
from leasekeeper.services.leases.orchestrator import ApprovalDecision, LeaseUpdateOrchestrator


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/leases", tags=["leases"])


class PendingChangesDecisionRequest(BaseModel):
    decision: ApprovalDecision
    # Required when rejecting; optional approval note otherwise.
    reason: str | None = Field(default=None, max_length=2000)


class StatusTransitionRequest(BaseModel):
    status: LeaseStatus
    termination_date: date | None = None
    termination_reason: str | None = Field(default=None, max_length=2000)


@router.get("/{lease_id}")
async def get_lease(
    lease_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    orchestrator: LeaseUpdateOrchestrator = Depends(get_orchestrator),
) -> dict:
    lease = await orchestrator.get_lease(actor, lease_id)
    return success_response(request=request, data={"lease": lease})


@router.patch("/{lease_id}")
async def update_lease(
    lease_id: str,
    request: Request,
    change_set: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    orchestrator: LeaseUpdateOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.propose_update(actor, lease_id, change_set)
    return success_response(request=request, data=result.to_payload(actor))


@router.post("/{lease_id}/pending-changes")
async def resolve_pending_changes(
    lease_id: str,
    payload: PendingChangesDecisionRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    orchestrator: LeaseUpdateOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.resolve_pending_changes(actor, lease_id, payload.decision, payload.reason)
    return success_response(request=request, data=result.to_payload(actor))


@router.post("/{lease_id}/status")
async def transition_status(
    lease_id: str,
    payload: StatusTransitionRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    orchestrator: LeaseUpdateOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.transition_status(
        actor,
        lease_id,
        payload.status,
        termination_date=payload.termination_date,
        termination_reason=payload.termination_reason,
    )
    return success_response(request=request, data=result.to_payload(actor))


@router.delete("/{lease_id}")
async def archive_lease(
    lease_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    orchestrator: LeaseUpdateOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.archive_lease(actor, lease_id)
    logger.info("lease_archived tenant=%s lease=%s actor=%s", actor.tenant_id, lease_id, actor.id)
    return success_response(request=request, data=result.to_payload(actor))
