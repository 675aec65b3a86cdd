from __future__ import annotations

from fastapi import APIRouter, Request

from leasekeeper.apps.api.response import success_response
from leasekeeper.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    # Liveness only; the lease store and cache are not probed here.
    settings = get_settings()
    return success_response(
        request=request,
        data={"status": "ok", "service": settings.app_name},
    )
