"""Health & Readiness Probes — liveness and contract-configuration readiness.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 until a session exists with both contracts configured

Design Decisions:
    - Readiness reports configuration only: probing the RPC on every check would spend
      the provider's rate limit
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from talk2me.core.domain_types import ContractName

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {"status": "healthy", "service": "talk2me-ledger-sync", "version": "1.0.0"}


@router.get("/ready")
async def readiness_check(request: Request):
    services = getattr(request.app.state, "services", None)
    if services is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "session_unavailable"},
        )
    gateway = services.session.reads.gateway
    checks = {c.value: gateway.is_configured(c) for c in ContractName}
    if not all(checks.values()):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "contract_not_configured", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
