"""Route Dependencies — session services lookup and Outcome → HTTP mapping.

Invariants:
    - Services live on app.state (built once by the lifespan); routes never build them
    - Successful outcomes are 200; failures map to a status by error category

Design Decisions:
    - Status by category, not by code: new error codes need no route changes
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from talk2me.core.errors import NotConfiguredError
from talk2me.core.outcome import Outcome
from talk2me.services.session_factory import SessionServices

STATUS_BY_CATEGORY = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "signature": status.HTTP_400_BAD_REQUEST,
    "participation": status.HTTP_403_FORBIDDEN,
    "network": status.HTTP_409_CONFLICT,
    "rate_limit": status.HTTP_429_TOO_MANY_REQUESTS,
    "ledger": status.HTTP_502_BAD_GATEWAY,
    "configuration": status.HTTP_503_SERVICE_UNAVAILABLE,
    "connectivity": status.HTTP_503_SERVICE_UNAVAILABLE,
    "timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_services(request: Request) -> SessionServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise NotConfiguredError("session")
    return services


def outcome_response(outcome: Outcome) -> JSONResponse:
    if outcome.ok:
        return JSONResponse(status_code=status.HTTP_200_OK, content=outcome.to_dict())
    return JSONResponse(
        status_code=STATUS_BY_CATEGORY.get(
            outcome.category, status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
        content=outcome.to_dict(),
    )
