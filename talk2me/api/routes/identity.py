"""Identity Routes — .Talk2me registration and the registered-user directory."""

import logging

from fastapi import APIRouter, Depends, Path

from talk2me.api.dependencies import get_services, outcome_response
from talk2me.schemas.session import ADDRESS_PATTERN, RegisterRequest
from talk2me.services.session_factory import SessionServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/identity", tags=["identity"])


@router.get("")
async def list_registered_users(services: SessionServices = Depends(get_services)):
    return outcome_response(await services.registration.list_registered_users())


@router.get("/{address}")
async def check_registration(
    address: str = Path(pattern=ADDRESS_PATTERN),
    services: SessionServices = Depends(get_services),
):
    return outcome_response(await services.registration.check_registration(address))


@router.post("/register")
async def register(
    body: RegisterRequest, services: SessionServices = Depends(get_services),
):
    return outcome_response(await services.registration.register(
        body.actor, body.name, body.image, body.filename, body.mime_type, body.bio,
    ))
