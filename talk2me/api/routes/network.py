"""Network Routes — chain identity check, wallet remediation, chain-change events.

Invariants:
    - POST /network/chain-changed is the only path by which a wallet chain change
      reaches the session (fan-out through the network guard)
"""

import logging

from fastapi import APIRouter, Depends

from talk2me.api.dependencies import get_services, outcome_response
from talk2me.schemas.session import ChainChangedRequest
from talk2me.services.session_factory import SessionServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/network", tags=["network"])


@router.get("")
async def check_network(services: SessionServices = Depends(get_services)):
    return outcome_response(await services.network.check_network())


@router.post("/switch")
async def switch_network(services: SessionServices = Depends(get_services)):
    return outcome_response(await services.network.switch_network())


@router.post("/add")
async def add_network(services: SessionServices = Depends(get_services)):
    return outcome_response(await services.network.add_network())


@router.post("/ensure")
async def ensure_correct_network(services: SessionServices = Depends(get_services)):
    return outcome_response(await services.network.ensure_correct_network())


@router.post("/chain-changed")
async def chain_changed(
    body: ChainChangedRequest, services: SessionServices = Depends(get_services),
):
    logger.info(f"Wallet reported chain {body.chain_id}")
    return outcome_response(await services.network.notify_chain_changed(body.chain_id))
