"""Wallet Bridge — chain identity and chain switch/add requests over the web3 provider.

Invariants:
    - chain_id() failures are classified like any other RPC read
    - switch/add failures raise NetworkSwitchError carrying the wallet's error code
    - JSON-RPC error payloads are treated as failures even when the provider does not raise

Design Decisions:
    - Requests go through provider.make_request: wallet_* methods are not part of the
      eth namespace, and an EIP-1193 bridge answers them like any JSON-RPC call
"""

import logging
from collections.abc import Mapping

from web3 import AsyncWeb3

from talk2me.core.errors import NetworkSwitchError
from talk2me.infrastructure.rpc_errors import classify, error_code

logger = logging.getLogger(__name__)


def chain_id_hex(chain_id: int) -> str:
    return hex(chain_id)


class Web3WalletBridge:
    """WalletBridge implementation sharing the gateway's AsyncWeb3 instance."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    async def chain_id(self) -> int:
        try:
            return int(await self.w3.eth.chain_id)
        except Exception as e:
            raise classify(e) from e

    async def switch_chain(self, chain_id: int) -> None:
        await self._wallet_request(
            "wallet_switchEthereumChain", [{"chainId": chain_id_hex(chain_id)}],
        )

    async def add_chain(self, definition: dict) -> None:
        await self._wallet_request("wallet_addEthereumChain", [definition])

    async def _wallet_request(self, method: str, params: list) -> None:
        try:
            response = await self.w3.provider.make_request(method, params)
        except Exception as e:
            logger.warning(f"{method} raised: {e}")
            raise NetworkSwitchError(str(e), error_code(e)) from e

        error = response.get("error") if isinstance(response, Mapping) else None
        if error:
            code = error.get("code") if isinstance(error, Mapping) else None
            message = error.get("message", str(error)) if isinstance(error, Mapping) else str(error)
            logger.warning(f"{method} refused: {message}", extra={"error_code": code})
            raise NetworkSwitchError(message, code)
