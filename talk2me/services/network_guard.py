"""Network Guard — verifies the connected chain and repairs it through the wallet.

Invariants:
    - state is UNKNOWN until the first successful check
    - switch_network()/add_network() take the 4902 fallback at most once per call
    - ensure_correct_network() never runs concurrently with itself (switch-then-verify
      is one atomic step)
    - Every public operation returns an Outcome; wallet failures never escape

Design Decisions:
    - One configured target chain (Settings.chain_id), not a list of supported chains
    - Chain change fan-out via plain subscriber callbacks: the orchestrator subscribes,
      the guard never imports it
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from talk2me.config import Settings
from talk2me.core.domain_types import (
    NetworkState, UNRECOGNIZED_CHAIN_CODE, USER_REJECTED_CODE,
)
from talk2me.core.errors import NetworkSwitchError, Talk2MeError
from talk2me.core.ledger_protocols import WalletBridge
from talk2me.core.outcome import Outcome

logger = logging.getLogger(__name__)

ChainListener = Callable[[int], Any]


def parse_chain_id(chain_id: int | str) -> int:
    """Wallet events report hex strings ("0x106a"); providers report ints."""
    if isinstance(chain_id, str):
        return int(chain_id, 16) if chain_id.lower().startswith("0x") else int(chain_id)
    return int(chain_id)


def chain_definition(settings: Settings) -> dict:
    """wallet_addEthereumChain parameter for the target chain."""
    return {
        "chainId": hex(settings.chain_id),
        "chainName": settings.chain_name,
        "nativeCurrency": {
            "name": settings.native_currency_name,
            "symbol": settings.native_currency_symbol,
            "decimals": settings.native_currency_decimals,
        },
        "rpcUrls": list(settings.chain_rpc_urls),
        "blockExplorerUrls": [settings.block_explorer_url],
    }


class NetworkGuard:
    """Tracks whether the wallet sits on the target chain and offers remediation."""

    def __init__(self, wallet: WalletBridge, target_chain_id: int, definition: dict):
        self.wallet = wallet
        self.target_chain_id = target_chain_id
        self.definition = definition
        self.state = NetworkState.UNKNOWN
        self.current_chain_id: int | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[ChainListener] = []

    @classmethod
    def from_settings(cls, wallet: WalletBridge, settings: Settings) -> "NetworkGuard":
        return cls(wallet, settings.chain_id, chain_definition(settings))

    # --- Check ---------------------------------------------------------------

    async def check_network(self) -> Outcome:
        try:
            chain_id = await self.wallet.chain_id()
        except Talk2MeError as e:
            logger.warning(f"Chain id unavailable: {e.code}", extra={"error_code": e.code})
            return e.to_outcome()
        self._record(chain_id)
        if self.state == NetworkState.CORRECT:
            return Outcome.success("Connected to the correct network", data=self.to_dict())
        return Outcome.failure(
            f"Wrong network (chain {chain_id}); switch to {self.definition['chainName']}",
            "WRONG_NETWORK", "network", current_chain_id=chain_id,
        )

    def _record(self, chain_id: int) -> None:
        self.current_chain_id = chain_id
        self.state = (
            NetworkState.CORRECT if chain_id == self.target_chain_id
            else NetworkState.INCORRECT
        )

    # --- Remediation ---------------------------------------------------------

    async def switch_network(self) -> Outcome:
        """wallet_switchEthereumChain, falling back to add once on 4902."""
        try:
            await self.wallet.switch_chain(self.target_chain_id)
        except NetworkSwitchError as e:
            if e.wallet_code != UNRECOGNIZED_CHAIN_CODE:
                return self._switch_failed(e)
            logger.info("Wallet does not know the target chain, adding it")
            try:
                await self.wallet.add_chain(self.definition)
            except NetworkSwitchError as add_error:
                return self._switch_failed(add_error)
        return await self.check_network()

    async def add_network(self) -> Outcome:
        """wallet_addEthereumChain, falling back to switch once on 4902."""
        try:
            await self.wallet.add_chain(self.definition)
        except NetworkSwitchError as e:
            if e.wallet_code != UNRECOGNIZED_CHAIN_CODE:
                return self._switch_failed(e)
            logger.info("Wallet refused to add the chain as unknown, switching instead")
            try:
                await self.wallet.switch_chain(self.target_chain_id)
            except NetworkSwitchError as switch_error:
                return self._switch_failed(switch_error)
        return await self.check_network()

    async def ensure_correct_network(self) -> Outcome:
        """Check, switch if needed, verify. Serialized."""
        async with self._lock:
            outcome = await self.check_network()
            if outcome.ok or self.state == NetworkState.UNKNOWN:
                return outcome
            return await self.switch_network()

    def _switch_failed(self, error: NetworkSwitchError) -> Outcome:
        logger.warning(
            f"Network switch failed: {error.message}",
            extra={"error_code": error.wallet_code, "chain_id": self.target_chain_id},
        )
        if error.wallet_code == USER_REJECTED_CODE:
            return Outcome.failure(
                "Network switch was rejected", error.code, error.category.value,
                wallet_code=error.wallet_code,
            )
        return error.to_outcome(wallet_code=error.wallet_code)

    # --- Chain change fan-out ------------------------------------------------

    def subscribe(self, listener: ChainListener) -> None:
        self._listeners.append(listener)

    async def notify_chain_changed(self, chain_id: int | str) -> Outcome:
        """Wallet reported a chain change: record it, then notify subscribers."""
        new_chain = parse_chain_id(chain_id)
        self._record(new_chain)
        logger.warning(
            f"Chain changed to {new_chain}",
            extra={"chain_id": new_chain},
        )
        for listener in self._listeners:
            try:
                result = listener(new_chain)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Chain change listener failed: {e}", exc_info=True)
        return Outcome.success(
            "Network changed", data=self.to_dict(),
        )

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "current_chain_id": self.current_chain_id,
            "target_chain_id": self.target_chain_id,
            "chain_name": self.definition["chainName"],
        }
