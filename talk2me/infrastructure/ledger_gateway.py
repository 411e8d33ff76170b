"""Ledger Gateway — web3.py transport to the Identity and Chat registries.

Invariants:
    - Pure transport: no caching, no retries (callers own both)
    - Every failure leaves this module as a classified Talk2MeError (rpc_errors.classify)
    - Unset or placeholder contract addresses raise NotConfiguredError before any IO
    - bytes/bytes32 results are normalized to 0x-prefixed hex strings

Design Decisions:
    - AsyncWeb3 + AsyncHTTPProvider: one event loop with the rest of the session
    - Optional local signer installs web3's sign-and-send middleware; without it the
      provider (a wallet bridge) signs and may answer 4001 (user rejected)
    - ABIs bundled as package JSON files, loaded once per process
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted
from web3.middleware import SignAndSendRawMiddlewareBuilder

from talk2me.config import Settings
from talk2me.core.domain_types import Address, ContractName, TxHash
from talk2me.core.errors import (
    ErrorContext, NotConfiguredError, TransactionTimeoutError,
)
from talk2me.infrastructure.rpc_errors import classify

logger = logging.getLogger(__name__)

ABI_DIR = Path(__file__).parent / "abis"
RECEIPT_POLL_LATENCY_S = 1.0


@lru_cache
def load_abi(contract: ContractName) -> list:
    """Load bundled ABI JSON (cached)."""
    return json.loads((ABI_DIR / f"{contract.value}.json").read_text())


def to_hex_output(value: Any) -> Any:
    """Normalize decoded contract output: bytes → 0x-hex, recursively."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, list):
        return [to_hex_output(v) for v in value]
    if isinstance(value, tuple):
        return tuple(to_hex_output(v) for v in value)
    return value


class Web3LedgerGateway:
    """LedgerGateway implementation over an AsyncWeb3 instance."""

    def __init__(self, w3: AsyncWeb3, addresses: dict[ContractName, str | None]):
        self.w3 = w3
        self._contracts = {}
        for name, address in addresses.items():
            if not address:
                logger.warning(f"Contract {name.value} not configured")
                continue
            self._contracts[name] = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(address),
                abi=load_abi(name),
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3LedgerGateway":
        w3 = AsyncWeb3(AsyncHTTPProvider(settings.rpc_url))
        if settings.signer_private_key:
            account = Account.from_key(settings.signer_private_key)
            w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
            w3.eth.default_account = account.address
            logger.info("Local signer installed", extra={"actor": account.address})
        return cls(w3, {
            ContractName.IDENTITY_REGISTRY: settings.identity_registry_address,
            ContractName.CHAT_REGISTRY: settings.chat_registry_address,
        })

    def is_configured(self, contract: ContractName) -> bool:
        return contract in self._contracts

    async def read_call(
        self, contract: ContractName, fn: str, args: tuple = (),
        *, sender: Address | None = None,
    ) -> Any:
        ctx = ErrorContext(actor=sender, contract=contract.value, function=fn)
        instance = self._instance(contract, ctx)
        try:
            bound = getattr(instance.functions, fn)(*args)
            result = await bound.call({"from": sender} if sender else None)
        except Exception as e:
            error = classify(e, ctx)
            logger.warning(
                f"Read {contract.value}.{fn} failed: {error.code}",
                extra={"error_code": error.code},
            )
            raise error from e
        return to_hex_output(result)

    async def write_call(
        self, contract: ContractName, fn: str, args: tuple = (),
        *, sender: Address,
    ) -> TxHash:
        ctx = ErrorContext(actor=sender, contract=contract.value, function=fn)
        instance = self._instance(contract, ctx)
        try:
            bound = getattr(instance.functions, fn)(*args)
            tx_hash = await bound.transact({"from": sender})
        except Exception as e:
            error = classify(e, ctx)
            logger.warning(
                f"Write {contract.value}.{fn} failed: {error.code}",
                extra={"error_code": error.code, "actor": sender},
            )
            raise error from e
        tx_hash = TxHash(to_hex_output(bytes(tx_hash)))
        logger.info(
            f"Write {contract.value}.{fn} submitted",
            extra={"tx_hash": tx_hash, "actor": sender},
        )
        return tx_hash

    async def wait_for_receipt(self, tx_hash: TxHash, timeout_s: float) -> bool:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout_s, poll_latency=RECEIPT_POLL_LATENCY_S,
            )
        except TimeExhausted as e:
            raise TransactionTimeoutError(tx_hash, timeout_s) from e
        except Exception as e:
            raise classify(e) from e
        return receipt["status"] == 1

    def _instance(self, contract: ContractName, ctx: ErrorContext):
        instance = self._contracts.get(contract)
        if instance is None:
            raise NotConfiguredError(contract.value, ctx)
        return instance
