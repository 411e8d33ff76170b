"""Boundary Protocols — contracts between the sync core and its external collaborators.

Invariants:
    - Core NEVER imports from infrastructure — dependency arrows point inward only
    - Ledger, wallet and content store accessed only through these Protocol types
    - Implementations raise only Talk2MeError subclasses (classification happens inside them)

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: implementations do network IO; services await them
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from talk2me.core.domain_types import Address, ContractName, TxHash

Sleep = Callable[[float], Awaitable[None]]


class LedgerGateway(Protocol):
    """Leaf transport to the two contracts. No caching, no retries."""

    def is_configured(self, contract: ContractName) -> bool: ...

    async def read_call(
        self, contract: ContractName, fn: str, args: tuple = (),
        *, sender: Address | None = None,
    ) -> Any: ...

    async def write_call(
        self, contract: ContractName, fn: str, args: tuple = (),
        *, sender: Address,
    ) -> TxHash: ...

    async def wait_for_receipt(self, tx_hash: TxHash, timeout_s: float) -> bool:
        """True when mined successfully, False when reverted.

        Raises TransactionTimeoutError past the deadline.
        """
        ...


class WalletBridge(Protocol):
    """Chain identity accessor plus wallet-level remediation actions."""

    async def chain_id(self) -> int: ...

    async def switch_chain(self, chain_id: int) -> None:
        """Raises NetworkSwitchError (wallet_code=4902 when the chain is unknown)."""
        ...

    async def add_chain(self, definition: dict) -> None:
        """Raises NetworkSwitchError carrying the wallet's error code."""
        ...


class ContentStore(Protocol):
    """Blob upload returning a durable content reference (URL)."""

    async def upload(self, data: bytes, filename: str, mime_type: str) -> str: ...
