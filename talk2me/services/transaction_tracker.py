"""Transaction Tracker — lifecycle of submitted writes with one-shot, settle-delayed callbacks.

Invariants:
    - submit() returns only after the write is signed and sent; status is then CONFIRMING
    - Submission errors (rejected signature, revert on estimate, ...) propagate to the caller
    - on_confirmed callbacks fire exactly once, settle_delay_s AFTER confirmation
    - on_failed callbacks fire exactly once, on revert or when the deadline passes
    - Callbacks registered after settlement fire immediately (still exactly once)
    - wait() returns only after the settlement callbacks have run
    - Submissions sharing a dedupe_key while the first is non-terminal return its id
    - No automatic retry at this layer
    - A submission interrupted by reset() fails with SessionResetError, never CancelledError

Design Decisions:
    - Settle delay owned here, not by callers: reads issued right after confirmation hit
      read replicas that may not have the block yet (ADR: explicit settle contract)
    - Deadline enforced by the tracker around the gateway wait: a transport that never
      answers still surfaces as a retryable TransactionTimeoutError
    - One watcher task per transaction; callers never block on confirmation
"""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable
from typing import Any

from talk2me.core.domain_types import Address, TransactionId, TxPurpose, TxStatus
from talk2me.core.errors import (
    ErrorContext, SessionResetError, Talk2MeError, TransactionFailedError,
    TransactionTimeoutError,
)
from talk2me.core.ledger_protocols import LedgerGateway, Sleep
from talk2me.core.models import PendingTransaction, TxRequest

logger = logging.getLogger(__name__)

TxCallback = Callable[[PendingTransaction], Any]


class TransactionTracker:
    """Tracks writes through SUBMITTED → CONFIRMING → CONFIRMED | FAILED."""

    def __init__(
        self,
        gateway: LedgerGateway,
        settle_delay_s: float = 1.5,
        confirmation_timeout_s: float = 45.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.gateway = gateway
        self.settle_delay_s = settle_delay_s
        self.confirmation_timeout_s = confirmation_timeout_s
        self._sleep = sleep
        self._txs: dict[TransactionId, PendingTransaction] = {}
        self._on_confirmed: dict[TransactionId, list[TxCallback]] = {}
        self._on_failed: dict[TransactionId, list[TxCallback]] = {}
        self._settled: dict[TransactionId, asyncio.Event] = {}
        self._dedupe: dict[str, asyncio.Task] = {}
        self._dedupe_by_tx: dict[TransactionId, str] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed: set[TransactionId] = set()
        self._generation = 0

    # --- Submission ----------------------------------------------------------

    async def submit(
        self, purpose: TxPurpose, request: TxRequest, sender: Address,
        dedupe_key: str | None = None,
    ) -> TransactionId:
        """Issue the write; returns a transaction id once it is CONFIRMING."""
        if dedupe_key is None:
            return await self._submit(purpose, request, sender, None)

        task = self._dedupe.get(dedupe_key)
        if task is not None:
            logger.info(
                f"Duplicate {purpose.value} submission collapsed",
                extra={"purpose": purpose.value},
            )
            return await self._await_submit(task)

        task = asyncio.ensure_future(
            self._submit(purpose, request, sender, dedupe_key),
        )
        self._dedupe[dedupe_key] = task
        task.add_done_callback(lambda t: self._release_failed_submit(dedupe_key, t))
        return await self._await_submit(task)

    async def _await_submit(self, task: asyncio.Task) -> TransactionId:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # reset() cancelled the shared submission; the caller itself was not
            if task.cancelled():
                raise SessionResetError() from None
            raise

    async def _submit(
        self, purpose: TxPurpose, request: TxRequest, sender: Address,
        dedupe_key: str | None,
    ) -> TransactionId:
        tx = PendingTransaction(
            id=TransactionId(uuid.uuid4().hex), purpose=purpose, request=request,
        )
        self._txs[tx.id] = tx
        self._settled[tx.id] = asyncio.Event()
        if dedupe_key is not None:
            self._dedupe_by_tx[tx.id] = dedupe_key

        generation = self._generation
        try:
            tx.tx_hash = await self.gateway.write_call(
                request.contract, request.function, request.args, sender=sender,
            )
        except Talk2MeError as e:
            if generation != self._generation:
                raise SessionResetError(ErrorContext(tx_id=tx.id)) from e
            tx.error = e
            tx.advance(TxStatus.FAILED)
            self._closed.add(tx.id)
            self._settled[tx.id].set()
            self._dedupe_by_tx.pop(tx.id, None)
            logger.warning(
                f"{purpose.value} submission failed: {e.code}",
                extra={"tx_id": tx.id, "purpose": purpose.value, "error_code": e.code},
            )
            raise

        if generation != self._generation:
            logger.warning(
                f"{purpose.value} sent before a reset; no longer tracked",
                extra={"tx_id": tx.id, "tx_hash": tx.tx_hash, "purpose": purpose.value},
            )
            raise SessionResetError(ErrorContext(tx_id=tx.id))

        tx.advance(TxStatus.CONFIRMING)
        logger.info(
            f"{purpose.value} submitted, awaiting confirmation",
            extra={"tx_id": tx.id, "tx_hash": tx.tx_hash, "purpose": purpose.value},
        )
        self._spawn(self._watch(tx))
        return tx.id

    def _release_failed_submit(self, dedupe_key: str, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._dedupe.get(dedupe_key) is task:
                del self._dedupe[dedupe_key]

    # --- Confirmation --------------------------------------------------------

    async def _watch(self, tx: PendingTransaction) -> None:
        try:
            ok = await asyncio.wait_for(
                self.gateway.wait_for_receipt(tx.tx_hash, self.confirmation_timeout_s),
                timeout=self.confirmation_timeout_s,
            )
        except asyncio.TimeoutError:
            await self._fail(tx, TransactionTimeoutError(
                tx.tx_hash, self.confirmation_timeout_s, ErrorContext(tx_id=tx.id),
            ))
            return
        except Talk2MeError as e:
            await self._fail(tx, e)
            return

        if not ok:
            await self._fail(tx, TransactionFailedError(tx.tx_hash, ErrorContext(tx_id=tx.id)))
            return

        tx.advance(TxStatus.CONFIRMED)
        logger.info(
            f"{tx.purpose.value} confirmed, settling {self.settle_delay_s}s",
            extra={"tx_id": tx.id, "tx_hash": tx.tx_hash, "purpose": tx.purpose.value},
        )
        await self._sleep(self.settle_delay_s)
        await self._settle(tx, self._on_confirmed)

    async def _fail(self, tx: PendingTransaction, error: Talk2MeError) -> None:
        tx.error = error
        tx.advance(TxStatus.FAILED)
        logger.warning(
            f"{tx.purpose.value} failed: {error.code}",
            extra={"tx_id": tx.id, "tx_hash": tx.tx_hash, "error_code": error.code},
        )
        await self._settle(tx, self._on_failed)

    async def _settle(
        self, tx: PendingTransaction, registry: dict[TransactionId, list[TxCallback]],
    ) -> None:
        callbacks = registry.pop(tx.id, [])
        self._on_confirmed.pop(tx.id, None)
        self._on_failed.pop(tx.id, None)
        key = self._dedupe_by_tx.pop(tx.id, None)
        if key is not None:
            self._dedupe.pop(key, None)
        settled = self._settled[tx.id]
        self._closed.add(tx.id)
        # waiters wake only after callbacks have run
        await self._run_callbacks(tx, callbacks)
        settled.set()

    async def _run_callbacks(self, tx: PendingTransaction, callbacks: list[TxCallback]) -> None:
        for callback in callbacks:
            try:
                result = callback(tx)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Transaction callback failed: {e}",
                    extra={"tx_id": tx.id}, exc_info=True,
                )

    # --- Subscriptions -------------------------------------------------------

    def on_confirmed(self, tx_id: TransactionId, callback: TxCallback) -> None:
        self._subscribe(tx_id, callback, TxStatus.CONFIRMED, self._on_confirmed)

    def on_failed(self, tx_id: TransactionId, callback: TxCallback) -> None:
        self._subscribe(tx_id, callback, TxStatus.FAILED, self._on_failed)

    def _subscribe(self, tx_id, callback, fires_on, registry) -> None:
        tx = self._txs[tx_id]
        if tx_id in self._closed:
            if tx.status == fires_on:
                self._invoke_now(tx, callback)
            return
        registry.setdefault(tx_id, []).append(callback)

    def _invoke_now(self, tx: PendingTransaction, callback: TxCallback) -> None:
        """Late subscriber: plain callbacks run inline, async ones as a task."""
        try:
            result = callback(tx)
        except Exception as e:
            logger.error(
                f"Transaction callback failed: {e}",
                extra={"tx_id": tx.id}, exc_info=True,
            )
            return
        if inspect.isawaitable(result):
            self._spawn(self._await_callback(tx, result))

    async def _await_callback(self, tx: PendingTransaction, pending) -> None:
        try:
            await pending
        except Exception as e:
            logger.error(
                f"Transaction callback failed: {e}",
                extra={"tx_id": tx.id}, exc_info=True,
            )

    async def wait(self, tx_id: TransactionId) -> PendingTransaction:
        """Await settlement: confirmed + settle delay, or failed.

        After reset() the returned record may still be non-terminal.
        """
        tx, settled = self._txs[tx_id], self._settled[tx_id]
        await settled.wait()
        return tx

    # --- Introspection / lifecycle -------------------------------------------

    def get(self, tx_id: TransactionId) -> PendingTransaction:
        return self._txs[tx_id]

    def pending(self) -> list[PendingTransaction]:
        return [tx for tx in self._txs.values() if not tx.status.is_terminal]

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def reset(self) -> None:
        """Drop all tracking (chain changed). Pending callbacks never fire; waiters wake."""
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        for task in self._dedupe.values():
            task.cancel()
        for event in self._settled.values():
            event.set()
        self._tasks.clear()
        self._txs.clear()
        self._on_confirmed.clear()
        self._on_failed.clear()
        self._settled.clear()
        self._closed.clear()
        self._dedupe.clear()
        self._dedupe_by_tx.clear()
