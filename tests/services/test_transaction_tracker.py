"""Tests: TransactionTracker — lifecycle, one-shot callbacks, settle delay, dedupe, deadline.

Invariants:
    - submit() returns with the transaction CONFIRMING
    - on_confirmed fires once, after the settle delay; on_failed fires once
    - Late subscribers fire immediately, still once
    - Duplicate dedupe keys collapse into one write
    - A receipt that never arrives becomes a retryable TransactionTimeoutError
    - A submission interrupted by reset() raises SessionResetError
"""

import asyncio

import pytest

from talk2me.core.domain_types import ChatFn, ContractName, TxPurpose, TxStatus
from talk2me.core.errors import (
    InvalidTransitionError, SessionResetError, TransactionFailedError,
    TransactionTimeoutError, UserRejectedSignatureError,
)
from talk2me.core.models import TxRequest
from talk2me.services.transaction_tracker import TransactionTracker

from tests.services.fake_ledger import ALICE, FakeLedger, SleepRecorder

JOIN = TxRequest(ContractName.CHAT_REGISTRY, ChatFn.JOIN_GLOBAL_ROOM.value)


def _tracker(ledger, sleep=None, timeout_s=1.0):
    return TransactionTracker(
        ledger, settle_delay_s=1.5, confirmation_timeout_s=timeout_s,
        sleep=sleep or SleepRecorder(),
    )


# ==============================================================================
# Lifecycle
# ==============================================================================


async def test_submit_returns_confirming_then_settles_confirmed():
    ledger = FakeLedger()
    ledger.hold_receipts = True
    tracker = _tracker(ledger)

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tx = tracker.get(tx_id)
    assert tx.status == TxStatus.CONFIRMING
    assert tx.tx_hash.startswith("0x")

    ledger.release_receipts()
    settled = await tracker.wait(tx_id)
    assert settled.status == TxStatus.CONFIRMED
    assert settled.history == [TxStatus.SUBMITTED, TxStatus.CONFIRMING, TxStatus.CONFIRMED]


async def test_submission_error_propagates_and_marks_failed():
    ledger = FakeLedger()
    ledger.fail_write(ChatFn.JOIN_GLOBAL_ROOM.value, UserRejectedSignatureError())
    tracker = _tracker(ledger)

    with pytest.raises(UserRejectedSignatureError):
        await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    assert tracker.pending() == []


async def test_reverted_receipt_fires_on_failed_once():
    ledger = FakeLedger()
    ledger.revert_writes.add(ChatFn.JOIN_GLOBAL_ROOM.value)
    tracker = _tracker(ledger)
    failed, confirmed = [], []

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tracker.on_failed(tx_id, failed.append)
    tracker.on_confirmed(tx_id, confirmed.append)
    tx = await tracker.wait(tx_id)

    assert tx.status == TxStatus.FAILED
    assert isinstance(tx.error, TransactionFailedError)
    assert len(failed) == 1
    assert confirmed == []


async def test_terminal_state_never_reverses():
    ledger = FakeLedger()
    tracker = _tracker(ledger)
    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tx = await tracker.wait(tx_id)

    with pytest.raises(InvalidTransitionError):
        tx.advance(TxStatus.CONFIRMING)


# ==============================================================================
# Callbacks & settle delay
# ==============================================================================


async def test_on_confirmed_fires_once_after_settle_delay():
    ledger = FakeLedger()
    sleep = SleepRecorder()
    tracker = _tracker(ledger, sleep)
    fired = []

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tracker.on_confirmed(tx_id, lambda tx: fired.append((tx.status, list(sleep.delays))))
    await tracker.wait(tx_id)

    assert len(fired) == 1
    status, delays_at_fire = fired[0]
    assert status == TxStatus.CONFIRMED
    assert 1.5 in delays_at_fire


async def test_late_subscriber_fires_immediately_once():
    ledger = FakeLedger()
    tracker = _tracker(ledger)
    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    await tracker.wait(tx_id)

    fired = []
    tracker.on_confirmed(tx_id, fired.append)
    tracker.on_failed(tx_id, fired.append)
    assert len(fired) == 1


async def test_async_callbacks_run_before_waiters_wake():
    ledger = FakeLedger()
    tracker = _tracker(ledger)
    order = []

    async def slow_callback(tx):
        await asyncio.sleep(0)
        order.append("callback")

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tracker.on_confirmed(tx_id, slow_callback)
    await tracker.wait(tx_id)
    order.append("waiter")

    assert order == ["callback", "waiter"]


async def test_raising_callback_does_not_block_others():
    ledger = FakeLedger()
    tracker = _tracker(ledger)
    fired = []

    def broken(tx):
        raise RuntimeError("boom")

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tracker.on_confirmed(tx_id, broken)
    tracker.on_confirmed(tx_id, fired.append)
    await tracker.wait(tx_id)

    assert len(fired) == 1


# ==============================================================================
# Dedupe & deadline
# ==============================================================================


async def test_duplicate_dedupe_key_issues_one_write():
    ledger = FakeLedger()
    ledger.hold_receipts = True
    tracker = _tracker(ledger)

    first, second = await asyncio.gather(
        tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="join:g:alice"),
        tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="join:g:alice"),
    )
    third = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="join:g:alice")

    assert first == second == third
    assert ledger.write_count(ChatFn.JOIN_GLOBAL_ROOM.value) == 1
    ledger.release_receipts()
    await tracker.wait(first)


async def test_dedupe_key_released_after_settlement():
    ledger = FakeLedger()
    tracker = _tracker(ledger)

    first = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="k")
    await tracker.wait(first)
    second = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="k")

    assert first != second
    assert ledger.write_count(ChatFn.JOIN_GLOBAL_ROOM.value) == 2
    await tracker.wait(second)


async def test_dedupe_key_released_after_failed_submit():
    ledger = FakeLedger()
    ledger.fail_write(ChatFn.JOIN_GLOBAL_ROOM.value, UserRejectedSignatureError())
    tracker = _tracker(ledger)

    with pytest.raises(UserRejectedSignatureError):
        await tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="k")
    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="k")

    assert (await tracker.wait(tx_id)).status == TxStatus.CONFIRMED


async def test_receipt_past_deadline_is_retryable_timeout():
    ledger = FakeLedger()
    ledger.hang_receipts = True
    tracker = _tracker(ledger, timeout_s=0.05)
    failed = []

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tracker.on_failed(tx_id, failed.append)
    tx = await tracker.wait(tx_id)

    assert tx.status == TxStatus.FAILED
    assert isinstance(tx.error, TransactionTimeoutError)
    assert tx.error.retryable
    assert len(failed) == 1


async def test_reset_wakes_waiters_and_drops_callbacks():
    ledger = FakeLedger()
    ledger.hold_receipts = True
    tracker = _tracker(ledger)
    fired = []

    tx_id = await tracker.submit(TxPurpose.JOIN, JOIN, ALICE)
    tracker.on_confirmed(tx_id, fired.append)
    waiter = asyncio.ensure_future(tracker.wait(tx_id))
    await asyncio.sleep(0)

    tracker.reset()
    tx = await waiter

    assert tx.status == TxStatus.CONFIRMING
    assert tracker.pending() == []
    ledger.release_receipts()
    await asyncio.sleep(0)
    assert fired == []


async def test_reset_during_deduped_submission_raises_session_reset():
    ledger = FakeLedger()
    gate = ledger.write_gates[ChatFn.JOIN_GLOBAL_ROOM.value] = asyncio.Event()
    tracker = _tracker(ledger)

    submitting = [
        asyncio.ensure_future(tracker.submit(TxPurpose.JOIN, JOIN, ALICE, dedupe_key="join"))
        for _ in range(2)
    ]
    await asyncio.sleep(0.01)
    tracker.reset()
    gate.set()
    results = await asyncio.gather(*submitting, return_exceptions=True)

    assert all(isinstance(r, SessionResetError) for r in results)


async def test_write_sent_before_reset_is_not_tracked():
    ledger = FakeLedger()
    gate = ledger.write_gates[ChatFn.JOIN_GLOBAL_ROOM.value] = asyncio.Event()
    tracker = _tracker(ledger)

    submitting = asyncio.ensure_future(tracker.submit(TxPurpose.JOIN, JOIN, ALICE))
    await asyncio.sleep(0.01)
    tracker.reset()
    gate.set()

    with pytest.raises(SessionResetError):
        await submitting
    assert tracker.pending() == []
