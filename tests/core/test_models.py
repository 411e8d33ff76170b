"""Domain Models — decoding ledger structs and the transaction lifecycle.

Tests cover:
    - ChatMessage/ActorProfile decode from tuples and mappings alike
    - seconds → milliseconds timestamp conversion
    - group messages are the ones addressed to the zero address
    - PendingTransaction only moves forward
    - CacheEntry freshness boundary
"""

import pytest

from talk2me.core.domain_types import (
    ContractName, TransactionId, TxPurpose, TxStatus, ZERO_ADDRESS,
)
from talk2me.core.errors import InvalidTransitionError
from talk2me.core.models import (
    ActorProfile, CacheEntry, ChatMessage, PendingTransaction, TxRequest, same_address,
)

SENDER = "0x" + "a" * 40
RECIPIENT = "0x" + "b" * 40


# ─── ChatMessage ─────────────────────────────────────────────────

def test_message_from_tuple_converts_seconds_to_ms():
    msg = ChatMessage.from_ledger((SENDER, ZERO_ADDRESS, "gm", 1_700_000_000, False))
    assert msg.timestamp_ms == 1_700_000_000_000
    assert msg.is_group_message


def test_message_from_mapping():
    msg = ChatMessage.from_ledger({
        "sender": SENDER, "recipient": RECIPIENT, "content": "hi",
        "timestamp": 5, "isRead": True,
    })
    assert msg.content == "hi"
    assert msg.is_read
    assert not msg.is_group_message


def test_message_to_dict_flags_group():
    data = ChatMessage.from_ledger((SENDER, ZERO_ADDRESS, "gm", 1, False)).to_dict()
    assert data["is_group_message"] is True
    assert data["timestamp"] == 1000


def test_same_address_ignores_case():
    assert same_address(SENDER.upper().replace("0X", "0x"), SENDER)
    assert not same_address(None, SENDER)


# ─── ActorProfile ────────────────────────────────────────────────

def test_profile_from_tuple():
    profile = ActorProfile.from_ledger(
        (SENDER, "alice.Talk2me", "ipfs://x", "bio", 1_700_000_000, True),
    )
    assert profile.ens_name == "alice.Talk2me"
    assert profile.to_dict()["address"] == SENDER
    assert profile.is_active


# ─── PendingTransaction ──────────────────────────────────────────

def _tx() -> PendingTransaction:
    return PendingTransaction(
        TransactionId("tx-1"), TxPurpose.SEND,
        TxRequest(ContractName.CHAT_REGISTRY, "sendGroupMessage", ("hi",)),
    )


def test_transaction_moves_forward():
    tx = _tx()
    tx.advance(TxStatus.CONFIRMING)
    tx.advance(TxStatus.CONFIRMED)
    assert tx.history == [TxStatus.SUBMITTED, TxStatus.CONFIRMING, TxStatus.CONFIRMED]
    assert tx.to_dict()["status"] == "confirmed"


def test_transaction_can_fail_before_confirming():
    tx = _tx()
    tx.advance(TxStatus.FAILED)
    assert tx.status.is_terminal


@pytest.mark.parametrize("path", [
    [TxStatus.CONFIRMED],
    [TxStatus.CONFIRMING, TxStatus.SUBMITTED],
    [TxStatus.FAILED, TxStatus.CONFIRMING],
])
def test_transaction_never_skips_or_reverses(path):
    tx = _tx()
    with pytest.raises(InvalidTransitionError):
        for status in path:
            tx.advance(status)


# ─── CacheEntry ──────────────────────────────────────────────────

def test_cache_entry_fresh_strictly_before_ttl():
    entry = CacheEntry("k", 1, timestamp=100.0, ttl=5.0)
    assert entry.is_fresh(104.9)
    assert not entry.is_fresh(105.0)
