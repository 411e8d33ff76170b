"""Domain Models — immutable ledger records and the local transaction/cache records.

Invariants:
    - ChatMessage and ActorProfile are read-only mirrors of ledger structs
    - ChatMessage.timestamp_ms = ledger seconds * 1000
    - PendingTransaction.status only moves forward (see TX_TRANSITIONS)
    - CacheEntry is valid while age < ttl

Design Decisions:
    - from_ledger() accepts both positional tuples (web3 struct decoding) and mappings,
      so fakes and real contracts decode through the same path
    - Transition table as data, not if-chains: the whole lifecycle reads at a glance
"""

from dataclasses import dataclass, field
from collections.abc import Mapping
from typing import Any

from talk2me.core.domain_types import (
    Address, RoomId, TransactionId, TxHash, TxPurpose, TxStatus,
    ZERO_ADDRESS, ContractName,
)
from talk2me.core.errors import InvalidTransitionError, Talk2MeError


def _field(raw: Any, index: int, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw[name]
    if isinstance(raw, (tuple, list)):
        return raw[index]
    return getattr(raw, name)


def same_address(a: str | None, b: str | None) -> bool:
    """Addresses compare case-insensitively (checksum casing is presentation)."""
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


# ─── Ledger Records ──────────────────────────────────────────────

@dataclass(frozen=True)
class ChatMessage:
    """One included message. Total order = ledger inclusion order."""
    sender: Address
    recipient: Address
    content: str
    timestamp_ms: int
    is_read: bool

    @property
    def is_group_message(self) -> bool:
        return same_address(self.recipient, ZERO_ADDRESS)

    @classmethod
    def from_ledger(cls, raw: Any) -> "ChatMessage":
        return cls(
            sender=Address(_field(raw, 0, "sender")),
            recipient=Address(_field(raw, 1, "recipient")),
            content=_field(raw, 2, "content"),
            timestamp_ms=int(_field(raw, 3, "timestamp")) * 1000,
            is_read=bool(_field(raw, 4, "isRead")),
        )

    def to_dict(self) -> dict:
        return {
            "sender": self.sender,
            "recipient": self.recipient,
            "content": self.content,
            "timestamp": self.timestamp_ms,
            "is_read": self.is_read,
            "is_group_message": self.is_group_message,
        }


@dataclass(frozen=True)
class ActorProfile:
    """Identity Registry record for one address."""
    owner: Address
    ens_name: str
    image_ref: str
    bio: str
    registration_time: int
    is_active: bool

    @classmethod
    def from_ledger(cls, raw: Any) -> "ActorProfile":
        return cls(
            owner=Address(_field(raw, 0, "owner")),
            ens_name=_field(raw, 1, "ensName"),
            image_ref=_field(raw, 2, "profileImageIPFS"),
            bio=_field(raw, 3, "bio"),
            registration_time=int(_field(raw, 4, "registrationTime")),
            is_active=bool(_field(raw, 5, "isActive")),
        )

    def to_dict(self) -> dict:
        return {
            "address": self.owner,
            "ens_name": self.ens_name,
            "image_ref": self.image_ref,
            "bio": self.bio,
            "registration_time": self.registration_time,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class RegistrationStatus:
    is_registered: bool
    profile: ActorProfile | None = None


# ─── Transactions ────────────────────────────────────────────────

@dataclass(frozen=True)
class TxRequest:
    """A contract write, described before it is signed."""
    contract: ContractName
    function: str
    args: tuple = ()


TX_TRANSITIONS: dict[TxStatus, frozenset[TxStatus]] = {
    TxStatus.SUBMITTED: frozenset({TxStatus.CONFIRMING, TxStatus.FAILED}),
    TxStatus.CONFIRMING: frozenset({TxStatus.CONFIRMED, TxStatus.FAILED}),
    TxStatus.CONFIRMED: frozenset(),
    TxStatus.FAILED: frozenset(),
}


@dataclass
class PendingTransaction:
    """Local handle on one submitted write."""
    id: TransactionId
    purpose: TxPurpose
    request: TxRequest
    tx_hash: TxHash | None = None
    status: TxStatus = TxStatus.SUBMITTED
    error: Talk2MeError | None = None
    history: list[TxStatus] = field(default_factory=lambda: [TxStatus.SUBMITTED])

    def advance(self, status: TxStatus) -> None:
        """Move forward in the lifecycle. Reversal or skipping raises."""
        if status not in TX_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                "PendingTransaction", self.status.value, status.value,
            )
        self.status = status
        self.history.append(status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purpose": self.purpose.value,
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "error": self.error.code if self.error else None,
        }


# ─── Cache ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    timestamp: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


# ─── Session ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class MessagePage:
    """Messages tagged with the session epoch, room and load sequence that produced them."""
    epoch: int
    room_id: RoomId
    seq: int
    offset: int
    limit: int
    messages: tuple[ChatMessage, ...]
