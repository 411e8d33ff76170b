"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - Address is a 0x-prefixed 20-byte hex string; RoomId a 0x-prefixed 32-byte hex string
    - ZERO_ADDRESS as a message recipient means broadcast (group message)
    - All valid states encoded as Enums — no raw string matching
    - On-chain function names live here only; services refer to the enum members

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (API responses, log extras)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

Address = NewType("Address", str)
RoomId = NewType("RoomId", str)
TxHash = NewType("TxHash", str)
TransactionId = NewType("TransactionId", str)


# ─── Constants ───────────────────────────────────────────────────

ZERO_ADDRESS = Address("0x0000000000000000000000000000000000000000")
ENS_SUFFIX = ".Talk2me"
DEFAULT_PAGE_SIZE = 50

# EIP-1193 / wallet error codes
USER_REJECTED_CODE = 4001
UNRECOGNIZED_CHAIN_CODE = 4902


# ─── Contracts ───────────────────────────────────────────────────

class ContractName(str, Enum):
    """The two logical contracts the client talks to."""
    IDENTITY_REGISTRY = "identity_registry"
    CHAT_REGISTRY = "chat_registry"


class IdentityFn(str, Enum):
    """Identity Registry functions (value = on-chain name)."""
    REGISTER = "registerENS"
    IS_REGISTERED = "checkIsRegistered"
    GET_RECORD = "getUserRecord"
    LIST_REGISTERED = "getAllRegisteredAddresses"


class ChatFn(str, Enum):
    """Chat Registry functions (value = on-chain name)."""
    SEND_GROUP_MESSAGE = "sendGroupMessage"
    SEND_MESSAGE = "sendMessage"
    CREATE_DIRECT_ROOM = "createDirectMessage"
    JOIN_GLOBAL_ROOM = "joinGlobalChat"
    GET_GLOBAL_ROOM_ID = "getGlobalChatRoom"
    GET_ROOM_MESSAGES = "getChatRoomMessages"
    GET_USER_ROOMS = "getUserChatRooms"
    IS_PARTICIPANT = "isParticipantOfChatRoom"
    IS_GLOBAL_PARTICIPANT = "isParticipantOfGlobalChat"


# ─── Enums ───────────────────────────────────────────────────────

class TxPurpose(str, Enum):
    """Why a write was submitted — drives dedupe keys and log context."""
    JOIN = "join"
    SEND = "send"
    REGISTER = "register"
    CREATE_ROOM = "createRoom"


class TxStatus(str, Enum):
    """Monotonic transaction lifecycle: SUBMITTED → CONFIRMING → CONFIRMED | FAILED."""
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TxStatus.CONFIRMED, TxStatus.FAILED)


class ParticipationState(str, Enum):
    """Per-(actor, room) eligibility as believed locally."""
    UNKNOWN = "unknown"
    NOT_PARTICIPANT = "not_participant"
    JOIN_SUBMITTED = "join_submitted"
    JOIN_CONFIRMING = "join_confirming"
    PARTICIPANT = "participant"
    PARTICIPANT_STALE = "participant_stale"


class ParticipationEvent(str, Enum):
    """Signals that drive the participation state machine."""
    CHECKED_PARTICIPANT = "checked_participant"
    CHECKED_NOT_PARTICIPANT = "checked_not_participant"
    JOIN_SUBMITTED = "join_submitted"
    JOIN_SUBMIT_FAILED = "join_submit_failed"
    TX_CONFIRMING = "tx_confirming"
    TX_CONFIRMED = "tx_confirmed"
    TX_FAILED = "tx_failed"
    READ_DENIED = "read_denied"


class NetworkState(str, Enum):
    """Connected chain identity relative to the configured target."""
    UNKNOWN = "unknown"
    CORRECT = "correct"
    INCORRECT = "incorrect"


class MessageKind(str, Enum):
    BROADCAST = "broadcast"
    DIRECT = "direct"
