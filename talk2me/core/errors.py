"""Error Hierarchy — typed, categorized exceptions for every ledger-sync failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Every error carries a short user_message; internal detail stays in message
    - retryable marks transient failures (rate limit, connectivity, timeouts)
    - to_response() produces REST envelope; to_outcome() produces an Outcome

Design Decisions:
    - Single hierarchy with Talk2MeError base: gateway classifies once, orchestrator
      decides remediate-vs-surface by type, API handler catches all (uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from talk2me.core.outcome import Outcome


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    PARTICIPATION = "participation"
    RATE_LIMIT = "rate_limit"
    CONNECTIVITY = "connectivity"
    SIGNATURE = "signature"
    LEDGER = "ledger"
    NETWORK = "network"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str | None = None
    room_id: str | None = None
    contract: str | None = None
    function: str | None = None
    tx_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class Talk2MeError(Exception):
    """Base exception for all Talk2Me ledger-sync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        retryable: bool = False,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.retryable = retryable
        self.user_message = user_message or message

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "actor": self.context.actor,
                    "room_id": self.context.room_id,
                    "tx_id": self.context.tx_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def to_outcome(self, **details) -> Outcome:
        """Convert to a failure Outcome with the short classified message."""
        return Outcome.failure(
            self.user_message, self.code, self.category.value,
            retryable=self.retryable, **details,
        )


# ─── Transport Errors (classified at the gateway boundary) ──────

class RpcError(Talk2MeError):
    """Base for failures returned by the ledger RPC transport."""


class RateLimitedError(RpcError):
    """Provider throttled the request (HTTP 429 / Too Many Requests)."""
    def __init__(
        self, message: str, retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            message, "RATE_LIMITED", ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429, retryable=True,
            user_message="Network is busy. Please try again in a moment.",
        )


class ConnectivityError(RpcError):
    """Provider unreachable or returned an internal JSON-RPC error."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONNECTIVITY", ErrorCategory.CONNECTIVITY,
            ErrorSeverity.WARNING, context, 503, retryable=True,
            user_message="Network connectivity issue. Please try again.",
        )


class RevertedError(RpcError):
    """Contract call reverted for a reason other than participation."""
    def __init__(
        self, message: str, reason: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "REVERTED", ErrorCategory.LEDGER,
            ErrorSeverity.ERROR, context, 502,
            user_message=f"Transaction reverted: {reason}" if reason else "Transaction reverted",
        )
        self.reason = reason


class UnknownRpcError(RpcError):
    """Unclassifiable transport failure — surfaced verbatim, never retried."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "UNKNOWN_RPC_ERROR", ErrorCategory.INTERNAL,
            ErrorSeverity.ERROR, context, 502,
            user_message=message[:200],
        )


class UserRejectedSignatureError(Talk2MeError):
    """Wallet user declined to sign — terminal for this attempt."""
    def __init__(self, message: str = "User rejected the request", context: ErrorContext | None = None):
        super().__init__(
            message, "USER_REJECTED_SIGNATURE", ErrorCategory.SIGNATURE,
            ErrorSeverity.INFO, context, 400,
            user_message="Signature request was rejected",
        )


class NotConfiguredError(Talk2MeError):
    """Contract address unset or placeholder — callers degrade to no-op/empty/false."""
    def __init__(self, contract: str, context: ErrorContext | None = None):
        super().__init__(
            f"Contract {contract} is not configured",
            "NOT_CONFIGURED", ErrorCategory.CONFIGURATION,
            ErrorSeverity.WARNING, context, 503,
            user_message="Contract not deployed yet",
        )
        self.contract = contract


class NotAParticipantError(Talk2MeError):
    """Ledger refused a room read because the actor is not a participant."""
    def __init__(
        self, message: str = "Not a participant of this chat room",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "NOT_A_PARTICIPANT", ErrorCategory.PARTICIPATION,
            ErrorSeverity.WARNING, context, 403,
            user_message="You need to join this chat room first",
        )


# ─── Domain Errors (400-level) ──────────────────────────────────

class InvalidConfigurationError(Talk2MeError):
    """Operation requested with an impossible configuration (e.g. direct send without a room)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_CONFIGURATION", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class MessageValidationError(Talk2MeError):
    """Message content rejected before submission."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "MESSAGE_VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class RegistrationValidationError(Talk2MeError):
    """Registration form rejected before upload/submission."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "REGISTRATION_VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class TerminalParticipationError(Talk2MeError):
    """One-shot re-join remediation did not restore access."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PARTICIPATION_UNRECOVERABLE", ErrorCategory.PARTICIPATION,
            ErrorSeverity.ERROR, context, 403,
            user_message="Could not regain access to this chat room",
        )


# ─── Transaction Errors ─────────────────────────────────────────

class TransactionTimeoutError(Talk2MeError):
    """Confirmation not observed within the deadline — retryable."""
    def __init__(self, tx_hash: str, timeout_s: float, context: ErrorContext | None = None):
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout_s:g}s",
            "TRANSACTION_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.WARNING, context, 504, retryable=True,
            user_message="Transaction is taking too long. Please try again.",
        )
        self.tx_hash = tx_hash


class TransactionFailedError(Talk2MeError):
    """Transaction was mined but reverted."""
    def __init__(self, tx_hash: str, context: ErrorContext | None = None):
        super().__init__(
            f"Transaction {tx_hash} reverted on-chain",
            "TRANSACTION_FAILED", ErrorCategory.LEDGER,
            ErrorSeverity.ERROR, context, 502,
            user_message="Transaction failed on the ledger",
        )
        self.tx_hash = tx_hash


class InvalidTransitionError(Talk2MeError):
    """A state machine was asked to make a transition its table forbids."""
    def __init__(self, machine: str, state: str, event: str, context: ErrorContext | None = None):
        super().__init__(
            f"{machine}: no transition from {state} on {event}",
            "INVALID_TRANSITION", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
            user_message="Internal state error",
        )
        self.state = state
        self.event = event


# ─── Content Store Errors ───────────────────────────────────────

class ContentUploadError(Talk2MeError):
    """Content store rejected or failed an upload."""
    def __init__(
        self, message: str, status_code: int | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "CONTENT_UPLOAD_FAILED", ErrorCategory.CONNECTIVITY,
            ErrorSeverity.WARNING, context, 502, retryable=True,
            user_message="Image upload failed",
        )
        self.status_code = status_code


# ─── Network Errors ─────────────────────────────────────────────

class NetworkSwitchError(Talk2MeError):
    """Wallet refused or failed a chain switch/add request."""
    def __init__(
        self, message: str, wallet_code: int | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "NETWORK_SWITCH_FAILED", ErrorCategory.NETWORK,
            ErrorSeverity.ERROR, context, 409,
            user_message="Failed to switch to the required network",
        )
        self.wallet_code = wallet_code


# ─── Session Errors ─────────────────────────────────────────────

class SessionResetError(Talk2MeError):
    """The chain changed while an operation was running."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Session reset during operation", "SESSION_RESET",
            ErrorCategory.NETWORK, ErrorSeverity.WARNING, context, 409,
            retryable=True, user_message="Network changed, please retry",
        )
