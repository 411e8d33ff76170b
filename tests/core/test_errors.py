"""Error hierarchy and Outcome — classification, REST shape, failure outcomes.

Invariants:
    - Every error carries a code, a category and a short user_message
    - to_outcome() keeps the user message, never the internal one
    - Only transient errors are retryable
"""

import pytest

from talk2me.core.errors import (
    ConnectivityError, ErrorCategory, ErrorContext, InvalidConfigurationError,
    NotAParticipantError, NotConfiguredError, RateLimitedError, RevertedError,
    SessionResetError, TerminalParticipationError, TransactionTimeoutError,
    UserRejectedSignatureError,
)
from talk2me.core.outcome import Outcome


# ─── Classification ──────────────────────────────────────────────

@pytest.mark.parametrize("error, code, retryable", [
    (RateLimitedError("429"), "RATE_LIMITED", True),
    (ConnectivityError("refused"), "CONNECTIVITY", True),
    (TransactionTimeoutError("0xabc", 45), "TRANSACTION_TIMEOUT", True),
    (SessionResetError(), "SESSION_RESET", True),
    (RevertedError("execution reverted"), "REVERTED", False),
    (UserRejectedSignatureError(), "USER_REJECTED_SIGNATURE", False),
    (NotAParticipantError(), "NOT_A_PARTICIPANT", False),
    (TerminalParticipationError("gave up"), "PARTICIPATION_UNRECOVERABLE", False),
])
def test_codes_and_retryability(error, code, retryable):
    assert error.code == code
    assert error.retryable is retryable


def test_rate_limit_keeps_server_retry_after():
    error = RateLimitedError("429", retry_after_ms=750)
    assert error.context.retry_after_ms == 750
    assert error.category == ErrorCategory.RATE_LIMIT


def test_not_configured_short_message():
    error = NotConfiguredError("chat_registry")
    assert error.user_message == "Contract not deployed yet"
    assert "chat_registry" in error.message


def test_reverted_reason_in_user_message():
    assert RevertedError("raw", "Not a participant").user_message == (
        "Transaction reverted: Not a participant"
    )


# ─── REST & Outcome shapes ───────────────────────────────────────

def test_to_response_shape():
    error = InvalidConfigurationError(
        "No direct room", ErrorContext(actor="0xabc", room_id="0xroom"),
    )
    body = error.to_response()["error"]
    assert body["code"] == "INVALID_CONFIGURATION"
    assert body["category"] == "validation"
    assert body["context"]["room_id"] == "0xroom"


def test_to_outcome_uses_user_message_and_details():
    outcome = UserRejectedSignatureError().to_outcome(room_id="0xroom")
    assert not outcome.ok
    assert outcome.message == "Signature request was rejected"
    assert outcome.category == "signature"
    assert outcome.details == {"room_id": "0xroom"}


def test_success_outcome_has_no_code():
    outcome = Outcome.success("done", data=[1], seq=3)
    assert outcome.to_dict() == {
        "ok": True, "message": "done", "code": None, "category": None,
        "retryable": False, "data": [1], "details": {"seq": 3},
    }
