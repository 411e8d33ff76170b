"""RPC Error Classification — maps raw web3/provider failures onto the Talk2Me hierarchy.

Invariants:
    - classify() never raises and always returns a Talk2MeError subclass
    - Already-classified errors pass through unchanged
    - Rule order: user rejection > rate limit > participation revert > revert >
      connectivity > unknown

Design Decisions:
    - Message matching alongside isinstance: providers and wallet bridges surface
      the same condition as different exception types ("429" in a ValueError, a
      ClientResponseError with status 429, a JSON-RPC error dict)
    - Duck-typed status/code extraction: no direct aiohttp import, web3 owns its transport
"""

import asyncio
import re
from collections.abc import Mapping

from web3.exceptions import ContractLogicError, TimeExhausted

from talk2me.core.domain_types import USER_REJECTED_CODE
from talk2me.core.errors import (
    ConnectivityError,
    ErrorContext,
    NotAParticipantError,
    RateLimitedError,
    RevertedError,
    Talk2MeError,
    UnknownRpcError,
    UserRejectedSignatureError,
)

_RATE_LIMIT_MARKERS = ("too many requests", "rate limit")
_STATUS_429 = re.compile(r"\b429\b")
_REJECTION_MARKERS = ("user rejected", "user denied", "rejected the request")
_PARTICIPATION_MARKERS = ("not a participant",)
_CONNECTIVITY_MARKERS = (
    "internal json-rpc error", "connection refused", "cannot connect",
    "timed out", "network error",
)


def error_code(exc: BaseException) -> int | None:
    """Extract a JSON-RPC / EIP-1193 error code if the exception carries one."""
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, Mapping):
        err = rpc_response.get("error")
        if isinstance(err, Mapping) and isinstance(err.get("code"), int):
            return err["code"]
    if exc.args and isinstance(exc.args[0], Mapping):
        code = exc.args[0].get("code")
        if isinstance(code, int):
            return code
    return None


def http_status(exc: BaseException) -> int | None:
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None) or getattr(response, "status", None)
    return status if isinstance(status, int) else None


def revert_reason(exc: BaseException) -> str | None:
    message = getattr(exc, "message", None) or str(exc)
    marker = "execution reverted:"
    idx = message.lower().find(marker)
    if idx >= 0:
        return message[idx + len(marker):].strip() or None
    return message.strip() or None


def classify(exc: BaseException, context: ErrorContext | None = None) -> Talk2MeError:
    """Classify a raw transport failure. Order matters, see module invariants."""
    if isinstance(exc, Talk2MeError):
        return exc

    text = str(exc)
    lowered = text.lower()

    if error_code(exc) == USER_REJECTED_CODE or _contains(lowered, _REJECTION_MARKERS):
        return UserRejectedSignatureError(text or "User rejected the request", context)

    if _is_rate_limited(exc, lowered):
        return RateLimitedError(text, context=context)

    if _contains(lowered, _PARTICIPATION_MARKERS):
        return NotAParticipantError(context=context)

    if isinstance(exc, ContractLogicError) or "reverted" in lowered:
        return RevertedError(text, revert_reason(exc), context)

    if isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError, OSError, TimeExhausted)):
        return ConnectivityError(text or type(exc).__name__, context)
    if _contains(lowered, _CONNECTIVITY_MARKERS):
        return ConnectivityError(text, context)

    return UnknownRpcError(text or type(exc).__name__, context)


def _contains(text: str, markers: tuple[str, ...]) -> bool:
    return any(m in text for m in markers)


def _is_rate_limited(exc: BaseException, lowered: str) -> bool:
    if http_status(exc) == 429 or error_code(exc) == 429:
        return True
    # bare "429" only as a standalone token: hex payloads routinely contain it
    return _contains(lowered, _RATE_LIMIT_MARKERS) or _STATUS_429.search(lowered) is not None
