"""Operation Outcome — the uniform result shape of every orchestrator operation.

Invariants:
    - ok=True never carries an error code or category
    - message is always a short, user-presentable string
    - retryable is only meaningful when ok=False

Design Decisions:
    - Return values over exceptions at the orchestrator boundary: callers (UI, API routes)
      never see an unhandled error, and success/failure share one shape
    - category mirrors ErrorCategory values so the API maps failures to HTTP status
      without knowing every error code
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Outcome:
    """Success/failure result with a classified message."""

    ok: bool
    message: str
    code: str | None = None
    category: str | None = None
    retryable: bool = False
    data: Any = None
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, message: str = "ok", data: Any = None, **details) -> "Outcome":
        return cls(ok=True, message=message, data=data, details=details)

    @classmethod
    def failure(
        cls, message: str, code: str, category: str = "internal",
        retryable: bool = False, **details,
    ) -> "Outcome":
        return cls(
            ok=False, message=message, code=code, category=category,
            retryable=retryable, details=details,
        )

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "message": self.message,
            "code": self.code,
            "category": self.category,
            "retryable": self.retryable,
            "data": self.data,
            "details": self.details,
        }
