"""Session Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - Addresses are 0x + 40 hex chars, room ids 0x + 64 hex chars
    - SendMessageRequest: direct messages require a recipient
    - RegisterRequest.image is base64 and decoded at the boundary

Design Decisions:
    - Literal type for kind over str enum: Pydantic handles validation natively
    - JSON body with base64 image over multipart: no extra form-parsing dependency
"""

import base64
import binascii
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
ROOM_ID_PATTERN = r"^0x[0-9a-fA-F]{64}$"


class InitializeRequest(BaseModel):
    """Session start for one actor."""
    actor: str = Field(pattern=ADDRESS_PATTERN)


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=10_000)
    kind: Literal["broadcast", "direct"] = "broadcast"
    recipient: str | None = Field(None, pattern=ADDRESS_PATTERN)

    @field_validator("content")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content cannot be empty or whitespace")
        return v

    @model_validator(mode="after")
    def check_recipient(self) -> "SendMessageRequest":
        if self.kind == "direct" and not self.recipient:
            raise ValueError("direct messages require a recipient")
        return self


class RoomRequest(BaseModel):
    room_id: str = Field(pattern=ROOM_ID_PATTERN)


class JoinRoomRequest(BaseModel):
    """room_id omitted = the global room."""
    room_id: str | None = Field(None, pattern=ROOM_ID_PATTERN)


class DirectRoomRequest(BaseModel):
    participant: str = Field(pattern=ADDRESS_PATTERN)


class RegisterRequest(BaseModel):
    """Identity registration with an inline (base64) profile image."""
    actor: str = Field(pattern=ADDRESS_PATTERN)
    name: str = Field(min_length=1, max_length=64)
    bio: str = Field("", max_length=500)
    image: bytes
    filename: str = "profile.png"
    mime_type: str = Field("image/png", pattern=r"^image/[a-z0-9.+-]+$")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v

    @field_validator("image", mode="before")
    @classmethod
    def decode_image(cls, v: Any) -> bytes:
        if isinstance(v, bytes):
            return v
        try:
            return base64.b64decode(v, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise ValueError("image must be base64-encoded") from e


class ChainChangedRequest(BaseModel):
    """Wallet chainChanged event payload (hex string or int)."""
    chain_id: int | str

    @field_validator("chain_id")
    @classmethod
    def check_chain_id(cls, v: int | str) -> int | str:
        if isinstance(v, str):
            base = 16 if v.lower().startswith("0x") else 10
            int(v, base)  # ValueError surfaces as a validation error
        return v


class OutcomeResponse(BaseModel):
    ok: bool
    message: str
    code: str | None = None
    category: str | None = None
    retryable: bool = False
    data: Any = None
    details: dict = {}
