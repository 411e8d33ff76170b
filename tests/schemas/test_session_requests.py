"""Request schemas — boundary validation for session, message, identity and network bodies.

Invariants:
    - Addresses must be 0x + 40 hex, room ids 0x + 64 hex
    - Direct messages require a recipient; blank content is rejected
    - Register images arrive base64 and leave as bytes
"""

import pytest
from pydantic import ValidationError

from talk2me.schemas.session import (
    ChainChangedRequest, InitializeRequest, JoinRoomRequest, RegisterRequest,
    RoomRequest, SendMessageRequest,
)

ADDRESS = "0x" + "a" * 40
ROOM = "0x" + "b" * 64


# --- Addresses & rooms --------------------------------------------------------

def test_initialize_accepts_checksum_casing():
    assert InitializeRequest(actor="0xA11CE" + "0" * 35).actor.startswith("0xA11CE")


@pytest.mark.parametrize("actor", ["", "0x123", "a" * 42, "0x" + "g" * 40])
def test_initialize_rejects_bad_address(actor):
    with pytest.raises(ValidationError):
        InitializeRequest(actor=actor)


def test_room_request_requires_bytes32():
    assert RoomRequest(room_id=ROOM).room_id == ROOM
    with pytest.raises(ValidationError):
        RoomRequest(room_id=ADDRESS)


def test_join_room_defaults_to_global():
    assert JoinRoomRequest().room_id is None


# --- Messages -----------------------------------------------------------------

def test_broadcast_needs_no_recipient():
    req = SendMessageRequest(content="gm")
    assert req.kind == "broadcast"


def test_direct_requires_recipient():
    with pytest.raises(ValidationError):
        SendMessageRequest(content="hi", kind="direct")
    assert SendMessageRequest(content="hi", kind="direct", recipient=ADDRESS).recipient == ADDRESS


@pytest.mark.parametrize("content", ["", "   ", "x" * 10_001])
def test_content_bounds(content):
    with pytest.raises(ValidationError):
        SendMessageRequest(content=content)


def test_unknown_kind_rejected():
    with pytest.raises(ValidationError):
        SendMessageRequest(content="hi", kind="shout")


# --- Identity -----------------------------------------------------------------

def test_register_decodes_base64_and_strips_name():
    req = RegisterRequest(actor=ADDRESS, name="  alice ", image="aW1n")
    assert req.image == b"img"
    assert req.name == "alice"
    assert req.mime_type == "image/png"


def test_register_rejects_invalid_base64():
    with pytest.raises(ValidationError):
        RegisterRequest(actor=ADDRESS, name="alice", image="not base64!")


def test_register_rejects_non_image_mime():
    with pytest.raises(ValidationError):
        RegisterRequest(actor=ADDRESS, name="alice", image="aW1n", mime_type="text/html")


# --- Network ------------------------------------------------------------------

@pytest.mark.parametrize("chain_id", ["0x106a", "4202", 4202])
def test_chain_changed_accepts_hex_and_decimal(chain_id):
    assert ChainChangedRequest(chain_id=chain_id).chain_id == chain_id


def test_chain_changed_rejects_garbage():
    with pytest.raises(ValidationError):
        ChainChangedRequest(chain_id="0xzz")
