"""Tests: LedgerReads — cache keys, TTL classes, rate-limit retry.

Invariants:
    - Repeated reads inside the TTL hit the network once
    - A rate-limited read is retried exactly once after the configured delay
    - Non-retryable errors propagate on the first attempt
    - Simulated writes (room preview) are never cached
"""

import pytest

from talk2me.core.domain_types import ChatFn
from talk2me.core.errors import ConnectivityError, RateLimitedError

from tests.services.fake_ledger import ALICE, BOB, GLOBAL_ROOM, direct_room_id


@pytest.fixture
def reads(services):
    return services.session.reads


# ==============================================================================
# Caching
# ==============================================================================


async def test_participation_cached_until_invalidated(reads, ledger):
    await reads.is_participant(GLOBAL_ROOM, ALICE, GLOBAL_ROOM)
    await reads.is_participant(GLOBAL_ROOM, ALICE, GLOBAL_ROOM)
    assert ledger.call_count(ChatFn.IS_GLOBAL_PARTICIPANT.value) == 1

    reads.invalidate_participation(GLOBAL_ROOM, ALICE)
    await reads.is_participant(GLOBAL_ROOM, ALICE, GLOBAL_ROOM)
    assert ledger.call_count(ChatFn.IS_GLOBAL_PARTICIPANT.value) == 2


async def test_non_global_room_uses_room_participation_read(reads, ledger):
    room = direct_room_id(ALICE, BOB)
    ledger.add_participant(room, ALICE)

    assert await reads.is_participant(room, ALICE, GLOBAL_ROOM) is True
    assert ledger.call_count(ChatFn.IS_PARTICIPANT.value) == 1


async def test_global_room_id_uses_stable_ttl(reads, ledger, clock):
    await reads.global_room_id()
    clock.advance(600)
    await reads.global_room_id()

    assert ledger.call_count(ChatFn.GET_GLOBAL_ROOM_ID.value) == 1


async def test_messages_expire_after_volatile_ttl(reads, ledger, clock):
    ledger.add_participant(GLOBAL_ROOM, ALICE)
    ledger.post(GLOBAL_ROOM, BOB, "hi")

    first = await reads.room_messages(GLOBAL_ROOM, ALICE, 0, 50)
    await reads.room_messages(GLOBAL_ROOM, ALICE, 0, 50)
    assert ledger.call_count(ChatFn.GET_ROOM_MESSAGES.value) == 1

    clock.advance(5)
    await reads.room_messages(GLOBAL_ROOM, ALICE, 0, 50)
    assert ledger.call_count(ChatFn.GET_ROOM_MESSAGES.value) == 2
    assert first[0].content == "hi"
    assert first[0].is_group_message
    assert first[0].timestamp_ms % 1000 == 0


async def test_invalidate_messages_drops_every_page_of_room(reads, ledger):
    ledger.add_participant(GLOBAL_ROOM, ALICE)
    await reads.room_messages(GLOBAL_ROOM, ALICE, 0, 50)
    await reads.room_messages(GLOBAL_ROOM, ALICE, 50, 50)

    reads.invalidate_messages(GLOBAL_ROOM)
    await reads.room_messages(GLOBAL_ROOM, ALICE, 0, 50)
    await reads.room_messages(GLOBAL_ROOM, ALICE, 50, 50)

    assert ledger.call_count(ChatFn.GET_ROOM_MESSAGES.value) == 4


async def test_direct_room_preview_is_never_cached(reads, ledger):
    first = await reads.preview_direct_room(ALICE, BOB)
    second = await reads.preview_direct_room(ALICE, BOB)

    assert first == second == direct_room_id(ALICE, BOB)
    assert ledger.call_count(ChatFn.CREATE_DIRECT_ROOM.value) == 2


# ==============================================================================
# Retry
# ==============================================================================


async def test_rate_limited_read_retries_once(reads, ledger, sleep):
    ledger.fail_read(ChatFn.GET_USER_ROOMS.value, RateLimitedError("429"))

    assert await reads.user_rooms(ALICE) == []
    assert ledger.call_count(ChatFn.GET_USER_ROOMS.value) == 2
    assert sleep.delays == [2.0]


async def test_server_retry_after_overrides_delay(reads, ledger, sleep):
    ledger.fail_read(ChatFn.GET_USER_ROOMS.value, RateLimitedError("429", retry_after_ms=500))

    await reads.user_rooms(ALICE)

    assert sleep.delays == [0.5]


async def test_second_rate_limit_propagates(reads, ledger):
    ledger.fail_read(
        ChatFn.GET_USER_ROOMS.value, RateLimitedError("429"), RateLimitedError("429"),
    )

    with pytest.raises(RateLimitedError):
        await reads.user_rooms(ALICE)
    assert ledger.call_count(ChatFn.GET_USER_ROOMS.value) == 2


async def test_connectivity_error_is_not_retried(reads, ledger, sleep):
    ledger.fail_read(ChatFn.GET_USER_ROOMS.value, ConnectivityError("connection refused"))

    with pytest.raises(ConnectivityError):
        await reads.user_rooms(ALICE)
    assert ledger.call_count(ChatFn.GET_USER_ROOMS.value) == 1
    assert sleep.delays == []
