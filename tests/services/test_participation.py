"""Tests: ParticipationManager — checks, serialized joins, remediation.

Invariants:
    - A join while one is in flight returns the same tx id and writes once
    - Submission failure returns the record to NOT_PARTICIPANT
    - Confirmation (after settle) moves JOIN_CONFIRMING → PARTICIPANT
    - Only the global room can be joined
"""

import asyncio

import pytest

from talk2me.core.domain_types import ChatFn, ParticipationState as S
from talk2me.core.errors import InvalidConfigurationError, UserRejectedSignatureError

from tests.services.fake_ledger import ALICE, BOB, GLOBAL_ROOM, direct_room_id


@pytest.fixture
def manager(services):
    manager = services.session.participation
    manager.global_room_id = GLOBAL_ROOM
    return manager


async def test_check_records_ledger_answer(manager, ledger):
    assert await manager.check(ALICE, GLOBAL_ROOM) == S.NOT_PARTICIPANT

    ledger.add_participant(GLOBAL_ROOM, ALICE)
    assert await manager.check(ALICE, GLOBAL_ROOM, fresh=True) == S.PARTICIPANT


async def test_check_uses_global_participation_read(manager, ledger):
    await manager.check(ALICE, GLOBAL_ROOM)
    assert ledger.call_count(ChatFn.IS_GLOBAL_PARTICIPANT.value) == 1
    assert ledger.call_count(ChatFn.IS_PARTICIPANT.value) == 0


async def test_join_confirms_to_participant(manager, ledger, services):
    tx_id = await manager.join(ALICE, GLOBAL_ROOM)
    assert manager.state(ALICE, GLOBAL_ROOM) == S.JOIN_CONFIRMING
    assert manager.record(ALICE, GLOBAL_ROOM).pending_tx_id == tx_id

    await manager.wait_for_join(tx_id)

    rec = manager.record(ALICE, GLOBAL_ROOM)
    assert rec.state == S.PARTICIPANT
    assert rec.pending_tx_id is None


async def test_second_join_while_in_flight_writes_once(manager, ledger):
    ledger.hold_receipts = True

    first = await manager.join(ALICE, GLOBAL_ROOM)
    second = await manager.join(ALICE, GLOBAL_ROOM)

    assert first == second
    assert ledger.write_count(ChatFn.JOIN_GLOBAL_ROOM.value) == 1
    ledger.release_receipts()
    await manager.wait_for_join(first)


async def test_concurrent_joins_write_once(manager, ledger):
    ledger.hold_receipts = True

    ids = await asyncio.gather(*[manager.join(ALICE, GLOBAL_ROOM) for _ in range(3)])

    assert len(set(ids)) == 1
    assert ledger.write_count(ChatFn.JOIN_GLOBAL_ROOM.value) == 1
    ledger.release_receipts()
    await manager.wait_for_join(ids[0])


async def test_join_when_already_participant_is_noop(manager, ledger):
    ledger.add_participant(GLOBAL_ROOM, ALICE)

    assert await manager.join(ALICE, GLOBAL_ROOM) is None
    assert ledger.write_count(ChatFn.JOIN_GLOBAL_ROOM.value) == 0


async def test_rejected_join_returns_to_not_participant(manager, ledger):
    ledger.fail_write(ChatFn.JOIN_GLOBAL_ROOM.value, UserRejectedSignatureError())

    with pytest.raises(UserRejectedSignatureError):
        await manager.join(ALICE, GLOBAL_ROOM)
    assert manager.state(ALICE, GLOBAL_ROOM) == S.NOT_PARTICIPANT


async def test_reverted_join_returns_to_not_participant(manager, ledger):
    ledger.revert_writes.add(ChatFn.JOIN_GLOBAL_ROOM.value)

    tx_id = await manager.join(ALICE, GLOBAL_ROOM)
    await manager.wait_for_join(tx_id)

    assert manager.state(ALICE, GLOBAL_ROOM) == S.NOT_PARTICIPANT


async def test_join_of_direct_room_is_invalid_configuration(manager, ledger):
    with pytest.raises(InvalidConfigurationError):
        await manager.join(ALICE, direct_room_id(ALICE, BOB))
    assert ledger.writes == []


async def test_remediate_from_stale_participant_rejoins_once(manager, ledger):
    ledger.add_participant(GLOBAL_ROOM, ALICE)
    await manager.check(ALICE, GLOBAL_ROOM)
    ledger.participants[GLOBAL_ROOM.lower()].discard(ALICE.lower())

    assert await manager.remediate(ALICE, GLOBAL_ROOM) is True
    assert ledger.write_count(ChatFn.JOIN_GLOBAL_ROOM.value) == 1
    assert manager.state(ALICE, GLOBAL_ROOM) == S.PARTICIPANT


async def test_read_denied_in_participant_marks_stale(manager, ledger):
    ledger.add_participant(GLOBAL_ROOM, ALICE)
    await manager.check(ALICE, GLOBAL_ROOM)

    assert manager.read_denied(ALICE, GLOBAL_ROOM) == S.PARTICIPANT_STALE
