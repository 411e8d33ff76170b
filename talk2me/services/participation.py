"""Participation Manager — drives the participation state machine against the ledger.

Invariants:
    - One ParticipationRecord per (actor, room); records live for the session only
    - Joins for one (actor, room) are serialized: a join requested while one is in flight
      returns the pending transaction id and issues no write
    - A record in JOIN_SUBMITTED/JOIN_CONFIRMING is never overwritten by a check read
    - remediate() submits at most one re-join per call; the caller caps it per load
    - Only the global room has an on-ledger join action

Design Decisions:
    - Transitions stay in core/participation_state.py (pure); this module owns locks,
      reads and tracker wiring (ADR: pure core, IO in services)
    - Confirmation handled by tracker callbacks, so a join completes even when nobody
      awaits it; wait_for_join() exists for flows that must continue after settlement
"""

import asyncio
import logging

from talk2me.core.domain_types import (
    Address, ChatFn, ContractName, RoomId, TransactionId, TxPurpose, TxStatus,
    ParticipationEvent as E, ParticipationState as S,
)
from talk2me.core.errors import ErrorContext, InvalidConfigurationError, Talk2MeError
from talk2me.core.models import PendingTransaction, TxRequest, same_address
from talk2me.core.participation_state import ParticipationRecord
from talk2me.services.ledger_reads import LedgerReads
from talk2me.services.transaction_tracker import TransactionTracker

logger = logging.getLogger(__name__)


def _key(actor: str, room_id: str) -> tuple[str, str]:
    return actor.lower(), room_id.lower()


class ParticipationManager:
    """Per-(actor, room) participation records with serialized joins."""

    def __init__(self, reads: LedgerReads, tracker: TransactionTracker):
        self.reads = reads
        self.tracker = tracker
        self.global_room_id: RoomId | None = None
        self._records: dict[tuple[str, str], ParticipationRecord] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def record(self, actor: Address, room_id: RoomId) -> ParticipationRecord:
        key = _key(actor, room_id)
        rec = self._records.get(key)
        if rec is None:
            rec = self._records[key] = ParticipationRecord(actor, room_id)
        return rec

    def state(self, actor: Address, room_id: RoomId) -> S:
        return self.record(actor, room_id).state

    def _lock(self, actor: Address, room_id: RoomId) -> asyncio.Lock:
        return self._locks.setdefault(_key(actor, room_id), asyncio.Lock())

    def is_joinable_room(self, room_id: RoomId) -> bool:
        return self.global_room_id is not None and same_address(room_id, self.global_room_id)

    # --- Check ---------------------------------------------------------------

    async def check(self, actor: Address, room_id: RoomId, fresh: bool = False) -> S:
        """Read participation from the ledger and record it."""
        rec = self.record(actor, room_id)
        if rec.join_in_flight or rec.state == S.PARTICIPANT_STALE:
            return rec.state
        if fresh:
            self.reads.invalidate_participation(room_id, actor)

        is_participant = await self.reads.is_participant(
            room_id, actor, self.global_room_id,
        )
        if rec.join_in_flight or rec.state == S.PARTICIPANT_STALE:
            return rec.state  # a join started while the read was out
        rec.apply(E.CHECKED_PARTICIPANT if is_participant else E.CHECKED_NOT_PARTICIPANT)
        return rec.state

    # --- Join ----------------------------------------------------------------

    async def join(self, actor: Address, room_id: RoomId) -> TransactionId | None:
        """Submit a join; None when the actor already participates.

        Raises InvalidConfigurationError for rooms without a join action and
        propagates submission errors (the record returns to NOT_PARTICIPANT).
        """
        if not self.is_joinable_room(room_id):
            raise InvalidConfigurationError(
                "Only the global chat room can be joined; direct rooms are joined on creation",
                ErrorContext(actor=actor, room_id=room_id),
            )

        async with self._lock(actor, room_id):
            rec = self.record(actor, room_id)
            if rec.join_in_flight:
                logger.info(
                    "Join already in flight",
                    extra={"actor": actor, "room_id": room_id, "tx_id": rec.pending_tx_id},
                )
                return rec.pending_tx_id
            if rec.state == S.UNKNOWN:
                await self.check(actor, room_id)
            if rec.state == S.PARTICIPANT:
                return None

            rec.apply(E.JOIN_SUBMITTED)
            try:
                tx_id = await self.tracker.submit(
                    TxPurpose.JOIN,
                    TxRequest(ContractName.CHAT_REGISTRY, ChatFn.JOIN_GLOBAL_ROOM.value),
                    actor,
                    dedupe_key=f"join:{room_id.lower()}:{actor.lower()}",
                )
            except Talk2MeError:
                rec.apply(E.JOIN_SUBMIT_FAILED)
                raise

            rec.pending_tx_id = tx_id
            rec.apply(E.TX_CONFIRMING)
            self.tracker.on_confirmed(tx_id, lambda tx: self._join_confirmed(rec, tx))
            self.tracker.on_failed(tx_id, lambda tx: self._join_failed(rec, tx))
            logger.info(
                "Join submitted",
                extra={"actor": actor, "room_id": room_id, "tx_id": tx_id},
            )
            return tx_id

    def _join_confirmed(self, rec: ParticipationRecord, tx: PendingTransaction) -> None:
        if rec.pending_tx_id != tx.id:
            return
        self.reads.invalidate_participation(rec.room_id, rec.actor)
        self.reads.invalidate_messages(rec.room_id)
        rec.apply(E.TX_CONFIRMED)
        logger.info(
            "Join confirmed",
            extra={"actor": rec.actor, "room_id": rec.room_id, "tx_id": tx.id},
        )

    def _join_failed(self, rec: ParticipationRecord, tx: PendingTransaction) -> None:
        if rec.pending_tx_id != tx.id:
            return
        rec.apply(E.TX_FAILED)
        logger.warning(
            "Join failed",
            extra={
                "actor": rec.actor, "room_id": rec.room_id, "tx_id": tx.id,
                "error_code": tx.error.code if tx.error else None,
            },
        )

    async def wait_for_join(self, tx_id: TransactionId) -> PendingTransaction:
        """Await join settlement (confirmed + settle delay, or failed)."""
        return await self.tracker.wait(tx_id)

    # --- Remediation ---------------------------------------------------------

    def read_denied(self, actor: Address, room_id: RoomId) -> S:
        """Record that the ledger refused a room read."""
        rec = self.record(actor, room_id)
        if rec.state in (S.UNKNOWN, S.NOT_PARTICIPANT, S.PARTICIPANT):
            rec.apply(E.READ_DENIED)
        self.reads.invalidate_participation(room_id, actor)
        return rec.state

    async def remediate(self, actor: Address, room_id: RoomId) -> bool:
        """One re-join after a denied read; True once the join has settled as confirmed.

        Errors from the join submission propagate.
        """
        self.read_denied(actor, room_id)
        logger.warning(
            "Read denied, re-joining once",
            extra={"actor": actor, "room_id": room_id},
        )
        tx_id = await self.join(actor, room_id)
        if tx_id is None:
            return True
        tx = await self.wait_for_join(tx_id)
        return tx.status == TxStatus.CONFIRMED

    # --- Lifecycle -----------------------------------------------------------

    def reset(self) -> None:
        """Forget every record (chain changed)."""
        self._records.clear()
        self._locks.clear()
        self.global_room_id = None
