"""Chat Session — orchestrates reads, writes and participation for one actor.

Invariants:
    - Every public operation returns an Outcome; Talk2MeError never escapes to the caller
    - Displayed messages always belong to active_room_id: a page is applied only when
      its room is active, its seq is the newest applied for that room and its epoch
      is current
    - A load remediates a participation denial at most once (one re-join, one re-read)
    - handle_chain_changed() drops cache, tracker, participation and displayed state
      before anything is re-read

Design Decisions:
    - Session owns its ReadCache/Tracker/ParticipationManager: chain change replaces
      nothing, it resets in place and bumps the epoch (ADR: in-place re-init over reload)
    - Calls during initialize() are spaced (call_spacing_s) as backpressure against
      provider rate limits
    - Message refresh after a send is driven by the confirmation callback, never by
      the submit return
"""

import asyncio
import hashlib
import logging

from talk2me.core.domain_types import (
    Address, ChatFn, ContractName, MessageKind, ParticipationState, RoomId,
    TransactionId, TxPurpose, TxStatus, DEFAULT_PAGE_SIZE,
)
from talk2me.core.errors import (
    ErrorContext, InvalidConfigurationError, MessageValidationError,
    NotAParticipantError, NotConfiguredError, SessionResetError, Talk2MeError,
    TerminalParticipationError,
)
from talk2me.core.ledger_protocols import Sleep
from talk2me.core.models import ChatMessage, MessagePage, TxRequest, same_address
from talk2me.core.outcome import Outcome
from talk2me.services.ledger_reads import LedgerReads
from talk2me.services.network_guard import parse_chain_id
from talk2me.services.participation import ParticipationManager
from talk2me.services.transaction_tracker import TransactionTracker

logger = logging.getLogger(__name__)


class ChatSession:
    """One actor's view of the chat ledger."""

    def __init__(
        self,
        reads: LedgerReads,
        tracker: TransactionTracker,
        participation: ParticipationManager,
        target_chain_id: int,
        call_spacing_s: float = 0.2,
        page_size: int = DEFAULT_PAGE_SIZE,
        sleep: Sleep = asyncio.sleep,
    ):
        self.reads = reads
        self.tracker = tracker
        self.participation = participation
        self.target_chain_id = target_chain_id
        self.call_spacing_s = call_spacing_s
        self.page_size = page_size
        self._sleep = sleep

        self.actor: Address | None = None
        self.global_room_id: RoomId | None = None
        self.active_room_id: RoomId | None = None
        self.displayed_room_id: RoomId | None = None
        self.messages: tuple[ChatMessage, ...] = ()
        self.chat_rooms: list[RoomId] = []
        self.direct_rooms: dict[str, RoomId] = {}
        self.epoch = 0
        self._seq = 0
        self._applied_seq: dict[str, int] = {}

    # --- Helpers -------------------------------------------------------------

    async def _space(self) -> None:
        await self._sleep(self.call_spacing_s)

    def _require_actor(self) -> Address:
        if self.actor is None or self.global_room_id is None:
            raise InvalidConfigurationError("Session not initialized")
        return self.actor

    def _check_epoch(self, epoch: int) -> None:
        if epoch != self.epoch:
            raise SessionResetError()

    def _failed(self, op: str, error: Talk2MeError, **details) -> Outcome:
        logger.warning(
            f"{op} failed: {error.code}",
            extra={
                "actor": self.actor, "room_id": details.get("room_id"),
                "error_code": error.code,
            },
        )
        return error.to_outcome(**details)

    # --- Initialize ----------------------------------------------------------

    async def initialize(self, actor: str) -> Outcome:
        """Global room → participation → join if needed → messages → room list."""
        self.actor = Address(actor)
        try:
            await self._initialize(self.epoch)
        except Talk2MeError as e:
            return self._failed("initialize", e)
        return Outcome.success("Session initialized", data=self.snapshot())

    async def _initialize(self, epoch: int) -> None:
        actor = self.actor
        room = await self.reads.global_room_id()
        self._check_epoch(epoch)
        self.global_room_id = room
        self.participation.global_room_id = room
        if self.active_room_id is None:
            self.active_room_id = room
        logger.info("Global room resolved", extra={"actor": actor, "room_id": room})

        await self._space()
        state = await self.participation.check(actor, room)
        self._check_epoch(epoch)
        if state != ParticipationState.PARTICIPANT:
            await self._space()
            tx_id = await self.participation.join(actor, room)
            if tx_id is not None:
                await self._await_join(tx_id, epoch)

        await self._space()
        self._check_epoch(epoch)
        await self._load_page(room, 0, self.page_size)

        await self._space()
        self._check_epoch(epoch)
        await self._refresh_rooms()

    async def _await_join(self, tx_id: TransactionId, epoch: int) -> None:
        tx = await self.participation.wait_for_join(tx_id)
        self._check_epoch(epoch)
        if tx.status == TxStatus.CONFIRMED:
            return
        if tx.error is not None:
            raise tx.error
        raise SessionResetError()

    async def _refresh_rooms(self) -> bool:
        """Load the actor's room list; failure is logged, never raised."""
        try:
            self.chat_rooms = await self.reads.user_rooms(self.actor)
        except Talk2MeError as e:
            logger.warning(
                f"Room list unavailable: {e.code}",
                extra={"actor": self.actor, "error_code": e.code},
            )
            return False
        return True

    # --- Messages ------------------------------------------------------------

    async def load_messages(
        self, room_id: str | None = None, offset: int = 0, limit: int | None = None,
    ) -> Outcome:
        """Read a page of room messages; applies it only if still relevant."""
        room = RoomId(room_id) if room_id else self.active_room_id
        limit = self.page_size if limit is None else limit
        if self.actor is None or room is None:
            return InvalidConfigurationError("Session not initialized").to_outcome()

        try:
            page, applied = await self._load_page(room, offset, limit)
        except Talk2MeError as e:
            return self._failed("load_messages", e, room_id=room)
        return Outcome.success(
            "Messages loaded" if applied else "Stale response discarded",
            data=[m.to_dict() for m in page.messages],
            room_id=room, seq=page.seq, applied=applied,
        )

    async def _load_page(
        self, room: RoomId, offset: int, limit: int,
    ) -> tuple[MessagePage, bool]:
        self._seq += 1
        seq, epoch = self._seq, self.epoch
        try:
            messages = await self._read_messages(room, offset, limit)
        except NotConfiguredError:
            messages = []
        page = MessagePage(epoch, room, seq, offset, limit, tuple(messages))
        return page, self._apply_page(page)

    async def _read_messages(self, room: RoomId, offset: int, limit: int) -> list[ChatMessage]:
        actor = self.actor
        try:
            return await self.reads.room_messages(room, actor, offset, limit)
        except NotAParticipantError:
            if not self.participation.is_joinable_room(room):
                self.participation.read_denied(actor, room)
                raise

        ctx = ErrorContext(actor=actor, room_id=room)
        if not await self.participation.remediate(actor, room):
            raise TerminalParticipationError("Re-join did not confirm", ctx)
        self.reads.invalidate_messages(room)
        try:
            return await self.reads.room_messages(room, actor, offset, limit)
        except NotAParticipantError as e:
            self.participation.read_denied(actor, room)
            raise TerminalParticipationError(
                "Still not a participant after re-join", ctx,
            ) from e

    def _apply_page(self, page: MessagePage) -> bool:
        key = page.room_id.lower()
        if (
            page.epoch != self.epoch
            or not same_address(page.room_id, self.active_room_id)
            or page.seq < self._applied_seq.get(key, 0)
        ):
            logger.debug(
                "Discarded stale message page",
                extra={"room_id": page.room_id, "seq": page.seq},
            )
            return False
        self._applied_seq[key] = page.seq
        self.messages = page.messages
        self.displayed_room_id = page.room_id
        return True

    async def send_message(
        self, content: str, kind: str = MessageKind.BROADCAST.value,
        recipient: str | None = None,
    ) -> Outcome:
        """Submit a message; the room reloads when the write confirms."""
        try:
            tx_id, room = await self._send(content, MessageKind(kind), recipient)
        except ValueError:
            return InvalidConfigurationError(f"Unknown message kind: {kind}").to_outcome()
        except Talk2MeError as e:
            return self._failed("send_message", e)
        return Outcome.success("Message submitted", data={"tx_id": tx_id}, room_id=room)

    async def _send(
        self, content: str, kind: MessageKind, recipient: str | None,
    ) -> tuple[TransactionId, RoomId]:
        actor = self._require_actor()
        if not content or not content.strip():
            raise MessageValidationError("Message content cannot be empty")

        if kind == MessageKind.BROADCAST:
            room = self.global_room_id
            request = TxRequest(
                ContractName.CHAT_REGISTRY, ChatFn.SEND_GROUP_MESSAGE.value, (content,),
            )
        else:
            if not recipient:
                raise InvalidConfigurationError("Direct message requires a recipient")
            room = self.direct_rooms.get(recipient.lower())
            if room is None:
                raise InvalidConfigurationError(
                    f"No direct room with {recipient}; create one first",
                    ErrorContext(actor=actor),
                )
            request = TxRequest(
                ContractName.CHAT_REGISTRY, ChatFn.SEND_MESSAGE.value,
                (room, recipient, content),
            )

        digest = hashlib.sha256(content.encode()).hexdigest()[:16]
        tx_id = await self.tracker.submit(
            TxPurpose.SEND, request, actor,
            dedupe_key=f"send:{room.lower()}:{digest}",
        )
        self.tracker.on_confirmed(tx_id, lambda tx: self._room_changed(room))
        return tx_id, room

    async def _room_changed(self, room: RoomId) -> None:
        self.reads.invalidate_messages(room)
        if same_address(room, self.active_room_id):
            await self.load_messages(room)

    # --- Rooms ---------------------------------------------------------------

    async def switch_room(self, room_id: str) -> Outcome:
        if not room_id:
            return InvalidConfigurationError("Room id required").to_outcome()
        self.active_room_id = RoomId(room_id)
        self.messages = ()
        self.displayed_room_id = None
        logger.info("Switched room", extra={"actor": self.actor, "room_id": room_id})
        return await self.load_messages(room_id)

    async def join_room(self, room_id: str | None = None) -> Outcome:
        """Join a room (only the global room has an on-ledger join)."""
        try:
            self._require_actor()
            room = RoomId(room_id) if room_id else self.global_room_id
            tx_id = await self.participation.join(self.actor, room)
        except Talk2MeError as e:
            return self._failed("join_room", e, room_id=room_id)
        if tx_id is None:
            return Outcome.success("Already a participant", room_id=room)
        self.tracker.on_confirmed(tx_id, lambda tx: self._room_changed(room))
        return Outcome.success("Join submitted", data={"tx_id": tx_id}, room_id=room)

    async def create_direct_room(self, participant: str) -> Outcome:
        """Create a direct room; its id is recorded when the creation confirms."""
        try:
            actor = self._require_actor()
            if not participant or same_address(participant, actor):
                raise InvalidConfigurationError("A different participant address is required")
            existing = self.direct_rooms.get(participant.lower())
            if existing is not None:
                return Outcome.success(
                    "Direct room already exists", data={"room_id": existing},
                )
            room = await self.reads.preview_direct_room(actor, Address(participant))
            tx_id = await self.tracker.submit(
                TxPurpose.CREATE_ROOM,
                TxRequest(
                    ContractName.CHAT_REGISTRY, ChatFn.CREATE_DIRECT_ROOM.value,
                    (participant,),
                ),
                actor,
                dedupe_key=f"createRoom:{actor.lower()}:{participant.lower()}",
            )
        except Talk2MeError as e:
            return self._failed("create_direct_room", e)

        self.tracker.on_confirmed(
            tx_id, lambda tx: self._direct_room_created(participant, room),
        )
        return Outcome.success(
            "Direct room creation submitted", data={"tx_id": tx_id, "room_id": room},
        )

    async def _direct_room_created(self, participant: str, room: RoomId) -> None:
        self.direct_rooms[participant.lower()] = room
        self.reads.invalidate_rooms(self.actor)
        logger.info(
            "Direct room created",
            extra={"actor": self.actor, "room_id": room},
        )
        await self._refresh_rooms()

    # --- Chain change --------------------------------------------------------

    async def handle_chain_changed(self, chain_id: int | str) -> Outcome:
        """Reset every session layer in place, then re-initialize on the target chain."""
        new_chain = parse_chain_id(chain_id)
        self._reset()
        logger.warning(
            "Session state dropped after chain change",
            extra={"actor": self.actor, "chain_id": new_chain},
        )
        if self.actor is None or new_chain != self.target_chain_id:
            return Outcome.success(
                "Session reset", chain_id=new_chain, reinitialized=False,
            )
        outcome = await self.initialize(self.actor)
        if not outcome.ok:
            return outcome
        return Outcome.success(
            "Session re-initialized", data=outcome.data,
            chain_id=new_chain, reinitialized=True,
        )

    def _reset(self) -> None:
        # synchronous: no await may interleave with a half-reset session
        self.epoch += 1
        self.reads.cache.clear()
        self.tracker.reset()
        self.participation.reset()
        self.global_room_id = None
        self.active_room_id = None
        self.displayed_room_id = None
        self.messages = ()
        self.chat_rooms = []
        self.direct_rooms.clear()
        self._applied_seq.clear()

    # --- Introspection -------------------------------------------------------

    def snapshot(self) -> dict:
        active_state = None
        if self.actor is not None and self.active_room_id is not None:
            active_state = self.participation.state(self.actor, self.active_room_id).value
        return {
            "actor": self.actor,
            "global_room_id": self.global_room_id,
            "active_room_id": self.active_room_id,
            "displayed_room_id": self.displayed_room_id,
            "participation": active_state,
            "messages": [m.to_dict() for m in self.messages],
            "chat_rooms": list(self.chat_rooms),
            "direct_rooms": dict(self.direct_rooms),
            "pending_transactions": [tx.to_dict() for tx in self.tracker.pending()],
        }


