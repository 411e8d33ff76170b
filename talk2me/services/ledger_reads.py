"""Ledger Reads — named contract reads composed from gateway, read cache and backoff policy.

Invariants:
    - Every read goes through with_retry(): rate-limited reads retry once after a fixed delay,
      every other error propagates on first failure
    - Cached reads share one cache key namespace per session (see *_key helpers)
    - Room reads are issued with from=actor: the contract checks msg.sender participation
    - NotConfiguredError propagates; callers choose their degraded default

Design Decisions:
    - Retry sits inside the cache loader: concurrent waiters share the retried result
      instead of each retrying independently
    - Global room id uses the stable TTL (it never changes for a deployment)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from talk2me.core.domain_types import (
    Address, ChatFn, ContractName, IdentityFn, RoomId,
)
from talk2me.core.errors import Talk2MeError
from talk2me.core.ledger_protocols import LedgerGateway, Sleep
from talk2me.core.models import ActorProfile, ChatMessage, same_address
from talk2me.core.retry_policy import BackoffPolicy
from talk2me.services.read_cache import ReadCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

GLOBAL_ROOM_KEY = "global_room_id"
REGISTERED_ADDRESSES_KEY = "registered_addresses"


def participation_key(room_id: str, actor: str) -> str:
    return f"participant:{room_id.lower()}:{actor.lower()}"


def messages_prefix(room_id: str) -> str:
    return f"messages:{room_id.lower()}:"


def rooms_key(actor: str) -> str:
    return f"rooms:{actor.lower()}"


def registration_prefix(actor: str) -> str:
    return f"identity:{actor.lower()}:"


async def with_retry(
    policy: BackoffPolicy,
    call: Callable[[], Awaitable[T]],
    sleep: Sleep = asyncio.sleep,
    label: str = "read",
) -> T:
    """Run call() under policy. Non-retryable errors propagate immediately."""
    attempt = 0
    while True:
        try:
            return await call()
        except Talk2MeError as e:
            if not policy.should_retry(e, attempt):
                raise
            delay = policy.delay_ms(attempt, e)
            logger.warning(
                f"{label} {e.code}, retry after {delay}ms (attempt {attempt + 1})",
                extra={"attempt": attempt + 1, "error_code": e.code},
            )
            await sleep(delay / 1000)
            attempt += 1


class LedgerReads:
    """Cached, rate-limit-aware reads of both registries."""

    def __init__(
        self,
        gateway: LedgerGateway,
        cache: ReadCache,
        policy: BackoffPolicy,
        volatile_ttl_s: float = 5.0,
        stable_ttl_s: float = 3600.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.gateway = gateway
        self.cache = cache
        self.policy = policy
        self.volatile_ttl_s = volatile_ttl_s
        self.stable_ttl_s = stable_ttl_s
        self._sleep = sleep

    async def _read(
        self, key: str | None, contract: ContractName, fn: str,
        args: tuple = (), ttl_s: float | None = None,
        sender: Address | None = None,
    ) -> Any:
        async def load():
            return await with_retry(
                self.policy,
                lambda: self.gateway.read_call(contract, fn, args, sender=sender),
                self._sleep, fn,
            )

        if key is None:
            return await load()
        return await self.cache.get_or_load(
            key, load, self.volatile_ttl_s if ttl_s is None else ttl_s,
        )

    # --- Chat Registry -------------------------------------------------------

    async def global_room_id(self) -> RoomId:
        room = await self._read(
            GLOBAL_ROOM_KEY, ContractName.CHAT_REGISTRY,
            ChatFn.GET_GLOBAL_ROOM_ID.value, ttl_s=self.stable_ttl_s,
        )
        return RoomId(room)

    async def is_participant(
        self, room_id: RoomId, actor: Address, global_room_id: RoomId | None,
    ) -> bool:
        if global_room_id is not None and same_address(room_id, global_room_id):
            fn, args = ChatFn.IS_GLOBAL_PARTICIPANT.value, (actor,)
        else:
            fn, args = ChatFn.IS_PARTICIPANT.value, (room_id, actor)
        return bool(await self._read(
            participation_key(room_id, actor), ContractName.CHAT_REGISTRY, fn, args,
        ))

    async def room_messages(
        self, room_id: RoomId, actor: Address, offset: int, limit: int,
    ) -> list[ChatMessage]:
        raw = await self._read(
            f"{messages_prefix(room_id)}{offset}:{limit}:{actor.lower()}",
            ContractName.CHAT_REGISTRY, ChatFn.GET_ROOM_MESSAGES.value,
            (room_id, offset, limit), sender=actor,
        )
        return [ChatMessage.from_ledger(m) for m in raw]

    async def user_rooms(self, actor: Address) -> list[RoomId]:
        rooms = await self._read(
            rooms_key(actor), ContractName.CHAT_REGISTRY,
            ChatFn.GET_USER_ROOMS.value, (actor,),
        )
        return [RoomId(r) for r in rooms]

    async def preview_direct_room(self, actor: Address, participant: Address) -> RoomId:
        """Room id createDirectMessage would return, via a simulated call from actor."""
        room = await self._read(
            None, ContractName.CHAT_REGISTRY, ChatFn.CREATE_DIRECT_ROOM.value,
            (participant,), sender=actor,
        )
        return RoomId(room)

    # --- Identity Registry ---------------------------------------------------

    async def is_registered(self, actor: Address) -> bool:
        return bool(await self._read(
            f"{registration_prefix(actor)}registered",
            ContractName.IDENTITY_REGISTRY, IdentityFn.IS_REGISTERED.value, (actor,),
        ))

    async def user_record(self, actor: Address) -> ActorProfile:
        raw = await self._read(
            f"{registration_prefix(actor)}record",
            ContractName.IDENTITY_REGISTRY, IdentityFn.GET_RECORD.value, (actor,),
        )
        return ActorProfile.from_ledger(raw)

    async def registered_addresses(self) -> list[Address]:
        addresses = await self._read(
            REGISTERED_ADDRESSES_KEY, ContractName.IDENTITY_REGISTRY,
            IdentityFn.LIST_REGISTERED.value,
        )
        return [Address(a) for a in addresses]

    # --- Invalidation --------------------------------------------------------

    def invalidate_participation(self, room_id: RoomId, actor: Address) -> None:
        self.cache.invalidate(participation_key(room_id, actor))

    def invalidate_messages(self, room_id: RoomId) -> None:
        self.cache.invalidate_prefix(messages_prefix(room_id))

    def invalidate_rooms(self, actor: Address) -> None:
        self.cache.invalidate(rooms_key(actor))

    def invalidate_registration(self, actor: Address) -> None:
        self.cache.invalidate_prefix(registration_prefix(actor))
        self.cache.invalidate(REGISTERED_ADDRESSES_KEY)
