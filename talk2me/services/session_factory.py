"""Session Factory — wires one session's services from Settings.

Invariants:
    - Every service of one session shares one ReadCache, LedgerReads and TransactionTracker
    - The chat session is subscribed to the network guard's chain-change fan-out

Design Decisions:
    - Collaborators (gateway, wallet, content store) are passed in: the API lifespan
      builds the web3/httpx ones, tests pass fakes
    - sleep and clock injectable so tests run without real delays
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from talk2me.config import Settings
from talk2me.core.ledger_protocols import ContentStore, LedgerGateway, Sleep, WalletBridge
from talk2me.core.retry_policy import rate_limit_policy
from talk2me.services.chat_session import ChatSession
from talk2me.services.ledger_reads import LedgerReads
from talk2me.services.network_guard import NetworkGuard
from talk2me.services.participation import ParticipationManager
from talk2me.services.read_cache import ReadCache
from talk2me.services.registration import RegistrationService
from talk2me.services.transaction_tracker import TransactionTracker


@dataclass
class SessionServices:
    """Everything a UI process drives for one actor session."""
    session: ChatSession
    network: NetworkGuard
    registration: RegistrationService
    tracker: TransactionTracker


def build_services(
    settings: Settings,
    gateway: LedgerGateway,
    wallet: WalletBridge,
    content_store: ContentStore,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> SessionServices:
    volatile_ttl_s = settings.volatile_ttl_ms / 1000
    cache = ReadCache(volatile_ttl_s, clock)
    reads = LedgerReads(
        gateway, cache,
        rate_limit_policy(
            settings.rate_limit_retry_delay_ms, settings.rate_limit_max_retries,
        ),
        volatile_ttl_s, settings.stable_ttl_ms / 1000, sleep,
    )
    tracker = TransactionTracker(
        gateway, settings.settle_delay_ms / 1000,
        settings.confirmation_timeout_s, sleep,
    )
    session = ChatSession(
        reads, tracker, ParticipationManager(reads, tracker),
        settings.chain_id, settings.call_spacing_ms / 1000,
        settings.message_page_size, sleep,
    )
    network = NetworkGuard.from_settings(wallet, settings)
    network.subscribe(session.handle_chain_changed)
    registration = RegistrationService(
        reads, tracker, content_store, settings.max_image_bytes,
    )
    return SessionServices(session, network, registration, tracker)
