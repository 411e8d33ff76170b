"""Service test fixtures — fake ledger, wallet, content store and wired services.

Invariants:
    - Every test gets fresh fakes and a fresh session (no shared cache or tracker)
    - Sleeps are no-ops that still yield to the loop: settle delays, call spacing and
      rate-limit backoff never slow tests down
    - The read cache runs on a FakeClock; TTL tests advance it explicitly

Design Decisions:
    - build_services() used as-is: tests exercise the same wiring as the API lifespan
    - Route tests inject the fake-backed services on app.state; ASGITransport does not
      run the lifespan, so no web3 provider is ever built
"""

import pytest
from httpx import ASGITransport, AsyncClient

from talk2me.config import Settings
from talk2me.main import app
from talk2me.services.session_factory import build_services

from tests.services.fake_ledger import (
    FakeClock, FakeContentStore, FakeLedger, FakeWallet, SleepRecorder,
)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        settle_delay_ms=1_000,
        confirmation_timeout_s=0.2,
        call_spacing_ms=100,
    )


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def wallet():
    return FakeWallet(chain_id=4202, known_chains={4202})


@pytest.fixture
def content_store():
    return FakeContentStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
async def services(settings, ledger, wallet, content_store, sleep, clock):
    built = build_services(settings, ledger, wallet, content_store, sleep, clock)
    yield built
    built.tracker.reset()


@pytest.fixture
def session(services):
    return services.session


@pytest.fixture
async def client(services):
    app.state.services = services
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
    app.state.services = None
