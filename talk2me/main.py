"""Talk2Me API — FastAPI application entry point for a local UI process.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map Talk2MeError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - One session's services built on startup via lifespan, closed on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Pre-set app.state.services is kept: tests and embedding callers inject their own
    - The wallet bridge shares the gateway's AsyncWeb3 instance (one provider, one
      chain identity)
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from talk2me.api.error_handlers import register_error_handlers
from talk2me.api.routes import chat, health, identity, network
from talk2me.config import get_settings
from talk2me.infrastructure.content_store import PinataContentStore
from talk2me.infrastructure.ledger_gateway import Web3LedgerGateway
from talk2me.infrastructure.observability import setup_logging
from talk2me.infrastructure.wallet_bridge import Web3WalletBridge
from talk2me.services.session_factory import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    client = None
    if getattr(app.state, "services", None) is None:
        gateway = Web3LedgerGateway.from_settings(settings)
        client = httpx.AsyncClient(timeout=settings.content_upload_timeout_s)
        app.state.services = build_services(
            settings, gateway, Web3WalletBridge(gateway.w3),
            PinataContentStore.from_settings(settings, client),
        )
    logger.info(
        "Talk2Me API started",
        extra={"chain_id": settings.chain_id},
    )
    yield
    app.state.services.tracker.reset()
    if client is not None:
        await client.aclose()
    logger.info("Talk2Me API shutting down")


app = FastAPI(
    title="Talk2Me Ledger Sync API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(chat.router)
app.include_router(identity.router)
app.include_router(network.router)

register_error_handlers(app)
