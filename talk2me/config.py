"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Contract addresses that are empty or placeholders ("0x...") normalize to None
    - settle_delay_ms >= 1000 (read replicas lag behind confirmation)
    - call_spacing_ms stays within 100-500ms
    - get_settings() is cached (lru_cache) — single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults target Lisk Sepolia so the client works out-of-the-box against testnet
    - Upload size limit is configuration, not a protocol constant (ADR: source variants disagree)
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_ADDRESSES = frozenset({"", "0x", "0x..."})


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="TALK2ME_", case_sensitive=False,
    )

    # Chain
    rpc_url: str = "https://rpc.sepolia-api.lisk.com"
    chain_id: int = 4202
    chain_name: str = "Lisk Sepolia"
    chain_rpc_urls: list[str] = ["https://rpc.sepolia-api.lisk.com"]
    block_explorer_url: str = "https://sepolia-blockscout.lisk.com"
    native_currency_name: str = "Sepolia Ether"
    native_currency_symbol: str = "ETH"
    native_currency_decimals: int = 18

    # Contracts
    identity_registry_address: str | None = (
        "0xe635F635540F09eec503376A170Fc4bad928EBb7"
    )
    chat_registry_address: str | None = (
        "0x013b2134021F8166240f345e635085847086b252"
    )

    # Signing: unset means the provider (wallet bridge) signs
    signer_private_key: str | None = None

    @field_validator(
        "identity_registry_address", "chat_registry_address", mode="before",
    )
    @classmethod
    def normalize_placeholder(cls, v: str | None) -> str | None:
        """Deploy scripts leave "0x..." behind until contracts are live."""
        if v is None or v.strip() in PLACEHOLDER_ADDRESSES:
            return None
        return v.strip()

    # Read cache
    volatile_ttl_ms: int = 5_000
    stable_ttl_ms: int = 3_600_000

    # Transactions
    settle_delay_ms: int = 1_500
    confirmation_timeout_s: float = 45.0

    @field_validator("settle_delay_ms")
    @classmethod
    def check_settle_delay(cls, v: int) -> int:
        if v < 1_000:
            raise ValueError("settle_delay_ms must be >= 1000")
        return v

    # Backpressure
    call_spacing_ms: int = 200
    rate_limit_retry_delay_ms: int = 2_000
    rate_limit_max_retries: int = 1

    @field_validator("call_spacing_ms")
    @classmethod
    def check_call_spacing(cls, v: int) -> int:
        if not 100 <= v <= 500:
            raise ValueError("call_spacing_ms must be within 100-500")
        return v

    # Messages
    message_page_size: int = 50

    # Content store (Pinata)
    pinata_jwt: str | None = None
    pinata_api_url: str = "https://api.pinata.cloud/pinning/pinFileToIPFS"
    pinata_gateway_url: str = "https://gateway.pinata.cloud/ipfs/"
    content_upload_timeout_s: float = 30.0
    max_image_bytes: int = 5 * 1024 * 1024

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
