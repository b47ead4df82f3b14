"""
Global configuration entry‑point.

▪ Loads environment variables from `.env` (if present)
▪ Exposes a single singleton `settings` object
▪ Holds the SDK‑wide constants (units, fees, limits, default endpoints)
▪ `ClientConfig` is the per‑client, mutable view used by the chain layer
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings

# ──────────────────────────────────────────────────────────────
# 0. Load .env early so that pydantic can pick up the variables
# ──────────────────────────────────────────────────────────────
load_dotenv()

DEFAULT_BASE_URL = "https://api.taostats.io"
DEFAULT_RPC_URL = (
    "wss://api.taostats.io/api/v1/rpc/ws/finney_archive?authorization={API_KEY}"
)
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3
USER_AGENT = "taostats-sdk/1.0.0"

SUBTENSOR_MODULE = "SubtensorModule"
RAO_PER_TAO = 10**9
EXISTENTIAL_DEPOSIT = "0.0000005"  # TAO
STAKE_FEE_RAO = 50_000  # fallback fee when estimation fails
MAX_AMOUNT = 1_000_000  # TAO / Alpha per operation
STORAGE_PAGE_SIZE = 1000
BLOCK_CACHE_SIZE = 32
SAME_SUBNET_SLIPPAGE = "0.01"  # percent
DEFAULT_SLIPPAGE_TOLERANCE = 0.05  # fraction (5 %)


# ──────────────────────────────────────────────────────────────
# 1. Settings object (use everywhere instead of os.getenv)
# ──────────────────────────────────────────────────────────────
class _Settings(BaseSettings):
    # --- General process switches ------------------------------------------------
    LOG_LEVEL: str = Field("INFO", env="LOG_LEVEL")  # DEBUG / INFO / WARNING / ERROR

    # --- Analytics REST API ------------------------------------------------------
    TAOSTATS_API_KEY: Optional[str] = Field(None, env="TAOSTATS_API_KEY")
    TAOSTATS_BASE_URL: str = Field(DEFAULT_BASE_URL, env="TAOSTATS_BASE_URL")
    REQUEST_TIMEOUT: float = Field(DEFAULT_TIMEOUT, env="REQUEST_TIMEOUT")  # seconds
    REQUEST_RETRIES: int = Field(DEFAULT_RETRIES, env="REQUEST_RETRIES")

    # --- Subtensor RPC -----------------------------------------------------------
    RPC_URL: Optional[str] = Field(None, env="RPC_URL")
    BLOCK_CACHE_SIZE: int = Field(BLOCK_CACHE_SIZE, env="BLOCK_CACHE_SIZE")
    SUBMIT_TIMEOUT: Optional[float] = Field(None, env="SUBMIT_TIMEOUT")  # None = wait forever

    # --- Signing accounts --------------------------------------------------------
    TAO_ACCOUNT_SEED: Optional[str] = Field(None, env="TAO_ACCOUNT_SEED")
    TAO_ACCOUNT_PRIVATE_KEY: Optional[str] = Field(None, env="TAO_ACCOUNT_PRIVATE_KEY")
    TAO_TRANSFER_PROXY_SEED: Optional[str] = Field(None, env="TAO_TRANSFER_PROXY_SEED")

    # --- Transaction defaults ----------------------------------------------------
    DEFAULT_SLIPPAGE_TOLERANCE: float = Field(
        DEFAULT_SLIPPAGE_TOLERANCE, env="DEFAULT_SLIPPAGE_TOLERANCE"
    )

    # pydantic settings
    class Config:
        env_file = ".env"
        case_sensitive = False

    @validator("LOG_LEVEL")
    def _validate_log_level(cls, v: str) -> str:  # noqa: N805
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        v_up = v.upper()
        if v_up not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v_up

    @validator("DEFAULT_SLIPPAGE_TOLERANCE")
    def _validate_tolerance(cls, v: float) -> float:  # noqa: N805
        if not 0.0 <= v <= 1.0:
            raise ValueError("DEFAULT_SLIPPAGE_TOLERANCE must be within [0, 1]")
        return v


@lru_cache(maxsize=1)
def get_settings() -> _Settings:
    """Singleton accessor – import this everywhere."""
    return _Settings()


settings = get_settings()


# ──────────────────────────────────────────────────────────────
# 2. Per‑client configuration
# ──────────────────────────────────────────────────────────────
class ClientConfig(BaseModel):
    """
    Effective configuration of one `TaoStatsClient`.

    Mutable on purpose: the chain connection re‑reads `rpc_url` on every
    call and reconnects when it changes.
    """

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    rpc_url: str = DEFAULT_RPC_URL
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    seed: Optional[str] = None
    private_key: Optional[str] = None
    proxy_seed: Optional[str] = None
    block_cache_size: int = BLOCK_CACHE_SIZE
    submit_timeout: Optional[float] = None
    slippage_tolerance: float = DEFAULT_SLIPPAGE_TOLERANCE

    class Config:
        validate_assignment = True

    @classmethod
    def build(
        cls,
        *,
        api_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        base_url: Optional[str] = None,
        seed: Optional[str] = None,
        private_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        source: Optional[_Settings] = None,
    ) -> "ClientConfig":
        """
        Merge explicit arguments over the environment settings.

        RPC URL precedence: explicit api key (fills the archive template) →
        explicit `rpc_url` → `RPC_URL` env → env api key → bare template.
        """
        s = source or settings
        key = api_key or s.TAOSTATS_API_KEY
        if api_key:
            effective_rpc = DEFAULT_RPC_URL.replace("{API_KEY}", api_key)
        elif rpc_url:
            effective_rpc = rpc_url
        elif s.RPC_URL:
            effective_rpc = s.RPC_URL
        elif key:
            effective_rpc = DEFAULT_RPC_URL.replace("{API_KEY}", key)
        else:
            effective_rpc = DEFAULT_RPC_URL

        return cls(
            api_key=key,
            base_url=base_url or s.TAOSTATS_BASE_URL,
            rpc_url=effective_rpc,
            timeout=timeout if timeout is not None else s.REQUEST_TIMEOUT,
            retries=retries if retries is not None else s.REQUEST_RETRIES,
            seed=seed or s.TAO_ACCOUNT_SEED,
            private_key=private_key or s.TAO_ACCOUNT_PRIVATE_KEY,
            proxy_seed=s.TAO_TRANSFER_PROXY_SEED,
            block_cache_size=s.BLOCK_CACHE_SIZE,
            submit_timeout=s.SUBMIT_TIMEOUT,
            slippage_tolerance=s.DEFAULT_SLIPPAGE_TOLERANCE,
        )
