"""
Entry point of the SDK.

`TaoStatsClient` wires one `ClientConfig` into the REST endpoint groups
and the chain transaction modules:

    async with TaoStatsClient(api_key="...") as client:
        await client.subnets.get_subnets({"netuid": 1})
        await client.stake.alpha(hotkey, subnet=1, amount="10")

The chain connection is opened lazily on the first chain operation; REST
calls never touch it.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import bittensor as bt

from api.client import TaoStatsAPIClient
from api.endpoints import (
    AccountsEndpoints,
    ChainEndpoints,
    DelegationsEndpoints,
    LiveEndpoints,
    MetagraphEndpoints,
    SubnetsEndpoints,
    TaoPricesEndpoints,
    TradingViewEndpoints,
    ValidatorsEndpoints,
)
from api.schemas import ApiResponse
from chain.accounts import AccountResolver
from chain.connection import ChainConnection
from config import ClientConfig, settings
from staking.facades import MoveModule, StakeModule, TransferModule, UnstakeModule
from staking.pipeline import TransactionPipeline

# ── logging ──────────────────────────────────────────────────────────────
_NOISY_LINE = "Adding PortableRegistry from metadata to type registry"


class _HidePortableRegistryNoise(logging.Filter):
    """Blocks the DEBUG line scalecodec prints on every metadata load."""
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        return _NOISY_LINE not in record.getMessage()


_suppress_filter = _HidePortableRegistryNoise()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply `LOG_LEVEL` to bittensor's logger and mute scalecodec chatter."""
    level = (level or settings.LOG_LEVEL).upper()
    for name in ("scalecodec", "scalecodec.base", "async_substrate_interface"):
        logging.getLogger(name).addFilter(_suppress_filter)

    if level == "DEBUG":
        bt.logging.set_debug(True)
    elif level == "INFO":
        bt.logging.set_info(True)
    else:
        bt.logging.set_warning(True)
    logging.getLogger("taostats_api_client").setLevel(level)


# ── client ───────────────────────────────────────────────────────────────
class TaoStatsClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        base_url: Optional[str] = None,
        seed: Optional[str] = None,
        private_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        config: Optional[ClientConfig] = None,
        connection: Optional[ChainConnection] = None,
        http: Optional[TaoStatsAPIClient] = None,
        log_level: Optional[str] = None,
    ) -> None:
        configure_logging(log_level)

        self.config = config or ClientConfig.build(
            api_key=api_key,
            rpc_url=rpc_url,
            base_url=base_url,
            seed=seed,
            private_key=private_key,
            timeout=timeout,
            retries=retries,
        )

        # REST
        self.http = http or TaoStatsAPIClient(self.config)
        self.accounts = AccountsEndpoints(self.http)
        self.chain = ChainEndpoints(self.http)
        self.delegations = DelegationsEndpoints(self.http)
        self.subnets = SubnetsEndpoints(self.http)
        self.tao_prices = TaoPricesEndpoints(self.http)
        self.validators = ValidatorsEndpoints(self.http)
        self.metagraph = MetagraphEndpoints(self.http)
        self.live = LiveEndpoints(self.http)
        self.trading_view = TradingViewEndpoints(self.http)

        # Chain
        self.connection = connection or ChainConnection(self.config)
        self.pipeline = TransactionPipeline(self.connection, AccountResolver(self.config))
        self.stake = StakeModule(self.pipeline)
        self.unstake = UnstakeModule(self.pipeline)
        self.transfer = TransferModule(self.pipeline)
        self.move = MoveModule(self.pipeline)

    async def get_health(self) -> ApiResponse:
        """API status; the only call that works without an api key."""
        return await self.http.get("/api/status/v1")

    async def close(self) -> None:
        await self.connection.close()
        await self.http.close()

    async def __aenter__(self) -> "TaoStatsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        await self.close()
