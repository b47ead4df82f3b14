"""
Read‑only endpoint groups of the analytics API.

Each method forwards its filters as query parameters and returns the
`ApiResponse` envelope; rows are not re‑modelled.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from .client import TaoStatsAPIClient
from .schemas import ApiResponse

Params = Optional[Dict[str, Any]]


def _with_defaults(params: Params, **defaults: Any) -> Dict[str, Any]:
    merged = dict(defaults)
    merged.update(params or {})
    return merged


class _EndpointGroup:
    def __init__(self, http: TaoStatsAPIClient) -> None:
        self.http = http


class AccountsEndpoints(_EndpointGroup):
    async def get_account(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/account/latest/v1", params)

    async def get_account_history(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/account/history/v1", params)

    async def get_transfers(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/transfer/v1", params)

    async def get_on_chain_identity(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/identity/latest/v1", params)


class ChainEndpoints(_EndpointGroup):
    async def get_blocks(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/block/v1", params)

    async def get_block_numbers_by_interval(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/block/interval/v1", params)

    async def get_extrinsics(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/extrinsic/v1", params)

    async def get_events(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/event/v1", params)

    async def get_chain_calls(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/call/v1", params)

    async def get_latest_stats(self) -> ApiResponse:
        return await self.http.get("/api/stats/latest/v1")

    async def get_stats_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/stats/history/v1", params)

    async def get_runtime_version(self) -> ApiResponse:
        return await self.http.get("/api/runtime_version/latest/v1")

    async def get_runtime_version_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/runtime_version/history/v1", params)

    async def get_proxy_calls(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/proxy_call/v1", params)


class DelegationsEndpoints(_EndpointGroup):
    async def get_slippage(self, params: Dict[str, Any]) -> ApiResponse:
        """Server‑side TAO ⇄ Alpha slippage quote; direction defaults to `tao_to_alpha`."""
        return await self.http.get("/api/dtao/slippage/v1", _with_defaults(params, direction="tao_to_alpha"))

    async def get_delegation_events(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/delegation/v1", params)

    async def get_stake_balance_sum_in_tao(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/stake_balance_aggregated/latest/v1", params)

    async def get_dtao_stake_balance(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/stake_balance/latest/v1", params)

    async def get_dtao_historical_stake_balance(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/dtao/stake_balance/history/v1", params)


class SubnetsEndpoints(_EndpointGroup):
    async def get_subnets(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/latest/v1", params)

    async def get_subnet_history(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/subnet/history/v1", params)

    async def get_historical_subnet_prices_sum(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/pool/total_price/history/v1", params)

    async def get_latest_subnet_prices_sum(self) -> ApiResponse:
        return await self.http.get("/api/dtao/pool/total_price/latest/v1")

    async def get_subnet_registrations(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/registration/v1", params)

    async def get_subnet_registration_cost_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/registration_cost/history/v1", params)

    async def get_current_subnet_registration_cost(self) -> ApiResponse:
        return await self.http.get("/api/subnet/registration_cost/latest/v1")

    async def get_subnet_owner(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/owner/v1", params)

    async def get_subnet_identity(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/identity/v1", params)

    async def get_subnet_emission(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/subnet_emission/v1", params)

    async def get_subnets_pools_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/pool/history/v1", params)

    async def get_current_subnet_pools(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/pool/latest/v1", params)


class TaoPricesEndpoints(_EndpointGroup):
    async def get_tao_price(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/price/latest/v1", _with_defaults(params, asset="tao"))

    async def get_tao_price_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/price/history/v1", _with_defaults(params, asset="TAO"))

    async def get_tao_price_ohlc(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/price/ohlc/v1", _with_defaults(params, asset="tao", period="1d"))


class ValidatorsEndpoints(_EndpointGroup):
    async def get_yield(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/validator/yield/latest/v1", params)

    async def get_validators_in_subnet(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/dtao/validator/available/v1", params)

    async def get_weight_copiers(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/weight_copier/v1", params)

    async def get_alpha_shares_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/hotkey_alpha_shares/history/v1", params)

    async def get_alpha_shares_latest(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/hotkey_alpha_shares/latest/v1", params)

    async def get_weights_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/weights/history/v2", params)

    async def get_weights_latest(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/weights/latest/v2", params)

    async def get_performance(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/validator/performance/v1", params)

    async def get_dtao_performance_latest(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/dtao/validator/performance/latest/v1", params)

    async def get_dtao_performance_history(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/dtao/validator/performance/history/v1", params)

    async def get_metrics_latest(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/metrics/latest/v1", params)

    async def get_metrics_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/metrics/history/v1", params)

    async def get_hotkey_family_latest(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/hotkey/family/latest/v1", params)

    async def get_hotkey_family_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/hotkey/family/history/v1", params)

    async def get_validator_latest(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/latest/v1", params)

    async def get_dtao_validator_latest(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/validator/latest/v1", params)

    async def get_validator_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/validator/history/v1", params)

    async def get_dtao_validator_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/dtao/validator/history/v1", params)


class MetagraphEndpoints(_EndpointGroup):
    async def get_latest(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/metagraph/latest/v1", params)

    async def get_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/metagraph/history/v1", params)

    async def get_root_subnet(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/metagraph/root/latest/v1", params)

    async def get_root_subnet_history(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/metagraph/root/history/v1", params)

    async def get_miner_incentive_distribution(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/subnet/distribution/incentive/v1", params)

    async def get_axon_ip_distribution(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/subnet/distribution/ip/v1", params)

    async def get_coldkey_distribution(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/subnet/distribution/coldkey/v1", params)

    async def get_latest_miner_weight(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/miner/weights/latest/v1", params)

    async def get_miner_weight_history(self, params: Dict[str, Any]) -> ApiResponse:
        return await self.http.get("/api/miner/weights/history/v1", params)

    async def get_neuron_registrations(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/neuron/registration/v1", params)

    async def get_neuron_deregistrations(self, params: Params = None) -> ApiResponse:
        return await self.http.get("/api/subnet/neuron/deregistration/v1", params)


class LiveEndpoints(_EndpointGroup):
    """Live node data proxied by the API."""

    async def get_free_tao_balance(self, address: str) -> ApiResponse:
        return await self.http.get(f"/api/v1/live/accounts/{address}/balance-info")

    async def get_latest_block_extrinsics(self) -> ApiResponse:
        return await self.http.get("/api/v1/live/blocks/head")

    async def get_extrinsics_for_block_range(self, block_start: int, block_end: int) -> ApiResponse:
        return await self.http.get(
            "/api/v1/live/blocks", {"block_start": block_start, "block_end": block_end}
        )

    async def get_extrinsics_for_block(self, block_number: int) -> ApiResponse:
        return await self.http.get(f"/api/v1/live/blocks/{block_number}")

    async def get_raw_extrinsics_for_block(self, block_number: int) -> ApiResponse:
        return await self.http.get(f"/api/v1/live/blocks/{block_number}/extrinsics-raw")

    async def get_node_transaction_pool(self) -> ApiResponse:
        return await self.http.get("/api/v1/live/node/transaction-pool")

    async def get_node_version(self) -> ApiResponse:
        return await self.http.get("/api/v1/live/node/version")

    async def get_pallet_constants(self, pallet_id: str) -> ApiResponse:
        return await self.http.get(f"/api/v1/live/pallets/{pallet_id}/consts")

    async def get_pallet_events(self, pallet_id: str) -> ApiResponse:
        return await self.http.get(f"/api/v1/live/pallets/{pallet_id}/events")


class TradingViewEndpoints(_EndpointGroup):
    async def get_history(self, params: Dict[str, Any]) -> ApiResponse:
        """UDF‑format candles for charting."""
        return await self.http.get("/api/dtao/tradingview/udf/history", params)
