"""
Reads subnet AMM reserves from chain and turns them into `PoolSnapshot`s.

Prices are the ones expected at execution in the next block, i.e. after
the pending emission has been injected into the pool:

    price = (SubnetTAO + SubnetTaoInEmission) / (SubnetAlphaIn + SubnetAlphaInEmission)

Root (netuid 0) is always priced 1; an empty Alpha side prices 0.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import bittensor as bt

from chain.connection import ChainConnection
from config import RAO_PER_TAO, SUBTENSOR_MODULE
from storage.models import PoolSnapshot

TAO_RESERVE = "SubnetTAO"
ALPHA_RESERVE = "SubnetAlphaIn"
TAO_EMISSION = "SubnetTaoInEmission"
ALPHA_EMISSION = "SubnetAlphaInEmission"

_RAO = Decimal(RAO_PER_TAO)


def compute_price(netuid: int, tao: Decimal, alpha: Decimal) -> Decimal:
    if netuid == 0:
        return Decimal(1)
    if alpha == 0:
        return Decimal(0)
    return tao / alpha


def build_snapshot(
    netuid: int,
    tao_rao: Optional[Decimal],
    alpha_rao: Optional[Decimal],
    tao_emission_rao: Optional[Decimal],
    alpha_emission_rao: Optional[Decimal],
) -> PoolSnapshot:
    """Missing values count as zero; RAO inputs, TAO‑unit snapshot."""
    tao = (tao_rao or Decimal(0)) / _RAO
    alpha = (alpha_rao or Decimal(0)) / _RAO
    tao_emission = (tao_emission_rao or Decimal(0)) / _RAO
    alpha_emission = (alpha_emission_rao or Decimal(0)) / _RAO
    return PoolSnapshot(
        netuid=netuid,
        tao_reserve=tao,
        alpha_reserve=alpha,
        tao_emission=tao_emission,
        alpha_emission=alpha_emission,
        price=compute_price(netuid, tao + tao_emission, alpha + alpha_emission),
    )


class PoolReserveReader:
    """Fetches the four pool storages per subnet and prices them."""

    def __init__(self, connection: ChainConnection) -> None:
        self.connection = connection

    async def get_pool_snapshot(self, netuid: int, block_number: Optional[int] = None) -> PoolSnapshot:
        source: Any = self.connection
        if block_number is not None:
            source = await self.connection.get_connection_at_block(block_number)

        tao, alpha, tao_emission, alpha_emission = await asyncio.gather(
            source.query_storage(TAO_RESERVE, SUBTENSOR_MODULE, [netuid]),
            source.query_storage(ALPHA_RESERVE, SUBTENSOR_MODULE, [netuid]),
            source.query_storage(TAO_EMISSION, SUBTENSOR_MODULE, [netuid]),
            source.query_storage(ALPHA_EMISSION, SUBTENSOR_MODULE, [netuid]),
        )
        decode = self.connection.codec.decode_numeric
        snapshot = build_snapshot(
            netuid, decode(tao), decode(alpha), decode(tao_emission), decode(alpha_emission)
        )
        bt.logging.debug(
            f"[PoolReserveReader] Subnet {netuid}: tao={snapshot.tao_reserve} "
            f"alpha={snapshot.alpha_reserve} price={snapshot.price}"
        )
        return snapshot

    async def get_all_pool_snapshots(self, block_number: Optional[int] = None) -> Dict[int, PoolSnapshot]:
        source: Any = self.connection
        if block_number is not None:
            source = await self.connection.get_connection_at_block(block_number)

        tao_entries, alpha_entries, tao_em_entries, alpha_em_entries = await asyncio.gather(
            source.query_storage_entries_paged(TAO_RESERVE, SUBTENSOR_MODULE),
            source.query_storage_entries_paged(ALPHA_RESERVE, SUBTENSOR_MODULE),
            source.query_storage_entries_paged(TAO_EMISSION, SUBTENSOR_MODULE),
            source.query_storage_entries_paged(ALPHA_EMISSION, SUBTENSOR_MODULE),
        )

        tao_map = self._by_netuid(tao_entries)
        alpha_map = self._by_netuid(alpha_entries)
        tao_em_map = self._by_netuid(tao_em_entries)
        alpha_em_map = self._by_netuid(alpha_em_entries)

        snapshots: Dict[int, PoolSnapshot] = {}
        for netuid, alpha in alpha_map.items():
            tao = tao_map.get(netuid)
            if tao is None:
                # cannot price a pool without its TAO side
                continue
            snapshots[netuid] = build_snapshot(
                netuid, tao, alpha, tao_em_map.get(netuid), alpha_em_map.get(netuid)
            )

        bt.logging.info(f"[PoolReserveReader] Loaded {len(snapshots)} subnet pools")
        return snapshots

    def _by_netuid(self, entries: List[Tuple[Any, Any]]) -> Dict[int, Decimal]:
        decode = self.connection.codec.decode_numeric
        out: Dict[int, Decimal] = {}
        for key, value in entries:
            amount = decode(value)
            if amount is None:
                continue
            out[int(key)] = amount
        return out
