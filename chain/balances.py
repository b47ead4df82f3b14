"""
Account‑level chain reads used by the transfer and move paths.
"""
from __future__ import annotations

import asyncio
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Optional

import bittensor as bt

from chain.connection import ChainConnection
from config import SUBTENSOR_MODULE
from staking.units import rao_to_tao
from storage.models import BalanceInfo


class BalanceReader:
    def __init__(self, connection: ChainConnection) -> None:
        self.connection = connection

    async def _account_data(self, address: str) -> dict:
        info = await self.connection.query_storage("Account", "System", [address])
        if not info:
            return {}
        return info.get("data", {}) or {}

    async def get_free_balance(self, address: str) -> Decimal:
        """Free balance in RAO (0 for unknown accounts)."""
        data = await self._account_data(address)
        return Decimal(str(data.get("free", 0)))

    async def get_balance_info(self, address: str) -> BalanceInfo:
        data = await self._account_data(address)
        return BalanceInfo(
            free=rao_to_tao(data.get("free", 0)),
            reserved=rao_to_tao(data.get("reserved", 0)),
            frozen=rao_to_tao(data.get("frozen", data.get("misc_frozen", 0))),
        )

    async def get_alpha_balance(
        self,
        coldkey: str,
        hotkey: str,
        netuid: int,
        block_number: Optional[int] = None,
    ) -> Decimal:
        """
        Alpha owned by `coldkey` through `hotkey` on `netuid`, in RAO.

        Stake is held as shares of the hotkey's pool:
            alpha = floor(TotalHotkeyAlpha × shares / TotalHotkeyShares)
        """
        source: Any = self.connection
        if block_number is not None:
            source = await self.connection.get_connection_at_block(block_number)

        shares_raw, total_alpha_raw, total_shares_raw = await asyncio.gather(
            source.query_storage("Alpha", SUBTENSOR_MODULE, [hotkey, coldkey, netuid]),
            source.query_storage("TotalHotkeyAlpha", SUBTENSOR_MODULE, [hotkey, netuid]),
            source.query_storage("TotalHotkeyShares", SUBTENSOR_MODULE, [hotkey, netuid]),
        )
        if shares_raw is None or total_alpha_raw is None or total_shares_raw is None:
            return Decimal(0)

        decode = self.connection.codec.decode_numeric
        shares = decode(shares_raw)
        total_alpha = decode(total_alpha_raw)
        total_shares = decode(total_shares_raw)
        if not shares or not total_alpha or not total_shares:
            return Decimal(0)

        balance = (total_alpha * (shares / total_shares)).to_integral_value(rounding=ROUND_FLOOR)
        return balance

    async def get_stake_balance(self, coldkey: str, hotkey: str, netuid: int) -> str:
        """Same as `get_alpha_balance`, in Alpha units."""
        return rao_to_tao(await self.get_alpha_balance(coldkey, hotkey, netuid))

    async def check_subnet_exists(self, netuid: int) -> bool:
        if netuid == 0:
            return True
        added = await self.connection.query_storage("NetworksAdded", SUBTENSOR_MODULE, [netuid])
        exists = bool(added)
        if not exists:
            bt.logging.debug(f"[BalanceReader] Subnet {netuid} not registered")
        return exists
