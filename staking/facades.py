"""
User‑facing operation groups exposed on `TaoStatsClient`.

Each module is a thin adapter that turns keyword arguments into a params
object and hands it to the shared `TransactionPipeline`.
"""
from __future__ import annotations

from typing import Optional

from staking.pipeline import TransactionPipeline
from storage.models import (
    AlphaTransferParams,
    MaxTransferable,
    MoveParams,
    StakeEstimate,
    StakeParams,
    TaoTransferParams,
    TransactionOutcome,
    TransferCost,
    UnstakeParams,
)


class StakeModule:
    def __init__(self, pipeline: TransactionPipeline) -> None:
        self.pipeline = pipeline

    async def to_root(self, hotkey: str, amount: str, from_address: Optional[str] = None) -> TransactionOutcome:
        """Stake TAO on the root network (1:1, no slippage)."""
        return await self.pipeline.stake(
            StakeParams(hotkey=hotkey, netuid=0, amount=amount, from_address=from_address)
        )

    async def alpha(
        self,
        hotkey: str,
        subnet: int,
        amount: str,
        slippage_tolerance: Optional[float] = None,
        allow_partial: bool = False,
        disable_slippage_protection: bool = False,
        from_address: Optional[str] = None,
    ) -> TransactionOutcome:
        """Stake TAO into a subnet pool, receiving Alpha. Tolerance defaults to the client setting."""
        return await self.pipeline.stake(
            StakeParams(
                hotkey=hotkey,
                netuid=subnet,
                amount=amount,
                slippage_tolerance=slippage_tolerance,
                allow_partial=allow_partial,
                disable_slippage_protection=disable_slippage_protection,
                from_address=from_address,
            )
        )

    async def estimate_stake(self, hotkey: str, amount: str, subnet: int = 0) -> StakeEstimate:
        return await self.pipeline.estimate_stake(hotkey, amount, subnet)


class UnstakeModule:
    def __init__(self, pipeline: TransactionPipeline) -> None:
        self.pipeline = pipeline

    async def from_root(self, hotkey: str, amount: str, from_address: Optional[str] = None) -> TransactionOutcome:
        return await self.pipeline.unstake(
            UnstakeParams(hotkey=hotkey, netuid=0, amount=amount, from_address=from_address)
        )

    async def alpha(
        self,
        hotkey: str,
        subnet: int,
        amount: str,
        slippage_tolerance: Optional[float] = None,
        allow_partial: bool = False,
        disable_slippage_protection: bool = False,
        from_address: Optional[str] = None,
    ) -> TransactionOutcome:
        """Unstake Alpha from a subnet pool, receiving TAO."""
        return await self.pipeline.unstake(
            UnstakeParams(
                hotkey=hotkey,
                netuid=subnet,
                amount=amount,
                slippage_tolerance=slippage_tolerance,
                allow_partial=allow_partial,
                disable_slippage_protection=disable_slippage_protection,
                from_address=from_address,
            )
        )

    async def estimate_unstake(self, hotkey: str, amount: str, subnet: int = 0) -> StakeEstimate:
        return await self.pipeline.estimate_unstake(hotkey, amount, subnet)


class TransferModule:
    def __init__(self, pipeline: TransactionPipeline) -> None:
        self.pipeline = pipeline

    async def tao(self, to: str, amount: str, from_address: Optional[str] = None) -> TransactionOutcome:
        return await self.pipeline.transfer_tao(TaoTransferParams(to=to, amount=amount, from_address=from_address))

    async def alpha(self, params: AlphaTransferParams) -> TransactionOutcome:
        return await self.pipeline.transfer_alpha(params)

    async def estimate_cost(self, to: str, amount: str, from_address: Optional[str] = None) -> TransferCost:
        return await self.pipeline.fees.estimate_transfer_cost(to, amount, from_address)

    async def estimate_alpha_fee(self, params: AlphaTransferParams) -> str:
        return await self.pipeline.fees.estimate_alpha_transfer_fee(params)

    async def max_transferable(self, to: str, from_address: Optional[str] = None) -> MaxTransferable:
        return await self.pipeline.get_max_transferable_amount(to, from_address)

    async def existential_deposit(self) -> str:
        return await self.pipeline.get_existential_deposit()


class MoveModule:
    def __init__(self, pipeline: TransactionPipeline) -> None:
        self.pipeline = pipeline

    async def stake(self, params: MoveParams) -> TransactionOutcome:
        """Move Alpha between hotkeys and/or subnets under the same coldkey."""
        return await self.pipeline.move_stake(params)
