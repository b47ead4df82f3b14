"""
Constant‑product (x·y = k) slippage quotes for stake, unstake and
cross‑subnet Alpha transfers.

Conventions that must not be "unified":

* staking quotes against emission‑adjusted reserves
  (`tao + tao_emission`, `alpha + alpha_emission`) and compares against
  an ideal 1:1 conversion;
* unstaking and transfer legs quote against the raw reserves and compare
  against `alpha × spot price` (unstake) or 1:1 across the round trip
  (transfer).

Percentages are `Decimal`, floored at zero.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Optional, Tuple

import bittensor as bt

from chain.pools import PoolReserveReader
from config import SAME_SUBNET_SLIPPAGE
from staking.errors import TransactionError
from staking.units import Number, format_amount, to_decimal
from storage.models import (
    AlphaTransferParams,
    PoolSnapshot,
    SlippageQuote,
    SlippageValidation,
)

_HUNDRED = Decimal(100)


# ──────────────────────────────────────────────────────────────
# Pure AMM math
# ──────────────────────────────────────────────────────────────
def constant_product_out(amount_in: Number, reserve_in: Number, reserve_out: Number) -> Decimal:
    """Output of swapping `amount_in` into a pool with reserves `(reserve_in, reserve_out)`."""
    d_in = to_decimal(amount_in)
    r_in = to_decimal(reserve_in)
    r_out = to_decimal(reserve_out)
    if r_in <= 0 or r_out <= 0:
        raise TransactionError.invalid_reserves(r_in, r_out)
    k = r_in * r_out
    new_out = k / (r_in + d_in)
    return r_out - new_out


def get_alpha_from_tao_for_slippage_calc(
    tao_amount: Number, tao_reserves: Number, alpha_reserves: Number
) -> str:
    """Alpha received for `tao_amount` TAO."""
    return format_amount(constant_product_out(tao_amount, tao_reserves, alpha_reserves))


def get_tao_from_alpha_for_slippage_calc(
    alpha_amount: Number, alpha_reserves: Number, tao_reserves: Number
) -> str:
    """TAO received for `alpha_amount` Alpha."""
    return format_amount(constant_product_out(alpha_amount, alpha_reserves, tao_reserves))


def slippage_percentage(ideal: Decimal, actual: Decimal) -> Decimal:
    """`max(0, (ideal − actual) / ideal × 100)`."""
    if ideal <= 0:
        raise TransactionError.invalid_reserves(ideal, actual)
    return max(Decimal(0), (ideal - actual) / ideal * _HUNDRED)


def identity_quote(amount: str) -> SlippageQuote:
    return SlippageQuote(
        slippage_percentage=Decimal(0),
        received_amount=amount,
        ideal_amount=amount,
    )


# ──────────────────────────────────────────────────────────────
# Calculator
# ──────────────────────────────────────────────────────────────
class SlippageCalculator:
    """Quotes operations against live pool snapshots."""

    def __init__(self, pool_reader: PoolReserveReader) -> None:
        self.pool_reader = pool_reader

    async def _pool(self, netuid: int) -> PoolSnapshot:
        snapshot = await self.pool_reader.get_pool_snapshot(netuid)
        # absent storage decodes to zero on both sides
        if snapshot.tao_reserve == 0 and snapshot.alpha_reserve == 0:
            raise TransactionError.pool_unavailable(netuid)
        return snapshot

    # ------------------------------------------------------------------ #
    # Stake: TAO → Alpha
    # ------------------------------------------------------------------ #
    async def calculate_stake_slippage(
        self, tao_amount: str, netuid: int, stake_fee: str
    ) -> SlippageQuote:
        if netuid == 0:
            return identity_quote(tao_amount)

        pool = await self._pool(netuid)

        tao_after_fee = to_decimal(tao_amount) - to_decimal(stake_fee)
        if tao_after_fee <= 0:
            raise TransactionError.insufficient_amount("Stake", stake_fee, tao_amount)

        received = constant_product_out(tao_after_fee, pool.tao_in, pool.alpha_in)
        ideal = to_decimal(tao_amount)
        pct = slippage_percentage(ideal, received)

        bt.logging.debug(
            f"[Slippage] stake {tao_after_fee} TAO -> {received} Alpha on subnet {netuid} "
            f"(price {pool.price} TAO/Alpha, slippage {pct:.4f}%)"
        )
        return SlippageQuote(
            slippage_percentage=pct,
            received_amount=format_amount(received),
            ideal_amount=tao_amount,
            pool=pool,
        )

    # ------------------------------------------------------------------ #
    # Unstake: Alpha → TAO
    # ------------------------------------------------------------------ #
    async def calculate_unstake_slippage(
        self, alpha_amount: str, netuid: int, unstake_fee: str
    ) -> SlippageQuote:
        if netuid == 0:
            return identity_quote(alpha_amount)

        pool = await self._pool(netuid)

        received = constant_product_out(alpha_amount, pool.alpha_reserve, pool.tao_reserve)
        ideal = to_decimal(alpha_amount) * pool.price
        # slippage is measured before the fee is taken
        pct = slippage_percentage(ideal, received)

        tao_after_fee = received - to_decimal(unstake_fee)
        if tao_after_fee <= 0:
            raise TransactionError.insufficient_amount("Unstake", unstake_fee, format_amount(received))

        bt.logging.debug(
            f"[Slippage] unstake {alpha_amount} Alpha -> {received} TAO on subnet {netuid} "
            f"(price {pool.price} TAO/Alpha, slippage {pct:.4f}%)"
        )
        return SlippageQuote(
            slippage_percentage=pct,
            received_amount=format_amount(tao_after_fee),
            ideal_amount=format_amount(ideal),
            pool=pool,
        )

    # ------------------------------------------------------------------ #
    # Alpha transfer / move: Alpha → TAO → Alpha
    # ------------------------------------------------------------------ #
    async def calculate_alpha_transfer_slippage(
        self, params: AlphaTransferParams, stake_fee: str
    ) -> SlippageQuote:
        return await self.calculate_cross_subnet_slippage(
            params.amount, params.from_subnet, params.to_subnet, stake_fee
        )

    async def calculate_cross_subnet_slippage(
        self, alpha_amount: str, origin_netuid: int, destination_netuid: int, stake_fee: str
    ) -> SlippageQuote:
        if origin_netuid == destination_netuid:
            return SlippageQuote(
                slippage_percentage=Decimal(SAME_SUBNET_SLIPPAGE),
                received_amount=alpha_amount,
                ideal_amount=alpha_amount,
            )

        origin, destination = await self._pools(origin_netuid, destination_netuid)
        amount = to_decimal(alpha_amount)

        tao_out = self._leg_alpha_to_tao(amount, origin)
        tao_after_fee = tao_out - to_decimal(stake_fee)
        if tao_after_fee <= 0:
            raise TransactionError.insufficient_amount("Transfer", stake_fee, format_amount(tao_out))

        alpha_out = self._leg_tao_to_alpha(tao_after_fee, destination)
        pct = slippage_percentage(amount, alpha_out)

        bt.logging.debug(
            f"[Slippage] transfer {alpha_amount} Alpha subnet {origin_netuid} -> "
            f"{alpha_out} Alpha subnet {destination_netuid} (slippage {pct:.4f}%)"
        )
        return SlippageQuote(
            slippage_percentage=pct,
            received_amount=format_amount(alpha_out),
            ideal_amount=alpha_amount,
            pool=origin,
            destination_pool=destination,
        )

    async def _pools(
        self, origin_netuid: int, destination_netuid: int
    ) -> Tuple[Optional[PoolSnapshot], Optional[PoolSnapshot]]:
        async def pick(netuid: int) -> Optional[PoolSnapshot]:
            if netuid == 0:
                return None
            return await self._pool(netuid)

        origin, destination = await asyncio.gather(pick(origin_netuid), pick(destination_netuid))
        return origin, destination

    @staticmethod
    def _leg_alpha_to_tao(amount: Decimal, pool: Optional[PoolSnapshot]) -> Decimal:
        if pool is None:  # root is 1:1
            return amount
        return constant_product_out(amount, pool.alpha_reserve, pool.tao_reserve)

    @staticmethod
    def _leg_tao_to_alpha(amount: Decimal, pool: Optional[PoolSnapshot]) -> Decimal:
        if pool is None:
            return amount
        return constant_product_out(amount, pool.tao_reserve, pool.alpha_reserve)

    # ------------------------------------------------------------------ #
    # Tolerance checks (never raise)
    # ------------------------------------------------------------------ #
    async def validate_stake_slippage_limits(
        self, tao_amount: str, netuid: int, stake_fee: str, max_tolerance_percent: Number
    ) -> SlippageValidation:
        try:
            quote = await self.calculate_stake_slippage(tao_amount, netuid, stake_fee)
        except TransactionError as err:
            return SlippageValidation(is_valid=False, error=f"Failed to calculate stake slippage: {err}")
        return self._check("Stake", quote, max_tolerance_percent)

    async def validate_unstake_slippage_limits(
        self, alpha_amount: str, netuid: int, unstake_fee: str, max_tolerance_percent: Number
    ) -> SlippageValidation:
        try:
            quote = await self.calculate_unstake_slippage(alpha_amount, netuid, unstake_fee)
        except TransactionError as err:
            return SlippageValidation(is_valid=False, error=f"Failed to calculate unstake slippage: {err}")
        return self._check("Unstake", quote, max_tolerance_percent)

    async def validate_alpha_transfer_slippage_limits(
        self, params: AlphaTransferParams, stake_fee: str, max_tolerance_percent: Number
    ) -> SlippageValidation:
        try:
            quote = await self.calculate_alpha_transfer_slippage(params, stake_fee)
        except TransactionError as err:
            return SlippageValidation(is_valid=False, error=f"Failed to calculate transfer slippage: {err}")
        return self._check("Transfer", quote, max_tolerance_percent)

    @staticmethod
    def _check(operation: str, quote: SlippageQuote, max_tolerance_percent: Number) -> SlippageValidation:
        limit = to_decimal(max_tolerance_percent)
        if quote.slippage_percentage > limit:
            return SlippageValidation(
                is_valid=False,
                quote=quote,
                error=(
                    f"{operation} slippage {quote.slippage_percentage:.2f}% "
                    f"exceeds maximum allowed {limit}%"
                ),
            )
        return SlippageValidation(is_valid=True, quote=quote)
