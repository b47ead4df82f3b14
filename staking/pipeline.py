"""
Transaction pipeline: stake, unstake, TAO transfer, Alpha transfer, move.

Every operation walks the same sequence

    validate params → resolve account → existence / balance checks
      → estimate fee → slippage (skipped for root / same subnet)
      → build call → sign, submit, wait for finalization → outcome

Validation, account, balance, stake and subnet problems raise, as does a
subnet without pool data (`POOL_UNAVAILABLE`). Fee, slippage and submission
problems come back as a failed `TransactionOutcome` so callers can branch
on `outcome.error_kind` without catching.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, Optional

import bittensor as bt

from chain.accounts import AccountResolver
from chain.balances import BalanceReader
from chain.connection import ChainConnection, ChainConnectionError
from chain.pools import PoolReserveReader
from config import EXISTENTIAL_DEPOSIT, SUBTENSOR_MODULE
from staking.errors import ErrorKind, TransactionError
from staking.fees import (
    BALANCES_MODULE,
    FeeEstimator,
    add_stake_params,
    move_stake_params,
    remove_stake_params,
    transfer_keep_alive_params,
    transfer_stake_params,
)
from staking.slippage import SlippageCalculator
from staking.units import format_amount, price_to_raw, rao_to_tao, to_decimal
from staking.validation import check_sufficient_balance, validate_params
from storage.models import (
    AlphaTransferParams,
    MaxTransferable,
    MoveParams,
    SlippageQuote,
    StakeEstimate,
    StakeParams,
    TaoTransferParams,
    TransactionOutcome,
    UnstakeParams,
)

_HUNDRED = Decimal(100)
_FEE_SAMPLE_AMOUNT = "0.001"


def slippage_blocked_message(quote: SlippageQuote, tolerance: float) -> str:
    return (
        f"Slippage too high: {quote.slippage_percentage:.4f}% exceeds tolerance "
        f"{format_amount(to_decimal(str(tolerance)) * _HUNDRED)}%. "
        f"Set disable_slippage_protection=True to proceed anyway."
    )


def exceeds_tolerance(quote: SlippageQuote, tolerance: float) -> bool:
    """Tolerance is a fraction, quotes are percentages."""
    return quote.slippage_percentage > to_decimal(str(tolerance)) * _HUNDRED


def stake_limit_price(spot_price: Decimal, tolerance: float) -> int:
    """Minimum Alpha per TAO accepted, raw‑scaled."""
    return price_to_raw((Decimal(1) / spot_price) * (Decimal(1) - to_decimal(str(tolerance))))


def unstake_limit_price(spot_price: Decimal, tolerance: float) -> int:
    """Minimum TAO per Alpha accepted, raw‑scaled."""
    return price_to_raw(spot_price * (Decimal(1) - to_decimal(str(tolerance))))


class TransactionPipeline:
    def __init__(
        self,
        connection: ChainConnection,
        accounts: AccountResolver,
        *,
        fees: Optional[FeeEstimator] = None,
        pools: Optional[PoolReserveReader] = None,
        slippage: Optional[SlippageCalculator] = None,
        balances: Optional[BalanceReader] = None,
    ) -> None:
        self.connection = connection
        self.accounts = accounts
        self.fees = fees or FeeEstimator(connection, accounts)
        self.pools = pools or PoolReserveReader(connection)
        self.slippage = slippage or SlippageCalculator(self.pools)
        self.balances = balances or BalanceReader(connection)

    # ------------------------------------------------------------------ #
    # Outcome helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def _failed(operation: str, error: str, kind: ErrorKind, **echo: Any) -> TransactionOutcome:
        bt.logging.error(f"[Pipeline] {operation} failed: {error}")
        return TransactionOutcome(success=False, operation=operation, error=error, error_kind=kind, **echo)

    def _quote_failed(self, operation: str, err: Exception, echo: Dict[str, Any]) -> TransactionOutcome:
        # a missing pool is a chain-state problem and keeps raising
        if isinstance(err, TransactionError):
            if err.kind is ErrorKind.POOL_UNAVAILABLE:
                raise err
            return self._failed(operation, str(err), err.kind, **echo)
        return self._failed(operation, str(err), ErrorKind.CONNECTION, **echo)

    def _tolerance(self, requested: Optional[float]) -> float:
        """Explicit tolerance, else the client's configured default."""
        if requested is not None:
            return requested
        return self.connection.config.slippage_tolerance

    async def _submit(
        self,
        operation: str,
        module: str,
        function: str,
        call_params: Dict[str, Any],
        keypair: Any,
        **echo: Any,
    ) -> TransactionOutcome:
        try:
            call = await self.connection.compose_call(module, function, call_params)
        except Exception as err:
            return self._failed(
                operation,
                f"Failed to build {module}.{function}: {err}",
                ErrorKind.TRANSACTION_FAILED,
                **echo,
            )

        bt.logging.info(f"[Pipeline] Submitting {operation} ({module}.{function}) from {keypair.ss58_address}")
        result = await self.connection.submit_and_confirm(call, keypair)
        if not result.success:
            return self._failed(
                operation,
                result.error or "Transaction failed",
                ErrorKind.TRANSACTION_FAILED,
                tx_hash=result.tx_hash,
                block_hash=result.block_hash,
                **echo,
            )

        block_number = None
        if result.block_hash:
            try:
                block_number = await self.connection.get_block_number(result.block_hash)
            except Exception as err:
                bt.logging.warning(f"[Pipeline] Could not resolve block number for {result.block_hash}: {err}")

        bt.logging.success(f"[Pipeline] {operation} finalized: tx={result.tx_hash} block={block_number}")
        return TransactionOutcome(
            success=True,
            operation=operation,
            tx_hash=result.tx_hash,
            block_hash=result.block_hash,
            block_number=block_number,
            **echo,
        )

    async def _require_stake(self, coldkey: str, hotkey: str, netuid: int, amount: str) -> str:
        available = await self.balances.get_stake_balance(coldkey, hotkey, netuid)
        if Decimal(available) == 0 or Decimal(amount) > Decimal(available):
            raise TransactionError.insufficient_stake(amount, available, hotkey, netuid)
        return available

    async def _require_subnets(self, origin: int, destination: int) -> None:
        origin_exists, destination_exists = await asyncio.gather(
            self.balances.check_subnet_exists(origin),
            self.balances.check_subnet_exists(destination),
        )
        if not origin_exists:
            raise TransactionError.subnet_not_found(origin, "Origin")
        if not destination_exists:
            raise TransactionError.subnet_not_found(destination, "Destination")

    # ------------------------------------------------------------------ #
    # Stake
    # ------------------------------------------------------------------ #
    async def stake(self, params: StakeParams) -> TransactionOutcome:
        operation = "stake"
        tolerance = self._tolerance(params.slippage_tolerance)
        validate_params(
            address=params.from_address,
            hotkey=params.hotkey,
            amount=params.amount,
            netuid=params.netuid,
            slippage_tolerance=tolerance,
            operation=operation,
        )
        keypair = self.accounts.resolve_source(params.from_address)
        echo = dict(amount=params.amount, from_address=keypair.ss58_address, to_address=params.hotkey)

        try:
            fee = await self.fees.estimate_stake_fee(params.hotkey, params.amount, params.netuid, params.from_address)
        except TransactionError as err:
            return self._failed(operation, str(err), err.kind, **echo)
        echo["fee"] = fee

        if params.netuid == 0:
            return await self._submit(
                operation,
                SUBTENSOR_MODULE,
                "add_stake",
                add_stake_params(params.hotkey, 0, params.amount),
                keypair,
                **echo,
            )

        try:
            quote = await self.slippage.calculate_stake_slippage(params.amount, params.netuid, fee)
        except (TransactionError, ChainConnectionError) as err:
            return self._quote_failed(operation, err, echo)
        echo["slippage"] = quote

        if params.disable_slippage_protection:
            bt.logging.warning(
                f"[Pipeline] Slippage protection disabled for stake on subnet {params.netuid} "
                f"(quoted {quote.slippage_percentage:.4f}%)"
            )
            return await self._submit(
                operation,
                SUBTENSOR_MODULE,
                "add_stake",
                add_stake_params(params.hotkey, params.netuid, params.amount),
                keypair,
                **echo,
            )

        if exceeds_tolerance(quote, tolerance):
            return self._failed(
                operation,
                slippage_blocked_message(quote, tolerance),
                ErrorKind.SLIPPAGE_EXCEEDED,
                **echo,
            )

        if quote.pool is None or quote.pool.price <= 0:
            raise TransactionError.pool_unavailable(params.netuid)

        call_params = add_stake_params(params.hotkey, params.netuid, params.amount)
        call_params["limit_price"] = stake_limit_price(quote.pool.price, tolerance)
        call_params["allow_partial"] = params.allow_partial
        return await self._submit(operation, SUBTENSOR_MODULE, "add_stake_limit", call_params, keypair, **echo)

    # ------------------------------------------------------------------ #
    # Unstake
    # ------------------------------------------------------------------ #
    async def unstake(self, params: UnstakeParams) -> TransactionOutcome:
        operation = "unstake"
        tolerance = self._tolerance(params.slippage_tolerance)
        validate_params(
            address=params.from_address,
            hotkey=params.hotkey,
            amount=params.amount,
            netuid=params.netuid,
            slippage_tolerance=tolerance,
            operation=operation,
        )
        keypair = self.accounts.resolve_source(params.from_address)
        echo = dict(amount=params.amount, from_address=keypair.ss58_address, to_address=params.hotkey)

        try:
            fee = await self.fees.estimate_unstake_fee(
                params.hotkey, params.amount, params.netuid, params.from_address
            )
        except TransactionError as err:
            return self._failed(operation, str(err), err.kind, **echo)
        echo["fee"] = fee

        if params.netuid == 0:
            return await self._submit(
                operation,
                SUBTENSOR_MODULE,
                "remove_stake",
                remove_stake_params(params.hotkey, 0, params.amount),
                keypair,
                **echo,
            )

        try:
            quote = await self.slippage.calculate_unstake_slippage(params.amount, params.netuid, fee)
        except (TransactionError, ChainConnectionError) as err:
            return self._quote_failed(operation, err, echo)
        echo["slippage"] = quote

        if params.disable_slippage_protection:
            bt.logging.warning(
                f"[Pipeline] Slippage protection disabled for unstake on subnet {params.netuid} "
                f"(quoted {quote.slippage_percentage:.4f}%)"
            )
            return await self._submit(
                operation,
                SUBTENSOR_MODULE,
                "remove_stake",
                remove_stake_params(params.hotkey, params.netuid, params.amount),
                keypair,
                **echo,
            )

        if exceeds_tolerance(quote, tolerance):
            return self._failed(
                operation,
                slippage_blocked_message(quote, tolerance),
                ErrorKind.SLIPPAGE_EXCEEDED,
                **echo,
            )

        if quote.pool is None or quote.pool.price <= 0:
            raise TransactionError.pool_unavailable(params.netuid)

        call_params = remove_stake_params(params.hotkey, params.netuid, params.amount)
        call_params["limit_price"] = unstake_limit_price(quote.pool.price, tolerance)
        call_params["allow_partial"] = params.allow_partial
        return await self._submit(operation, SUBTENSOR_MODULE, "remove_stake_limit", call_params, keypair, **echo)

    # ------------------------------------------------------------------ #
    # TAO transfer
    # ------------------------------------------------------------------ #
    async def transfer_tao(self, params: TaoTransferParams) -> TransactionOutcome:
        operation = "transfer"
        validate_params(address=params.to, amount=params.amount, operation=operation)
        if params.from_address is not None:
            validate_params(address=params.from_address)
        keypair = self.accounts.resolve_source(params.from_address)
        source = keypair.ss58_address
        echo = dict(amount=params.amount, from_address=source, to_address=params.to)

        try:
            fee = await self.fees.estimate_transfer_fee(params.to, params.amount, params.from_address)
        except TransactionError as err:
            return self._failed(operation, str(err), err.kind, **echo)
        echo["fee"] = fee

        balance = await self.balances.get_balance_info(source)
        check = check_sufficient_balance(balance, params.amount, fee, source, operation)
        if not check.is_valid:
            raise TransactionError.insufficient_balance(
                check.details["required"], check.details["available"], source, operation
            )

        free = Decimal(balance.free)
        remaining = free - Decimal(params.amount) - Decimal(fee)
        existential_deposit = Decimal(EXISTENTIAL_DEPOSIT)
        if remaining < existential_deposit:
            max_amount = max(Decimal(0), free - Decimal(fee) - existential_deposit)
            raise TransactionError.existential_deposit(
                params.amount, balance.free, EXISTENTIAL_DEPOSIT, format_amount(max_amount), source
            )

        bt.logging.info(f"[Pipeline] Transfer {params.amount} TAO {source} -> {params.to} (fee {fee} TAO)")
        return await self._submit(
            operation,
            BALANCES_MODULE,
            "transfer_keep_alive",
            transfer_keep_alive_params(params.to, params.amount),
            keypair,
            **echo,
        )

    # ------------------------------------------------------------------ #
    # Alpha transfer (stake transfer to another coldkey)
    # ------------------------------------------------------------------ #
    async def transfer_alpha(self, params: AlphaTransferParams) -> TransactionOutcome:
        operation = "alpha transfer"
        tolerance = self._tolerance(params.slippage_tolerance)
        validate_params(
            address=params.to_address,
            hotkey=params.from_hotkey,
            amount=params.amount,
            netuid=params.from_subnet,
            slippage_tolerance=tolerance,
            operation=operation,
        )
        validate_params(address=params.from_address, netuid=params.to_subnet)
        keypair = self.accounts.resolve_source(params.from_address)
        source = keypair.ss58_address
        echo = dict(amount=params.amount, from_address=source, to_address=params.to_address)

        await self._require_subnets(params.from_subnet, params.to_subnet)
        await self._require_stake(source, params.from_hotkey, params.from_subnet, params.amount)

        fee = await self.fees.estimate_alpha_transfer_fee(params)
        echo["fee"] = fee

        try:
            quote = await self.slippage.calculate_alpha_transfer_slippage(params, fee)
        except (TransactionError, ChainConnectionError) as err:
            return self._quote_failed(operation, err, echo)
        echo["slippage"] = quote

        if params.from_subnet != params.to_subnet and not params.disable_slippage_protection:
            if exceeds_tolerance(quote, tolerance):
                return self._failed(
                    operation,
                    slippage_blocked_message(quote, tolerance),
                    ErrorKind.SLIPPAGE_EXCEEDED,
                    **echo,
                )

        return await self._submit(
            operation, SUBTENSOR_MODULE, "transfer_stake", transfer_stake_params(params), keypair, **echo
        )

    # ------------------------------------------------------------------ #
    # Move (same coldkey, hotkey and/or subnet change)
    # ------------------------------------------------------------------ #
    async def move_stake(self, params: MoveParams) -> TransactionOutcome:
        operation = "move"
        tolerance = self._tolerance(params.slippage_tolerance)
        validate_params(
            address=params.from_address,
            hotkey=params.origin_hotkey,
            amount=params.amount,
            netuid=params.origin_netuid,
            slippage_tolerance=tolerance,
            operation=operation,
        )
        validate_params(hotkey=params.destination_hotkey, netuid=params.destination_netuid)
        keypair = self.accounts.resolve_source(params.from_address)
        source = keypair.ss58_address
        echo = dict(amount=params.amount, from_address=source, to_address=params.destination_hotkey)

        await self._require_subnets(params.origin_netuid, params.destination_netuid)
        await self._require_stake(source, params.origin_hotkey, params.origin_netuid, params.amount)

        try:
            fee = await self.fees.estimate_move_fee(params)
        except TransactionError as err:
            return self._failed(operation, str(err), err.kind, **echo)
        echo["fee"] = fee

        try:
            quote = await self.slippage.calculate_cross_subnet_slippage(
                params.amount, params.origin_netuid, params.destination_netuid, fee
            )
        except (TransactionError, ChainConnectionError) as err:
            return self._quote_failed(operation, err, echo)
        echo["slippage"] = quote

        cross_subnet = params.origin_netuid != params.destination_netuid
        if cross_subnet and not params.disable_slippage_protection:
            if exceeds_tolerance(quote, tolerance):
                return self._failed(
                    operation,
                    slippage_blocked_message(quote, tolerance),
                    ErrorKind.SLIPPAGE_EXCEEDED,
                    **echo,
                )

        return await self._submit(
            operation, SUBTENSOR_MODULE, "move_stake", move_stake_params(params), keypair, **echo
        )

    # ------------------------------------------------------------------ #
    # Estimates (read only)
    # ------------------------------------------------------------------ #
    async def estimate_stake(self, hotkey: str, amount: str, netuid: int = 0) -> StakeEstimate:
        validate_params(hotkey=hotkey, amount=amount, netuid=netuid, operation="stake")
        fee = await self.fees.estimate_stake_fee(hotkey, amount, netuid)
        if netuid == 0:
            return StakeEstimate(
                total_cost=format_amount(Decimal(amount) + Decimal(fee)),
                expected_received=amount,
                fee=fee,
                slippage_percentage=Decimal(0),
            )

        quote = await self.slippage.calculate_stake_slippage(amount, netuid, fee)
        slippage_cost = Decimal(quote.ideal_amount) * quote.slippage_percentage / _HUNDRED
        return StakeEstimate(
            total_cost=format_amount(Decimal(amount) + Decimal(fee) + slippage_cost),
            expected_received=quote.received_amount,
            fee=fee,
            slippage_percentage=quote.slippage_percentage,
        )

    async def estimate_unstake(self, hotkey: str, amount: str, netuid: int = 0) -> StakeEstimate:
        """`total_cost` is what unstaking costs in TAO: fee plus slippage."""
        validate_params(hotkey=hotkey, amount=amount, netuid=netuid, operation="unstake")
        fee = await self.fees.estimate_unstake_fee(hotkey, amount, netuid)
        if netuid == 0:
            return StakeEstimate(
                total_cost=fee, expected_received=amount, fee=fee, slippage_percentage=Decimal(0)
            )

        quote = await self.slippage.calculate_unstake_slippage(amount, netuid, fee)
        slippage_cost = Decimal(quote.ideal_amount) * quote.slippage_percentage / _HUNDRED
        return StakeEstimate(
            total_cost=format_amount(Decimal(fee) + slippage_cost),
            expected_received=quote.received_amount,
            fee=fee,
            slippage_percentage=quote.slippage_percentage,
        )

    async def get_max_transferable_amount(self, to: str, from_address: Optional[str] = None) -> MaxTransferable:
        """Free balance minus a sample transfer fee and the existential deposit, floored at 0."""
        validate_params(address=to)
        keypair = self.accounts.resolve_source(from_address)
        free_rao = await self.balances.get_free_balance(keypair.ss58_address)
        current = rao_to_tao(free_rao)
        fee = await self.fees.estimate_transfer_fee(to, _FEE_SAMPLE_AMOUNT, from_address)

        max_amount = Decimal(current) - Decimal(fee) - Decimal(EXISTENTIAL_DEPOSIT)
        return MaxTransferable(
            max_amount=format_amount(max(Decimal(0), max_amount)),
            current_balance=current,
            estimated_fee=fee,
            existential_deposit=EXISTENTIAL_DEPOSIT,
        )

    async def get_existential_deposit(self) -> str:
        """Chain constant when readable, the built‑in value otherwise."""
        try:
            raw = await self.connection.get_constant(BALANCES_MODULE, "ExistentialDeposit")
        except Exception as err:
            bt.logging.warning(f"[Pipeline] Existential deposit constant unavailable: {err}")
            return EXISTENTIAL_DEPOSIT
        if raw is None:
            return EXISTENTIAL_DEPOSIT
        return rao_to_tao(self.connection.codec.decode_numeric(raw))
