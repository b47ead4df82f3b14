"""
Network fee quotes.

Every estimate composes the exact call that would later be submitted and
asks the node for its payment info against the signing account; nothing
is signed or sent.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import bittensor as bt

from chain.accounts import AccountResolver
from chain.connection import ChainConnection
from config import STAKE_FEE_RAO, SUBTENSOR_MODULE
from staking.errors import ErrorKind, TransactionError
from staking.units import format_amount, rao_to_tao, tao_to_rao
from storage.models import AlphaTransferParams, MoveParams, TransferCost

BALANCES_MODULE = "Balances"


# ──────────────────────────────────────────────────────────────
# Call builders (shared with the pipeline so quotes match submissions)
# ──────────────────────────────────────────────────────────────
def add_stake_params(hotkey: str, netuid: int, amount: str) -> Dict[str, Any]:
    return {"hotkey": hotkey, "netuid": netuid, "amount_staked": tao_to_rao(amount)}


def remove_stake_params(hotkey: str, netuid: int, amount: str) -> Dict[str, Any]:
    return {"hotkey": hotkey, "netuid": netuid, "amount_unstaked": tao_to_rao(amount)}


def transfer_keep_alive_params(to: str, amount: str) -> Dict[str, Any]:
    return {"dest": to, "value": tao_to_rao(amount)}


def transfer_stake_params(params: AlphaTransferParams) -> Dict[str, Any]:
    return {
        "destination_coldkey": params.to_address,
        "hotkey": params.from_hotkey,
        "origin_netuid": params.from_subnet,
        "destination_netuid": params.to_subnet,
        "alpha_amount": tao_to_rao(params.amount),
    }


def move_stake_params(params: MoveParams) -> Dict[str, Any]:
    return {
        "origin_hotkey": params.origin_hotkey,
        "destination_hotkey": params.destination_hotkey,
        "origin_netuid": params.origin_netuid,
        "destination_netuid": params.destination_netuid,
        "alpha_amount": tao_to_rao(params.amount),
    }


class FeeEstimator:
    def __init__(self, connection: ChainConnection, accounts: AccountResolver) -> None:
        self.connection = connection
        self.accounts = accounts

    async def _quote(
        self,
        operation: str,
        module: str,
        function: str,
        call_params: Dict[str, Any],
        from_address: Optional[str] = None,
    ) -> str:
        keypair = self.accounts.resolve_source(from_address)
        try:
            call = await self.connection.compose_call(module, function, call_params)
            info = await self.connection.get_payment_info(call, keypair)
        except TransactionError:
            raise
        except Exception as err:
            raise TransactionError.fee_estimation(operation, str(err) or type(err).__name__) from err

        fee = rao_to_tao(info["partial_fee"])
        bt.logging.debug(f"[FeeEstimator] {operation} fee ({module}.{function}): {fee} TAO")
        return fee

    async def estimate_stake_fee(
        self, hotkey: str, amount: str, netuid: int, from_address: Optional[str] = None
    ) -> str:
        # the limit variant weighs the same as the plain one
        return await self._quote(
            "stake", SUBTENSOR_MODULE, "add_stake", add_stake_params(hotkey, netuid, amount), from_address
        )

    async def estimate_unstake_fee(
        self, hotkey: str, amount: str, netuid: int, from_address: Optional[str] = None
    ) -> str:
        return await self._quote(
            "unstake",
            SUBTENSOR_MODULE,
            "remove_stake",
            remove_stake_params(hotkey, netuid, amount),
            from_address,
        )

    async def estimate_transfer_fee(self, to: str, amount: str, from_address: Optional[str] = None) -> str:
        return await self._quote(
            "transfer",
            BALANCES_MODULE,
            "transfer_keep_alive",
            transfer_keep_alive_params(to, amount),
            from_address,
        )

    async def estimate_alpha_transfer_fee(self, params: AlphaTransferParams) -> str:
        """Falls back to the minimum stake fee when the node cannot quote."""
        try:
            return await self._quote(
                "alpha transfer",
                SUBTENSOR_MODULE,
                "transfer_stake",
                transfer_stake_params(params),
                params.from_address,
            )
        except TransactionError as err:
            if err.kind is not ErrorKind.FEE_ESTIMATION:
                raise
            fallback = rao_to_tao(STAKE_FEE_RAO)
            bt.logging.warning(
                f"[FeeEstimator] Alpha transfer fee estimation failed ({err}); using minimum fee {fallback} TAO"
            )
            return fallback

    async def estimate_move_fee(self, params: MoveParams) -> str:
        return await self._quote(
            "move", SUBTENSOR_MODULE, "move_stake", move_stake_params(params), params.from_address
        )

    async def estimate_transfer_cost(
        self, to: str, amount: str, from_address: Optional[str] = None
    ) -> TransferCost:
        fee = await self.estimate_transfer_fee(to, amount, from_address)
        total = Decimal(amount) + Decimal(fee)
        return TransferCost(amount=amount, fee=fee, total=format_amount(total))
