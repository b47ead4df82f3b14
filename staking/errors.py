"""
Error taxonomy for the transaction pipeline.

One exception type, `TransactionError`, tagged with an `ErrorKind`.
Callers branch on `err.kind` and read structured values from
`err.details`; messages always embed the operation and the numbers
involved.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    # validation
    INVALID_ADDRESS = "invalid_address"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_SUBNET = "invalid_subnet"
    INVALID_HOTKEY = "invalid_hotkey"
    INVALID_SLIPPAGE_TOLERANCE = "invalid_slippage_tolerance"
    # configuration / account
    ACCOUNT_CONFIGURATION = "account_configuration"
    ACCOUNT_MISMATCH = "account_mismatch"
    ACCOUNT_NOT_FOUND = "account_not_found"
    # balance / stake
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_STAKE = "insufficient_stake"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    EXISTENTIAL_DEPOSIT = "existential_deposit"
    SUBNET_NOT_FOUND = "subnet_not_found"
    # slippage
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    POOL_UNAVAILABLE = "pool_unavailable"
    INVALID_RESERVES = "invalid_reserves"
    # transaction / transport
    FEE_ESTIMATION = "fee_estimation"
    TRANSACTION_FAILED = "transaction_failed"
    CONNECTION = "connection"


class TransactionError(Exception):
    """Raised for every failure the pipeline surfaces as an exception."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"TransactionError({self.kind.value!r}, {self.message!r})"

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #
    @classmethod
    def invalid_address(cls, address: str, reason: Optional[str] = None) -> "TransactionError":
        suffix = f" - {reason}" if reason else ""
        return cls(ErrorKind.INVALID_ADDRESS, f"Invalid address: {address}{suffix}", {"address": address})

    @classmethod
    def invalid_amount(
        cls, amount: Any, reason: Optional[str] = None, operation: str = "operation"
    ) -> "TransactionError":
        suffix = f" - {reason}" if reason else ""
        return cls(
            ErrorKind.INVALID_AMOUNT,
            f"Invalid {operation} amount: {amount}{suffix}",
            {"amount": amount, "operation": operation},
        )

    @classmethod
    def invalid_subnet(cls, netuid: Any, reason: Optional[str] = None) -> "TransactionError":
        suffix = f" - {reason}" if reason else ""
        return cls(ErrorKind.INVALID_SUBNET, f"Invalid subnet {netuid}{suffix}", {"netuid": netuid})

    @classmethod
    def invalid_hotkey(cls, hotkey: str, reason: Optional[str] = None) -> "TransactionError":
        suffix = f" - {reason}" if reason else ""
        return cls(ErrorKind.INVALID_HOTKEY, f"Invalid hotkey: {hotkey}{suffix}", {"hotkey": hotkey})

    @classmethod
    def invalid_tolerance(cls, tolerance: Any, reason: str) -> "TransactionError":
        return cls(
            ErrorKind.INVALID_SLIPPAGE_TOLERANCE,
            f"Invalid slippage tolerance: {tolerance} - {reason}",
            {"tolerance": tolerance},
        )

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #
    @classmethod
    def account_configuration(cls, reason: str) -> "TransactionError":
        return cls(ErrorKind.ACCOUNT_CONFIGURATION, f"Account configuration error: {reason}")

    @classmethod
    def account_mismatch(cls, requested: str, configured: str) -> "TransactionError":
        return cls(
            ErrorKind.ACCOUNT_MISMATCH,
            f"Source address {requested} does not match configured account {configured}",
            {"requested": requested, "configured": configured},
        )

    # ------------------------------------------------------------------ #
    # Balances / stake
    # ------------------------------------------------------------------ #
    @classmethod
    def insufficient_balance(
        cls, required: str, available: str, account: str, operation: str = "operation"
    ) -> "TransactionError":
        return cls(
            ErrorKind.INSUFFICIENT_BALANCE,
            f"Insufficient balance for {operation} on account {account}. "
            f"Required: {required} TAO (including fees), Available: {available} TAO",
            {"required": required, "available": available, "account": account},
        )

    @classmethod
    def insufficient_stake(
        cls, required: str, available: str, hotkey: str, netuid: Optional[int] = None
    ) -> "TransactionError":
        where = f" on subnet {netuid}" if netuid is not None else ""
        return cls(
            ErrorKind.INSUFFICIENT_STAKE,
            f"Insufficient stake for hotkey {hotkey}{where}. "
            f"Required: {required}, Available: {available}",
            {"required": required, "available": available, "hotkey": hotkey, "netuid": netuid},
        )

    @classmethod
    def insufficient_amount(cls, operation: str, fee: str, amount: str) -> "TransactionError":
        return cls(
            ErrorKind.INSUFFICIENT_AMOUNT,
            f"{operation} amount too small - fee {fee} TAO exceeds amount {amount}",
            {"fee": fee, "amount": amount, "operation": operation},
        )

    @classmethod
    def existential_deposit(
        cls,
        attempted: str,
        balance: str,
        existential_deposit: str,
        max_amount: str,
        account: str,
        operation: str = "Transfer",
    ) -> "TransactionError":
        return cls(
            ErrorKind.EXISTENTIAL_DEPOSIT,
            f"{operation} of {attempted} TAO would bring account balance below existential "
            f"deposit ({existential_deposit} TAO). Current balance: {balance} TAO. "
            f"Maximum {operation.lower()}: {max_amount} TAO.",
            {
                "attempted": attempted,
                "balance": balance,
                "existential_deposit": existential_deposit,
                "max_amount": max_amount,
                "account": account,
            },
        )

    @classmethod
    def subnet_not_found(cls, netuid: int, role: str = "Subnet") -> "TransactionError":
        return cls(ErrorKind.SUBNET_NOT_FOUND, f"{role} subnet {netuid} does not exist", {"netuid": netuid})

    # ------------------------------------------------------------------ #
    # Slippage
    # ------------------------------------------------------------------ #
    @classmethod
    def pool_unavailable(cls, netuid: int) -> "TransactionError":
        return cls(ErrorKind.POOL_UNAVAILABLE, f"Pool data not available for subnet {netuid}", {"netuid": netuid})

    @classmethod
    def invalid_reserves(cls, input_reserve: Any, output_reserve: Any) -> "TransactionError":
        return cls(
            ErrorKind.INVALID_RESERVES,
            f"Cannot quote against empty pool reserves (in={input_reserve}, out={output_reserve})",
            {"input_reserve": str(input_reserve), "output_reserve": str(output_reserve)},
        )

    @classmethod
    def fee_estimation(cls, operation: str, reason: str) -> "TransactionError":
        return cls(ErrorKind.FEE_ESTIMATION, f"Failed to estimate {operation} fee: {reason}")
