"""
Parameter checks run before any chain I/O.

All `validate_*` helpers raise `TransactionError` with the offending
value in the message; `check_sufficient_balance` reports instead of
raising so callers can decide.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from bittensor.utils import is_valid_ss58_address

from config import MAX_AMOUNT
from staking.errors import TransactionError
from storage.models import BalanceInfo


@dataclass
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


def validate_address(address: Any) -> bool:
    if not isinstance(address, str) or not address.strip():
        return False
    try:
        return bool(is_valid_ss58_address(address))
    except (ValueError, TypeError):
        return False


def validate_amount(amount: Any, operation: str = "operation") -> ValidationResult:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return ValidationResult(False, "Amount must be a valid number")
    if not value.is_finite():
        return ValidationResult(False, "Amount must be a valid number")
    if value <= 0:
        return ValidationResult(False, "Amount must be greater than 0")
    if value > MAX_AMOUNT:
        return ValidationResult(False, f"Amount exceeds maximum {operation} limit (1,000,000 TAO)")
    return ValidationResult(True)


def validate_subnet_id(netuid: Any) -> ValidationResult:
    if isinstance(netuid, bool) or not isinstance(netuid, int):
        return ValidationResult(False, "Subnet ID must be an integer")
    if netuid < 0:
        return ValidationResult(False, "Subnet ID must be non-negative")
    return ValidationResult(True)


def validate_hotkey(hotkey: Any) -> ValidationResult:
    if not hotkey or not str(hotkey).strip():
        return ValidationResult(False, "Hotkey cannot be empty")
    if not validate_address(hotkey):
        return ValidationResult(False, "Invalid hotkey address format")
    return ValidationResult(True)


def validate_slippage_tolerance(tolerance: Any) -> ValidationResult:
    if isinstance(tolerance, bool) or not isinstance(tolerance, (int, float, Decimal)):
        return ValidationResult(False, "Slippage tolerance must be a number")
    if tolerance < 0:
        return ValidationResult(False, "Slippage tolerance cannot be negative")
    if tolerance > 1:
        return ValidationResult(False, "Slippage tolerance cannot exceed 100% (1.0)")
    return ValidationResult(True)


def check_sufficient_balance(
    balance: BalanceInfo,
    amount: str,
    estimated_fee: str,
    account_address: str,
    operation: str = "operation",
) -> ValidationResult:
    """`free >= amount + fee`; reserved and frozen funds are not spendable."""
    free = Decimal(balance.free)
    required = Decimal(amount) + Decimal(estimated_fee)
    if free < required:
        return ValidationResult(
            False,
            f"Insufficient balance for {operation} on {account_address}. "
            f"Required: {required} TAO, Available: {free} TAO",
            {"balance_check": False, "required": str(required), "available": str(free)},
        )
    return ValidationResult(True, details={"balance_check": True})


def validate_params(
    *,
    address: Optional[str] = None,
    amount: Optional[str] = None,
    hotkey: Optional[str] = None,
    netuid: Optional[int] = None,
    slippage_tolerance: Optional[float] = None,
    operation: str = "operation",
) -> None:
    """Validate whichever of the common parameters are given; raise on the first failure."""
    if address is not None and not validate_address(address):
        raise TransactionError.invalid_address(address, "Invalid address format")

    if hotkey is not None:
        result = validate_hotkey(hotkey)
        if not result.is_valid:
            raise TransactionError.invalid_hotkey(hotkey, result.error)

    if amount is not None:
        result = validate_amount(amount, operation)
        if not result.is_valid:
            raise TransactionError.invalid_amount(amount, result.error, operation)

    if netuid is not None:
        result = validate_subnet_id(netuid)
        if not result.is_valid:
            raise TransactionError.invalid_subnet(netuid, result.error)

    if slippage_tolerance is not None:
        result = validate_slippage_tolerance(slippage_tolerance)
        if not result.is_valid:
            raise TransactionError.invalid_tolerance(slippage_tolerance, result.error)
