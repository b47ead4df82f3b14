"""
Lightweight in‑memory model types shared by the chain and staking layers.

There is **no persistence** here. Every object is computed per call and
dropped afterwards; the frozen ones are immutable once constructed.

All human amounts are decimal **strings** in TAO / Alpha; reserves and
prices are `Decimal` in the same human unit.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from staking.errors import ErrorKind


__all__ = [
    "PoolSnapshot",
    "SlippageQuote",
    "SlippageValidation",
    "SubmissionResult",
    "TransactionOutcome",
    "StakeParams",
    "UnstakeParams",
    "TaoTransferParams",
    "AlphaTransferParams",
    "MoveParams",
    "StakeEstimate",
    "TransferCost",
    "MaxTransferable",
    "BalanceInfo",
]


# ──────────────────────────────────────────────────────────────
# Pool / slippage
# ──────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PoolSnapshot:
    """
    AMM state of one subnet at read time. Reserves are in TAO / Alpha units.

    `price` is TAO per Alpha, computed on emission‑adjusted reserves
    (fixed at 1 for the root network).
    """
    netuid: int
    tao_reserve: Decimal
    alpha_reserve: Decimal
    tao_emission: Decimal
    alpha_emission: Decimal
    price: Decimal

    @property
    def tao_in(self) -> Decimal:
        return self.tao_reserve + self.tao_emission

    @property
    def alpha_in(self) -> Decimal:
        return self.alpha_reserve + self.alpha_emission


@dataclass(frozen=True)
class SlippageQuote:
    """Result of one slippage calculation; `slippage_percentage` is never negative."""
    slippage_percentage: Decimal
    received_amount: str
    ideal_amount: str
    pool: Optional[PoolSnapshot] = None
    destination_pool: Optional[PoolSnapshot] = None


@dataclass(frozen=True)
class SlippageValidation:
    is_valid: bool
    quote: Optional[SlippageQuote] = None
    error: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Submission results
# ──────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SubmissionResult:
    """Terminal state of one signed extrinsic as seen by the connection."""
    success: bool
    block_hash: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TransactionOutcome:
    """
    What the caller gets back from every transaction operation.

    Built once per submission attempt and never retried automatically.
    `tx_hash` is only set when the chain assigned one; `error` only on
    failure.
    """
    success: bool
    operation: str
    tx_hash: Optional[str] = None
    block_hash: Optional[str] = None
    block_number: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional["ErrorKind"] = None
    amount: Optional[str] = None
    fee: Optional[str] = None
    slippage: Optional[SlippageQuote] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


# ──────────────────────────────────────────────────────────────
# Operation parameters
# ──────────────────────────────────────────────────────────────
@dataclass
class StakeParams:
    hotkey: str
    netuid: int
    amount: str  # TAO
    slippage_tolerance: Optional[float] = None  # fraction; client default when None
    allow_partial: bool = False
    disable_slippage_protection: bool = False
    from_address: Optional[str] = None


@dataclass
class UnstakeParams:
    hotkey: str
    netuid: int
    amount: str  # Alpha (TAO on root)
    slippage_tolerance: Optional[float] = None
    allow_partial: bool = False
    disable_slippage_protection: bool = False
    from_address: Optional[str] = None


@dataclass
class TaoTransferParams:
    to: str
    amount: str
    from_address: Optional[str] = None


@dataclass
class AlphaTransferParams:
    from_subnet: int
    to_subnet: int
    from_hotkey: str
    to_address: str  # destination coldkey
    amount: str  # Alpha
    from_address: Optional[str] = None
    slippage_tolerance: Optional[float] = None
    disable_slippage_protection: bool = False


@dataclass
class MoveParams:
    origin_hotkey: str
    destination_hotkey: str
    origin_netuid: int
    destination_netuid: int
    amount: str  # Alpha
    slippage_tolerance: Optional[float] = None
    disable_slippage_protection: bool = False
    from_address: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Estimates / balances
# ──────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class StakeEstimate:
    total_cost: str
    expected_received: str
    fee: Optional[str] = None
    slippage_percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class TransferCost:
    amount: str
    fee: str
    total: str


@dataclass(frozen=True)
class MaxTransferable:
    max_amount: str
    current_balance: str
    estimated_fee: str
    existential_deposit: str


@dataclass(frozen=True)
class BalanceInfo:
    """Account balance in TAO; only `free` is spendable."""
    free: str
    reserved: str = "0"
    frozen: str = "0"

    @property
    def total(self) -> str:
        return str(Decimal(self.free) + Decimal(self.reserved))
