from decimal import Decimal

import pytest

from chain.accounts import AccountResolver
from config import ClientConfig
from staking.errors import ErrorKind, TransactionError
from staking.pipeline import TransactionPipeline, stake_limit_price, unstake_limit_price
from storage.models import (
    AlphaTransferParams,
    MoveParams,
    StakeParams,
    TaoTransferParams,
    UnstakeParams,
)

from conftest import ALICE, BLOCK_NUMBER, BOB, CHARLIE, FakeReceipt, rao


def functions(fake):
    return [call["function"] for call in fake.composed]


# ──────────────────────────────────────────────────────────────
# Stake
# ──────────────────────────────────────────────────────────────
async def test_root_stake_submits_add_stake(pipeline, fake):
    outcome = await pipeline.stake(StakeParams(hotkey=BOB, netuid=0, amount="5"))

    assert outcome.success
    assert outcome.tx_hash == "0xfeed"
    assert outcome.block_number == BLOCK_NUMBER
    assert outcome.fee == "0.00001"
    assert outcome.from_address == ALICE
    submitted = fake.submitted[0]["call"]
    assert submitted["function"] == "add_stake"
    assert submitted["params"] == {"hotkey": BOB, "netuid": 0, "amount_staked": rao(5)}


async def test_high_slippage_blocks_without_submitting(pipeline, fake):
    fake.set_pool(1, tao=1000, alpha=1000)

    outcome = await pipeline.stake(StakeParams(hotkey=BOB, netuid=1, amount="100", slippage_tolerance=0.05))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.SLIPPAGE_EXCEEDED
    assert "Slippage too high" in outcome.error
    assert outcome.slippage.slippage_percentage > 9
    assert fake.submitted == []
    assert fake.calls_named("submit_extrinsic") == []


async def test_subnet_stake_uses_limit_price(pipeline, fake):
    fake.set_pool(1, tao=1_000_000, alpha=1_000_000)

    outcome = await pipeline.stake(
        StakeParams(hotkey=BOB, netuid=1, amount="10", slippage_tolerance=0.05, allow_partial=True)
    )

    assert outcome.success
    params = fake.submitted[0]["call"]["params"]
    assert fake.submitted[0]["call"]["function"] == "add_stake_limit"
    # 1 Alpha per TAO × 0.95
    assert params["limit_price"] == 950_000_000
    assert params["allow_partial"] is True
    assert params["amount_staked"] == rao(10)


async def test_disabled_protection_submits_unconstrained(pipeline, fake):
    fake.set_pool(1, tao=1000, alpha=1000)

    outcome = await pipeline.stake(
        StakeParams(hotkey=BOB, netuid=1, amount="100", disable_slippage_protection=True)
    )

    assert outcome.success
    assert fake.submitted[0]["call"]["function"] == "add_stake"
    assert outcome.slippage.slippage_percentage > 9


async def test_fee_estimation_failure_is_an_outcome(pipeline, fake):
    fake.payment_error = RuntimeError("runtime api unavailable")

    outcome = await pipeline.stake(StakeParams(hotkey=BOB, netuid=0, amount="1"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.FEE_ESTIMATION
    assert "runtime api unavailable" in outcome.error
    assert fake.submitted == []


async def test_dispatch_error_is_an_outcome(pipeline, fake):
    fake.receipt = FakeReceipt(False, {"section": "SubtensorModule", "name": "HotKeyAccountNotExists", "docs": []})

    outcome = await pipeline.stake(StakeParams(hotkey=BOB, netuid=0, amount="1"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.TRANSACTION_FAILED
    assert outcome.error == "SubtensorModule.HotKeyAccountNotExists"
    assert outcome.tx_hash == "0xfeed"


@pytest.mark.parametrize(
    "overrides, kind",
    [
        ({"amount": "0"}, ErrorKind.INVALID_AMOUNT),
        ({"amount": "1000001"}, ErrorKind.INVALID_AMOUNT),
        ({"amount": "abc"}, ErrorKind.INVALID_AMOUNT),
        ({"netuid": -1}, ErrorKind.INVALID_SUBNET),
        ({"hotkey": "not-an-address"}, ErrorKind.INVALID_HOTKEY),
        ({"slippage_tolerance": 1.5}, ErrorKind.INVALID_SLIPPAGE_TOLERANCE),
    ],
)
async def test_validation_fails_before_any_io(pipeline, fake, opened, overrides, kind):
    params = StakeParams(hotkey=BOB, netuid=1, amount="1")
    for key, value in overrides.items():
        setattr(params, key, value)

    with pytest.raises(TransactionError) as exc:
        await pipeline.stake(params)

    assert exc.value.kind is kind
    assert opened == []
    assert fake.calls == []


async def test_source_address_must_match_signer(pipeline, fake):
    with pytest.raises(TransactionError) as exc:
        await pipeline.stake(StakeParams(hotkey=BOB, netuid=0, amount="1", from_address=BOB))

    assert exc.value.kind is ErrorKind.ACCOUNT_MISMATCH
    assert fake.composed == []


async def test_missing_key_material(connection):
    pipeline = TransactionPipeline(connection, AccountResolver(ClientConfig(rpc_url="ws://x")))

    with pytest.raises(TransactionError) as exc:
        await pipeline.stake(StakeParams(hotkey=BOB, netuid=0, amount="1"))
    assert exc.value.kind is ErrorKind.ACCOUNT_CONFIGURATION


# ──────────────────────────────────────────────────────────────
# Unstake
# ──────────────────────────────────────────────────────────────
async def test_root_unstake_submits_remove_stake(pipeline, fake):
    outcome = await pipeline.unstake(UnstakeParams(hotkey=BOB, netuid=0, amount="2"))

    assert outcome.success
    assert fake.submitted[0]["call"]["function"] == "remove_stake"
    assert fake.submitted[0]["call"]["params"]["amount_unstaked"] == rao(2)


async def test_subnet_unstake_limit_price(pipeline, fake):
    fake.set_pool(4, tao=2_000_000, alpha=1_000_000)

    outcome = await pipeline.unstake(UnstakeParams(hotkey=BOB, netuid=4, amount="1"))

    assert outcome.success
    call = fake.submitted[0]["call"]
    assert call["function"] == "remove_stake_limit"
    assert call["params"]["limit_price"] == 1_900_000_000
    assert call["params"]["allow_partial"] is False


def test_limit_price_helpers():
    assert stake_limit_price(Decimal("0.25"), 0.1) == 3_600_000_000
    assert unstake_limit_price(Decimal("0.25"), 0.1) == 225_000_000


# ──────────────────────────────────────────────────────────────
# TAO transfer
# ──────────────────────────────────────────────────────────────
async def test_tao_transfer_success(pipeline, fake):
    fake.set_free_balance(ALICE, 10)

    outcome = await pipeline.transfer_tao(TaoTransferParams(to=BOB, amount="1.5"))

    assert outcome.success
    assert outcome.block_number == BLOCK_NUMBER
    assert outcome.to_address == BOB
    call = fake.submitted[0]["call"]
    assert (call["module"], call["function"]) == ("Balances", "transfer_keep_alive")
    assert call["params"] == {"dest": BOB, "value": rao("1.5")}


async def test_tao_transfer_insufficient_balance(pipeline, fake):
    fake.set_free_balance(ALICE, 1)

    with pytest.raises(TransactionError) as exc:
        await pipeline.transfer_tao(TaoTransferParams(to=BOB, amount="1"))

    assert exc.value.kind is ErrorKind.INSUFFICIENT_BALANCE
    assert fake.submitted == []


async def test_tao_transfer_existential_deposit_carries_max(pipeline, fake):
    fake.set_free_balance(ALICE, 10)
    fake.fee_rao = 100_000  # 0.0001 TAO

    with pytest.raises(TransactionError) as exc:
        await pipeline.transfer_tao(TaoTransferParams(to=BOB, amount="9.9999"))

    err = exc.value
    assert err.kind is ErrorKind.EXISTENTIAL_DEPOSIT
    assert Decimal(err.details["max_amount"]) == Decimal("9.9998995")
    assert Decimal(err.details["max_amount"]) < Decimal("9.9999")
    assert fake.submitted == []


async def test_invalid_destination(pipeline, opened):
    with pytest.raises(TransactionError) as exc:
        await pipeline.transfer_tao(TaoTransferParams(to="0xdeadbeef", amount="1"))
    assert exc.value.kind is ErrorKind.INVALID_ADDRESS
    assert opened == []


async def test_max_transferable(pipeline, fake):
    fake.set_free_balance(ALICE, 3)

    result = await pipeline.get_max_transferable_amount(BOB)

    assert result.current_balance == "3"
    assert result.estimated_fee == "0.00001"
    assert Decimal(result.max_amount) == Decimal(3) - Decimal("0.00001") - Decimal("0.0000005")


async def test_existential_deposit_from_chain_constant(pipeline, fake):
    assert await pipeline.get_existential_deposit() == "0.0000005"

    fake.constants[("Balances", "ExistentialDeposit")] = 1000
    assert await pipeline.get_existential_deposit() == "0.000001"


# ──────────────────────────────────────────────────────────────
# Alpha transfer
# ──────────────────────────────────────────────────────────────
def alpha_params(**kw):
    base = dict(from_subnet=1, to_subnet=1, from_hotkey=BOB, to_address=CHARLIE, amount="2")
    base.update(kw)
    return AlphaTransferParams(**base)


async def test_alpha_transfer_same_subnet(pipeline, fake):
    fake.add_subnet(1)
    fake.set_stake(BOB, ALICE, 1, 5)

    outcome = await pipeline.transfer_alpha(alpha_params())

    assert outcome.success
    assert outcome.slippage.slippage_percentage == Decimal("0.01")
    call = fake.submitted[0]["call"]
    assert call["function"] == "transfer_stake"
    assert call["params"] == {
        "destination_coldkey": CHARLIE,
        "hotkey": BOB,
        "origin_netuid": 1,
        "destination_netuid": 1,
        "alpha_amount": rao(2),
    }


async def test_alpha_transfer_unknown_subnet(pipeline, fake):
    fake.add_subnet(1)

    with pytest.raises(TransactionError) as exc:
        await pipeline.transfer_alpha(alpha_params(to_subnet=77))

    assert exc.value.kind is ErrorKind.SUBNET_NOT_FOUND
    assert "Destination subnet 77" in str(exc.value)


async def test_alpha_transfer_more_than_staked(pipeline, fake):
    fake.add_subnet(1)
    fake.set_stake(BOB, ALICE, 1, 1)

    with pytest.raises(TransactionError) as exc:
        await pipeline.transfer_alpha(alpha_params(amount="2"))

    assert exc.value.kind is ErrorKind.INSUFFICIENT_STAKE
    assert fake.submitted == []


async def test_alpha_fee_falls_back_to_minimum(pipeline, fake):
    fake.add_subnet(1)
    fake.set_stake(BOB, ALICE, 1, 5)
    fake.payment_error = RuntimeError("no runtime api")

    outcome = await pipeline.transfer_alpha(alpha_params())

    assert outcome.success
    assert outcome.fee == "0.00005"


async def test_cross_subnet_alpha_transfer_blocked(pipeline, fake):
    for netuid in (1, 2):
        fake.add_subnet(netuid)
    fake.set_pool(1, tao=10, alpha=10)
    fake.set_pool(2, tao=10, alpha=10)
    fake.set_stake(BOB, ALICE, 1, 5)

    outcome = await pipeline.transfer_alpha(alpha_params(to_subnet=2, amount="4"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.SLIPPAGE_EXCEEDED
    assert fake.submitted == []


# ──────────────────────────────────────────────────────────────
# Move
# ──────────────────────────────────────────────────────────────
async def test_move_between_hotkeys(pipeline, fake):
    fake.add_subnet(3)
    fake.set_stake(BOB, ALICE, 3, 10)

    outcome = await pipeline.move_stake(
        MoveParams(origin_hotkey=BOB, destination_hotkey=CHARLIE, origin_netuid=3, destination_netuid=3, amount="4")
    )

    assert outcome.success
    call = fake.submitted[0]["call"]
    assert call["function"] == "move_stake"
    assert call["params"]["alpha_amount"] == rao(4)
    assert call["params"]["destination_hotkey"] == CHARLIE


async def test_cross_subnet_move_checks_slippage(pipeline, fake):
    for netuid in (3, 4):
        fake.add_subnet(netuid)
    fake.set_pool(3, tao=100, alpha=100)
    fake.set_pool(4, tao=100, alpha=100)
    fake.set_stake(BOB, ALICE, 3, 50)

    blocked = await pipeline.move_stake(
        MoveParams(origin_hotkey=BOB, destination_hotkey=BOB, origin_netuid=3, destination_netuid=4, amount="20")
    )
    forced = await pipeline.move_stake(
        MoveParams(
            origin_hotkey=BOB,
            destination_hotkey=BOB,
            origin_netuid=3,
            destination_netuid=4,
            amount="20",
            disable_slippage_protection=True,
        )
    )

    assert not blocked.success and blocked.error_kind is ErrorKind.SLIPPAGE_EXCEEDED
    assert forced.success
    assert len(fake.submitted) == 1


# ──────────────────────────────────────────────────────────────
# Estimates
# ──────────────────────────────────────────────────────────────
async def test_estimate_root_stake(pipeline):
    estimate = await pipeline.estimate_stake(BOB, "5", 0)

    assert estimate.total_cost == "5.00001"
    assert estimate.expected_received == "5"


async def test_estimate_subnet_stake_includes_slippage(pipeline, fake):
    fake.set_pool(1, tao=1000, alpha=1000)

    estimate = await pipeline.estimate_stake(BOB, "100", 1)

    assert Decimal(estimate.total_cost) > Decimal("100.00001")
    assert Decimal(estimate.expected_received) < 100
    assert fake.submitted == []


async def test_estimate_root_unstake(pipeline):
    estimate = await pipeline.estimate_unstake(BOB, "5", 0)

    assert estimate.total_cost == "0.00001"
    assert estimate.expected_received == "5"


# ──────────────────────────────────────────────────────────────
# Quote failures after the fee step
# ──────────────────────────────────────────────────────────────
async def test_stake_smaller_than_fee_is_an_outcome(pipeline, fake):
    fake.set_pool(1, tao=1000, alpha=1000)

    outcome = await pipeline.stake(StakeParams(hotkey=BOB, netuid=1, amount="0.000001"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.INSUFFICIENT_AMOUNT
    assert outcome.fee == "0.00001"
    assert fake.submitted == []


async def test_unstake_dust_is_an_outcome(pipeline, fake):
    fake.set_pool(1, tao=1000, alpha=1000)

    outcome = await pipeline.unstake(UnstakeParams(hotkey=BOB, netuid=1, amount="0.000000001"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.INSUFFICIENT_AMOUNT


async def test_cross_subnet_transfer_below_fee_is_an_outcome(pipeline, fake):
    for netuid in (1, 2):
        fake.add_subnet(netuid)
        fake.set_pool(netuid, tao=1000, alpha=1000)
    fake.set_stake(BOB, ALICE, 1, 5)

    outcome = await pipeline.transfer_alpha(alpha_params(to_subnet=2, amount="0.000001"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.INSUFFICIENT_AMOUNT
    assert fake.submitted == []


async def test_connection_drop_during_pool_read_is_an_outcome(pipeline, fake):
    fake.set_pool(1, tao=1000, alpha=1000)
    # the fee quote never reads storage, so the first query is the pool read
    fake.query_error = ConnectionResetError("reset by peer")

    outcome = await pipeline.stake(StakeParams(hotkey=BOB, netuid=1, amount="1"))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.CONNECTION
    assert "RPC connection lost" in outcome.error
    assert not pipeline.connection.is_connected
    assert fake.submitted == []


async def test_missing_pool_still_raises(pipeline, fake):
    with pytest.raises(TransactionError) as exc:
        await pipeline.stake(StakeParams(hotkey=BOB, netuid=9, amount="1"))

    assert exc.value.kind is ErrorKind.POOL_UNAVAILABLE
    assert fake.submitted == []
