from decimal import Decimal

from chain.balances import BalanceReader
from chain.pools import PoolReserveReader, compute_price
from config import SUBTENSOR_MODULE

from conftest import ALICE, BOB, rao


def test_compute_price_edges():
    assert compute_price(0, Decimal(5), Decimal(10)) == 1
    assert compute_price(3, Decimal(5), Decimal(0)) == 0
    assert compute_price(3, Decimal(5), Decimal(10)) == Decimal("0.5")


async def test_snapshot_reads_four_storages_and_prices_with_emission(connection, fake):
    fake.set_pool(7, tao=300, alpha=900, tao_emission=100, alpha_emission=100)

    snapshot = await PoolReserveReader(connection).get_pool_snapshot(7)

    assert snapshot.tao_reserve == 300
    assert snapshot.alpha_reserve == 900
    assert snapshot.price == Decimal("0.4")
    items = {payload[1] for payload in fake.calls_named("query")}
    assert items == {"SubnetTAO", "SubnetAlphaIn", "SubnetTaoInEmission", "SubnetAlphaInEmission"}


async def test_missing_storage_counts_as_zero(connection, fake):
    fake.set_storage("SubnetTAO", [4], rao(10))

    snapshot = await PoolReserveReader(connection).get_pool_snapshot(4)

    assert snapshot.alpha_reserve == 0
    assert snapshot.tao_emission == 0
    assert snapshot.price == 0


async def test_snapshot_at_block_uses_pinned_hash(connection, fake):
    fake.set_pool(2, tao=10, alpha=10)

    await PoolReserveReader(connection).get_pool_snapshot(2, block_number=55)

    assert {payload[3] for payload in fake.calls_named("query")} == {"0xhash55"}
    assert connection.cached_blocks == 1


async def test_all_snapshots_skip_pools_without_tao_side(connection, fake):
    fake.set_pool(1, tao=100, alpha=200)
    fake.set_pool(2, tao=50, alpha=50)
    fake.maps[(SUBTENSOR_MODULE, "SubnetAlphaIn")].append((9, rao(1)))

    snapshots = await PoolReserveReader(connection).get_all_pool_snapshots()

    assert set(snapshots) == {1, 2}
    assert snapshots[1].price == Decimal("0.5")


async def test_alpha_balance_from_shares(connection, fake):
    fake.set_stake(BOB, ALICE, 3, "12.5")

    reader = BalanceReader(connection)

    assert await reader.get_alpha_balance(ALICE, BOB, 3) == rao("12.5")
    assert await reader.get_stake_balance(ALICE, BOB, 3) == "12.5"
    assert await reader.get_stake_balance(ALICE, BOB, 4) == "0"


async def test_balance_info_and_subnet_existence(connection, fake):
    fake.set_free_balance(ALICE, "2.25")
    fake.add_subnet(8)
    reader = BalanceReader(connection)

    info = await reader.get_balance_info(ALICE)

    assert info.free == "2.25"
    assert await reader.get_free_balance(BOB) == 0
    assert await reader.check_subnet_exists(0)
    assert await reader.check_subnet_exists(8)
    assert not await reader.check_subnet_exists(9)
