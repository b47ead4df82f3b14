"""
Shared fixtures: an in‑memory substrate that records every call, and
factories wiring it into the chain / staking layers.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from chain.accounts import AccountResolver
from chain.connection import ChainConnection
from config import RAO_PER_TAO, SUBTENSOR_MODULE, ClientConfig
from staking.pipeline import TransactionPipeline

ALICE = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
BOB = "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty"
CHARLIE = "5FLSigC9HGRKVhB9FiEo4Y3koPsNmBmLJbpXg2mp1hXcS59Y"

BLOCK_NUMBER = 123


def rao(amount: Any) -> int:
    from decimal import Decimal

    return int(Decimal(str(amount)) * RAO_PER_TAO)


class FakePage:
    def __init__(self, records: List[Tuple[Any, Any]], last_key: Optional[str]) -> None:
        self.records = records
        self.last_key = last_key


class FakeReceipt:
    def __init__(self, success: bool, error: Any = None) -> None:
        self._success = success
        self._error = error
        self.extrinsic_hash = "0xfeed"
        self.block_hash = "0xblock"

    @property
    async def is_success(self) -> bool:
        return self._success

    @property
    async def error_message(self) -> Any:
        return self._error


class FakeSubstrate:
    """Stands in for `AsyncSubstrateInterface`; records calls in order."""

    def __init__(self) -> None:
        self.storage: Dict[Tuple[str, str, tuple], Any] = {}
        self.maps: Dict[Tuple[str, str], List[Tuple[Any, Any]]] = {}
        self.constants: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.composed: List[Dict[str, Any]] = []
        self.submitted: List[Any] = []
        self.fee_rao = 10_000
        self.payment_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self.receipt = FakeReceipt(True)
        self.closed = 0

    # -- setup helpers ------------------------------------------------------
    def set_storage(self, item: str, args: List[Any], value: Any, module: str = SUBTENSOR_MODULE) -> None:
        self.storage[(module, item, tuple(args))] = value

    def set_pool(self, netuid: int, tao: Any, alpha: Any, tao_emission: Any = 0, alpha_emission: Any = 0) -> None:
        """Reserves in TAO units; stored as RAO like the chain does."""
        for item, amount in (
            ("SubnetTAO", tao),
            ("SubnetAlphaIn", alpha),
            ("SubnetTaoInEmission", tao_emission),
            ("SubnetAlphaInEmission", alpha_emission),
        ):
            self.set_storage(item, [netuid], rao(amount))
            entries = self.maps.setdefault((SUBTENSOR_MODULE, item), [])
            entries.append((netuid, rao(amount)))

    def set_free_balance(self, address: str, free_tao: Any) -> None:
        self.set_storage(
            "Account",
            [address],
            {"nonce": 0, "data": {"free": rao(free_tao), "reserved": 0, "frozen": 0}},
            module="System",
        )

    def set_stake(self, hotkey: str, coldkey: str, netuid: int, alpha: Any) -> None:
        self.set_storage("Alpha", [hotkey, coldkey, netuid], 50)
        self.set_storage("TotalHotkeyShares", [hotkey, netuid], 100)
        self.set_storage("TotalHotkeyAlpha", [hotkey, netuid], rao(alpha) * 2)

    def add_subnet(self, netuid: int) -> None:
        self.set_storage("NetworksAdded", [netuid], True)

    def calls_named(self, name: str) -> List[Any]:
        return [payload for call, payload in self.calls if call == name]

    # -- substrate surface --------------------------------------------------
    async def query(self, module, storage_function, params=None, block_hash=None):
        self.calls.append(("query", (module, storage_function, tuple(params or []), block_hash)))
        if self.query_error is not None:
            raise self.query_error
        return self.storage.get((module, storage_function, tuple(params or [])))

    async def query_map(self, module, storage_function, params=None, block_hash=None, page_size=100, start_key=None):
        self.calls.append(("query_map", (module, storage_function, start_key)))
        entries = self.maps.get((module, storage_function), [])
        offset = 0 if start_key is None else int(start_key.rsplit("-", 1)[1]) + 1
        page = entries[offset:offset + page_size]
        last_key = f"{storage_function}-{offset + len(page) - 1}" if page else None
        return FakePage(page, last_key)

    async def get_constant(self, module, name):
        self.calls.append(("get_constant", (module, name)))
        return self.constants.get((module, name))

    async def get_block_hash(self, block_number):
        self.calls.append(("get_block_hash", block_number))
        return f"0xhash{block_number}"

    async def get_block(self, block_hash=None):
        self.calls.append(("get_block", block_hash))
        return {"header": {"number": BLOCK_NUMBER}}

    async def get_account_next_index(self, address):
        self.calls.append(("get_account_next_index", address))
        return 7

    async def compose_call(self, call_module, call_function, call_params):
        call = {"module": call_module, "function": call_function, "params": dict(call_params)}
        self.calls.append(("compose_call", call))
        self.composed.append(call)
        return call

    async def get_payment_info(self, call, keypair):
        self.calls.append(("get_payment_info", call))
        if self.payment_error is not None:
            raise self.payment_error
        return {"partial_fee": self.fee_rao, "weight": 0}

    async def create_signed_extrinsic(self, call, keypair, nonce=None):
        self.calls.append(("create_signed_extrinsic", nonce))
        return {"call": call, "signer": keypair.ss58_address, "nonce": nonce}

    async def submit_extrinsic(self, extrinsic, wait_for_inclusion=False, wait_for_finalization=False):
        self.calls.append(("submit_extrinsic", extrinsic))
        self.submitted.append(extrinsic)
        return self.receipt

    async def close(self):
        self.closed += 1


@pytest.fixture
def fake() -> FakeSubstrate:
    return FakeSubstrate()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(rpc_url="ws://test-node:9944", seed="//Alice")


@pytest.fixture
def opened() -> List[str]:
    return []


@pytest.fixture
def connection(fake, config, opened) -> ChainConnection:
    async def connector(url: str) -> FakeSubstrate:
        opened.append(url)
        return fake

    return ChainConnection(config, connector=connector)


@pytest.fixture
def pipeline(connection, config) -> TransactionPipeline:
    return TransactionPipeline(connection, AccountResolver(config))
