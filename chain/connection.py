"""
Single point of access to the subtensor RPC endpoint.

`ChainConnection` owns at most one live `AsyncSubtensor` at a time,
reopens it lazily after a disconnect or when the configured RPC URL
changes, and hands out pinned per‑block views from a bounded cache.

Every RPC call suspends the calling task; nothing here blocks the loop.
"""
from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import bittensor as bt
from async_substrate_interface.errors import StorageFunctionNotFound
from bittensor import AsyncSubtensor  # type: ignore
from websockets.exceptions import ConnectionClosed

from chain.codec import ScaleValueCodec, StorageCodec
from config import BLOCK_CACHE_SIZE, STORAGE_PAGE_SIZE, SUBTENSOR_MODULE, ClientConfig
from storage.models import SubmissionResult

Connector = Callable[[str], Awaitable[Any]]


class ChainConnectionError(ConnectionError):
    """The RPC endpoint could not be reached (or dropped mid‑call)."""


async def open_subtensor(rpc_url: str) -> AsyncSubtensor:
    subtensor = AsyncSubtensor(network=rpc_url)
    await subtensor.initialize()
    return subtensor


def _redact(url: str) -> str:
    # archive endpoints carry the api key in the query string
    return url.split("?", 1)[0]


def decode_dispatch_error(error: Any) -> str:
    """Turn a receipt's error payload into `Section.Name: docs`."""
    if error is None:
        return "Transaction failed"
    if isinstance(error, dict) and error.get("name"):
        section = error.get("section") or error.get("module") or error.get("pallet")
        docs = error.get("docs") or ""
        if isinstance(docs, (list, tuple)):
            docs = " ".join(str(d) for d in docs)
        head = f"{section}.{error['name']}" if section else str(error["name"])
        return f"{head}: {docs}" if docs else head
    return str(error)


class BlockView:
    """Read‑only view of chain state pinned to one block hash."""

    def __init__(self, connection: "ChainConnection", block_hash: str, block_number: int) -> None:
        self.connection = connection
        self.block_hash = block_hash
        self.block_number = block_number

    async def query_storage(
        self, item: str, module: str = SUBTENSOR_MODULE, args: Optional[Sequence[Any]] = None
    ) -> Any:
        return await self.connection.query_storage(item, module, args, block_hash=self.block_hash)

    async def query_storage_entries_paged(
        self, item: str, module: str = SUBTENSOR_MODULE, args: Optional[Sequence[Any]] = None
    ) -> List[Tuple[Any, Any]]:
        return await self.connection.query_storage_entries_paged(
            item, module, args, block_hash=self.block_hash
        )


class ChainConnection:
    """
    Owns the live chain connection for one client.

    Per‑block views are admitted through a semaphore sized to
    `cache_size`: when the cache is full, callers wait until
    `release_block()` frees a slot (no eviction).
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        connector: Optional[Connector] = None,
        codec: Optional[StorageCodec] = None,
        cache_size: Optional[int] = None,
        submit_timeout: Optional[float] = None,
    ) -> None:
        self._config = config
        self._connector = connector or open_subtensor
        self.codec: StorageCodec = codec or ScaleValueCodec()
        self.cache_size = cache_size or config.block_cache_size or BLOCK_CACHE_SIZE
        self._submit_timeout = submit_timeout if submit_timeout is not None else config.submit_timeout

        self._handle: Any = None
        self._current_url: Optional[str] = None
        self._open_lock = asyncio.Lock()

        self._block_views: "OrderedDict[str, BlockView]" = OrderedDict()
        self._block_slots = asyncio.Semaphore(self.cache_size)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    @property
    def is_connected(self) -> bool:
        return self._handle is not None

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def get_connection(self) -> Any:
        """Return the live connection, (re)opening it when needed."""
        rpc_url = self._config.rpc_url
        async with self._open_lock:
            if self._handle is not None and self._current_url != rpc_url:
                bt.logging.info("[ChainConnection] RPC URL changed – closing previous connection")
                await self._close_handle()

            if self._handle is None:
                bt.logging.info(f"[ChainConnection] Connecting to RPC: {_redact(rpc_url)}")
                try:
                    self._handle = await self._connector(rpc_url)
                except Exception as err:
                    raise ChainConnectionError(
                        f"Unable to connect to RPC endpoint {_redact(rpc_url)}: {err}"
                    ) from err
                self._current_url = rpc_url
                bt.logging.info("[ChainConnection] Connected")

        return self._handle

    def mark_disconnected(self) -> None:
        """Forget the current connection; the next call reopens it."""
        if self._handle is not None:
            bt.logging.warning("[ChainConnection] Disconnected – will reconnect on next call")
        self._handle = None
        self._current_url = None
        self.release_block()

    async def close(self) -> None:
        async with self._open_lock:
            await self._close_handle()

    async def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        self._current_url = None
        self.release_block()
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as err:
            bt.logging.warning(f"[ChainConnection] Error closing previous connection: {err}")

    async def __aenter__(self) -> "ChainConnection":
        await self.get_connection()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    async def _substrate(self) -> Any:
        handle = await self.get_connection()
        return getattr(handle, "substrate", handle)

    async def _rpc(self, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except (ConnectionError, ConnectionClosed) as err:
            self.mark_disconnected()
            raise ChainConnectionError(f"RPC connection lost: {err}") from err

    # ------------------------------------------------------------------ #
    # Per‑block views
    # ------------------------------------------------------------------ #
    @property
    def cached_blocks(self) -> int:
        return len(self._block_views)

    async def get_connection_at_block(self, block_number: int) -> BlockView:
        block_hash = await self.get_block_hash(block_number)

        view = self._block_views.get(block_hash)
        if view is not None:
            return view

        if self._block_slots.locked():
            bt.logging.debug(
                f"[ChainConnection] Block cache full ({self.cache_size}); waiting for a free slot"
            )
        await self._block_slots.acquire()

        # another task may have inserted it while we waited
        view = self._block_views.get(block_hash)
        if view is not None:
            self._block_slots.release()
            return view

        view = BlockView(self, block_hash, block_number)
        self._block_views[block_hash] = view
        return view

    def release_block(self, block_number: Optional[int] = None) -> None:
        """Drop the cached view for `block_number` (all views when None)."""
        if block_number is None:
            hashes = list(self._block_views)
        else:
            hashes = [h for h, v in self._block_views.items() if v.block_number == block_number]
        for block_hash in hashes:
            del self._block_views[block_hash]
            self._block_slots.release()

    # ------------------------------------------------------------------ #
    # Storage
    # ------------------------------------------------------------------ #
    async def query_storage(
        self,
        item: str,
        module: str = SUBTENSOR_MODULE,
        args: Optional[Sequence[Any]] = None,
        *,
        block_hash: Optional[str] = None,
    ) -> Any:
        """Decoded storage value, or None when absent for these arguments."""
        substrate = await self._substrate()
        try:
            raw = await self._rpc(
                substrate.query(
                    module=module,
                    storage_function=item,
                    params=self.codec.encode_args(args),
                    block_hash=block_hash,
                )
            )
        except StorageFunctionNotFound:
            bt.logging.debug(f"[ChainConnection] Storage {module}.{item} not found")
            return None
        if raw is None:
            return None
        return self.codec.decode(raw)

    async def query_storage_at_block(
        self,
        block_number: int,
        item: str,
        module: str = SUBTENSOR_MODULE,
        args: Optional[Sequence[Any]] = None,
    ) -> Any:
        view = await self.get_connection_at_block(block_number)
        return await view.query_storage(item, module, args)

    async def query_storage_entries_paged(
        self,
        item: str,
        module: str = SUBTENSOR_MODULE,
        args: Optional[Sequence[Any]] = None,
        *,
        block_hash: Optional[str] = None,
    ) -> List[Tuple[Any, Any]]:
        """All `(key, value)` entries of a map, fetched page by page."""
        substrate = await self._substrate()
        params = self.codec.encode_args(args)
        entries: List[Tuple[Any, Any]] = []
        start_key: Optional[str] = None

        while True:
            try:
                page = await self._rpc(
                    substrate.query_map(
                        module=module,
                        storage_function=item,
                        params=params,
                        block_hash=block_hash,
                        page_size=STORAGE_PAGE_SIZE,
                        start_key=start_key,
                    )
                )
            except StorageFunctionNotFound:
                bt.logging.debug(f"[ChainConnection] Storage map {module}.{item} not found")
                return []

            records = list(page.records)
            if not records:
                break
            entries.extend(
                (self.codec.decode_key(key), self.codec.decode(value)) for key, value in records
            )
            if page.last_key is None or page.last_key == start_key:
                break
            start_key = page.last_key

        bt.logging.debug(f"[ChainConnection] {module}.{item}: {len(entries)} entries")
        return entries

    async def get_constant(self, module: str, name: str) -> Any:
        substrate = await self._substrate()
        raw = await self._rpc(substrate.get_constant(module, name))
        return None if raw is None else self.codec.decode(raw)

    # ------------------------------------------------------------------ #
    # Blocks / accounts
    # ------------------------------------------------------------------ #
    async def get_block_hash(self, block_number: int) -> str:
        substrate = await self._substrate()
        return str(await self._rpc(substrate.get_block_hash(block_number)))

    async def get_block_number(self, block_hash: str) -> Optional[int]:
        substrate = await self._substrate()
        block = await self._rpc(substrate.get_block(block_hash=block_hash))
        if not block:
            return None
        return int(block["header"]["number"])

    async def account_next_index(self, address: str) -> int:
        substrate = await self._substrate()
        return int(await self._rpc(substrate.get_account_next_index(address)))

    # ------------------------------------------------------------------ #
    # Extrinsics
    # ------------------------------------------------------------------ #
    async def compose_call(self, module: str, function: str, params: Dict[str, Any]) -> Any:
        substrate = await self._substrate()
        return await self._rpc(
            substrate.compose_call(call_module=module, call_function=function, call_params=params)
        )

    async def get_payment_info(self, call: Any, keypair: Any) -> Dict[str, Any]:
        substrate = await self._substrate()
        return await self._rpc(substrate.get_payment_info(call=call, keypair=keypair))

    async def submit_and_confirm(
        self, call: Any, keypair: Any, nonce: Optional[int] = None
    ) -> SubmissionResult:
        """
        Sign, submit and wait for finalization.

        Never raises: every failure (dispatch error, signing error, dropped
        connection, timeout) comes back as `SubmissionResult(success=False)`.
        """
        try:
            if self._submit_timeout:
                return await asyncio.wait_for(
                    self._submit(call, keypair, nonce), timeout=self._submit_timeout
                )
            return await self._submit(call, keypair, nonce)
        except asyncio.TimeoutError:
            message = f"Transaction not finalized within {self._submit_timeout}s"
            bt.logging.error(f"[ChainConnection] {message}")
            return SubmissionResult(success=False, error=message)
        except Exception as err:
            bt.logging.error(f"[ChainConnection] Transaction error: {err}")
            return SubmissionResult(success=False, error=str(err) or type(err).__name__)

    async def _submit(self, call: Any, keypair: Any, nonce: Optional[int]) -> SubmissionResult:
        substrate = await self._substrate()
        if nonce is None:
            nonce = await self.account_next_index(keypair.ss58_address)

        extrinsic = await self._rpc(
            substrate.create_signed_extrinsic(call=call, keypair=keypair, nonce=nonce)
        )
        receipt = await self._rpc(
            substrate.submit_extrinsic(
                extrinsic, wait_for_inclusion=True, wait_for_finalization=True
            )
        )

        tx_hash = receipt.extrinsic_hash
        block_hash = receipt.block_hash
        if await receipt.is_success:
            bt.logging.success(f"[ChainConnection] Transaction finalized in block {block_hash}")
            return SubmissionResult(success=True, block_hash=block_hash, tx_hash=tx_hash)

        error = decode_dispatch_error(await receipt.error_message)
        bt.logging.error(f"[ChainConnection] Transaction failed: {error}")
        return SubmissionResult(success=False, block_hash=block_hash, tx_hash=tx_hash, error=error)
