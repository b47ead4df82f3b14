"""
Decoding strategy for storage values returned by the substrate interface.

The connection never inspects raw values itself; it hands them to a
`StorageCodec`. The default implementation understands what
`async_substrate_interface` returns for subtensor storage: `ScaleObj`
wrappers (`.value`), plain ints, numeric strings and fixed‑point dicts
(`{"bits": …}`).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence


class StorageCodec(Protocol):
    def encode_args(self, args: Optional[Sequence[Any]]) -> list: ...

    def decode(self, raw: Any) -> Any: ...

    def decode_key(self, raw: Any) -> Any: ...

    def decode_numeric(self, raw: Any) -> Optional[Decimal]: ...


def _unwrap(raw: Any) -> Any:
    # ScaleObj / ScaleType both expose the decoded python value as `.value`
    while hasattr(raw, "value") and not isinstance(raw, (int, str, dict, list, tuple)):
        raw = raw.value
    return raw


class ScaleValueCodec:
    """Default codec: unwraps SCALE objects into python values."""

    def encode_args(self, args: Optional[Sequence[Any]]) -> list:
        if args is None:
            return []
        if isinstance(args, (list, tuple)):
            return list(args)
        return [args]

    def decode(self, raw: Any) -> Any:
        return _unwrap(raw)

    def decode_key(self, raw: Any) -> Any:
        key = _unwrap(raw)
        if isinstance(key, (list, tuple)) and len(key) == 1:
            key = _unwrap(key[0])
        return key

    def decode_numeric(self, raw: Any) -> Optional[Decimal]:
        """Chain‑native number → `Decimal` (None when the storage is empty)."""
        value = _unwrap(raw)
        if value is None:
            return None
        if isinstance(value, bool):
            return Decimal(int(value))
        if isinstance(value, (int, Decimal)):
            return Decimal(value)
        if isinstance(value, str):
            return Decimal(value)
        if isinstance(value, dict) and "bits" in value:
            return Decimal(str(value["bits"]))
        raise TypeError(f"Expected numeric storage value, got {type(value).__name__}")
