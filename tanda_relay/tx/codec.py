"""
SCVal -> Python value decoding for contract return values.

Mapping:
    void            -> None
    bool            -> bool
    u32..i256       -> int (timepoint/duration included)
    bytes           -> bytes
    string, symbol  -> str
    address         -> strkey (G... / C...)
    vec             -> list, except a one-symbol vec (a unit enum variant,
                       e.g. ``TandaStatus::Forming``) which decodes to its name
    map             -> dict (symbol keys become str)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

T = stellar_xdr.SCValType

_INTS = {
    T.SCV_U32: scval.from_uint32,
    T.SCV_I32: scval.from_int32,
    T.SCV_U64: scval.from_uint64,
    T.SCV_I64: scval.from_int64,
    T.SCV_TIMEPOINT: scval.from_timepoint,
    T.SCV_DURATION: scval.from_duration,
    T.SCV_U128: scval.from_uint128,
    T.SCV_I128: scval.from_int128,
    T.SCV_U256: scval.from_uint256,
    T.SCV_I256: scval.from_int256,
}


def decode_scval(val: Optional[stellar_xdr.SCVal]) -> Any:
    if val is None:
        return None
    t = val.type
    if t == T.SCV_VOID:
        return None
    if t == T.SCV_BOOL:
        return scval.from_bool(val)
    if t in _INTS:
        return _INTS[t](val)
    if t == T.SCV_BYTES:
        return scval.from_bytes(val)
    if t == T.SCV_STRING:
        s = scval.from_string(val)
        return s.decode("utf-8") if isinstance(s, bytes) else s
    if t == T.SCV_SYMBOL:
        return scval.from_symbol(val)
    if t == T.SCV_ADDRESS:
        return scval.from_address(val).address
    if t == T.SCV_VEC:
        return _decode_vec(val.vec.sc_vec if val.vec is not None else [])
    if t == T.SCV_MAP:
        return _decode_map(val.map.sc_map if val.map is not None else [])
    raise ValueError(f"unsupported SCVal type: {t.name}")


def _decode_vec(items: List[stellar_xdr.SCVal]) -> Any:
    if len(items) == 1 and items[0].type == T.SCV_SYMBOL:
        return scval.from_symbol(items[0])
    return [decode_scval(v) for v in items]


def _decode_map(entries: List[stellar_xdr.SCMapEntry]) -> Dict[Any, Any]:
    out: Dict[Any, Any] = {}
    for entry in entries:
        key = decode_scval(entry.key)
        if isinstance(key, list):
            key = tuple(key)
        out[key] = decode_scval(entry.val)
    return out


__all__ = ["decode_scval"]
