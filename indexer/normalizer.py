"""
Normalize chain-native values before they reach the store.

- Counts and identifiers are narrowed to signed 64-bit with a range check
- Monetary amounts keep full precision as decimal text
- Addresses and hashes become lower-case 0x-prefixed hex
"""

import re
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from core.exceptions import NumericOverflowError

I64_MAX = 2 ** 63 - 1
I64_MIN = -(2 ** 63)

EPOCH = datetime(1970, 1, 1)

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_HASH_RE = re.compile(r"^0x[0-9a-f]{64}$")


def to_i64(value: int, field: str) -> int:
    """
    Narrow a chain integer to signed 64-bit.

    Raises:
        NumericOverflowError: value is outside the representable range
    """
    value = int(value)
    if value > I64_MAX or value < I64_MIN:
        raise NumericOverflowError(
            f"{field} does not fit a signed 64-bit integer",
            context={"field": field, "value": str(value)}
        )
    return value


def to_i64_or_none(value: Optional[int]) -> Optional[int]:
    """Narrow when possible; out-of-range values become None"""
    if value is None:
        return None
    value = int(value)
    if value > I64_MAX or value < I64_MIN:
        return None
    return value


def timestamp_to_datetime(value: int, field: str) -> datetime:
    """Unix seconds to a naive UTC datetime"""
    seconds = to_i64(value, field)
    try:
        return EPOCH + timedelta(seconds=seconds)
    except OverflowError as e:
        raise NumericOverflowError(
            f"{field} is not a representable timestamp",
            context={"field": field, "value": str(seconds)},
            original_exception=e
        )


def to_decimal_text(value: int) -> str:
    """Full-precision decimal text of an unsigned chain integer"""
    value = int(value)
    if value < 0:
        raise ValueError(f"expected unsigned value, got {value}")
    return str(value)


def from_decimal_text(value: str) -> int:
    value = str(value).strip()
    if not value.isdigit():
        raise ValueError(f"not an unsigned decimal: {value!r}")
    return int(value)


def normalize_address(value: Union[str, bytes]) -> str:
    """Lower-case, 0x-prefixed 20-byte address"""
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    value = str(value).strip().lower()
    if not value.startswith("0x"):
        value = "0x" + value
    if not _ADDRESS_RE.match(value):
        raise ValueError(f"invalid address: {value!r}")
    return value


def normalize_hash(value: Union[str, bytes]) -> str:
    """Lower-case, 0x-prefixed 32-byte hash"""
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    value = str(value).strip().lower()
    if not value.startswith("0x"):
        value = "0x" + value
    if not _HASH_RE.match(value):
        raise ValueError(f"invalid 32-byte hash: {value!r}")
    return value


def to_hex_data(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def parse_quantity(value: Any) -> int:
    """
    Parse a JSON-RPC quantity.

    Accepts hex strings ("0x1a"), decimal strings and ints.
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a quantity")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            if len(text) == 2:
                raise ValueError("empty hex quantity")
            return int(text, 16)
        if text.isdigit():
            return int(text)
    raise ValueError(f"invalid quantity: {value!r}")
