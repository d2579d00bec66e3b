"""Minimal ULID generator (Crockford base32), no external dependencies.

ULID layout:
- 128-bit value = 48-bit timestamp (ms since UNIX epoch) + 80-bit randomness
- Crockford base32 alphabet: 0123456789ABCDEFGHJKMNPQRSTVWXYZ

Surrogate ids for imported rows are ULIDs so they can be generated before a
row is persisted and still sort by creation time.
"""

from __future__ import annotations

import os
import time
from typing import Final

_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def _encode_base32(value: int, length: int) -> str:
    chars: list[str] = []
    for _ in range(length):
        value, rem = divmod(value, 32)
        chars.append(_ALPHABET[rem])
    chars.reverse()
    return "".join(chars)


def generate_ulid(ts_ms: int | None = None) -> str:
    """Generate a 26-char ULID string.

    Args:
        ts_ms: Optional timestamp in milliseconds; defaults to current time
    """
    if ts_ms is None:
        ts_ms = int(time.time() * 1000)
    ts = ts_ms & ((1 << 48) - 1)
    rnd = int.from_bytes(os.urandom(10), "big")
    return _encode_base32((ts << 80) | rnd, 26)


def is_ulid(s: str) -> bool:
    if len(s) != 26:
        return False
    # First char encodes the top timestamp bits and never exceeds '7'
    if s[0] not in "01234567":
        return False
    return all(ch in _ALPHABET for ch in s)
