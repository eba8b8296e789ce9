"""CurseForge file fingerprint.

CurseForge identifies files by a 32-bit MurmurHash2 of their bytes with
whitespace (tab, newline, carriage return, space) removed.
"""

from __future__ import annotations

from pathlib import Path

MULTIPLEX = 1540483477
SEED = 1
_MASK = 0xFFFFFFFF
_WHITESPACE = frozenset((9, 10, 13, 32))


def _normalized_length(data: bytes) -> int:
    return sum(1 for byte in data if byte not in _WHITESPACE)


def compute_fingerprint(data: bytes) -> int:
    """Return the unsigned 32-bit fingerprint of *data*."""
    num2 = (SEED ^ _normalized_length(data)) & _MASK
    num3 = 0
    num4 = 0

    for byte in data:
        if byte in _WHITESPACE:
            continue
        num3 |= byte << num4
        num4 += 8
        if num4 == 32:
            num6 = (num3 * MULTIPLEX) & _MASK
            num7 = (((num6 ^ (num6 >> 24)) & _MASK) * MULTIPLEX) & _MASK
            num2 = (((num2 * MULTIPLEX) & _MASK) ^ num7) & _MASK
            num3 = 0
            num4 = 0

    if num4 > 0:
        num2 = ((num2 ^ num3) * MULTIPLEX) & _MASK

    num6 = ((num2 ^ (num2 >> 13)) * MULTIPLEX) & _MASK
    return (num6 ^ (num6 >> 15)) & _MASK


def file_fingerprint(path: Path) -> int:
    """Fingerprint a file on disk."""
    return compute_fingerprint(Path(path).read_bytes())
