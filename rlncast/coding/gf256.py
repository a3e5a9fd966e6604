"""
rlncast • coding — GF(2^8) arithmetic.

Field: GF(256) with primitive polynomial 0x11D and generator α = 0x02.

Scalars
-------
- add(a, b)       XOR
- multiply(a, b)  via log/antilog tables (built once at import, read-only)
- inverse(a)      α^(255 - log a); raises FieldDomainError for a == 0

Byte vectors
------------
Vectors are `bytes`/`bytearray` of equal length. All helpers are derived from
the scalar tables above, so swapping the field only touches this module.

- scale(c, buf)        c · buf, element-wise (one `bytes.translate` per call)
- add_into(a, b)       a + b
- axpy(y, c, x)        y + c · x
- dot(coeffs, rows)    Σ coeffs[i] · rows[i]
"""

from __future__ import annotations

from typing import List, Sequence

from ..errors import FieldDomainError

ORDER = 256
PRIMITIVE_POLY = 0x11D
GENERATOR = 0x02

# exp table is doubled so log(a) + log(b) never needs a `mod 255`
_EXP: List[int] = [0] * 512
_LOG: List[int] = [0] * 256  # _LOG[0] is unused


def _build_tables() -> None:
    x = 1
    for i in range(255):
        _EXP[i] = x
        _LOG[x] = i
        x <<= 1
        if x & 0x100:
            x ^= PRIMITIVE_POLY
    for i in range(255, 512):
        _EXP[i] = _EXP[i - 255]


_build_tables()


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def add(a: int, b: int) -> int:
    return a ^ b


# Characteristic 2: subtraction is addition.
subtract = add


def multiply(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return _EXP[_LOG[a] + _LOG[b]]


def inverse(a: int) -> int:
    if a == 0:
        raise FieldDomainError("inverse of zero in GF(256)")
    return _EXP[255 - _LOG[a]]


def divide(a: int, b: int) -> int:
    if b == 0:
        raise FieldDomainError("division by zero in GF(256)")
    if a == 0:
        return 0
    return _EXP[_LOG[a] + 255 - _LOG[b]]


def power(a: int, e: int) -> int:
    if e == 0:
        return 1
    if a == 0:
        return 0
    return _EXP[(_LOG[a] * e) % 255]


# ---------------------------------------------------------------------------
# Multiplication rows: _MUL_ROWS[c][x] == multiply(c, x)
# ---------------------------------------------------------------------------

_MUL_ROWS: List[bytes] = [bytes(multiply(c, x) for x in range(ORDER)) for c in range(ORDER)]


def mul_row(c: int) -> bytes:
    """256-byte translation table for multiplication by `c`."""
    return _MUL_ROWS[c]


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def scale(c: int, buf: bytes) -> bytes:
    if c == 1:
        return bytes(buf)
    if c == 0:
        return bytes(len(buf))
    return bytes(buf).translate(_MUL_ROWS[c])


def add_into(a: bytes, b: bytes) -> bytes:
    if len(a) != len(b):
        raise ValueError(f"vector length mismatch: {len(a)} != {len(b)}")
    n = len(a)
    if n == 0:
        return b""
    return (int.from_bytes(a, "big") ^ int.from_bytes(b, "big")).to_bytes(n, "big")


def axpy(y: bytes, c: int, x: bytes) -> bytes:
    if c == 0:
        return bytes(y)
    return add_into(y, scale(c, x))


def dot(coeffs: Sequence[int], rows: Sequence[bytes]) -> bytes:
    if len(coeffs) != len(rows):
        raise ValueError("coefficient/row count mismatch")
    if not rows:
        raise ValueError("dot of an empty row set")
    width = len(rows[0])
    acc = 0
    for c, row in zip(coeffs, rows):
        if c:
            acc ^= int.from_bytes(scale(c, row), "big")
    return acc.to_bytes(width, "big")


def is_zero(vec: bytes) -> bool:
    return not any(vec)


def first_nonzero(vec: bytes) -> int:
    """Index of the first nonzero element, or -1 for the zero vector."""
    for i, v in enumerate(vec):
        if v:
            return i
    return -1


__all__ = [
    "ORDER",
    "PRIMITIVE_POLY",
    "GENERATOR",
    "add",
    "subtract",
    "multiply",
    "inverse",
    "divide",
    "power",
    "mul_row",
    "scale",
    "add_into",
    "axpy",
    "dot",
    "is_zero",
    "first_nonzero",
]
