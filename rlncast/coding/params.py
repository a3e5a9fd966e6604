"""
rlncast • coding — Parameters

Defines the coding profile used by the encoder:
  • k, the number of source pieces a payload is split into
  • the redundancy factor r, so n = ceil(k · r) coded pieces are emitted
  • the transport's byte ceiling for one serialized piece

Sizing
------
A payload of L bytes split into k pieces has piece size ceil(L / k); the last
source piece is right-padded with zeros. The serialized frame of one coded
piece is

    HEADER_SIZE + k (coefficients) + ceil(L / k) (coded bytes)

which must not exceed `max_frame_bytes`. Note the frame size is *not* monotonic
in k: more pieces shrink the share but grow the coefficient vector, so the
smallest frame is reached near k ≈ sqrt(L).

This module is pure math & validation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional

from .. import constants as C
from ..errors import ConfigError


def _ceil_div(a: int, b: int) -> int:
    if b <= 0:
        raise ValueError("b must be positive")
    if a < 0:
        raise ValueError("a must be non-negative")
    return (a + b - 1) // b


def piece_size(length: int, k: int) -> int:
    """Bytes per source (and coded) piece for a payload of `length` bytes."""
    return _ceil_div(length, k)


def frame_size(length: int, k: int) -> int:
    """Serialized size of one coded piece."""
    return C.HEADER_SIZE + k + piece_size(length, k)


def total_pieces(k: int, redundancy: float) -> int:
    """n = ceil(k · r), never below k."""
    # round() guards against float noise such as 8 * 1.1 = 8.800000000000001
    return max(k, math.ceil(round(k * redundancy, 9)))


@dataclass(frozen=True)
class CodingParams:
    """
    Encoder profile.

    Args:
        piece_count: k, source pieces per payload (K_MIN..K_MAX)
        redundancy: r >= 1.0
        max_frame_bytes: transport ceiling for one serialized piece
    """

    piece_count: int = C.PIECE_COUNT_DEFAULT
    redundancy: float = C.REDUNDANCY_DEFAULT
    max_frame_bytes: int = C.MAX_FRAME_BYTES_DEFAULT

    def __post_init__(self) -> None:
        if not (C.K_MIN <= self.piece_count <= C.K_MAX):
            raise ConfigError(f"piece_count (k) must be in {C.K_MIN}..{C.K_MAX}, got {self.piece_count}")
        if not (self.redundancy >= 1.0):
            raise ConfigError(f"redundancy must be >= 1.0, got {self.redundancy}")
        if total_pieces(self.piece_count, self.redundancy) > C.N_MAX:
            raise ConfigError("k * redundancy exceeds the 16-bit sequence tag space")
        if self.max_frame_bytes < C.MAX_FRAME_BYTES_MIN:
            raise ConfigError(f"max_frame_bytes must be >= {C.MAX_FRAME_BYTES_MIN}")

    @classmethod
    def from_config(cls, coding_cfg) -> "CodingParams":
        return cls(
            piece_count=coding_cfg.piece_count,
            redundancy=coding_cfg.redundancy,
            max_frame_bytes=coding_cfg.max_frame_bytes,
        )

    # ---- Derived -----------------------------------------------------------

    @property
    def total_pieces(self) -> int:
        return total_pieces(self.piece_count, self.redundancy)

    @property
    def max_share_bytes(self) -> int:
        """Largest piece size that still fits the ceiling at this k."""
        return self.max_frame_bytes - C.HEADER_SIZE - self.piece_count

    @property
    def max_payload_bytes(self) -> int:
        """Largest payload that fits at this k."""
        return max(0, self.max_share_bytes) * self.piece_count

    # ---- Sizing helpers ----------------------------------------------------

    def fits(self, length: int, k: Optional[int] = None) -> bool:
        return frame_size(length, k or self.piece_count) <= self.max_frame_bytes

    def smallest_fitting_k(self, length: int, start: Optional[int] = None) -> Optional[int]:
        """
        Smallest k >= `start` (default: the configured k) for which one coded
        piece of a `length`-byte payload fits the ceiling; None if no k up to
        K_MAX fits.
        """
        k = max(C.K_MIN, start or self.piece_count)
        while k <= C.K_MAX:
            if frame_size(length, k) <= self.max_frame_bytes:
                return k
            k += 1
        return None

    def to_dict(self) -> Dict[str, float]:
        return {
            "piece_count": self.piece_count,
            "redundancy": self.redundancy,
            "total_pieces": self.total_pieces,
            "max_frame_bytes": self.max_frame_bytes,
        }


DEFAULT_PARAMS = CodingParams()

__all__ = [
    "CodingParams",
    "DEFAULT_PARAMS",
    "piece_size",
    "frame_size",
    "total_pieces",
]
