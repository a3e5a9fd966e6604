"""
rlncast • coding — Decoder session

One DecoderSession collects the coded pieces of a single message and recovers
the payload once it holds k linearly independent coefficient vectors.

Elimination
-----------
Rows are kept in row-echelon form, keyed by pivot column, each normalized so
its pivot entry is 1. An incoming piece is reduced against the existing rows in
increasing pivot order:

  - residual is the zero vector   → REDUNDANT (duplicate or derivable; no change)
  - otherwise                     → first nonzero column becomes a new pivot,
                                    the row is scaled so that pivot is 1, and
                                    rank grows by one (INNOVATIVE)

At rank k the pivots are exactly columns 0..k-1. Back-substitution in
decreasing pivot order leaves each row equal to one source piece; the pieces are
concatenated, truncated to the original length, and the session is COMPLETE.

State machine
-------------
    COLLECTING ──(rank == k)──────────► COMPLETE
        │
        └─(age > timeout, checked)───► EXPIRED

Both terminal states reject further pieces with SessionClosedError. The
recovered payload is only reachable in COMPLETE; a partially decoded message is
never exposed.
"""

from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..errors import InconsistentPieceError, SessionClosedError
from . import gf256
from .piece import CodedPiece


class SessionState(enum.Enum):
    COLLECTING = "collecting"
    COMPLETE = "complete"
    EXPIRED = "expired"


class IngestOutcome(enum.Enum):
    INNOVATIVE = "innovative"
    REDUNDANT = "redundant"
    COMPLETED = "completed"


@dataclass
class _Row:
    coefficients: bytes
    payload: bytes


class DecoderSession:
    """
    Progressive Gaussian elimination over GF(256) for one message.

    Args:
        message_id: 16-byte identifier shared by every piece of the message
        piece_count: k
        length: original payload length L
        flags: wire flags every piece must carry
        created_at: timestamp of the first piece (any monotonic clock)
        timeout: seconds a COLLECTING session may live
    """

    def __init__(
        self,
        message_id: bytes,
        piece_count: int,
        length: int,
        *,
        flags: int = 0,
        created_at: float = 0.0,
        timeout: float = float("inf"),
    ) -> None:
        if piece_count < 1:
            raise ValueError("piece_count must be >= 1")
        if length < 1:
            raise ValueError("length must be >= 1")
        self.message_id = bytes(message_id)
        self.piece_count = piece_count
        self.length = length
        self.flags = flags
        self.created_at = created_at
        self.timeout = timeout

        self._state = SessionState.COLLECTING
        self._rows: Dict[int, _Row] = {}
        self._pivots: List[int] = []  # sorted ascending
        self._payload: Optional[bytes] = None
        self.innovative = 0
        self.redundant = 0

    @classmethod
    def from_piece(cls, piece: CodedPiece, *, created_at: float = 0.0, timeout: float = float("inf")) -> "DecoderSession":
        """Open a session shaped by the first piece seen for a message."""
        return cls(
            piece.message_id,
            piece.piece_count,
            piece.length,
            flags=piece.flags,
            created_at=created_at,
            timeout=timeout,
        )

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def rank(self) -> int:
        if self._state is SessionState.COMPLETE:
            return self.piece_count
        return len(self._pivots)

    @property
    def missing(self) -> int:
        return self.piece_count - self.rank

    @property
    def pivots(self) -> Tuple[int, ...]:
        if self._state is SessionState.COMPLETE:
            return tuple(range(self.piece_count))
        return tuple(self._pivots)

    @property
    def payload(self) -> bytes:
        if self._state is not SessionState.COMPLETE or self._payload is None:
            raise SessionClosedError(
                f"payload unavailable in state {self._state.value}",
                details={"message_id": self.message_id.hex(), "rank": self.rank},
            )
        return self._payload

    def age(self, now: float) -> float:
        return now - self.created_at

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def ingest(self, piece: CodedPiece) -> IngestOutcome:
        if self._state is not SessionState.COLLECTING:
            raise SessionClosedError(
                f"session is {self._state.value}",
                details={"message_id": self.message_id.hex()},
            )
        self._check_consistent(piece)

        coeffs = piece.coefficients
        data = piece.payload
        for p in self._pivots:
            c = coeffs[p]
            if c:
                row = self._rows[p]
                coeffs = gf256.axpy(coeffs, c, row.coefficients)
                data = gf256.axpy(data, c, row.payload)

        pivot = gf256.first_nonzero(coeffs)
        if pivot < 0:
            self.redundant += 1
            return IngestOutcome.REDUNDANT

        inv = gf256.inverse(coeffs[pivot])
        self._rows[pivot] = _Row(gf256.scale(inv, coeffs), gf256.scale(inv, data))
        bisect.insort(self._pivots, pivot)
        self.innovative += 1

        if len(self._pivots) == self.piece_count:
            self._finish()
            return IngestOutcome.COMPLETED
        return IngestOutcome.INNOVATIVE

    def check_expired(self, now: float) -> bool:
        """
        Expire a COLLECTING session older than its timeout, discarding every
        buffered row. Returns True when the session is (now) EXPIRED.
        """
        if self._state is SessionState.COLLECTING and self.age(now) > self.timeout:
            self._state = SessionState.EXPIRED
            self._rows.clear()
            self._pivots.clear()
        return self._state is SessionState.EXPIRED

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _check_consistent(self, piece: CodedPiece) -> None:
        mismatches = []
        if piece.message_id != self.message_id:
            mismatches.append("message_id")
        if piece.piece_count != self.piece_count:
            mismatches.append("piece_count")
        if piece.length != self.length:
            mismatches.append("length")
        if piece.flags != self.flags:
            mismatches.append("flags")
        if mismatches:
            raise InconsistentPieceError(
                f"piece disagrees with session on {', '.join(mismatches)}",
                details={"message_id": self.message_id.hex(), "fields": mismatches, "seq": piece.seq},
            )

    def _finish(self) -> None:
        k = self.piece_count
        # full rank ⇒ pivots are 0..k-1; clear everything right of each pivot
        for p in range(k - 1, -1, -1):
            row = self._rows[p]
            coeffs, data = row.coefficients, row.payload
            for q in range(p + 1, k):
                c = coeffs[q]
                if c:
                    below = self._rows[q]
                    coeffs = gf256.axpy(coeffs, c, below.coefficients)
                    data = gf256.axpy(data, c, below.payload)
            self._rows[p] = _Row(coeffs, data)

        out = b"".join(self._rows[p].payload for p in range(k))
        self._payload = out[: self.length]
        self._rows.clear()
        self._pivots.clear()
        self._state = SessionState.COMPLETE

    def __repr__(self) -> str:
        return (
            f"DecoderSession(id={self.message_id.hex()[:12]}, k={self.piece_count}, "
            f"L={self.length}, rank={self.rank}, state={self._state.value})"
        )


__all__ = ["DecoderSession", "SessionState", "IngestOutcome"]
