"""
rlncast • coding — Encoder

Turns one payload into n = ceil(k · r) coded pieces:

  1) Split the payload into k equal source pieces (last one zero-padded).
  2) For each sequence tag 0..n-1, draw a coefficient vector with every entry
     uniform over GF(256)\\{0} and emit Σ c_i · source_i as a CodedPiece.

Input errors (empty payload, frame over the transport ceiling) are raised
eagerly by `Encoder.encode`, before the caller sees a single piece. The pieces
themselves are produced lazily; the returned iterator is finite and cannot be
restarted.

Example
-------
    enc = Encoder(CodingParams(piece_count=8, redundancy=1.5))
    for piece in enc.encode(b"..." * 300):
        await transport.send("telemetry", piece.to_bytes())
"""

from __future__ import annotations

import logging
import random
import secrets
from typing import Iterator, List, Optional, Sequence

from .. import constants as C
from ..errors import EmptyPayloadError, PayloadTooLargeError, PieceTooLargeError
from . import gf256
from .params import DEFAULT_PARAMS, CodingParams, frame_size, piece_size
from .piece import CodedPiece

log = logging.getLogger(__name__)


def split_payload(payload: bytes, k: int) -> List[bytes]:
    """
    Split into k source pieces of ceil(L / k) bytes; the final piece is
    right-padded with zeros.
    """
    if k < 1:
        raise ValueError("k must be >= 1")
    size = piece_size(len(payload), k)
    padded = bytes(payload) + bytes(size * k - len(payload))
    return [padded[i * size : (i + 1) * size] for i in range(k)]


def combine(
    sources: Sequence[bytes],
    coefficients: Sequence[int],
    *,
    message_id: bytes,
    length: int,
    seq: int = 0,
    flags: int = 0,
) -> CodedPiece:
    """
    Build one coded piece from an explicit coefficient vector.

    Zero entries are allowed here (unit vectors give systematic pieces); the
    random encoder never produces them.
    """
    if len(coefficients) != len(sources):
        raise ValueError(f"need {len(sources)} coefficients, got {len(coefficients)}")
    for c in coefficients:
        if not (0 <= c < gf256.ORDER):
            raise ValueError(f"coefficient {c} outside GF(256)")
    return CodedPiece(
        message_id=message_id,
        piece_count=len(sources),
        length=length,
        seq=seq,
        coefficients=bytes(coefficients),
        payload=gf256.dot(coefficients, sources),
        flags=flags,
    )


def choose_piece_count(length: int, params: CodingParams = DEFAULT_PARAMS) -> int:
    """
    Smallest k >= params.piece_count whose frames fit the ceiling.
    Raises PieceTooLargeError when no k up to K_MAX fits.
    """
    k = params.smallest_fitting_k(length)
    if k is None:
        k_cfg = params.piece_count
        raise PieceTooLargeError(
            f"no piece count in {k_cfg}..{C.K_MAX} fits a {length}-byte payload "
            f"under {params.max_frame_bytes} bytes",
            frame_size=frame_size(length, k_cfg),
            ceiling=params.max_frame_bytes,
            piece_count=k_cfg,
            suggested_k=params.smallest_fitting_k(length, start=C.K_MIN),
        )
    return k


class Encoder:
    """
    RLNC encoder bound to one coding profile and one random source.

    Args:
        params: coding profile (k, redundancy, frame ceiling)
        rng: coefficient source; seed a `random.Random` for reproducible
             pieces. Defaults to `random.SystemRandom()`.
    """

    def __init__(self, params: CodingParams = DEFAULT_PARAMS, rng: Optional[random.Random] = None) -> None:
        self.params = params
        self._rng = rng if rng is not None else random.SystemRandom()

    def encode(
        self,
        payload: bytes,
        k: Optional[int] = None,
        redundancy: Optional[float] = None,
        *,
        message_id: Optional[bytes] = None,
        flags: int = 0,
    ) -> Iterator[CodedPiece]:
        data = bytes(payload)
        length = len(data)
        if length == 0:
            raise EmptyPayloadError("cannot encode an empty payload")
        if length > C.LENGTH_MAX:
            raise PayloadTooLargeError(f"payload of {length} bytes exceeds the u32 length field")

        params = self.params
        if k is not None or redundancy is not None:
            params = CodingParams(
                piece_count=params.piece_count if k is None else k,
                redundancy=params.redundancy if redundancy is None else redundancy,
                max_frame_bytes=params.max_frame_bytes,
            )
        k = params.piece_count

        size = frame_size(length, k)
        if size > params.max_frame_bytes:
            raise PieceTooLargeError(
                f"coded piece would be {size} bytes, ceiling is {params.max_frame_bytes}",
                frame_size=size,
                ceiling=params.max_frame_bytes,
                piece_count=k,
                suggested_k=params.smallest_fitting_k(length, start=C.K_MIN),
            )

        if message_id is None:
            message_id = secrets.token_bytes(C.MESSAGE_ID_BYTES)
        elif len(message_id) != C.MESSAGE_ID_BYTES:
            raise ValueError(f"message_id must be {C.MESSAGE_ID_BYTES} bytes")
        if flags & ~C.KNOWN_FLAGS:
            raise ValueError(f"unknown flag bits 0x{flags:02x}")

        sources = split_payload(data, k)
        n = params.total_pieces
        log.debug(
            "encoding payload",
            extra={"message_id": message_id.hex(), "length": length, "k": k, "n": n, "frame": size},
        )
        return self._pieces(sources, n, message_id=message_id, length=length, flags=flags)

    def _pieces(
        self,
        sources: List[bytes],
        n: int,
        *,
        message_id: bytes,
        length: int,
        flags: int,
    ) -> Iterator[CodedPiece]:
        k = len(sources)
        draw = self._rng.randint
        for seq in range(n):
            coeffs = bytes(draw(1, 255) for _ in range(k))
            yield CodedPiece(
                message_id=message_id,
                piece_count=k,
                length=length,
                seq=seq,
                coefficients=coeffs,
                payload=gf256.dot(coeffs, sources),
                flags=flags,
            )


__all__ = [
    "Encoder",
    "split_payload",
    "combine",
    "choose_piece_count",
]
