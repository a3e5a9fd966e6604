"""
Binary framing for coded pieces.

Every coded piece travels as one transport message with a fixed-size header,
so header overhead is constant and predictable against the transport's byte
ceiling.

Layout (big-endian)
-------------------
version:      1 byte    WIRE_VERSION (0x01)
flags:        1 byte    bit 0 = payload compressed
message_id:  16 bytes   correlates every piece of one payload
k:            2 bytes   piece count (K_MIN..K_MAX)
length:       4 bytes   original payload length L (>= 1)
seq:          2 bytes   sequence tag within one encode call
coefficients: k bytes   GF(256) coefficient vector
payload:      ceil(L / k) bytes  Σ coefficients[i] · source_piece[i]

Total header size = 26 bytes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..constants import (FLAG_COMPRESSED, HEADER_FORMAT, HEADER_SIZE, K_MAX,
                         K_MIN, KNOWN_FLAGS, MESSAGE_ID_BYTES, WIRE_VERSION)
from ..errors import MalformedPieceError
from .params import frame_size, piece_size

_HEADER = struct.Struct(HEADER_FORMAT)


@dataclass(frozen=True)
class CodedPiece:
    message_id: bytes
    piece_count: int
    length: int
    seq: int
    coefficients: bytes
    payload: bytes
    flags: int = 0

    def __post_init__(self) -> None:
        if len(self.message_id) != MESSAGE_ID_BYTES:
            raise MalformedPieceError(f"message id must be {MESSAGE_ID_BYTES} bytes")
        if not (K_MIN <= self.piece_count <= K_MAX):
            raise MalformedPieceError(f"piece count must be in {K_MIN}..{K_MAX}, got {self.piece_count}")
        if self.length < 1:
            raise MalformedPieceError("original length must be >= 1")
        if self.flags & ~KNOWN_FLAGS:
            raise MalformedPieceError(f"unknown flag bits 0x{self.flags:02x}")
        if len(self.coefficients) != self.piece_count:
            raise MalformedPieceError(
                f"coefficient vector has {len(self.coefficients)} entries, expected {self.piece_count}"
            )
        expected = piece_size(self.length, self.piece_count)
        if len(self.payload) != expected:
            raise MalformedPieceError(
                f"coded payload is {len(self.payload)} bytes, expected {expected}"
            )

    @property
    def compressed(self) -> bool:
        return bool(self.flags & FLAG_COMPRESSED)

    @property
    def piece_size(self) -> int:
        return len(self.payload)

    @property
    def wire_size(self) -> int:
        return frame_size(self.length, self.piece_count)

    def to_bytes(self) -> bytes:
        header = _HEADER.pack(
            WIRE_VERSION,
            self.flags,
            self.message_id,
            self.piece_count,
            self.length,
            self.seq,
        )
        return header + self.coefficients + self.payload

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CodedPiece":
        if len(raw) < HEADER_SIZE:
            raise MalformedPieceError(f"frame too short: {len(raw)} < {HEADER_SIZE} header bytes")
        version, flags, message_id, k, length, seq = _HEADER.unpack_from(raw)
        if version != WIRE_VERSION:
            raise MalformedPieceError(f"version mismatch: expected {WIRE_VERSION}, got {version}")
        if not (K_MIN <= k <= K_MAX):
            raise MalformedPieceError(f"piece count k = {k} outside {K_MIN}..{K_MAX}")
        if length == 0:
            raise MalformedPieceError("original length L = 0")
        body = memoryview(raw)[HEADER_SIZE:]
        if len(body) < k:
            raise MalformedPieceError("truncated coefficient vector")
        return cls(
            message_id=message_id,
            piece_count=k,
            length=length,
            seq=seq,
            coefficients=bytes(body[:k]),
            payload=bytes(body[k:]),
            flags=flags,
        )

    def __repr__(self) -> str:
        return (
            f"CodedPiece(id={self.message_id.hex()[:12]}, seq={self.seq}, k={self.piece_count}, "
            f"L={self.length}, flags=0x{self.flags:02x}, size={self.piece_size})"
        )


__all__ = ["CodedPiece"]
