"""
rlncast • coding

Pure coding layer: GF(256) arithmetic, sizing, the coded-piece wire codec,
the encoder and the per-message decoder session. No I/O, no asyncio.
"""

from __future__ import annotations

from .decoder import DecoderSession, IngestOutcome, SessionState
from .encoder import Encoder, choose_piece_count, combine, split_payload
from .params import DEFAULT_PARAMS, CodingParams, frame_size, piece_size, total_pieces
from .piece import CodedPiece

__all__ = [
    "CodingParams",
    "DEFAULT_PARAMS",
    "frame_size",
    "piece_size",
    "total_pieces",
    "CodedPiece",
    "Encoder",
    "split_payload",
    "combine",
    "choose_piece_count",
    "DecoderSession",
    "SessionState",
    "IngestOutcome",
]
