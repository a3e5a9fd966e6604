"""
rlncast constants.

Wire-level sizes, hard bounds and canonical defaults. These values are safe to
import from anywhere (no heavy imports).

Note: runtime configuration lives in `rlncast.config`. The values here define
*bounds* and *defaults* that config validation and the codec rely on.
"""

from __future__ import annotations

import struct

# --------------------------------- wire -------------------------------------

#: Wire format version carried in the first byte of every coded piece.
WIRE_VERSION: int = 1

#: version, flags, message id, k, original length, sequence tag
HEADER_FORMAT: str = "!BB16sHIH"
HEADER_SIZE: int = struct.calcsize(HEADER_FORMAT)  # 26 bytes

#: Width of the message identifier in bytes.
MESSAGE_ID_BYTES: int = 16

#: Flag bit: the coded payload is the compressed form of the caller's payload.
FLAG_COMPRESSED: int = 0x01
#: All flag bits this version understands.
KNOWN_FLAGS: int = FLAG_COMPRESSED

# ------------------------------ piece counts --------------------------------

#: Smallest k a payload may be split into.
K_MIN: int = 2
#: Largest k (the coefficient vector travels in every frame).
K_MAX: int = 1024
#: u16 sequence tags bound the number of pieces per message.
N_MAX: int = 0xFFFF
#: u32 length field bounds the payload size.
LENGTH_MAX: int = 0xFFFFFFFF

# -------------------------------- defaults ----------------------------------

#: Transport byte budget per published message.
MAX_FRAME_BYTES_DEFAULT: int = 900
#: Lower bound for a usable frame ceiling (header + k=2 coefficients + 1 byte).
MAX_FRAME_BYTES_MIN: int = HEADER_SIZE + K_MIN + 1

PIECE_COUNT_DEFAULT: int = 8
REDUNDANCY_DEFAULT: float = 1.5

DECODER_TIMEOUT_DEFAULT: float = 30.0
SWEEP_INTERVAL_DEFAULT: float = 5.0
COMPLETED_CACHE_DEFAULT: int = 4096

RETRY_MAX_ATTEMPTS_DEFAULT: int = 5
RETRY_BASE_DELAY_DEFAULT: float = 0.1
RETRY_MULTIPLIER_DEFAULT: float = 2.0
RETRY_MAX_DELAY_DEFAULT: float = 10.0

MAX_CONCURRENT_PUBLISHES_DEFAULT: int = 16

COMPRESSION_LEVEL_DEFAULT: int = 3
#: zstd accepts negative "fast" levels down to -131072; keep a sane window.
COMPRESSION_LEVEL_MIN: int = -7
COMPRESSION_LEVEL_MAX: int = 22

MAX_PAYLOAD_BYTES_DEFAULT: int = 16 * 1024 * 1024


__all__ = [
    "WIRE_VERSION",
    "HEADER_FORMAT",
    "HEADER_SIZE",
    "MESSAGE_ID_BYTES",
    "FLAG_COMPRESSED",
    "KNOWN_FLAGS",
    "K_MIN",
    "K_MAX",
    "N_MAX",
    "LENGTH_MAX",
    "MAX_FRAME_BYTES_DEFAULT",
    "MAX_FRAME_BYTES_MIN",
    "PIECE_COUNT_DEFAULT",
    "REDUNDANCY_DEFAULT",
    "DECODER_TIMEOUT_DEFAULT",
    "SWEEP_INTERVAL_DEFAULT",
    "COMPLETED_CACHE_DEFAULT",
    "RETRY_MAX_ATTEMPTS_DEFAULT",
    "RETRY_BASE_DELAY_DEFAULT",
    "RETRY_MULTIPLIER_DEFAULT",
    "RETRY_MAX_DELAY_DEFAULT",
    "MAX_CONCURRENT_PUBLISHES_DEFAULT",
    "COMPRESSION_LEVEL_DEFAULT",
    "COMPRESSION_LEVEL_MIN",
    "COMPRESSION_LEVEL_MAX",
    "MAX_PAYLOAD_BYTES_DEFAULT",
]
