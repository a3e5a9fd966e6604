"""
rlncast • transport — zstd compression collaborator

Payloads may be compressed before encoding (the wire flag bit 0 marks this), so
that a payload close to the frame budget can still fit in fewer pieces.

`ZstdCompressor` wraps the `zstandard` package:
  - compress(data, level)   one zstd frame with the content size recorded
  - decompress(data)        refuses output above `max_output_size`

Any codec failure surfaces as `rlncast.errors.CompressionError`.
"""

from __future__ import annotations

from typing import Dict

import zstandard as zstd

from .. import constants as C
from ..errors import CompressionError

__all__ = ["ZstdCompressor"]


class ZstdCompressor:
    """
    zstd codec with a decompressed-size cap. Compressor contexts are cached
    per level and are not shared across threads.
    """

    def __init__(self, *, max_output_size: int = C.MAX_PAYLOAD_BYTES_DEFAULT) -> None:
        if max_output_size < 1:
            raise ValueError("max_output_size must be >= 1")
        self.max_output_size = max_output_size
        self._compressors: Dict[int, zstd.ZstdCompressor] = {}
        self._decompressor = zstd.ZstdDecompressor()

    def compress(self, data: bytes, level: int = C.COMPRESSION_LEVEL_DEFAULT) -> bytes:
        if not (C.COMPRESSION_LEVEL_MIN <= level <= C.COMPRESSION_LEVEL_MAX):
            raise CompressionError(f"compression level {level} out of range")
        c = self._compressors.get(level)
        if c is None:
            c = zstd.ZstdCompressor(level=level, write_content_size=True)
            self._compressors[level] = c
        try:
            return c.compress(bytes(data))
        except zstd.ZstdError as e:
            raise CompressionError(f"zstd compress failed: {e}") from e

    def decompress(self, data: bytes) -> bytes:
        try:
            params = zstd.get_frame_parameters(bytes(data))
        except zstd.ZstdError as e:
            raise CompressionError(f"not a zstd frame: {e}") from e
        known = params.content_size not in (zstd.CONTENTSIZE_UNKNOWN, zstd.CONTENTSIZE_ERROR)
        if known and params.content_size > self.max_output_size:
            raise CompressionError(
                f"declared size {params.content_size} exceeds cap {self.max_output_size}",
                details={"content_size": params.content_size, "cap": self.max_output_size},
            )
        try:
            return self._decompressor.decompress(bytes(data), max_output_size=self.max_output_size)
        except zstd.ZstdError as e:
            raise CompressionError(f"zstd decompress failed: {e}") from e

