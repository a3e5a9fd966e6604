"""
rlncast • transport — capability interfaces

The coding layer sits on top of a best-effort publish/subscribe transport and
an optional compression codec. Both are collaborators supplied by the caller;
this module only fixes the shape they must have.

Transport
---------
- `max_frame_bytes`: per-message byte ceiling
- `await send(topic, data)`: raises ThrottledError (transient, retry later) or
  TransportError (fatal, do not retry)
- `receive(topic)`: async iterator of raw messages published on `topic`; ends
  when the subscription is closed

Messages may be dropped, duplicated or reordered; nothing above relies on
ordering or exactly-once delivery.

Compressor
----------
- `compress(data, level)` / `decompress(data)`, both raising CompressionError
"""

from __future__ import annotations

from typing import AsyncIterator, Protocol, runtime_checkable

__all__ = ["Transport", "Compressor"]


@runtime_checkable
class Transport(Protocol):
    max_frame_bytes: int

    async def send(self, topic: str, data: bytes) -> None:
        ...

    def receive(self, topic: str) -> AsyncIterator[bytes]:
        ...


@runtime_checkable
class Compressor(Protocol):
    def compress(self, data: bytes, level: int) -> bytes:
        ...

    def decompress(self, data: bytes) -> bytes:
        ...
