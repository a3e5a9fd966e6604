"""
rlncast • transport — in-process lossy pub/sub

`MemoryTransport` is a loopback implementation of the Transport interface for
tests, simulations and the CLI. Every subscriber of a topic gets its own
unbounded asyncio.Queue; `send` fans out to all of them, applying the
configured `Impairment` independently per subscriber:

  loss       probability a delivery is dropped
  duplicate  probability a delivery is enqueued twice
  reorder    probability a delivery is held back and released after the next
             one on the same queue (or on `flush()` / `close()`)
  throttle   probability `send` raises ThrottledError before doing anything

Frames above `max_frame_bytes` are rejected with a fatal TransportError.

All randomness comes from one `random.Random`, so a seeded transport replays
exactly.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set

from .. import constants as C
from ..errors import ThrottledError, TransportError

__all__ = ["Impairment", "TransportStats", "MemoryTransport"]

_CLOSED = object()


@dataclass(frozen=True)
class Impairment:
    loss: float = 0.0
    duplicate: float = 0.0
    reorder: float = 0.0
    throttle: float = 0.0

    def __post_init__(self) -> None:
        for name in ("loss", "duplicate", "reorder", "throttle"):
            v = getattr(self, name)
            if not (0.0 <= v <= 1.0):
                raise ValueError(f"{name} must be a probability in [0, 1], got {v}")


@dataclass
class TransportStats:
    sent: int = 0
    delivered: int = 0
    dropped: int = 0
    duplicated: int = 0
    reordered: int = 0
    throttled: int = 0
    rejected: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


class _Receiver:
    """Async iterator over one subscriber queue; registered on construction."""

    def __init__(self, transport: "MemoryTransport", topic: str) -> None:
        self._transport = transport
        self.topic = topic
        self.queue: "asyncio.Queue[object]" = asyncio.Queue()
        self.held: Optional[bytes] = None
        self._closed = False
        transport._attach(self)

    def __aiter__(self) -> "_Receiver":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        item = await self.queue.get()
        if item is _CLOSED:
            self._close()
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        self._close()

    def _close(self) -> None:
        if not self._closed:
            self._closed = True
            self._transport._detach(self)


class MemoryTransport:
    """
    Args:
        max_frame_bytes: per-message ceiling enforced on `send`
        impairment: loss/duplicate/reorder/throttle probabilities
        rng: random source for impairments (seed it for reproducible runs)
    """

    def __init__(
        self,
        max_frame_bytes: int = C.MAX_FRAME_BYTES_DEFAULT,
        *,
        impairment: Optional[Impairment] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.max_frame_bytes = max_frame_bytes
        self.impairment = impairment or Impairment()
        self.stats = TransportStats()
        self._rng = rng or random.Random()
        self._receivers: Dict[str, Set[_Receiver]] = {}
        self._closed = False

    # ---- Transport interface ------------------------------------------------

    async def send(self, topic: str, data: bytes) -> None:
        if self._closed:
            raise TransportError("transport closed")
        if len(data) > self.max_frame_bytes:
            self.stats.rejected += 1
            raise TransportError(
                f"frame of {len(data)} bytes exceeds ceiling {self.max_frame_bytes}",
                details={"size": len(data), "ceiling": self.max_frame_bytes},
            )
        imp = self.impairment
        if imp.throttle and self._rng.random() < imp.throttle:
            self.stats.throttled += 1
            raise ThrottledError("rate limited", details={"topic": topic})

        self.stats.sent += 1
        data = bytes(data)
        for rx in list(self._receivers.get(topic, ())):
            self._deliver(rx, data)

    def receive(self, topic: str) -> AsyncIterator[bytes]:
        if self._closed:
            raise TransportError("transport closed")
        return _Receiver(self, topic)

    # ---- Control ------------------------------------------------------------

    def subscribers(self, topic: str) -> int:
        return len(self._receivers.get(topic, ()))

    def flush(self) -> None:
        """Release every held-back (reordered) message."""
        for receivers in self._receivers.values():
            for rx in receivers:
                self._release(rx)

    async def close(self) -> None:
        if self._closed:
            return
        self.flush()
        self._closed = True
        for receivers in list(self._receivers.values()):
            for rx in list(receivers):
                rx.queue.put_nowait(_CLOSED)

    # ---- Internals ----------------------------------------------------------

    def _attach(self, rx: _Receiver) -> None:
        self._receivers.setdefault(rx.topic, set()).add(rx)

    def _detach(self, rx: _Receiver) -> None:
        receivers = self._receivers.get(rx.topic)
        if receivers is None:
            return
        receivers.discard(rx)
        if not receivers:
            del self._receivers[rx.topic]

    def _deliver(self, rx: _Receiver, data: bytes) -> None:
        imp = self.impairment
        rng = self._rng
        if imp.loss and rng.random() < imp.loss:
            self.stats.dropped += 1
            return
        copies = 1
        if imp.duplicate and rng.random() < imp.duplicate:
            self.stats.duplicated += 1
            copies = 2
        hold = bool(imp.reorder) and rx.held is None and rng.random() < imp.reorder
        if hold:
            self.stats.reordered += 1
            rx.held = data
            copies -= 1
        for _ in range(copies):
            self._put(rx, data)
        if not hold:
            self._release(rx)

    def _release(self, rx: _Receiver) -> None:
        if rx.held is not None:
            held, rx.held = rx.held, None
            self._put(rx, held)

    def _put(self, rx: _Receiver, data: bytes) -> None:
        rx.queue.put_nowait(data)
        self.stats.delivered += 1
