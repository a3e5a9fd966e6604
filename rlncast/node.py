"""
rlncast node
============

The public surface: publish payloads to a topic, subscribe callbacks to a
topic, unsubscribe. Wires together

  - Encoder            payload → coded pieces
  - PublishCoordinator pieces → transport, with backoff and a concurrency cap
  - SessionManager     transport → decoder sessions → listeners

around one injected transport (and optionally a compressor).

Example
-------
    transport = MemoryTransport(max_frame_bytes=900)
    async with Node(transport) as node:
        await node.subscribe("telemetry", on_payload)
        receipt = await node.publish("telemetry", b"..." * 300)

Listeners are called as `listener(topic, payload)` and may be sync or async.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, Iterable, Iterator, Optional

from .coding.encoder import Encoder, choose_piece_count
from .coding.params import CodingParams
from .coding.piece import CodedPiece
from .config import CastConfig, get_config
from .constants import FLAG_COMPRESSED
from .errors import EmptyPayloadError, PayloadTooLargeError, TransportError
from .metrics import CastMetrics, get_metrics
from .publish.coordinator import PublishCoordinator, PublishReceipt, RetryObserver, SleepFn
from .publish.retry import RetryPolicy
from .session.manager import Clock, Listener, SessionManager
from .transport.base import Compressor, Transport
from .transport.compress import ZstdCompressor

log = logging.getLogger(__name__)


class Subscription:
    """
    Handle returned by `Node.subscribe`. Cancelling it drops this one
    registration; other handles for the same callback stay subscribed.
    """

    def __init__(self, node: "Node", topic: str, callback: Listener) -> None:
        self._node = node
        self.topic = topic
        self.callback = callback
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled

    async def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        await self._node.unsubscribe(self.topic, self.callback)

    def __repr__(self) -> str:
        return f"Subscription(topic={self.topic!r}, active={self.active})"


class Node:
    """
    Args:
        transport: pub/sub transport (see `rlncast.transport.base.Transport`)
        config: CastConfig (defaults to the env-derived `get_config()`)
        compressor: codec for compressed payloads; zstd by default. Used to
                    decompress flagged payloads even when local compression
                    is disabled.
        rng: coefficient source for the encoder (seed for reproducibility)
        clock: monotonic seconds source for decoder sessions
        sleep: awaitable sleep used for retry backoff
        on_retry: observer called before each piece retry
        metrics: CastMetrics instance (process singleton by default)
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[CastConfig] = None,
        *,
        compressor: Optional[Compressor] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[SleepFn] = None,
        on_retry: Optional[RetryObserver] = None,
        metrics: Optional[CastMetrics] = None,
    ) -> None:
        self.config = config or get_config()
        self.transport = transport
        self._metrics = metrics or get_metrics()

        cfg = self.config
        ceiling = cfg.coding.max_frame_bytes
        transport_ceiling = getattr(transport, "max_frame_bytes", None)
        if transport_ceiling:
            ceiling = min(ceiling, int(transport_ceiling))
        self.params = CodingParams(
            piece_count=cfg.coding.piece_count,
            redundancy=cfg.coding.redundancy,
            max_frame_bytes=ceiling,
        )
        self.encoder = Encoder(self.params, rng)
        self.compressor = compressor or ZstdCompressor(max_output_size=cfg.coding.max_payload_bytes)

        self.sessions = SessionManager(
            cfg.decoder,
            clock=clock,
            decompressor=self.compressor,
            metrics=self._metrics,
        )
        self.coordinator = PublishCoordinator(
            transport,
            max_concurrent=cfg.publish.max_concurrent,
            policy=RetryPolicy.from_config(cfg.retry),
            sleep=sleep,
            on_retry=on_retry,
            metrics=self._metrics,
        )

        self._pumps: Dict[str, asyncio.Task] = {}
        self._started = False
        self._closed = False

    # -------- lifecycle --------

    async def start(self) -> None:
        if self._closed:
            raise TransportError("node is closed")
        if not self._started:
            self._started = True
            await self.sessions.start()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for topic in list(self._pumps):
            await self._stop_pump(topic)
        for topic in self.sessions.topics():
            self.sessions.remove_listener(topic)
        await self.sessions.stop()
        self.sessions.clear()

    async def __aenter__(self) -> "Node":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # -------- publish --------

    async def publish(self, topic: str, payload: bytes) -> PublishReceipt:
        if self._closed:
            raise TransportError("node is closed")
        data = bytes(payload)
        if not data:
            raise EmptyPayloadError("cannot publish an empty payload")
        limit = self.config.coding.max_payload_bytes
        if len(data) > limit:
            raise PayloadTooLargeError(
                f"payload of {len(data)} bytes exceeds limit {limit}",
                details={"size": len(data), "limit": limit},
            )

        flags = 0
        if self.config.compression.enabled:
            data = self.compressor.compress(data, self.config.compression.level)
            flags |= FLAG_COMPRESSED

        k = self.params.piece_count
        if self.config.coding.auto_piece_count:
            k = choose_piece_count(len(data), self.params)

        pieces = self.encoder.encode(data, k, flags=flags)
        self._metrics.payload_size.observe(len(data))
        return await self.coordinator.publish(topic, self._counted(pieces), required=k)

    def _counted(self, pieces: Iterable[CodedPiece]) -> Iterator[CodedPiece]:
        for piece in pieces:
            self._metrics.pieces_encoded.inc()
            yield piece

    # -------- subscribe --------

    async def subscribe(self, topic: str, callback: Listener) -> Subscription:
        await self.start()
        self.sessions.add_listener(topic, callback)
        if topic not in self._pumps:
            stream = self.transport.receive(topic)
            self._pumps[topic] = asyncio.create_task(self._pump(topic, stream))
            log.debug("subscribed", extra={"topic": topic})
        return Subscription(self, topic, callback)

    async def unsubscribe(self, topic: str, callback: Optional[Listener] = None) -> None:
        remaining = self.sessions.remove_listener(topic, callback)
        if remaining == 0:
            await self._stop_pump(topic)
            log.debug("unsubscribed", extra={"topic": topic})

    def subscribed(self, topic: str) -> bool:
        return topic in self._pumps

    # -------- internals --------

    async def _pump(self, topic: str, stream) -> None:
        try:
            async for raw in stream:
                try:
                    await self.sessions.handle_piece(topic, raw)
                except Exception:
                    log.exception("receive pump failed on a piece", extra={"topic": topic})
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _stop_pump(self, topic: str) -> None:
        task = self._pumps.pop(topic, None)
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            # unsubscribed from inside a listener; the pump ends at its next await
            return
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = ["Node", "Subscription"]
