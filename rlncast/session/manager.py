"""
Session manager
===============

Receive-side routing from raw transport messages to decoder sessions and, on
completion, to subscriber callbacks.

Responsibilities
- Parse incoming frames; malformed frames are counted and dropped.
- Keep exactly one DecoderSession per in-flight message id, created lazily
  from the first piece seen (its k, L and flags shape the session).
- Drop pieces of recently completed messages (LRU of completed ids) so late
  duplicates never re-create a session or re-deliver a payload.
- On completion: remove the session, decompress when the piece is flagged,
  then call every listener registered for the topic.
- Expire sessions that outlive the decoder timeout, from a background sweep
  that runs regardless of piece arrival.
- Tear down every session of a topic when its last listener goes away.

Protocol errors (malformed or inconsistent pieces) never escape
`handle_piece`. Listener failures are logged and isolated from each other.

Threading model: asyncio-only, single-threaded. Lookup, insert and ingest run
without an intervening await; a completed session is removed from the table
before listeners are awaited.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from ..coding.decoder import DecoderSession, IngestOutcome, SessionState
from ..coding.piece import CodedPiece
from ..config import DecoderConfig
from ..errors import (CompressionError, InconsistentPieceError,
                      MalformedPieceError, SessionClosedError)
from ..metrics import CastMetrics, get_metrics
from ..transport.base import Compressor

log = logging.getLogger(__name__)

Listener = Callable[[str, bytes], Union[None, Awaitable[None]]]
# signature: listener(topic, payload), sync or async

Clock = Callable[[], float]


class CompletedTable:
    """
    LRU of recently completed message ids. O(1) membership & eviction.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("completed-id table capacity must be >= 1")
        self.capacity = capacity
        self._lru: "OrderedDict[bytes, None]" = OrderedDict()

    def add(self, mid: bytes) -> None:
        self._lru[mid] = None
        self._lru.move_to_end(mid, last=True)
        while len(self._lru) > self.capacity:
            self._lru.popitem(last=False)

    def __contains__(self, mid: object) -> bool:
        return mid in self._lru

    def __len__(self) -> int:
        return len(self._lru)


class SessionManager:
    """
    Args:
        config: decoder timeout, sweep interval, completed-id cache size
        clock: monotonic seconds source (inject a fake in tests)
        decompressor: used for pieces carrying the compressed flag
        metrics: CastMetrics instance (process singleton by default)
    """

    def __init__(
        self,
        config: Optional[DecoderConfig] = None,
        *,
        clock: Optional[Clock] = None,
        decompressor: Optional[Compressor] = None,
        metrics: Optional[CastMetrics] = None,
    ) -> None:
        self.config = config or DecoderConfig()
        self.config.validate()
        self._clock = clock or time.monotonic
        self._decompressor = decompressor
        self._metrics = metrics or get_metrics()

        self._sessions: Dict[bytes, DecoderSession] = {}
        self._session_topic: Dict[bytes, str] = {}
        self._by_topic: Dict[str, Set[bytes]] = {}
        # topic -> {listener: registration count}; insertion ordered
        self._listeners: Dict[str, Dict[Listener, int]] = {}
        self._completed = CompletedTable(self.config.completed_cache_size)

        self._task_sweep: Optional[asyncio.Task] = None

    # -------- lifecycle --------

    async def start(self) -> None:
        if self._task_sweep is None:
            self._task_sweep = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._task_sweep:
            self._task_sweep.cancel()
            try:
                await self._task_sweep
            except asyncio.CancelledError:
                pass
            self._task_sweep = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            self.sweep()

    # -------- listeners --------

    def add_listener(self, topic: str, cb: Listener) -> int:
        """
        Register `cb` for `topic`; returns the topic's registration count.
        Registering the same callable twice counts twice but it is still
        called once per payload.
        """
        cbs = self._listeners.setdefault(topic, {})
        cbs[cb] = cbs.get(cb, 0) + 1
        return sum(cbs.values())

    def remove_listener(self, topic: str, cb: Optional[Listener] = None) -> int:
        """
        Drop one registration of `cb` (or every registration when None). When
        none remains, every session of the topic is torn down. Returns the
        remaining registration count.
        """
        cbs = self._listeners.get(topic)
        if cbs is None:
            return 0
        if cb is None:
            cbs.clear()
        elif cb in cbs:
            cbs[cb] -= 1
            if cbs[cb] <= 0:
                del cbs[cb]
        if cbs:
            return sum(cbs.values())
        del self._listeners[topic]
        torn = self._teardown_topic(topic)
        if torn:
            log.debug("topic torn down", extra={"topic": topic, "sessions": torn})
        return 0

    def listeners(self, topic: str) -> int:
        return sum(self._listeners.get(topic, {}).values())

    def topics(self) -> List[str]:
        return sorted(self._listeners)

    # -------- inspection --------

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def session(self, message_id: bytes) -> Optional[DecoderSession]:
        return self._sessions.get(message_id)

    def sessions_for(self, topic: str) -> List[DecoderSession]:
        return [self._sessions[mid] for mid in self._by_topic.get(topic, ())]

    def is_completed(self, message_id: bytes) -> bool:
        return message_id in self._completed

    # -------- ingress --------

    async def handle_piece(self, topic: str, raw: bytes) -> Optional[IngestOutcome]:
        """
        Route one raw frame. Returns the ingest outcome, or None when the
        frame was dropped (no listener, malformed, late, expired or
        inconsistent).
        """
        m = self._metrics
        if topic not in self._listeners:
            m.pieces_received.labels("unrouted").inc()
            return None

        try:
            piece = CodedPiece.from_bytes(raw)
        except MalformedPieceError as e:
            m.pieces_received.labels("malformed").inc()
            log.debug("dropping malformed piece", extra={"topic": topic, "error": str(e), "size": len(raw)})
            return None

        mid = piece.message_id
        if mid in self._completed:
            m.pieces_received.labels("late").inc()
            return None

        session = self._sessions.get(mid)
        if session is None:
            session = self._open(topic, piece)
        elif self._session_topic.get(mid) != topic:
            m.pieces_received.labels("inconsistent").inc()
            log.debug("dropping piece routed to another topic", extra={"topic": topic, "message_id": mid})
            return None
        elif session.check_expired(self._clock()):
            # timed out between sweeps; never complete it
            self._expire(mid, session)
            m.pieces_received.labels("expired").inc()
            return None

        try:
            outcome = session.ingest(piece)
        except (InconsistentPieceError, SessionClosedError) as e:
            m.pieces_received.labels("inconsistent").inc()
            log.debug("dropping inconsistent piece", extra={"topic": topic, "error": str(e)})
            return None

        m.pieces_received.labels(outcome.value).inc()
        if outcome is IngestOutcome.COMPLETED:
            await self._complete(topic, session, piece.compressed)
        return outcome

    # -------- expiry --------

    def sweep(self, now: Optional[float] = None) -> int:
        """Expire timed-out sessions and evict every non-collecting one."""
        now = self._clock() if now is None else now
        evicted = 0
        for mid, session in list(self._sessions.items()):
            session.check_expired(now)
            if session.state is SessionState.COLLECTING:
                continue
            if session.state is SessionState.EXPIRED:
                self._expire(mid, session)
            else:
                self._evict(mid, "complete")
            evicted += 1
        return evicted

    def _expire(self, mid: bytes, session: DecoderSession) -> None:
        log.debug(
            "session expired",
            extra={
                "topic": self._session_topic.get(mid),
                "message_id": mid,
                "rank": session.rank,
                "k": session.piece_count,
            },
        )
        self._evict(mid, "expired")

    def clear(self) -> int:
        """Drop every session (shutdown path)."""
        n = 0
        for mid in list(self._sessions):
            self._evict(mid, "unsubscribed")
            n += 1
        return n

    # -------- internals --------

    def _open(self, topic: str, piece: CodedPiece) -> DecoderSession:
        session = DecoderSession.from_piece(
            piece,
            created_at=self._clock(),
            timeout=self.config.timeout,
        )
        mid = piece.message_id
        self._sessions[mid] = session
        self._session_topic[mid] = topic
        self._by_topic.setdefault(topic, set()).add(mid)
        self._metrics.sessions_active.inc()
        return session

    def _evict(self, mid: bytes, reason: str) -> None:
        if self._sessions.pop(mid, None) is None:
            return
        topic = self._session_topic.pop(mid, None)
        if topic is not None:
            ids = self._by_topic.get(topic)
            if ids is not None:
                ids.discard(mid)
                if not ids:
                    del self._by_topic[topic]
        self._metrics.sessions_active.dec()
        self._metrics.sessions_closed.labels(reason).inc()

    def _teardown_topic(self, topic: str) -> int:
        ids = list(self._by_topic.get(topic, ()))
        for mid in ids:
            self._evict(mid, "unsubscribed")
        return len(ids)

    async def _complete(self, topic: str, session: DecoderSession, compressed: bool) -> None:
        mid = session.message_id
        self._evict(mid, "complete")
        self._completed.add(mid)
        self._metrics.decode_latency.observe(max(0.0, session.age(self._clock())))

        payload = session.payload
        if compressed:
            try:
                if self._decompressor is None:
                    raise CompressionError("compressed payload but no decompressor configured")
                payload = self._decompressor.decompress(payload)
            except CompressionError as e:
                self._metrics.deliveries.labels("decompress_error").inc()
                log.warning("dropping payload that failed to decompress", extra={"topic": topic, "message_id": mid, "error": str(e)})
                return

        log.debug("payload decoded", extra={"topic": topic, "message_id": mid, "size": len(payload)})
        await self._deliver(topic, payload)

    async def _deliver(self, topic: str, payload: bytes) -> None:
        for cb in list(self._listeners.get(topic, ())):
            try:
                await _maybe_await(cb(topic, payload))
            except Exception:
                self._metrics.deliveries.labels("callback_error").inc()
                log.exception("listener raised", extra={"topic": topic})
            else:
                self._metrics.deliveries.labels("ok").inc()


async def _maybe_await(x: Union[None, Awaitable[None]]) -> None:
    if x is None:
        return
    await x


__all__ = ["SessionManager", "CompletedTable", "Listener"]
