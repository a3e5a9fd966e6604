"""
Publish coordinator
===================

Pushes the coded pieces of one message onto the transport.

Responsibilities
- Bound the number of publishes in flight; one over the ceiling fails at once
  with CapacityError instead of queuing.
- Retry throttled piece sends with exponential backoff (see `retry.py`),
  notifying an optional observer before every backoff sleep.
- Count successful sends and fail with InsufficientPiecesError when fewer than
  k pieces reached the transport, since such a message can never decode.

Pieces of one message are sent one after another; separate publishes run
concurrently and never wait on each other's backoff.

Threading model: asyncio-only, single-threaded. The in-flight counter is only
touched between awaits, so it needs no lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Tuple, Union

from .. import constants as C
from ..coding.piece import CodedPiece
from ..errors import CapacityError, InsufficientPiecesError, TransportError
from ..metrics import CastMetrics, get_metrics
from ..transport.base import Transport
from .retry import RetryEvent, RetryPolicy

log = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
RetryObserver = Callable[[RetryEvent], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class PublishReceipt:
    topic: str
    message_id: bytes
    attempted: int
    succeeded: int
    required: int
    retries: int

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "message_id": self.message_id.hex(),
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "required": self.required,
            "retries": self.retries,
        }


class PublishCoordinator:
    """
    Args:
        transport: anything with `async send(topic, data)`
        max_concurrent: publishes allowed in flight at once
        policy: backoff for ThrottledError
        sleep: awaitable sleep (inject a fake in tests)
        on_retry: observer called with a RetryEvent before each retry; may be
                  sync or async. Errors it raises are logged and ignored.
        metrics: CastMetrics instance (process singleton by default)
    """

    def __init__(
        self,
        transport: Transport,
        *,
        max_concurrent: int = C.MAX_CONCURRENT_PUBLISHES_DEFAULT,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFn] = None,
        on_retry: Optional[RetryObserver] = None,
        metrics: Optional[CastMetrics] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.transport = transport
        self.max_concurrent = max_concurrent
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._on_retry = on_retry
        self._metrics = metrics or get_metrics()
        self._inflight = 0

    @property
    def inflight(self) -> int:
        return self._inflight

    async def publish(
        self,
        topic: str,
        pieces: Iterable[CodedPiece],
        required: Optional[int] = None,
    ) -> PublishReceipt:
        if self._inflight >= self.max_concurrent:
            self._metrics.publishes.labels("capacity").inc()
            raise CapacityError(
                f"{self._inflight} publishes already in flight",
                limit=self.max_concurrent,
            )

        self._inflight += 1
        self._metrics.publishes_inflight.inc()
        try:
            return await self._publish(topic, pieces, required)
        finally:
            self._inflight -= 1
            self._metrics.publishes_inflight.dec()

    async def _publish(
        self,
        topic: str,
        pieces: Iterable[CodedPiece],
        required: Optional[int],
    ) -> PublishReceipt:
        attempted = succeeded = retries = 0
        message_id = b""
        for piece in pieces:
            if not attempted:
                message_id = piece.message_id
                if required is None:
                    required = piece.piece_count
            attempted += 1
            ok, n_retries = await self._send_piece(topic, piece)
            retries += n_retries
            if ok:
                succeeded += 1

        required = required or 0
        if succeeded < required or attempted == 0:
            self._metrics.publishes.labels("insufficient").inc()
            log.warning(
                "publish failed: not enough pieces reached the transport",
                extra={
                    "topic": topic,
                    "message_id": message_id.hex(),
                    "succeeded": succeeded,
                    "required": required,
                    "attempted": attempted,
                },
            )
            raise InsufficientPiecesError(succeeded=succeeded, required=required, attempted=attempted)

        self._metrics.publishes.labels("ok").inc()
        log.debug(
            "published",
            extra={"topic": topic, "message_id": message_id.hex(), "sent": succeeded, "retries": retries},
        )
        return PublishReceipt(
            topic=topic,
            message_id=message_id,
            attempted=attempted,
            succeeded=succeeded,
            required=required,
            retries=retries,
        )

    async def _send_piece(self, topic: str, piece: CodedPiece) -> Tuple[bool, int]:
        data = piece.to_bytes()
        attempt = 0
        while True:
            attempt += 1
            try:
                await self.transport.send(topic, data)
            except TransportError as e:
                if not self.policy.should_retry(e, attempt):
                    outcome = "throttled" if self.policy.is_retryable(e) else "failed"
                    self._metrics.piece_sends.labels(outcome).inc()
                    log.debug(
                        "piece send gave up",
                        extra={"topic": topic, "seq": piece.seq, "attempts": attempt, "error": e.code},
                    )
                    return False, attempt - 1
                delay = self.policy.delay(attempt - 1)
                self._metrics.retries.inc()
                await self._notify(RetryEvent(
                    topic=topic,
                    message_id=piece.message_id,
                    seq=piece.seq,
                    attempt=attempt,
                    delay=delay,
                    error=e,
                ))
                await self._sleep(delay)
                continue
            self._metrics.piece_sends.labels("ok").inc()
            return True, attempt - 1

    async def _notify(self, event: RetryEvent) -> None:
        if self._on_retry is None:
            return
        try:
            await _maybe_await(self._on_retry(event))
        except Exception:
            log.exception("on_retry observer raised", extra={"topic": event.topic, "seq": event.seq})


async def _maybe_await(x: Union[None, Awaitable[None]]) -> None:
    if x is None:
        return
    await x


__all__ = ["PublishCoordinator", "PublishReceipt"]
