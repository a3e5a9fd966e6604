"""
Shared helpers for rlncast tests.

These utilities are imported by individual test modules, e.g.:

    from rlncast.tests import (
        FakeClock, ScriptedTransport, SleepRecorder, fresh_metrics,
        sample_value, vandermonde_pieces, wait_for,
    )

They intentionally avoid pytest-specific fixtures so they can be used from
both pytest and ad-hoc scripts.
"""
from __future__ import annotations

import asyncio as _asyncio
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry

from rlncast.coding import gf256
from rlncast.coding.encoder import combine, split_payload
from rlncast.coding.piece import CodedPiece
from rlncast.metrics import CastMetrics

MID = bytes(range(16))


# --------------------------------------------------------------------------------------
# Metrics
# --------------------------------------------------------------------------------------
def fresh_metrics() -> CastMetrics:
    """CastMetrics bound to a private registry (no cross-test bleed)."""
    return CastMetrics(registry=CollectorRegistry())


def sample_value(metrics: CastMetrics, name: str, labels: Optional[Dict[str, str]] = None) -> float:
    v = metrics.registry.get_sample_value(name, labels or {})
    return 0.0 if v is None else v


# --------------------------------------------------------------------------------------
# Deterministic coding helpers
# --------------------------------------------------------------------------------------
def vandermonde_row(x: int, k: int) -> List[int]:
    """[1, x, x^2, ..., x^(k-1)] over GF(256)."""
    return [gf256.power(x, j) for j in range(k)]


def vandermonde_pieces(
    payload: bytes,
    k: int,
    n: int,
    *,
    message_id: bytes = MID,
    flags: int = 0,
) -> List[CodedPiece]:
    """
    n coded pieces whose coefficient rows use distinct points x = 1..n, so
    every k-subset is linearly independent.
    """
    if n > 255:
        raise ValueError("at most 255 distinct nonzero points")
    sources = split_payload(payload, k)
    return [
        combine(
            sources,
            vandermonde_row(i + 1, k),
            message_id=message_id,
            length=len(payload),
            seq=i,
            flags=flags,
        )
        for i in range(n)
    ]


def derived_piece(a: CodedPiece, b: CodedPiece, *, seq: int = 999) -> CodedPiece:
    """a + b: linearly dependent on the two inputs."""
    return CodedPiece(
        message_id=a.message_id,
        piece_count=a.piece_count,
        length=a.length,
        seq=seq,
        coefficients=gf256.add_into(a.coefficients, b.coefficients),
        payload=gf256.add_into(a.payload, b.payload),
        flags=a.flags,
    )


# --------------------------------------------------------------------------------------
# Time & transport doubles
# --------------------------------------------------------------------------------------
class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> None:
        self.now += dt


class SleepRecorder:
    """Awaitable sleep that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedTransport:
    """
    Transport whose `send` outcomes follow a script: each entry is either None
    (success) or an exception to raise. Once the script runs out, `default` is
    used (None → succeed).
    """

    def __init__(
        self,
        script: Sequence[Optional[BaseException]] = (),
        *,
        default: Optional[Callable[[], BaseException]] = None,
        max_frame_bytes: int = 900,
    ) -> None:
        self.script: List[Optional[BaseException]] = list(script)
        self.default = default
        self.max_frame_bytes = max_frame_bytes
        self.calls = 0
        self.sent: List[Tuple[str, bytes]] = []

    async def send(self, topic: str, data: bytes) -> None:
        self.calls += 1
        if self.script:
            outcome = self.script.pop(0)
        else:
            outcome = self.default() if self.default else None
        if outcome is not None:
            raise outcome
        self.sent.append((topic, bytes(data)))

    async def _empty(self) -> AsyncIterator[bytes]:
        return
        yield b""  # pragma: no cover

    def receive(self, topic: str) -> AsyncIterator[bytes]:
        return self._empty()


# --------------------------------------------------------------------------------------
# Async helpers
# --------------------------------------------------------------------------------------
async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll `predicate` until true or until `timeout` seconds elapse."""
    loop = _asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if predicate():
            return True
        if loop.time() >= deadline:
            return False
        await _asyncio.sleep(interval)
