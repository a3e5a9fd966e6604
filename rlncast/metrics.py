"""
Prometheus metrics for rlncast.

Counters, gauges and histograms for:
- Encoding and publishing (pieces encoded, sends by outcome, retries, publish outcomes)
- Receiving (pieces by ingest outcome, active sessions, completions/expiries)
- Decode latency (first piece → completion)

Typical usage:

    from rlncast.metrics import get_metrics

    METRICS = get_metrics()
    METRICS.pieces_received.labels("innovative").inc()

Tests that want isolated counters build their own instance:

    from prometheus_client import CollectorRegistry
    metrics = CastMetrics(registry=CollectorRegistry())

To expose `/metrics` from a plain process:

    from prometheus_client import start_http_server
    start_http_server(9108)
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
_SIZE_BUCKETS = (64, 256, 900, 4_096, 16_384, 65_536, 262_144, 1_048_576, 4_194_304, 16_777_216)


class CastMetrics:
    """
    Concrete metrics backed by prometheus_client.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        reg = registry or REGISTRY
        self.registry = reg

        # Publish side
        self.pieces_encoded = Counter(
            "rlncast_pieces_encoded_total",
            "Coded pieces produced by the encoder",
            registry=reg,
        )
        self.piece_sends = Counter(
            "rlncast_piece_sends_total",
            "Piece send attempts grouped by outcome",
            ["outcome"],  # ok | throttled | failed
            registry=reg,
        )
        self.retries = Counter(
            "rlncast_piece_retries_total",
            "Backoff retries scheduled for throttled piece sends",
            registry=reg,
        )
        self.publishes = Counter(
            "rlncast_publishes_total",
            "Publish operations grouped by outcome",
            ["outcome"],  # ok | capacity | insufficient | rejected
            registry=reg,
        )
        self.publishes_inflight = Gauge(
            "rlncast_publishes_inflight",
            "Publish operations currently in flight",
            registry=reg,
        )
        self.payload_size = Histogram(
            "rlncast_payload_size_bytes",
            "Distribution of published payload sizes (after compression)",
            registry=reg,
            buckets=_SIZE_BUCKETS,
        )

        # Receive side
        self.pieces_received = Counter(
            "rlncast_pieces_received_total",
            "Received pieces grouped by ingest outcome",
            ["outcome"],  # innovative | redundant | completed | malformed | inconsistent | late | expired | unrouted
            registry=reg,
        )
        self.sessions_active = Gauge(
            "rlncast_sessions_active",
            "Decoder sessions currently collecting",
            registry=reg,
        )
        self.sessions_closed = Counter(
            "rlncast_sessions_closed_total",
            "Decoder sessions closed grouped by reason",
            ["reason"],  # complete | expired | unsubscribed
            registry=reg,
        )
        self.decode_latency = Histogram(
            "rlncast_decode_latency_seconds",
            "Time from first piece to full-rank decode",
            registry=reg,
            buckets=_LATENCY_BUCKETS,
        )
        self.deliveries = Counter(
            "rlncast_deliveries_total",
            "Payload deliveries to subscriber callbacks grouped by outcome",
            ["outcome"],  # ok | callback_error | decompress_error
            registry=reg,
        )


_METRICS_SINGLETON: Optional[CastMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> CastMetrics:
    """
    Return a process-wide CastMetrics singleton. The first call can inject a
    custom registry; subsequent calls ignore the registry parameter.
    """
    global _METRICS_SINGLETON
    if _METRICS_SINGLETON is None:
        _METRICS_SINGLETON = CastMetrics(registry=registry)
    return _METRICS_SINGLETON


__all__ = [
    "CastMetrics",
    "get_metrics",
]
