#!/usr/bin/env python3
"""
rlncast CLI — simulate
======================

Publish a batch of payloads through an in-process lossy transport and report
how many were reconstructed on the receiving side. A developer tool for
picking k and the redundancy factor against a given loss profile.

Two nodes share one MemoryTransport: the receiver subscribes to the topic, the
sender publishes `--messages` payloads, then the tool waits for deliveries and
prints a summary (text or JSON).

Examples
--------
# Default profile (k=8, r=1.5, 900-byte payloads) over 10% loss
python -m rlncast.cli.simulate --loss 0.1

# Heavier loss with more redundancy, reproducible
python -m rlncast.cli.simulate --loss 0.3 --redundancy 2.0 --messages 200 --seed 7

# Compressed text payloads, JSON report
python -m rlncast.cli.simulate --compress --text --json
"""
from __future__ import annotations

import argparse
import asyncio as _asyncio
import dataclasses
import json
import random
import sys
import time
from typing import Any, Dict, List, Optional

from prometheus_client import CollectorRegistry

from .. import logging as rlog
from ..config import load_config
from ..errors import RlncastError
from ..metrics import CastMetrics
from ..node import Node
from ..transport.memory import Impairment, MemoryTransport

_TOPIC = "rlncast.simulate"

_WORDS = (
    "sensor reading frame node relay buffer packet window burst drift "
    "coefficient pivot rank field shard topic"
).split()


# ---- Args -----------------------------------------------------------------------------
def _build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rlncast-simulate", add_help=True)
    p.add_argument("--messages", type=int, default=50, help="Payloads to publish (default: 50)")
    p.add_argument("--size", type=int, default=900, help="Payload size in bytes (default: 900)")
    p.add_argument("--k", type=int, default=None, help="Piece count (default: from config)")
    p.add_argument("--redundancy", type=float, default=None, help="Redundancy factor (default: from config)")
    p.add_argument("--auto-k", action="store_true", help="Raise k automatically until pieces fit the frame ceiling")
    p.add_argument("--max-frame", type=int, default=None, help="Transport byte ceiling (default: from config)")

    p.add_argument("--loss", type=float, default=0.0, help="Per-delivery drop probability")
    p.add_argument("--duplicate", type=float, default=0.0, help="Per-delivery duplication probability")
    p.add_argument("--reorder", type=float, default=0.0, help="Per-delivery hold-back probability")
    p.add_argument("--throttle", type=float, default=0.0, help="Per-send throttling probability")

    p.add_argument("--compress", action="store_true", help="Enable zstd compression before encoding")
    p.add_argument("--text", action="store_true", help="Use compressible text payloads instead of random bytes")
    p.add_argument("--seed", type=int, default=None, help="Seed for payloads, coefficients and impairments")
    p.add_argument("--wait", type=float, default=2.0, help="Seconds to wait for deliveries (default: 2.0)")
    p.add_argument("--json", action="store_true", help="Print the report as JSON")
    p.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    return p


# ---- Payloads -------------------------------------------------------------------------
def _payload(rng: random.Random, size: int, text: bool) -> bytes:
    if not text:
        return bytes(rng.getrandbits(8) for _ in range(size))
    out: List[str] = []
    n = 0
    while n < size:
        w = rng.choice(_WORDS)
        out.append(w)
        n += len(w) + 1
    return " ".join(out).encode("ascii")[:size]


# ---- Main -----------------------------------------------------------------------------
async def _amain(args: argparse.Namespace) -> int:
    rlog.configure(json=False, level=args.log_level)

    cfg = load_config()
    coding = dataclasses.replace(
        cfg.coding,
        piece_count=args.k if args.k is not None else cfg.coding.piece_count,
        redundancy=args.redundancy if args.redundancy is not None else cfg.coding.redundancy,
        auto_piece_count=bool(args.auto_k) or cfg.coding.auto_piece_count,
        max_frame_bytes=args.max_frame if args.max_frame is not None else cfg.coding.max_frame_bytes,
    )
    compression = dataclasses.replace(cfg.compression, enabled=bool(args.compress) or cfg.compression.enabled)
    cfg = dataclasses.replace(cfg, coding=coding, compression=compression)
    try:
        cfg.validate()
        impairment = Impairment(
            loss=args.loss,
            duplicate=args.duplicate,
            reorder=args.reorder,
            throttle=args.throttle,
        )
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    seed = args.seed if args.seed is not None else random.SystemRandom().randrange(1 << 32)
    rng = random.Random(seed)
    transport = MemoryTransport(
        max_frame_bytes=cfg.coding.max_frame_bytes,
        impairment=impairment,
        rng=random.Random(rng.getrandbits(32)),
    )
    metrics = CastMetrics(registry=CollectorRegistry())
    sender = Node(transport, cfg, rng=random.Random(rng.getrandbits(32)), metrics=metrics)
    receiver = Node(transport, cfg, metrics=metrics)

    expected: Dict[bytes, int] = {}
    delivered: List[bytes] = []
    mismatched = 0
    all_in = _asyncio.Event()

    def on_payload(topic: str, payload: bytes) -> None:
        nonlocal mismatched
        if payload in expected:
            delivered.append(payload)
        else:
            mismatched += 1
        if len(delivered) + mismatched >= args.messages:
            all_in.set()

    failures: Dict[str, int] = {}
    started = time.perf_counter()
    async with sender, receiver:
        await receiver.subscribe(_TOPIC, on_payload)
        for _ in range(args.messages):
            data = _payload(rng, args.size, args.text)
            expected[data] = expected.get(data, 0) + 1
            try:
                await sender.publish(_TOPIC, data)
            except RlncastError as e:
                failures[e.code] = failures.get(e.code, 0) + 1
                if e.code in ("piece_too_large", "empty_payload", "payload_too_large"):
                    print(f"ERROR: {e}", file=sys.stderr)
                    return 2
        transport.flush()
        try:
            await _asyncio.wait_for(all_in.wait(), timeout=max(0.0, args.wait))
        except _asyncio.TimeoutError:
            pass
        pending = receiver.sessions.active_sessions
    elapsed = time.perf_counter() - started

    report: Dict[str, Any] = {
        "seed": seed,
        "messages": args.messages,
        "payload_bytes": args.size,
        "k": cfg.coding.piece_count,
        "redundancy": cfg.coding.redundancy,
        "compression": cfg.compression.enabled,
        "delivered": len(delivered),
        "undelivered": args.messages - len(delivered),
        "mismatched": mismatched,
        "pending_sessions": pending,
        "publish_failures": failures,
        "transport": transport.stats.to_dict(),
        "elapsed_s": round(elapsed, 4),
    }

    if args.json:
        print(json.dumps(report, indent=2, sort_keys=True))
    else:
        print(f"seed        : {seed}")
        print(f"profile     : k={report['k']} r={report['redundancy']} size={args.size}B compression={report['compression']}")
        print(f"impairment  : loss={args.loss} dup={args.duplicate} reorder={args.reorder} throttle={args.throttle}")
        print(f"delivered   : {report['delivered']}/{args.messages}")
        if mismatched:
            print(f"MISMATCHED  : {mismatched}")
        if failures:
            print(f"publish errs: {failures}")
        print(f"transport   : {report['transport']}")
        print(f"elapsed     : {report['elapsed_s']}s")
    return 1 if mismatched else 0


def main(argv: Optional[list[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _build_argparser().parse_args(argv)
    try:
        return _asyncio.run(_amain(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
