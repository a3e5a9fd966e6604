"""
rlncast — reliable delivery over lossy pub/sub with random linear network coding.

A payload is split into k source pieces and published as n = ceil(k · r)
random GF(256) combinations of them. Any k linearly independent pieces,
in any order and with duplicates mixed in, reconstruct the payload.

Submodules (lazy-imported)
--------------------------
coding.gf256        — GF(2^8) scalar and byte-vector arithmetic
coding.params       — k / redundancy / frame-ceiling profile and sizing math
coding.piece        — CodedPiece model and wire codec
coding.encoder      — payload → coded pieces
coding.decoder      — progressive Gaussian elimination per message
session.manager     — message-id → session routing, expiry, delivery
publish.coordinator — concurrency cap and throttling backoff on send
transport           — transport / compressor interfaces, memory loopback, zstd
node                — publish / subscribe / unsubscribe surface

Importing `rlncast` is cheap; symbols below load their module on first access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Tuple

from .version import __version__  # re-export

# Public API surface (attribute name -> (module_path, attr_name))
_EXPORTS: Dict[str, Tuple[str, str]] = {
    # coding
    "CodingParams": ("rlncast.coding.params", "CodingParams"),
    "CodedPiece": ("rlncast.coding.piece", "CodedPiece"),
    "Encoder": ("rlncast.coding.encoder", "Encoder"),
    "DecoderSession": ("rlncast.coding.decoder", "DecoderSession"),
    "SessionState": ("rlncast.coding.decoder", "SessionState"),
    "IngestOutcome": ("rlncast.coding.decoder", "IngestOutcome"),
    # receive / publish
    "SessionManager": ("rlncast.session.manager", "SessionManager"),
    "PublishCoordinator": ("rlncast.publish.coordinator", "PublishCoordinator"),
    "PublishReceipt": ("rlncast.publish.coordinator", "PublishReceipt"),
    "RetryPolicy": ("rlncast.publish.retry", "RetryPolicy"),
    "RetryEvent": ("rlncast.publish.retry", "RetryEvent"),
    # transport
    "MemoryTransport": ("rlncast.transport.memory", "MemoryTransport"),
    "Impairment": ("rlncast.transport.memory", "Impairment"),
    "ZstdCompressor": ("rlncast.transport.compress", "ZstdCompressor"),
    # surface
    "Node": ("rlncast.node", "Node"),
    "Subscription": ("rlncast.node", "Subscription"),
    "CastConfig": ("rlncast.config", "CastConfig"),
    "load_config": ("rlncast.config", "load_config"),
}

__all__ = tuple(sorted(_EXPORTS)) + ("__version__",)


def __getattr__(name: str) -> Any:
    """
    Lazy attribute loader for the public API. Imports the target symbol from the
    corresponding submodule on first access.
    """
    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module 'rlncast' has no attribute {name!r}")
    mod_path, attr_name = target
    module = __import__(mod_path, fromlist=[attr_name])
    value = getattr(module, attr_name)
    globals()[name] = value  # cache
    return value


if TYPE_CHECKING:
    from .coding.decoder import DecoderSession, IngestOutcome, SessionState
    from .coding.encoder import Encoder
    from .coding.params import CodingParams
    from .coding.piece import CodedPiece
    from .config import CastConfig, load_config
    from .node import Node, Subscription
    from .publish.coordinator import PublishCoordinator, PublishReceipt
    from .publish.retry import RetryEvent, RetryPolicy
    from .session.manager import SessionManager
    from .transport.compress import ZstdCompressor
    from .transport.memory import Impairment, MemoryTransport
