"""
rlncast • transport

Interfaces for the pub/sub transport and compression collaborators, plus an
in-process lossy loopback (`memory`) and a zstd codec (`compress`).
"""

from .base import Compressor, Transport
from .memory import Impairment, MemoryTransport, TransportStats

__all__ = ["Transport", "Compressor", "MemoryTransport", "Impairment", "TransportStats"]
