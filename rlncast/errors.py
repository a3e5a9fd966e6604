"""
rlncast errors.

Lightweight, typed exception hierarchy with structured metadata suitable for
logs, metrics labels and callers that branch on failure class.

Usage:

    from rlncast.errors import PieceTooLargeError

    raise PieceTooLargeError("frame exceeds transport ceiling", details={"frame": 1204})

All errors expose:
- .code      : stable machine-readable code (snake_case)
- .retryable : whether the caller MAY retry the same operation later
- .details   : optional structured payload (dict)
- .to_dict() : JSON-friendly rendering

Taxonomy
--------
input       EmptyPayloadError, PieceTooLargeError, PayloadTooLargeError
transport   TransportError (fatal), ThrottledError (transient)
protocol    MalformedPieceError, InconsistentPieceError, SessionClosedError
capacity    CapacityError, InsufficientPiecesError
collaborator CompressionError
config      ConfigError
field       FieldDomainError
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class ErrorCode:
    """
    Canonical string codes. Kept stable for logs/metrics.
    """

    GENERIC = "rlncast_error"
    EMPTY_PAYLOAD = "empty_payload"
    PIECE_TOO_LARGE = "piece_too_large"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    TRANSPORT = "transport_error"
    THROTTLED = "throttled"
    MALFORMED_PIECE = "malformed_piece"
    INCONSISTENT_PIECE = "inconsistent_piece"
    SESSION_CLOSED = "session_closed"
    CAPACITY = "capacity_exceeded"
    INSUFFICIENT_PIECES = "insufficient_pieces"
    COMPRESSION = "compression_error"
    CONFIG = "invalid_config"
    FIELD_DOMAIN = "field_domain"


class RlncastError(Exception):
    """
    Base class for rlncast errors.

    Subclasses set `default_code` and, where relevant, `default_retryable`.
    """

    default_code = ErrorCode.GENERIC
    default_retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        retryable: Optional[bool] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retryable = bool(self.default_retryable if retryable is None else retryable)
        # Shallow copy so callers cannot mutate our context after the fact
        self.details: Dict[str, Any] = dict(details) if details else {}

    def __str__(self) -> str:
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details or {},
        }


# ---------------------------------- input -----------------------------------


class EmptyPayloadError(RlncastError):
    """Encode was asked to split a zero-length payload."""

    default_code = ErrorCode.EMPTY_PAYLOAD


class PieceTooLargeError(RlncastError):
    """
    A single coded piece (header + coefficients + payload share) would exceed
    the transport's byte ceiling. The caller must raise k or shrink the payload.
    """

    default_code = ErrorCode.PIECE_TOO_LARGE

    def __init__(
        self,
        message: str = "",
        *,
        frame_size: int,
        ceiling: int,
        piece_count: int,
        suggested_k: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            details={
                "frame_size": frame_size,
                "ceiling": ceiling,
                "piece_count": piece_count,
                "suggested_k": suggested_k,
            },
        )
        self.frame_size = frame_size
        self.ceiling = ceiling
        self.piece_count = piece_count
        self.suggested_k = suggested_k


class PayloadTooLargeError(RlncastError):
    """Payload exceeds the configured maximum (or the u32 length field)."""

    default_code = ErrorCode.PAYLOAD_TOO_LARGE


# -------------------------------- transport ---------------------------------


class TransportError(RlncastError):
    """Non-retriable transport rejection."""

    default_code = ErrorCode.TRANSPORT


class ThrottledError(TransportError):
    """Transient transport failure (rate limited); retry with backoff."""

    default_code = ErrorCode.THROTTLED
    default_retryable = True


# -------------------------------- protocol ----------------------------------


class MalformedPieceError(RlncastError):
    """Bytes on the wire do not parse as a coded piece."""

    default_code = ErrorCode.MALFORMED_PIECE


class InconsistentPieceError(RlncastError):
    """A piece disagrees with its session on k, L, flags or identifier."""

    default_code = ErrorCode.INCONSISTENT_PIECE


class SessionClosedError(RlncastError):
    """Operation not valid in the session's current (terminal) state."""

    default_code = ErrorCode.SESSION_CLOSED


# -------------------------------- capacity ----------------------------------


class CapacityError(RlncastError):
    """The publish concurrency ceiling is reached."""

    default_code = ErrorCode.CAPACITY
    default_retryable = True

    def __init__(self, message: str = "", *, limit: int) -> None:
        super().__init__(message, details={"limit": limit})
        self.limit = limit


class InsufficientPiecesError(RlncastError):
    """
    Fewer than k pieces reached the transport; the message can never decode.
    """

    default_code = ErrorCode.INSUFFICIENT_PIECES

    def __init__(
        self,
        message: str = "",
        *,
        succeeded: int,
        required: int,
        attempted: int,
    ) -> None:
        if not message:
            message = f"only {succeeded} of {attempted} pieces sent, {required} required"
        super().__init__(
            message,
            details={"succeeded": succeeded, "required": required, "attempted": attempted},
        )
        self.succeeded = succeeded
        self.required = required
        self.attempted = attempted


# ------------------------------ collaborators -------------------------------


class CompressionError(RlncastError):
    """Compression or decompression failed (malformed input, size cap)."""

    default_code = ErrorCode.COMPRESSION


# ------------------------------ config / field ------------------------------


class ConfigError(RlncastError, ValueError):
    """Invalid configuration value."""

    default_code = ErrorCode.CONFIG


class FieldDomainError(RlncastError, ZeroDivisionError):
    """Field operation outside its domain (inverse/division by zero)."""

    default_code = ErrorCode.FIELD_DOMAIN


def as_error_dict(exc: BaseException) -> Dict[str, Any]:
    """
    Convert an exception to a structured dict suitable for JSON logs.
    Unknown exceptions are wrapped as a generic error.
    """
    if isinstance(exc, RlncastError):
        return exc.to_dict()
    return RlncastError(str(exc) or exc.__class__.__name__).to_dict()


__all__ = [
    "ErrorCode",
    "RlncastError",
    "EmptyPayloadError",
    "PieceTooLargeError",
    "PayloadTooLargeError",
    "TransportError",
    "ThrottledError",
    "MalformedPieceError",
    "InconsistentPieceError",
    "SessionClosedError",
    "CapacityError",
    "InsufficientPiecesError",
    "CompressionError",
    "ConfigError",
    "FieldDomainError",
    "as_error_dict",
]
