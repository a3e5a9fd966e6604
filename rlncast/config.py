"""
rlncast configuration.

This module defines the configuration surface for the coding layer, the
receive-side session table, the publish coordinator and compression. All
fields have sensible defaults and can be overridden via environment variables.
Nothing here imports heavy dependencies.

Environment variables (all optional):

  # Coding
  RLNCAST_PIECE_COUNT=8                  # k, source pieces per payload
  RLNCAST_REDUNDANCY=1.5                 # n = ceil(k * redundancy)
  RLNCAST_AUTO_PIECE_COUNT=0             # raise k automatically to fit the frame ceiling
  RLNCAST_MAX_FRAME_BYTES=900            # transport byte budget per message
  RLNCAST_MAX_PAYLOAD=16MiB              # supports KiB/MiB suffixes

  # Decoder sessions
  RLNCAST_DECODER_TIMEOUT=30             # seconds before an incomplete session expires
  RLNCAST_SWEEP_INTERVAL=5               # seconds between expiry scans
  RLNCAST_COMPLETED_CACHE=4096           # recently completed ids remembered (>= 1)

  # Publish / retry
  RLNCAST_RETRY_MAX_ATTEMPTS=5
  RLNCAST_RETRY_BASE_DELAY=0.1           # seconds
  RLNCAST_RETRY_MULTIPLIER=2.0
  RLNCAST_RETRY_MAX_DELAY=10
  RLNCAST_MAX_CONCURRENT_PUBLISHES=16

  # Compression
  RLNCAST_COMPRESSION=0                  # 1/true/yes to enable
  RLNCAST_COMPRESSION_LEVEL=3

  # Logging
  RLNCAST_LOG_LEVEL=INFO
  RLNCAST_LOG_FORMAT=                    # json | text | (empty: auto by TTY)
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Dict, List, Mapping, Optional

from . import constants as C
from .errors import ConfigError

# ------------------------------- helpers ------------------------------------


_SIZE_RE = re.compile(
    r"^\s*(?P<num>(?:\d+)(?:\.\d+)?)\s*(?P<unit>bytes?|b|kb|kib|mb|mib|gb|gib)?\s*$",
    re.IGNORECASE,
)

_UNITS = {
    "b": 1,
    "byte": 1,
    "bytes": 1,
    "kb": 1000,
    "kib": 1024,
    "mb": 1000**2,
    "mib": 1024**2,
    "gb": 1000**3,
    "gib": 1024**3,
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_size(value: str, *, default: int) -> int:
    """Parse human sizes like '900', '4KiB', '8MB' → bytes."""
    if not value:
        return default
    m = _SIZE_RE.match(value)
    if not m:
        raise ConfigError(f"Invalid size: {value!r}")
    num = float(m.group("num"))
    unit = (m.group("unit") or "b").lower()
    return int(num * _UNITS[unit])


def _getenv(env: Mapping[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    v = env.get(key)
    return v if v is not None and v.strip() != "" else default


def _getenv_int(env: Mapping[str, str], key: str, default: int) -> int:
    v = _getenv(env, key)
    if v is None:
        return default
    try:
        return int(v.strip(), 0)
    except ValueError as e:
        raise ConfigError(f"Invalid int for {key}: {v!r}") from e


def _getenv_float(env: Mapping[str, str], key: str, default: float) -> float:
    v = _getenv(env, key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError as e:
        raise ConfigError(f"Invalid float for {key}: {v!r}") from e


def _getenv_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    v = _getenv(env, key)
    if v is None:
        return default
    vv = v.strip().lower()
    if vv in _TRUE:
        return True
    if vv in _FALSE:
        return False
    raise ConfigError(f"Invalid bool for {key}: {v!r}")


# ------------------------------- config -------------------------------------


@dataclass(frozen=True)
class CodingConfig:
    """
    Encoder profile.

    - piece_count: k, number of source pieces per payload
    - redundancy: ratio of pieces sent to pieces required (n = ceil(k * r))
    - auto_piece_count: raise k (never lower it) until a frame fits the ceiling
    - max_frame_bytes: transport byte ceiling per coded piece
    - max_payload_bytes: largest payload accepted for publishing
    """

    piece_count: int = C.PIECE_COUNT_DEFAULT
    redundancy: float = C.REDUNDANCY_DEFAULT
    auto_piece_count: bool = False
    max_frame_bytes: int = C.MAX_FRAME_BYTES_DEFAULT
    max_payload_bytes: int = C.MAX_PAYLOAD_BYTES_DEFAULT

    def validate(self) -> None:
        if not (C.K_MIN <= self.piece_count <= C.K_MAX):
            raise ConfigError(f"piece_count must be in {C.K_MIN}..{C.K_MAX}")
        if not (self.redundancy >= 1.0):
            raise ConfigError("redundancy must be >= 1.0")
        if self.max_frame_bytes < C.MAX_FRAME_BYTES_MIN:
            raise ConfigError(f"max_frame_bytes must be >= {C.MAX_FRAME_BYTES_MIN}")
        if not (1 <= self.max_payload_bytes <= C.LENGTH_MAX):
            raise ConfigError("max_payload_bytes must be in 1..2^32-1")


@dataclass(frozen=True)
class DecoderConfig:
    """
    Receive-side session lifecycle.

    - timeout: seconds an incomplete session may live
    - sweep_interval: seconds between expiry scans (independent of arrivals)
    - completed_cache_size: recently completed ids kept to drop late pieces
    """

    timeout: float = C.DECODER_TIMEOUT_DEFAULT
    sweep_interval: float = C.SWEEP_INTERVAL_DEFAULT
    completed_cache_size: int = C.COMPLETED_CACHE_DEFAULT

    def validate(self) -> None:
        if self.timeout <= 0:
            raise ConfigError("decoder timeout must be > 0")
        if self.sweep_interval <= 0:
            raise ConfigError("sweep_interval must be > 0")
        if self.completed_cache_size < 1:
            raise ConfigError("completed_cache_size must be >= 1")


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff for transient (throttled) piece sends:
    delay = min(max_delay, base_delay * multiplier ** attempt_index).
    """

    max_attempts: int = C.RETRY_MAX_ATTEMPTS_DEFAULT
    base_delay: float = C.RETRY_BASE_DELAY_DEFAULT
    multiplier: float = C.RETRY_MULTIPLIER_DEFAULT
    max_delay: float = C.RETRY_MAX_DELAY_DEFAULT

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ConfigError("base_delay must be >= 0")
        if self.multiplier < 1.0:
            raise ConfigError("multiplier must be >= 1.0")
        if self.max_delay < self.base_delay:
            raise ConfigError("max_delay must be >= base_delay")


@dataclass(frozen=True)
class PublishConfig:
    max_concurrent: int = C.MAX_CONCURRENT_PUBLISHES_DEFAULT

    def validate(self) -> None:
        if self.max_concurrent < 1:
            raise ConfigError("max_concurrent must be >= 1")


@dataclass(frozen=True)
class CompressionConfig:
    enabled: bool = False
    level: int = C.COMPRESSION_LEVEL_DEFAULT

    def validate(self) -> None:
        if not (C.COMPRESSION_LEVEL_MIN <= self.level <= C.COMPRESSION_LEVEL_MAX):
            raise ConfigError(
                f"compression level must be in {C.COMPRESSION_LEVEL_MIN}..{C.COMPRESSION_LEVEL_MAX}"
            )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: Optional[str] = None  # "json" | "text" | None (auto)

    def validate(self) -> None:
        if self.format not in (None, "json", "text"):
            raise ConfigError("log format must be 'json' or 'text'")


@dataclass(frozen=True)
class CastConfig:
    """
    Top-level configuration.
    """

    coding: CodingConfig = field(default_factory=CodingConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        self.coding.validate()
        self.decoder.validate()
        self.retry.validate()
        self.publish.validate()
        self.compression.validate()
        self.logging.validate()

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


# ------------------------------- loader -------------------------------------


def load_config(env: Optional[Mapping[str, str]] = None) -> CastConfig:
    """
    Build and validate a configuration from an environment mapping
    (defaults to `os.environ`).
    """
    env = os.environ if env is None else env

    coding = CodingConfig(
        piece_count=_getenv_int(env, "RLNCAST_PIECE_COUNT", C.PIECE_COUNT_DEFAULT),
        redundancy=_getenv_float(env, "RLNCAST_REDUNDANCY", C.REDUNDANCY_DEFAULT),
        auto_piece_count=_getenv_bool(env, "RLNCAST_AUTO_PIECE_COUNT", False),
        max_frame_bytes=_parse_size(
            _getenv(env, "RLNCAST_MAX_FRAME_BYTES", "") or "",
            default=C.MAX_FRAME_BYTES_DEFAULT,
        ),
        max_payload_bytes=_parse_size(
            _getenv(env, "RLNCAST_MAX_PAYLOAD", "") or "",
            default=C.MAX_PAYLOAD_BYTES_DEFAULT,
        ),
    )

    decoder = DecoderConfig(
        timeout=_getenv_float(env, "RLNCAST_DECODER_TIMEOUT", C.DECODER_TIMEOUT_DEFAULT),
        sweep_interval=_getenv_float(env, "RLNCAST_SWEEP_INTERVAL", C.SWEEP_INTERVAL_DEFAULT),
        completed_cache_size=_getenv_int(env, "RLNCAST_COMPLETED_CACHE", C.COMPLETED_CACHE_DEFAULT),
    )

    retry = RetryConfig(
        max_attempts=_getenv_int(env, "RLNCAST_RETRY_MAX_ATTEMPTS", C.RETRY_MAX_ATTEMPTS_DEFAULT),
        base_delay=_getenv_float(env, "RLNCAST_RETRY_BASE_DELAY", C.RETRY_BASE_DELAY_DEFAULT),
        multiplier=_getenv_float(env, "RLNCAST_RETRY_MULTIPLIER", C.RETRY_MULTIPLIER_DEFAULT),
        max_delay=_getenv_float(env, "RLNCAST_RETRY_MAX_DELAY", C.RETRY_MAX_DELAY_DEFAULT),
    )

    publish = PublishConfig(
        max_concurrent=_getenv_int(
            env, "RLNCAST_MAX_CONCURRENT_PUBLISHES", C.MAX_CONCURRENT_PUBLISHES_DEFAULT
        ),
    )

    compression = CompressionConfig(
        enabled=_getenv_bool(env, "RLNCAST_COMPRESSION", False),
        level=_getenv_int(env, "RLNCAST_COMPRESSION_LEVEL", C.COMPRESSION_LEVEL_DEFAULT),
    )

    fmt = _getenv(env, "RLNCAST_LOG_FORMAT")
    log_cfg = LoggingConfig(
        level=(_getenv(env, "RLNCAST_LOG_LEVEL", "INFO") or "INFO").upper(),
        format=fmt.strip().lower() if fmt else None,
    )

    cfg = CastConfig(
        coding=coding,
        decoder=decoder,
        retry=retry,
        publish=publish,
        compression=compression,
        logging=log_cfg,
    )
    cfg.validate()
    return cfg


@lru_cache(maxsize=1)
def get_config() -> CastConfig:
    """
    Load and validate configuration from the process environment (cached).
    Clear the cache in tests via `get_config.cache_clear()` to observe env changes.
    """
    return load_config()


def format_config(cfg: Optional[CastConfig] = None) -> str:
    """Flatten the config into `section.key: value` lines (useful in CLIs)."""
    cfg = cfg or get_config()
    lines: List[str] = []
    for section, values in cfg.to_dict().items():
        for k, v in values.items():  # type: ignore[union-attr]
            lines.append(f"{section}.{k}: {v}")
    return "\n".join(lines)


__all__ = [
    "CodingConfig",
    "DecoderConfig",
    "RetryConfig",
    "PublishConfig",
    "CompressionConfig",
    "LoggingConfig",
    "CastConfig",
    "load_config",
    "get_config",
    "format_config",
]
