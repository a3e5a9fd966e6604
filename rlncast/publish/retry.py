"""
rlncast.publish.retry
=====================

Backoff policy for piece sends the transport throttled.

    delay(i) = min(max_delay, base_delay * multiplier ** i)

where i is the zero-based index of the retry (i = 0 is the wait before the
second attempt). A piece gets at most `max_attempts` attempts in total,
including the first. Only transient failures are retried: a ThrottledError is,
a plain TransportError is not.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .. import constants as C
from ..errors import ConfigError, RlncastError, ThrottledError


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts: total send attempts per piece (>= 1)
    base_delay: wait before the first retry, seconds
    multiplier: exponential growth per retry (>= 1)
    max_delay: upper bound for any single wait
    """

    max_attempts: int = C.RETRY_MAX_ATTEMPTS_DEFAULT
    base_delay: float = C.RETRY_BASE_DELAY_DEFAULT
    multiplier: float = C.RETRY_MULTIPLIER_DEFAULT
    max_delay: float = C.RETRY_MAX_DELAY_DEFAULT

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ConfigError("base_delay must be >= 0")
        if self.multiplier < 1.0:
            raise ConfigError("multiplier must be >= 1.0")
        if self.max_delay < 0:
            raise ConfigError("max_delay must be >= 0")

    @classmethod
    def from_config(cls, retry_cfg) -> "RetryPolicy":
        return cls(
            max_attempts=retry_cfg.max_attempts,
            base_delay=retry_cfg.base_delay,
            multiplier=retry_cfg.multiplier,
            max_delay=retry_cfg.max_delay,
        )

    def delay(self, attempt_index: int) -> float:
        i = max(0, int(attempt_index))
        try:
            raw = self.base_delay * (self.multiplier ** i)
        except OverflowError:
            return float(self.max_delay)
        return float(min(self.max_delay, raw))

    def delays(self) -> Iterator[float]:
        """The max_attempts - 1 waits of one fully retried send."""
        for i in range(self.max_attempts - 1):
            yield self.delay(i)

    @staticmethod
    def is_retryable(exc: BaseException) -> bool:
        return isinstance(exc, ThrottledError)

    def should_retry(self, exc: BaseException, attempts_made: int) -> bool:
        return self.is_retryable(exc) and attempts_made < self.max_attempts


@dataclass(frozen=True)
class RetryEvent:
    """Reported to the `on_retry` observer right before a backoff sleep."""

    topic: str
    message_id: bytes
    seq: int
    attempt: int  # attempts made so far (the failed one included)
    delay: float
    error: RlncastError

    @property
    def next_attempt(self) -> int:
        return self.attempt + 1


__all__ = ["RetryPolicy", "RetryEvent"]
