"""Bounded exponential-backoff retries for remote calls."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from loguru import logger

from app.core.config import Settings

from .errors import (
    ConfigurationError,
    UpstreamError,
    is_block_range_error,
    is_rate_limited,
    status_code_from_exception,
    suggested_block_range,
)

T = TypeVar("T")

_DEFAULT_MAX_ATTEMPTS = 3
_DEFAULT_BASE_DELAY_SECONDS = 1.0
_DEFAULT_RATE_LIMIT_DELAY_SECONDS = 5.0


def _exception_summary(exc: BaseException) -> str:
    parts = [exc.__class__.__name__]
    status = status_code_from_exception(exc)
    if isinstance(status, int):
        parts.append(f"status={status}")
    message = str(exc)
    if message:
        parts.append(message)
    return ": ".join([parts[0], " ".join(parts[1:])]) if len(parts) > 1 else parts[0]


class RetryExecutor:
    """Run fallible operations with exponential backoff and rate-limit floors.

    The delay before retry ``k`` (zero based) is ``base_delay * 2**k``. When the
    failure looks like a rate limit the delay is raised to at least
    ``rate_limit_delay``. Configuration errors are raised immediately and the
    last error is re-raised as :class:`UpstreamError` once attempts run out.
    """

    def __init__(
        self,
        *,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        base_delay: float = _DEFAULT_BASE_DELAY_SECONDS,
        rate_limit_delay: float = _DEFAULT_RATE_LIMIT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.rate_limit_delay = rate_limit_delay
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: Settings, *, sleep: Callable[[float], None] = time.sleep
    ) -> "RetryExecutor":
        return cls(
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay_seconds,
            rate_limit_delay=settings.rate_limit_min_delay_seconds,
            sleep=sleep,
        )

    def delay_for(self, attempt: int, exc: BaseException) -> float:
        delay = self.base_delay * (2**attempt)
        if is_rate_limited(exc):
            delay = max(delay, self.rate_limit_delay)
        return delay

    def execute(self, operation: Callable[[], T], *, description: str = "remote call") -> T:
        last_error: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return operation()
            except ConfigurationError:
                raise
            except Exception as exc:  # noqa: BLE001 - every upstream failure is retried
                last_error = exc
                if is_block_range_error(exc):
                    logger.warning(
                        "{} rejected block range (suggested={}); retrying same range",
                        description,
                        suggested_block_range(exc) or "n/a",
                    )
                if attempt + 1 >= self.max_attempts:
                    break
                delay = self.delay_for(attempt, exc)
                if is_rate_limited(exc):
                    logger.warning(
                        "{} rate limited, waiting {:.1f}s (attempt {}/{})",
                        description,
                        delay,
                        attempt + 1,
                        self.max_attempts,
                    )
                else:
                    logger.warning(
                        "{} failed attempt {}/{}: {}; retrying in {:.1f}s",
                        description,
                        attempt + 1,
                        self.max_attempts,
                        _exception_summary(exc),
                        delay,
                    )
                self._sleep(delay)

        assert last_error is not None
        logger.error(
            "{} failed after {} attempts: {}",
            description,
            self.max_attempts,
            _exception_summary(last_error),
        )
        raise UpstreamError(
            f"{description} failed after {self.max_attempts} attempts",
            attempts=self.max_attempts,
            cause=last_error,
        ) from last_error


__all__ = ["RetryExecutor"]
