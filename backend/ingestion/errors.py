"""Exception taxonomy shared by the ingestion layer."""

from __future__ import annotations

import re


class IndexerError(Exception):
    """Base class for indexing failures."""


class ConfigurationError(IndexerError):
    """Raised when required configuration (credentials, addresses) is missing or invalid."""


class UpstreamError(IndexerError):
    """Raised when a remote call keeps failing after every retry attempt."""

    def __init__(self, message: str, *, attempts: int, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


class MalformedEventError(IndexerError):
    """Raised when an event payload lacks or mistypes an expected field."""


_RATE_LIMIT_MARKERS = (
    "too many requests",
    "rate limit",
    "rate-limit",
    "ratelimit",
    "compute units per second",
    "exceeded its throughput",
)
_RANGE_MARKERS = (
    "block range",
    "range is too large",
    "exceed maximum block range",
    "log response size exceeded",
    "query returned more than",
    "eth_getlogs requests with up to",
)
_SUGGESTED_HEX_RANGE = re.compile(r"\[\s*(0x[0-9a-fA-F]+)\s*,\s*(0x[0-9a-fA-F]+)\s*\]")
_SUGGESTED_BLOCK_SPAN = re.compile(r"up to a (\d+) block range", re.IGNORECASE)


def status_code_from_exception(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def rpc_error_code(exc: BaseException) -> int | None:
    """Return the JSON-RPC error code carried by ``exc`` if any."""

    for candidate in exc.args[:1]:
        if isinstance(candidate, dict) and isinstance(candidate.get("code"), int):
            return candidate["code"]
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
        if isinstance(error, dict) and isinstance(error.get("code"), int):
            return error["code"]
    return None


def is_rate_limited(exc: BaseException) -> bool:
    if status_code_from_exception(exc) == 429:
        return True
    if rpc_error_code(exc) == -32005 and not is_block_range_error(exc):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def is_block_range_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _RANGE_MARKERS)


def suggested_block_range(exc: BaseException) -> str | None:
    """Extract the range a provider suggests in a block-range rejection."""

    message = str(exc)
    match = _SUGGESTED_HEX_RANGE.search(message)
    if match:
        start, end = (int(value, 16) for value in match.groups())
        return f"[{start}, {end}]"
    match = _SUGGESTED_BLOCK_SPAN.search(message)
    if match:
        return f"{match.group(1)} blocks"
    return None


__all__ = [
    "ConfigurationError",
    "IndexerError",
    "MalformedEventError",
    "UpstreamError",
    "is_block_range_error",
    "is_rate_limited",
    "rpc_error_code",
    "status_code_from_exception",
    "suggested_block_range",
]
