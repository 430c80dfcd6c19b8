"""Walk block intervals in provider-sized sub-ranges."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Sequence

from loguru import logger

from app.domain import RawEvent

from .errors import UpstreamError
from .retry import RetryExecutor

FetchFn = Callable[[int, int], Sequence[RawEvent]]


@dataclass(slots=True)
class ScanResult:
    from_block: int
    to_block: int
    events: list[RawEvent] = field(default_factory=list)
    failed_ranges: list[tuple[int, int]] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when every sub-range was fetched; only complete scans may advance a checkpoint."""

        return not self.failed_ranges


def split_ranges(from_block: int, to_block: int, range_size: int) -> list[tuple[int, int]]:
    """Split ``[from_block, to_block]`` into consecutive closed sub-ranges."""

    if range_size < 1:
        raise ValueError("range_size must be positive")
    ranges: list[tuple[int, int]] = []
    start = from_block
    while start <= to_block:
        end = min(start + range_size - 1, to_block)
        ranges.append((start, end))
        start = end + 1
    return ranges


class RangeScanner:
    def __init__(
        self,
        executor: RetryExecutor,
        *,
        range_size: int = 500,
        concurrency: int = 2,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be positive")
        self.executor = executor
        self.range_size = range_size
        self.concurrency = concurrency

    def _fetch(self, fetch_fn: FetchFn, start: int, end: int) -> list[RawEvent]:
        return list(
            self.executor.execute(
                lambda: fetch_fn(start, end),
                description=f"getLogs[{start},{end}]",
            )
        )

    def scan(self, from_block: int, to_block: int, fetch_fn: FetchFn) -> ScanResult:
        result = ScanResult(from_block=from_block, to_block=to_block)
        ranges = split_ranges(from_block, to_block, self.range_size)
        if not ranges:
            return result

        logger.info(
            "Scanning blocks {}-{} in {} sub-ranges (size={}, concurrency={})",
            from_block,
            to_block,
            len(ranges),
            self.range_size,
            self.concurrency,
        )
        collected: dict[tuple[int, int], list[RawEvent]] = {}
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            futures = {
                pool.submit(self._fetch, fetch_fn, start, end): (start, end)
                for start, end in ranges
            }
            for future in as_completed(futures):
                sub_range = futures[future]
                try:
                    collected[sub_range] = future.result()
                except UpstreamError as exc:
                    logger.error(
                        "Skipping blocks {}-{} after exhausting retries: {}",
                        sub_range[0],
                        sub_range[1],
                        exc.cause or exc,
                    )
                    result.failed_ranges.append(sub_range)

        events: list[RawEvent] = []
        for sub_range in ranges:
            events.extend(collected.get(sub_range, ()))
        events.sort(key=lambda event: event.sort_key)
        result.events = events
        result.failed_ranges.sort()

        logger.info(
            "Scan {}-{} returned {} events ({} failed sub-ranges)",
            from_block,
            to_block,
            len(events),
            len(result.failed_ranges),
        )
        return result


__all__ = ["RangeScanner", "ScanResult", "split_ranges"]
