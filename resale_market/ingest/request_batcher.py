"""Staggered, bounded-concurrency execution of marketplace calls.

Work units are split into batches of ``batch_size``. Inside a batch, member
``i`` starts ``i * interval`` seconds after the batch begins so requests
leave in a steady stream, and every member runs to completion regardless of
how its siblings fare.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchResult(Generic[T]):
    """Outcome of one unit in a batch."""

    item: T
    success: bool
    value: Any = None
    error: Optional[BaseException] = None


class RequestBatcher:
    """Runs an async callable over items in staggered batches."""

    def __init__(self, batch_size: int = 5, interval: float = 1.1):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.interval = max(0.0, interval)

    def batches(self, items: list[T]) -> list[list[T]]:
        return [items[i:i + self.batch_size] for i in range(0, len(items), self.batch_size)]

    async def run_batch(
        self,
        batch: list[T],
        func: Callable[[T], Awaitable[Any]],
    ) -> list[BatchResult[T]]:
        """Execute one batch; exceptions are captured per item, never raised."""

        async def staggered(index: int, item: T):
            if index and self.interval:
                await asyncio.sleep(index * self.interval)
            return await func(item)

        outcomes = await asyncio.gather(
            *(staggered(i, item) for i, item in enumerate(batch)),
            return_exceptions=True,
        )

        results = []
        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                results.append(BatchResult(item=item, success=False, error=outcome))
            else:
                results.append(BatchResult(item=item, success=True, value=outcome))
        return results

    def estimated_batch_seconds(self, size: Optional[int] = None) -> float:
        """Lower bound on how long a batch of ``size`` members takes to issue."""
        size = self.batch_size if size is None else size
        return max(0, size - 1) * self.interval + self.interval
