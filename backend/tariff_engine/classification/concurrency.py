"""Bounded fan-out helpers for remote lookups.

Results keep input order through indexed slots; a failing task is recorded
in its slot and never cancels its siblings.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Outcome(Generic[T]):
    item: Any
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def bounded_gather(
    items: Sequence,
    worker: Callable[[Any], Awaitable[R]],
    limit: int,
) -> list[Outcome[R]]:
    """Run worker over items with at most `limit` in flight."""
    if not items:
        return []

    results: list[Outcome[R] | None] = [None] * len(items)
    queue: asyncio.Queue = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    async def drain() -> None:
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[index] = Outcome(item=item, value=await worker(item))
            except Exception as e:
                results[index] = Outcome(item=item, error=e)

    await asyncio.gather(*(drain() for _ in range(max(1, min(limit, len(items))))))
    return results  # type: ignore[return-value]


async def windowed(
    items: Sequence,
    worker: Callable[[Any], Awaitable[R]],
    size: int,
    delay_seconds: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[Outcome[R]]:
    """Process items in fixed windows of `size`, pausing between windows."""
    outcomes: list[Outcome[R]] = []
    size = max(1, size)
    for start in range(0, len(items), size):
        if start and delay_seconds > 0:
            await sleep(delay_seconds)
        outcomes.extend(await bounded_gather(items[start:start + size], worker, size))
    return outcomes
