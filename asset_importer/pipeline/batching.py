import asyncio
import math
from typing import Awaitable, Iterable, Iterator, List, Sequence, TypeVar


T = TypeVar("T")

BATCH_SIZE = 20


def batch_count(length: int, size: int = BATCH_SIZE) -> int:
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return math.ceil(length / size)


def iter_batches(items: Sequence[T], size: int = BATCH_SIZE) -> Iterator[List[T]]:
    """Yield consecutive slices of ``items``; only the last one may be short."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


async def gather_batch(coros: Iterable[Awaitable[T]]) -> List[T]:
    """Run one coroutine per batch item and wait for all of them.

    If any item raises, the remaining items are cancelled before the error
    propagates, so an aborted batch leaves nothing running behind it.
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
