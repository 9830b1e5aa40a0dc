"""Bounded concurrent fan-out helpers."""

import asyncio
import itertools
from typing import Awaitable, Callable, Iterable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 8


async def process_queue(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    max_concurrent: int = DEFAULT_CONCURRENCY,
) -> List[R]:
    """Run `fn` over all items with at most `max_concurrent` in flight.

    Results are returned in input order. Every task runs to completion;
    the first exception (if any) is raised once all of them are done.
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def run_with_semaphore(item: T) -> R:
        async with semaphore:
            return await fn(item)

    tasks = [run_with_semaphore(item) for item in items]
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


def cartesian(a: Sequence[T], b: Sequence[R]) -> List[Tuple[T, R]]:
    return list(itertools.product(a, b))
