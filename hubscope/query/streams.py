"""Async stream helpers shared by the pipeline stages."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


def is_cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def next_batch(buffer: List[T], item: T, batch_size: int) -> Tuple[List[T], List[T]]:
    """Add ``item`` to ``buffer``.

    Returns ``(new_buffer, emitted)``: ``emitted`` is the full batch once
    ``batch_size`` items have accumulated (and the new buffer is then empty),
    otherwise it is empty.
    """
    buffer = buffer + [item]
    if len(buffer) >= batch_size:
        return [], buffer
    return buffer, []


async def batched(
    source: AsyncIterator[T], batch_size: int, cancel: Optional[asyncio.Event] = None
) -> AsyncIterator[List[T]]:
    """Group ``source`` into lists of ``batch_size`` items (the last may be shorter).

    The next batch is only pulled from ``source`` once the consumer asks for it.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    buffer: List[T] = []
    async for item in source:
        if is_cancelled(cancel):
            return
        buffer, emitted = next_batch(buffer, item, batch_size)
        if emitted:
            yield emitted
            if is_cancelled(cancel):
                return
    if buffer and not is_cancelled(cancel):
        yield buffer


async def iterate(items: Iterable[T]) -> AsyncIterator[T]:
    """Expose an in-memory iterable as an async iterator."""
    for item in items:
        yield item


async def collect(
    source: AsyncIterator[T], cancel: Optional[asyncio.Event] = None
) -> List[T]:
    """Drain ``source`` into a list, stopping early if ``cancel`` is set."""
    result: List[T] = []
    async for item in source:
        if is_cancelled(cancel):
            break
        result.append(item)
    return result
