from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional, TypeVar

from .streams import is_cancelled

T = TypeVar("T")


async def apply_skip_top(
    source: AsyncIterator[T],
    skip: Optional[int] = None,
    top: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[T]:
    """Skip the first ``skip`` items and yield at most ``top`` of the rest.

    ``None`` means no skip/no limit. Stops pulling from ``source`` once
    ``top`` items were yielded.
    """
    to_skip = max(skip or 0, 0)
    remaining = None if top is None else max(top, 0)
    if remaining == 0:
        return

    async for item in source:
        if is_cancelled(cancel):
            return
        if to_skip > 0:
            to_skip -= 1
            continue
        yield item
        if remaining is not None:
            remaining -= 1
            if remaining == 0:
                return
