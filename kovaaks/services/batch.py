"""
Batch execution of many API calls with bounded concurrency.
"""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

from loguru import logger

from kovaaks.services.errors import ParameterError

T = TypeVar("T")


async def batch_calls(
    calls: Sequence[Callable[[], Awaitable[T]]],
    concurrency: int = 3,
    delay: float = 0.2,
    cancel_event: asyncio.Event | None = None,
) -> list[T | None]:
    """
    Run call factories in batches, preserving order in the result list.

    Once ``cancel_event`` is set no further batch is started. A batch that
    is already running is allowed to finish, but its results are discarded.
    Slots that were never filled stay None.

    Args:
        calls: Zero-argument coroutine factories
        concurrency: Calls per batch
        delay: Pause in seconds between batches
        cancel_event: Cancellation signal

    Returns:
        One result per call, in input order
    """
    if concurrency < 1:
        raise ParameterError("concurrency must be at least 1")

    results: list[T | None] = [None] * len(calls)

    for start in range(0, len(calls), concurrency):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Batch API call operation was canceled")
            break

        batch = calls[start : start + concurrency]
        values = await asyncio.gather(*(call() for call in batch))

        if cancel_event is not None and cancel_event.is_set():
            logger.warning(
                f"Batch API call operation was canceled, discarding {len(values)} results"
            )
            break

        results[start : start + len(values)] = values

        if delay > 0 and start + concurrency < len(calls):
            await asyncio.sleep(delay)

    return results
