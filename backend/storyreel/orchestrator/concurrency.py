"""Fan-out/fan-in helper: join all tasks, fail fast on the first error."""

import asyncio
import logging
from typing import Awaitable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references to siblings left running after a fail-fast exit
_background: set[asyncio.Task] = set()


def _discard_result(task: asyncio.Task) -> None:
    _background.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Detached task {task.get_name()} failed after run aborted: {exc}")
    else:
        logger.info(f"Detached task {task.get_name()} finished after run aborted; result discarded")


async def gather_fail_fast(
    aws: Iterable[Awaitable[T]],
    *,
    cancel_pending: bool = False,
    name: str = "task",
) -> list[T]:
    """Run awaitables concurrently and return their results in input order.

    The first exception is re-raised as soon as it happens. Siblings still
    running at that point are cancelled when ``cancel_pending`` is set;
    otherwise they are left to finish in the background and their outcomes
    are only logged.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    for i, task in enumerate(tasks):
        task.set_name(f"{name}-{i}")
    if not tasks:
        return []

    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()
    except BaseException:
        if cancel_pending:
            for task in pending:
                task.cancel()
            logger.info(f"Cancelled {len(pending)} sibling {name}(s)")
        else:
            for task in pending:
                _background.add(task)
                task.add_done_callback(_discard_result)
        raise

    return [task.result() for task in tasks]
