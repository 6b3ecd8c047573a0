"""
Operation Deadlines
===================

Every suspension point of the session loop is bounded. Blocking work (directory
walks, file reads, tree-sitter parsing) runs in a worker thread so the deadline
can fire while it is still running.
"""

import asyncio
import functools
from typing import Any, Awaitable, Callable, TypeVar

from todoforge.errors import OperationTimeoutError

T = TypeVar("T")

LIST_TODOS_TIMEOUT = 30.0
READ_CONTEXT_TIMEOUT = 10.0
PATTERN_ANALYSIS_TIMEOUT = 5.0
ACTION_EXECUTION_TIMEOUT = 30.0


async def with_timeout(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """
    Await ``awaitable`` for at most ``seconds``.

    Raises:
        OperationTimeoutError: if the deadline passes first
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(operation, seconds) from e


async def run_blocking(func: Callable[..., T], *args: Any, seconds: float, operation: str, **kwargs: Any) -> T:
    """Run a blocking callable in a thread under a deadline."""
    call = functools.partial(func, *args, **kwargs)
    return await with_timeout(asyncio.to_thread(call), seconds, operation)
