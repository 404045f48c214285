"""
Thread offloading for blocking calls made from the event loop.

The worker loop and the request handlers reach SQLAlchemy, the local
filesystem and Cloud Storage through run_sync().

A deadline only stops the *wait*: the thread itself cannot be cancelled
and runs to completion, committing whatever it was about to commit. Calls
that change job or ticket state (queue claims and transitions) therefore
pass ``timeout=None``; a bounded wait on them could return TimeoutError
while the database row ends up claimed by nobody.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 30.0


def _callable_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", repr(func))


async def run_sync(
    func: Callable[..., T], *args: Any, timeout: Optional[float] = DEFAULT_TIMEOUT_S
) -> T:
    """Await ``func(*args)`` on the default executor.

    Raises TimeoutError once ``timeout`` seconds pass; the abandoned thread
    keeps running and is logged as ``run_sync_abandoned``. Exceptions from
    ``func`` propagate unchanged.
    """
    started = time.perf_counter()
    call = asyncio.to_thread(func, *args)

    if timeout is None:
        result = await call
    else:
        try:
            result = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            name = _callable_name(func)
            logger.warning("run_sync_abandoned", extra={"call": name, "limit_s": timeout})
            raise TimeoutError(f"{name} gave no result within {timeout:g}s")

    logger.debug(
        "run_sync %s took %.2fms", _callable_name(func), (time.perf_counter() - started) * 1000
    )
    return result
