"""
Thread offloading for blocking calls.

Both the Stripe SDK and SQLModel sessions are synchronous. The poller and
the billing endpoints run them through ``run_sync()`` so a slow Stripe
page or a busy SQLite writer never stalls the event loop.
"""

import asyncio
import logging
import time
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SLOW_CALL_MS = 5_000


def _describe(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


async def run_sync(func: Callable[..., T], *args: Any, timeout: float = 30, **kwargs: Any) -> T:
    """
    Await ``func(*args, **kwargs)`` on a worker thread.

    Raises ``TimeoutError`` once ``timeout`` seconds pass; the worker thread
    itself cannot be interrupted and finishes in the background. Any other
    exception raised by ``func`` propagates unchanged.
    """
    started = time.perf_counter()
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=timeout)
    except asyncio.TimeoutError:
        raise TimeoutError(f"{_describe(func)} did not finish within {timeout}s") from None
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms >= SLOW_CALL_MS:
            logger.warning("Slow blocking call %s took %.0fms", _describe(func), elapsed_ms)
        else:
            logger.debug("run_sync %s took %.2fms", _describe(func), elapsed_ms)
