"""
Detached units of work for the HTTP layer.

Webhook processing and inbound dispatch run after the request has been
answered. Each detached coroutine is held in a module-level set until it
finishes and any exception it raises is logged with its stack trace.
"""

import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)

_inflight: Set[asyncio.Task] = set()


async def _run_logged(coro: Coroutine, label: str) -> None:
    try:
        await coro
    except Exception as e:
        logger.error(f"Background work '{label}' failed: {e}", exc_info=True)
    else:
        logger.debug(f"Background work '{label}' finished")


def create_safe_task(coro: Coroutine, label: str) -> asyncio.Task:
    """Schedule coro on the running loop and keep a reference until it is done."""
    task = asyncio.create_task(_run_logged(coro, label), name=label)
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)
    return task


def get_active_task_count() -> int:
    return len(_inflight)


async def drain_background_tasks(timeout: float = 10.0) -> None:
    """Give in-flight work a bounded chance to finish during shutdown."""
    if not _inflight:
        return
    pending = list(_inflight)
    logger.info(f"Draining {len(pending)} background task(s)")
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    if still_running:
        logger.warning(f"{len(still_running)} background task(s) still running after {timeout}s")
