"""Async wrapper around filelock.FileLock.

The blocking acquire/release run in a worker thread so plan stores never
stall the event loop while another process holds the plan file.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from src.domain.ports.plan_store_port import StoreError

DEFAULT_LOCK_TIMEOUT_S = 30.0


@asynccontextmanager
async def async_file_lock(
    lock_path: Path, timeout_s: float = DEFAULT_LOCK_TIMEOUT_S
) -> AsyncIterator[None]:
    """Hold an inter-process lock on ``lock_path`` for the block.

    Raises:
        StoreError: If the lock is not acquired within ``timeout_s``.
    """
    # Acquire and release run on different worker threads
    lock = FileLock(lock_path, timeout=timeout_s, thread_local=False)

    try:
        await asyncio.to_thread(lock.acquire)
    except Timeout as e:
        raise StoreError(f"Timed out waiting for lock {lock_path}") from e
    try:
        yield
    finally:
        await asyncio.to_thread(lock.release)
