"""
Async utility functions for concurrent operations.

Blocking calls (duckdb writes, HTTP requests to the node executor service)
run in a shared thread pool so the event loop driving a workflow run keeps
scheduling sibling nodes while one of them waits on I/O.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Any

from config import IO_POOL_SIZE

logger = logging.getLogger(__name__)

_io_thread_pool = None


def get_io_thread_pool() -> ThreadPoolExecutor:
    """
    Get or create the global I/O thread pool.

    Returns:
        ThreadPoolExecutor configured for blocking I/O
    """
    global _io_thread_pool
    if _io_thread_pool is None:
        _io_thread_pool = ThreadPoolExecutor(
            max_workers=IO_POOL_SIZE,
            thread_name_prefix="io_worker"
        )
        logger.info("Initialized I/O thread pool with %d workers", IO_POOL_SIZE)
    return _io_thread_pool


async def run_in_thread(func: Callable, *args, **kwargs) -> Any:
    """
    Run a blocking function in the I/O thread pool.

    Args:
        func: Blocking function to execute
        *args: Positional arguments for the function
        **kwargs: Keyword arguments for the function

    Returns:
        Result from the function execution
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        get_io_thread_pool(),
        lambda: func(*args, **kwargs)
    )


async def gather_with_concurrency(n: int, *tasks):
    """
    Run multiple async tasks with a concurrency limit.

    Args:
        n: Maximum number of concurrent tasks
        *tasks: Async tasks/coroutines to execute

    Returns:
        List of results in the same order as input tasks
    """
    semaphore = asyncio.Semaphore(n)

    async def sem_task(task):
        async with semaphore:
            return await task

    return await asyncio.gather(*(sem_task(task) for task in tasks))


def shutdown_thread_pools():
    """
    Shutdown all thread pools gracefully.

    Should be called on application shutdown.
    """
    global _io_thread_pool
    if _io_thread_pool:
        logger.info("Shutting down I/O thread pool...")
        _io_thread_pool.shutdown(wait=True)
        _io_thread_pool = None
