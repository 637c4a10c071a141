"""
Async Run Store for non-blocking run history persistence.

Wraps RunStore so the event loop driving a workflow run never waits on a
duckdb write. Every call runs in the shared I/O thread pool.
"""

import logging
from typing import Any, Dict, Optional

from utils.async_helpers import run_in_thread, shutdown_thread_pools
from .run_store import RunStore

logger = logging.getLogger(__name__)


class AsyncRunStore:
    """
    Async wrapper around RunStore methods using thread executors.
    """

    def __init__(self, store: Optional[RunStore] = None):
        self._store = store or RunStore()
        logger.info("Async run store initialized")

    @property
    def store(self) -> RunStore:
        return self._store

    async def create_run(self, workflow_id: str, scope: str, status: str, duration: Optional[int] = None) -> str:
        """
        Create a run record (async).

        Returns:
            run_id of the new run
        """
        return await run_in_thread(self._store.create_run, workflow_id, scope, status, duration)

    async def append_node_execution(self, run_id: str, record: Dict[str, Any]) -> str:
        """
        Append a node execution record to a run (async).

        Returns:
            Id of the new node execution record
        """
        return await run_in_thread(self._store.append_node_execution, run_id, record)

    def shutdown(self):
        """
        Shutdown the thread pool gracefully.

        Call this on application shutdown.
        """
        logger.info("Shutting down async run store...")
        shutdown_thread_pools()
