"""
Database package for workflow run history.

Provides both synchronous and asynchronous stores:
- RunStore: Synchronous DuckDB operations (HTTP routes, scripts)
- AsyncRunStore: Async operations using thread pools, used by the run
  recorder so persistence never blocks a running workflow

Usage:
    from database import RunStore, AsyncRunStore

    store = RunStore()
    runs = store.list_runs(workflow_id)

    async_store = AsyncRunStore(store)
    run_id = await async_store.create_run(workflow_id, "full", "success", 1200)
"""

from .run_store import RunStore
from .async_run_store import AsyncRunStore

__all__ = ['RunStore', 'AsyncRunStore']
