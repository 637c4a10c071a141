"""
Run Recorder - best-effort persistence of finished workflow runs.

Writes one run record plus one node-execution record per invoked node.
Recording is a side channel: the run outcome is already decided (and shown)
before anything is written, and a storage failure is logged and counted but
never reported as a run failure.

Example Usage:
    recorder = RunRecorder(AsyncRunStore())

    # Fire-and-forget from inside a run
    recorder.submit(workflow_id, "full", "success", 1234, node_results)

    # Before the event loop goes away
    await recorder.drain()
"""

import asyncio
import inspect
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from config import RECORDER_MAX_CONCURRENCY
from utils.async_helpers import gather_with_concurrency

logger = logging.getLogger(__name__)


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


def _as_record(result: Any) -> Dict[str, Any]:
    if hasattr(result, 'to_record'):
        return result.to_record()
    return dict(result)


class RunRecorder:
    """
    Persists runs through a store exposing ``create_run`` and
    ``append_node_execution`` (sync or async).

    Node executions are appended with bounded concurrency so a wide run does
    not open one storage connection per node at once.
    """

    def __init__(self, store, max_concurrency: int = RECORDER_MAX_CONCURRENCY):
        self.store = store
        self.max_concurrency = max(1, max_concurrency)
        self._pending: Set[asyncio.Task] = set()
        self._stats = {
            'runs_recorded': 0,
            'node_executions_written': 0,
            'errors': 0
        }

        logger.info("Run recorder initialized")

    # ========================================================================
    # Recording
    # ========================================================================

    async def record(
        self,
        workflow_id: str,
        scope: str,
        status: str,
        duration: int,
        node_results: Iterable[Any]
    ) -> Optional[str]:
        """
        Write one run and all of its node executions.

        Args:
            workflow_id: Workflow the run belongs to
            scope: 'full', 'partial' or 'single'
            status: Overall run status
            duration: Total run duration in milliseconds
            node_results: NodeResult objects (or plain record dicts)

        Returns:
            The new run id, or None when the run record could not be created
        """
        records = [_as_record(result) for result in node_results]
        scope = getattr(scope, 'value', scope)
        status = getattr(status, 'value', status)

        try:
            run_id = await _maybe_await(
                self.store.create_run(workflow_id, scope, status, duration)
            )
        except Exception as e:
            logger.exception(f"Failed to save run for workflow {workflow_id}: {e}")
            self._stats['errors'] += 1
            return None

        self._stats['runs_recorded'] += 1
        if not records:
            return run_id

        written = await gather_with_concurrency(
            self.max_concurrency,
            *(self._append(run_id, record) for record in records)
        )
        success_count = sum(1 for ok in written if ok)

        if success_count == len(records):
            logger.info(f"Recorded run {run_id} with {success_count} node executions")
        else:
            logger.warning(
                f"Only saved {success_count}/{len(records)} node executions for run {run_id}"
            )
        return run_id

    async def _append(self, run_id: str, record: Dict[str, Any]) -> bool:
        try:
            await _maybe_await(self.store.append_node_execution(run_id, record))
        except Exception as e:
            logger.exception(
                f"Failed to save node execution {record.get('node_id')} for run {run_id}: {e}"
            )
            self._stats['errors'] += 1
            return False

        self._stats['node_executions_written'] += 1
        return True

    def submit(
        self,
        workflow_id: str,
        scope: str,
        status: str,
        duration: int,
        node_results: List[Any]
    ) -> asyncio.Task:
        """Schedule ``record`` in the background and return the tracking task."""
        task = asyncio.get_running_loop().create_task(
            self.record(workflow_id, scope, status, duration, list(node_results))
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every submitted recording to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ========================================================================
    # Helper Methods
    # ========================================================================

    @property
    def pending(self) -> int:
        return len(self._pending)

    def get_stats(self) -> Dict[str, int]:
        """Get recording statistics."""
        return self._stats.copy()
