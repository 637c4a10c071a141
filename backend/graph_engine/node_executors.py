"""
Per-node executors: the collaborators that actually run a node's work.

The workflow engine hands each executable node's resolved inputs to an
executor and expects ``{"output": ...}`` back, or ``{"error": ...}`` / a
raised exception on failure.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional

import requests

from config import (
    EXECUTOR_POLL_INTERVAL,
    EXECUTOR_REQUEST_TIMEOUT,
    EXECUTOR_TIMEOUT,
    NODE_EXECUTOR_URL,
)
from utils.async_helpers import run_in_thread
from utils.logging_utils import compact_json

logger = logging.getLogger(__name__)

# Seconds before the deadline after which polling stops swallowing transport errors
_POLL_GRACE_SECONDS = 5


class NodeExecutionError(RuntimeError):
    """Raised when the executor reports a failure for a node."""


class BaseNodeExecutor:
    """Base class for all node executors."""

    async def execute(self, node_id: str, node_type: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class HttpNodeExecutor(BaseNodeExecutor):
    """
    Runs nodes on the remote executor service.

    ``POST {base_url}/execute`` either answers with the output directly or
    with ``{"pending": true, "runId": ...}`` for queued tasks, in which case
    ``GET {base_url}/execute/poll?runId=...`` is polled until the task
    reports COMPLETED or FAILED.

    Blocking ``requests`` calls run in the shared I/O thread pool so the
    other nodes of the level keep progressing.
    """

    def __init__(
        self,
        base_url: str = NODE_EXECUTOR_URL,
        poll_interval: float = EXECUTOR_POLL_INTERVAL,
        timeout: float = EXECUTOR_TIMEOUT,
        request_timeout: float = EXECUTOR_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.request_timeout = request_timeout
        self.session = session or requests.Session()

    async def execute(self, node_id: str, node_type: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("Submitting %s (%s) inputs=%s", node_id, node_type, compact_json(inputs))
        result = await run_in_thread(self._submit, node_id, node_type, inputs)

        if result.get('pending') and result.get('runId'):
            output = await self._poll(result['runId'], node_id)
        else:
            output = result.get('output')
        return {'output': output}

    def _submit(self, node_id: str, node_type: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.post(
            f"{self.base_url}/execute",
            json={'nodeId': node_id, 'nodeType': node_type, 'inputs': inputs},
            timeout=self.request_timeout,
        )
        try:
            payload = response.json() or {}
        except ValueError:
            payload = {}

        if not response.ok or payload.get('error'):
            raise NodeExecutionError(payload.get('error') or "Execution failed")
        return payload

    def _fetch_status(self, run_id: str) -> Dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}/execute/poll",
            params={'runId': run_id},
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        return response.json() or {}

    async def _poll(self, run_id: str, node_id: str) -> Any:
        loop = asyncio.get_running_loop()
        started = loop.time()

        while loop.time() - started < self.timeout:
            await asyncio.sleep(self.poll_interval)

            try:
                payload = await run_in_thread(self._fetch_status, run_id)
            except (requests.RequestException, ValueError) as e:
                if loop.time() - started > self.timeout - _POLL_GRACE_SECONDS:
                    raise NodeExecutionError(str(e)) from e
                logger.warning("Polling task %s for node %s failed, retrying: %s", run_id, node_id, e)
                continue

            status = payload.get('status')
            if status == 'COMPLETED':
                return payload.get('output')
            if status == 'FAILED':
                raise NodeExecutionError(payload.get('error') or "Task failed")

        raise NodeExecutionError(f"Task timed out after {self.timeout / 60:g} minutes")


class LocalNodeExecutor(BaseNodeExecutor):
    """
    Dispatches nodes to in-process handlers registered per node type.

    Handlers receive the resolved inputs and return the node output; they
    may be plain functions or coroutines.
    """

    def __init__(self, handlers: Optional[Dict[str, Callable[[Dict[str, Any]], Any]]] = None):
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = dict(handlers or {})

    def register(self, node_type: str, handler: Callable[[Dict[str, Any]], Any]) -> None:
        self.handlers[node_type] = handler

    async def execute(self, node_id: str, node_type: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        handler = self.handlers.get(node_type)
        if handler is None:
            return {'error': "Unknown node type"}

        if inspect.iscoroutinefunction(handler):
            output = await handler(inputs)
        else:
            output = handler(inputs)
            if inspect.isawaitable(output):
                output = await output
        return {'output': output}
