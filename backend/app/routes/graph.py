"""
Graph routes: edit-time connection checks, scheduling and workflow execution.
"""
import asyncio
import threading
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from flask import Blueprint

from config import EXECUTION_HISTORY_LIMIT
from graph_engine.node_executors import BaseNodeExecutor
from graph_engine.planner import PlanBuilder, SchedulingError
from graph_engine.schema import Edge
from graph_engine.validator import connection_error, has_cycle
from run_recorder import RunRecorder
from workflow_executor import RunSummary, WorkflowExecutor
from app.utils.route_decorators import RequestConflict, ResourceNotFound, handle_route_errors
from app.utils.request_validators import (
    RequestField,
    extract_graph,
    extract_json_fields,
    is_dict,
    is_list,
    non_empty_list,
    one_of,
    to_bool,
)

logger = logging.getLogger(__name__)

EXECUTION_MODES = ('full', 'selected', 'single')


@dataclass
class ExecutionHandle:
    """One background workflow execution started over HTTP."""
    execution_id: str
    workflow_id: str
    executor: WorkflowExecutor
    thread: Optional[threading.Thread] = None
    summary: Optional[RunSummary] = None
    error: Optional[str] = None
    done: threading.Event = field(default_factory=threading.Event)

    def status(self) -> str:
        if not self.done.is_set():
            return 'running'
        if self.error is not None:
            return 'failed'
        return self.summary.status.value if self.summary else 'success'

    def to_dict(self) -> Dict:
        snapshot = self.executor.state.snapshot()
        snapshot.update({
            'execution_id': self.execution_id,
            'workflow_id': self.workflow_id,
            'status': self.status(),
            'error': self.error,
        })
        return snapshot


class ExecutionRegistry:
    """
    Tracks background executions and enforces one in-flight run per workflow.

    Finished executions stay queryable until more than ``max_finished`` of
    them have accumulated; the oldest are then dropped.
    """

    def __init__(self, max_finished: int = EXECUTION_HISTORY_LIMIT):
        self.max_finished = max(0, max_finished)
        self._lock = threading.Lock()
        self.executions: Dict[str, ExecutionHandle] = {}
        self._active_by_workflow: Dict[str, str] = {}
        self._finished: Deque[str] = deque()

    def claim(self, workflow_id: str, executor: WorkflowExecutor) -> ExecutionHandle:
        with self._lock:
            if workflow_id in self._active_by_workflow:
                raise RequestConflict(f"Workflow {workflow_id} is already running")
            handle = ExecutionHandle(str(uuid.uuid4()), workflow_id, executor)
            self.executions[handle.execution_id] = handle
            self._active_by_workflow[workflow_id] = handle.execution_id
            return handle

    def release(self, handle: ExecutionHandle) -> None:
        with self._lock:
            if self._active_by_workflow.get(handle.workflow_id) == handle.execution_id:
                del self._active_by_workflow[handle.workflow_id]
            self._finished.append(handle.execution_id)
            while len(self._finished) > self.max_finished:
                evicted = self._finished.popleft()
                self.executions.pop(evicted, None)
                logger.debug(f"Evicted finished execution {evicted}")
        handle.done.set()

    def get(self, execution_id: str) -> Optional[ExecutionHandle]:
        with self._lock:
            return self.executions.get(execution_id)


def init_routes(node_executor: BaseNodeExecutor, async_run_store, registry: ExecutionRegistry):
    """Initialize routes with dependencies."""
    bp = Blueprint('graph', __name__)

    @bp.route('/graph/validate-connection', methods=['POST'])
    @handle_route_errors("validating connection")
    def validate_connection():
        """Check whether a proposed edge may be added to the graph."""
        nodes, edges = extract_graph()
        data = extract_json_fields(
            RequestField('connection', required=True, validator=is_dict),
        )
        candidate = Edge.from_dict(data['connection'])

        error = connection_error(candidate, nodes)
        if error is None and has_cycle(nodes, edges, candidate):
            return {"valid": False, "reason": "cycle", "message": "Connection would create a cycle"}
        if error is not None:
            return {"valid": False, "reason": error.reason, "message": str(error)}
        return {"valid": True, "reason": None, "message": None}

    @bp.route('/graph/schedule', methods=['POST'])
    @handle_route_errors("scheduling graph")
    def schedule_graph():
        """Partition the graph into parallel execution levels with each node's neighbours."""
        nodes, edges = extract_graph()
        try:
            plan = PlanBuilder().build(nodes, edges)
        except SchedulingError as e:
            raise ValueError(str(e)) from e
        return {
            "levels": plan.levels,
            "dependencies": {node_id: [e.source for e in incoming] for node_id, incoming in plan.upstream.items()},
            "dependents": {node_id: [e.target for e in outgoing] for node_id, outgoing in plan.downstream.items()},
        }

    @bp.route('/graph/execute', methods=['POST'])
    @handle_route_errors("executing graph")
    def execute_graph():
        """Start a workflow run in the background."""
        nodes, edges = extract_graph()
        data = extract_json_fields(
            RequestField('workflow_id', required=True, aliases=('workflowId',)),
            RequestField('mode', default='full', validator=one_of(*EXECUTION_MODES)),
            RequestField('node_id', aliases=('nodeId',)),
            RequestField('selected_ids', default=[], aliases=('selectedIds',), validator=is_list),
            RequestField('include_downstream', default=False, aliases=('includeDownstream',),
                         transform=to_bool),
        )
        workflow_id = data['workflow_id']
        mode = data['mode']
        node_ids = {node.id for node in nodes}

        if mode == 'single' and data['node_id'] not in node_ids:
            raise ValueError(f"Unknown node: {data['node_id']}")
        if mode == 'selected':
            if not non_empty_list(data['selected_ids']):
                raise ValueError("selected_ids required")
            unknown = [node_id for node_id in data['selected_ids'] if node_id not in node_ids]
            if unknown:
                raise ValueError(f"Unknown nodes: {', '.join(unknown)}")

        executor = WorkflowExecutor(node_executor)
        handle = registry.claim(workflow_id, executor)

        async def run_and_record():
            # The recorder's tasks live on this thread's loop
            executor.recorder = RunRecorder(async_run_store)
            try:
                if mode == 'single':
                    return await executor.run_single_node(workflow_id, data['node_id'], nodes, edges)
                if mode == 'selected':
                    return await executor.run_selected(
                        workflow_id, data['selected_ids'], nodes, edges,
                        include_downstream=data['include_downstream'],
                    )
                return await executor.run(workflow_id, nodes, edges)
            finally:
                await executor.recorder.drain()

        def run_executor():
            try:
                handle.summary = asyncio.run(run_and_record())
            except Exception as e:
                logger.exception(f"Execution {handle.execution_id} crashed: {e}")
                handle.error = str(e) or "Unknown error"
            finally:
                registry.release(handle)

        handle.thread = threading.Thread(target=run_executor, daemon=True)
        handle.thread.start()

        logger.info(f"Started execution {handle.execution_id} ({mode}) for workflow {workflow_id}")

        return {
            "success": True,
            "execution_id": handle.execution_id,
            "message": "Workflow execution started"
        }

    @bp.route('/graph/status/<execution_id>', methods=['GET'])
    @handle_route_errors("getting execution status")
    def get_execution_status(execution_id):
        """Live per-node status of a background execution."""
        handle = registry.get(execution_id)
        if handle is None:
            raise ResourceNotFound("Execution not found")
        return handle.to_dict()

    return bp
