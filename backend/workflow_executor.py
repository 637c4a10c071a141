"""
Workflow Executor - level-parallel execution engine for node workflows.

Architecture:
- PlanBuilder partitions the graph into levels (Kahn's algorithm)
- Nodes inside a level run concurrently; a level starts only after the
  previous one has fully settled, so its inputs can see fresh outputs
- InputResolver builds each node's inputs from edges + static node fields
- A failing node is contained: siblings and later levels still run
- The finished run is handed to the RunRecorder as one run record
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from graph_engine.constants import PASSTHROUGH_FIELDS
from graph_engine.context import NodeResult, RunContext, RunScope, RunStatus
from graph_engine.node_executors import BaseNodeExecutor, NodeExecutionError
from graph_engine.planner import PlanBuilder, expand_downstream, select_subgraph
from graph_engine.resolver import InputResolver
from graph_engine.schema import Edge, Node
from graph_engine.state import ExecutionState, NodeStatus, now_ms
from run_recorder import RunRecorder
from utils.logging_utils import compact_json, workflow_log_context

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    workflow_id: str
    scope: RunScope
    status: RunStatus
    duration: int
    node_results: List[NodeResult] = field(default_factory=list)
    state: Optional[ExecutionState] = None

    def result_for(self, node_id: str) -> Optional[NodeResult]:
        return next((r for r in self.node_results if r.node_id == node_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'workflow_id': self.workflow_id,
            'scope': self.scope.value,
            'status': self.status.value,
            'duration': self.duration,
            'node_results': [r.to_record() for r in self.node_results],
        }


class WorkflowExecutor:
    """
    Drives one workflow run at a time.

    Entry points:
    1. run()             - full (or pre-filtered) graph, level by level
    2. run_single_node() - one node, inputs resolved against the whole graph
    3. run_selected()    - a selection (optionally plus everything downstream)

    ``is_running`` is the only guard against overlapping runs; callers must
    check it before starting another run on the same executor.
    """

    def __init__(self, node_executor: BaseNodeExecutor, recorder: Optional[RunRecorder] = None):
        self.node_executor = node_executor
        self.recorder = recorder
        self.state = ExecutionState()
        self.plan_builder = PlanBuilder()

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    async def run(
        self,
        workflow_id: str,
        nodes: List[Node],
        edges: List[Edge],
        scope: RunScope = RunScope.FULL,
        state: Optional[ExecutionState] = None,
    ) -> RunSummary:
        """
        Execute every node of the graph, level by level.

        Only a corrupted level partition (SchedulingError) escapes; node
        failures are recorded and the run carries on.
        """
        state = self._begin(state)
        ctx = RunContext.snapshot(workflow_id, scope, nodes, edges, state)
        results: List[NodeResult] = []

        with workflow_log_context(workflow_id):
            try:
                plan = self.plan_builder.build(ctx.nodes, ctx.edges)
                logger.info(
                    f"Run of workflow {workflow_id} ({ctx.scope.value}): "
                    f"{len(ctx.nodes)} nodes in {len(plan.levels)} levels"
                )
                resolver = InputResolver(ctx.nodes, ctx.edges, state)

                for index, level in enumerate(plan.levels):
                    logger.debug(f"Level {index}: {level}")
                    await asyncio.gather(
                        *(self._execute_node(ctx, resolver, node_id, results) for node_id in level)
                    )
            finally:
                state.is_running = False

            return self._finish(ctx, results)

    async def run_single_node(
        self,
        workflow_id: str,
        node_id: str,
        nodes: List[Node],
        edges: List[Edge],
        state: Optional[ExecutionState] = None,
    ) -> Optional[RunSummary]:
        """Execute one node; upstream executable nodes are not re-run."""
        if not any(node.id == node_id for node in nodes):
            logger.warning(f"Node {node_id} not found in workflow {workflow_id}; nothing to run")
            return None

        state = self._begin(state)
        ctx = RunContext.snapshot(workflow_id, RunScope.SINGLE, nodes, edges, state)
        results: List[NodeResult] = []

        with workflow_log_context(workflow_id):
            try:
                resolver = InputResolver(ctx.nodes, ctx.edges, state)
                await self._execute_node(ctx, resolver, node_id, results)
            finally:
                state.is_running = False

            return self._finish(ctx, results)

    async def run_selected(
        self,
        workflow_id: str,
        selected_ids: Iterable[str],
        nodes: List[Node],
        edges: List[Edge],
        include_downstream: bool = False,
        state: Optional[ExecutionState] = None,
    ) -> RunSummary:
        """
        Execute a subset of the graph as a partial run.

        Edges crossing the selection boundary are dropped, so a selected node
        fed from an unselected one runs without that input.
        """
        node_ids = set(selected_ids)
        if include_downstream:
            node_ids = expand_downstream(node_ids, edges)

        sub_nodes, sub_edges = select_subgraph(node_ids, nodes, edges)
        return await self.run(workflow_id, sub_nodes, sub_edges, RunScope.PARTIAL, state)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self, state: Optional[ExecutionState]) -> ExecutionState:
        if state is None:
            state = self.state
        else:
            self.state = state
        state.reset()
        state.is_running = True
        state.start_time = now_ms()
        return state

    async def _execute_node(
        self,
        ctx: RunContext,
        resolver: InputResolver,
        node_id: str,
        results: List[NodeResult],
    ) -> NodeResult:
        node = ctx.nodes_by_id[node_id]
        inputs = resolver.resolve(node_id)
        ctx.state.mark_running(node_id)
        logger.info(f"Executing node: {node.type} ({node_id})")
        logger.debug(f"Inputs for {node_id}: {compact_json(inputs)}")

        try:
            output = await self._invoke(node, inputs)
        except Exception as e:
            message = str(e) or "Unknown error"
            entry = ctx.state.mark_failed(node_id, message)
            logger.warning(f"Node {node.type} ({node_id}) failed: {message}")
            result = NodeResult(
                node_id=node_id,
                node_type=node.type,
                status=NodeStatus.FAILED.value,
                inputs=inputs,
                error=message,
                duration=entry.duration,
            )
        else:
            entry = ctx.state.mark_success(node_id, output)
            result = NodeResult(
                node_id=node_id,
                node_type=node.type,
                status=NodeStatus.SUCCESS.value,
                inputs=inputs,
                outputs={'output': output},
                duration=entry.duration,
            )

        results.append(result)
        return result

    async def _invoke(self, node: Node, inputs: Dict[str, Any]) -> Any:
        # Passthrough nodes already hold their value; nothing to run remotely
        field_name = PASSTHROUGH_FIELDS.get(node.type)
        if field_name is not None:
            return inputs.get(field_name) or ""

        response = await self.node_executor.execute(node.id, node.type, inputs)
        if not isinstance(response, dict):
            return response
        if response.get('error'):
            raise NodeExecutionError(str(response['error']))
        return response.get('output')

    def _finish(self, ctx: RunContext, results: List[NodeResult]) -> RunSummary:
        status = RunStatus.FAILED if ctx.state.has_failures() else RunStatus.SUCCESS
        duration = now_ms() - (ctx.state.start_time or now_ms())

        logger.info(
            f"Run of workflow {ctx.workflow_id} finished: {status.value} "
            f"({len(results)} nodes, {duration} ms)"
        )

        if self.recorder is not None:
            self.recorder.submit(ctx.workflow_id, ctx.scope.value, status.value, duration, results)

        return RunSummary(
            workflow_id=ctx.workflow_id,
            scope=ctx.scope,
            status=status,
            duration=duration,
            node_results=results,
            state=ctx.state,
        )
