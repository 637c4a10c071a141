"""
Tests for the level-parallel workflow executor.
"""
import asyncio

import pytest

from conftest import MemoryRunStore, RecordingExecutor, make_edge, make_node
from graph_engine.context import RunScope, RunStatus
from graph_engine.node_executors import BaseNodeExecutor
from graph_engine.planner import SchedulingError
from graph_engine.state import ExecutionState, NodeStatus
from run_recorder import RunRecorder
from workflow_executor import WorkflowExecutor


@pytest.mark.asyncio
async def test_llm_receives_resolved_inputs_before_invocation(recording_executor):
    nodes = [make_node('A', 'textNode', text='hi'), make_node('B', 'llmNode')]
    edges = [make_edge('A', 'B', 'user_message')]

    summary = await WorkflowExecutor(recording_executor).run('wf-1', nodes, edges)

    assert summary.status == RunStatus.SUCCESS
    assert recording_executor.calls == [
        ('B', 'llmNode', {'user_message': 'hi', 'model': 'gemini-2.5-flash'})
    ]
    assert summary.result_for('A').outputs == {'output': 'hi'}
    assert summary.result_for('B').outputs == {'output': 'B-out'}


@pytest.mark.asyncio
async def test_failure_is_contained_and_dependents_still_run():
    nodes = [
        make_node('I', 'imageUploadNode', imageUrl='https://cdn/i.png'),
        make_node('C', 'cropImageNode'),
        make_node('S', 'cropImageNode'),
        make_node('E', 'llmNode'),
    ]
    edges = [
        make_edge('I', 'C', 'image_url'),
        make_edge('I', 'S', 'image_url'),
        make_edge('C', 'E', 'images'),
    ]
    executor = RecordingExecutor(failures={'C': 'crop service unavailable'})

    summary = await WorkflowExecutor(executor).run('wf-1', nodes, edges)

    assert summary.status == RunStatus.FAILED
    failed = summary.result_for('C')
    assert failed.status == 'failed'
    assert failed.error == 'crop service unavailable'
    assert summary.result_for('S').status == 'success'

    # E is still attempted, without a value for C's slot
    _, _, e_inputs = executor.call_for('E')
    assert 'images' not in e_inputs
    assert summary.result_for('E').status == 'success'
    assert summary.state.get('C').status == NodeStatus.FAILED


@pytest.mark.asyncio
async def test_error_payload_marks_node_failed():
    class ErrorExecutor(BaseNodeExecutor):
        async def execute(self, node_id, node_type, inputs):
            return {'error': 'quota exceeded'}

    summary = await WorkflowExecutor(ErrorExecutor()).run('wf-1', [make_node('B', 'llmNode')], [])
    assert summary.status == RunStatus.FAILED
    assert summary.result_for('B').error == 'quota exceeded'


@pytest.mark.asyncio
async def test_exception_without_message_reports_unknown_error():
    class SilentFailure(BaseNodeExecutor):
        async def execute(self, node_id, node_type, inputs):
            raise RuntimeError()

    summary = await WorkflowExecutor(SilentFailure()).run('wf-1', [make_node('B', 'llmNode')], [])
    assert summary.result_for('B').error == 'Unknown error'


@pytest.mark.asyncio
async def test_level_waits_for_previous_level():
    order = []

    class SlowExecutor(BaseNodeExecutor):
        async def execute(self, node_id, node_type, inputs):
            order.append(('start', node_id))
            await asyncio.sleep(0.05 if node_id == 'slow' else 0)
            order.append(('end', node_id))
            return {'output': node_id}

    nodes = [make_node('slow', 'llmNode'), make_node('fast', 'llmNode'), make_node('next', 'llmNode')]
    edges = [make_edge('fast', 'next', 'user_message')]

    await WorkflowExecutor(SlowExecutor()).run('wf-1', nodes, edges)

    assert order.index(('start', 'next')) > order.index(('end', 'slow'))
    assert order[:2] == [('start', 'slow'), ('start', 'fast')]


@pytest.mark.asyncio
async def test_passthrough_nodes_never_reach_the_executor(recording_executor):
    nodes = [
        make_node('A', 'textNode', text='hi'),
        make_node('C', 'imageUploadNode', imageUrl='https://cdn/c.png'),
        make_node('V', 'videoUploadNode'),
    ]
    summary = await WorkflowExecutor(recording_executor).run('wf-1', nodes, [])
    assert recording_executor.calls == []
    assert summary.result_for('V').outputs == {'output': ''}


@pytest.mark.asyncio
async def test_state_is_reset_and_released(recording_executor):
    state = ExecutionState()
    state.mark_success('stale', 'left over')
    executor = WorkflowExecutor(recording_executor)

    await executor.run('wf-1', [make_node('B', 'llmNode')], [], state=state)

    assert executor.state is state
    assert 'stale' not in state.nodes
    assert not executor.is_running
    assert state.get('B').status == NodeStatus.SUCCESS


@pytest.mark.asyncio
async def test_cyclic_graph_raises_scheduling_error(recording_executor):
    nodes = [make_node('A', 'llmNode'), make_node('B', 'llmNode')]
    edges = [make_edge('A', 'B', 'user_message'), make_edge('B', 'A', 'user_message')]
    executor = WorkflowExecutor(recording_executor)

    with pytest.raises(SchedulingError):
        await executor.run('wf-1', nodes, edges)
    assert not executor.is_running


@pytest.mark.asyncio
async def test_run_single_node_uses_current_upstream_state():
    nodes = [make_node('B', 'llmNode'), make_node('E', 'llmNode')]
    edges = [make_edge('B', 'E', 'user_message')]
    executor = RecordingExecutor()
    workflow = WorkflowExecutor(executor)

    summary = await workflow.run_single_node('wf-1', 'E', nodes, edges)

    assert summary.scope == RunScope.SINGLE
    assert [call[0] for call in executor.calls] == ['E']
    assert 'user_message' not in executor.calls[0][2]


@pytest.mark.asyncio
async def test_run_single_node_unknown_id_returns_none(recording_executor):
    assert await WorkflowExecutor(recording_executor).run_single_node('wf-1', 'ghost', [], []) is None


@pytest.mark.asyncio
async def test_run_selected_with_downstream():
    nodes = [make_node(n, 'llmNode') for n in ('A', 'B', 'C', 'D')]
    edges = [
        make_edge('A', 'B', 'user_message'),
        make_edge('B', 'C', 'user_message'),
        make_edge('A', 'D', 'user_message'),
    ]
    executor = RecordingExecutor()

    summary = await WorkflowExecutor(executor).run_selected(
        'wf-1', ['B'], nodes, edges, include_downstream=True
    )

    assert summary.scope == RunScope.PARTIAL
    assert [call[0] for call in executor.calls] == ['B', 'C']
    # A is outside the selection, so B runs without its wired input
    assert 'user_message' not in executor.call_for('B')[2]
    assert executor.call_for('C')[2]['user_message'] == 'B-out'


@pytest.mark.asyncio
async def test_finished_run_is_recorded(recording_executor):
    store = MemoryRunStore()
    recorder = RunRecorder(store)
    nodes = [make_node('A', 'textNode', text='hi'), make_node('B', 'llmNode')]
    edges = [make_edge('A', 'B', 'user_message')]

    summary = await WorkflowExecutor(recording_executor, recorder).run('wf-1', nodes, edges)
    await recorder.drain()

    assert list(store.runs.values()) == [
        {'workflow_id': 'wf-1', 'scope': 'full', 'status': 'success', 'duration': summary.duration}
    ]
    assert sorted(record['node_id'] for _, record in store.executions) == ['A', 'B']


@pytest.mark.asyncio
async def test_recording_failure_does_not_change_run_status(recording_executor):
    recorder = RunRecorder(MemoryRunStore(fail_create=True))
    summary = await WorkflowExecutor(recording_executor, recorder).run(
        'wf-1', [make_node('B', 'llmNode')], []
    )
    await recorder.drain()

    assert summary.status == RunStatus.SUCCESS
    assert recorder.get_stats()['errors'] == 1
