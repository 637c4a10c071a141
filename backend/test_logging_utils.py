"""
Tests for the one-line log formatter.
"""
import logging

import pytest

from conftest import RecordingExecutor, make_node
from utils.logging_utils import OneLineFormatter, WorkflowContextFilter, compact_json, workflow_log_context
from workflow_executor import WorkflowExecutor


def _record(message):
    return logging.LogRecord('engine', logging.INFO, __file__, 1, message, None, None)


def test_whitespace_is_collapsed():
    formatter = OneLineFormatter(fmt="%(message)s")
    assert formatter.format(_record("Level 0:\n   ['A',\t'B']")) == "Level 0: ['A', 'B']"


def test_long_messages_are_truncated():
    formatter = OneLineFormatter(fmt="%(message)s", max_len=10)
    assert formatter.format(_record("x" * 50)) == "x" * 10 + " …(truncated)"


def test_compact_json_falls_back_for_unserialisable_keys():
    assert compact_json({'images': ['a.png'], 'model': None}) == '{"images":["a.png"],"model":null}'
    assert compact_json({('tuple', 'key'): 1}) == "{('tuple', 'key'): 1}"


def test_records_carry_the_running_workflow_id():
    formatter = OneLineFormatter(fmt="[wf=%(workflow_id)s] %(message)s")
    context_filter = WorkflowContextFilter()

    outside = _record("idle")
    context_filter.filter(outside)
    with workflow_log_context('wf-42'):
        inside = _record("Executing node: llmNode (B)")
        context_filter.filter(inside)

    assert formatter.format(inside) == "[wf=wf-42] Executing node: llmNode (B)"
    assert formatter.format(outside) == "[wf=-] idle"


@pytest.mark.asyncio
async def test_executor_logs_are_tagged_with_their_workflow(caplog):
    caplog.handler.addFilter(WorkflowContextFilter())
    caplog.set_level(logging.INFO, logger='workflow_executor')

    await WorkflowExecutor(RecordingExecutor()).run('wf-7', [make_node('B', 'llmNode')], [])

    executing = [r for r in caplog.records if r.getMessage().startswith("Executing node")]
    assert executing and all(r.workflow_id == 'wf-7' for r in executing)
