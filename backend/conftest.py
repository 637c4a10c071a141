"""
Shared fixtures for the backend test modules.
"""
import os
import tempfile

# Keep the default duckdb file out of the source tree
os.environ.setdefault("WORKFLOW_DATA_DIR", tempfile.mkdtemp(prefix="workflow-tests-"))

import pytest  # noqa: E402

from graph_engine.node_executors import BaseNodeExecutor  # noqa: E402
from graph_engine.schema import Edge, Node  # noqa: E402


def make_node(node_id, node_type, **data):
    return Node.from_dict({'id': node_id, 'type': node_type, 'data': data})


def make_edge(source, target, target_handle='input', source_handle='output'):
    return Edge(source=source, target=target, source_handle=source_handle,
                target_handle=target_handle, id=f"{source}-{target}-{target_handle}")


class RecordingExecutor(BaseNodeExecutor):
    """Answers with a canned output per node and remembers every call."""

    def __init__(self, outputs=None, failures=None):
        self.outputs = outputs or {}
        self.failures = failures or {}
        self.calls = []

    async def execute(self, node_id, node_type, inputs):
        self.calls.append((node_id, node_type, dict(inputs)))
        if node_id in self.failures:
            raise RuntimeError(self.failures[node_id])
        return {'output': self.outputs.get(node_id, f"{node_id}-out")}

    def call_for(self, node_id):
        return next((call for call in self.calls if call[0] == node_id), None)


class MemoryRunStore:
    """Synchronous in-memory store with the RunStore write interface."""

    def __init__(self, fail_create=False, fail_nodes=()):
        self.fail_create = fail_create
        self.fail_nodes = set(fail_nodes)
        self.runs = {}
        self.executions = []

    def create_run(self, workflow_id, scope, status, duration=None):
        if self.fail_create:
            raise RuntimeError("database is locked")
        run_id = f"run-{len(self.runs) + 1}"
        self.runs[run_id] = {'workflow_id': workflow_id, 'scope': scope,
                             'status': status, 'duration': duration}
        return run_id

    def append_node_execution(self, run_id, record):
        if record['node_id'] in self.fail_nodes:
            raise RuntimeError("disk full")
        self.executions.append((run_id, record))
        return f"exec-{len(self.executions)}"


@pytest.fixture
def recording_executor():
    return RecordingExecutor()


@pytest.fixture
def memory_store():
    return MemoryRunStore()
