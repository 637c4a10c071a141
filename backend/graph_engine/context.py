"""
Run-scoped context threaded through a single workflow execution.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .schema import Edge, Node
from .state import ExecutionState


class RunScope(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    SINGLE = "single"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class NodeResult:
    """Outcome of one node invocation, shaped like a persisted node execution."""

    node_id: str
    node_type: str
    status: str
    inputs: Dict[str, Any]
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration: int = 0

    def to_record(self) -> Dict[str, Any]:
        return {
            'node_id': self.node_id,
            'node_type': self.node_type,
            'status': self.status,
            'inputs': self.inputs,
            'outputs': self.outputs,
            'error': self.error,
            'duration': self.duration,
        }


@dataclass
class RunContext:
    workflow_id: str
    scope: RunScope
    nodes: List[Node]
    edges: List[Edge]
    state: ExecutionState
    nodes_by_id: Dict[str, Node] = field(init=False)

    def __post_init__(self):
        self.nodes_by_id = {node.id: node for node in self.nodes}

    @classmethod
    def snapshot(
        cls,
        workflow_id: str,
        scope: RunScope,
        nodes: List[Node],
        edges: List[Edge],
        state: ExecutionState,
    ) -> "RunContext":
        """Copy the graph so edits made while the run is in flight are not observed."""
        return cls(
            workflow_id=workflow_id,
            scope=RunScope(scope),
            nodes=copy.deepcopy(list(nodes)),
            edges=copy.deepcopy(list(edges)),
            state=state,
        )
