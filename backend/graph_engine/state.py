"""
Execution state tracking for workflow runs.
"""

import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class NodeStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class NodeRunState:
    status: NodeStatus = NodeStatus.IDLE
    output: Any = None
    error: Optional[str] = None
    start_time: Optional[int] = None
    duration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload['status'] = self.status.value
        return payload


class ExecutionState:
    """
    Per-run status map shared by the coordinator, the input resolver and
    whoever renders live progress.

    One instance belongs to one run at a time. The coordinator is the only
    writer; ``reset()`` at the start of a run returns every node to idle.
    Timestamps and durations are milliseconds. The run thread writes while
    status requests read from other threads, so every access holds _lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.nodes: Dict[str, NodeRunState] = {}
        self.is_running = False
        self.start_time: Optional[int] = None

    def reset(self) -> None:
        with self._lock:
            self.nodes = {}
            self.start_time = None

    def get(self, node_id: str) -> NodeRunState:
        with self._lock:
            return self.nodes.get(node_id) or NodeRunState()

    def output_of(self, node_id: str) -> Any:
        with self._lock:
            entry = self.nodes.get(node_id)
            return entry.output if entry else None

    def mark_running(self, node_id: str) -> NodeRunState:
        entry = NodeRunState(status=NodeStatus.RUNNING, start_time=now_ms())
        with self._lock:
            self.nodes[node_id] = entry
        return entry

    def mark_success(self, node_id: str, output: Any) -> NodeRunState:
        with self._lock:
            entry = self._finish(node_id, NodeStatus.SUCCESS)
            entry.output = output
        return entry

    def mark_failed(self, node_id: str, error: str) -> NodeRunState:
        with self._lock:
            entry = self._finish(node_id, NodeStatus.FAILED)
            entry.error = error
        return entry

    def _finish(self, node_id: str, status: NodeStatus) -> NodeRunState:
        # Caller holds _lock
        entry = self.nodes.setdefault(node_id, NodeRunState(start_time=now_ms()))
        entry.status = status
        entry.duration = now_ms() - (entry.start_time or now_ms())
        return entry

    def has_failures(self) -> bool:
        with self._lock:
            return any(entry.status == NodeStatus.FAILED for entry in self.nodes.values())

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            entries = list(self.nodes.items())
            return {
                'is_running': self.is_running,
                'start_time': self.start_time,
                'nodes': {node_id: entry.to_dict() for node_id, entry in entries},
            }
