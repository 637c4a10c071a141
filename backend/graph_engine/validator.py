"""
Edit-time connection checks: handle type compatibility and acyclicity.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .constants import Handle
from .schema import NODE_SCHEMAS, DataType, Edge, GraphValidationError, Node, NodeSchema

logger = logging.getLogger(__name__)


class ConnectionRejected(GraphValidationError):
    """Raised when a proposed edge may not be inserted into the graph."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


def _is_compatible(source: DataType, target: DataType) -> bool:
    if DataType.ANY in (source, target):
        return True
    return source == target


def _handle_kind(schema: Optional[NodeSchema], handle: str, outputs: bool) -> Optional[DataType]:
    if schema is None:
        return None
    ports = schema.outputs if outputs else schema.inputs
    return ports.get(handle)


def connection_error(
    candidate: Edge,
    nodes: Iterable[Node],
    schemas: Optional[Dict[str, NodeSchema]] = None,
) -> Optional[ConnectionRejected]:
    """Return why ``candidate`` fails the type check, or None when it passes."""
    schemas = schemas or NODE_SCHEMAS
    nodes_by_id = {node.id: node for node in nodes}
    source = nodes_by_id.get(candidate.source)
    target = nodes_by_id.get(candidate.target)

    if source is None or target is None:
        missing = candidate.source if source is None else candidate.target
        return ConnectionRejected('unknown_node', f"Connection references unknown node: {missing}")

    if source.id == target.id:
        return ConnectionRejected('self_loop', f"Node {source.id} cannot connect to itself")

    source_handle = candidate.source_handle or Handle.OUTPUT
    target_handle = candidate.target_handle or Handle.INPUT
    source_kind = _handle_kind(schemas.get(source.type), source_handle, outputs=True)
    target_kind = _handle_kind(schemas.get(target.type), target_handle, outputs=False)

    # Undeclared handles (or unknown node types) are assumed compatible
    if source_kind is None or target_kind is None:
        return None

    if not _is_compatible(source_kind, target_kind):
        message = (
            f"Type mismatch: {source.type} outputs \"{source_kind.value}\" "
            f"but {target_handle} accepts \"{target_kind.value}\""
        )
        logger.warning(message)
        return ConnectionRejected('type_mismatch', message)

    return None


def validate_connection(
    candidate: Edge,
    nodes: Iterable[Node],
    schemas: Optional[Dict[str, NodeSchema]] = None,
) -> bool:
    return connection_error(candidate, nodes, schemas) is None


def has_cycle(nodes: Iterable[Node], edges: Iterable[Edge], candidate: Optional[Edge] = None) -> bool:
    """
    Check whether the edge set, plus ``candidate``, contains a directed cycle.

    Depth-first search rooted at every node so disconnected components are
    covered. Only an edge back into the current DFS path counts: two paths
    converging on a shared descendant (a diamond) are fine. The walk uses
    an explicit stack instead of recursion.
    """
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
    all_edges = list(edges)
    if candidate is not None:
        all_edges.append(candidate)
    for edge in all_edges:
        adjacency.setdefault(edge.source, []).append(edge.target)
        adjacency.setdefault(edge.target, [])

    finished = set()
    on_path = set()

    for root in adjacency:
        if root in finished:
            continue
        on_path.add(root)
        stack = [(root, iter(adjacency[root]))]
        while stack:
            node_id, neighbours = stack[-1]
            advanced = False
            for neighbour in neighbours:
                if neighbour in on_path:
                    return True
                if neighbour not in finished:
                    on_path.add(neighbour)
                    stack.append((neighbour, iter(adjacency[neighbour])))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                on_path.discard(node_id)
                finished.add(node_id)

    return False


def check_connection(candidate: Edge, nodes: List[Node], edges: List[Edge]) -> None:
    """
    Run both edit-time checks, raising ConnectionRejected on the first failure.

    Callers insert the edge only when this returns.
    """
    error = connection_error(candidate, nodes)
    if error is not None:
        raise error
    if has_cycle(nodes, edges, candidate):
        raise ConnectionRejected(
            'cycle',
            f"Connecting {candidate.source} -> {candidate.target} would create a cycle"
        )
