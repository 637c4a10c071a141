"""
Authoritative node/edge set for an editing session.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from .constants import Handle
from .schema import Edge, GraphValidationError, Node, parse_graph
from .validator import check_connection

logger = logging.getLogger(__name__)


class WorkflowGraph:
    """
    Holds the nodes and edges the canvas edits.

    Every mutation keeps two invariants: the graph stays acyclic (edges are
    checked before insertion, never after) and no edge survives the node it
    points at.
    """

    def __init__(self, nodes: Optional[List[Node]] = None, edges: Optional[List[Edge]] = None):
        self.nodes: List[Node] = list(nodes or [])
        self.edges: List[Edge] = list(edges or [])

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "WorkflowGraph":
        nodes, edges = parse_graph(payload)
        return cls(nodes, edges)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [node.to_dict() for node in self.nodes],
            'edges': [edge.to_dict() for edge in self.edges],
        }

    def get_node(self, node_id: str) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def add_node(self, node: Node) -> Node:
        if self.get_node(node.id) is not None:
            raise GraphValidationError(f"Duplicate node id: {node.id}")
        self.nodes.append(node)
        return node

    def update_node(self, node_id: str, **fields) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise KeyError(node_id)
        for name, value in fields.items():
            if not hasattr(node.data, name):
                node.data.extra[name] = value
            else:
                setattr(node.data, name, value)
        return node

    def connect(
        self,
        source: str,
        target: str,
        source_handle: str = Handle.OUTPUT,
        target_handle: str = Handle.INPUT,
    ) -> Edge:
        """
        Insert an edge after both the type check and the cycle check pass.

        Raises ConnectionRejected and leaves the graph untouched otherwise.
        """
        candidate = Edge(
            source=source,
            target=target,
            source_handle=source_handle or Handle.OUTPUT,
            target_handle=target_handle or Handle.INPUT,
        )
        check_connection(candidate, self.nodes, self.edges)

        self.edges.append(candidate)
        self.get_node(target).data.connected_handles.add(candidate.target_handle)
        logger.debug(
            "Connected %s.%s -> %s.%s",
            source, candidate.source_handle, target, candidate.target_handle
        )
        return candidate

    def remove_edge(self, edge_id: str) -> Optional[Edge]:
        edge = next((e for e in self.edges if e.id == edge_id), None)
        if edge is None:
            return None
        self.edges.remove(edge)
        self._release_handle(edge.target, edge.target_handle)
        return edge

    def remove_node(self, node_id: str) -> Optional[Node]:
        node = self.get_node(node_id)
        if node is None:
            return None

        self.nodes.remove(node)
        touching = [e for e in self.edges if e.source == node_id or e.target == node_id]
        self.edges = [e for e in self.edges if e.source != node_id and e.target != node_id]
        for edge in touching:
            if edge.target != node_id:
                self._release_handle(edge.target, edge.target_handle)

        logger.debug("Removed node %s and %d attached edges", node_id, len(touching))
        return node

    def snapshot(self) -> Tuple[List[Node], List[Edge]]:
        """Deep copies for a run; later edits do not leak into it."""
        return copy.deepcopy(self.nodes), copy.deepcopy(self.edges)

    def _release_handle(self, node_id: str, handle: str) -> None:
        node = self.get_node(node_id)
        if node is None:
            return
        still_wired = any(e.target == node_id and e.target_handle == handle for e in self.edges)
        if not still_wired:
            node.data.connected_handles.discard(handle)
