"""
Build level-by-level execution plans for workflow graphs.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set, Tuple

from .schema import Edge, Node

logger = logging.getLogger(__name__)


class SchedulingError(RuntimeError):
    """Raised when nodes are left over after the level partition completes."""


@dataclass
class ExecutionPlan:
    levels: List[List[str]]
    upstream: Dict[str, List[Edge]]
    downstream: Dict[str, List[Edge]]


class PlanBuilder:
    """Turns a node/edge snapshot into an ordered list of concurrent levels."""

    def build(self, nodes: List[Node], edges: List[Edge]) -> ExecutionPlan:
        node_ids = [node.id for node in nodes]
        known = set(node_ids)

        downstream: Dict[str, List[Edge]] = {node_id: [] for node_id in node_ids}
        upstream: Dict[str, List[Edge]] = {node_id: [] for node_id in node_ids}
        for edge in edges:
            if edge.source not in known or edge.target not in known:
                logger.debug("Ignoring edge %s outside the scheduled node set", edge.id)
                continue
            downstream[edge.source].append(edge)
            upstream[edge.target].append(edge)

        levels = self._levels(node_ids, downstream, upstream)
        return ExecutionPlan(levels=levels, upstream=upstream, downstream=downstream)

    @staticmethod
    def _levels(
        node_ids: List[str],
        downstream: Dict[str, List[Edge]],
        upstream: Dict[str, List[Edge]],
    ) -> List[List[str]]:
        indegree = {node_id: len(upstream[node_id]) for node_id in node_ids}

        levels: List[List[str]] = []
        frontier = [node_id for node_id in node_ids if indegree[node_id] == 0]
        scheduled = 0

        while frontier:
            levels.append(frontier)
            scheduled += len(frontier)
            next_frontier = []
            for node_id in frontier:
                for edge in downstream[node_id]:
                    indegree[edge.target] -= 1
                    if indegree[edge.target] == 0:
                        next_frontier.append(edge.target)
            frontier = next_frontier

        if scheduled != len(node_ids):
            stuck = sorted(node_id for node_id, degree in indegree.items() if degree > 0)
            raise SchedulingError(f"Level partition left nodes unscheduled: {stuck}")
        return levels


def schedule_levels(nodes: List[Node], edges: List[Edge]) -> List[List[str]]:
    return PlanBuilder().build(nodes, edges).levels


def expand_downstream(seed_ids: Iterable[str], edges: Iterable[Edge]) -> Set[str]:
    """Breadth-first walk from ``seed_ids`` along edges; seeds are included."""
    outgoing: Dict[str, List[str]] = {}
    for edge in edges:
        outgoing.setdefault(edge.source, []).append(edge.target)

    reached: Set[str] = set(seed_ids)
    queue = deque(reached)
    while queue:
        node_id = queue.popleft()
        for target_id in outgoing.get(node_id, []):
            if target_id not in reached:
                reached.add(target_id)
                queue.append(target_id)
    return reached


def select_subgraph(
    node_ids: Iterable[str],
    nodes: List[Node],
    edges: List[Edge],
) -> Tuple[List[Node], List[Edge]]:
    """
    Restrict a graph to ``node_ids``.

    Edges survive only when both endpoints are selected, so an input fed
    from outside the selection is simply not wired for the run.
    """
    selected = set(node_ids)
    sub_nodes = [node for node in nodes if node.id in selected]
    sub_edges = [edge for edge in edges if edge.source in selected and edge.target in selected]
    return sub_nodes, sub_edges
