"""Arena graph model with Kahn-based ordering and cycle detection."""

import heapq
from collections import deque
from typing import Dict, List, Set, Optional
from shared.exceptions import CycleError
from shared.types import Node, Edge, Pipeline


class GraphModel:
    """Read-only structural view over a pipeline's nodes and edges.

    Nodes live in an arena keyed by id; adjacency only records edges whose
    endpoints both exist, so malformed input never breaks traversal. When ids
    are duplicated the first occurrence wins (the validator reports the rest).
    """

    def __init__(self, nodes: List[Node], edges: List[Edge]):
        self.nodes: Dict[str, Node] = {}
        self._position: Dict[str, int] = {}
        for node in nodes:
            if node.id not in self.nodes:
                self._position[node.id] = len(self.nodes)
                self.nodes[node.id] = node

        self.edges: List[Edge] = list(edges)
        self.successors: Dict[str, List[str]] = {nid: [] for nid in self.nodes}
        self.predecessors: Dict[str, List[str]] = {nid: [] for nid in self.nodes}
        for edge in self.edges:
            if edge.source in self.nodes and edge.target in self.nodes:
                self.successors[edge.source].append(edge.target)
                self.predecessors[edge.target].append(edge.source)

    @classmethod
    def from_pipeline(cls, pipeline: Pipeline) -> "GraphModel":
        return cls(pipeline.nodes, pipeline.edges)

    def node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def incoming(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target == node_id and e.source in self.nodes]

    def outgoing(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id and e.target in self.nodes]

    def dangling_edges(self) -> List[Edge]:
        return [e for e in self.edges if e.source not in self.nodes or e.target not in self.nodes]

    def topological_order(self) -> List[str]:
        """Kahn's algorithm with a min-heap so ties resolve by node id"""
        in_degree = {nid: len(preds) for nid, preds in self.predecessors.items()}
        ready = [nid for nid, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)

        order = []
        while ready:
            node_id = heapq.heappop(ready)
            order.append(node_id)
            for child in self.successors[node_id]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    heapq.heappush(ready, child)

        if len(order) != len(self.nodes):
            remaining = {nid for nid, deg in in_degree.items() if deg > 0}
            raise CycleError(self._extract_cycle(remaining))
        return order

    def _extract_cycle(self, remaining: Set[str]) -> List[str]:
        # Every leftover node keeps a leftover predecessor, so walking
        # backwards must revisit a node.
        start = min(remaining, key=self._position.__getitem__)
        path: List[str] = []
        seen: Dict[str, int] = {}
        current = start
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = next(p for p in self.predecessors[current] if p in remaining)

        cycle = list(reversed(path[seen[current]:]))
        first = min(range(len(cycle)), key=lambda i: self._position[cycle[i]])
        return cycle[first:] + cycle[:first]

    def reachable_from(self, node_id: str) -> Set[str]:
        """Forward reachability, including the start node"""
        return self._walk(node_id, self.successors)

    def reaching(self, node_id: str) -> Set[str]:
        """Reverse reachability, including the start node"""
        return self._walk(node_id, self.predecessors)

    def _walk(self, start: str, links: Dict[str, List[str]]) -> Set[str]:
        if start not in self.nodes:
            return set()
        visited = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for neighbor in links[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        return visited

    def components(self) -> List[Set[str]]:
        """Weakly connected components, ordered by their smallest id"""
        unvisited = set(self.nodes)
        result = []
        for node_id in sorted(self.nodes):
            if node_id not in unvisited:
                continue
            component = {node_id}
            queue = deque([node_id])
            while queue:
                current = queue.popleft()
                for neighbor in self.successors[current] + self.predecessors[current]:
                    if neighbor not in component:
                        component.add(neighbor)
                        queue.append(neighbor)
            unvisited -= component
            result.append(component)
        return result
