"""
SNAPSHOT INDEX - Per-Call Lookup Structures for One Graph Snapshot

Built once per validation or resolution call and discarded afterwards; the
core never keeps it between calls.

Architecture (The Bridge Pattern):
  Python Layer
  - string ids: "smartchat-lx2k9f0a-3kq", "edge-a-b-..."
  - id sets per namespace (node / edge / handle-per-node)
  - reverse adjacency: target id -> [source ids] in edge order

  Bridge Layer (this file)
  - _node_map: Dict[str, int]  (id -> rustworkx index)
  - _inv_map:  Dict[int, str]  (rustworkx index -> id)

  Rust Layer (rustworkx.PyDiGraph)
  - strongly connected components for cycle reporting

Edges may reference ids that no node declares. Those ids still get an
index, so traversal walks through them exactly as the edges describe.

The index doubles as an IdOracle over the snapshot, with `reserve_*`
methods so freshly minted ids count as taken for the rest of the call.
"""
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

import rustworkx as rx

from core.schemas import Edge, Node


class SnapshotIndex:
    """
    Lookup tables and a rustworkx view over one (nodes, edges) snapshot.

    Usage:
        index = SnapshotIndex(nodes, edges)
        index.is_node_id_taken("start-1")       # IdOracle
        index.upstream_node_ids("chat")          # breadth-first, nearest first
        index.cyclic_groups()                    # [["a", "b"], ...]
    """

    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge]):
        self.nodes: List[Node] = list(nodes)
        self.edges: List[Edge] = list(edges)

        self._node_ids: Set[str] = set()
        self._edge_ids: Set[str] = set()
        self._handle_ids: Dict[str, Set[str]] = {}
        self._nodes_by_id: Dict[str, List[Node]] = {}
        self._predecessors: Dict[str, List[str]] = {}

        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=True)
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}

        for node in self.nodes:
            self._node_ids.add(node.id)
            self._nodes_by_id.setdefault(node.id, []).append(node)
            handles = self._handle_ids.setdefault(node.id, set())
            handles.update(h.id for h in node.handles)
            self._ensure_index(node.id)

        for edge in self.edges:
            self._edge_ids.add(edge.id)
            self._predecessors.setdefault(edge.target, []).append(edge.source)
            self._graph.add_edge(
                self._ensure_index(edge.source),
                self._ensure_index(edge.target),
                edge.id,
            )

    def _ensure_index(self, node_id: str) -> int:
        idx = self._node_map.get(node_id)
        if idx is None:
            idx = self._graph.add_node(node_id)
            self._node_map[node_id] = idx
            self._inv_map[idx] = node_id
        return idx

    # =========================================================================
    # ID ORACLE
    # =========================================================================

    def is_node_id_taken(self, node_id: str) -> bool:
        return node_id in self._node_ids

    def is_edge_id_taken(self, edge_id: str) -> bool:
        return edge_id in self._edge_ids

    def is_handle_id_taken(self, node_id: str, handle_id: str) -> bool:
        return handle_id in self._handle_ids.get(node_id, ())

    def reserve_node_id(self, node_id: str) -> None:
        self._node_ids.add(node_id)

    def reserve_edge_id(self, edge_id: str) -> None:
        self._edge_ids.add(edge_id)

    def reserve_handle_id(self, node_id: str, handle_id: str) -> None:
        self._handle_ids.setdefault(node_id, set()).add(handle_id)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes_by_id

    def nodes_with_id(self, node_id: str) -> List[Node]:
        """Every node declaring `node_id`, in snapshot order."""
        return self._nodes_by_id.get(node_id, [])

    def direct_predecessors(self, node_id: str) -> List[str]:
        """Sources of edges into `node_id`, in edge order, repeats kept."""
        return self._predecessors.get(node_id, [])

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    def upstream_node_ids(self, node_id: str) -> List[str]:
        """
        Ids of every node with a directed path into `node_id`.

        Breadth-first over reversed edges starting at the direct
        predecessors. Each id is visited at most once, so cycles and
        diamonds terminate; `node_id` itself is never part of the result,
        even when it sits on a cycle.

        Returns:
            Ids in visitation order (nearest first). Deterministic for a
            fixed snapshot.
        """
        visited: Set[str] = {node_id}
        order: List[str] = []
        queue: deque[str] = deque()

        for source in self.direct_predecessors(node_id):
            if source not in visited:
                visited.add(source)
                order.append(source)
                queue.append(source)

        while queue:
            current = queue.popleft()
            for source in self.direct_predecessors(current):
                if source not in visited:
                    visited.add(source)
                    order.append(source)
                    queue.append(source)

        return order

    def cyclic_groups(self) -> List[List[str]]:
        """
        Groups of ids that lie on a dependency cycle.

        One group per strongly connected component with more than one member,
        plus single ids carrying a self-loop. Members are sorted and groups
        ordered by their first member so the result is stable.
        """
        groups: List[List[str]] = []
        for component in rx.strongly_connected_components(self._graph):
            if len(component) > 1:
                groups.append(sorted(self._inv_map[idx] for idx in component))
            else:
                idx = component[0]
                if self._graph.has_edge(idx, idx):
                    groups.append([self._inv_map[idx]])
        groups.sort(key=lambda group: group[0])
        return groups

    def is_acyclic(self) -> bool:
        return rx.is_directed_acyclic_graph(self._graph)

    @property
    def index_count(self) -> int:
        """Distinct ids in the rustworkx view (declared plus dangling)."""
        return self._graph.num_nodes()

    def get_index(self, node_id: str) -> Optional[int]:
        return self._node_map.get(node_id)
