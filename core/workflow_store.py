"""
WORKFLOW STORE - In-Memory Editing Model

The editor-side owner of a workflow while it is being edited. Every
mutation stamps ids through a WorkflowIdGenerator whose oracle is the store
itself, so ids are free at the moment they are minted.

Usage:
    store = WorkflowStore()

    start = store.create_node(NodeType.START)
    chat = store.create_node(NodeType.SMART_CHAT)
    store.connect(start.id, chat.id)

    report = store.validate()
    store.available_variables(chat.id)

Thread Safety:
    NOT thread-safe. Use external locking if needed for concurrent access.
    (The id counter the generator uses is itself thread-safe.)
"""
import logging
from typing import Dict, Iterable, List, Optional, Union

import msgspec

from core.id_generator import WorkflowIdGenerator
from core.ontology import HandleDirection, HandlePosition, NodeType, default_handle_directions
from core.schemas import Edge, Handle, Node, VariableDescriptor, WorkflowGraph
from core.variables import get_available_variables
from core.workflow_validation import AutoFixResult, ValidationReport, WorkflowValidator
from infrastructure.logger import MutationLog, get_mutation_log


logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class WorkflowGraphError(Exception):
    """Base exception for workflow store operations."""
    pass


class NodeNotFoundError(WorkflowGraphError):
    """Raised when a node id is not in the store."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class EdgeNotFoundError(WorkflowGraphError):
    """Raised when an edge id is not in the store."""
    def __init__(self, edge_id: str):
        self.edge_id = edge_id
        super().__init__(f"Edge not found: {edge_id}")


class HandleNotFoundError(WorkflowGraphError):
    """Raised when a handle id is not on the given node."""
    def __init__(self, node_id: str, handle_id: str):
        self.node_id = node_id
        self.handle_id = handle_id
        super().__init__(f"Handle not found: {handle_id} on node {node_id}")


# =============================================================================
# WORKFLOW STORE
# =============================================================================

class WorkflowStore:
    """
    Mutable workflow being edited.

    Implements the IdOracle protocol over its own contents.
    """

    def __init__(
        self,
        graph: Optional[WorkflowGraph] = None,
        id_generator: Optional[WorkflowIdGenerator] = None,
        mutation_log: Optional[MutationLog] = None,
    ):
        self._nodes: List[Node] = []
        self._edges: List[Edge] = []

        generator = id_generator or WorkflowIdGenerator()
        self.id_generator = generator.with_oracle(self)
        self.validator = WorkflowValidator(self.id_generator)
        self.mutation_log = mutation_log or get_mutation_log()

        if graph is not None:
            self.load(graph)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes)

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    # =========================================================================
    # ID ORACLE
    # =========================================================================

    def is_node_id_taken(self, node_id: str) -> bool:
        return any(n.id == node_id for n in self._nodes)

    def is_edge_id_taken(self, edge_id: str) -> bool:
        return any(e.id == edge_id for e in self._edges)

    def is_handle_id_taken(self, node_id: str, handle_id: str) -> bool:
        node = self._find_node(node_id)
        return node is not None and node.has_handle(handle_id)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    # A loaded snapshot may repeat a node id; the first occurrence is the one
    # looked up, edited and removed, and it owns the edges using that id.

    def _node_position(self, node_id: str) -> Optional[int]:
        for position, node in enumerate(self._nodes):
            if node.id == node_id:
                return position
        return None

    def _find_node(self, node_id: str) -> Optional[Node]:
        position = self._node_position(node_id)
        return None if position is None else self._nodes[position]

    def _replace_node(self, node_id: str, new_node: Node) -> None:
        position = self._node_position(node_id)
        if position is None:
            raise NodeNotFoundError(node_id)
        self._nodes[position] = new_node

    def has_node(self, node_id: str) -> bool:
        return self._find_node(node_id) is not None

    def get_node(self, node_id: str) -> Node:
        """
        Raises:
            NodeNotFoundError: If no node has this id
        """
        node = self._find_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_edge(self, edge_id: str) -> Edge:
        """
        Raises:
            EdgeNotFoundError: If no edge has this id
        """
        for edge in self._edges:
            if edge.id == edge_id:
                return edge
        raise EdgeNotFoundError(edge_id)

    def edges_by_source_handle(self, node_id: str, handle_id: str) -> List[Edge]:
        return [e for e in self._edges if e.source == node_id and e.source_handle == handle_id]

    def edges_by_target_handle(self, node_id: str, handle_id: str) -> List[Edge]:
        return [e for e in self._edges if e.target == node_id and e.target_handle == handle_id]

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def default_handles(self, node_id: str, node_type: Union[NodeType, str]) -> List[Handle]:
        """Fresh handles for a newly placed node: inputs on the left, outputs on the right."""
        handles = []
        for direction in default_handle_directions(node_type):
            position = HandlePosition.RIGHT if direction is HandleDirection.SOURCE else HandlePosition.LEFT
            handles.append(Handle(
                id=self.id_generator.generate_handle_id(node_id, direction),
                direction=direction.value,
                position=position.value,
            ))
        return handles

    def create_node(
        self,
        node_type: Union[NodeType, str],
        name: Optional[str] = None,
        **kwargs,
    ) -> Node:
        """Mint a node of `node_type` with default handles and add it."""
        type_value = node_type.value if isinstance(node_type, NodeType) else node_type
        node_id = self.id_generator.generate_node_id(type_value)
        node = Node(
            id=node_id,
            type=type_value,
            name=name or node_id,
            handles=self.default_handles(node_id, type_value),
            **kwargs,
        )
        return self.add_node(node)

    def add_node(self, node: Node) -> Node:
        """
        Add a node, re-minting any id that would collide.

        An empty or taken node id is replaced; empty or repeated handle ids
        are replaced within the node.

        Returns:
            The node as stored
        """
        node_id = node.id
        if not node_id or self.is_node_id_taken(node_id):
            node_id = self.id_generator.generate_node_id(node.type)

        seen = set()
        handles = []
        for handle in node.handles:
            handle_id = handle.id
            if not handle_id or handle_id in seen:
                handle_id = self._mint_handle_id(node_id, handle.direction, reserved=seen)
            seen.add(handle_id)
            handles.append(msgspec.structs.replace(handle, id=handle_id))

        final = msgspec.structs.replace(node, id=node_id, handles=handles)
        self._nodes.append(final)
        self.mutation_log.log_node_added(final.id, final.type)
        return final

    def _mint_handle_id(self, node_id: str, direction: str, reserved: set) -> str:
        # The node is not stored yet, so handles minted earlier in the same
        # call are only known through `reserved`.
        oracle_handle = self.id_generator.oracle.is_handle_id_taken
        generator = self.id_generator.with_oracle(_ReservedHandles(node_id, reserved, oracle_handle))
        return generator.generate_handle_id(node_id, direction)

    def remove_node(self, node_id: str) -> Node:
        """
        Remove a node and every edge starting or ending at it.

        Edges stay when another node still carries the same id.

        Raises:
            NodeNotFoundError: If no node has this id
        """
        node = self.get_node(node_id)
        del self._nodes[self._node_position(node_id)]

        if self.has_node(node_id):
            self.mutation_log.log_node_removed(node.id, node.type)
            return node

        removed_edges = [e for e in self._edges if node_id in (e.source, e.target)]
        self._edges = [e for e in self._edges if node_id not in (e.source, e.target)]

        for edge in removed_edges:
            self.mutation_log.log_edge_removed(edge.id, edge.source, edge.target)
        self.mutation_log.log_node_removed(node.id, node.type)
        return node

    def rename_node_id(self, node_id: str, new_id: Optional[str]) -> str:
        """
        Change a node's id and rewrite every edge endpoint that used it.

        An empty or taken `new_id` is replaced by a minted id.

        Returns:
            The id actually applied

        Raises:
            NodeNotFoundError: If no node has `node_id`
        """
        node = self.get_node(node_id)

        final_id = new_id
        if not final_id or (final_id != node_id and self.is_node_id_taken(final_id)):
            final_id = self.id_generator.generate_node_id(node.type)
        if final_id == node_id:
            return node_id

        self._replace_node(node_id, msgspec.structs.replace(node, id=final_id))
        self._edges = [
            msgspec.structs.replace(
                e,
                source=final_id if e.source == node_id else e.source,
                target=final_id if e.target == node_id else e.target,
            )
            for e in self._edges
        ]
        self.mutation_log.log_node_renamed(node_id, final_id)
        return final_id

    # =========================================================================
    # HANDLE OPERATIONS
    # =========================================================================

    def add_handle(self, node_id: str, handle: Handle) -> Handle:
        """
        Append a handle to a node, re-minting an empty or taken id.

        Raises:
            NodeNotFoundError: If no node has `node_id`
        """
        node = self.get_node(node_id)

        final = handle
        if not handle.id or node.has_handle(handle.id):
            final = msgspec.structs.replace(
                handle, id=self.id_generator.generate_handle_id(node_id, handle.direction)
            )

        self._replace_node(node_id, msgspec.structs.replace(node, handles=[*node.handles, final]))
        self.mutation_log.log_handle_added(node_id, final.id)
        return final

    def remove_handle(self, node_id: str, handle_id: str) -> None:
        """
        Remove a handle and every edge attached through it.

        Raises:
            NodeNotFoundError: If no node has `node_id`
            HandleNotFoundError: If the node has no such handle
        """
        node = self.get_node(node_id)
        if not node.has_handle(handle_id):
            raise HandleNotFoundError(node_id, handle_id)

        self._replace_node(
            node_id,
            msgspec.structs.replace(node, handles=[h for h in node.handles if h.id != handle_id]),
        )

        def uses_handle(e: Edge) -> bool:
            return (
                (e.source == node_id and e.source_handle == handle_id)
                or (e.target == node_id and e.target_handle == handle_id)
            )

        for edge in [e for e in self._edges if uses_handle(e)]:
            self.mutation_log.log_edge_removed(edge.id, edge.source, edge.target)
        self._edges = [e for e in self._edges if not uses_handle(e)]
        self.mutation_log.log_handle_removed(node_id, handle_id)

    def rename_handle_id(self, node_id: str, handle_id: str, new_id: Optional[str]) -> str:
        """
        Change a handle's id and rewrite the edges attached through it.

        Returns:
            The id actually applied

        Raises:
            NodeNotFoundError: If no node has `node_id`
            HandleNotFoundError: If the node has no such handle
        """
        node = self.get_node(node_id)
        old_handle = node.get_handle(handle_id)
        if old_handle is None:
            raise HandleNotFoundError(node_id, handle_id)

        final_id = new_id
        if not final_id or (final_id != handle_id and node.has_handle(final_id)):
            final_id = self.id_generator.generate_handle_id(node_id, old_handle.direction)
        if final_id == handle_id:
            return handle_id

        handles = [
            msgspec.structs.replace(h, id=final_id) if h.id == handle_id else h
            for h in node.handles
        ]
        self._replace_node(node_id, msgspec.structs.replace(node, handles=handles))

        rewired = []
        for e in self._edges:
            if e.source == node_id and e.source_handle == handle_id:
                e = msgspec.structs.replace(e, source_handle=final_id)
            if e.target == node_id and e.target_handle == handle_id:
                e = msgspec.structs.replace(e, target_handle=final_id)
            rewired.append(e)
        self._edges = rewired

        self.mutation_log.log_handle_renamed(node_id, handle_id, final_id)
        return final_id

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def add_edge(self, edge: Edge) -> Edge:
        """Add an edge, re-minting an empty or taken id. Endpoints are not checked."""
        final = edge
        if not edge.id or self.is_edge_id_taken(edge.id):
            final = msgspec.structs.replace(edge, id=self.id_generator.generate_edge_id(
                edge.source, edge.target, edge.source_handle, edge.target_handle,
            ))

        self._edges.append(final)
        self.mutation_log.log_edge_added(final.id, final.source, final.target)
        return final

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        condition: Optional[str] = None,
    ) -> Edge:
        """
        Create an edge between two stored nodes.

        Without explicit handles the first source handle of `source_id` and
        the first target handle of `target_id` are used, when present.

        Raises:
            NodeNotFoundError: If either endpoint is not stored
        """
        source = self.get_node(source_id)
        target = self.get_node(target_id)

        if source_handle is None:
            source_handle = next((h.id for h in source.handles if h.is_source), None)
        if target_handle is None:
            target_handle = next((h.id for h in target.handles if h.is_target), None)

        edge_id = self.id_generator.generate_edge_id(source_id, target_id, source_handle, target_handle)
        return self.add_edge(Edge(
            id=edge_id,
            source=source_id,
            target=target_id,
            source_handle=source_handle,
            target_handle=target_handle,
            condition=condition,
        ))

    def remove_edge(self, edge_id: str) -> Edge:
        """
        Raises:
            EdgeNotFoundError: If no edge has this id
        """
        edge = self.get_edge(edge_id)
        self._edges = [e for e in self._edges if e.id != edge_id]
        self.mutation_log.log_edge_removed(edge.id, edge.source, edge.target)
        return edge

    # =========================================================================
    # SUBGRAPH DUPLICATION
    # =========================================================================

    def duplicate_nodes(self, node_ids: Iterable[str]) -> Dict[str, str]:
        """
        Copy a selection of nodes together with the edges between them.

        Copies get fresh node and handle ids. Edges whose endpoints are both
        inside the selection are copied and re-wired onto the copies,
        including their handles; edges leaving the selection are not copied.

        Returns:
            Mapping of original node id -> copy id

        Raises:
            NodeNotFoundError: If any id is not stored
        """
        originals = [self.get_node(node_id) for node_id in dict.fromkeys(node_ids)]
        id_map: Dict[str, str] = {}
        handle_maps: Dict[str, Dict[str, str]] = {}

        for original in originals:
            copy_id = self.id_generator.generate_node_id(original.type)
            handle_map: Dict[str, str] = {}
            handles = []
            for handle in original.handles:
                new_handle_id = self._mint_handle_id(copy_id, handle.direction, reserved=set(handle_map.values()))
                handle_map[handle.id] = new_handle_id
                handles.append(msgspec.structs.replace(handle, id=new_handle_id))

            copy = msgspec.structs.replace(original, id=copy_id, handles=handles)
            stored = self.add_node(copy)
            id_map[original.id] = stored.id
            handle_maps[original.id] = handle_map

        for edge in list(self._edges):
            if edge.source not in id_map or edge.target not in id_map:
                continue
            source_handle = handle_maps[edge.source].get(edge.source_handle) if edge.source_handle else None
            target_handle = handle_maps[edge.target].get(edge.target_handle) if edge.target_handle else None
            new_source, new_target = id_map[edge.source], id_map[edge.target]
            self.add_edge(msgspec.structs.replace(
                edge,
                id=self.id_generator.generate_edge_id(new_source, new_target, source_handle, target_handle),
                source=new_source,
                target=new_target,
                source_handle=source_handle,
                target_handle=target_handle,
            ))

        logger.debug("Duplicated %d node(s): %s", len(id_map), id_map)
        return id_map

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def snapshot(self) -> WorkflowGraph:
        """The current nodes and edges as an independent snapshot."""
        return WorkflowGraph(nodes=list(self._nodes), edges=list(self._edges))

    def load(self, graph: WorkflowGraph) -> None:
        """Replace the store's contents verbatim. Nothing is re-minted."""
        self._nodes = list(graph.nodes)
        self._edges = list(graph.edges)
        self.mutation_log.log_graph_loaded(len(self._nodes), len(self._edges))

    # =========================================================================
    # VALIDATION & VARIABLES
    # =========================================================================

    def validate(self) -> ValidationReport:
        return self.validator.validate_workflow(self._nodes, self._edges)

    def auto_fix(self) -> AutoFixResult:
        """
        Repair duplicate ids in place.

        The store is only updated when something was fixed.
        """
        result = self.validator.auto_fix_issues(self._nodes, self._edges)
        if result.changed:
            self._nodes = list(result.fixed_nodes)
            self._edges = list(result.fixed_edges)
            for change in result.fixed_issues:
                self.mutation_log.log_auto_fix(change)
        return result

    def available_variables(self, node_id: Optional[str]) -> List[VariableDescriptor]:
        return get_available_variables(node_id, self._nodes, self._edges)


class _ReservedHandles:
    """Handle oracle that also counts ids reserved for a node not yet stored."""

    def __init__(self, node_id: str, reserved: set, is_handle_id_taken):
        self._node_id = node_id
        self._reserved = reserved
        self._is_handle_id_taken = is_handle_id_taken

    def is_node_id_taken(self, node_id: str) -> bool:
        return False

    def is_edge_id_taken(self, edge_id: str) -> bool:
        return False

    def is_handle_id_taken(self, node_id: str, handle_id: str) -> bool:
        if node_id == self._node_id and handle_id in self._reserved:
            return True
        return self._is_handle_id_taken(node_id, handle_id)
