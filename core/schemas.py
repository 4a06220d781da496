"""
WORKFLOW SCHEMAS - The Grammar of the Graph Model

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure sentences).

This module defines the data structures that flow through the core:
- Handle: A connection point owned by one node
- Node: A workflow unit with a type and ordered handles
- Edge: A directed dependency between two nodes (optionally handle to handle)
- WorkflowGraph: One (nodes, edges) snapshot
- VariableDescriptor: A value a node type exposes downstream
- Serialization helpers for snapshots exchanged with the editor

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. WIRE COMPATIBLE: Field names match the editor's JSON (handle "type",
   edge "source_handle" / "target_handle")
4. CALLER OWNED: The core never keeps a snapshot between calls
"""
import msgspec
from typing import Optional, List, Dict, Any

from core.ontology import (
    NodeType,
    HandleDirection,
    VariableCategory,
)


# =============================================================================
# GRAPH ENTITIES
# =============================================================================

class Position(msgspec.Struct, kw_only=True):
    """Canvas coordinates. Carried through untouched."""
    x: float = 0.0
    y: float = 0.0


class Handle(msgspec.Struct, kw_only=True, omit_defaults=True):
    """
    A connection point on a node.

    Handle ids are scoped to their owning node: two nodes may each declare a
    handle called "out-1" without conflict.
    """
    id: str
    direction: str = msgspec.field(name="type", default=HandleDirection.SOURCE.value)
    position: Optional[str] = None   # HandlePosition value
    condition: Optional[str] = None  # Display-only routing label

    @property
    def is_source(self) -> bool:
        return self.direction == HandleDirection.SOURCE.value

    @property
    def is_target(self) -> bool:
        return self.direction == HandleDirection.TARGET.value


class Node(msgspec.Struct, kw_only=True, omit_defaults=True):
    """
    A workflow unit.

    `type` holds a NodeType value. Unknown strings are tolerated so that a
    snapshot from a newer editor can still be validated; they simply expose
    no variables.
    """
    id: str
    type: str
    name: str = ""
    handles: List[Handle] = msgspec.field(default_factory=list)
    position: Optional[Position] = None
    description: Optional[str] = None

    def get_handle(self, handle_id: str) -> Optional[Handle]:
        """First handle with the given id, or None."""
        for handle in self.handles:
            if handle.id == handle_id:
                return handle
        return None

    def has_handle(self, handle_id: str) -> bool:
        return self.get_handle(handle_id) is not None

    @classmethod
    def from_type(cls, node_type: NodeType, node_id: str, **kwargs) -> "Node":
        """Convenience constructor taking the enum directly."""
        return cls(id=node_id, type=node_type.value, **kwargs)


class Edge(msgspec.Struct, kw_only=True, omit_defaults=True):
    """
    A directed dependency: `source`'s output feeds `target`'s input.

    Multiple edges may join the same two nodes; they are told apart by id
    and, usually, by their handles.
    """
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    condition: Optional[str] = None

    @property
    def endpoints(self) -> tuple:
        return (self.source, self.target)


class WorkflowGraph(msgspec.Struct, kw_only=True):
    """A complete (nodes, edges) snapshot."""
    nodes: List[Node] = msgspec.field(default_factory=list)
    edges: List[Edge] = msgspec.field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.edges


# =============================================================================
# VARIABLE DESCRIPTORS
# =============================================================================

def format_variable_token(name: str) -> str:
    """`sentiment` -> `{{ sentiment }}`, the syntax the execution engine interpolates."""
    return "{{ " + name + " }}"


class VariableDescriptor(msgspec.Struct, kw_only=True, frozen=True):
    """
    A named value a node type exposes to every node downstream of it.

    Frozen so that identical descriptors contributed by two nodes of the same
    type compare equal and hash together.
    """
    name: str
    description: str
    category: str = VariableCategory.NODE.value
    node_type: Optional[str] = None  # NodeType value of the producer

    @property
    def token(self) -> str:
        """The interpolation token inserted into prompts, e.g. `{{ sentiment }}`."""
        return format_variable_token(self.name)

    @property
    def is_global(self) -> bool:
        return self.category == VariableCategory.GLOBAL.value


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

# Pre-compiled encoders/decoders; reuse instead of recompiling per call

_encoder = msgspec.json.Encoder()
_graph_decoder = msgspec.json.Decoder(type=WorkflowGraph)
_node_list_decoder = msgspec.json.Decoder(type=List[Node])
_edge_list_decoder = msgspec.json.Decoder(type=List[Edge])


def encode_workflow(graph: WorkflowGraph) -> bytes:
    """Serialize a snapshot to JSON bytes."""
    return _encoder.encode(graph)


def decode_workflow(data: bytes) -> WorkflowGraph:
    """
    Deserialize JSON bytes to a snapshot.

    Raises:
        msgspec.DecodeError: If the bytes are not valid JSON
        msgspec.ValidationError: If the JSON does not match the schema
    """
    return _graph_decoder.decode(data)


def decode_nodes(data: bytes) -> List[Node]:
    """Deserialize a JSON array of nodes."""
    return _node_list_decoder.decode(data)


def decode_edges(data: bytes) -> List[Edge]:
    """Deserialize a JSON array of edges."""
    return _edge_list_decoder.decode(data)


def workflow_from_builtins(obj: Dict[str, Any]) -> WorkflowGraph:
    """Build a snapshot from already-parsed dicts/lists."""
    return msgspec.convert(obj, type=WorkflowGraph)


def workflow_to_builtins(graph: WorkflowGraph) -> Dict[str, Any]:
    """Inverse of workflow_from_builtins, using wire field names."""
    return msgspec.to_builtins(graph)
