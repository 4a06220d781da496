"""
WORKFLOW VARIABLES - What a Node May Reference

Every prompt or expression field in the editor offers the variables that
are legitimately available at the node being edited:

- Global variables are available everywhere
- A node type's variables are available to every node it can reach along
  directed edges (its output can influence their input)
- A node never sees its own variables

Availability depends only on node types and topology, never on a node's
runtime configuration. Variables are inserted as `{{ name }}` tokens; that
syntax is the contract with the execution engine.
"""
import warnings
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from core.graph_index import SnapshotIndex
from core.ontology import NodeType, VariableCategory
from core.schemas import Edge, Node, VariableDescriptor, format_variable_token


def _global(name: str) -> VariableDescriptor:
    return VariableDescriptor(
        name=name,
        description=f"rf.var.desc.{name}",
        category=VariableCategory.GLOBAL.value,
    )


def _node_vars(node_type: NodeType, namespace: str, *names: str) -> Tuple[VariableDescriptor, ...]:
    return tuple(
        VariableDescriptor(
            name=name,
            description=f"rf.var.desc.{namespace}.{name}",
            category=VariableCategory.NODE.value,
            node_type=node_type.value,
        )
        for name in names
    )


# =============================================================================
# VARIABLE CATALOG
# =============================================================================

# Descriptions are i18n keys resolved by the editor.

GLOBAL_VARIABLES: Tuple[VariableDescriptor, ...] = (
    _global("ticketDescription"),
    _global("ticketModule"),
    _global("ticketCategory"),
    _global("ticketTitle"),
    _global("lastCustomerMessage"),
    _global("historyMessages"),
    _global("userQuery"),
)

NODE_VARIABLES: Dict[NodeType, Tuple[VariableDescriptor, ...]] = {
    NodeType.EMOTION_DETECTOR: _node_vars(
        NodeType.EMOTION_DETECTOR, "emotionDetector",
        "sentiment",
        "stylePrompt",
        "handoffReason",
        "handoffPriority",
        "handoffRequired",
    ),
    NodeType.ESCALATION_OFFER: _node_vars(
        NodeType.ESCALATION_OFFER, "escalationOffer",
        "proposeEscalation",
        "escalationReason",
        "handoffPriority",
    ),
    NodeType.SMART_CHAT: _node_vars(
        NodeType.SMART_CHAT, "smartChat",
        "retrievedContextString",
        "retrievedContextCount",
        "hasRetrievedContext",
    ),
    # No node-specific outputs
    NodeType.HANDOFF: (),
    NodeType.VARIABLE_SETTER: (),
    NodeType.RAG: (),
    NodeType.START: (),
    NodeType.END: (),
}


def variables_for_node_type(node_type: Union[NodeType, str]) -> Tuple[VariableDescriptor, ...]:
    """Variables a node of `node_type` exposes. Unknown types expose none."""
    try:
        return NODE_VARIABLES.get(NodeType(node_type), ())
    except ValueError:
        return ()


# =============================================================================
# RESOLUTION
# =============================================================================

def find_upstream_node_ids(
    node_id: str,
    nodes: Sequence[Node],
    edges: Sequence[Edge],
) -> List[str]:
    """
    Ids of nodes with a directed edge path into `node_id`, nearest first.

    `node_id` itself is excluded. Ids referenced only by edges (no declared
    node) are traversed but still listed.
    """
    return SnapshotIndex(nodes, edges).upstream_node_ids(node_id)


def get_available_variables(
    node_id: Optional[str],
    nodes: Sequence[Node],
    edges: Sequence[Edge],
) -> List[VariableDescriptor]:
    """
    Variables referenceable at `node_id`.

    Args:
        node_id: The node being edited, or None when no node is focused
        nodes: All nodes in the workflow
        edges: All edges in the workflow

    Behavior:
        - No node id: exactly GLOBAL_VARIABLES
        - Otherwise: GLOBAL_VARIABLES followed by the variables of every
          upstream node in breadth-first order. Identical descriptors (two
          upstream nodes of the same type) appear once. An id that is not in
          the snapshot simply has no upstream nodes.
    """
    variables: List[VariableDescriptor] = list(GLOBAL_VARIABLES)
    if not node_id:
        return variables

    index = SnapshotIndex(nodes, edges)
    seen: Set[VariableDescriptor] = set(variables)

    for upstream_id in index.upstream_node_ids(node_id):
        for node in index.nodes_with_id(upstream_id):
            for variable in variables_for_node_type(node.type):
                if variable not in seen:
                    seen.add(variable)
                    variables.append(variable)

    return variables


def get_all_variables() -> List[VariableDescriptor]:
    """Every global and node variable, for documentation."""
    all_vars: List[VariableDescriptor] = list(GLOBAL_VARIABLES)
    for node_vars in NODE_VARIABLES.values():
        all_vars.extend(node_vars)
    return all_vars


def variable_names(variables: Iterable[VariableDescriptor]) -> List[str]:
    return [v.name for v in variables]


# =============================================================================
# MODULE INITIALIZATION
# =============================================================================

def _validate_catalog() -> List[str]:
    """Every NodeType needs an entry, and names must be unique per producer."""
    errors = []

    for node_type in NodeType:
        if node_type not in NODE_VARIABLES:
            errors.append(f"No variable entry for node type: {node_type.value}")

    global_names = [v.name for v in GLOBAL_VARIABLES]
    if len(global_names) != len(set(global_names)):
        errors.append("Duplicate global variable names")

    for node_type, node_vars in NODE_VARIABLES.items():
        names = [v.name for v in node_vars]
        if len(names) != len(set(names)):
            errors.append(f"Duplicate variable names for node type: {node_type.value}")
        clashes = set(names) & set(global_names)
        if clashes:
            errors.append(f"Node type {node_type.value} shadows globals: {sorted(clashes)}")

    return errors


_catalog_errors = _validate_catalog()
if _catalog_errors:
    for err in _catalog_errors:
        warnings.warn(f"Variable catalog: {err}")
