"""
WORKFLOW ONTOLOGY - The Vocabulary of the Graph Model

If schemas.py is the Grammar (how nodes, handles and edges are structured),
ontology.py is the Dictionary (the words those structures may use).

This module defines:
- NodeType: The closed set of node kinds the editor can place
- HandleDirection: Which way a connection point faces
- IdKind: Which id namespace an identifier belongs to
- Issue vocabulary: Error/warning kinds reported by the structural validator

Every enum is a str Enum so values survive a JSON round trip unchanged.
"""
from enum import Enum
from typing import Literal


# =============================================================================
# NODE VOCABULARY
# =============================================================================

class NodeType(str, Enum):
    """Kinds of nodes in a workflow."""
    START = "start"                       # Sentinel entry node
    END = "end"                           # Sentinel exit node
    EMOTION_DETECTOR = "emotionDetector"  # Sentiment / handoff classification
    SMART_CHAT = "smartChat"              # Retrieval-backed reply
    ESCALATION_OFFER = "escalationOffer"  # Ask the customer about escalating
    HANDOFF = "handoff"                   # Transfer to a human agent
    VARIABLE_SETTER = "variableSetter"    # Assign workflow variables
    RAG = "rag"                           # Knowledge-base retrieval


class HandleDirection(str, Enum):
    """
    Direction of a connection point.

    SOURCE handles emit edges (outputs), TARGET handles receive them (inputs).
    Generated handle ids use the short port label ("out" / "in").
    """
    SOURCE = "source"
    TARGET = "target"

    @property
    def port_label(self) -> str:
        return "out" if self is HandleDirection.SOURCE else "in"

    @classmethod
    def from_label(cls, value: str) -> "HandleDirection":
        """Accept either the direction value or its port label."""
        if value in ("out", cls.SOURCE.value):
            return cls.SOURCE
        if value in ("in", cls.TARGET.value):
            return cls.TARGET
        raise ValueError(f"Unknown handle direction: {value!r}")


class HandlePosition(str, Enum):
    """Side of the node a handle is drawn on."""
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"


class IdKind(str, Enum):
    """Identifier namespaces."""
    NODE = "node"
    EDGE = "edge"
    HANDLE = "handle"


# =============================================================================
# VALIDATION VOCABULARY
# =============================================================================

class IssueSeverity(str, Enum):
    """Severity levels for structural issues."""
    ERROR = "error"      # Blocks validity
    WARNING = "warning"  # Reported, never blocks validity


class ValidationErrorType(str, Enum):
    """Integrity violations. Any of these makes a graph invalid."""
    DUPLICATE_NODE_ID = "duplicate_node_id"
    DUPLICATE_EDGE_ID = "duplicate_edge_id"
    DUPLICATE_HANDLE_ID = "duplicate_handle_id"
    MISSING_NODE = "missing_node"
    MISSING_HANDLE = "missing_handle"


class ValidationWarningType(str, Enum):
    """Structural smells that never affect validity."""
    UNUSED_HANDLE = "unused_handle"
    DISCONNECTED_NODE = "disconnected_node"
    DEPENDENCY_CYCLE = "dependency_cycle"


class VariableCategory(str, Enum):
    """Where a variable comes from."""
    GLOBAL = "global"
    NODE = "node"


# =============================================================================
# Type Aliases
# =============================================================================

PortLabel = Literal["in", "out"]


# =============================================================================
# DEFAULT HANDLE LAYOUT
# =============================================================================

def default_handle_directions(node_type: str) -> tuple:
    """
    Directions of the handles a freshly placed node receives.

    START only emits, END only receives, every other kind has one input
    followed by one output.
    """
    if node_type == NodeType.START.value:
        return (HandleDirection.SOURCE,)
    if node_type == NodeType.END.value:
        return (HandleDirection.TARGET,)
    return (HandleDirection.TARGET, HandleDirection.SOURCE)


def validate_node_type(type_str: str) -> bool:
    """Check if a string is a valid NodeType value."""
    return type_str in {nt.value for nt in NodeType}
