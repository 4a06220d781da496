"""
WORKFLOW GRAPH CORE - Central exports for the graph model.

This module provides access to:
- Data model (Node, Handle, Edge, WorkflowGraph, VariableDescriptor)
- Identifier generation (WorkflowIdGenerator, IdOracle)
- Structural validation (WorkflowValidator, ValidationReport)
- Variable reachability (get_available_variables)
- The in-memory editing model (WorkflowStore)
"""

from core.ontology import (
    NodeType,
    HandleDirection,
    HandlePosition,
    IdKind,
    IssueSeverity,
    ValidationErrorType,
    ValidationWarningType,
    VariableCategory,
)
from core.schemas import (
    Handle,
    Node,
    Edge,
    Position,
    WorkflowGraph,
    VariableDescriptor,
    encode_workflow,
    decode_workflow,
    workflow_from_builtins,
)
from core.id_generator import (
    WorkflowIdGenerator,
    IdOracle,
    NullOracle,
    CompositeOracle,
    IdCheckResult,
    MonotonicCounter,
    get_id_counter,
    reset_id_counter,
    create_id_generator,
)
from core.workflow_validation import (
    WorkflowValidator,
    ValidationReport,
    GraphIssue,
    AutoFixResult,
    create_workflow_validator,
    validate_workflow,
)
from core.variables import (
    GLOBAL_VARIABLES,
    NODE_VARIABLES,
    get_available_variables,
    get_all_variables,
    find_upstream_node_ids,
    format_variable_token,
)
from core.workflow_store import (
    WorkflowStore,
    WorkflowGraphError,
    NodeNotFoundError,
    EdgeNotFoundError,
    HandleNotFoundError,
)

__all__ = [
    # Vocabulary
    "NodeType",
    "HandleDirection",
    "HandlePosition",
    "IdKind",
    "IssueSeverity",
    "ValidationErrorType",
    "ValidationWarningType",
    "VariableCategory",
    # Data model
    "Handle",
    "Node",
    "Edge",
    "Position",
    "WorkflowGraph",
    "VariableDescriptor",
    "encode_workflow",
    "decode_workflow",
    "workflow_from_builtins",
    # Identifiers
    "WorkflowIdGenerator",
    "IdOracle",
    "NullOracle",
    "CompositeOracle",
    "IdCheckResult",
    "MonotonicCounter",
    "get_id_counter",
    "reset_id_counter",
    "create_id_generator",
    # Validation
    "WorkflowValidator",
    "ValidationReport",
    "GraphIssue",
    "AutoFixResult",
    "create_workflow_validator",
    "validate_workflow",
    # Variables
    "GLOBAL_VARIABLES",
    "NODE_VARIABLES",
    "get_available_variables",
    "get_all_variables",
    "find_upstream_node_ids",
    "format_variable_token",
    # Store
    "WorkflowStore",
    "WorkflowGraphError",
    "NodeNotFoundError",
    "EdgeNotFoundError",
    "HandleNotFoundError",
]
