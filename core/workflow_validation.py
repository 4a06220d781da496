"""
WORKFLOW VALIDATION - Structural Integrity of a Graph Snapshot

Given one (nodes, edges) snapshot, report every integrity violation and
structural warning, and optionally repair the safe subset.

Checks:
1. duplicate_node_id    (error)   re-occurrences of a node id
2. duplicate_edge_id    (error)   re-occurrences of an edge id
3. duplicate_handle_id  (error)   re-occurrences of a handle id within one node
4. missing_node         (error)   edge endpoint not declared by any node
   missing_handle       (error)   edge handle not declared on its node
5. unused_handle        (warning) handle no edge connects to
6. disconnected_node    (warning) node no edge starts or ends at
7. dependency_cycle     (warning) opt-in, one per cycle group

Design:
- Issues are collected, never raised; validity means "no errors"
- Results are independent of check ordering and repeatable for a snapshot
- Auto-fix only re-mints duplicate node/edge ids. Dangling references and
  missing handles have no unambiguous repair and are left for the user
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

import msgspec

from core.graph_index import SnapshotIndex
from core.id_generator import CompositeOracle, WorkflowIdGenerator
from core.ontology import IdKind, IssueSeverity, ValidationErrorType, ValidationWarningType
from core.schemas import Edge, Node
from infrastructure.config import ValidationConfig, get_config


logger = logging.getLogger(__name__)


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

@dataclass
class GraphIssue:
    """One structural error or warning."""
    kind: str                   # ValidationErrorType / ValidationWarningType value
    severity: IssueSeverity
    message: str
    id: Optional[str] = None
    node_id: Optional[str] = None
    handle_id: Optional[str] = None
    edge_id: Optional[str] = None
    nodes_involved: List[str] = field(default_factory=list)

    @property
    def details(self) -> Dict[str, Any]:
        """Only the identifiers that are set."""
        details = {
            "id": self.id,
            "nodeId": self.node_id,
            "handleId": self.handle_id,
            "edgeId": self.edge_id,
        }
        details = {k: v for k, v in details.items() if v is not None}
        if self.nodes_involved:
            details["nodesInvolved"] = list(self.nodes_involved)
        return details

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "message": self.message, "details": self.details}


@dataclass
class ValidationReport:
    """Complete validation result for one snapshot."""
    errors: List[GraphIssue] = field(default_factory=list)
    warnings: List[GraphIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def errors_of(self, kind: ValidationErrorType) -> List[GraphIssue]:
        return [e for e in self.errors if e.kind == kind.value]

    def warnings_of(self, kind: ValidationWarningType) -> List[GraphIssue]:
        return [w for w in self.warnings if w.kind == kind.value]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class AutoFixResult:
    """Repaired collections plus a human-readable changelog."""
    fixed_nodes: List[Node]
    fixed_edges: List[Edge]
    fixed_issues: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.fixed_issues)


def _error(kind: ValidationErrorType, message: str, **ids) -> GraphIssue:
    return GraphIssue(kind=kind.value, severity=IssueSeverity.ERROR, message=message, **ids)


def _warning(kind: ValidationWarningType, message: str, **ids) -> GraphIssue:
    return GraphIssue(kind=kind.value, severity=IssueSeverity.WARNING, message=message, **ids)


# =============================================================================
# VALIDATOR
# =============================================================================

class WorkflowValidator:
    """
    Structural validator for workflow snapshots.

    The id generator is only used by auto_fix_issues; validation itself is
    read-only.

    Usage:
        validator = WorkflowValidator(generator)
        report = validator.validate_workflow(nodes, edges)
        if not report.is_valid:
            result = validator.auto_fix_issues(nodes, edges)
    """

    def __init__(
        self,
        id_generator: Optional[WorkflowIdGenerator] = None,
        config: Optional[ValidationConfig] = None,
    ):
        self.id_generator = id_generator or WorkflowIdGenerator()
        self.config = config or get_config().validation

    def validate_workflow(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> ValidationReport:
        """
        Run every check over the snapshot.

        Returns:
            ValidationReport; is_valid is True iff no errors were found
        """
        report = ValidationReport()

        report.errors.extend(self._validate_node_ids(nodes))
        report.errors.extend(self._validate_edge_ids(edges))
        report.errors.extend(self._validate_handle_ids(nodes))
        report.errors.extend(self._validate_edge_integrity(nodes, edges))

        report.warnings.extend(self._check_unused_handles(nodes, edges))
        report.warnings.extend(self._check_disconnected_nodes(nodes, edges))
        if self.config.flag_cycles:
            report.warnings.extend(self._check_cycles(nodes, edges))

        logger.debug(
            "Validated %d nodes / %d edges: %d errors, %d warnings",
            len(nodes), len(edges), len(report.errors), len(report.warnings),
        )
        return report

    # =========================================================================
    # ERROR CHECKS
    # =========================================================================

    def _validate_node_ids(self, nodes: Sequence[Node]) -> List[GraphIssue]:
        errors = []
        seen: Set[str] = set()

        for node in nodes:
            if node.id in seen:
                errors.append(_error(
                    ValidationErrorType.DUPLICATE_NODE_ID,
                    f"Duplicate node id: {node.id}",
                    id=node.id,
                ))
            seen.add(node.id)

        return errors

    def _validate_edge_ids(self, edges: Sequence[Edge]) -> List[GraphIssue]:
        errors = []
        seen: Set[str] = set()

        for edge in edges:
            if edge.id in seen:
                errors.append(_error(
                    ValidationErrorType.DUPLICATE_EDGE_ID,
                    f"Duplicate edge id: {edge.id}",
                    edge_id=edge.id,
                ))
            seen.add(edge.id)

        return errors

    def _validate_handle_ids(self, nodes: Sequence[Node]) -> List[GraphIssue]:
        """Handle ids are node-scoped, so every node gets its own seen-set."""
        errors = []

        for node in nodes:
            seen: Set[str] = set()
            for handle in node.handles:
                if handle.id in seen:
                    errors.append(_error(
                        ValidationErrorType.DUPLICATE_HANDLE_ID,
                        f"Duplicate handle id {handle.id} on node {node.id}",
                        node_id=node.id,
                        handle_id=handle.id,
                    ))
                seen.add(handle.id)

        return errors

    def _validate_edge_integrity(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> List[GraphIssue]:
        """
        Resolve each edge's endpoints and handles.

        A missing source or target node ends the checks for that edge, so a
        dangling edge yields exactly one missing_node error. When a node id
        is duplicated, its first occurrence owns the edges.
        """
        errors = []
        node_map: Dict[str, Node] = {}
        for node in nodes:
            node_map.setdefault(node.id, node)

        for edge in edges:
            source_node = node_map.get(edge.source)
            if source_node is None:
                errors.append(_error(
                    ValidationErrorType.MISSING_NODE,
                    f"Edge {edge.id} references missing source node: {edge.source}",
                    edge_id=edge.id,
                    node_id=edge.source,
                ))
                continue

            target_node = node_map.get(edge.target)
            if target_node is None:
                errors.append(_error(
                    ValidationErrorType.MISSING_NODE,
                    f"Edge {edge.id} references missing target node: {edge.target}",
                    edge_id=edge.id,
                    node_id=edge.target,
                ))
                continue

            if edge.source_handle and not source_node.has_handle(edge.source_handle):
                errors.append(_error(
                    ValidationErrorType.MISSING_HANDLE,
                    f"Edge {edge.id} references missing source handle: {edge.source_handle}",
                    edge_id=edge.id,
                    node_id=edge.source,
                    handle_id=edge.source_handle,
                ))

            if edge.target_handle and not target_node.has_handle(edge.target_handle):
                errors.append(_error(
                    ValidationErrorType.MISSING_HANDLE,
                    f"Edge {edge.id} references missing target handle: {edge.target_handle}",
                    edge_id=edge.id,
                    node_id=edge.target,
                    handle_id=edge.target_handle,
                ))

        return errors

    # =========================================================================
    # WARNING CHECKS
    # =========================================================================

    def _check_unused_handles(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> List[GraphIssue]:
        warnings = []
        used = set()

        # Keyed by (node, handle): handle ids repeat across nodes
        for edge in edges:
            if edge.source_handle:
                used.add((edge.source, edge.source_handle))
            if edge.target_handle:
                used.add((edge.target, edge.target_handle))

        for node in nodes:
            for handle in node.handles:
                if (node.id, handle.id) not in used:
                    warnings.append(_warning(
                        ValidationWarningType.UNUSED_HANDLE,
                        f"Handle {handle.id} on node {node.id} is not connected",
                        node_id=node.id,
                        handle_id=handle.id,
                    ))

        return warnings

    def _check_disconnected_nodes(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> List[GraphIssue]:
        warnings = []
        connected = set()

        for edge in edges:
            connected.add(edge.source)
            connected.add(edge.target)

        for node in nodes:
            if node.id not in connected:
                warnings.append(_warning(
                    ValidationWarningType.DISCONNECTED_NODE,
                    f"Node {node.id} has no connections",
                    node_id=node.id,
                ))

        return warnings

    def _check_cycles(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> List[GraphIssue]:
        index = SnapshotIndex(nodes, edges)
        return [
            _warning(
                ValidationWarningType.DEPENDENCY_CYCLE,
                f"Dependency cycle through {len(group)} node(s): {', '.join(group)}",
                node_id=group[0],
                nodes_involved=group,
            )
            for group in index.cyclic_groups()
        ]

    # =========================================================================
    # AUTO-FIX
    # =========================================================================

    def auto_fix_issues(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> AutoFixResult:
        """
        Re-mint duplicate node and edge ids.

        The first occurrence of an id keeps it; every later occurrence gets a
        fresh id that is free both in this snapshot and per the generator's
        own oracle. Edges keep referencing the surviving first occurrence,
        unless the handle an edge uses is declared by exactly one renamed
        copy and not by the first occurrence; such an edge follows the copy.
        Dangling references and other missing handles are left untouched.

        Returns:
            AutoFixResult with new lists (inputs are not mutated) and one
            changelog line per substitution
        """
        index = SnapshotIndex(nodes, edges)
        generator = self.id_generator.with_oracle(CompositeOracle(index, self.id_generator.oracle))
        fixed_issues: List[str] = []

        fixed_nodes: List[Node] = []
        first_nodes: Dict[str, Node] = {}
        renamed_copies: Dict[str, List[Node]] = {}
        for node in nodes:
            if node.id not in first_nodes:
                first_nodes[node.id] = node
                fixed_nodes.append(node)
                continue

            new_id = generator.regenerate_unique_id(node.id, IdKind.NODE)
            index.reserve_node_id(new_id)
            copy = msgspec.structs.replace(node, id=new_id)
            fixed_nodes.append(copy)
            renamed_copies.setdefault(node.id, []).append(copy)
            fixed_issues.append(f"Fixed duplicate node id: {node.id} -> {new_id}")
            logger.info("Auto-fix: node id %s -> %s", node.id, new_id)

        def owner_of(node_id: str, handle_id: Optional[str]) -> str:
            # An edge moves to a renamed copy only when that copy alone
            # declares the handle the edge uses.
            if not handle_id or node_id not in renamed_copies or first_nodes[node_id].has_handle(handle_id):
                return node_id
            holders = [c.id for c in renamed_copies[node_id] if c.has_handle(handle_id)]
            return holders[0] if len(holders) == 1 else node_id

        repointed: List[Edge] = []
        for edge in edges:
            source = owner_of(edge.source, edge.source_handle)
            target = owner_of(edge.target, edge.target_handle)
            if (source, target) != edge.endpoints:
                fixed_issues.append(
                    f"Re-pointed edge {edge.id}: {edge.source} -> {edge.target} "
                    f"is now {source} -> {target}"
                )
                logger.info("Auto-fix: edge %s re-pointed to %s -> %s", edge.id, source, target)
                edge = msgspec.structs.replace(edge, source=source, target=target)
            repointed.append(edge)

        fixed_edges: List[Edge] = []
        seen_edges: Set[str] = set()
        for edge in repointed:
            if edge.id not in seen_edges:
                seen_edges.add(edge.id)
                fixed_edges.append(edge)
                continue

            new_id = generator.generate_edge_id(
                edge.source, edge.target, edge.source_handle, edge.target_handle
            )
            index.reserve_edge_id(new_id)
            fixed_edges.append(msgspec.structs.replace(edge, id=new_id))
            fixed_issues.append(f"Fixed duplicate edge id: {edge.id} -> {new_id}")
            logger.info("Auto-fix: edge id %s -> %s", edge.id, new_id)

        return AutoFixResult(fixed_nodes=fixed_nodes, fixed_edges=fixed_edges, fixed_issues=fixed_issues)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def create_workflow_validator(id_generator: Optional[WorkflowIdGenerator] = None) -> WorkflowValidator:
    """Create a validator that re-mints ids through `id_generator`."""
    return WorkflowValidator(id_generator)


def validate_workflow(nodes: Sequence[Node], edges: Sequence[Edge]) -> ValidationReport:
    """Validate a snapshot with a default validator."""
    return WorkflowValidator().validate_workflow(nodes, edges)
