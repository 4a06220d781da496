"""
Pytest configuration and shared fixtures for the workflow graph test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset global state before each test to ensure isolation."""
    from core.id_generator import reset_id_counter
    from infrastructure.config import reset_config
    from infrastructure.logger import reset_mutation_log

    reset_config()
    reset_id_counter()
    reset_mutation_log()

    yield

    reset_config()
    reset_mutation_log()


@pytest.fixture
def taken_ids():
    """An oracle backed by plain sets that tests can fill in."""
    class SetOracle:
        def __init__(self):
            self.nodes = set()
            self.edges = set()
            self.handles = set()  # (node_id, handle_id)

        def is_node_id_taken(self, node_id):
            return node_id in self.nodes

        def is_edge_id_taken(self, edge_id):
            return edge_id in self.edges

        def is_handle_id_taken(self, node_id, handle_id):
            return (node_id, handle_id) in self.handles

    return SetOracle()


@pytest.fixture
def chat_workflow():
    """
    start -> detect (emotionDetector) -> chat (smartChat), fully wired.

    Returns (nodes, edges).
    """
    from core.schemas import Edge, Handle, Node

    nodes = [
        Node(id="start", type="start", handles=[Handle(id="start-out", direction="source")]),
        Node(id="detect", type="emotionDetector", handles=[
            Handle(id="detect-in", direction="target"),
            Handle(id="detect-out", direction="source"),
        ]),
        Node(id="chat", type="smartChat", handles=[
            Handle(id="chat-in", direction="target"),
            Handle(id="chat-out", direction="source"),
        ]),
        Node(id="end", type="end", handles=[Handle(id="end-in", direction="target")]),
    ]
    edges = [
        Edge(id="e1", source="start", target="detect", source_handle="start-out", target_handle="detect-in"),
        Edge(id="e2", source="detect", target="chat", source_handle="detect-out", target_handle="chat-in"),
        Edge(id="e3", source="chat", target="end", source_handle="chat-out", target_handle="end-in"),
    ]
    return nodes, edges


@pytest.fixture
def fresh_store():
    """Provide an empty WorkflowStore."""
    from core.workflow_store import WorkflowStore
    return WorkflowStore()
