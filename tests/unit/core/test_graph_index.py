"""
Tests for core/graph_index.py - SnapshotIndex

Covers the lookup tables, the oracle view and traversal over one snapshot.
"""
import unittest

from core.graph_index import SnapshotIndex
from core.schemas import Edge, Handle, Node


def _node(node_id, *handle_ids):
    return Node(id=node_id, type="rag", handles=[Handle(id=h) for h in handle_ids])


def _edge(edge_id, source, target):
    return Edge(id=edge_id, source=source, target=target)


class TestSnapshotOracle(unittest.TestCase):
    """SnapshotIndex answers id-taken questions for its snapshot."""

    def setUp(self):
        self.index = SnapshotIndex(
            [_node("a", "a-out"), _node("b", "b-in")],
            [_edge("e1", "a", "b")],
        )

    def test_node_and_edge_ids(self):
        self.assertTrue(self.index.is_node_id_taken("a"))
        self.assertFalse(self.index.is_node_id_taken("c"))
        self.assertTrue(self.index.is_edge_id_taken("e1"))
        self.assertFalse(self.index.is_edge_id_taken("e2"))

    def test_handle_ids_are_per_node(self):
        self.assertTrue(self.index.is_handle_id_taken("a", "a-out"))
        self.assertFalse(self.index.is_handle_id_taken("b", "a-out"))
        self.assertFalse(self.index.is_handle_id_taken("ghost", "a-out"))

    def test_reserved_ids_count_as_taken(self):
        self.index.reserve_node_id("c")
        self.index.reserve_edge_id("e2")
        self.index.reserve_handle_id("ghost", "g-out")

        self.assertTrue(self.index.is_node_id_taken("c"))
        self.assertTrue(self.index.is_edge_id_taken("e2"))
        self.assertTrue(self.index.is_handle_id_taken("ghost", "g-out"))
        # Reserving does not declare a node
        self.assertFalse(self.index.has_node("c"))


class TestSnapshotTraversal(unittest.TestCase):
    """Upstream traversal and cycle grouping."""

    def test_upstream_is_nearest_first(self):
        index = SnapshotIndex(
            [_node(n) for n in ("a", "b", "c", "d")],
            [_edge("e1", "a", "b"), _edge("e2", "b", "d"), _edge("e3", "c", "d")],
        )

        self.assertEqual(index.upstream_node_ids("d"), ["b", "c", "a"])
        self.assertEqual(index.upstream_node_ids("a"), [])

    def test_repeated_edges_visit_once(self):
        index = SnapshotIndex(
            [_node("a"), _node("b")],
            [_edge("e1", "a", "b"), _edge("e2", "a", "b")],
        )

        self.assertEqual(index.direct_predecessors("b"), ["a", "a"])
        self.assertEqual(index.upstream_node_ids("b"), ["a"])

    def test_dangling_ids_get_indices(self):
        index = SnapshotIndex([_node("a")], [_edge("e1", "ghost", "a")])

        self.assertEqual(index.index_count, 2)
        self.assertIsNotNone(index.get_index("ghost"))
        self.assertFalse(index.has_node("ghost"))
        self.assertEqual(index.nodes_with_id("ghost"), [])

    def test_duplicate_node_ids_are_all_kept(self):
        index = SnapshotIndex([_node("a", "h1"), _node("a", "h2")], [])

        self.assertEqual(len(index.nodes_with_id("a")), 2)
        self.assertEqual(index.index_count, 1)
        self.assertTrue(index.is_handle_id_taken("a", "h2"))

    def test_cyclic_groups(self):
        index = SnapshotIndex(
            [_node(n) for n in ("a", "b", "c", "d")],
            [
                _edge("e1", "c", "b"),
                _edge("e2", "b", "c"),
                _edge("e3", "a", "b"),
                _edge("e4", "d", "d"),
            ],
        )

        self.assertEqual(index.cyclic_groups(), [["b", "c"], ["d"]])
        self.assertFalse(index.is_acyclic())

    def test_acyclic_graph_has_no_groups(self):
        index = SnapshotIndex(
            [_node("a"), _node("b")],
            [_edge("e1", "a", "b")],
        )

        self.assertEqual(index.cyclic_groups(), [])
        self.assertTrue(index.is_acyclic())


if __name__ == "__main__":
    unittest.main()
