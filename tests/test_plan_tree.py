"""
Tests for the tree transformer and traversal utilities
"""

import unittest

from pg_explain_tree.helper import PlanStructureError
from pg_explain_tree.plan_tree import (
    EnrichedNode,
    assign_node_ids,
    count_nodes,
    find_node_by_id,
    get_leaf_nodes,
    get_path_to_node,
    iter_nodes,
    transform_node,
    transform_plan,
    walk_tree,
)

from sample_plans import HASH_JOIN_PLAN, sample


def raw_preorder(raw):
    yield raw
    for child in raw.get("Plans") or []:
        yield from raw_preorder(child)


class TestTransform(unittest.TestCase):
    """Test transform_plan() and transform_node()"""

    def setUp(self):
        self.plan_data = sample(HASH_JOIN_PLAN)
        self.tree = transform_plan(self.plan_data)

    def test_structure(self):
        self.assertEqual(self.tree.name, "Hash Join")
        self.assertEqual(
            [child.name for child in self.tree.children], ["Seq Scan", "Hash"]
        )
        self.assertEqual(self.tree.children[1].children[0].details["relation"], "customers")

    def test_no_ids_assigned(self):
        for node in iter_nodes(self.tree):
            self.assertIsNone(node.id)
            self.assertFalse(node.is_on_critical_path)

    def test_edge_labels(self):
        self.assertIsNone(self.tree.edge_label)
        self.assertEqual(self.tree.children[0].edge_label, "Outer")
        self.assertEqual(self.tree.children[1].edge_label, "Inner")

    def test_raw_node_is_kept(self):
        self.assertIs(self.tree.raw_node, self.plan_data[0]["Plan"])
        self.assertEqual(self.tree.raw_node["Plan Width"], 72)

    def test_unknown_node_type(self):
        node = transform_node({"Plans": []})

        self.assertEqual(node.name, "Unknown")
        self.assertEqual(node.children, [])

    def test_missing_plan(self):
        with self.assertRaises(PlanStructureError):
            transform_plan({"Execution Time": 1.0})

    def test_walk_matches_build_order(self):
        """Walking the tree visits every node once in pre-order"""
        visited = []
        walk_tree(self.tree, lambda node, _depth, _parent: visited.append(node.raw_node))

        expected = list(raw_preorder(self.plan_data[0]["Plan"]))
        self.assertEqual(len(visited), len(expected))
        for got, want in zip(visited, expected):
            self.assertIs(got, want)

    def test_nodes_compare_by_identity(self):
        first = transform_node({"Node Type": "Result"})
        second = transform_node({"Node Type": "Result"})
        self.assertNotEqual(first, second)
        self.assertEqual(first, first)

    def test_to_dict(self):
        assign_node_ids(self.tree)
        data = self.tree.to_dict()

        self.assertEqual(data["id"], "0")
        self.assertEqual(data["children"][1]["children"][0]["id"], "0-1-0")
        self.assertEqual(data["children"][0]["edgeLabel"], "Outer")
        self.assertNotIn("rawNode", data)

        with_raw = self.tree.to_dict(include_raw=True)
        self.assertEqual(with_raw["rawNode"]["Plan Width"], 72)
        self.assertNotIn("Plans", with_raw["rawNode"])


class TestTreeUtilities(unittest.TestCase):
    """Test the traversal helpers"""

    def setUp(self):
        self.tree = transform_plan(sample(HASH_JOIN_PLAN))
        assign_node_ids(self.tree)

    def test_assign_node_ids(self):
        ids = [node.id for node in iter_nodes(self.tree)]
        self.assertEqual(ids, ["0", "0-0", "0-1", "0-1-0"])

    def test_assign_node_ids_is_idempotent(self):
        first = [node.id for node in iter_nodes(self.tree)]
        assign_node_ids(self.tree)
        self.assertEqual([node.id for node in iter_nodes(self.tree)], first)

    def test_assign_node_ids_prefix(self):
        assign_node_ids(self.tree, "2")
        self.assertEqual(self.tree.children[1].children[0].id, "2-1-0")

    def test_walk_tree_depth_and_parent(self):
        seen = []
        walk_tree(
            self.tree,
            lambda node, depth, parent: seen.append(
                (node.id, depth, parent.id if parent else None)
            ),
        )
        self.assertEqual(
            seen,
            [("0", 0, None), ("0-0", 1, "0"), ("0-1", 1, "0"), ("0-1-0", 2, "0-1")],
        )

    def test_find_node_by_id(self):
        node = find_node_by_id(self.tree, "0-1-0")
        self.assertIs(node, self.tree.children[1].children[0])
        self.assertIsNone(find_node_by_id(self.tree, "9-9"))

    def test_find_node_by_id_prefers_document_order(self):
        self.tree.children[1].id = "dup"
        self.tree.children[1].children[0].id = "dup"
        self.assertIs(find_node_by_id(self.tree, "dup"), self.tree.children[1])

    def test_get_path_to_node(self):
        target = self.tree.children[1].children[0]
        path = get_path_to_node(self.tree, target)
        self.assertEqual([node.id for node in path], ["0", "0-1", "0-1-0"])

    def test_get_path_to_node_by_id(self):
        stand_in = EnrichedNode(name="Seq Scan", details={}, raw_node={}, id="0-0")
        path = get_path_to_node(self.tree, stand_in)
        self.assertEqual([node.id for node in path], ["0", "0-0"])

    def test_get_path_to_unknown_node(self):
        stranger = transform_node({"Node Type": "Result"})
        self.assertEqual(get_path_to_node(self.tree, stranger), [])

    def test_count_nodes(self):
        self.assertEqual(count_nodes(self.tree), 4)
        self.assertEqual(
            count_nodes(self.tree),
            1 + sum(count_nodes(child) for child in self.tree.children),
        )

    def test_get_leaf_nodes(self):
        leaves = get_leaf_nodes(self.tree)

        self.assertEqual([leaf.id for leaf in leaves], ["0-0", "0-1-0"])
        self.assertTrue(all(not leaf.children for leaf in leaves))
        self.assertEqual(len({leaf.id for leaf in leaves}), len(leaves))


if __name__ == "__main__":
    unittest.main()
