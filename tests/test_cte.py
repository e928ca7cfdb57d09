"""
Tests for CTE definition and reference analysis
"""

import unittest

from pg_explain_tree.cte import analyze_ctes, cte_definition_name, extract_cte_forest
from pg_explain_tree.plan_tree import (
    assign_node_ids,
    count_nodes,
    find_node_by_id,
    iter_nodes,
    transform_node,
    transform_plan,
)

from sample_plans import CTE_PLAN, HASH_JOIN_PLAN, sample


class TestAnalyzeCTEs(unittest.TestCase):
    """Test analyze_ctes()"""

    def setUp(self):
        self.tree = transform_plan(sample(CTE_PLAN))
        assign_node_ids(self.tree)

    def test_definitions(self):
        metadata = analyze_ctes(self.tree)

        self.assertEqual(list(metadata.cte_definitions), ["orders"])
        definition = metadata.cte_definitions["orders"]
        self.assertEqual(definition.cte_name, "orders")
        self.assertEqual(definition.root_node_id, "0-1")
        self.assertIs(definition.root_node, self.tree.children[1])

    def test_forward_reference_is_linked(self):
        """The scan at 0-0 is visited before the definition at 0-1"""
        metadata = analyze_ctes(self.tree)

        reference = metadata.cte_references[0]
        self.assertEqual(reference.node_id, "0-0")
        self.assertEqual(reference.cte_name, "orders")
        self.assertEqual(reference.target_cte_node_id, "0-1")

    def test_unknown_cte_stays_unlinked(self):
        metadata = analyze_ctes(self.tree)

        reference = metadata.cte_references[1]
        self.assertEqual(reference.cte_name, "missing")
        self.assertIsNone(reference.target_cte_node_id)

    def test_references_in_traversal_order(self):
        metadata = analyze_ctes(self.tree)
        self.assertEqual([ref.node_id for ref in metadata.cte_references], ["0-0", "0-2"])

    def test_backward_reference(self):
        plan = {
            "Plan": {
                "Node Type": "Append",
                "Plans": [
                    {"Node Type": "Result", "Subplan Name": "CTE totals"},
                    {"Node Type": "CTE Scan", "CTE Name": "totals"},
                ],
            }
        }
        tree = transform_plan(plan)
        metadata = analyze_ctes(tree)

        self.assertEqual(metadata.cte_references[0].target_cte_node_id, "0-0")

    def test_assigns_missing_ids(self):
        tree = transform_plan(sample(CTE_PLAN))
        metadata = analyze_ctes(tree)

        self.assertEqual(tree.id, "0")
        self.assertEqual(metadata.cte_definitions["orders"].root_node_id, "0-1")

    def test_plan_without_ctes(self):
        metadata = analyze_ctes(transform_plan(sample(HASH_JOIN_PLAN)))

        self.assertEqual(metadata.cte_definitions, {})
        self.assertEqual(metadata.cte_references, [])

    def test_cte_scan_without_name_is_ignored(self):
        tree = transform_node({"Node Type": "CTE Scan"})
        self.assertEqual(analyze_ctes(tree).cte_references, [])

    def test_definition_name(self):
        self.assertEqual(
            cte_definition_name(transform_node({"Subplan Name": "CTE x"})), "x"
        )
        self.assertIsNone(cte_definition_name(transform_node({"Subplan Name": "SubPlan 1"})))
        self.assertIsNone(cte_definition_name(transform_node({})))

    def test_to_dict(self):
        data = analyze_ctes(self.tree).to_dict()

        self.assertEqual(
            data["cteDefinitions"], {"orders": {"cteName": "orders", "rootNodeId": "0-1"}}
        )
        self.assertEqual(
            data["cteReferences"][0],
            {"nodeId": "0-0", "cteName": "orders", "targetCTENodeId": "0-1"},
        )


class TestExtractCTEForest(unittest.TestCase):
    """Test extract_cte_forest()"""

    def setUp(self):
        self.tree = transform_plan(sample(CTE_PLAN))
        self.metadata = analyze_ctes(self.tree)

    def test_definition_is_detached(self):
        forest = extract_cte_forest(self.tree, self.metadata)

        self.assertEqual([child.id for child in forest.main_tree.children], ["0-0", "0-2"])
        self.assertEqual(len(forest.cte_trees), 1)

        cte_name, subtree = forest.cte_trees[0]
        self.assertEqual(cte_name, "orders")
        self.assertEqual(subtree.id, "0-1")
        self.assertEqual(count_nodes(subtree), 2)

    def test_original_tree_is_untouched(self):
        forest = extract_cte_forest(self.tree, self.metadata)

        self.assertEqual(count_nodes(self.tree), 5)
        self.assertIsNotNone(find_node_by_id(self.tree, "0-1-0"))
        for node in iter_nodes(forest.main_tree):
            self.assertIsNot(node, find_node_by_id(self.tree, node.id))

    def test_references_are_copied(self):
        forest = extract_cte_forest(self.tree, self.metadata)
        forest.cte_references[0].target_cte_node_id = None

        self.assertEqual(self.metadata.cte_references[0].target_cte_node_id, "0-1")


if __name__ == "__main__":
    unittest.main()
