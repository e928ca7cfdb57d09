"""
Enriched plan tree: node type, transformer and traversal utilities
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from pg_explain_tree.enricher import determine_edge_label, enrich_node
from pg_explain_tree.helper import MetricsHelper, PlanHelper


@dataclass(eq=False)
class EnrichedNode:
    """
    One node of the enriched plan tree

    Nodes compare by identity. After construction only
    ``is_on_critical_path`` is updated, by the critical path analyzers.
    """

    name: str
    details: dict[str, Any]
    raw_node: dict[str, Any]
    children: list["EnrichedNode"] = field(default_factory=list)
    edge_label: str | None = None
    id: str | None = None
    is_on_critical_path: bool = False

    def to_dict(self, include_raw=False) -> dict[str, Any]:
        """Serialize the subtree rooted at this node to JSON-ready data."""
        data = {
            "id": self.id,
            "name": self.name,
            "details": dict(self.details),
            "edgeLabel": self.edge_label,
            "isOnCriticalPath": self.is_on_critical_path,
            "children": [child.to_dict(include_raw) for child in self.children],
        }
        if include_raw:
            data["rawNode"] = {
                key: value for key, value in self.raw_node.items() if key != "Plans"
            }
        return data


TreeVisitor = Callable[[EnrichedNode, int, "EnrichedNode | None"], None]


def transform_node(
    raw: dict[str, Any],
    parent: dict[str, Any] | None = None,
    estimation_threshold: float = MetricsHelper.DEFAULT_ESTIMATION_THRESHOLD,
) -> EnrichedNode:
    """
    Build the enriched subtree for *raw*

    The edge label is computed against the raw parent node. Children are
    taken from the raw ``Plans`` list in their original order. Node ids are
    not assigned here.
    """
    node = EnrichedNode(
        name=raw.get("Node Type") or "Unknown",
        details=enrich_node(raw, estimation_threshold),
        raw_node=raw,
        edge_label=determine_edge_label(raw, parent),
    )

    for child in raw.get("Plans") or []:
        node.children.append(transform_node(child, raw, estimation_threshold))

    return node


def transform_plan(
    plan_data: Any,
    estimation_threshold: float = MetricsHelper.DEFAULT_ESTIMATION_THRESHOLD,
) -> EnrichedNode:
    """Unwrap an EXPLAIN document and transform its root plan node."""
    document = PlanHelper.unwrap_plan(plan_data)
    return transform_node(document["Plan"], None, estimation_threshold)


def assign_node_ids(node: EnrichedNode, prefix: str = "0") -> None:
    """Give every node an id made of its child indices, e.g. ``0-1-0``."""
    node.id = prefix
    for index, child in enumerate(node.children):
        assign_node_ids(child, f"{prefix}-{index}")


def walk_tree(
    node: EnrichedNode,
    visitor: TreeVisitor,
    depth: int = 0,
    parent: EnrichedNode | None = None,
) -> None:
    """Call ``visitor(node, depth, parent)`` for every node, pre-order."""
    visitor(node, depth, parent)
    for child in node.children:
        walk_tree(child, visitor, depth + 1, node)


def iter_nodes(node: EnrichedNode) -> Iterator[EnrichedNode]:
    """Yield the nodes of the subtree in pre-order."""
    yield node
    for child in node.children:
        yield from iter_nodes(child)


def find_node_by_id(root: EnrichedNode, node_id: str) -> EnrichedNode | None:
    """Return the first node in document order carrying *node_id*."""
    if root.id == node_id:
        return root

    for child in root.children:
        found = find_node_by_id(child, node_id)
        if found is not None:
            return found

    return None


def get_path_to_node(root: EnrichedNode, target: EnrichedNode) -> list[EnrichedNode]:
    """
    Return the nodes from *root* down to *target*, both included

    A node matches when it is *target* or shares its id. An empty list
    means *target* is not part of the tree.
    """
    path: list[EnrichedNode] = []

    def matches(node):
        if node is target:
            return True
        return target.id is not None and node.id == target.id

    def search(node):
        path.append(node)
        if matches(node):
            return True
        for child in node.children:
            if search(child):
                return True
        path.pop()
        return False

    search(root)
    return path


def count_nodes(node: EnrichedNode) -> int:
    """Return the number of nodes in the subtree."""
    return 1 + sum(count_nodes(child) for child in node.children)


def get_leaf_nodes(node: EnrichedNode) -> list[EnrichedNode]:
    """Return the nodes without children, left to right."""
    if not node.children:
        return [node]

    leaves: list[EnrichedNode] = []
    for child in node.children:
        leaves.extend(get_leaf_nodes(child))
    return leaves
