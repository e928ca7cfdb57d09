"""
Common Table Expression cross references

A CTE is defined by a subplan whose ``Subplan Name`` is ``CTE <name>`` and
referenced by ``CTE Scan`` nodes carrying ``CTE Name``. PostgreSQL may place
the defining subplan after the first scan site, so references are linked
in two passes.
"""

from dataclasses import dataclass, field, replace

from pg_explain_tree.plan_tree import (
    EnrichedNode,
    assign_node_ids,
    find_node_by_id,
    walk_tree,
)

CTE_PREFIX = "CTE "
CTE_SCAN = "CTE Scan"


@dataclass(eq=False)
class CTEDefinition:
    cte_name: str
    root_node_id: str
    root_node: EnrichedNode


@dataclass
class CTEReference:
    node_id: str
    cte_name: str
    target_cte_node_id: str | None = None


@dataclass
class CTEMetadata:
    cte_definitions: dict[str, CTEDefinition] = field(default_factory=dict)
    cte_references: list[CTEReference] = field(default_factory=list)

    def to_dict(self):
        """JSON-ready view; definition nodes are given by id."""
        return {
            "cteDefinitions": {
                name: {"cteName": cte.cte_name, "rootNodeId": cte.root_node_id}
                for name, cte in self.cte_definitions.items()
            },
            "cteReferences": [
                {
                    "nodeId": ref.node_id,
                    "cteName": ref.cte_name,
                    "targetCTENodeId": ref.target_cte_node_id,
                }
                for ref in self.cte_references
            ],
        }


@dataclass(eq=False)
class CTEForest:
    main_tree: EnrichedNode
    cte_trees: list[tuple[str, EnrichedNode]]
    cte_references: list[CTEReference]


def cte_definition_name(node: EnrichedNode) -> str | None:
    """Return the CTE defined by *node*, or None."""
    subplan_name = node.details.get("subplanName")
    if isinstance(subplan_name, str) and subplan_name.startswith(CTE_PREFIX):
        return subplan_name[len(CTE_PREFIX):]
    return None


def analyze_ctes(root: EnrichedNode) -> CTEMetadata:
    """
    Collect CTE definitions and the CTE Scan nodes referencing them

    Node ids are assigned first when the root has none. References to a
    CTE that is never defined keep ``target_cte_node_id`` None.
    """
    if root.id is None:
        assign_node_ids(root)

    metadata = CTEMetadata()

    def visit(node, _depth, _parent):
        cte_name = cte_definition_name(node)
        if cte_name is not None:
            metadata.cte_definitions[cte_name] = CTEDefinition(cte_name, node.id, node)

        if node.name == CTE_SCAN and node.details.get("cteName"):
            referenced = node.details["cteName"]
            target = metadata.cte_definitions.get(referenced)
            metadata.cte_references.append(
                CTEReference(
                    node_id=node.id,
                    cte_name=referenced,
                    target_cte_node_id=target.root_node_id if target else None,
                )
            )

    walk_tree(root, visit)

    # forward references: the scan was visited before its definition
    for reference in metadata.cte_references:
        if reference.target_cte_node_id is None:
            target = metadata.cte_definitions.get(reference.cte_name)
            if target is not None:
                reference.target_cte_node_id = target.root_node_id

    return metadata


def _clone(node: EnrichedNode) -> EnrichedNode:
    return replace(
        node,
        details=dict(node.details),
        children=[_clone(child) for child in node.children],
    )


def _detach(node: EnrichedNode, node_ids: set[str]) -> None:
    node.children = [child for child in node.children if child.id not in node_ids]
    for child in node.children:
        _detach(child, node_ids)


def extract_cte_forest(root: EnrichedNode, metadata: CTEMetadata) -> CTEForest:
    """
    Split a copy of the tree into the main tree and one tree per CTE

    The definition subtrees are removed from the copied main tree. *root*
    itself is left untouched.
    """
    main_tree = _clone(root)
    definition_ids = {cte.root_node_id for cte in metadata.cte_definitions.values()}

    cte_trees = []
    for cte_name, cte in metadata.cte_definitions.items():
        subtree = find_node_by_id(main_tree, cte.root_node_id)
        if subtree is not None:
            cte_trees.append((cte_name, subtree))

    _detach(main_tree, definition_ids)

    return CTEForest(
        main_tree=main_tree,
        cte_trees=cte_trees,
        cte_references=[replace(ref) for ref in metadata.cte_references],
    )
