"""
Flat, row-per-node view of an enriched plan tree for grid display
"""

from dataclasses import dataclass
from typing import Any

from pg_explain_tree.critical_path import cost_metric, time_metric
from pg_explain_tree.helper import FormatHelper, PlanHelper
from pg_explain_tree.plan_tree import EnrichedNode, walk_tree


@dataclass(eq=False)
class GridRow:
    id: str
    node_type: str
    table: str
    alias: str
    cost: float
    cost_percent: float
    time: float
    time_percent: float
    plan_rows: int
    actual_rows: int
    loops: int
    key_info: str
    depth: int
    on_critical_path: bool
    node: EnrichedNode


def _as_int(value) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _percent(value, total) -> float:
    if total <= 0:
        return 0
    return round(value / total * 100, 1)


def extract_key_info(node: EnrichedNode) -> str:
    """Summarize join, filter, index and sort information of a node."""
    details = node.details
    info = []

    if details["joinType"]:
        info.append(f"{details['joinType']} Join")
    if details["hashCond"]:
        info.append(f"Hash: {details['hashCond']}")
    if details["filter"]:
        info.append(f"Filter: {details['filter']}")
    if details["indexName"]:
        info.append(f"Index: {details['indexName']}")
    if details["sortKey"]:
        info.append(f"Sort: {details['sortKey']}")

    return " | ".join(info) or "-"


def to_grid_rows(root: EnrichedNode, plan_data: Any) -> list[GridRow]:
    """
    Flatten the tree into pre-order rows

    Cost and time percentages are relative to the root plan node of
    *plan_data*.
    """
    plan = PlanHelper.unwrap_plan(plan_data)["Plan"]
    root_cost = plan.get("Total Cost") or 0
    root_time = plan.get("Actual Total Time") or 0

    rows: list[GridRow] = []

    def visit(node, depth, _parent):
        cost = cost_metric(node)
        elapsed = time_metric(node)
        rows.append(
            GridRow(
                id=node.id or f"node-{len(rows)}",
                node_type=node.name,
                table=node.details["relation"] or "",
                alias=node.details["alias"] or "",
                cost=cost,
                cost_percent=_percent(cost, root_cost),
                time=elapsed,
                time_percent=_percent(elapsed, root_time),
                plan_rows=_as_int(node.details["planRows"]),
                actual_rows=_as_int(node.details["actualRows"]),
                loops=_as_int(node.details["loops"]),
                key_info=extract_key_info(node),
                depth=depth,
                on_critical_path=node.is_on_critical_path,
                node=node,
            )
        )

    walk_tree(root, visit)
    return rows


def plan_statistics(plan_data: Any) -> list[tuple[str, str]]:
    """Headline statistics of an EXPLAIN document as display strings."""
    document = PlanHelper.unwrap_plan(plan_data)
    plan = document["Plan"]

    actual_rows = plan.get("Actual Rows")
    return [
        ("Planning Time", FormatHelper.format_time(document.get("Planning Time"))),
        ("Execution Time", FormatHelper.format_time(document.get("Execution Time"))),
        ("Total Cost", FormatHelper.format_number(plan.get("Total Cost"))),
        (
            "Actual Rows",
            FormatHelper.NOT_AVAILABLE if actual_rows is None else str(actual_rows),
        ),
    ]
