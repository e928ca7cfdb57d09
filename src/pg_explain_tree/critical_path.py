"""
Critical path analysis

The critical path is the root-to-leaf path that dominates a metric. Two
analyzers share one descent helper and differ only in how the next child
is chosen:

* analyze_execution_time() follows the child with the largest own metric.
* analyze_cost() follows the child with the largest subtree metric, the
  node's own metric plus the best subtree metric among its children.

Plans run without ANALYZE carry no timing data, so cost substitutes as the
dominance metric there.
"""

from typing import Callable

from pg_explain_tree.helper import FormatHelper, MetricSelectionError
from pg_explain_tree.plan_tree import EnrichedNode, assign_node_ids, iter_nodes

MetricExtractor = Callable[[EnrichedNode], float]


def _to_float(value) -> float:
    if value is None or value == FormatHelper.NOT_AVAILABLE or isinstance(value, bool):
        return 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def time_metric(node: EnrichedNode) -> float:
    """Actual total time of the node in milliseconds."""
    return _to_float(node.details.get("actualTime"))


def cost_metric(node: EnrichedNode) -> float:
    """Estimated total cost of the node."""
    return _to_float(node.details.get("cost"))


def rows_metric(node: EnrichedNode) -> float:
    """Actual rows produced by the node."""
    return _to_float(node.details.get("actualRows"))


def io_read_time_metric(node: EnrichedNode) -> float:
    """Time spent reading blocks, to spot I/O bound nodes."""
    return _to_float(node.details.get("ioReadTime"))


def memory_metric(node: EnrichedNode) -> float:
    """Peak memory usage in kB."""
    return _to_float(node.details.get("peakMemoryUsage"))


def subtree_metric(node: EnrichedNode, metric: MetricExtractor) -> float:
    """Own metric plus the best subtree metric among the children."""
    total = metric(node)
    if node.children:
        total += max(max(subtree_metric(child, metric) for child in node.children), 0)
    return total


def mark_critical_path(path: list[EnrichedNode]) -> None:
    for node in path:
        node.is_on_critical_path = True


def reset_critical_path(root: EnrichedNode) -> None:
    """Clear the critical path flag on every node of the tree."""
    for node in iter_nodes(root):
        node.is_on_critical_path = False


def _descend(
    root: EnrichedNode,
    metric: MetricExtractor,
    child_score: Callable[[EnrichedNode], float],
) -> list[EnrichedNode]:
    """
    Walk from *root* to a leaf, always following the child with the highest
    ``child_score``; the first child wins ties

    Every leaf reached is compared by the cumulative metric along its path
    and the strictly best one is kept. The first leaf always sets the
    initial best, so a path is returned even when all metrics are zero.
    """
    best_path: list[EnrichedNode] = []
    best_value = None

    def visit(node, current_path, cumulative):
        nonlocal best_path, best_value

        value = cumulative + metric(node)
        path = current_path + [node]

        if not node.children:
            if best_value is None or value > best_value:
                best_value = value
                best_path = path
            return

        chosen = node.children[0]
        chosen_score = child_score(chosen)
        for child in node.children[1:]:
            score = child_score(child)
            if score > chosen_score:
                chosen, chosen_score = child, score

        visit(chosen, path, value)

    visit(root, [], 0)
    mark_critical_path(best_path)
    return best_path


def analyze_execution_time(
    root: EnrichedNode, metric: MetricExtractor = time_metric
) -> list[EnrichedNode]:
    """
    Greedy local descent: at each node continue with the child whose own
    metric value is largest

    The nodes of the returned path are flagged ``is_on_critical_path``.
    Flags from earlier runs are left in place.
    """
    return _descend(root, metric, metric)


def analyze_cost(
    root: EnrichedNode, metric: MetricExtractor = cost_metric
) -> list[EnrichedNode]:
    """
    Descent by subtree metric: at each node continue with the child whose
    best root-to-leaf sum below it is largest

    The nodes of the returned path are flagged ``is_on_critical_path``.
    Flags from earlier runs are left in place.
    """
    return _descend(root, metric, lambda child: subtree_metric(child, metric))


ANALYZERS = {
    "time": (analyze_execution_time, time_metric),
    "cost": (analyze_cost, cost_metric),
}


def calculate_critical_path(
    root: EnrichedNode,
    metric: str = "time",
    custom_extractor: MetricExtractor | None = None,
) -> list[EnrichedNode]:
    """
    Compute and mark the critical path of the tree

    Args:
        root: Root of the enriched plan tree. Node ids are assigned when the
            root has none; existing ids are kept.
        metric: ``"time"``, ``"cost"`` or ``"custom"``.
        custom_extractor: Metric function, required for ``"custom"``. It is
            analyzed like execution time.

    Raises MetricSelectionError for an unknown metric or a custom metric
    without extractor.
    """
    if root.id is None:
        assign_node_ids(root)

    if metric == "custom":
        if custom_extractor is None:
            raise MetricSelectionError("Custom metric requires a metric extractor")
        return analyze_execution_time(root, custom_extractor)

    if metric not in ANALYZERS:
        raise MetricSelectionError(f"Invalid critical path metric: {metric!r}")

    analyzer, extractor = ANALYZERS[metric]
    return analyzer(root, extractor)
