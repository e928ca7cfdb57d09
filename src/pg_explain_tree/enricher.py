"""
Normalization of raw EXPLAIN plan nodes

A raw node is keyed by EXPLAIN display names and the keys present depend
on the node type and the EXPLAIN options. enrich_node() maps every raw node
onto the same closed set of camelCase detail keys.
"""

from typing import Any, Callable

from pg_explain_tree.helper import FormatHelper, MetricsHelper

NOT_AVAILABLE = FormatHelper.NOT_AVAILABLE


def _fixed(decimals):
    return lambda value: FormatHelper.format_number(value, decimals)


def _joined(value):
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def _as_is(value):
    return value


# (raw field, detail key, converter, default)
FIELD_TABLE: tuple[tuple[str, str, Callable[[Any], Any], Any], ...] = (
    # Cost & timing
    ("Total Cost", "cost", _fixed(2), NOT_AVAILABLE),
    ("Startup Cost", "startupCost", _fixed(2), NOT_AVAILABLE),
    ("Plan Rows", "planRows", _as_is, NOT_AVAILABLE),
    ("Actual Rows", "actualRows", _as_is, NOT_AVAILABLE),
    ("Actual Total Time", "actualTime", _fixed(3), NOT_AVAILABLE),
    ("Actual Startup Time", "startupTime", _fixed(3), NOT_AVAILABLE),
    ("Actual Loops", "loops", _as_is, 1),
    # Table/index
    ("Relation Name", "relation", _as_is, None),
    ("Alias", "alias", _as_is, None),
    ("Schema", "schema", _as_is, None),
    ("Index Name", "indexName", _as_is, None),
    ("Index Cond", "indexCond", _as_is, None),
    # Join
    ("Join Type", "joinType", _as_is, None),
    ("Hash Cond", "hashCond", _as_is, None),
    ("Join Filter", "joinFilter", _as_is, None),
    ("Inner Unique", "innerUnique", _as_is, None),
    ("Parent Relationship", "parentRelationship", _as_is, None),
    # Filter/sort
    ("Filter", "filter", _as_is, None),
    ("Sort Key", "sortKey", _joined, None),
    ("Sort Method", "sortMethod", _as_is, None),
    ("Sort Space Used", "sortSpaceUsed", _as_is, None),
    ("Sort Space Type", "sortSpaceType", _as_is, None),
    # Aggregate
    ("Strategy", "strategy", _as_is, None),
    ("Group Key", "groupKey", _joined, None),
    ("HashAgg Batches", "hashAggBatches", _as_is, None),
    ("Peak Memory Usage", "peakMemoryUsage", _as_is, None),
    # Hash
    ("Hash Buckets", "hashBuckets", _as_is, None),
    ("Hash Batches", "hashBatches", _as_is, None),
    # Buffers
    ("Shared Hit Blocks", "sharedHitBlocks", _as_is, 0),
    ("Shared Read Blocks", "sharedReadBlocks", _as_is, 0),
    ("Shared Dirtied Blocks", "sharedDirtiedBlocks", _as_is, 0),
    ("Shared Written Blocks", "sharedWrittenBlocks", _as_is, 0),
    ("Local Hit Blocks", "localHitBlocks", _as_is, 0),
    ("Local Read Blocks", "localReadBlocks", _as_is, 0),
    ("Temp Read Blocks", "tempReadBlocks", _as_is, 0),
    ("Temp Written Blocks", "tempWrittenBlocks", _as_is, 0),
    # I/O timing
    ("I/O Read Time", "ioReadTime", _as_is, None),
    ("I/O Write Time", "ioWriteTime", _as_is, None),
    # Rows removed
    ("Rows Removed by Filter", "rowsRemovedByFilter", _as_is, None),
    ("Rows Removed by Join Filter", "rowsRemovedByJoinFilter", _as_is, None),
    # Heap access
    ("Heap Fetches", "heapFetches", _as_is, None),
    ("Exact Heap Blocks", "exactHeapBlocks", _as_is, None),
    ("Lossy Heap Blocks", "lossyHeapBlocks", _as_is, None),
    # Parallel query
    ("Workers Planned", "workersPlanned", _as_is, None),
    ("Workers Launched", "workersLaunched", _as_is, None),
    # VERBOSE output columns
    ("Output", "output", _joined, None),
    # CTE
    ("Subplan Name", "subplanName", _as_is, None),
    ("CTE Name", "cteName", _as_is, None),
)

COMPUTED_KEYS = ("estimationAccuracy", "estimationOff", "cacheHitRate", "selectivity")

DETAIL_KEYS = tuple(field[1] for field in FIELD_TABLE) + COMPUTED_KEYS


def decode_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply FIELD_TABLE to *raw*; absent or null fields take their default."""
    details = {}
    for raw_key, detail_key, convert, default in FIELD_TABLE:
        value = raw.get(raw_key)
        details[detail_key] = default if value is None else convert(value)
    return details


def enrich_node(
    raw: dict[str, Any],
    estimation_threshold: float = MetricsHelper.DEFAULT_ESTIMATION_THRESHOLD,
) -> dict[str, Any]:
    """
    Return the normalized details of one raw plan node

    Args:
        raw: The raw EXPLAIN node. It is not modified.
        estimation_threshold: Factor by which actual rows may deviate from
            planned rows before the estimate counts as off.

    Every key of DETAIL_KEYS is present in the result.
    """
    details = decode_fields(raw)

    plan_rows = raw.get("Plan Rows") or 0
    actual_rows = raw.get("Actual Rows") or 0
    accuracy = MetricsHelper.estimation_accuracy(plan_rows, actual_rows)
    details["estimationAccuracy"] = accuracy
    details["estimationOff"] = MetricsHelper.is_estimation_off(
        accuracy, estimation_threshold
    )

    details["cacheHitRate"] = MetricsHelper.cache_hit_rate(
        details["sharedHitBlocks"], details["sharedReadBlocks"]
    )

    removed = raw.get("Rows Removed by Filter")
    if removed is None:
        details["selectivity"] = None
    else:
        details["selectivity"] = MetricsHelper.selectivity(actual_rows, removed)

    return details


def determine_edge_label(
    raw: dict[str, Any], parent: dict[str, Any] | None
) -> str | None:
    """
    Label the edge from *parent* to *raw*

    Both arguments are raw nodes. The root has no incoming edge. Otherwise
    the hash condition wins over the join filter, which wins over the
    parent relationship.
    """
    if parent is None:
        return None

    for key in ("Hash Cond", "Join Filter", "Parent Relationship"):
        if raw.get(key):
            return raw[key]

    return None
