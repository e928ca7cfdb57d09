"""
Helper classes for pg_explain_tree
"""

import json
import os
from enum import IntEnum, auto
from typing import Any


class PlanStructureError(ValueError):
    """Raised when an EXPLAIN document does not contain a usable plan."""


class MetricSelectionError(ValueError):
    """Raised when an unknown critical path metric is requested."""


class PlanHelper:
    """Load and unwrap EXPLAIN (FORMAT JSON) documents"""

    @staticmethod
    def parse_plan(json_string: str) -> dict[str, Any]:
        """Parse an EXPLAIN JSON string and return the unwrapped document."""
        try:
            plan_data = json.loads(json_string)
        except json.JSONDecodeError as error:
            raise PlanStructureError(f"Could not parse EXPLAIN JSON: {error}") from error

        return PlanHelper.unwrap_plan(plan_data)

    @staticmethod
    def load_from_file(filepath) -> dict[str, Any]:
        """Read an EXPLAIN JSON file and return the unwrapped document.

        Raises FileNotFoundError if the file does not exist or
        PlanStructureError if it does not hold a plan.
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Plan file not found: {filepath}")

        with open(filepath, "r", encoding="utf-8") as f:
            return PlanHelper.parse_plan(f.read())

    @staticmethod
    def unwrap_plan(plan_data: Any) -> dict[str, Any]:
        """
        Return the plan document, unwrapping the one-element array
        PostgreSQL emits for FORMAT JSON
        """
        if isinstance(plan_data, list):
            if not plan_data:
                raise PlanStructureError("EXPLAIN output is an empty array")
            plan_data = plan_data[0]

        if not isinstance(plan_data, dict) or not isinstance(plan_data.get("Plan"), dict):
            raise PlanStructureError("Invalid EXPLAIN plan structure: missing 'Plan'")

        return plan_data


class NodeKind(IntEnum):
    """Closed classification of plan node types"""

    GENERIC = auto()
    SEQ_SCAN = auto()
    INDEX_SCAN = auto()
    BITMAP_SCAN = auto()
    CTE_SCAN = auto()
    OTHER_SCAN = auto()
    JOIN = auto()
    HASH = auto()
    AGGREGATE = auto()
    SORT = auto()
    PARALLEL = auto()
    SET_OPERATION = auto()


class NodeKindHelper:
    """
    Map node type names to a NodeKind and to the detail keys that
    describe nodes of that kind

    Adding support for a node type is an edit of the tables below.
    """

    KIND_BY_NODE_TYPE: dict[str, NodeKind] = {
        "Seq Scan": NodeKind.SEQ_SCAN,
        "Parallel Seq Scan": NodeKind.SEQ_SCAN,
        "Sample Scan": NodeKind.SEQ_SCAN,
        "Index Scan": NodeKind.INDEX_SCAN,
        "Index Only Scan": NodeKind.INDEX_SCAN,
        "Bitmap Index Scan": NodeKind.INDEX_SCAN,
        "Bitmap Heap Scan": NodeKind.BITMAP_SCAN,
        "CTE Scan": NodeKind.CTE_SCAN,
        "Subquery Scan": NodeKind.OTHER_SCAN,
        "Function Scan": NodeKind.OTHER_SCAN,
        "Values Scan": NodeKind.OTHER_SCAN,
        "WorkTable Scan": NodeKind.OTHER_SCAN,
        "Foreign Scan": NodeKind.OTHER_SCAN,
        "Tid Scan": NodeKind.OTHER_SCAN,
        "Nested Loop": NodeKind.JOIN,
        "Hash Join": NodeKind.JOIN,
        "Merge Join": NodeKind.JOIN,
        "Hash": NodeKind.HASH,
        "Aggregate": NodeKind.AGGREGATE,
        "GroupAggregate": NodeKind.AGGREGATE,
        "HashAggregate": NodeKind.AGGREGATE,
        "WindowAgg": NodeKind.AGGREGATE,
        "Sort": NodeKind.SORT,
        "Incremental Sort": NodeKind.SORT,
        "Gather": NodeKind.PARALLEL,
        "Gather Merge": NodeKind.PARALLEL,
        "Append": NodeKind.SET_OPERATION,
        "Merge Append": NodeKind.SET_OPERATION,
        "MergeAppend": NodeKind.SET_OPERATION,
        "Recursive Union": NodeKind.SET_OPERATION,
        "SetOp": NodeKind.SET_OPERATION,
    }

    DETAIL_KEYS_BY_KIND: dict[NodeKind, tuple[str, ...]] = {
        NodeKind.GENERIC: (),
        NodeKind.SEQ_SCAN: ("relation", "alias", "filter", "rowsRemovedByFilter"),
        NodeKind.INDEX_SCAN: ("relation", "indexName", "indexCond", "heapFetches"),
        NodeKind.BITMAP_SCAN: (
            "relation",
            "exactHeapBlocks",
            "lossyHeapBlocks",
            "rowsRemovedByFilter",
        ),
        NodeKind.CTE_SCAN: ("cteName", "alias", "filter"),
        NodeKind.OTHER_SCAN: ("alias", "filter"),
        NodeKind.JOIN: ("joinType", "hashCond", "joinFilter", "rowsRemovedByJoinFilter"),
        NodeKind.HASH: ("hashBuckets", "hashBatches", "peakMemoryUsage"),
        NodeKind.AGGREGATE: ("strategy", "groupKey", "hashAggBatches", "peakMemoryUsage"),
        NodeKind.SORT: ("sortKey", "sortMethod", "sortSpaceUsed", "sortSpaceType"),
        NodeKind.PARALLEL: ("workersPlanned", "workersLaunched"),
        NodeKind.SET_OPERATION: ("subplanName",),
    }

    @staticmethod
    def kind_from_name(name):
        """Return the NodeKind for a node type name."""
        return NodeKindHelper.KIND_BY_NODE_TYPE.get(name, NodeKind.GENERIC)

    @staticmethod
    def detail_keys(name):
        """Return the detail keys worth displaying for a node type name."""
        kind = NodeKindHelper.kind_from_name(name)
        return NodeKindHelper.DETAIL_KEYS_BY_KIND[kind]


class MetricsHelper:
    """Derived per-node performance metrics"""

    DEFAULT_ESTIMATION_THRESHOLD = 2.0

    @staticmethod
    def estimation_accuracy(plan_rows, actual_rows) -> float:
        """Ratio of actual to planned rows; 1.0 when nothing was planned."""
        if not plan_rows:
            return 1.0
        return actual_rows / plan_rows

    @staticmethod
    def is_estimation_off(accuracy, threshold=DEFAULT_ESTIMATION_THRESHOLD) -> bool:
        """Return True when *accuracy* lies outside [1/threshold, threshold]."""
        return accuracy < (1 / threshold) or accuracy > threshold

    @staticmethod
    def cache_hit_rate(hit_blocks, read_blocks) -> float:
        """Percentage of shared buffer accesses served from cache."""
        total = hit_blocks + read_blocks
        if total == 0:
            return 0
        return (hit_blocks / total) * 100

    @staticmethod
    def selectivity(actual_rows, removed_rows) -> float:
        """Percentage of scanned rows that survived the filter."""
        total = actual_rows + removed_rows
        if total == 0:
            return 0
        return (actual_rows / total) * 100


class FormatHelper:
    """Display formatting for numbers, times and sizes"""

    NOT_AVAILABLE = "N/A"

    @staticmethod
    def _is_number(value):
        if isinstance(value, bool) or value is None:
            return False
        try:
            float(value)
        except (TypeError, ValueError):
            return False
        return float(value) == float(value)

    @staticmethod
    def format_number(value, decimals=2):
        """Format *value* with a fixed number of decimals or return 'N/A'."""
        if not FormatHelper._is_number(value):
            return FormatHelper.NOT_AVAILABLE
        return f"{float(value):.{decimals}f}"

    @staticmethod
    def format_time(ms):
        """Format a duration given in milliseconds."""
        if not FormatHelper._is_number(ms):
            return FormatHelper.NOT_AVAILABLE
        return f"{float(ms):.3f} ms"

    @staticmethod
    def format_bytes(size):
        """Format a byte count into a human-readable size."""
        if not FormatHelper._is_number(size):
            return FormatHelper.NOT_AVAILABLE

        if size < 1024:
            return f"{size} B"
        if size < 1024 * 1024:
            return f"{size / 1024:.1f} KB"
        return f"{size / (1024 * 1024):.1f} MB"
