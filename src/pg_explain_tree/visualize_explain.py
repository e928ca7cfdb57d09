#!/usr/bin/env python3
#
# PostgreSQL EXPLAIN Tree Visualizer
#
# This tool reads the JSON output of EXPLAIN (ANALYZE, BUFFERS, FORMAT JSON),
# marks the critical path of the plan and writes a Graphviz graph or an
# enriched JSON document.
###############################################

import argparse
import json
import sys

import graphviz

from pg_explain_tree import __version__
from pg_explain_tree.critical_path import calculate_critical_path
from pg_explain_tree.cte import analyze_ctes
from pg_explain_tree.grid import plan_statistics, to_grid_rows
from pg_explain_tree.helper import (
    FormatHelper,
    MetricsHelper,
    NodeKindHelper,
    PlanHelper,
)
from pg_explain_tree.plan_tree import count_nodes, transform_plan, walk_tree

EXAMPLES = """
usage examples:
# Create a graph (Graphviz DOT source) from EXPLAIN output
visualize_explain -i plan.json -o plan.dot

# Use the estimated cost instead of the execution time for the critical path
visualize_explain -i plan.json -o plan.dot --metric cost

# Export the enriched tree as JSON
visualize_explain -i plan.json -o tree.json

# Print the plan as a grid
visualize_explain -i plan.json --grid
"""

parser = argparse.ArgumentParser(
    description="PostgreSQL EXPLAIN Tree Visualizer - Marks the critical path of a query plan",
    formatter_class=argparse.RawDescriptionHelpFormatter,
    epilog=EXAMPLES,
)
parser.add_argument(
    "-V",
    "--version",
    action="version",
    version=f"{parser.prog} ({__version__})",
)
parser.add_argument(
    "-i",
    "--input",
    type=str,
    required=True,
    metavar="FILE",
    help="input file with EXPLAIN (FORMAT JSON) output",
)
parser.add_argument(
    "-o",
    "--output",
    type=str,
    metavar="FILE",
    help="output file (.json for the enriched tree, Graphviz DOT source otherwise)",
)
parser.add_argument(
    "-m",
    "--metric",
    choices=["time", "cost"],
    default="time",
    help="metric that defines the critical path (default: time)",
)
parser.add_argument(
    "--estimation-threshold",
    dest="estimation_threshold",
    type=float,
    default=MetricsHelper.DEFAULT_ESTIMATION_THRESHOLD,
    metavar="FACTOR",
    help="flag row estimates off by more than this factor (default: 2.0)",
)
parser.add_argument(
    "--grid",
    action="store_true",
    help="print the plan as a grid on stdout",
)
parser.add_argument(
    "-v",
    "--verbose",
    action="store_true",
    help="be verbose",
)


class ExplainVisualizer:
    """Visualizer for a single EXPLAIN plan"""

    def __init__(self, args):
        self.args = args
        self.plan_data = None
        self.tree = None
        self.critical_path = []
        self.cte_metadata = None

    def log(self, message):
        """Print verbose message"""
        if self.args.verbose:
            print(message, file=sys.stderr)

    def load_plan(self):
        """Load the plan and run the analyses"""
        self.log(f"Loading plan from {self.args.input}...")
        self.plan_data = PlanHelper.load_from_file(self.args.input)

        self.tree = transform_plan(self.plan_data, self.args.estimation_threshold)
        self.log(f"Plan has {count_nodes(self.tree)} nodes")

        self.critical_path = calculate_critical_path(self.tree, self.args.metric)
        self.log(
            f"Critical path by {self.args.metric}: "
            + " -> ".join(node.name for node in self.critical_path)
        )

        self.cte_metadata = analyze_ctes(self.tree)
        if self.cte_metadata.cte_definitions:
            self.log(f"Found {len(self.cte_metadata.cte_definitions)} CTEs")
        unlinked = [
            ref
            for ref in self.cte_metadata.cte_references
            if ref.target_cte_node_id is None
        ]
        if unlinked:
            self.log(f"  {len(unlinked)} CTE Scan nodes reference unknown CTEs")

    @staticmethod
    def _node_label(node):
        """Build the multi-line label of a plan node."""
        details = node.details
        lines = [node.name]

        if details["relation"]:
            relation = details["relation"]
            if details["alias"] and details["alias"] != relation:
                relation = f"{relation} ({details['alias']})"
            lines.append(f"on {relation}")

        for key in NodeKindHelper.detail_keys(node.name):
            if key in ("relation", "alias"):
                continue
            value = details.get(key)
            if value is not None:
                lines.append(f"{key}: {value}")

        lines.append(f"Cost: {details['cost']}")
        if details["actualTime"] != FormatHelper.NOT_AVAILABLE:
            lines.append(f"Time: {details['actualTime']} ms")
        lines.append(f"Rows: {details['planRows']} / {details['actualRows']}")

        return "\n".join(lines)

    def create_graph(self):
        """Create the graph of the loaded plan"""
        dot: "graphviz.Digraph" = graphviz.Digraph(comment="Query Plan")
        dot.attr(rankdir="TB", splines="spline", nodesep="0.4", ranksep="0.6")
        dot.attr(
            "node", shape="box", style="rounded,filled", fontname="Arial", fontsize="9"
        )
        dot.attr("edge", fontname="Arial", fontsize="9", arrowsize="0.7")

        def add_node(node, _depth, parent):
            fillcolor = "lightblue"
            penwidth = "1"
            color = "black"
            if node.is_on_critical_path:
                fillcolor = "lightsalmon"
                penwidth = "3"
            if node.details["estimationOff"] and node.details["actualRows"] != FormatHelper.NOT_AVAILABLE:
                color = "red3"

            dot.node(
                node.id,
                self._node_label(node),
                fillcolor=fillcolor,
                penwidth=penwidth,
                color=color,
            )

            if parent is None:
                return

            edge_attrs = {"dir": "back"}
            if node.edge_label:
                edge_attrs["xlabel"] = node.edge_label
            if node.is_on_critical_path and parent.is_on_critical_path:
                edge_attrs.update(color="firebrick", penwidth="2")
            dot.edge(parent.id, node.id, **edge_attrs)

        walk_tree(self.tree, add_node)

        # CTE Scan nodes point back to the subplan defining their CTE
        for reference in self.cte_metadata.cte_references:
            if reference.target_cte_node_id is None:
                continue
            dot.edge(
                reference.target_cte_node_id,
                reference.node_id,
                style="dashed",
                color="gray50",
                xlabel=f"CTE {reference.cte_name}",
                constraint="false",
            )

        stats_lines = ["Statistics"]
        for label, value in plan_statistics(self.plan_data):
            stats_lines.append(f"{label}: {value}")
        stats_lines.append(f"Critical path ({self.args.metric}): {len(self.critical_path)} nodes")
        dot.node("stats", "\\n".join(stats_lines), shape="note", fillcolor="lightyellow")

        legend_label = (
            "Legend\\n"
            "Salmon node: critical path\\n"
            "Red border: row estimate off\\n"
            "Dashed edge: CTE reference"
        )
        dot.node("legend", legend_label, shape="note", fillcolor="white")

        return dot

    def to_document(self):
        """Return the analysis results as JSON-ready data"""
        plan = self.plan_data["Plan"]
        document = {
            "tree": self.tree.to_dict(),
            "criticalPath": [node.id for node in self.critical_path],
            "metric": self.args.metric,
            "rootCost": plan.get("Total Cost") or 0,
            "rootTime": plan.get("Actual Total Time") or 0,
            "statistics": dict(plan_statistics(self.plan_data)),
        }
        document.update(self.cte_metadata.to_dict())
        return document

    def print_grid(self):
        """Print one line per plan node"""
        header = f"{'id':<12} {'node':<40} {'cost':>12} {'cost%':>6} {'time':>10} {'time%':>6} {'rows':>10}  info"
        print(header)
        print("-" * len(header))
        for row in to_grid_rows(self.tree, self.plan_data):
            marker = "*" if row.on_critical_path else " "
            node_type = f"{'  ' * row.depth}{marker}{row.node_type}"
            print(
                f"{row.id:<12} {node_type:<40} {row.cost:>12.2f} {row.cost_percent:>6.1f} "
                f"{row.time:>10.3f} {row.time_percent:>6.1f} {row.actual_rows:>10}  {row.key_info}"
            )

    def visualize(self):
        """Create visualization"""
        self.load_plan()

        if self.args.grid:
            self.print_grid()

        output_path = self.args.output
        if not output_path:
            return

        if output_path.endswith(".json"):
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(self.to_document(), f, indent=2)
            self.log(f"JSON file created: {output_path}")
        else:
            dot = self.create_graph()
            dot.save(output_path)
            self.log(f"Graph file created: {output_path}")

        self.log("Visualization complete")


def main():
    """Main entry point"""
    args = parser.parse_args()

    if not args.output and not args.grid:
        parser.error("nothing to do, pass --output and/or --grid")

    if args.estimation_threshold <= 1:
        parser.error("--estimation-threshold must be greater than 1")

    visualizer = ExplainVisualizer(args)
    try:
        visualizer.visualize()
    except FileNotFoundError as e:
        print(f"Error: Input file not found: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
