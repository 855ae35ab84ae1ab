"""
Graph comparison statistics.

Available metrics (true graph first, estimated graph second):
- adjacency precision / recall / F1 (skeleton)
- arrowhead precision / recall / F1 (endpoint marks)
- orientation precision / recall (directed edges on shared adjacencies)
- SHD: Structural Hamming Distance
- edge and endpoint misclassification tables (pandas DataFrames)

Graphs are matched by node name, so the two graphs may come from different
searches or be parsed from text.
"""

import itertools
import math
from dataclasses import dataclass
from typing import Dict, List

import pandas as pd

from .graph import Graph, NULL, CIRCLE, ARROW, TAIL

_SYMBOL = {TAIL: "-", ARROW: ">", CIRCLE: "o"}
_LEFT = {TAIL: "-", ARROW: "<", CIRCLE: "o"}
_MARK_NAMES = {TAIL: "Tail", ARROW: "Arrow", CIRCLE: "Circle", NULL: "Null"}

EDGE_TYPES = ["-->", "<--", "<->", "o->", "<-o", "o-o", "---", "--o", "o--", "No Edge"]


@dataclass(frozen=True)
class Confusion:
    tp: int
    fp: int
    fn: int

    @property
    def precision(self) -> float:
        return self.tp / (self.tp + self.fp) if self.tp + self.fp else math.nan

    @property
    def recall(self) -> float:
        return self.tp / (self.tp + self.fn) if self.tp + self.fn else math.nan


def f1(precision: float, recall: float) -> float:
    if math.isnan(precision) or math.isnan(recall) or precision + recall == 0:
        return math.nan
    return 2 * precision * recall / (precision + recall)


# --------------------------------------------------------------------
# Name-level helpers
# --------------------------------------------------------------------


def _names(true_graph: Graph, est_graph: Graph) -> List[str]:
    return sorted(set(true_graph.node_names) | set(est_graph.node_names))


def _adjacent(graph: Graph, a: str, b: str) -> bool:
    return graph.contains(a) and graph.contains(b) and graph.is_adjacent(a, b)


def _mark(graph: Graph, a: str, b: str) -> int:
    """Mark at b on a *-* b, NULL if absent."""
    return graph.get_endpoint(a, b) if _adjacent(graph, a, b) else NULL


def _edge_type(graph: Graph, a: str, b: str) -> str:
    if not _adjacent(graph, a, b):
        return "No Edge"
    return f"{_LEFT[_mark(graph, b, a)]}-{_SYMBOL[_mark(graph, a, b)]}"


# --------------------------------------------------------------------
# Confusions
# --------------------------------------------------------------------


def adjacency_confusion(true_graph: Graph, est_graph: Graph) -> Confusion:
    tp = fp = fn = 0
    for a, b in itertools.combinations(_names(true_graph, est_graph), 2):
        t, e = _adjacent(true_graph, a, b), _adjacent(est_graph, a, b)
        tp += t and e
        fp += e and not t
        fn += t and not e
    return Confusion(tp, fp, fn)


def arrowhead_confusion(true_graph: Graph, est_graph: Graph) -> Confusion:
    """Counts arrowheads at each endpoint, over all ordered pairs."""
    tp = fp = fn = 0
    for a, b in itertools.permutations(_names(true_graph, est_graph), 2):
        t = _mark(true_graph, a, b) == ARROW
        e = _mark(est_graph, a, b) == ARROW
        tp += t and e
        fp += e and not t
        fn += t and not e
    return Confusion(tp, fp, fn)


def orientation_confusion(true_graph: Graph, est_graph: Graph) -> Confusion:
    """Directed edges a --> b on adjacencies the two graphs share."""
    tp = fp = fn = 0
    for a, b in itertools.permutations(_names(true_graph, est_graph), 2):
        if not (_adjacent(true_graph, a, b) and _adjacent(est_graph, a, b)):
            continue
        t = true_graph.is_parent_of(a, b)
        e = est_graph.is_parent_of(a, b)
        tp += t and e
        fp += e and not t
        fn += t and not e
    return Confusion(tp, fp, fn)


def adjacency_precision(true_graph: Graph, est_graph: Graph) -> float:
    return adjacency_confusion(true_graph, est_graph).precision


def adjacency_recall(true_graph: Graph, est_graph: Graph) -> float:
    return adjacency_confusion(true_graph, est_graph).recall


def arrowhead_precision(true_graph: Graph, est_graph: Graph) -> float:
    return arrowhead_confusion(true_graph, est_graph).precision


def arrowhead_recall(true_graph: Graph, est_graph: Graph) -> float:
    return arrowhead_confusion(true_graph, est_graph).recall


def structural_hamming_distance(true_graph: Graph, est_graph: Graph) -> int:
    """One for each pair whose adjacency or endpoint marks differ."""
    distance = 0
    for a, b in itertools.combinations(_names(true_graph, est_graph), 2):
        if _edge_type(true_graph, a, b) != _edge_type(est_graph, a, b):
            distance += 1
    return distance


# --------------------------------------------------------------------
# Summaries
# --------------------------------------------------------------------


def compare_graphs(true_graph: Graph, est_graph: Graph) -> Dict[str, float]:
    adj = adjacency_confusion(true_graph, est_graph)
    arrow = arrowhead_confusion(true_graph, est_graph)
    orient = orientation_confusion(true_graph, est_graph)
    return {
        'adj_precision': adj.precision,
        'adj_recall': adj.recall,
        'f1_adj': f1(adj.precision, adj.recall),
        'arrow_precision': arrow.precision,
        'arrow_recall': arrow.recall,
        'f1_arrow': f1(arrow.precision, arrow.recall),
        'orientation_precision': orient.precision,
        'orientation_recall': orient.recall,
        'shd': float(structural_hamming_distance(true_graph, est_graph)),
        'adj_tp': float(adj.tp),
        'adj_fp': float(adj.fp),
        'adj_fn': float(adj.fn),
        'arrow_tp': float(arrow.tp),
        'arrow_fp': float(arrow.fp),
        'arrow_fn': float(arrow.fn),
    }


def comparison_table(graphs: Dict[str, Graph], true_graph: Graph) -> pd.DataFrame:
    """One row of compare_graphs() per named estimate."""
    rows = {name: compare_graphs(true_graph, graph) for name, graph in graphs.items()}
    return pd.DataFrame.from_dict(rows, orient="index")


def edge_misclassification_counts(true_graph: Graph, est_graph: Graph) -> pd.DataFrame:
    """
    Rows: edge type in the true graph; columns: edge type in the estimate.
    Each unordered pair is read left to right in name order.
    """
    table = pd.DataFrame(0, index=EDGE_TYPES, columns=EDGE_TYPES)
    for a, b in itertools.combinations(_names(true_graph, est_graph), 2):
        t, e = _edge_type(true_graph, a, b), _edge_type(est_graph, a, b)
        if t == "No Edge" and e == "No Edge":
            continue
        table.loc[t, e] += 1
    table.index.name = "true"
    table.columns.name = "estimated"
    return table


def endpoint_misclassification_counts(true_graph: Graph, est_graph: Graph) -> pd.DataFrame:
    """Rows: mark in the true graph; columns: mark at the same endpoint in the estimate."""
    labels = [_MARK_NAMES[m] for m in (TAIL, ARROW, CIRCLE, NULL)]
    table = pd.DataFrame(0, index=labels, columns=labels)
    for a, b in itertools.permutations(_names(true_graph, est_graph), 2):
        if not (_adjacent(true_graph, a, b) or _adjacent(est_graph, a, b)):
            continue
        t, e = _mark(true_graph, a, b), _mark(est_graph, a, b)
        table.loc[_MARK_NAMES[t], _MARK_NAMES[e]] += 1
    table.index.name = "true"
    table.columns.name = "estimated"
    return table


def format_metrics_table(metrics: Dict[str, float], algorithm_name: str = "") -> str:
    lines = []
    if algorithm_name:
        lines.append(f"Metrics for {algorithm_name}:")
    lines.append("-" * 40)

    # Core metrics first
    core_order = ['adj_precision', 'adj_recall', 'f1_adj',
                  'arrow_precision', 'arrow_recall', 'f1_arrow', 'shd']
    for key in core_order:
        if key in metrics:
            lines.append(f"  {key:20s}: {metrics[key]:.4f}")
    for key, value in metrics.items():
        if key not in core_order:
            lines.append(f"  {key:20s}: {value:.4f}")
    return "\n".join(lines)
