import unittest
import math
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.comparison import (Confusion, EDGE_TYPES, adjacency_confusion, adjacency_precision,
                                      adjacency_recall, arrowhead_confusion, arrowhead_precision,
                                      arrowhead_recall, compare_graphs, comparison_table,
                                      edge_misclassification_counts, endpoint_misclassification_counts, f1,
                                      format_metrics_table, orientation_confusion, structural_hamming_distance)
from causal_search.graph import Graph


class TestComparison(unittest.TestCase):
    def setUp(self):
        self.true = Graph.from_edge_strings("ABC", ["A --> B", "B --> C"])
        self.est = Graph.from_edge_strings("ABC", ["A --> B", "C --> B", "A o-o C"])

    def test_adjacency(self):
        self.assertEqual(adjacency_confusion(self.true, self.est), Confusion(2, 1, 0))
        self.assertAlmostEqual(adjacency_precision(self.true, self.est), 2 / 3)
        self.assertEqual(adjacency_recall(self.true, self.est), 1.0)

    def test_arrowheads(self):
        self.assertEqual(arrowhead_confusion(self.true, self.est), Confusion(1, 1, 1))
        self.assertEqual(arrowhead_precision(self.true, self.est), 0.5)
        self.assertEqual(arrowhead_recall(self.true, self.est), 0.5)

    def test_orientation(self):
        self.assertEqual(orientation_confusion(self.true, self.est), Confusion(1, 1, 1))

    def test_shd(self):
        self.assertEqual(structural_hamming_distance(self.true, self.est), 2)
        self.assertEqual(structural_hamming_distance(self.true, self.true.copy()), 0)

    def test_compare_graphs(self):
        metrics = compare_graphs(self.true, self.est)
        self.assertAlmostEqual(metrics['f1_adj'], 0.8)
        self.assertAlmostEqual(metrics['f1_arrow'], 0.5)
        self.assertEqual(metrics['shd'], 2.0)
        self.assertEqual(metrics['adj_fp'], 1.0)
        self.assertTrue(all(isinstance(v, float) for v in metrics.values()))

    def test_identical_graphs(self):
        metrics = compare_graphs(self.true, self.true)
        for key in ('adj_precision', 'adj_recall', 'f1_adj', 'arrow_precision', 'arrow_recall', 'f1_arrow'):
            self.assertEqual(metrics[key], 1.0, key)

    def test_empty_estimate(self):
        empty = Graph("ABC")
        self.assertTrue(math.isnan(adjacency_precision(self.true, empty)))
        self.assertEqual(adjacency_recall(self.true, empty), 0.0)
        self.assertTrue(math.isnan(f1(math.nan, 0.0)))
        self.assertTrue(math.isnan(f1(0.0, 0.0)))

    def test_different_node_sets(self):
        est = Graph.from_edge_strings("ABD", ["A --> B", "B --> D"])
        self.assertEqual(adjacency_confusion(self.true, est), Confusion(1, 1, 1))

    def test_comparison_table(self):
        table = comparison_table({"truth": self.true, "estimate": self.est}, self.true)
        self.assertEqual(list(table.index), ["truth", "estimate"])
        self.assertEqual(table.loc["truth", "shd"], 0.0)
        self.assertEqual(table.loc["estimate", "shd"], 2.0)


class TestMisclassification(unittest.TestCase):
    def setUp(self):
        self.true = Graph.from_edge_strings("ABC", ["A --> B", "B --> C"])
        self.est = Graph.from_edge_strings("ABC", ["A --> B", "C --> B", "A o-o C"])

    def test_edge_table(self):
        table = edge_misclassification_counts(self.true, self.est)
        self.assertEqual(list(table.index), EDGE_TYPES)
        self.assertEqual(list(table.columns), EDGE_TYPES)
        self.assertEqual(table.loc["-->", "-->"], 1)
        self.assertEqual(table.loc["-->", "<--"], 1)
        self.assertEqual(table.loc["No Edge", "o-o"], 1)
        self.assertEqual(table.loc["No Edge", "No Edge"], 0)
        self.assertEqual(int(table.to_numpy().sum()), 3)

    def test_endpoint_table(self):
        table = endpoint_misclassification_counts(self.true, self.est)
        self.assertEqual(table.loc["Arrow", "Arrow"], 1)
        self.assertEqual(table.loc["Tail", "Tail"], 1)
        self.assertEqual(table.loc["Arrow", "Tail"], 1)
        self.assertEqual(table.loc["Tail", "Arrow"], 1)
        self.assertEqual(table.loc["Null", "Circle"], 2)
        self.assertEqual(int(table.to_numpy().sum()), 6)


class TestFormatting(unittest.TestCase):
    def test_format_metrics_table(self):
        text = format_metrics_table({'shd': 2.0, 'adj_precision': 0.5, 'extra': 1.0}, "pc")
        lines = text.splitlines()
        self.assertEqual(lines[0], "Metrics for pc:")
        self.assertEqual(lines[2].split(":")[0].strip(), "adj_precision")
        self.assertEqual(lines[3].split(":")[0].strip(), "shd")
        self.assertIn("extra", lines[4])
        self.assertTrue(text.splitlines()[2].endswith("0.5000"))


if __name__ == '__main__':
    unittest.main()
