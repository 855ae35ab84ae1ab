import unittest
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.fci import Fci
from causal_search.graph import Graph, CIRCLE, ARROW, TAIL
from causal_search.independence import IndTestDSep
from causal_search.orientation import FciOrient
from causal_search.search_utils import guarantee_pag, is_legal_mag, is_legal_pag, zhang_mag_from_pag
from causal_search.sepset import SepsetMap
from helpers import dag_from_edges, random_dag


def latent_example():
    """X1 -> X2 <- L -> X3 <- X4 with L unmeasured."""
    dag = dag_from_edges(["X1", "X2", "X3", "X4", "L"],
                         [("X1", "X2"), ("L", "X2"), ("L", "X3"), ("X4", "X3")])
    measured = [dag.get_node(n) for n in ("X1", "X2", "X3", "X4")]
    return dag, measured


class TestFci(unittest.TestCase):
    def test_latent_confounder(self):
        dag, measured = latent_example()
        fci = Fci(IndTestDSep(dag))
        pag = fci.search(measured)
        self.assertEqual(pag.node_names, ["X1", "X2", "X3", "X4"])
        expected = Graph.from_edge_strings(measured, ["X1 o-> X2", "X2 <-> X3", "X4 o-> X3"])
        self.assertEqual(pag, expected)
        self.assertTrue(is_legal_pag(pag))
        self.assertEqual(len(fci.collider_triples_), 2)
        self.assertIs(fci.get_graph(), pag)

    def test_variants_agree_on_oracle(self):
        dag, measured = latent_example()
        expected = Fci(IndTestDSep(dag)).search(measured)
        for kwargs in ({"stable": False}, {"num_threads": 3}, {"possible_dsep": False},
                       {"complete_rule_set": False}, {"guarantee_pag": True}):
            self.assertEqual(Fci(IndTestDSep(dag), **kwargs).search(measured), expected, kwargs)

    def test_chain_is_all_circles(self):
        dag = dag_from_edges("ABC", [("A", "B"), ("B", "C")])
        fci = Fci(IndTestDSep(dag))
        pag = fci.search()
        self.assertEqual(pag.num_edges(), 2)
        for edge in pag.edges():
            self.assertEqual((edge.endpoint1, edge.endpoint2), (CIRCLE, CIRCLE))
        self.assertEqual(fci.sepsets_.get(dag.get_node("A"), dag.get_node("C")), (dag.get_node("B"),))

    def test_no_latents_output_is_legal(self):
        for seed in range(5):
            dag = random_dag(7, 0.3, seed=seed)
            pag = Fci(IndTestDSep(dag)).search()
            self.assertEqual(pag.undirected_skeleton(), dag.undirected_skeleton(), f"seed {seed}")
            self.assertTrue(is_legal_pag(pag), f"seed {seed}: {is_legal_pag(pag).reason}")

    def test_argument_validation(self):
        dag, _ = latent_example()
        with self.assertRaises(TypeError):
            Fci(None)
        with self.assertRaises(ValueError):
            Fci(IndTestDSep(dag), depth=-2)
        with self.assertRaises(ValueError):
            Fci(IndTestDSep(dag), max_path_length=-5)
        with self.assertRaises(ValueError):
            Fci(IndTestDSep(dag), num_threads=0)


class TestLegality(unittest.TestCase):
    def test_zhang_mag(self):
        nodes = ["X1", "X2", "X3", "X4"]
        pag = Graph.from_edge_strings(nodes, ["X1 o-> X2", "X2 <-> X3", "X4 o-> X3"])
        mag = zhang_mag_from_pag(pag)
        self.assertTrue(mag.is_parent_of("X1", "X2"))
        self.assertTrue(mag.is_parent_of("X4", "X3"))
        self.assertEqual(mag.get_endpoint("X2", "X3"), ARROW)
        self.assertEqual(mag.get_endpoint("X3", "X2"), ARROW)
        self.assertTrue(is_legal_mag(mag))

    def test_zhang_mag_circle_component_has_no_new_collider(self):
        pag = Graph.from_edge_strings("ABC", ["A o-o B", "B o-o C"])
        mag = zhang_mag_from_pag(pag)
        self.assertEqual(mag.num_edges(), 2)
        self.assertFalse(mag.is_def_collider("A", "B", "C"))
        self.assertTrue(mag.is_dag())
        self.assertTrue(is_legal_mag(mag))

    def test_zhang_mag_circle_opposite_tail_becomes_tail(self):
        pag = Graph.from_edge_strings("ABC", ["A o-- B", "B o-> C"])
        mag = zhang_mag_from_pag(pag)
        self.assertEqual(mag.get_endpoint("B", "A"), TAIL)
        self.assertEqual(mag.get_endpoint("A", "B"), TAIL)
        self.assertTrue(mag.is_parent_of("B", "C"))
        self.assertTrue(is_legal_mag(mag))

    def test_dag_is_legal_mag(self):
        self.assertTrue(is_legal_mag(random_dag(8, 0.4, seed=1)))

    def test_illegal_mags(self):
        circle = Graph.from_edge_strings("AB", ["A o-> B"])
        self.assertIn("Circle", is_legal_mag(circle).reason)

        cycle = Graph.from_edge_strings("ABC", ["A --> B", "B --> C", "C --> A"])
        result = is_legal_mag(cycle)
        self.assertFalse(result)
        self.assertEqual(result.reason, "Directed cycle")
        self.assertEqual(set(result.nodes), {"A", "B", "C"})

        almost = Graph.from_edge_strings("ABC", ["A --> B", "B --> C", "A <-> C"])
        self.assertIn("Almost directed cycle", is_legal_mag(almost).reason)

        undirected = Graph.from_edge_strings("ABC", ["A --- B", "C --> B"])
        self.assertIn("Undirected edge", is_legal_mag(undirected).reason)

    def test_non_maximal_mag(self):
        # A <-> B <-> C <-> D with B an ancestor of D and C an ancestor of A
        mag = Graph.from_edge_strings("ABCD", ["A <-> B", "B <-> C", "C <-> D", "B --> D", "C --> A"])
        result = is_legal_mag(mag)
        self.assertFalse(result)
        self.assertIn("Not maximal", result.reason)
        self.assertEqual(result.nodes, ("A", "D"))

    def test_illegal_pag(self):
        pag = Graph.from_edge_strings("ABC", ["A --> B", "B --> C", "C --> A"])
        result = is_legal_pag(pag)
        self.assertFalse(result)
        self.assertTrue(result.reason.startswith("Zhang MAG is not legal"))


class TestGuaranteePag(unittest.TestCase):
    def test_legal_pag_is_returned_unchanged(self):
        nodes = ["X1", "X2", "X3", "X4"]
        pag = Graph.from_edge_strings(nodes, ["X1 o-> X2", "X2 <-> X3", "X4 o-> X3"])
        before = pag.copy()
        repaired = guarantee_pag(pag, FciOrient(SepsetMap()), [])
        self.assertEqual(repaired, before)

    def test_cycle_is_repaired(self):
        pag = Graph.from_edge_strings("ABC", ["A --> B", "B --> C", "C --> A"])
        repaired = guarantee_pag(pag, FciOrient(SepsetMap()), [])
        self.assertTrue(is_legal_pag(repaired))
        self.assertEqual(repaired.num_edges(), 3)
        for edge in repaired.edges():
            self.assertNotEqual(TAIL, edge.endpoint1)


if __name__ == '__main__':
    unittest.main()
