import unittest
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.graph import Graph, Triple
from causal_search.knowledge import Knowledge
from causal_search.meek import MeekRules
from causal_search.search_utils import cpdag_for_dag
from helpers import random_dag


class TestMeekRules(unittest.TestCase):
    def setUp(self):
        self.G = Graph(["A", "B", "C", "D"])
        self.meek = MeekRules()

    def test_R1_away_from_collider(self):
        self.G.add_directed_edge("A", "B")
        self.G.add_undirected_edge("B", "C")
        changed = self.meek.orient_implied(self.G)
        self.assertTrue(self.G.is_parent_of("B", "C"))
        self.assertEqual({n.name for n in changed}, {"B", "C"})

    def test_R2_avoids_cycle(self):
        self.G.add_directed_edge("A", "B")
        self.G.add_directed_edge("B", "C")
        self.G.add_undirected_edge("A", "C")
        self.meek.orient_implied(self.G)
        self.assertTrue(self.G.is_parent_of("A", "C"))

    def test_R3_diamond(self):
        # C -> B <- D, A - C, A - D, A - B, C and D nonadjacent
        self.G.add_directed_edge("C", "B")
        self.G.add_directed_edge("D", "B")
        self.G.add_undirected_edge("A", "C")
        self.G.add_undirected_edge("A", "D")
        self.G.add_undirected_edge("A", "B")
        self.meek.orient_implied(self.G)
        self.assertTrue(self.G.is_parent_of("A", "B"))
        self.assertTrue(self.G.is_undirected("A", "C"))
        self.assertTrue(self.G.is_undirected("A", "D"))

    def test_R4_kite(self):
        # A -> B -> C, D - A, D - B, D - C, A and C nonadjacent
        self.G.add_directed_edge("A", "B")
        self.G.add_directed_edge("B", "C")
        self.G.add_undirected_edge("D", "A")
        self.G.add_undirected_edge("D", "B")
        self.G.add_undirected_edge("D", "C")
        self.meek.orient_implied(self.G)
        self.assertTrue(self.G.is_parent_of("D", "C"))

    def test_knowledge_blocks_one_instance(self):
        knowledge = Knowledge()
        knowledge.set_forbidden("B", "C")
        self.G.add_directed_edge("A", "B")
        self.G.add_undirected_edge("B", "C")
        self.G.add_undirected_edge("B", "D")
        MeekRules(knowledge).orient_implied(self.G)
        self.assertTrue(self.G.is_undirected("B", "C"))
        self.assertTrue(self.G.is_parent_of("B", "D"))

    def test_ambiguous_triple_blocks_R1(self):
        self.G.add_directed_edge("A", "B")
        self.G.add_undirected_edge("B", "C")
        meek = MeekRules()
        meek.ambiguous_triples = {Triple(self.G.get_node("A"), self.G.get_node("B"), self.G.get_node("C"))}
        meek.orient_implied(self.G)
        self.assertTrue(self.G.is_undirected("B", "C"))

    def test_never_closes_a_cycle(self):
        # R1 on D -> C - A would orient C -> A, closing A -> B -> E -> C -> A
        G = Graph(["A", "B", "C", "D", "E"])
        G.add_directed_edge("A", "B")
        G.add_directed_edge("B", "E")
        G.add_directed_edge("E", "C")
        G.add_directed_edge("D", "C")
        G.add_undirected_edge("C", "A")
        self.meek.orient_implied(G)
        self.assertTrue(G.is_undirected("A", "C"))
        self.assertFalse(G.has_directed_cycle())

    def test_aggressive_mode_skips_new_colliders(self):
        # R1 on A -> B - C; C already has parent D nonadjacent to B
        self.G.add_directed_edge("A", "B")
        self.G.add_undirected_edge("B", "C")
        self.G.add_directed_edge("D", "C")
        MeekRules(aggressively_prevent_cycles=True).orient_implied(self.G)
        self.assertTrue(self.G.is_undirected("B", "C"))


class TestMeekSoundness(unittest.TestCase):
    def test_random_patterns_are_acyclic_and_idempotent(self):
        for seed in range(10):
            dag = random_dag(9, 0.35, seed=seed)
            cpdag = cpdag_for_dag(dag)
            self.assertFalse(cpdag.has_directed_cycle(), f"seed {seed}")
            again = cpdag.copy()
            changed = MeekRules().orient_implied(again)
            self.assertEqual(changed, set(), f"seed {seed}")
            self.assertEqual(again, cpdag)
            # every directed edge of the CPDAG agrees with the DAG
            for edge in cpdag.edges():
                if edge.is_directed():
                    self.assertTrue(dag.is_parent_of(edge.node1, edge.node2), f"seed {seed}: {edge}")


if __name__ == '__main__':
    unittest.main()
