import unittest
import os
import sys
import numpy as np
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.graph import Graph, Node, NodeType, Edge, Triple, NULL, CIRCLE, ARROW, TAIL


class TestNode(unittest.TestCase):
    def test_identity_uses_name_only(self):
        self.assertEqual(Node("A"), Node("A", NodeType.LATENT))
        self.assertEqual(hash(Node("A")), hash(Node("A", NodeType.LATENT)))
        self.assertLess(Node("A"), Node("B"))

    def test_triple_is_symmetric(self):
        a, b, c = Node("A"), Node("B"), Node("C")
        self.assertEqual(Triple(a, b, c), Triple(c, b, a))
        self.assertEqual(Triple(c, b, a).x, a)
        self.assertNotEqual(Triple(a, b, c), Triple(b, a, c))


class TestGraphEdges(unittest.TestCase):
    def setUp(self):
        self.G = Graph(["A", "B", "C", "D"])

    def test_marks_matrix(self):
        self.G.add_directed_edge("A", "B")
        i, j = self.G.index_of("A"), self.G.index_of("B")
        # M[i, j] is the mark at j
        self.assertEqual(self.G.M[i, j], ARROW)
        self.assertEqual(self.G.M[j, i], TAIL)
        self.assertEqual(self.G.get_endpoint("A", "B"), ARROW)
        self.assertEqual(self.G.get_endpoint("B", "A"), TAIL)
        self.assertTrue(self.G.is_parent_of("A", "B"))
        self.assertTrue(self.G.is_directed_from_to("A", "B"))
        self.assertFalse(self.G.is_parent_of("B", "A"))

    def test_single_edge_per_pair(self):
        self.G.add_undirected_edge("A", "B")
        self.G.add_bidirected_edge("B", "A")
        self.assertEqual(self.G.num_edges(), 1)
        self.assertEqual(str(self.G.get_edge("A", "B")), "A <-> B")

    def test_edge_rendering(self):
        self.G.add_directed_edge("B", "A")
        self.G.add_partially_oriented_edge("C", "B")
        self.G.add_nondirected_edge("C", "D")
        rendered = {str(e) for e in self.G.edges()}
        self.assertEqual(rendered, {"B --> A", "C o-> B", "C o-o D"})

    def test_edge_strings_round_trip(self):
        self.G.add_directed_edge("A", "B")
        self.G.add_edge("B", "C", TAIL, CIRCLE)
        self.G.add_bidirected_edge("C", "D")
        parsed = Graph.from_string(str(self.G))
        self.assertEqual(parsed, self.G)
        self.assertEqual(parsed.get_endpoint("B", "C"), CIRCLE)

    def test_from_edge_strings_rejects_garbage(self):
        with self.assertRaises(ValueError):
            Graph.from_edge_strings(["A", "B"], ["A ==> B"])

    def test_set_endpoint_requires_edge(self):
        with self.assertRaises(ValueError):
            self.G.set_endpoint("A", "B", ARROW)

    def test_unknown_node(self):
        with self.assertRaises(ValueError):
            self.G.index_of("Z")
        self.assertIsNone(self.G.get_node("Z"))

    def test_remove_edge_and_node(self):
        self.G.add_directed_edge("A", "B")
        self.G.add_directed_edge("B", "C")
        self.assertTrue(self.G.remove_edge("A", "B"))
        self.assertFalse(self.G.remove_edge("A", "B"))
        self.G.remove_node("B")
        self.assertEqual(self.G.node_names, ["A", "C", "D"])
        self.assertEqual(self.G.num_edges(), 0)

    def test_reorient_all_with(self):
        self.G.add_directed_edge("A", "B")
        self.G.add_undirected_edge("B", "C")
        self.G.reorient_all_with(CIRCLE)
        self.assertTrue(all(e.endpoint1 == CIRCLE and e.endpoint2 == CIRCLE for e in self.G.edges()))
        self.assertEqual(self.G.num_edges(), 2)

    def test_complete_graph(self):
        K = Graph.complete_graph(["A", "B", "C"])
        self.assertEqual(K.num_edges(), 3)
        self.assertTrue(K.is_undirected("A", "C"))
        self.assertEqual(K.M[0, 0], NULL)


class TestGraphStructure(unittest.TestCase):
    def setUp(self):
        # A -> B -> D <- C, A -> C
        self.G = Graph(["A", "B", "C", "D"])
        self.G.add_directed_edge("A", "B")
        self.G.add_directed_edge("B", "D")
        self.G.add_directed_edge("C", "D")
        self.G.add_directed_edge("A", "C")

    def test_parents_children(self):
        self.assertEqual([n.name for n in self.G.parents("D")], ["B", "C"])
        self.assertEqual([n.name for n in self.G.children("A")], ["B", "C"])

    def test_ancestors(self):
        self.assertTrue(self.G.is_ancestor_of("A", "D"))
        self.assertTrue(self.G.is_ancestor_of("A", "A"))
        self.assertFalse(self.G.is_ancestor_of("D", "A"))
        self.assertFalse(self.G.exists_directed_path("A", "A"))
        self.assertEqual({n.name for n in self.G.ancestors_of(["D"])}, {"A", "B", "C", "D"})

    def test_colliders(self):
        self.assertTrue(self.G.is_def_collider("B", "D", "C"))
        self.assertFalse(self.G.is_def_collider("A", "B", "D"))
        self.assertTrue(self.G.is_def_noncollider("A", "B", "D"))

    def test_unshielded_triples(self):
        triples = self.G.unshielded_triples()
        names = [(t.x.name, t.y.name, t.z.name) for t in triples]
        # sorted by middle node
        self.assertEqual(names, [("B", "A", "C"), ("A", "B", "D"), ("A", "C", "D"), ("B", "D", "C")])

    def test_cycles(self):
        self.assertFalse(self.G.has_directed_cycle())
        self.assertTrue(self.G.is_dag())
        self.assertEqual([n.name for n in self.G.topological_order()], ["A", "B", "C", "D"])
        self.G.add_directed_edge("D", "A")
        self.assertTrue(self.G.has_directed_cycle())
        self.assertFalse(self.G.is_dag())
        with self.assertRaises(ValueError):
            self.G.topological_order()

    def test_copy_is_independent(self):
        other = self.G.copy()
        other.remove_edge("A", "B")
        self.assertTrue(self.G.is_adjacent("A", "B"))
        self.assertNotEqual(other, self.G)

    def test_equality_ignores_node_order(self):
        other = Graph(["D", "C", "B", "A"])
        for e in self.G.edges():
            other.add_edge(e.node1, e.node2, e.endpoint1, e.endpoint2)
        self.assertEqual(other, self.G)

    def test_networkx_round_trip(self):
        digraph = self.G.to_networkx()
        self.assertEqual(set(digraph.edges), {("A", "B"), ("B", "D"), ("C", "D"), ("A", "C")})
        self.assertEqual(digraph.edges["A", "B"]["marks"], (TAIL, ARROW))
        self.assertEqual(Graph.from_networkx(digraph), self.G)

    def test_skeleton_and_subgraph(self):
        skeleton = self.G.undirected_skeleton()
        self.assertTrue(skeleton.is_undirected("A", "B"))
        sub = self.G.subgraph(["A", "B", "D"])
        self.assertEqual(sub.num_edges(), 2)
        self.assertEqual(sub.max_degree(), 2)
        self.assertTrue(np.array_equal(sub.M != NULL, sub.M.T != NULL))


if __name__ == '__main__':
    unittest.main()
