import unittest
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.graph import Node
from causal_search.knowledge import Knowledge


class TestKnowledge(unittest.TestCase):
    def setUp(self):
        self.k = Knowledge()

    def test_empty(self):
        self.assertTrue(self.k.is_empty())
        self.assertFalse(self.k.is_forbidden("A", "B"))
        self.assertTrue(self.k.no_edge_required("A", "B"))

    def test_explicit_edges(self):
        self.k.set_forbidden("A", "B")
        self.k.set_required(Node("C"), Node("D"))
        self.assertTrue(self.k.is_forbidden("A", "B"))
        self.assertFalse(self.k.is_forbidden("B", "A"))
        self.assertTrue(self.k.is_required("C", "D"))
        self.assertFalse(self.k.no_edge_required("D", "C"))
        self.assertEqual(self.k.forbidden_edges(), [("A", "B")])
        self.assertEqual(self.k.required_edges(), [("C", "D")])
        self.k.remove_forbidden("A", "B")
        self.k.remove_required("C", "D")
        self.assertTrue(self.k.is_empty())

    def test_required_and_forbidden_conflict(self):
        self.k.set_forbidden("A", "B")
        with self.assertRaises(ValueError):
            self.k.set_required("A", "B")
        self.k.set_required("B", "C")
        with self.assertRaises(ValueError):
            self.k.set_forbidden("B", "C")

    def test_tiers(self):
        self.k.add_to_tier(0, "A")
        self.k.add_to_tier(1, "B")
        self.k.add_to_tier(1, "C")
        self.assertTrue(self.k.is_forbidden("B", "A"))
        self.assertFalse(self.k.is_forbidden("A", "B"))
        self.assertFalse(self.k.is_forbidden("B", "C"))
        self.k.set_tier_forbidden_within(1, True)
        self.assertTrue(self.k.is_forbidden_both_ways("B", "C"))
        self.assertEqual(self.k.num_tiers, 2)
        self.assertEqual(self.k.tier(1), ["B", "C"])
        self.assertEqual(self.k.tier_of("C"), 1)
        # unknown variables are unconstrained
        self.assertFalse(self.k.is_forbidden("Z", "A"))

    def test_tier_move_cannot_forbid_required_edge(self):
        self.k.set_required("A", "B")
        self.k.add_to_tier(0, "A")
        self.k.add_to_tier(1, "B")
        with self.assertRaises(ValueError):
            self.k.add_to_tier(2, "A")

    def test_negative_tier(self):
        with self.assertRaises(ValueError):
            self.k.add_to_tier(-1, "A")

    def test_from_dict(self):
        k = Knowledge.from_dict({
            "tiers": [["A"], ["B", "C"]],
            "forbidden_within_tiers": [1],
            "forbidden": [["A", "C"]],
            "required": [["A", "B"]],
        })
        self.assertTrue(k.is_forbidden("B", "A"))
        self.assertTrue(k.is_forbidden("B", "C"))
        self.assertTrue(k.is_forbidden("A", "C"))
        self.assertTrue(k.is_required("A", "B"))
        self.assertTrue(Knowledge.from_dict(None).is_empty())
        with self.assertRaises(ValueError):
            Knowledge.from_dict({"forbidden": [["A", "B", "C"]]})

    def test_copy_is_independent(self):
        self.k.set_forbidden("A", "B")
        other = self.k.copy()
        other.set_forbidden("B", "A")
        self.assertFalse(self.k.is_forbidden("B", "A"))
        self.assertIn("forbiddirect", str(other))


if __name__ == '__main__':
    unittest.main()
