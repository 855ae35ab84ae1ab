import unittest
import math
import os
import sys
from concurrent.futures import ThreadPoolExecutor
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.graph import Node
from causal_search.sepset import SepsetMap


class TestSepsetMap(unittest.TestCase):
    def setUp(self):
        self.A, self.B, self.C, self.D = (Node(n) for n in "ABCD")
        self.map = SepsetMap()

    def test_unordered_keys(self):
        self.map.set(self.B, self.A, [self.C])
        self.assertEqual(self.map.get(self.A, self.B), (self.C,))
        self.assertIn((self.A, self.B), self.map)
        self.assertTrue(self.map.is_in_sepset(self.C, self.B, self.A))

    def test_empty_set_differs_from_missing(self):
        self.map.set(self.A, self.B, [])
        self.assertEqual(self.map.get(self.A, self.B), ())
        self.assertIsNone(self.map.get(self.A, self.C))

    def test_none_deletes(self):
        self.map.set(self.A, self.B, [self.C])
        self.map.set_p_value(self.A, self.B, 0.3)
        self.map.set(self.A, self.B, None)
        self.assertIsNone(self.map.get(self.A, self.B))
        self.assertTrue(math.isnan(self.map.get_p_value(self.A, self.B)))
        self.assertEqual(len(self.map), 0)

    def test_same_node_rejected(self):
        with self.assertRaises(ValueError):
            self.map.set(self.A, self.A, [])

    def test_copy_and_equality(self):
        self.map.set(self.A, self.B, [self.C])
        self.map.set_p_value(self.A, self.B, 0.4)
        other = self.map.copy()
        self.assertEqual(other, self.map)
        self.assertEqual(other.get_p_value(self.B, self.A), 0.4)
        other.set(self.C, self.D, [])
        self.assertNotEqual(other, self.map)
        self.assertIn("A _||_ B | {C}", str(self.map))

    def test_concurrent_writers_on_distinct_pairs(self):
        nodes = [Node(f"X{i}") for i in range(40)]
        pairs = [(nodes[i], nodes[j]) for i in range(40) for j in range(i + 1, 40)]

        def write(pair):
            x, y = pair
            self.map.set(x, y, [x])

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(write, pairs))
        self.assertEqual(len(self.map), len(pairs))
        for x, y in pairs:
            self.assertEqual(self.map.get(y, x), (x,))


if __name__ == '__main__':
    unittest.main()
