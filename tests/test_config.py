import unittest
import os
import sys
import tempfile
from pathlib import Path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from causal_search.config import Parameters, deep_merge, load_parameters, load_yaml
from causal_search.knowledge import Knowledge
from causal_search.search_utils import ConflictRule


class TestParameters(unittest.TestCase):
    def test_defaults(self):
        params = Parameters()
        self.assertEqual(params.algorithm, "pc")
        self.assertEqual(params.test, "fisher-z")
        self.assertEqual(params.alpha, 0.05)
        self.assertEqual(params.depth, -1)
        self.assertEqual(params.sepset_finder, "min_p")
        self.assertIs(params.conflict_rule, ConflictRule.OVERWRITE_EXISTING)
        self.assertTrue(params.knowledge.is_empty())

    def test_validation(self):
        for bad in ({"alpha": 1.5}, {"depth": -2}, {"max_path_length": -3}, {"max_degree": -2},
                    {"num_threads": 0}, {"penalty_discount": 0.0}, {"sample_prior": -1.0},
                    {"structure_prior": -0.5}, {"conflict_rule": "ignore"}):
            with self.assertRaises(ValueError, msg=str(bad)):
                Parameters(**bad)
        with self.assertRaises(TypeError):
            Parameters(knowledge=None)

    def test_coercions(self):
        params = Parameters(conflict_rule="orient-bidirected", knowledge={"tiers": [["X1"], ["X2"]]})
        self.assertIs(params.conflict_rule, ConflictRule.ORIENT_BIDIRECTED)
        self.assertIsInstance(params.knowledge, Knowledge)
        self.assertTrue(params.knowledge.is_forbidden("X2", "X1"))
        self.assertFalse(params.knowledge.is_forbidden("X1", "X2"))

    def test_from_dict_rejects_unknown_keys(self):
        with self.assertRaises(ValueError) as ctx:
            Parameters.from_dict({"alpha": 0.1, "alhpa": 0.2})
        self.assertIn("alhpa", str(ctx.exception))
        self.assertEqual(Parameters.from_dict(None), Parameters())

    def test_to_dict_and_replace(self):
        params = Parameters(algorithm="fci", conflict_rule=ConflictRule.PRIORITIZE_EXISTING)
        out = params.to_dict()
        self.assertEqual(out["algorithm"], "fci")
        self.assertEqual(out["conflict_rule"], "prioritize-existing")
        self.assertNotIn("knowledge", out)
        changed = params.replace(alpha=0.01)
        self.assertEqual(changed.alpha, 0.01)
        self.assertEqual(params.alpha, 0.05)
        with self.assertRaises(ValueError):
            params.replace(alpha=-1.0)


class TestConfigFiles(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, name, text):
        path = self.dir / name
        path.write_text(text)
        return path

    def test_load_parameters_with_overrides(self):
        path = self._write("fci.yaml", "\n".join([
            "algorithm: fci",
            "alpha: 0.01",
            "depth: 3",
            "knowledge:",
            "  tiers: [[X1], [X2, X3]]",
        ]))
        params = load_parameters(path, '{"depth": 2, "knowledge": {"required": [["X1", "X3"]]}}')
        self.assertEqual(params.algorithm, "fci")
        self.assertEqual(params.alpha, 0.01)
        self.assertEqual(params.depth, 2)
        self.assertTrue(params.knowledge.is_required("X1", "X3"))
        self.assertTrue(params.knowledge.is_forbidden("X2", "X1"))

    def test_empty_and_bad_files(self):
        self.assertEqual(load_yaml(self._write("empty.yaml", "")), {})
        with self.assertRaises(ValueError):
            load_yaml(self._write("list.yaml", "- 1\n- 2\n"))
        with self.assertRaises(FileNotFoundError):
            load_yaml(self.dir / "missing.yaml")
        with self.assertRaises(ValueError):
            load_parameters(None, "[1, 2]")
        with self.assertRaises(ValueError):
            load_parameters(self._write("typo.yaml", "algoritm: pc\n"))

    def test_no_config(self):
        self.assertEqual(load_parameters(), Parameters())
        self.assertEqual(load_parameters(None, '{"alpha": 0.2}').alpha, 0.2)


class TestDeepMerge(unittest.TestCase):
    def test_nested(self):
        a = {"x": 1, "k": {"tiers": [[1]], "forbidden": []}}
        b = {"k": {"forbidden": [[1, 2]]}, "y": 2}
        merged = deep_merge(a, b)
        self.assertEqual(merged, {"x": 1, "y": 2, "k": {"tiers": [[1]], "forbidden": [[1, 2]]}})
        self.assertEqual(a["k"]["forbidden"], [])


if __name__ == '__main__':
    unittest.main()
