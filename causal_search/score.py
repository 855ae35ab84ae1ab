"""
Decomposable scores for score-based search.

A score is decomposable: total_score = sum of local_score(node, parents).
This allows efficient incremental updates during the FGES forward and
backward phases. Nodes and parents are given as variable indices; higher
scores are better.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import gammaln

from .graph import Node
from .independence import DataLike, as_data_matrix


class Score(ABC):
    def __init__(self, variables: Sequence[Node], sample_size: int):
        self._variables = list(variables)
        self._index = {v.name: i for i, v in enumerate(self._variables)}
        self.sample_size = int(sample_size)

    @property
    def variables(self) -> List[Node]:
        return list(self._variables)

    def index_of(self, node: Node) -> int:
        try:
            return self._index[node.name]
        except KeyError:
            raise ValueError(f"Variable not in score domain: {node}") from None

    @abstractmethod
    def local_score(self, node: int, parents: Sequence[int]) -> float:
        ...

    def local_score_diff(self, x: int, y: int, z: Sequence[int] = ()) -> float:
        """Score change from adding x as a parent of y, whose parents are z."""
        z = list(z)
        return self.local_score(y, z + [x]) - self.local_score(y, z)

    def is_effect_edge(self, bump: float) -> bool:
        return bump > 0

    def graph_score(self, parent_sets: Dict[int, Sequence[int]]) -> float:
        return sum(self.local_score(node, parents) for node, parents in parent_sets.items())


class SemBicScore(Score):
    """
    Linear-Gaussian BIC with an intercept.

    - Regress X[:, node] on X[:, parents] via OLS
    - log_likelihood = -n/2 * (1 + log(2pi) + log(RSS/n))
    - BIC = log_likelihood - penalty_discount * (k+1)/2 * log(n)

    where k = number of parents, n = number of samples.
    """

    def __init__(self, data: DataLike, penalty_discount: float = 1.0,
                 var_names: Optional[Sequence[str]] = None):
        X, nodes = as_data_matrix(data, var_names)
        super().__init__(nodes, X.shape[0])
        if penalty_discount <= 0:
            raise ValueError(f"Penalty discount must be positive: {penalty_discount}")
        self.X = np.asarray(X, dtype=float)
        self.penalty_discount = float(penalty_discount)

    def local_score(self, node: int, parents: Sequence[int]) -> float:
        n = self.sample_size
        y = self.X[:, node]
        parents = list(parents)

        if not parents:
            rss = np.sum((y - np.mean(y)) ** 2)
        else:
            design = np.column_stack([np.ones(n), self.X[:, parents]])
            # lstsq handles rank-deficient designs
            beta, _, _, _ = np.linalg.lstsq(design, y, rcond=None)
            rss = np.sum((y - design @ beta) ** 2)

        # Prevent log(0)
        rss = max(rss, 1e-10)
        log_likelihood = -n / 2 * (1 + np.log(2 * np.pi) + np.log(rss / n))
        num_params = len(parents) + 1
        return float(log_likelihood - self.penalty_discount * (num_params / 2) * np.log(n))


class BDeuScore(Score):
    """
    BDeu score for integer-coded discrete data (categories 0..k-1; negative
    codes are missing and the row is skipped for that family).
    """

    def __init__(self, data: DataLike, sample_prior: float = 1.0, structure_prior: float = 1.0,
                 var_names: Optional[Sequence[str]] = None):
        X, nodes = as_data_matrix(data, var_names)
        super().__init__(nodes, X.shape[0])
        if sample_prior <= 0:
            raise ValueError(f"Sample prior must be positive: {sample_prior}")
        if structure_prior < 0:
            raise ValueError(f"Structure prior must be non-negative: {structure_prior}")
        self.data = np.asarray(X).astype(int)
        self.num_categories = np.maximum(self.data.max(axis=0), 0) + 1
        self.sample_prior = float(sample_prior)
        self.structure_prior = float(structure_prior)

    def _structure_prior(self, num_parents: int, n: int) -> float:
        e = self.structure_prior
        vm = n - 1
        if e == 0 or e >= vm:
            return 0.0
        return num_parents * np.log(e / vm) + (vm - num_parents) * np.log(1.0 - e / vm)

    def local_score(self, node: int, parents: Sequence[int]) -> float:
        parents = list(parents)
        c = int(self.num_categories[node])
        dims = [int(self.num_categories[p]) for p in parents]
        r = int(np.prod(dims)) if dims else 1

        child = self.data[:, node]
        pvals = self.data[:, parents]
        keep = child >= 0
        if parents:
            keep &= np.all(pvals >= 0, axis=1)
            rows = np.ravel_multi_index(pvals[keep].T, dims)
        else:
            rows = np.zeros(int(keep.sum()), dtype=int)

        n_jk = np.zeros((r, c))
        np.add.at(n_jk, (rows, child[keep]), 1)
        n_j = n_jk.sum(axis=1)

        cell_prior = self.sample_prior / (c * r)
        row_prior = self.sample_prior / r

        score = self._structure_prior(len(parents), int(keep.sum()))
        score -= np.sum(gammaln(row_prior + n_j))
        score += np.sum(gammaln(cell_prior + n_jk))
        score += r * gammaln(row_prior)
        score -= c * r * gammaln(cell_prior)
        return float(score)


class ScoreCache(Score):
    """
    Memoizing wrapper around a score, keyed by (node, sorted parents).

    FGES makes many score computations, and the same (node, parents)
    configuration is evaluated many times.
    """

    def __init__(self, score: Score):
        super().__init__(score.variables, score.sample_size)
        self.score = score
        self.cache: Dict[Tuple[int, Tuple[int, ...]], float] = {}
        self._hits = 0
        self._misses = 0

    def local_score(self, node: int, parents: Sequence[int]) -> float:
        key = (node, tuple(sorted(parents)))
        value = self.cache.get(key)
        if value is not None:
            self._hits += 1
            return value
        self._misses += 1
        value = self.score.local_score(node, list(key[1]))
        self.cache[key] = value
        return value

    def is_effect_edge(self, bump: float) -> bool:
        return self.score.is_effect_edge(bump)

    def clear(self):
        self.cache.clear()
        self._hits = 0
        self._misses = 0

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return self._hits / total

    def stats(self) -> Dict[str, float]:
        return {
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': self.hit_rate,
            'size': len(self.cache)
        }
