"""
Conditional independence tests.

Every test answers "is x independent of y given z?" with an
IndependenceResult. Numerical trouble (a singular covariance submatrix, too
few samples for the conditioning set, a NaN statistic) is not an error:
the test returns a degenerate result that counts as independent, so the
search removes the edge and keeps going.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np
import pandas as pd
from scipy.stats import chi2, norm

from .graph import Graph, Node

DataLike = Union[pd.DataFrame, np.ndarray]


def as_data_matrix(data: DataLike, var_names: Optional[Sequence[str]] = None) -> Tuple[np.ndarray, List[Node]]:
    """
    Turn a DataFrame (column names become node names) or a 2-D array
    (names default to X1..Xp) into (matrix, nodes).
    """
    if isinstance(data, pd.DataFrame):
        names = [str(c) for c in data.columns] if var_names is None else list(var_names)
        X = data.to_numpy()
    else:
        X = np.asarray(data)
        if X.ndim != 2:
            raise ValueError(f"Data must be 2-D, got shape {X.shape}")
        names = [f"X{i + 1}" for i in range(X.shape[1])] if var_names is None else list(var_names)
    if len(names) != X.shape[1]:
        raise ValueError(f"{len(names)} names for {X.shape[1]} columns")
    if len(set(names)) != len(names):
        raise ValueError("Variable names must be unique")
    return X, [Node(n) for n in names]


@dataclass(frozen=True)
class IndependenceResult:
    x: Node
    y: Node
    z: Tuple[Node, ...]
    independent: bool
    p_value: float
    degenerate: bool = False

    @classmethod
    def degenerate_result(cls, x: Node, y: Node, z: Sequence[Node]) -> "IndependenceResult":
        """Undefined statistic: reported as independent with p = nan."""
        return cls(x, y, tuple(z), True, math.nan, True)

    def __str__(self) -> str:
        rel = "_||_" if self.independent else "_|/_"
        cond = ", ".join(n.name for n in self.z)
        return f"{self.x} {rel} {self.y} | {{{cond}}} (p = {self.p_value:.4g})"


class IndependenceTest(ABC):
    """
    Base class for tests. Subclasses implement _test(); callers use
    check_independence() or the boolean shortcuts.

    thread_safe advertises whether check_independence may be called from
    several FAS worker threads at once.
    """

    thread_safe = True

    def __init__(self, variables: Iterable[Node], alpha: float = 0.05):
        self._variables = list(variables)
        self._by_name = {v.name: v for v in self._variables}
        self._index = {v.name: i for i, v in enumerate(self._variables)}
        self.alpha = alpha
        self._last_p = math.nan

    @property
    def alpha(self) -> float:
        return self._alpha

    @alpha.setter
    def alpha(self, value: float):
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"Significance level must be in [0, 1]: {value}")
        self._alpha = float(value)

    @property
    def variables(self) -> List[Node]:
        return list(self._variables)

    @property
    def variable_names(self) -> List[str]:
        return [v.name for v in self._variables]

    def get_variable(self, name: str) -> Optional[Node]:
        return self._by_name.get(name)

    def index_of(self, node: Node) -> int:
        try:
            return self._index[node.name]
        except KeyError:
            raise ValueError(f"Variable not in test domain: {node}") from None

    def check_independence(self, x: Node, y: Node, z: Sequence[Node] = ()) -> IndependenceResult:
        result = self._test(x, y, tuple(z))
        self._last_p = result.p_value
        return result

    def is_independent(self, x: Node, y: Node, z: Sequence[Node] = ()) -> bool:
        return self.check_independence(x, y, z).independent

    def is_dependent(self, x: Node, y: Node, z: Sequence[Node] = ()) -> bool:
        return not self.is_independent(x, y, z)

    def get_p_value(self) -> float:
        """p-value of the most recent test (diagnostic only)."""
        return self._last_p

    @abstractmethod
    def _test(self, x: Node, y: Node, z: Tuple[Node, ...]) -> IndependenceResult:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(alpha={self.alpha})"


class IndTestFisherZ(IndependenceTest):
    """
    Gaussian CI test using Fisher's Z of the partial correlation.

    z = 0.5 * log((1 + |r|) / (1 - |r|)) * sqrt(n - 3 - |Z|)
    p = 2 * (1 - Phi(z))
    """

    def __init__(self, data: DataLike, alpha: float = 0.05, var_names: Optional[Sequence[str]] = None):
        X, nodes = as_data_matrix(data, var_names)
        super().__init__(nodes, alpha)
        X = np.asarray(X, dtype=float)
        self.sample_size = X.shape[0]
        self.cov = np.cov(X, rowvar=False).reshape(len(nodes), len(nodes))

    @classmethod
    def from_covariance(cls, cov: np.ndarray, sample_size: int, names: Sequence[str],
                        alpha: float = 0.05) -> "IndTestFisherZ":
        cov = np.asarray(cov, dtype=float)
        if cov.shape != (len(names), len(names)):
            raise ValueError(f"Covariance shape {cov.shape} does not match {len(names)} names")
        test = cls.__new__(cls)
        IndependenceTest.__init__(test, [Node(n) for n in names], alpha)
        test.sample_size = int(sample_size)
        test.cov = cov
        return test

    def partial_correlation(self, x: Node, y: Node, z: Sequence[Node]) -> float:
        """Raises LinAlgError if the submatrix is singular."""
        idx = [self.index_of(x), self.index_of(y)] + [self.index_of(c) for c in z]
        sub = self.cov[np.ix_(idx, idx)]
        # precision
        K = np.linalg.inv(sub)
        return -K[0, 1] / math.sqrt(K[0, 0] * K[1, 1])

    def _test(self, x, y, z):
        for n in (x, y, *z):
            self.index_of(n)
        dof = self.sample_size - 3 - len(z)
        if dof <= 0:
            return IndependenceResult.degenerate_result(x, y, z)
        try:
            r = self.partial_correlation(x, y, z)
        except (np.linalg.LinAlgError, ValueError):
            return IndependenceResult.degenerate_result(x, y, z)
        if not np.isfinite(r):
            return IndependenceResult.degenerate_result(x, y, z)

        r = abs(r)
        if r >= 1.0:
            return IndependenceResult(x, y, tuple(z), False, 0.0)
        fisher_z = 0.5 * (math.log(1.0 + r) - math.log(1.0 - r)) * math.sqrt(dof)
        p = 2.0 * norm.sf(fisher_z)
        return IndependenceResult(x, y, tuple(z), p > self.alpha, float(p))


class IndTestGSquare(IndependenceTest):
    """
    G-square (likelihood-ratio chi-square) test for integer-coded discrete
    data. Each stratum of the conditioning variables contributes its own
    table; empty rows and columns in a stratum do not count toward the
    degrees of freedom.
    """

    def __init__(self, data: DataLike, alpha: float = 0.05, var_names: Optional[Sequence[str]] = None):
        X, nodes = as_data_matrix(data, var_names)
        super().__init__(nodes, alpha)
        self.data = np.asarray(X).astype(int)
        self.sample_size = self.data.shape[0]

    def _test(self, x, y, z):
        cols = [self.index_of(x), self.index_of(y)] + [self.index_of(c) for c in z]
        sub = self.data[:, cols]
        if z:
            _, strata = np.unique(sub[:, 2:], axis=0, return_inverse=True)
            strata = strata.reshape(-1)
        else:
            strata = np.zeros(len(sub), dtype=int)

        g_square = 0.0
        dof = 0
        for s in np.unique(strata):
            rows = sub[strata == s]
            _, xi = np.unique(rows[:, 0], return_inverse=True)
            _, yi = np.unique(rows[:, 1], return_inverse=True)
            table = np.zeros((xi.max() + 1, yi.max() + 1))
            np.add.at(table, (xi.reshape(-1), yi.reshape(-1)), 1)
            expected = np.outer(table.sum(axis=1), table.sum(axis=0)) / table.sum()
            observed = table > 0
            g_square += 2.0 * float(np.sum(table[observed] * np.log(table[observed] / expected[observed])))
            dof += (table.shape[0] - 1) * (table.shape[1] - 1)

        if dof == 0 or not np.isfinite(g_square):
            return IndependenceResult.degenerate_result(x, y, z)
        p = float(chi2.sf(g_square, dof))
        return IndependenceResult(x, y, tuple(z), p > self.alpha, p)


class IndTestDSep(IndependenceTest):
    """
    Exact oracle: x _||_ y | z iff x and y are d-separated by z in the DAG.
    p-value is 1.0 for independence and 0.0 otherwise.
    """

    def __init__(self, dag: Graph):
        super().__init__(dag.nodes, alpha=0.5)
        self.graph = dag
        self._digraph = dag.to_networkx()

    def d_separated(self, x: Node, y: Node, z: Sequence[Node]) -> bool:
        # moralized ancestral graph criterion
        names = {x.name, y.name} | {c.name for c in z}
        relevant = set(names)
        for n in names:
            relevant |= nx.ancestors(self._digraph, n)
        moral = nx.moral_graph(self._digraph.subgraph(relevant))
        moral.remove_nodes_from([c.name for c in z])
        return not nx.has_path(moral, x.name, y.name)

    def _test(self, x, y, z):
        for n in (x, y, *z):
            self.index_of(n)
        independent = self.d_separated(x, y, z)
        return IndependenceResult(x, y, tuple(z), independent, 1.0 if independent else 0.0)


class IndTestIndependenceFacts(IndependenceTest):
    """
    Oracle over an explicit list of independence facts (x, y, z), given by
    variable name. x and y are interchangeable; z is a set. Anything not
    listed is dependent.
    """

    def __init__(self, facts: Iterable[Tuple[str, str, Iterable[str]]], variables: Iterable[Union[Node, str]]):
        nodes = [v if isinstance(v, Node) else Node(v) for v in variables]
        super().__init__(nodes, alpha=0.5)
        self.facts = set()
        for x, y, z in facts:
            self.facts.add((frozenset((str(x), str(y))), frozenset(str(c) for c in z)))

    def _test(self, x, y, z):
        key = (frozenset((x.name, y.name)), frozenset(c.name for c in z))
        return IndependenceResult(x, y, tuple(z), key in self.facts, math.nan)
