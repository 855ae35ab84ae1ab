"""
Sepset producers: separating sets found on demand in the current graph.

GFCI has no FAS sepset map, so it searches for a sepset of x and y among
subsets of adj(x) and adj(y) when it needs one. The strategies differ in
which independent conditioning set they return:

    greedy  the first one found (smallest size first, adj(x) before adj(y))
    min_p   the one with the smallest p-value
    max_p   the one with the largest p-value
"""

import itertools
import math
from abc import ABC, abstractmethod
from typing import Iterator, Optional, Sequence, Tuple

from .graph import Graph, Node
from .independence import IndependenceResult, IndependenceTest


class SepsetProducer(ABC):
    name = ""

    def __init__(self, graph: Graph, test: IndependenceTest, depth: int = -1):
        if test is None:
            raise TypeError("An independence test is required")
        if depth < -1:
            raise ValueError(f"Depth must be -1 (unbounded) or >= 0: {depth}")
        self.graph = graph
        self.test = test
        self.depth = depth
        self.num_independence_tests_ = 0

    def _independent_results(self, x: Node, y: Node) -> Iterator[IndependenceResult]:
        tried = set()
        for side in ([n for n in self.graph.adjacent_nodes(x) if n != y],
                     [n for n in self.graph.adjacent_nodes(y) if n != x]):
            max_d = len(side) if self.depth == -1 else min(self.depth, len(side))
            for d in range(max_d + 1):
                for cond in itertools.combinations(side, d):
                    key = frozenset(cond)
                    if key in tried:
                        continue
                    tried.add(key)
                    result = self.test.check_independence(x, y, cond)
                    self.num_independence_tests_ += 1
                    if result.independent:
                        yield result

    @abstractmethod
    def get(self, x: Node, y: Node) -> Optional[Tuple[Node, ...]]:
        ...

    def is_unshielded_collider(self, x: Node, y: Node, z: Node) -> bool:
        sepset = self.get(x, z)
        return sepset is not None and y not in sepset

    def is_independent(self, x: Node, y: Node, z: Sequence[Node]) -> bool:
        return self.test.is_independent(x, y, z)


class SepsetsGreedy(SepsetProducer):
    name = "greedy"

    def get(self, x, y):
        for result in self._independent_results(x, y):
            return result.z
        return None


class _SepsetsByP(SepsetProducer):
    prefer_smaller = True

    def get(self, x, y):
        best: Optional[IndependenceResult] = None
        for result in self._independent_results(x, y):
            if best is None or self._better(result.p_value, best.p_value):
                best = result
        return None if best is None else best.z

    def _better(self, p: float, incumbent: float) -> bool:
        if math.isnan(p):
            return False
        if math.isnan(incumbent):
            return True
        return p < incumbent if self.prefer_smaller else p > incumbent


class SepsetsMinP(_SepsetsByP):
    name = "min_p"
    prefer_smaller = True


class SepsetsMaxP(_SepsetsByP):
    name = "max_p"
    prefer_smaller = False


SEPSET_PRODUCERS = {
    SepsetsGreedy.name: SepsetsGreedy,
    SepsetsMinP.name: SepsetsMinP,
    SepsetsMaxP.name: SepsetsMaxP,
}


def make_sepset_producer(name: str, graph: Graph, test: IndependenceTest, depth: int = -1) -> SepsetProducer:
    try:
        cls = SEPSET_PRODUCERS[name]
    except KeyError:
        raise ValueError(f"Unknown sepset finder {name!r}; expected one of {sorted(SEPSET_PRODUCERS)}") from None
    return cls(graph, test, depth)
