"""
Fast adjacency search (FAS): the skeleton phase shared by PC, CPC and FCI.

Starting from the complete undirected graph, for conditioning set size
d = 0, 1, 2, ... each remaining edge x - y is tested against subsets of size
d of adj(x) \\ {y}, then of adj(y) \\ {x}. The first independence found
removes the edge and records the conditioning set in the SepsetMap.

- Fas(stable=False) draws subsets from the live adjacency sets, so the
  result can depend on the order in which edges are removed (PC).
- Fas(stable=True) freezes the adjacency sets at the start of each depth
  and applies all removals after the depth has finished (PC-Stable).
- FasConcurrent runs the stable variant with the pair tests of each depth
  spread over a thread pool. Its output equals Fas(stable=True).
"""

import itertools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from .graph import Graph, Node, TAIL
from .independence import IndependenceResult, IndependenceTest
from .knowledge import Knowledge
from .log import step_level
from .sepset import SepsetMap

_logger = logging.getLogger(__name__)

# (first independence found or None, number of tests run)
_PairOutcome = Tuple[Optional[IndependenceResult], int]


class Fas:
    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 stable: bool = False, initial_graph: Optional[Graph] = None,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        if test is None:
            raise TypeError("An independence test is required")
        if depth < -1:
            raise ValueError(f"Depth must be -1 (unbounded) or >= 0: {depth}")
        self.test = test
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.depth = depth
        self.stable = stable
        self.initial_graph = initial_graph
        self.logger = logger or _logger
        self.verbose = verbose

        self.graph_: Optional[Graph] = None
        self.sepsets_: Optional[SepsetMap] = None
        self.num_independence_tests_ = 0
        self.elapsed_time_ = 0.0

    @property
    def knowledge(self) -> Knowledge:
        return self._knowledge

    @knowledge.setter
    def knowledge(self, knowledge: Knowledge):
        if knowledge is None:
            raise TypeError("Knowledge must not be None")
        self._knowledge = knowledge

    # --- initial graph ---

    def _resolve_nodes(self, nodes: Optional[Sequence[Node]]) -> List[Node]:
        if nodes is None:
            return self.test.variables
        resolved = []
        for node in nodes:
            name = node.name if isinstance(node, Node) else node
            var = self.test.get_variable(name)
            if var is None:
                raise ValueError(f"Node {name} is not a variable of the independence test")
            resolved.append(var)
        return resolved

    def _initial_skeleton(self, nodes: List[Node]) -> Graph:
        graph = Graph.complete_graph(nodes, TAIL)
        for x, y in itertools.combinations(nodes, 2):
            if self.initial_graph is not None:
                in_initial = (self.initial_graph.contains(x) and self.initial_graph.contains(y)
                              and self.initial_graph.is_adjacent(x, y))
                if not in_initial:
                    graph.remove_edge(x, y)
                    continue
            # forbidden both ways: never an edge, no sepset recorded
            if self.knowledge.is_forbidden_both_ways(x, y) and self.knowledge.no_edge_required(x, y):
                graph.remove_edge(x, y)
        return graph

    # --- pair test (shared by all variants) ---

    def _test_pair(self, x: Node, y: Node, adj_x: List[Node], adj_y: List[Node], d: int) -> _PairOutcome:
        """Try subsets of size d from adj_x (minus y), then from adj_y (minus x)."""
        count = 0
        tried = set()
        for candidates in ([n for n in adj_x if n != y], [n for n in adj_y if n != x]):
            if len(candidates) < d:
                continue
            for cond in itertools.combinations(candidates, d):
                key = frozenset(cond)
                if key in tried:
                    continue
                tried.add(key)
                result = self.test.check_independence(x, y, cond)
                count += 1
                if result.independent:
                    return result, count
        return None, count

    def _record(self, graph: Graph, sepsets: SepsetMap, result: IndependenceResult):
        x, y = result.x, result.y
        graph.remove_edge(x, y)
        sepsets.set(x, y, result.z)
        sepsets.set_p_value(x, y, result.p_value)
        self.logger.log(step_level(self.verbose), "Independence: %s", result)

    def _pairs(self, graph: Graph) -> List[Tuple[Node, Node]]:
        nodes = graph.nodes
        pairs = []
        for i, j in itertools.combinations(range(len(nodes)), 2):
            x, y = nodes[i], nodes[j]
            if graph.is_adjacent(x, y) and self.knowledge.no_edge_required(x, y):
                pairs.append((x, y))
        return pairs

    def _depth_possible(self, graph: Graph, d: int) -> bool:
        if self.depth != -1 and d > self.depth:
            return False
        return any(graph.degree(x) - 1 >= d or graph.degree(y) - 1 >= d for x, y in self._pairs(graph))

    # --- depth loops ---

    def _search_depth_live(self, graph: Graph, sepsets: SepsetMap, d: int):
        for x, y in self._pairs(graph):
            if not graph.is_adjacent(x, y):
                continue
            result, count = self._test_pair(x, y, graph.adjacent_nodes(x), graph.adjacent_nodes(y), d)
            self.num_independence_tests_ += count
            if result is not None:
                self._record(graph, sepsets, result)

    def _run_pair_tasks(self, tasks):
        return [self._test_pair(*task) for task in tasks]

    def _search_depth_stable(self, graph: Graph, sepsets: SepsetMap, d: int):
        snapshot: Dict[Node, List[Node]] = {n: graph.adjacent_nodes(n) for n in graph.nodes}
        tasks = [(x, y, snapshot[x], snapshot[y], d) for x, y in self._pairs(graph)]
        outcomes = self._run_pair_tasks(tasks)
        # removals are applied after the whole depth, in pair order
        for result, count in outcomes:
            self.num_independence_tests_ += count
            if result is not None:
                self._record(graph, sepsets, result)

    # --- main entry point ---

    def search(self, nodes: Optional[Sequence[Node]] = None) -> Graph:
        start = time.perf_counter()
        nodes = self._resolve_nodes(nodes)
        graph = self._initial_skeleton(nodes)
        sepsets = SepsetMap()
        self.num_independence_tests_ = 0

        self.logger.info("Starting FAS (%s) over %d variables", "stable" if self.stable else "live", len(nodes))
        d = 0
        while self._depth_possible(graph, d):
            self.logger.log(step_level(self.verbose), "Depth %d: %d edges", d, graph.num_edges())
            if self.stable:
                self._search_depth_stable(graph, sepsets, d)
            else:
                self._search_depth_live(graph, sepsets, d)
            d += 1

        self.graph_ = graph
        self.sepsets_ = sepsets
        self.elapsed_time_ = time.perf_counter() - start
        self.logger.info("FAS finished: %d edges, %d tests, %.3fs",
                         graph.num_edges(), self.num_independence_tests_, self.elapsed_time_)
        return graph


class FasStable(Fas):
    """Fas with adjacency sets frozen at the start of each depth."""

    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 initial_graph: Optional[Graph] = None,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        super().__init__(test, knowledge=knowledge, depth=depth, stable=True,
                         initial_graph=initial_graph, logger=logger, verbose=verbose)


class FasConcurrent(FasStable):
    """
    Stable FAS with the pair tests of each depth run on a thread pool.

    Each pair task only reads the frozen snapshot and returns its first
    independence; the main thread applies removals once every task of the
    depth is done, so the skeleton and sepsets match Fas(stable=True).
    """

    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 initial_graph: Optional[Graph] = None, num_threads: int = 1,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        super().__init__(test, knowledge=knowledge, depth=depth,
                         initial_graph=initial_graph, logger=logger, verbose=verbose)
        if num_threads < 1:
            raise ValueError(f"Number of threads must be >= 1: {num_threads}")
        self.num_threads = num_threads

    def _run_pair_tasks(self, tasks):
        workers = self.num_threads if self.test.thread_safe else 1
        if workers == 1 or len(tasks) < 2:
            return super()._run_pair_tasks(tasks)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map keeps task order
            return list(executor.map(lambda task: self._test_pair(*task), tasks))
