"""
FCI: causal discovery with latent confounders and selection bias.

Steps:
    1. FAS skeleton and sepsets
    2. reorient everything o-o, apply knowledge, R0 (unshielded colliders)
    3. possible-d-sep edge removal (optional)
    4. reset to o-o, knowledge, R0 again with the updated sepsets
    5. R1-R4 (+ R5-R10 with the complete rule set)
    6. optional best-effort PAG repair
"""

import itertools
import logging
import time
from typing import List, Optional, Sequence

from .fas import Fas, FasConcurrent
from .graph import Graph, Node, Triple, CIRCLE
from .independence import IndependenceTest
from .knowledge import Knowledge
from .log import step_level
from .orientation import FciOrient, possible_dsep
from .search_utils import fci_orient_bk, guarantee_pag
from .sepset import SepsetMap

_logger = logging.getLogger(__name__)


class Fci:
    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 stable: bool = True, possible_dsep: bool = True, max_path_length: int = -1,
                 complete_rule_set: bool = True, guarantee_pag: bool = False, num_threads: int = 1,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        if test is None:
            raise TypeError("An independence test is required")
        if depth < -1:
            raise ValueError(f"Depth must be -1 (unbounded) or >= 0: {depth}")
        if max_path_length < -1:
            raise ValueError(f"Max path length must be -1 (unbounded) or >= 0: {max_path_length}")
        if num_threads < 1:
            raise ValueError(f"Number of threads must be >= 1: {num_threads}")
        self.test = test
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.depth = depth
        self.stable = stable
        self.possible_dsep = possible_dsep
        self.max_path_length = max_path_length
        self.complete_rule_set = complete_rule_set
        self.guarantee_pag = guarantee_pag
        self.num_threads = num_threads
        self.logger = logger or _logger
        self.verbose = verbose

        self.graph_: Optional[Graph] = None
        self.sepsets_: Optional[SepsetMap] = None
        self.collider_triples_: List[Triple] = []
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

    # --- skeleton ---

    def _make_fas(self) -> Fas:
        if self.stable:
            return FasConcurrent(self.test, knowledge=self.knowledge, depth=self.depth,
                                 num_threads=self.num_threads, logger=self.logger, verbose=self.verbose)
        return Fas(self.test, knowledge=self.knowledge, depth=self.depth, stable=False,
                   logger=self.logger, verbose=self.verbose)

    # --- possible-d-sep removal ---

    def _possible_dsep_phase(self, graph: Graph, sepsets: SepsetMap):
        """Remove x *-* y if some subset of Possible-D-Sep(x) or (y) separates them."""
        self.logger.log(step_level(self.verbose), "Possible-d-sep removal")
        for x, y in [(e.node1, e.node2) for e in graph.edges()]:
            if not graph.is_adjacent(x, y) or not self.knowledge.no_edge_required(x, y):
                continue
            for a, b in ((x, y), (y, x)):
                candidates = sorted(possible_dsep(graph, a, b, self.max_path_length))
                max_d = len(candidates) if self.depth == -1 else min(self.depth, len(candidates))
                if self._remove_if_separated(graph, sepsets, x, y, candidates, max_d):
                    break

    def _remove_if_separated(self, graph: Graph, sepsets: SepsetMap, x: Node, y: Node,
                             candidates: List[Node], max_d: int) -> bool:
        for d in range(max_d + 1):
            for cond in itertools.combinations(candidates, d):
                result = self.test.check_independence(x, y, cond)
                self.num_independence_tests_ += 1
                if result.independent:
                    graph.remove_edge(x, y)
                    sepsets.set(x, y, cond)
                    sepsets.set_p_value(x, y, result.p_value)
                    self.logger.log(step_level(self.verbose), "Possible-d-sep independence: %s", result)
                    return True
        return False

    # --- main entry point ---

    def search(self, nodes: Optional[Sequence[Node]] = None) -> Graph:
        start = time.perf_counter()
        self.logger.info("Starting FCI")

        fas = self._make_fas()
        graph = fas.search(nodes)
        sepsets = fas.sepsets_
        self.num_independence_tests_ = fas.num_independence_tests_

        orienter = FciOrient(sepsets, knowledge=self.knowledge, complete_rule_set=self.complete_rule_set,
                             max_path_length=self.max_path_length, logger=self.logger, verbose=self.verbose)

        graph.reorient_all_with(CIRCLE)
        fci_orient_bk(self.knowledge, graph)
        colliders = orienter.rule_r0(graph)

        if self.possible_dsep:
            self._possible_dsep_phase(graph, sepsets)
            graph.reorient_all_with(CIRCLE)
            fci_orient_bk(self.knowledge, graph)
            colliders = orienter.rule_r0(graph)

        orienter.final_orientation(graph)

        if self.guarantee_pag:
            graph = guarantee_pag(graph, orienter, colliders, self.knowledge, logger=self.logger)

        self.graph_ = graph
        self.sepsets_ = sepsets
        self.collider_triples_ = colliders
        self.elapsed_time_ = time.perf_counter() - start
        self.logger.info("FCI finished: %d edges, %.3fs", graph.num_edges(), self.elapsed_time_)
        return graph

    def get_graph(self) -> Optional[Graph]:
        return self.graph_
