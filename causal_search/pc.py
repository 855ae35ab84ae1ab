"""
PC family: Pc, PcStable, Cpc, CpcStable.

    FAS  ->  knowledge  ->  colliders  ->  Meek rules  ->  CPDAG

Pc uses the live adjacency FAS, PcStable the per-depth frozen one (which
makes the output independent of edge-removal order). The CPC variants
replace "trust the sepset FAS found" with a search over all separating
sets for each unshielded triple and keep the triples they cannot decide
as ambiguous.
"""

import logging
import time
from typing import List, Optional, Sequence

from .fas import Fas, FasConcurrent
from .graph import Graph, Node, Triple
from .independence import IndependenceTest
from .knowledge import Knowledge
from .log import step_level
from .meek import MeekRules
from .search_utils import (ConflictRule, TripleType, cpc_triple_type, orient_collider,
                           orient_colliders_using_sepsets, pc_orient_bk)
from .sepset import SepsetMap

_logger = logging.getLogger(__name__)


class Pc:
    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 conflict_rule: ConflictRule = ConflictRule.OVERWRITE_EXISTING,
                 aggressively_prevent_cycles: bool = False,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        if test is None:
            raise TypeError("An independence test is required")
        if depth < -1:
            raise ValueError(f"Depth must be -1 (unbounded) or >= 0: {depth}")
        self.test = test
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.depth = depth
        self.conflict_rule = ConflictRule(conflict_rule)
        self.aggressively_prevent_cycles = aggressively_prevent_cycles
        self.logger = logger or _logger
        self.verbose = verbose

        self.graph_: Optional[Graph] = None
        self.sepsets_: Optional[SepsetMap] = None
        self.collider_triples_: List[Triple] = []
        self.noncollider_triples_: List[Triple] = []
        self.ambiguous_triples_: List[Triple] = []
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

    # --- pieces ---

    def _make_fas(self) -> Fas:
        return Fas(self.test, knowledge=self.knowledge, depth=self.depth, stable=False,
                   logger=self.logger, verbose=self.verbose)

    def _orient_colliders(self, graph: Graph, sepsets: SepsetMap):
        self.collider_triples_, self.noncollider_triples_ = orient_colliders_using_sepsets(
            sepsets, self.knowledge, graph, self.conflict_rule, logger=self.logger, verbose=self.verbose)
        self.ambiguous_triples_ = []

    def _meek(self) -> MeekRules:
        meek = MeekRules(self.knowledge, self.aggressively_prevent_cycles, logger=self.logger, verbose=self.verbose)
        meek.ambiguous_triples = set(self.ambiguous_triples_)
        return meek

    # --- main entry point ---

    def search(self, nodes: Optional[Sequence[Node]] = None) -> Graph:
        start = time.perf_counter()
        self.logger.info("Starting %s", type(self).__name__)

        fas = self._make_fas()
        graph = fas.search(nodes)
        self.sepsets_ = fas.sepsets_
        self.num_independence_tests_ = fas.num_independence_tests_

        pc_orient_bk(self.knowledge, graph)
        self._orient_colliders(graph, self.sepsets_)
        self._meek().orient_implied(graph)

        self.graph_ = graph
        self.elapsed_time_ = time.perf_counter() - start
        self.logger.info("%s finished: %d edges, %d colliders, %.3fs", type(self).__name__,
                         graph.num_edges(), len(self.collider_triples_), self.elapsed_time_)
        return graph

    def get_graph(self) -> Optional[Graph]:
        return self.graph_


class PcStable(Pc):
    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 conflict_rule: ConflictRule = ConflictRule.OVERWRITE_EXISTING,
                 aggressively_prevent_cycles: bool = False, num_threads: int = 1,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        super().__init__(test, knowledge, depth, conflict_rule, aggressively_prevent_cycles, logger, verbose)
        if num_threads < 1:
            raise ValueError(f"Number of threads must be >= 1: {num_threads}")
        self.num_threads = num_threads

    def _make_fas(self) -> Fas:
        return FasConcurrent(self.test, knowledge=self.knowledge, depth=self.depth, num_threads=self.num_threads,
                             logger=self.logger, verbose=self.verbose)


class Cpc(Pc):
    """Conservative PC: colliders only where every separating set excludes the middle node."""

    def _orient_colliders(self, graph: Graph, sepsets: SepsetMap):
        colliders, noncolliders, ambiguous = [], [], []
        for triple in graph.unshielded_triples():
            kind = cpc_triple_type(triple.x, triple.y, triple.z, self.test, self.depth, graph)
            self.logger.log(step_level(self.verbose), "Triple %s: %s", triple, kind.value)
            if kind is TripleType.COLLIDER:
                colliders.append(triple)
            elif kind is TripleType.NONCOLLIDER:
                noncolliders.append(triple)
            else:
                ambiguous.append(triple)

        # classification is done on the skeleton, orientation afterwards
        for triple in colliders:
            x, y, z = triple.x, triple.y, triple.z
            if (self.knowledge.is_forbidden(x, y) or self.knowledge.is_forbidden(z, y)
                    or self.knowledge.is_required(y, x) or self.knowledge.is_required(y, z)):
                continue
            orient_collider(graph, x, y, z, self.conflict_rule)

        self.collider_triples_ = colliders
        self.noncollider_triples_ = noncolliders
        self.ambiguous_triples_ = ambiguous


class CpcStable(Cpc):
    def __init__(self, test: IndependenceTest, knowledge: Optional[Knowledge] = None, depth: int = -1,
                 conflict_rule: ConflictRule = ConflictRule.OVERWRITE_EXISTING,
                 aggressively_prevent_cycles: bool = False, num_threads: int = 1,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        super().__init__(test, knowledge, depth, conflict_rule, aggressively_prevent_cycles, logger, verbose)
        if num_threads < 1:
            raise ValueError(f"Number of threads must be >= 1: {num_threads}")
        self.num_threads = num_threads

    _make_fas = PcStable._make_fas
