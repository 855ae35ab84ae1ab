"""
GFCI: Greedy FCI.

A hybrid algorithm that:
1. Runs FGES(score) to get an initial CPDAG G
2. Initializes the PAG with the adjacencies of G and removes the extra
   edges a - c in shielded triples that a sepset producer can separate
3. Orients colliders from G's v-structures, and for triangles of G that
   became unshielded, from the sepset producer (gfci R0)
4. Applies the FCI final orientation rules with the producer as sepset source
5. Optionally repairs the result into a legal PAG (best effort)

Key difference from FCI: adjacencies start from the score-based CPDAG
instead of the complete graph, and sepsets are searched on demand in
the current graph instead of being read from a FAS sepset map.
"""

import itertools
import logging
import time
from typing import List, Optional

from .fges import Fges
from .graph import Graph, Triple, CIRCLE, ARROW
from .independence import IndependenceTest
from .knowledge import Knowledge
from .log import step_level
from .orientation import FciOrient
from .score import Score
from .search_utils import fci_orient_bk, guarantee_pag, is_arrowhead_allowed
from .sepset import SepsetMap
from .sepset_producers import SEPSET_PRODUCERS, SepsetProducer, make_sepset_producer

_logger = logging.getLogger(__name__)


class GFci:
    """
    Attributes set by search():
        cpdag_: the FGES CPDAG (copy, untouched by later steps)
        graph_: the final PAG
        sepsets_: sepsets that justified removing extra edges
        collider_triples_: colliders oriented by gfci R0
    """

    def __init__(self, test: IndependenceTest, score: Score, knowledge: Optional[Knowledge] = None,
                 depth: int = -1, max_degree: int = -1, max_path_length: int = -1,
                 complete_rule_set: bool = True, sepset_finder: str = "min_p", num_threads: int = 1,
                 guarantee_pag: bool = False, faithfulness_assumed: bool = True,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        if test is None:
            raise TypeError("An independence test is required")
        if score is None:
            raise TypeError("A score is required")
        if depth < -1:
            raise ValueError(f"Depth must be -1 (unbounded) or >= 0: {depth}")
        if max_degree < -1:
            raise ValueError(f"Max degree must be -1 (unbounded) or >= 0: {max_degree}")
        if max_path_length < -1:
            raise ValueError(f"Max path length must be -1 (unbounded) or >= 0: {max_path_length}")
        if num_threads < 1:
            raise ValueError(f"Number of threads must be >= 1: {num_threads}")
        if sepset_finder not in SEPSET_PRODUCERS:
            raise ValueError(f"Unknown sepset finder {sepset_finder!r}; expected one of {sorted(SEPSET_PRODUCERS)}")

        self.test = test
        self.score = score
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.depth = depth
        self.max_degree = max_degree
        self.max_path_length = max_path_length
        self.complete_rule_set = complete_rule_set
        self.sepset_finder = sepset_finder
        self.num_threads = num_threads
        self.guarantee_pag = guarantee_pag
        self.faithfulness_assumed = faithfulness_assumed
        self.logger = logger or _logger
        self.verbose = verbose

        self.cpdag_: Optional[Graph] = None
        self.graph_: Optional[Graph] = None
        self.sepsets_: Optional[SepsetMap] = None
        self.collider_triples_: List[Triple] = []
        self.elapsed_time_ = 0.0

    @property
    def knowledge(self) -> Knowledge:
        return self._knowledge

    @knowledge.setter
    def knowledge(self, knowledge: Knowledge):
        if knowledge is None:
            raise TypeError("Knowledge must not be None")
        self._knowledge = knowledge

    # =========================================================================
    # Steps
    # =========================================================================

    def _remove_extra_edges(self, graph: Graph, cpdag: Graph, producer: SepsetProducer, sepsets: SepsetMap):
        """Drop a - c where a - b - c is a triangle in both graphs and a sepset exists."""
        for b in cpdag.nodes:
            for a, c in itertools.combinations(cpdag.adjacent_nodes(b), 2):
                if not (cpdag.is_adjacent(a, c) and graph.is_adjacent(a, c)):
                    continue
                if not self.knowledge.no_edge_required(a, c):
                    continue
                sepset = producer.get(a, c)
                if sepset is not None:
                    graph.remove_edge(a, c)
                    sepsets.set(a, c, sepset)
                    self.logger.log(step_level(self.verbose), "Removed extra edge %s - %s | %s",
                                    a, c, [n.name for n in sepset])

    def _gfci_r0(self, graph: Graph, cpdag: Graph, producer: SepsetProducer) -> List[Triple]:
        graph.reorient_all_with(CIRCLE)
        fci_orient_bk(self.knowledge, graph)

        colliders = []
        for triple in graph.unshielded_triples():
            a, b, c = triple.x, triple.y, triple.z
            if cpdag.is_def_collider(a, b, c):
                orient = True
            elif cpdag.is_adjacent(a, c):
                orient = producer.is_unshielded_collider(a, b, c)
            else:
                orient = False
            if not orient:
                continue
            if is_arrowhead_allowed(a, b, graph, self.knowledge) and is_arrowhead_allowed(c, b, graph, self.knowledge):
                graph.set_endpoint(a, b, ARROW)
                graph.set_endpoint(c, b, ARROW)
                colliders.append(triple)
                self.logger.log(step_level(self.verbose), "gfci R0: %s *-> %s <-* %s", a, b, c)
        return colliders

    # =========================================================================
    # Main entry point
    # =========================================================================

    def search(self) -> Graph:
        start = time.perf_counter()
        self.logger.info("Starting GFCI")

        fges = Fges(self.score, knowledge=self.knowledge, max_degree=self.max_degree,
                    num_threads=self.num_threads, faithfulness_assumed=self.faithfulness_assumed,
                    logger=self.logger, verbose=self.verbose)
        cpdag = fges.search()
        self.cpdag_ = cpdag.copy()

        graph = cpdag.copy()
        sepsets = SepsetMap()
        producer = make_sepset_producer(self.sepset_finder, graph, self.test, self.depth)

        self._remove_extra_edges(graph, cpdag, producer, sepsets)
        colliders = self._gfci_r0(graph, cpdag, producer)

        orienter = FciOrient(producer, knowledge=self.knowledge, complete_rule_set=self.complete_rule_set,
                             max_path_length=self.max_path_length, logger=self.logger, verbose=self.verbose)
        orienter.final_orientation(graph)

        if self.guarantee_pag:
            graph = guarantee_pag(graph, orienter, colliders, self.knowledge, logger=self.logger)

        self.graph_ = graph
        self.sepsets_ = sepsets
        self.collider_triples_ = colliders
        self.elapsed_time_ = time.perf_counter() - start
        self.logger.info("GFCI finished: %d edges, %.3fs", graph.num_edges(), self.elapsed_time_)
        return graph

    def get_graph(self) -> Optional[Graph]:
        return self.graph_
