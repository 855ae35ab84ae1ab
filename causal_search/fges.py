"""
FGES-style greedy score search.

- Maintains a priority queue of candidate insertions/removals ranked by score
  improvement ("bump").
- Re-scores only the children whose parent sets change instead of sweeping
  all node pairs on every iteration.
- Searches in DAG space (acyclicity, knowledge and max degree are checked
  for every insertion) and returns the CPDAG of the final DAG.
- With faithfulness_assumed, the first forward pass only considers pairs
  with a marginal effect. A second forward pass then considers pairs two
  steps apart in the current graph, which covers noncolliders such as the
  ones a hidden common cause needs.

GFci uses this as its score-based first stage.
"""

import heapq
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .graph import Graph
from .knowledge import Knowledge
from .log import step_level
from .score import Score, ScoreCache
from .search_utils import cpdag_for_dag

_logger = logging.getLogger(__name__)

_Heap = List[Tuple[float, int, int]]


class Fges:
    def __init__(self, score: Score, knowledge: Optional[Knowledge] = None, max_degree: int = -1,
                 num_threads: int = 1, faithfulness_assumed: bool = False,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        if score is None:
            raise TypeError("A score is required")
        if max_degree < -1:
            raise ValueError(f"Max degree must be -1 (unbounded) or >= 0: {max_degree}")
        if num_threads < 1:
            raise ValueError(f"Number of threads must be >= 1: {num_threads}")
        self.score = score if isinstance(score, ScoreCache) else ScoreCache(score)
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.max_degree = max_degree
        self.num_threads = num_threads
        self.faithfulness_assumed = faithfulness_assumed
        self.logger = logger or _logger
        self.verbose = verbose

        self.dag_: Optional[Graph] = None
        self.graph_: Optional[Graph] = None
        self.elapsed_time_ = 0.0
        self._marginal_effects: Set[Tuple[int, int]] = set()
        self._candidate_filter: Optional[Callable[[Graph, int, int], bool]] = None

    # ------------------------------------------------------------------ Search --
    def search(self) -> Graph:
        start = time.perf_counter()
        dag = Graph(self.score.variables)
        self._add_required_edges(dag)

        self.logger.info("FGES: forward phase over %d variables", dag.num_nodes)
        if self.faithfulness_assumed:
            self._marginal_effects = self._find_marginal_effects(dag)
            self._candidate_filter = self._has_marginal_effect
            self._forward_phase(dag)
            self.logger.info("FGES: marginal pass complete with %d edges", dag.num_edges())
            self._candidate_filter = self._two_steps_apart
            self._forward_phase(dag)
        else:
            self._forward_phase(dag)
        self._candidate_filter = None
        self.logger.info("FGES: forward complete with %d edges", dag.num_edges())
        self._backward_phase(dag)
        self.logger.info("FGES: backward complete with %d edges", dag.num_edges())

        stats = self.score.stats()
        self.logger.debug("FGES: cache %d hits, %d misses, hit rate %.2f%%",
                          stats['hits'], stats['misses'], 100 * stats['hit_rate'])

        self.dag_ = dag
        self.graph_ = cpdag_for_dag(dag)
        self.elapsed_time_ = time.perf_counter() - start
        return self.graph_

    def get_graph(self) -> Optional[Graph]:
        return self.graph_

    def _add_required_edges(self, dag: Graph):
        for a, b in self.knowledge.required_edges():
            if dag.contains(a) and dag.contains(b) and not dag.is_ancestor_of(b, a):
                dag.add_directed_edge(a, b)

    def _find_marginal_effects(self, dag: Graph) -> Set[Tuple[int, int]]:
        """One-edge faithfulness: pairs with a marginal effect seed the first forward pass."""
        effects = set()
        for parent in range(dag.num_nodes):
            for child in range(dag.num_nodes):
                if parent != child and self.score.is_effect_edge(self.score.local_score_diff(parent, child, [])):
                    effects.add((parent, child))
        return effects

    def _has_marginal_effect(self, dag: Graph, parent: int, child: int) -> bool:
        return (parent, child) in self._marginal_effects

    @staticmethod
    def _two_steps_apart(dag: Graph, parent: int, child: int) -> bool:
        c = dag.nodes[child]
        return any(dag.is_adjacent(n, c) for n in dag.adjacent_nodes(dag.nodes[parent]))

    # ----------------------------------------------------------- Forward phase --
    def _forward_phase(self, dag: Graph):
        """
        Repeatedly insert the edge with the largest positive bump, then
        refresh the candidates of the child whose parent set changed.
        """
        heap, scores = self._initialize_add_candidates(dag)
        step = 0
        while heap:
            neg_bump, parent, child = heapq.heappop(heap)
            key = (parent, child)
            latest = scores.get(key)
            # Skip stale heap entries that don't match the most recent bump.
            if latest is None or abs(latest + neg_bump) > 1e-12:
                continue
            if not self._valid_insertion(dag, parent, child):
                scores.pop(key, None)
                continue

            current = self._bump_add(dag, parent, child)
            if abs(current - latest) > 1e-12:
                if self.score.is_effect_edge(current):
                    scores[key] = current
                    heapq.heappush(heap, (-current, parent, child))
                else:
                    scores.pop(key, None)
                continue

            dag.add_directed_edge(dag.nodes[parent], dag.nodes[child])
            scores.pop(key, None)
            step += 1
            self.logger.log(step_level(self.verbose), "Forward %d: added %s --> %s (bump %.4f)",
                            step, dag.nodes[parent], dag.nodes[child], current)
            # both ends may lose candidates to max degree or acyclicity
            self._refresh_add_candidates(dag, range(dag.num_nodes), heap, scores)

    # ---------------------------------------------------------- Backward phase --
    def _backward_phase(self, dag: Graph):
        heap, scores = self._initialize_remove_candidates(dag)
        step = 0
        while heap:
            neg_bump, parent, child = heapq.heappop(heap)
            key = (parent, child)
            latest = scores.get(key)
            if latest is None or abs(latest + neg_bump) > 1e-12:
                continue
            p_node, c_node = dag.nodes[parent], dag.nodes[child]
            if not dag.is_parent_of(p_node, c_node):
                scores.pop(key, None)
                continue

            current = self._bump_remove(dag, parent, child)
            if abs(current - latest) > 1e-12:
                if current > 0:
                    scores[key] = current
                    heapq.heappush(heap, (-current, parent, child))
                else:
                    scores.pop(key, None)
                continue

            dag.remove_edge(p_node, c_node)
            scores.pop(key, None)
            step += 1
            self.logger.log(step_level(self.verbose), "Backward %d: removed %s --> %s (bump %.4f)",
                            step, p_node, c_node, current)
            self._refresh_remove_candidates(dag, {child}, heap, scores)

    # ---------------------------------------------------- Candidate management --
    def _valid_insertion(self, dag: Graph, parent: int, child: int) -> bool:
        p, c = dag.nodes[parent], dag.nodes[child]
        if dag.is_adjacent(p, c):
            return False
        if self.knowledge.is_forbidden(p, c):
            return False
        if self._candidate_filter is not None and not self._candidate_filter(dag, parent, child):
            return False
        if self.max_degree != -1 and (dag.degree(p) >= self.max_degree or dag.degree(c) >= self.max_degree):
            return False
        return not dag.is_ancestor_of(c, p)

    def _add_candidates_for(self, dag: Graph, child: int) -> List[Tuple[int, int, float]]:
        found = []
        for parent in range(dag.num_nodes):
            if parent == child or not self._valid_insertion(dag, parent, child):
                continue
            found.append((parent, child, self._bump_add(dag, parent, child)))
        return found

    def _initialize_add_candidates(self, dag: Graph) -> Tuple[_Heap, Dict[Tuple[int, int], float]]:
        heap: _Heap = []
        scores: Dict[Tuple[int, int], float] = {}
        children = list(range(dag.num_nodes))
        if self.num_threads > 1:
            with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
                batches = list(executor.map(lambda c: self._add_candidates_for(dag, c), children))
        else:
            batches = [self._add_candidates_for(dag, c) for c in children]
        for batch in batches:
            for parent, child, bump in batch:
                if self.score.is_effect_edge(bump):
                    scores[(parent, child)] = bump
                    heapq.heappush(heap, (-bump, parent, child))
        return heap, scores

    def _refresh_add_candidates(self, dag: Graph, children: Iterable[int], heap: _Heap,
                                scores: Dict[Tuple[int, int], float]):
        """
        Recompute insertion bumps for the given children. Stale entries are
        overwritten in `scores`; the heap may hold outdated duplicates, which
        are ignored when popped.
        """
        for child in children:
            for parent in range(dag.num_nodes):
                if parent == child:
                    continue
                key = (parent, child)
                if not self._valid_insertion(dag, parent, child):
                    scores.pop(key, None)
                    continue
                bump = self._bump_add(dag, parent, child)
                if not self.score.is_effect_edge(bump):
                    scores.pop(key, None)
                elif scores.get(key) != bump:
                    scores[key] = bump
                    heapq.heappush(heap, (-bump, parent, child))

    def _initialize_remove_candidates(self, dag: Graph) -> Tuple[_Heap, Dict[Tuple[int, int], float]]:
        heap: _Heap = []
        scores: Dict[Tuple[int, int], float] = {}
        self._refresh_remove_candidates(dag, set(range(dag.num_nodes)), heap, scores)
        return heap, scores

    def _refresh_remove_candidates(self, dag: Graph, children: Set[int], heap: _Heap,
                                   scores: Dict[Tuple[int, int], float]):
        for child in children:
            c_node = dag.nodes[child]
            for key in [k for k in scores if k[1] == child]:
                scores.pop(key, None)
            for p_node in dag.parents(c_node):
                if self.knowledge.is_required(p_node, c_node):
                    continue
                parent = dag.index_of(p_node)
                bump = self._bump_remove(dag, parent, child)
                if bump > 0:
                    scores[(parent, child)] = bump
                    heapq.heappush(heap, (-bump, parent, child))

    # ------------------------------------------------------------------ Bumps --
    def _parent_indices(self, dag: Graph, child: int) -> List[int]:
        return [dag.index_of(p) for p in dag.parents(dag.nodes[child])]

    def _bump_add(self, dag: Graph, parent: int, child: int) -> float:
        """Score change from adding parent --> child."""
        return self.score.local_score_diff(parent, child, self._parent_indices(dag, child))

    def _bump_remove(self, dag: Graph, parent: int, child: int) -> float:
        """Score change from removing parent --> child."""
        rest = [p for p in self._parent_indices(dag, child) if p != parent]
        return -self.score.local_score_diff(parent, child, rest)
