"""
Meek's orientation rules for CPDAGs.

Applied repeatedly until no rule fires (fixed point):

R1: a -> b - c, a and c nonadjacent              =>  b -> c
R2: a -> b -> c, a - c                           =>  a -> c
R3: a - b, a - c, a - d, c -> b, d -> b,
    c and d nonadjacent                          =>  a -> b
R4: d - c, a -> b -> c, d - a, d adj b,
    a and c nonadjacent                          =>  d -> c

An orientation is skipped if knowledge forbids it or if it would close a
directed cycle; a skipped instance does not block the others.
"""

import itertools
import logging
from typing import List, Optional, Set, Tuple

from .graph import Graph, Node, Triple, ARROW, TAIL
from .knowledge import Knowledge
from .log import step_level

_logger = logging.getLogger(__name__)


class MeekRules:
    def __init__(self, knowledge: Optional[Knowledge] = None, aggressively_prevent_cycles: bool = False,
                 logger: Optional[logging.Logger] = None, verbose: bool = False):
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.aggressively_prevent_cycles = aggressively_prevent_cycles
        self.logger = logger or _logger
        self.verbose = verbose
        # CPC: triples whose collider status is unknown; R1 never fires across them
        self.ambiguous_triples: Set[Triple] = set()

    def orient_implied(self, graph: Graph) -> Set[Node]:
        """Run R1-R4 to a fixed point. Returns the nodes whose edges changed."""
        changed: Set[Node] = set()
        progress = True
        while progress:
            progress = False
            for a, b in self._undirected_edges(graph):
                for x, y in ((a, b), (b, a)):
                    if not graph.is_undirected(x, y):
                        break
                    rule = self._rule_for(graph, x, y)
                    if rule and self._orient(graph, x, y, rule):
                        changed.update((x, y))
                        progress = True
                        break
        return changed

    # --- rule checks for orienting x -> y ---

    def _rule_for(self, graph: Graph, x: Node, y: Node) -> Optional[str]:
        if self._r1(graph, x, y):
            return "R1"
        if self._r2(graph, x, y):
            return "R2"
        if self._r3(graph, x, y):
            return "R3"
        if self._r4(graph, x, y):
            return "R4"
        return None

    def _r1(self, graph: Graph, b: Node, c: Node) -> bool:
        return any(not graph.is_adjacent(a, c) and Triple(a, b, c) not in self.ambiguous_triples
                   for a in graph.parents(b) if a != c)

    @staticmethod
    def _r2(graph: Graph, a: Node, c: Node) -> bool:
        return any(graph.is_parent_of(b, c) for b in graph.children(a))

    @staticmethod
    def _r3(graph: Graph, a: Node, b: Node) -> bool:
        candidates = [c for c in graph.parents(b) if graph.is_undirected(a, c)]
        return any(not graph.is_adjacent(c, d) for c, d in itertools.combinations(candidates, 2))

    @staticmethod
    def _r4(graph: Graph, d: Node, c: Node) -> bool:
        for b in graph.parents(c):
            if b == d or not graph.is_adjacent(d, b):
                continue
            for a in graph.parents(b):
                if a != c and a != d and graph.is_undirected(d, a) and not graph.is_adjacent(a, c):
                    return True
        return False

    # --- orientation with guards ---

    def _orient(self, graph: Graph, x: Node, y: Node, rule: str) -> bool:
        if self.knowledge.is_forbidden(x, y) or self.knowledge.is_required(y, x):
            return False
        if graph.exists_directed_path(y, x):
            return False
        if self.aggressively_prevent_cycles and self._creates_new_collider(graph, x, y):
            return False
        graph.add_edge(x, y, TAIL, ARROW)
        self.logger.log(step_level(self.verbose), "Meek %s: %s --> %s", rule, x, y)
        return True

    @staticmethod
    def _creates_new_collider(graph: Graph, x: Node, y: Node) -> bool:
        return any(not graph.is_adjacent(p, x) for p in graph.parents(y) if p != x)

    @staticmethod
    def _undirected_edges(graph: Graph) -> List[Tuple[Node, Node]]:
        return sorted(((e.node1, e.node2) for e in graph.edges() if e.endpoint1 == TAIL and e.endpoint2 == TAIL),
                      key=lambda pair: (pair[0].name, pair[1].name))
