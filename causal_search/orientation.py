"""
FCI orientation: R0 (unshielded colliders) and R1-R10 (Zhang 2008), plus
the path searches they need (possible-d-sep, discriminating paths,
uncovered circle paths, uncovered potentially directed paths).

All searches use explicit queues or stacks. max_path_length bounds the
number of edges on a path; -1 means unbounded.

Rules only ever turn CIRCLE marks into ARROW or TAIL. An arrowhead is not
placed where knowledge forbids it.
"""

import logging
from collections import deque
from typing import Generator, List, Optional, Set

from .graph import Graph, Node, Triple, CIRCLE, ARROW, TAIL
from .knowledge import Knowledge
from .log import step_level
from .search_utils import fci_orient_bk

_logger = logging.getLogger(__name__)


# --------------------------------------------------------------------
# Path searches
# --------------------------------------------------------------------


def _within(length: int, max_path_length: int) -> bool:
    return max_path_length == -1 or length <= max_path_length


def possible_dsep(graph: Graph, x: Node, y: Node, max_path_length: int = -1) -> Set[Node]:
    """
    Nodes reachable from x on a path where every interior node is a
    collider or the middle of a triangle. BFS over (previous, current) edge
    states, so each edge is expanded at most once from each side.
    """
    result: Set[Node] = set()
    queue = deque((x, v, 1) for v in graph.adjacent_nodes(x))
    seen = {(x, v) for v in graph.adjacent_nodes(x)}
    while queue:
        prev, cur, length = queue.popleft()
        result.add(cur)
        if not _within(length + 1, max_path_length):
            continue
        for nxt in graph.adjacent_nodes(cur):
            if nxt == prev or (cur, nxt) in seen:
                continue
            if graph.is_def_collider(prev, cur, nxt) or graph.is_adjacent(prev, nxt):
                seen.add((cur, nxt))
                queue.append((cur, nxt, length + 1))
    result.discard(x)
    result.discard(y)
    return result


def find_discriminating_path(graph: Graph, beta: Node, gamma: Node, max_path_length: int = -1) -> Optional[List[Node]]:
    """
    A discriminating path <theta, ..., alpha, beta, gamma> for beta: theta is
    not adjacent to gamma, and every node strictly between theta and beta is
    a collider on the path and a parent of gamma. Found by BFS backwards
    from the parents of gamma that are into-arrowed by beta.
    """
    parents_of_gamma = set(graph.parents(gamma))
    pred = {}
    queue = deque()
    for alpha in graph.adjacent_nodes(beta):
        if alpha in parents_of_gamma and graph.get_endpoint(beta, alpha) == ARROW:
            pred[alpha] = beta
            queue.append((alpha, 3))

    while queue:
        v, length = queue.popleft()
        if not _within(length, max_path_length):
            continue
        for t in graph.adjacent_nodes(v):
            if t in (beta, gamma) or t in pred or graph.get_endpoint(t, v) != ARROW:
                continue
            if not graph.is_adjacent(t, gamma):
                path = [t, v]
                while path[-1] != beta:
                    path.append(pred[path[-1]])
                path.append(gamma)
                return path
            if t in parents_of_gamma and graph.get_endpoint(v, t) == ARROW:
                pred[t] = v
                queue.append((t, length + 1))
    return None


def is_circle_edge(graph: Graph, u: Node, v: Node) -> bool:
    return graph.is_adjacent(u, v) and graph.get_endpoint(u, v) == CIRCLE and graph.get_endpoint(v, u) == CIRCLE


def is_pd_edge(graph: Graph, u: Node, v: Node) -> bool:
    """
    Edge u ?-? v is potentially directed from u to v if:
    - it is not into u (mark at u != ARROW)
    - it is not out of v (mark at v != TAIL)
    """
    if not graph.is_adjacent(u, v):
        return False
    return graph.get_endpoint(v, u) != ARROW and graph.get_endpoint(u, v) != TAIL


def _is_uncovered_extension(graph: Graph, path: List[Node], nxt: Node) -> bool:
    return len(path) < 2 or not graph.is_adjacent(path[-2], nxt)


def uncovered_circle_paths(graph: Graph, a: Node, b: Node, max_path_length: int = -1) -> Generator[List[Node], None, None]:
    """Uncovered o-o paths from a to b with at least one interior node."""
    queue = deque([[a]])
    while queue:
        path = queue.popleft()
        if not _within(len(path), max_path_length):
            continue
        last = path[-1]
        for nb in graph.adjacent_nodes(last):
            if nb in path or not is_circle_edge(graph, last, nb):
                continue
            if not _is_uncovered_extension(graph, path, nb):
                continue
            if nb == b:
                if len(path) >= 2:
                    yield path + [nb]
            else:
                queue.append(path + [nb])


def uncovered_pd_paths(graph: Graph, start: Node, end: Node, max_path_length: int = -1) -> Generator[List[Node], None, None]:
    stack = [[start]]
    while stack:
        path = stack.pop()
        if not _within(len(path), max_path_length):
            continue
        node = path[-1]
        for nb in graph.adjacent_nodes(node):
            if nb in path or not is_pd_edge(graph, node, nb):
                continue
            if not _is_uncovered_extension(graph, path, nb):
                continue
            if nb == end:
                yield path + [nb]
            else:
                stack.append(path + [nb])


# --------------------------------------------------------------------
# Rule engine
# --------------------------------------------------------------------


class FciOrient:
    """
    sepsets is anything with get(x, y) -> sequence or None: a SepsetMap, or
    a sepset producer that searches on demand (GFCI).
    """

    def __init__(self, sepsets, knowledge: Optional[Knowledge] = None, complete_rule_set: bool = True,
                 max_path_length: int = -1, logger: Optional[logging.Logger] = None, verbose: bool = False):
        if sepsets is None:
            raise TypeError("A sepset source is required")
        if max_path_length < -1:
            raise ValueError(f"Max path length must be -1 (unbounded) or >= 0: {max_path_length}")
        self.sepsets = sepsets
        self.knowledge = knowledge if knowledge is not None else Knowledge()
        self.complete_rule_set = complete_rule_set
        self.max_path_length = max_path_length
        self.logger = logger or _logger
        self.verbose = verbose
        self.changed_ = False

    # ===================== entry points =====================

    def orient(self, graph: Graph) -> Graph:
        """Knowledge, R0, then the final orientation rules."""
        fci_orient_bk(self.knowledge, graph)
        self.rule_r0(graph)
        self.final_orientation(graph)
        return graph

    def rule_r0(self, graph: Graph) -> List[Triple]:
        """Orient x *-> y <-* z for unshielded triples with y outside sepset(x, z)."""
        colliders = []
        for triple in graph.unshielded_triples():
            x, y, z = triple.x, triple.y, triple.z
            sepset = self.sepsets.get(x, z)
            if sepset is None or y in sepset:
                continue
            if not (self._arrowhead_allowed(graph, x, y) and self._arrowhead_allowed(graph, z, y)):
                continue
            graph.set_endpoint(x, y, ARROW)
            graph.set_endpoint(z, y, ARROW)
            colliders.append(triple)
            self._log("R0", f"{x} *-> {y} <-* {z}")
        return colliders

    def final_orientation(self, graph: Graph) -> Graph:
        """
        R1-R4 to a fixed point (Spirtes et al). With the complete rule set,
        R5-R10 (Zhang 2008) join the loop.
        """
        rules = [self.rule_r1, self.rule_r2, self.rule_r3, self.rule_r4]
        if self.complete_rule_set:
            rules += [self.rule_r5, self.rule_r6, self.rule_r7, self.rule_r8, self.rule_r9, self.rule_r10]
        self.changed_ = True
        while self.changed_:
            self.changed_ = False
            for rule in rules:
                rule(graph)
        return graph

    # ===================== mark helpers =====================

    def _log(self, rule: str, message: str):
        self.logger.log(step_level(self.verbose), "%s: %s", rule, message)

    def _arrowhead_allowed(self, graph: Graph, x: Node, y: Node) -> bool:
        mark = graph.get_endpoint(x, y)
        if mark == ARROW:
            return True
        if mark != CIRCLE:
            return False
        return not (self.knowledge.is_forbidden(x, y) or self.knowledge.is_required(y, x))

    def _set_mark(self, graph: Graph, a: Node, b: Node, mark: int) -> bool:
        """Turn the circle at b on a *-o b into mark."""
        if graph.get_endpoint(a, b) != CIRCLE:
            return False
        if mark == ARROW and not self._arrowhead_allowed(graph, a, b):
            return False
        graph.set_endpoint(a, b, mark)
        self.changed_ = True
        return True

    def _orient_directed(self, graph: Graph, a: Node, b: Node, rule: str):
        """a ?-? b  =>  a --> b, touching circles only."""
        if graph.get_endpoint(a, b) == TAIL or graph.get_endpoint(b, a) == ARROW:
            return
        if graph.get_endpoint(a, b) == CIRCLE and not self._arrowhead_allowed(graph, a, b):
            return
        changed = self._set_mark(graph, a, b, ARROW)
        changed = self._set_mark(graph, b, a, TAIL) or changed
        if changed:
            self._log(rule, f"{a} --> {b}")

    def _pairs(self, graph: Graph):
        for b in graph.nodes:
            adj = graph.adjacent_nodes(b)
            for a in adj:
                for c in adj:
                    if a != c:
                        yield a, b, c

    # ===================== R1-R4 =====================

    def rule_r1(self, graph: Graph):
        """a *-> b o-* c, a and c nonadjacent  =>  b --> c"""
        for a, b, c in self._pairs(graph):
            if graph.get_endpoint(a, b) != ARROW or graph.get_endpoint(c, b) != CIRCLE:
                continue
            if graph.is_adjacent(a, c):
                continue
            self._orient_directed(graph, b, c, "R1")

    def rule_r2(self, graph: Graph):
        """a -> b *-> c or a *-> b -> c, and a *-o c  =>  a *-> c"""
        for a, b, c in self._pairs(graph):
            if not graph.is_adjacent(a, c) or graph.get_endpoint(a, c) != CIRCLE:
                continue
            case1 = graph.is_parent_of(a, b) and graph.get_endpoint(b, c) == ARROW
            case2 = graph.get_endpoint(a, b) == ARROW and graph.is_parent_of(b, c)
            if (case1 or case2) and self._set_mark(graph, a, c, ARROW):
                self._log("R2", f"{a} *-> {c}")

    def rule_r3(self, graph: Graph):
        """a *-> b <-* c, a *-o d o-* c, a and c nonadjacent, d *-o b  =>  d *-> b"""
        for b in graph.nodes:
            adj = graph.adjacent_nodes(b)
            for d in adj:
                if graph.get_endpoint(d, b) != CIRCLE:
                    continue
                into_b = [a for a in adj if a != d and graph.get_endpoint(a, b) == ARROW]
                for i, a in enumerate(into_b):
                    for c in into_b[i + 1:]:
                        if graph.is_adjacent(a, c):
                            continue
                        if not (graph.is_adjacent(a, d) and graph.is_adjacent(c, d)):
                            continue
                        if graph.get_endpoint(a, d) != CIRCLE or graph.get_endpoint(c, d) != CIRCLE:
                            continue
                        if self._set_mark(graph, d, b, ARROW):
                            self._log("R3", f"{d} *-> {b}")
                        break

    def rule_r4(self, graph: Graph):
        """
        Discriminating path <theta, ..., alpha, beta, gamma> with beta o-* gamma:
        beta --> gamma if beta is in sepset(theta, gamma), else alpha <-> beta <-> gamma.
        """
        for beta in graph.nodes:
            for gamma in graph.adjacent_nodes(beta):
                if graph.get_endpoint(gamma, beta) != CIRCLE:
                    continue
                path = find_discriminating_path(graph, beta, gamma, self.max_path_length)
                if path is None:
                    continue
                theta, alpha = path[0], path[-3]
                sepset = self.sepsets.get(theta, gamma)
                if sepset is None:
                    continue
                if beta in sepset:
                    self._orient_directed(graph, beta, gamma, "R4")
                else:
                    changed = self._set_mark(graph, alpha, beta, ARROW)
                    changed = self._set_mark(graph, gamma, beta, ARROW) or changed
                    changed = self._set_mark(graph, beta, gamma, ARROW) or changed
                    if changed:
                        self._log("R4", f"{alpha} <-> {beta} <-> {gamma}")

    # ===================== R5-R10 =====================

    def rule_r5(self, graph: Graph):
        """a o-o b with an uncovered circle path a, c, ..., d, b; a, d and b, c nonadjacent  =>  all tails"""
        for a in graph.nodes:
            for b in graph.adjacent_nodes(a):
                if not is_circle_edge(graph, a, b):
                    continue
                for path in uncovered_circle_paths(graph, a, b, self.max_path_length):
                    c, d = path[1], path[-2]
                    if graph.is_adjacent(a, d) or graph.is_adjacent(b, c):
                        continue
                    self._set_mark(graph, a, b, TAIL)
                    self._set_mark(graph, b, a, TAIL)
                    for u, v in zip(path[:-1], path[1:]):
                        self._set_mark(graph, u, v, TAIL)
                        self._set_mark(graph, v, u, TAIL)
                    self._log("R5", f"{a} --- {b} via {[n.name for n in path]}")
                    break

    def rule_r6(self, graph: Graph):
        """a --- b o-* c  =>  b --* c"""
        for a, b, c in self._pairs(graph):
            if graph.is_undirected(a, b) and graph.get_endpoint(c, b) == CIRCLE:
                if self._set_mark(graph, c, b, TAIL):
                    self._log("R6", f"{b} --* {c}")

    def rule_r7(self, graph: Graph):
        """a --o b o-* c, a and c nonadjacent  =>  b --* c"""
        for a, b, c in self._pairs(graph):
            if graph.get_endpoint(b, a) != TAIL or graph.get_endpoint(a, b) != CIRCLE:
                continue
            if graph.get_endpoint(c, b) != CIRCLE or graph.is_adjacent(a, c):
                continue
            if self._set_mark(graph, c, b, TAIL):
                self._log("R7", f"{b} --* {c}")

    def rule_r8(self, graph: Graph):
        """a --> b --> c or a --o b --> c, and a o-> c  =>  a --> c"""
        for a, b, c in self._pairs(graph):
            if not graph.is_adjacent(a, c):
                continue
            if graph.get_endpoint(a, c) != ARROW or graph.get_endpoint(c, a) != CIRCLE:
                continue
            if not graph.is_parent_of(b, c):
                continue
            if graph.get_endpoint(b, a) != TAIL or graph.get_endpoint(a, b) not in (ARROW, CIRCLE):
                continue
            if self._set_mark(graph, c, a, TAIL):
                self._log("R8", f"{a} --> {c}")

    def rule_r9(self, graph: Graph):
        """a o-> c with an uncovered pd path a, b, ..., c where b and c are nonadjacent  =>  a --> c"""
        for a in graph.nodes:
            for c in graph.adjacent_nodes(a):
                if graph.get_endpoint(a, c) != ARROW or graph.get_endpoint(c, a) != CIRCLE:
                    continue
                for path in uncovered_pd_paths(graph, a, c, self.max_path_length):
                    if len(path) < 3 or graph.is_adjacent(path[1], c):
                        continue
                    if self._set_mark(graph, c, a, TAIL):
                        self._log("R9", f"{a} --> {c}")
                    break

    def _first_steps(self, graph: Graph, a: Node, target: Node, exclude: Node) -> Set[Node]:
        steps = set()
        for path in uncovered_pd_paths(graph, a, target, self.max_path_length):
            if exclude not in path:
                steps.add(path[1])
        return steps

    def rule_r10(self, graph: Graph):
        """
        a o-> c, b --> c <-- d, uncovered pd paths from a to b and from a to d
        whose first steps m and w differ and are nonadjacent  =>  a --> c
        """
        for a in graph.nodes:
            for c in graph.adjacent_nodes(a):
                if graph.get_endpoint(a, c) != ARROW or graph.get_endpoint(c, a) != CIRCLE:
                    continue
                parents = [p for p in graph.parents(c) if p != a]
                done = False
                for i, b in enumerate(parents):
                    if done:
                        break
                    steps_b = self._first_steps(graph, a, b, c)
                    if not steps_b:
                        continue
                    for d in parents[i + 1:]:
                        steps_d = self._first_steps(graph, a, d, c)
                        if any(m != w and not graph.is_adjacent(m, w) for m in steps_b for w in steps_d):
                            if self._set_mark(graph, c, a, TAIL):
                                self._log("R10", f"{a} --> {c}")
                            done = True
                            break
