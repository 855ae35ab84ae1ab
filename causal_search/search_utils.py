"""
Shared search utilities.

- Collider orientation from sepsets (PC) and the conservative triple
  classification (CPC)
- Background knowledge orientation for CPDAGs and PAGs
- CPDAG <-> DAG conversions
- Legality predicates for CPDAGs, MAGs and PAGs, and the best-effort
  guarantee-PAG repair
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx

from .graph import Graph, Node, Triple, NULL, CIRCLE, ARROW, TAIL
from .independence import IndependenceTest
from .knowledge import Knowledge
from .log import step_level
from .meek import MeekRules
from .sepset import SepsetMap

_logger = logging.getLogger(__name__)


class ConflictRule(Enum):
    """What to do when a new collider meets an arrowhead already in place."""

    PRIORITIZE_EXISTING = "prioritize-existing"
    ORIENT_BIDIRECTED = "orient-bidirected"
    OVERWRITE_EXISTING = "overwrite-existing"


class TripleType(Enum):
    COLLIDER = "collider"
    NONCOLLIDER = "noncollider"
    AMBIGUOUS = "ambiguous"


# --------------------------------------------------------------------
# Colliders
# --------------------------------------------------------------------


def is_arrowhead_allowed(x: Node, y: Node, graph: Graph, knowledge: Knowledge) -> bool:
    """May the edge x *-* y get an arrowhead at y?"""
    if not graph.is_adjacent(x, y):
        return False
    if graph.get_endpoint(x, y) == ARROW:
        return True
    if graph.get_endpoint(x, y) == TAIL:
        return False
    return not (knowledge.is_required(y, x) or knowledge.is_forbidden(x, y))


def _collider_allowed(x: Node, y: Node, z: Node, knowledge: Knowledge) -> bool:
    return not (knowledge.is_forbidden(x, y) or knowledge.is_forbidden(z, y)
                or knowledge.is_required(y, x) or knowledge.is_required(y, z))


def orient_collider(graph: Graph, x: Node, y: Node, z: Node,
                    conflict_rule: ConflictRule = ConflictRule.OVERWRITE_EXISTING):
    """Orient x *-> y <-* z in a CPDAG under construction."""
    if conflict_rule is ConflictRule.PRIORITIZE_EXISTING:
        if graph.get_endpoint(y, x) == ARROW or graph.get_endpoint(y, z) == ARROW:
            return
        graph.set_endpoint(x, y, ARROW)
        graph.set_endpoint(z, y, ARROW)
    elif conflict_rule is ConflictRule.ORIENT_BIDIRECTED:
        graph.set_endpoint(x, y, ARROW)
        graph.set_endpoint(z, y, ARROW)
    else:
        graph.add_directed_edge(x, y)
        graph.add_directed_edge(z, y)


def orient_colliders_using_sepsets(sepsets: SepsetMap, knowledge: Optional[Knowledge], graph: Graph,
                                   conflict_rule: ConflictRule = ConflictRule.OVERWRITE_EXISTING,
                                   logger: Optional[logging.Logger] = None,
                                   verbose: bool = False) -> Tuple[List[Triple], List[Triple]]:
    """
    For each unshielded triple x - y - z, in (middle, left, right) name order:
    collider if sepset(x, z) exists and excludes y, noncollider if it
    includes y. Pairs with no recorded sepset are left alone.
    """
    knowledge = knowledge if knowledge is not None else Knowledge()
    logger = logger or _logger
    colliders, noncolliders = [], []
    for triple in graph.unshielded_triples():
        x, y, z = triple.x, triple.y, triple.z
        sepset = sepsets.get(x, z)
        if sepset is None:
            continue
        if y in sepset:
            noncolliders.append(triple)
            continue
        if not _collider_allowed(x, y, z, knowledge):
            continue
        orient_collider(graph, x, y, z, conflict_rule)
        colliders.append(triple)
        logger.log(step_level(verbose), "Collider: %s --> %s <-- %s (sepset %s)",
                   x, y, z, [n.name for n in sepset])
    return colliders, noncolliders


def cpc_triple_type(x: Node, y: Node, z: Node, test: IndependenceTest, depth: int, graph: Graph) -> TripleType:
    """
    Classify x - y - z by every separating set of x and z drawn from
    adj(x) or adj(z): collider if y is in none of them, noncollider if y is
    in all of them, ambiguous otherwise (including when none is found).
    """
    with_y = 0
    without_y = 0
    tried = set()
    for side in ([n for n in graph.adjacent_nodes(x) if n != z], [n for n in graph.adjacent_nodes(z) if n != x]):
        max_d = len(side) if depth == -1 else min(depth, len(side))
        for d in range(max_d + 1):
            for cond in itertools.combinations(side, d):
                key = frozenset(cond)
                if key in tried:
                    continue
                tried.add(key)
                if test.is_independent(x, z, cond):
                    if y in key:
                        with_y += 1
                    else:
                        without_y += 1
    if without_y > 0 and with_y == 0:
        return TripleType.COLLIDER
    if with_y > 0 and without_y == 0:
        return TripleType.NONCOLLIDER
    return TripleType.AMBIGUOUS


# --------------------------------------------------------------------
# Background knowledge
# --------------------------------------------------------------------


def pc_orient_bk(knowledge: Optional[Knowledge], graph: Graph):
    """Orient CPDAG edges that knowledge decides: b -> a if a -> b is forbidden; a -> b if required."""
    if knowledge is None or knowledge.is_empty():
        return
    for a, b in itertools.permutations(graph.nodes, 2):
        if not graph.is_adjacent(a, b):
            continue
        if knowledge.is_required(a, b):
            graph.add_directed_edge(a, b)
        elif knowledge.is_forbidden(a, b) and not knowledge.is_forbidden(b, a):
            graph.add_directed_edge(b, a)


def fci_orient_bk(knowledge: Optional[Knowledge], graph: Graph):
    """PAG version: forbidden a -> b puts an arrowhead at a; required a -> b gives a --> b."""
    if knowledge is None or knowledge.is_empty():
        return
    for a, b in itertools.permutations(graph.nodes, 2):
        if not graph.is_adjacent(a, b):
            continue
        if knowledge.is_required(a, b):
            graph.add_directed_edge(a, b)
        elif knowledge.is_forbidden(a, b) and not knowledge.is_required(b, a):
            graph.set_endpoint(b, a, ARROW)


# --------------------------------------------------------------------
# CPDAG <-> DAG
# --------------------------------------------------------------------


def cpdag_for_dag(dag: Graph) -> Graph:
    """Skeleton, the DAG's unshielded colliders, then Meek's rules."""
    cpdag = dag.undirected_skeleton()
    for triple in dag.unshielded_triples():
        if dag.is_def_collider(triple.x, triple.y, triple.z):
            cpdag.add_directed_edge(triple.x, triple.y)
            cpdag.add_directed_edge(triple.z, triple.y)
    MeekRules().orient_implied(cpdag)
    return cpdag


def dag_from_cpdag(cpdag: Graph) -> Graph:
    """
    A consistent DAG extension (Dor and Tarsi): repeatedly pick a sink whose
    undirected neighbors are adjacent to all of its other neighbors, point
    its undirected edges into it, and remove it.
    Raises ValueError if the graph has no consistent extension.
    """
    dag = cpdag.copy()
    work = cpdag.copy()
    while work.num_nodes > 0:
        for y in work.nodes:
            if work.children(y) or any(work.get_endpoint(y, n) != TAIL and not work.is_parent_of(n, y)
                                       for n in work.adjacent_nodes(y)):
                continue
            undirected = [n for n in work.adjacent_nodes(y) if work.is_undirected(n, y)]
            others = work.adjacent_nodes(y)
            if all(work.is_adjacent(u, o) for u in undirected for o in others if o != u):
                for u in undirected:
                    dag.add_directed_edge(u, y)
                work.remove_node(y)
                break
        else:
            raise ValueError("Graph has no consistent DAG extension")
    return dag


def is_legal_cpdag(graph: Graph) -> bool:
    for edge in graph.edges():
        if not (edge.is_directed() or (edge.endpoint1 == TAIL and edge.endpoint2 == TAIL)):
            return False
    try:
        dag = dag_from_cpdag(graph)
    except ValueError:
        return False
    return cpdag_for_dag(dag) == graph


# --------------------------------------------------------------------
# MAG / PAG legality
# --------------------------------------------------------------------


@dataclass(frozen=True)
class LegalPagResult:
    legal: bool
    reason: str = ""
    nodes: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.legal


def zhang_mag_from_pag(pag: Graph) -> Graph:
    """
    Zhang's MAG in the equivalence class of a PAG: a circle opposite an
    arrowhead or a tail becomes a tail (o-> to -->, o-- to ---), and the o-o
    component is oriented as a DAG without new unshielded colliders.
    """
    mag = pag.copy()
    circle_edges = Graph(pag.nodes)
    for edge in pag.edges():
        a, b, ma, mb = edge.node1, edge.node2, edge.endpoint1, edge.endpoint2
        if ma == CIRCLE and mb == CIRCLE:
            circle_edges.add_undirected_edge(a, b)
            continue
        if ma == CIRCLE:
            ma = TAIL
        if mb == CIRCLE:
            mb = TAIL
        mag.add_edge(a, b, ma, mb)

    try:
        oriented = dag_from_cpdag(circle_edges)
    except ValueError:
        oriented = circle_edges.copy()
        for edge in circle_edges.edges():
            oriented.add_directed_edge(edge.node1, edge.node2)
    for edge in oriented.edges():
        mag.add_directed_edge(edge.node1, edge.node2)
    return mag


def _inducing_path_exists(mag: Graph, a: Node, b: Node, ancestors: Set[Node]) -> bool:
    # BFS over edge states (prev, cur); every interior node is a collider and an ancestor of a or b
    queue = [(a, v) for v in mag.adjacent_nodes(a)]
    seen = set(queue)
    while queue:
        prev, cur = queue.pop(0)
        if cur == b:
            return True
        if cur not in ancestors:
            continue
        for nxt in mag.adjacent_nodes(cur):
            if nxt == prev or nxt == a:
                continue
            if not mag.is_def_collider(prev, cur, nxt):
                continue
            state = (cur, nxt)
            if state not in seen:
                seen.add(state)
                queue.append(state)
    return False


def is_legal_mag(mag: Graph) -> LegalPagResult:
    """Ancestral (no directed or almost directed cycles, undirected edges not into arrowheads) and maximal."""
    for edge in mag.edges():
        if CIRCLE in (edge.endpoint1, edge.endpoint2):
            return LegalPagResult(False, f"Circle endpoint in MAG: {edge}", (edge.node1.name, edge.node2.name))

    if mag.has_directed_cycle():
        digraph = nx.DiGraph([(e.node1.name, e.node2.name) for e in mag.edges() if e.is_directed()])
        cycle = nx.find_cycle(digraph)
        return LegalPagResult(False, "Directed cycle", tuple(u for u, _ in cycle))

    for edge in mag.edges():
        a, b = edge.node1, edge.node2
        if edge.endpoint1 == ARROW and edge.endpoint2 == ARROW:
            if mag.is_ancestor_of(a, b) or mag.is_ancestor_of(b, a):
                return LegalPagResult(False, f"Almost directed cycle through {edge}", (a.name, b.name))
        if edge.endpoint1 == TAIL and edge.endpoint2 == TAIL:
            for n in (a, b):
                if any(mag.get_endpoint(m, n) == ARROW for m in mag.adjacent_nodes(n)):
                    return LegalPagResult(False, f"Undirected edge {edge} meets an arrowhead at {n}", (n.name,))

    for a, b in itertools.combinations(mag.nodes, 2):
        if mag.is_adjacent(a, b):
            continue
        if _inducing_path_exists(mag, a, b, mag.ancestors_of([a, b])):
            return LegalPagResult(False, f"Not maximal: inducing path between {a} and {b}", (a.name, b.name))
    return LegalPagResult(True)


def is_legal_pag(pag: Graph) -> LegalPagResult:
    """The Zhang MAG of the PAG is a legal MAG and keeps every non-circle mark of the PAG."""
    mag = zhang_mag_from_pag(pag)
    result = is_legal_mag(mag)
    if not result:
        return LegalPagResult(False, f"Zhang MAG is not legal: {result.reason}", result.nodes)
    for edge in pag.edges():
        a, b = edge.node1, edge.node2
        for n, other, mark in ((a, b, edge.endpoint1), (b, a, edge.endpoint2)):
            if mark != CIRCLE and mag.get_endpoint(other, n) != mark:
                return LegalPagResult(False, f"Zhang MAG changes a mark of {edge}", (a.name, b.name))
    return LegalPagResult(True)


def guarantee_pag(pag: Graph, fci_orient, unshielded_colliders: Iterable[Triple],
                  knowledge: Optional[Knowledge] = None, max_iterations: int = 10,
                  logger: Optional[logging.Logger] = None) -> Graph:
    """
    Best-effort repair of an illegal PAG. Each round drops the colliders
    centered on nodes implicated in the violation, reorients from o-o
    (knowledge, the remaining colliders, then fci_orient.final_orientation)
    and checks again. Gives up after max_iterations with a warning; the
    caller should check is_legal_pag on the result.
    """
    logger = logger or _logger
    knowledge = knowledge if knowledge is not None else Knowledge()
    colliders = sorted(set(unshielded_colliders), key=lambda t: (t.y.name, t.x.name, t.z.name))

    for iteration in range(max_iterations):
        result = is_legal_pag(pag)
        if result:
            return pag
        logger.debug("Repair round %d: %s", iteration + 1, result.reason)

        implicated = set(result.nodes)
        kept = [t for t in colliders if t.y.name not in implicated]
        if len(kept) == len(colliders) and colliders:
            kept = colliders[:-1]
        colliders = kept

        pag.reorient_all_with(CIRCLE)
        fci_orient_bk(knowledge, pag)
        for t in colliders:
            if (pag.is_adjacent(t.x, t.y) and pag.is_adjacent(t.z, t.y) and not pag.is_adjacent(t.x, t.z)
                    and is_arrowhead_allowed(t.x, t.y, pag, knowledge)
                    and is_arrowhead_allowed(t.z, t.y, pag, knowledge)):
                pag.set_endpoint(t.x, t.y, ARROW)
                pag.set_endpoint(t.z, t.y, ARROW)
        fci_orient.final_orientation(pag)

    result = is_legal_pag(pag)
    if not result:
        logger.warning("Could not repair PAG in %d rounds: %s", max_iterations, result.reason)
    return pag
