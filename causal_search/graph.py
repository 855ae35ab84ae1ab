"""
Graph: mixed endpoint graph shared by every search in the package.

One class covers DAGs, CPDAGs, MAGs and PAGs. The structural class is a
property of which endpoint combinations appear, not of the container; the
conversions between classes live in search_utils.

We store a dense endpoint-mark matrix M where M[i, j] is the mark
seen at j on edge (i, j):
    0: NULL   (no edge)
    1: CIRCLE (o)
    2: ARROW  (>)
    3: TAIL   (-)
An edge exists iff M[i, j] != NULL (equivalently M[j, i] != NULL), so there
is at most one edge between any pair of nodes.

For a directed edge i -> j: M[i, j] = ARROW, M[j, i] = TAIL
For an undirected edge i - j: M[i, j] = TAIL, M[j, i] = TAIL
For a bidirected edge i <-> j: M[i, j] = ARROW, M[j, i] = ARROW
"""

import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

import networkx as nx
import numpy as np


# Endpoint mark codes (PAG marks)
NULL = 0      # no edge
CIRCLE = 1    # o
ARROW = 2     # >
TAIL = 3      # -

_LEFT_SYMBOL = {TAIL: "-", ARROW: "<", CIRCLE: "o"}
_RIGHT_SYMBOL = {TAIL: "-", ARROW: ">", CIRCLE: "o"}
_SYMBOL_MARK = {"-": TAIL, "<": ARROW, ">": ARROW, "o": CIRCLE}

# Used to put the "weaker" mark first when rendering an edge, so that
# directed edges print tail-first (A --> B rather than B <-- A).
_MARK_RANK = {TAIL: 0, CIRCLE: 1, ARROW: 2}

_EDGE_PATTERN = re.compile(r"^(\S+)\s+([<o-])-([>o-])\s+(\S+)$")


class NodeType(Enum):
    MEASURED = "measured"
    LATENT = "latent"
    ERROR = "error"
    SELECTION = "selection"


@dataclass(frozen=True, order=True)
class Node:
    """A named variable. Identity, hashing and ordering use the name only."""

    name: str
    node_type: NodeType = field(default=NodeType.MEASURED, compare=False)

    def __str__(self) -> str:
        return self.name


NodeLike = Union[Node, str]


@dataclass(frozen=True)
class Edge:
    """
    An edge as seen from outside the graph.
    endpoint1 is the mark at node1, endpoint2 the mark at node2.
    """

    node1: Node
    node2: Node
    endpoint1: int
    endpoint2: int

    def normalized(self) -> "Edge":
        if _MARK_RANK[self.endpoint1] > _MARK_RANK[self.endpoint2]:
            return Edge(self.node2, self.node1, self.endpoint2, self.endpoint1)
        return self

    def key(self) -> frozenset:
        """Orientation-aware key that ignores which node is listed first."""
        return frozenset({(self.node1.name, self.endpoint1), (self.node2.name, self.endpoint2)})

    def is_directed(self) -> bool:
        return {self.endpoint1, self.endpoint2} == {TAIL, ARROW}

    def __str__(self) -> str:
        return f"{self.node1} {_LEFT_SYMBOL[self.endpoint1]}-{_RIGHT_SYMBOL[self.endpoint2]} {self.node2}"


@dataclass(frozen=True, order=True)
class Triple:
    """
    Adjacency pattern x *-* y *-* z. <x, y, z> and <z, y, x> are the same
    triple; the outer nodes are stored in name order.
    """

    x: Node
    y: Node
    z: Node

    def __post_init__(self):
        if self.z < self.x:
            x, z = self.x, self.z
            object.__setattr__(self, "x", z)
            object.__setattr__(self, "z", x)

    def __str__(self) -> str:
        return f"<{self.x}, {self.y}, {self.z}>"


class Graph:
    """
    Mutable graph over uniquely named nodes, backed by the mark matrix M.
    Methods accept either Node objects or node names.
    """

    def __init__(self, nodes: Iterable[NodeLike] = ()):
        self._nodes: List[Node] = []
        self._index: Dict[str, int] = {}
        self.M = np.zeros((0, 0), dtype=int)
        for node in nodes:
            self.add_node(node)

    @classmethod
    def complete_graph(cls, nodes: Iterable[NodeLike], mark: int = TAIL) -> "Graph":
        """Complete graph with the given mark at every endpoint (default undirected)."""
        graph = cls(nodes)
        n = graph.num_nodes
        graph.M = np.full((n, n), mark, dtype=int)
        np.fill_diagonal(graph.M, NULL)
        return graph

    # ----- nodes -----

    def add_node(self, node: NodeLike) -> Node:
        node = node if isinstance(node, Node) else Node(node)
        if node.name in self._index:
            raise ValueError(f"Duplicate node name: {node.name}")
        self._index[node.name] = len(self._nodes)
        self._nodes.append(node)
        self.M = np.pad(self.M, ((0, 1), (0, 1)), constant_values=NULL)
        return node

    def remove_node(self, node: NodeLike):
        i = self.index_of(node)
        del self._nodes[i]
        self.M = np.delete(np.delete(self.M, i, axis=0), i, axis=1)
        self._index = {n.name: k for k, n in enumerate(self._nodes)}

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes)

    @property
    def node_names(self) -> List[str]:
        return [n.name for n in self._nodes]

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    def get_node(self, name: str) -> Optional[Node]:
        i = self._index.get(name)
        return None if i is None else self._nodes[i]

    def contains(self, node: NodeLike) -> bool:
        name = node.name if isinstance(node, Node) else node
        return name in self._index

    def index_of(self, node: NodeLike) -> int:
        name = node.name if isinstance(node, Node) else node
        try:
            return self._index[name]
        except KeyError:
            raise ValueError(f"Node not in graph: {name}") from None

    def _pair(self, a: NodeLike, b: NodeLike) -> Tuple[int, int]:
        i, j = self.index_of(a), self.index_of(b)
        if i == j:
            raise ValueError(f"An edge needs two distinct nodes: {a}")
        return i, j

    # ----- adjacency -----

    def is_adjacent(self, a: NodeLike, b: NodeLike) -> bool:
        i, j = self.index_of(a), self.index_of(b)
        return i != j and self.M[i, j] != NULL

    def adjacent_nodes(self, node: NodeLike) -> List[Node]:
        i = self.index_of(node)
        return [self._nodes[j] for j in np.flatnonzero(self.M[i])]

    def degree(self, node: NodeLike) -> int:
        return int(np.count_nonzero(self.M[self.index_of(node)]))

    def max_degree(self) -> int:
        if self.num_nodes == 0:
            return 0
        return int(np.count_nonzero(self.M, axis=1).max())

    # ----- endpoints -----

    def get_endpoint(self, a: NodeLike, b: NodeLike) -> int:
        """Mark at b on the edge a *-* b (NULL if not adjacent)."""
        i, j = self._pair(a, b)
        return int(self.M[i, j])

    def set_endpoint(self, a: NodeLike, b: NodeLike, mark: int):
        """Set the mark at b on the existing edge a *-* b."""
        i, j = self._pair(a, b)
        if self.M[i, j] == NULL:
            raise ValueError(f"No edge between {a} and {b}")
        if mark not in (CIRCLE, ARROW, TAIL):
            raise ValueError(f"Not an endpoint mark: {mark}")
        self.M[i, j] = mark

    # ----- edge operations -----

    def add_edge(self, a: NodeLike, b: NodeLike, mark_at_a: int, mark_at_b: int):
        """Add (or replace) the single edge between a and b."""
        i, j = self._pair(a, b)
        if mark_at_a not in (CIRCLE, ARROW, TAIL) or mark_at_b not in (CIRCLE, ARROW, TAIL):
            raise ValueError(f"Not an endpoint mark: {mark_at_a}, {mark_at_b}")
        self.M[i, j] = mark_at_b
        self.M[j, i] = mark_at_a

    def add_directed_edge(self, a: NodeLike, b: NodeLike):
        self.add_edge(a, b, TAIL, ARROW)

    def add_undirected_edge(self, a: NodeLike, b: NodeLike):
        self.add_edge(a, b, TAIL, TAIL)

    def add_nondirected_edge(self, a: NodeLike, b: NodeLike):
        self.add_edge(a, b, CIRCLE, CIRCLE)

    def add_partially_oriented_edge(self, a: NodeLike, b: NodeLike):
        self.add_edge(a, b, CIRCLE, ARROW)

    def add_bidirected_edge(self, a: NodeLike, b: NodeLike):
        self.add_edge(a, b, ARROW, ARROW)

    def remove_edge(self, a: NodeLike, b: NodeLike) -> bool:
        i, j = self._pair(a, b)
        existed = self.M[i, j] != NULL
        self.M[i, j] = NULL
        self.M[j, i] = NULL
        return bool(existed)

    def remove_edges(self, pairs: Iterable[Tuple[NodeLike, NodeLike]]):
        for a, b in pairs:
            self.remove_edge(a, b)

    def get_edge(self, a: NodeLike, b: NodeLike) -> Optional[Edge]:
        i, j = self._pair(a, b)
        if self.M[i, j] == NULL:
            return None
        return Edge(self._nodes[i], self._nodes[j], int(self.M[j, i]), int(self.M[i, j]))

    def edges(self) -> List[Edge]:
        """Every edge once, in node-index order of the first endpoint."""
        result = []
        rows, cols = np.nonzero(np.triu(self.M, k=1))
        for i, j in zip(rows, cols):
            result.append(Edge(self._nodes[i], self._nodes[j], int(self.M[j, i]), int(self.M[i, j])).normalized())
        return result

    def num_edges(self) -> int:
        return int(np.count_nonzero(np.triu(self.M, k=1)))

    def reorient_all_with(self, mark: int):
        """Keep adjacencies but put the given mark at every endpoint."""
        self.M[self.M != NULL] = mark

    # ----- parent/children helpers -----

    def parents(self, node: NodeLike) -> List[Node]:
        n = self.index_of(node)
        return [self._nodes[i] for i in np.flatnonzero((self.M[:, n] == ARROW) & (self.M[n, :] == TAIL))]

    def children(self, node: NodeLike) -> List[Node]:
        n = self.index_of(node)
        return [self._nodes[j] for j in np.flatnonzero((self.M[n, :] == ARROW) & (self.M[:, n] == TAIL))]

    def is_parent_of(self, a: NodeLike, b: NodeLike) -> bool:
        i, j = self._pair(a, b)
        return self.M[i, j] == ARROW and self.M[j, i] == TAIL

    is_directed_from_to = is_parent_of

    def is_undirected(self, a: NodeLike, b: NodeLike) -> bool:
        i, j = self._pair(a, b)
        return self.M[i, j] == TAIL and self.M[j, i] == TAIL

    def is_def_collider(self, a: NodeLike, b: NodeLike, c: NodeLike) -> bool:
        """a *-> b <-* c"""
        i, k, j = self.index_of(a), self.index_of(b), self.index_of(c)
        return self.M[i, k] == ARROW and self.M[j, k] == ARROW

    def is_def_noncollider(self, a: NodeLike, b: NodeLike, c: NodeLike) -> bool:
        """Some edge of the triple is out of b (tail at b)."""
        i, k, j = self.index_of(a), self.index_of(b), self.index_of(c)
        if self.M[i, k] == NULL or self.M[j, k] == NULL:
            return False
        return self.M[i, k] == TAIL or self.M[j, k] == TAIL

    def unshielded_triples(self) -> List[Triple]:
        """All unshielded triples, sorted by (middle, left, right) name."""
        triples = set()
        for y in self._nodes:
            for x, z in combinations(self.adjacent_nodes(y), 2):
                if not self.is_adjacent(x, z):
                    triples.add(Triple(x, y, z))
        return sorted(triples, key=lambda t: (t.y.name, t.x.name, t.z.name))

    # ----- directed paths and cycles -----

    def _directed_adjacency(self) -> np.ndarray:
        return (self.M == ARROW) & (self.M.T == TAIL)

    def is_ancestor_of(self, a: NodeLike, b: NodeLike) -> bool:
        """True if a == b or there is a directed path a -> ... -> b."""
        start, goal = self.index_of(a), self.index_of(b)
        directed = self._directed_adjacency()
        seen = {start}
        queue = deque([start])
        while queue:
            u = queue.popleft()
            if u == goal:
                return True
            for v in np.flatnonzero(directed[u]):
                if v not in seen:
                    seen.add(v)
                    queue.append(v)
        return False

    def exists_directed_path(self, a: NodeLike, b: NodeLike) -> bool:
        return self.index_of(a) != self.index_of(b) and self.is_ancestor_of(a, b)

    def ancestors_of(self, nodes: Iterable[NodeLike]) -> Set[Node]:
        directed = self._directed_adjacency()
        stack = [self.index_of(n) for n in nodes]
        seen = set(stack)
        while stack:
            v = stack.pop()
            for u in np.flatnonzero(directed[:, v]):
                if u not in seen:
                    seen.add(u)
                    stack.append(u)
        return {self._nodes[i] for i in seen}

    def has_directed_cycle(self) -> bool:
        """Kahn's algorithm over the directed edges only."""
        directed = self._directed_adjacency()
        indegree = directed.sum(axis=0)
        stack = list(np.flatnonzero(indegree == 0))
        removed = 0
        while stack:
            u = stack.pop()
            removed += 1
            for v in np.flatnonzero(directed[u]):
                indegree[v] -= 1
                if indegree[v] == 0:
                    stack.append(v)
        return removed < self.num_nodes

    def topological_order(self) -> List[Node]:
        """Topological order of a DAG; ties broken by node index."""
        if self.has_directed_cycle():
            raise ValueError("Graph has a directed cycle")
        directed = self._directed_adjacency()
        indegree = directed.sum(axis=0)
        ready = sorted(np.flatnonzero(indegree == 0))
        order = []
        while ready:
            u = ready.pop(0)
            order.append(self._nodes[u])
            for v in np.flatnonzero(directed[u]):
                indegree[v] -= 1
                if indegree[v] == 0:
                    ready.append(v)
            ready.sort()
        return order

    # ----- copies and conversions -----

    def copy(self) -> "Graph":
        new_graph = Graph()
        new_graph._nodes = list(self._nodes)
        new_graph._index = dict(self._index)
        new_graph.M = self.M.copy()
        return new_graph

    def undirected_skeleton(self) -> "Graph":
        skeleton = self.copy()
        skeleton.reorient_all_with(TAIL)
        return skeleton

    def subgraph(self, nodes: Iterable[NodeLike]) -> "Graph":
        keep = [self._nodes[self.index_of(n)] for n in nodes]
        idx = [self.index_of(n) for n in keep]
        sub = Graph(keep)
        sub.M = self.M[np.ix_(idx, idx)].copy()
        return sub

    def is_dag(self) -> bool:
        directed = self._directed_adjacency()
        all_edges = self.M != NULL
        return bool(np.array_equal(all_edges, directed | directed.T)) and not self.has_directed_cycle()

    def to_networkx(self) -> nx.DiGraph:
        """
        Directed edges become one arc; every other edge becomes a pair of
        arcs. Each arc carries the marks at both ends as (mark_at_u, mark_at_v).
        """
        g = nx.DiGraph()
        g.add_nodes_from(self.node_names)
        for edge in self.edges():
            u, v = edge.node1.name, edge.node2.name
            g.add_edge(u, v, marks=(edge.endpoint1, edge.endpoint2))
            if not edge.is_directed():
                g.add_edge(v, u, marks=(edge.endpoint2, edge.endpoint1))
        return g

    @classmethod
    def from_networkx(cls, digraph: nx.DiGraph) -> "Graph":
        """Build a DAG (or directed graph) from a networkx DiGraph."""
        graph = cls(str(n) for n in digraph.nodes)
        for u, v in digraph.edges:
            graph.add_directed_edge(str(u), str(v))
        return graph

    @classmethod
    def from_edge_strings(cls, nodes: Iterable[NodeLike], edges: Iterable[str]) -> "Graph":
        """
        Build a graph from Tetrad-style edge strings, e.g. "X1 --> X2",
        "X1 <-> X2", "X1 o-> X2", "1. X1 --- X2".
        """
        graph = cls(nodes)
        for text in edges:
            text = re.sub(r"^\d+\.\s*", "", text.strip())
            match = _EDGE_PATTERN.match(text)
            if match is None:
                raise ValueError(f"Cannot parse edge: {text!r}")
            a, left, right, b = match.groups()
            graph.add_edge(a, b, _SYMBOL_MARK[left], _SYMBOL_MARK[right])
        return graph

    @classmethod
    def from_string(cls, content: str) -> "Graph":
        """Parse the text produced by __str__ (Tetrad graph format)."""
        nodes: List[str] = []
        edges: List[str] = []
        section = None
        for line in content.strip().split("\n"):
            line = line.strip()
            if not line:
                continue
            if line.startswith("Graph Nodes"):
                section = "nodes"
            elif line.startswith("Graph Edges"):
                section = "edges"
            elif section == "nodes":
                nodes.extend(n for n in re.split(r"[;,]", line) if n)
            elif section == "edges":
                edges.append(line)
        return cls.from_edge_strings(nodes, edges)

    # ----- dunder -----

    def __eq__(self, other) -> bool:
        if not isinstance(other, Graph):
            return NotImplemented
        if set(self.node_names) != set(other.node_names):
            return False
        return {e.key() for e in self.edges()} == {e.key() for e in other.edges()}

    __hash__ = None

    def __str__(self) -> str:
        lines = ["Graph Nodes:", ";".join(self.node_names), "", "Graph Edges:"]
        for k, edge in enumerate(self.edges(), start=1):
            lines.append(f"{k}. {edge}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Graph(nodes={self.num_nodes}, edges={self.num_edges()})"
