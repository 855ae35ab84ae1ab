"""
Shared fixtures: random DAGs and data simulated from them.

simulate_linear_gaussian(..., exact=True) recolors the sample so that its
covariance equals the model covariance to machine precision. Every
conditional independence of the DAG then shows up as a partial correlation
of ~0 (p ~ 1), which keeps tests on real data deterministic.
"""

import os
import sys

import numpy as np
import pandas as pd

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from causal_search.graph import Graph


def random_dag(num_nodes: int, edge_prob: float, seed: int = 0, prefix: str = "X") -> Graph:
    """Edges only go from lower to higher index, so the node order is topological."""
    rng = np.random.default_rng(seed)
    dag = Graph([f"{prefix}{i + 1}" for i in range(num_nodes)])
    for i in range(num_nodes):
        for j in range(i + 1, num_nodes):
            if rng.random() < edge_prob:
                dag.add_directed_edge(dag.nodes[i], dag.nodes[j])
    return dag


def dag_from_edges(names, edges) -> Graph:
    dag = Graph(names)
    for a, b in edges:
        dag.add_directed_edge(a, b)
    return dag


def random_coefficients(dag: Graph, seed: int = 0, low: float = 0.5, high: float = 1.0) -> np.ndarray:
    """B[j, i] is the coefficient of parent i in the equation of child j."""
    rng = np.random.default_rng(seed)
    n = dag.num_nodes
    B = np.zeros((n, n))
    for edge in dag.edges():
        i, j = dag.index_of(edge.node1), dag.index_of(edge.node2)
        B[j, i] = rng.uniform(low, high) * rng.choice([-1.0, 1.0])
    return B


def linear_gaussian_covariance(B: np.ndarray) -> np.ndarray:
    """Covariance of X = B X + e with unit-variance independent errors."""
    inv = np.linalg.inv(np.eye(B.shape[0]) - B)
    return inv @ inv.T


def simulate_linear_gaussian(dag: Graph, sample_size: int = 1000, seed: int = 0,
                             B: np.ndarray = None, exact: bool = True) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    if B is None:
        B = random_coefficients(dag, seed)
    p = dag.num_nodes
    noise = rng.standard_normal((sample_size, p))
    data = noise @ np.linalg.inv(np.eye(p) - B).T

    if exact:
        target = linear_gaussian_covariance(B)
        centered = data - data.mean(axis=0)
        L = np.linalg.cholesky(np.cov(centered, rowvar=False))
        M = np.linalg.cholesky(target)
        data = centered @ np.linalg.inv(L).T @ M.T

    return pd.DataFrame(data, columns=dag.node_names)


def simulate_discrete(dag: Graph, sample_size: int = 2000, seed: int = 0, strength: float = 0.8) -> pd.DataFrame:
    """Binary data: each variable copies the parity of its parents with probability `strength`."""
    rng = np.random.default_rng(seed)
    data = np.zeros((sample_size, dag.num_nodes), dtype=int)
    for node in dag.topological_order():
        j = dag.index_of(node)
        parents = [dag.index_of(p) for p in dag.parents(node)]
        if not parents:
            data[:, j] = rng.integers(0, 2, sample_size)
            continue
        parity = data[:, parents].sum(axis=1) % 2
        keep = rng.random(sample_size) < strength
        data[:, j] = np.where(keep, parity, 1 - parity)
    return pd.DataFrame(data, columns=dag.node_names)


def stratified_counts(tables) -> pd.DataFrame:
    """
    Discrete data with exact cell counts. tables maps a stratum value z to a
    2x2 count table for (x, y); the result has columns X, Y, Z.
    """
    rows = []
    for z, table in tables.items():
        for x in range(2):
            for y in range(2):
                rows.extend([(x, y, z)] * int(table[x][y]))
    return pd.DataFrame(rows, columns=["X", "Y", "Z"])
