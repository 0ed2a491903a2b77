"""
Affinity and Graph Laplacian

    A_uv = exp(-distance_uv^2 / sigma)    for edges in the graph, else 0
    L    = I - D^-1 A                     random-walk normalized Laplacian

Isolated nodes (zero degree) keep an all-zero Laplacian row rather than
dividing by zero. Recompute whenever sigma changes.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np


@dataclass(frozen=True)
class GraphLaplacian:
    """
    Affinity-derived matrices over a fixed node order.

    Attributes:
        nodes: Node keys, row/column order of every matrix
        affinity: (n, n) symmetric affinity matrix A
        degrees: (n,) row sums of A
        matrix: (n, n) random-walk Laplacian I - D^-1 A
        sigma: Affinity bandwidth used
    """
    nodes: List[Any]
    affinity: np.ndarray
    degrees: np.ndarray
    matrix: np.ndarray
    sigma: float

    @property
    def isolated(self) -> np.ndarray:
        return self.degrees <= 0

    def symmetric_form(self) -> np.ndarray:
        """
        I - D^-1/2 A D^-1/2, similar to the random-walk Laplacian.

        Shares its eigenvalues; eigenvectors map back via D^-1/2. Isolated
        nodes get a zero row and column.
        """
        scale = np.zeros_like(self.degrees)
        connected = self.degrees > 0
        scale[connected] = 1.0 / np.sqrt(self.degrees[connected])
        sym = -(scale[:, None] * self.affinity * scale[None, :])
        sym[np.diag_indices_from(sym)] += connected.astype(np.float64)
        return 0.5 * (sym + sym.T)


def affinity_matrix(
    graph: nx.Graph,
    sigma: float,
    nodes: Optional[Sequence[Any]] = None,
) -> Tuple[np.ndarray, List[Any]]:
    """
    Gaussian affinity on edge distance.

    Returns
    -------
    A : np.ndarray
        (n, n) symmetric, zero diagonal, zero where no edge exists.
    nodes : list
        Row/column order (graph insertion order by default).
    """
    if sigma is None or sigma <= 0:
        raise ValueError(f"affinity sigma must be > 0, got {sigma}")

    nodes = list(graph.nodes) if nodes is None else list(nodes)
    position = {node: i for i, node in enumerate(nodes)}
    n = len(nodes)
    A = np.zeros((n, n), dtype=np.float64)

    for u, v, data in graph.edges(data=True):
        if u == v:
            continue
        distance = float(data.get('distance', 0.0))
        w = np.exp(-(distance ** 2) / sigma)
        i, j = position[u], position[v]
        A[i, j] = w
        A[j, i] = w

    return A, nodes


def random_walk_laplacian(A: np.ndarray) -> np.ndarray:
    """L = I - D^-1 A, with zero rows for zero-degree nodes."""
    A = np.asarray(A, dtype=np.float64)
    degrees = A.sum(axis=1)
    L = np.zeros_like(A)
    connected = degrees > 0
    L[connected] = -A[connected] / degrees[connected, None]
    idx = np.flatnonzero(connected)
    L[idx, idx] += 1.0
    return L


def graph_laplacian(
    graph: nx.Graph,
    sigma: float,
    nodes: Optional[Sequence[Any]] = None,
) -> GraphLaplacian:
    """Affinity + random-walk Laplacian for a graph."""
    A, nodes = affinity_matrix(graph, sigma, nodes)
    return GraphLaplacian(
        nodes=nodes,
        affinity=A,
        degrees=A.sum(axis=1),
        matrix=random_walk_laplacian(A),
        sigma=float(sigma),
    )
