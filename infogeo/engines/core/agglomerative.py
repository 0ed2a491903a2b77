"""
Information-Weighted Agglomerative Clustering
=============================================

Greedy hierarchical merging of graph nodes under a generalized
Jensen-Shannon linkage. Each cluster C carries a population n_C and a
category distribution p_C; its information relative to a fixed
reference distribution r is

    I(C) = (n_C / N) * KL(p_C || r)

Merging A and B loses

    dI = I(A) + I(B) - I(A u B),   p_AuB = (n_A p_A + n_B p_B) / (n_A + n_B)

which is >= 0 by convexity of KL. At every step the adjacent pair with
the smallest loss is merged (ties -> lowest cluster ids). Merge heights
are cumulative losses, so the height sequence never decreases.

Only clusters joined by a graph edge may merge. If the graph is
disconnected the remaining components are merged pairwise by the same
criterion once no adjacent pair is left.

The information captured by a k-cluster cut is the loss undone by
stopping k merges short of the root:

    height[last] - height[last - k]      (height[j] = 0 for j < 0)

It depends on heights only, so it is the same for any reference. For
k >= n - 1 it is the full height, height[last].

Usage:
    from infogeo.engines.core.agglomerative import agglomerative_cluster

    tree = agglomerative_cluster(graph)
    labels = tree.cutree(3)
    ks, captured = tree.information_curve()
"""

import heapq
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

import networkx as nx
import numpy as np

from infogeo.core.errors import DegenerateDistributionError
from infogeo.engines.core.divergence import DEFAULT_PSEUDOCOUNT, kl_to_reference
from infogeo.engines.core.graph import node_counts

logger = logging.getLogger(__name__)


# =============================================================================
# DENDROGRAM
# =============================================================================

@dataclass
class Dendrogram:
    """
    Merge history over graph nodes.

    Cluster ids follow SciPy: leaves are 0..n-1 in `nodes` order, the
    cluster created by merge m gets id n + m.

    Attributes:
        nodes: Leaf node keys
        merges: (a, b) cluster ids per merge
        losses: Information lost by each merge
        heights: Cumulative information loss after each merge
        sizes: Leaf count of each merged cluster
        total_information: Information of the all-singletons partition
        reference: Reference distribution r
    """
    nodes: List[Any]
    merges: List[Tuple[int, int]]
    losses: np.ndarray
    heights: np.ndarray
    sizes: np.ndarray
    total_information: float
    reference: np.ndarray

    @property
    def n_leaves(self) -> int:
        return len(self.nodes)

    @property
    def linkage(self) -> np.ndarray:
        """(n-1, 4) SciPy linkage matrix [a, b, height, size]."""
        if not self.merges:
            return np.zeros((0, 4), dtype=np.float64)
        return np.column_stack([
            np.array(self.merges, dtype=np.float64),
            self.heights,
            self.sizes.astype(np.float64),
        ])

    def loss_after(self, n_merges: int) -> float:
        """Cumulative loss after the first n_merges merges (0 for none)."""
        if n_merges <= 0:
            return 0.0
        return float(self.heights[n_merges - 1])

    def cutree(self, k: int) -> Dict[Any, int]:
        """Labels 1..k for the cut with exactly k groups."""
        return cutree(self, k)

    def information_captured(self, k: int) -> float:
        """height[last] - height[last - k], with heights before the first merge = 0."""
        self._check_k(k)
        n_merges = len(self.merges)
        return self.loss_after(n_merges) - self.loss_after(n_merges - k)

    def information_curve(self) -> Tuple[np.ndarray, np.ndarray]:
        """(k, information captured) for k = 1..n."""
        ks = np.arange(1, self.n_leaves + 1)
        captured = np.array([self.information_captured(int(k)) for k in ks])
        return ks, captured

    def _check_k(self, k: int) -> None:
        if k < 1 or k > self.n_leaves:
            raise ValueError(f"k must be in [1, {self.n_leaves}], got {k}")


def cutree(dendrogram: Dendrogram, k: int) -> Dict[Any, int]:
    """
    Replay the first n - k merges and label the resulting groups.

    Labels are 1..k in order of first appearance along the leaf order.
    """
    dendrogram._check_k(k)
    n = dendrogram.n_leaves

    parent = list(range(2 * n))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for m, (a, b) in enumerate(dendrogram.merges[: n - k]):
        new_id = n + m
        parent[find(a)] = new_id
        parent[find(b)] = new_id

    labels: Dict[Any, int] = {}
    root_label: Dict[int, int] = {}
    for leaf, node in enumerate(dendrogram.nodes):
        root = find(leaf)
        if root not in root_label:
            root_label[root] = len(root_label) + 1
        labels[node] = root_label[root]
    return labels


# =============================================================================
# CLUSTERING
# =============================================================================

def _aligned_weights(
    nodes: List[Any],
    graph: nx.Graph,
    population_weights: Optional[Union[Mapping[Any, float], Sequence[float]]],
) -> np.ndarray:
    if population_weights is None:
        return np.array([float(graph.nodes[n]['population']) for n in nodes])
    if isinstance(population_weights, Mapping):
        return np.array([float(population_weights[n]) for n in nodes])
    weights = np.asarray(population_weights, dtype=np.float64)
    if weights.shape != (len(nodes),):
        raise ValueError(f"population_weights must have {len(nodes)} entries, got {weights.shape}")
    return weights


def agglomerative_cluster(
    graph: nx.Graph,
    population_weights: Optional[Union[Mapping[Any, float], Sequence[float]]] = None,
    reference: Optional[Sequence[float]] = None,
) -> Dendrogram:
    """
    Build the information-loss dendrogram of a graph.

    Parameters
    ----------
    graph : nx.Graph
        Information graph (nodes need a `counts` attribute).
    population_weights : mapping or sequence, optional
        Node populations n_i. Defaults to each node's `population`.
    reference : sequence of float, optional
        Reference distribution r. Defaults to the pooled distribution of
        all nodes.

    A graph built with smooth=True carries its pseudo-count; it is added
    to every node's counts, so zero-population nodes get a uniform
    distribution and zero weight instead of being rejected.

    Returns
    -------
    Dendrogram
    """
    nodes, counts = node_counts(graph)
    n = len(nodes)
    if n == 0:
        raise ValueError("Cannot cluster an empty graph")

    if graph.graph.get('smooth', False):
        counts = counts + float(graph.graph.get('pseudocount', DEFAULT_PSEUDOCOUNT))

    weights = _aligned_weights(nodes, graph, population_weights)
    if np.any(weights < 0) or not np.all(np.isfinite(weights)):
        raise ValueError("population weights must be finite and non-negative")
    N = float(weights.sum())
    if N <= 0:
        raise DegenerateDistributionError("Total population is zero", stage='hierarchy')

    totals = counts.sum(axis=1)
    empty = np.flatnonzero(totals <= 0)
    if len(empty):
        raise DegenerateDistributionError(
            f"{len(empty)} node(s) have zero counts, e.g. {nodes[empty[0]]!r}",
            stage='hierarchy',
        )
    dists = counts / totals[:, None]

    if reference is None:
        r = counts.sum(axis=0)
        r = r / r.sum()
    else:
        r = np.asarray(reference, dtype=np.float64).ravel()
        if r.shape != (counts.shape[1],):
            raise ValueError(f"reference must have {counts.shape[1]} categories, got {r.shape}")
        if np.any(r < 0) or r.sum() <= 0:
            raise ValueError("reference must be a non-negative, non-zero distribution")
        r = r / r.sum()

    def information(p: np.ndarray, w: float) -> float:
        return (w / N) * kl_to_reference(p, r) if w > 0 else 0.0

    # Active cluster state
    dist: Dict[int, np.ndarray] = {i: dists[i] for i in range(n)}
    weight: Dict[int, float] = {i: float(weights[i]) for i in range(n)}
    size: Dict[int, int] = {i: 1 for i in range(n)}
    info: Dict[int, float] = {i: information(dists[i], weights[i]) for i in range(n)}
    total_information = float(sum(info.values()))

    position = {node: i for i, node in enumerate(nodes)}
    neighbours: Dict[int, Set[int]] = {i: set() for i in range(n)}
    for u, v in graph.edges():
        i, j = position[u], position[v]
        if i != j:
            neighbours[i].add(j)
            neighbours[j].add(i)

    def merged_state(a: int, b: int) -> Tuple[np.ndarray, float, float]:
        w = weight[a] + weight[b]
        if w > 0:
            p = (weight[a] * dist[a] + weight[b] * dist[b]) / w
        else:
            p = 0.5 * (dist[a] + dist[b])
        return p, w, information(p, w)

    def loss(a: int, b: int) -> float:
        _, _, merged_info = merged_state(a, b)
        return max(0.0, info[a] + info[b] - merged_info)

    heap: List[Tuple[float, int, int]] = []
    for i in range(n):
        for j in neighbours[i]:
            if i < j:
                heapq.heappush(heap, (loss(i, j), i, j))

    active: Set[int] = set(range(n))
    merges: List[Tuple[int, int]] = []
    losses: List[float] = []
    sizes: List[int] = []
    bridged = False

    while len(active) > 1:
        while heap and (heap[0][1] not in active or heap[0][2] not in active):
            heapq.heappop(heap)

        if not heap:
            # Disconnected graph: allow any remaining pair
            if not bridged:
                logger.warning(
                    f"Graph disconnected: merging {len(active)} remaining clusters without adjacency"
                )
                bridged = True
            ordered = sorted(active)
            for x, a in enumerate(ordered):
                for b in ordered[x + 1:]:
                    heapq.heappush(heap, (loss(a, b), a, b))
            continue

        cost, a, b = heapq.heappop(heap)
        p, w, merged_info = merged_state(a, b)
        new_id = n + len(merges)

        dist[new_id], weight[new_id], info[new_id] = p, w, merged_info
        size[new_id] = size[a] + size[b]
        neighbours[new_id] = (neighbours[a] | neighbours[b]) - {a, b}
        for c in neighbours[new_id]:
            neighbours[c] -= {a, b}
            neighbours[c].add(new_id)

        active -= {a, b}
        for c in sorted(neighbours[new_id]):
            heapq.heappush(heap, (loss(c, new_id), c, new_id))
        if bridged:
            for c in sorted(active - neighbours[new_id]):
                heapq.heappush(heap, (loss(c, new_id), c, new_id))
        active.add(new_id)

        merges.append((a, b))
        losses.append(cost)
        sizes.append(size[new_id])

    losses_arr = np.array(losses, dtype=np.float64)
    heights = np.cumsum(losses_arr) if len(losses_arr) else np.zeros(0)

    logger.info(
        f"Agglomerative clustering: {n} leaves, total information {total_information:.6g}, "
        f"final height {heights[-1] if len(heights) else 0.0:.6g}"
    )

    return Dendrogram(
        nodes=nodes,
        merges=merges,
        losses=losses_arr,
        heights=heights,
        sizes=np.array(sizes, dtype=int),
        total_information=total_information,
        reference=r,
    )
