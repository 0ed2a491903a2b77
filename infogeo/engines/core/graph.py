"""
Information Graph
=================

Nodes are (unit, t) pairs; edges join geographically adjacent units in
the same period ("spatial") and the same unit in consecutive periods
("temporal"). Each edge carries

    distance = symmetric divergence between the endpoints' raw counts

Construction is deterministic: nodes are inserted in row order and
edges sorted by node pair, whatever order the divergence workers finish.

Usage:
    from infogeo.engines.core.graph import build_information_graph
    from infogeo.engines.core.adjacency import DistanceAdjacency

    graph = build_information_graph(field, DistanceAdjacency(1.0), divergence='kl')
    graph.edges['a', 'b']['distance']
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Hashable, List, Mapping, Tuple, Union

import networkx as nx
import numpy as np

from infogeo.core.field import CountField
from infogeo.core.parallel import chunked, ordered_map, resolve_workers
from infogeo.engines.core.adjacency import AdjacencyPolicy
from infogeo.engines.core.divergence import (
    DEFAULT_PSEUDOCOUNT,
    Divergence,
    compute_divergence,
    symmetric_divergence,
)

logger = logging.getLogger(__name__)

SPATIAL = 'spatial'
TEMPORAL = 'temporal'
SYMMETRY_RTOL = 1e-9


# =============================================================================
# EDGE CANDIDATES
# =============================================================================

def spatial_edge_rows(field: CountField, adjacency: AdjacencyPolicy) -> List[Tuple[int, int]]:
    """Row pairs for adjacent units that share a period."""
    rows_by_unit: Dict[Hashable, Dict[Any, int]] = defaultdict(dict)
    times = field.times.tolist() if field.has_time else [None] * field.n_units
    for row, (uid, t) in enumerate(zip(field.unit_ids, times)):
        rows_by_unit[uid][t] = row

    edges = []
    for a, b in adjacency.pairs(field):
        rows_a = rows_by_unit.get(a, {})
        rows_b = rows_by_unit.get(b, {})
        for t in rows_a:
            if t in rows_b:
                i, j = rows_a[t], rows_b[t]
                edges.append((min(i, j), max(i, j)))
    return edges


def temporal_edge_rows(field: CountField) -> List[Tuple[int, int]]:
    """Row pairs for the same unit in consecutive periods (no skips)."""
    if not field.has_time:
        return []

    periods = field.distinct_times
    position = {t: k for k, t in enumerate(periods)}

    rows_by_unit: Dict[Hashable, Dict[int, int]] = defaultdict(dict)
    for row, (uid, t) in enumerate(zip(field.unit_ids, field.times.tolist())):
        rows_by_unit[uid][position[t]] = row

    edges = []
    for uid in rows_by_unit:
        slots = rows_by_unit[uid]
        for k in sorted(slots):
            if k + 1 in slots:
                i, j = slots[k], slots[k + 1]
                edges.append((min(i, j), max(i, j)))
    return edges


# =============================================================================
# DIVERGENCE WORKERS
# =============================================================================

def _edge_distances(task) -> List[float]:
    counts, pairs, kind, smooth, pseudocount = task
    return [
        symmetric_divergence(kind, counts[i], counts[j], smooth=smooth, pseudocount=pseudocount)
        for i, j in pairs
    ]


def _spot_check_symmetry(
    counts: np.ndarray,
    pairs: List[Tuple[int, int]],
    distances: List[float],
    kind: Divergence,
    smooth: bool,
    pseudocount: float,
    n_checks: int = 3,
) -> None:
    for (i, j), forward in list(zip(pairs, distances))[:n_checks]:
        backward = symmetric_divergence(kind, counts[j], counts[i], smooth=smooth, pseudocount=pseudocount)
        if not np.isclose(forward, backward, rtol=SYMMETRY_RTOL, atol=0.0):
            raise ValueError(
                f"Edge divergence is not symmetric for rows ({i}, {j}): {forward} vs {backward}"
            )


# =============================================================================
# GRAPH CONSTRUCTION
# =============================================================================

def build_information_graph(
    field: CountField,
    adjacency: AdjacencyPolicy,
    divergence: Union[str, Divergence] = Divergence.KL,
    smooth: bool = False,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
    n_workers: int = 1,
) -> nx.Graph:
    """
    Build the divergence-weighted unit graph.

    Parameters
    ----------
    field : CountField
        Units and raw category counts.
    adjacency : AdjacencyPolicy
        Geographic neighbour rule.
    divergence : str or Divergence
        Edge functional; KL is symmetrized (mean of both directions).
    smooth : bool
        Apply the pseudo-count (needed for zero-population units).
    n_workers : int
        Shard edge divergences over a process pool (1 = serial).

    Returns
    -------
    nx.Graph
        Nodes keyed by field.node_keys with attributes unit_id, t, x, y,
        population, counts; edges with distance and kind.
    """
    kind = Divergence.parse(divergence)
    keys = field.node_keys
    counts = np.asarray(field.counts)
    population = field.population

    graph = nx.Graph(divergence=kind.value, smooth=bool(smooth), pseudocount=float(pseudocount))
    for row, unit in enumerate(field.units()):
        graph.add_node(
            unit.key,
            unit_id=unit.unit_id,
            t=unit.t,
            x=unit.x,
            y=unit.y,
            population=float(population[row]),
            counts=counts[row],
        )

    labelled = [(pair, SPATIAL) for pair in spatial_edge_rows(field, adjacency)]
    labelled += [(pair, TEMPORAL) for pair in temporal_edge_rows(field)]
    labelled = sorted(set(labelled))

    pairs = [pair for pair, _ in labelled]
    workers = resolve_workers(n_workers)
    tasks = [
        (counts, chunk, kind, smooth, pseudocount)
        for chunk in chunked(pairs, workers)
    ]
    distances = [d for part in ordered_map(_edge_distances, tasks, workers) for d in part]

    if __debug__ and pairs:
        _spot_check_symmetry(counts, pairs, distances, kind, smooth, pseudocount)

    for ((i, j), edge_kind), distance in zip(labelled, distances):
        graph.add_edge(keys[i], keys[j], distance=float(distance), kind=edge_kind)

    n_spatial = sum(1 for _, k in labelled if k == SPATIAL)
    logger.info(
        f"Information graph: {graph.number_of_nodes()} nodes, "
        f"{n_spatial} spatial + {len(labelled) - n_spatial} temporal edges "
        f"(divergence={kind.value}, adjacency={adjacency!r})"
    )
    return graph


# =============================================================================
# LABELS
# =============================================================================

def set_cluster_labels(
    graph: nx.Graph,
    labels: Mapping[Any, int],
    attribute: str = 'cluster',
) -> nx.Graph:
    """Attach labels as a node attribute. Edges are left untouched."""
    missing = [node for node in graph.nodes if node not in labels]
    if missing:
        raise KeyError(f"{len(missing)} graph nodes have no label, e.g. {missing[0]!r}")
    nx.set_node_attributes(graph, {node: int(labels[node]) for node in graph.nodes}, attribute)
    return graph


def node_counts(graph: nx.Graph) -> Tuple[List[Any], np.ndarray]:
    """Node order and stacked count vectors."""
    nodes = list(graph.nodes)
    counts = np.vstack([np.asarray(graph.nodes[n]['counts'], dtype=np.float64) for n in nodes])
    return nodes, counts


def edge_divergence(
    graph: nx.Graph,
    u: Any,
    v: Any,
    directed: bool = False,
) -> float:
    """Recompute an edge's divergence (directed=True: D(u -> v) without symmetrizing)."""
    kind = Divergence.parse(graph.graph.get('divergence', 'kl'))
    smooth = graph.graph.get('smooth', False)
    pseudocount = graph.graph.get('pseudocount', DEFAULT_PSEUDOCOUNT)
    p = graph.nodes[u]['counts']
    q = graph.nodes[v]['counts']
    if directed:
        return compute_divergence(kind, p, q, smooth=smooth, pseudocount=pseudocount)
    return symmetric_divergence(kind, p, q, smooth=smooth, pseudocount=pseudocount)
