"""
infogeo/modules/tables.py - Result tables

Pure functions, no I/O. Flattens engine outputs into polars DataFrames
for parquet export:

    tensors.parquet       one row per (unit, t): matrix entries + scalars
    edges.parquet         one row per graph edge
    clusters.parquet      one row per node: spectral / hierarchy labels
    eigenvalues.parquet   ascending Laplacian spectrum
    dendrogram.parquet    one row per merge (SciPy linkage columns)
    information.parquet   information captured per number of clusters
"""

from typing import Any, Dict, List, Mapping, Optional

import networkx as nx
import numpy as np
import polars as pl

from infogeo.engines.core.agglomerative import Dendrogram
from infogeo.engines.core.metric_tensor import MetricTensor
from infogeo.engines.core.spectral import SpectralResult
from infogeo.modules.tensor_scalars import tensor_scalars


def _frame(records: List[Dict[str, Any]]) -> pl.DataFrame:
    """DataFrame from records, dropping columns that are None in every row."""
    if not records:
        return pl.DataFrame()
    empty = [k for k in records[0] if all(r.get(k) is None for r in records)]
    return pl.DataFrame([{k: v for k, v in r.items() if k not in empty} for r in records])


def tensor_table(tensors: List[MetricTensor]) -> pl.DataFrame:
    """Upper-triangle entries (g_xx, g_xy, ...) plus scalar summaries."""
    records = []
    for tensor in tensors:
        axes = tensor.axes
        record: Dict[str, Any] = {'unit_id': tensor.unit_id, 't': tensor.t}
        for i, a in enumerate(axes):
            for j in range(i, len(axes)):
                record[f"g_{a}{axes[j]}"] = float(tensor.matrix[i, j])
        record.update(tensor_scalars(tensor))
        record['ill_conditioned'] = tensor.ill_conditioned
        record['bandwidth'] = tensor.bandwidth
        records.append(record)

    return _frame(records)


def edge_table(graph: nx.Graph) -> pl.DataFrame:
    records = []
    for u, v, data in graph.edges(data=True):
        nu, nv = graph.nodes[u], graph.nodes[v]
        records.append({
            'unit_a': nu['unit_id'],
            't_a': nu['t'],
            'unit_b': nv['unit_id'],
            't_b': nv['t'],
            'kind': data['kind'],
            'distance': data['distance'],
        })

    return _frame(records)


def cluster_table(
    graph: nx.Graph,
    labelings: Mapping[str, Mapping[Any, int]],
) -> pl.DataFrame:
    """
    One row per node with a column per labeling.

    Args:
        graph: Information graph (node order of the table)
        labelings: column name -> {node: label}
    """
    records = []
    for node, data in graph.nodes(data=True):
        record = {
            'unit_id': data['unit_id'],
            't': data['t'],
            'x': data['x'],
            'y': data['y'],
            'population': data['population'],
        }
        for name, labels in labelings.items():
            record[name] = int(labels[node])
        records.append(record)

    return _frame(records)


def eigenvalue_table(result: SpectralResult) -> pl.DataFrame:
    gaps = np.append(np.diff(result.eigenvalues), np.nan)
    return pl.DataFrame({
        'index': np.arange(len(result.eigenvalues)),
        'eigenvalue': result.eigenvalues,
        'gap_to_next': gaps,
    })


def dendrogram_table(dendrogram: Dendrogram) -> pl.DataFrame:
    Z = dendrogram.linkage
    return pl.DataFrame({
        'merge': np.arange(len(Z)),
        'cluster_a': Z[:, 0].astype(np.int64),
        'cluster_b': Z[:, 1].astype(np.int64),
        'height': Z[:, 2],
        'loss': dendrogram.losses,
        'size': Z[:, 3].astype(np.int64),
    })


def information_table(dendrogram: Dendrogram, max_k: Optional[int] = None) -> pl.DataFrame:
    """Information captured per k, absolute and as a fraction of the full dendrogram height."""
    ks, captured = dendrogram.information_curve()
    if max_k is not None:
        keep = ks <= max_k
        ks, captured = ks[keep], captured[keep]

    total = dendrogram.loss_after(len(dendrogram.merges))
    fraction = captured / total if total > 0 else np.zeros_like(captured)
    return pl.DataFrame({
        'k': ks,
        'information_captured': captured,
        'fraction_captured': fraction,
    })
