"""
INFOGEO Analysis Pipeline

Stage definitions and in-memory execution over one CountField.

Output Parquet Mapping:
    Stage        Output                              Key Columns
    tensors      tensors.parquet                     g_xx, g_xy, g_yy, trace, determinant
    graph        edges.parquet                       unit_a, unit_b, kind, distance
    spectral     clusters.parquet, eigenvalues       spectral, eigenvalue
    hierarchy    clusters.parquet, dendrogram,       hierarchy, height, information_captured
                 information.parquet

Dependencies:
    - tensors, graph: independent
    - spectral, hierarchy: require graph

A stage that fails yields StageResult(success=False) and no later stage
runs. run_analysis() re-raises the failure instead.

Usage:
    from infogeo.pipeline import run, run_analysis

    result = run_analysis(field, config)
    result.spectral.labels

    for stage_result in run(field, config, stages=['graph', 'hierarchy']):
        print(stage_result)
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Generator, List, Mapping, Optional, Union

import networkx as nx
import polars as pl

from infogeo.config import AnalysisConfig, ConfigurationError
from infogeo.config.validator import validate_required
from infogeo.core.dependencies import check_dependencies, resolve_stages
from infogeo.core.errors import InfoGeoError
from infogeo.core.field import CountField
from infogeo.engines.core.adjacency import AdjacencyPolicy, adjacency_from_config
from infogeo.engines.core.agglomerative import Dendrogram, agglomerative_cluster
from infogeo.engines.core.graph import build_information_graph, set_cluster_labels
from infogeo.engines.core.kernel_field import KernelField
from infogeo.engines.core.laplacian import GraphLaplacian, graph_laplacian
from infogeo.engines.core.metric_tensor import MetricTensor, MetricTensorEstimator
from infogeo.engines.core.spectral import SpectralResult, spectral_cluster
from infogeo.modules.tables import (
    cluster_table,
    dendrogram_table,
    edge_table,
    eigenvalue_table,
    information_table,
    tensor_table,
)

logger = logging.getLogger(__name__)


# =============================================================================
# STAGE DEFINITIONS
# =============================================================================

@dataclass
class Stage:
    """Analysis stage definition."""
    name: str
    output: str
    description: str
    key_columns: List[str]
    requires: Optional[List[str]] = None


STAGES: Dict[str, Stage] = {
    'tensors': Stage(
        name='tensors',
        output='tensors',
        description='Local information metric tensor per unit',
        key_columns=['g_xx', 'g_xy', 'g_yy', 'trace', 'determinant', 'ill_conditioned'],
    ),
    'graph': Stage(
        name='graph',
        output='edges',
        description='Divergence-weighted adjacency graph',
        key_columns=['unit_a', 'unit_b', 'kind', 'distance'],
    ),
    'spectral': Stage(
        name='spectral',
        output='clusters',
        description='Random-walk Laplacian + k-means partition',
        key_columns=['spectral', 'eigenvalue'],
        requires=['graph'],
    ),
    'hierarchy': Stage(
        name='hierarchy',
        output='dendrogram',
        description='Information-loss agglomerative dendrogram',
        key_columns=['hierarchy', 'height', 'information_captured'],
        requires=['graph'],
    ),
}


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class StageResult:
    """Result from running an analysis stage."""
    stage: str
    output_file: str
    n_rows: int
    n_cols: int
    success: bool
    error: Optional[str] = None
    exception: Optional[BaseException] = dataclass_field(default=None, repr=False)


@dataclass
class AnalysisResult:
    """Everything produced by one analysis run."""
    config: AnalysisConfig
    field: CountField
    tensors: Optional[List[MetricTensor]] = None
    graph: Optional[nx.Graph] = None
    laplacian: Optional[GraphLaplacian] = None
    spectral: Optional[SpectralResult] = None
    dendrogram: Optional[Dendrogram] = None
    hierarchy_labels: Optional[Dict[Any, int]] = None
    tables: Dict[str, pl.DataFrame] = dataclass_field(default_factory=dict)
    completed: List[str] = dataclass_field(default_factory=list)


# =============================================================================
# STAGE RUNNERS
# =============================================================================

def run_tensors(result: AnalysisResult) -> StageResult:
    """Stage: metric tensor per (unit, t)."""
    config = result.config
    kernel = KernelField(result.field, cutoff_sigmas=config.cutoff_sigmas)
    estimator = MetricTensorEstimator(
        kernel,
        spatial_bandwidth=config.spatial_bandwidth,
        divergence=config.divergence,
        frame=config.frame,
        temporal_bandwidth=config.temporal_bandwidth if config.temporal else None,
        smooth=config.smooth,
        pseudocount=config.pseudocount,
    )
    result.tensors = estimator.estimate_all(n_workers=config.n_workers)

    df = tensor_table(result.tensors)
    result.tables['tensors'] = df
    return StageResult('tensors', 'tensors', len(df), len(df.columns), True)


def run_graph(result: AnalysisResult, adjacency: Optional[AdjacencyPolicy] = None) -> StageResult:
    """Stage: information graph."""
    config = result.config
    if adjacency is None:
        validate_required({'adjacency': config.adjacency or None}, ['adjacency'], 'graph')
        adjacency = adjacency_from_config(config.adjacency)

    result.graph = build_information_graph(
        result.field,
        adjacency,
        divergence=config.divergence,
        smooth=config.smooth,
        pseudocount=config.pseudocount,
        n_workers=config.n_workers,
    )

    df = edge_table(result.graph)
    result.tables['edges'] = df
    return StageResult('graph', 'edges', len(df), len(df.columns), True)


def _labelings(result: AnalysisResult) -> Dict[str, Mapping[Any, int]]:
    labelings: Dict[str, Mapping[Any, int]] = {}
    if result.spectral is not None:
        labelings['spectral'] = result.spectral.labels
    if result.hierarchy_labels is not None:
        labelings['hierarchy'] = result.hierarchy_labels
    return labelings


def run_spectral(result: AnalysisResult) -> StageResult:
    """Stage: spectral partition of the graph."""
    check_dependencies('spectral', result.completed)
    config = result.config

    result.laplacian = graph_laplacian(result.graph, config.affinity_sigma)
    result.spectral = spectral_cluster(
        result.laplacian,
        k=config.n_clusters,
        restarts=config.restarts,
        seed=config.seed,
        max_iter=config.max_iter,
        n_workers=config.n_workers,
    )
    set_cluster_labels(result.graph, result.spectral.labels, attribute='spectral')

    result.tables['eigenvalues'] = eigenvalue_table(result.spectral)
    df = cluster_table(result.graph, _labelings(result))
    result.tables['clusters'] = df
    return StageResult('spectral', 'clusters', len(df), len(df.columns), True)


def run_hierarchy(result: AnalysisResult) -> StageResult:
    """Stage: agglomerative dendrogram, cut at n_clusters."""
    check_dependencies('hierarchy', result.completed)
    config = result.config

    result.dendrogram = agglomerative_cluster(result.graph)
    k = min(config.n_clusters, result.dendrogram.n_leaves)
    result.hierarchy_labels = result.dendrogram.cutree(k)
    set_cluster_labels(result.graph, result.hierarchy_labels, attribute='hierarchy')

    result.tables['information'] = information_table(result.dendrogram)
    result.tables['clusters'] = cluster_table(result.graph, _labelings(result))
    df = dendrogram_table(result.dendrogram)
    result.tables['dendrogram'] = df
    return StageResult('hierarchy', 'dendrogram', len(df), len(df.columns), True)


# =============================================================================
# MAIN PIPELINE
# =============================================================================

def _as_config(config: Union[AnalysisConfig, Mapping[str, Any]]) -> AnalysisConfig:
    if isinstance(config, AnalysisConfig):
        return config
    return AnalysisConfig.from_dict(dict(config))


def run(
    field: CountField,
    config: Union[AnalysisConfig, Mapping[str, Any]],
    stages: Optional[List[str]] = None,
    adjacency: Optional[AdjacencyPolicy] = None,
    result: Optional[AnalysisResult] = None,
) -> Generator[StageResult, None, None]:
    """
    Run the analysis stages over a count field.

    Args:
        field: Units and counts
        config: AnalysisConfig or a raw config mapping
        stages: Stages to run (upstream stages are added automatically)
        adjacency: Neighbour policy; defaults to the config's adjacency block
        result: Container to fill (pass one in to keep the outputs)

    Yields:
        StageResult for each attempted stage
    """
    config = _as_config(config)
    if result is None:
        result = AnalysisResult(config=config, field=field)

    runners = {
        'tensors': lambda: run_tensors(result),
        'graph': lambda: run_graph(result, adjacency),
        'spectral': lambda: run_spectral(result),
        'hierarchy': lambda: run_hierarchy(result),
    }

    for name in resolve_stages(stages):
        stage = STAGES[name]
        logger.info(f"Running stage: {name} ({stage.description})")
        try:
            stage_result = runners[name]()
        except (InfoGeoError, ConfigurationError, ValueError, KeyError) as exc:
            logger.error(f"Stage {name} failed: {exc}")
            yield StageResult(name, stage.output, 0, 0, False, error=str(exc), exception=exc)
            return

        result.completed.append(name)
        yield stage_result


def run_analysis(
    field: CountField,
    config: Union[AnalysisConfig, Mapping[str, Any]],
    stages: Optional[List[str]] = None,
    adjacency: Optional[AdjacencyPolicy] = None,
) -> AnalysisResult:
    """Run stages and return their outputs. The first failure is re-raised."""
    config = _as_config(config)
    result = AnalysisResult(config=config, field=field)

    for stage_result in run(field, config, stages=stages, adjacency=adjacency, result=result):
        if not stage_result.success:
            raise stage_result.exception

    return result


# =============================================================================
# UTILITIES
# =============================================================================

def print_stage_info():
    """Print stage information."""
    print("\nINFOGEO Analysis Stages")
    print("=" * 80)
    print(f"{'Stage':<12} {'Output':<20} {'Requires':<20} Description")
    print("-" * 80)

    for stage in STAGES.values():
        requires = ", ".join(stage.requires or []) or "-"
        print(f"{stage.name:<12} {stage.output + '.parquet':<20} {requires:<20} {stage.description}")

    print("=" * 80)
