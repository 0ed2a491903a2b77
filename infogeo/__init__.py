"""
INFOGEO - Information Geometry of Categorical Count Fields
==========================================================

Local Fisher-type metric tensors, divergence-weighted unit graphs and
information-preserving regionalization for category counts over space
(and optionally time).

    COUNTS + CENTROIDS -> METRIC TENSORS / GRAPH -> CLUSTERS

Architecture:
    - core/: Data model, errors, stage dependencies, worker pool
    - engines/core/: Kernel field, divergences, metric tensors, graph, clustering
    - modules/: Table ingestion and result tables (polars)
    - config/: YAML configuration + validation

Usage:
    python -m infogeo.run --config config.yaml

    from infogeo.pipeline import run_analysis
    result = run_analysis(field, config)
"""

__version__ = "1.0.0"

from . import core
from . import engines

__all__ = ['core', 'engines', '__version__']
