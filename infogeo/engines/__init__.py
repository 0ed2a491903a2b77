"""
INFOGEO Engines
===============

Core: kernel smoothing, divergences, metric tensors, information graph,
Laplacian, spectral and agglomerative clustering.
"""

from . import core

__all__ = ['core']
