"""
infogeo/modules/tensor_scalars.py - Scalar summaries of metric tensors

Presentation only. Nothing downstream consumes these.

    trace          total local information rate
    determinant    information volume element
    spatial_trace  g_xx + g_yy (ignores the time axis)
    temporal_entry g_tt, or None in a spatial frame
    anisotropy     ratio of largest to smallest spatial eigenvalue
"""

from typing import Dict, Optional

import numpy as np

from infogeo.engines.core.metric_tensor import MetricTensor


def trace(tensor: MetricTensor) -> float:
    return float(np.trace(tensor.matrix))


def determinant(tensor: MetricTensor) -> float:
    return float(np.linalg.det(tensor.matrix))


def spatial_trace(tensor: MetricTensor) -> float:
    return float(tensor.matrix[0, 0] + tensor.matrix[1, 1])


def temporal_entry(tensor: MetricTensor) -> Optional[float]:
    if not tensor.frame.is_temporal:
        return None
    return float(tensor.matrix[2, 2])


def anisotropy(tensor: MetricTensor) -> float:
    """
    Largest over smallest eigenvalue of the spatial block.

    inf when the smallest is zero and the largest is not; 1.0 for the zero
    tensor.
    """
    eigenvalues = np.linalg.eigvalsh(tensor.matrix[:2, :2])
    low, high = float(eigenvalues[0]), float(eigenvalues[-1])
    if high <= 0:
        return 1.0
    if low <= 0:
        return float('inf')
    return high / low


def tensor_scalars(tensor: MetricTensor) -> Dict[str, Optional[float]]:
    """All scalar summaries of one tensor."""
    return {
        'trace': trace(tensor),
        'determinant': determinant(tensor),
        'spatial_trace': spatial_trace(tensor),
        'temporal_entry': temporal_entry(tensor),
        'anisotropy': anisotropy(tensor),
    }
