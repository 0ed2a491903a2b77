"""
Kernel Field
============

Population-weighted local mixture of category counts around a query point.

    m(x) = sum_i w_i(x) * counts_i
    w_i  = exp(-|x - x_i|^2 / (2 b_s^2))          spatial kernel
         * exp(-(t - t_i)^2 / (2 b_t^2))          temporal kernel (optional)

The mixture is left UNNORMALIZED by default: the metric tensor needs the
local mass to keep population information. `normalize=True` divides by
the total weight.

Only units within `cutoff_sigmas` bandwidths contribute. A query with no
unit inside the cutoff raises InsufficientDataError instead of returning
an all-zero (NaN-producing) vector.

Usage:
    from infogeo.engines.core.kernel_field import KernelField

    kernel = KernelField(field)
    local = kernel.local_distribution([1.0, 2.0], bandwidth_spatial=1.5)
"""

from typing import Optional, Sequence

import numpy as np

from infogeo.core.errors import InsufficientDataError
from infogeo.core.field import CountField
from infogeo.engines.core.spatial_index import SpatialIndex

DEFAULT_CUTOFF_SIGMAS = 3.0


def gaussian_weights(distance: np.ndarray, bandwidth: float) -> np.ndarray:
    """exp(-d^2 / (2 b^2))"""
    distance = np.asarray(distance, dtype=np.float64)
    return np.exp(-(distance ** 2) / (2.0 * bandwidth ** 2))


class KernelField:
    """
    Kernel-smoothed count field over a CountField.

    Attributes:
        field: Source counts (immutable)
        index: Spatial index over the field's centroids
        cutoff_sigmas: Support radius in bandwidths
        cutoff_radius: Fixed spatial support radius; overrides cutoff_sigmas
    """

    def __init__(
        self,
        field: CountField,
        index: Optional[SpatialIndex] = None,
        cutoff_sigmas: float = DEFAULT_CUTOFF_SIGMAS,
        cutoff_radius: Optional[float] = None,
    ):
        if cutoff_sigmas <= 0:
            raise ValueError(f"cutoff_sigmas must be > 0, got {cutoff_sigmas}")
        if cutoff_radius is not None and cutoff_radius <= 0:
            raise ValueError(f"cutoff_radius must be > 0, got {cutoff_radius}")

        self.field = field
        self.index = index if index is not None else SpatialIndex(field.coords, field.times)
        self.cutoff_sigmas = float(cutoff_sigmas)
        self.cutoff_radius = cutoff_radius

    def spatial_cutoff(self, bandwidth_spatial: float) -> float:
        if self.cutoff_radius is not None:
            return float(self.cutoff_radius)
        return self.cutoff_sigmas * bandwidth_spatial

    def weights(
        self,
        query_coord: Sequence[float],
        bandwidth_spatial: float,
        bandwidth_temporal: Optional[float] = None,
    ):
        """
        Kernel weights of the units inside the cutoff.

        Returns
        -------
        rows : np.ndarray
            Contributing row indices (sorted).
        weights : np.ndarray
            Kernel weight per contributing row.
        """
        if bandwidth_spatial <= 0:
            raise ValueError(f"bandwidth_spatial must be > 0, got {bandwidth_spatial}")
        if bandwidth_temporal is not None and bandwidth_temporal <= 0:
            raise ValueError(f"bandwidth_temporal must be > 0, got {bandwidth_temporal}")

        query = np.asarray(query_coord, dtype=np.float64).ravel()
        if query.size not in (2, 3):
            raise ValueError(f"query_coord must be (x, y) or (x, y, t), got {query.size} values")

        t = float(query[2]) if query.size == 3 and self.field.has_time else None
        t_radius = None
        if t is not None and bandwidth_temporal is not None:
            t_radius = self.cutoff_sigmas * bandwidth_temporal

        radius = self.spatial_cutoff(bandwidth_spatial)
        rows = self.index.query(query, radius, t=t, t_radius=t_radius)

        if len(rows) == 0:
            raise InsufficientDataError(
                "No unit within kernel cutoff of query point",
                stage='kernel_field',
                params={
                    'query': tuple(float(v) for v in query),
                    'cutoff_radius': radius,
                    'bandwidth_spatial': bandwidth_spatial,
                    'bandwidth_temporal': bandwidth_temporal,
                },
            )

        w = gaussian_weights(self.index.distances_from(query, rows), bandwidth_spatial)
        if t_radius is not None:
            w = w * gaussian_weights(self.field.times[rows] - t, bandwidth_temporal)

        return rows, w

    def local_distribution(
        self,
        query_coord: Sequence[float],
        bandwidth_spatial: float,
        bandwidth_temporal: Optional[float] = None,
        normalize: bool = False,
    ) -> np.ndarray:
        """
        Kernel-weighted category counts at a query point.

        Parameters
        ----------
        query_coord : sequence of float
            (x, y) or (x, y, t). With a time component and no temporal
            bandwidth only units at exactly time t contribute.
        bandwidth_spatial : float
            Spatial kernel bandwidth (coordinate units).
        bandwidth_temporal : float, optional
            Temporal kernel bandwidth (time units).
        normalize : bool
            Divide by the total kernel weight.

        Returns
        -------
        np.ndarray
            (n_categories,) local count vector.
        """
        rows, w = self.weights(query_coord, bandwidth_spatial, bandwidth_temporal)
        local = w @ self.field.counts[rows]

        if normalize:
            total = w.sum()
            if total <= 0:
                raise InsufficientDataError(
                    "Kernel weights underflowed to zero",
                    stage='kernel_field',
                    params={'bandwidth_spatial': bandwidth_spatial},
                )
            local = local / total

        return local
