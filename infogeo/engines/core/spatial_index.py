"""
Spatial Index

Nearest / nearby-unit and pairwise-distance queries over unit centroids.
Pure geometry: knows coordinates, nothing about counts.

Uses scipy's cKDTree for radius and nearest-neighbour queries.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree
from scipy.spatial.distance import cdist, pdist, squareform


class SpatialIndex:
    """
    KD-tree over (x, y) centroids.

    Usage:
        index = SpatialIndex(field.coords)
        rows = index.query_radius([0.5, 0.5], radius=2.0)
        dist, row = index.nearest([0.5, 0.5])
    """

    def __init__(self, coords: np.ndarray, times: Optional[np.ndarray] = None):
        coords = np.asarray(coords, dtype=np.float64)
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise ValueError(f"coords must be (n, 2), got {coords.shape}")
        self.coords = coords
        self.times = None if times is None else np.asarray(times, dtype=np.float64)
        self._tree = cKDTree(coords)

    def __len__(self) -> int:
        return len(self.coords)

    def query_radius(self, point: Sequence[float], radius: float) -> np.ndarray:
        """Sorted row indices whose centroid lies within `radius` of point."""
        if radius < 0:
            raise ValueError(f"radius must be >= 0, got {radius}")
        point = np.asarray(point, dtype=np.float64)[:2]
        rows = self._tree.query_ball_point(point, r=radius)
        return np.array(sorted(rows), dtype=np.intp)

    def query(
        self,
        point: Sequence[float],
        radius: float,
        t: Optional[float] = None,
        t_radius: Optional[float] = None,
    ) -> np.ndarray:
        """
        Rows within `radius` in space and, when t is given, in time.

        t_radius=None with a t restricts to rows at exactly that time.
        """
        rows = self.query_radius(point, radius)
        if t is None or self.times is None:
            return rows
        dt = np.abs(self.times[rows] - t)
        if t_radius is None:
            return rows[dt == 0]
        return rows[dt <= t_radius]

    def nearest(self, point: Sequence[float], k: int = 1) -> Tuple[np.ndarray, np.ndarray]:
        """Distances and row indices of the k nearest centroids."""
        k = min(k, len(self))
        point = np.asarray(point, dtype=np.float64)[:2]
        dist, rows = self._tree.query(point, k=k)
        return np.atleast_1d(dist), np.atleast_1d(rows)

    def distance(self, i: int, j: int) -> float:
        return float(np.linalg.norm(self.coords[i] - self.coords[j]))

    def distances_from(self, point: Sequence[float], rows: np.ndarray) -> np.ndarray:
        point = np.asarray(point, dtype=np.float64)[:2].reshape(1, 2)
        return cdist(point, self.coords[rows]).ravel()

    def pairwise_distances(self, rows: Optional[Sequence[int]] = None) -> np.ndarray:
        """Dense distance matrix over all (or the selected) rows."""
        coords = self.coords if rows is None else self.coords[np.asarray(rows)]
        if len(coords) < 2:
            return np.zeros((len(coords), len(coords)))
        return squareform(pdist(coords, metric='euclidean'))

    def pairs_within(self, radius: float) -> List[Tuple[int, int]]:
        """All (i, j), i < j, with centroid distance <= radius, sorted."""
        pairs = self._tree.query_pairs(r=radius, output_type='ndarray')
        return sorted((int(min(a, b)), int(max(a, b))) for a, b in pairs)
