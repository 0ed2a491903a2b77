"""
Count Field Data Model
======================

Immutable inputs to every engine:

    Unit            one spatial area (id, centroid, optional time index)
    CountField      units + their category count vectors, row-aligned
    CoordinateFrame SPATIAL (x, y) or SPATIOTEMPORAL (x, y, t)

The frame is chosen once from the `temporal` configuration flag. It is
never inferred from the presence of a time column.

Usage:
    from infogeo.core.field import CountField, resolve_frame

    field = CountField(
        unit_ids=['a', 'b'],
        coords=[[0.0, 0.0], [1.0, 0.0]],
        counts=[[100, 0], [0, 100]],
        categories=('white', 'black'),
    )
    frame = resolve_frame(temporal=False)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable, List, Optional, Sequence, Tuple

import numpy as np


# =============================================================================
# COORDINATE FRAMES
# =============================================================================

class CoordinateFrame(Enum):
    """Local coordinate system of a metric tensor."""
    SPATIAL = ('x', 'y')
    SPATIOTEMPORAL = ('x', 'y', 't')

    @property
    def axes(self) -> Tuple[str, ...]:
        return self.value

    @property
    def dim(self) -> int:
        return len(self.value)

    @property
    def is_temporal(self) -> bool:
        return self is CoordinateFrame.SPATIOTEMPORAL


def resolve_frame(temporal: bool) -> CoordinateFrame:
    """Map the `temporal` flag to a coordinate frame."""
    return CoordinateFrame.SPATIOTEMPORAL if temporal else CoordinateFrame.SPATIAL


# =============================================================================
# UNITS
# =============================================================================

@dataclass(frozen=True)
class Unit:
    """A spatial area. Identity is the (unit_id, t) pair."""
    unit_id: Hashable
    x: float
    y: float
    t: Optional[float] = None

    @property
    def key(self) -> Any:
        return self.unit_id if self.t is None else (self.unit_id, self.t)


# =============================================================================
# COUNT FIELD
# =============================================================================

class CountField:
    """
    Category counts over a set of units, one row per (unit, t).

    Attributes:
        unit_ids: Unit identifier per row
        coords: (n, 2) centroid coordinates
        times: (n,) time index per row, or None for space-only data
        counts: (n, c) non-negative category counts
        categories: Ordered category labels (column order of `counts`)
    """

    def __init__(
        self,
        unit_ids: Sequence[Hashable],
        coords: Any,
        counts: Any,
        categories: Optional[Sequence[Hashable]] = None,
        times: Optional[Any] = None,
    ):
        coords = np.asarray(coords, dtype=np.float64)
        counts = np.asarray(counts, dtype=np.float64)

        if counts.ndim == 1:
            counts = counts.reshape(1, -1)
        if coords.ndim == 1:
            coords = coords.reshape(1, -1)

        n = len(unit_ids)
        if coords.shape != (n, 2):
            raise ValueError(f"coords must have shape ({n}, 2), got {coords.shape}")
        if counts.shape[0] != n:
            raise ValueError(f"counts must have {n} rows, got {counts.shape[0]}")
        if counts.shape[1] < 1:
            raise ValueError("counts must have at least one category column")
        if not np.all(np.isfinite(coords)):
            raise ValueError("coords must be finite")
        if not np.all(np.isfinite(counts)):
            raise ValueError("counts must be finite")
        if np.any(counts < 0):
            raise ValueError("counts must be non-negative")

        if categories is None:
            categories = tuple(range(counts.shape[1]))
        categories = tuple(categories)
        if len(categories) != counts.shape[1]:
            raise ValueError(
                f"{len(categories)} category labels for {counts.shape[1]} count columns"
            )

        if times is not None:
            times = np.asarray(times, dtype=np.float64)
            if times.shape != (n,):
                raise ValueError(f"times must have shape ({n},), got {times.shape}")
            if not np.all(np.isfinite(times)):
                raise ValueError("times must be finite")
            keys = list(zip(unit_ids, times.tolist()))
        else:
            keys = list(unit_ids)

        if len(set(keys)) != n:
            raise ValueError("(unit_id, t) pairs must be unique")

        coords.setflags(write=False)
        counts.setflags(write=False)
        if times is not None:
            times.setflags(write=False)

        self._unit_ids = list(unit_ids)
        self._coords = coords
        self._counts = counts
        self._times = times
        self._categories = categories
        self._keys = keys

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def unit_ids(self) -> List[Hashable]:
        return list(self._unit_ids)

    @property
    def coords(self) -> np.ndarray:
        return self._coords

    @property
    def counts(self) -> np.ndarray:
        return self._counts

    @property
    def times(self) -> Optional[np.ndarray]:
        return self._times

    @property
    def categories(self) -> Tuple[Hashable, ...]:
        return self._categories

    @property
    def has_time(self) -> bool:
        return self._times is not None

    @property
    def n_units(self) -> int:
        return len(self._unit_ids)

    @property
    def n_categories(self) -> int:
        return self._counts.shape[1]

    @property
    def population(self) -> np.ndarray:
        """Total count per row."""
        return self._counts.sum(axis=1)

    @property
    def node_keys(self) -> List[Any]:
        """Graph node key per row: unit_id, or (unit_id, t) with a time column."""
        return list(self._keys)

    @property
    def distinct_times(self) -> List[float]:
        if self._times is None:
            return []
        return sorted(set(self._times.tolist()))

    def units(self) -> List[Unit]:
        times = self._times.tolist() if self._times is not None else [None] * self.n_units
        return [
            Unit(uid, float(xy[0]), float(xy[1]), t)
            for uid, xy, t in zip(self._unit_ids, self._coords, times)
        ]

    def row_of(self, key: Any) -> int:
        """Row index for a node key."""
        try:
            return self._keys.index(key)
        except ValueError:
            raise KeyError(f"Unknown unit key: {key!r}") from None

    def query_point(self, row: int, frame: CoordinateFrame) -> np.ndarray:
        """Coordinates of a row in the given frame (x, y[, t])."""
        xy = self._coords[row]
        if frame.is_temporal:
            if self._times is None:
                raise ValueError("SPATIOTEMPORAL frame requires a time column")
            return np.array([xy[0], xy[1], self._times[row]], dtype=np.float64)
        return np.array(xy, dtype=np.float64)

    def permute_categories(self, order: Sequence[int]) -> 'CountField':
        """Copy with category columns reordered."""
        order = list(order)
        return CountField(
            unit_ids=self._unit_ids,
            coords=self._coords,
            counts=self._counts[:, order],
            categories=[self._categories[i] for i in order],
            times=self._times,
        )

    def __len__(self) -> int:
        return self.n_units

    def __repr__(self) -> str:
        time_part = f", {len(self.distinct_times)} periods" if self.has_time else ''
        return f"CountField({self.n_units} rows, {self.n_categories} categories{time_part})"
