"""
Spatial Adjacency Policies

Which units count as geographic neighbours. The rule is swappable:

    DistanceAdjacency        centroids within max_distance (KD-tree)
    PairListAdjacency        explicit pairs from an external geometry provider
    SharedBoundaryAdjacency  polygons touching / within tolerance (shapely STRtree)

Every policy works on unit identifiers (not rows) and returns sorted
(a, b) pairs with a < b, so graph construction is deterministic.
"""

from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Tuple

import numpy as np
from shapely.strtree import STRtree

from infogeo.core.field import CountField
from infogeo.engines.core.spatial_index import SpatialIndex

Pair = Tuple[Hashable, Hashable]


def _ordered(a: Hashable, b: Hashable) -> Pair:
    return (a, b) if _sort_key(a) <= _sort_key(b) else (b, a)


def _sort_key(value: Any):
    return (type(value).__name__, value)


def unit_positions(field: CountField) -> Tuple[List[Hashable], np.ndarray]:
    """Distinct unit ids (first-seen order) and their centroids."""
    seen: Dict[Hashable, int] = {}
    for row, uid in enumerate(field.unit_ids):
        if uid not in seen:
            seen[uid] = row
    ids = list(seen)
    coords = field.coords[[seen[uid] for uid in ids]]
    return ids, coords


class AdjacencyPolicy:
    """Base policy: `pairs(field)` -> sorted neighbour pairs."""

    name = 'base'

    def pairs(self, field: CountField) -> List[Pair]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DistanceAdjacency(AdjacencyPolicy):
    """Neighbours = centroids no further apart than max_distance."""

    name = 'distance'

    def __init__(self, max_distance: float):
        if max_distance is None or max_distance < 0:
            raise ValueError(f"max_distance must be >= 0, got {max_distance}")
        self.max_distance = float(max_distance)

    def pairs(self, field: CountField) -> List[Pair]:
        ids, coords = unit_positions(field)
        index = SpatialIndex(coords)
        found = {_ordered(ids[i], ids[j]) for i, j in index.pairs_within(self.max_distance)}
        return sorted(found, key=lambda p: (_sort_key(p[0]), _sort_key(p[1])))

    def __repr__(self) -> str:
        return f"DistanceAdjacency(max_distance={self.max_distance})"


class PairListAdjacency(AdjacencyPolicy):
    """Neighbours supplied explicitly (e.g. queen contiguity computed upstream)."""

    name = 'pairs'

    def __init__(self, pairs: Iterable[Tuple[Hashable, Hashable]]):
        cleaned = set()
        for a, b in pairs:
            if a == b:
                continue
            cleaned.add(_ordered(a, b))
        self._pairs = sorted(cleaned, key=lambda p: (_sort_key(p[0]), _sort_key(p[1])))

    def pairs(self, field: CountField) -> List[Pair]:
        known = set(field.unit_ids)
        return [p for p in self._pairs if p[0] in known and p[1] in known]

    def __repr__(self) -> str:
        return f"PairListAdjacency({len(self._pairs)} pairs)"


class SharedBoundaryAdjacency(AdjacencyPolicy):
    """
    Neighbours = polygons that share a boundary, or lie within `tolerance`.

    Args:
        geometries: unit_id -> shapely geometry
        tolerance: Gap (coordinate units) still treated as adjacent
    """

    name = 'boundary'

    def __init__(self, geometries: Mapping[Hashable, Any], tolerance: float = 0.0):
        if tolerance < 0:
            raise ValueError(f"tolerance must be >= 0, got {tolerance}")
        self.geometries = dict(geometries)
        self.tolerance = float(tolerance)

    def pairs(self, field: CountField) -> List[Pair]:
        ids = [uid for uid in dict.fromkeys(field.unit_ids) if uid in self.geometries]
        if len(ids) < 2:
            return []

        geoms = [self.geometries[uid] for uid in ids]
        tree = STRtree(geoms)
        found = set()

        for i, geom in enumerate(geoms):
            reach = geom.buffer(self.tolerance) if self.tolerance > 0 else geom
            for j in tree.query(reach, predicate='intersects'):
                j = int(j)
                if j == i:
                    continue
                if self.tolerance > 0 and geom.distance(geoms[j]) > self.tolerance:
                    continue
                found.add(_ordered(ids[i], ids[j]))

        return sorted(found, key=lambda p: (_sort_key(p[0]), _sort_key(p[1])))

    def __repr__(self) -> str:
        return f"SharedBoundaryAdjacency({len(self.geometries)} geometries, tolerance={self.tolerance})"


def adjacency_from_config(
    config: Mapping[str, Any],
    pairs: Optional[Iterable[Tuple[Hashable, Hashable]]] = None,
    geometries: Optional[Mapping[Hashable, Any]] = None,
) -> AdjacencyPolicy:
    """
    Build a policy from the `adjacency` config block.

        adjacency:
          policy: distance      # distance | pairs | boundary
          max_distance: 1.5
          tolerance: 0.0
    """
    policy = str(config.get('policy', 'distance')).lower()

    if policy == 'distance':
        return DistanceAdjacency(config.get('max_distance'))
    if policy == 'pairs':
        if pairs is None:
            raise ValueError("adjacency policy 'pairs' requires an adjacency pair table")
        return PairListAdjacency(pairs)
    if policy == 'boundary':
        if geometries is None:
            raise ValueError("adjacency policy 'boundary' requires unit geometries")
        return SharedBoundaryAdjacency(geometries, tolerance=config.get('tolerance', 0.0))

    raise ValueError(f"Unknown adjacency policy: {policy}. Available: distance, pairs, boundary")
