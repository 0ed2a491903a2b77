"""
Metric Tensor Estimation
========================

Local information metric of a categorical count field.

For each unit the Hessian of a divergence functional is estimated with
respect to small displacements of the query point:

    g_ij = d^2/dx_i dx_j  D( m(x0), m(x0 + dx) )  at dx = 0

where m is the kernel-smoothed local count vector (KernelField). With the
KL functional this is the empirical Fisher metric of the local category
distribution.

Finite differences (central, step h per axis):

    g_ii = [f(+h e_i) - 2 f(0) + f(-h e_i)] / h_i^2
    g_ij = [f(++) - f(+-) - f(-+) + f(--)] / (4 h_i h_j)

Both orderings (i, j) and (j, i) are evaluated and averaged; the result
is written to both off-diagonal cells, so every tensor is exactly
symmetric.

Step sizes are never user-supplied:
    h_space = STEP_FRACTION * spatial bandwidth
    h_time  = STEP_FRACTION * temporal bandwidth

Smoothing (smooth=True) widens the bandwidth by WIDEN_FACTOR, up to
MAX_WIDENINGS times, while the base local distribution has an empty
category, and applies the divergence pseudo-count. Negative eigenvalues
beyond tolerance are clamped to zero and the unit is flagged
ill-conditioned; the batch carries on.

Usage:
    from infogeo.engines.core.metric_tensor import MetricTensorEstimator

    estimator = MetricTensorEstimator(kernel, spatial_bandwidth=2.0)
    tensors = estimator.estimate_all(n_workers=4)
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from infogeo.core.errors import IllConditionedMetricWarning
from infogeo.core.field import CoordinateFrame, Unit
from infogeo.core.parallel import chunked, ordered_map, resolve_workers
from infogeo.engines.core.divergence import (
    DEFAULT_PSEUDOCOUNT,
    Divergence,
    compute_divergence,
)
from infogeo.engines.core.kernel_field import KernelField

logger = logging.getLogger(__name__)

STEP_FRACTION = 0.1
WIDEN_FACTOR = 1.5
MAX_WIDENINGS = 4
EIGEN_TOLERANCE = STEP_FRACTION ** 2
EIGEN_FLOOR = 1e-12


# =============================================================================
# RESULT TYPE
# =============================================================================

@dataclass(frozen=True)
class MetricTensor:
    """
    Symmetric PSD-candidate metric at one (unit, t).

    Attributes:
        unit_id: Unit identifier
        t: Time index, or None for space-only data
        matrix: (d, d) tensor in local (x, y[, t]) coordinates
        frame: Coordinate frame of `matrix`
        ill_conditioned: True when negative eigenvalues were clamped
        bandwidth: Effective spatial bandwidth (after any widening)
    """
    unit_id: Any
    t: Optional[float]
    matrix: np.ndarray
    frame: CoordinateFrame
    ill_conditioned: bool = False
    bandwidth: float = float('nan')

    @property
    def axes(self) -> Tuple[str, ...]:
        return self.frame.axes

    @property
    def key(self) -> Any:
        return self.unit_id if self.t is None else (self.unit_id, self.t)


# =============================================================================
# MATRIX POST-PROCESSING
# =============================================================================

def clamp_psd(matrix: np.ndarray, tolerance: float = EIGEN_TOLERANCE) -> Tuple[np.ndarray, bool]:
    """
    Clamp eigenvalues below -(tolerance * largest magnitude + EIGEN_FLOOR).

    Central differences carry an O(h^2) truncation error, so the relative
    tolerance defaults to STEP_FRACTION ** 2. Returns the (possibly)
    repaired, exactly symmetric matrix and whether a clamp happened.
    """
    matrix = 0.5 * (matrix + matrix.T)
    if not np.all(np.isfinite(matrix)):
        return matrix, True

    w, v = np.linalg.eigh(matrix)
    threshold = tolerance * float(np.max(np.abs(w))) + EIGEN_FLOOR
    if w.min() >= -threshold:
        return matrix, False

    repaired = (v * np.maximum(w, 0.0)) @ v.T
    repaired = 0.5 * (repaired + repaired.T)
    return repaired, True


# =============================================================================
# ESTIMATOR
# =============================================================================

class MetricTensorEstimator:
    """
    Finite-difference Hessian of a divergence over a kernel field.

    Attributes:
        kernel: KernelField to resample at perturbed points
        divergence: Functional whose Hessian is estimated
        frame: SPATIAL (2x2) or SPATIOTEMPORAL (3x3)
        spatial_bandwidth: Spatial kernel bandwidth
        temporal_bandwidth: Temporal kernel bandwidth (SPATIOTEMPORAL only)
        smooth: Widen bandwidth near empty categories + pseudo-count
        pseudocount: Additive regularization for the divergence
    """

    def __init__(
        self,
        kernel: KernelField,
        spatial_bandwidth: float,
        divergence: Union[str, Divergence] = Divergence.KL,
        frame: CoordinateFrame = CoordinateFrame.SPATIAL,
        temporal_bandwidth: Optional[float] = None,
        smooth: bool = False,
        pseudocount: float = DEFAULT_PSEUDOCOUNT,
    ):
        if spatial_bandwidth is None or spatial_bandwidth <= 0:
            raise ValueError(f"spatial_bandwidth must be > 0, got {spatial_bandwidth}")
        if frame.is_temporal:
            if temporal_bandwidth is None or temporal_bandwidth <= 0:
                raise ValueError("SPATIOTEMPORAL frame requires temporal_bandwidth > 0")
            if not kernel.field.has_time:
                raise ValueError("SPATIOTEMPORAL frame requires a field with a time column")

        self.kernel = kernel
        self.divergence = Divergence.parse(divergence)
        self.frame = frame
        self.spatial_bandwidth = float(spatial_bandwidth)
        self.temporal_bandwidth = None if temporal_bandwidth is None else float(temporal_bandwidth)
        self.smooth = bool(smooth)
        self.pseudocount = float(pseudocount)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def estimate(self, unit: Union[int, Unit, Any]) -> MetricTensor:
        """
        Metric tensor for one unit.

        `unit` may be a row index, a Unit, or a node key. Emits
        IllConditionedMetricWarning when the tensor had to be clamped.
        """
        row = self._resolve_row(unit)
        tensor = self._estimate_row(row)
        if tensor.ill_conditioned:
            warnings.warn(
                f"Metric tensor for unit {tensor.key!r} had negative eigenvalues; clamped to zero",
                IllConditionedMetricWarning,
                stacklevel=2,
            )
        return tensor

    def estimate_all(
        self,
        rows: Optional[Sequence[int]] = None,
        n_workers: int = 1,
    ) -> List[MetricTensor]:
        """
        Metric tensors for every (or the selected) row, in row order.

        Rows are independent; with n_workers > 1 they are spread over a
        process pool and reassembled in input order.
        """
        rows = list(range(self.kernel.field.n_units)) if rows is None else list(rows)
        workers = resolve_workers(n_workers)

        logger.info(
            f"Estimating {self.frame.dim}x{self.frame.dim} metric tensors for {len(rows)} units "
            f"(divergence={self.divergence.value}, bandwidth={self.spatial_bandwidth}, "
            f"smooth={self.smooth}, workers={workers})"
        )

        if workers == 1:
            tensors = [self._estimate_row(row) for row in rows]
        else:
            tasks = [(self, chunk) for chunk in chunked(rows, workers * 4)]
            tensors = [t for part in ordered_map(_estimate_chunk, tasks, workers) for t in part]

        flagged = [t.key for t in tensors if t.ill_conditioned]
        if flagged:
            preview = ', '.join(repr(k) for k in flagged[:5])
            more = f" (+{len(flagged) - 5} more)" if len(flagged) > 5 else ''
            warnings.warn(
                f"{len(flagged)} of {len(tensors)} metric tensors clamped: {preview}{more}",
                IllConditionedMetricWarning,
                stacklevel=2,
            )

        logger.info(f"Metric tensors: {len(tensors)} estimated, {len(flagged)} ill-conditioned")
        return tensors

    def step_sizes(self, spatial_bandwidth: float, temporal_bandwidth: Optional[float]) -> np.ndarray:
        steps = [STEP_FRACTION * spatial_bandwidth] * 2
        if self.frame.is_temporal:
            steps.append(STEP_FRACTION * temporal_bandwidth)
        return np.array(steps, dtype=np.float64)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _resolve_row(self, unit: Union[int, Unit, Any]) -> int:
        field = self.kernel.field
        if isinstance(unit, (int, np.integer)) and not isinstance(unit, bool):
            if not 0 <= unit < field.n_units:
                raise IndexError(f"Row {unit} out of range for {field.n_units} units")
            return int(unit)
        if isinstance(unit, Unit):
            return field.row_of(unit.key)
        return field.row_of(unit)

    def _query_base(self, row: int) -> np.ndarray:
        field = self.kernel.field
        if self.frame.is_temporal:
            return field.query_point(row, self.frame)
        xy = field.coords[row]
        if field.has_time:
            # Space-only frame over timed data: stay in this row's snapshot
            return np.array([xy[0], xy[1], field.times[row]], dtype=np.float64)
        return np.array(xy, dtype=np.float64)

    def _local(self, point: np.ndarray, bw_s: float, bw_t: Optional[float]) -> np.ndarray:
        return self.kernel.local_distribution(
            point,
            bandwidth_spatial=bw_s,
            bandwidth_temporal=bw_t if self.frame.is_temporal else None,
        )

    def _base_distribution(self, base_point: np.ndarray) -> Tuple[np.ndarray, float, Optional[float]]:
        bw_s = self.spatial_bandwidth
        bw_t = self.temporal_bandwidth
        base = self._local(base_point, bw_s, bw_t)

        if self.smooth:
            widenings = 0
            while np.any(base <= 0) and widenings < MAX_WIDENINGS:
                bw_s *= WIDEN_FACTOR
                if bw_t is not None:
                    bw_t *= WIDEN_FACTOR
                base = self._local(base_point, bw_s, bw_t)
                widenings += 1
            if widenings:
                logger.debug(
                    f"Widened bandwidth {widenings}x to {bw_s:.4g} at {tuple(base_point)}"
                )

        return base, bw_s, bw_t

    def _estimate_row(self, row: int) -> MetricTensor:
        field = self.kernel.field
        base_point = self._query_base(row)
        base, bw_s, bw_t = self._base_distribution(base_point)
        steps = self.step_sizes(bw_s, bw_t)
        d = self.frame.dim

        cache: Dict[Tuple[float, ...], float] = {}

        def f(displacements: Sequence[Tuple[int, float]]) -> float:
            point = base_point.copy()
            for axis, delta in displacements:
                point[axis] = point[axis] + delta
            key = tuple(point.tolist())
            if key not in cache:
                cache[key] = compute_divergence(
                    self.divergence,
                    base,
                    self._local(point, bw_s, bw_t),
                    smooth=self.smooth,
                    pseudocount=self.pseudocount,
                )
            return cache[key]

        def mixed(i: int, j: int) -> float:
            hi, hj = steps[i], steps[j]
            return (
                f([(i, hi), (j, hj)])
                - f([(i, hi), (j, -hj)])
                - f([(i, -hi), (j, hj)])
                + f([(i, -hi), (j, -hj)])
            ) / (4.0 * hi * hj)

        center = f([])
        matrix = np.zeros((d, d), dtype=np.float64)

        for i in range(d):
            h = steps[i]
            matrix[i, i] = (f([(i, h)]) - 2.0 * center + f([(i, -h)])) / (h * h)

        for i in range(d):
            for j in range(i + 1, d):
                value = 0.5 * (mixed(i, j) + mixed(j, i))
                matrix[i, j] = value
                matrix[j, i] = value

        matrix, clamped = clamp_psd(matrix)
        if clamped:
            logger.debug(f"Clamped negative eigenvalues at row {row}")

        t = float(field.times[row]) if field.has_time else None
        matrix.setflags(write=False)
        return MetricTensor(
            unit_id=field.unit_ids[row],
            t=t,
            matrix=matrix,
            frame=self.frame,
            ill_conditioned=clamped,
            bandwidth=bw_s,
        )


def _estimate_chunk(task: Tuple[MetricTensorEstimator, List[int]]) -> List[MetricTensor]:
    estimator, rows = task
    return [estimator._estimate_row(row) for row in rows]


def estimate_metric_tensor(
    kernel: KernelField,
    unit: Union[int, Unit, Any],
    divergence: Union[str, Divergence],
    spatial_bandwidth: float,
    temporal_bandwidth: Optional[float] = None,
    smooth: bool = False,
    frame: Optional[CoordinateFrame] = None,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
) -> MetricTensor:
    """One-shot estimate. The frame defaults to SPATIOTEMPORAL iff a temporal bandwidth is given."""
    if frame is None:
        frame = CoordinateFrame.SPATIOTEMPORAL if temporal_bandwidth is not None else CoordinateFrame.SPATIAL
    estimator = MetricTensorEstimator(
        kernel,
        spatial_bandwidth=spatial_bandwidth,
        divergence=divergence,
        frame=frame,
        temporal_bandwidth=temporal_bandwidth,
        smooth=smooth,
        pseudocount=pseudocount,
    )
    return estimator.estimate(unit)
