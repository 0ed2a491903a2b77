"""
Test Metric Tensor Estimation
=============================
"""

import numpy as np
import pytest


def _estimator(field, bandwidth=1.0, **kwargs):
    from infogeo.engines.core.kernel_field import KernelField
    from infogeo.engines.core.metric_tensor import MetricTensorEstimator

    return MetricTensorEstimator(KernelField(field), spatial_bandwidth=bandwidth, **kwargs)


def test_uniform_field_zero_tensor(uniform_field):
    """Identical proportions everywhere -> no information gradient."""
    estimator = _estimator(uniform_field, divergence='kl')
    for tensor in estimator.estimate_all():
        assert np.allclose(tensor.matrix, 0.0, atol=1e-8)


def test_tensors_exactly_symmetric(gradient_field):
    for kind in ('euclidean', 'cumulative_euclidean', 'kl'):
        estimator = _estimator(gradient_field, divergence=kind)
        for tensor in estimator.estimate_all():
            assert np.array_equal(tensor.matrix, tensor.matrix.T)


def test_tensors_psd(gradient_field):
    from infogeo.engines.core.metric_tensor import EIGEN_FLOOR, EIGEN_TOLERANCE

    estimator = _estimator(gradient_field, divergence='kl')
    for tensor in estimator.estimate_all():
        eigenvalues = np.linalg.eigvalsh(tensor.matrix)
        threshold = EIGEN_TOLERANCE * np.abs(eigenvalues).max() + EIGEN_FLOOR
        assert eigenvalues.min() >= -threshold


def test_gradient_direction(gradient_field):
    """Composition changes along x only, so g_xx dominates."""
    estimator = _estimator(gradient_field, divergence='kl')
    tensor = estimator.estimate('u3_3')

    assert tensor.matrix.shape == (2, 2)
    assert tensor.matrix[0, 0] > 0
    assert tensor.matrix[0, 0] > 10 * abs(tensor.matrix[1, 1])
    assert tensor.axes == ('x', 'y')


def test_larger_bandwidth_smaller_tensor(step_field):
    """Wider kernels smooth the step, so the information rate drops."""
    traces = []
    for bandwidth in (1.0, 2.0, 4.0):
        estimator = _estimator(step_field, bandwidth=bandwidth, divergence='kl')
        traces.append(np.trace(estimator.estimate('u2_2').matrix))

    assert traces[0] > traces[1] > traces[2] > 0


def test_trace_variance_non_increasing(step_field):
    """Across all units, wider kernels never spread the traces further."""
    variances = []
    for bandwidth in (0.5, 1.0, 1.5):
        tensors = _estimator(step_field, bandwidth=bandwidth, divergence='kl').estimate_all()
        variances.append(np.var([np.trace(t.matrix) for t in tensors]))

    assert all(later <= earlier for earlier, later in zip(variances, variances[1:]))


def test_border_kernel_is_one_sided(gradient_field):
    """
    At the grid edge the kernel only sees one side, which roughly halves
    the estimated gradient, so edge traces sit below interior ones.
    """
    estimator = _estimator(gradient_field, divergence='kl')
    interior = np.trace(estimator.estimate('u3_3').matrix)

    assert np.trace(estimator.estimate('u0_3').matrix) < interior
    assert np.trace(estimator.estimate('u6_3').matrix) < interior


def test_category_permutation_invariance(gradient_field):
    for kind in ('kl', 'euclidean'):
        original = _estimator(gradient_field, divergence=kind).estimate('u2_4').matrix
        permuted_field = gradient_field.permute_categories([1, 0])
        permuted = _estimator(permuted_field, divergence=kind).estimate('u2_4').matrix

        assert np.allclose(original, permuted, rtol=1e-8, atol=1e-12)


def test_deterministic(gradient_field):
    a = _estimator(gradient_field).estimate_all()
    b = _estimator(gradient_field).estimate_all()
    for ta, tb in zip(a, b):
        assert np.array_equal(ta.matrix, tb.matrix)


def test_parallel_matches_serial(gradient_field):
    serial = _estimator(gradient_field).estimate_all(n_workers=1)
    parallel = _estimator(gradient_field).estimate_all(n_workers=2)

    assert [t.key for t in serial] == [t.key for t in parallel]
    for ts, tp in zip(serial, parallel):
        assert np.array_equal(ts.matrix, tp.matrix)


def test_spatiotemporal_frame(timed_field):
    from infogeo.core.field import CoordinateFrame

    estimator = _estimator(
        timed_field,
        divergence='kl',
        frame=CoordinateFrame.SPATIOTEMPORAL,
        temporal_bandwidth=1.0,
    )
    tensor = estimator.estimate(('u1_1', 1.0))

    assert tensor.matrix.shape == (3, 3)
    assert tensor.axes == ('x', 'y', 't')
    assert tensor.t == 1.0
    assert tensor.matrix[2, 2] > 0
    assert np.array_equal(tensor.matrix, tensor.matrix.T)


def test_spatial_frame_over_timed_data(timed_field):
    """Space-only frame keeps each period separate: 2x2 per (unit, t)."""
    estimator = _estimator(timed_field, divergence='kl')
    tensors = estimator.estimate_all()

    assert len(tensors) == timed_field.n_units
    assert all(t.matrix.shape == (2, 2) for t in tensors)
    assert {t.t for t in tensors} == {0.0, 1.0, 2.0}


def test_frame_requires_temporal_bandwidth(timed_field):
    from infogeo.core.field import CoordinateFrame

    with pytest.raises(ValueError):
        _estimator(timed_field, frame=CoordinateFrame.SPATIOTEMPORAL)


def test_invalid_bandwidth(gradient_field):
    with pytest.raises(ValueError):
        _estimator(gradient_field, bandwidth=0.0)


def test_zero_population_unit():
    """Isolated empty unit: error without smoothing, finite tensor with it."""
    from infogeo.core.errors import DegenerateDistributionError
    from infogeo.core.field import CountField

    field = CountField(
        unit_ids=['a', 'b', 'empty'],
        coords=[[0.0, 0.0], [1.0, 0.0], [1000.0, 1000.0]],
        counts=[[10, 5], [5, 10], [0, 0]],
    )

    with pytest.raises(DegenerateDistributionError):
        _estimator(field).estimate('empty')

    tensor = _estimator(field, smooth=True).estimate('empty')
    assert np.all(np.isfinite(tensor.matrix))
    assert np.allclose(tensor.matrix, 0.0)


def test_smoothing_widens_bandwidth():
    """Empty category at the base point triggers bandwidth widening."""
    from infogeo.core.field import CountField
    from infogeo.engines.core.metric_tensor import MAX_WIDENINGS, WIDEN_FACTOR

    field = CountField(
        unit_ids=['a', 'b', 'c'],
        coords=[[0.0, 0.0], [1.0, 0.0], [8.0, 0.0]],
        counts=[[10, 0], [10, 0], [0, 10]],
    )
    tensor = _estimator(field, smooth=True).estimate('a')

    assert tensor.bandwidth > 1.0
    assert tensor.bandwidth <= WIDEN_FACTOR ** MAX_WIDENINGS + 1e-12
    assert np.all(np.isfinite(tensor.matrix))


def test_clamp_psd():
    from infogeo.engines.core.metric_tensor import clamp_psd

    repaired, clamped = clamp_psd(np.array([[1.0, 2.0], [2.0, 1.0]]))
    assert clamped
    assert np.linalg.eigvalsh(repaired).min() >= -1e-12
    assert np.array_equal(repaired, repaired.T)

    untouched, clamped = clamp_psd(np.array([[2.0, 1.0], [1.0, 2.0]]))
    assert not clamped
    assert np.array_equal(untouched, [[2.0, 1.0], [1.0, 2.0]])


def test_clamp_ignores_truncation_noise():
    """Negatives within the O(h^2) band are left alone; larger ones are clamped."""
    from infogeo.engines.core.metric_tensor import clamp_psd

    _, clamped = clamp_psd(np.diag([0.064, -1.9e-6]))
    assert not clamped

    _, clamped = clamp_psd(np.diag([0.064, -0.01]))
    assert clamped


def test_smooth_temporal_field_not_flagged(timed_field):
    import warnings

    from infogeo.core.errors import IllConditionedMetricWarning
    from infogeo.core.field import CoordinateFrame

    estimator = _estimator(
        timed_field,
        divergence='kl',
        frame=CoordinateFrame.SPATIOTEMPORAL,
        temporal_bandwidth=1.0,
    )
    with warnings.catch_warnings():
        warnings.simplefilter('error', IllConditionedMetricWarning)
        tensors = estimator.estimate_all()

    assert not any(t.ill_conditioned for t in tensors)


def test_ill_conditioned_warning(monkeypatch, gradient_field):
    from infogeo.core.errors import IllConditionedMetricWarning
    from infogeo.engines.core import metric_tensor

    monkeypatch.setattr(
        metric_tensor,
        'clamp_psd',
        lambda matrix: (0.5 * (matrix + matrix.T), True),
    )
    estimator = _estimator(gradient_field)

    with pytest.warns(IllConditionedMetricWarning):
        tensor = estimator.estimate(0)
    assert tensor.ill_conditioned

    with pytest.warns(IllConditionedMetricWarning):
        tensors = estimator.estimate_all(rows=[0, 1, 2])
    assert all(t.ill_conditioned for t in tensors)


def test_matrix_read_only(gradient_field):
    tensor = _estimator(gradient_field).estimate(0)
    with pytest.raises(ValueError):
        tensor.matrix[0, 0] = 1.0


def test_one_shot_helper(gradient_field):
    from infogeo.engines.core.kernel_field import KernelField
    from infogeo.engines.core.metric_tensor import estimate_metric_tensor

    tensor = estimate_metric_tensor(KernelField(gradient_field), 'u3_3', 'kl', spatial_bandwidth=1.0)

    expected = _estimator(gradient_field).estimate('u3_3')
    assert np.array_equal(tensor.matrix, expected.matrix)
