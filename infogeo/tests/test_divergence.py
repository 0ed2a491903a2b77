"""
Test Divergence Functionals
===========================
"""

import numpy as np
import pytest


def test_identity_is_zero():
    """D(p, p) == 0 for every functional."""
    from infogeo.engines.core.divergence import Divergence, compute_divergence

    p = np.array([12.0, 3.0, 40.0])
    for kind in Divergence:
        assert compute_divergence(kind, p, p) == 0.0
        assert compute_divergence(kind, p, p, smooth=True) == 0.0


def test_non_negative():
    from infogeo.engines.core.divergence import Divergence, compute_divergence

    np.random.seed(42)
    for _ in range(50):
        p = np.random.randint(0, 50, size=4).astype(float) + 1
        q = np.random.randint(0, 50, size=4).astype(float) + 1
        for kind in Divergence:
            assert compute_divergence(kind, p, q) >= 0.0


def test_euclidean_value():
    from infogeo.engines.core.divergence import euclidean_divergence

    assert euclidean_divergence([1, 2], [3, 5]) == 13.0


def test_euclidean_pseudocount_cancels():
    from infogeo.engines.core.divergence import euclidean_divergence

    assert euclidean_divergence([1, 2], [3, 5], smooth=True) == pytest.approx(13.0)


def test_cumulative_euclidean_value():
    from infogeo.engines.core.divergence import cumulative_euclidean_divergence

    # cumulative [1, 3, 6] vs [3, 5, 6]
    assert cumulative_euclidean_divergence([1, 2, 3], [3, 2, 1]) == 8.0


def test_cumulative_euclidean_depends_on_order():
    """Same multiset of categories, different order -> different value."""
    from infogeo.engines.core.divergence import cumulative_euclidean_divergence

    p = np.array([5.0, 0.0, 0.0])
    q = np.array([0.0, 0.0, 5.0])
    near = np.array([0.0, 5.0, 0.0])
    assert cumulative_euclidean_divergence(p, near) < cumulative_euclidean_divergence(p, q)


def test_kl_value():
    from infogeo.engines.core.divergence import kl_divergence

    expected = 0.5 * np.log(2.0) + 0.5 * np.log(2.0 / 3.0)
    assert kl_divergence([1, 1], [1, 3]) == pytest.approx(expected, rel=1e-6)


def test_kl_scale_invariant():
    """KL compares proportions, not totals."""
    from infogeo.engines.core.divergence import kl_divergence

    assert kl_divergence([1, 3], [2, 2]) == pytest.approx(kl_divergence([10, 30], [200, 200]), rel=1e-9)


def test_kl_asymmetric():
    from infogeo.engines.core.divergence import Divergence, kl_divergence

    assert not Divergence.KL.is_symmetric
    assert kl_divergence([9, 1], [5, 5]) != pytest.approx(kl_divergence([5, 5], [9, 1]))


def test_kl_empty_category_is_finite():
    from infogeo.engines.core.divergence import kl_divergence

    raw = kl_divergence([10, 0], [0, 10])
    smoothed = kl_divergence([10, 0], [0, 10], smooth=True)

    assert np.isfinite(raw)
    assert np.isfinite(smoothed)
    assert smoothed < raw


def test_zero_sum_requires_smoothing():
    from infogeo.core.errors import DegenerateDistributionError
    from infogeo.engines.core.divergence import Divergence, compute_divergence

    for kind in Divergence:
        with pytest.raises(DegenerateDistributionError):
            compute_divergence(kind, [0, 0], [1, 1])
        assert np.isfinite(compute_divergence(kind, [0, 0], [1, 1], smooth=True))


def test_invalid_inputs():
    from infogeo.engines.core.divergence import euclidean_divergence, kl_divergence

    with pytest.raises(ValueError):
        euclidean_divergence([1, 2], [1, 2, 3])
    with pytest.raises(ValueError):
        kl_divergence([1, -1], [1, 1])
    with pytest.raises(ValueError):
        kl_divergence([1, 1], [1, 1], smooth=True, pseudocount=0.0)


def test_parse_names():
    from infogeo.engines.core.divergence import Divergence

    assert Divergence.parse('KL') is Divergence.KL
    assert Divergence.parse('cumulative-euclidean') is Divergence.CUMULATIVE_EUCLIDEAN
    assert Divergence.parse(Divergence.EUCLIDEAN) is Divergence.EUCLIDEAN
    with pytest.raises(ValueError):
        Divergence.parse('hellinger')


def test_symmetric_divergence():
    from infogeo.engines.core.divergence import kl_divergence, symmetric_divergence

    p, q = [9, 1], [3, 7]
    forward = symmetric_divergence('kl', p, q)
    assert forward == symmetric_divergence('kl', q, p)
    assert forward == pytest.approx(0.5 * (kl_divergence(p, q) + kl_divergence(q, p)))
    assert symmetric_divergence('euclidean', p, q) == 72.0


def test_kl_to_reference():
    from infogeo.engines.core.divergence import kl_to_reference

    assert kl_to_reference([4, 0], [0.5, 0.5]) == pytest.approx(np.log(2.0))
    assert kl_to_reference([1, 1], [1, 1]) == 0.0

    with pytest.raises(ValueError):
        kl_to_reference([1, 1], [1, 0])
