"""
Divergence Functionals
======================

Scalar comparisons between two non-negative count vectors over the
same category support.

    EUCLIDEAN             sum((p - q)^2) on raw counts
    CUMULATIVE_EUCLIDEAN  sum((P - Q)^2) on cumulative counts along the
                          ordered category axis
    KL                    D_KL(p || q) between normalized distributions

The registry is a closed enumeration. Callers pick a functional by name
(`Divergence.parse('kl')`) and dispatch through `compute_divergence`.

Zero handling:
    - A zero-sum vector is a precondition violation: without smoothing it
      raises DegenerateDistributionError.
    - smooth=True adds `pseudocount` to every category before comparing.
      For the Euclidean functionals the pseudo-count cancels; for KL it
      keeps every log finite.
    - Without smoothing KL floors probabilities at 1e-10, so an empty
      category gives a large finite value instead of inf.
"""

from enum import Enum
from typing import Union

import numpy as np

from infogeo.core.errors import DegenerateDistributionError

DEFAULT_PSEUDOCOUNT = 0.5
PROBABILITY_FLOOR = 1e-10


class Divergence(Enum):
    """Available divergence functionals."""
    EUCLIDEAN = 'euclidean'
    CUMULATIVE_EUCLIDEAN = 'cumulative_euclidean'
    KL = 'kl'

    @classmethod
    def parse(cls, value: Union[str, 'Divergence']) -> 'Divergence':
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace('-', '_')
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(
            f"Unknown divergence: {value}. Available: {[m.value for m in cls]}"
        )

    @property
    def is_symmetric(self) -> bool:
        return self is not Divergence.KL


# =============================================================================
# INPUT PREPARATION
# =============================================================================

def _prepare(
    p: np.ndarray,
    q: np.ndarray,
    smooth: bool,
    pseudocount: float,
):
    p = np.asarray(p, dtype=np.float64).ravel()
    q = np.asarray(q, dtype=np.float64).ravel()

    if p.shape != q.shape:
        raise ValueError(f"Count vectors differ in support: {p.shape} vs {q.shape}")
    if np.any(p < 0) or np.any(q < 0):
        raise ValueError("Count vectors must be non-negative")

    if smooth:
        if pseudocount <= 0:
            raise ValueError(f"pseudocount must be > 0, got {pseudocount}")
        return p + pseudocount, q + pseudocount

    if p.sum() <= 0 or q.sum() <= 0:
        raise DegenerateDistributionError(
            "Zero-sum count vector reached a divergence functional",
            params={'smooth': smooth, 'p_sum': float(p.sum()), 'q_sum': float(q.sum())},
        )
    return p, q


def _normalize(v: np.ndarray) -> np.ndarray:
    """Normalize with the probability floor applied."""
    v = v / v.sum()
    v = v + PROBABILITY_FLOOR
    return v / v.sum()


# =============================================================================
# FUNCTIONALS
# =============================================================================

def euclidean_divergence(
    p: np.ndarray,
    q: np.ndarray,
    smooth: bool = False,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
) -> float:
    """Squared Euclidean distance between raw count vectors."""
    p, q = _prepare(p, q, smooth, pseudocount)
    diff = p - q
    return float(np.dot(diff, diff))


def cumulative_euclidean_divergence(
    p: np.ndarray,
    q: np.ndarray,
    smooth: bool = False,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
) -> float:
    """
    Squared Euclidean distance between cumulative counts.

    Sensitive to category order: the columns are treated as an ordered
    axis (income bands, age groups, ...).
    """
    p, q = _prepare(p, q, smooth, pseudocount)
    diff = np.cumsum(p) - np.cumsum(q)
    return float(np.dot(diff, diff))


def kl_divergence(
    p: np.ndarray,
    q: np.ndarray,
    smooth: bool = False,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
) -> float:
    """
    Kullback-Leibler divergence D_KL(p || q) in nats.

    Parameters
    ----------
    p, q : np.ndarray
        Non-negative count vectors (normalized internally).
    smooth : bool
        Add `pseudocount` to every category before normalizing.
    pseudocount : float
        Additive regularization used when smooth=True.

    Returns
    -------
    float
        Non-negative divergence; exactly 0.0 when p == q.
    """
    p, q = _prepare(p, q, smooth, pseudocount)
    p = _normalize(p)
    q = _normalize(q)
    return float(max(0.0, np.sum(p * np.log(p / q))))


_FUNCTIONALS = {
    Divergence.EUCLIDEAN: euclidean_divergence,
    Divergence.CUMULATIVE_EUCLIDEAN: cumulative_euclidean_divergence,
    Divergence.KL: kl_divergence,
}


def compute_divergence(
    kind: Union[str, Divergence],
    p: np.ndarray,
    q: np.ndarray,
    smooth: bool = False,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
) -> float:
    """Dispatch to the named functional."""
    return _FUNCTIONALS[Divergence.parse(kind)](p, q, smooth=smooth, pseudocount=pseudocount)


def symmetric_divergence(
    kind: Union[str, Divergence],
    p: np.ndarray,
    q: np.ndarray,
    smooth: bool = False,
    pseudocount: float = DEFAULT_PSEUDOCOUNT,
) -> float:
    """
    Symmetric form used for graph edge weights.

    Euclidean functionals are already symmetric. KL is replaced by the
    mean of both directions (half the Jeffreys divergence).
    """
    kind = Divergence.parse(kind)
    forward = compute_divergence(kind, p, q, smooth=smooth, pseudocount=pseudocount)
    if kind.is_symmetric:
        return forward
    backward = compute_divergence(kind, q, p, smooth=smooth, pseudocount=pseudocount)
    return 0.5 * (forward + backward)


def kl_to_reference(p: np.ndarray, reference: np.ndarray) -> float:
    """
    D_KL(p || r) for a count vector against a fixed reference distribution.

    Categories with p_i == 0 contribute nothing (0 log 0 = 0). The
    reference must be positive wherever p is.
    """
    p = np.asarray(p, dtype=np.float64).ravel()
    r = np.asarray(reference, dtype=np.float64).ravel()
    total = p.sum()
    if total <= 0:
        raise DegenerateDistributionError(
            "Zero-sum count vector compared to reference distribution"
        )
    p = p / total
    r = r / r.sum()
    mask = p > 0
    if np.any(r[mask] <= 0):
        raise ValueError("Reference distribution is zero where counts are positive")
    return float(max(0.0, np.sum(p[mask] * np.log(p[mask] / r[mask]))))
