"""
Spectral Clustering Engine

Partition the information graph through the bottom of the Laplacian
spectrum:

    1. eigendecompose L (symmetric solver on I - D^-1/2 A D^-1/2,
       mapped back to random-walk eigenvectors with D^-1/2)
    2. embed nodes with the k eigenvectors of smallest eigenvalue,
       skipping numerical duplicates of an already chosen direction
    3. run k-means `restarts` times from independent seeds
    4. keep the run with lowest inertia (ties -> lowest restart index)

Seeding: restart r uses the r-th integer drawn from
numpy.random.default_rng(seed). No process-wide random state is touched,
so the same (graph, sigma, k, restarts, seed) always gives the same labels.

The ascending eigenvalue sequence is returned as a diagnostic;
`suggest_k` reads the largest gap but k is never chosen automatically.
"""

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import scipy.linalg
from sklearn.cluster import KMeans
from sklearn.exceptions import ConvergenceWarning

from infogeo.core.errors import ConvergenceFailure, DisconnectedGraphWarning
from infogeo.core.parallel import resolve_workers
from infogeo.engines.core.laplacian import GraphLaplacian

logger = logging.getLogger(__name__)

ZERO_EIGENVALUE_TOL = 1e-8
DUPLICATE_COSINE = 1.0 - 1e-10


@dataclass
class SpectralResult:
    """
    Outcome of one spectral clustering call.

    Attributes:
        labels: node -> cluster label in 1..k
        eigenvalues: All Laplacian eigenvalues, ascending (diagnostic)
        embedding: (n, k) spectral coordinates, row order = laplacian.nodes
        inertia: Within-cluster sum of squares of the winning restart
        best_restart: Index of the winning restart
        n_components: Zero-eigenvalue multiplicity (connected components)
        failed_restarts: Restarts discarded for non-convergence
        seed: Seed the restarts were derived from
    """
    labels: Dict[Any, int]
    eigenvalues: np.ndarray
    embedding: np.ndarray
    inertia: float
    best_restart: int
    n_components: int
    failed_restarts: List[int] = field(default_factory=list)
    seed: int = 0

    @property
    def k(self) -> int:
        return len(set(self.labels.values()))

    def eigengap(self) -> np.ndarray:
        """Differences between consecutive ascending eigenvalues."""
        return np.diff(self.eigenvalues)


# =============================================================================
# EIGENSPACE
# =============================================================================

def spectral_embedding(laplacian: GraphLaplacian, k: int) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Bottom-k random-walk eigenvectors.

    Returns
    -------
    eigenvalues : np.ndarray
        All eigenvalues, ascending.
    embedding : np.ndarray
        (n, k) unit-norm eigenvector columns.
    n_components : int
        Number of (numerically) zero eigenvalues.
    """
    n = len(laplacian.nodes)
    sym = laplacian.symmetric_form()

    try:
        eigenvalues, vectors = scipy.linalg.eigh(sym)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise ConvergenceFailure(
            f"Eigendecomposition failed: {exc}",
            stage='eigendecomposition',
            params={'sigma': laplacian.sigma, 'n_nodes': n},
        ) from exc

    scale = np.ones(n)
    connected = laplacian.degrees > 0
    scale[connected] = 1.0 / np.sqrt(laplacian.degrees[connected])
    vectors = scale[:, None] * vectors

    n_components = int(np.sum(eigenvalues < ZERO_EIGENVALUE_TOL))

    chosen: List[np.ndarray] = []
    for col in range(n):
        v = vectors[:, col]
        norm = np.linalg.norm(v)
        if norm == 0:
            continue
        v = v / norm
        if any(abs(float(v @ c)) > DUPLICATE_COSINE for c in chosen):
            continue
        chosen.append(v)
        if len(chosen) == k:
            break

    embedding = np.column_stack(chosen) if chosen else np.zeros((n, 0))
    return eigenvalues, embedding, n_components


def suggest_k(eigenvalues: np.ndarray, max_k: Optional[int] = None) -> int:
    """
    Advisory k from the largest gap in the ascending eigenvalues.

    Only gaps among the first max_k + 1 eigenvalues are considered.
    """
    eigenvalues = np.sort(np.asarray(eigenvalues, dtype=np.float64))
    if len(eigenvalues) < 2:
        return 1
    if max_k is not None:
        eigenvalues = eigenvalues[:max_k + 1]
    gaps = np.diff(eigenvalues)
    return int(np.argmax(gaps)) + 1


# =============================================================================
# K-MEANS RESTARTS
# =============================================================================

def restart_seeds(seed: int, restarts: int) -> List[int]:
    rng = np.random.default_rng(seed)
    return [int(s) for s in rng.integers(0, 2 ** 31 - 1, size=restarts)]


def _is_fixed_point(model: KMeans, embedding: np.ndarray) -> bool:
    """True if one more Lloyd step would change neither labels nor centers (within tol)."""
    centers = model.cluster_centers_
    labels = model.predict(embedding)
    if not np.array_equal(labels, model.labels_):
        return False

    updated = np.empty_like(centers)
    for c in range(len(centers)):
        members = embedding[labels == c]
        if len(members) == 0:
            return False
        updated[c] = members.mean(axis=0)

    # sklearn scales tol by the mean per-feature variance
    tol = model.tol * float(np.mean(np.var(embedding, axis=0)))
    return float(np.sum((updated - centers) ** 2)) <= tol


def _kmeans_once(embedding: np.ndarray, k: int, seed: int, max_iter: int):
    model = KMeans(n_clusters=k, init='k-means++', n_init=1, max_iter=max_iter, random_state=seed)
    with warnings.catch_warnings():
        # Duplicate points can leave fewer distinct centers than k
        warnings.simplefilter('ignore', ConvergenceWarning)
        model.fit(embedding)
    # Stopping on the last allowed iteration is not failure if that step converged
    converged = model.n_iter_ < max_iter or _is_fixed_point(model, embedding)
    return model.labels_.copy(), float(model.inertia_), converged


def _relabel(raw: np.ndarray) -> np.ndarray:
    """Map labels to 1..k in order of first appearance."""
    mapping: Dict[int, int] = {}
    out = np.empty(len(raw), dtype=int)
    for i, label in enumerate(raw):
        if label not in mapping:
            mapping[label] = len(mapping) + 1
        out[i] = mapping[label]
    return out


def spectral_cluster(
    laplacian: GraphLaplacian,
    k: int,
    restarts: int = 10,
    seed: int = 0,
    max_iter: int = 300,
    n_workers: int = 1,
) -> SpectralResult:
    """
    Cluster graph nodes in the Laplacian eigenspace.

    Parameters
    ----------
    laplacian : GraphLaplacian
        Output of graph_laplacian().
    k : int
        Number of clusters (1 <= k <= n_nodes).
    restarts : int
        Independent k-means initializations.
    seed : int
        Root seed for the restarts.
    max_iter : int
        k-means iteration budget; a restart still moving after it is discarded.
    n_workers : int
        Threads running restarts concurrently.

    Returns
    -------
    SpectralResult
    """
    n = len(laplacian.nodes)
    if n == 0:
        raise ValueError("Cannot cluster an empty graph")
    if k < 1 or k > n:
        raise ValueError(f"k must be in [1, {n}], got {k}")
    if restarts < 1:
        raise ValueError(f"restarts must be >= 1, got {restarts}")

    eigenvalues, embedding, n_components = spectral_embedding(laplacian, k)

    if n_components > 1:
        warnings.warn(
            f"Information graph has {n_components} connected components "
            f"(sigma={laplacian.sigma}); clustering proceeds across components",
            DisconnectedGraphWarning,
            stacklevel=2,
        )

    if k == 1:
        centered = embedding - embedding.mean(axis=0)
        return SpectralResult(
            labels={node: 1 for node in laplacian.nodes},
            eigenvalues=eigenvalues,
            embedding=embedding,
            inertia=float(np.sum(centered ** 2)),
            best_restart=0,
            n_components=n_components,
            seed=seed,
        )

    seeds = restart_seeds(seed, restarts)
    workers = min(resolve_workers(n_workers), restarts)

    if workers == 1:
        runs = [_kmeans_once(embedding, k, s, max_iter) for s in seeds]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            runs = list(executor.map(lambda s: _kmeans_once(embedding, k, s, max_iter), seeds))

    failed = [i for i, (_, _, converged) in enumerate(runs) if not converged]
    for i in failed:
        logger.warning(f"k-means restart {i} did not converge in {max_iter} iterations; discarded")

    candidates = [(inertia, i) for i, (_, inertia, converged) in enumerate(runs) if converged]
    if not candidates:
        raise ConvergenceFailure(
            "No k-means restart converged",
            stage='kmeans',
            params={'k': k, 'restarts': restarts, 'max_iter': max_iter, 'seed': seed,
                    'sigma': laplacian.sigma},
        )

    inertia, best = min(candidates)
    labels = _relabel(runs[best][0])

    logger.info(
        f"Spectral clustering: k={k}, best restart {best}/{restarts} "
        f"(inertia={inertia:.6g}), {n_components} component(s)"
    )

    return SpectralResult(
        labels={node: int(label) for node, label in zip(laplacian.nodes, labels)},
        eigenvalues=eigenvalues,
        embedding=embedding,
        inertia=inertia,
        best_restart=best,
        n_components=n_components,
        failed_restarts=failed,
        seed=seed,
    )
