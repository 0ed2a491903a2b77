"""
INFOGEO Stage Dependencies
==========================

Clustering needs the information graph. Metric tensors and the graph
only need the count field, so they are independent of each other.

If an upstream stage is missing, the downstream stage MUST FAIL rather
than silently rebuilding with different parameters.
"""

from typing import Iterable, List, Optional

from infogeo.core.errors import InfoGeoError


STAGE_DEPENDENCIES = {
    'tensors': [],
    'graph': [],
    'spectral': ['graph'],
    'hierarchy': ['graph'],
}


def get_compute_order() -> List[str]:
    """Return stages in correct computation order."""
    return ['tensors', 'graph', 'spectral', 'hierarchy']


def get_dependencies(stage: str) -> List[str]:
    """Get direct dependencies for a stage."""
    if stage not in STAGE_DEPENDENCIES:
        raise ValueError(f"Unknown stage: {stage}. Available: {', '.join(get_compute_order())}")
    return STAGE_DEPENDENCIES[stage]


def check_dependencies(stage: str, completed: Iterable[str]) -> None:
    """
    Verify every upstream stage has completed before running a stage.

    Args:
        stage: Stage about to run
        completed: Names of stages already completed

    Raises:
        InfoGeoError: If an upstream stage is missing
    """
    done = set(completed)
    missing = [dep for dep in get_dependencies(stage) if dep not in done]

    if missing:
        raise InfoGeoError(
            f"\n{'='*60}\n"
            f"Cannot run {stage}: missing required upstream stages\n"
            f"{'='*60}\n\n"
            f"Missing: {', '.join(missing)}\n\n"
            f"Run the upstream stages first:\n"
            + '\n'.join(f"  python -m infogeo.run --config <config.yaml> --stage {m}" for m in missing)
            + f"\n{'='*60}",
            stage=stage,
        )


def resolve_stages(requested: Optional[Iterable[str]] = None) -> List[str]:
    """
    Requested stages plus their upstream stages, in computation order.

    None means every stage.
    """
    if requested is None:
        return get_compute_order()

    wanted = set()
    pending = list(requested)
    while pending:
        stage = pending.pop()
        if stage in wanted:
            continue
        wanted.add(stage)
        pending.extend(get_dependencies(stage))

    return [stage for stage in get_compute_order() if stage in wanted]
