"""
INFOGEO Error Taxonomy
======================

Fatal errors carry the stage and the parameters that produced them so
a caller can retry with an adjusted bandwidth or smoothing setting.

    InsufficientDataError       no neighbours within the kernel cutoff
    DegenerateDistributionError all-zero count vector, smoothing off
    ConvergenceFailure          k-means / eigensolver did not converge

Non-fatal conditions are warnings, never exceptions:

    IllConditionedMetricWarning  negative eigenvalue clamped, unit flagged
    DisconnectedGraphWarning     graph has more than one component
"""

from typing import Any, Dict, Optional


class InfoGeoError(Exception):
    """Base class for analysis failures."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.stage = stage
        self.params = dict(params or {})
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.message]
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.params:
            rendered = ', '.join(f"{k}={v!r}" for k, v in sorted(self.params.items()))
            parts.append(f"params: {rendered}")
        return ' | '.join(parts)


class InsufficientDataError(InfoGeoError):
    """No unit lies within the kernel cutoff of the query point."""
    pass


class DegenerateDistributionError(InfoGeoError):
    """A zero-sum count vector reached a divergence without smoothing."""
    pass


class ConvergenceFailure(InfoGeoError):
    """An iterative solver exhausted its iteration budget."""
    pass


class IllConditionedMetricWarning(RuntimeWarning):
    """Metric tensor had a negative eigenvalue that was clamped to zero."""
    pass


class DisconnectedGraphWarning(RuntimeWarning):
    """Information graph has more than one connected component."""
    pass
