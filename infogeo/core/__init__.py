"""
INFOGEO Core
============

Data model and shared machinery used by every engine.
"""

from infogeo.core.errors import (
    ConvergenceFailure,
    DegenerateDistributionError,
    DisconnectedGraphWarning,
    IllConditionedMetricWarning,
    InfoGeoError,
    InsufficientDataError,
)
from infogeo.core.field import CoordinateFrame, CountField, Unit, resolve_frame

__all__ = [
    'CoordinateFrame',
    'CountField',
    'Unit',
    'resolve_frame',
    'InfoGeoError',
    'InsufficientDataError',
    'DegenerateDistributionError',
    'ConvergenceFailure',
    'IllConditionedMetricWarning',
    'DisconnectedGraphWarning',
]
