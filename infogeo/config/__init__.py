"""
INFOGEO Configuration
=====================

YAML configuration merged over DEFAULT_CONFIG. Bandwidths have no
defaults; everything else does.

Example config.yaml:

    divergence: kl
    spatial_bandwidth: 1500.0
    temporal: true
    temporal_bandwidth: 1.0
    smooth: true
    affinity_sigma: 0.5
    n_clusters: 4
    seed: 7
    adjacency:
      policy: distance
      max_distance: 2000.0
    inputs:
      counts: counts.parquet
      units: units.parquet
    output_dir: results/

Usage:
    from infogeo.config import load_config, AnalysisConfig

    config = AnalysisConfig.from_dict(load_config('config.yaml'))
"""

import copy
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from infogeo.config.validator import (
    ConfigurationError,
    require_key,
    validate_config,
    validate_required,
)
from infogeo.core.field import CoordinateFrame, resolve_frame


DEFAULT_CONFIG = {
    'divergence': 'kl',
    'spatial_bandwidth': None,
    'temporal': False,
    'temporal_bandwidth': None,
    'smooth': False,
    'pseudocount': 0.5,
    'cutoff_sigmas': 3.0,
    'affinity_sigma': 1.0,
    'n_clusters': 2,
    'restarts': 10,
    'seed': 0,
    'max_iter': 300,
    'n_workers': 1,
    'adjacency': None,
    'inputs': {},
    'output_dir': None,
}


def merge_config(user_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """DEFAULT_CONFIG overlaid with user values. Unknown keys are rejected."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    user_config = user_config or {}

    unknown = sorted(set(user_config) - set(DEFAULT_CONFIG))
    if unknown:
        raise ConfigurationError(
            f"\n{'='*60}\n"
            f"CONFIGURATION ERROR: Unknown keys\n"
            f"{'='*60}\n"
            f"{''.join(f'  - {k}' + chr(10) for k in unknown)}\n"
            f"Known keys: {', '.join(DEFAULT_CONFIG)}\n"
            f"{'='*60}"
        )

    config.update(user_config)
    return config


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and validate a YAML config file."""
    config_path = Path(config_path)
    with open(config_path) as f:
        user_config = yaml.safe_load(f) or {}

    if not isinstance(user_config, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    config = merge_config(user_config)
    validate_config(config, config_path)
    return config


@dataclass(frozen=True)
class AnalysisConfig:
    """Validated analysis parameters."""
    spatial_bandwidth: float
    divergence: str = 'kl'
    temporal: bool = False
    temporal_bandwidth: Optional[float] = None
    smooth: bool = False
    pseudocount: float = 0.5
    cutoff_sigmas: float = 3.0
    affinity_sigma: float = 1.0
    n_clusters: int = 2
    restarts: int = 10
    seed: int = 0
    max_iter: int = 300
    n_workers: int = 1
    adjacency: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'AnalysisConfig':
        merged = merge_config({k: v for k, v in config.items() if k in DEFAULT_CONFIG})
        require_key(merged, 'spatial_bandwidth', 'tensors')
        validate_config(merged)
        if merged['temporal']:
            validate_required(merged, ['temporal_bandwidth'], 'tensors')

        return cls(
            spatial_bandwidth=float(merged['spatial_bandwidth']),
            divergence=str(merged['divergence']).lower(),
            temporal=bool(merged['temporal']),
            temporal_bandwidth=(
                None if merged['temporal_bandwidth'] is None else float(merged['temporal_bandwidth'])
            ),
            smooth=bool(merged['smooth']),
            pseudocount=float(merged['pseudocount']),
            cutoff_sigmas=float(merged['cutoff_sigmas']),
            affinity_sigma=float(merged['affinity_sigma']),
            n_clusters=int(merged['n_clusters']),
            restarts=int(merged['restarts']),
            seed=int(merged['seed']),
            max_iter=int(merged['max_iter']),
            n_workers=int(merged['n_workers']),
            adjacency=dict(merged['adjacency'] or {}),
        )

    @property
    def frame(self) -> CoordinateFrame:
        return resolve_frame(self.temporal)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    'DEFAULT_CONFIG',
    'AnalysisConfig',
    'ConfigurationError',
    'load_config',
    'merge_config',
]
