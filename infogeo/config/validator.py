"""
INFOGEO Configuration Validator

Bandwidths are domain choices: spatial_bandwidth (and temporal_bandwidth
when temporal analysis is on) have NO defaults and must be set explicitly.

Usage:
    from infogeo.config.validator import ConfigurationError, validate_config

    validate_config(config, config_path)
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional


class ConfigurationError(Exception):
    """
    Raised when configuration is missing or invalid.

    The message names every offending key and shows what to put in
    config.yaml.
    """
    pass


# Required fields per analysis stage
REQUIRED_FIELDS = {
    'tensors': [
        'spatial_bandwidth',
    ],
    'graph': [
        'adjacency',
    ],
    'spectral': [
        'adjacency',
        'affinity_sigma',
        'n_clusters',
    ],
    'hierarchy': [
        'adjacency',
    ],
}

DIVERGENCES = ('euclidean', 'cumulative_euclidean', 'kl')
ADJACENCY_POLICIES = ('distance', 'pairs', 'boundary')

POSITIVE_FLOATS = ('spatial_bandwidth', 'pseudocount', 'cutoff_sigmas', 'affinity_sigma')
POSITIVE_INTS = ('n_clusters', 'restarts', 'max_iter')


def _box(title: str, body: str, config_path: Optional[Path] = None) -> str:
    location = f"File: {config_path}\n" if config_path else ""
    return (
        f"\n{'='*60}\n"
        f"CONFIGURATION ERROR: {title}\n"
        f"{'='*60}\n"
        f"{location}"
        f"{body}"
        f"{'='*60}"
    )


def validate_required(
    config: Dict[str, Any],
    required_keys: List[str],
    stage: str,
    config_path: Optional[Path] = None,
) -> None:
    """
    Validate that all required configuration keys are present.

    Args:
        config: Configuration dictionary
        required_keys: List of keys that must be present and not None
        stage: Analysis stage name (for error message)
        config_path: Path to config file (for error message)

    Raises:
        ConfigurationError: If any required key is missing or None
    """
    missing = [key for key in required_keys if key not in config or config[key] is None]

    if missing:
        raise ConfigurationError(_box(
            "Missing required parameters",
            f"Analysis stage: {stage}\n\n"
            f"Missing fields:\n"
            f"{''.join(f'  - {k}' + chr(10) for k in missing)}\n"
            f"Add to your config.yaml:\n"
            f"{''.join(f'  {k}: <value>' + chr(10) for k in missing)}",
            config_path,
        ))


def validate_stage(config: Dict[str, Any], stage: str, config_path: Optional[Path] = None) -> None:
    """
    Validate configuration for a specific analysis stage.

    Args:
        config: Configuration dictionary
        stage: One of 'tensors', 'graph', 'spectral', 'hierarchy'
        config_path: Path to config file (for error message)

    Raises:
        ConfigurationError: If stage unknown or required fields missing
    """
    if stage not in REQUIRED_FIELDS:
        raise ConfigurationError(f"Unknown analysis stage: {stage}")

    validate_required(config, REQUIRED_FIELDS[stage], stage, config_path)

    if stage == 'tensors' and config.get('temporal'):
        validate_required(config, ['temporal_bandwidth'], stage, config_path)


def validate_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> None:
    """
    Check value types and ranges of a merged configuration.

    Collects every problem before raising, so one run reports them all.

    Raises:
        ConfigurationError: If any value is out of range
    """
    problems = []

    divergence = config.get('divergence')
    if divergence is not None and str(divergence).lower() not in DIVERGENCES:
        problems.append(f"divergence: {divergence!r} (expected one of {', '.join(DIVERGENCES)})")

    for key in POSITIVE_FLOATS:
        value = config.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            problems.append(f"{key}: {value!r} (expected a number > 0)")

    for key in POSITIVE_INTS:
        value = config.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            problems.append(f"{key}: {value!r} (expected an integer >= 1)")

    if config.get('temporal'):
        value = config.get('temporal_bandwidth')
        if value is None:
            problems.append("temporal_bandwidth: missing (required when temporal: true)")
        elif isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            problems.append(f"temporal_bandwidth: {value!r} (expected a number > 0)")

    for key in ('temporal', 'smooth'):
        value = config.get(key)
        if value is not None and not isinstance(value, bool):
            problems.append(f"{key}: {value!r} (expected true or false)")

    seed = config.get('seed')
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        problems.append(f"seed: {seed!r} (expected an integer)")

    n_workers = config.get('n_workers')
    if n_workers is not None and (
        isinstance(n_workers, bool) or not isinstance(n_workers, int)
        or (n_workers < 1 and n_workers != -1)
    ):
        problems.append(f"n_workers: {n_workers!r} (expected an integer >= 1, or -1 for all CPUs)")

    adjacency = config.get('adjacency')
    if adjacency is not None:
        if not isinstance(adjacency, dict):
            problems.append(f"adjacency: {adjacency!r} (expected a mapping)")
        else:
            policy = str(adjacency.get('policy', 'distance')).lower()
            if policy not in ADJACENCY_POLICIES:
                problems.append(
                    f"adjacency.policy: {policy!r} (expected one of {', '.join(ADJACENCY_POLICIES)})"
                )
            elif policy == 'distance':
                max_distance = adjacency.get('max_distance')
                if isinstance(max_distance, bool) or not isinstance(max_distance, (int, float)) or max_distance < 0:
                    problems.append(f"adjacency.max_distance: {max_distance!r} (expected a number >= 0)")

    if problems:
        raise ConfigurationError(_box(
            "Invalid parameters",
            "Invalid fields:\n"
            f"{''.join(f'  - {p}' + chr(10) for p in problems)}\n",
            config_path,
        ))


def validate_or_die(config: Dict[str, Any], stage: str, config_path: Optional[Path] = None) -> None:
    """
    Validate configuration. Exit with error code 1 if invalid.

    Use this at entry points for clear error messages and clean exit.
    """
    try:
        validate_stage(config, stage, config_path)
        validate_config(config, config_path)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


def require_key(config: Dict[str, Any], key: str, stage: str = "") -> Any:
    """
    Get a required configuration value.

    Unlike dict.get(), this NEVER returns a default value.

    Raises:
        ConfigurationError: If key is missing or None
    """
    if key not in config or config[key] is None:
        raise ConfigurationError(_box(
            f"{key} not set",
            f"Stage: {stage}\n\n"
            f"{key} is REQUIRED.\n"
            f"Set it in your config.yaml:\n\n"
            f"  {key}: <value>\n\n",
        ))

    return config[key]
