"""
Test Configuration + Stage Dependencies
=======================================
"""

from dataclasses import FrozenInstanceError

import pytest
import yaml


def test_load_config_merges_defaults(tmp_path):
    from infogeo.config import load_config

    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump({
        'spatial_bandwidth': 2.5,
        'n_clusters': 4,
        'adjacency': {'policy': 'distance', 'max_distance': 1.0},
    }))

    config = load_config(path)

    assert config['spatial_bandwidth'] == 2.5
    assert config['n_clusters'] == 4
    assert config['divergence'] == 'kl'
    assert config['restarts'] == 10


def test_analysis_config_from_dict():
    from infogeo.config import AnalysisConfig
    from infogeo.core.field import CoordinateFrame

    config = AnalysisConfig.from_dict({
        'spatial_bandwidth': 1.0,
        'temporal': True,
        'temporal_bandwidth': 2.0,
        'divergence': 'Cumulative_Euclidean',
    })

    assert config.frame is CoordinateFrame.SPATIOTEMPORAL
    assert config.divergence == 'cumulative_euclidean'
    assert config.temporal_bandwidth == 2.0

    with pytest.raises(FrozenInstanceError):
        config.seed = 3


def test_spatial_bandwidth_has_no_default():
    from infogeo.config import AnalysisConfig, ConfigurationError

    with pytest.raises(ConfigurationError) as excinfo:
        AnalysisConfig.from_dict({'divergence': 'kl'})

    assert 'spatial_bandwidth' in str(excinfo.value)


def test_temporal_requires_temporal_bandwidth():
    from infogeo.config import AnalysisConfig, ConfigurationError

    with pytest.raises(ConfigurationError) as excinfo:
        AnalysisConfig.from_dict({'spatial_bandwidth': 1.0, 'temporal': True})

    assert 'temporal_bandwidth' in str(excinfo.value)


def test_invalid_values_reported_together():
    from infogeo.config import ConfigurationError, merge_config
    from infogeo.config.validator import validate_config

    config = merge_config({
        'spatial_bandwidth': -1.0,
        'divergence': 'hellinger',
        'n_clusters': 0,
        'n_workers': -3,
        'adjacency': {'policy': 'rook'},
    })

    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)

    message = str(excinfo.value)
    for key in ('spatial_bandwidth', 'divergence', 'n_clusters', 'n_workers', 'adjacency.policy'):
        assert key in message


def test_unknown_key_rejected():
    from infogeo.config import ConfigurationError, merge_config

    with pytest.raises(ConfigurationError):
        merge_config({'spatial_bandwith': 1.0})


def test_validate_stage():
    from infogeo.config.validator import ConfigurationError, validate_stage

    validate_stage({'spatial_bandwidth': 1.0}, 'tensors')

    with pytest.raises(ConfigurationError):
        validate_stage({'spatial_bandwidth': 1.0, 'temporal': True}, 'tensors')
    with pytest.raises(ConfigurationError):
        validate_stage({}, 'graph')
    with pytest.raises(ConfigurationError):
        validate_stage({}, 'physics')


def test_require_key():
    from infogeo.config.validator import ConfigurationError, require_key

    assert require_key({'seed': 0}, 'seed') == 0
    with pytest.raises(ConfigurationError):
        require_key({'seed': None}, 'seed')


def test_stage_dependencies():
    from infogeo.core.dependencies import check_dependencies, resolve_stages
    from infogeo.core.errors import InfoGeoError

    assert resolve_stages(None) == ['tensors', 'graph', 'spectral', 'hierarchy']
    assert resolve_stages(['hierarchy']) == ['graph', 'hierarchy']
    assert resolve_stages(['tensors']) == ['tensors']

    check_dependencies('spectral', ['graph'])
    with pytest.raises(InfoGeoError):
        check_dependencies('spectral', ['tensors'])
    with pytest.raises(ValueError):
        resolve_stages(['physics'])
