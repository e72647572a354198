"""Tests for configuration management."""

import pytest
import tomli
from tomli_w import dump as tomli_w_dump
from pathlib import Path

from glmtreat.config import AnalysisConfig
from glmtreat.exceptions import InvalidThreshold
from glmtreat.models import ThresholdSpec


def write_config(path: Path, config: dict) -> Path:
    with open(path, 'wb') as f:
        tomli_w_dump(config, f)
    return path

@pytest.fixture
def minimal_config_file(tmp_path):
    """Create a minimal valid configuration file."""
    return write_config(tmp_path / 'config.toml', {'threshold': {'lfc': 1.0}})

@pytest.fixture
def full_config_file(tmp_path):
    """Create a configuration file with all optional parameters."""
    config = {
        'threshold': {'lfc': 0.58, 'null': 'interval'},
        'decide': {'fdr_cutoff': 0.01, 'lfc_filter': 1.0},
        'analysis': {'num_threads': 4, 'progress': False},
        'output': {'directory': str(tmp_path / 'out')},
    }
    return write_config(tmp_path / 'config.toml', config)

def test_load_minimal_config(minimal_config_file):
    """Test defaults are filled in for optional sections."""
    config = AnalysisConfig(minimal_config_file)
    assert config.get_threshold_spec() == ThresholdSpec(lfc=1.0)
    assert config.fdr_cutoff == 0.05
    assert config.lfc_filter == 0.0
    assert config.num_threads == 1
    assert config.progress is True
    assert config.get_output_path() == Path('results')

def test_load_full_config(full_config_file, tmp_path):
    """Test all optional parameters are read."""
    config = AnalysisConfig(full_config_file)
    assert config.get_threshold_spec().lfc == 0.58
    assert config.fdr_cutoff == 0.01
    assert config.lfc_filter == 1.0
    assert config.num_threads == 4
    assert config.progress is False
    assert config.get_output_path('logs') == tmp_path / 'out' / 'logs'

def test_missing_config_file(tmp_path):
    """Test a missing file raises a descriptive error."""
    with pytest.raises(ValueError, match="does not exist"):
        AnalysisConfig(tmp_path / 'missing.toml')

def test_invalid_toml(tmp_path):
    """Test malformed TOML is reported."""
    path = tmp_path / 'bad.toml'
    path.write_text("[threshold\nlfc = ")
    with pytest.raises(ValueError, match="Error loading configuration file"):
        AnalysisConfig(path)

def test_missing_threshold_section(tmp_path):
    """Test the threshold section is required."""
    path = write_config(tmp_path / 'config.toml', {'decide': {'fdr_cutoff': 0.05}})
    with pytest.raises(ValueError, match="threshold"):
        AnalysisConfig(path)

@pytest.mark.parametrize("section,values", [
    ('threshold', {'lfc': -1.0}),
    ('decide', {'fdr_cutoff': 2.0}),
    ('decide', {'lfc_filter': -0.5}),
])
def test_invalid_thresholds(tmp_path, section, values):
    """Test out-of-range thresholds fail when the configuration is loaded."""
    config = {'threshold': {'lfc': 1.0}}
    config.setdefault(section, {}).update(values)
    path = write_config(tmp_path / 'config.toml', config)
    with pytest.raises(InvalidThreshold):
        AnalysisConfig(path)

def test_save_config(full_config_file, tmp_path):
    """Test saving writes the same settings back."""
    config = AnalysisConfig(full_config_file)
    saved = tmp_path / 'saved.toml'
    config.save_config(saved)
    with open(saved, 'rb') as f:
        assert tomli.load(f) == config.config
    assert AnalysisConfig(saved).get_threshold_spec() == config.get_threshold_spec()
