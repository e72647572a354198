"""
Test cases for the configured threshold testing pipeline.
"""

import logging

import polars as pl
import pytest
from tomli_w import dump as tomli_w_dump

from glmtreat.exceptions import InvalidContrast
from glmtreat.models import Contrast
from glmtreat.pipeline import ThresholdTestPipeline
from glmtreat.stats import decide, run_test


@pytest.fixture
def config_file(tmp_path):
    """Create a pipeline configuration."""
    config = {
        'threshold': {'lfc': 1.0},
        'decide': {'fdr_cutoff': 0.05, 'lfc_filter': 0.0},
        'analysis': {'num_threads': 1, 'progress': False},
        'output': {'directory': str(tmp_path / 'results')},
    }
    config_path = tmp_path / 'config.toml'
    with open(config_path, 'wb') as f:
        tomli_w_dump(config, f)
    return config_path

def test_pipeline_run(config_file, simulated_fits, caplog):
    """Test the pipeline tests, calls and summarises every gene."""
    pipeline = ThresholdTestPipeline(config_file)
    with caplog.at_level(logging.INFO):
        output = pipeline.run(simulated_fits, Contrast(coefficient='group'))

    results = output['results']
    decisions = output['decisions']
    summary = output['summary']

    assert results.height == len(simulated_fits)
    assert decisions.height == len(simulated_fits)
    assert sum(summary.values()) == len(simulated_fits)
    assert summary['up'] > 0
    assert "Pipeline completed" in caplog.text

    expected = decide(run_test(simulated_fits, Contrast(coefficient='group'), 1.0))
    assert decisions.equals(expected)

def test_pipeline_successive_contrasts(config_file, fits):
    """Test different contrasts on the same fits do not affect each other."""
    pipeline = ThresholdTestPipeline(config_file)
    first = pipeline.run(fits, Contrast(coefficient='group'))
    pipeline.run(fits, Contrast(weights=[1.0, 1.0]))
    again = pipeline.run(fits, Contrast(coefficient='group'))

    assert first['results'].equals(again['results'])
    calls = dict(zip(*first['decisions'].get_columns()))
    assert calls['up_strong'] == 1
    assert calls['down_strong'] == -1
    assert calls['flat'] == 0

def test_pipeline_invalid_contrast(config_file, fits):
    """Test validation errors propagate without partial results."""
    pipeline = ThresholdTestPipeline(config_file)
    with pytest.raises(InvalidContrast):
        pipeline.run(fits, Contrast(coefficient='batch'))
