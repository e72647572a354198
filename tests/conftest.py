"""Shared fixtures: two-group designs and fitted genes."""

import numpy as np
import pytest

from glmtreat.glm import fit_gene_model

DESIGN = np.column_stack([np.ones(6), [0, 0, 0, 1, 1, 1]])
LIB_SIZE = np.array([1.0e6, 1.2e6, 0.9e6, 1.1e6, 1.0e6, 0.95e6])
COEF_NAMES = ("intercept", "group")

GENE_COUNTS = {
    'up_strong': [100, 130, 85, 880, 790, 770],
    'down_strong': [900, 1010, 820, 95, 110, 90],
    'up_moderate': [100, 118, 92, 240, 205, 200],
    'flat': [100, 121, 88, 108, 102, 96],
    'low': [3, 5, 2, 6, 4, 5],
}


def make_fit(gene_id, counts, dispersion=0.05, **kwargs):
    return fit_gene_model(
        gene_id,
        counts,
        DESIGN,
        dispersion,
        lib_size=LIB_SIZE,
        coefficient_names=COEF_NAMES,
        **kwargs
    )


@pytest.fixture
def fits():
    """Likelihood fits for a handful of genes with known behaviour."""
    return [make_fit(gene_id, counts) for gene_id, counts in GENE_COUNTS.items()]


@pytest.fixture
def simulated_fits():
    """Fits of simulated negative binomial counts, a third of them changed."""
    rng = np.random.default_rng(42)
    dispersion = 0.1
    result = []
    for i in range(30):
        log_fc = [0.0, 2.5, -1.5][i % 3]
        mu = 200 * LIB_SIZE / 1e6 * np.where(DESIGN[:, 1] == 1, 2.0 ** log_fc, 1.0)
        # NB draws as a gamma-Poisson mixture
        counts = rng.poisson(rng.gamma(1 / dispersion, mu * dispersion))
        result.append(make_fit(f"gene{i}", counts, dispersion=dispersion))
    return result


@pytest.fixture
def fit_factory():
    """Fit a gene on the shared two-group design."""
    return make_fit
