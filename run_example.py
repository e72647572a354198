import logging
import multiprocessing
from pathlib import Path

import numpy as np

from glmtreat import Contrast, ThresholdTestPipeline, fit_gene_model, setup_logging, top_tags
from glmtreat.config import AnalysisConfig


def simulate_fits(n_genes=200, dispersion=0.1, seed=0):
    """Fit genes simulated under a two-group design, a fifth of them changed."""
    rng = np.random.default_rng(seed)
    group = np.array([0, 0, 0, 1, 1, 1])
    design = np.column_stack([np.ones(6), group])
    lib_size = rng.uniform(0.8e6, 1.2e6, size=6)

    fits = []
    for i in range(n_genes):
        log_fc = rng.choice([-2.0, 2.0]) * rng.uniform(0.3, 1.5) if i % 5 == 0 else 0.0
        mu = rng.uniform(20, 500) * lib_size / 1e6 * 2.0 ** (log_fc * group)
        counts = rng.poisson(rng.gamma(1 / dispersion, mu * dispersion))
        fits.append(fit_gene_model(
            f"gene{i}",
            counts,
            design,
            dispersion,
            lib_size=lib_size,
            coefficient_names=["intercept", "treated"],
        ))
    return fits


def run_pipeline():
    config_path = Path("example/config.toml").absolute()
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    config = AnalysisConfig(config_path)
    setup_logging(config.get_output_path("logs"))

    logging.info("Fitting simulated genes")
    fits = simulate_fits()

    pipeline = ThresholdTestPipeline(config_path)
    output = pipeline.run(fits, Contrast(coefficient="treated"))

    print(top_tags(output["results"], n=10))
    print(output["summary"])


if __name__ == "__main__":
    # This is required on macOS for multiprocessing to work properly
    multiprocessing.freeze_support()
    run_pipeline()
