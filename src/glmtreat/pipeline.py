"""Configured threshold testing of a set of gene model fits."""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from glmtreat.config import AnalysisConfig
from glmtreat.models import Contrast, GeneModelFit
from glmtreat.stats import decide, run_test, summarize_decisions, top_tags


class ThresholdTestPipeline:
    """Run the threshold test and gene calls with settings from a TOML file."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the pipeline with a configuration file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config = AnalysisConfig(config_path)
        self.logger = logging.getLogger(__name__)

    def run(self, fits: Iterable[GeneModelFit], contrast: Contrast) -> Dict[str, Any]:
        """Test and classify genes for one contrast.

        Each call takes the fits and contrast it needs, so successive
        contrasts on the same fits do not share state.

        Args:
            fits: Gene model fits sharing one design
            contrast: Comparison to test

        Returns:
            Dictionary with 'results', 'decisions' and 'summary'
        """
        fits = list(fits)
        spec = self.config.get_threshold_spec()
        self.logger.info("Starting threshold differential expression test")
        start_time = time.time()

        self.logger.info(f"Step 1: Testing {len(fits)} genes with lfc threshold {spec.lfc}")
        results = run_test(
            fits,
            contrast,
            spec,
            num_threads=self.config.num_threads,
            progress=self.config.progress,
        )

        self.logger.info(
            f"Step 2: Calling genes at FDR <= {self.config.fdr_cutoff} "
            f"and |logFC| > {self.config.lfc_filter}"
        )
        decisions = decide(
            results,
            fdr_cutoff=self.config.fdr_cutoff,
            lfc_filter=self.config.lfc_filter,
            genes=fits,
        )
        summary = summarize_decisions(decisions)
        self.logger.info(
            f"Down: {summary['down']}, not significant: {summary['not_significant']}, up: {summary['up']}"
        )

        top = top_tags(results, n=1)
        self.logger.debug(f"Top gene: {top.row(0, named=True)}")

        elapsed_time = time.time() - start_time
        self.logger.info(f"Pipeline completed in {elapsed_time:.2f} seconds")

        return {
            'results': results,
            'decisions': decisions,
            'summary': summary,
        }
