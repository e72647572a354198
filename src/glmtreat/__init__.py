"""
glmtreat
========

Negative binomial GLM tests for differential expression relative to a
fold-change threshold (TREAT), with FDR control and gene calls.
"""

from .exceptions import (
    GLMTreatError,
    InvalidContrast,
    InvalidThreshold,
    EmptyInput,
    InconsistentGeneSet,
)
from .models import FitKind, GeneModelFit, Contrast, ThresholdSpec
from .glm import fit_gene_model
from .stats import (
    run_test,
    likelihood_ratio_test,
    adjust_fdr,
    decide,
    summarize_decisions,
    top_tags,
    signed_z_scores,
    de_flags,
)
from .config import AnalysisConfig
from .pipeline import ThresholdTestPipeline
from .utils import setup_logging, ensure_dir

__version__ = "0.1.0"

__all__ = [
    "GLMTreatError",
    "InvalidContrast",
    "InvalidThreshold",
    "EmptyInput",
    "InconsistentGeneSet",
    "FitKind",
    "GeneModelFit",
    "Contrast",
    "ThresholdSpec",
    "fit_gene_model",
    "run_test",
    "likelihood_ratio_test",
    "adjust_fdr",
    "decide",
    "summarize_decisions",
    "top_tags",
    "signed_z_scores",
    "de_flags",
    "AnalysisConfig",
    "ThresholdTestPipeline",
    "setup_logging",
    "ensure_dir",
]
