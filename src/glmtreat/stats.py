"""
Statistical tests for differential expression relative to a fold-change threshold.
"""

import logging
import math
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import polars as pl
from scipy import stats
from statsmodels.stats.multitest import multipletests
from tqdm.auto import tqdm

from glmtreat.exceptions import EmptyInput, InconsistentGeneSet, InvalidThreshold
from glmtreat.glm import full_deviance, likelihood_ratio
from glmtreat.models import (
    DECISION,
    FDR,
    GENE_ID,
    LOG_CPM,
    LOG_FC,
    P_VALUE,
    RESULT_COLUMNS,
    STATISTIC,
    Contrast,
    FitKind,
    GeneModelFit,
    ThresholdSpec,
)

logger = logging.getLogger(__name__)

LN2 = math.log(2.0)


def _test_gene(fit: GeneModelFit, weights: np.ndarray, lfc: float) -> Tuple[float, float, float]:
    """
    Test one gene against the interval null |logFC| <= lfc.

    With lfc == 0 this is the ordinary likelihood ratio (or quasi-likelihood
    F) test. Otherwise the TREAT p-value of McCarthy & Smyth (2009) is
    computed from signed likelihood ratio roots at the two boundaries of the
    interval, and estimates inside the closed interval get p = 1.

    Args:
        fit: Gene model fit
        weights: Contrast vector
        lfc: Log2 fold-change threshold

    Returns:
        Tuple of (logFC, statistic, p_value)
    """
    beta = float(weights @ fit.coefficients)
    log_fc = beta / LN2
    if beta == 0.0 or not np.any(fit.counts > 0):
        return log_fc, 0.0, 1.0

    quasi = fit.fit_kind is FitKind.QUASI_LIKELIHOOD
    dev_full = full_deviance(fit)

    if lfc == 0:
        lr = likelihood_ratio(fit, weights, 0.0, dev_full)
        if quasi:
            f_stat = lr / fit.s2_post
            return log_fc, f_stat, float(stats.f.sf(f_stat, 1, fit.df_total))
        return log_fc, lr, float(stats.chi2.sf(lr, 1))

    if abs(log_fc) <= lfc:
        return log_fc, 0.0, 1.0

    tau = lfc * LN2
    sign = 1.0 if beta > 0 else -1.0
    scale = fit.s2_post if quasi else 1.0
    z_near = math.sqrt(likelihood_ratio(fit, weights, sign * tau, dev_full) / scale)
    z_far = math.sqrt(likelihood_ratio(fit, weights, -sign * tau, dev_full) / scale)

    if quasi:
        p_value = stats.t.sf(z_near, fit.df_total) + stats.t.sf(z_far, fit.df_total)
    else:
        p_value = stats.norm.sf(z_near) + stats.norm.sf(z_far)
    return log_fc, z_near ** 2, float(min(p_value, 1.0))


def _validate_fits(fits: Iterable[GeneModelFit], contrast: Contrast) -> Tuple[List[GeneModelFit], np.ndarray]:
    fits = list(fits)
    if not fits:
        raise EmptyInput("No gene model fits supplied")

    gene_ids = [fit.gene_id for fit in fits]
    if len(set(gene_ids)) != len(gene_ids):
        raise InconsistentGeneSet("Gene identifiers must be unique")

    names = fits[0].coefficient_names
    for fit in fits[1:]:
        if fit.coefficient_names != names:
            raise InconsistentGeneSet(
                f"Gene {fit.gene_id} was fitted with coefficients {fit.coefficient_names}, expected {names}"
            )

    return fits, contrast.resolve(names)


def _coerce_threshold(spec: Union[ThresholdSpec, float]) -> ThresholdSpec:
    if isinstance(spec, ThresholdSpec):
        return spec
    return ThresholdSpec(lfc=spec)


def _evaluate(
    fits: List[GeneModelFit],
    weights: np.ndarray,
    lfc: float,
    num_threads: int,
    progress: bool
) -> List[Tuple[float, float, float]]:
    slots: List[Optional[Tuple[float, float, float]]] = [None] * len(fits)

    if num_threads > 1 and len(fits) > 1:
        logger.debug(f"Testing {len(fits)} genes using {num_threads} worker processes")
        with ProcessPoolExecutor(max_workers=num_threads) as executor:
            futures = {
                executor.submit(_test_gene, fit, weights, lfc): i
                for i, fit in enumerate(fits)
            }
            for future in tqdm(as_completed(futures), total=len(futures), desc="Testing genes", disable=not progress):
                slots[futures[future]] = future.result()
    else:
        for i, fit in enumerate(tqdm(fits, desc="Testing genes", disable=not progress)):
            slots[i] = _test_gene(fit, weights, lfc)

    return slots


def _results_frame(fits: List[GeneModelFit], rows: List[Tuple[float, float, float]]) -> pl.DataFrame:
    p_values = np.array([row[2] for row in rows], dtype=np.float64)
    return pl.DataFrame({
        GENE_ID: [fit.gene_id for fit in fits],
        LOG_FC: [row[0] for row in rows],
        LOG_CPM: [fit.log_cpm for fit in fits],
        STATISTIC: [row[1] for row in rows],
        P_VALUE: p_values,
        FDR: adjust_fdr(p_values),
    }).select(RESULT_COLUMNS)


def adjust_fdr(p_values: Sequence[float]) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values.

    Args:
        p_values: Raw p-values of one family of tests

    Returns:
        Array of FDR values in the input order
    """
    p_values = np.asarray(p_values, dtype=np.float64)
    if p_values.size == 0:
        raise EmptyInput("Input p-values array cannot be empty")

    _, pvals_corrected, _, _ = multipletests(p_values, method='fdr_bh')
    return pvals_corrected


def likelihood_ratio_test(
    fits: Iterable[GeneModelFit],
    contrast: Contrast,
    num_threads: int = 1,
    progress: bool = False
) -> pl.DataFrame:
    """
    Ordinary likelihood ratio test of H0: contrast == 0 for every gene.

    Quasi-likelihood fits are tested with the F statistic LR / s2_post.

    Args:
        fits: Gene model fits sharing one design
        contrast: Comparison to test
        num_threads: Number of worker processes
        progress: Show a progress bar

    Returns:
        DataFrame with one row per gene
    """
    fits, weights = _validate_fits(fits, contrast)
    rows = _evaluate(fits, weights, 0.0, num_threads, progress)
    return _results_frame(fits, rows)


def run_test(
    fits: Iterable[GeneModelFit],
    contrast: Contrast,
    spec: Union[ThresholdSpec, float] = ThresholdSpec(),
    num_threads: int = 1,
    progress: bool = False
) -> pl.DataFrame:
    """
    Test every gene for a fold change beyond a threshold.

    The null hypothesis is that the true log2 fold-change lies in
    [-lfc, lfc]. With ``lfc == 0`` the result equals
    :func:`likelihood_ratio_test`. Genes are tested independently and the
    p-values are then adjusted together by Benjamini-Hochberg.

    Args:
        fits: Gene model fits sharing one design
        contrast: Comparison to test
        spec: Threshold specification, or the lfc value itself
        num_threads: Number of worker processes
        progress: Show a progress bar

    Returns:
        DataFrame with columns gene_id, logFC, logCPM, statistic, p_value, fdr

    Raises:
        EmptyInput: No fits were given
        InvalidThreshold: lfc is negative or not finite
        InvalidContrast: The contrast does not match the design
        InconsistentGeneSet: Duplicate gene ids or differing designs
    """
    fits = list(fits)
    if not fits:
        raise EmptyInput("No gene model fits supplied")
    spec = _coerce_threshold(spec)
    fits, weights = _validate_fits(fits, contrast)

    logger.info(f"Testing {len(fits)} genes against the interval null |logFC| <= {spec.lfc}")
    rows = _evaluate(fits, weights, spec.lfc, num_threads, progress)

    if spec.lfc > 0:
        inside = sum(1 for row in rows if abs(row[0]) <= spec.lfc)
        logger.debug(f"{inside} genes have estimates inside the threshold interval")

    return _results_frame(fits, rows)


def decide(
    results: pl.DataFrame,
    fdr_cutoff: float = 0.05,
    lfc_filter: float = 0.0,
    genes: Optional[Iterable[Union[str, GeneModelFit]]] = None
) -> pl.DataFrame:
    """
    Classify genes as down (-1), not significant (0) or up (+1).

    A gene is called when its FDR is at most ``fdr_cutoff`` and its logFC
    is beyond ``lfc_filter`` in absolute value. The filter acts on the
    estimates only and is applied on top of any threshold used when
    testing, so using both calls fewer genes than either alone.

    Args:
        results: Output of run_test or likelihood_ratio_test
        fdr_cutoff: Largest FDR called significant
        lfc_filter: Minimum absolute log2 fold-change to call a gene
        genes: Optional gene ids (or fits) the results must cover exactly

    Returns:
        DataFrame with columns gene_id and decision
    """
    if results.height == 0:
        raise EmptyInput("No test results supplied")
    missing = [col for col in (GENE_ID, LOG_FC, FDR) if col not in results.columns]
    if missing:
        raise InconsistentGeneSet(f"Test results are missing columns: {', '.join(missing)}")
    if not 0 <= fdr_cutoff <= 1:
        raise InvalidThreshold(f"fdr_cutoff must lie in [0, 1], got {fdr_cutoff}")
    if not lfc_filter >= 0:
        raise InvalidThreshold(f"lfc_filter must be >= 0, got {lfc_filter}")

    gene_ids = results[GENE_ID].to_list()
    if len(set(gene_ids)) != len(gene_ids):
        raise InconsistentGeneSet("Gene identifiers in the test results must be unique")
    if genes is not None:
        expected = [g.gene_id if isinstance(g, GeneModelFit) else g for g in genes]
        if len(expected) != len(gene_ids) or set(expected) != set(gene_ids):
            unmatched = set(expected).symmetric_difference(gene_ids)
            raise InconsistentGeneSet(
                f"Test results and expected genes differ ({len(unmatched)} unmatched identifiers)"
            )

    significant = pl.col(FDR).fill_nan(None) <= fdr_cutoff
    return results.select(
        pl.col(GENE_ID),
        pl.when(significant & (pl.col(LOG_FC) > lfc_filter)).then(1)
        .when(significant & (pl.col(LOG_FC) < -lfc_filter)).then(-1)
        .otherwise(0)
        .cast(pl.Int8)
        .alias(DECISION)
    )


def summarize_decisions(decisions: pl.DataFrame) -> Dict[str, int]:
    """Count genes called down, not significant and up."""
    values = decisions[DECISION]
    return {
        'down': int((values == -1).sum()),
        'not_significant': int((values == 0).sum()),
        'up': int((values == 1).sum()),
    }


def top_tags(results: pl.DataFrame, n: Optional[int] = 10, sort_by: str = 'p_value') -> pl.DataFrame:
    """
    Most significant genes of a result table.

    Args:
        results: Output of run_test or likelihood_ratio_test
        n: Number of rows to return, all rows if None
        sort_by: 'p_value' (ties by largest |logFC|) or 'logFC' (largest |logFC|)

    Returns:
        Sorted DataFrame with at most n rows
    """
    if sort_by == 'p_value':
        ordered = results.sort(by=[pl.col(P_VALUE), pl.col(LOG_FC).abs()], descending=[False, True])
    elif sort_by == 'logFC':
        ordered = results.sort(by=pl.col(LOG_FC).abs(), descending=True)
    else:
        raise ValueError(f"Unknown sort order: {sort_by}")
    return ordered if n is None else ordered.head(n)


def signed_z_scores(results: pl.DataFrame) -> pl.DataFrame:
    """
    Signed normal scores for ranking genes in competitive set tests.

    Each two-sided p-value is converted to the normal quantile with the same
    upper tail and given the sign of the log fold-change.
    """
    p_values = np.clip(results[P_VALUE].to_numpy(), np.finfo(np.float64).tiny, 1.0)
    z = np.sign(results[LOG_FC].to_numpy()) * stats.norm.isf(p_values / 2)
    return pl.DataFrame({GENE_ID: results[GENE_ID], 'z': z})


def de_flags(decisions: pl.DataFrame) -> pl.DataFrame:
    """Binary differential expression flags for over-representation tests."""
    return decisions.select(pl.col(GENE_ID), (pl.col(DECISION) != 0).alias('de'))
