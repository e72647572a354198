"""
Negative binomial GLM helpers used by the likelihood ratio tests.

The full model fit of each gene is taken as given; the functions here refit
null models in which the contrast is fixed at a chosen value and compute the
deviances the test statistics are built from.
"""

import logging
from typing import Optional, Sequence, Tuple

import numba as nb
import numpy as np
import statsmodels.api as sm

from glmtreat.models import FitKind, GeneModelFit

logger = logging.getLogger(__name__)


@nb.njit
def _nb_deviance(y, mu, phi):
    """
    Total negative binomial deviance, falling back to Poisson when phi is 0.

    Args:
        y: Observed counts
        mu: Fitted means
        phi: Dispersion

    Returns:
        Sum of unit deviances
    """
    total = 0.0
    for i in range(y.shape[0]):
        yi = y[i]
        mi = mu[i]
        if mi <= 0.0:
            mi = 1e-300
        if phi == 0.0:
            if yi > 0.0:
                d = yi * np.log(yi / mi) - (yi - mi)
            else:
                d = mi
        else:
            if yi > 0.0:
                d = yi * np.log(yi / mi) - (yi + 1.0 / phi) * (np.log1p(phi * yi) - np.log1p(phi * mi))
            else:
                d = np.log1p(phi * mi) / phi
        # Unit deviances are non-negative; rounding can push them just below zero
        if d > 0.0:
            total += 2.0 * d
    return total


def nb_deviance(counts: np.ndarray, mu: np.ndarray, dispersion: float) -> float:
    """
    Negative binomial deviance of fitted means.

    Args:
        counts: Observed counts for one gene
        mu: Fitted means, same length as counts
        dispersion: Negative binomial dispersion (0 gives the Poisson deviance)

    Returns:
        Deviance as float
    """
    return float(_nb_deviance(
        np.ascontiguousarray(counts, dtype=np.float64),
        np.ascontiguousarray(mu, dtype=np.float64),
        float(dispersion)
    ))


def _glm_family(dispersion: float):
    if dispersion == 0:
        return sm.families.Poisson()
    return sm.families.NegativeBinomial(alpha=dispersion)


MAX_START_COEFFICIENT = 20.0


def _usable_start(start_params: np.ndarray) -> bool:
    """Whether starting coefficients are finite and away from a diverged fit."""
    return bool(np.all(np.isfinite(start_params)) and np.all(np.abs(start_params) < MAX_START_COEFFICIENT))


def fit_means(
    counts: np.ndarray,
    design: np.ndarray,
    offset: np.ndarray,
    dispersion: float,
    start_params: Optional[np.ndarray] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Fit a log-link GLM with known dispersion by IRLS.

    Args:
        counts: Counts for one gene
        design: Design matrix (samples x coefficients), may have no columns
        offset: Log offsets per sample
        dispersion: Negative binomial dispersion
        start_params: Optional starting coefficients

    Returns:
        Tuple of (coefficients, fitted means)
    """
    if design.shape[1] == 0:
        return np.zeros(0), np.exp(offset)

    if not np.any(counts > 0):
        # All-zero genes have no finite MLE; any fit has zero deviance
        return np.zeros(design.shape[1]), np.zeros_like(counts, dtype=np.float64)

    model = sm.GLM(counts, design, family=_glm_family(dispersion), offset=offset)
    if start_params is not None and not _usable_start(start_params):
        start_params = None
    try:
        result = model.fit(start_params=start_params, maxiter=100)
    except ValueError:
        if start_params is None:
            raise
        # A start near a diverged fit can give NaN IRLS weights; start afresh
        logger.debug("IRLS failed from the warm start; refitting from the default start")
        result = model.fit(maxiter=100)
    return np.asarray(result.params), np.asarray(result.mu)


def contrast_basis(weights: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Orthonormal basis whose first column is parallel to a contrast.

    Writing beta = Q @ gamma, the contrast equals ``scale * gamma[0]`` and the
    remaining coordinates are free under any constraint on the contrast.

    Args:
        weights: Contrast vector (p,)

    Returns:
        Tuple of (Q with shape (p, p), scale)
    """
    q, _ = np.linalg.qr(np.asarray(weights, dtype=np.float64).reshape(-1, 1), mode="complete")
    scale = float(q[:, 0] @ weights)
    return q, scale


def full_deviance(fit: GeneModelFit) -> float:
    """Deviance of the gene's own fitted coefficients."""
    mu = np.exp(fit.design @ fit.coefficients + fit.offset)
    return nb_deviance(fit.counts, mu, fit.dispersion)


def null_deviance(fit: GeneModelFit, weights: np.ndarray, value: float) -> float:
    """
    Deviance of the model refitted with ``weights . beta`` fixed at ``value``.

    Args:
        fit: Gene model fit
        weights: Contrast vector over the design columns
        value: Value of the contrast under the null, natural log scale

    Returns:
        Deviance of the constrained fit
    """
    q, scale = contrast_basis(weights)
    rotated = fit.design @ q
    offset = fit.offset + rotated[:, 0] * (value / scale)
    reduced = rotated[:, 1:]
    start = q[:, 1:].T @ fit.coefficients if reduced.shape[1] else None
    _, mu = fit_means(fit.counts, reduced, offset, fit.dispersion, start_params=start)
    return nb_deviance(fit.counts, mu, fit.dispersion)


def likelihood_ratio(fit: GeneModelFit, weights: np.ndarray, value: float = 0.0, dev_full: Optional[float] = None) -> float:
    """
    Likelihood ratio statistic for H0: ``weights . beta == value``.

    Args:
        fit: Gene model fit
        weights: Contrast vector
        value: Null value of the contrast, natural log scale
        dev_full: Deviance of the full model, computed if not given

    Returns:
        Non-negative deviance difference
    """
    if not np.any(fit.counts > 0):
        return 0.0
    if dev_full is None:
        dev_full = full_deviance(fit)
    return max(null_deviance(fit, weights, value) - dev_full, 0.0)


def average_log_cpm(counts: np.ndarray, lib_size: np.ndarray, prior_count: float = 2.0) -> float:
    """
    Average log2 counts per million with a library-size scaled prior count.

    Args:
        counts: Counts for one gene
        lib_size: Effective library sizes
        prior_count: Average prior count added to each observation

    Returns:
        log2 CPM of the mean
    """
    lib_size = np.asarray(lib_size, dtype=np.float64)
    prior = prior_count * lib_size / lib_size.mean()
    cpm = (np.asarray(counts, dtype=np.float64) + prior) / (lib_size + 2.0 * prior) * 1e6
    return float(np.log2(cpm.mean()))


def fit_gene_model(
    gene_id: str,
    counts: Sequence[float],
    design: np.ndarray,
    dispersion: float,
    lib_size: Optional[Sequence[float]] = None,
    norm_factors: Optional[Sequence[float]] = None,
    coefficient_names: Optional[Sequence[str]] = None,
    fit_kind: FitKind = FitKind.LIKELIHOOD,
    s2_post: Optional[float] = None,
    df_prior: float = 0.0
) -> GeneModelFit:
    """
    Fit the negative binomial GLM of one gene at a given dispersion.

    Library sizes default to one, so offsets are zero unless ``lib_size`` is
    supplied. For quasi-likelihood fits without ``s2_post`` the
    unmoderated quasi-dispersion (deviance / residual df) is used.

    Args:
        gene_id: Gene identifier
        counts: Counts per sample
        design: Design matrix (samples x coefficients)
        dispersion: Negative binomial dispersion, estimated upstream
        lib_size: Library sizes per sample
        norm_factors: Normalisation factors per sample
        coefficient_names: Names of the design columns
        fit_kind: Likelihood or quasi-likelihood
        s2_post: Posterior quasi-dispersion for quasi-likelihood fits
        df_prior: Prior degrees of freedom of ``s2_post``

    Returns:
        GeneModelFit
    """
    counts = np.asarray(counts, dtype=np.float64)
    design = np.asarray(design, dtype=np.float64)
    if design.ndim == 1:
        design = design.reshape(-1, 1)
    n_samples = counts.shape[0]

    lib = np.ones(n_samples) if lib_size is None else np.asarray(lib_size, dtype=np.float64)
    if norm_factors is not None:
        lib = lib * np.asarray(norm_factors, dtype=np.float64)
    offset = np.log(lib)

    coefficients, mu = fit_means(counts, design, offset, dispersion)
    if not np.any(counts > 0):
        logger.debug(f"Gene {gene_id} has no counts; coefficients set to zero")

    fit_kind = FitKind(fit_kind)
    if fit_kind is FitKind.QUASI_LIKELIHOOD and s2_post is None:
        df_residual = n_samples - int(np.linalg.matrix_rank(design))
        if df_residual <= 0:
            raise ValueError(f"No residual degrees of freedom to estimate the quasi-dispersion of {gene_id}")
        s2_post = max(nb_deviance(counts, mu, dispersion) / df_residual, 1e-8)

    return GeneModelFit(
        gene_id=gene_id,
        coefficients=coefficients,
        dispersion=dispersion,
        log_cpm=average_log_cpm(counts, lib),
        counts=counts,
        design=design,
        offset=offset,
        coefficient_names=tuple(coefficient_names) if coefficient_names is not None else (),
        fit_kind=fit_kind,
        s2_post=s2_post,
        df_prior=df_prior,
    )
