"""
Data types shared by the model fitting and testing functions.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from glmtreat.exceptions import InvalidContrast, InvalidThreshold


# Column names of the per-gene result tables
GENE_ID = "gene_id"
LOG_FC = "logFC"
LOG_CPM = "logCPM"
STATISTIC = "statistic"
P_VALUE = "p_value"
FDR = "fdr"
DECISION = "decision"

RESULT_COLUMNS = [GENE_ID, LOG_FC, LOG_CPM, STATISTIC, P_VALUE, FDR]


class FitKind(Enum):
    """Which fitting routine produced a GeneModelFit.

    Likelihood fits are tested against a chi-squared (or normal) reference,
    quasi-likelihood fits against an F (or t) reference.
    """
    LIKELIHOOD = "likelihood"
    QUASI_LIKELIHOOD = "quasi_likelihood"


def _is_coefficient_key(value) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, (str, int, np.integer))


def _frozen_array(values, ndim: int) -> np.ndarray:
    arr = np.array(values, dtype=np.float64, copy=True, ndmin=ndim)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class GeneModelFit:
    """Negative binomial GLM fit for a single gene.

    Coefficients are on the natural log scale. The counts, design and offset
    are kept so that null models can be refitted for likelihood ratio tests.
    """
    gene_id: str
    coefficients: np.ndarray
    dispersion: float
    log_cpm: float
    counts: np.ndarray
    design: np.ndarray
    offset: np.ndarray
    coefficient_names: Tuple[str, ...] = ()
    fit_kind: FitKind = FitKind.LIKELIHOOD
    s2_post: Optional[float] = None
    df_prior: float = 0.0

    def __post_init__(self):
        coefficients = _frozen_array(self.coefficients, 1)
        counts = _frozen_array(self.counts, 1)
        design = _frozen_array(self.design, 2)
        offset = np.asarray(self.offset, dtype=np.float64)
        if offset.ndim == 0:
            offset = np.full(counts.shape[0], float(offset))
        offset = _frozen_array(offset, 1)

        if design.shape != (counts.shape[0], coefficients.shape[0]):
            raise ValueError(
                f"Design of shape {design.shape} does not match {counts.shape[0]} samples "
                f"and {coefficients.shape[0]} coefficients for gene {self.gene_id}"
            )
        if offset.shape[0] != counts.shape[0]:
            raise ValueError(f"Offset length does not match the number of samples for gene {self.gene_id}")
        if self.dispersion < 0 or not math.isfinite(self.dispersion):
            raise ValueError(f"Dispersion must be a finite value >= 0, got {self.dispersion}")

        names = tuple(self.coefficient_names) or tuple(f"x{i}" for i in range(coefficients.shape[0]))
        if len(names) != coefficients.shape[0]:
            raise ValueError(f"Expected {coefficients.shape[0]} coefficient names, got {len(names)}")

        fit_kind = FitKind(self.fit_kind)
        if fit_kind is FitKind.QUASI_LIKELIHOOD and (self.s2_post is None or self.s2_post <= 0):
            raise ValueError("Quasi-likelihood fits need a positive s2_post")

        object.__setattr__(self, "coefficients", coefficients)
        object.__setattr__(self, "counts", counts)
        object.__setattr__(self, "design", design)
        object.__setattr__(self, "offset", offset)
        object.__setattr__(self, "coefficient_names", names)
        object.__setattr__(self, "fit_kind", fit_kind)
        object.__setattr__(self, "dispersion", float(self.dispersion))

        if fit_kind is FitKind.QUASI_LIKELIHOOD and self.df_total <= 0:
            raise ValueError(f"Quasi-likelihood fit of {self.gene_id} has no degrees of freedom")

    @property
    def n_coefficients(self) -> int:
        return self.coefficients.shape[0]

    @property
    def df_residual(self) -> int:
        return self.design.shape[0] - int(np.linalg.matrix_rank(self.design))

    @property
    def df_total(self) -> float:
        """Residual plus prior degrees of freedom of the quasi-dispersion."""
        return self.df_residual + self.df_prior


@dataclass(frozen=True, eq=False)
class Contrast:
    """Comparison to test: a single coefficient or a vector of weights.

    Exactly one of ``coefficient`` (name or column index) and ``weights``
    must be given.
    """
    coefficient: Optional[Union[str, int]] = None
    weights: Optional[Sequence[float]] = None

    def __post_init__(self):
        if (self.coefficient is None) == (self.weights is None):
            raise InvalidContrast("Supply exactly one of a coefficient or a contrast vector")
        if self.coefficient is not None and not _is_coefficient_key(self.coefficient):
            raise InvalidContrast(
                f"Coefficient must be a name or an integer index, got {self.coefficient!r}"
            )
        if self.weights is not None:
            weights = _frozen_array(self.weights, 1)
            if weights.ndim != 1:
                raise InvalidContrast("Contrast vector must be one-dimensional")
            if not np.all(np.isfinite(weights)) or not np.any(weights != 0):
                raise InvalidContrast("Contrast vector must be finite and not all zero")
            object.__setattr__(self, "weights", weights)

    def resolve(self, coefficient_names: Sequence[str]) -> np.ndarray:
        """Return the contrast as a weight vector over the design columns."""
        n = len(coefficient_names)
        if self.weights is not None:
            if self.weights.shape[0] != n:
                raise InvalidContrast(
                    f"Contrast vector has length {self.weights.shape[0]} but the design has {n} columns"
                )
            return self.weights

        if isinstance(self.coefficient, str):
            if self.coefficient not in coefficient_names:
                raise InvalidContrast(
                    f"Unknown coefficient '{self.coefficient}'. Available: {', '.join(coefficient_names)}"
                )
            index = list(coefficient_names).index(self.coefficient)
        else:
            index = int(self.coefficient)
            if not 0 <= index < n:
                raise InvalidContrast(f"Coefficient index {index} out of range for {n} design columns")

        weights = np.zeros(n)
        weights[index] = 1.0
        return weights


@dataclass(frozen=True)
class ThresholdSpec:
    """Log2 fold-change threshold defining the interval null |logFC| <= lfc."""
    lfc: float = 0.0
    null: str = field(default="interval")

    def __post_init__(self):
        try:
            lfc = float(self.lfc)
        except (TypeError, ValueError):
            raise InvalidThreshold(f"lfc must be a real number, got {self.lfc!r}")
        if not math.isfinite(lfc) or lfc < 0:
            raise InvalidThreshold(f"lfc must be a finite value >= 0, got {self.lfc}")
        if self.null != "interval":
            raise InvalidThreshold(f"Unsupported null hypothesis '{self.null}'; only 'interval' is available")
        object.__setattr__(self, "lfc", lfc)
