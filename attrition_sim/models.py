"""
Models Module
=============

Ordinary least-squares fitting of the additive assessment-score model.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional
import logging

import statsmodels.api as sm
from scipy import stats

from .data_loader import OUTCOME_COL
from .design import (
    CATEGORICAL_COLS,
    FORMULA,
    ReferenceLevels,
)

logger = logging.getLogger(__name__)


class ModelFitError(RuntimeError):
    """The fitting subset cannot identify every model coefficient."""


@dataclass(frozen=True)
class FittedModel:
    """
    Read-only result of one OLS fit.

    Attributes:
        coefficients: Point estimates indexed by term
        std_errors: Analytic standard errors indexed by term
        residual_sd: Residual standard deviation (sqrt of the OLS scale)
        n_obs: Rows used in the fit
        levels: Reference-level table the design matrix was built with
    """

    coefficients: pd.Series
    std_errors: pd.Series
    residual_sd: float
    n_obs: int
    levels: ReferenceLevels = field(repr=False)

    @property
    def terms(self) -> List[str]:
        return list(self.coefficients.index)

    @property
    def df_resid(self) -> int:
        return self.n_obs - len(self.coefficients)

    def predict(self, design: pd.DataFrame) -> np.ndarray:
        """Point predictions for an already-encoded design matrix."""
        return design[self.terms].to_numpy(dtype=float) @ self.coefficients.to_numpy()

    def coefficient_table(self, confidence: float = 0.95) -> pd.DataFrame:
        """
        Coefficients with analytic confidence intervals.

        Returns:
            DataFrame with term, estimate, std_error, ci_lower, ci_upper
        """
        if self.df_resid > 0:
            crit = stats.t.ppf(0.5 + confidence / 2, self.df_resid)
        else:
            crit = np.nan
        return pd.DataFrame({
            "term": self.terms,
            "estimate": self.coefficients.values,
            "std_error": self.std_errors.values,
            "ci_lower": self.coefficients.values - crit * self.std_errors.values,
            "ci_upper": self.coefficients.values + crit * self.std_errors.values,
        })


def _check_identifiable(design: pd.DataFrame, levels: ReferenceLevels) -> None:
    n_rows, n_cols = design.shape
    if n_rows <= n_cols:
        raise ModelFitError(
            f"Fitting subset has {n_rows} rows for {n_cols} design columns"
        )

    absent = []
    for col in CATEGORICAL_COLS:
        block = design[levels.term_family(col)].to_numpy()
        if not (block.sum(axis=1) == 0).any():
            absent.append(f"{col}={levels.reference(col)}")
        counts = block.sum(axis=0)
        absent.extend(
            f"{col}={lvl}" for lvl, n in zip(levels.levels[col][1:], counts) if n == 0
        )
    if absent:
        raise ModelFitError(
            f"Levels absent from fitting subset (undefined coefficients): {absent}"
        )

    rank = np.linalg.matrix_rank(design.to_numpy())
    if rank < n_cols:
        raise ModelFitError(f"Design matrix is rank deficient ({rank} < {n_cols})")


def fit_design(
    design: pd.DataFrame, y: np.ndarray, levels: ReferenceLevels
) -> FittedModel:
    """
    OLS on an already-encoded design matrix.

    Args:
        design: Design matrix with columns ``levels.terms``
        y: Outcome vector aligned with ``design`` rows, no missing values
        levels: Reference-level table the design was built with

    Returns:
        FittedModel

    Raises:
        ModelFitError: rank deficiency, too few rows, or a level of the
            reference table with no rows in the fitting subset
    """
    _check_identifiable(design, levels)

    endog = pd.Series(np.asarray(y, dtype=float), index=design.index)
    result = sm.OLS(endog, design).fit()

    model = FittedModel(
        coefficients=result.params[levels.terms],
        std_errors=result.bse[levels.terms],
        residual_sd=float(np.sqrt(result.scale)),
        n_obs=int(result.nobs),
        levels=levels,
    )
    logger.debug(
        f"Fitted {FORMULA} on {model.n_obs:,} rows, "
        f"residual SD={model.residual_sd:.3f}"
    )
    return model


def fit_ols(
    observations: pd.DataFrame,
    levels: ReferenceLevels,
    outcome_col: str = OUTCOME_COL,
) -> FittedModel:
    """
    Fit the additive model on rows with a present outcome.

    Args:
        observations: Observation set (rows with a missing outcome are ignored)
        levels: Global reference-level table
        outcome_col: Outcome column

    Returns:
        FittedModel
    """
    fit_df = observations[observations[outcome_col].notna()]
    design = levels.design_matrix(fit_df)
    return fit_design(design, fit_df[outcome_col].astype(float).to_numpy(), levels)


def fitted_model_from_coefficients(
    coefficients: Mapping[str, float],
    residual_sd: float,
    levels: ReferenceLevels,
    std_errors: Optional[Mapping[str, float]] = None,
) -> FittedModel:
    """
    Build a FittedModel from known generating coefficients.

    Used for synthetic scenarios where the true model is fixed in advance.
    """
    terms = levels.terms
    missing = [t for t in terms if t not in coefficients]
    extra = [t for t in coefficients if t not in terms]
    if missing or extra:
        raise ValueError(f"Coefficient terms mismatch: missing={missing}, extra={extra}")
    if residual_sd < 0:
        raise ValueError("residual_sd must be non-negative")

    coef = pd.Series({t: float(coefficients[t]) for t in terms})
    se = pd.Series({t: float((std_errors or {}).get(t, np.nan)) for t in terms})
    return FittedModel(
        coefficients=coef,
        std_errors=se,
        residual_sd=float(residual_sd),
        n_obs=0,
        levels=levels,
    )


def coefficient_dict(model: FittedModel) -> Dict[str, float]:
    """Plain ``{term: estimate}`` mapping."""
    return {t: float(v) for t, v in model.coefficients.items()}
