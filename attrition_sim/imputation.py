"""
Imputation-and-Refit Module
===========================

Fill every missing outcome with a single draw from the predictive sampler
and refit the additive model on the completed data. This is total,
single-draw imputation; repetition and pooling belong to the Monte Carlo
driver.
"""

import numpy as np
import pandas as pd
from typing import Optional
import logging

from .data_loader import OUTCOME_COL
from .design import ReferenceLevels
from .models import FittedModel, fit_design, fit_ols
from .sampler import sample_many

logger = logging.getLogger(__name__)


def complete_observations(
    observations: pd.DataFrame,
    model: FittedModel,
    rng: np.random.Generator,
    outcome_col: str = OUTCOME_COL,
) -> pd.DataFrame:
    """
    Fill missing outcomes with predictive draws.

    Present outcomes are copied unchanged; each missing outcome receives
    one draw of prediction + Normal(0, residual_sd).

    Args:
        observations: Observation set, outcome may be missing
        model: Model supplying predictions and residual scale
        rng: Caller-owned random generator
        outcome_col: Outcome column

    Returns:
        Copy of ``observations`` with no missing outcomes and an
        ``imputed`` flag column. With nothing missing, the copy equals
        the input apart from that flag.
    """
    completed = observations.copy()
    missing = completed[outcome_col].isna().to_numpy()

    if missing.any():
        completed[outcome_col] = completed[outcome_col].astype(float)
        design = model.levels.design_matrix(completed.loc[missing])
        completed.loc[missing, outcome_col] = sample_many(model, design, rng)

    completed["imputed"] = missing
    return completed


def impute_and_refit(
    observations: pd.DataFrame,
    model: FittedModel,
    rng: np.random.Generator,
    levels: Optional[ReferenceLevels] = None,
    outcome_col: str = OUTCOME_COL,
) -> FittedModel:
    """Complete the outcomes then refit with the same formula and level table."""
    completed = complete_observations(observations, model, rng, outcome_col)
    return fit_ols(completed, levels or model.levels, outcome_col)


class ImputationEngine:
    """
    Repeated imputation-and-refit against one fixed observation set.

    The design matrix, the missing-row mask and the baseline predictions
    for missing rows do not change between iterations, so they are built
    once here; ``run_once`` only draws noise and refits.
    """

    def __init__(
        self,
        observations: pd.DataFrame,
        model: FittedModel,
        levels: Optional[ReferenceLevels] = None,
        outcome_col: str = OUTCOME_COL,
    ):
        self.model = model
        self.levels = levels or model.levels
        self.outcome_col = outcome_col
        self.observations = observations

        self.design = self.levels.design_matrix(observations)
        self.outcome = observations[outcome_col].astype(float).to_numpy()
        self.missing = np.isnan(self.outcome)
        self.n_missing = int(self.missing.sum())
        self.missing_prediction = model.predict(self.design[self.missing])

        logger.info(
            f"Imputation engine: {len(self.outcome):,} rows, "
            f"{self.n_missing:,} to impute"
        )

    def draw(self, rng: np.random.Generator) -> np.ndarray:
        """Completed outcome vector for one draw."""
        y = self.outcome.copy()
        y[self.missing] = self.missing_prediction + rng.normal(
            0.0, self.model.residual_sd, size=self.n_missing
        )
        return y

    def complete(self, rng: np.random.Generator) -> pd.DataFrame:
        """Completed observation set for one draw."""
        completed = self.observations.copy()
        completed[self.outcome_col] = self.draw(rng)
        completed["imputed"] = self.missing
        return completed

    def run_once(self, rng: np.random.Generator) -> FittedModel:
        """Impute once and refit on the hoisted design matrix."""
        return fit_design(self.design, self.draw(rng), self.levels)
