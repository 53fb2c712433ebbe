"""
Synthetic Predictive Sampler
============================

Draw plausible outcomes from a fitted model: point prediction plus
Gaussian noise at the model's residual scale. The random source is always
supplied by the caller.
"""

import pandas as pd
import numpy as np
from typing import Union

from .models import FittedModel


def sample(
    model: FittedModel,
    covariate_row: Union[pd.Series, pd.DataFrame],
    rng: np.random.Generator,
) -> float:
    """
    Simulate one outcome for a single observation.

    Args:
        model: Fitted model
        covariate_row: One observation (Series or single-row DataFrame)
        rng: Caller-owned random generator

    Returns:
        prediction + Normal(0, model.residual_sd) draw
    """
    if isinstance(covariate_row, pd.Series):
        covariate_row = covariate_row.to_frame().T
    design = model.levels.design_matrix(covariate_row)
    prediction = float(model.predict(design)[0])
    return prediction + float(rng.normal(0.0, model.residual_sd))


def sample_many(
    model: FittedModel, design: pd.DataFrame, rng: np.random.Generator
) -> np.ndarray:
    """Vectorised :func:`sample` for an encoded design matrix."""
    prediction = model.predict(design)
    return prediction + rng.normal(0.0, model.residual_sd, size=len(prediction))
