"""Shared test fixtures."""

import pandas as pd
import numpy as np
import pytest

from attrition_sim.design import PARENT_EDUCATION_LEVELS, build_reference_levels
from attrition_sim.models import fitted_model_from_coefficients

YEARS = ["2016", "2017", "2018", "2019"]

TRUE_COEFFICIENTS = {
    "Intercept": 1500.0,
    "year[T.2017]": 20.0,
    "year[T.2018]": 40.0,
    "year[T.2019]": 60.0,
    "free_reduced_lunch_eligible": -50.0,
    "gender[T.male]": -10.0,
    "parent_education[T.High School Graduate]": 15.0,
    "parent_education[T.Some College]": 30.0,
    "parent_education[T.Associate Degree]": 40.0,
    "parent_education[T.Bachelor's Degree]": 60.0,
    "parent_education[T.Graduate Degree]": 80.0,
}

TRUE_RESIDUAL_SD = 40.0

PARENT_EDU_PROBS = [0.2, 0.2, 0.15, 0.15, 0.15, 0.15]


def _covariates(rng: np.random.Generator, n: int) -> pd.DataFrame:
    return pd.DataFrame({
        "student_id": np.arange(n) // len(YEARS),
        "year": np.tile(YEARS, n // len(YEARS) + 1)[:n],
        "gender": rng.choice(["female", "male"], n),
        "parent_education": rng.choice(PARENT_EDUCATION_LEVELS, n, p=PARENT_EDU_PROBS),
        "free_reduced_lunch_eligible": pd.array(rng.choice([0, 1], n), dtype="Int64"),
    })


@pytest.fixture
def make_observations():
    """
    Factory for long-form observations drawn from the known generating model.

    Call as ``make_observations(n, seed=..., missing_rate=...)``; missing
    outcomes are removed completely at random.
    """
    def _make(n: int = 600, seed: int = 42, missing_rate: float = 0.2) -> pd.DataFrame:
        rng = np.random.default_rng(seed)
        df = _covariates(rng, n)
        levels = build_reference_levels(df)
        design = levels.design_matrix(df)
        coef = np.array([TRUE_COEFFICIENTS[t] for t in levels.terms])
        df["assessment_score"] = design.to_numpy() @ coef + rng.normal(
            0, TRUE_RESIDUAL_SD, n
        )
        if missing_rate > 0:
            missing = rng.random(n) < missing_rate
            df.loc[missing, "assessment_score"] = np.nan
        return df

    return _make


@pytest.fixture
def observations(make_observations):
    """600 observations, about 20% missing outcomes."""
    return make_observations()


@pytest.fixture
def complete_data(make_observations):
    """400 observations with every outcome present."""
    return make_observations(400, seed=7, missing_rate=0.0)


@pytest.fixture
def levels(observations):
    return build_reference_levels(observations)


@pytest.fixture
def true_model(levels):
    """The generating model as a FittedModel."""
    return fitted_model_from_coefficients(TRUE_COEFFICIENTS, TRUE_RESIDUAL_SD, levels)


@pytest.fixture
def wide_raw():
    """Small wide-format raw file with data-quality problems."""
    return pd.DataFrame({
        "student_id": [1, 2, 3, 4],
        "gender": ["Female", " M", "male", "unknown"],
        "parent_education": [
            "Not a High School Graduate",
            "Some College",
            "Graduate Degree",
            "High School Graduate",
        ],
        "assessment_score_2016": [1450.0, 1520.0, np.nan, 1600.0],
        "assessment_score_2017": [1480.0, 9999.0, 1610.0, 1630.0],
        "assessment_score_2015": [1400.0, 1400.0, 1400.0, 1400.0],
        "free_reduced_lunch_eligible_2016": ["1", "0", "TRUE", "0"],
        "free_reduced_lunch_eligible_2017": [1, "yes", False, 0],
        "free_reduced_lunch_eligible_2015": [1, 1, 1, 1],
    })


@pytest.fixture
def sample_config():
    """Minimal config for testing."""
    return {
        "paths": {
            "raw_data": "data/raw/",
            "tables": "results/tables/",
            "figures": "results/figures/",
        },
        "data": {
            "filename": "assessment_wide.csv",
            "id_columns": ["student_id"],
            "static_columns": ["gender", "parent_education"],
            "years": ["2016", "2017"],
            "outcome_range": [100, 3000],
        },
        "model": {
            "references": {
                "year": None,
                "gender": "female",
                "parent_education": "Not a High School Graduate",
            },
        },
        "attrition": {
            "group_columns": ["free_reduced_lunch_eligible", "parent_education", "gender"],
            "scenario": {"name": "reference"},
            "sweep": [
                {"name": "strong", "lunch": 2.5, "parent_no_hs": 2.0},
                {"name": "informative", "outcome": -1.0},
            ],
        },
        "monte_carlo": {
            "n_iterations": 10,
            "seed": 123,
            "n_jobs": 1,
            "term_family": "parent_education",
        },
    }


@pytest.fixture
def true_coefficients():
    return dict(TRUE_COEFFICIENTS)


@pytest.fixture
def true_residual_sd():
    return TRUE_RESIDUAL_SD
