"""Tests for models module."""

import pandas as pd
import numpy as np
import pytest

from attrition_sim.design import build_reference_levels
from attrition_sim.models import (
    FittedModel,
    ModelFitError,
    coefficient_dict,
    fit_ols,
    fitted_model_from_coefficients,
)


def test_fit_ols_recovers_coefficients(make_observations, true_coefficients, true_residual_sd):
    df = make_observations(4000, seed=1, missing_rate=0.0)
    levels = build_reference_levels(df)
    model = fit_ols(df, levels)

    assert isinstance(model, FittedModel)
    assert model.terms == levels.terms
    assert model.n_obs == 4000
    for term, value in true_coefficients.items():
        assert abs(model.coefficients[term] - value) < 4 * model.std_errors[term] + 1e-6
    assert model.residual_sd == pytest.approx(true_residual_sd, rel=0.05)


def test_fit_ols_ignores_missing_outcomes(observations, levels):
    model = fit_ols(observations, levels)
    assert model.n_obs == observations["assessment_score"].notna().sum()


def test_fit_ols_does_not_mutate_input(observations, levels):
    before = observations.copy()
    fit_ols(observations, levels)
    pd.testing.assert_frame_equal(observations, before)


def test_fit_ols_absent_level_raises(observations, levels):
    subset = observations[observations["parent_education"] != "Graduate Degree"]
    with pytest.raises(ModelFitError, match="Graduate Degree"):
        fit_ols(subset, levels)


def test_fit_ols_absent_reference_raises(observations, levels):
    subset = observations[observations["gender"] == "male"]
    with pytest.raises(ModelFitError, match="gender=female"):
        fit_ols(subset, levels)


def test_fit_ols_too_few_rows(observations, levels):
    with pytest.raises(ModelFitError, match="rows"):
        fit_ols(observations.dropna(subset=["assessment_score"]).head(5), levels)


def test_fit_ols_rank_deficient(observations, levels):
    # lunch collinear with gender
    df = observations.copy()
    df["free_reduced_lunch_eligible"] = (df["gender"] == "male").astype("Int64")
    with pytest.raises(ModelFitError, match="rank deficient"):
        fit_ols(df, levels)


def test_predict_matches_manual(true_model, levels, observations, true_coefficients):
    design = levels.design_matrix(observations.head(10))
    expected = design.to_numpy() @ np.array([true_coefficients[t] for t in levels.terms])
    np.testing.assert_allclose(true_model.predict(design), expected)


def test_coefficient_table(observations, levels):
    model = fit_ols(observations, levels)
    table = model.coefficient_table()
    assert list(table.columns) == ["term", "estimate", "std_error", "ci_lower", "ci_upper"]
    assert (table["ci_lower"] < table["estimate"]).all()
    assert (table["estimate"] < table["ci_upper"]).all()


def test_fitted_model_from_coefficients_validates_terms(levels, true_coefficients):
    bad = dict(true_coefficients)
    bad.pop("gender[T.male]")
    with pytest.raises(ValueError, match="gender"):
        fitted_model_from_coefficients(bad, 1.0, levels)


def test_fitted_model_is_frozen(true_model, true_coefficients):
    with pytest.raises(Exception):
        true_model.residual_sd = 0.0
    assert coefficient_dict(true_model) == true_coefficients
