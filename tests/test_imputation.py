"""Tests for imputation module."""

import pandas as pd
import numpy as np
import pytest

from attrition_sim.imputation import (
    ImputationEngine,
    complete_observations,
    impute_and_refit,
)
from attrition_sim.models import fit_ols


def test_complete_observations_fills_every_missing(observations, true_model):
    completed = complete_observations(observations, true_model, np.random.default_rng(0))
    assert completed["assessment_score"].notna().all()
    assert completed["imputed"].sum() == observations["assessment_score"].isna().sum()


def test_complete_observations_keeps_present_scores(observations, true_model):
    completed = complete_observations(observations, true_model, np.random.default_rng(0))
    present = observations["assessment_score"].notna()
    np.testing.assert_array_equal(
        completed.loc[present, "assessment_score"].to_numpy(),
        observations.loc[present, "assessment_score"].to_numpy(),
    )
    assert not completed.loc[present, "imputed"].any()


def test_complete_observations_does_not_mutate(observations, true_model):
    before = observations.copy()
    complete_observations(observations, true_model, np.random.default_rng(0))
    pd.testing.assert_frame_equal(observations, before)


def test_zero_missing_completion_is_identity(complete_data, true_model):
    completed = complete_observations(complete_data, true_model, np.random.default_rng(0))
    pd.testing.assert_frame_equal(completed.drop(columns="imputed"), complete_data)
    assert not completed["imputed"].any()


def test_zero_missing_completion_keeps_outcome_dtype(complete_data, true_model):
    df = complete_data.assign(
        assessment_score=complete_data["assessment_score"].round().astype("Int64")
    )
    completed = complete_observations(df, true_model, np.random.default_rng(0))
    pd.testing.assert_frame_equal(completed.drop(columns="imputed"), df)


def test_impute_and_refit_uses_same_terms(observations, true_model, levels):
    model = impute_and_refit(observations, true_model, np.random.default_rng(1), levels)
    assert model.terms == levels.terms
    assert model.n_obs == len(observations)


class TestImputationEngine:

    def test_hoisted_state(self, observations, true_model):
        engine = ImputationEngine(observations, true_model)
        assert engine.n_missing == observations["assessment_score"].isna().sum()
        assert list(engine.design.columns) == true_model.terms
        assert engine.missing_prediction.shape == (engine.n_missing,)

    def test_draw_matches_complete_observations(self, observations, true_model):
        engine = ImputationEngine(observations, true_model)
        y = engine.draw(np.random.default_rng(5))
        completed = complete_observations(observations, true_model, np.random.default_rng(5))
        np.testing.assert_allclose(y, completed["assessment_score"].to_numpy())

    def test_draw_keeps_present_scores(self, observations, true_model):
        engine = ImputationEngine(observations, true_model)
        y = engine.draw(np.random.default_rng(0))
        present = ~engine.missing
        np.testing.assert_array_equal(y[present], engine.outcome[present])
        assert not np.isnan(y).any()

    def test_run_once_matches_refit(self, observations, true_model):
        engine = ImputationEngine(observations, true_model)
        model = engine.run_once(np.random.default_rng(9))
        expected = impute_and_refit(observations, true_model, np.random.default_rng(9))
        np.testing.assert_allclose(
            model.coefficients.to_numpy(), expected.coefficients.to_numpy(), rtol=1e-10
        )

    def test_complete_frame(self, observations, true_model):
        engine = ImputationEngine(observations, true_model)
        completed = engine.complete(np.random.default_rng(0))
        assert completed["assessment_score"].notna().all()
        assert completed["imputed"].sum() == engine.n_missing

    def test_zero_missing_refit_equals_observed_fit(self, complete_data, true_model, levels):
        engine = ImputationEngine(complete_data, true_model, levels)
        assert engine.n_missing == 0
        refit = engine.run_once(np.random.default_rng(0))
        observed = fit_ols(complete_data, levels)
        np.testing.assert_allclose(
            refit.coefficients.to_numpy(), observed.coefficients.to_numpy(), rtol=1e-10
        )
