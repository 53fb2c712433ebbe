"""Tests for visualization module."""

import pandas as pd
import numpy as np
import pytest
import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for tests
import matplotlib.pyplot as plt

from attrition_sim.attrition import AttritionSimulator
from attrition_sim.models import fit_ols
from attrition_sim.monte_carlo import MonteCarloDriver
from attrition_sim.sensitivity import compare_coefficients
from attrition_sim.visualization import (
    create_all_figures,
    plot_coefficient_comparison,
    plot_coefficient_distributions,
    plot_dropout_rates,
    plot_scenario_bias,
    plot_subgroup_bias,
)


@pytest.fixture(autouse=True)
def close_figures():
    """Close all figures after each test to free memory."""
    yield
    plt.close("all")


@pytest.fixture
def analysis(observations, levels, true_model):
    baseline = fit_ols(observations, levels)
    driver = MonteCarloDriver(n_iterations=8, seed=0)
    samples = driver.run(observations, baseline, levels)
    summary = driver.summarize(samples)

    simulator = AttritionSimulator()
    sim = simulator.simulate(observations, baseline, np.random.default_rng(0))
    return {
        "baseline_model": baseline,
        "mc_samples": samples,
        "mc_summary": summary,
        "comparison": compare_coefficients(baseline, summary, true_model),
        "subgroup_summary": simulator.subgroup_summary(sim),
    }


def test_plot_coefficient_distributions(analysis):
    fig = plot_coefficient_distributions(
        analysis["mc_samples"], observed=analysis["baseline_model"].coefficients
    )
    assert isinstance(fig, plt.Figure)
    visible = [ax for ax in fig.axes if ax.get_visible()]
    assert len(visible) == 5


def test_plot_coefficient_distributions_save(analysis, tmp_path):
    path = str(tmp_path / "dist.png")
    plot_coefficient_distributions(analysis["mc_samples"], save_path=path)
    assert (tmp_path / "dist.png").exists()
    assert (tmp_path / "dist.pdf").exists()


def test_plot_coefficient_comparison(analysis):
    fig = plot_coefficient_comparison(analysis["comparison"])
    assert isinstance(fig, plt.Figure)


def test_plot_subgroup_bias_with_undefined(analysis):
    summary = analysis["subgroup_summary"].copy()
    summary.loc[0, "bias"] = pd.NA
    fig = plot_subgroup_bias(summary)
    texts = [t.get_text() for t in fig.axes[0].texts]
    assert any("undefined" in t for t in texts)


def test_plot_dropout_rates(analysis):
    fig = plot_dropout_rates(analysis["subgroup_summary"])
    assert isinstance(fig, plt.Figure)


def test_plot_scenario_bias(analysis):
    comp = analysis["comparison"]
    stacked = pd.concat([
        comp.assign(scenario="reference"),
        comp.assign(scenario="strong", observed_bias=comp["observed_bias"] * 2),
    ], ignore_index=True)
    fig = plot_scenario_bias(stacked)
    assert isinstance(fig, plt.Figure)


def test_create_all_figures(analysis, tmp_path):
    saved = create_all_figures(analysis, str(tmp_path / "figs"))
    assert len(saved) == 4
    for path in saved:
        assert (tmp_path / "figs" / path.split("/")[-1]).exists()
