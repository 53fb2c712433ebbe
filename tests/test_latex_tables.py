"""Tests for latex_tables module."""

import pandas as pd
import numpy as np
import pytest

from attrition_sim.latex_tables import (
    _escape_latex,
    coefficient_comparison_to_latex,
    generate_all_latex_tables,
    mc_summary_to_latex,
    missingness_to_latex,
    scenario_dropout_to_latex,
    subgroup_bias_to_latex,
)


@pytest.fixture
def mc_summary():
    return pd.DataFrame({
        "term": ["Intercept", "parent_education[T.Some College]"],
        "mean_estimate": [1500.12, 31.5],
        "sd_estimate": [2.1, 1.25],
        "lower_2.5pct": [1496.0, 29.1],
        "upper_97.5pct": [1504.3, 33.9],
        "n_iterations": [50, 50],
    })


@pytest.fixture
def subgroup_summary():
    return pd.DataFrame({
        "free_reduced_lunch_eligible": [0, 1],
        "gender": ["female", "male"],
        "n": [120, 15],
        "n_dropped": [40, 15],
        "dropout_rate": [0.333, 1.0],
        "expected_dropout_rate": [0.32, 0.97],
        "true_mean": [1520.5, 1440.25],
        "n_observed": [80, 0],
        "observed_mean": pd.array([1530.0, None], dtype="Float64"),
        "bias": pd.array([9.5, None], dtype="Float64"),
    })


def test_escape_latex():
    assert _escape_latex("a & b") == "a \\& b"
    assert _escape_latex("100%") == "100\\%"
    assert _escape_latex("no_special") == "no\\_special"
    assert _escape_latex(3) == "3"


def test_mc_summary_to_latex(mc_summary):
    latex = mc_summary_to_latex(mc_summary)
    assert "\\begin{table}" in latex
    assert "\\end{table}" in latex
    assert "Parent education: Some College" in latex
    assert "[29.10, 33.90]" in latex


def test_subgroup_bias_marks_undefined(subgroup_summary):
    latex = subgroup_bias_to_latex(subgroup_summary)
    lines = [l for l in latex.splitlines() if l.startswith("1 &")]
    assert len(lines) == 1
    assert lines[0].count("--") == 2
    assert "+9.50" in latex


def test_coefficient_comparison_to_latex():
    df = pd.DataFrame({
        "term": ["gender[T.male]"],
        "observed_estimate": [-12.0],
        "observed_se": [3.0],
        "mc_mean": [-10.5],
        "mc_sd": [0.8],
        "mc_lower": [-12.0],
        "mc_upper": [-9.0],
        "difference": [1.5],
        "true_value": [-10.0],
    })
    latex = coefficient_comparison_to_latex(df)
    assert "Gender: male" in latex
    assert "-12.00 (3.00)" in latex
    assert "+1.50" in latex
    assert "True" in latex


def test_missingness_to_latex():
    df = pd.DataFrame({"group": ["female", "male"], "n": [100, 80],
                       "n_missing": [10, 20], "rate": [0.1, 0.25]})
    latex = missingness_to_latex(df)
    assert "25.0\\%" in latex


def test_scenario_dropout_to_latex():
    df = pd.DataFrame({
        "name": ["reference"], "intercept": [-0.75], "lunch": [0.8],
        "parent_no_hs": [0.6], "male": [0.4], "outcome": [0.0],
        "dropout_rate": [0.41], "mean_abs_bias": [np.nan],
    })
    latex = scenario_dropout_to_latex(df)
    assert "reference" in latex
    assert "--" in latex


def test_generate_all_latex_tables(tmp_path, mc_summary, subgroup_summary):
    mc_summary.to_csv(tmp_path / "monte_carlo_summary.csv", index=False)
    subgroup_summary.to_csv(tmp_path / "attrition_bias_by_subgroup.csv", index=False)
    pd.DataFrame({"group": ["a"], "n": [1], "n_missing": [0], "rate": [0.0]}).to_csv(
        tmp_path / "missingness_by_gender.csv", index=False
    )

    saved = generate_all_latex_tables(str(tmp_path))
    names = sorted(p.split("/")[-1] for p in saved)
    assert names == [
        "attrition_bias_by_subgroup.tex",
        "missingness_by_gender.tex",
        "monte_carlo_summary.tex",
    ]
    tex = (tmp_path / "attrition_bias_by_subgroup.tex").read_text()
    assert "--" in tex


def test_generate_all_latex_tables_empty_dir(tmp_path):
    assert generate_all_latex_tables(str(tmp_path)) == []
