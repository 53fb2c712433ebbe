"""Tests for descriptives module."""

import pandas as pd
import numpy as np
import pytest

from attrition_sim.descriptives import (
    generate_table1,
    missingness_table,
    save_descriptives,
)


def test_missingness_table():
    df = pd.DataFrame({
        "gender": ["female", "female", "male", "male", "male"],
        "assessment_score": [1500.0, np.nan, np.nan, np.nan, 1400.0],
    })
    table = missingness_table(df, "gender")
    assert list(table.columns) == ["group", "n", "n_missing", "rate"]

    female = table[table["group"] == "female"].iloc[0]
    assert female["n"] == 2
    assert female["n_missing"] == 1
    assert female["rate"] == pytest.approx(0.5)

    male = table[table["group"] == "male"].iloc[0]
    assert male["rate"] == pytest.approx(2 / 3)


def test_missingness_table_keeps_missing_group():
    df = pd.DataFrame({
        "free_reduced_lunch_eligible": pd.array([1, 0, None], dtype="Int64"),
        "assessment_score": [np.nan, 1500.0, np.nan],
    })
    table = missingness_table(df, "free_reduced_lunch_eligible")
    assert table["n"].sum() == 3
    assert "<NA>" in table["group"].tolist()


def test_missingness_rates_match_overall(observations):
    table = missingness_table(observations, "parent_education")
    assert table["n"].sum() == len(observations)
    assert table["n_missing"].sum() == observations["assessment_score"].isna().sum()
    assert table["rate"].between(0, 1).all()


def test_generate_table1(observations):
    table = generate_table1(observations)
    assert list(table.columns[:2]) == ["Variable", "Category"]
    assert "Overall" in table.columns
    assert {"2016", "2017", "2018", "2019"} <= set(table.columns)
    assert table.iloc[0]["Overall"] == f"{len(observations):,}"
    assert "Parent Education" in table["Variable"].values
    assert "Eligible" in table["Category"].values


def test_save_descriptives(observations, tmp_path):
    saved = save_descriptives(observations, str(tmp_path), ["gender", "year"])
    names = {p.split("/")[-1] for p in saved}
    assert {"missingness_by_gender.csv", "missingness_by_year.csv",
            "table1_descriptives.csv", "table1_descriptives.tex"} == names

    tex = (tmp_path / "table1_descriptives.tex").read_text()
    assert "\\begin{table}" in tex
