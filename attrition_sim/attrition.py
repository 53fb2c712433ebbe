"""
Attrition Simulation Module
===========================

Simulate informative dropout on synthetic "true" outcomes and summarize
the resulting bias by subgroup. Also diagnoses the observed missingness
pattern (observed vs. missing-outcome rows) in the real data.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass, fields, asdict
from typing import Dict, List, Optional
import logging

from scipy import stats
from scipy.special import expit
from sklearn.linear_model import LogisticRegression

from .data_loader import OUTCOME_COL, LUNCH_COL, GENDER_COL, PARENT_EDU_COL
from .design import NO_HS_LEVEL, ReferenceLevels
from .models import FittedModel
from .sampler import sample_many

logger = logging.getLogger(__name__)

DEFAULT_GROUP_COLS = [LUNCH_COL, PARENT_EDU_COL, GENDER_COL]


@dataclass(frozen=True)
class AttritionScenario:
    """
    Logistic dropout mechanism.

    p = sigmoid(intercept + lunch * FRL + parent_no_hs * [NHS]
                + male * [male] + outcome * z(true_outcome))

    The ``outcome`` weight on the standardized true outcome makes the
    missingness informative; it is zero in the reference configuration.
    """

    name: str = "reference"
    intercept: float = -0.75
    lunch: float = 0.8
    parent_no_hs: float = 0.6
    male: float = 0.4
    outcome: float = 0.0

    @classmethod
    def from_dict(cls, params: Dict) -> "AttritionScenario":
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown attrition parameters: {sorted(unknown)}")
        return cls(**params)

    def to_dict(self) -> Dict:
        return asdict(self)


def risk_indicators(df: pd.DataFrame) -> pd.DataFrame:
    """The three 0/1 group indicators used by the dropout mechanism."""
    lunch = df[LUNCH_COL]
    if lunch.isna().any():
        raise ValueError(f"{LUNCH_COL} must be present for every row")
    return pd.DataFrame({
        "lunch": pd.to_numeric(lunch).astype(float).to_numpy(),
        "parent_no_hs": (df[PARENT_EDU_COL] == NO_HS_LEVEL).to_numpy(dtype=float),
        "male": (df[GENDER_COL] == "male").to_numpy(dtype=float),
    }, index=df.index)


def dropout_probabilities(
    sim: pd.DataFrame, scenario: AttritionScenario
) -> np.ndarray:
    """
    Per-row dropout probability under a scenario.

    Args:
        sim: Simulated dataset (needs ``true_outcome`` when the scenario
            has a non-zero outcome weight)
        scenario: Calibration constants

    Returns:
        Array of probabilities in (0, 1)
    """
    ind = risk_indicators(sim)
    eta = (
        scenario.intercept
        + scenario.lunch * ind["lunch"].to_numpy()
        + scenario.parent_no_hs * ind["parent_no_hs"].to_numpy()
        + scenario.male * ind["male"].to_numpy()
    )
    if scenario.outcome != 0.0:
        truth = sim["true_outcome"].to_numpy(dtype=float)
        sd = truth.std()
        z = (truth - truth.mean()) / sd if sd > 0 else np.zeros_like(truth)
        eta = eta + scenario.outcome * z
    return expit(eta)


def simulate_true_outcomes(
    observations: pd.DataFrame,
    model: FittedModel,
    rng: np.random.Generator,
    levels: Optional[ReferenceLevels] = None,
) -> pd.DataFrame:
    """Copy of ``observations`` with a synthetic ``true_outcome`` column."""
    levels = levels or model.levels
    sim = observations.copy()
    sim["true_outcome"] = sample_many(model, levels.design_matrix(sim), rng)
    return sim


def apply_dropout(
    sim: pd.DataFrame, probabilities, rng: np.random.Generator
) -> pd.DataFrame:
    """
    Bernoulli dropout per row.

    Adds ``dropout_probability``, ``dropped`` and ``observed_outcome``
    (equal to ``true_outcome`` unless dropped, NaN otherwise).
    """
    p = np.asarray(probabilities, dtype=float)
    if p.shape != (len(sim),):
        raise ValueError(f"Expected {len(sim)} probabilities, got shape {p.shape}")
    if np.any((p < 0) | (p > 1)) or np.isnan(p).any():
        raise ValueError("Dropout probabilities must lie in [0, 1]")

    dropped = rng.random(len(sim)) < p

    out = sim.copy()
    out["dropout_probability"] = p
    out["dropped"] = dropped
    out["observed_outcome"] = out["true_outcome"].where(~dropped)
    return out


class AttritionSimulator:
    """Apply a dropout scenario to synthetic outcomes and measure the bias."""

    def __init__(
        self,
        scenario: Optional[AttritionScenario] = None,
        group_cols: Optional[List[str]] = None,
    ):
        self.scenario = scenario or AttritionScenario()
        self.group_cols = group_cols or list(DEFAULT_GROUP_COLS)

    def simulate(
        self,
        observations: pd.DataFrame,
        model: FittedModel,
        rng: np.random.Generator,
    ) -> pd.DataFrame:
        """
        Generate true outcomes from ``model`` and apply the scenario.

        Args:
            observations: Modeling sample (covariates present)
            model: Model used as the synthetic ground truth
            rng: Caller-owned random generator

        Returns:
            Simulated dataset
        """
        sim = simulate_true_outcomes(observations, model, rng)
        p = dropout_probabilities(sim, self.scenario)
        sim = apply_dropout(sim, p, rng)
        logger.info(
            f"Scenario '{self.scenario.name}': dropped {int(sim['dropped'].sum()):,} "
            f"of {len(sim):,} rows ({sim['dropped'].mean():.1%})"
        )
        return sim

    def subgroup_summary(self, sim: pd.DataFrame) -> pd.DataFrame:
        """
        Dropout and bias by subgroup.

        Subgroups with no surviving rows have ``observed_mean`` and
        ``bias`` set to ``<NA>``.

        Returns:
            DataFrame with group columns, n, n_dropped, dropout_rate,
            expected_dropout_rate, true_mean, n_observed, observed_mean, bias
        """
        rows = []
        for key, g in sim.groupby(self.group_cols, sort=True):
            if not isinstance(key, tuple):
                key = (key,)
            kept = g.loc[~g["dropped"], "observed_outcome"]
            true_mean = float(g["true_outcome"].mean())

            if len(kept) > 0:
                observed_mean = float(kept.mean())
                bias = observed_mean - true_mean
            else:
                observed_mean = pd.NA
                bias = pd.NA

            row = dict(zip(self.group_cols, key))
            row.update({
                "n": len(g),
                "n_dropped": int(g["dropped"].sum()),
                "dropout_rate": float(g["dropped"].mean()),
                "expected_dropout_rate": float(g["dropout_probability"].mean()),
                "true_mean": true_mean,
                "n_observed": len(kept),
                "observed_mean": observed_mean,
                "bias": bias,
            })
            rows.append(row)

        summary = pd.DataFrame(rows)
        summary["observed_mean"] = summary["observed_mean"].astype("Float64")
        summary["bias"] = summary["bias"].astype("Float64")

        n_undefined = int(summary["bias"].isna().sum())
        if n_undefined:
            logger.warning(f"{n_undefined} subgroups lost every row; bias undefined")
        return summary


def overall_bias(summary: pd.DataFrame) -> Dict[str, float]:
    """Aggregate a subgroup summary over subgroups with a defined bias."""
    defined = summary[summary["bias"].notna()]
    bias = defined["bias"].astype(float)
    weights = defined["n"].astype(float)
    return {
        "n_subgroups": int(len(summary)),
        "n_undefined": int(len(summary) - len(defined)),
        "mean_abs_bias": float(bias.abs().mean()) if len(defined) else np.nan,
        "weighted_bias": float(np.average(bias, weights=weights))
        if len(defined) else np.nan,
        "overall_dropout_rate": float(
            np.average(summary["dropout_rate"], weights=summary["n"])
        ),
    }


def estimate_dropout_calibration(
    observations: pd.DataFrame, outcome_col: str = OUTCOME_COL
) -> AttritionScenario:
    """
    Fit the dropout mechanism to the observed missingness pattern.

    Logistic regression of "outcome missing" on the three risk indicators;
    the fitted intercept and slopes form an empirical scenario.
    """
    X = risk_indicators(observations)
    y = observations[outcome_col].isna().astype(int)
    if y.nunique() < 2:
        raise ValueError("Outcome missingness has a single class; nothing to calibrate")

    lr = LogisticRegression(C=1e6, max_iter=1000)
    lr.fit(X.to_numpy(), y.to_numpy())
    coef = dict(zip(X.columns, lr.coef_[0]))

    scenario = AttritionScenario(
        name="empirical",
        intercept=float(lr.intercept_[0]),
        lunch=float(coef["lunch"]),
        parent_no_hs=float(coef["parent_no_hs"]),
        male=float(coef["male"]),
    )
    logger.info(f"Empirical dropout calibration: {scenario}")
    return scenario


class AttritionAnalyzer:
    """Compare demographics of rows with an observed vs. missing outcome."""

    def __init__(
        self,
        df: pd.DataFrame,
        outcome_col: str = OUTCOME_COL,
        group_cols: Optional[List[str]] = None,
    ):
        self.df = df
        self.outcome_col = outcome_col
        self.group_cols = [
            c for c in (group_cols or DEFAULT_GROUP_COLS + ["year"]) if c in df.columns
        ]

        self.is_observed = df[outcome_col].notna()
        self.n_observed = int(self.is_observed.sum())
        self.n_missing = int((~self.is_observed).sum())
        logger.info(
            f"Attrition analysis: {self.n_observed:,} observed, "
            f"{self.n_missing:,} missing outcomes"
        )

    def compare_demographics(self) -> pd.DataFrame:
        """
        Category distributions for observed vs. missing-outcome rows.

        Returns:
            DataFrame with Variable, Category, Observed_N, Observed_Pct,
            Missing_N, Missing_Pct
        """
        observed = self.df[self.is_observed]
        missing = self.df[~self.is_observed]

        rows = []
        for var in self.group_cols:
            o_counts = observed[var].value_counts()
            m_counts = missing[var].value_counts()
            all_cats = sorted(set(o_counts.index) | set(m_counts.index), key=str)
            for cat in all_cats:
                o_n = int(o_counts.get(cat, 0))
                m_n = int(m_counts.get(cat, 0))
                rows.append({
                    "Variable": var,
                    "Category": str(cat),
                    "Observed_N": o_n,
                    "Observed_Pct": round(100 * o_n / len(observed), 1)
                    if len(observed) > 0 else 0,
                    "Missing_N": m_n,
                    "Missing_Pct": round(100 * m_n / len(missing), 1)
                    if len(missing) > 0 else 0,
                })

        return pd.DataFrame(rows)

    def test_independence(self) -> pd.DataFrame:
        """
        Chi-squared test of missingness vs. each demographic variable.

        Returns:
            DataFrame with Variable, chi2, dof, p_value, cramers_v
        """
        rows = []
        for var in self.group_cols:
            table = pd.crosstab(self.df[var], self.is_observed)
            if table.shape[0] < 2 or table.shape[1] < 2:
                continue

            chi2, p_val, dof, _ = stats.chi2_contingency(table.values)
            n_total = table.values.sum()
            k = min(table.shape)
            cramers_v = np.sqrt(chi2 / (n_total * (k - 1))) if k > 1 else 0.0

            rows.append({
                "Variable": var,
                "chi2": round(float(chi2), 3),
                "dof": int(dof),
                "p_value": round(float(p_val), 4),
                "cramers_v": round(float(cramers_v), 3),
            })

        return pd.DataFrame(rows, columns=["Variable", "chi2", "dof", "p_value", "cramers_v"])

    def get_summary(self) -> dict:
        """Return summary statistics."""
        tests = self.test_independence()
        return {
            "n_total": len(self.df),
            "n_observed": self.n_observed,
            "n_missing": self.n_missing,
            "missing_rate": round(self.n_missing / len(self.df), 3)
            if len(self.df) else 0.0,
            "significant_differences": tests.loc[
                tests["p_value"] < 0.05, "Variable"
            ].tolist(),
        }
