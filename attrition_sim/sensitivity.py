"""
Sensitivity Analysis Module
============================

Compare observed-only estimates with the Monte Carlo imputed-complete
distribution, and evaluate how the findings move across attrition
scenarios.
"""

import numpy as np
import pandas as pd
from typing import Dict, List, Optional
from pathlib import Path
import logging

from .attrition import (
    AttritionAnalyzer,
    AttritionScenario,
    AttritionSimulator,
    overall_bias,
)
from .data_loader import OUTCOME_COL, modeling_sample
from .design import ReferenceLevels, build_reference_levels
from .models import FittedModel, fit_ols
from .monte_carlo import MonteCarloDriver

logger = logging.getLogger(__name__)


def compare_coefficients(
    observed_model: FittedModel,
    mc_summary: pd.DataFrame,
    true_model: Optional[FittedModel] = None,
) -> pd.DataFrame:
    """
    Observed-only vs. imputed-complete coefficient estimates.

    Args:
        observed_model: Fit on rows with a present outcome
        mc_summary: Monte Carlo summary (one row per term)
        true_model: Known generating model, when the data are synthetic

    Returns:
        DataFrame with term, observed_estimate, observed_se, mc_mean,
        mc_sd, mc_lower, mc_upper, difference; plus true_value,
        observed_bias, mc_bias and bias_reduction_pct given ``true_model``
    """
    mc = mc_summary.set_index("term")
    terms = [t for t in observed_model.terms if t in mc.index]

    table = pd.DataFrame({
        "term": terms,
        "observed_estimate": observed_model.coefficients[terms].to_numpy(),
        "observed_se": observed_model.std_errors[terms].to_numpy(),
        "mc_mean": mc.loc[terms, "mean_estimate"].to_numpy(),
        "mc_sd": mc.loc[terms, "sd_estimate"].to_numpy(),
        "mc_lower": mc.loc[terms, "lower_2.5pct"].to_numpy(),
        "mc_upper": mc.loc[terms, "upper_97.5pct"].to_numpy(),
    })
    table["difference"] = table["mc_mean"] - table["observed_estimate"]

    if true_model is not None:
        table["true_value"] = true_model.coefficients[terms].to_numpy()
        table["observed_bias"] = table["observed_estimate"] - table["true_value"]
        table["mc_bias"] = table["mc_mean"] - table["true_value"]
        obs_abs = table["observed_bias"].abs()
        table["bias_reduction_pct"] = np.where(
            obs_abs > 0,
            100 * (1 - table["mc_bias"].abs() / obs_abs.where(obs_abs > 0, 1.0)),
            np.nan,
        )

    return table


def scenarios_from_config(config: dict) -> List[AttritionScenario]:
    """
    Default scenario followed by the sweep entries.

    Each sweep entry overrides fields of the default scenario.
    """
    att_cfg = config.get("attrition", {})
    base = dict(AttritionScenario().to_dict())
    base.update(att_cfg.get("scenario", {}))
    scenarios = [AttritionScenario.from_dict(base)]

    for entry in att_cfg.get("sweep", []):
        params = dict(base)
        params.update(entry)
        scenarios.append(AttritionScenario.from_dict(params))

    names = [s.name for s in scenarios]
    if len(set(names)) != len(names):
        raise ValueError(f"Scenario names must be unique: {names}")
    return scenarios


class ScenarioSensitivityAnalyzer:
    """
    Run the simulate / fit observed / impute pipeline for each attrition
    scenario against a known generating model.

    The generating model plays the ground truth: each scenario draws
    synthetic outcomes from it, drops rows, fits the observed remainder and
    runs the Monte Carlo imputation from that observed fit. All scenarios
    share the Monte Carlo seed (common random numbers).
    """

    def __init__(
        self,
        config: dict,
        scenarios: Optional[List[AttritionScenario]] = None,
    ):
        self.config = config
        self.scenarios = scenarios or scenarios_from_config(config)
        mc_cfg = config.get("monte_carlo", {})
        self.n_iterations = mc_cfg.get("n_iterations", 100)
        self.seed = mc_cfg.get("seed", 42)
        self.n_jobs = mc_cfg.get("n_jobs", 1)
        self.group_cols = config.get("attrition", {}).get("group_columns")
        self.results: Dict[str, Dict] = {}

    def run_scenarios(
        self,
        observations: pd.DataFrame,
        true_model: FittedModel,
        levels: Optional[ReferenceLevels] = None,
    ) -> Dict[str, Dict]:
        """
        Run every scenario.

        Args:
            observations: Modeling sample (covariates and lunch present)
            true_model: Generating model for the synthetic outcomes
            levels: Reference-level table (defaults to the model's)

        Returns:
            Dictionary mapping scenario name to results dict
        """
        levels = levels or true_model.levels

        for k, scenario in enumerate(self.scenarios):
            logger.info(f"=== Scenario: {scenario.name} ===")
            rng = np.random.default_rng([self.seed, k])

            simulator = AttritionSimulator(scenario, self.group_cols)
            sim = simulator.simulate(observations, true_model, rng)
            subgroups = simulator.subgroup_summary(sim)

            observed = sim.assign(**{OUTCOME_COL: sim["observed_outcome"]})
            observed_model = fit_ols(observed, levels)

            driver = MonteCarloDriver(self.n_iterations, self.seed, self.n_jobs)
            samples = driver.run(observed, observed_model, levels)
            summary = driver.summarize(samples)

            comparison = compare_coefficients(observed_model, summary, true_model)

            self.results[scenario.name] = {
                "scenario": scenario,
                "dropout_rate": float(sim["dropped"].mean()),
                "subgroup_summary": subgroups,
                "overall_bias": overall_bias(subgroups),
                "observed_model": observed_model,
                "mc_summary": summary,
                "comparison": comparison,
            }
            logger.info(
                f"  Dropout rate={sim['dropped'].mean():.1%}, "
                f"mean |observed bias|={comparison['observed_bias'].abs().mean():.3f}"
            )

        return self.results

    # ------------------------------------------------------------------
    # Comparison tables
    # ------------------------------------------------------------------

    def compare_dropout(self) -> pd.DataFrame:
        """Scenario constants with the realised dropout and subgroup bias."""
        rows = []
        for name, res in self.results.items():
            row = res["scenario"].to_dict()
            row["dropout_rate"] = res["dropout_rate"]
            row.update(res["overall_bias"])
            rows.append(row)
        return pd.DataFrame(rows)

    def compare_coefficients(self) -> pd.DataFrame:
        """Observed vs. imputed coefficient comparison, stacked by scenario."""
        frames = []
        for name, res in self.results.items():
            comp = res["comparison"].copy()
            comp.insert(0, "scenario", name)
            frames.append(comp)
        return pd.concat(frames, ignore_index=True)

    def compare_subgroups(self) -> pd.DataFrame:
        """Subgroup dropout and bias, stacked by scenario."""
        frames = []
        for name, res in self.results.items():
            sub = res["subgroup_summary"].copy()
            sub.insert(0, "scenario", name)
            frames.append(sub)
        return pd.concat(frames, ignore_index=True)

    def save_results(self, output_dir: str) -> List[str]:
        """Save all scenario comparison tables."""
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        saved = []

        tables = {
            "scenario_dropout.csv": self.compare_dropout,
            "scenario_coefficients.csv": self.compare_coefficients,
            "scenario_subgroups.csv": self.compare_subgroups,
        }

        for fname, method in tables.items():
            path = out / fname
            method().to_csv(path, index=False)
            saved.append(str(path))
            logger.info(f"Saved {path}")

        return saved


def run_attrition_analysis(config: dict, df: pd.DataFrame) -> Dict:
    """
    Full analysis on one prepared observation set.

    1. Reference levels and observed-only baseline fit
    2. Monte Carlo imputation from the baseline
    3. Observed vs. imputed coefficient comparison
    4. Simulated dropout under the configured scenario
    5. Observed vs. missing-outcome demographics

    Args:
        config: Configuration dictionary
        df: Prepared long-form observations

    Returns:
        Dictionary of result objects and tables
    """
    sample = modeling_sample(df)
    references = config.get("model", {}).get("references")
    levels = build_reference_levels(sample, references)

    baseline = fit_ols(sample, levels)
    logger.info(
        f"Baseline fit: {baseline.n_obs:,} rows, residual SD={baseline.residual_sd:.2f}"
    )

    mc_cfg = config.get("monte_carlo", {})
    driver = MonteCarloDriver(
        n_iterations=mc_cfg.get("n_iterations", 100),
        seed=mc_cfg.get("seed", 42),
        n_jobs=mc_cfg.get("n_jobs", 1),
    )
    samples = driver.run(sample, baseline, levels)
    summary = driver.summarize(samples)
    comparison = compare_coefficients(baseline, summary)

    scenario = scenarios_from_config(config)[0]
    simulator = AttritionSimulator(
        scenario, config.get("attrition", {}).get("group_columns")
    )
    rng = np.random.default_rng(mc_cfg.get("seed", 42))
    sim = simulator.simulate(sample, baseline, rng)
    subgroups = simulator.subgroup_summary(sim)

    analyzer = AttritionAnalyzer(df)

    return {
        "levels": levels,
        "baseline_model": baseline,
        "mc_samples": samples,
        "mc_summary": summary,
        "family_summary": driver.summarize(
            samples, mc_cfg.get("term_family", "parent_education")
        ),
        "comparison": comparison,
        "simulation": sim,
        "subgroup_summary": subgroups,
        "overall_bias": overall_bias(subgroups),
        "demographics": analyzer.compare_demographics(),
        "independence_tests": analyzer.test_independence(),
    }
