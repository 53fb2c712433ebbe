"""
Visualization Module
====================

Publication-quality figures for the attrition sensitivity study.
"""

import pandas as pd
import numpy as np
from typing import List, Optional
from pathlib import Path
import logging

import matplotlib.pyplot as plt
import seaborn as sns

from .design import term_label

logger = logging.getLogger(__name__)

# ============================================================================
# Publication style constants
# ============================================================================

# Journal column widths (inches)
FIG_SINGLE = 3.5
FIG_ONE_HALF = 4.72
FIG_DOUBLE = 7.2

# Colorblind-safe palette (Wong 2011)
OBSERVED_COLOR = "#D55E00"
IMPUTED_COLOR = "#0072B2"
TRUE_COLOR = "#009E73"
NEUTRAL_COLOR = "#808080"

SCENARIO_COLORS = ["#0072B2", "#D55E00", "#009E73", "#E69F00", "#CC79A7", "#56B4E9"]


def _save_figure(fig, save_path: str, dpi: int = 600):
    """Save figure as PDF (publication) and PNG (preview)."""
    path = Path(save_path)
    pdf_path = path.with_suffix(".pdf")
    fig.savefig(pdf_path, dpi=dpi, bbox_inches="tight", pad_inches=0.02)
    png_path = path.with_suffix(".png")
    fig.savefig(png_path, dpi=300, bbox_inches="tight", pad_inches=0.02)
    logger.info(f"Figure saved: {pdf_path}, {png_path}")


def set_publication_style():
    """Set matplotlib parameters for journal figures."""
    plt.style.use("default")
    plt.rcParams.update(
        {
            "font.family": "sans-serif",
            "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
            "font.size": 7,
            "axes.titlesize": 8,
            "axes.labelsize": 7,
            "xtick.labelsize": 6,
            "ytick.labelsize": 6,
            "legend.fontsize": 6,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.linewidth": 0.5,
            "axes.grid": False,
            "lines.linewidth": 1.0,
            "lines.markersize": 4,
            "figure.dpi": 150,
            "savefig.dpi": 600,
            "mathtext.default": "regular",
            "legend.frameon": False,
        }
    )


set_publication_style()


def plot_coefficient_distributions(
    samples: pd.DataFrame,
    terms: Optional[List[str]] = None,
    observed: Optional[pd.Series] = None,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """
    Histogram of Monte Carlo estimates per term.

    Args:
        samples: Coefficient samples (iteration, term, estimate, ...)
        terms: Terms to show (default: every parent-education term)
        observed: Observed-only estimates indexed by term, drawn as lines
        save_path: Path to save figure

    Returns:
        matplotlib Figure
    """
    set_publication_style()

    if terms is None:
        terms = [t for t in samples["term"].unique() if t.startswith("parent_education")]
        if not terms:
            terms = list(samples["term"].unique())
    n = len(terms)
    ncols = min(n, 3)
    nrows = int(np.ceil(n / ncols))

    fig, axes = plt.subplots(
        nrows, ncols, figsize=(FIG_DOUBLE, 2.0 * nrows), squeeze=False
    )

    for ax, term in zip(axes.flat, terms):
        values = samples.loc[samples["term"] == term, "estimate"]
        sns.histplot(values, ax=ax, color=IMPUTED_COLOR, edgecolor="none", bins=20)
        if observed is not None and term in observed.index:
            ax.axvline(observed[term], color=OBSERVED_COLOR, ls="--", lw=0.8,
                       label="Observed only")
        ax.axvline(values.mean(), color=IMPUTED_COLOR, lw=0.8, label="MC mean")
        ax.set_title(term_label(term), fontsize=7)
        ax.set_xlabel("Estimate")

    for ax in axes.flat[n:]:
        ax.set_visible(False)

    axes.flat[0].legend(fontsize=5)
    plt.tight_layout()

    if save_path:
        _save_figure(fig, save_path)

    return fig


def plot_coefficient_comparison(
    comparison: pd.DataFrame,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """
    Observed-only estimate vs. Monte Carlo mean with 95% interval.

    Args:
        comparison: Output of ``compare_coefficients``
        save_path: Path to save figure

    Returns:
        matplotlib Figure
    """
    set_publication_style()

    df = comparison[comparison["term"] != "Intercept"].reset_index(drop=True)
    y = np.arange(len(df))

    fig, ax = plt.subplots(figsize=(FIG_ONE_HALF, 0.3 * len(df) + 1.0))

    err = np.vstack([
        df["mc_mean"] - df["mc_lower"],
        df["mc_upper"] - df["mc_mean"],
    ])
    ax.errorbar(df["mc_mean"], y + 0.15, xerr=err, fmt="o", color=IMPUTED_COLOR,
                capsize=2, label="Imputed (MC 95%)")
    ax.errorbar(df["observed_estimate"], y - 0.15,
                xerr=1.96 * df["observed_se"], fmt="s", color=OBSERVED_COLOR,
                capsize=2, label="Observed only")
    if "true_value" in df.columns:
        ax.scatter(df["true_value"], y, marker="x", color=TRUE_COLOR, zorder=3,
                   label="True")

    ax.axvline(0, color="#AAAAAA", lw=0.5)
    ax.set_yticks(y)
    ax.set_yticklabels([term_label(t) for t in df["term"]])
    ax.invert_yaxis()
    ax.set_xlabel("Coefficient")
    ax.legend(loc="best")

    plt.tight_layout()

    if save_path:
        _save_figure(fig, save_path)

    return fig


def plot_subgroup_bias(
    summary: pd.DataFrame,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """
    Horizontal bar chart of observed-minus-true mean by subgroup.

    Subgroups with an undefined bias are labelled rather than drawn.
    """
    set_publication_style()

    group_cols = list(summary.columns[: list(summary.columns).index("n")])
    labels = summary[group_cols].astype(str).agg(" / ".join, axis=1)
    bias = pd.Series(
        summary["bias"].astype("Float64").to_numpy(dtype=float, na_value=np.nan)
    )

    fig, ax = plt.subplots(figsize=(FIG_ONE_HALF, 0.22 * len(summary) + 1.0))
    y = np.arange(len(summary))
    colors = [OBSERVED_COLOR if b < 0 else IMPUTED_COLOR for b in bias.fillna(0)]
    ax.barh(y, bias.fillna(0), color=colors, edgecolor="none", height=0.6)

    for yi, b in zip(y, bias):
        if np.isnan(b):
            ax.text(0, yi, " undefined", va="center", fontsize=5, color=NEUTRAL_COLOR)

    ax.axvline(0, color="#AAAAAA", lw=0.5)
    ax.set_yticks(y)
    ax.set_yticklabels(labels, fontsize=5)
    ax.invert_yaxis()
    ax.set_xlabel("Observed mean - true mean")

    plt.tight_layout()

    if save_path:
        _save_figure(fig, save_path)

    return fig


def plot_dropout_rates(
    summary: pd.DataFrame,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Realised vs. expected dropout rate per subgroup."""
    set_publication_style()

    fig, ax = plt.subplots(figsize=(FIG_SINGLE, FIG_SINGLE))
    ax.scatter(summary["expected_dropout_rate"], summary["dropout_rate"],
               s=summary["n"] / summary["n"].max() * 40 + 5,
               color=IMPUTED_COLOR, alpha=0.7, edgecolor="none")
    ax.plot([0, 1], [0, 1], color="#AAAAAA", ls="--", lw=0.5)
    ax.set_xlim([0, 1])
    ax.set_ylim([0, 1])
    ax.set_xlabel("Expected dropout rate")
    ax.set_ylabel("Realised dropout rate")

    plt.tight_layout()

    if save_path:
        _save_figure(fig, save_path)

    return fig


def plot_scenario_bias(
    scenario_coefficients: pd.DataFrame,
    term_family: str = "parent_education",
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Observed-only bias per term across attrition scenarios."""
    set_publication_style()

    df = scenario_coefficients[
        scenario_coefficients["term"].str.startswith(term_family)
    ]
    scenarios = list(dict.fromkeys(df["scenario"]))
    terms = list(dict.fromkeys(df["term"]))

    fig, ax = plt.subplots(figsize=(FIG_DOUBLE, 2.8))
    x = np.arange(len(terms))
    width = 0.8 / max(len(scenarios), 1)

    for i, name in enumerate(scenarios):
        sub = df[df["scenario"] == name].set_index("term").reindex(terms)
        offset = (i - len(scenarios) / 2 + 0.5) * width
        ax.bar(x + offset, sub["observed_bias"], width, label=name,
               color=SCENARIO_COLORS[i % len(SCENARIO_COLORS)], edgecolor="none")

    ax.axhline(0, color="#AAAAAA", lw=0.5)
    ax.set_xticks(x)
    ax.set_xticklabels([term_label(t) for t in terms], rotation=30, ha="right")
    ax.set_ylabel("Observed-only bias")
    ax.legend(title="Scenario", fontsize=5)

    plt.tight_layout()

    if save_path:
        _save_figure(fig, save_path)

    return fig


def create_all_figures(
    results: dict,
    output_dir: str,
    scenario_coefficients: Optional[pd.DataFrame] = None,
) -> List[str]:
    """
    Generate all publication figures.

    Args:
        results: Output of ``run_attrition_analysis``
        output_dir: Directory to save figures
        scenario_coefficients: Stacked scenario comparison, if a sweep ran

    Returns:
        List of saved file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    saved_files = []
    figures = [
        ("mc_coefficient_distributions", lambda: plot_coefficient_distributions(
            results["mc_samples"],
            observed=results["baseline_model"].coefficients,
        )),
        ("coefficient_comparison", lambda: plot_coefficient_comparison(
            results["comparison"]
        )),
        ("subgroup_bias", lambda: plot_subgroup_bias(results["subgroup_summary"])),
        ("dropout_rates", lambda: plot_dropout_rates(results["subgroup_summary"])),
    ]
    if scenario_coefficients is not None:
        figures.append(("scenario_bias", lambda: plot_scenario_bias(scenario_coefficients)))

    for name, make in figures:
        fig = make()
        path = str(output_dir / f"{name}.png")
        _save_figure(fig, path)
        plt.close(fig)
        saved_files.append(path)

    logger.info(f"Created {len(saved_files)} figures in {output_dir}")

    return saved_files
