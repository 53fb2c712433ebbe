"""
LaTeX Table Generation Module
==============================

Convert the attrition and Monte Carlo result tables to publication-ready
LaTeX.
"""

import pandas as pd
from typing import List
from pathlib import Path
import logging

from .design import term_label

logger = logging.getLogger(__name__)

UNDEFINED = "--"


def _escape_latex(s: str) -> str:
    """Escape special LaTeX characters."""
    s = str(s)
    for char in ["&", "%", "$", "#", "_", "{", "}"]:
        s = s.replace(char, f"\\{char}")
    return s


def _fmt(value, spec: str = ".2f") -> str:
    """Format a number; missing values render as the undefined marker."""
    if pd.isna(value):
        return UNDEFINED
    return format(float(value), spec)


def _open_table(caption: str, label: str, col_spec: str) -> List[str]:
    return [
        "\\begin{table}[htbp]",
        "\\centering",
        f"\\caption{{{caption}}}",
        f"\\label{{{label}}}",
        f"\\begin{{tabular}}{{{col_spec}}}",
        "\\toprule",
    ]


def _close_table(lines: List[str]) -> str:
    lines.append("\\bottomrule")
    lines.append("\\end{tabular}")
    lines.append("\\end{table}")
    return "\n".join(lines)


def mc_summary_to_latex(
    df: pd.DataFrame,
    caption: str = "Monte Carlo Distribution of Imputed-Complete Coefficients",
    label: str = "tab:mc_summary",
) -> str:
    """Convert the Monte Carlo summary to LaTeX."""
    lines = _open_table(caption, label, "lrrc")
    lines.append("Term & Mean & SD & 95\\% Interval \\\\")
    lines.append("\\midrule")

    for _, row in df.iterrows():
        interval = f"[{_fmt(row['lower_2.5pct'])}, {_fmt(row['upper_97.5pct'])}]"
        lines.append(
            f"{_escape_latex(term_label(row['term']))} & {_fmt(row['mean_estimate'])} & "
            f"{_fmt(row['sd_estimate'], '.3f')} & {interval} \\\\"
        )

    return _close_table(lines)


def subgroup_bias_to_latex(
    df: pd.DataFrame,
    caption: str = "Simulated Dropout and Bias by Subgroup",
    label: str = "tab:subgroup_bias",
) -> str:
    """
    Convert the subgroup bias summary to LaTeX.

    Subgroups that lost every row show ``--`` for the observed mean and
    bias.
    """
    group_cols = list(df.columns[: list(df.columns).index("n")])
    lines = _open_table(caption, label, "l" * len(group_cols) + "rrrrr")
    header = [_escape_latex(c.replace("_", " ").title()) for c in group_cols]
    header += ["N", "Dropout", "True $M$", "Observed $M$", "Bias"]
    lines.append(" & ".join(header) + " \\\\")
    lines.append("\\midrule")

    for _, row in df.iterrows():
        cells = [_escape_latex(row[c]) for c in group_cols]
        cells += [
            f"{int(row['n']):,}",
            _fmt(row["dropout_rate"], ".3f"),
            _fmt(row["true_mean"]),
            _fmt(row["observed_mean"]),
            _fmt(row["bias"], "+.2f"),
        ]
        lines.append(" & ".join(cells) + " \\\\")

    return _close_table(lines)


def coefficient_comparison_to_latex(
    df: pd.DataFrame,
    caption: str = "Observed-Only vs.\\ Imputed-Complete Estimates",
    label: str = "tab:coefficient_comparison",
) -> str:
    """Convert the coefficient comparison to LaTeX."""
    has_truth = "true_value" in df.columns
    lines = _open_table(caption, label, "lrrrr" + ("r" if has_truth else ""))
    header = "Term & Observed (SE) & MC Mean & MC 95\\% Interval & Difference"
    if has_truth:
        header += " & True"
    lines.append(header + " \\\\")
    lines.append("\\midrule")

    for _, row in df.iterrows():
        line = (
            f"{_escape_latex(term_label(row['term']))} & "
            f"{_fmt(row['observed_estimate'])} ({_fmt(row['observed_se'])}) & "
            f"{_fmt(row['mc_mean'])} & "
            f"[{_fmt(row['mc_lower'])}, {_fmt(row['mc_upper'])}] & "
            f"{_fmt(row['difference'], '+.2f')}"
        )
        if has_truth:
            line += f" & {_fmt(row['true_value'])}"
        lines.append(line + " \\\\")

    return _close_table(lines)


def missingness_to_latex(
    df: pd.DataFrame,
    caption: str = "Outcome Missingness by Group",
    label: str = "tab:missingness",
) -> str:
    """Convert a missingness table (group, n, n_missing, rate) to LaTeX."""
    lines = _open_table(caption, label, "lrrr")
    lines.append("Group & N & Missing & Rate \\\\")
    lines.append("\\midrule")

    for _, row in df.iterrows():
        lines.append(
            f"{_escape_latex(row['group'])} & {int(row['n']):,} & "
            f"{int(row['n_missing']):,} & {_fmt(100 * row['rate'], '.1f')}\\% \\\\"
        )

    return _close_table(lines)


def scenario_dropout_to_latex(
    df: pd.DataFrame,
    caption: str = "Attrition Scenarios: Constants, Dropout and Subgroup Bias",
    label: str = "tab:scenarios",
) -> str:
    """Convert the scenario sweep summary to LaTeX."""
    lines = _open_table(caption, label, "lrrrrrrr")
    lines.append(
        "Scenario & $\\beta_0$ & Lunch & No HS & Male & Outcome & "
        "Dropout & Mean $|$Bias$|$ \\\\"
    )
    lines.append("\\midrule")

    for _, row in df.iterrows():
        lines.append(
            f"{_escape_latex(row['name'])} & {_fmt(row['intercept'])} & "
            f"{_fmt(row['lunch'])} & {_fmt(row['parent_no_hs'])} & "
            f"{_fmt(row['male'])} & {_fmt(row['outcome'])} & "
            f"{_fmt(row['dropout_rate'], '.3f')} & {_fmt(row['mean_abs_bias'])} \\\\"
        )

    return _close_table(lines)


def table1_to_latex(
    table1_df: pd.DataFrame,
    caption: str = "Sample Characteristics by Year",
    label: str = "tab:table1",
) -> str:
    """Convert Table 1 DataFrame to publication LaTeX."""
    groups = [c for c in table1_df.columns if c not in ("Variable", "Category", "Overall")]

    lines = _open_table(caption, label, "ll" + "r" * (len(groups) + 1))
    lines.append("Variable & Category & " + " & ".join(groups) + " & Overall \\\\")
    lines.append("\\midrule")

    prev_var = None
    for _, row in table1_df.iterrows():
        var = row["Variable"]
        vals = [_escape_latex(row.get(g, "")) for g in groups]

        if prev_var is not None and var != prev_var:
            lines.append("\\addlinespace")

        var_display = _escape_latex(var) if var != prev_var else ""
        lines.append(
            f"{var_display} & {_escape_latex(row['Category'])} & "
            + " & ".join(vals)
            + f" & {_escape_latex(row.get('Overall', ''))} \\\\"
        )
        prev_var = var

    return _close_table(lines)


def generate_all_latex_tables(tables_dir: str) -> List[str]:
    """
    Read existing CSV results and generate LaTeX versions.

    Args:
        tables_dir: Directory containing CSV result tables

    Returns:
        List of saved .tex file paths
    """
    tables_dir = Path(tables_dir)
    saved = []

    converters = {
        "monte_carlo_summary.csv": (mc_summary_to_latex, "monte_carlo_summary.tex"),
        "attrition_bias_by_subgroup.csv": (
            subgroup_bias_to_latex,
            "attrition_bias_by_subgroup.tex",
        ),
        "coefficient_comparison.csv": (
            coefficient_comparison_to_latex,
            "coefficient_comparison.tex",
        ),
        "scenario_dropout.csv": (scenario_dropout_to_latex, "scenario_dropout.tex"),
    }
    for csv_path in sorted(tables_dir.glob("missingness_by_*.csv")):
        converters[csv_path.name] = (missingness_to_latex, f"{csv_path.stem}.tex")

    for csv_name, (converter_fn, tex_name) in converters.items():
        csv_path = tables_dir / csv_name
        if not csv_path.exists():
            logger.warning(f"CSV not found, skipping: {csv_path}")
            continue

        try:
            df = pd.read_csv(csv_path)
            latex = converter_fn(df)
            tex_path = tables_dir / tex_name
            with open(tex_path, "w") as f:
                f.write(latex)
            saved.append(str(tex_path))
            logger.info(f"LaTeX table saved: {tex_path}")
        except Exception as e:
            logger.warning(f"Failed to generate {tex_name}: {e}")

    return saved
