"""
Descriptive Statistics Module
=============================

Outcome missingness by subgroup and the sample-characteristics table
(Table 1) for the long-form observation set.
"""

import pandas as pd
from typing import List, Optional
from pathlib import Path
import logging

from .data_loader import OUTCOME_COL, LUNCH_COL, GENDER_COL, PARENT_EDU_COL, YEAR_COL

logger = logging.getLogger(__name__)

MISSINGNESS_GROUPS = [LUNCH_COL, PARENT_EDU_COL, GENDER_COL, YEAR_COL]

VARIABLE_LABELS = {
    LUNCH_COL: "Free/Reduced Lunch",
    PARENT_EDU_COL: "Parent Education",
    GENDER_COL: "Gender",
    YEAR_COL: "Year",
}

LUNCH_LABELS = {0: "Not eligible", 1: "Eligible"}


def missingness_table(
    df: pd.DataFrame, group_col: str, outcome_col: str = OUTCOME_COL
) -> pd.DataFrame:
    """
    Outcome missingness rate per level of ``group_col``.

    Rows whose group value is itself missing are reported under ``<NA>``
    rather than silently dropped.

    Args:
        df: Observation set
        group_col: Grouping variable
        outcome_col: Outcome whose missingness is counted

    Returns:
        DataFrame with group, n, n_missing, rate
    """
    missing = df[outcome_col].isna()
    grouped = missing.groupby(df[group_col], dropna=False)

    table = pd.DataFrame({
        "n": grouped.size(),
        "n_missing": grouped.sum().astype(int),
    })
    table["rate"] = table["n_missing"] / table["n"]
    table.index.name = "group"
    table = table.reset_index()
    table["group"] = table["group"].astype(object).where(table["group"].notna(), "<NA>")
    return table[["group", "n", "n_missing", "rate"]]


def generate_table1(
    df: pd.DataFrame,
    group_col: str = YEAR_COL,
    outcome_col: str = OUTCOME_COL,
    categorical_vars: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Generate Table 1: Sample characteristics by group.

    Args:
        df: Observation set
        group_col: Column defining the table's columns
        outcome_col: Outcome summarized as Mean (SD) and missing N (%)
        categorical_vars: Categorical variables to tabulate

    Returns:
        DataFrame formatted as Table 1
    """
    if categorical_vars is None:
        categorical_vars = [LUNCH_COL, GENDER_COL, PARENT_EDU_COL]
    categorical_vars = [c for c in categorical_vars if c in df.columns and c != group_col]

    groups = sorted(df[group_col].dropna().unique(), key=str)
    rows = []

    row = {"Variable": "N", "Category": ""}
    for g in groups:
        row[str(g)] = f"{(df[group_col] == g).sum():,}"
    row["Overall"] = f"{len(df):,}"
    rows.append(row)

    row = {"Variable": "Assessment score", "Category": "Mean (SD)"}
    for g in groups:
        vals = df.loc[df[group_col] == g, outcome_col].dropna()
        row[str(g)] = f"{vals.mean():.1f} ({vals.std():.1f})" if len(vals) > 1 else "—"
    overall = df[outcome_col].dropna()
    row["Overall"] = f"{overall.mean():.1f} ({overall.std():.1f})" if len(overall) > 1 else "—"
    rows.append(row)

    row = {"Variable": "Assessment score", "Category": "Missing N (%)"}
    for g in groups:
        mask = df[group_col] == g
        n_miss = int(df.loc[mask, outcome_col].isna().sum())
        row[str(g)] = f"{n_miss:,} ({n_miss / mask.sum() * 100:.1f}%)"
    n_miss_all = int(df[outcome_col].isna().sum())
    row["Overall"] = f"{n_miss_all:,} ({n_miss_all / max(len(df), 1) * 100:.1f}%)"
    rows.append(row)

    for var in categorical_vars:
        vname = VARIABLE_LABELS.get(var, var)
        labels = LUNCH_LABELS if var == LUNCH_COL else {}
        for cat in sorted(df[var].dropna().unique(), key=str):
            row = {"Variable": vname, "Category": labels.get(cat, str(cat))}
            for g in groups:
                mask = df[group_col] == g
                n_cat = int(((df[var] == cat) & mask).sum())
                n_tot = int(mask.sum())
                pct = n_cat / n_tot * 100 if n_tot > 0 else 0
                row[str(g)] = f"{n_cat:,} ({pct:.1f}%)"
            n_cat_all = int((df[var] == cat).sum())
            row["Overall"] = f"{n_cat_all:,} ({n_cat_all / len(df) * 100:.1f}%)"
            rows.append(row)

    return pd.DataFrame(rows)


def save_descriptives(
    df: pd.DataFrame,
    output_dir: str,
    group_cols: Optional[List[str]] = None,
    outcome_col: str = OUTCOME_COL,
) -> List[str]:
    """Write one missingness table per group column plus Table 1."""
    from .latex_tables import table1_to_latex

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    saved = []

    for col in group_cols or MISSINGNESS_GROUPS:
        if col not in df.columns:
            logger.warning(f"Skipping missingness table: no column {col}")
            continue
        path = out / f"missingness_by_{col}.csv"
        missingness_table(df, col, outcome_col).to_csv(path, index=False)
        saved.append(str(path))

    table1 = generate_table1(df, outcome_col=outcome_col)
    csv_path = out / "table1_descriptives.csv"
    table1.to_csv(csv_path, index=False)
    saved.append(str(csv_path))

    latex_path = out / "table1_descriptives.tex"
    with open(latex_path, "w") as f:
        f.write(table1_to_latex(table1))
    saved.append(str(latex_path))

    logger.info(f"Descriptive tables saved: {len(saved)} files")
    return saved
