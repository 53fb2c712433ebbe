"""
Data Loader Module
==================

Load the longitudinal assessment file and reshape it into long-form
student-year observations ready for modeling.
"""

import re
import pandas as pd
import numpy as np
from pathlib import Path
from typing import List, Dict, Optional, Iterable
import logging
import yaml

logger = logging.getLogger(__name__)

OUTCOME_COL = "assessment_score"
LUNCH_COL = "free_reduced_lunch_eligible"
GENDER_COL = "gender"
PARENT_EDU_COL = "parent_education"
YEAR_COL = "year"

# Plausible scale-score range; anything outside is a sentinel, not a score
OUTCOME_RANGE = (100, 3000)

DEFAULT_YEARS = ["2016", "2017", "2018", "2019"]
REPEATED_VARIABLES = [OUTCOME_COL, LUNCH_COL]
REQUIRED_COVARIATES = [GENDER_COL, PARENT_EDU_COL, YEAR_COL]

_TRUE_VALUES = {1, "1", True, "true"}
_FALSE_VALUES = {0, "0", False, "false"}

_GENDER_MAP = {
    "female": "female",
    "f": "female",
    "male": "male",
    "m": "male",
}


def load_config(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file."""
    with open(config_path, "r") as f:
        return yaml.safe_load(f)


def load_assessment_data(
    filepath: str, columns: Optional[List[str]] = None, format: str = "auto"
) -> pd.DataFrame:
    """
    Load the wide-format assessment file.

    Args:
        filepath: Path to data file
        columns: Specific columns to load
        format: File format (auto, csv, xlsx, parquet, stata)

    Returns:
        DataFrame with one row per student
    """
    path = Path(filepath)

    if format == "auto":
        format = path.suffix.lstrip(".").lower()

    logger.info(f"Loading data from {filepath}")

    if format in ["csv", "txt"]:
        df = pd.read_csv(path, usecols=columns, low_memory=False)
    elif format in ["xlsx", "xls", "excel"]:
        df = pd.read_excel(path, usecols=columns)
    elif format == "parquet":
        df = pd.read_parquet(path, columns=columns)
    elif format in ["dta", "stata"]:
        df = pd.read_stata(path, columns=columns)
    else:
        raise ValueError(f"Unsupported format: {format}")

    logger.info(f"Loaded {len(df):,} rows, {len(df.columns)} columns")
    return df


def _indicator_value(value):
    if isinstance(value, str):
        value = value.strip().lower()
    try:
        if value in _TRUE_VALUES:
            return 1
        if value in _FALSE_VALUES:
            return 0
    except TypeError:
        # unhashable cell contents
        return pd.NA
    return pd.NA


def normalize_indicator(series: pd.Series) -> pd.Series:
    """
    Coerce a boolean-like column to 1/0.

    Values in {1, "1", True} become 1 and {0, "0", False} become 0
    (string forms are matched case-insensitively). Anything else is
    mapped to the missing sentinel.

    Args:
        series: Raw indicator column

    Returns:
        Nullable Int64 series of 0/1/<NA>
    """
    result = series.map(_indicator_value).astype("Int64")

    n_bad = int(result.isna().sum() - series.isna().sum())
    if n_bad > 0:
        logger.warning(
            f"{series.name}: {n_bad:,} unrecognized indicator values set to missing"
        )
    return result


def normalize_gender(series: pd.Series) -> pd.Series:
    """Normalize gender labels to 'female'/'male'; others become missing."""
    return series.map(
        lambda v: _GENDER_MAP.get(str(v).strip().lower()) if pd.notna(v) else None
    )


def reshape_long(
    df: pd.DataFrame,
    id_cols: List[str],
    variables: Iterable[str] = REPEATED_VARIABLES,
    years: Optional[Iterable] = None,
    static_cols: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Melt ``<variable>_<year>`` columns into one row per (id, year).

    Args:
        df: Wide DataFrame, one row per student
        id_cols: Columns that uniquely identify a student
        variables: Repeated-measure variable names
        years: Allow-listed years to retain (None = all found)
        static_cols: Time-invariant columns carried onto every year

    Returns:
        Long DataFrame with id_cols, 'year', static_cols and one column
        per variable
    """
    variables = list(variables)
    # longest names first so `score_raw_2016` is not read as `score`
    alternatives = sorted(variables, key=len, reverse=True)
    pattern = re.compile(
        "^(" + "|".join(re.escape(v) for v in alternatives) + r")_(\d+)$"
    )
    value_cols = [c for c in df.columns if pattern.match(str(c))]
    if not value_cols:
        raise ValueError(f"No repeated-measure columns found for {variables}")

    long = df.melt(
        id_vars=id_cols,
        value_vars=value_cols,
        var_name="_column",
        value_name="_value",
    )
    parts = long["_column"].str.extract(pattern.pattern)
    long["_variable"] = parts[0]
    long[YEAR_COL] = parts[1].astype(str)

    if years is not None:
        allowed = {str(y) for y in years}
        long = long[long[YEAR_COL].isin(allowed)]

    wide = long.pivot(
        index=id_cols + [YEAR_COL], columns="_variable", values="_value"
    ).reset_index()
    wide.columns.name = None

    for var in variables:
        if var not in wide.columns:
            wide[var] = np.nan

    if static_cols:
        wide = wide.merge(df[id_cols + static_cols], on=id_cols, how="left")

    logger.info(
        f"Reshaped {len(df):,} students into {len(wide):,} student-year rows "
        f"({wide[YEAR_COL].nunique()} years)"
    )
    return wide


def clean_outcome(
    df: pd.DataFrame,
    column: str = OUTCOME_COL,
    lower: float = OUTCOME_RANGE[0],
    upper: float = OUTCOME_RANGE[1],
) -> pd.DataFrame:
    """
    Treat implausible outcome values as missing.

    Args:
        df: Input DataFrame
        column: Outcome column
        lower: Smallest plausible score (inclusive)
        upper: Largest plausible score (inclusive)

    Returns:
        DataFrame with out-of-range scores set to NaN
    """
    df = df.copy()
    values = pd.to_numeric(df[column], errors="coerce").astype(float)
    out_of_range = values.notna() & ((values < lower) | (values > upper))

    if out_of_range.any():
        logger.warning(
            f"{column}: {int(out_of_range.sum()):,} values outside "
            f"[{lower}, {upper}] set to missing"
        )

    df[column] = values.mask(out_of_range)
    return df


def drop_incomplete_covariates(
    df: pd.DataFrame, required: List[str] = REQUIRED_COVARIATES
) -> pd.DataFrame:
    """
    Drop rows missing any required categorical covariate.

    Rows with a missing outcome are kept; they feed the missingness
    analysis and the imputation step.
    """
    mask = df[required].notna().all(axis=1)
    n_dropped = int((~mask).sum())
    if n_dropped > 0:
        logger.info(f"Dropped {n_dropped:,} rows missing one of {required}")
    return df[mask].reset_index(drop=True)


def modeling_sample(df: pd.DataFrame) -> pd.DataFrame:
    """Observations with every model covariate present (outcome may be missing)."""
    return drop_incomplete_covariates(df, REQUIRED_COVARIATES + [LUNCH_COL])


def prepare_observations(raw: pd.DataFrame, config: dict) -> pd.DataFrame:
    """
    Run the full preparation chain on a wide raw table.

    Args:
        raw: Raw wide-format DataFrame
        config: Configuration dictionary

    Returns:
        Long-form observation DataFrame
    """
    data_cfg = config.get("data", {})
    id_cols = data_cfg.get("id_columns", ["student_id"])
    static_cols = data_cfg.get("static_columns", [GENDER_COL, PARENT_EDU_COL])
    variables = data_cfg.get("repeated_variables", REPEATED_VARIABLES)
    years = data_cfg.get("years", DEFAULT_YEARS)
    lower, upper = data_cfg.get("outcome_range", list(OUTCOME_RANGE))

    df = reshape_long(raw, id_cols, variables, years, static_cols=static_cols)

    df[LUNCH_COL] = normalize_indicator(df[LUNCH_COL])
    df[GENDER_COL] = normalize_gender(df[GENDER_COL])
    df[PARENT_EDU_COL] = df[PARENT_EDU_COL].map(
        lambda v: str(v).strip() if pd.notna(v) else None
    )
    df = clean_outcome(df, OUTCOME_COL, lower, upper)
    df = drop_incomplete_covariates(df)

    missing_rate = df[OUTCOME_COL].isna().mean()
    logger.info(
        f"Prepared {len(df):,} observations, outcome missing {missing_rate:.1%}"
    )
    return df


def get_sample_characteristics(df: pd.DataFrame) -> Dict[str, object]:
    """Summary counts for the prepared observation set."""
    return {
        "n_observations": int(len(df)),
        "n_students": int(df["student_id"].nunique()) if "student_id" in df else None,
        "n_with_outcome": int(df[OUTCOME_COL].notna().sum()),
        "outcome_missing_rate": round(float(df[OUTCOME_COL].isna().mean()), 4),
        "years": sorted(df[YEAR_COL].unique().tolist()),
    }


# Convenience function for complete pipeline
def load_and_prepare(config_path: str = "config.yaml"):
    """
    Complete data loading and preparation pipeline.

    Args:
        config_path: Path to config file

    Returns:
        Tuple of (prepared DataFrame, metadata)
    """
    config = load_config(config_path)
    raw_path = Path(config["paths"]["raw_data"]) / config["data"]["filename"]

    raw = load_assessment_data(str(raw_path))
    df = prepare_observations(raw, config)

    metadata = {"config": config, "sample_stats": get_sample_characteristics(df)}
    return df, metadata
