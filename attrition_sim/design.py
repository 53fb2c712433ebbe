"""
Design Matrix Module
====================

Explicit reference-level (treatment) coding for the additive model

    assessment_score ~ year + free_reduced_lunch_eligible + gender + parent_education

The level table is built once from the full observation set and threaded
into every design matrix, so term identity never depends on which levels
happen to be present in a given subset.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging

from .data_loader import (
    OUTCOME_COL,
    LUNCH_COL,
    GENDER_COL,
    PARENT_EDU_COL,
    YEAR_COL,
)

logger = logging.getLogger(__name__)

NO_HS_LEVEL = "Not a High School Graduate"

PARENT_EDUCATION_LEVELS = [
    NO_HS_LEVEL,
    "High School Graduate",
    "Some College",
    "Associate Degree",
    "Bachelor's Degree",
    "Graduate Degree",
]

CATEGORICAL_COLS = [YEAR_COL, GENDER_COL, PARENT_EDU_COL]

# Predictors in formula order
PREDICTORS = [YEAR_COL, LUNCH_COL, GENDER_COL, PARENT_EDU_COL]

FORMULA = f"{OUTCOME_COL} ~ " + " + ".join(PREDICTORS)

# None = first level in sorted order (earliest year)
DEFAULT_REFERENCES = {
    YEAR_COL: None,
    GENDER_COL: "female",
    PARENT_EDU_COL: NO_HS_LEVEL,
}

INTERCEPT = "Intercept"


class DesignMatrixError(ValueError):
    """Observations cannot be encoded with the model's level table."""


def term_name(col: str, level: str) -> str:
    """Coefficient name for a non-reference level, e.g. ``gender[T.male]``."""
    return f"{col}[T.{level}]"


def _order_levels(col: str, present: List[str]) -> List[str]:
    if col == PARENT_EDU_COL:
        known = [lvl for lvl in PARENT_EDUCATION_LEVELS if lvl in present]
        return known + sorted(lvl for lvl in present if lvl not in known)
    return sorted(present)


@dataclass(frozen=True)
class ReferenceLevels:
    """
    Model-wide category table.

    ``levels[col][0]`` is the reference level of ``col``; every other
    level gets one indicator column.
    """

    levels: Dict[str, Tuple[str, ...]]

    def reference(self, col: str) -> str:
        return self.levels[col][0]

    @property
    def terms(self) -> List[str]:
        """Design-matrix columns in fixed model order."""
        terms = [INTERCEPT]
        for col in PREDICTORS:
            if col in self.levels:
                terms.extend(term_name(col, lvl) for lvl in self.levels[col][1:])
            else:
                terms.append(col)
        return terms

    def term_family(self, col: str) -> List[str]:
        """All terms belonging to one predictor."""
        return [t for t in self.terms if t == col or t.startswith(f"{col}[")]

    def design_matrix(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Encode observations as a float design matrix.

        Args:
            df: Observations with all predictor columns present

        Returns:
            DataFrame indexed like ``df`` with columns ``self.terms``

        Raises:
            DesignMatrixError: on absent columns, missing covariate values
                or levels not in the table
        """
        absent = [c for c in PREDICTORS if c not in df.columns]
        if absent:
            raise DesignMatrixError(f"Missing predictor columns: {absent}")

        columns = {INTERCEPT: np.ones(len(df))}

        for col in PREDICTORS:
            if df[col].isna().any():
                raise DesignMatrixError(
                    f"{col} has {int(df[col].isna().sum())} missing values"
                )

            if col not in self.levels:
                columns[col] = (
                    pd.to_numeric(df[col], errors="coerce")
                    .astype("Float64")
                    .to_numpy(dtype=float, na_value=np.nan)
                )
                if np.isnan(columns[col]).any():
                    raise DesignMatrixError(f"{col} has non-numeric values")
                continue

            values = df[col].astype(str)
            unknown = set(values.unique()) - set(self.levels[col])
            if unknown:
                raise DesignMatrixError(
                    f"{col} has levels not in the reference table: {sorted(unknown)}"
                )
            for lvl in self.levels[col][1:]:
                columns[term_name(col, lvl)] = (values == lvl).to_numpy(dtype=float)

        return pd.DataFrame(columns, index=df.index)[self.terms]


def build_reference_levels(
    df: pd.DataFrame, references: Optional[Dict[str, Optional[str]]] = None
) -> ReferenceLevels:
    """
    Build the global level table from the full observation set.

    Args:
        df: Full prepared observations
        references: Overrides for the reference level per categorical column

    Returns:
        ReferenceLevels with the configured reference first
    """
    refs = dict(DEFAULT_REFERENCES)
    refs.update(references or {})

    levels = {}
    for col in CATEGORICAL_COLS:
        present = [str(v) for v in pd.unique(df[col].dropna())]
        if not present:
            raise ValueError(f"No observed levels for {col}")

        ordered = _order_levels(col, present)
        ref = refs.get(col)
        ref = ordered[0] if ref is None else str(ref)
        if ref not in ordered:
            raise ValueError(
                f"Reference level '{ref}' for {col} not present in data "
                f"(levels: {ordered})"
            )
        levels[col] = tuple([ref] + [lvl for lvl in ordered if lvl != ref])
        logger.info(f"{col}: reference='{ref}', {len(ordered) - 1} contrast terms")

    return ReferenceLevels(levels)


def term_label(term: str) -> str:
    """Readable label, e.g. ``parent_education[T.Some College]`` -> ``Parent education: Some College``."""
    if "[T." in term:
        col, level = term[:-1].split("[T.", 1)
        return f"{col.replace('_', ' ').capitalize()}: {level}"
    return term.replace("_", " ").capitalize()
