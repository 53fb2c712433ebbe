"""
Attrition Sensitivity Study Package
===================================

Monte Carlo sensitivity analysis of attrition bias in longitudinal
assessment data.

- Data preparation: wide-to-long reshaping, indicator and score cleaning
- Baseline OLS fit with a model-wide reference-level table
- Simulated informative dropout and subgroup bias
- Repeated imputation-and-refit with independent random streams
"""

__version__ = "0.1.0"

from .data_loader import (
    load_config,
    load_assessment_data,
    normalize_indicator,
    normalize_gender,
    reshape_long,
    clean_outcome,
    drop_incomplete_covariates,
    modeling_sample,
    prepare_observations,
    load_and_prepare,
)

from .design import (
    ReferenceLevels,
    DesignMatrixError,
    build_reference_levels,
)

from .models import (
    FittedModel,
    ModelFitError,
    fit_ols,
    fitted_model_from_coefficients,
)

from .sampler import sample, sample_many

from .attrition import (
    AttritionScenario,
    AttritionSimulator,
    AttritionAnalyzer,
    apply_dropout,
    dropout_probabilities,
    simulate_true_outcomes,
    overall_bias,
    estimate_dropout_calibration,
)

from .imputation import ImputationEngine, complete_observations, impute_and_refit

from .monte_carlo import MonteCarloDriver, MonteCarloIterationError, summarize_samples

from .descriptives import missingness_table, generate_table1, save_descriptives
from .latex_tables import generate_all_latex_tables
from .sensitivity import (
    ScenarioSensitivityAnalyzer,
    compare_coefficients,
    run_attrition_analysis,
)

from .visualization import create_all_figures

__all__ = [
    # Data
    "load_config",
    "load_assessment_data",
    "normalize_indicator",
    "normalize_gender",
    "reshape_long",
    "clean_outcome",
    "drop_incomplete_covariates",
    "modeling_sample",
    "prepare_observations",
    "load_and_prepare",
    # Model
    "ReferenceLevels",
    "DesignMatrixError",
    "build_reference_levels",
    "FittedModel",
    "ModelFitError",
    "fit_ols",
    "fitted_model_from_coefficients",
    "sample",
    "sample_many",
    # Attrition
    "AttritionScenario",
    "AttritionSimulator",
    "AttritionAnalyzer",
    "apply_dropout",
    "dropout_probabilities",
    "simulate_true_outcomes",
    "overall_bias",
    "estimate_dropout_calibration",
    # Imputation / Monte Carlo
    "ImputationEngine",
    "complete_observations",
    "impute_and_refit",
    "MonteCarloDriver",
    "MonteCarloIterationError",
    "summarize_samples",
    # Reporting
    "missingness_table",
    "generate_table1",
    "save_descriptives",
    "generate_all_latex_tables",
    "ScenarioSensitivityAnalyzer",
    "compare_coefficients",
    "run_attrition_analysis",
    "create_all_figures",
]
