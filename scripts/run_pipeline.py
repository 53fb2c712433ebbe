#!/usr/bin/env python
"""
Main Pipeline Script
====================

Run the complete attrition sensitivity pipeline or individual steps.

Usage:
    python scripts/run_pipeline.py --config config.yaml
    python scripts/run_pipeline.py --step data_prep
    python scripts/run_pipeline.py --step analysis
    python scripts/run_pipeline.py --step sensitivity
    python scripts/run_pipeline.py --step all

Every step after data_prep prepares the data again from the raw file;
nothing is read back from a previous run.
"""

import argparse
import logging
import sys
from pathlib import Path
import yaml
import pandas as pd

# Setup logging BEFORE imports to avoid basicConfig being silently ignored
Path('logs').mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('logs/pipeline.log', mode='w'),
        logging.StreamHandler()
    ],
    force=True
)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from attrition_sim.data_loader import (
    load_config,
    load_assessment_data,
    prepare_observations,
    modeling_sample,
    get_sample_characteristics,
)
from attrition_sim.descriptives import save_descriptives
from attrition_sim.sensitivity import (
    ScenarioSensitivityAnalyzer,
    run_attrition_analysis,
)
from attrition_sim.latex_tables import generate_all_latex_tables
from attrition_sim.visualization import create_all_figures


def step_data_prep(config: dict) -> pd.DataFrame:
    """
    Step 1: Data Preparation

    Load the raw wide file and build the long-form observation set.
    """
    logger.info("=" * 60)
    logger.info("STEP 1: DATA PREPARATION")
    logger.info("=" * 60)

    raw_file = Path(config['paths']['raw_data']) / config['data']['filename']
    if not raw_file.exists():
        logger.error(f"Raw data file not found: {raw_file}")
        raise FileNotFoundError(f"Raw data file not found: {raw_file}")

    logger.info(f"Loading raw data from {raw_file}")
    raw = load_assessment_data(str(raw_file))
    df = prepare_observations(raw, config)

    tables_path = Path(config['paths']['tables'])
    tables_path.mkdir(parents=True, exist_ok=True)

    stats = get_sample_characteristics(df)
    stats_file = tables_path / "sample_stats.yaml"
    with open(stats_file, 'w') as f:
        yaml.dump(stats, f)
    logger.info(f"Sample statistics: {stats}")

    save_descriptives(
        df, str(tables_path), config.get('attrition', {}).get('missingness_groups')
    )

    return df


def step_analysis(config: dict, df: pd.DataFrame) -> dict:
    """
    Step 2: Baseline Fit, Monte Carlo Imputation and Simulated Attrition

    Writes the coefficient comparison, Monte Carlo tables, subgroup bias
    and attrition demographics.
    """
    logger.info("=" * 60)
    logger.info("STEP 2: BASELINE FIT AND MONTE CARLO IMPUTATION")
    logger.info("=" * 60)

    tables_path = Path(config['paths']['tables'])
    tables_path.mkdir(parents=True, exist_ok=True)

    results = run_attrition_analysis(config, df)

    outputs = {
        "coefficient_comparison.csv": results['comparison'],
        "monte_carlo_summary.csv": results['mc_summary'],
        "monte_carlo_samples.csv": results['mc_samples'],
        "monte_carlo_summary_family.csv": results['family_summary'],
        "attrition_bias_by_subgroup.csv": results['subgroup_summary'],
        "attrition_demographics.csv": results['demographics'],
        "attrition_independence_tests.csv": results['independence_tests'],
        "baseline_coefficients.csv": results['baseline_model'].coefficient_table(),
    }
    for fname, table in outputs.items():
        path = tables_path / fname
        table.to_csv(path, index=False)
        logger.info(f"Saved {path}")

    logger.info(f"Overall simulated bias: {results['overall_bias']}")
    return results


def step_sensitivity(config: dict, df: pd.DataFrame, results: dict) -> ScenarioSensitivityAnalyzer:
    """
    Step 3: Attrition Scenario Sweep

    Uses the baseline fit as the generating model for every scenario.
    """
    logger.info("=" * 60)
    logger.info("STEP 3: ATTRITION SCENARIO SWEEP")
    logger.info("=" * 60)

    analyzer = ScenarioSensitivityAnalyzer(config)
    analyzer.run_scenarios(
        modeling_sample(df), results['baseline_model'], results['levels']
    )
    analyzer.save_results(config['paths']['tables'])
    return analyzer


def step_generate_figures(
    config: dict,
    results: dict,
    analyzer: ScenarioSensitivityAnalyzer = None,
):
    """
    Step 4: Figures and LaTeX Tables
    """
    logger.info("=" * 60)
    logger.info("STEP 4: FIGURES AND LATEX TABLES")
    logger.info("=" * 60)

    figures_path = Path(config['paths']['figures'])
    figures_path.mkdir(parents=True, exist_ok=True)

    scenario_coefficients = analyzer.compare_coefficients() if analyzer else None
    saved_files = create_all_figures(results, str(figures_path), scenario_coefficients)
    logger.info(f"Generated {len(saved_files)} figures")

    saved_tex = generate_all_latex_tables(config['paths']['tables'])
    logger.info(f"Generated {len(saved_tex)} LaTeX tables")


def run_full_pipeline(config_path: str):
    """Run the complete analysis pipeline."""
    logger.info("=" * 60)
    logger.info("STARTING FULL PIPELINE")
    logger.info(f"Config: {config_path}")
    logger.info("=" * 60)

    config = load_config(config_path)

    for path_key in ['figures', 'tables']:
        Path(config['paths'][path_key]).mkdir(parents=True, exist_ok=True)

    df = step_data_prep(config)
    results = step_analysis(config, df)
    analyzer = step_sensitivity(config, df, results)
    step_generate_figures(config, results, analyzer)

    logger.info("=" * 60)
    logger.info("PIPELINE COMPLETE")
    logger.info("=" * 60)

    return {
        'data': df,
        'results': results,
        'scenarios': analyzer.results,
    }


def main():
    parser = argparse.ArgumentParser(description="Attrition Sensitivity Pipeline")
    parser.add_argument(
        '--config', '-c',
        default='config.yaml',
        help='Path to config file'
    )
    parser.add_argument(
        '--step', '-s',
        choices=['data_prep', 'analysis', 'sensitivity', 'figures', 'all'],
        default='all',
        help='Pipeline step to run'
    )

    args = parser.parse_args()

    try:
        if args.step == 'all':
            run_full_pipeline(args.config)
        else:
            config = load_config(args.config)
            df = step_data_prep(config)

            if args.step == 'data_prep':
                return
            results = step_analysis(config, df)

            if args.step == 'sensitivity':
                step_sensitivity(config, df, results)
            elif args.step == 'figures':
                step_generate_figures(config, results)

    except Exception as e:
        logger.error(f"Pipeline failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
