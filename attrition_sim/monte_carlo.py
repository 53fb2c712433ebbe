"""
Monte Carlo Driver
==================

Repeat imputation-and-refit with independent random streams and build
the empirical sampling distribution of every coefficient.

Iteration ``i`` draws from child ``i - 1`` of
``numpy.random.SeedSequence(seed).spawn(n_iterations)``. Child streams are
non-overlapping and depend only on (seed, i), so results are
bit-reproducible whether iterations run sequentially or through joblib.
"""

import numpy as np
import pandas as pd
from typing import List, Optional, Sequence
import logging

from joblib import Parallel, delayed

from .design import ReferenceLevels
from .imputation import ImputationEngine
from .models import FittedModel, ModelFitError

logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = ["iteration", "term", "estimate", "std_error"]
SUMMARY_COLUMNS = [
    "term",
    "mean_estimate",
    "sd_estimate",
    "lower_2.5pct",
    "upper_97.5pct",
    "n_iterations",
]


class MonteCarloIterationError(ModelFitError):
    """A refit failed inside one Monte Carlo iteration."""

    def __init__(self, iteration: int, reason: str):
        super().__init__(iteration, reason)
        self.iteration = iteration
        self.reason = reason

    def __str__(self) -> str:
        return f"Monte Carlo iteration {self.iteration} failed: {self.reason}"


def iteration_seeds(seed: int, n_iterations: int) -> List[np.random.SeedSequence]:
    """Independent child seed sequences, one per iteration."""
    return np.random.SeedSequence(seed).spawn(n_iterations)


def _run_iteration(
    engine: ImputationEngine, iteration: int, seed_seq: np.random.SeedSequence
) -> pd.DataFrame:
    rng = np.random.default_rng(seed_seq)
    try:
        model = engine.run_once(rng)
    except ModelFitError as e:
        raise MonteCarloIterationError(iteration, str(e)) from e

    return pd.DataFrame({
        "iteration": iteration,
        "term": model.terms,
        "estimate": model.coefficients.to_numpy(),
        "std_error": model.std_errors.to_numpy(),
    })


def summarize_samples(
    samples: pd.DataFrame, term_filter: Optional[str] = None
) -> pd.DataFrame:
    """
    Per-term mean, SD and 2.5/97.5 empirical percentiles.

    Args:
        samples: Coefficient samples (iteration, term, estimate, ...)
        term_filter: Keep only terms starting with this prefix
            (e.g. ``"parent_education"``)

    Returns:
        DataFrame with SUMMARY_COLUMNS, one row per term
    """
    if term_filter:
        samples = samples[samples["term"].str.startswith(term_filter)]

    rows = []
    for term, group in samples.groupby("term", sort=False):
        values = group["estimate"].to_numpy(dtype=float)
        rows.append({
            "term": term,
            "mean_estimate": float(values.mean()),
            "sd_estimate": float(values.std(ddof=1)) if len(values) > 1 else 0.0,
            "lower_2.5pct": float(np.percentile(values, 2.5)),
            "upper_97.5pct": float(np.percentile(values, 97.5)),
            "n_iterations": len(values),
        })

    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


class MonteCarloDriver:
    """
    Run N independent imputation-and-refit iterations.

    Attributes:
        n_iterations: Number of iterations
        seed: Base seed for the per-iteration streams
        n_jobs: joblib worker count (1 = in-process, sequential)
    """

    def __init__(self, n_iterations: int = 100, seed: int = 42, n_jobs: int = 1):
        if n_iterations < 1:
            raise ValueError("n_iterations must be at least 1")
        self.n_iterations = n_iterations
        self.seed = seed
        self.n_jobs = n_jobs
        self.samples: Optional[pd.DataFrame] = None

    def run(
        self,
        observations: pd.DataFrame,
        baseline_model: FittedModel,
        levels: Optional[ReferenceLevels] = None,
    ) -> pd.DataFrame:
        """
        Collect coefficient samples across iterations.

        Args:
            observations: Observation set with missing outcomes to impute
            baseline_model: Model used for every imputation draw
            levels: Reference-level table (defaults to the baseline's)

        Returns:
            Long DataFrame (iteration, term, estimate, std_error), ordered
            by iteration then model term order

        Raises:
            MonteCarloIterationError: a refit failed; names the iteration
        """
        engine = ImputationEngine(observations, baseline_model, levels)
        seeds = iteration_seeds(self.seed, self.n_iterations)

        logger.info(
            f"Monte Carlo: {self.n_iterations} iterations, seed={self.seed}, "
            f"n_jobs={self.n_jobs}"
        )

        try:
            slices = Parallel(n_jobs=self.n_jobs)(
                delayed(_run_iteration)(engine, i, seed_seq)
                for i, seed_seq in enumerate(seeds, start=1)
            )
        except MonteCarloIterationError as e:
            logger.error(str(e))
            raise

        self.samples = pd.concat(slices, ignore_index=True)[SAMPLE_COLUMNS]
        logger.info(f"Monte Carlo complete: {len(self.samples):,} coefficient samples")
        return self.samples

    def summarize(
        self,
        samples: Optional[pd.DataFrame] = None,
        term_filter: Optional[str] = None,
    ) -> pd.DataFrame:
        """Summary table for ``samples`` (defaults to the last run)."""
        samples = self.samples if samples is None else samples
        if samples is None:
            raise ValueError("No samples; call run() first")
        return summarize_samples(samples, term_filter)


def estimates_matrix(samples: pd.DataFrame, terms: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Wide iteration x term matrix of point estimates."""
    wide = samples.pivot(index="iteration", columns="term", values="estimate")
    if terms is not None:
        wide = wide[list(terms)]
    return wide
