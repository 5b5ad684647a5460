"""One-call permutation test for multinomial logistic regression.

Under the null hypothesis H₀: β_ck = 0 the outcome carries no
information about the predictors, so any re-assignment of outcome
labels to rows is as likely as the observed one.  Shuffling the
outcome B times and refitting builds an empirical null distribution
(the **reference set**) for every reference-coded coefficient β_ck;
the fraction of that set at least as extreme as the observed β_ck is
its p-value.

Shuffling the outcome as a whole (Manly, 1997) preserves the marginal
distribution of outcome categories and the full joint structure of the
predictors, and destroys only the predictor–outcome association.  It
therefore tests the global null for each coefficient rather than a
partial null conditional on the other predictors.

References:
    Manly, B. F. J. (1997). *Randomization, Bootstrap and Monte Carlo
    Methods in Biology* (2nd ed.). Chapman & Hall.

    Phipson, B. & Smyth, G. K. (2010). Permutation p-values should
    never be zero. *Stat. Appl. Genet. Mol. Biol.*, 9(1), Article 39.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ._compat import DatasetLike
from ._results import PermutationTestResult
from .engine import PermutationTester
from .fitters import ModelFitter
from .pvalues import DEFAULT_THRESHOLDS


def permutation_test_mnlogit(
    dataset: DatasetLike,
    outcome: Any,
    predictors: Sequence[Any],
    n_permutations: int = 1_000,
    *,
    reference: Any = None,
    random_state: int | None = None,
    n_jobs: int | None = None,
    fitter: ModelFitter | None = None,
    correction: bool = False,
    confidence_level: float = 0.95,
    p_value_threshold_one: float = DEFAULT_THRESHOLDS[0],
    p_value_threshold_two: float = DEFAULT_THRESHOLDS[1],
    p_value_threshold_three: float = DEFAULT_THRESHOLDS[2],
) -> PermutationTestResult:
    """Run a permutation test for multinomial logit coefficients.

    Args:
        dataset: pandas or Polars DataFrame, or a sequence of row
            mappings.
        outcome: Categorical outcome column (≥ 2 levels).
        predictors: Predictor columns; categorical predictors are
            expanded with treatment coding.
        n_permutations: Number of outcome shuffles.
        reference: Reference outcome level.  Defaults to the first
            level encountered in *dataset*.
        random_state: Seed for reproducibility.
        n_jobs: Worker threads (``-1`` = all cores).  Defaults to the
            value from :func:`~mnlogit_permutation.get_n_jobs`.
        fitter: Model fitter; defaults to
            :class:`~mnlogit_permutation.MNLogitFitter`.
        correction: Report Phipson & Smyth corrected p-values.
        confidence_level: Coverage of the per-p-value Clopper-Pearson
            interval.
        p_value_threshold_one: First significance level.
        p_value_threshold_two: Second significance level.
        p_value_threshold_three: Third significance level.

    Returns:
        :class:`~mnlogit_permutation.PermutationTestResult`.

    Raises:
        InvalidArgument: Malformed input.
        FitFailure: Observed or permuted fit failed.
    """
    tester = PermutationTester(
        fitter,
        random_state=random_state,
        n_jobs=n_jobs,
        reference=reference,
        correction=correction,
        confidence_level=confidence_level,
    )
    return tester.test(
        dataset,
        outcome,
        predictors,
        n_permutations,
        thresholds=(
            p_value_threshold_one,
            p_value_threshold_two,
            p_value_threshold_three,
        ),
    )
