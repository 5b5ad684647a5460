"""mnlogit_permutation — Permutation tests for multinomial logit coefficients.

Builds an empirical null distribution for every reference-coded
coefficient of a multinomial logistic regression by repeatedly
shuffling the outcome column and refitting, then reports two-tailed
empirical p-values per (non-reference category, coefficient).  Model
fitting is delegated to statsmodels ``MNLogit`` (default) or
scikit-learn ``LogisticRegression``; permutation fits can run on a
joblib thread pool with independent, reproducible random streams.

Public API:
    .. autosummary::
        PermutationTester
        permutation_test_mnlogit
        print_results_table
        ModelSpec
        FittedModel
        ModelFitter
        MNLogitFitter
        SklearnMultinomialFitter
        PValueTable
        NullDistribution
        PermutationTestResult
        calculate_p_values
        pvalue_confidence_intervals
        spawn_permutation_seeds
        permute_outcome
        get_n_jobs
        set_n_jobs
        InvalidArgument
        FitFailure
        PermutationCancelled
"""

from ._config import get_n_jobs, set_n_jobs
from ._exceptions import FitFailure, InvalidArgument, PermutationCancelled
from ._results import NullDistribution, PermutationTestResult, PValueTable
from .core import permutation_test_mnlogit
from .display import print_results_table
from .engine import PermutationTester
from .fitters import (
    FittedModel,
    MNLogitFitter,
    ModelFitter,
    ModelSpec,
    SklearnMultinomialFitter,
)
from .permutations import permute_outcome, spawn_permutation_seeds
from .pvalues import calculate_p_values, pvalue_confidence_intervals

__all__ = [
    "FitFailure",
    "FittedModel",
    "InvalidArgument",
    "MNLogitFitter",
    "ModelFitter",
    "ModelSpec",
    "NullDistribution",
    "PValueTable",
    "PermutationCancelled",
    "PermutationTestResult",
    "PermutationTester",
    "SklearnMultinomialFitter",
    "calculate_p_values",
    "get_n_jobs",
    "permutation_test_mnlogit",
    "permute_outcome",
    "print_results_table",
    "pvalue_confidence_intervals",
    "set_n_jobs",
    "spawn_permutation_seeds",
]

__version__ = "0.1.0"
