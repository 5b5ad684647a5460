"""Synthetic students choosing a major, shared by the test modules."""

from __future__ import annotations

import threading

import numpy as np
import pandas as pd

from mnlogit_permutation.fitters import FittedModel, build_design, encode_outcome

MAJORS = ("Humanities", "Business", "Engineering")


def make_major_data(
    n: int = 100,
    seed: int = 42,
    math_effect: float = 0.0,
) -> pd.DataFrame:
    """Outcome ``Major`` with predictors ``Math_Score`` and ``Gender``.

    With ``math_effect == 0`` the major is drawn independently of both
    predictors.  Otherwise higher math scores raise the log-odds of
    Engineering (and, by half as much, Business) against Humanities.
    The first row is always Humanities so it is the default reference.
    """
    rng = np.random.default_rng(seed)
    math_score = rng.normal(50.0, 10.0, size=n)
    gender = rng.choice(["Male", "Female"], size=n)

    z = (math_score - 50.0) / 10.0
    logits = np.column_stack(
        [np.zeros(n), 0.5 * math_effect * z, math_effect * z]
    )
    probs = np.exp(logits)
    probs /= probs.sum(axis=1, keepdims=True)
    draws = np.array([rng.choice(3, p=p) for p in probs])
    major = np.array(MAJORS, dtype=object)[draws]
    major[0] = "Humanities"
    # Every major must be present for a well-defined fit.
    major[1] = "Business"
    major[2] = "Engineering"

    return pd.DataFrame(
        {"Major": major, "Math_Score": math_score, "Gender": gender}
    )




class MeanDifferenceFitter:
    """Cheap deterministic stand-in for a multinomial fitter.

    Row ``k`` holds the mean of each design column among rows of
    category ``k`` minus its mean among reference rows; the intercept
    column instead holds the category mean of the first predictor, so
    no coefficient is identically zero.  Every call is counted, and
    *hook* (if given) is called with the call number before fitting.
    """

    name = "mean-difference"

    def __init__(self, hook=None):
        self.calls = 0
        self._hook = hook
        self._lock = threading.Lock()

    def fit(self, dataset, spec):
        with self._lock:
            call = self.calls
            self.calls += 1
        if self._hook is not None:
            self._hook(call)

        y = encode_outcome(dataset, spec)
        X, names = build_design(dataset, spec)
        ref_mean = X[y == 0].mean(axis=0)
        rows = []
        for k in range(1, len(spec.levels)):
            row = X[y == k].mean(axis=0) - ref_mean
            row[0] = X[y == k, 1].mean()
            rows.append(row)
        return FittedModel(
            reference=spec.reference,
            categories=spec.categories,
            coefficient_names=names,
            coefficients=np.array(rows),
            n_observations=len(y),
        )
