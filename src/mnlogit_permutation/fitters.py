"""Multinomial model fitters — the black-box "fit → coefficient matrix" step.

The permutation tester never optimises anything itself.  It consumes
any object satisfying the :class:`ModelFitter` protocol:

    fit(dataset, spec) -> FittedModel

where the returned :class:`FittedModel` carries one coefficient row per
non-reference outcome category and one column per coefficient name
(intercept plus predictor terms).  A fitter must raise
:class:`~mnlogit_permutation.FitFailure` when the optimiser does not
converge or the problem is numerically degenerate, rather than return
silently broken coefficients.

Reference coding
----------------
Multinomial logistic regression identifies K−1 coefficient vectors
relative to a reference category r:

    log P(Y = k | X) / P(Y = r | X) = X βₖ     for k ≠ r

The reference's own coefficients are fixed at zero and never reported.
Which level plays the reference is decided once, by the caller, and
recorded in :attr:`ModelSpec.levels` (reference first).  Fitters honour
that order for every fit, so shuffling the outcome (which changes the
first level encountered) cannot change which coefficients are reported.

Design matrix
-------------
:func:`build_design` prepends an ``"Intercept"`` column, passes numeric
predictors through, and expands categorical (object, string, boolean,
categorical-dtype) predictors with treatment coding: levels are sorted,
the first sorted level is the dummy baseline, and each other level
becomes a ``"col[T.level]"`` indicator column.

Two adapters are provided:

* :class:`MNLogitFitter` — statsmodels ``MNLogit`` (Newton–Raphson by
  default).  Supplies classical Wald p-values and model diagnostics.
* :class:`SklearnMultinomialFitter` — unpenalised scikit-learn
  ``LogisticRegression`` (L-BFGS).  Softmax coefficients are converted
  to reference coding by subtracting the reference row.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning as SkConvergenceWarning
from sklearn.linear_model import LogisticRegression
from statsmodels.discrete.discrete_model import MNLogit
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning as SmConvergenceWarning,
)
from statsmodels.tools.sm_exceptions import (
    HessianInversionWarning,
    PerfectSeparationWarning,
)

from ._exceptions import FitFailure

INTERCEPT = "Intercept"

# ------------------------------------------------------------------ #
# Model specification & fitted model
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ModelSpec:
    """Outcome, ordered predictors, and the fixed outcome level order.

    Attributes:
        outcome: Outcome column name.
        predictors: Predictor column names, in design order.
        levels: Every outcome level, reference first, then the
            non-reference categories in reporting order.
    """

    outcome: Any
    predictors: tuple[Any, ...]
    levels: tuple[Any, ...]

    @property
    def reference(self) -> Any:
        return self.levels[0]

    @property
    def categories(self) -> tuple[Any, ...]:
        """Non-reference outcome categories."""
        return self.levels[1:]

    @classmethod
    def from_data(
        cls,
        dataset: pd.DataFrame,
        outcome: Any,
        predictors: Any,
        reference: Any = None,
    ) -> ModelSpec:
        """Build a spec, resolving the outcome level order from *dataset*.

        Levels are taken in first-appearance order.  The reference is
        *reference* when given, otherwise the first level encountered.
        """
        observed = list(pd.unique(dataset[outcome]))
        if reference is None:
            reference = observed[0]
        others = [level for level in observed if level != reference]
        return cls(
            outcome=outcome,
            predictors=tuple(predictors),
            levels=(reference, *others),
        )


@dataclass(frozen=True)
class FittedModel:
    """Reference-coded multinomial fit.

    Attributes:
        reference: Reference outcome level (coefficients fixed at 0).
        categories: Non-reference levels, one per coefficient row.
        coefficient_names: Intercept plus expanded predictor terms,
            one per coefficient column.
        coefficients: Coefficient matrix ``(K-1, P)``.
        classic_p_values: Asymptotic Wald p-values ``(K-1, P)``, or
            ``None`` when the fitter does not provide them.
        n_observations: Number of rows used in the fit.
        results: Native results object from the underlying library.
    """

    reference: Any
    categories: tuple[Any, ...]
    coefficient_names: tuple[str, ...]
    coefficients: np.ndarray
    classic_p_values: np.ndarray | None = None
    n_observations: int = 0
    results: Any = field(default=None, repr=False, compare=False)

    def coefficient_frame(self) -> pd.DataFrame:
        """Coefficients as a DataFrame (rows: categories, columns: terms)."""
        return pd.DataFrame(
            self.coefficients,
            index=pd.Index(list(self.categories), name="category"),
            columns=list(self.coefficient_names),
        )


@runtime_checkable
class ModelFitter(Protocol):
    """Interface every multinomial fitter must implement.

    Attributes:
        name: Short identifier used in results and display.
    """

    @property
    def name(self) -> str: ...

    def fit(self, dataset: pd.DataFrame, spec: ModelSpec) -> FittedModel:
        """Fit the model described by *spec* to *dataset*.

        Raises:
            FitFailure: On non-convergence, singular design, or
                insufficient outcome variation.
        """
        ...


# ------------------------------------------------------------------ #
# Shared design helpers
# ------------------------------------------------------------------ #


def _is_numeric(series: pd.Series) -> bool:
    return bool(
        pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)
    )


def build_design(
    dataset: pd.DataFrame,
    spec: ModelSpec,
) -> tuple[np.ndarray, tuple[str, ...]]:
    """Build the design matrix for *spec*, intercept first.

    Returns:
        ``(X, names)`` where ``X`` has shape ``(n, P)`` and ``names``
        has length ``P``.
    """
    n = len(dataset)
    columns: list[np.ndarray] = [np.ones(n)]
    names: list[str] = [INTERCEPT]

    for col in spec.predictors:
        series = dataset[col]
        if _is_numeric(series):
            columns.append(series.to_numpy(dtype=float))
            names.append(str(col))
            continue
        # Treatment coding against the first sorted level.
        levels = sorted(pd.unique(series.dropna()), key=str)
        for level in levels[1:]:
            columns.append((series == level).to_numpy(dtype=float))
            names.append(f"{col}[T.{level}]")

    return np.column_stack(columns), tuple(names)


def encode_outcome(dataset: pd.DataFrame, spec: ModelSpec) -> np.ndarray:
    """Integer-code the outcome so that code 0 is the reference level.

    Raises:
        FitFailure: If the outcome holds an unknown level or fewer
            than two distinct levels.
    """
    codes = pd.Categorical(
        dataset[spec.outcome], categories=list(spec.levels)
    ).codes.astype(int)
    if np.any(codes < 0):
        raise FitFailure(
            "outcome contains levels outside the model specification",
            outcome=spec.outcome,
        )
    present = np.unique(codes)
    if len(present) < 2:
        raise FitFailure(
            "insufficient category variation: the outcome takes a single value",
            outcome=spec.outcome,
        )
    if len(present) < len(spec.levels):
        missing = [spec.levels[c] for c in range(len(spec.levels)) if c not in present]
        raise FitFailure(
            f"insufficient category variation: levels {missing} are absent",
            outcome=spec.outcome,
        )
    return codes


def _check_rank(X: np.ndarray, names: tuple[str, ...], outcome: Any) -> None:
    rank = np.linalg.matrix_rank(X)
    if rank < X.shape[1]:
        raise FitFailure(
            f"singular design matrix: rank {rank} < {X.shape[1]} columns "
            f"({', '.join(names)})",
            outcome=outcome,
        )


# ------------------------------------------------------------------ #
# statsmodels MNLogit
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class MNLogitFitter:
    """Multinomial logit via ``statsmodels.discrete.discrete_model.MNLogit``.

    Attributes:
        method: Optimiser passed to ``MNLogit.fit`` (default
            ``"newton"``).
        maxiter: Maximum optimiser iterations.
    """

    method: str = "newton"
    maxiter: int = 200

    @property
    def name(self) -> str:
        return "statsmodels-mnlogit"

    def fit(self, dataset: pd.DataFrame, spec: ModelSpec) -> FittedModel:
        y = encode_outcome(dataset, spec)
        X, names = build_design(dataset, spec)
        _check_rank(X, names, spec.outcome)

        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", category=SmConvergenceWarning)
                warnings.filterwarnings("ignore", category=PerfectSeparationWarning)
                warnings.filterwarnings("ignore", category=HessianInversionWarning)
                warnings.filterwarnings("ignore", category=RuntimeWarning)
                results = MNLogit(y, X).fit(
                    method=self.method, maxiter=self.maxiter, disp=0
                )
        except np.linalg.LinAlgError as exc:
            raise FitFailure(
                f"singular Hessian during optimisation ({exc})", outcome=spec.outcome
            ) from exc

        if not results.mle_retvals.get("converged", True):
            raise FitFailure(
                f"MNLogit did not converge within {self.maxiter} iterations "
                f"(method='{self.method}'); check for separation",
                outcome=spec.outcome,
            )

        params = np.asarray(results.params, dtype=float).T  # (K-1, P)
        if not np.all(np.isfinite(params)):
            raise FitFailure("non-finite coefficients", outcome=spec.outcome)

        # Standard errors can be undefined even when the point estimate
        # is fine; classical p-values then come back as NaN.
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=RuntimeWarning)
            try:
                pvalues = np.asarray(results.pvalues, dtype=float).T
            except np.linalg.LinAlgError:
                pvalues = np.full_like(params, np.nan)

        return FittedModel(
            reference=spec.reference,
            categories=spec.categories,
            coefficient_names=names,
            coefficients=params,
            classic_p_values=pvalues,
            n_observations=len(y),
            results=results,
        )

    def diagnostics(self, fitted: FittedModel) -> dict[str, Any]:
        """Model-level goodness-of-fit measures for a fit from this fitter."""
        results = fitted.results
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=SmConvergenceWarning)
            warnings.filterwarnings("ignore", category=RuntimeWarning)
            llf = float(results.llf)
            llnull = float(results.llnull)
            try:
                llr_p = float(results.llr_pvalue)
            except (AttributeError, TypeError):
                llr_p = float("nan")
        return {
            "log_likelihood": llf,
            "log_likelihood_null": llnull,
            "pseudo_r_squared": 1.0 - llf / llnull if llnull != 0.0 else float("nan"),
            "aic": float(results.aic),
            "bic": float(results.bic),
            "llr_p_value": llr_p,
        }


# ------------------------------------------------------------------ #
# scikit-learn LogisticRegression
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class SklearnMultinomialFitter:
    """Unpenalised multinomial logistic regression via scikit-learn.

    scikit-learn parameterises the multinomial model symmetrically
    (one coefficient vector per class, softmax over all K).  For an
    unpenalised MLE the reference-coded coefficients are recovered
    exactly as ``βₖ − β_ref``.

    Attributes:
        max_iter: L-BFGS iteration cap.  A fit that uses all of it is
            reported as non-converged.
        tol: Solver tolerance.
    """

    max_iter: int = 5_000
    tol: float = 1e-8

    @property
    def name(self) -> str:
        return "sklearn-logistic"

    def fit(self, dataset: pd.DataFrame, spec: ModelSpec) -> FittedModel:
        y = encode_outcome(dataset, spec)
        X, names = build_design(dataset, spec)
        _check_rank(X, names, spec.outcome)

        model = LogisticRegression(
            penalty=None,
            solver="lbfgs",
            max_iter=self.max_iter,
            tol=self.tol,
            fit_intercept=True,
        )
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=SkConvergenceWarning)
            warnings.filterwarnings("ignore", category=RuntimeWarning)
            # Intercept is estimated by sklearn; drop our column of ones.
            model.fit(X[:, 1:], y)

        if np.max(model.n_iter_) >= self.max_iter:
            raise FitFailure(
                f"LogisticRegression did not converge within {self.max_iter} "
                f"iterations; check for separation",
                outcome=spec.outcome,
            )

        full = np.column_stack([model.intercept_, model.coef_])  # (K or 1, P)
        if full.shape[0] == 1:
            # Binary outcome: sklearn already reports class 1 vs class 0.
            params = full
        else:
            params = full[1:] - full[0]
        if not np.all(np.isfinite(params)):
            raise FitFailure("non-finite coefficients", outcome=spec.outcome)

        return FittedModel(
            reference=spec.reference,
            categories=spec.categories,
            coefficient_names=names,
            coefficients=np.asarray(params, dtype=float),
            classic_p_values=None,
            n_observations=len(y),
            results=model,
        )


__all__ = [
    "INTERCEPT",
    "FittedModel",
    "MNLogitFitter",
    "ModelFitter",
    "ModelSpec",
    "SklearnMultinomialFitter",
    "build_design",
    "encode_outcome",
]
