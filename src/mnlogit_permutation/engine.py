"""Permutation tester — orchestration of the observed fit and the null loop.

The :class:`PermutationTester` runs the whole procedure:

1. **Validation** — reject malformed input before any model is fitted.
2. **Model spec** — fix the outcome level order (reference first) from
   the observed data, so every later fit reports the same categories.
3. **Observed fit** — one call to the fitter on the unpermuted data.
4. **Null loop** — ``nreps`` fits on copies of the data whose outcome
   column has been shuffled, each with its own random stream.
5. **P-values** — two-tailed comparison of the observed coefficients
   against the null distribution.

The contract is all-or-nothing: any failed fit aborts the run with a
:class:`~mnlogit_permutation.FitFailure` that names the failing fit,
and a cancelled run raises
:class:`~mnlogit_permutation.PermutationCancelled`.  No partial
p-values are ever returned.

Parallelism
~~~~~~~~~~~
With ``n_jobs != 1`` the permutation fits run on
``joblib.Parallel(prefer="threads")``.  Each task builds its own
generator and its own dataset copy, and writes only its own slice of
the pre-sized null distribution, so no locking is needed and the
output does not depend on the worker count.  Tasks are fed from a
generator that stops yielding once :meth:`PermutationTester.cancel` is
called; joblib's bounded pre-dispatch means only a handful of tasks
are ever queued ahead of the workers.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from typing import Any

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ._compat import DatasetLike, _ensure_pandas_df
from ._config import resolve_n_jobs
from ._exceptions import FitFailure, InvalidArgument, PermutationCancelled
from ._results import NullDistribution, PermutationTestResult, PValueTable
from .fitters import FittedModel, MNLogitFitter, ModelFitter, ModelSpec
from .permutations import permute_outcome, spawn_permutation_seeds
from .pvalues import (
    DEFAULT_THRESHOLDS,
    calculate_p_values,
    pvalue_confidence_intervals,
)

logger = logging.getLogger(__name__)

# Numerical errors a fitter may let escape; they are reported as fit
# failures.  Anything else is a bug and propagates unchanged.
_NUMERICAL_ERRORS = (np.linalg.LinAlgError, ValueError, ArithmeticError)


class PermutationTester:
    """Permutation significance test for multinomial logit coefficients.

    Args:
        fitter: Object implementing the :class:`ModelFitter` protocol.
            Defaults to :class:`MNLogitFitter`.
        random_state: Root seed.  A fixed integer makes every run with
            the same input return identical output; ``None`` draws
            fresh entropy per run.
        n_jobs: Worker threads for the permutation loop.  ``None``
            defers to :func:`~mnlogit_permutation.get_n_jobs`.
        reference: Outcome level to use as the reference category.
            ``None`` uses the first level encountered in the data.
        correction: Use the Phipson & Smyth ``(b + 1) / (B + 1)``
            p-value instead of ``b / B``.
        confidence_level: Coverage of the Clopper-Pearson interval
            reported for each p-value.
    """

    def __init__(
        self,
        fitter: ModelFitter | None = None,
        *,
        random_state: int | None = None,
        n_jobs: int | None = None,
        reference: Any = None,
        correction: bool = False,
        confidence_level: float = 0.95,
    ) -> None:
        self.fitter: ModelFitter = fitter if fitter is not None else MNLogitFitter()
        if not isinstance(self.fitter, ModelFitter):
            raise TypeError(
                f"fitter must implement fit(dataset, spec) and name, got "
                f"{type(self.fitter).__name__}."
            )
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.reference = reference
        self.correction = correction
        self.confidence_level = confidence_level
        self._cancel_event = threading.Event()

    # ---- Cancellation ---------------------------------------------

    def cancel(self) -> None:
        """Stop dispatching new permutations in the current run.

        Fits already in progress finish.  The run then raises
        :class:`PermutationCancelled` unless every permutation had
        already been recorded.
        """
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ---- Public operations ----------------------------------------

    def run(
        self,
        dataset: DatasetLike,
        outcome: Any,
        predictors: Sequence[Any],
        nreps: int,
    ) -> PValueTable:
        """Return the empirical p-value table for every coefficient.

        Args:
            dataset: Rows × columns holding the outcome and predictors.
            outcome: Categorical outcome column.
            predictors: Predictor columns (numeric or categorical).
            nreps: Number of permutations, at least 1.

        Returns:
            Mapping ``category -> coefficient name -> p-value`` over the
            non-reference categories.

        Raises:
            InvalidArgument: Malformed input; raised before any fit.
            FitFailure: The observed fit or a permutation fit failed.
            PermutationCancelled: :meth:`cancel` stopped the run early.
        """
        return self.test(dataset, outcome, predictors, nreps).p_values

    def test(
        self,
        dataset: DatasetLike,
        outcome: Any,
        predictors: Sequence[Any],
        nreps: int,
        *,
        thresholds: tuple[float, float, float] = DEFAULT_THRESHOLDS,
    ) -> PermutationTestResult:
        """Run the test and return the full result record.

        Same procedure and failure modes as :meth:`run`.  *thresholds*
        are the three significance levels recorded for display.
        """
        self._cancel_event.clear()

        data, predictors = self._validate(dataset, outcome, predictors, nreps)
        spec = ModelSpec.from_data(data, outcome, predictors, self.reference)

        observed = self._fit(data, spec, index=None)
        logger.debug(
            "Observed fit: %d categories x %d coefficients (reference=%r)",
            len(observed.categories),
            len(observed.coefficient_names),
            observed.reference,
        )

        null = NullDistribution(
            observed.categories, observed.coefficient_names, nreps
        )
        n_jobs = resolve_n_jobs(self.n_jobs)
        self._fill_null(data, spec, observed, null, n_jobs)

        if not null.is_complete:
            logger.debug(
                "Run cancelled after %d of %d permutations", null.n_recorded, nreps
            )
            raise PermutationCancelled(null.n_recorded, nreps)

        p_values, counts = calculate_p_values(
            observed.coefficients, null.values, correction=self.correction
        )
        table = PValueTable(
            p_values,
            observed.categories,
            observed.coefficient_names,
            reference=observed.reference,
        )
        logger.debug("Permutation run complete: %d permutations", nreps)

        return PermutationTestResult(
            p_values=table,
            tail_counts=counts,
            pvalue_ci=pvalue_confidence_intervals(
                counts, nreps, self.confidence_level
            ),
            classic_p_values=observed.classic_p_values,
            model_coefs=observed.coefficients,
            null_distribution=null,
            outcome=outcome,
            predictors=spec.predictors,
            reference=observed.reference,
            categories=observed.categories,
            coefficient_names=observed.coefficient_names,
            n_permutations=nreps,
            random_state=self.random_state,
            n_jobs=n_jobs,
            fitter=self.fitter.name,
            correction=self.correction,
            confidence_level=self.confidence_level,
            p_value_threshold_one=thresholds[0],
            p_value_threshold_two=thresholds[1],
            p_value_threshold_three=thresholds[2],
            diagnostics=self._diagnostics(data, spec, observed),
        )

    # ---- Validation -----------------------------------------------

    def _validate(
        self,
        dataset: DatasetLike,
        outcome: Any,
        predictors: Sequence[Any],
        nreps: int,
    ) -> tuple[pd.DataFrame, tuple[Any, ...]]:
        if isinstance(nreps, bool) or not isinstance(nreps, (int, np.integer)):
            raise InvalidArgument(f"nreps must be an integer, got {nreps!r}.")
        if nreps < 1:
            raise InvalidArgument(f"nreps must be at least 1, got {nreps}.")

        try:
            data = _ensure_pandas_df(dataset, name="dataset")
        except TypeError as exc:
            raise InvalidArgument(str(exc)) from None
        if len(data) == 0:
            raise InvalidArgument("dataset must contain at least one observation.")

        if outcome not in data.columns:
            raise InvalidArgument(f"outcome column '{outcome}' not found in dataset.")

        # Column labels often arrive as a pandas Index or a 1-D array.
        if isinstance(predictors, (pd.Index, np.ndarray)) and predictors.ndim == 1:
            predictors = predictors.tolist()
        if isinstance(predictors, str) or not isinstance(predictors, Sequence):
            raise InvalidArgument(
                "predictors must be a sequence of column names, got "
                f"{predictors!r}."
            )
        predictors = tuple(predictors)
        if len(predictors) == 0:
            raise InvalidArgument("predictors must name at least one column.")
        if len(set(predictors)) != len(predictors):
            raise InvalidArgument(f"predictors contain duplicates: {list(predictors)}.")
        if outcome in predictors:
            raise InvalidArgument(
                f"outcome column '{outcome}' must not also be a predictor."
            )
        missing = [col for col in predictors if col not in data.columns]
        if missing:
            raise InvalidArgument(f"predictor columns not found in dataset: {missing}.")

        used = [outcome, *predictors]
        null_counts = data[used].isna().sum()
        with_nulls = null_counts[null_counts > 0]
        if not with_nulls.empty:
            raise InvalidArgument(
                "missing values are not supported; found "
                + ", ".join(f"'{col}': {int(n)}" for col, n in with_nulls.items())
                + "."
            )

        levels = pd.unique(data[outcome])
        if len(levels) < 2:
            raise InvalidArgument(
                f"outcome column '{outcome}' needs at least 2 distinct categories, "
                f"got {len(levels)}."
            )
        if self.reference is not None and self.reference not in set(levels):
            raise InvalidArgument(
                f"reference category {self.reference!r} does not occur in "
                f"outcome column '{outcome}'."
            )
        return data, predictors

    # ---- Fitting --------------------------------------------------

    def _fit(
        self,
        data: pd.DataFrame,
        spec: ModelSpec,
        index: int | None,
    ) -> FittedModel:
        """One fitter call, with failures tagged by *index*."""
        try:
            return self.fitter.fit(data, spec)
        except FitFailure as exc:
            raise exc.located(index, spec.outcome) from exc
        except _NUMERICAL_ERRORS as exc:
            raise FitFailure(
                f"{type(exc).__name__}: {exc}",
                permutation_index=index,
                outcome=spec.outcome,
            ) from exc

    def _fill_null(
        self,
        data: pd.DataFrame,
        spec: ModelSpec,
        observed: FittedModel,
        null: NullDistribution,
        n_jobs: int,
    ) -> None:
        seeds = spawn_permutation_seeds(self.random_state, null.n_permutations)

        def _fit_one(index: int, seed: np.random.SeedSequence) -> None:
            rng = np.random.default_rng(seed)
            permuted = permute_outcome(data, spec.outcome, rng)
            model = self._fit(permuted, spec, index=index)
            if (
                model.categories != observed.categories
                or model.coefficient_names != observed.coefficient_names
            ):
                raise FitFailure(
                    "coefficient layout differs from the observed fit",
                    permutation_index=index,
                    outcome=spec.outcome,
                )
            null.record(index, model.coefficients)

        logger.debug(
            "Dispatching %d permutations on %d worker(s)", null.n_permutations, n_jobs
        )

        if n_jobs == 1:
            for index, seed in self._dispatch(seeds):
                _fit_one(index, seed)
            return

        Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_fit_one)(index, seed) for index, seed in self._dispatch(seeds)
        )

    def _dispatch(
        self,
        seeds: list[np.random.SeedSequence],
    ) -> Iterator[tuple[int, np.random.SeedSequence]]:
        for index, seed in enumerate(seeds):
            if self._cancel_event.is_set():
                return
            yield index, seed

    # ---- Diagnostics ----------------------------------------------

    def _diagnostics(
        self,
        data: pd.DataFrame,
        spec: ModelSpec,
        observed: FittedModel,
    ) -> dict[str, Any]:
        counts = data[spec.outcome].value_counts(sort=False)
        diagnostics: dict[str, Any] = {
            "n_observations": len(data),
            "n_predictors": len(spec.predictors),
            "n_coefficients": len(observed.coefficient_names),
            "n_categories": len(spec.levels),
            "category_counts": {level: int(counts[level]) for level in spec.levels},
        }
        describe = getattr(self.fitter, "diagnostics", None)
        if callable(describe):
            try:
                diagnostics.update(describe(observed))
            except _NUMERICAL_ERRORS as exc:
                logger.debug("Model diagnostics failed: %s", exc)
        return diagnostics


__all__ = ["PermutationTester"]
