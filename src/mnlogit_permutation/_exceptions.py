"""Error types raised by the permutation tester.

Two failure families matter to callers:

* :class:`InvalidArgument` — malformed input detected *before* any
  model is fitted.  Subclasses ``ValueError`` so existing
  ``except ValueError`` handlers keep working.
* :class:`FitFailure` — the underlying multinomial fit did not
  converge or was numerically degenerate.  Carries which fit failed
  (the observed fit or a permutation index) so the caller can decide
  whether to inspect the data, check predictor separability, or change
  the number of permutations.

A run that fails never returns partial p-values: a p-value computed
against an incomplete null distribution is not a valid p-value.
"""

from __future__ import annotations

from typing import Any


class InvalidArgument(ValueError):
    """Malformed input to a permutation run."""


class FitFailure(RuntimeError):
    """A model fit did not converge or was numerically degenerate.

    Attributes:
        reason: Short description of the numerical cause.
        permutation_index: Index of the failing permutation, or
            ``None`` when the observed (unpermuted) fit failed.
        outcome: Outcome column name, when known.
    """

    def __init__(
        self,
        reason: str,
        *,
        permutation_index: int | None = None,
        outcome: Any = None,
    ) -> None:
        self.reason = reason
        self.permutation_index = permutation_index
        self.outcome = outcome
        super().__init__(self._describe())

    @property
    def fit_label(self) -> str:
        """``"observed fit"`` or ``"permutation <i>"``."""
        if self.permutation_index is None:
            return "observed fit"
        return f"permutation {self.permutation_index}"

    def _describe(self) -> str:
        where = self.fit_label
        if self.outcome is not None:
            where += f" (outcome '{self.outcome}')"
        return f"Model fit failed on {where}: {self.reason}"

    def located(
        self,
        permutation_index: int | None,
        outcome: Any,
    ) -> FitFailure:
        """Return a copy of this failure tagged with where it happened."""
        return FitFailure(
            self.reason,
            permutation_index=permutation_index,
            outcome=outcome,
        )


class PermutationCancelled(RuntimeError):
    """A run was cancelled before its null distribution was complete.

    Attributes:
        completed: Number of permutations recorded before stopping.
        requested: Number of permutations the run asked for.
    """

    def __init__(self, completed: int, requested: int) -> None:
        self.completed = completed
        self.requested = requested
        super().__init__(
            f"Permutation run cancelled after {completed} of {requested} "
            f"permutations; no p-values were computed."
        )


__all__ = ["FitFailure", "InvalidArgument", "PermutationCancelled"]
