"""Typed containers for permutation-test output.

* :class:`NullDistribution` — pre-sized ``(K-1, P, B)`` store for the
  permuted coefficients.  Each permutation writes one disjoint slice,
  and the store refuses to hand out its values while any slice is
  still empty.
* :class:`PValueTable` — read-only mapping
  ``category -> coefficient name -> p-value``.
* :class:`PermutationTestResult` — frozen record of a completed run
  with attribute access, dict-like access (``result["p_values"]``,
  ``result.get(...)``, ``"key" in result``), and a JSON-safe
  ``to_dict()``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, ClassVar

import numpy as np
import pandas as pd

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy scalars/arrays to Python-native types.

    Handles nested mappings, lists, np.ndarray, np.integer, and
    np.floating so that :meth:`to_dict` returns a fully
    JSON-serialisable structure.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, Mapping):
        return {_numpy_to_python(k): _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


def _read_only(values: np.ndarray) -> np.ndarray:
    arr = np.array(values, dtype=float, copy=True)
    arr.setflags(write=False)
    return arr


# ------------------------------------------------------------------ #
# NullDistribution
# ------------------------------------------------------------------ #


class NullDistribution:
    """Permuted coefficients indexed by (category, coefficient, permutation).

    The array is allocated once at full size.  :meth:`record` writes the
    coefficient matrix of permutation *index* into ``values[:, :, index]``;
    concurrent writers touch disjoint slices, so no lock is needed.

    Args:
        categories: Non-reference outcome categories (first axis).
        coefficient_names: Coefficient names (second axis).
        n_permutations: Number of permutation slots (third axis).
    """

    def __init__(
        self,
        categories: tuple[Any, ...],
        coefficient_names: tuple[str, ...],
        n_permutations: int,
    ) -> None:
        self.categories = tuple(categories)
        self.coefficient_names = tuple(coefficient_names)
        self.n_permutations = int(n_permutations)
        self._values = np.full(
            (len(self.categories), len(self.coefficient_names), self.n_permutations),
            np.nan,
        )
        self._recorded = np.zeros(self.n_permutations, dtype=bool)

    @property
    def shape(self) -> tuple[int, int, int]:
        return self._values.shape  # type: ignore[return-value]

    @property
    def n_recorded(self) -> int:
        return int(self._recorded.sum())

    @property
    def is_complete(self) -> bool:
        return bool(self._recorded.all())

    def record(self, index: int, coefficients: np.ndarray) -> None:
        """Store the ``(K-1, P)`` coefficient matrix of permutation *index*."""
        coefficients = np.asarray(coefficients, dtype=float)
        if coefficients.shape != self._values.shape[:2]:
            raise ValueError(
                f"coefficient matrix shape {coefficients.shape} does not match "
                f"{self._values.shape[:2]}."
            )
        self._values[:, :, index] = coefficients
        self._recorded[index] = True

    def require_complete(self) -> None:
        """Raise ``RuntimeError`` if any permutation slot is still empty."""
        if not self.is_complete:
            missing = np.flatnonzero(~self._recorded)
            raise RuntimeError(
                f"null distribution is incomplete: {len(missing)} of "
                f"{self.n_permutations} permutations missing "
                f"(first missing index {int(missing[0])})."
            )

    @property
    def values(self) -> np.ndarray:
        """Read-only ``(K-1, P, B)`` array; requires a complete store."""
        self.require_complete()
        view = self._values.view()
        view.setflags(write=False)
        return view

    def __getitem__(self, key: tuple[Any, str]) -> np.ndarray:
        """``null[category, coefficient_name]`` → length-B vector."""
        category, name = key
        try:
            i = self.categories.index(category)
            j = self.coefficient_names.index(name)
        except ValueError:
            raise KeyError(key) from None
        return self.values[i, j]

    def __repr__(self) -> str:
        return (
            f"NullDistribution(categories={list(self.categories)!r}, "
            f"coefficients={list(self.coefficient_names)!r}, "
            f"recorded={self.n_recorded}/{self.n_permutations})"
        )


# ------------------------------------------------------------------ #
# PValueTable
# ------------------------------------------------------------------ #


class PValueTable(Mapping):
    """Read-only ``category -> coefficient name -> p-value`` mapping.

    Iterates over the non-reference categories in model order.  The
    reference category is never a key.

    Args:
        values: P-values of shape ``(K-1, P)``.
        categories: Non-reference categories (rows).
        coefficient_names: Coefficient names (columns).
        reference: The reference category, kept for display.
    """

    def __init__(
        self,
        values: np.ndarray,
        categories: tuple[Any, ...],
        coefficient_names: tuple[str, ...],
        reference: Any = None,
    ) -> None:
        self._values = _read_only(values)
        self._categories = tuple(categories)
        self._names = tuple(coefficient_names)
        self._reference = reference
        if self._values.shape != (len(self._categories), len(self._names)):
            raise ValueError(
                f"p-value matrix shape {self._values.shape} does not match "
                f"{len(self._categories)} categories x {len(self._names)} coefficients."
            )
        self._rows = {
            category: MappingProxyType(
                {name: float(p) for name, p in zip(self._names, row, strict=True)}
            )
            for category, row in zip(self._categories, self._values, strict=True)
        }

    @property
    def values(self) -> np.ndarray:
        """Read-only ``(K-1, P)`` array of p-values."""
        return self._values

    @property
    def categories(self) -> tuple[Any, ...]:
        return self._categories

    @property
    def coefficient_names(self) -> tuple[str, ...]:
        return self._names

    @property
    def reference(self) -> Any:
        return self._reference

    def __getitem__(self, category: Any) -> Mapping[str, float]:
        return self._rows[category]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def to_frame(self) -> pd.DataFrame:
        """P-values as a DataFrame (rows: categories, columns: terms)."""
        return pd.DataFrame(
            np.array(self._values),
            index=pd.Index(list(self._categories), name="category"),
            columns=list(self._names),
        )

    def to_dict(self) -> dict[Any, dict[str, float]]:
        return {category: dict(row) for category, row in self._rows.items()}

    def __repr__(self) -> str:
        return f"PValueTable(reference={self._reference!r}, {self.to_dict()!r})"


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test

    Subclasses may override ``_SERIALIZERS`` to register conversion
    functions for non-primitive fields.  Serialized values still pass
    through :func:`_numpy_to_python`.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {}

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain, JSON-serialisable dictionary."""
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            val = getattr(self, f.name)
            if f.name in self._SERIALIZERS:
                val = self._SERIALIZERS[f.name](val)
            result[f.name] = _numpy_to_python(val)
        return result


# ------------------------------------------------------------------ #
# PermutationTestResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PermutationTestResult(_DictAccessMixin):
    """Result of a multinomial permutation test.

    Returned by :meth:`PermutationTester.test` and
    :func:`~mnlogit_permutation.permutation_test_mnlogit`.  All fields
    are accessible both as attributes and via dict syntax.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "p_values": lambda t: t.to_dict(),
    }
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"null_distribution"})

    # ---- P-values --------------------------------------------------
    p_values: PValueTable
    """Empirical two-tailed p-values per (category, coefficient)."""

    tail_counts: np.ndarray
    """Combined tail counts ``b_left + b_right``, shape ``(K-1, P)``."""

    pvalue_ci: np.ndarray
    """Clopper-Pearson bounds, shape ``(K-1, P, 2)``."""

    classic_p_values: np.ndarray | None
    """Asymptotic Wald p-values ``(K-1, P)``, or ``None``."""

    # ---- Coefficients & null distribution --------------------------
    model_coefs: np.ndarray
    """Observed coefficient matrix ``(K-1, P)``."""

    null_distribution: NullDistribution = field(repr=False, compare=False)
    """Permuted coefficients ``(K-1, P, B)``.  Excluded from ``to_dict()``."""

    # ---- Model layout ----------------------------------------------
    outcome: Any = None
    predictors: tuple[Any, ...] = ()
    reference: Any = None
    categories: tuple[Any, ...] = ()
    coefficient_names: tuple[str, ...] = ()

    # ---- Run metadata ----------------------------------------------
    n_permutations: int = 0
    random_state: int | None = None
    n_jobs: int = 1
    fitter: str = ""
    correction: bool = False
    confidence_level: float = 0.95

    # ---- Thresholds ------------------------------------------------
    p_value_threshold_one: float = 0.05
    p_value_threshold_two: float = 0.01
    p_value_threshold_three: float = 0.001

    # ---- Diagnostics -----------------------------------------------
    diagnostics: dict[str, Any] = field(default_factory=dict)
    """Sample and goodness-of-fit summary of the observed model."""

    def coefficient_frame(self) -> pd.DataFrame:
        """Long-format table: one row per (category, coefficient)."""
        rows = []
        for i, category in enumerate(self.categories):
            for j, name in enumerate(self.coefficient_names):
                rows.append(
                    {
                        "category": category,
                        "coefficient": name,
                        "estimate": float(self.model_coefs[i, j]),
                        "p_value": float(self.p_values.values[i, j]),
                        "ci_lower": float(self.pvalue_ci[i, j, 0]),
                        "ci_upper": float(self.pvalue_ci[i, j, 1]),
                        "classic_p_value": (
                            float(self.classic_p_values[i, j])
                            if self.classic_p_values is not None
                            else float("nan")
                        ),
                    }
                )
        return pd.DataFrame(rows)


__all__ = ["NullDistribution", "PValueTable", "PermutationTestResult"]
