"""Input compatibility layer.

All public entry points work on a :class:`pandas.DataFrame`.  This
module converts the other accepted dataset shapes at the boundary so
that internal code only ever sees pandas:

* ``polars.DataFrame`` / ``polars.LazyFrame`` — converted via
  ``.to_pandas()`` (Polars is an optional dependency).
* A sequence of mappings (records), e.g. ``[{"Major": "Business",
  "Math_Score": 51.2}, ...]`` — converted via
  :meth:`pandas.DataFrame.from_records`, keeping row order.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeAlias

import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DatasetLike: TypeAlias = (
        pd.DataFrame | pl.DataFrame | pl.LazyFrame | Sequence[Mapping[str, Any]]
    )
else:
    DatasetLike: TypeAlias = pd.DataFrame | Sequence[Mapping[str, Any]]

# Polars is optional.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _ensure_pandas_df(obj: DatasetLike, *, name: str = "dataset") -> pd.DataFrame:
    """Convert *obj* to a :class:`pandas.DataFrame` if necessary.

    Accepted types:
        * ``pandas.DataFrame`` — returned as-is (never mutated later).
        * ``polars.DataFrame`` — converted via ``.to_pandas()``.
        * ``polars.LazyFrame`` — collected then converted.
        * A list or tuple of mappings — one mapping per row.

    Args:
        obj: The dataset in any accepted form.
        name: Label used in error messages.

    Returns:
        A pandas ``DataFrame``.

    Raises:
        TypeError: If *obj* is not a recognised dataset type.
    """
    if isinstance(obj, pd.DataFrame):
        return obj

    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            return obj.collect().to_pandas()
        if isinstance(obj, pl.DataFrame):
            return obj.to_pandas()

    if isinstance(obj, (list, tuple)) and all(isinstance(row, Mapping) for row in obj):
        return pd.DataFrame.from_records(list(obj))

    raise TypeError(
        f"'{name}' must be a pandas DataFrame"
        + (", Polars DataFrame/LazyFrame" if _HAS_POLARS else "")
        + f" or a sequence of row mappings, got {type(obj).__name__}."
    )
