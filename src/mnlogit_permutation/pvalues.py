"""Empirical p-values from a permutation null distribution.

Two-tailed p-value
------------------
For every (non-reference category c, coefficient k) the observed
coefficient β_ck is compared with its B permuted counterparts β*_ck,b.
The two tails are bounded symmetrically around zero:

    lo = min(β_ck, −β_ck)        hi = max(β_ck, −β_ck)

    p_left  = #{β*_ck,b ≤ lo} / B
    p_right = #{β*_ck,b ≥ hi} / B
    p_ck    = p_left + p_right

so the statistic's extremity does not depend on the sign of β_ck.  The
sum is *not* clamped: when β_ck is exactly 0 both tails are the whole
reference set and the same permutation can be counted twice, giving
p = 2 in the limit.  That case is reported with a ``UserWarning``
rather than silently altered.

Phipson & Smyth (2010) correction
---------------------------------
Optionally the observed arrangement is counted as one member of the
reference set:

    p = (b_left + b_right + 1) / (B + 1)

which keeps p strictly positive and gives the test exact size when
permutations are drawn at random.

Monte Carlo uncertainty
-----------------------
An empirical p-value is a binomial proportion estimated from B draws.
:func:`pvalue_confidence_intervals` returns the exact Clopper-Pearson
interval for it, computed from the beta distribution:

    lower = Beta⁻¹(α/2;  b,   B − b + 1)
    upper = Beta⁻¹(1 − α/2;  b + 1,   B − b)

Reference:
    Phipson, B. & Smyth, G. K. (2010). Permutation p-values should
    never be zero: calculating exact p-values when permutations are
    randomly drawn. *Statistical Applications in Genetics and Molecular
    Biology*, 9(1), Article 39.
"""

from __future__ import annotations

import math
import warnings

import numpy as np
from scipy import stats as _sp_stats

DEFAULT_THRESHOLDS: tuple[float, float, float] = (0.05, 0.01, 0.001)


def calculate_p_values(
    observed: np.ndarray,
    null: np.ndarray,
    correction: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Two-tailed empirical p-values for every coefficient.

    Args:
        observed: Observed coefficients, shape ``(K-1, P)``.
        null: Permuted coefficients, shape ``(K-1, P, B)``.
        correction: Apply the Phipson & Smyth ``(b + 1) / (B + 1)``
            form instead of ``b / B``.

    Returns:
        ``(p_values, counts)`` — both of shape ``(K-1, P)``.  *counts*
        is the combined tail count ``b_left + b_right``.

    Raises:
        ValueError: If the shapes do not line up or ``B == 0``.
    """
    observed = np.asarray(observed, dtype=float)
    null = np.asarray(null, dtype=float)
    if null.ndim != observed.ndim + 1 or null.shape[:-1] != observed.shape:
        raise ValueError(
            f"null distribution shape {null.shape} does not match observed "
            f"coefficients {observed.shape} plus a permutation axis."
        )
    n_permutations = null.shape[-1]
    if n_permutations == 0:
        raise ValueError("null distribution holds no permutations.")

    if np.any(observed == 0.0):
        warnings.warn(
            "An observed coefficient is exactly 0; both tails then cover the "
            "whole null distribution and its p-value may exceed 1.",
            UserWarning,
            stacklevel=2,
        )

    # Broadcast the (K-1, P) bounds against the trailing permutation
    # axis: (K-1, P, 1) vs (K-1, P, B).
    obs = observed[..., np.newaxis]
    lo = np.minimum(obs, -obs)
    hi = np.maximum(obs, -obs)
    counts = np.sum(null <= lo, axis=-1) + np.sum(null >= hi, axis=-1)

    if correction:
        p_values = (counts + 1) / (n_permutations + 1)
    else:
        p_values = counts / n_permutations
    return p_values, counts


def pvalue_confidence_intervals(
    counts: np.ndarray,
    n_permutations: int,
    confidence_level: float = 0.95,
) -> np.ndarray:
    """Clopper-Pearson intervals for empirical p-values.

    Args:
        counts: Tail counts ``b`` from :func:`calculate_p_values`.
            Counts above *n_permutations* (possible only when an
            observed coefficient is 0) are clipped.
        n_permutations: Number of permutations ``B``.
        confidence_level: Two-sided coverage, in ``(0, 1)``.

    Returns:
        Array of shape ``counts.shape + (2,)`` holding lower and upper
        bounds.
    """
    if not 0.0 < confidence_level < 1.0:
        raise ValueError(
            f"confidence_level must lie in (0, 1), got {confidence_level}."
        )
    alpha = 1.0 - confidence_level
    b = np.clip(np.asarray(counts, dtype=float), 0, n_permutations)
    n = float(n_permutations)

    with np.errstate(invalid="ignore", divide="ignore"):
        lower = _sp_stats.beta.ppf(alpha / 2, b, n - b + 1)
        upper = _sp_stats.beta.ppf(1 - alpha / 2, b + 1, n - b)
    lower = np.where(b == 0, 0.0, lower)
    upper = np.where(b == n, 1.0, upper)
    return np.stack([lower, upper], axis=-1)


def recommend_n_permutations(
    p_hat: float,
    threshold: float,
    alpha: float = 0.05,
) -> int:
    """Minimum *B* so the interval around *p_hat* clears *threshold*.

    Uses the normal approximation to the Clopper-Pearson half-width,
    ``z_{1-α/2} √{p(1-p)/B}``, solved for the *B* at which the
    half-width equals ``|p_hat - threshold|``.  Clamped to
    ``[100, 10_000_000]``.
    """
    gap = abs(p_hat - threshold)
    if gap < 1e-12:
        return 10_000_000  # tied: no finite B resolves it
    z = _sp_stats.norm.ppf(1 - alpha / 2)
    b_min = math.ceil((z**2) * p_hat * (1 - p_hat) / (gap**2))
    return max(100, min(b_min, 10_000_000))


def format_p_value(
    p: float,
    precision: int = 3,
    thresholds: tuple[float, float, float] = DEFAULT_THRESHOLDS,
) -> str:
    """Format *p* with a significance marker: ``"0.012 (*)"``.

    ``None`` and NaN render as ``"N/A"``.
    """
    if p is None or p != p:  # nan check
        return "N/A"
    one, two, three = thresholds
    val = f"{np.round(p, precision):.{precision}f}"
    if p < three:
        return f"{val} (***)"
    if p < two:
        return f"{val} (**)"
    if p < one:
        return f"{val} (*)"
    return f"{val} (ns)"


__all__ = [
    "DEFAULT_THRESHOLDS",
    "calculate_p_values",
    "format_p_value",
    "pvalue_confidence_intervals",
    "recommend_n_permutations",
]
