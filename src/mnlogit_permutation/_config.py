"""Worker-count configuration for the mnlogit_permutation package.

Controls how many threads the permutation loop uses by default when a
caller does not pass ``n_jobs`` explicitly.

Resolution order (first match wins):
    1. An explicit ``n_jobs`` argument.
    2. Programmatic override via :func:`set_n_jobs`.
    3. The ``MNLOGIT_PERMUTATION_N_JOBS`` environment variable.
    4. ``1`` (sequential).

``-1`` means "all cores", following the joblib convention; other
negative values count back from the number of cores (``-2`` = all but
one).

Examples:
    Use every core from the shell::

        export MNLOGIT_PERMUTATION_N_JOBS=-1

    Use four workers programmatically::

        import mnlogit_permutation
        mnlogit_permutation.set_n_jobs(4)

    Restore the default resolution::

        mnlogit_permutation.set_n_jobs(None)
"""

from __future__ import annotations

import os
import warnings

from joblib import cpu_count

_ENV_VAR = "MNLOGIT_PERMUTATION_N_JOBS"

# Sentinel indicating "no programmatic override has been set".
_n_jobs_override: int | None = None


def _validate_n_jobs(n_jobs: object, *, source: str) -> int:
    if isinstance(n_jobs, bool) or not isinstance(n_jobs, int):
        raise ValueError(
            f"n_jobs from {source} must be a non-zero integer, got {n_jobs!r}."
        )
    if n_jobs == 0:
        raise ValueError(f"n_jobs from {source} must be non-zero.")
    return n_jobs


def get_n_jobs() -> int:
    """Return the configured default worker count.

    Resolution order:
        1. Value set by :func:`set_n_jobs`.
        2. ``MNLOGIT_PERMUTATION_N_JOBS`` environment variable.
        3. ``1``.

    Returns:
        A non-zero integer in joblib's ``n_jobs`` convention.

    Raises:
        ValueError: If the environment variable is not a non-zero
            integer.
    """
    # 1. Programmatic override
    if _n_jobs_override is not None:
        return _n_jobs_override

    # 2. Environment variable
    env = os.environ.get(_ENV_VAR, "").strip()
    if env:
        try:
            value = int(env)
        except ValueError:
            raise ValueError(
                f"{_ENV_VAR} must be a non-zero integer, got {env!r}."
            ) from None
        return _validate_n_jobs(value, source=_ENV_VAR)

    # 3. Sequential default
    return 1


def set_n_jobs(n_jobs: int | None) -> None:
    """Override the default worker count.

    Args:
        n_jobs: Non-zero integer, or ``None`` to restore the default
            resolution order.

    Raises:
        ValueError: If *n_jobs* is zero or not an integer.
    """
    global _n_jobs_override
    if n_jobs is None:
        _n_jobs_override = None
        return
    _n_jobs_override = _validate_n_jobs(n_jobs, source="set_n_jobs()")


def resolve_n_jobs(n_jobs: int | None = None) -> int:
    """Translate an ``n_jobs`` request into a positive worker count.

    Negative values are interpreted relative to the number of cores.
    Requests above the core count are clamped with a ``UserWarning``.
    """
    requested = get_n_jobs() if n_jobs is None else _validate_n_jobs(
        n_jobs, source="n_jobs argument"
    )
    cores = cpu_count()
    if requested < 0:
        return max(1, cores + 1 + requested)
    if requested > cores:
        warnings.warn(
            f"n_jobs={requested} exceeds the {cores} available cores.  "
            f"Falling back to n_jobs={cores}.",
            UserWarning,
            stacklevel=3,
        )
        return cores
    return requested
