"""Outcome shuffling and per-permutation random streams.

Why one generator per permutation
---------------------------------
The permutation loop may run on a thread pool.  A single
``numpy.random.Generator`` shared by several workers is a race: the
draws each worker sees depend on scheduling, so results stop being
reproducible and can even be correlated.  Instead every permutation
gets its own generator built from a child of one root
:class:`numpy.random.SeedSequence`:

    root = SeedSequence(random_state)
    child_i = root.spawn(B)[i]        # depends only on (random_state, i)

``SeedSequence.spawn`` hashes the root entropy together with the child
index, so the streams are statistically independent and child *i* is
the same no matter how many children are spawned.  Two consequences:

* Results are identical for any number of workers.
* A run with B permutations is a prefix of a run with B' > B
  permutations under the same seed — growing ``nreps`` only adds
  draws, it never changes the ones already made.

What a permutation does
-----------------------
Only the outcome column is shuffled.  Every predictor column, the row
index, and the outcome's dtype are left untouched, so the shuffle
breaks any predictor–outcome association while preserving the
marginal distribution of outcome categories (the multiset of outcome
values is unchanged) and all predictor structure.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd


def spawn_permutation_seeds(
    random_state: int | np.random.SeedSequence | None,
    n_permutations: int,
) -> list[np.random.SeedSequence]:
    """Derive one independent seed per permutation.

    Args:
        random_state: Root seed.  ``None`` draws fresh OS entropy, so
            the run is not reproducible.
        n_permutations: Number of child seeds to create.

    Returns:
        List of *n_permutations* ``SeedSequence`` children.
    """
    if isinstance(random_state, np.random.SeedSequence):
        root = np.random.SeedSequence(
            random_state.entropy, spawn_key=random_state.spawn_key
        )
    else:
        root = np.random.SeedSequence(random_state)
    return root.spawn(n_permutations)


def permute_outcome(
    dataset: pd.DataFrame,
    outcome: Any,
    rng: np.random.Generator,
) -> pd.DataFrame:
    """Return a copy of *dataset* with the *outcome* column shuffled.

    Args:
        dataset: Source data.  Not modified.
        outcome: Name of the column to shuffle.
        rng: Generator owned by the caller for this permutation.

    Returns:
        A new DataFrame, exclusively owned by the caller.
    """
    order = rng.permutation(len(dataset))
    permuted = dataset.copy()
    # ExtensionArray.take keeps categorical / string dtypes intact.
    permuted[outcome] = dataset[outcome].array.take(order)
    return permuted


__all__ = ["permute_outcome", "spawn_permutation_seeds"]
