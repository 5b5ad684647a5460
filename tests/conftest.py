"""Shared fixtures: synthetic students choosing a major."""

from __future__ import annotations

import pandas as pd
import pytest

from _synthetic import make_major_data


@pytest.fixture()
def null_data() -> pd.DataFrame:
    """Outcome independent of the predictors."""
    return make_major_data(n=100, seed=42, math_effect=0.0)


@pytest.fixture()
def signal_data() -> pd.DataFrame:
    """Math score strongly predicts Engineering."""
    return make_major_data(n=150, seed=7, math_effect=2.5)
