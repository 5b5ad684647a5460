"""Tests for the ASCII results table."""

import numpy as np
import pytest

from mnlogit_permutation import (
    PermutationTester,
    permutation_test_mnlogit,
    print_results_table,
)

from _synthetic import MeanDifferenceFitter, make_major_data

PREDICTORS = ["Math_Score", "Gender"]


@pytest.fixture(scope="module")
def mnlogit_result():
    return permutation_test_mnlogit(
        make_major_data(n=100), "Major", PREDICTORS, 20, random_state=0
    )


class TestPrintResultsTable:
    def test_header_and_blocks(self, capsys, mnlogit_result):
        print_results_table(mnlogit_result)
        out = capsys.readouterr().out
        assert "Multinomial Logit Permutation Test" in out
        assert "Dep. Variable:" in out
        assert "Humanities" in out
        assert "Major = Business  (vs. Humanities)" in out
        assert "Major = Engineering  (vs. Humanities)" in out
        assert "Gender[T.Male]" in out
        assert "statsmodels-mnlogit" in out
        assert "Pseudo R-sq:" in out

    def test_lines_fit_in_80_columns(self, capsys, mnlogit_result):
        print_results_table(mnlogit_result)
        out = capsys.readouterr().out
        assert max(len(line) for line in out.splitlines()) <= 80

    def test_legend_uses_thresholds(self, capsys):
        result = PermutationTester(MeanDifferenceFitter(), random_state=0).test(
            make_major_data(n=60), "Major", PREDICTORS, 10, thresholds=(0.1, 0.05, 0.01)
        )
        print_results_table(result, title="Custom")
        out = capsys.readouterr().out
        assert "Custom" in out
        assert "(*) p < 0.1" in out
        assert "(***) p < 0.01" in out

    def test_legend_names_interval_proportion(self, capsys):
        data = make_major_data(n=60)
        for correction in (False, True):
            result = PermutationTester(
                MeanDifferenceFitter(), random_state=0, correction=correction
            ).test(data, "Major", PREDICTORS, 10)
            print_results_table(result)
            out = capsys.readouterr().out
            assert ("uncorrected b/B" in out) == correction
            assert ("(b+1)/(B+1)" in out) == correction

    def test_missing_classic_p_values_shown_as_na(self, capsys):
        result = PermutationTester(MeanDifferenceFitter(), random_state=0).test(
            make_major_data(n=60), "Major", PREDICTORS, 10
        )
        print_results_table(result)
        out = capsys.readouterr().out
        assert "N/A" in out

    def test_borderline_note(self, capsys):
        """Rows whose interval straddles a threshold are flagged."""
        result = PermutationTester(MeanDifferenceFitter(), random_state=1).test(
            make_major_data(n=150, seed=7, math_effect=1.0),
            "Major",
            PREDICTORS,
            10,
        )
        ci = result.pvalue_ci.reshape(-1, 2)
        straddles = any(
            np.any((ci[:, 0] < t) & (t < ci[:, 1])) for t in (0.05, 0.01, 0.001)
        )
        print_results_table(result)
        out = capsys.readouterr().out
        assert ("[!]" in out) == bool(straddles)
        if straddles:
            assert "Consider n_permutations" in out
