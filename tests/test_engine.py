"""Tests for PermutationTester orchestration."""

import logging

import numpy as np
import pandas as pd
import pytest

from mnlogit_permutation import (
    FitFailure,
    MNLogitFitter,
    PermutationCancelled,
    PermutationTester,
    SklearnMultinomialFitter,
)

from _synthetic import MeanDifferenceFitter, make_major_data

PREDICTORS = ["Math_Score", "Gender"]


@pytest.fixture()
def many_cores(monkeypatch):
    monkeypatch.setattr("mnlogit_permutation._config.cpu_count", lambda: 8)


class TestRunLayout:
    def test_six_entries_in_unit_interval(self, null_data):
        table = PermutationTester(random_state=1).run(
            null_data, "Major", PREDICTORS, 30
        )
        assert list(table) == ["Business", "Engineering"]
        for category in table:
            assert list(table[category]) == [
                "Intercept",
                "Math_Score",
                "Gender[T.Male]",
            ]
        values = table.values.ravel()
        assert values.size == 6
        assert np.all((values >= 0) & (values <= 1))

    def test_reference_never_a_key(self, null_data):
        table = PermutationTester(
            MeanDifferenceFitter(), reference="Business", random_state=0
        ).run(null_data, "Major", PREDICTORS, 10)
        assert "Business" not in table
        assert table.reference == "Business"
        assert set(table) == {"Humanities", "Engineering"}

    def test_fit_called_nreps_plus_one_times(self, null_data):
        fitter = MeanDifferenceFitter()
        PermutationTester(fitter, random_state=0).run(
            null_data, "Major", PREDICTORS, 25
        )
        assert fitter.calls == 26

    def test_null_distribution_shape(self, null_data):
        result = PermutationTester(MeanDifferenceFitter(), random_state=0).test(
            null_data, "Major", PREDICTORS, 15
        )
        assert result.null_distribution.shape == (2, 3, 15)
        assert result.null_distribution.is_complete

    def test_p_values_match_null_distribution(self, null_data):
        result = PermutationTester(MeanDifferenceFitter(), random_state=3).test(
            null_data, "Major", PREDICTORS, 40
        )
        null = result.null_distribution["Engineering", "Math_Score"]
        obs = result.model_coefs[1, 1]
        lo, hi = min(obs, -obs), max(obs, -obs)
        expected = (np.sum(null <= lo) + np.sum(null >= hi)) / 40
        assert result.p_values["Engineering"]["Math_Score"] == pytest.approx(expected)

    def test_correction_never_zero(self, signal_data):
        result = PermutationTester(
            MeanDifferenceFitter(), random_state=0, correction=True
        ).test(signal_data, "Major", PREDICTORS, 20)
        assert np.all(result.p_values.values >= 1 / 21)

    def test_unpermuted_input_untouched(self, null_data):
        before = null_data.copy()
        PermutationTester(MeanDifferenceFitter(), random_state=0).run(
            null_data, "Major", PREDICTORS, 10
        )
        pd.testing.assert_frame_equal(null_data, before)


class TestReproducibility:
    def test_same_seed_same_output(self, null_data):
        a = PermutationTester(MeanDifferenceFitter(), random_state=11).test(
            null_data, "Major", PREDICTORS, 50
        )
        b = PermutationTester(MeanDifferenceFitter(), random_state=11).test(
            null_data, "Major", PREDICTORS, 50
        )
        np.testing.assert_array_equal(
            a.null_distribution.values, b.null_distribution.values
        )
        np.testing.assert_array_equal(a.p_values.values, b.p_values.values)

    def test_different_seed_different_null(self, null_data):
        a = PermutationTester(MeanDifferenceFitter(), random_state=1).test(
            null_data, "Major", PREDICTORS, 50
        )
        b = PermutationTester(MeanDifferenceFitter(), random_state=2).test(
            null_data, "Major", PREDICTORS, 50
        )
        assert not np.array_equal(
            a.null_distribution.values, b.null_distribution.values
        )

    def test_worker_count_does_not_change_output(self, null_data, many_cores):
        serial = PermutationTester(
            MeanDifferenceFitter(), random_state=5, n_jobs=1
        ).test(null_data, "Major", PREDICTORS, 60)
        threaded = PermutationTester(
            MeanDifferenceFitter(), random_state=5, n_jobs=4
        ).test(null_data, "Major", PREDICTORS, 60)
        assert threaded.n_jobs == 4
        np.testing.assert_array_equal(
            serial.null_distribution.values, threaded.null_distribution.values
        )
        np.testing.assert_array_equal(serial.p_values.values, threaded.p_values.values)

    def test_prefix_of_longer_run(self, null_data):
        """The first permutations of a longer run are the same fits."""
        short = PermutationTester(MeanDifferenceFitter(), random_state=9).test(
            null_data, "Major", PREDICTORS, 10
        )
        long = PermutationTester(MeanDifferenceFitter(), random_state=9).test(
            null_data, "Major", PREDICTORS, 30
        )
        np.testing.assert_array_equal(
            short.null_distribution.values, long.null_distribution.values[:, :, :10]
        )

    def test_mnlogit_threaded_matches_serial(self, null_data, many_cores):
        serial = PermutationTester(random_state=2, n_jobs=1).run(
            null_data, "Major", PREDICTORS, 12
        )
        threaded = PermutationTester(random_state=2, n_jobs=3).run(
            null_data, "Major", PREDICTORS, 12
        )
        np.testing.assert_array_equal(serial.values, threaded.values)


class TestFailures:
    def test_failure_in_permutation_names_index(self, null_data):
        def hook(call):
            if call == 5:
                raise FitFailure("synthetic divergence")

        with pytest.raises(FitFailure) as info:
            PermutationTester(MeanDifferenceFitter(hook), random_state=0).run(
                null_data, "Major", PREDICTORS, 10
            )
        assert info.value.permutation_index == 4
        assert info.value.outcome == "Major"
        assert "permutation 4" in str(info.value)
        assert "synthetic divergence" in str(info.value)

    def test_failure_in_observed_fit(self, null_data):
        def hook(call):
            if call == 0:
                raise FitFailure("bad start")

        with pytest.raises(FitFailure, match="observed fit") as info:
            PermutationTester(MeanDifferenceFitter(hook)).run(
                null_data, "Major", PREDICTORS, 10
            )
        assert info.value.permutation_index is None

    def test_numerical_error_wrapped(self, null_data):
        def hook(call):
            if call == 2:
                raise np.linalg.LinAlgError("Singular matrix")

        with pytest.raises(FitFailure, match="LinAlgError") as info:
            PermutationTester(MeanDifferenceFitter(hook), random_state=0).run(
                null_data, "Major", PREDICTORS, 10
            )
        assert info.value.permutation_index == 1
        assert isinstance(info.value.__cause__, np.linalg.LinAlgError)

    def test_other_errors_propagate(self, null_data):
        def hook(call):
            if call == 1:
                raise KeyError("bug")

        with pytest.raises(KeyError):
            PermutationTester(MeanDifferenceFitter(hook), random_state=0).run(
                null_data, "Major", PREDICTORS, 10
            )

    def test_failure_in_worker_thread(self, null_data, many_cores):
        def hook(call):
            if call == 7:
                raise FitFailure("thread failure")

        with pytest.raises(FitFailure, match="thread failure"):
            PermutationTester(
                MeanDifferenceFitter(hook), random_state=0, n_jobs=2
            ).run(null_data, "Major", PREDICTORS, 20)

    def test_non_fitter_rejected(self):
        with pytest.raises(TypeError, match="fitter"):
            PermutationTester(object())  # type: ignore[arg-type]


class TestCancellation:
    def test_cancel_stops_dispatch(self, null_data):
        tester = PermutationTester(random_state=0)

        def hook(call):
            if call == 3:
                tester.cancel()

        tester.fitter = MeanDifferenceFitter(hook)
        with pytest.raises(PermutationCancelled) as info:
            tester.run(null_data, "Major", PREDICTORS, 50)
        # Calls 1..3 are permutations 0..2; the third finishes in flight.
        assert info.value.completed == 3
        assert info.value.requested == 50
        assert tester.fitter.calls == 4
        assert tester.cancelled

    def test_cancel_stops_threaded_dispatch(self, null_data, many_cores):
        tester = PermutationTester(random_state=0, n_jobs=2)

        def hook(call):
            if call == 3:
                tester.cancel()

        tester.fitter = MeanDifferenceFitter(hook)
        with pytest.raises(PermutationCancelled) as info:
            tester.run(null_data, "Major", PREDICTORS, 200)
        assert 3 <= info.value.completed < 200
        assert info.value.requested == 200
        assert tester.fitter.calls < 201

    def test_flag_reset_on_next_run(self, null_data):
        tester = PermutationTester(MeanDifferenceFitter(), random_state=0)
        tester.cancel()
        table = tester.run(null_data, "Major", PREDICTORS, 5)
        assert len(table) == 2
        assert not tester.cancelled


class TestMetadata:
    def test_result_records_run_settings(self, null_data):
        result = PermutationTester(
            MeanDifferenceFitter(), random_state=4, confidence_level=0.9
        ).test(null_data, "Major", PREDICTORS, 10, thresholds=(0.1, 0.05, 0.01))
        assert result.fitter == "mean-difference"
        assert result.random_state == 4
        assert result.n_jobs == 1
        assert result.reference == "Humanities"
        assert result.predictors == ("Math_Score", "Gender")
        assert result.confidence_level == 0.9
        assert result.p_value_threshold_one == 0.1
        assert result.pvalue_ci.shape == (2, 3, 2)
        assert result.classic_p_values is None

    def test_diagnostics(self, null_data):
        result = PermutationTester(random_state=0).test(
            null_data, "Major", PREDICTORS, 5
        )
        diag = result.diagnostics
        assert diag["n_observations"] == 100
        assert diag["n_categories"] == 3
        assert diag["n_coefficients"] == 3
        assert sum(diag["category_counts"].values()) == 100
        assert diag["log_likelihood"] <= 0
        assert result.classic_p_values.shape == (2, 3)

    def test_debug_logging(self, null_data, caplog):
        with caplog.at_level(logging.DEBUG, logger="mnlogit_permutation.engine"):
            PermutationTester(MeanDifferenceFitter(), random_state=0).run(
                null_data, "Major", PREDICTORS, 5
            )
        messages = " ".join(r.getMessage() for r in caplog.records)
        assert "Dispatching 5 permutations" in messages
        assert "complete" in messages


class TestSklearnFitter:
    def test_runs_on_standardized_data(self, signal_data):
        df = signal_data.assign(Math_Score=(signal_data["Math_Score"] - 50.0) / 10.0)
        result = PermutationTester(SklearnMultinomialFitter(), random_state=0).test(
            df, "Major", PREDICTORS, 20
        )
        assert result.fitter == "sklearn-logistic"
        assert result.p_values.values.shape == (2, 3)
        assert "log_likelihood" not in result.diagnostics

    def test_agrees_with_mnlogit_observed_coefficients(self, signal_data):
        df = signal_data.assign(Math_Score=(signal_data["Math_Score"] - 50.0) / 10.0)
        sk = PermutationTester(SklearnMultinomialFitter(), random_state=0).test(
            df, "Major", PREDICTORS, 5
        )
        sm = PermutationTester(MNLogitFitter(), random_state=0).test(
            df, "Major", PREDICTORS, 5
        )
        np.testing.assert_allclose(sk.model_coefs, sm.model_coefs, atol=1e-2)
