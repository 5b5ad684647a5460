"""Formatted ASCII table display for permutation test results.

The table mirrors the statsmodels summary style: a header panel with
the model diagnostics, then one block per non-reference outcome
category listing each coefficient with its empirical (permutation) and
classical (asymptotic Wald) p-values side by side.

Under each empirical p-value the ± half-width of its Clopper-Pearson
interval is shown.  When that interval straddles a significance
threshold the row is flagged ``[!]`` and a note recommends a larger
number of permutations.
"""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING, Any

from .pvalues import format_p_value, recommend_n_permutations

if TYPE_CHECKING:
    from ._results import PermutationTestResult


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _fmt_diag_val(val: object, fmt: str = ".4f") -> str:
    """Format a diagnostic value; ``nan`` and ``None`` become ``'N/A'``."""
    if val is None:
        return "N/A"
    if isinstance(val, float):
        if val != val:  # nan check
            return "N/A"
        return f"{val:{fmt}}"
    return str(val)


def _wrap(text: str, width: int = 80, indent: int = 2) -> str:
    """Word-wrap *text*, indenting only the continuation lines."""
    return textwrap.fill(
        text,
        width=width,
        initial_indent="",
        subsequent_indent=" " * indent,
    )


def _straddled(ci_lo: float, ci_hi: float, thresholds: list[float]) -> float | None:
    """Return the first threshold strictly inside ``(ci_lo, ci_hi)``."""
    for t in thresholds:
        if ci_lo < t < ci_hi:
            return t
    return None


def _header_row(left_label: str, left_value: Any, right_label: str, right_value: Any) -> str:
    col1, col2 = 40, 38
    left = f"{left_label:<16}{_truncate(str(left_value), col1 - 17):<{col1 - 16}}"
    right = f"{right_label:>{col2 - 11}} {str(right_value):>10}" if right_label else ""
    return f"{left}{right}"


def print_results_table(
    results: PermutationTestResult,
    *,
    title: str = "Multinomial Logit Permutation Test",
    precision: int = 3,
) -> None:
    """Print a permutation test result as an 80-column ASCII table.

    Args:
        results: Result returned by
            :func:`~mnlogit_permutation.permutation_test_mnlogit` or
            :meth:`~mnlogit_permutation.PermutationTester.test`.
        title: Title for the output table.
        precision: Decimal places for p-values.
    """
    diag = results.diagnostics
    thresholds = [
        results.p_value_threshold_one,
        results.p_value_threshold_two,
        results.p_value_threshold_three,
    ]
    threshold_tuple = (thresholds[0], thresholds[1], thresholds[2])

    print("=" * 80)
    for line in textwrap.wrap(title, width=78):
        print(f"{line:^80}")
    print("=" * 80)

    print(_header_row("Dep. Variable:", results.outcome,
                      "No. Observations:", diag.get("n_observations", "N/A")))
    print(_header_row("Reference:", results.reference,
                      "No. Categories:", diag.get("n_categories", "N/A")))
    print(_header_row("Fitter:", results.fitter,
                      "Permutations:", f"{results.n_permutations:,}"))
    print(_header_row("Pseudo R-sq:", _fmt_diag_val(diag.get("pseudo_r_squared")),
                      "LLR p-value:", _fmt_diag_val(diag.get("llr_p_value"), ".4e")))
    print(_header_row("Log-Likelihood:", _fmt_diag_val(diag.get("log_likelihood")),
                      "LL-Null:", _fmt_diag_val(diag.get("log_likelihood_null"))))

    # ── Table geometry (W = 80 chars) ─────────────────────────── #
    #
    #   Term (22, left) | Coef (9, right) | 2 gap
    #   | Emp p-value (23, right) | 1 space | Asy p-value (23, right)
    fc = 22
    p_label = "P>|b| (Emp)" if not results.correction else "P>|b| (Emp, PS)"
    borderline: list[tuple[str, float, float]] = []

    for i, category in enumerate(results.categories):
        print("-" * 80)
        print(f"{results.outcome} = {category}  (vs. {results.reference})")
        print("-" * 80)
        print(f"{'Term':<{fc}}{'Coef':>9}  {p_label:>23} {'P>|z| (Asy)':>23}")
        print("-" * 80)

        for j, name in enumerate(results.coefficient_names):
            p_emp = float(results.p_values.values[i, j])
            p_asy = (
                float(results.classic_p_values[i, j])
                if results.classic_p_values is not None
                else None
            )
            emp_str = format_p_value(p_emp, precision, threshold_tuple)
            asy_str = format_p_value(p_asy, precision, threshold_tuple)
            coef_str = f"{results.model_coefs[i, j]:>9.4f}"
            print(f"{_truncate(name, fc):<{fc}}{coef_str}  {emp_str:>23} {asy_str:>23}")

            lo, hi = results.pvalue_ci[i, j]
            margin = (hi - lo) / 2
            t = _straddled(lo, hi, thresholds)
            num_str = f"{margin:.0e}" if 0 < margin < 0.001 else f"{margin:.3f}"
            core = f"± {num_str}"
            suffix = "  [!]" if t is not None else "     "
            print(f"{'':<33}{core:>17}{suffix}")
            if t is not None:
                borderline.append((f"{category}:{name}", p_emp, t))

    # ── Notes ──────────────────────────────────────────────────── #
    notes: list[str] = []
    if borderline:
        alpha = 1 - results.confidence_level
        recs = [
            (label, recommend_n_permutations(p_hat, t, alpha))
            for label, p_hat, t in borderline
        ]
        max_b = max(b for _, b in recs)
        notes.append(
            f"Consider n_permutations ≥ {max_b:,} to resolve borderline "
            f"p-values for: {', '.join(label for label, _ in recs)}."
        )
    if any(p > 1.0 for p in results.p_values.values.ravel()):
        notes.append(
            "Some p-values exceed 1 because the observed coefficient is exactly "
            "0 and both tails count the same permutations."
        )

    if notes:
        print("-" * 80)
        print("Notes")
        print("-" * 80)
        for note in notes:
            print(_wrap(f"  [!] {note}", width=80, indent=6))

    print("=" * 80)
    print(
        f"(***) p < {thresholds[2]}   (**) p < {thresholds[1]}   "
        f"(*) p < {thresholds[0]}   (ns) p >= {thresholds[0]}"
    )
    if results.correction:
        print(
            f"±: half-width of the Clopper-Pearson "
            f"{results.confidence_level:.0%} interval for the uncorrected b/B;"
        )
        print("   the p-value shown is the corrected (b+1)/(B+1).")
    else:
        print(
            f"±: half-width of the Clopper-Pearson "
            f"{results.confidence_level:.0%} interval for the empirical p-value."
        )
    print()


__all__ = ["print_results_table"]
