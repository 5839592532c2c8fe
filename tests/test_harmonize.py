"""Tests for term-name normalization, extraction, merging and reshaping."""

import math

import numpy as np
import pandas as pd
import pytest
from scipy.stats import norm

from glmm_compare import (
    ConvergenceFailure,
    FitResult,
    ModelSetupError,
    SchemaMismatch,
    UnsupportedModelKind,
    consensus_std_error,
    extract_fixed_effects,
    merge_results,
    normalize_term_name,
    patsy_term_name,
    to_long_format,
)
from glmm_compare.utils import naming

TERMS = ["(Intercept)", "period2", "period3", "period4"]


class FakeStatsmodelsResults:
    """Mimics the coefficient accessors of a statsmodels results object."""

    def __init__(self):
        names = ["Intercept", "C(period)[T.2]"]
        self.params = pd.Series([-1.4, -1.0], index=names)
        self.bse = pd.Series([0.2, 0.3], index=names)

    def conf_int(self, alpha=0.05):
        z = norm.ppf(1 - alpha / 2)
        return pd.DataFrame({0: self.params - z * self.bse, 1: self.params + z * self.bse})


class FakeBayesResults:
    """Mimics BayesMixedGLMResults: posterior means and sds of fixed effects."""

    def __init__(self):
        self.fe_mean = np.array([-1.3, -0.9])
        self.fe_sd = np.array([0.25, 0.35])
        self.model = type("Model", (), {"fep_names": ["Intercept", "period[T.2]"]})()


class FakeGlmerResults:
    """Mimics mixedlm's GlmerResult: fixef() and vcov() methods."""

    def fixef(self):
        return {"(Intercept)": -1.40, "period2": -0.99}

    def vcov(self):
        return np.array([[0.0529, -0.02], [-0.02, 0.0929]])


class TidyOnly:
    """Object exposing only the tidy() accessor."""

    def __init__(self, frame):
        self.frame = frame

    def tidy(self, conf_int=True):
        return self.frame


# ------------------------------------------------------------------ #
# normalize_term_name / patsy_term_name
# ------------------------------------------------------------------ #


def test_normalize_removes_level_separators():
    """Colon-space and bare-space level separators give the same name."""
    assert normalize_term_name("period: 2") == "period2"
    assert normalize_term_name("period 2") == "period2"
    assert normalize_term_name("period: 2") == normalize_term_name("period 2")


def test_normalize_interaction_delimiter():
    """Ampersand interactions become colon interactions."""
    assert normalize_term_name("sex&period") == "sex:period"
    assert normalize_term_name("sex: M & period: 2") == "sexM:period2"


def test_normalize_passes_through_unmatched():
    """Names without known separators are unchanged."""
    for name in ["(Intercept)", "period2", "sex:period", ""]:
        assert normalize_term_name(name) == name


@pytest.mark.parametrize(
    "raw",
    ["period: 2", "period 2", "sex&period", "a:  b", ": :", "x & y: z", "  ", "&&", "(Intercept)"],
)
def test_normalize_is_idempotent(raw):
    """Normalizing twice gives the same result as normalizing once."""
    once = normalize_term_name(raw)
    assert normalize_term_name(once) == once


def test_patsy_term_name():
    """Patsy column names are translated to the R model-matrix convention."""
    assert patsy_term_name("Intercept") == "(Intercept)"
    assert patsy_term_name("C(period)[T.2]") == "period2"
    assert patsy_term_name("period[T.2]") == "period2"
    assert patsy_term_name("C(period, Treatment(reference='1'))[T.3]") == "period3"
    assert patsy_term_name("C(sex)[T.M]:C(period)[T.2]") == "sexM:period2"
    assert patsy_term_name("size") == "size"


def test_patsy_term_name_is_idempotent():
    """Already translated names are left alone."""
    for raw in ["Intercept", "C(period)[T.2]", "sex[T.M]:size"]:
        once = patsy_term_name(raw)
        assert patsy_term_name(once) == once


def test_naming_helpers_live_in_utils():
    """The harmonizer and the result records share one normalization."""
    fit = FitResult("MixedModels", [("period: 2", -1.0, 0.3), ("period 3", -1.1, 0.3)])
    assert [naming.normalize_term_name(n) for n in fit.term_names] == ["period2", "period3"]
    assert normalize_term_name is naming.normalize_term_name
    assert patsy_term_name is naming.patsy_term_name

    with pytest.raises(ValueError, match="period2"):
        FitResult("MixedModels", [("period: 2", -1.0, 0.3), ("period 2", -1.0, 0.3)])


# ------------------------------------------------------------------ #
# extract_fixed_effects
# ------------------------------------------------------------------ #


def test_extract_from_fit_result(fit_results):
    """A FitResult yields its terms in order."""
    terms = extract_fixed_effects(fit_results["lme4"])
    assert [t.term_name for t in terms] == TERMS
    assert terms[0].estimate == pytest.approx(-1.40)
    assert terms[0].conf_low < terms[0].estimate < terms[0].conf_high


def test_extract_without_confidence_intervals(fit_results):
    """Bounds are NaN, not zero, when no interval is requested."""
    terms = extract_fixed_effects(fit_results["lme4"], conf_int=False)
    assert all(math.isnan(t.conf_low) and math.isnan(t.conf_high) for t in terms)
    assert all(t.std_error > 0 for t in terms)


def test_extract_normalizes_names():
    """Raw names from the package are normalized."""
    fit = FitResult("MixedModels", [("period: 2", -1.0, 0.3, -1.6, -0.4)])
    assert extract_fixed_effects(fit)[0].term_name == "period2"


def test_extract_uses_fit_layout_as_group_flag():
    """Terms without a group flag inherit the layout of the fit."""
    fit = FitResult("glm", [("(Intercept)", -1.0, 0.1, -1.2, -0.8)], aggregated=True)
    assert extract_fixed_effects(fit)[0].group_flag is True


def test_extract_from_statsmodels_like_results():
    """params/bse/conf_int accessors are used and names translated."""
    terms = extract_fixed_effects(FakeStatsmodelsResults())
    assert [t.term_name for t in terms] == ["(Intercept)", "period2"]
    assert terms[1].std_error == pytest.approx(0.3)
    assert terms[1].conf_low == pytest.approx(-1.0 - 1.959964 * 0.3, rel=1e-5)


def test_extract_from_bayes_like_results():
    """Posterior means and sds give Wald-style intervals."""
    terms = extract_fixed_effects(FakeBayesResults(), level=0.9)
    assert [t.term_name for t in terms] == ["(Intercept)", "period2"]
    z = norm.ppf(0.95)
    assert terms[0].conf_high == pytest.approx(-1.3 + z * 0.25)
    assert terms[1].std_error == pytest.approx(0.35)


def test_extract_from_glmer_like_results():
    """fixef() estimates and vcov() standard errors give Wald intervals."""
    terms = extract_fixed_effects(FakeGlmerResults())
    assert [t.term_name for t in terms] == ["(Intercept)", "period2"]
    assert terms[0].std_error == pytest.approx(0.23)
    assert terms[1].std_error == pytest.approx(math.sqrt(0.0929))
    z = norm.ppf(0.975)
    assert terms[0].conf_low == pytest.approx(-1.40 - z * 0.23)

    terms = extract_fixed_effects(FakeGlmerResults(), conf_int=False)
    assert math.isnan(terms[1].conf_high)


def test_extract_from_tidy_object():
    """Any object with a tidy() coefficient table is accepted."""
    frame = pd.DataFrame(
        {
            "term": ["(Intercept)", "period 2"],
            "estimate": [-1.4, -1.0],
            "std_error": [0.2, 0.3],
            "conf_low": [-1.8, -1.6],
            "conf_high": [-1.0, -0.4],
        }
    )
    terms = extract_fixed_effects(TidyOnly(frame))
    assert [t.term_name for t in terms] == ["(Intercept)", "period2"]


def test_extract_rejects_incomplete_tidy_table():
    """A coefficient table without standard errors is unsupported."""
    frame = pd.DataFrame({"term": ["(Intercept)"], "estimate": [-1.4]})
    with pytest.raises(UnsupportedModelKind):
        extract_fixed_effects(TidyOnly(frame))


def test_extract_rejects_duplicate_names_after_normalization():
    """Two raw names that normalize to the same name are unsupported."""
    frame = pd.DataFrame(
        {
            "term": ["period 2", "period2"],
            "estimate": [-1.0, -1.0],
            "std_error": [0.3, 0.3],
            "conf_low": [-1.6, -1.6],
            "conf_high": [-0.4, -0.4],
        }
    )
    with pytest.raises(UnsupportedModelKind):
        extract_fixed_effects(TidyOnly(frame))


def test_extract_unsupported_object():
    """Objects without a coefficient accessor are rejected."""
    with pytest.raises(UnsupportedModelKind):
        extract_fixed_effects(object())


def test_extract_unconverged_fit():
    """A fit marked as not converged raises ConvergenceFailure."""
    fit = FitResult("glmmTMB", [("(Intercept)", -1.0, 0.1, -1.2, -0.8)], converged=False)
    with pytest.raises(ConvergenceFailure):
        extract_fixed_effects(fit)


def test_extract_failed_fit_reraises_its_error():
    """The error stored on a failed fit is raised again."""
    fit = FitResult.failed("gee", ModelSetupError("singular design"))
    with pytest.raises(ModelSetupError, match="singular design"):
        extract_fixed_effects(fit)


# ------------------------------------------------------------------ #
# merge_results
# ------------------------------------------------------------------ #


def test_merge_results_one_row_per_package_and_term(fit_results):
    """N fits with M terms give N x M unique rows in insertion order."""
    table = merge_results(fit_results)
    assert len(table) == 3 * 4
    assert not table.duplicated(["package_id", "term_name"]).any()
    assert list(dict.fromkeys(table["package_id"])) == ["lme4", "glmmTMB", "MixedModels"]
    assert list(table["term_name"][:4]) == TERMS
    assert table.attrs["diagnostics"] == []


def test_merge_results_tags_rows_with_mapping_key(fit_results):
    """Rows carry the label used in the mapping."""
    table = merge_results({"lme4 (Laplace)": fit_results["lme4"]})
    assert set(table["package_id"]) == {"lme4 (Laplace)"}


def test_merge_results_accepts_iterable(fit_results):
    """A plain list of FitResult objects is keyed by package_id."""
    table = merge_results(list(fit_results.values()))
    assert list(dict.fromkeys(table["package_id"])) == list(fit_results)


def test_merge_results_rejects_duplicate_package_ids():
    """Two fits with one label in a list raise instead of dropping one."""
    fits = [
        FitResult("A", [("(Intercept)", -1.4, 0.2)], aggregated=True),
        FitResult("A", [("(Intercept)", -1.4, 0.2)], aggregated=False),
    ]
    with pytest.raises(ValueError, match="Duplicate package_id: A"):
        merge_results(fits)

    # distinct labels in a mapping keep both layouts
    table = merge_results({"A": fits[0], "A (bernoulli)": fits[1]})
    assert len(table) == 2
    assert list(table["group_flag"]) == [True, False]
    assert table.attrs["diagnostics"] == []


def test_merge_results_omits_failing_packages(fit_results):
    """A failing package is dropped and reported, never fatal."""
    results = dict(fit_results)
    results["glmmadaptive"] = FitResult(
        "glmmadaptive", [("(Intercept)", -1.0, 0.1, -1.2, -0.8)], converged=False, message="NaN"
    )
    results["julia"] = object()

    table = merge_results(results)

    assert set(table["package_id"]) == set(fit_results)
    assert len(table) == 12
    diagnostics = table.attrs["diagnostics"]
    assert [d.package_id for d in diagnostics] == ["glmmadaptive", "julia"]
    assert [d.kind for d in diagnostics] == ["ConvergenceFailure", "UnsupportedModelKind"]


def test_merge_results_one_failure_among_three():
    """One failing package among three succeeding ones leaves their rows."""
    ok = [("(Intercept)", -2.0, 0.2, -2.4, -1.6), ("x", 0.5, 0.1, 0.3, 0.7)]
    results = {
        "a": FitResult("a", ok),
        "b": FitResult.failed("b", ConvergenceFailure("max iterations")),
        "c": FitResult("c", ok),
        "d": FitResult("d", ok),
    }
    table = merge_results(results)
    assert list(dict.fromkeys(table["package_id"])) == ["a", "c", "d"]
    assert len(table.attrs["diagnostics"]) == 1


def test_merge_results_schema_errors_are_fatal():
    """SchemaMismatch is not contained like package failures."""

    class Broken:
        def tidy(self, conf_int=True):
            raise SchemaMismatch("stored table is corrupt")

    with pytest.raises(SchemaMismatch):
        merge_results({"stored": Broken()})


def test_merge_results_keeps_undefined_std_errors():
    """A NaN standard error stays NaN in the merged table."""
    fit = FitResult("x", [("(Intercept)", -1.0, float("nan"), float("nan"), float("nan"))])
    table = merge_results({"x": fit})
    assert math.isnan(table.loc[0, "std_error"])


def test_end_to_end_two_packages():
    """Two packages with one shared term merge and reshape as expected."""
    results = {
        "A": FitResult("A", [("Intercept", -2.0, 0.2, -2.4, -1.6)]),
        "B": FitResult("B", [("Intercept", -1.98, 0.22, -2.41, -1.55)]),
    }
    table = merge_results(results)
    assert len(table) == 2
    assert set(table["package_id"]) == {"A", "B"}
    assert set(table["term_name"]) == {"Intercept"}
    assert abs(table["estimate"].iloc[0] - table["estimate"].iloc[1]) < 0.1

    long = to_long_format(table)
    assert len(long) == 4
    assert set(zip(long["package_id"], long["variable"])) == {
        ("A", "estimate"),
        ("A", "std_error"),
        ("B", "estimate"),
        ("B", "std_error"),
    }


# ------------------------------------------------------------------ #
# to_long_format
# ------------------------------------------------------------------ #


def test_to_long_format_doubles_rows_in_order(fit_results):
    """Each row becomes an estimate row followed by a std_error row."""
    table = merge_results(fit_results)
    long = to_long_format(table)

    assert len(long) == 2 * len(table)
    assert list(long["variable"][:4]) == ["estimate", "std_error", "estimate", "std_error"]
    assert list(long["package_id"][::2]) == list(table["package_id"])
    assert list(long["term_name"][1::2]) == list(table["term_name"])
    np.testing.assert_allclose(long["value"][::2], table["estimate"])
    np.testing.assert_allclose(long["value"][1::2], table["std_error"])
    assert "conf_low" in long.columns


def test_to_long_format_excludes_packages(fit_results):
    """Excluded packages are dropped before reshaping."""
    long = to_long_format(merge_results(fit_results), exclude_packages={"MixedModels"})
    assert len(long) == 2 * 8
    assert "MixedModels" not in set(long["package_id"])


def test_to_long_format_custom_value_columns(fit_results):
    """Value columns are stacked in the order given."""
    long = to_long_format(merge_results(fit_results), value_columns=["conf_low", "conf_high"])
    assert list(long["variable"][:2]) == ["conf_low", "conf_high"]
    assert "estimate" in long.columns


def test_to_long_format_missing_column():
    """A table without the value columns does not match the schema."""
    with pytest.raises(SchemaMismatch):
        to_long_format(pd.DataFrame({"package_id": ["a"], "estimate": [1.0]}))


def test_to_long_format_keeps_diagnostics(fit_results):
    """Diagnostics of the merged table are carried over."""
    results = dict(fit_results, broken=object())
    long = to_long_format(merge_results(results))
    assert [d.package_id for d in long.attrs["diagnostics"]] == ["broken"]


# ------------------------------------------------------------------ #
# consensus_std_error
# ------------------------------------------------------------------ #


def test_consensus_is_robust_to_outliers():
    """The trim-0.5 consensus stays in the cluster, away from the outlier."""
    table = pd.DataFrame(
        {
            "package_id": list("abcde"),
            "term_name": ["(Intercept)"] * 5,
            "std_error": [1.0, 1.05, 0.95, 1.1, 9.0],
        }
    )
    consensus = consensus_std_error(table)
    value = consensus.loc[0, "sderr_cons"]
    assert 0.95 <= value <= 1.1
    assert value == pytest.approx(1.05)


def test_consensus_per_term(fit_results):
    """One consensus value per term, from wide or long tables alike."""
    table = merge_results(fit_results)
    wide = consensus_std_error(table)
    long = consensus_std_error(to_long_format(table))

    assert list(wide["term_name"]) == TERMS
    np.testing.assert_allclose(wide["sderr_cons"], long["sderr_cons"])
    # the outlying 2.20 of period4 does not drag the consensus
    assert wide.loc[3, "sderr_cons"] == pytest.approx(0.43)


def test_consensus_without_trim_is_the_mean():
    """trim=0 gives the plain mean."""
    table = pd.DataFrame({"term_name": ["x"] * 3, "std_error": [1.0, 2.0, 6.0]})
    assert consensus_std_error(table, trim=0).loc[0, "sderr_cons"] == pytest.approx(3.0)


def test_consensus_requires_std_errors():
    """Tables without standard errors do not match the schema."""
    with pytest.raises(SchemaMismatch):
        consensus_std_error(pd.DataFrame({"term_name": ["x"], "estimate": [1.0]}))
