"""Harmonize fixed-effect summaries from different fitting packages.

Every fitting package names and shapes its coefficient table a little
differently. The functions here turn a collection of fits into one table
with a row per (package, term), reshape it for side-by-side plots and
compute a robust consensus of the standard errors.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .exceptions import ConvergenceFailure, PackageFailure, SchemaMismatch, UnsupportedModelKind
from .results import TIDY_COLUMNS, Diagnostic, FitResult, TermEstimate
from .utils.math import trimmed_mean, wald_interval
from .utils.naming import normalize_term_name, patsy_term_name

logger = logging.getLogger(__name__)

MERGED_COLUMNS = [
    "package_id",
    "term_name",
    "estimate",
    "std_error",
    "conf_low",
    "conf_high",
    "group_flag",
]


def _statsmodels_table(fit: Any, conf_int: bool, level: float) -> pd.DataFrame:
    """Build a coefficient table from a statsmodels results object.

    Args:
        fit: Results with ``params``, ``bse`` and ``conf_int``
        conf_int: Whether to compute the confidence bounds
        level: Confidence level of the bounds

    Returns:
        DataFrame with the tidy columns and patsy names in R convention
    """
    params = fit.params
    if isinstance(params, pd.Series):
        names = list(params.index)
    else:
        names = list(fit.model.exog_names)
    estimate = np.asarray(params, dtype=float)
    std_error = np.asarray(fit.bse, dtype=float)
    if conf_int:
        bounds = np.asarray(fit.conf_int(alpha=1 - level), dtype=float)
        conf_low, conf_high = bounds[:, 0], bounds[:, 1]
    else:
        conf_low = conf_high = np.full(len(names), np.nan)
    return pd.DataFrame(
        {
            "term": [patsy_term_name(str(n)) for n in names],
            "estimate": estimate,
            "std_error": std_error,
            "conf_low": conf_low,
            "conf_high": conf_high,
        }
    )


def _bayes_table(fit: Any, conf_int: bool, level: float) -> pd.DataFrame:
    """Build a coefficient table from a Bayesian mixed GLM results object.

    The posterior mean and standard deviation of each fixed effect stand in
    for the estimate and its standard error. Bounds are Wald-style.

    Args:
        fit: Results with ``fe_mean`` and ``fe_sd``
        conf_int: Whether to compute the confidence bounds
        level: Confidence level of the bounds

    Returns:
        DataFrame with the tidy columns
    """
    estimate = np.asarray(fit.fe_mean, dtype=float)
    std_error = np.asarray(fit.fe_sd, dtype=float)
    names = list(getattr(fit.model, "fep_names", None) or fit.model.exog_names)[: len(estimate)]
    if conf_int:
        conf_low, conf_high = wald_interval(estimate, std_error, level)
    else:
        conf_low = conf_high = np.full(len(names), np.nan)
    return pd.DataFrame(
        {
            "term": [patsy_term_name(str(n)) for n in names],
            "estimate": estimate,
            "std_error": std_error,
            "conf_low": conf_low,
            "conf_high": conf_high,
        }
    )


def _fixef_table(fit: Any, conf_int: bool, level: float) -> pd.DataFrame:
    """Build a coefficient table from an lme4-style results object.

    Args:
        fit: Results with ``fixef()`` returning a name to estimate mapping
            and ``vcov()`` returning the covariance of the fixed effects
        conf_int: Whether to compute the confidence bounds
        level: Confidence level of the Wald bounds

    Returns:
        DataFrame with the tidy columns
    """
    fixef = fit.fixef()
    names = list(fixef)
    estimate = np.asarray([fixef[n] for n in names], dtype=float)
    variance = np.diag(np.asarray(fit.vcov(), dtype=float))[: len(names)]
    # a negative variance on the diagonal has no standard error
    std_error = np.sqrt(np.where(variance >= 0, variance, np.nan))
    if conf_int:
        conf_low, conf_high = wald_interval(estimate, std_error, level)
    else:
        conf_low = conf_high = np.full(len(names), np.nan)
    return pd.DataFrame(
        {
            "term": [patsy_term_name(str(n)) for n in names],
            "estimate": estimate,
            "std_error": std_error,
            "conf_low": conf_low,
            "conf_high": conf_high,
        }
    )


def _terms_from_table(
    table: pd.DataFrame, conf_int: bool, default_flag: Optional[bool]
) -> List[TermEstimate]:
    """Turn a tidy coefficient table into term estimates.

    Args:
        table: DataFrame with the tidy columns and optionally group_flag
        conf_int: Whether to keep the confidence bounds
        default_flag: group_flag of rows that do not carry one

    Returns:
        List of term estimates with normalized names

    Raises:
        UnsupportedModelKind: If columns are missing, a value is invalid or
            two terms share a normalized name
    """
    missing = [c for c in TIDY_COLUMNS if c not in table.columns]
    if missing:
        raise UnsupportedModelKind(f"Coefficient table lacks columns: {', '.join(missing)}")

    has_flag = "group_flag" in table.columns
    terms = []
    for row in table.itertuples(index=False):
        flag = getattr(row, "group_flag") if has_flag else None
        if flag is None or pd.isna(flag):
            flag = default_flag
        try:
            terms.append(
                TermEstimate(
                    term_name=normalize_term_name(str(row.term)),
                    estimate=row.estimate,
                    std_error=row.std_error,
                    conf_low=row.conf_low if conf_int else np.nan,
                    conf_high=row.conf_high if conf_int else np.nan,
                    group_flag=flag,
                )
            )
        except ValueError as exc:
            raise UnsupportedModelKind(str(exc)) from exc

    names = [t.term_name for t in terms]
    if len(set(names)) != len(names):
        raise UnsupportedModelKind("Term names are not unique after normalization")
    return terms


def extract_fixed_effects(fit: Any, conf_int: bool = True, level: float = 0.95) -> List[TermEstimate]:
    """Extract one TermEstimate per fixed-effect coefficient.

    Args:
        fit: A :class:`FitResult`, an object with a ``tidy(conf_int=...)``
            method returning a coefficient table, an lme4-style results object
            (``fixef()``/``vcov()``), a Bayesian mixed GLM results object
            (``fe_mean``/``fe_sd``) or a statsmodels results object
            (``params``/``bse``/``conf_int``)
        conf_int: Whether to fill the confidence bounds
        level: Confidence level used when bounds have to be computed

    Returns:
        List of term estimates with normalized names

    Raises:
        ConvergenceFailure: If the fit is marked as not converged
        UnsupportedModelKind: If no coefficient table can be obtained
        PackageFailure: The error stored on a failed FitResult
    """
    default_flag = None
    if isinstance(fit, FitResult):
        if fit.error is not None:
            raise fit.error
        if not fit.converged:
            raise ConvergenceFailure(fit.message or f"'{fit.package_id}' did not converge")
        table = fit.tidy(conf_int=conf_int)
        default_flag = fit.aggregated
    elif callable(getattr(fit, "tidy", None)):
        table = fit.tidy(conf_int=conf_int)
        if not isinstance(table, pd.DataFrame):
            raise UnsupportedModelKind(f"{type(fit).__name__}.tidy() did not return a DataFrame")
    elif callable(getattr(fit, "fixef", None)) and callable(getattr(fit, "vcov", None)):
        table = _fixef_table(fit, conf_int, level)
    elif hasattr(fit, "fe_mean") and hasattr(fit, "fe_sd"):
        table = _bayes_table(fit, conf_int, level)
    elif hasattr(fit, "params") and hasattr(fit, "bse"):
        table = _statsmodels_table(fit, conf_int, level)
    else:
        raise UnsupportedModelKind(f"Cannot extract fixed effects from {type(fit).__name__}")

    return _terms_from_table(table, conf_int, default_flag)


def merge_results(
    results: Union[Mapping[str, Any], Iterable[FitResult]],
    confidence: bool = True,
    level: float = 0.95,
) -> pd.DataFrame:
    """Merge fits from several packages into one table.

    A package whose fixed effects cannot be extracted is left out; the reason
    is logged and recorded in ``table.attrs["diagnostics"]`` as a list of
    :class:`Diagnostic`.

    Args:
        results: Mapping from package label to fit, in display order. A
            plain iterable of FitResult objects is keyed by their package_id
        confidence: Whether to include confidence bounds
        level: Confidence level for bounds computed here

    Returns:
        DataFrame with one row per (package_id, term_name)

    Raises:
        ValueError: If an iterable holds two fits with the same package_id
    """
    if not isinstance(results, Mapping):
        fits = list(results)
        labels = [fit.package_id for fit in fits]
        duplicated = sorted({label for label in labels if labels.count(label) > 1})
        if duplicated:
            raise ValueError(
                f"Duplicate package_id: {', '.join(duplicated)}. "
                "Pass a mapping to give each fit its own label"
            )
        results = dict(zip(labels, fits))

    rows = []
    diagnostics = []
    for package_id, fit in results.items():
        try:
            terms = extract_fixed_effects(fit, conf_int=confidence, level=level)
        except PackageFailure as exc:
            logger.warning("Omitting '%s' from the comparison: %s", package_id, exc)
            diagnostics.append(Diagnostic(package_id, type(exc).__name__, str(exc)))
            continue
        for term in terms:
            rows.append({"package_id": package_id, **term.as_dict()})

    table = pd.DataFrame(rows, columns=MERGED_COLUMNS)
    table.attrs["diagnostics"] = diagnostics
    return table


def to_long_format(
    table: pd.DataFrame,
    value_columns: Sequence[str] = ("estimate", "std_error"),
    exclude_packages: Iterable[str] = (),
) -> pd.DataFrame:
    """Stack value columns into ``variable``/``value`` pairs.

    Each input row becomes one row per value column, in the order of
    ``value_columns``; rows keep the order of the input table. The other
    columns are repeated on every output row.

    Args:
        table: Merged table as returned by :func:`merge_results`
        value_columns: Columns to stack
        exclude_packages: Package labels to drop first

    Returns:
        Long-format DataFrame

    Raises:
        SchemaMismatch: If the table lacks package_id or a value column
        ValueError: If value_columns is empty
    """
    value_columns = list(value_columns)
    if not value_columns:
        raise ValueError("At least one value column is required")
    missing = [c for c in ["package_id"] + value_columns if c not in table.columns]
    if missing:
        raise SchemaMismatch(f"Table lacks columns: {', '.join(missing)}")

    kept = table.loc[~table["package_id"].isin(list(exclude_packages))].reset_index(drop=True)
    id_columns = [c for c in kept.columns if c not in value_columns]
    parts = [kept[id_columns].assign(variable=column, value=kept[column]) for column in value_columns]
    # a stable sort on the row index keeps the value-column order within a row
    long = pd.concat(parts).sort_index(kind="mergesort").reset_index(drop=True)
    long.attrs["diagnostics"] = list(table.attrs.get("diagnostics", []))
    return long


def consensus_std_error(
    table: pd.DataFrame,
    trim: float = 0.5,
    by: Sequence[str] = ("term_name",),
    exclude_packages: Iterable[str] = (),
) -> pd.DataFrame:
    """Robust consensus standard error per term.

    The consensus is the trimmed mean of the packages' standard errors, so a
    single package with an outlying value does not move the reference.

    Args:
        table: Merged table, or its long format
        trim: Fraction trimmed from each end; 0.5 gives the median
        by: Columns identifying a term
        exclude_packages: Package labels to leave out

    Returns:
        DataFrame with the ``by`` columns and ``sderr_cons``

    Raises:
        SchemaMismatch: If no standard errors can be found in the table
    """
    if "std_error" in table.columns:
        frame = table
    elif {"variable", "value"} <= set(table.columns):
        frame = table.loc[table["variable"] == "std_error"].rename(columns={"value": "std_error"})
    else:
        raise SchemaMismatch("Table has neither a std_error column nor a long std_error variable")

    by = list(by)
    missing = [c for c in by if c not in frame.columns]
    if missing:
        raise SchemaMismatch(f"Table lacks columns: {', '.join(missing)}")
    if "package_id" in frame.columns:
        frame = frame.loc[~frame["package_id"].isin(list(exclude_packages))]

    consensus = (
        frame.groupby(by, sort=False, dropna=False)["std_error"]
        .agg(lambda s: trimmed_mean(s.to_numpy(dtype=float), trim))
        .rename("sderr_cons")
        .reset_index()
    )
    return consensus
