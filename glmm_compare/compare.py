"""Fit a model with several backends and assemble the comparison tables."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

import pandas as pd

from .exceptions import PackageFailure
from .harmonize import consensus_std_error, merge_results, to_long_format
from .models.base import BaseBackend, ModelSpec
from .results import Diagnostic, FitResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonReport:
    """Tables produced by :func:`compare_models`.

    Attributes:
        results: Fit results by package label
        table: Merged fixed-effect table
        long_table: Estimates and standard errors stacked for plotting
        consensus: Trimmed-mean consensus standard error per term
        timings: Fitting time per package
        diagnostics: Packages left out of the merged table
    """

    results: Dict[str, FitResult]
    table: pd.DataFrame
    long_table: pd.DataFrame
    consensus: pd.DataFrame
    timings: pd.DataFrame
    diagnostics: List[Diagnostic] = field(default_factory=list)


def fit_models(
    backends: Mapping[str, BaseBackend], data: pd.DataFrame, spec: ModelSpec
) -> Dict[str, FitResult]:
    """Fit the same model with each backend, one after the other.

    A backend that fails with a :class:`PackageFailure` gets a failed
    FitResult so that the failure shows up in later diagnostics.

    Args:
        backends: Backends by package label, in display order
        data: Input data
        spec: Model spec

    Returns:
        Fit results by package label
    """
    results = {}
    for package_id, backend in backends.items():
        try:
            results[package_id] = backend.fit(data, spec, package_id=package_id)
        except PackageFailure as exc:
            logger.warning("Fitting '%s' failed: %s", package_id, exc)
            results[package_id] = FitResult.failed(package_id, exc)
    return results


def fit_times(results: Mapping[str, FitResult]) -> pd.DataFrame:
    """Fitting time and convergence status of each package."""
    rows = [
        {"package_id": package_id, "fit_time": fit.fit_time, "converged": fit.converged}
        for package_id, fit in results.items()
    ]
    return pd.DataFrame(rows, columns=["package_id", "fit_time", "converged"])


def compare_models(
    backends: Mapping[str, BaseBackend],
    data: pd.DataFrame,
    spec: ModelSpec,
    exclude_packages: Iterable[str] = (),
    trim: float = 0.5,
) -> ComparisonReport:
    """Fit, harmonize and reshape in one go.

    Args:
        backends: Backends by package label, in display order
        data: Input data
        spec: Model spec
        exclude_packages: Packages left out of the long table and consensus
        trim: Trim fraction of the consensus standard error

    Returns:
        ComparisonReport
    """
    exclude_packages = list(exclude_packages)
    results = fit_models(backends, data, spec)
    table = merge_results(results)
    long_table = to_long_format(table, exclude_packages=exclude_packages)
    consensus = consensus_std_error(table, trim=trim, exclude_packages=exclude_packages)
    return ComparisonReport(
        results=results,
        table=table,
        long_table=long_table,
        consensus=consensus,
        timings=fit_times(results),
        diagnostics=list(table.attrs["diagnostics"]),
    )
