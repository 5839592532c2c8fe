"""Data sources: the CBPP example, synthetic data and stored summaries."""

import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .exceptions import SchemaMismatch
from .harmonize import MERGED_COLUMNS, normalize_term_name
from .utils.math import inv_logit

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# column names written by R's broom::tidy()
_BROOM_ALIASES = {
    "term": "term_name",
    "std.error": "std_error",
    "conf.low": "conf_low",
    "conf.high": "conf_high",
    "package": "package_id",
    "aggregated": "group_flag",
}
_NUMERIC_COLUMNS = ["estimate", "std_error", "conf_low", "conf_high"]


def load_cbpp(cache: bool = True) -> pd.DataFrame:
    """Load the contagious bovine pleuropneumonia data from lme4.

    The data are fetched from the Rdatasets repository, so the first call
    needs network access.

    Args:
        cache: Whether to cache the download (see statsmodels' get_rdataset)

    Returns:
        DataFrame with columns herd, incidence, size and period; herd and
        period are strings so that formulas treat them as factors
    """
    frame = sm.datasets.get_rdataset("cbpp", "lme4", cache=cache).data
    frame = frame.loc[:, ["herd", "incidence", "size", "period"]].copy()
    frame["herd"] = frame["herd"].astype(str)
    frame["period"] = frame["period"].astype(str)
    frame["incidence"] = frame["incidence"].astype(int)
    frame["size"] = frame["size"].astype(int)
    return frame.reset_index(drop=True)


def simulate_binomial_glmm(
    n_groups: int = 15,
    n_periods: int = 4,
    beta: Sequence[float] = (-1.4, -1.0, -1.1, -1.6),
    sigma: float = 0.65,
    size_range: Sequence[int] = (5, 35),
    random_seed: Optional[int] = None,
) -> pd.DataFrame:
    """Simulate CBPP-shaped binomial data with a random group intercept.

    The linear predictor of group g in period p is
    ``beta[0] + beta[p] + b_g`` (``beta[1]`` is the effect of the second
    period, and so on), with ``b_g ~ N(0, sigma^2)``.

    Args:
        n_groups: Number of herds
        n_periods: Number of periods
        beta: Intercept followed by n_periods - 1 period effects
        sigma: Standard deviation of the random intercept
        size_range: Inclusive range of herd sizes
        random_seed: Random seed for reproducibility

    Returns:
        DataFrame with columns herd, incidence, size and period

    Raises:
        ValueError: If beta does not have n_periods entries
    """
    if len(beta) != n_periods:
        raise ValueError("beta must hold an intercept and one effect per extra period")

    rng = np.random.default_rng(random_seed)
    herd = np.repeat(np.arange(1, n_groups + 1), n_periods)
    period = np.tile(np.arange(1, n_periods + 1), n_groups)

    effects = np.concatenate([[0.0], np.asarray(beta[1:], dtype=float)])
    b = rng.normal(0, sigma, n_groups)
    eta = beta[0] + effects[period - 1] + b[herd - 1]

    size = rng.integers(size_range[0], size_range[1] + 1, herd.size)
    incidence = rng.binomial(size, inv_logit(eta))
    return pd.DataFrame(
        {
            "herd": herd.astype(str),
            "incidence": incidence,
            "size": size,
            "period": period.astype(str),
        }
    )


def expand_binomial(
    frame: pd.DataFrame, successes: str, trials: str, response: str = "y"
) -> pd.DataFrame:
    """Disaggregate binomial counts into one Bernoulli row per trial.

    Args:
        frame: Aggregated data
        successes: Column with success counts
        trials: Column with trial counts
        response: Name of the 0/1 column to create

    Returns:
        DataFrame without the count columns, with ``response`` added

    Raises:
        ValueError: If counts are negative or successes exceed trials
    """
    counts = frame[trials].to_numpy(dtype=int)
    hits = frame[successes].to_numpy(dtype=int)
    if np.any(counts < 0) or np.any(hits < 0):
        raise ValueError("Counts must be non-negative")
    if np.any(hits > counts):
        raise ValueError("Successes cannot exceed trials")

    rows = frame.loc[frame.index.repeat(counts)].drop(columns=[successes, trials])
    rows = rows.reset_index(drop=True)
    # position of each trial within its source row; the first `hits` are successes
    offsets = np.repeat(np.cumsum(counts) - counts, counts)
    position = np.arange(counts.sum()) - offsets
    rows[response] = (position < np.repeat(hits, counts)).astype(int)
    return rows


def aggregate_bernoulli(
    frame: pd.DataFrame,
    response: str,
    by: Sequence[str],
    successes: str = "successes",
    trials: str = "trials",
) -> pd.DataFrame:
    """Aggregate Bernoulli rows into binomial counts per ``by`` cell.

    Args:
        frame: Disaggregated data
        response: 0/1 response column
        by: Columns defining the cells
        successes: Name of the success count column to create
        trials: Name of the trial count column to create

    Returns:
        DataFrame with the ``by`` columns and the two count columns
    """
    grouped = frame.groupby(list(by), sort=False)[response]
    counts = grouped.agg(["sum", "count"]).rename(columns={"sum": successes, "count": trials})
    return counts.reset_index()


def validate_summary(frame: pd.DataFrame, source: str = "table") -> pd.DataFrame:
    """Check a stored summary table and bring it to the merged-table schema.

    Args:
        frame: Table read from a summary store
        source: Name of the source, for error messages

    Returns:
        DataFrame with the merged-table columns and normalized term names

    Raises:
        SchemaMismatch: If columns are missing, values have the wrong type,
            standard errors are negative or keys are duplicated
    """
    frame = frame.rename(columns=_BROOM_ALIASES)
    missing = [c for c in MERGED_COLUMNS if c != "group_flag" and c not in frame.columns]
    if missing:
        raise SchemaMismatch(f"{source}: missing columns {', '.join(missing)}")

    frame = frame.copy()
    for column in _NUMERIC_COLUMNS:
        values = pd.to_numeric(frame[column], errors="coerce")
        if (values.isna() & frame[column].notna()).any():
            raise SchemaMismatch(f"{source}: column '{column}' is not numeric")
        frame[column] = values.astype(float)
    if (frame["std_error"] < 0).any():
        raise SchemaMismatch(f"{source}: negative standard errors")

    if "group_flag" in frame.columns:
        flags = []
        for value in frame["group_flag"]:
            if pd.isna(value):
                flags.append(None)
            elif value in (True, False):
                flags.append(bool(value))
            else:
                raise SchemaMismatch(f"{source}: group_flag value {value!r} is not boolean")
        frame["group_flag"] = pd.Series(flags, index=frame.index, dtype=object)
    else:
        frame["group_flag"] = None

    frame["package_id"] = frame["package_id"].astype(str)
    frame["term_name"] = frame["term_name"].astype(str).map(normalize_term_name)
    if frame.duplicated(["package_id", "term_name", "group_flag"]).any():
        raise SchemaMismatch(f"{source}: duplicate (package_id, term_name, group_flag) rows")

    table = frame.loc[:, MERGED_COLUMNS].reset_index(drop=True)
    table.attrs["diagnostics"] = []
    return table


def load_summary(path: PathLike) -> pd.DataFrame:
    """Load a summary table written by :func:`save_summary` or by R.

    Args:
        path: CSV file, or tab separated when the suffix is .tsv or .tab

    Returns:
        Validated table in the merged-table schema

    Raises:
        SchemaMismatch: If the table does not match the schema
    """
    path = Path(path)
    sep = "\t" if path.suffix.lower() in (".tsv", ".tab") else ","
    logger.debug("Loading summary table %s", path)
    return validate_summary(pd.read_csv(path, sep=sep), source=str(path))


def load_summaries(paths: Iterable[PathLike]) -> pd.DataFrame:
    """Load several summary batches into one validated table."""
    frames = [load_summary(p) for p in paths]
    if not frames:
        raise ValueError("No summary files given")
    return validate_summary(pd.concat(frames, ignore_index=True), source="combined summaries")


def save_summary(table: pd.DataFrame, path: PathLike) -> Path:
    """Write a merged table to a summary store.

    Args:
        table: Merged table
        path: Target file; tab separated when the suffix is .tsv or .tab

    Returns:
        The path written to

    Raises:
        SchemaMismatch: If the table lacks merged-table columns
    """
    path = Path(path)
    missing = [c for c in MERGED_COLUMNS if c not in table.columns]
    if missing:
        raise SchemaMismatch(f"Cannot save table without columns {', '.join(missing)}")
    sep = "\t" if path.suffix.lower() in (".tsv", ".tab") else ","
    table.loc[:, MERGED_COLUMNS].to_csv(path, sep=sep, index=False)
    return path
