"""Result records shared by the fitting backends and the harmonizer."""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import PackageFailure
from .utils.naming import normalize_term_name

TIDY_COLUMNS = ["term", "estimate", "std_error", "conf_low", "conf_high"]


@dataclass(frozen=True)
class TermEstimate:
    """Summary of one fixed-effect coefficient.

    Args:
        term_name: Coefficient name
        estimate: Point estimate
        std_error: Standard error, NaN when the routine did not compute one
        conf_low: Lower confidence bound, NaN when not requested
        conf_high: Upper confidence bound, NaN when not requested
        group_flag: True for aggregated binomial data, False for Bernoulli
            rows, None when unknown

    Raises:
        ValueError: If std_error is negative
    """

    term_name: str
    estimate: float
    std_error: float = math.nan
    conf_low: float = math.nan
    conf_high: float = math.nan
    group_flag: Optional[bool] = None

    def __post_init__(self):
        for name in ("estimate", "std_error", "conf_low", "conf_high"):
            value = getattr(self, name)
            object.__setattr__(self, name, math.nan if value is None else float(value))
        # NaN means "not computed" and is kept as is
        if self.std_error < 0:
            raise ValueError(f"Standard error of '{self.term_name}' must be non-negative")
        if self.group_flag is not None:
            object.__setattr__(self, "group_flag", bool(self.group_flag))

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


TermLike = Union[TermEstimate, Sequence[Any]]


def _as_term(term: TermLike) -> TermEstimate:
    """Coerce a tuple ``(term_name, estimate, ...)`` to a TermEstimate."""
    if isinstance(term, TermEstimate):
        return term
    return TermEstimate(*term)


@dataclass(frozen=True)
class FitResult:
    """Fixed-effect summary of one fitted model.

    ``terms`` may be given as :class:`TermEstimate` objects or as plain
    tuples ``(term_name, estimate, std_error, conf_low, conf_high[, group_flag])``.
    """

    package_id: str
    terms: Tuple[TermEstimate, ...] = ()
    fit_time: float = math.nan
    converged: bool = True
    message: str = ""
    aggregated: Optional[bool] = None
    error: Optional[PackageFailure] = None
    info: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        terms = tuple(_as_term(t) for t in self.terms)
        names = [normalize_term_name(t.term_name) for t in terms]
        duplicated = sorted({n for n in names if names.count(n) > 1})
        if duplicated:
            raise ValueError(
                f"Duplicate terms in results of '{self.package_id}': {', '.join(duplicated)}"
            )
        object.__setattr__(self, "terms", terms)
        object.__setattr__(self, "fit_time", float(self.fit_time))

    @classmethod
    def failed(
        cls, package_id: str, error: PackageFailure, fit_time: float = math.nan
    ) -> "FitResult":
        """Build the record of a fit that raised instead of returning."""
        return cls(
            package_id=package_id,
            fit_time=fit_time,
            converged=False,
            message=str(error),
            error=error,
        )

    @property
    def term_names(self) -> Tuple[str, ...]:
        return tuple(t.term_name for t in self.terms)

    def tidy(self, conf_int: bool = True) -> pd.DataFrame:
        """Return the coefficient table.

        Args:
            conf_int: Whether to fill the confidence bounds

        Returns:
            DataFrame with columns term, estimate, std_error, conf_low,
            conf_high and group_flag, one row per term
        """
        rows = []
        for t in self.terms:
            rows.append(
                {
                    "term": t.term_name,
                    "estimate": t.estimate,
                    "std_error": t.std_error,
                    "conf_low": t.conf_low if conf_int else np.nan,
                    "conf_high": t.conf_high if conf_int else np.nan,
                    "group_flag": t.group_flag,
                }
            )
        return pd.DataFrame(rows, columns=TIDY_COLUMNS + ["group_flag"])


@dataclass(frozen=True)
class Diagnostic:
    """A package left out of a merged table, and why."""

    package_id: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.package_id}: {self.kind}: {self.message}"
