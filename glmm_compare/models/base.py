"""Base class for model fitting backends."""

import logging
import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from patsy import PatsyError
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from ..data import expand_binomial
from ..exceptions import ModelSetupError
from ..harmonize import extract_fixed_effects
from ..results import FitResult

logger = logging.getLogger(__name__)

# errors a fitting library raises when it cannot fit the model it was given
_LIBRARY_ERRORS = (
    ValueError,
    ArithmeticError,
    LookupError,
    RuntimeError,
    np.linalg.LinAlgError,
    PatsyError,
)


@dataclass(frozen=True)
class ModelSpec:
    """Binomial model with one random intercept.

    Args:
        response: Column with success counts, or 0/1 outcomes when
            ``trials`` is not given
        fixed: Right-hand side of the fixed-effect formula, e.g. "C(period)"
        group: Column holding the random-intercept grouping factor
        trials: Column with trial counts for aggregated data
    """

    response: str
    fixed: str
    group: str
    trials: Optional[str] = None

    @property
    def aggregated(self) -> bool:
        return self.trials is not None

    def formula(self, response: Optional[str] = None) -> str:
        return f"{response or self.response} ~ {self.fixed}"

    def disaggregated(self, response: str = "y") -> "ModelSpec":
        """Spec of the same model on Bernoulli rows made by expand_binomial."""
        return replace(self, response=response, trials=None)


class BaseBackend(ABC):
    """Abstract base class for fitting backends.

    Subclasses wrap one fitting routine. :meth:`fit` takes care of input
    checks, timing and convergence bookkeeping so that ``_fit`` only has to
    call the library.
    """

    name = "base"
    supports_aggregated = True

    def __init__(self, conf_level: float = 0.95, maxiter: int = 100):
        """Initialize backend.

        Args:
            conf_level: Coverage of the reported confidence intervals
            maxiter: Maximum number of iterations of the fitting routine

        Raises:
            ValueError: If conf_level is not between 0 and 1 or maxiter < 1
        """
        if not 0 < conf_level < 1:
            raise ValueError("conf_level must be between 0 and 1")
        if maxiter < 1:
            raise ValueError("maxiter must be positive")
        self.conf_level = conf_level
        self.maxiter = maxiter

    @abstractmethod
    def _fit(self, data: pd.DataFrame, spec: ModelSpec) -> Any:
        """Fit the model and return the library's results object."""

    def _converged(self, result: Any) -> Tuple[bool, str]:
        """Convergence status reported by the results object itself."""
        converged = getattr(result, "converged", True)
        return bool(converged), "" if converged else "fitting routine reports no convergence"

    def _info(self, result: Any, data: pd.DataFrame) -> Dict[str, Any]:
        return {"backend": self.name, "nobs": len(data)}

    def _validate_input(self, data: pd.DataFrame, spec: ModelSpec) -> None:
        """Validate that the data can be used with the model spec.

        Args:
            data: Input data
            spec: Model spec

        Raises:
            ValueError: If inputs are invalid
        """
        columns = [spec.response, spec.group] + ([spec.trials] if spec.trials else [])
        missing = [c for c in columns if c not in data.columns]
        if missing:
            raise ValueError(f"Data lacks columns: {', '.join(missing)}")

        response = data[spec.response].to_numpy(dtype=float)
        if np.any(response < 0):
            raise ValueError("Responses must be non-negative")
        if spec.aggregated:
            if np.any(response > data[spec.trials].to_numpy(dtype=float)):
                raise ValueError("Successes cannot exceed trials")
        elif not np.all(np.isin(response, (0, 1))):
            raise ValueError("Responses must be 0 or 1 when no trials column is given")

    def _prepare(self, data: pd.DataFrame, spec: ModelSpec) -> Tuple[pd.DataFrame, ModelSpec]:
        if spec.aggregated and not self.supports_aggregated:
            bernoulli = spec.disaggregated(response=f"{spec.response}_bernoulli")
            frame = expand_binomial(data, spec.response, spec.trials, bernoulli.response)
            return frame, bernoulli
        return data, spec

    def fit(self, data: pd.DataFrame, spec: ModelSpec, package_id: Optional[str] = None) -> FitResult:
        """Fit the model and summarize its fixed effects.

        Args:
            data: Input data, aggregated or one row per Bernoulli trial
            spec: Model spec
            package_id: Label of the result, defaults to the backend name

        Returns:
            FitResult; a fit that did not converge is returned with
            ``converged=False``

        Raises:
            ValueError: If the input data are invalid
            ModelSetupError: If the fitting routine rejects the model or fails
                numerically
        """
        self._validate_input(data, spec)
        frame, spec = self._prepare(data, spec)
        package_id = package_id or self.name

        messages: List[str] = []
        start = time.perf_counter()
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            try:
                result = self._fit(frame, spec)
            except _LIBRARY_ERRORS as exc:
                raise ModelSetupError(f"{self.name}: {exc}") from exc
        fit_time = time.perf_counter() - start

        for w in caught:
            if issubclass(w.category, ConvergenceWarning):
                messages.append(str(w.message))
            else:
                warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
        converged, status = self._converged(result)
        if status:
            messages.append(status)
        converged = converged and not messages

        logger.debug("%s fitted in %.3f s (converged=%s)", package_id, fit_time, converged)
        terms = extract_fixed_effects(result, conf_int=True, level=self.conf_level)
        return FitResult(
            package_id=package_id,
            terms=tuple(replace(t, group_flag=spec.aggregated) for t in terms),
            fit_time=fit_time,
            converged=converged,
            message="; ".join(messages),
            aggregated=spec.aggregated,
            info=self._info(result, frame),
        )
