"""Maximum-likelihood binomial GLMM fitted with mixedlm's glmer."""

import re
from typing import Any, Dict

import numpy as np
import pandas as pd
from mixedlm import glmer
from mixedlm.families.binomial import Binomial

from .base import BaseBackend, ModelSpec

# patsy's C(x) factor marker, which lme4-style formulas do not use
_FACTOR = re.compile(r"C\(\s*(?P<var>\w+)\s*\)")


class GlmerBackend(BaseBackend):
    """Binomial random-intercept model fitted by maximum likelihood.

    The likelihood is integrated over the random intercepts with the Laplace
    approximation (``nAGQ=1``) or with adaptive Gauss-Hermite quadrature on
    ``nAGQ`` points. Aggregated data are fitted as proportions weighted by
    the number of trials, as lme4 does.
    """

    supports_aggregated = True

    def __init__(self, nAGQ: int = 1, conf_level: float = 0.95, maxiter: int = 1000):
        """Initialize backend.

        Args:
            nAGQ: Number of adaptive quadrature points, 1 for Laplace
            conf_level: Coverage of the reported Wald confidence intervals
            maxiter: Maximum number of optimizer iterations

        Raises:
            ValueError: If nAGQ is not a positive integer
        """
        super().__init__(conf_level=conf_level, maxiter=maxiter)
        if int(nAGQ) != nAGQ or nAGQ < 1:
            raise ValueError("nAGQ must be a positive integer")
        self.nAGQ = int(nAGQ)
        self.name = "glmer-laplace" if self.nAGQ == 1 else f"glmer-agq{self.nAGQ}"

    def _formula(self, spec: ModelSpec, response: str) -> str:
        """lme4 formula of the spec, e.g. ``p ~ period + (1|herd)``."""
        fixed = _FACTOR.sub(r"\g<var>", spec.fixed)
        return f"{response} ~ {fixed} + (1|{spec.group})"

    def _fit(self, data: pd.DataFrame, spec: ModelSpec) -> Any:
        frame = data.copy()
        # factors marked with C() and the grouping column are fitted as levels
        for column in [m.group("var") for m in _FACTOR.finditer(spec.fixed)] + [spec.group]:
            frame[column] = frame[column].astype(str)

        weights = None
        response = spec.response
        if spec.aggregated:
            response = f"{spec.response}_proportion"
            frame = frame.loc[frame[spec.trials] > 0].copy()
            frame[response] = frame[spec.response] / frame[spec.trials]
            weights = np.asarray(frame[spec.trials], dtype=float)

        return glmer(
            self._formula(spec, response),
            frame,
            family=Binomial(),
            weights=weights,
            nAGQ=self.nAGQ,
            maxiter=self.maxiter,
        )

    def _info(self, result: Any, data: pd.DataFrame) -> Dict[str, Any]:
        info = super()._info(result, data)
        info["nobs"] = int(result.nobs())
        info["nAGQ"] = self.nAGQ
        info["deviance"] = float(result.deviance)
        info["n_iter"] = int(result.n_iter)
        info["n_groups"] = dict(result.ngrps())
        return info
