"""Binomial mixed GLM with a random intercept, fitted by statsmodels."""

import warnings
from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd
from statsmodels.genmod.bayes_mixed_glm import BinomialBayesMixedGLM

from .base import BaseBackend, ModelSpec


class BayesMixedGLMBackend(BaseBackend):
    """Random-intercept logistic model from statsmodels' BinomialBayesMixedGLM.

    Two approximations to the posterior are available:
    - "vb": mean-field variational Bayes
    - "map": posterior mode with a Laplace (Gaussian) approximation

    Fixed effects have independent N(0, fe_p^2) priors and the log standard
    deviation of the random intercept has a N(0, vcp_p^2) prior. The reported
    standard errors are posterior standard deviations.
    """

    supports_aggregated = False

    _METHODS = ("vb", "map")

    def __init__(
        self,
        method: str = "vb",
        vcp_p: float = 1.0,
        fe_p: float = 2.0,
        scale_fe: bool = False,
        conf_level: float = 0.95,
        maxiter: int = 1000,
    ):
        """Initialize backend.

        Args:
            method: Posterior approximation, "vb" or "map"
            vcp_p: Prior standard deviation of the log random-effect sd
            fe_p: Prior standard deviation of the fixed effects
            scale_fe: Whether statsmodels standardizes the fixed-effect design
            conf_level: Coverage of the reported intervals
            maxiter: Maximum number of optimizer iterations

        Raises:
            ValueError: If method is unknown or a prior scale is not positive
        """
        super().__init__(conf_level=conf_level, maxiter=maxiter)
        if method not in self._METHODS:
            raise ValueError(f"Unknown method '{method}'. Choose from: {list(self._METHODS)}")
        if vcp_p <= 0 or fe_p <= 0:
            raise ValueError("Prior standard deviations must be positive")
        self.method = method
        self.vcp_p = vcp_p
        self.fe_p = fe_p
        self.scale_fe = scale_fe
        self.name = f"bayes-{method}"

    def _fit(self, data: pd.DataFrame, spec: ModelSpec) -> Any:
        vc_formulas = {spec.group: f"0 + C({spec.group})"}
        model = BinomialBayesMixedGLM.from_formula(
            spec.formula(), vc_formulas, data, vcp_p=self.vcp_p, fe_p=self.fe_p
        )
        minim_opts = {"maxiter": self.maxiter}
        with warnings.catch_warnings():
            # reported through the optimizer status instead
            warnings.filterwarnings("ignore", message="VB fitting did not converge")
            if self.method == "vb":
                return model.fit_vb(minim_opts=minim_opts, scale_fe=self.scale_fe)
            return model.fit_map(minim_opts=minim_opts, scale_fe=self.scale_fe)

    def _converged(self, result: Any) -> Tuple[bool, str]:
        retvals = getattr(result, "optim_retvals", None)
        if getattr(retvals, "success", True):
            return True, ""
        return False, f"optimizer: {getattr(retvals, 'message', 'no convergence')}"

    def _info(self, result: Any, data: pd.DataFrame) -> Dict[str, Any]:
        info = super()._info(result, data)
        info["method"] = self.method
        info["group_sd"] = float(np.exp(np.asarray(result.vcp_mean, dtype=float)[0]))
        return info
