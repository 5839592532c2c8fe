"""Marginal binomial models from statsmodels: pooled GLM and GEE."""

from typing import Any, Dict

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from .base import BaseBackend, ModelSpec


class GLMBackend(BaseBackend):
    """Binomial GLM that ignores the grouping factor.

    Aggregated data are fitted as proportions weighted by the number of
    trials, which gives the same estimates as the Bernoulli layout.
    """

    name = "glm"
    supports_aggregated = True

    def _fit(self, data: pd.DataFrame, spec: ModelSpec) -> Any:
        family = sm.families.Binomial()
        if spec.aggregated:
            proportion = f"{spec.response}_proportion"
            frame = data.loc[data[spec.trials] > 0].copy()
            frame[proportion] = frame[spec.response] / frame[spec.trials]
            model = smf.glm(
                spec.formula(proportion),
                data=frame,
                family=family,
                var_weights=np.asarray(frame[spec.trials], dtype=float),
            )
        else:
            model = smf.glm(spec.formula(), data=data, family=family)
        return model.fit(maxiter=self.maxiter)

    def _info(self, result: Any, data: pd.DataFrame) -> Dict[str, Any]:
        info = super()._info(result, data)
        info["llf"] = float(result.llf)
        info["deviance"] = float(result.deviance)
        return info


class GEEBackend(BaseBackend):
    """Population-averaged binomial GEE clustered by the grouping factor.

    GEE weights must be constant within a cluster, so aggregated data are
    expanded to Bernoulli rows before fitting.
    """

    name = "gee"
    supports_aggregated = False

    _COV_STRUCTS = {
        "exchangeable": sm.cov_struct.Exchangeable,
        "independence": sm.cov_struct.Independence,
    }

    def __init__(self, cov_struct: str = "exchangeable", conf_level: float = 0.95, maxiter: int = 60):
        """Initialize backend.

        Args:
            cov_struct: Working correlation, "exchangeable" or "independence"
            conf_level: Coverage of the reported confidence intervals
            maxiter: Maximum number of GEE iterations

        Raises:
            ValueError: If cov_struct is unknown
        """
        super().__init__(conf_level=conf_level, maxiter=maxiter)
        if cov_struct not in self._COV_STRUCTS:
            raise ValueError(
                f"Unknown cov_struct '{cov_struct}'. Choose from: {sorted(self._COV_STRUCTS)}"
            )
        self.cov_struct = cov_struct

    def _fit(self, data: pd.DataFrame, spec: ModelSpec) -> Any:
        model = smf.gee(
            spec.formula(),
            groups=spec.group,
            data=data,
            family=sm.families.Binomial(),
            cov_struct=self._COV_STRUCTS[self.cov_struct](),
        )
        result = model.fit(maxiter=self.maxiter)
        if result is None:
            raise ValueError("GEE estimation failed")
        return result

    def _info(self, result: Any, data: pd.DataFrame) -> Dict[str, Any]:
        info = super()._info(result, data)
        info["cov_struct"] = self.cov_struct
        info["n_groups"] = int(len(np.unique(result.model.groups)))
        return info
