"""Utility functions for glmm_compare."""

from .math import inv_logit, trimmed_mean, wald_interval
from .naming import normalize_term_name, patsy_term_name

__all__ = ["inv_logit", "normalize_term_name", "patsy_term_name", "trimmed_mean", "wald_interval"]
