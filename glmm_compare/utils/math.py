"""Math utility functions for comparing model fits."""

from typing import Sequence, Tuple

import numpy as np
from scipy.stats import norm, trim_mean


def inv_logit(x: float) -> float:
    """Logistic function (sigmoid).

    Args:
        x: Input value

    Returns:
        Transformed value between 0 and 1
    """
    return 1 / (1 + np.exp(-x))


def wald_interval(estimate, std_error, level: float = 0.95) -> Tuple[np.ndarray, np.ndarray]:
    """Calculate a Wald confidence interval.

    Args:
        estimate: Point estimate(s)
        std_error: Standard error(s)
        level: Coverage of the interval

    Returns:
        Tuple of (lower, upper) bounds

    Raises:
        ValueError: If level is not strictly between 0 and 1
    """
    if not 0 < level < 1:
        raise ValueError("Confidence level must be between 0 and 1")

    z = norm.ppf(0.5 + level / 2)
    estimate = np.asarray(estimate, dtype=float)
    half_width = z * np.asarray(std_error, dtype=float)
    return estimate - half_width, estimate + half_width


def trimmed_mean(values: Sequence[float], trim: float = 0.5) -> float:
    """Calculate a trimmed mean the way R's ``mean(x, trim=)`` does.

    ``trim`` is the fraction cut from each end of the sorted values; a
    fraction of 0.5 or more gives the median. Non-finite values are ignored.

    Args:
        values: Sample values
        trim: Fraction to trim from each end

    Returns:
        Trimmed mean, NaN for an empty sample

    Raises:
        ValueError: If trim is negative
    """
    if trim < 0:
        raise ValueError("Trim fraction must be non-negative")

    x = np.asarray(values, dtype=float)
    x = x[np.isfinite(x)]
    if x.size == 0:
        return float("nan")
    if trim >= 0.5:
        return float(np.median(x))
    return float(trim_mean(x, trim))
