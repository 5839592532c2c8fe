"""Shared fixtures for glmm_compare tests."""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402

from glmm_compare import FitResult, ModelSpec, simulate_binomial_glmm  # noqa: E402

TERMS = ["(Intercept)", "period2", "period3", "period4"]


@pytest.fixture
def cbpp_like():
    """Simulated CBPP-shaped data: 15 herds observed in 4 periods."""
    return simulate_binomial_glmm(random_seed=42)


@pytest.fixture
def spec():
    """incidence / size ~ period + (1 | herd)"""
    return ModelSpec(response="incidence", fixed="C(period)", group="herd", trials="size")


@pytest.fixture
def fit_results():
    """Three packages with the same four terms and slightly different numbers."""
    values = {
        "lme4": [(-1.40, 0.23), (-0.99, 0.30), (-1.13, 0.32), (-1.58, 0.42)],
        "glmmTMB": [(-1.40, 0.23), (-0.99, 0.31), (-1.13, 0.33), (-1.58, 0.43)],
        "MixedModels": [(-1.36, 0.25), (-0.98, 0.33), (-1.11, 0.36), (-1.56, 2.20)],
    }
    results = {}
    for package_id, numbers in values.items():
        terms = [
            (name, est, se, est - 1.96 * se, est + 1.96 * se)
            for name, (est, se) in zip(TERMS, numbers)
        ]
        results[package_id] = FitResult(package_id, terms)
    return results


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")
