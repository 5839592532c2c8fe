"""Compare binomial mixed-model fits across fitting packages."""

from .compare import ComparisonReport, compare_models, fit_models, fit_times
from .data import (
    aggregate_bernoulli,
    expand_binomial,
    load_cbpp,
    load_summaries,
    load_summary,
    save_summary,
    simulate_binomial_glmm,
)
from .exceptions import (
    ConvergenceFailure,
    HarmonizerError,
    ModelSetupError,
    PackageFailure,
    SchemaMismatch,
    UnsupportedModelKind,
)
from .harmonize import (
    consensus_std_error,
    extract_fixed_effects,
    merge_results,
    normalize_term_name,
    patsy_term_name,
    to_long_format,
)
from .models import (
    BaseBackend,
    BayesMixedGLMBackend,
    GEEBackend,
    GLMBackend,
    GlmerBackend,
    ModelSpec,
)
from .plotting import PlotConfig, plot_coefficients, plot_comparison, plot_fit_times
from .results import Diagnostic, FitResult, TermEstimate

__version__ = "0.1.0"

__all__ = [
    "BaseBackend",
    "BayesMixedGLMBackend",
    "ComparisonReport",
    "ConvergenceFailure",
    "Diagnostic",
    "FitResult",
    "GEEBackend",
    "GLMBackend",
    "GlmerBackend",
    "HarmonizerError",
    "ModelSetupError",
    "ModelSpec",
    "PackageFailure",
    "PlotConfig",
    "SchemaMismatch",
    "TermEstimate",
    "UnsupportedModelKind",
    "aggregate_bernoulli",
    "compare_models",
    "consensus_std_error",
    "expand_binomial",
    "extract_fixed_effects",
    "fit_models",
    "fit_times",
    "load_cbpp",
    "load_summaries",
    "load_summary",
    "merge_results",
    "normalize_term_name",
    "patsy_term_name",
    "plot_coefficients",
    "plot_comparison",
    "plot_fit_times",
    "save_summary",
    "simulate_binomial_glmm",
    "to_long_format",
]
