"""Example script comparing binomial mixed-model fits on the CBPP data.

Usage:
    python run_cbpp_comparison.py [stored_summary.csv ...]

Summary files given on the command line (e.g. results of a dataset whose raw
data cannot be shared) are loaded and plotted next to the CBPP comparison.
The backends that accept counts are also refitted on one row per animal and
plotted by group_flag, which shows the aggregated vs disaggregated comparison.
"""

import logging
import sys
from pathlib import Path

import matplotlib
import pandas as pd

matplotlib.use("Agg")

from glmm_compare import (  # noqa: E402
    BayesMixedGLMBackend,
    GEEBackend,
    GLMBackend,
    GlmerBackend,
    ModelSpec,
    PlotConfig,
    compare_models,
    consensus_std_error,
    expand_binomial,
    fit_models,
    fit_times,
    load_cbpp,
    load_summaries,
    merge_results,
    plot_coefficients,
    plot_comparison,
    plot_fit_times,
    save_summary,
    to_long_format,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

output_dir = Path("cbpp_output")
output_dir.mkdir(exist_ok=True)
config = PlotConfig()

# Load data
cbpp = load_cbpp()
print(f"CBPP data: {len(cbpp)} herd-periods, {cbpp['herd'].nunique()} herds")

# incidence / size ~ period + (1 | herd)
spec = ModelSpec(response="incidence", fixed="C(period)", group="herd", trials="size")

backends = {
    "glm": GLMBackend(),
    "glmer-laplace": GlmerBackend(nAGQ=1),
    "glmer-agq9": GlmerBackend(nAGQ=9),
    "gee": GEEBackend(),
    "bayes-vb": BayesMixedGLMBackend(method="vb"),
    "bayes-map": BayesMixedGLMBackend(method="map"),
}

print("\nFitting models...")
report = compare_models(backends, cbpp, spec)

# Fixed effects of every package
print("\nFixed Effects:")
print("-" * 50)
print(report.table.to_string(index=False))

for diagnostic in report.diagnostics:
    print(f"omitted {diagnostic}")

print("\nConsensus standard errors (trimmed mean, trim = 0.5):")
print(report.consensus.to_string(index=False))

print("\nFitting times:")
for row in report.timings.itertuples(index=False):
    status = "" if row.converged else " (not converged)"
    print(f"{row.package_id:14s}: {row.fit_time:7.3f} s{status}")

# Plots
plot_coefficients(report.table, config).savefig(output_dir / "coefficients.png")
plot_comparison(report.long_table, report.consensus, config).savefig(output_dir / "comparison.png")
plot_fit_times(report.timings, config).savefig(output_dir / "fit_times.png")

# Same fits on one row per animal. Backends that expand aggregated data
# themselves already saw this layout above.
print("\nFitting models on Bernoulli rows...")
bernoulli = expand_binomial(cbpp, "incidence", "size")
layout_backends = {k: b for k, b in backends.items() if b.supports_aggregated}
bernoulli_results = fit_models(layout_backends, bernoulli, spec.disaggregated())
bernoulli_table = merge_results(bernoulli_results)

layouts = pd.concat(
    [report.table.loc[report.table["package_id"].isin(list(layout_backends))], bernoulli_table],
    ignore_index=True,
)
layouts.attrs["diagnostics"] = bernoulli_table.attrs["diagnostics"]
layout_consensus = consensus_std_error(layouts, by=("term_name", "group_flag"))

print("\nAggregated vs disaggregated fits:")
print(layouts.sort_values(["term_name", "package_id"], kind="mergesort").to_string(index=False))
print("\nFitting times on Bernoulli rows:")
for row in fit_times(bernoulli_results).itertuples(index=False):
    status = "" if row.converged else " (not converged)"
    print(f"{row.package_id:14s}: {row.fit_time:7.3f} s{status}")

plot_coefficients(layouts, config).savefig(output_dir / "layout_coefficients.png")
plot_comparison(to_long_format(layouts), layout_consensus, config).savefig(
    output_dir / "layout_comparison.png"
)

# Save results
save_summary(report.table, output_dir / "cbpp_summary.csv")

# Stored results of other datasets
if len(sys.argv) > 1:
    stored = load_summaries(sys.argv[1:])
    print(f"\nLoaded {len(stored)} stored rows from {len(sys.argv) - 1} file(s)")
    stored_consensus = consensus_std_error(stored, by=("term_name", "group_flag"))
    plot_coefficients(stored, config).savefig(output_dir / "stored_coefficients.png")
    plot_comparison(to_long_format(stored), stored_consensus, config).savefig(
        output_dir / "stored_comparison.png"
    )
