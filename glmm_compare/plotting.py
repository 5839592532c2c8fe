"""Comparison plots of harmonized fit results.

All styling comes from a :class:`PlotConfig` passed to each function and is
applied through ``matplotlib.rc_context``; global matplotlib state is left
untouched.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from matplotlib.lines import Line2D


def _default_rc() -> Dict[str, Any]:
    return {"axes.grid": True, "grid.alpha": 0.3, "axes.titlesize": "medium"}


@dataclass(frozen=True)
class PlotConfig:
    """Styling of the comparison plots.

    Args:
        palette: Colors assigned to packages in order of appearance
        panel_size: Width and height of one facet in inches
        ncols: Maximum number of facet columns
        marker_size: Size of the point markers
        capsize: Length of the interval caps
        dodge: Vertical offset between points of different group flags
        flag_markers: Markers for group_flag False and True
        flag_labels: Legend labels for group_flag False and True
        consensus_color: Color of the consensus reference line
        rc: matplotlib rc overrides applied while drawing
    """

    palette: Tuple[str, ...] = (
        "#1b9e77",
        "#d95f02",
        "#7570b3",
        "#e7298a",
        "#66a61e",
        "#e6ab02",
        "#a6761d",
        "#666666",
    )
    panel_size: Tuple[float, float] = (3.2, 2.6)
    ncols: int = 4
    marker_size: float = 5.0
    capsize: float = 2.0
    dodge: float = 0.2
    flag_markers: Tuple[str, str] = ("o", "s")
    flag_labels: Tuple[str, str] = ("disaggregated", "aggregated")
    consensus_color: str = "0.35"
    rc: Dict[str, Any] = field(default_factory=_default_rc)

    def colors(self, packages: Sequence[str]) -> Dict[str, str]:
        return {p: self.palette[i % len(self.palette)] for i, p in enumerate(packages)}


def _unique(values) -> List[Any]:
    return list(dict.fromkeys(values))


def _flags(table: pd.DataFrame) -> List[bool]:
    if "group_flag" not in table.columns:
        return []
    return sorted({bool(f) for f in table["group_flag"] if f is not None and not pd.isna(f)})


def _facets(n: int, config: PlotConfig, nrows: Optional[int] = None, sharey: bool = True):
    """Create a grid with n visible facets.

    Args:
        n: Number of facets
        config: Plot styling
        nrows: Fixed number of rows, otherwise wrapped after config.ncols
        sharey: Whether the facets share the y axis

    Returns:
        Tuple of (figure, list of the n visible axes)
    """
    cells = max(n, 1)
    if nrows is None:
        ncols = min(config.ncols, cells)
        nrows = math.ceil(cells / ncols)
    else:
        nrows = max(nrows, 1)
        ncols = math.ceil(cells / nrows)
    width, height = config.panel_size
    fig, axes = plt.subplots(
        nrows, ncols, figsize=(width * ncols, height * nrows), squeeze=False, sharey=sharey
    )
    flat = list(axes.ravel())
    for ax in flat[n:]:
        ax.set_visible(False)
    return fig, flat[:n]


def _offset(flag: Any, flags: List[bool], dodge: float) -> float:
    """Vertical offset of a point so both group flags stay visible."""
    if flag is None or pd.isna(flag) or len(flags) < 2:
        return 0.0
    return (flags.index(bool(flag)) - (len(flags) - 1) / 2) * dodge


def _marker(flag: Any, config: PlotConfig) -> str:
    if flag is None or pd.isna(flag):
        return config.flag_markers[0]
    return config.flag_markers[int(bool(flag))]


def _flag_legend(fig: Figure, flags: List[bool], config: PlotConfig) -> None:
    if len(flags) < 2:
        return
    handles = [
        Line2D([], [], color="0.2", marker=config.flag_markers[int(f)], linestyle="")
        for f in flags
    ]
    fig.legend(handles, [config.flag_labels[int(f)] for f in flags], loc="upper right")


def plot_coefficients(table: pd.DataFrame, config: Optional[PlotConfig] = None) -> Figure:
    """Point estimates and confidence intervals, one facet per term.

    Args:
        table: Merged table
        config: Plot styling

    Returns:
        The matplotlib figure
    """
    config = config or PlotConfig()
    terms = _unique(table["term_name"])
    packages = _unique(table["package_id"])
    colors = config.colors(packages)
    flags = _flags(table)

    with plt.rc_context(config.rc):
        fig, axes = _facets(len(terms), config, sharey=True)
        for ax, term in zip(axes, terms):
            for row in table.loc[table["term_name"] == term].itertuples(index=False):
                flag = getattr(row, "group_flag", None)
                y = packages.index(row.package_id) + _offset(flag, flags, config.dodge)
                xerr = None
                if np.isfinite(row.conf_low) and np.isfinite(row.conf_high):
                    xerr = [
                        [max(row.estimate - row.conf_low, 0.0)],
                        [max(row.conf_high - row.estimate, 0.0)],
                    ]
                ax.errorbar(
                    row.estimate,
                    y,
                    xerr=xerr,
                    fmt=_marker(flag, config),
                    color=colors[row.package_id],
                    markersize=config.marker_size,
                    capsize=config.capsize,
                )
            ax.set_title(term)
            ax.set_yticks(range(len(packages)))
            ax.set_yticklabels(packages)
            ax.set_xlabel("estimate")
        _flag_legend(fig, flags, config)
        fig.tight_layout()
    return fig


def plot_comparison(
    long_table: pd.DataFrame,
    consensus: Optional[pd.DataFrame] = None,
    config: Optional[PlotConfig] = None,
) -> Figure:
    """Estimates and standard errors side by side.

    One row of facets per variable and one column per term. When
    ``consensus`` is given, its ``sderr_cons`` is drawn as a reference line
    on the standard-error facets.

    Args:
        long_table: Output of :func:`~glmm_compare.harmonize.to_long_format`
        consensus: Output of :func:`~glmm_compare.harmonize.consensus_std_error`
        config: Plot styling

    Returns:
        The matplotlib figure
    """
    config = config or PlotConfig()
    variables = _unique(long_table["variable"])
    terms = _unique(long_table["term_name"])
    packages = _unique(long_table["package_id"])
    colors = config.colors(packages)
    flags = _flags(long_table)

    with plt.rc_context(config.rc):
        fig, axes = _facets(len(variables) * len(terms), config, nrows=len(variables))
        for i, variable in enumerate(variables):
            for j, term in enumerate(terms):
                ax = axes[i * len(terms) + j]
                cell = long_table.loc[
                    (long_table["variable"] == variable) & (long_table["term_name"] == term)
                ]
                for row in cell.itertuples(index=False):
                    flag = getattr(row, "group_flag", None)
                    ax.plot(
                        row.value,
                        packages.index(row.package_id) + _offset(flag, flags, config.dodge),
                        marker=_marker(flag, config),
                        linestyle="",
                        color=colors[row.package_id],
                        markersize=config.marker_size,
                    )
                if variable == "std_error" and consensus is not None:
                    for value in consensus.loc[consensus["term_name"] == term, "sderr_cons"]:
                        if np.isfinite(value):
                            ax.axvline(value, color=config.consensus_color, linestyle="--")
                ax.set_title(f"{term}\n{variable}")
                ax.set_yticks(range(len(packages)))
                ax.set_yticklabels(packages)
        _flag_legend(fig, flags, config)
        fig.tight_layout()
    return fig


def plot_fit_times(timings: pd.DataFrame, config: Optional[PlotConfig] = None) -> Figure:
    """Horizontal bar chart of fitting times; unconverged fits are hatched.

    Args:
        timings: Table with package_id, fit_time and optionally converged
        config: Plot styling

    Returns:
        The matplotlib figure
    """
    config = config or PlotConfig()
    packages = list(timings["package_id"])
    colors = config.colors(_unique(packages))
    converged = timings["converged"] if "converged" in timings.columns else [True] * len(packages)

    with plt.rc_context(config.rc):
        width, height = config.panel_size
        fig, ax = plt.subplots(figsize=(width * 2, max(height, 0.4 * len(packages) + 1)))
        bars = ax.barh(
            range(len(packages)),
            np.nan_to_num(timings["fit_time"].to_numpy(dtype=float)),
            color=[colors[p] for p in packages],
        )
        for bar, ok in zip(bars, converged):
            if not ok:
                bar.set_hatch("//")
        ax.set_yticks(range(len(packages)))
        ax.set_yticklabels(packages)
        ax.invert_yaxis()
        ax.set_xlabel("fitting time (s)")
        fig.tight_layout()
    return fig
