"""
Shift-versus-pH figures for buffer resonances.

Predicted curves come from :func:`shifty.chemistry.generate_shift_curves`;
observed, assigned shifts are drawn as horizontal markers at the fitted pH so
the quality of the fit can be judged by eye.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd

from .schema import Assignment


def setup_plot_style():
    """Plain, legible style for single-panel figures."""
    plt.style.use("default")
    plt.rcParams.update(
        {
            "font.size": 12,
            "axes.labelsize": 13,
            "legend.fontsize": 10,
            "savefig.dpi": 300,
            "savefig.bbox": "tight",
            "axes.spines.top": False,
            "axes.spines.right": False,
            "grid.alpha": 0.25,
            "grid.linestyle": "--",
            "legend.frameon": False,
        }
    )


def plot_shift_curves(
    curves: pd.DataFrame,
    assignments: Optional[Mapping[str, Sequence[Assignment]]] = None,
    fitted_ph: Optional[float] = None,
    output_path: Optional[str] = None,
    title: Optional[str] = None,
):
    """Plot predicted shift curves, optionally with the observed shifts.

    Args:
        curves (pandas.DataFrame): Long table from ``generate_shift_curves``
            (one or more buffers concatenated). Must contain ``nucleus``,
            ``buffer_id``, ``buffer_name``, ``resonance_id``, ``pH`` and
            ``shift`` columns.
        assignments (Mapping[str, Sequence[Assignment]] | None): Assignment
            set whose assigned peaks are overlaid.
        fitted_ph (float | None): pH at which observed shifts are drawn; a
            vertical guide line is added when given.
        output_path (str | None): PNG path. When given, the figure is saved
            and closed and the path is returned.
        title (str | None): Axes title.

    Returns:
        str | matplotlib.figure.Figure: Output path when saved, otherwise the
        open figure.

    Raises:
        KeyError: If a required column is missing from ``curves``.
    """
    required = ["nucleus", "buffer_id", "buffer_name", "resonance_id", "pH", "shift"]
    missing = [c for c in required if c not in curves.columns]
    if missing:
        raise KeyError(f"Missing curve column(s): {', '.join(missing)}")

    setup_plot_style()
    fig, ax = plt.subplots(figsize=(8, 5.5))

    nuclei = list(dict.fromkeys(curves["nucleus"]))
    for (_, resonance_id), grp in curves.groupby(["buffer_id", "resonance_id"], sort=False):
        buffer_name = grp["buffer_name"].iloc[0]
        ax.plot(grp["pH"], grp["shift"], linewidth=1.5, label=f"{buffer_name} {resonance_id}")

    if assignments and fitted_ph is not None:
        observed = [
            a.observed_shift
            for nucleus in nuclei
            for a in assignments.get(nucleus, ())
            if a.assigned
        ]
        if observed:
            ax.scatter(
                [fitted_ph] * len(observed),
                observed,
                marker="_",
                s=400,
                linewidths=2.0,
                color="black",
                zorder=3,
                label="Observed",
            )
    if fitted_ph is not None:
        ax.axvline(fitted_ph, color="grey", linestyle=":", linewidth=1.0)

    nucleus_label = nuclei[0] if len(nuclei) == 1 else "/".join(nuclei)
    ax.set_xlabel("pH")
    ax.set_ylabel(f"{nucleus_label} chemical shift / ppm" if nuclei else "Chemical shift / ppm")
    # ppm increases downward, as on a spectrum axis.
    ax.invert_yaxis()
    ax.grid(True)
    if title:
        ax.set_title(title)
    if len(ax.get_legend_handles_labels()[0]) > 0:
        ax.legend(loc="best")

    if output_path is None:
        return fig

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    fig.savefig(output_path, dpi=300)
    plt.close(fig)
    return output_path
