"""Tabular views of fit results as pandas DataFrames, with CSV export.

This module is the output boundary between the in-memory FitResult and
tables a caller can inspect, print or save.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Mapping, Sequence

import pandas as pd

from .reporting import add_formatted_reporting_columns
from .schema import Assignment, FitResult, FitStatistics

logger = logging.getLogger(__name__)

ASSIGNMENT_COLUMNS = [
    "Nucleus",
    "Observed (ppm)",
    "Assigned",
    "Buffer",
    "Resonance",
    "Description",
    "Predicted (ppm)",
    "Residual (ppm)",
    "Confidence",
    "Ambiguous",
    "Message",
]

PARAMETER_COLUMNS = ["Parameter", "Label", "Value", "Uncertainty"]


def assignments_to_dataframe(
    assignments: Mapping[str, Sequence[Assignment]],
) -> pd.DataFrame:
    """Flatten an assignment set into one row per observed shift.

    Args:
        assignments (Mapping[str, Sequence[Assignment]]): Assignment set by
            nucleus.

    Returns:
        pandas.DataFrame: Columns ``ASSIGNMENT_COLUMNS``. Unassigned rows
        carry ``NaN`` predictions and residuals and the reason in
        ``Message``.
    """
    rows = []
    for nucleus, items in assignments.items():
        for a in items:
            rows.append(
                {
                    "Nucleus": nucleus,
                    "Observed (ppm)": a.observed_shift,
                    "Assigned": a.assigned,
                    "Buffer": a.buffer_name,
                    "Resonance": a.resonance_id,
                    "Description": a.description,
                    "Predicted (ppm)": a.predicted_shift,
                    "Residual (ppm)": a.residual,
                    "Confidence": a.confidence.value,
                    "Ambiguous": a.is_ambiguous,
                    "Message": a.message,
                }
            )
    df = pd.DataFrame(rows, columns=ASSIGNMENT_COLUMNS)
    for col in ("Observed (ppm)", "Predicted (ppm)", "Residual (ppm)"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def parameters_to_dataframe(result: FitResult) -> pd.DataFrame:
    """Return fitted parameters with a formatted ``value ± uncertainty`` column.

    Empty (with the standard columns) when the fit failed.
    """
    rows = [
        {
            "Parameter": name,
            "Label": est.label,
            "Value": est.value,
            "Uncertainty": est.uncertainty,
        }
        for name, est in result.parameters.items()
    ]
    df = pd.DataFrame(rows, columns=PARAMETER_COLUMNS)
    if df.empty:
        df["Value (reported)"] = pd.Series(dtype=str)
        return df
    return add_formatted_reporting_columns(df, [("Value", "Uncertainty")])


def statistics_to_dataframe(statistics: FitStatistics) -> pd.DataFrame:
    """Return fit statistics as a two-column ``Statistic``/``Value`` table."""
    items = statistics.to_dict()
    return pd.DataFrame(
        {"Statistic": list(items.keys()), "Value": list(items.values())}
    )


def save_result_tables(result: FitResult, output_dir: str = "output") -> Dict[str, str]:
    """Write assignment, parameter and statistics tables as CSV files.

    Args:
        result (FitResult): Result to export. For a failed fit only the
            assignments table is written.
        output_dir (str): Directory for the CSV files; created if missing.

    Returns:
        dict[str, str]: Table name mapped to the written path.
    """
    os.makedirs(output_dir, exist_ok=True)
    paths: Dict[str, str] = {}

    path = os.path.join(output_dir, "assignments.csv")
    assignments_to_dataframe(result.assignments).to_csv(path, index=False)
    paths["assignments"] = path

    if result.success:
        path = os.path.join(output_dir, "parameters.csv")
        parameters_to_dataframe(result).to_csv(path, index=False)
        paths["parameters"] = path

        path = os.path.join(output_dir, "statistics.csv")
        statistics_to_dataframe(result.statistics).to_csv(path, index=False)
        paths["statistics"] = path

    for name, path in paths.items():
        logger.info("Saved %s table to %s", name, path)
    return paths
