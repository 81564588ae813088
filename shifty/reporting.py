"""Format fitted values with their uncertainties for human-readable output.

Uncertainties are rounded to one significant figure, or two when the leading
digit is 1; the paired value is rounded to the same decimal place. Numeric
results are never modified; these helpers only produce strings and rounded
copies for display.
"""

from __future__ import annotations

import math
from typing import Iterable

import numpy as np
import pandas as pd


def round_uncertainty(uncertainty: float) -> tuple[float, int]:
    """Round an uncertainty to its significant figures.

    Args:
        uncertainty (float): Absolute uncertainty.

    Returns:
        tuple[float, int]: Rounded uncertainty and the number of decimal
        places it implies (may be negative for uncertainties ≥ 10).

    Raises:
        ValueError: If ``uncertainty`` is non-finite or non-positive.

    Note:
        Use one significant figure by default and two when the leading digit
        is 1.
    """
    u = float(uncertainty)
    if not math.isfinite(u) or u <= 0:
        raise ValueError(f"Uncertainty must be finite and > 0, got {uncertainty!r}")

    exponent = math.floor(math.log10(u))
    leading = u / (10**exponent)
    sig_figs = 2 if 1.0 <= leading < 2.0 else 1
    ndigits = sig_figs - 1 - exponent
    return float(round(u, ndigits)), int(ndigits)


def round_value_to_uncertainty(value: float, uncertainty: float) -> tuple[float, float]:
    """Round ``value`` to the decimal place of its rounded ``uncertainty``.

    Zero or non-finite uncertainties leave both numbers untouched.
    """
    u = float(uncertainty)
    if not math.isfinite(u) or u <= 0:
        return float(value), u
    ru, ndigits = round_uncertainty(u)
    return float(round(float(value), ndigits)), ru


def format_value_with_uncertainty(
    value: float, uncertainty: float, unit: str = ""
) -> str:
    """Return ``"value ± uncertainty unit"`` with matched precision.

    Args:
        value (float): Fitted value.
        uncertainty (float): Standard error in the same unit.
        unit (str): Optional unit appended after the uncertainty.

    Returns:
        str: e.g. ``"6.98 ± 0.03"`` or ``"298.2 ± 1.4 K"``. A zero or
        non-finite uncertainty is printed with 6 significant figures.
    """
    u = float(uncertainty)
    if not math.isfinite(u) or u <= 0:
        return f"{float(value):.6g} ± {u:.6g} {unit}".strip()

    ru, ndigits = round_uncertainty(u)
    dp = max(0, ndigits)
    return f"{round(float(value), ndigits):.{dp}f} ± {ru:.{dp}f} {unit}".strip()


def add_formatted_reporting_columns(
    df: pd.DataFrame,
    value_uncertainty_pairs: Iterable[tuple[str, str]],
    suffix: str = " (reported)",
) -> pd.DataFrame:
    """Add a ``value ± uncertainty`` string column per value/uncertainty pair.

    Args:
        df (pandas.DataFrame): Numeric table.
        value_uncertainty_pairs (Iterable[tuple[str, str]]): Sequence of
            ``(value_column, uncertainty_column)`` pairs to format.
        suffix (str, optional): Suffix appended to ``value_column`` to name
            the generated column. Defaults to ``" (reported)"``.

    Returns:
        pandas.DataFrame: Copy of ``df`` with the string columns added.

    Raises:
        KeyError: If a value or uncertainty column is missing.
    """
    out = df.copy()
    for value_col, unc_col in value_uncertainty_pairs:
        if value_col not in out.columns:
            raise KeyError(f"Missing value column '{value_col}' for reporting format.")
        if unc_col not in out.columns:
            raise KeyError(
                f"Missing uncertainty column '{unc_col}' required for '{value_col}'."
            )

        values = pd.to_numeric(out[value_col], errors="coerce")
        uncs = pd.to_numeric(out[unc_col], errors="coerce")
        out[f"{value_col}{suffix}"] = [
            format_value_with_uncertainty(v, u) if np.isfinite(v) else ""
            for v, u in zip(values, uncs)
        ]
    return out
