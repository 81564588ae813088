"""Ionisation-state populations of a polyprotic buffer.

For N ionisation states (0 = most protonated) and N − 1 pKa values sorted
ascending, the relative population of state i is

    w_i = Π_{j ≥ i} 10^(pKa_j − pH),    w_{N-1} = 1

and the fractions are ``w_i / Σ w``. The products are accumulated as base-10
exponents and shifted by their maximum before exponentiation, so that extreme
pH values cannot overflow.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def ionisation_fractions(ph: float, pka_values: Sequence[float]) -> np.ndarray:
    """Return the fraction of molecules in each ionisation state.

    Args:
        ph (float): Solution pH.
        pka_values (Sequence[float]): pKa values; sorted ascending before use.

    Returns:
        numpy.ndarray: ``len(pka_values) + 1`` fractions summing to one,
        ordered from most protonated to most deprotonated.

    Raises:
        ValueError: If ``ph`` or any pKa is non-finite.
    """
    pkas = np.sort(np.asarray(pka_values, dtype=float))
    if not np.isfinite(ph) or not np.all(np.isfinite(pkas)):
        raise ValueError("pH and pKa values must be finite.")
    if pkas.size == 0:
        return np.ones(1)

    # log10 w_i = sum_{j >= i} (pKa_j - pH); reversed cumulative sum, then a
    # trailing zero for the fully deprotonated state.
    terms = pkas - float(ph)
    log_w = np.append(np.cumsum(terms[::-1])[::-1], 0.0)
    weights = np.power(10.0, log_w - log_w.max())
    return weights / weights.sum()
