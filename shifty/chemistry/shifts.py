"""Predict observed chemical shifts from the ionisation equilibrium.

Under fast exchange the observed shift of a resonance is the population
weighted average of its limiting shifts:

    δ_obs = Σ_i f_i(pH, pKa(T, I)) · δ_i(T, I)

where each limiting shift is corrected linearly for temperature and ionic
strength relative to the sample reference conditions.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..schema import (
    DEFAULT_REFERENCE_IONIC_STRENGTH_M,
    DEFAULT_REFERENCE_TEMPERATURE_K,
    Buffer,
    LimitingShift,
    Prediction,
    Resonance,
    Sample,
)
from .pka import buffer_pka_values
from .speciation import ionisation_fractions

CURVE_COLUMNS = [
    "buffer_id",
    "buffer_name",
    "resonance_id",
    "description",
    "nucleus",
    "pH",
    "shift",
]

# IUPAC Ξ ratios (%) relative to DSS, 1H at 0 ppm.
XI_RATIOS: Dict[str, float] = {
    "1H": 100.000000,
    "13C": 25.145020,
    "15N": 10.136767,
    "19F": 94.094011,
    "31P": 40.480742,
}


def reference_frequency(nucleus: str, proton_frequency_mhz: float) -> float:
    """Return the 0 ppm frequency of ``nucleus`` on a given spectrometer.

    Indirect referencing scales the DSS proton frequency by the IUPAC
    Ξ ratio, so heteronuclear spectra share the proton reference.

    Args:
        nucleus (str): Nucleus label, e.g. ``"13C"``.
        proton_frequency_mhz (float): 1H frequency of DSS in MHz.

    Returns:
        float: Reference frequency in MHz.

    Raises:
        ValueError: If the nucleus has no tabulated ratio or the frequency
            is not positive and finite.
    """
    if nucleus not in XI_RATIOS:
        raise ValueError(f"No Ξ ratio for nucleus '{nucleus}'")
    frequency = float(proton_frequency_mhz)
    if not np.isfinite(frequency) or frequency <= 0:
        raise ValueError(f"Proton frequency must be positive, got {proton_frequency_mhz!r}")
    return frequency * XI_RATIOS[nucleus] / 100.0


def reference_conditions(sample: Optional[Sample]) -> tuple:
    """Return ``(T_ref, I_ref)`` for ``sample``, with defaults when absent."""
    if sample is None:
        return DEFAULT_REFERENCE_TEMPERATURE_K, DEFAULT_REFERENCE_IONIC_STRENGTH_M
    return sample.reference_temperature_k, sample.reference_ionic_strength_m


def calculate_limiting_shift(
    limiting_shift: LimitingShift,
    temperature: float,
    ionic_strength: float,
    reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE_K,
    reference_ionic_strength: float = DEFAULT_REFERENCE_IONIC_STRENGTH_M,
) -> float:
    """Return a limiting shift corrected to ``temperature`` and ``ionic_strength``."""
    shift = float(limiting_shift.shift_ppm)

    t_coeff = float(limiting_shift.temperature_coefficient_ppm_per_k)
    if t_coeff != 0:
        shift += t_coeff * (temperature - reference_temperature)

    i_coeff = float(limiting_shift.ionic_strength_coefficient_ppm_per_m)
    if i_coeff != 0:
        shift += i_coeff * (ionic_strength - reference_ionic_strength)

    return shift


def predict_shift(
    resonance: Resonance,
    pka_values: Sequence[float],
    ph: float,
    temperature: float,
    ionic_strength: float,
    reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE_K,
    reference_ionic_strength: float = DEFAULT_REFERENCE_IONIC_STRENGTH_M,
) -> float:
    """Predict the observed shift of ``resonance`` at the given conditions.

    Args:
        resonance (Resonance): Resonance with its limiting shifts.
        pka_values (Sequence[float]): Corrected pKa values of the buffer.
        ph (float): Solution pH.
        temperature (float): Temperature in K.
        ionic_strength (float): Ionic strength in mol dm^-3.
        reference_temperature (float): Sample reference temperature in K.
        reference_ionic_strength (float): Sample reference ionic strength.

    Returns:
        float: Predicted shift in ppm.

    Note:
        A limiting shift whose ionisation state index has no matching
        fraction contributes zero.
    """
    fractions = ionisation_fractions(ph, pka_values)
    n_states = len(fractions)

    observed = 0.0
    for ls in resonance.limiting_shifts:
        state = int(ls.ionisation_state)
        if state < 0 or state >= n_states:
            continue
        observed += fractions[state] * calculate_limiting_shift(
            ls,
            temperature,
            ionic_strength,
            reference_temperature,
            reference_ionic_strength,
        )
    return float(observed)


def predict_buffer_shifts(
    buffer: Buffer,
    ph: float,
    temperature: float,
    ionic_strength: float,
    sample: Optional[Sample] = None,
) -> Dict[str, List[Prediction]]:
    """Predict every resonance of ``buffer``, grouped by nucleus."""
    ref_t, ref_i = reference_conditions(sample)
    pka_values = buffer_pka_values(buffer, temperature, ionic_strength, ref_t)

    predictions: Dict[str, List[Prediction]] = {}
    for nucleus, resonances in buffer.chemical_shifts.items():
        predictions[nucleus] = [
            Prediction(
                buffer_id=buffer.buffer_id,
                buffer_name=buffer.buffer_name,
                resonance_id=resonance.resonance_id,
                description=resonance.description,
                nucleus=nucleus,
                predicted_shift=predict_shift(
                    resonance, pka_values, ph, temperature, ionic_strength, ref_t, ref_i
                ),
            )
            for resonance in resonances
        ]
    return predictions


def ph_grid(ph_min: float, ph_max: float, ph_step: float) -> np.ndarray:
    """Return ``ph_min, ph_min + step, ...`` up to and including ``ph_max``."""
    if not ph_step > 0:
        raise ValueError(f"pH step must be positive, got {ph_step}")
    if ph_max < ph_min:
        raise ValueError(f"pH range is empty: min {ph_min} > max {ph_max}")
    n = int(np.floor((ph_max - ph_min) / ph_step + 1e-9)) + 1
    return ph_min + ph_step * np.arange(n)


def generate_shift_curves(
    buffer: Buffer,
    nucleus: str,
    temperature: float,
    ionic_strength: float,
    sample: Optional[Sample] = None,
    ph_min: float = 2.0,
    ph_max: float = 12.0,
    ph_step: float = 0.05,
) -> pd.DataFrame:
    """Tabulate predicted shift against pH for every resonance of one nucleus.

    Args:
        buffer (Buffer): Buffer to evaluate.
        nucleus (str): Nucleus label, e.g. ``"1H"``.
        temperature (float): Temperature in K.
        ionic_strength (float): Ionic strength in mol dm^-3.
        sample (Sample | None): Reference conditions for ``buffer``.
        ph_min (float): First pH value.
        ph_max (float): Last pH value (inclusive when on the grid).
        ph_step (float): pH increment.

    Returns:
        pandas.DataFrame: Long-format table with columns ``CURVE_COLUMNS``.
        Empty when ``buffer`` has no resonances for ``nucleus``.

    Raises:
        ValueError: If the pH range or step is invalid.
    """
    grid = ph_grid(ph_min, ph_max, ph_step)
    ref_t, ref_i = reference_conditions(sample)
    pka_values = buffer_pka_values(buffer, temperature, ionic_strength, ref_t)

    frames = []
    for resonance in buffer.chemical_shifts.get(nucleus, ()):
        shifts = [
            predict_shift(resonance, pka_values, ph, temperature, ionic_strength, ref_t, ref_i)
            for ph in grid
        ]
        frames.append(
            pd.DataFrame(
                {
                    "buffer_id": buffer.buffer_id,
                    "buffer_name": buffer.buffer_name,
                    "resonance_id": resonance.resonance_id,
                    "description": resonance.description,
                    "nucleus": nucleus,
                    "pH": grid,
                    "shift": shifts,
                }
            )
        )

    if not frames:
        return pd.DataFrame(columns=CURVE_COLUMNS)
    return pd.concat(frames, ignore_index=True)
