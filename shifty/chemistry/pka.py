"""Temperature and ionic-strength corrected pKa values.

The temperature dependence follows the integrated van't Hoff equation with a
constant heat-capacity change:

    pKa(T) = pKa(T_ref)
             + ΔH / (R ln 10) · (1/T − 1/T_ref)
             + ΔCp / (R ln 10) · (T_ref/T − 1 + ln(T/T_ref))

The ionic-strength term is added afterwards (see :mod:`.ionic_strength`).
"""

from __future__ import annotations

import math
from typing import List

from ..schema import DEFAULT_REFERENCE_TEMPERATURE_K, Buffer, PKaParameters
from .ionic_strength import ionic_strength_correction

GAS_CONSTANT = 8.314462618
LN10 = math.log(10.0)


def calculate_pka_temperature(
    params: PKaParameters,
    temperature: float,
    reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE_K,
) -> float:
    """Return the pKa at ``temperature`` using van't Hoff with a ΔCp term.

    Args:
        params (PKaParameters): pKa record with ``dh_kj_mol`` (kJ mol^-1)
            and ``dcp_j_mol_k`` (J mol^-1 K^-1).
        temperature (float): Temperature in K.
        reference_temperature (float): Temperature at which ``params.pka``
            was measured, in K.

    Returns:
        float: pKa at ``temperature``. Equals ``params.pka`` when
        ``temperature == reference_temperature``.

    Raises:
        ValueError: If either temperature is non-positive or non-finite.
    """
    t = float(temperature)
    t_ref = float(reference_temperature)
    if not (math.isfinite(t) and t > 0 and math.isfinite(t_ref) and t_ref > 0):
        raise ValueError(
            f"Temperatures must be positive and finite, got T={t}, T_ref={t_ref}"
        )

    pka = float(params.pka)

    dh = float(params.dh_kj_mol) * 1000.0
    if dh != 0:
        pka += (dh / (GAS_CONSTANT * LN10)) * (1.0 / t - 1.0 / t_ref)

    dcp = float(params.dcp_j_mol_k)
    if dcp != 0:
        pka += (dcp / (GAS_CONSTANT * LN10)) * (t_ref / t - 1.0 + math.log(t / t_ref))

    return pka


def calculate_pka(
    params: PKaParameters,
    temperature: float,
    ionic_strength: float,
    reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE_K,
) -> float:
    """Return the pKa corrected for both temperature and ionic strength."""
    pka = calculate_pka_temperature(params, temperature, reference_temperature)
    return pka + ionic_strength_correction(params, ionic_strength)


def buffer_pka_values(
    buffer: Buffer,
    temperature: float,
    ionic_strength: float,
    reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE_K,
) -> List[float]:
    """Return all corrected pKa values of ``buffer``, sorted ascending."""
    return sorted(
        calculate_pka(p, temperature, ionic_strength, reference_temperature)
        for p in buffer.pka_parameters
    )
