"""Correct pKa values for ionic strength.

Ionic strength (I) shields charged species and shifts acid-base equilibria
through the activity coefficients of HA, A⁻ and H⁺. This module provides the
pKa corrections used by the equilibrium model.

Background Theory:
    For the dissociation HA^z ⇌ H⁺ + A^(z-1) the change in squared charge is

        Δz² = z_H+² + z_A² − z_HA² = 1 + (z − 1)² − z²

    and the shift of the concentration pKa relative to the thermodynamic value
    follows from the activity-coefficient model:

        Davies:                  ΔpKa = A Δz² (√I / (1 + √I) − 0.3 I)
        Extended Debye-Hückel:   ΔpKa = A Δz² √I / (1 + B a √I)
        Empirical:               ΔpKa = k I

    with A = 0.5085 and B = 0.328 Å⁻¹ for water at 25 °C, and ``a`` the
    ion-size parameter in Å.

Terms whose coefficient is zero are skipped rather than multiplied out.
"""

from __future__ import annotations

import math

from ..schema import IonicStrengthModel, PKaParameters

DAVIES_A = 0.5085
DEBYE_HUCKEL_B = 0.328
DEFAULT_ION_SIZE_ANGSTROM = 4.5


def delta_z_squared(protonated_charge: int) -> int:
    """Return Δz² for HA^z ⇌ H⁺ + A^(z-1).

    Args:
        protonated_charge (int): Charge ``z`` of the protonated species.

    Returns:
        int: ``1 + (z - 1)**2 - z**2``.
    """
    z = int(protonated_charge)
    return 1 + (z - 1) ** 2 - z**2


def _check_ionic_strength(ionic_strength: float) -> float:
    i = float(ionic_strength)
    if not math.isfinite(i):
        raise ValueError(f"Ionic strength must be finite, got {i}")
    return i


def davies_correction(params: PKaParameters, ionic_strength: float) -> float:
    """Calculate the Davies-equation pKa correction.

    Args:
        params (PKaParameters): pKa record; only ``protonated_charge`` is used.
        ionic_strength (float): Ionic strength in mol dm^-3.

    Returns:
        float: Correction to add to the pKa. Zero for ``I <= 0`` or when the
        charge change vanishes.

    Raises:
        ValueError: If ``ionic_strength`` is non-finite.

    References:
        Davies, C. W. Ion Association (1962).
    """
    i = _check_ionic_strength(ionic_strength)
    if i <= 0:
        return 0.0
    dz2 = delta_z_squared(params.protonated_charge)
    if dz2 == 0:
        return 0.0
    sqrt_i = math.sqrt(i)
    return DAVIES_A * dz2 * (sqrt_i / (1.0 + sqrt_i) - 0.3 * i)


def extended_debye_huckel_correction(params: PKaParameters, ionic_strength: float) -> float:
    """Calculate the extended Debye-Hückel pKa correction.

    Args:
        params (PKaParameters): pKa record; ``protonated_charge`` and
            ``ion_size_angstrom`` are used (size defaults to 4.5 Å).
        ionic_strength (float): Ionic strength in mol dm^-3.

    Returns:
        float: Correction to add to the pKa.

    Raises:
        ValueError: If ``ionic_strength`` is non-finite.
    """
    i = _check_ionic_strength(ionic_strength)
    if i <= 0:
        return 0.0
    dz2 = delta_z_squared(params.protonated_charge)
    if dz2 == 0:
        return 0.0
    ion_size = (
        DEFAULT_ION_SIZE_ANGSTROM
        if params.ion_size_angstrom is None
        else float(params.ion_size_angstrom)
    )
    sqrt_i = math.sqrt(i)
    return DAVIES_A * dz2 * sqrt_i / (1.0 + DEBYE_HUCKEL_B * ion_size * sqrt_i)


def empirical_correction(params: PKaParameters, ionic_strength: float) -> float:
    """Linear empirical correction ``k * I``."""
    k = float(params.ionic_strength_coefficient_per_m)
    if k == 0:
        return 0.0
    return k * _check_ionic_strength(ionic_strength)


def ionic_strength_correction(params: PKaParameters, ionic_strength: float) -> float:
    """Dispatch to the correction selected by ``params.ionic_strength_model``."""
    model = IonicStrengthModel(params.ionic_strength_model)
    if model is IonicStrengthModel.DAVIES:
        return davies_correction(params, ionic_strength)
    if model is IonicStrengthModel.EXTENDED_DEBYE_HUCKEL:
        return extended_debye_huckel_correction(params, ionic_strength)
    if model is IonicStrengthModel.EMPIRICAL:
        return empirical_correction(params, ionic_strength)
    return 0.0
