"""
Equilibrium model for NMR pH indicator buffers.

This subpackage turns tabulated buffer parameters into predicted chemical
shifts at arbitrary pH, temperature and ionic strength.

Modules:
    ionic_strength:
        Activity-model pKa corrections (Davies, extended Debye-Hückel,
        empirical, none).

    pka:
        van't Hoff temperature correction with a heat-capacity term and the
        combined, sorted pKa list of a buffer.

    speciation:
        Ionisation-state population fractions from sorted pKa values.

    shifts:
        Population-weighted shift prediction and dense shift-vs-pH curves,
        plus indirect-referencing frequencies from IUPAC ratios.

Design Principle:
    This subpackage has no dependencies on fitting, assignment or plotting.
    It provides pure chemistry models that can be independently tested.
"""

from .ionic_strength import (
    davies_correction,
    delta_z_squared,
    empirical_correction,
    extended_debye_huckel_correction,
    ionic_strength_correction,
)
from .pka import buffer_pka_values, calculate_pka, calculate_pka_temperature
from .shifts import (
    calculate_limiting_shift,
    generate_shift_curves,
    predict_buffer_shifts,
    predict_shift,
    reference_frequency,
)
from .speciation import ionisation_fractions

__all__ = [
    "davies_correction",
    "delta_z_squared",
    "empirical_correction",
    "extended_debye_huckel_correction",
    "ionic_strength_correction",
    "buffer_pka_values",
    "calculate_pka",
    "calculate_pka_temperature",
    "calculate_limiting_shift",
    "generate_shift_curves",
    "predict_buffer_shifts",
    "predict_shift",
    "reference_frequency",
    "ionisation_fractions",
]
