"""Pytest configuration for repository-relative imports and shared buffer data."""

import copy
import os
import sys

import matplotlib
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

matplotlib.use("Agg")

from shifty.database import load_database  # noqa: E402

# One pKa, no temperature or ionic-strength dependence, one 1H resonance
# moving from 3.5 ppm (protonated) to 3.0 ppm (deprotonated).
SIMPLE_BUFFER = {
    "buffer_id": "simple",
    "buffer_name": "Simple acid",
    "sample_id": "s_simple",
    "pKa_parameters": [
        {"pKa": [6.8, 0.01], "ionic_strength_model": "none"},
    ],
    "chemical_shifts": {
        "1H": [
            {
                "resonance_id": "H1",
                "description": "CH2",
                "limiting_shifts": [
                    {"ionisation_state": 0, "shift_ppm": 3.5},
                    {"ionisation_state": 1, "shift_ppm": 3.0},
                ],
            }
        ]
    },
}

# Diprotic buffer with temperature and ionic-strength dependence on two nuclei.
DIPROTIC_BUFFER = {
    "buffer_id": "diprotic",
    "buffer_name": "Diprotic acid",
    "sample_id": "s_diprotic",
    "pKa_parameters": [
        {"pKa": 4.2, "dH_kJ_mol": 3.0, "protonated_charge": 1},
        {
            "pKa": [8.1, 0.02],
            "dH_kJ_mol": 45.0,
            "dCp_J_mol_K": -20.0,
            "protonated_charge": 0,
            "ionic_strength_model": "extended_debye_huckel",
            "ion_size_angstrom": 5.0,
        },
    ],
    "chemical_shifts": {
        "1H": [
            {
                "resonance_id": "Ha",
                "description": "alpha CH",
                "limiting_shifts": [
                    {"ionisation_state": 0, "shift_ppm": 4.10},
                    {"ionisation_state": 1, "shift_ppm": 3.80},
                    {
                        "ionisation_state": 2,
                        "shift_ppm": 3.30,
                        "temperature_coefficient_ppm_per_K": -0.002,
                    },
                ],
            },
            {
                "resonance_id": "Hb",
                "description": "beta CH2",
                "limiting_shifts": [
                    {"ionisation_state": 0, "shift_ppm": 2.60},
                    {"ionisation_state": 1, "shift_ppm": 2.45},
                    {
                        "ionisation_state": 2,
                        "shift_ppm": 1.90,
                        "ionic_strength_coefficient_ppm_per_M": 0.05,
                    },
                ],
            },
        ],
        "13C": [
            {
                "resonance_id": "C1",
                "limiting_shifts": [
                    {"ionisation_state": 0, "shift_ppm": 172.0},
                    {"ionisation_state": 1, "shift_ppm": 176.5},
                    {"ionisation_state": 2, "shift_ppm": 178.0},
                ],
            }
        ],
    },
}

SAMPLES = [
    {
        "sample_id": "s_simple",
        "reference_temperature_K": 298.15,
        "reference_ionic_strength_M": 0.0,
        "solvent": "H2O",
        "measurement_ranges": {
            "pH": {"min": 5.5, "max": 8.0},
            "temperature_K": {"min": 288.0, "max": 310.0},
            "ionic_strength_M": {"min": 0.0, "max": 0.5},
        },
    },
    {
        "sample_id": "s_diprotic",
        "reference_temperature_K": [298.15, 0.1],
        "reference_ionic_strength_M": 0.1,
        "solvent": "D2O",
        "measurement_ranges": {
            "pH": {"min": 2.0, "max": 11.0},
        },
    },
]


@pytest.fixture
def database_record():
    return copy.deepcopy(
        {"buffers": [SIMPLE_BUFFER, DIPROTIC_BUFFER], "samples": SAMPLES}
    )


@pytest.fixture
def database(database_record):
    return load_database(database_record)


@pytest.fixture
def simple_buffer(database):
    return database.buffers["simple"]


@pytest.fixture
def diprotic_buffer(database):
    return database.buffers["diprotic"]


@pytest.fixture
def samples(database):
    return database.samples
