"""Test ionic-strength corrections to pKa values."""

import math

import pytest

from shifty.chemistry.ionic_strength import (
    davies_correction,
    delta_z_squared,
    empirical_correction,
    extended_debye_huckel_correction,
    ionic_strength_correction,
)
from shifty.schema import IonicStrengthModel, PKaParameters


def _params(**kwargs):
    return PKaParameters(pka=7.0, **kwargs)


class TestDeltaZSquared:
    """Test the squared-charge change of HA^z ⇌ H+ + A^(z-1)."""

    def test_neutral_acid(self):
        """HA ⇌ H+ + A-: Δz² = 1 + 1 - 0 = 2."""
        assert delta_z_squared(0) == 2

    def test_cationic_acid_has_no_charge_change(self):
        """BH+ ⇌ H+ + B: Δz² = 1 + 0 - 1 = 0."""
        assert delta_z_squared(1) == 0

    def test_anionic_acid(self):
        """HA- ⇌ H+ + A2-: Δz² = 1 + 4 - 1 = 4."""
        assert delta_z_squared(-1) == 4


class TestDavies:
    """Test the Davies-equation correction."""

    def test_zero_ionic_strength(self):
        assert davies_correction(_params(protonated_charge=0), 0.0) == 0.0

    def test_neutral_acid_value(self):
        """For z = 0 and I = 0.1 M the correction is A·2·(√I/(1+√I) − 0.3 I)."""
        sqrt_i = math.sqrt(0.1)
        expected = 0.5085 * 2 * (sqrt_i / (1 + sqrt_i) - 0.03)
        assert math.isclose(
            davies_correction(_params(protonated_charge=0), 0.1), expected, rel_tol=1e-12
        )

    def test_no_charge_change_gives_zero(self):
        assert davies_correction(_params(protonated_charge=1), 0.5) == 0.0

    def test_non_finite_raises(self):
        with pytest.raises(ValueError, match="must be finite"):
            davies_correction(_params(), math.nan)


class TestExtendedDebyeHuckel:
    """Test the extended Debye-Hückel correction."""

    def test_default_ion_size(self):
        """Ion size defaults to 4.5 Å when not recorded."""
        sqrt_i = math.sqrt(0.2)
        expected = 0.5085 * 2 * sqrt_i / (1 + 0.328 * 4.5 * sqrt_i)
        out = extended_debye_huckel_correction(_params(protonated_charge=0), 0.2)
        assert math.isclose(out, expected, rel_tol=1e-12)

    def test_larger_ion_size_reduces_correction(self):
        small = extended_debye_huckel_correction(
            _params(protonated_charge=0, ion_size_angstrom=3.0), 0.2
        )
        large = extended_debye_huckel_correction(
            _params(protonated_charge=0, ion_size_angstrom=9.0), 0.2
        )
        assert large < small


class TestDispatch:
    """Test selection of the correction by model name."""

    def test_empirical_is_linear(self):
        params = _params(
            ionic_strength_model=IonicStrengthModel.EMPIRICAL,
            ionic_strength_coefficient_per_m=0.3,
        )
        assert math.isclose(ionic_strength_correction(params, 0.5), 0.15)
        assert math.isclose(empirical_correction(params, 0.5), 0.15)

    def test_none_model_ignores_ionic_strength(self):
        params = _params(ionic_strength_model=IonicStrengthModel.NONE, protonated_charge=0)
        assert ionic_strength_correction(params, 0.8) == 0.0

    def test_default_model_is_davies(self):
        params = _params(protonated_charge=0)
        assert ionic_strength_correction(params, 0.1) == davies_correction(params, 0.1)

    def test_model_given_as_string(self):
        params = _params(ionic_strength_model="extended_debye_huckel", protonated_charge=0)
        assert ionic_strength_correction(params, 0.1) == extended_debye_huckel_correction(
            params, 0.1
        )
