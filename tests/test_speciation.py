"""Test ionisation-state population fractions."""

import math

import numpy as np
import pytest

from shifty.chemistry.speciation import ionisation_fractions


class TestFractionSums:
    """Fractions always sum to one, even at extreme pH."""

    @pytest.mark.parametrize("n_pka", range(7))
    def test_sum_to_one_over_wide_ph_range(self, n_pka):
        rng = np.random.default_rng(1234 + n_pka)
        for _ in range(20):
            pkas = np.sort(rng.uniform(-2.0, 16.0, size=n_pka))
            for ph in np.linspace(-50.0, 50.0, 41):
                fractions = ionisation_fractions(ph, pkas)
                assert len(fractions) == n_pka + 1
                assert np.all(np.isfinite(fractions))
                assert np.all(fractions >= 0)
                assert abs(fractions.sum() - 1.0) < 1e-9


class TestMonoprotic:
    """Test the Henderson-Hasselbalch limit."""

    def test_no_pka_gives_single_state(self):
        assert ionisation_fractions(7.0, []).tolist() == [1.0]

    def test_half_populated_at_pka(self):
        fractions = ionisation_fractions(6.8, [6.8])
        assert np.allclose(fractions, [0.5, 0.5])

    def test_henderson_hasselbalch_ratio(self):
        """[A-]/[HA] = 10^(pH − pKa)."""
        fractions = ionisation_fractions(7.3, [6.8])
        assert math.isclose(fractions[1] / fractions[0], 10**0.5, rel_tol=1e-12)

    def test_limits(self):
        assert ionisation_fractions(-50.0, [4.0])[0] == pytest.approx(1.0)
        assert ionisation_fractions(50.0, [4.0])[1] == pytest.approx(1.0)


class TestPolyprotic:
    """Test ordering and input validation."""

    def test_unsorted_input_is_sorted(self):
        assert np.allclose(
            ionisation_fractions(5.0, [9.0, 3.0]), ionisation_fractions(5.0, [3.0, 9.0])
        )

    def test_middle_state_dominates_between_pkas(self):
        fractions = ionisation_fractions(6.0, [2.0, 10.0])
        assert np.argmax(fractions) == 1

    def test_non_finite_raises(self):
        with pytest.raises(ValueError, match="must be finite"):
            ionisation_fractions(math.nan, [7.0])
        with pytest.raises(ValueError, match="must be finite"):
            ionisation_fractions(7.0, [math.inf])
