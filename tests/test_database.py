"""Test parsing of buffer and sample records."""

import math

import pytest

from shifty.database import (
    get_uncertainty,
    get_value,
    load_database,
    nuclei_for_buffers,
    parse_pka_parameters,
)
from shifty.errors import DatabaseError
from shifty.schema import IonicStrengthModel


class TestValueWithUncertainty:
    """Numbers may be plain or ``[value, uncertainty]`` pairs."""

    def test_plain_number(self):
        assert get_value(6.8) == 6.8
        assert get_uncertainty(6.8) == 0.0

    def test_pair(self):
        assert get_value([6.8, 0.02]) == 6.8
        assert get_uncertainty([6.8, 0.02]) == 0.02

    def test_non_numeric_raises(self):
        with pytest.raises(DatabaseError, match="Expected a number"):
            get_value("abc")
        with pytest.raises(DatabaseError, match="Empty"):
            get_value([])


class TestParsing:
    """Test record parsing into the data model."""

    def test_pka_defaults(self):
        params = parse_pka_parameters({"pKa": 7.0})
        assert params.ionic_strength_model is IonicStrengthModel.DAVIES
        assert params.dh_kj_mol == 0.0
        assert params.protonated_charge == 0
        assert params.ion_size_angstrom is None

    def test_unknown_model_raises(self):
        with pytest.raises(DatabaseError, match="Unknown ionic strength model"):
            parse_pka_parameters({"pKa": 7.0, "ionic_strength_model": "pitzer"})

    def test_charge_accepts_value_pair(self):
        params = parse_pka_parameters({"pKa": 7.0, "protonated_charge": [1, 0]})
        assert params.protonated_charge == 1

    @pytest.mark.parametrize("charge", ["plus one", ["x", 0], {"z": 1}])
    def test_malformed_charge_raises_database_error(self, charge):
        with pytest.raises(DatabaseError):
            parse_pka_parameters({"pKa": 7.0, "protonated_charge": charge})

    def test_missing_pka_raises(self):
        with pytest.raises(DatabaseError, match="missing required field 'pKa'"):
            parse_pka_parameters({"dH_kJ_mol": 3.0})

    def test_database_contents(self, database):
        assert set(database.buffers) == {"simple", "diprotic"}
        diprotic = database.buffers["diprotic"]
        assert diprotic.n_states == 3
        assert diprotic.pka_parameters[1].pka == 8.1
        assert diprotic.pka_parameters[1].pka_uncertainty == 0.02
        assert diprotic.resonance("1H", "Hb").limiting_shifts[2].ionic_strength_coefficient_ppm_per_m == 0.05
        assert diprotic.resonance("1H", "missing") is None

    def test_samples(self, database):
        sample = database.samples["s_simple"]
        assert sample.ph_range.contains(7.0)
        assert not sample.ph_range.contains(9.0)
        assert sample.temperature_range.max == 310.0
        diprotic_sample = database.samples["s_diprotic"]
        assert diprotic_sample.reference_temperature_k == 298.15
        assert diprotic_sample.temperature_range is None

    def test_duplicate_buffer_raises(self, database_record):
        database_record["buffers"].append(dict(database_record["buffers"][0]))
        with pytest.raises(DatabaseError, match="Duplicate buffer id 'simple'"):
            load_database(database_record)

    def test_inverted_range_raises(self, database_record):
        database_record["samples"][0]["measurement_ranges"]["pH"] = {"min": 9.0, "max": 5.0}
        with pytest.raises(DatabaseError, match="min 9.0 > max 5.0"):
            load_database(database_record)

    def test_open_ended_range(self, database_record):
        database_record["samples"][0]["measurement_ranges"]["pH"] = {"min": 5.0}
        sample = load_database(database_record).samples["s_simple"]
        assert sample.ph_range.max == math.inf


class TestLookups:
    """Test database queries."""

    def test_solvents(self, database):
        assert database.solvents == ["H2O", "D2O"]

    def test_buffers_for_solvent(self, database):
        assert [b.buffer_id for b in database.buffers_for_solvent("H2O")] == ["simple"]

    def test_get_buffers_unknown_raises(self, database):
        with pytest.raises(DatabaseError, match="Unknown buffer id"):
            database.get_buffers(["simple", "nope"])

    def test_samples_for_buffers(self, database):
        buffers = database.get_buffers(["diprotic", "simple"])
        assert [s.sample_id for s in database.samples_for_buffers(buffers)] == [
            "s_diprotic",
            "s_simple",
        ]

    def test_nuclei_for_buffers(self, database):
        buffers = database.get_buffers(["simple", "diprotic"])
        assert nuclei_for_buffers(buffers) == ("1H", "13C")
