"""Test post-fit validation checks and the composed report."""

import math
from dataclasses import replace

import pytest

from shifty.errors import PhysicalImplausibilityWarning
from shifty.fitting import fit_parameters, fit_with_reassignment
from shifty.schema import (
    Assignment,
    Candidate,
    Conditions,
    Confidence,
    FitOptions,
    FitResult,
    FitStatistics,
    ParameterEstimate,
    Sample,
)
from shifty.validation import (
    check_degrees_of_freedom,
    check_deviations,
    check_extrapolation,
    count_parameters,
    validate_assignments,
    validate_fit_result,
    validate_parameters,
    validate_residuals,
)


def _assigned(shift, residual, resonance_id="R", confidence=Confidence.HIGH, alternatives=()):
    return Assignment(
        nucleus="1H",
        observed_shift=shift,
        assigned=True,
        confidence=confidence,
        buffer_id="b",
        buffer_name="Buffer",
        resonance_id=resonance_id,
        predicted_shift=shift - residual,
        residual=residual,
        alternatives=alternatives,
    )


def _estimate(name, value):
    return ParameterEstimate(name=name, label=name, value=value, uncertainty=0.01)


class TestDegreesOfFreedom:
    """Test the DoF check."""

    @pytest.mark.parametrize("n_obs, n_params, valid, warning", [
        (1, 3, False, False),
        (2, 2, False, False),
        (3, 2, True, True),
        (5, 2, True, False),
    ])
    def test_classification(self, n_obs, n_params, valid, warning):
        out = check_degrees_of_freedom(n_obs, n_params)
        assert out["valid"] is valid
        assert out["warning"] is warning
        assert out["degreesOfFreedom"] == n_obs - n_params

    def test_messages(self):
        assert "need at least 4 observations for 3 parameters" in check_degrees_of_freedom(1, 3)["message"]
        assert "Marginal" in check_degrees_of_freedom(2, 1)["message"]
        assert check_degrees_of_freedom(6, 1)["message"] == "Degrees of freedom: 5"

    def test_count_parameters(self):
        out = count_parameters(
            FitOptions(refine_temperature=True, refine_references={"1H": True, "13C": False})
        )
        assert out == {"count": 3, "details": ["pH", "Temperature", "1H reference"]}


class TestExtrapolation:
    """Test comparison with measured sample ranges."""

    def test_inside_ranges(self, samples):
        out = check_extrapolation(Conditions(ph=7.0, temperature=298.15, ionic_strength=0.1), samples.values())
        assert out == {"hasWarnings": False, "warnings": []}

    def test_outside_ranges(self, samples):
        out = check_extrapolation(
            Conditions(ph=8.5, temperature=280.0, ionic_strength=0.7), [samples["s_simple"]]
        )
        assert out["hasWarnings"]
        (entry,) = out["warnings"]
        assert entry["sample_id"] == "s_simple"
        assert entry["warnings"] == [
            "pH 8.50 is above measured range (max: 8)",
            "Temperature 280.0 K is below measured range (min: 288 K)",
            "Ionic strength 0.700 M is above measured range (max: 0.5 M)",
        ]

    def test_range_limits_are_inclusive(self, samples):
        out = check_extrapolation(
            Conditions(ph=8.0, temperature=288.0, ionic_strength=0.5), [samples["s_simple"]]
        )
        assert out == {"hasWarnings": False, "warnings": []}

    def test_sample_without_ranges(self):
        out = check_extrapolation(Conditions(ph=20.0), [Sample("bare")])
        assert not out["hasWarnings"]


class TestAssignmentQuality:
    """Test flags for unassigned, low-confidence and ambiguous peaks."""

    def test_flags(self):
        alt = Candidate("b", "Buffer", "R2", 3.3, -0.1)
        assignments = {
            "1H": [
                _assigned(3.0, 0.01),
                _assigned(3.2, 0.4, "R1", Confidence.LOW),
                _assigned(3.4, 0.1, "R3", Confidence.MEDIUM, alternatives=(alt,)),
                Assignment("1H", 9.0, False, Confidence.NONE),
            ]
        }
        out = validate_assignments(assignments)
        assert out["valid"]
        assert out["totalAssigned"] == 3
        assert out["totalUnassigned"] == 1
        assert out["lowConfidenceCount"] == 1
        assert out["ambiguousCount"] == 1
        assert [i["type"] for i in out["issues"]] == ["low_confidence", "ambiguous", "unassigned"]
        assert out["issues"][2]["message"] == "Unassigned peak at 9.000 ppm"
        assert out["summary"] == "3 peaks assigned, 1 unassigned"

    def test_all_assigned(self):
        out = validate_assignments({"1H": [_assigned(3.0, 0.0)]})
        assert out["summary"] == "All 1 peaks assigned"
        assert out["issues"] == []


class TestResiduals:
    """Test z-score outlier detection."""

    def test_outlier(self):
        residuals = [0.01, -0.01, 0.01, -0.01, 0.01, 0.5]
        assignments = {"1H": [_assigned(3.0 + k, r, f"R{k}") for k, r in enumerate(residuals)]}
        rmsd = math.sqrt(sum(r * r for r in residuals) / len(residuals))
        out = validate_residuals(assignments, rmsd)
        assert out["hasOutliers"]
        assert [o["resonance_id"] for o in out["outliers"]] == ["R5"]
        assert out["outliers"][0]["zScore"] > 2
        assert out["statistics"]["count"] == 6
        assert math.isclose(out["statistics"]["max"], 0.5)

    def test_zero_rmsd_has_no_outliers(self):
        out = validate_residuals({"1H": [_assigned(3.0, 0.0)]}, 0.0)
        assert not out["hasOutliers"]


class TestParameters:
    """Test physical plausibility of fitted parameters."""

    def test_plausible(self):
        out = validate_parameters({"pH": _estimate("pH", 7.0), "temperature": _estimate("temperature", 300.0)})
        assert out == {"valid": True, "issues": []}

    @pytest.mark.parametrize("name, value, text", [
        ("pH", -0.5, "outside physical range"),
        ("pH", 14.2, "outside physical range"),
        ("temperature", 270.0, "below freezing"),
        ("temperature", 380.0, "above boiling"),
        ("ionic_strength", -0.01, "negative"),
        ("ionic_strength", 1.5, "very high"),
    ])
    def test_implausible(self, name, value, text):
        out = validate_parameters({name: _estimate(name, value)})
        assert not out["valid"]
        assert text in out["issues"][0]["message"]
        assert out["issues"][0]["parameter"] == name


class TestDeviations:
    """Test refined versus nominal conditions."""

    def test_large_deviations(self):
        out = check_deviations(
            Conditions(ph=7.0, temperature=303.15, ionic_strength=0.2),
            Conditions(temperature=298.15, ionic_strength=0.1),
        )
        assert [d["parameter"] for d in out["deviations"]] == ["temperature", "ionic_strength"]
        assert out["deviations"][0]["message"] == "Refined temperature differs from nominal by 5.0 K"

    def test_small_deviations(self):
        out = check_deviations(
            Conditions(temperature=299.0, ionic_strength=0.12), Conditions(ionic_strength=0.1)
        )
        assert not out["hasDeviations"]


class TestValidateFitResult:
    """Test composition of every check into one report."""

    def test_zero_dof_is_an_issue(self, simple_buffer, samples):
        nominal = Conditions(ionic_strength=0.15)
        result = fit_with_reassignment({"1H": [3.2]}, [simple_buffer], samples, nominal)
        report = validate_fit_result(result, nominal, [samples["s_simple"]])
        # DoF = 0 is an issue even though the fit itself succeeded.
        assert not report.valid
        assert report.issues[0]["parameter"] == "degreesOfFreedom"
        assert report.dof_check["degreesOfFreedom"] == 0
        assert report.extrapolation_check["hasWarnings"] is False

    def test_well_determined_fit_is_valid(self, diprotic_buffer, samples):
        nominal = Conditions(ph=6.5, ionic_strength=0.1)
        result = fit_parameters(
            {"1H": [2.41, 3.765], "13C": [176.6]}, [diprotic_buffer], samples, nominal
        )
        report = validate_fit_result(result, nominal, [samples["s_diprotic"]])
        assert result.success
        assert report.valid
        assert report.error is None
        out = report.to_dict()
        assert set(out) >= {
            "valid",
            "warnings",
            "issues",
            "residualCheck",
            "parameterCheck",
            "extrapolationCheck",
            "deviationCheck",
        }

    def test_failed_fit(self, simple_buffer, samples):
        result = fit_parameters({}, [simple_buffer], samples, Conditions())
        report = validate_fit_result(result, Conditions(), [])
        assert not report.valid
        assert report.error == "No peaks could be assigned to buffer resonances"
        assert report.to_dict() == {
            "valid": False,
            "warnings": [],
            "issues": [],
            "error": "No peaks could be assigned to buffer resonances",
        }

    def test_implausible_parameter_warns_and_invalidates(self):
        stats = FitStatistics(3, 1, 2, rmsd=0.01)
        result = FitResult(
            success=True,
            assignments={"1H": [_assigned(3.0, 0.01)]},
            parameters={"pH": _estimate("pH", 14.5)},
            conditions=Conditions(ph=14.5),
            statistics=stats,
        )
        with pytest.warns(PhysicalImplausibilityWarning, match="outside physical range"):
            report = validate_fit_result(result, Conditions(), [])
        assert not report.valid
        assert report.parameter_check["valid"] is False

    def test_warnings_collected(self, samples):
        stats = FitStatistics(3, 2, 1, rmsd=0.01)
        result = FitResult(
            success=True,
            assignments={"1H": [_assigned(3.0, 0.01), Assignment("1H", 9.0, False, Confidence.NONE)]},
            parameters={"pH": _estimate("pH", 8.5), "temperature": _estimate("temperature", 305.0)},
            conditions=Conditions(ph=8.5, temperature=305.0),
            statistics=stats,
        )
        report = validate_fit_result(result, Conditions(), [samples["s_simple"]])
        assert report.valid
        assert any("Marginal" in w for w in report.warnings)
        assert any("Refined temperature" in w for w in report.warnings)
        assert any("above measured range" in w for w in report.warnings)
        assert any("Unassigned peak" in w for w in report.warnings)

    def test_does_not_modify_result(self, simple_buffer, samples):
        result = fit_parameters({"1H": [3.2]}, [simple_buffer], samples, Conditions())
        snapshot = replace(result)
        validate_fit_result(result, Conditions(), [samples["s_simple"]])
        assert result == snapshot
