"""Post-fit validation of a FitResult.

The checks never raise and never modify the fit; each returns a plain dict
and :func:`validate_fit_result` composes them into a ValidationReport.

Issues (the report is invalid):
    * degrees of freedom ≤ 0
    * a fitted parameter outside its physical domain

Warnings (the report stays valid):
    * marginal degrees of freedom (DoF = 1)
    * refined temperature or ionic strength far from nominal
    * fitted conditions outside a buffer sample's measured ranges
    * residual outliers
    * unassigned, low-confidence or ambiguous peaks
"""

from __future__ import annotations

import logging
import math
import warnings
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import PhysicalImplausibilityWarning
from .schema import (
    Assignment,
    Conditions,
    Confidence,
    FitOptions,
    FitResult,
    MeasurementRange,
    ParameterEstimate,
    Sample,
    ValidationReport,
)

logger = logging.getLogger(__name__)

TEMPERATURE_DEVIATION_K = 2.0
IONIC_STRENGTH_DEVIATION_M = 0.05
DEFAULT_OUTLIER_THRESHOLD = 2.0


def check_degrees_of_freedom(n_observations: int, n_parameters: int) -> Dict[str, object]:
    dof = int(n_observations) - int(n_parameters)
    if dof <= 0:
        message = (
            f"Underdetermined system: need at least {n_parameters + 1} observations "
            f"for {n_parameters} parameters"
        )
    elif dof == 1:
        message = (
            "Marginal degrees of freedom (DoF = 1). "
            "Consider adding more data or fixing parameters."
        )
    else:
        message = f"Degrees of freedom: {dof}"
    return {
        "valid": dof > 0,
        "warning": dof == 1,
        "nObservations": int(n_observations),
        "nParameters": int(n_parameters),
        "degreesOfFreedom": dof,
        "message": message,
    }


def count_parameters(options: FitOptions) -> Dict[str, object]:
    """Count the free parameters ``options`` would fit, with display labels."""
    details = ["pH"]
    if options.refine_temperature:
        details.append("Temperature")
    if options.refine_ionic_strength:
        details.append("Ionic strength")
    for nucleus in options.refined_nuclei:
        details.append(f"{nucleus} reference")
    return {"count": len(details), "details": details}


def _range_message(
    label: str, value: Optional[float], rng: Optional[MeasurementRange], fmt: str, unit: str = ""
) -> Optional[str]:
    if rng is None or value is None or rng.contains(value):
        return None
    suffix = f" {unit}" if unit else ""
    if value < rng.min:
        side, bound, limit = "below", "min", rng.min
    else:
        side, bound, limit = "above", "max", rng.max
    return f"{label} {value:{fmt}}{suffix} is {side} measured range ({bound}: {limit:g}{suffix})"


def check_extrapolation(
    conditions: Conditions, samples: Iterable[Sample]
) -> Dict[str, object]:
    """Compare ``conditions`` with the measured ranges of every sample.

    Args:
        conditions (Conditions): Fitted or nominal conditions.
        samples (Iterable[Sample]): Samples of the buffers used in the fit.

    Returns:
        dict: ``hasWarnings`` and a list of ``{"sample_id", "warnings"}``
        entries, one per sample with at least one out-of-range condition.
    """
    entries = []
    for sample in samples:
        checks = (
            _range_message("pH", conditions.ph, sample.ph_range, ".2f"),
            _range_message(
                "Temperature", conditions.temperature, sample.temperature_range, ".1f", "K"
            ),
            _range_message(
                "Ionic strength", conditions.ionic_strength, sample.ionic_strength_range, ".3f", "M"
            ),
        )
        messages = [m for m in checks if m is not None]
        if messages:
            entries.append({"sample_id": sample.sample_id, "warnings": messages})

    return {"hasWarnings": bool(entries), "warnings": entries}


def validate_assignments(assignments: Mapping[str, Sequence[Assignment]]) -> Dict[str, object]:
    """Flag unassigned, low-confidence and ambiguous peaks."""
    issues = []
    n_assigned = 0
    n_unassigned = 0
    n_low = 0
    n_ambiguous = 0

    for nucleus, items in assignments.items():
        for a in items:
            if not a.assigned:
                n_unassigned += 1
                issues.append(
                    {
                        "type": "unassigned",
                        "nucleus": nucleus,
                        "observed_shift": a.observed_shift,
                        "message": a.message or f"Unassigned peak at {a.observed_shift:.3f} ppm",
                    }
                )
                continue

            n_assigned += 1
            if a.confidence is Confidence.LOW:
                n_low += 1
                issues.append(
                    {
                        "type": "low_confidence",
                        "nucleus": nucleus,
                        "observed_shift": a.observed_shift,
                        "message": (
                            f"Low confidence assignment: {a.observed_shift:.3f} ppm → "
                            f"{a.buffer_name} {a.resonance_id}"
                        ),
                    }
                )
            if a.is_ambiguous:
                n_ambiguous += 1
                issues.append(
                    {
                        "type": "ambiguous",
                        "nucleus": nucleus,
                        "observed_shift": a.observed_shift,
                        "message": (
                            f"Ambiguous assignment: {a.observed_shift:.3f} ppm "
                            "could match multiple resonances"
                        ),
                    }
                )

    if n_unassigned:
        summary = f"{n_assigned} peaks assigned, {n_unassigned} unassigned"
    else:
        summary = f"All {n_assigned} peaks assigned"

    return {
        "valid": n_assigned > 0,
        "totalAssigned": n_assigned,
        "totalUnassigned": n_unassigned,
        "lowConfidenceCount": n_low,
        "ambiguousCount": n_ambiguous,
        "issues": issues,
        "summary": summary,
    }


def validate_residuals(
    assignments: Mapping[str, Sequence[Assignment]],
    rmsd: float,
    threshold: float = DEFAULT_OUTLIER_THRESHOLD,
) -> Dict[str, object]:
    """Flag assigned peaks whose |residual| / RMSD exceeds ``threshold``.

    Args:
        assignments (Mapping[str, Sequence[Assignment]]): Final assignments.
        rmsd (float): Fit RMSD in ppm. No outliers are reported when it is
            zero or not finite.
        threshold (float): z-score above which a peak is an outlier.

    Returns:
        dict: ``hasOutliers``, ``outliers``, residual summary ``statistics``
        (min, max, mean, count) and the ``rmsd`` used.
    """
    residuals = [
        (nucleus, a)
        for nucleus, items in assignments.items()
        for a in items
        if a.assigned and a.residual is not None
    ]
    values = [float(a.residual) for _, a in residuals]
    stats = {
        "min": min(values) if values else math.inf,
        "max": max(values) if values else -math.inf,
        "mean": sum(values) / len(values) if values else 0.0,
        "count": len(values),
    }

    outliers = []
    if rmsd is not None and math.isfinite(rmsd) and rmsd > 0:
        for nucleus, a in residuals:
            z = abs(float(a.residual)) / rmsd
            if z > threshold:
                outliers.append(
                    {
                        "nucleus": nucleus,
                        "observed_shift": a.observed_shift,
                        "buffer_name": a.buffer_name,
                        "resonance_id": a.resonance_id,
                        "residual": float(a.residual),
                        "zScore": z,
                    }
                )

    return {"hasOutliers": bool(outliers), "outliers": outliers, "statistics": stats, "rmsd": rmsd}


def validate_parameters(parameters: Mapping[str, ParameterEstimate]) -> Dict[str, object]:
    """Check fitted pH, temperature and ionic strength against physical limits."""
    issues = []

    ph = parameters.get("pH")
    if ph is not None and not 0.0 <= ph.value <= 14.0:
        issues.append(
            {
                "parameter": "pH",
                "value": ph.value,
                "message": f"pH {ph.value:.2f} is outside physical range (0-14)",
            }
        )

    temperature = parameters.get("temperature")
    if temperature is not None:
        t = temperature.value
        if t < 273.0:
            issues.append(
                {
                    "parameter": "temperature",
                    "value": t,
                    "message": f"Temperature {t:.1f} K is below freezing point of water",
                }
            )
        elif t > 373.0:
            issues.append(
                {
                    "parameter": "temperature",
                    "value": t,
                    "message": f"Temperature {t:.1f} K is above boiling point of water",
                }
            )

    ionic_strength = parameters.get("ionic_strength")
    if ionic_strength is not None:
        i = ionic_strength.value
        if i < 0.0:
            issues.append(
                {
                    "parameter": "ionic_strength",
                    "value": i,
                    "message": f"Ionic strength {i:.3f} M is negative (physically impossible)",
                }
            )
        elif i > 1.0:
            issues.append(
                {
                    "parameter": "ionic_strength",
                    "value": i,
                    "message": f"Ionic strength {i:.3f} M is very high (may be unreliable)",
                }
            )

    return {"valid": not issues, "issues": issues}


def check_deviations(fitted: Conditions, nominal: Conditions) -> Dict[str, object]:
    """Flag refined conditions that moved far from the nominal values."""
    deviations = []

    diff = abs(fitted.temperature - nominal.temperature)
    if diff > TEMPERATURE_DEVIATION_K:
        deviations.append(
            {
                "parameter": "temperature",
                "nominal": nominal.temperature,
                "fitted": fitted.temperature,
                "difference": diff,
                "message": f"Refined temperature differs from nominal by {diff:.1f} K",
            }
        )

    diff = abs(fitted.ionic_strength - nominal.ionic_strength)
    if diff > IONIC_STRENGTH_DEVIATION_M:
        deviations.append(
            {
                "parameter": "ionic_strength",
                "nominal": nominal.ionic_strength,
                "fitted": fitted.ionic_strength,
                "difference": diff,
                "message": f"Refined ionic strength differs from nominal by {diff:.3f} M",
            }
        )

    return {"hasDeviations": bool(deviations), "deviations": deviations}


def validate_fit_result(
    result: FitResult,
    nominal: Conditions,
    samples: Iterable[Sample],
    outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD,
) -> ValidationReport:
    """Run every post-fit check and compose a ValidationReport.

    Args:
        result (FitResult): Result of :func:`shifty.fitting.fit_parameters`
            or :func:`shifty.fitting.fit_with_reassignment`.
        nominal (Conditions): Conditions the caller supplied.
        samples (Iterable[Sample]): Samples of the buffers used in the fit.
        outlier_threshold (float): z-score for residual outliers.

    Returns:
        ValidationReport: ``valid`` is False when any issue was found or the
        fit itself failed.

    Note:
        Each physical-implausibility issue is also emitted as a
        PhysicalImplausibilityWarning.
    """
    if not result.success:
        return ValidationReport(
            valid=False,
            error=result.error,
            statistics=result.statistics,
        )

    samples = list(samples)
    stats = result.statistics
    warning_messages: List[str] = []
    issues: List[Dict[str, object]] = []

    dof_check = check_degrees_of_freedom(stats.n_observations, stats.n_parameters)
    if not dof_check["valid"]:
        issues.append(
            {
                "parameter": "degreesOfFreedom",
                "value": dof_check["degreesOfFreedom"],
                "message": dof_check["message"],
            }
        )
    elif dof_check["warning"]:
        warning_messages.append(dof_check["message"])

    parameter_check = validate_parameters(result.parameters)
    for issue in parameter_check["issues"]:
        warnings.warn(issue["message"], PhysicalImplausibilityWarning, stacklevel=2)
        issues.append(issue)

    deviation_check = check_deviations(result.conditions, nominal)
    warning_messages.extend(d["message"] for d in deviation_check["deviations"])

    extrapolation_check = check_extrapolation(result.conditions, samples)
    for entry in extrapolation_check["warnings"]:
        warning_messages.extend(entry["warnings"])

    residual_check = validate_residuals(result.assignments, stats.rmsd, outlier_threshold)
    for outlier in residual_check["outliers"]:
        warning_messages.append(
            f"Outlier: {outlier['buffer_name']} {outlier['resonance_id']} "
            f"has z-score {outlier['zScore']:.1f}"
        )

    assignment_check = validate_assignments(result.assignments)
    warning_messages.extend(issue["message"] for issue in assignment_check["issues"])

    for message in warning_messages:
        logger.warning(message)

    return ValidationReport(
        valid=not issues,
        warnings=tuple(warning_messages),
        issues=tuple(issues),
        statistics=stats,
        dof_check=dof_check,
        assignment_check=assignment_check,
        residual_check=residual_check,
        parameter_check=parameter_check,
        extrapolation_check=extrapolation_check,
        deviation_check=deviation_check,
    )

