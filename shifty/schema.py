"""Define the immutable data model shared by the estimation pipeline.

Reference records (buffers, samples) are loaded once per session and never
mutated. Conditions, assignments, and fit results are rebuilt on every
calculation request.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple

DEFAULT_REFERENCE_TEMPERATURE_K = 298.15
DEFAULT_REFERENCE_IONIC_STRENGTH_M = 0.0
DEFAULT_INITIAL_PH = 7.0

Observations = Mapping[str, Sequence[float]]


class IonicStrengthModel(str, Enum):
    """Activity correction applied to a pKa at non-zero ionic strength."""

    DAVIES = "davies"
    EXTENDED_DEBYE_HUCKEL = "extended_debye_huckel"
    EMPIRICAL = "empirical"
    NONE = "none"


class Confidence(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ParameterRole(str, Enum):
    PH = "pH"
    TEMPERATURE = "temperature"
    IONIC_STRENGTH = "ionic_strength"
    REFERENCE_OFFSET = "reference_offset"


@dataclass(frozen=True)
class PKaParameters:
    """Thermodynamic description of one acid dissociation step.

    Attributes:
        pka: pKa at the sample reference temperature and zero ionic strength.
        pka_uncertainty: Absolute uncertainty of ``pka``.
        dh_kj_mol: Enthalpy of ionisation (kJ mol^-1).
        dcp_j_mol_k: Heat-capacity change of ionisation (J mol^-1 K^-1).
        protonated_charge: Charge of the protonated species HA.
        ionic_strength_model: Activity model used for the ionic-strength term.
        ion_size_angstrom: Ion-size parameter for extended Debye-Hückel; the
            model default is used when ``None``.
        ionic_strength_coefficient_per_m: Linear slope used by the empirical
            model (pKa units per M).
    """

    pka: float
    pka_uncertainty: float = 0.0
    dh_kj_mol: float = 0.0
    dcp_j_mol_k: float = 0.0
    protonated_charge: int = 0
    ionic_strength_model: IonicStrengthModel = IonicStrengthModel.DAVIES
    ion_size_angstrom: Optional[float] = None
    ionic_strength_coefficient_per_m: float = 0.0


@dataclass(frozen=True)
class LimitingShift:
    """Chemical shift of a resonance when fully in one ionisation state."""

    ionisation_state: int
    shift_ppm: float
    shift_uncertainty: float = 0.0
    temperature_coefficient_ppm_per_k: float = 0.0
    ionic_strength_coefficient_ppm_per_m: float = 0.0


@dataclass(frozen=True)
class Resonance:
    resonance_id: str
    description: str = ""
    limiting_shifts: Tuple[LimitingShift, ...] = ()


@dataclass(frozen=True)
class MeasurementRange:
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class Sample:
    """Conditions under which a buffer's parameters were measured."""

    sample_id: str
    reference_temperature_k: float = DEFAULT_REFERENCE_TEMPERATURE_K
    reference_ionic_strength_m: float = DEFAULT_REFERENCE_IONIC_STRENGTH_M
    ph_range: Optional[MeasurementRange] = None
    temperature_range: Optional[MeasurementRange] = None
    ionic_strength_range: Optional[MeasurementRange] = None
    solvent: Optional[str] = None


@dataclass(frozen=True)
class Buffer:
    buffer_id: str
    buffer_name: str
    sample_id: Optional[str]
    pka_parameters: Tuple[PKaParameters, ...] = ()
    chemical_shifts: Mapping[str, Tuple[Resonance, ...]] = field(default_factory=dict)

    @property
    def n_states(self) -> int:
        return len(self.pka_parameters) + 1

    def resonance(self, nucleus: str, resonance_id: str) -> Optional[Resonance]:
        for resonance in self.chemical_shifts.get(nucleus, ()):
            if resonance.resonance_id == resonance_id:
                return resonance
        return None


@dataclass(frozen=True)
class Conditions:
    """Sample conditions: pH, temperature (K), ionic strength (M), offsets."""

    ph: Optional[float] = None
    temperature: float = DEFAULT_REFERENCE_TEMPERATURE_K
    ionic_strength: float = 0.0
    reference_offsets: Mapping[str, float] = field(default_factory=dict)

    def offset(self, nucleus: str) -> float:
        return float(self.reference_offsets.get(nucleus, 0.0))

    def to_dict(self) -> Dict[str, object]:
        return {
            "pH": self.ph,
            "temperature": self.temperature,
            "ionicStrength": self.ionic_strength,
            "referenceOffsets": dict(self.reference_offsets),
        }


@dataclass(frozen=True)
class FitOptions:
    """Every option recognised by the fitter.

    Attributes:
        refine_temperature: Fit temperature instead of holding it fixed.
        refine_ionic_strength: Fit ionic strength instead of holding it fixed.
        refine_references: Nuclei whose chemical-shift reference offset is a
            free parameter (entries mapped to ``False`` are ignored).
        max_iterations: Maximum solver function evaluations per round.
        tolerance: Solver termination tolerance (ftol, xtol and gtol).
        initial_ph: Seed pH; falls back to the conditions' pH, then 7.0.
        max_rounds: Maximum number of fit/reassign rounds.
        convergence_threshold: Stop reassigning once |ΔpH| drops below this.
        assignment_tolerances: Per-nucleus assignment tolerance overrides (ppm).
        jacobian_step: Central-difference step for uncertainty estimation.
    """

    refine_temperature: bool = False
    refine_ionic_strength: bool = False
    refine_references: Mapping[str, bool] = field(default_factory=dict)
    max_iterations: int = 100
    tolerance: float = 1e-8
    initial_ph: Optional[float] = None
    max_rounds: int = 3
    convergence_threshold: float = 0.1
    assignment_tolerances: Mapping[str, float] = field(default_factory=dict)
    jacobian_step: float = 1e-6

    @property
    def refined_nuclei(self) -> Tuple[str, ...]:
        return tuple(nucleus for nucleus, refine in self.refine_references.items() if refine)


@dataclass(frozen=True)
class Prediction:
    buffer_id: str
    buffer_name: str
    resonance_id: str
    description: str
    nucleus: str
    predicted_shift: float

    @property
    def key(self) -> Tuple[str, str]:
        return (self.buffer_id, self.resonance_id)


@dataclass(frozen=True)
class Candidate:
    """A prediction considered for an observed shift, with signed distance."""

    buffer_id: str
    buffer_name: str
    resonance_id: str
    predicted_shift: float
    distance: float

    @classmethod
    def from_prediction(cls, prediction: Prediction, observed_shift: float) -> "Candidate":
        return cls(
            buffer_id=prediction.buffer_id,
            buffer_name=prediction.buffer_name,
            resonance_id=prediction.resonance_id,
            predicted_shift=prediction.predicted_shift,
            distance=observed_shift - prediction.predicted_shift,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "buffer_id": self.buffer_id,
            "buffer_name": self.buffer_name,
            "resonance_id": self.resonance_id,
            "predicted_shift": self.predicted_shift,
            "distance": self.distance,
        }


@dataclass(frozen=True)
class Assignment:
    """Link between one observed shift and at most one buffer resonance."""

    nucleus: str
    observed_shift: float
    assigned: bool
    confidence: Confidence
    buffer_id: Optional[str] = None
    buffer_name: Optional[str] = None
    resonance_id: Optional[str] = None
    description: Optional[str] = None
    predicted_shift: Optional[float] = None
    residual: Optional[float] = None
    alternatives: Tuple[Candidate, ...] = ()
    nearest: Optional[Candidate] = None
    message: str = ""

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.alternatives)

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "nucleus": self.nucleus,
            "observed_shift": self.observed_shift,
            "assigned": self.assigned,
            "confidence": self.confidence.value,
            "buffer_id": self.buffer_id,
            "buffer_name": self.buffer_name,
            "resonance_id": self.resonance_id,
            "predicted_shift": self.predicted_shift,
            "residual": self.residual,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }
        if self.nearest is not None:
            out["nearest"] = self.nearest.to_dict()
        if self.message:
            out["message"] = self.message
        return out


@dataclass(frozen=True)
class FreeParameter:
    name: str
    role: ParameterRole
    label: str
    lower: float
    upper: float
    nucleus: Optional[str] = None


@dataclass(frozen=True)
class ParameterEstimate:
    name: str
    label: str
    value: float
    uncertainty: float


@dataclass(frozen=True)
class FitStatistics:
    n_observations: int
    n_parameters: int
    degrees_of_freedom: int
    sum_squares: float = math.nan
    rmsd: float = math.nan
    chi_squared: float = math.nan
    reduced_chi_squared: float = math.nan
    iterations: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "nObservations": self.n_observations,
            "nParameters": self.n_parameters,
            "degreesOfFreedom": self.degrees_of_freedom,
            "sumSquares": self.sum_squares,
            "rmsd": self.rmsd,
            "chiSquared": self.chi_squared,
            "reducedChiSquared": self.reduced_chi_squared,
            "iterations": self.iterations,
        }


def _assignments_to_dict(assignments: Mapping[str, Sequence[Assignment]]) -> Dict[str, list]:
    return {
        nucleus: [assignment.to_dict() for assignment in items]
        for nucleus, items in assignments.items()
    }


@dataclass(frozen=True)
class FitResult:
    """Outcome of a fit; ``success`` is False when any guard or the solver failed."""

    success: bool
    assignments: Mapping[str, Sequence[Assignment]] = field(default_factory=dict)
    parameters: Mapping[str, ParameterEstimate] = field(default_factory=dict)
    conditions: Optional[Conditions] = None
    residuals: Tuple[float, ...] = ()
    statistics: Optional[FitStatistics] = None
    converged: bool = False
    rounds: int = 1
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        if not self.success:
            out: Dict[str, object] = {
                "success": False,
                "error": self.error,
                "errorType": self.error_type,
                "assignments": _assignments_to_dict(self.assignments),
            }
            if self.statistics is not None:
                out["nObservations"] = self.statistics.n_observations
                out["nParameters"] = self.statistics.n_parameters
                out["degreesOfFreedom"] = self.statistics.degrees_of_freedom
            return out

        stats = self.statistics
        return {
            "success": True,
            "parameters": {
                name: {"value": est.value, "uncertainty": est.uncertainty, "name": est.label}
                for name, est in self.parameters.items()
            },
            "conditions": self.conditions.to_dict() if self.conditions else None,
            "assignments": _assignments_to_dict(self.assignments),
            "residuals": list(self.residuals),
            "statistics": stats.to_dict() if stats else None,
            "convergence": {
                "converged": self.converged,
                "iterations": stats.iterations if stats else 0,
                "rounds": self.rounds,
            },
        }


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    warnings: Tuple[str, ...] = ()
    issues: Tuple[Dict[str, object], ...] = ()
    error: Optional[str] = None
    statistics: Optional[FitStatistics] = None
    dof_check: Optional[Dict[str, object]] = None
    assignment_check: Optional[Dict[str, object]] = None
    residual_check: Optional[Dict[str, object]] = None
    parameter_check: Optional[Dict[str, object]] = None
    extrapolation_check: Optional[Dict[str, object]] = None
    deviation_check: Optional[Dict[str, object]] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "valid": self.valid,
            "warnings": list(self.warnings),
            "issues": list(self.issues),
        }
        if self.error is not None:
            out["error"] = self.error
            return out
        out.update(
            {
                "statistics": self.statistics.to_dict() if self.statistics else None,
                "dofCheck": self.dof_check,
                "assignmentCheck": self.assignment_check,
                "residualCheck": self.residual_check,
                "parameterCheck": self.parameter_check,
                "extrapolationCheck": self.extrapolation_check,
                "deviationCheck": self.deviation_check,
            }
        )
        return out
