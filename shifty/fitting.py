"""
Nonlinear least-squares estimation of pH and sample conditions.

Each fitting round:

1. seeds the conditions (initial pH, fixed temperature, ionic strength and
   reference offsets);
2. assigns the observed shifts at the seed conditions;
3. guards against empty assignments and negative degrees of freedom before
   any optimiser call;
4. minimises Σ (observed − predicted)² with a bounded trust-region solver
   (``scipy.optimize.least_squares``);
5. reassigns every observed shift at the fitted conditions.

:func:`fit_with_reassignment` repeats rounds, feeding fitted conditions back
as the next seed, until the pH moves by less than the convergence threshold
or the round limit is reached.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import least_squares

from .assignment import assign_peaks, get_assigned_peaks
from .chemistry.pka import buffer_pka_values
from .chemistry.shifts import predict_shift, reference_conditions
from .errors import ConvergenceFailure, InputError, UnderdeterminedError
from .schema import (
    DEFAULT_INITIAL_PH,
    Assignment,
    Buffer,
    Conditions,
    FitOptions,
    FitResult,
    FitStatistics,
    FreeParameter,
    Observations,
    ParameterEstimate,
    ParameterRole,
    Resonance,
    Sample,
)
from .stats.uncertainty import calculate_parameter_uncertainties

logger = logging.getLogger(__name__)

PH_BOUNDS = (0.0, 14.0)
TEMPERATURE_BOUNDS = (273.0, 373.0)
IONIC_STRENGTH_BOUNDS = (0.0, 1.0)
REFERENCE_OFFSET_BOUNDS = (-10.0, 10.0)


@dataclass(frozen=True)
class ParameterVector:
    """Ordered, immutable list of the free parameters of one fit.

    pH is always present at index 0; temperature, ionic strength and one
    reference offset per flagged nucleus follow in that order.
    """

    parameters: Tuple[FreeParameter, ...]

    @classmethod
    def build(cls, options: FitOptions) -> "ParameterVector":
        params = [
            FreeParameter("pH", ParameterRole.PH, "pH", *PH_BOUNDS),
        ]
        if options.refine_temperature:
            params.append(
                FreeParameter(
                    "temperature", ParameterRole.TEMPERATURE, "Temperature (K)", *TEMPERATURE_BOUNDS
                )
            )
        if options.refine_ionic_strength:
            params.append(
                FreeParameter(
                    "ionic_strength",
                    ParameterRole.IONIC_STRENGTH,
                    "Ionic strength (M)",
                    *IONIC_STRENGTH_BOUNDS,
                )
            )
        for nucleus in options.refined_nuclei:
            params.append(
                FreeParameter(
                    f"ref_{nucleus}",
                    ParameterRole.REFERENCE_OFFSET,
                    f"{nucleus} reference offset (ppm)",
                    *REFERENCE_OFFSET_BOUNDS,
                    nucleus=nucleus,
                )
            )
        return cls(tuple(params))

    def __len__(self) -> int:
        return len(self.parameters)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.parameters]

    def index(self, name: str) -> int:
        return self.names.index(name)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        lower = np.array([p.lower for p in self.parameters], dtype=float)
        upper = np.array([p.upper for p in self.parameters], dtype=float)
        return lower, upper

    def initial_values(self, conditions: Conditions) -> np.ndarray:
        values = []
        for p in self.parameters:
            if p.role is ParameterRole.PH:
                values.append(conditions.ph)
            elif p.role is ParameterRole.TEMPERATURE:
                values.append(conditions.temperature)
            elif p.role is ParameterRole.IONIC_STRENGTH:
                values.append(conditions.ionic_strength)
            else:
                values.append(conditions.offset(p.nucleus))
        return np.asarray(values, dtype=float)

    def to_conditions(self, values: Sequence[float], base: Conditions) -> Conditions:
        """Overlay fitted ``values`` on the fixed parts of ``base``."""
        ph = base.ph
        temperature = base.temperature
        ionic_strength = base.ionic_strength
        offsets = dict(base.reference_offsets)
        for p, value in zip(self.parameters, values):
            value = float(value)
            if p.role is ParameterRole.PH:
                ph = value
            elif p.role is ParameterRole.TEMPERATURE:
                temperature = value
            elif p.role is ParameterRole.IONIC_STRENGTH:
                ionic_strength = value
            else:
                offsets[p.nucleus] = value
        return Conditions(
            ph=ph,
            temperature=temperature,
            ionic_strength=ionic_strength,
            reference_offsets=offsets,
        )


def resolve_initial_ph(conditions: Conditions, options: FitOptions) -> float:
    if options.initial_ph is not None:
        return float(options.initial_ph)
    if conditions.ph is not None:
        return float(conditions.ph)
    return DEFAULT_INITIAL_PH


def create_residual_function(
    peaks: Sequence[Assignment],
    buffers: Sequence[Buffer],
    samples: Mapping[str, Sample],
    vector: ParameterVector,
    base: Conditions,
) -> Callable[[np.ndarray], np.ndarray]:
    """Build ``f(values) -> observed - (predicted + offset)`` over ``peaks``.

    Args:
        peaks (Sequence[Assignment]): Assigned peaks used as observations.
        buffers (Sequence[Buffer]): Buffers the peaks were assigned to.
        samples (Mapping[str, Sample]): Samples keyed by ``sample_id``.
        vector (ParameterVector): Layout of the free parameters.
        base (Conditions): Values of the fixed conditions.

    Returns:
        Callable: Residual function over a free-parameter vector.

    Raises:
        InputError: If a peak references an unknown buffer or resonance.
    """
    by_id: Dict[str, Buffer] = {b.buffer_id: b for b in buffers}

    targets: List[Tuple[float, str, Buffer, Resonance, float, float]] = []
    for peak in peaks:
        buffer = by_id.get(peak.buffer_id)
        if buffer is None:
            raise InputError(f"Buffer not found: {peak.buffer_id}")
        resonance = buffer.resonance(peak.nucleus, peak.resonance_id)
        if resonance is None:
            raise InputError(f"Resonance not found: {peak.resonance_id} in {peak.buffer_id}")
        sample = samples.get(buffer.sample_id) if buffer.sample_id else None
        ref_t, ref_i = reference_conditions(sample)
        targets.append((peak.observed_shift, peak.nucleus, buffer, resonance, ref_t, ref_i))

    def residuals(values: np.ndarray) -> np.ndarray:
        conditions = vector.to_conditions(values, base)
        out = np.empty(len(targets))
        for k, (observed, nucleus, buffer, resonance, ref_t, ref_i) in enumerate(targets):
            pka_values = buffer_pka_values(
                buffer, conditions.temperature, conditions.ionic_strength, ref_t
            )
            predicted = predict_shift(
                resonance,
                pka_values,
                conditions.ph,
                conditions.temperature,
                conditions.ionic_strength,
                ref_t,
                ref_i,
            )
            out[k] = observed - (predicted + conditions.offset(nucleus))
        return out

    return residuals


def _failure(exc: Exception, assignments, statistics: Optional[FitStatistics] = None) -> FitResult:
    logger.warning("Fit failed: %s", exc)
    return FitResult(
        success=False,
        assignments=assignments,
        statistics=statistics,
        error=str(exc),
        error_type=type(exc).__name__,
    )


def _run_optimizer(residual_fn, x0: np.ndarray, bounds, options: FitOptions):
    lower, upper = bounds
    try:
        return least_squares(
            residual_fn,
            x0=np.clip(x0, lower, upper),
            bounds=(lower, upper),
            method="trf",
            ftol=options.tolerance,
            xtol=options.tolerance,
            gtol=options.tolerance,
            max_nfev=int(options.max_iterations),
        )
    except Exception as exc:
        raise ConvergenceFailure(f"Fitting failed: {exc}") from exc


def fit_parameters(
    observations: Observations,
    buffers: Sequence[Buffer],
    samples: Mapping[str, Sample],
    conditions: Conditions,
    options: Optional[FitOptions] = None,
) -> FitResult:
    """Run one assign/optimise/reassign round.

    Args:
        observations (Mapping[str, Sequence[float]]): Observed shifts by
            nucleus.
        buffers (Sequence[Buffer]): Selected buffers.
        samples (Mapping[str, Sample]): Samples keyed by ``sample_id``.
        conditions (Conditions): Fixed temperature, ionic strength and
            reference offsets; ``ph`` is the seed when ``options.initial_ph``
            is unset.
        options (FitOptions | None): Fit configuration.

    Returns:
        FitResult: Fitted parameters, conditions, final assignments and
        statistics; or ``success=False`` with the error and the assignment
        set that was current when the failure occurred.

    Note:
        The no-peaks and negative-DoF guards return before the optimiser is
        invoked. A negative-DoF failure carries the offending counts in
        ``statistics``.
    """
    options = options or FitOptions()
    seed_ph = resolve_initial_ph(conditions, options)
    base = replace(conditions, ph=seed_ph)

    assignments = assign_peaks(
        observations,
        buffers,
        samples,
        seed_ph,
        base.temperature,
        base.ionic_strength,
        tolerances=options.assignment_tolerances,
        reference_offsets=base.reference_offsets,
    )
    peaks = get_assigned_peaks(assignments)

    if not peaks:
        return _failure(
            InputError("No peaks could be assigned to buffer resonances"), assignments
        )

    vector = ParameterVector.build(options)
    n_obs = len(peaks)
    n_params = len(vector)
    dof = n_obs - n_params
    if dof < 0:
        return _failure(
            UnderdeterminedError(n_obs, n_params),
            assignments,
            FitStatistics(n_observations=n_obs, n_parameters=n_params, degrees_of_freedom=dof),
        )

    try:
        residual_fn = create_residual_function(peaks, buffers, samples, vector, base)
        solution = _run_optimizer(
            residual_fn, vector.initial_values(base), vector.bounds(), options
        )
    except (InputError, ConvergenceFailure) as exc:
        return _failure(exc, assignments)

    fitted = np.asarray(solution.x, dtype=float)
    fitted_conditions = vector.to_conditions(fitted, base)

    final_assignments = assign_peaks(
        observations,
        buffers,
        samples,
        fitted_conditions.ph,
        fitted_conditions.temperature,
        fitted_conditions.ionic_strength,
        tolerances=options.assignment_tolerances,
        reference_offsets=fitted_conditions.reference_offsets,
    )

    residuals = residual_fn(fitted)
    sum_squares = float(np.sum(residuals**2))
    rmsd = math.sqrt(sum_squares / n_obs)
    chi_squared = sum_squares
    reduced_chi_squared = chi_squared / dof if dof > 0 else chi_squared
    iterations = int(solution.nfev)

    uncertainties = calculate_parameter_uncertainties(
        fitted, residual_fn, reduced_chi_squared, step=options.jacobian_step
    )

    parameters = {
        p.name: ParameterEstimate(
            name=p.name,
            label=p.label,
            value=float(fitted[i]),
            uncertainty=float(uncertainties[i]),
        )
        for i, p in enumerate(vector.parameters)
    }

    logger.info(
        "Fitted pH %.3f ± %.3f from %d peaks (%d free parameters, RMSD %.4f ppm, %d evaluations)",
        parameters["pH"].value,
        parameters["pH"].uncertainty,
        n_obs,
        n_params,
        rmsd,
        iterations,
    )

    return FitResult(
        success=True,
        assignments=final_assignments,
        parameters=parameters,
        conditions=fitted_conditions,
        residuals=tuple(float(r) for r in residuals),
        statistics=FitStatistics(
            n_observations=n_obs,
            n_parameters=n_params,
            degrees_of_freedom=dof,
            sum_squares=sum_squares,
            rmsd=rmsd,
            chi_squared=chi_squared,
            reduced_chi_squared=reduced_chi_squared,
            iterations=iterations,
        ),
        converged=iterations < options.max_iterations,
    )


def fit_with_reassignment(
    observations: Observations,
    buffers: Sequence[Buffer],
    samples: Mapping[str, Sample],
    conditions: Conditions,
    options: Optional[FitOptions] = None,
) -> FitResult:
    """Alternate fitting and reassignment until the pH settles.

    Args:
        observations (Mapping[str, Sequence[float]]): Observed shifts by
            nucleus.
        buffers (Sequence[Buffer]): Selected buffers.
        samples (Mapping[str, Sample]): Samples keyed by ``sample_id``.
        conditions (Conditions): Nominal conditions; see
            :func:`fit_parameters`.
        options (FitOptions | None): Fit configuration; ``max_rounds`` and
            ``convergence_threshold`` control the loop.

    Returns:
        FitResult: Result of the last round, with ``rounds`` set to the
        number of rounds run. The first failing round is returned as is.
    """
    options = options or FitOptions()
    seed = replace(conditions, ph=resolve_initial_ph(conditions, options))
    result: Optional[FitResult] = None
    rounds = 0

    for rounds in range(1, max(1, int(options.max_rounds)) + 1):
        result = fit_parameters(
            observations, buffers, samples, seed, replace(options, initial_ph=seed.ph)
        )
        if not result.success:
            return replace(result, rounds=rounds)

        ph_change = abs(result.conditions.ph - seed.ph)
        logger.info("Round %d: pH %.3f -> %.3f", rounds, seed.ph, result.conditions.ph)
        if ph_change < options.convergence_threshold:
            break
        seed = result.conditions

    return replace(result, rounds=rounds)
