"""Match observed chemical shifts to predicted buffer resonances.

Assignment is a single-pass greedy heuristic: observed shifts of one nucleus
are visited in ascending order, and each takes the closest prediction that no
earlier shift of the same nucleus has claimed. The order of consumption
matters when predictions are contested, so both sorts are stable to keep
outcomes reproducible. Assignment never raises; peaks without a match are
returned as explicit unassigned records.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .chemistry.shifts import predict_buffer_shifts
from .schema import (
    Assignment,
    Buffer,
    Candidate,
    Confidence,
    Observations,
    Prediction,
    Sample,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCES: Dict[str, float] = {
    "1H": 0.5,
    "13C": 2.0,
    "15N": 2.0,
    "19F": 3.0,
    "31P": 2.0,
}
FALLBACK_TOLERANCE = 1.0

HIGH_FRACTION = 0.3
MEDIUM_FRACTION = 0.6


def tolerance_for(nucleus: str, overrides: Optional[Mapping[str, float]] = None) -> float:
    if overrides and nucleus in overrides:
        return float(overrides[nucleus])
    return DEFAULT_TOLERANCES.get(nucleus, FALLBACK_TOLERANCE)


def calculate_confidence(
    distance: float, tolerance: float, next_best_distance: float = math.inf
) -> Confidence:
    """Grade a match by its distance and by how isolated it is.

    Args:
        distance (float): Observed minus predicted shift (ppm); sign ignored.
        tolerance (float): Assignment tolerance for the nucleus (ppm).
        next_best_distance (float): Absolute distance to the runner-up
            prediction, ``inf`` if there is none.

    Returns:
        Confidence: ``NONE`` beyond tolerance or for a non-finite distance;
        ``HIGH`` when closer than 0.3 tolerance with no rival inside 0.6
        tolerance; ``MEDIUM`` when closer than 0.6 tolerance; otherwise
        ``LOW``.
    """
    d = abs(distance)
    if not math.isfinite(d) or d > tolerance:
        return Confidence.NONE
    if d < tolerance * HIGH_FRACTION and next_best_distance > tolerance * MEDIUM_FRACTION:
        return Confidence.HIGH
    if d < tolerance * MEDIUM_FRACTION:
        return Confidence.MEDIUM
    return Confidence.LOW


def generate_predictions(
    buffers: Iterable[Buffer],
    samples: Mapping[str, Sample],
    ph: float,
    temperature: float,
    ionic_strength: float,
    reference_offsets: Optional[Mapping[str, float]] = None,
) -> Dict[str, List[Prediction]]:
    """Predict every resonance of every buffer, grouped by nucleus.

    When ``reference_offsets`` is given, each nucleus' offset is added to its
    predictions so they are comparable with unreferenced spectra.
    """
    offsets = reference_offsets or {}
    out: Dict[str, List[Prediction]] = {}
    for buffer in buffers:
        sample = samples.get(buffer.sample_id) if buffer.sample_id else None
        per_nucleus = predict_buffer_shifts(buffer, ph, temperature, ionic_strength, sample)
        for nucleus, predictions in per_nucleus.items():
            offset = float(offsets.get(nucleus, 0.0))
            bucket = out.setdefault(nucleus, [])
            for prediction in predictions:
                if offset:
                    prediction = Prediction(
                        buffer_id=prediction.buffer_id,
                        buffer_name=prediction.buffer_name,
                        resonance_id=prediction.resonance_id,
                        description=prediction.description,
                        nucleus=nucleus,
                        predicted_shift=prediction.predicted_shift + offset,
                    )
                bucket.append(prediction)
    return out


def assign_single_shift(
    observed_shift: float,
    predictions: Sequence[Prediction],
    tolerance: float,
    nucleus: str = "",
) -> Assignment:
    """Assign one observed shift to its closest prediction.

    Args:
        observed_shift (float): Observed shift in ppm.
        predictions (Sequence[Prediction]): Candidates still available.
        tolerance (float): Maximum accepted distance in ppm.
        nucleus (str): Nucleus label stored on the result.

    Returns:
        Assignment: Assigned record with residual (observed − predicted) and
        any near-tie alternative, or an unassigned record carrying the
        nearest out-of-tolerance candidate.
    """
    observed = float(observed_shift)
    if not math.isfinite(observed):
        return Assignment(
            nucleus=nucleus,
            observed_shift=observed,
            assigned=False,
            confidence=Confidence.NONE,
            message="Observed shift is not a finite number",
        )
    if not predictions:
        return Assignment(
            nucleus=nucleus,
            observed_shift=observed,
            assigned=False,
            confidence=Confidence.NONE,
            message="No predictions available",
        )

    ranked = sorted(predictions, key=lambda p: abs(observed - p.predicted_shift))
    best = ranked[0]
    next_best = ranked[1] if len(ranked) > 1 else None
    best_distance = observed - best.predicted_shift
    next_best_distance = (
        abs(observed - next_best.predicted_shift) if next_best is not None else math.inf
    )

    confidence = calculate_confidence(best_distance, tolerance, next_best_distance)

    if confidence is Confidence.NONE:
        return Assignment(
            nucleus=nucleus,
            observed_shift=observed,
            assigned=False,
            confidence=Confidence.NONE,
            nearest=Candidate.from_prediction(best, observed),
            message=(
                f"No prediction within tolerance (nearest: {best.buffer_name} "
                f"{best.resonance_id} at {best.predicted_shift:.3f} ppm)"
            ),
        )

    alternatives: Tuple[Candidate, ...] = ()
    if (
        confidence is not Confidence.HIGH
        and next_best is not None
        and next_best_distance < tolerance
    ):
        alternatives = (Candidate.from_prediction(next_best, observed),)

    return Assignment(
        nucleus=nucleus,
        observed_shift=observed,
        assigned=True,
        confidence=confidence,
        buffer_id=best.buffer_id,
        buffer_name=best.buffer_name,
        resonance_id=best.resonance_id,
        description=best.description,
        predicted_shift=best.predicted_shift,
        residual=best_distance,
        alternatives=alternatives,
    )


def assign_peaks(
    observations: Observations,
    buffers: Sequence[Buffer],
    samples: Mapping[str, Sample],
    ph: float,
    temperature: float,
    ionic_strength: float,
    tolerances: Optional[Mapping[str, float]] = None,
    reference_offsets: Optional[Mapping[str, float]] = None,
) -> Dict[str, List[Assignment]]:
    """Greedily assign all observed shifts at one set of trial conditions.

    Args:
        observations (Mapping[str, Sequence[float]]): Observed shifts by
            nucleus.
        buffers (Sequence[Buffer]): Selected buffers.
        samples (Mapping[str, Sample]): Samples keyed by ``sample_id``.
        ph (float): Trial pH.
        temperature (float): Trial temperature in K.
        ionic_strength (float): Trial ionic strength in mol dm^-3.
        tolerances (Mapping[str, float] | None): Per-nucleus overrides of
            ``DEFAULT_TOLERANCES``.
        reference_offsets (Mapping[str, float] | None): Per-nucleus offsets
            added to the predictions.

    Returns:
        dict[str, list[Assignment]]: One record per observed shift, in
        ascending shift order within each nucleus. Non-finite shifts are
        returned last as unassigned records.

    Note:
        A (buffer, resonance) pair is claimed at most once per nucleus, so
        the assignment is injective within a round.
    """
    predictions = generate_predictions(
        buffers, samples, ph, temperature, ionic_strength, reference_offsets
    )

    assignments: Dict[str, List[Assignment]] = {}
    for nucleus, shifts in observations.items():
        available = predictions.get(nucleus, [])
        tolerance = tolerance_for(nucleus, tolerances)
        claimed: Set[Tuple[str, str]] = set()
        records: List[Assignment] = []

        values = [float(s) for s in shifts]
        finite = sorted(v for v in values if math.isfinite(v))

        for observed in finite:
            remaining = [p for p in available if p.key not in claimed]
            assignment = assign_single_shift(observed, remaining, tolerance, nucleus)
            if assignment.assigned:
                claimed.add((assignment.buffer_id, assignment.resonance_id))
            records.append(assignment)

        # Non-finite shifts never claim a resonance; they trail the sorted ones.
        for observed in values:
            if not math.isfinite(observed):
                records.append(assign_single_shift(observed, available, tolerance, nucleus))

        assignments[nucleus] = records

    n_assigned = sum(a.assigned for items in assignments.values() for a in items)
    n_total = sum(len(items) for items in assignments.values())
    logger.debug(
        "Assigned %d of %d observed shifts at pH %.3f, T %.2f K, I %.3f M",
        n_assigned,
        n_total,
        ph,
        temperature,
        ionic_strength,
    )
    return assignments


def calculate_assignment_quality(assignments: Mapping[str, Sequence[Assignment]]) -> Dict[str, object]:
    """Summarise an assignment set by confidence level and residual RMSD."""
    counts = {level: 0 for level in Confidence}
    residuals: List[float] = []
    n_unassigned = 0

    for items in assignments.values():
        for assignment in items:
            if assignment.assigned:
                counts[assignment.confidence] += 1
                residuals.append(float(assignment.residual))
            else:
                n_unassigned += 1

    n = len(residuals)
    rmsd = math.sqrt(sum(r * r for r in residuals) / n) if n else 0.0
    return {
        "totalObserved": n + n_unassigned,
        "totalAssigned": n,
        "totalUnassigned": n_unassigned,
        "highConfidence": counts[Confidence.HIGH],
        "mediumConfidence": counts[Confidence.MEDIUM],
        "lowConfidence": counts[Confidence.LOW],
        "rmsd": rmsd,
        "residuals": residuals,
    }


def get_assigned_peaks(assignments: Mapping[str, Sequence[Assignment]]) -> List[Assignment]:
    """Flatten an assignment set to its assigned records, nucleus by nucleus."""
    return [a for items in assignments.values() for a in items if a.assigned]
