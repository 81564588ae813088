"""Parse buffer and sample records into the immutable data model.

Records arrive as JSON-like mappings. Numeric fields may be given either as a
plain number or as a ``[value, uncertainty]`` pair; both forms are accepted
everywhere a number is expected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import DatabaseError
from .schema import (
    DEFAULT_REFERENCE_IONIC_STRENGTH_M,
    DEFAULT_REFERENCE_TEMPERATURE_K,
    Buffer,
    IonicStrengthModel,
    LimitingShift,
    MeasurementRange,
    PKaParameters,
    Resonance,
    Sample,
)


def get_value(value_with_uncertainty) -> float:
    """Return the value part of a number or ``[value, uncertainty]`` pair.

    Args:
        value_with_uncertainty (float | Sequence[float]): Plain number or a
            two-element sequence.

    Returns:
        float: The value.

    Raises:
        DatabaseError: If the input is empty or not numeric.
    """
    if isinstance(value_with_uncertainty, (list, tuple)):
        if not value_with_uncertainty:
            raise DatabaseError("Empty [value, uncertainty] pair.")
        value_with_uncertainty = value_with_uncertainty[0]
    try:
        return float(value_with_uncertainty)
    except (TypeError, ValueError) as exc:
        raise DatabaseError(f"Expected a number, got {value_with_uncertainty!r}") from exc


def get_uncertainty(value_with_uncertainty) -> float:
    """Return the uncertainty part of a ``[value, uncertainty]`` pair (0 if absent)."""
    if isinstance(value_with_uncertainty, (list, tuple)) and len(value_with_uncertainty) > 1:
        u = value_with_uncertainty[1]
        return 0.0 if u is None else float(u)
    return 0.0


def _require(record: Mapping, key: str, kind: str):
    if key not in record:
        raise DatabaseError(f"{kind} record is missing required field '{key}'.")
    return record[key]


def parse_pka_parameters(record: Mapping) -> PKaParameters:
    raw_model = record.get("ionic_strength_model") or IonicStrengthModel.DAVIES.value
    try:
        model = IonicStrengthModel(raw_model)
    except ValueError as exc:
        raise DatabaseError(f"Unknown ionic strength model '{raw_model}'.") from exc

    pka = _require(record, "pKa", "pKa parameter")
    ion_size = record.get("ion_size_angstrom")
    return PKaParameters(
        pka=get_value(pka),
        pka_uncertainty=get_uncertainty(pka),
        dh_kj_mol=get_value(record.get("dH_kJ_mol") or 0.0),
        dcp_j_mol_k=get_value(record.get("dCp_J_mol_K") or 0.0),
        protonated_charge=int(get_value(record.get("protonated_charge") or 0)),
        ionic_strength_model=model,
        ion_size_angstrom=None if ion_size is None else get_value(ion_size),
        ionic_strength_coefficient_per_m=get_value(
            record.get("ionic_strength_coefficient_per_M") or 0.0
        ),
    )


def parse_limiting_shift(record: Mapping) -> LimitingShift:
    shift = _require(record, "shift_ppm", "Limiting shift")
    return LimitingShift(
        ionisation_state=int(get_value(_require(record, "ionisation_state", "Limiting shift"))),
        shift_ppm=get_value(shift),
        shift_uncertainty=get_uncertainty(shift),
        temperature_coefficient_ppm_per_k=get_value(
            record.get("temperature_coefficient_ppm_per_K") or 0.0
        ),
        ionic_strength_coefficient_ppm_per_m=get_value(
            record.get("ionic_strength_coefficient_ppm_per_M") or 0.0
        ),
    )


def parse_resonance(record: Mapping) -> Resonance:
    return Resonance(
        resonance_id=str(_require(record, "resonance_id", "Resonance")),
        description=str(record.get("description") or ""),
        limiting_shifts=tuple(
            parse_limiting_shift(ls) for ls in record.get("limiting_shifts") or ()
        ),
    )


def parse_buffer(record: Mapping) -> Buffer:
    buffer_id = str(_require(record, "buffer_id", "Buffer"))
    shifts = record.get("chemical_shifts") or {}
    if not isinstance(shifts, Mapping):
        raise DatabaseError(f"Buffer '{buffer_id}': chemical_shifts must map nucleus to resonances.")
    return Buffer(
        buffer_id=buffer_id,
        buffer_name=str(record.get("buffer_name") or buffer_id),
        sample_id=record.get("sample_id"),
        pka_parameters=tuple(
            parse_pka_parameters(p) for p in record.get("pKa_parameters") or ()
        ),
        chemical_shifts={
            str(nucleus): tuple(parse_resonance(r) for r in resonances)
            for nucleus, resonances in shifts.items()
        },
    )


def _parse_range(ranges: Mapping, key: str) -> Optional[MeasurementRange]:
    entry = ranges.get(key)
    if not entry:
        return None
    lo = get_value(entry.get("min", -math.inf))
    hi = get_value(entry.get("max", math.inf))
    if lo > hi:
        raise DatabaseError(f"Measurement range '{key}' has min {lo} > max {hi}.")
    return MeasurementRange(min=lo, max=hi)


def parse_sample(record: Mapping) -> Sample:
    ranges = record.get("measurement_ranges") or {}
    ref_t = record.get("reference_temperature_K")
    ref_i = record.get("reference_ionic_strength_M")
    return Sample(
        sample_id=str(_require(record, "sample_id", "Sample")),
        reference_temperature_k=(
            DEFAULT_REFERENCE_TEMPERATURE_K if ref_t is None else get_value(ref_t)
        ),
        reference_ionic_strength_m=(
            DEFAULT_REFERENCE_IONIC_STRENGTH_M if ref_i is None else get_value(ref_i)
        ),
        ph_range=_parse_range(ranges, "pH"),
        temperature_range=_parse_range(ranges, "temperature_K"),
        ionic_strength_range=_parse_range(ranges, "ionic_strength_M"),
        solvent=record.get("solvent"),
    )


@dataclass(frozen=True)
class BufferDatabase:
    """Read-only lookup over parsed buffers and samples."""

    buffers: Mapping[str, Buffer] = field(default_factory=dict)
    samples: Mapping[str, Sample] = field(default_factory=dict)

    @property
    def solvents(self) -> List[str]:
        seen: Dict[str, None] = {}
        for sample in self.samples.values():
            if sample.solvent:
                seen.setdefault(sample.solvent, None)
        return list(seen)

    def get_buffers(self, buffer_ids: Iterable[str]) -> List[Buffer]:
        buffer_ids = list(buffer_ids)
        missing = [bid for bid in buffer_ids if bid not in self.buffers]
        if missing:
            raise DatabaseError(f"Unknown buffer id(s): {', '.join(missing)}")
        return [self.buffers[bid] for bid in buffer_ids]

    def buffers_for_solvent(self, solvent: str) -> List[Buffer]:
        sample_ids = {sid for sid, s in self.samples.items() if s.solvent == solvent}
        return [b for b in self.buffers.values() if b.sample_id in sample_ids]

    def samples_for_buffers(self, buffers: Sequence[Buffer]) -> List[Sample]:
        out: Dict[str, Sample] = {}
        for buffer in buffers:
            sample = self.samples.get(buffer.sample_id) if buffer.sample_id else None
            if sample is not None:
                out.setdefault(sample.sample_id, sample)
        return list(out.values())


def nuclei_for_buffers(buffers: Sequence[Buffer]) -> Tuple[str, ...]:
    """Return the nuclei observable in any of ``buffers``, in first-seen order."""
    seen: Dict[str, None] = {}
    for buffer in buffers:
        for nucleus in buffer.chemical_shifts:
            seen.setdefault(nucleus, None)
    return tuple(seen)


def load_database(data: Mapping) -> BufferDatabase:
    """Build a :class:`BufferDatabase` from a decoded JSON document.

    Args:
        data (Mapping): Document with ``buffers`` and ``samples`` lists.

    Returns:
        BufferDatabase: Parsed, immutable lookup tables.

    Raises:
        DatabaseError: If a record is malformed or an id is duplicated.
    """
    samples: Dict[str, Sample] = {}
    for record in data.get("samples") or ():
        sample = parse_sample(record)
        if sample.sample_id in samples:
            raise DatabaseError(f"Duplicate sample id '{sample.sample_id}'.")
        samples[sample.sample_id] = sample

    buffers: Dict[str, Buffer] = {}
    for record in data.get("buffers") or ():
        buffer = parse_buffer(record)
        if buffer.buffer_id in buffers:
            raise DatabaseError(f"Duplicate buffer id '{buffer.buffer_id}'.")
        buffers[buffer.buffer_id] = buffer

    return BufferDatabase(buffers=buffers, samples=samples)
