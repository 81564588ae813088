#!/usr/bin/env python3
"""
Main script for estimating sample pH from buffer chemical shifts.
"""

# Pipeline overview:
# 1) Load the buffer/sample database (JSON) and select buffers by id or solvent.
# 2) Load observed shifts per nucleus (JSON: {"1H": [3.21, 3.05], ...}).
# 3) Alternate greedy peak assignment and bounded least-squares fitting until
#    the fitted pH settles.
# 4) Validate the fit (DoF, plausibility, extrapolation, outliers) and export
#    assignment/parameter/statistics tables and optional shift-curve figures.

import argparse
import json
import logging
import os
import sys
import time

import pandas as pd

from shifty.chemistry import generate_shift_curves, reference_frequency
from shifty.chemistry.shifts import XI_RATIOS
from shifty.database import load_database
from shifty.errors import DatabaseError
from shifty.fitting import fit_with_reassignment
from shifty.plotting import plot_shift_curves
from shifty.reporting import format_value_with_uncertainty
from shifty.schema import Conditions, FitOptions
from shifty.tables import save_result_tables
from shifty.validation import validate_fit_result


def configure_logging(log_path="shifty.log"):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path, mode="w"),
        ],
    )


def build_parser():
    parser = argparse.ArgumentParser(
        description="Estimate sample pH from NMR chemical shifts of buffer molecules."
    )
    parser.add_argument("--database", required=True, help="Buffer database JSON file")
    parser.add_argument(
        "--observations", required=True, help='Observed shifts JSON, e.g. {"1H": [3.2]}'
    )
    parser.add_argument("--buffers", nargs="+", help="Buffer ids to use")
    parser.add_argument("--solvent", help="Use every buffer measured in this solvent")
    parser.add_argument("--ph", type=float, default=None, help="Initial pH guess")
    parser.add_argument("--temperature", type=float, default=298.15, help="Temperature (K)")
    parser.add_argument(
        "--ionic-strength", type=float, default=0.0, help="Ionic strength (mol dm^-3)"
    )
    parser.add_argument("--refine-temperature", action="store_true")
    parser.add_argument("--refine-ionic-strength", action="store_true")
    parser.add_argument(
        "--refine-reference",
        action="append",
        default=[],
        metavar="NUCLEUS",
        help="Fit a reference offset for NUCLEUS (repeatable)",
    )
    parser.add_argument(
        "--spectrometer-mhz",
        type=float,
        default=None,
        help="1H frequency of DSS (MHz); logs indirect reference frequencies",
    )
    parser.add_argument("--max-iterations", type=int, default=100)
    parser.add_argument("--max-rounds", type=int, default=3)
    parser.add_argument("--output-dir", default="output")
    parser.add_argument("--plot", action="store_true", help="Save shift-curve figures")
    parser.add_argument("--log-file", default="shifty.log")
    return parser


def _select_buffers(db, buffer_ids, solvent):
    if buffer_ids:
        return db.get_buffers(buffer_ids)
    if solvent:
        return db.buffers_for_solvent(solvent)
    return list(db.buffers.values())


def _save_curve_figures(result, buffers, samples, output_dir):
    conditions = result.conditions
    paths = []
    nuclei = [n for n, items in result.assignments.items() if items]
    for nucleus in nuclei:
        frames = [
            generate_shift_curves(
                buffer,
                nucleus,
                conditions.temperature,
                conditions.ionic_strength,
                samples.get(buffer.sample_id) if buffer.sample_id else None,
            )
            for buffer in buffers
            if nucleus in buffer.chemical_shifts
        ]
        if not frames:
            continue
        curves = pd.concat(frames, ignore_index=True)
        curves["shift"] = curves["shift"] + conditions.offset(nucleus)
        path = os.path.join(output_dir, f"shift_curves_{nucleus}.png")
        paths.append(
            plot_shift_curves(
                curves,
                result.assignments,
                fitted_ph=conditions.ph,
                output_path=path,
                title=f"{nucleus} shifts",
            )
        )
    return paths


def _write_result_json(result, report, output_dir):
    path = os.path.join(output_dir, "result.json")
    with open(path, "w", encoding="utf-8") as fh:
        json.dump({"fit": result.to_dict(), "validation": report.to_dict()}, fh, indent=2)
    return path


def main(argv=None):
    """Run the estimation pipeline and return a process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file)

    start_time = time.time()
    logging.info("Initializing pH estimation pipeline")

    try:
        with open(args.database, encoding="utf-8") as fh:
            db = load_database(json.load(fh))
        with open(args.observations, encoding="utf-8") as fh:
            observations = {k: [float(x) for x in v] for k, v in json.load(fh).items()}
        buffers = _select_buffers(db, args.buffers, args.solvent)
    except (OSError, ValueError, DatabaseError) as exc:
        logging.error("Could not load inputs: %s", exc)
        return 2

    if not buffers:
        logging.error("No buffers selected. Terminating execution.")
        return 2

    logging.info(
        "Loaded %d buffers and %d observed shifts across %d nuclei",
        len(buffers),
        sum(len(v) for v in observations.values()),
        len(observations),
    )

    if args.spectrometer_mhz is not None:
        try:
            frequencies = {
                nucleus: reference_frequency(nucleus, args.spectrometer_mhz)
                for nucleus in observations
                if nucleus in XI_RATIOS
            }
        except ValueError as exc:
            logging.error("Invalid spectrometer frequency: %s", exc)
            return 2
        for nucleus, frequency in frequencies.items():
            logging.info("%s reference frequency: %.6f MHz", nucleus, frequency)

    nominal = Conditions(
        ph=args.ph, temperature=args.temperature, ionic_strength=args.ionic_strength
    )
    options = FitOptions(
        refine_temperature=args.refine_temperature,
        refine_ionic_strength=args.refine_ionic_strength,
        refine_references={nucleus: True for nucleus in args.refine_reference},
        max_iterations=args.max_iterations,
        max_rounds=args.max_rounds,
    )

    step_start = time.time()
    result = fit_with_reassignment(observations, buffers, db.samples, nominal, options)
    logging.info(
        "Fitting completed in %.2f seconds (%d rounds)",
        time.time() - step_start,
        result.rounds,
    )

    report = validate_fit_result(result, nominal, db.samples_for_buffers(buffers))

    os.makedirs(args.output_dir, exist_ok=True)
    table_paths = save_result_tables(result, args.output_dir)

    if not result.success:
        logging.error("Fit failed (%s): %s", result.error_type, result.error)
        result_path = _write_result_json(result, report, args.output_dir)
        for path in list(table_paths.values()) + [result_path]:
            logging.info("  - %s", path)
        return 1

    for name, est in result.parameters.items():
        logging.info("%s = %s", est.label, format_value_with_uncertainty(est.value, est.uncertainty))
    stats = result.statistics
    logging.info(
        "RMSD %.4f ppm, reduced chi-squared %.4g, DoF %d",
        stats.rmsd,
        stats.reduced_chi_squared,
        stats.degrees_of_freedom,
    )
    for issue in report.issues:
        logging.error("Validation issue: %s", issue["message"])

    figure_paths = []
    if args.plot:
        figure_paths = _save_curve_figures(result, buffers, db.samples, args.output_dir)

    result_path = _write_result_json(result, report, args.output_dir)

    logging.info(f"Total execution time: {time.time() - start_time:.2f} seconds")
    logging.info("Generated output files:")
    for path in list(table_paths.values()) + figure_paths:
        logging.info("  - %s", path)
    logging.info("  - %s", result_path)

    return 0 if report.valid else 1


if __name__ == "__main__":
    sys.exit(main())
