"""Command-line entry point.

Usage:
    fhir-tables ./synthea/output/fhir ./out

    # The small demo sample (5 patients, 10 children per parent)
    fhir-tables ./synthea/output/fhir ./out --preset reduced

    # Split long stays across hospital units, include diagnostic reports
    fhir-tables ./in ./out --location-policy duration \\
        --tables patients,encounters,observations,medication_administrations,locations,encounter_locations,diagnostic_reports

Environment Variables (also read from a .env file):
    FHIR_TABLES_MAX_PATIENTS, FHIR_TABLES_MAX_ENCOUNTERS,
    FHIR_TABLES_MAX_OBSERVATIONS, FHIR_TABLES_MAX_MEDICATIONS,
    FHIR_TABLES_MAX_DIAGNOSTIC_REPORTS, FHIR_TABLES_TABLES,
    FHIR_TABLES_LOCATION_POLICY, FHIR_TABLES_DANGLING_POLICY,
    FHIR_TABLES_SORT_INPUTS, FHIR_TABLES_PRIORITIZE_ENCOUNTERS,
    FHIR_TABLES_CLEAN_NAMES
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from .config import DanglingPolicy, MapperConfig, get_config, parse_cap, parse_tables
from .engine.locations import LocationPolicy
from .errors import FhirTablesError
from .mapper import MappingReport, map_directory

logger = logging.getLogger(__name__)

RULE = "=" * 80
THIN_RULE = "-" * 80


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fhir-tables",
        description="Map FHIR bundles to tab-delimited relational tables",
    )
    parser.add_argument("input_dir", type=Path, help="Directory containing FHIR bundle JSON files")
    parser.add_argument("output_dir", type=Path, help="Directory for the .tsv tables")
    parser.add_argument(
        "--preset", choices=("full", "reduced"), default=argparse.SUPPRESS,
        help="Cap preset: 'full' (no caps) or 'reduced' (5 patients, 10 per parent)",
    )

    caps = parser.add_argument_group("sampling caps ('unbounded' removes a cap)")
    for flag, dest in (
        ("--max-patients", "max_patients"),
        ("--max-encounters", "max_encounters_per_patient"),
        ("--max-observations", "max_observations_per_encounter"),
        ("--max-medications", "max_medications_per_encounter"),
        ("--max-diagnostic-reports", "max_diagnostic_reports_per_encounter"),
    ):
        caps.add_argument(flag, dest=dest, type=parse_cap, default=argparse.SUPPRESS, metavar="N")

    parser.add_argument(
        "--tables", type=parse_tables, default=argparse.SUPPRESS,
        help="Comma-separated tables to write (default: the six core tables)",
    )
    parser.add_argument(
        "--location-policy", choices=[p.value for p in LocationPolicy], default=argparse.SUPPRESS,
        help="How encounter stays map to locations",
    )
    parser.add_argument(
        "--dangling-policy", choices=[p.value for p in DanglingPolicy], default=argparse.SUPPRESS,
        help="Rows with unresolved foreign keys: null_fill, skip, or abort",
    )
    parser.add_argument(
        "--unsorted", dest="sort_inputs", action="store_false", default=argparse.SUPPRESS,
        help="Process files in filesystem order instead of sorted by path",
    )
    parser.add_argument(
        "--no-prioritize", dest="prioritize_encounters", action="store_false",
        default=argparse.SUPPRESS,
        help="Cap encounters in source order instead of medication/observation tiers",
    )
    parser.add_argument(
        "--clean-names", action="store_true", default=argparse.SUPPRESS,
        help="Strip the digits Synthea appends to patient names",
    )
    parser.add_argument(
        "--print-output", action="store_true",
        help="Dump every written table to stdout after the run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def resolve_config(args: argparse.Namespace, base: MapperConfig | None = None) -> MapperConfig:
    """Environment config, then the preset, then explicit flags."""
    config = base or get_config()
    options = vars(args).copy()
    preset = options.pop("preset", None)
    if preset:
        config = config.with_preset(preset)
    overrides = {
        name: value for name, value in options.items()
        if name in MapperConfig.__dataclass_fields__
    }
    return replace(config, **overrides)


def print_summary(report: MappingReport) -> None:
    print(f"Bundles: {report.bundles}")
    for table in sorted(report.rows, key=lambda t: t.value):
        print(f"  {table.filename}: {report.rows[table]}")
    print(f"  TOTAL: {report.total_rows}")
    if report.dangling:
        print(f"Dangling references: {len(report.dangling)} (see warnings above)")
    if report.skipped_rows:
        print(f"Rows skipped: {report.skipped_rows}")


def print_output_files(out_dir: Path) -> None:
    for path in sorted(out_dir.glob("*.tsv")):
        print(RULE)
        print(path)
        print(THIN_RULE)
        print(path.read_text(encoding="utf-8"), end="")
        print(RULE)
        print()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    print_output = args.print_output
    del args.print_output, args.verbose

    try:
        config = resolve_config(args)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(RULE)
    print("Map FHIR Bundles To Tables")
    print(THIN_RULE)
    print(f"Data Directory: {args.input_dir}")
    print(f"Output Directory: {args.output_dir}")
    print()

    if not args.input_dir.is_dir():
        print(f"ERROR: Bundle directory not found: {args.input_dir}", file=sys.stderr)
        return 1

    try:
        report = map_directory(args.input_dir, args.output_dir, config)
    except (FhirTablesError, OSError) as e:
        logger.exception("Mapping run aborted")
        print(RULE, file=sys.stderr)
        print(f"MAPPING FAILED: {e}", file=sys.stderr)
        print("Partial output files may remain in the output directory.", file=sys.stderr)
        print(RULE, file=sys.stderr)
        return 1

    print_summary(report)
    if print_output:
        print_output_files(args.output_dir)
    print(RULE)
    return 0


if __name__ == "__main__":
    sys.exit(main())
