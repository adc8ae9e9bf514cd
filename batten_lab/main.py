#!/usr/bin/env python
"""
Batten Lab – CLI entry point.

Usage:
    # Metrics (and optionally the report formulas) for one test
    batten-lab calc --weight 2 --length 1000 --self 5 8 5 --weighted 30 60 28 [--formulas]

    # Write the .xlsx report
    batten-lab export --input test.yaml [--name "Batten 3"] [--output-dir output] [--no-chart]

    # Recompute an exported report and compare with the calculator
    batten-lab verify output/BattenLab_2024-05-01.xlsx

    # Saved profiles
    batten-lab profile save "Batten 3" --input test.yaml
    batten-lab profile list [--search batt]
    batten-lab profile show "Batten 3"
    batten-lab profile rename "Batten 3" "Batten 3 (recut)"
    batten-lab profile delete "Batten 3 (recut)"

    # Side-by-side table of saved profiles
    batten-lab compare [--search batt] [--csv comparison.csv]

A measurement comes from ``--profile``, then ``--input`` (YAML or JSON),
then the explicit flags; later sources override earlier ones.
"""

import argparse
import logging
import os
import sys

import yaml

from batten_lab.calculator import calculate, net_deflections
from batten_lab.comparison import compare_profiles
from batten_lab.formula_mirror import render_formulas
from batten_lab.measurement import Measurement, MEASUREMENT_FIELDS
from batten_lab.profiles import ProfileStore, ProfileLoadError, ProfileSaveError
from batten_lab.report_checker import check_report
from batten_lab.report_writer import ReportError, export_report

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def setup_logging(level_str: str = "INFO"):
    """Configure logging."""
    level = getattr(logging, level_str.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )


def load_config(config_path):
    """Load configuration from a YAML file on top of the defaults."""
    defaults = {
        "profiles_path": "~/.batten_lab/profiles.json",
        "output_dir": "output",
        "logos": [],
        "chart": True,
        "log_level": "INFO",
    }
    if config_path and os.path.exists(config_path):
        with open(config_path, "r") as f:
            user_config = yaml.safe_load(f) or {}
        defaults.update(user_config)
    return defaults


def load_measurement_file(path: str) -> Measurement:
    """Read readings from a YAML or JSON mapping."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of measurement fields")
    return Measurement.from_dict(data)


def measurement_from_args(args, store: ProfileStore) -> Measurement:
    measurement = Measurement()
    if getattr(args, "profile", None):
        profile = store.find(args.profile)
        if profile is None:
            raise LookupError(f"No saved profile '{args.profile}'")
        measurement = profile.data
    if getattr(args, "input", None):
        measurement = load_measurement_file(args.input)

    updates = {"test_weight": args.weight, "test_length": args.length}
    if args.self_values:
        updates.update(zip(("self_14", "self_12", "self_34"), args.self_values))
    if args.weighted:
        updates.update(zip(("weighted_14", "weighted_12", "weighted_34"), args.weighted))
    return measurement.with_updates(**updates)


# ------------------------------------------------------------------
# Output helpers
# ------------------------------------------------------------------

def format_result(measurement: Measurement) -> str:
    net = net_deflections(measurement)
    result = calculate(measurement)
    lines = [
        f"Net deflection (mm): {net.net_14:.1f} / {net.net_12:.1f} / {net.net_34:.1f}",
        f"Front bend:  {result.front_percent:10.1f} %",
        f"Back bend:   {result.back_percent:10.1f} %",
        f"Camber:      {result.camber_percent:10.2f} %",
        f"Average EI:  {result.average_ei:10.3f} N*m^2",
    ]
    return "\n".join(lines)


def format_measurement(measurement: Measurement) -> str:
    return "\n".join(f"  {name:<12} {getattr(measurement, name):g}" for name in MEASUREMENT_FIELDS)


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

def cmd_calc(args, config, store):
    measurement = measurement_from_args(args, store)
    print(format_result(measurement))
    if args.formulas:
        print()
        for cell_ref, formula, value in render_formulas(measurement):
            print(f"{cell_ref:<4} {formula}  -> {value:.6g}")
    return 0


def cmd_export(args, config, store):
    measurement = measurement_from_args(args, store)
    logos = args.logo if args.logo else config.get("logos") or []
    chart = config.get("chart", True) and not args.no_chart
    output_dir = args.output_dir or config["output_dir"]
    path = export_report(measurement, output_dir, file_name=args.name, logos=logos, chart=chart)
    print(path)
    return 0


def cmd_verify(args, config, store):
    checks = check_report(args.report)
    failures = 0
    for check in checks:
        status = "OK" if check.matches else "MISMATCH"
        if not check.matches:
            failures += 1
        stale = "  (cached value stale)" if check.stale else ""
        print(f"{check.cell_ref:<4} {check.quantity:<15} {check.formula_value:>14.6g} "
              f"{check.engine_value:>14.6g}  {status}{stale}")
    if failures:
        logger.error(f"{failures} formula cell(s) disagree with the calculator")
        return 1
    return 0


def cmd_profile(args, config, store):
    if args.profile_command == "save":
        profile = store.save(args.name, measurement_from_args(args, store))
        print(f"{profile.id}  {profile.name}")
        return 0

    if args.profile_command == "list":
        for meta in store.search(args.search or ""):
            print(f"{meta.id}  {meta.name}")
        return 0

    profile = store.find(args.key)
    if profile is None:
        raise LookupError(f"No saved profile '{args.key}'")

    if args.profile_command == "show":
        print(f"{profile.name} ({profile.id})")
        print(format_measurement(profile.data))
        print(format_result(profile.data))
    elif args.profile_command == "rename":
        store.rename(profile.id, args.new_name)
    elif args.profile_command == "delete":
        store.delete(profile.id)
    return 0


def cmd_compare(args, config, store):
    df = compare_profiles(store, args.search or "")
    if df.empty:
        print("No saved profiles to compare.")
        return 0
    print(df.round(3).to_string())
    if args.csv:
        df.to_csv(args.csv)
        logger.info(f"Comparison written: {args.csv}")
    return 0


# ------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------

def _add_measurement_args(p):
    p.add_argument("--profile", "-p", default=None, help="Saved profile id or name")
    p.add_argument("--input", "-i", default=None, help="YAML or JSON file with the readings")
    p.add_argument("--weight", type=float, default=None, help="Test weight (kg)")
    p.add_argument("--length", type=float, default=None, help="Test length (mm)")
    p.add_argument(
        "--self", dest="self_values", type=float, nargs=3, default=None,
        metavar=("Q1", "MID", "Q3"), help="Self-weight deflections at 1/4 1/2 3/4 (mm)",
    )
    p.add_argument(
        "--weighted", type=float, nargs=3, default=None,
        metavar=("Q1", "MID", "Q3"), help="Loaded deflections at 1/4 1/2 3/4 (mm)",
    )


def build_parser():
    parser = argparse.ArgumentParser(
        description="Batten bending test: metrics, spreadsheet report and saved profiles"
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH,
        help="Path to config YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level", default=None,
        help="Logging level: DEBUG, INFO, WARNING, ERROR",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ---- calc ----
    p_calc = sub.add_parser("calc", help="Print the bend metrics of a measurement")
    _add_measurement_args(p_calc)
    p_calc.add_argument("--formulas", action="store_true",
                        help="Also print the report formulas and cached values")
    p_calc.set_defaults(func=cmd_calc)

    # ---- export ----
    p_export = sub.add_parser("export", help="Write the .xlsx report")
    _add_measurement_args(p_export)
    p_export.add_argument("--name", default=None, help="Report file name")
    p_export.add_argument("--output-dir", default=None, help="Output directory")
    p_export.add_argument("--logo", action="append", default=None,
                          help="Logo image for the header (repeatable)")
    p_export.add_argument("--no-chart", action="store_true",
                          help="Do not embed the deflection chart")
    p_export.set_defaults(func=cmd_export)

    # ---- verify ----
    p_verify = sub.add_parser("verify", help="Recompute an exported report")
    p_verify.add_argument("report", help="Path to the report (.xlsx)")
    p_verify.set_defaults(func=cmd_verify)

    # ---- profile ----
    p_profile = sub.add_parser("profile", help="Manage saved profiles")
    p_profile.set_defaults(func=cmd_profile)
    profile_sub = p_profile.add_subparsers(dest="profile_command", required=True)

    p_save = profile_sub.add_parser("save", help="Save a measurement under a name")
    p_save.add_argument("name", help="Profile name")
    _add_measurement_args(p_save)

    p_list = profile_sub.add_parser("list", help="List saved profiles, newest first")
    p_list.add_argument("--search", default=None, help="Filter by name")

    p_show = profile_sub.add_parser("show", help="Show a profile and its metrics")
    p_show.add_argument("key", help="Profile id or name")

    p_rename = profile_sub.add_parser("rename", help="Rename a profile")
    p_rename.add_argument("key", help="Profile id or name")
    p_rename.add_argument("new_name", help="New name")

    p_delete = profile_sub.add_parser("delete", help="Delete a profile")
    p_delete.add_argument("key", help="Profile id or name")

    # ---- compare ----
    p_compare = sub.add_parser("compare", help="Compare saved profiles side by side")
    p_compare.add_argument("--search", default=None, help="Filter by name")
    p_compare.add_argument("--csv", default=None, help="Also write the table as CSV")
    p_compare.set_defaults(func=cmd_compare)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(args.log_level or config.get("log_level", "INFO"))

    store = ProfileStore(config["profiles_path"])
    try:
        return args.func(args, config, store)
    except (FileNotFoundError, LookupError, ValueError, ReportError,
            ProfileLoadError, ProfileSaveError, yaml.YAMLError) as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
