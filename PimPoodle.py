#!/usr/bin/env python3
# ================================================================
# Tool     : PimPoodle
# Purpose  : Entra PIM policy and assignment review over a snapshot
# Notes    : "Who holds the keys, and for how long?" 🐩
#            Reads an already-fetched snapshot; never calls Graph.
# ================================================================

import argparse
import pathlib
import sys

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug, fncGetSetting, fncVisibilityFromConfig
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncBlurb
from core.module_loader import fncRunModule, fncRunAllModules
from core.snapshot import fncLoadSnapshot
from core.exports import (
    fncExportList,
    fncExportSingleModule,
    fncExportMultiModule,
)

PROVIDER = "entra"


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments for PimPoodle
# Notes    : One snapshot, one module or all of them, optional exports
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="PimPoodle",
        description="PimPoodle 🐩 Entra PIM policy and assignment sniffer"
    )

    parser.add_argument(
        "snapshot",
        help="Path to a snapshot JSON file ({roles, groups, authenticationContexts})"
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--scan",
        help="Name of module to execute (pim_dashboard, pim_policy, pim_access)"
    )
    group.add_argument(
        "--run-all",
        action="store_true",
        help="Run all available modules"
    )

    parser.add_argument("--skip", default="", help="Comma-separated module names to skip with --run-all")
    parser.add_argument(
        "--export",
        nargs="*",
        metavar="FMT[,FMT...]",
        default=None,
        help="Export formats: csv, json. Example: --export csv json"
    )
    parser.add_argument("--out", help="Reports folder (default: ~/.pimpoodle/reports)")
    parser.add_argument("--config", help="Config file (default: ~/.pimpoodle/config.json)")
    parser.add_argument("--as-of", help="Reference time for expiry windows (ISO 8601, default: now)")
    parser.add_argument("--window-days", type=int, help="Expiring-soon window in days")
    parser.add_argument("--top", type=int, help="Rows in top-N tables")
    parser.add_argument("--privileged-only", action="store_true", help="MFA chart counts privileged roles only")
    parser.add_argument(
        "--hide",
        default="",
        help="Comma-separated workloads to hide: roles, groups, unmanaged"
    )
    parser.add_argument(
        "--only-assignment",
        choices=["permanent", "eligible", "active"],
        help="Narrow the assignment chart to one type"
    )
    parser.add_argument(
        "--only-member",
        choices=["direct", "group"],
        help="Narrow the assignment method chart to one member type"
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug output")

    args = parser.parse_args(argv)
    args.hide = [h.strip() for h in args.hide.split(",") if h.strip()]
    return args


# ================================================================
# Function: fncPrepareRunArgs
# Purpose  : Fold config values into the namespace modules receive
# Notes    : CLI overrides are already applied to cfg at this point
# ================================================================
def fncPrepareRunArgs(args, cfg: dict):
    args.visibility = fncVisibilityFromConfig(cfg)
    args.window_days = fncGetSetting(cfg, "dashboard.expiring_window_days", 7)
    args.top = fncGetSetting(cfg, "dashboard.top_limit", 10)
    args.privileged_only = bool(fncGetSetting(cfg, "dashboard.privileged_only", False))
    args.sections = fncGetSetting(cfg, "export.sections", None)

    args.chart_filters, args.chart_modes = {}, {}
    if args.only_assignment:
        args.chart_filters["assignmentType"] = args.only_assignment
        args.chart_modes["assignment"] = "only"
    if args.only_member:
        args.chart_filters["memberType"] = args.only_member
        args.chart_modes["member"] = "only"
    return args


# ================================================================
# Function: main
# Purpose  : Main entry point for PimPoodle execution
# Notes    : Handles CLI parsing, config loading, snapshot load,
#            module execution and exports
# ================================================================
def main(argv=None):
    args = fncParseArguments(argv)

    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))
    args = fncPrepareRunArgs(args, cfg)

    fncDisplayBanner("v1.0")
    fncBlurb("snapshot")
    fncPrintMessage("Debug output enabled.", "debug")

    try:
        snapshot = fncLoadSnapshot(args.snapshot)
    except (OSError, ValueError, TypeError) as ex:
        fncPrintMessage(f"Unable to load snapshot: {ex}", "error")
        return 1

    fncBlurb(PROVIDER)
    export_formats = fncExportList(args.export)
    reports_root = pathlib.Path(cfg.get("reports_dir") or pathlib.Path.home() / ".pimpoodle" / "reports").expanduser()

    if args.run_all:
        skip_list = [m.strip() for m in args.skip.split(",") if m.strip()]
        results = fncRunAllModules(PROVIDER, snapshot, args, skip_list=skip_list)
        failed = [m for m, r in results.items() if isinstance(r, dict) and r.get("error")]
        if export_formats:
            fncExportMultiModule(results, export_formats, reports_root)
    else:
        fncPrintMessage(f"Running scan module: {args.scan}", "info")
        result = fncRunModule(PROVIDER, args.scan, snapshot, args)
        failed = [args.scan] if not isinstance(result, dict) or result.get("error") else []
        if export_formats and isinstance(result, dict) and not result.get("error"):
            fncExportSingleModule(args.scan, result, export_formats, reports_root)

    if failed:
        fncPrintMessage(f"Finished with failures: {', '.join(failed)}", "error")
        return 1
    fncPrintMessage("Scan complete. Tail wag achieved.", "success")
    return 0


if __name__ == "__main__":
    sys.exit(main())
