# ================================================================
# File     : exports.py
# Purpose  : Handle all export logic for PimPoodle (CSV, JSON)
# Notes    : Called by PimPoodle.py after module(s) finish. Modules
#            hand over ready-made CSV text and JSON documents under
#            the "_exports" key; other list-of-dict tables are
#            written as plain CSV alongside.
# ================================================================

import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.utils import fncPrintMessage, fncEnsureFolder, fncWriteJSON, fncWriteText
from engine.export_rows import to_csv

SUPPORTED_FORMATS = {"csv", "json"}


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export list-of-lists from argparse
# ================================================================
def fncExportList(args_export) -> set:
    if not args_export:
        return set()
    out = set()
    for chunk in args_export:
        items = chunk if isinstance(chunk, (list, tuple)) else [chunk]
        for item in items:
            if isinstance(item, str):
                for part in item.replace(",", " ").split():
                    out.add(part.strip().lower())
    unknown = out - SUPPORTED_FORMATS
    if unknown:
        fncPrintMessage(f"Ignoring unsupported export format(s): {', '.join(sorted(unknown))}", "warn")
    return out & SUPPORTED_FORMATS


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build structured output path under the reports dir
# ================================================================
def fncGetExportPath(module_name: str, root: Optional[pathlib.Path] = None) -> pathlib.Path:
    if root is None:
        root = pathlib.Path.home() / ".pimpoodle" / "reports"
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    return fncEnsureFolder(pathlib.Path(root) / ts / mod_slug)


def fncDateStamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def fncIsoStamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


# ================================================================
# Function: fncWriteCSVText
# Purpose  : Write one module CSV export as <name>-<date>.csv
# ================================================================
def fncWriteCSVText(out_dir: pathlib.Path, name: str, text: str) -> pathlib.Path:
    path = pathlib.Path(out_dir) / f"{name}-{fncDateStamp()}.csv"
    fncWriteText(str(path), text)
    return path


def _write_module(mod: str, data: Dict[str, Any], formats: set, out_dir: pathlib.Path) -> None:
    exports = data.get("_exports") or {}

    if "json" in formats:
        doc = exports.get("json")
        if doc is not None:
            fncWriteJSON(str(out_dir / f"pim-data-export-{fncIsoStamp()}.json"), doc)
        else:
            fncWriteJSON(str(out_dir / f"{mod}.json"), {k: v for k, v in data.items() if k != "_exports"})

    if "csv" in formats:
        csv_exports = exports.get("csv") or {}
        for name, text in csv_exports.items():
            fncWriteCSVText(out_dir, name, text)
        # Modules without their own CSV exports get one file per table
        if not csv_exports:
            for key, val in data.items():
                if key.startswith("_") or key == "summary":
                    continue
                if isinstance(val, list) and val and isinstance(val[0], dict):
                    fncWriteText(str(out_dir / f"{mod}_{key}.csv"), to_csv(list(val[0].keys()), val))


# ================================================================
# Function: fncExportSingleModule
# Purpose  : Handle all export formats for one module
# ================================================================
def fncExportSingleModule(module_name: str, data: dict, formats: set, root: Optional[pathlib.Path] = None) -> pathlib.Path:
    out_dir = fncGetExportPath(module_name, root)
    _write_module(module_name, data or {}, formats, out_dir)
    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir


# ================================================================
# Function: fncExportMultiModule
# Purpose  : Handle all export formats when running multiple modules
# ================================================================
def fncExportMultiModule(results: dict, formats: set, root: Optional[pathlib.Path] = None) -> pathlib.Path:
    out_dir = fncGetExportPath("ALL_MODULES", root)
    for mod, data in results.items():
        if not isinstance(data, dict) or data.get("error") or data.get("skipped"):
            continue
        mod_dir = fncEnsureFolder(out_dir / mod)
        _write_module(mod, data, formats, mod_dir)
    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
