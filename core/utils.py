# ================================================================
# File     : utils.py
# Purpose  : Common helpers for PimPoodle (console, files, time, data)
# Notes    : British English; witty output; colorama + tabulate
# ================================================================

import os
import re
import json
import random
import pathlib
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from colorama import Fore, Style, init as _colorama_init
from tabulate import tabulate

_colorama_init(autoreset=True)

DEBUG_ENABLED = False

# ================================================================
# Function: fncSetDebug
# Purpose : Globally enable/disable debug output
# Notes   : Called from main after parsing --debug
# ================================================================
def fncSetDebug(enabled: bool) -> None:
    global DEBUG_ENABLED
    DEBUG_ENABLED = bool(enabled)


# ================================================================
# Function: fncPrintMessage
# Purpose : Standardised console output with levels and colours
# Notes   : Levels: info, warn, error, success, debug
# ================================================================
def fncPrintMessage(message: str, level: str = "info") -> None:
    if level == "debug" and not DEBUG_ENABLED:
        return
    colours = {
        "info": Fore.CYAN,
        "warn": Fore.YELLOW,
        "error": Fore.RED,
        "success": Fore.GREEN,
        "debug": Fore.MAGENTA
    }
    prefix = {
        "info": "[•]",
        "warn": "[!]",
        "error": "[✗]",
        "success": "[✓]",
        "debug": "[∆]"
    }
    colour = colours.get(level, "")
    mark = prefix.get(level, "[ ]")
    print(f"{colour}{mark} {message}{Style.RESET_ALL}")


# ================================================================
# Function: fncDisplayBanner
# Purpose : Display the PimPoodle banner with the mascot
# Notes   : Rainbow cycle per character; resets each line 🐩
# ================================================================
def fncDisplayBanner(version: str = "v1.0") -> None:
    banner_lines = [
        " ___ _       ___                 _ _     ",
        "| _ (_)_ __ | _ \\___  ___  __| | |___ ",
        "|  _/ | '  \\|  _/ _ \\/ _ \\/ _` | / -_)",
        "|_| |_|_|_|_|_| \\___/\\___/\\__,_|_\\___|",
    ]
    poodle_lines = [
        "   /)---(\\   ",
        "  (/ . . \\)  ",
        "   \\(*)/  ~  ",
        "   (____)    ",
    ]
    colours = [Fore.RED, Fore.YELLOW, Fore.GREEN, Fore.BLUE]

    def rainbow(text: str) -> str:
        out = ""
        for i, ch in enumerate(text):
            out += colours[i % len(colours)] + ch
        return out + Style.RESET_ALL

    width = max(len(line) for line in banner_lines) + 4
    print("\n")
    for banner_part, poodle_part in zip(banner_lines, poodle_lines):
        print(rainbow(banner_part.ljust(width) + poodle_part))

    print(f"{Fore.CYAN}\nPimPoodle {version}: 'Who holds the keys, and for how long?'{Style.RESET_ALL}\n")


# ================================================================
# Function: fncBlurb
# Purpose : Display a witty blurb describing current action
# Notes   : Used when a scan starts or a snapshot is loaded
# ================================================================
def fncBlurb(action: str, flavour: Optional[str] = None) -> None:
    blurbs = {
        "entra": [
            "Sniffing PIM policies for forgotten approval chains…",
            "Counting who can become Global Admin before lunch…",
            "Following the eligibility scent trail…"
        ],
        "snapshot": [
            "Unpacking the snapshot, mind the crumbs…",
            "Reading yesterday's tenant like a newspaper…"
        ],
        "generic": [
            "Preparing the harness…",
            "Sharpening claws and sniffers…"
        ]
    }
    flavour_text = flavour or random.choice(blurbs.get(action, blurbs["generic"]))
    fncPrintMessage(flavour_text, "info")


# ================================================================
# Function: fncEnsureFolder
# Purpose : Create a folder if it does not exist
# Notes   : Returns pathlib.Path object
# ================================================================
def fncEnsureFolder(path: str) -> pathlib.Path:
    p = pathlib.Path(path).expanduser().resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


# ================================================================
# Function: fncLoadEnv
# Purpose : Read environment variable with default
# Notes   : Strips quotes; returns default if empty
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name, default)
    if isinstance(val, str):
        val = val.strip().strip('"').strip("'")
        return val or default
    return val


# ================================================================
# Function: fncReadJSON
# Purpose : Load JSON from file safely
# Notes   : Returns {} on failure when safe=True
# ================================================================
def fncReadJSON(path: str, safe: bool = True) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        if safe:
            fncPrintMessage(f"Could not read JSON '{path}': {ex}", "warn")
            return {}
        raise


# ================================================================
# Function: fncWriteJSON
# Purpose : Write data to JSON with nice formatting
# Notes   : Ensures parent folder exists; UTF-8; 2-space indent
# ================================================================
def fncWriteJSON(path: str, data: Any) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    fncPrintMessage(f"Saved JSON → {p}", "success")


# ================================================================
# Function: fncWriteText
# Purpose : Write pre-rendered text (CSV) to disk
# Notes   : Ensures parent folder exists; no newline translation
# ================================================================
def fncWriteText(path: str, text: str) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    fncPrintMessage(f"Saved CSV → {p}", "success")


_FRACTION_RE = re.compile(r"\.(\d{6})\d+")

# ================================================================
# Function: fncParseDateTime
# Purpose : Parse Graph-style ISO8601 timestamps
# Notes   : Trailing Z and 7-digit fractions accepted; naive values
#           are treated as UTC; returns None when unparseable
# ================================================================
def fncParseDateTime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        s = _FRACTION_RE.sub(r".\1", value.strip())
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None, max_rows: Optional[int] = None) -> str:
    rows = list(rows)
    if not rows:
        return "(no data)"

    more = 0
    if max_rows and len(rows) > max_rows:
        more = len(rows) - max_rows
        rows = rows[:max_rows]

    if isinstance(rows[0], dict):
        hdrs = headers or list(rows[0].keys())
        table_rows = [[r.get(h, "") for h in hdrs] for r in rows]
        out = tabulate(table_rows, headers=hdrs, tablefmt="github")
    else:
        out = tabulate(rows, headers=(headers or "firstrow"), tablefmt="github")

    if more:
        out += f"\n… and {more} more"
    return out


# ================================================================
# Function: fncNewRunId
# Purpose : Generate a short unique run identifier
# Notes   : Useful for correlating logs and outputs
# ================================================================
def fncNewRunId(prefix: str = "run") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
