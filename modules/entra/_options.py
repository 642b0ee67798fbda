# ================================================================
# File     : modules/entra/_options.py
# Purpose  : Read shared run options off the argparse namespace
# Notes    : Leading underscore keeps it out of module discovery.
#            Anything missing falls back to the dashboard defaults.
# ================================================================

from datetime import datetime, timezone
from typing import Any, Dict

from core.utils import fncParseDateTime, fncPrintMessage
from engine.export_rows import EXPORT_SECTIONS
from engine.models import ALL_VISIBLE


def _int_option(args, name: str, default: int) -> int:
    value = getattr(args, name, None)
    return default if value is None else value


def options(args) -> Dict[str, Any]:
    as_of_raw = getattr(args, "as_of", None)
    as_of = fncParseDateTime(as_of_raw) if as_of_raw else None
    if as_of_raw and as_of is None:
        fncPrintMessage(f"Could not parse --as-of '{as_of_raw}', using the current time", "warn")
    return {
        "visibility": getattr(args, "visibility", None) or ALL_VISIBLE,
        "as_of": as_of or datetime.now(timezone.utc),
        "window_days": _int_option(args, "window_days", 7),
        "top": _int_option(args, "top", 10),
        "privileged_only": bool(getattr(args, "privileged_only", False)),
        "filters": getattr(args, "chart_filters", None) or {},
        "modes": getattr(args, "chart_modes", None) or {},
        "sections": tuple(getattr(args, "sections", None) or EXPORT_SECTIONS),
    }
