# ================================================================
# File     : engine/durations.py
# Purpose  : Parse PIM duration strings (PT8H, P1D, P1DT4H) into hours
#            and bucket them for charts and overview labels
# Notes    : Minutes and seconds are ignored; never raises on input
# ================================================================

import math
import re
from typing import Optional

_HOURS_RE = re.compile(r"(\d+)H")
_DAYS_RE = re.compile(r"(\d+)D")

BUCKET_NA = "N/A"
DURATION_BUCKETS = ("<1h", "2-4h", "5-8h", "9-12h", ">12h", BUCKET_NA)


def _first_int(pattern: "re.Pattern", text: str) -> int:
    m = pattern.search(text)
    return int(m.group(1)) if m else 0


def parse_hours(duration: Optional[str]) -> int:
    """Hours in an ISO-8601-ish duration: the number before H plus 24x the number before D."""
    if not duration or not isinstance(duration, str):
        return 0
    return _first_int(_HOURS_RE, duration) + 24 * _first_int(_DAYS_RE, duration)


def bucket_label(hours: int) -> str:
    """Histogram bucket for the activation duration chart."""
    if hours <= 1:
        return "<1h"
    if hours <= 4:
        return "2-4h"
    if hours <= 8:
        return "5-8h"
    if hours <= 12:
        return "9-12h"
    return ">12h"


def compact_label(hours: int) -> str:
    if hours < 1:
        return "<1h"
    if hours <= 24:
        return f"{hours}h"
    # half-up, not banker's rounding: 36h -> 2d
    return f"{int(math.floor(hours / 24 + 0.5))}d"


def duration_label(duration: Optional[str]) -> str:
    if not duration:
        return BUCKET_NA
    return compact_label(parse_hours(duration))
