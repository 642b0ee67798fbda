# ================================================================
# File     : snapshot.py
# Purpose  : Load an already-fetched PIM snapshot from disk
# Notes    : {"roles": [...], "groups": [...], "authenticationContexts": [...]}
#            A bare list is read as roles only.
# ================================================================

import pathlib

from core.utils import fncPrintMessage, fncReadJSON
from engine.models import Snapshot, parse_snapshot


# ================================================================
# Function: fncLoadSnapshot
# Purpose : Read and parse a snapshot JSON file into models
# Notes   : Raises on unreadable files; the CLI reports and exits
# ================================================================
def fncLoadSnapshot(path: str) -> Snapshot:
    p = pathlib.Path(path).expanduser()
    if not p.is_file():
        raise FileNotFoundError(f"Snapshot not found: {p}")

    doc = fncReadJSON(str(p), safe=False)
    if isinstance(doc, list):
        doc = {"roles": doc}

    snap = parse_snapshot(doc)
    fncPrintMessage(
        f"Snapshot loaded: {len(snap.roles)} roles, {len(snap.groups)} groups, "
        f"{len(snap.auth_contexts)} auth contexts",
        "info",
    )
    errored = [r.name for r in snap.roles if r.config_error]
    if errored:
        fncPrintMessage(f"{len(errored)} role(s) carry a configError from the fetch", "warn")
    return snap
