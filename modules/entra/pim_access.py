# ================================================================
# File     : modules/entra/pim_access.py
# Purpose  : Access rights report: every permanent, eligible and
#            active assignment across roles and PIM groups
# Notes    : Produces the access rights CSV and the raw JSON export
# ================================================================

from datetime import datetime, timezone

from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from engine.aggregator import count_by_category, expiring_within, split_by_member_type
from engine.export_rows import (
    ASSIGNMENT_DETAIL_HEADERS,
    SECTION_ACCESS_RIGHTS,
    assignment_detail_rows,
    build_json_export,
    to_csv,
)
from engine.models import CATEGORIES
from modules.entra._options import options


def run(snapshot, args):
    run_id = fncNewRunId("pimaccess")
    ts = datetime.now(timezone.utc).isoformat()
    opts = options(args)
    vis = opts["visibility"]
    fncPrintMessage(f"Running PIM Access Rights (run={run_id})", "info")

    roles = vis.filter(snapshot.roles)
    groups = vis.filter(snapshot.groups)

    rows = []
    for resource in roles + groups:
        rows.extend(assignment_detail_rows(resource))

    counts = {c: count_by_category(roles, groups, c) for c in CATEGORIES}
    split = split_by_member_type(roles, groups)
    expiring = expiring_within(roles, groups, opts["window_days"], opts["as_of"])
    no_expiry = [r for r in rows if r["Expiry Date"] == "No Expiration"]

    # Console previews
    if rows:
        fncPrintMessage("Access rights (first 20)", "info")
        print(fncToTable(rows, headers=["Resource Name", "Principal Name", "Assignment Type", "Member Type", "Expiry Date"], max_rows=20))
    else:
        fncPrintMessage("No assignments in the visible workloads.", "warn")
    if counts["permanent"]:
        fncPrintMessage(f"{counts['permanent']} permanent assignment(s), worth a second look", "warn")

    exports = {"csv": {}}
    if SECTION_ACCESS_RIGHTS in opts["sections"]:
        exports["csv"]["pim-access-rights"] = to_csv(ASSIGNMENT_DETAIL_HEADERS, rows)
        exports["json"] = build_json_export(roles, groups, [SECTION_ACCESS_RIGHTS])

    kpis = [
        {"label": "Permanent", "value": str(counts["permanent"]), "tone": "danger", "icon": "bi-shield-lock"},
        {"label": "Eligible", "value": str(counts["eligible"]), "tone": "secondary", "icon": "bi-hourglass-split"},
        {"label": "Active", "value": str(counts["active"]), "tone": "warning", "icon": "bi-lightning-charge"},
        {"label": "Via Group", "value": str(split["group"]), "tone": "secondary", "icon": "bi-people"},
        {"label": f"Expiring ≤{opts['window_days']}d", "value": str(len(expiring)), "tone": "warning", "icon": "bi-clock-history"},
    ]

    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": ts,
        "summary": {
            "Total Assignments": len(rows),
            "Permanent": counts["permanent"],
            "Eligible": counts["eligible"],
            "Active": counts["active"],
            "Direct": split["direct"],
            "Via Group": split["group"],
            "No Expiration": len(no_expiry),
            "Expiring Soon": len(expiring),
        },

        # Tables
        "access_rights": rows,
        "expiring_soon": expiring,

        # Dashboard
        "_kpis": kpis,
        "_charts": {
            "place": "summary",
            "assignments": {
                "labels": ["Permanent", "Eligible", "Active"],
                "data": [counts["permanent"], counts["eligible"], counts["active"]],
            },
        },
        "_title": "PIM Access Rights",
        "_subtitle": "Who holds which role or group, how, and until when",
        "_exports": exports,
    }

    fncPrintMessage(f"Access rights collected: {len(rows)} assignment rows", "success")
    return data
