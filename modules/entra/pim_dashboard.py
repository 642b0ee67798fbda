# ================================================================
# File     : modules/entra/pim_dashboard.py
# Purpose  : Tenant-wide PIM dashboard: overview cards, the seven
#            security charts, top users, expiring assignments and
#            approvers
# Notes    : Reads a loaded snapshot only; no Graph calls
# ================================================================

from datetime import datetime, timezone
from typing import Any, Dict, List

from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from engine.aggregator import (
    aggregate_totals,
    expiring_within,
    overview_stats,
    roles_with_config_errors,
    top_approvers,
    top_principals_by_assignment_volume,
)
from engine.charts import build_charts
from engine.durations import duration_label
from engine.export_rows import chart_table_rows
from engine.resolver import resolve_role
from modules.entra._options import options

_KPI_STYLE = {
    "totalResources": ("secondary", "bi-collection"),
    "activeSessions": ("warning", "bi-lightning-charge"),
    "permanentAssignments": ("danger", "bi-shield-lock"),
    "pimCoverage": ("success", "bi-shield-check"),
    "eligibleAssignments": ("secondary", "bi-hourglass-split"),
    "customRoles": ("secondary", "bi-tools"),
    "rolesRequiringApproval": ("success", "bi-person-check"),
}


def _role_overview(roles, auth_contexts) -> List[Dict[str, Any]]:
    rows = []
    for role in roles:
        act = resolve_role(role, auth_contexts).activation
        rows.append({
            "roleName": role.name,
            "privileged": role.definition.is_privileged,
            "maxDuration": duration_label(act.max_duration),
            "authentication": act.authentication,
            "approval": act.approval_required,
            "permanent": len(role.permanent),
            "eligible": len(role.eligible),
            "active": len(role.active),
        })
    # noisiest roles first
    rows.sort(key=lambda r: -(r["permanent"] + r["eligible"] + r["active"]))
    return rows


def run(snapshot, args):
    run_id = fncNewRunId("pimdash")
    ts = datetime.now(timezone.utc).isoformat()
    opts = options(args)
    vis = opts["visibility"]
    fncPrintMessage(f"Running PIM Dashboard (run={run_id})", "info")

    roles, groups, contexts = list(snapshot.roles), list(snapshot.groups), list(snapshot.auth_contexts)
    visible_roles = vis.filter(roles)

    stats = overview_stats(roles, groups, vis)
    totals = aggregate_totals(roles, groups, vis)
    charts = build_charts(
        roles, groups, vis,
        filters=opts["filters"],
        modes=opts["modes"],
        privileged_only=opts["privileged_only"],
        auth_contexts=contexts,
    )
    top_users = top_principals_by_assignment_volume(roles, groups, opts["top"], vis)
    expiring = expiring_within(roles, groups, opts["window_days"], opts["as_of"], vis, limit=opts["top"])
    approvers = top_approvers(visible_roles, opts["top"])
    config_errors = roles_with_config_errors(roles)
    role_overview = _role_overview(visible_roles, contexts)

    if not totals["hasRolesData"] and not totals["hasGroupsData"]:
        fncPrintMessage("Snapshot holds no roles or groups. Nothing to sniff.", "warn")

    # Console previews
    fncPrintMessage("Overview", "info")
    print(fncToTable([{"Metric": s["label"], "Value": s["value"], "Detail": s["subtext"] or ""} for s in stats]))
    for key in ("assignmentData", "mfaData", "durationData"):
        fncPrintMessage(f"Chart: {key}", "info")
        print(fncToTable(chart_table_rows(charts[key])))
    if top_users:
        fncPrintMessage(f"Top users by assignment volume (top {opts['top']})", "info")
        print(fncToTable(top_users, headers=["displayName", "permanent", "eligible", "active", "total"]))
    if expiring:
        fncPrintMessage(f"Expiring within {opts['window_days']} days", "warn")
        print(fncToTable(expiring, headers=["principalName", "resourceName", "type", "daysUntilExpiry"]))
    for err in config_errors:
        fncPrintMessage(f"{err['roleName']}: {err['configError']}", "warn")

    kpis = []
    for s in stats:
        tone, icon = _KPI_STYLE[s["key"]]
        value = f"{s['value']}%" if s["key"] == "pimCoverage" else str(s["value"])
        kpis.append({"label": s["label"], "value": value, "tone": tone, "icon": icon})

    chart_summary = [
        {"Chart": key, **row}
        for key, series in charts.items()
        for row in chart_table_rows(series)
    ]

    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": ts,
        "as_of": opts["as_of"].isoformat(),
        "summary": {s["label"]: s["value"] for s in stats},
        "totals": totals,
        "charts": charts,

        # Tables
        "role_overview": role_overview,
        "top_users": top_users,
        "expiring_soon": expiring,
        "top_approvers": approvers,
        "configuration_errors": config_errors,
        "chart_summary": chart_summary,

        # Dashboard
        "_kpis": kpis,
        "_charts": {
            "place": "summary",
            **{
                key: {
                    "labels": [e["name"] for e in series],
                    "data": [e["value"] for e in series],
                    "colors": [e["color"] for e in series],
                }
                for key, series in charts.items()
            },
        },
        "_title": "PIM Dashboard",
        "_subtitle": "Assignments, activation policy and coverage across roles and PIM groups",
    }

    fncPrintMessage(
        f"Dashboard built: {totals['totalItems']} items, "
        f"{totals['totals']['eligible']} eligible / {totals['totals']['active']} active / "
        f"{totals['totals']['permanent']} permanent",
        "success",
    )
    return data
