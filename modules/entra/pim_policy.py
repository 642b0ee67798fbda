# ================================================================
# File     : modules/entra/pim_policy.py
# Purpose  : Entra PIM policy report: resolved activation, assignment
#            and notification settings per role and per PIM group
# Notes    : Produces the role policy and group policy CSV exports
# ================================================================

from datetime import datetime, timezone
from typing import Any, Dict, List

from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from engine.export_rows import (
    GROUP_SUMMARY_HEADERS,
    ROLE_SUMMARY_HEADERS,
    SECTION_GROUP_POLICIES,
    SECTION_ROLE_POLICIES,
    build_json_export,
    group_summary_row,
    role_summary_row,
    to_csv,
)
from engine.resolver import (
    NOTIFICATION_TARGETS,
    has_policy_settings,
    notification_table,
    resolve_group,
    resolve_role,
)
from modules.entra._options import options


def _notification_rows(resource: str, surface: str, resolved) -> List[Dict[str, Any]]:
    rows = []
    for caller, level in NOTIFICATION_TARGETS:
        for row in notification_table(resolved, caller, level):
            rows.append({"resource": resource, "surface": surface, "target": f"{caller}/{level}", **row})
    return rows


def _assignment_row(resource: str, surface: str, resolved) -> Dict[str, Any]:
    a = resolved.assignment
    return {
        "resource": resource,
        "surface": surface,
        "eligibleAllowsPermanent": a.eligible_allows_permanent,
        "eligibleMaxDuration": a.eligible_max_duration or "",
        "activeAllowsPermanent": a.active_allows_permanent,
        "activeMaxDuration": a.active_max_duration or "",
        "activeRequiresMfa": a.active_requires_mfa,
        "activeRequiresJustification": a.active_requires_justification,
    }


def _activation_row(resource: str, surface: str, resolved) -> Dict[str, Any]:
    act = resolved.activation
    return {
        "resource": resource,
        "surface": surface,
        "maxDuration": act.max_duration or "",
        "authentication": act.authentication,
        "justification": act.requires_justification,
        "ticket": act.requires_ticket,
        "approval": act.approval_required,
        "approvers": "; ".join(act.approvers),
    }


def run(snapshot, args):
    run_id = fncNewRunId("pimpolicy")
    ts = datetime.now(timezone.utc).isoformat()
    opts = options(args)
    vis = opts["visibility"]
    fncPrintMessage(f"Running PIM Policy Report (run={run_id})", "info")

    contexts = list(snapshot.auth_contexts)
    roles = vis.filter(snapshot.roles)
    groups = vis.filter(snapshot.groups)

    role_rows = [role_summary_row(r, contexts) for r in roles]
    group_rows = [group_summary_row(g) for g in groups]

    activation_rows: List[Dict[str, Any]] = []
    assignment_rows: List[Dict[str, Any]] = []
    notification_rows: List[Dict[str, Any]] = []
    resolved_policies: Dict[str, Any] = {}

    for role in roles:
        resolved = resolve_role(role, contexts)
        resolved_policies[role.definition.id or role.name] = resolved.to_dict()
        activation_rows.append(_activation_row(role.name, "role", resolved))
        assignment_rows.append(_assignment_row(role.name, "role", resolved))
        notification_rows.extend(_notification_rows(role.name, "role", resolved))

    for group in groups:
        if group.member_policy is None and group.owner_policy is None:
            fncPrintMessage(f"{group.name}: no member/owner policies in snapshot", "debug")
            continue
        for surface, resolved in resolve_group(group, contexts).items():
            resolved_policies[f"{group.group.id or group.name}/{surface}"] = resolved.to_dict()
            activation_rows.append(_activation_row(group.name, surface, resolved))
            assignment_rows.append(_assignment_row(group.name, surface, resolved))
            notification_rows.extend(_notification_rows(group.name, surface, resolved))

    not_configured = [r["Role Name"] for r in role_rows if r["PIM Configured"] == "No"]
    no_settings = [g.name for g in groups if not has_policy_settings(g)]
    approval_roles = sum(1 for r in role_rows if r["Approval Required"] == "Yes")
    mfa_roles = sum(1 for r in role_rows if r["MFA Required"] == "Yes")

    # Console previews
    if role_rows:
        fncPrintMessage("Role activation policies", "info")
        print(fncToTable(role_rows, headers=["Role Name", "Max Activation Duration", "MFA Required", "Approval Required", "Auth Context"], max_rows=20))
    if group_rows:
        fncPrintMessage("PIM group policies", "info")
        print(fncToTable(group_rows, headers=["Group Name", "Member Max Duration", "Member Approval", "Owner Max Duration", "Owner Approval"], max_rows=20))
    if not_configured:
        fncPrintMessage(f"{len(not_configured)} role(s) without a PIM policy in the snapshot", "warn")

    exports: Dict[str, Any] = {"csv": {}}
    if SECTION_ROLE_POLICIES in opts["sections"]:
        exports["csv"]["pim-role-policies"] = to_csv(ROLE_SUMMARY_HEADERS, role_rows)
    if SECTION_GROUP_POLICIES in opts["sections"]:
        exports["csv"]["pim-group-policies"] = to_csv(GROUP_SUMMARY_HEADERS, group_rows)
    policy_sections = [s for s in opts["sections"] if s in (SECTION_ROLE_POLICIES, SECTION_GROUP_POLICIES)]
    if policy_sections:
        exports["json"] = build_json_export(roles, groups, policy_sections)

    kpis = [
        {"label": "Roles", "value": str(len(role_rows)), "tone": "secondary", "icon": "bi-person-badge"},
        {"label": "Without PIM Policy", "value": str(len(not_configured)), "tone": "danger", "icon": "bi-shield-x"},
        {"label": "Approval Required", "value": str(approval_roles), "tone": "success", "icon": "bi-person-check"},
        {"label": "MFA on Activation", "value": str(mfa_roles), "tone": "success", "icon": "bi-key"},
        {"label": "Groups w/o Settings", "value": str(len(no_settings)), "tone": "warning", "icon": "bi-people"},
    ]

    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": ts,
        "summary": {
            "Roles": len(role_rows),
            "Groups": len(group_rows),
            "Roles Without PIM Policy": len(not_configured),
            "Roles Requiring Approval": approval_roles,
            "Roles Requiring MFA": mfa_roles,
            "Groups Without Policy Settings": len(no_settings),
        },
        "resolved_policies": resolved_policies,

        # Tables
        "role_policies": role_rows,
        "group_policies": group_rows,
        "activation_settings": activation_rows,
        "assignment_settings": assignment_rows,
        "notification_settings": notification_rows,

        # Dashboard
        "_kpis": kpis,
        "_charts": {
            "place": "summary",
            "coverage": {
                "labels": ["PIM Configured", "Not Configured"],
                "data": [len(role_rows) - len(not_configured), len(not_configured)],
            },
        },
        "_title": "PIM Policy Report",
        "_subtitle": "Activation, assignment and notification settings per role and PIM group",
        "_exports": exports,
    }

    fncPrintMessage(f"Policy report built for {len(role_rows)} roles and {len(group_rows)} groups", "success")
    return data
