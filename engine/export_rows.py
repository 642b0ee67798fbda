# ================================================================
# File     : engine/export_rows.py
# Purpose  : Flatten resolved policies and assignments into ordered
#            export rows, CSV text and the raw JSON export
# Notes    : Column order is fixed by the *_HEADERS tuples; every
#            text cell is quote-wrapped with inner quotes doubled
# ================================================================

import csv
import io
from typing import Any, Dict, Iterable, List, Optional, Sequence

from engine.aggregator import compute_group_stats, percent
from engine.models import (
    ACCESS_OWNER,
    CALLER_END_USER,
    CATEGORY_ACTIVE,
    CATEGORY_ELIGIBLE,
    CATEGORY_PERMANENT,
    LEVEL_ASSIGNMENT,
    PRINCIPAL_GROUP,
    RULE_APPROVAL,
    Assignment,
    AuthContext,
    GroupResource,
    RoleResource,
    derive_member_type,
)
from engine.resolver import group_settings, resolve_role
from engine.rules import RuleIndex

ROLE_SUMMARY_HEADERS = (
    "Role Name", "Description", "Built-in", "Privileged", "PIM Configured",
    "Max Activation Duration", "MFA Required", "Justification Required",
    "Approval Required", "Approvers", "Auth Context",
    "Permanent Count", "Eligible Count", "Active Count", "Total Assignments",
)
ASSIGNMENT_DETAIL_HEADERS = (
    "Resource Name", "Principal Name", "Principal Type", "Principal Email",
    "Assignment Type", "Member Type", "Scope Type", "Scope ID",
    "Start Date", "Expiry Date", "Status",
)
GROUP_SUMMARY_HEADERS = (
    "Group Name", "Group Type", "Role-Assignable",
    "Eligible Members", "Eligible Owners", "Active Members", "Active Owners",
    "Member Max Duration", "Member MFA", "Member Approval",
    "Owner Max Duration", "Owner MFA", "Owner Approval",
)

SECTION_ROLE_POLICIES = "rolePolicies"
SECTION_ACCESS_RIGHTS = "accessRights"
SECTION_GROUP_POLICIES = "groupPolicies"
EXPORT_SECTIONS = (SECTION_ROLE_POLICIES, SECTION_ACCESS_RIGHTS, SECTION_GROUP_POLICIES)

NO_EXPIRATION = "No Expiration"

_TYPE_LABELS = {
    CATEGORY_PERMANENT: "Permanent",
    CATEGORY_ELIGIBLE: "Eligible",
    CATEGORY_ACTIVE: "Active (PIM)",
}


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _all_stage_approvers(role: RoleResource) -> List[str]:
    if role.policy is None:
        return []
    rule = RuleIndex(role.policy.rules).find(RULE_APPROVAL, CALLER_END_USER, LEVEL_ASSIGNMENT)
    if rule is None:
        return []
    refs = [a for stage in rule.approval_stages for a in stage.primary_approvers] or list(rule.primary_approvers)
    return [a.label for a in refs]


def role_summary_row(role: RoleResource, auth_contexts: Optional[Iterable[AuthContext]] = None) -> Dict[str, Any]:
    """One policy summary record per role, keyed by ROLE_SUMMARY_HEADERS."""
    resolved = resolve_role(role, auth_contexts)
    act = resolved.activation
    approval_rule = RuleIndex(role.policy.rules).find(RULE_APPROVAL, CALLER_END_USER, LEVEL_ASSIGNMENT) if role.policy else None
    counts = [len(role.permanent), len(role.eligible), len(role.active)]
    values = [
        role.name,
        role.definition.description,
        _yes_no(role.definition.is_built_in),
        _yes_no(role.definition.is_privileged),
        _yes_no(role.policy is not None and role.policy.configured),
        act.max_duration or "",
        _yes_no(act.requires_mfa),
        _yes_no(act.requires_justification),
        _yes_no(act.approval_required) if approval_rule is not None else "",
        "; ".join(_all_stage_approvers(role)),
        act.auth_context_label or "",
        *counts,
        sum(counts),
    ]
    return dict(zip(ROLE_SUMMARY_HEADERS, values))


def _detail_row(resource_name: str, a: Assignment, type_label: str, start: Optional[str], end: str) -> Dict[str, Any]:
    p = a.principal
    values = [
        resource_name,
        (p.display_name if p and p.display_name else None) or a.principal_id,
        "Group" if p and p.kind == PRINCIPAL_GROUP else "User",
        p.email if p else "",
        type_label,
        derive_member_type(a),
        a.scope.type if a.scope else "tenant-wide",
        a.directory_scope_id or "/",
        start or "",
        end,
        a.status or "Provisioned",
    ]
    return dict(zip(ASSIGNMENT_DETAIL_HEADERS, values))


def assignment_detail_rows(resource: Any) -> List[Dict[str, Any]]:
    """One row per assignment of a role, or of a group labelled '<group> (Member|Owner)'."""
    rows = []
    if isinstance(resource, RoleResource):
        for a in resource.permanent:
            rows.append(_detail_row(resource.name, a, _TYPE_LABELS[CATEGORY_PERMANENT], a.created_date_time, ""))
        for category in (CATEGORY_ELIGIBLE, CATEGORY_ACTIVE):
            for a in resource.assignments_of(category):
                end = a.expires_at or (NO_EXPIRATION if a.expiration_type == "noExpiration" else "")
                rows.append(_detail_row(resource.name, a, _TYPE_LABELS[category], a.starts_at, end))
        return rows

    if isinstance(resource, GroupResource):
        for a in resource.assignments:
            access = "Owner" if a.access_type == ACCESS_OWNER else "Member"
            rows.append(_detail_row(
                f"{resource.name} ({access})",
                a,
                _TYPE_LABELS[a.category],
                a.starts_at,
                a.expires_at or NO_EXPIRATION,
            ))
        return rows

    raise TypeError(f"Not a role or group resource: {type(resource).__name__}")


def group_summary_row(group: GroupResource) -> Dict[str, Any]:
    stats = compute_group_stats(group.assignments)
    s = group_settings(group)
    values = [
        group.name,
        group.group.group_type,
        _yes_no(group.group.is_assignable_to_role),
        stats["eligibleMembers"],
        stats["eligibleOwners"],
        stats["activeMembers"],
        stats["activeOwners"],
        (s.member_max_duration if s else None) or "",
        _yes_no(bool(s and s.member_requires_mfa)),
        _yes_no(bool(s and s.member_requires_approval)),
        (s.owner_max_duration if s else None) or "",
        _yes_no(bool(s and s.owner_requires_mfa)),
        _yes_no(bool(s and s.owner_requires_approval)),
    ]
    return dict(zip(GROUP_SUMMARY_HEADERS, values))


def _cell(value: Any) -> Any:
    if isinstance(value, bool):
        return _yes_no(value)
    return "" if value is None else value


def csv_escape(value: Any) -> str:
    """Single CSV cell: numbers bare, everything else quoted with inner quotes doubled."""
    buf = io.StringIO()
    csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="").writerow([_cell(value)])
    return buf.getvalue()


def to_csv(headers: Sequence[str], rows: Iterable[Dict[str, Any]]) -> str:
    """Header line then one line per row, '\\n' separated, no trailing newline."""
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(headers)
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for row in rows:
        writer.writerow([_cell(row.get(h)) for h in headers])
    return buf.getvalue()[:-1]


def build_json_export(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    sections: Iterable[str] = EXPORT_SECTIONS,
) -> Dict[str, Any]:
    """Raw records: roles when role policies or access rights are selected, groups for group policies."""
    sections = set(sections)
    unknown = sections - set(EXPORT_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown export sections: {sorted(unknown)}")
    out: Dict[str, Any] = {}
    if sections & {SECTION_ROLE_POLICIES, SECTION_ACCESS_RIGHTS}:
        out["roles"] = [r.raw for r in roles or ()]
    if SECTION_GROUP_POLICIES in sections:
        out["groups"] = [g.raw for g in groups or ()]
    return out


def chart_table_rows(series: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Category / Count / Percentage rows for rendering a chart as a table."""
    total = sum(e["value"] for e in series)
    return [
        {"Category": e["name"], "Count": e["value"], "Percentage": f"{percent(e['value'], total)}%"}
        for e in series
    ]
