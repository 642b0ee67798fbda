# ================================================================
# File     : engine/aggregator.py
# Purpose  : Roll role and group assignments up into counts,
#            coverage, rankings and expiry windows
# Notes    : Pure functions over the supplied collections; every
#            figure is recomputed from inputs, nothing is cached.
# ================================================================

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.utils import fncParseDateTime
from engine.models import (
    ACCESS_OWNER,
    ALL_VISIBLE,
    CATEGORIES,
    CATEGORY_ACTIVE,
    CATEGORY_ELIGIBLE,
    CATEGORY_PERMANENT,
    MEMBER_TYPE_GROUP,
    Assignment,
    GroupResource,
    RoleResource,
    Visibility,
    derive_member_type,
)
from engine.resolver import resolve_group, resolve_role

DEFAULT_TOP_LIMIT = 10
DEFAULT_WINDOW_DAYS = 7


def _visible(roles: Iterable[RoleResource], groups: Iterable[GroupResource], visibility: Optional[Visibility]):
    vis = visibility or ALL_VISIBLE
    return vis.filter(roles or ()), vis.filter(groups or ())


def percent(part: int, whole: int) -> int:
    """Whole percent, half rounded up; 0 when whole is 0."""
    if not whole:
        return 0
    return int(math.floor(100 * part / whole + 0.5))


def _check_category(category: str) -> None:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown assignment category: {category!r}")


def _group_label(group: GroupResource, assignment: Assignment) -> str:
    access = "Owner" if assignment.access_type == ACCESS_OWNER else "Member"
    return f"{group.name} ({access})"


def count_by_category(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    category: str,
    visibility: Optional[Visibility] = None,
) -> int:
    _check_category(category)
    vis_roles, vis_groups = _visible(roles, groups, visibility)
    return sum(len(r.assignments_of(category)) for r in vis_roles + vis_groups)


def split_by_member_type(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
) -> Dict[str, int]:
    """direct + group == every visible assignment across the three categories."""
    vis_roles, vis_groups = _visible(roles, groups, visibility)
    out = {"direct": 0, "group": 0}
    for res in vis_roles + vis_groups:
        for a in res.all_assignments:
            out["group" if derive_member_type(a) == MEMBER_TYPE_GROUP else "direct"] += 1
    return out


def pim_coverage_percent(privileged_roles: Sequence[RoleResource]) -> int:
    """Share of the given privileged roles that carry a PIM policy, as a whole percent."""
    with_policy = sum(1 for r in privileged_roles if r.policy is not None)
    return percent(with_policy, len(privileged_roles))


def top_principals_by_assignment_volume(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    limit: int = DEFAULT_TOP_LIMIT,
    visibility: Optional[Visibility] = None,
) -> List[Dict[str, Any]]:
    """
    Principals ranked by how many assignments they hold.

    Roles are walked before groups and permanent/eligible/active in
    that order; ties keep first-seen order (stable sort).
    """
    vis_roles, vis_groups = _visible(roles, groups, visibility)
    seen: Dict[str, Dict[str, Any]] = {}

    def _add(a: Assignment, resource_name: str) -> None:
        key = a.principal_id or (a.principal.id if a.principal else "")
        entry = seen.get(key)
        if entry is None:
            name = a.principal.display_name if a.principal and a.principal.display_name else "Unknown User"
            entry = seen[key] = {
                "principalId": key,
                "displayName": name,
                "email": a.principal.email if a.principal else "",
                CATEGORY_PERMANENT: 0,
                CATEGORY_ELIGIBLE: 0,
                CATEGORY_ACTIVE: 0,
                "total": 0,
                "resources": [],
            }
        entry[a.category] += 1
        entry["total"] += 1
        if resource_name not in entry["resources"]:
            entry["resources"].append(resource_name)

    for role in vis_roles:
        for category in CATEGORIES:
            for a in role.assignments_of(category):
                _add(a, role.name)
    for group in vis_groups:
        for category in CATEGORIES:
            for a in group.assignments_of(category):
                _add(a, _group_label(group, a))

    ranked = sorted(seen.values(), key=lambda e: -e["total"])
    return ranked if limit is None else ranked[:limit]


def expiring_within(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    window_days: int,
    as_of: datetime,
    visibility: Optional[Visibility] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Eligible/active assignments ending in (as_of, as_of + window_days], soonest first."""
    now = fncParseDateTime(as_of)
    if now is None:
        raise ValueError(f"as_of must be a datetime or ISO timestamp, got {as_of!r}")
    horizon = now + timedelta(days=window_days)
    vis_roles, vis_groups = _visible(roles, groups, visibility)

    found = []

    def _check(a: Assignment, resource_name: str, privileged: bool) -> None:
        end = fncParseDateTime(a.expires_at)
        if end is None or not (now < end <= horizon):
            return
        found.append((end, {
            "resourceName": resource_name,
            "isPrivileged": privileged,
            "principalId": a.principal_id,
            "principalName": a.principal.display_name if a.principal and a.principal.display_name else "Unknown",
            "type": "Eligible" if a.category == CATEGORY_ELIGIBLE else "Active",
            "expiresAt": end.isoformat(),
            "daysUntilExpiry": int((end - now).total_seconds() // 86400),
        }))

    for role in vis_roles:
        for category in (CATEGORY_ELIGIBLE, CATEGORY_ACTIVE):
            for a in role.assignments_of(category):
                _check(a, role.name, role.definition.is_privileged)
    for group in vis_groups:
        for category in (CATEGORY_ELIGIBLE, CATEGORY_ACTIVE):
            for a in group.assignments_of(category):
                _check(a, _group_label(group, a), group.group.is_assignable_to_role)

    found.sort(key=lambda pair: pair[0])
    rows = [row for _, row in found]
    return rows if limit is None else rows[:limit]


def compute_group_stats(assignments: Iterable[Assignment]) -> Dict[str, int]:
    stats = {
        "eligibleMembers": 0, "activeMembers": 0, "permanentMembers": 0,
        "eligibleOwners": 0, "activeOwners": 0, "permanentOwners": 0,
        "totalAssignments": 0,
    }
    for a in assignments:
        who = "Owners" if a.access_type == ACCESS_OWNER else "Members"
        stats[f"{a.category}{who}"] += 1
        stats["totalAssignments"] += 1
    return stats


def aggregate_totals(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
) -> Dict[str, Any]:
    """Combined totals plus the per-workload breakdown shown on the overview."""
    vis = visibility or ALL_VISIBLE
    roles, groups = list(roles or ()), list(groups or ())
    vis_roles, vis_groups = _visible(roles, groups, vis)

    role_counts = {c: sum(len(r.assignments_of(c)) for r in vis_roles) for c in CATEGORIES}
    group_stats = compute_group_stats(a for g in vis_groups for a in g.assignments)
    group_counts = {
        c: group_stats[f"{c}Members"] + group_stats[f"{c}Owners"] for c in CATEGORIES
    }

    return {
        "totalItems": len(vis_roles) + len(vis_groups),
        "totals": {c: role_counts[c] + group_counts[c] for c in CATEGORIES},
        "breakdown": {
            "roles": {"count": len(vis_roles), **role_counts},
            "groups": {"count": len(vis_groups), **group_counts, **group_stats},
        },
        "hasRolesData": bool(roles),
        "hasGroupsData": bool(groups),
        "rolesVisible": vis.directory_roles,
        "groupsVisible": vis.pim_groups,
    }


def _group_requires_approval(group: GroupResource) -> bool:
    if group.member_policy is not None or group.owner_policy is not None:
        return any(p.activation.approval_required for p in resolve_group(group).values())
    s = group.settings
    return bool(s and (s.member_requires_approval or s.owner_requires_approval))


def overview_stats(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
) -> List[Dict[str, Any]]:
    """The seven overview cards, in display order."""
    vis_roles, vis_groups = _visible(roles, groups, visibility)
    totals = aggregate_totals(vis_roles, vis_groups)
    n_roles, n_groups = len(vis_roles), len(vis_groups)

    total_sub = f"{n_roles} roles + {n_groups} groups" if n_roles and n_groups else None
    active_roles = sum(len(r.active) for r in vis_roles)
    active_groups = sum(len(g.assignments_of(CATEGORY_ACTIVE)) for g in vis_groups)
    active_sub = f"{active_roles} roles + {active_groups} group assignments" if n_roles and n_groups else None

    privileged = [r for r in vis_roles if r.definition.is_privileged]
    covered = sum(1 for r in privileged if r.policy is not None)
    coverage = pim_coverage_percent(privileged)

    approval = sum(1 for r in vis_roles if resolve_role(r).activation.approval_required)
    approval += sum(1 for g in vis_groups if _group_requires_approval(g))

    return [
        {"key": "totalResources", "label": "Total Items", "value": totals["totalItems"], "subtext": total_sub},
        {"key": "activeSessions", "label": "Active Sessions", "value": totals["totals"][CATEGORY_ACTIVE], "subtext": active_sub},
        {"key": "permanentAssignments", "label": "Permanent", "value": totals["totals"][CATEGORY_PERMANENT], "subtext": None},
        {"key": "pimCoverage", "label": "PIM Coverage", "value": coverage, "subtext": f"{covered} of {len(privileged)} privileged"},
        {"key": "eligibleAssignments", "label": "Eligible", "value": totals["totals"][CATEGORY_ELIGIBLE], "subtext": None},
        {"key": "customRoles", "label": "Custom Roles", "value": sum(1 for r in vis_roles if not r.definition.is_built_in), "subtext": None},
        {"key": "rolesRequiringApproval", "label": "Approval Required", "value": approval, "subtext": None},
    ]


def top_approvers(roles: Iterable[RoleResource], limit: int = DEFAULT_TOP_LIMIT) -> List[Dict[str, Any]]:
    """Approvers ranked by how many roles they gate."""
    seen: Dict[str, Dict[str, Any]] = {}
    for role in roles or ():
        refs = role.policy.approvers if role.policy and role.policy.approvers else resolve_role(role).activation.approver_refs
        for ref in refs:
            key = ref.id or ref.label
            entry = seen.get(key)
            if entry is None:
                entry = seen[key] = {
                    "id": key,
                    "displayName": ref.label,
                    "email": ref.user_principal_name or "",
                    "type": ref.kind or "user",
                    "roleCount": 0,
                    "roles": [],
                }
            if role.name not in entry["roles"]:
                entry["roles"].append(role.name)
                entry["roleCount"] += 1
    ranked = sorted(seen.values(), key=lambda e: -e["roleCount"])
    return ranked if limit is None else ranked[:limit]


def roles_with_config_errors(roles: Iterable[RoleResource]) -> List[Dict[str, Any]]:
    return [
        {"roleId": r.definition.id, "roleName": r.name, "configError": r.config_error}
        for r in roles or ()
        if r.config_error
    ]
