# ================================================================
# File     : engine/charts.py
# Purpose  : Build {name, value, color} series for the dashboard
#            charts and the PDF chart tables
# Notes    : "only" mode narrows a chart to the active filter value;
#            "hasAny" (or no filter) shows the full mix
# ================================================================

from typing import Any, Callable, Dict, Iterable, List, Optional

from engine.aggregator import count_by_category, split_by_member_type
from engine.durations import BUCKET_NA, DURATION_BUCKETS, bucket_label
from engine.models import (
    ALL_VISIBLE,
    CATEGORY_ACTIVE,
    CATEGORY_ELIGIBLE,
    CATEGORY_PERMANENT,
    AuthContext,
    GroupResource,
    RoleResource,
    Visibility,
)
from engine.resolver import (
    AUTH_CONDITIONAL_ACCESS,
    AUTH_MFA,
    AUTH_NONE,
    group_surfaces,
    role_surface,
)

MODE_ONLY = "only"
MODE_HAS_ANY = "hasAny"
TOGGLE_MODES = (MODE_ONLY, MODE_HAS_ANY)

CATEGORY_COLOURS = {
    CATEGORY_PERMANENT: ("Permanent", "#f59e0b"),
    CATEGORY_ELIGIBLE: ("Eligible", "#10b981"),
    CATEGORY_ACTIVE: ("Active", "#3b82f6"),
}
MEMBER_COLOURS = {
    "direct": ("Direct", "#3b82f6"),
    "group": ("Group", "#8b5cf6"),
}
AUTH_COLOURS = {
    AUTH_MFA: "#3b82f6",
    AUTH_CONDITIONAL_ACCESS: "#8b5cf6",
    AUTH_NONE: "#6b7280",
}
DURATION_COLOURS = {
    "<1h": "#10b981",
    "2-4h": "#22c55e",
    "5-8h": "#3b82f6",
    "9-12h": "#f59e0b",
    ">12h": "#ef4444",
    BUCKET_NA: "#6b7280",
}
AUTH_CONTEXT_PALETTE = ("#3b82f6", "#8b5cf6", "#ec4899", "#f59e0b", "#10b981", "#06b6d4", "#6366f1", "#f43f5e")

Series = List[Dict[str, Any]]


def _entry(name: str, value: int, color: str) -> Dict[str, Any]:
    return {"name": name, "value": value, "color": color}


def build_toggle_series(
    mode: str,
    active_filter_value: Optional[str],
    full_mix_fn: Callable[[], Series],
    only_fn: Callable[[str], Optional[Dict[str, Any]]],
) -> Series:
    """
    Chart series honouring the toggle.

    In "only" mode with a filter set, only_fn builds the single entry
    for that value and a zero (or unknown) entry gives an empty series.
    Otherwise the full mix is returned as built, zeros included.
    """
    if mode not in TOGGLE_MODES:
        raise ValueError(f"Unknown chart mode: {mode!r}")
    if mode == MODE_ONLY and active_filter_value:
        entry = only_fn(active_filter_value)
        return [entry] if entry and entry["value"] > 0 else []
    return list(full_mix_fn())


def assignment_distribution(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
    mode: str = MODE_HAS_ANY,
    filter_value: Optional[str] = None,
) -> Series:
    roles, groups = list(roles or ()), list(groups or ())

    def _only(category: str):
        if category not in CATEGORY_COLOURS:
            return None
        name, colour = CATEGORY_COLOURS[category]
        return _entry(name, count_by_category(roles, groups, category, visibility), colour)

    def _mix():
        # permanent vs eligible; active sessions are shown on the overview cards
        return [_only(CATEGORY_PERMANENT), _only(CATEGORY_ELIGIBLE)]

    return build_toggle_series(mode, filter_value, _mix, _only)


def assignment_method(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
    mode: str = MODE_HAS_ANY,
    filter_value: Optional[str] = None,
) -> Series:
    split = split_by_member_type(roles, groups, visibility)

    def _only(member_type: str):
        key = member_type.lower()
        if key not in MEMBER_COLOURS:
            return None
        name, colour = MEMBER_COLOURS[key]
        return _entry(name, split[key], colour)

    return build_toggle_series(mode, filter_value, lambda: [_only("direct"), _only("group")], _only)


def _surfaces(roles, groups, visibility, auth_contexts, privileged_only=False):
    vis = visibility or ALL_VISIBLE
    out = []
    for role in vis.filter(roles or ()):
        if privileged_only and not role.definition.is_privileged:
            continue
        out.append(role_surface(role, auth_contexts))
    for group in vis.filter(groups or ()):
        out.extend(group_surfaces(group, auth_contexts))
    return out


def mfa_enforcement(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
    privileged_only: bool = False,
    auth_contexts: Optional[Iterable[AuthContext]] = None,
) -> Series:
    """Activation authentication per surface; groups count member and owner separately."""
    counts = {AUTH_MFA: 0, AUTH_CONDITIONAL_ACCESS: 0, AUTH_NONE: 0}
    for s in _surfaces(roles, groups, visibility, auth_contexts, privileged_only):
        counts[s.auth_mode] += 1
    return [_entry(name, value, AUTH_COLOURS[name]) for name, value in counts.items()]


def approval_requirements(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
) -> Series:
    surfaces = _surfaces(roles, groups, visibility, None)
    required = sum(1 for s in surfaces if s.approval_required)
    return [
        _entry("Approval Required", required, "#8b5cf6"),
        _entry("No Approval", len(surfaces) - required, "#6b7280"),
    ]


def build_duration_histogram(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
) -> Series:
    """Maximum activation duration buckets, fixed order, N/A last."""
    counts = {b: 0 for b in DURATION_BUCKETS}
    for s in _surfaces(roles, groups, visibility, None):
        if s.max_duration_hours is None:
            counts[BUCKET_NA] += 1
        else:
            counts[bucket_label(s.max_duration_hours)] += 1
    return [_entry(name, value, DURATION_COLOURS[name]) for name, value in counts.items()]


def managed_groups(groups: Iterable[GroupResource]) -> Series:
    """Managed vs unmanaged over every loaded group, regardless of visibility."""
    groups = list(groups or ())
    managed = sum(1 for g in groups if g.managed)
    return [
        _entry("Managed", managed, "#10b981"),
        _entry("Unmanaged", len(groups) - managed, "#ef4444"),
    ]


def auth_context_distribution(
    roles: Iterable[RoleResource],
    visibility: Optional[Visibility] = None,
    auth_contexts: Optional[Iterable[AuthContext]] = None,
) -> Series:
    """How many visible roles require each Conditional Access auth context, in first-seen order."""
    counts: Dict[str, List[Any]] = {}
    for s in _surfaces(roles, (), visibility, auth_contexts):
        if s.auth_context_claim:
            counts.setdefault(s.auth_context_claim, [s.auth_context_label, 0])[1] += 1
    return [
        _entry(label or claim, count, AUTH_CONTEXT_PALETTE[i % len(AUTH_CONTEXT_PALETTE)])
        for i, (claim, (label, count)) in enumerate(counts.items())
    ]


def build_charts(
    roles: Iterable[RoleResource],
    groups: Iterable[GroupResource],
    visibility: Optional[Visibility] = None,
    filters: Optional[Dict[str, str]] = None,
    modes: Optional[Dict[str, str]] = None,
    privileged_only: bool = False,
    auth_contexts: Optional[Iterable[AuthContext]] = None,
) -> Dict[str, Series]:
    """All seven dashboard series, keyed the way the PDF export expects them."""
    roles, groups = list(roles or ()), list(groups or ())
    auth_contexts = list(auth_contexts or ())
    filters = filters or {}
    modes = modes or {}
    return {
        "assignmentData": assignment_distribution(
            roles, groups, visibility, modes.get("assignment", MODE_HAS_ANY), filters.get("assignmentType")
        ),
        "assignmentMethodData": assignment_method(
            roles, groups, visibility, modes.get("member", MODE_HAS_ANY), filters.get("memberType")
        ),
        "mfaData": mfa_enforcement(roles, groups, visibility, privileged_only, auth_contexts),
        "approvalData": approval_requirements(roles, groups, visibility),
        "durationData": build_duration_histogram(roles, groups, visibility),
        "managedData": managed_groups(groups),
        "authContextData": auth_context_distribution(roles, visibility, auth_contexts),
    }
