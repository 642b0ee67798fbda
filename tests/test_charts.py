# tests/test_charts.py: dashboard chart series

import pytest

from engine.charts import (
    approval_requirements,
    assignment_distribution,
    assignment_method,
    auth_context_distribution,
    build_charts,
    build_duration_histogram,
    build_toggle_series,
    managed_groups,
    mfa_enforcement,
)
from engine.durations import DURATION_BUCKETS
from engine.models import Visibility, parse_group
from engine.resolver import has_policy_settings
from factories import group


def _values(series):
    return {e["name"]: e["value"] for e in series}


def test_toggle_only_mode_returns_single_entry(snapshot):
    series = assignment_distribution(snapshot.roles, snapshot.groups, mode="only", filter_value="permanent")
    assert series == [{"name": "Permanent", "value": 2, "color": "#f59e0b"}]

    active = assignment_distribution(snapshot.roles, snapshot.groups, mode="only", filter_value="active")
    assert active == [{"name": "Active", "value": 3, "color": "#3b82f6"}]


def test_toggle_only_mode_with_zero_count_is_empty(snapshot):
    no_roles = Visibility(directory_roles=False)
    assert assignment_distribution(snapshot.roles, snapshot.groups, no_roles, "only", "permanent") == []
    assert assignment_distribution(snapshot.roles, snapshot.groups, mode="only", filter_value="bogus") == []


def test_toggle_has_any_shows_full_mix(snapshot):
    series = assignment_distribution(snapshot.roles, snapshot.groups, mode="hasAny", filter_value="permanent")
    assert [(e["name"], e["value"]) for e in series] == [("Permanent", 2), ("Eligible", 5)]

    # only mode without a filter also shows the mix
    assert assignment_distribution(snapshot.roles, snapshot.groups, mode="only") == series


def test_build_toggle_series_rejects_unknown_mode():
    with pytest.raises(ValueError):
        build_toggle_series("some", None, lambda: [], lambda v: None)


def test_build_toggle_series_calls_only_fn_with_filter():
    seen = []

    def _only(value):
        seen.append(value)
        return {"name": value, "value": 1, "color": "#000"}

    assert build_toggle_series("only", "x", lambda: [], _only) == [{"name": "x", "value": 1, "color": "#000"}]
    assert seen == ["x"]


def test_assignment_method(snapshot):
    series = assignment_method(snapshot.roles, snapshot.groups)
    assert series == [
        {"name": "Direct", "value": 8, "color": "#3b82f6"},
        {"name": "Group", "value": 2, "color": "#8b5cf6"},
    ]
    only = assignment_method(snapshot.roles, snapshot.groups, mode="only", filter_value="group")
    assert only == [{"name": "Group", "value": 2, "color": "#8b5cf6"}]


def test_duration_histogram_order_and_counts(snapshot):
    series = build_duration_histogram(snapshot.roles, snapshot.groups)
    assert [e["name"] for e in series] == list(DURATION_BUCKETS)
    assert _values(series) == {"<1h": 0, "2-4h": 2, "5-8h": 1, "9-12h": 1, ">12h": 1, "N/A": 5}
    # one per role, two per group
    assert sum(e["value"] for e in series) == len(snapshot.roles) + 2 * len(snapshot.groups)


def test_group_without_settings_adds_two_to_na():
    bare = parse_group(group("Bare"))
    assert has_policy_settings(bare) is False
    assert _values(build_duration_histogram([], [bare]))["N/A"] == 2
    assert _values(approval_requirements([], [bare])) == {"Approval Required": 0, "No Approval": 2}
    assert _values(mfa_enforcement([], [bare]))["None"] == 2


def test_duration_histogram_colours(snapshot):
    colours = {e["name"]: e["color"] for e in build_duration_histogram(snapshot.roles, snapshot.groups)}
    assert colours["N/A"] == "#6b7280"
    assert colours["<1h"] == "#10b981"
    assert colours[">12h"] == "#ef4444"


def test_mfa_enforcement(snapshot):
    contexts = snapshot.auth_contexts
    assert _values(mfa_enforcement(snapshot.roles, snapshot.groups, auth_contexts=contexts)) == {
        "Azure MFA": 3, "Conditional Access": 1, "None": 6,
    }
    privileged = mfa_enforcement(snapshot.roles, snapshot.groups, privileged_only=True, auth_contexts=contexts)
    assert _values(privileged) == {"Azure MFA": 3, "Conditional Access": 1, "None": 5}


def test_approval_requirements(snapshot):
    assert _values(approval_requirements(snapshot.roles, snapshot.groups)) == {
        "Approval Required": 3, "No Approval": 7,
    }


def test_managed_groups_ignores_visibility(snapshot):
    assert _values(managed_groups(snapshot.groups)) == {"Managed": 2, "Unmanaged": 1}


def test_auth_context_distribution(snapshot):
    series = auth_context_distribution(snapshot.roles, auth_contexts=snapshot.auth_contexts)
    assert series == [{"name": "Require compliant device", "value": 1, "color": "#3b82f6"}]
    assert auth_context_distribution(snapshot.roles)[0]["name"] == "c1"
    assert auth_context_distribution(snapshot.roles, Visibility(directory_roles=False)) == []


def test_build_charts_keys(snapshot):
    charts = build_charts(
        snapshot.roles, snapshot.groups,
        filters={"assignmentType": "eligible"},
        modes={"assignment": "only"},
        auth_contexts=snapshot.auth_contexts,
    )
    assert set(charts) == {
        "assignmentData", "assignmentMethodData", "mfaData", "approvalData",
        "durationData", "managedData", "authContextData",
    }
    assert charts["assignmentData"] == [{"name": "Eligible", "value": 5, "color": "#10b981"}]
