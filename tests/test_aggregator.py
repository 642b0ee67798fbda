# tests/test_aggregator.py: counts, coverage, rankings and windows

import json
from datetime import timedelta

import pytest

from engine.aggregator import (
    aggregate_totals,
    compute_group_stats,
    count_by_category,
    expiring_within,
    overview_stats,
    percent,
    pim_coverage_percent,
    roles_with_config_errors,
    split_by_member_type,
    top_approvers,
    top_principals_by_assignment_volume,
)
from engine.models import Visibility, parse_group, parse_role
from factories import approval, approver, assignment, expiration, group, role


def test_count_by_category(snapshot):
    roles, groups = snapshot.roles, snapshot.groups
    assert count_by_category(roles, groups, "permanent") == 2
    assert count_by_category(roles, groups, "eligible") == 5
    assert count_by_category(roles, groups, "active") == 3


def test_count_by_category_honours_visibility(snapshot):
    roles, groups = snapshot.roles, snapshot.groups
    no_roles = Visibility(directory_roles=False)
    assert count_by_category(roles, groups, "eligible", no_roles) == 2
    no_groups = Visibility(pim_groups=False)
    assert count_by_category(roles, groups, "eligible", no_groups) == 3


def test_unknown_category_raises(snapshot):
    with pytest.raises(ValueError):
        count_by_category(snapshot.roles, snapshot.groups, "temporary")


def test_split_by_member_type_partitions_every_assignment(snapshot):
    roles, groups = snapshot.roles, snapshot.groups
    split = split_by_member_type(roles, groups)
    assert split == {"direct": 8, "group": 2}
    total = sum(count_by_category(roles, groups, c) for c in ("permanent", "eligible", "active"))
    assert split["direct"] + split["group"] == total


@pytest.mark.parametrize("with_policy, without, expected", [
    (3, 2, 60),
    (2, 1, 67),
    (1, 2, 33),
    (0, 4, 0),
    (4, 0, 100),
])
def test_pim_coverage_percent(with_policy, without, expected):
    governed = [parse_role(role(f"r{i}", privileged=True, rules=[expiration("PT1H")])) for i in range(with_policy)]
    bare = [parse_role(role(f"b{i}", privileged=True)) for i in range(without)]
    assert pim_coverage_percent(governed + bare) == expected


def test_pim_coverage_percent_empty_is_zero():
    assert pim_coverage_percent([]) == 0


def test_percent_rounds_half_up():
    assert percent(1, 8) == 13
    assert percent(5, 8) == 63
    assert percent(1, 0) == 0


def test_top_principals_ranking(snapshot):
    top = top_principals_by_assignment_volume(snapshot.roles, snapshot.groups)
    assert [(t["principalId"], t["total"]) for t in top] == [("u2", 4), ("u1", 3), ("u3", 2), ("g1", 1)]
    ada = top[1]
    assert (ada["permanent"], ada["eligible"], ada["active"]) == (1, 2, 0)
    assert ada["resources"] == ["Global Administrator", "User Administrator", "Tier0 Admins (Member)"]


def test_top_principals_ties_keep_first_seen_order():
    roles = [parse_role(role(
        "Role",
        eligible=[assignment("z"), assignment("a"), assignment("m")],
    ))]
    top = top_principals_by_assignment_volume(roles, [], limit=2)
    assert [t["principalId"] for t in top] == ["z", "a"]
    assert top[0]["displayName"] == "Unknown User"


def test_expiring_within_window(snapshot, as_of):
    rows = expiring_within(snapshot.roles, snapshot.groups, 7, as_of)
    assert [(r["resourceName"], r["daysUntilExpiry"]) for r in rows] == [
        ("Global Administrator", 1),
        ("Global Administrator", 3),
        ("Tier0 Admins (Member)", 5),
        ("Tier0 Admins (Owner)", 7),
    ]
    assert rows[0]["type"] == "Active"
    assert rows[1]["type"] == "Eligible"


def test_expiring_window_boundaries(as_of):
    at = lambda delta: (as_of + delta).strftime("%Y-%m-%dT%H:%M:%SZ")
    roles = [parse_role(role("R", eligible=[
        assignment("now", end=at(timedelta(0))),
        assignment("edge", end=at(timedelta(days=7))),
        assignment("past-edge", end=at(timedelta(days=7, seconds=1))),
        assignment("yesterday", end=at(timedelta(days=-1))),
    ]))]
    rows = expiring_within(roles, [], 7, as_of)
    assert [r["principalId"] for r in rows] == ["edge"]


def test_expiring_within_accepts_iso_as_of(snapshot):
    rows = expiring_within(snapshot.roles, snapshot.groups, 2, "2025-01-01T00:00:00Z")
    assert [r["daysUntilExpiry"] for r in rows] == [1]
    with pytest.raises(ValueError):
        expiring_within(snapshot.roles, snapshot.groups, 2, "not a date")


def test_compute_group_stats(snapshot):
    tier0 = snapshot.groups[0]
    stats = compute_group_stats(tier0.assignments)
    assert stats["eligibleMembers"] == 1
    assert stats["activeOwners"] == 1
    assert stats["permanentMembers"] == 0
    assert stats["totalAssignments"] == 2


def test_aggregate_totals(snapshot):
    totals = aggregate_totals(snapshot.roles, snapshot.groups)
    assert totals["totalItems"] == 7
    assert totals["totals"] == {"permanent": 2, "eligible": 5, "active": 3}
    assert totals["breakdown"]["roles"] == {"count": 4, "permanent": 2, "eligible": 3, "active": 2}
    assert totals["breakdown"]["groups"]["eligibleMembers"] == 2
    assert totals["hasRolesData"] and totals["hasGroupsData"]

    hidden = aggregate_totals(snapshot.roles, snapshot.groups, Visibility(pim_groups=False, unmanaged_groups=False))
    assert hidden["totalItems"] == 4
    assert hidden["groupsVisible"] is False
    assert hidden["hasGroupsData"] is True


def test_overview_stats(snapshot):
    stats = {s["key"]: s for s in overview_stats(snapshot.roles, snapshot.groups)}
    assert stats["totalResources"]["value"] == 7
    assert stats["totalResources"]["subtext"] == "4 roles + 3 groups"
    assert stats["activeSessions"]["value"] == 3
    assert stats["activeSessions"]["subtext"] == "2 roles + 1 group assignments"
    assert stats["permanentAssignments"]["value"] == 2
    assert stats["eligibleAssignments"]["value"] == 5
    assert stats["customRoles"]["value"] == 1
    assert stats["rolesRequiringApproval"]["value"] == 3
    # GA and UA carry policies, Exchange Administrator does not
    assert stats["pimCoverage"]["value"] == 67
    assert stats["pimCoverage"]["subtext"] == "2 of 3 privileged"


def test_overview_stats_roles_only_has_no_subtext(snapshot):
    stats = {s["key"]: s for s in overview_stats(snapshot.roles, [])}
    assert stats["totalResources"]["subtext"] is None
    assert stats["pimCoverage"]["value"] == 67


def test_top_approvers(snapshot):
    top = top_approvers(snapshot.roles)
    assert top == [{
        "id": "a1",
        "displayName": "Alice",
        "email": "",
        "type": "user",
        "roleCount": 1,
        "roles": ["Global Administrator"],
    }]


def test_config_errors_pass_through_verbatim(snapshot):
    assert roles_with_config_errors(snapshot.roles) == [
        {"roleId": "exchange-administrator", "roleName": "Exchange Administrator", "configError": "403 Forbidden"},
    ]


def test_aggregation_is_idempotent(snapshot, as_of):
    def _run():
        return json.dumps({
            "totals": aggregate_totals(snapshot.roles, snapshot.groups),
            "overview": overview_stats(snapshot.roles, snapshot.groups),
            "top": top_principals_by_assignment_volume(snapshot.roles, snapshot.groups),
            "expiring": expiring_within(snapshot.roles, snapshot.groups, 7, as_of),
        }, sort_keys=True)
    assert _run() == _run()


def test_overview_coverage_counts_privileged_roles_only():
    roles = [parse_role(role("Security Administrator", privileged=True))]
    groups = [parse_group(group("Break Glass", assignments=[assignment("u1", category="eligible")]))]
    stats = {s["key"]: s for s in overview_stats(roles, groups)}
    assert stats["pimCoverage"]["value"] == pim_coverage_percent(roles) == 0
    assert stats["pimCoverage"]["subtext"] == "0 of 1 privileged"


def test_zero_limit_returns_nothing(snapshot, as_of):
    roles, groups = snapshot.roles, snapshot.groups
    assert top_principals_by_assignment_volume(roles, groups, limit=0) == []
    assert expiring_within(roles, groups, 7, as_of, limit=0) == []
    assert top_approvers(roles, limit=0) == []
    assert len(expiring_within(roles, groups, 7, as_of, limit=None)) == 4


def test_top_approvers_limit_keeps_first_seen_on_ties():
    roles = [
        parse_role(role(name, rules=[approval(True, [approver(aid, label)])]))
        for name, aid, label in (("R1", "a1", "Alice"), ("R2", "a2", "Bob"))
    ]
    assert [a["displayName"] for a in top_approvers(roles, limit=1)] == ["Alice"]
