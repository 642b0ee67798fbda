# tests/test_export_rows.py: export rows, CSV text and JSON export

import pytest

from engine.aggregator import count_by_category, split_by_member_type
from engine.export_rows import (
    ASSIGNMENT_DETAIL_HEADERS,
    GROUP_SUMMARY_HEADERS,
    ROLE_SUMMARY_HEADERS,
    assignment_detail_rows,
    build_json_export,
    chart_table_rows,
    csv_escape,
    group_summary_row,
    role_summary_row,
    to_csv,
)
from engine.models import parse_role
from factories import approval, assignment, role


def _all_rows(snapshot):
    rows = []
    for res in list(snapshot.roles) + list(snapshot.groups):
        rows.extend(assignment_detail_rows(res))
    return rows


def test_one_detail_row_per_assignment(snapshot):
    rows = _all_rows(snapshot)
    total = sum(count_by_category(snapshot.roles, snapshot.groups, c) for c in ("permanent", "eligible", "active"))
    assert len(rows) == total == 10
    assert all(tuple(r) == ASSIGNMENT_DETAIL_HEADERS for r in rows)


def test_detail_rows_for_a_role(snapshot):
    global_admin = snapshot.roles[0]
    rows = assignment_detail_rows(global_admin)
    assert [r["Assignment Type"] for r in rows] == ["Permanent", "Eligible", "Eligible", "Active (PIM)"]
    perm, elig, group_elig, active = rows
    assert perm["Start Date"] == "2024-05-01T09:00:00Z"
    assert perm["Expiry Date"] == ""
    assert perm["Status"] == "Provisioned"
    assert perm["Scope Type"] == "tenant-wide"
    assert perm["Scope ID"] == "/"
    assert elig["Expiry Date"] == "2025-01-04T00:00:00Z"
    assert group_elig["Principal Type"] == "Group"
    assert group_elig["Member Type"] == "Group"
    assert active["Member Type"] == "Direct"


def test_no_expiration_label(snapshot):
    user_admin = snapshot.roles[1]
    eligible = assignment_detail_rows(user_admin)[0]
    assert eligible["Expiry Date"] == "No Expiration"


def test_group_rows_are_labelled_by_access(snapshot):
    tier0, helpdesk, _ = snapshot.groups
    assert [r["Resource Name"] for r in assignment_detail_rows(tier0)] == [
        "Tier0 Admins (Member)", "Tier0 Admins (Owner)",
    ]
    row = assignment_detail_rows(helpdesk)[0]
    assert row["Resource Name"] == "Helpdesk (Member)"
    assert row["Expiry Date"] == "No Expiration"


def test_member_type_matches_aggregator(snapshot):
    rows = _all_rows(snapshot)
    split = split_by_member_type(snapshot.roles, snapshot.groups)
    assert sum(1 for r in rows if r["Member Type"] == "Group") == split["group"]
    assert sum(1 for r in rows if r["Member Type"] == "Direct") == split["direct"]


def test_detail_rows_reject_other_types():
    with pytest.raises(TypeError):
        assignment_detail_rows({"definition": {}})


def test_role_summary_row(snapshot):
    contexts = snapshot.auth_contexts
    ga = role_summary_row(snapshot.roles[0], contexts)
    assert tuple(ga) == ROLE_SUMMARY_HEADERS
    assert ga["PIM Configured"] == "Yes"
    assert ga["Max Activation Duration"] == "PT8H"
    assert ga["MFA Required"] == "Yes"
    assert ga["Justification Required"] == "Yes"
    assert ga["Approval Required"] == "Yes"
    assert ga["Approvers"] == "Alice"
    assert ga["Auth Context"] == ""
    assert (ga["Permanent Count"], ga["Eligible Count"], ga["Active Count"], ga["Total Assignments"]) == (1, 2, 1, 4)

    ua = role_summary_row(snapshot.roles[1], contexts)
    assert ua["Auth Context"] == "Require compliant device"
    assert ua["Approval Required"] == "No"

    rr = role_summary_row(snapshot.roles[2], contexts)
    assert rr["PIM Configured"] == "No"
    assert rr["Built-in"] == "No"
    assert rr["Approval Required"] == ""
    assert rr["MFA Required"] == "No"


def test_role_summary_approvers_span_all_stages():
    raw = role("Multi-stage", rules=[{
        "@odata.type": "#microsoft.graph.unifiedRoleManagementPolicyApprovalRule",
        "id": "Approval_EndUser_Assignment",
        "target": {"caller": "EndUser", "level": "Assignment"},
        "setting": {
            "isApprovalRequired": True,
            "approvalStages": [
                {"primaryApprovers": [{"id": "a1", "displayName": "Alice"}]},
                {"primaryApprovers": [{"id": "a2", "description": "Security desk"}]},
            ],
        },
    }])
    assert role_summary_row(parse_role(raw))["Approvers"] == "Alice; Security desk"


def test_approval_column_reads_end_user_activation_rule_only():
    raw = role("Admin approval only", rules=[approval(True, caller="Admin", level="Assignment")])
    row = role_summary_row(parse_role(raw))
    assert row["Approval Required"] == ""
    assert row["Approvers"] == ""


def test_pim_configured_counts_unrecognised_rules():
    raw = role("Future rules", rules=[{"@odata.type": "#microsoft.graph.unifiedRoleManagementPolicyNewKindRule", "id": "X"}])
    assert role_summary_row(parse_role(raw))["PIM Configured"] == "Yes"
    empty = role("Empty policy", rules=[])
    assert role_summary_row(parse_role(empty))["PIM Configured"] == "No"


def test_group_summary_row(snapshot):
    tier0, helpdesk, legacy = snapshot.groups
    row = group_summary_row(tier0)
    assert tuple(row) == GROUP_SUMMARY_HEADERS
    assert row["Eligible Members"] == 1
    assert row["Active Owners"] == 1
    assert row["Member Max Duration"] == "PT4H"
    assert row["Member MFA"] == "Yes"
    assert row["Member Approval"] == "Yes"
    assert row["Owner Max Duration"] == "P1D"
    assert row["Owner Approval"] == "No"

    hd = group_summary_row(helpdesk)
    assert (hd["Member Max Duration"], hd["Owner Max Duration"], hd["Owner Approval"]) == ("PT10H", "", "Yes")

    lg = group_summary_row(legacy)
    assert lg["Role-Assignable"] == "No"
    assert lg["Member Max Duration"] == ""
    assert lg["Member MFA"] == "No"


def test_csv_escape():
    assert csv_escape('Admin "Tier 0"') == '"Admin ""Tier 0"""'
    assert csv_escape("plain") == '"plain"'
    assert csv_escape(None) == '""'
    assert csv_escape(3) == "3"
    assert csv_escape(True) == '"Yes"'


def test_to_csv_layout(snapshot):
    rows = [role_summary_row(r) for r in snapshot.roles]
    text = to_csv(ROLE_SUMMARY_HEADERS, rows)
    lines = text.split("\n")
    assert lines[0] == ",".join(ROLE_SUMMARY_HEADERS)
    assert len(lines) == 1 + len(rows)
    assert not text.endswith("\n")
    assert lines[3].startswith('"Reports Reader","Reads ""usage"" reports","No"')
    assert lines[1].endswith(",1,2,1,4")


def test_to_csv_with_no_rows_is_header_only():
    assert to_csv(ASSIGNMENT_DETAIL_HEADERS, []) == ",".join(ASSIGNMENT_DETAIL_HEADERS)


def test_build_json_export_sections(snapshot, sample_doc):
    both = build_json_export(snapshot.roles, snapshot.groups)
    assert both == {"roles": sample_doc["roles"], "groups": sample_doc["groups"]}
    assert set(build_json_export(snapshot.roles, snapshot.groups, ["accessRights"])) == {"roles"}
    assert set(build_json_export(snapshot.roles, snapshot.groups, ["groupPolicies"])) == {"groups"}
    assert build_json_export(snapshot.roles, snapshot.groups, []) == {}
    with pytest.raises(ValueError):
        build_json_export(snapshot.roles, snapshot.groups, ["pdf"])


def test_chart_table_rows():
    series = [
        {"name": "Permanent", "value": 1, "color": "#f59e0b"},
        {"name": "Eligible", "value": 3, "color": "#10b981"},
    ]
    assert chart_table_rows(series) == [
        {"Category": "Permanent", "Count": 1, "Percentage": "25%"},
        {"Category": "Eligible", "Count": 3, "Percentage": "75%"},
    ]
    assert chart_table_rows([{"name": "None", "value": 0, "color": "#6b7280"}])[0]["Percentage"] == "0%"


def test_principal_name_falls_back_to_id():
    r = parse_role(role("R", permanent=[assignment("orphan-id")]))
    assert assignment_detail_rows(r)[0]["Principal Name"] == "orphan-id"


def test_to_csv_cells_match_csv_escape():
    rows = [{"Category": 'Say "hi"', "Count": 2, "Percentage": None}]
    text = to_csv(["Category", "Count", "Percentage"], rows)
    assert text == 'Category,Count,Percentage\n' + ",".join(csv_escape(v) for v in rows[0].values())
    assert text.endswith('"Say ""hi""",2,""')
