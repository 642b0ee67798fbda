# tests/conftest.py: shared fixtures
#
# A small tenant: four roles (two governed, one custom without a
# policy, one whose policy fetch failed) and three PIM groups (policy
# driven, settings-block driven, unmanaged and empty).
# ──────────────────────────────────────────────────────────────────

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure project root is importable
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from factories import (  # noqa: E402
    approval,
    approver,
    assignment,
    auth_context,
    enablement,
    expiration,
    group,
    notification,
    role,
)

AS_OF = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PIMPOODLE_EXPIRING_WINDOW_DAYS", "PIMPOODLE_TOP_LIMIT", "PIMPOODLE_REPORTS_DIR", "PIMPOODLE_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def sample_doc():
    global_admin = role(
        "Global Administrator",
        privileged=True,
        rules=[
            expiration("PT8H"),
            enablement("MultiFactorAuthentication", "Justification"),
            approval(True, [approver("a1", "Alice")]),
            auth_context("c1", enabled=False),
            notification("Admin", "Admin", "Eligibility", recipients=["secops@contoso.com"]),
            notification("Approver", "EndUser", "Assignment", notification_level="Critical"),
        ],
        approvers=[approver("a1", "Alice")],
        permanent=[assignment("u1", "Ada Admin", created="2024-05-01T09:00:00Z")],
        eligible=[
            assignment("u2", "Ben Eligible", start="2024-12-01T00:00:00Z", end="2025-01-04T00:00:00Z"),
            assignment("g1", "Tier0 Admins", kind="group"),
        ],
        active=[assignment("u2", "Ben Eligible", member_type="Direct", start="2025-01-01T00:00:00Z", end="2025-01-02T00:00:00Z")],
    )
    user_admin = role(
        "User Administrator",
        privileged=True,
        rules=[
            expiration("PT2H"),
            auth_context("c1"),
            approval(False),
            expiration("P365D", caller="Admin", level="Eligibility"),
            expiration(None, required=False, caller="Admin", level="Assignment"),
        ],
        eligible=[assignment("u1", "Ada Admin", exp_type="noExpiration", start="2024-06-01T00:00:00Z")],
        active=[assignment("u3", "Cat Group", member_type="Group", end="2025-01-20T00:00:00Z")],
    )
    reports_reader = role(
        "Reports Reader",
        built_in=False,
        description='Reads "usage" reports',
        permanent=[assignment("u2", "Ben Eligible")],
    )
    exchange_admin = role("Exchange Administrator", privileged=True, config_error="403 Forbidden")

    tier0 = group(
        "Tier0 Admins",
        gid="g1",
        assignments=[
            assignment("u1", "Ada Admin", category="eligible", access="member", end="2025-01-06T00:00:00Z"),
            assignment("u2", "Ben Eligible", category="active", access="owner", end="2025-01-08T00:00:00Z"),
        ],
        member_rules=[expiration("PT4H"), enablement("MultiFactorAuthentication"), approval(True, [approver("a2", "Bob")])],
        owner_rules=[expiration("P1D")],
    )
    helpdesk = group(
        "Helpdesk",
        assignments=[assignment("u3", "Cat Group", category="eligible")],
        settings={
            "memberMaxDuration": "PT10H",
            "memberRequiresMfa": True,
            "memberRequiresApproval": False,
            "ownerMaxDuration": None,
            "ownerRequiresMfa": False,
            "ownerRequiresApproval": True,
        },
    )
    legacy = group("Legacy Group", is_managed=False, assignable=False)

    return {
        "roles": [global_admin, user_admin, reports_reader, exchange_admin],
        "groups": [tier0, helpdesk, legacy],
        "authenticationContexts": [{"id": "c1", "displayName": "Require compliant device"}],
    }


@pytest.fixture
def snapshot(sample_doc):
    from engine.models import parse_snapshot
    return parse_snapshot(sample_doc)
