# ================================================================
# File     : engine/resolver.py
# Purpose  : Turn a governance surface's rule list into a normalised
#            ResolvedPolicy (activation, assignment, notification)
# Notes    : Missing rules give the all-false / None shape. The
#            dashboard, policy report and exports all read from here.
# ================================================================

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from engine.durations import parse_hours
from engine.models import (
    ACCESS_MEMBER,
    ACCESS_OWNER,
    CALLER_ADMIN,
    CALLER_END_USER,
    ENABLE_JUSTIFICATION,
    ENABLE_MFA,
    ENABLE_TICKETING,
    LEVEL_ASSIGNMENT,
    LEVEL_ELIGIBILITY,
    RECIPIENT_ADMIN,
    RECIPIENT_APPROVER,
    RECIPIENT_REQUESTOR,
    RECIPIENT_TYPES,
    RULE_APPROVAL,
    RULE_AUTH_CONTEXT,
    RULE_ENABLEMENT,
    RULE_EXPIRATION,
    ApproverRef,
    AuthContext,
    ExpirationRule,
    GroupResource,
    GroupSettings,
    RoleResource,
)
from engine.rules import RuleIndex

RESOURCE_ROLE = "role"
RESOURCE_GROUP_MEMBER = "groupMember"
RESOURCE_GROUP_OWNER = "groupOwner"
RESOURCE_KINDS = (RESOURCE_ROLE, RESOURCE_GROUP_MEMBER, RESOURCE_GROUP_OWNER)

AUTH_CONDITIONAL_ACCESS = "Conditional Access"
AUTH_MFA = "Azure MFA"
AUTH_NONE = "None"

NOTIFICATION_TARGETS = (
    (CALLER_ADMIN, LEVEL_ELIGIBILITY),
    (CALLER_ADMIN, LEVEL_ASSIGNMENT),
    (CALLER_END_USER, LEVEL_ASSIGNMENT),
)

NotificationKey = Tuple[str, str, str]


@dataclass(frozen=True)
class ActivationSettings:
    max_duration: Optional[str] = None
    max_duration_hours: Optional[int] = None
    authentication: str = AUTH_NONE
    auth_mode: str = AUTH_NONE
    requires_mfa: bool = False
    requires_conditional_access: bool = False
    auth_context_claim: Optional[str] = None
    auth_context_label: Optional[str] = None
    requires_justification: bool = False
    requires_ticket: bool = False
    approval_required: bool = False
    approvers: Tuple[str, ...] = ()
    approver_refs: Tuple[ApproverRef, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class AssignmentSettings:
    eligible_allows_permanent: bool = False
    eligible_max_duration: Optional[str] = None
    eligible_max_duration_hours: Optional[int] = None
    active_allows_permanent: bool = False
    active_max_duration: Optional[str] = None
    active_max_duration_hours: Optional[int] = None
    active_requires_mfa: bool = False
    active_requires_justification: bool = False


@dataclass(frozen=True)
class NotificationSetting:
    default_recipients: bool = False
    additional_recipients: Tuple[str, ...] = ()
    critical_only: bool = False
    approver_recipients_locked: bool = False


@dataclass(frozen=True)
class ResolvedPolicy:
    resource_kind: str
    has_rules: bool = False
    activation: ActivationSettings = ActivationSettings()
    assignment: AssignmentSettings = AssignmentSettings()
    notification: Dict[NotificationKey, NotificationSetting] = field(default_factory=dict, hash=False)

    def notification_for(self, caller: str, level: str, recipient_type: str) -> NotificationSetting:
        return self.notification.get((caller, level, recipient_type), NotificationSetting())

    def to_dict(self) -> Dict[str, Any]:
        activation = asdict(self.activation)
        activation.pop("approver_refs", None)
        activation["approvers"] = list(self.activation.approvers)
        return {
            "resource_kind": self.resource_kind,
            "has_rules": self.has_rules,
            "activation": activation,
            "assignment": asdict(self.assignment),
            "notification": {
                "/".join(key): {
                    **asdict(setting),
                    "additional_recipients": list(setting.additional_recipients),
                }
                for key, setting in self.notification.items()
            },
        }


def auth_context_label(claim: Optional[str], auth_contexts: Optional[Iterable[AuthContext]] = None) -> Optional[str]:
    """Friendly name for an auth-context claim (c1, c2 …), else the claim itself."""
    if not claim:
        return None
    for ctx in auth_contexts or ():
        if ctx.id == claim:
            return ctx.display_name or claim
    return claim


def _expiry(rule: Optional[ExpirationRule]) -> Tuple[bool, Optional[str], Optional[int]]:
    if rule is None:
        return False, None, None
    if not rule.is_expiration_required:
        return True, None, None
    duration = rule.maximum_duration
    return False, duration, parse_hours(duration) if duration else None


def _with_directory_names(refs: Tuple[ApproverRef, ...], directory: Iterable[ApproverRef]) -> Tuple[ApproverRef, ...]:
    by_id = {a.id: a for a in directory if a.id}
    if not by_id:
        return refs
    return tuple(ref if ref.display_name or ref.id not in by_id else by_id[ref.id] for ref in refs)


def resolve(
    resource_kind: str,
    rules: Any,
    auth_contexts: Optional[Iterable[AuthContext]] = None,
    approver_directory: Iterable[ApproverRef] = (),
) -> ResolvedPolicy:
    """
    Resolve one governance surface.

    rules may be a RuleIndex, typed rules, raw rule dicts or None.
    approver_directory holds resolved approver names (role policies carry
    them next to the rules) used when the approval stage only has ids.
    """
    if resource_kind not in RESOURCE_KINDS:
        raise ValueError(f"Unknown resource kind: {resource_kind!r}")
    index = rules if isinstance(rules, RuleIndex) else RuleIndex.build(rules)

    # Activation: what the end user must satisfy to activate
    exp = index.find(RULE_EXPIRATION, CALLER_END_USER, LEVEL_ASSIGNMENT)
    max_duration = exp.maximum_duration if exp else None
    enable = index.find(RULE_ENABLEMENT, CALLER_END_USER, LEVEL_ASSIGNMENT)
    enabled = set(enable.enabled_rules) if enable else set()
    approval = index.find(RULE_APPROVAL, CALLER_END_USER, LEVEL_ASSIGNMENT)
    approval_required = bool(approval and approval.is_approval_required)
    refs = _with_directory_names(approval.approvers, approver_directory) if approval else ()
    ctx_rule = index.find(RULE_AUTH_CONTEXT, CALLER_END_USER, LEVEL_ASSIGNMENT)

    claim = ctx_rule.claim_value if ctx_rule and ctx_rule.is_enabled and ctx_rule.claim_value else None
    label = auth_context_label(claim, auth_contexts)
    if claim:
        auth_mode, authentication = AUTH_CONDITIONAL_ACCESS, f"{AUTH_CONDITIONAL_ACCESS}: {label}"
    elif ENABLE_MFA in enabled:
        auth_mode = authentication = AUTH_MFA
    else:
        auth_mode = authentication = AUTH_NONE

    activation = ActivationSettings(
        max_duration=max_duration,
        max_duration_hours=parse_hours(max_duration) if max_duration else None,
        authentication=authentication,
        auth_mode=auth_mode,
        requires_mfa=ENABLE_MFA in enabled,
        requires_conditional_access=claim is not None,
        auth_context_claim=claim,
        auth_context_label=label,
        requires_justification=ENABLE_JUSTIFICATION in enabled,
        requires_ticket=ENABLE_TICKETING in enabled,
        approval_required=approval_required,
        approvers=tuple(r.label for r in refs),
        approver_refs=refs,
    )

    # Assignment: what an admin may grant
    el_perm, el_dur, el_hours = _expiry(index.find(RULE_EXPIRATION, CALLER_ADMIN, LEVEL_ELIGIBILITY))
    ac_perm, ac_dur, ac_hours = _expiry(index.find(RULE_EXPIRATION, CALLER_ADMIN, LEVEL_ASSIGNMENT))
    admin_enable = index.find(RULE_ENABLEMENT, CALLER_ADMIN, LEVEL_ASSIGNMENT)
    admin_enabled = set(admin_enable.enabled_rules) if admin_enable else set()
    assignment = AssignmentSettings(
        eligible_allows_permanent=el_perm,
        eligible_max_duration=el_dur,
        eligible_max_duration_hours=el_hours,
        active_allows_permanent=ac_perm,
        active_max_duration=ac_dur,
        active_max_duration_hours=ac_hours,
        active_requires_mfa=ENABLE_MFA in admin_enabled,
        active_requires_justification=ENABLE_JUSTIFICATION in admin_enabled,
    )

    notification: Dict[NotificationKey, NotificationSetting] = {}
    for caller, level in NOTIFICATION_TARGETS:
        for recipient in RECIPIENT_TYPES:
            rule = index.find_notification(caller, level, recipient)
            notification[(caller, level, recipient)] = NotificationSetting(
                default_recipients=bool(rule and rule.is_default_recipients_enabled),
                additional_recipients=rule.notification_recipients if rule else (),
                critical_only=bool(rule and rule.notification_level == "Critical"),
                approver_recipients_locked=(
                    recipient == RECIPIENT_APPROVER
                    and (caller, level) == (CALLER_END_USER, LEVEL_ASSIGNMENT)
                    and approval_required
                ),
            )

    return ResolvedPolicy(
        resource_kind=resource_kind,
        has_rules=len(index) > 0,
        activation=activation,
        assignment=assignment,
        notification=notification,
    )


def resolve_role(role: RoleResource, auth_contexts: Optional[Iterable[AuthContext]] = None) -> ResolvedPolicy:
    if role.policy is None:
        return resolve(RESOURCE_ROLE, (), auth_contexts)
    return resolve(RESOURCE_ROLE, role.policy.rules, auth_contexts, role.policy.approvers)


def resolve_group(group: GroupResource, auth_contexts: Optional[Iterable[AuthContext]] = None) -> Dict[str, ResolvedPolicy]:
    member = group.member_policy.rules if group.member_policy else ()
    owner = group.owner_policy.rules if group.owner_policy else ()
    return {
        ACCESS_MEMBER: resolve(RESOURCE_GROUP_MEMBER, member, auth_contexts),
        ACCESS_OWNER: resolve(RESOURCE_GROUP_OWNER, owner, auth_contexts),
    }


def group_settings(group: GroupResource) -> Optional[GroupSettings]:
    """Member/owner settings from the group's policies, else its pre-computed settings block."""
    if group.member_policy is None and group.owner_policy is None:
        return group.settings

    resolved = resolve_group(group)
    member = resolved[ACCESS_MEMBER].activation
    owner = resolved[ACCESS_OWNER].activation
    return GroupSettings(
        member_max_duration=member.max_duration,
        member_requires_mfa=member.requires_mfa,
        member_requires_justification=member.requires_justification,
        member_requires_approval=member.approval_required,
        owner_max_duration=owner.max_duration,
        owner_requires_mfa=owner.requires_mfa,
        owner_requires_justification=owner.requires_justification,
        owner_requires_approval=owner.approval_required,
    )


def has_policy_settings(group: GroupResource) -> bool:
    settings = group_settings(group)
    return settings is not None and bool(settings.member_max_duration or settings.owner_max_duration)


# ----------------------- Chart surfaces --------------------------

@dataclass(frozen=True)
class SurfaceSummary:
    """The activation facts the dashboard charts need, per role or per group member/owner surface."""
    resource_name: str
    surface: str
    auth_mode: str = AUTH_NONE
    auth_context_claim: Optional[str] = None
    auth_context_label: Optional[str] = None
    approval_required: bool = False
    max_duration_hours: Optional[int] = None


def _summary_from_activation(name: str, surface: str, activation: ActivationSettings) -> SurfaceSummary:
    return SurfaceSummary(
        resource_name=name,
        surface=surface,
        auth_mode=activation.auth_mode,
        auth_context_claim=activation.auth_context_claim,
        auth_context_label=activation.auth_context_label,
        approval_required=activation.approval_required,
        max_duration_hours=activation.max_duration_hours,
    )


def role_surface(role: RoleResource, auth_contexts: Optional[Iterable[AuthContext]] = None) -> SurfaceSummary:
    return _summary_from_activation(role.name, RESOURCE_ROLE, resolve_role(role, auth_contexts).activation)


def group_surfaces(group: GroupResource, auth_contexts: Optional[Iterable[AuthContext]] = None) -> Tuple[SurfaceSummary, SurfaceSummary]:
    """Member then owner; a group with neither policies nor settings yields two empty surfaces."""
    if group.member_policy is not None or group.owner_policy is not None:
        resolved = resolve_group(group, auth_contexts)
        return (
            _summary_from_activation(group.name, ACCESS_MEMBER, resolved[ACCESS_MEMBER].activation),
            _summary_from_activation(group.name, ACCESS_OWNER, resolved[ACCESS_OWNER].activation),
        )

    s = group.settings
    if s is None:
        return SurfaceSummary(group.name, ACCESS_MEMBER), SurfaceSummary(group.name, ACCESS_OWNER)

    def _from_settings(surface: str, duration: Optional[str], mfa: bool, approval: bool) -> SurfaceSummary:
        return SurfaceSummary(
            resource_name=group.name,
            surface=surface,
            auth_mode=AUTH_MFA if mfa else AUTH_NONE,
            approval_required=approval,
            max_duration_hours=parse_hours(duration) if duration else None,
        )

    return (
        _from_settings(ACCESS_MEMBER, s.member_max_duration, s.member_requires_mfa, s.member_requires_approval),
        _from_settings(ACCESS_OWNER, s.owner_max_duration, s.owner_requires_mfa, s.owner_requires_approval),
    )


# ----------------------- Notification tab ------------------------

def notification_table(resolved: ResolvedPolicy, caller: str, level: str) -> List[Dict[str, Any]]:
    """Three labelled rows (admin, requestor, approver) for one notification target."""
    end_user = caller == CALLER_END_USER
    labels = {
        RECIPIENT_ADMIN: "Role assignment alert",
        RECIPIENT_REQUESTOR: (
            "Notification to activated user" if end_user
            else "Notification to the assigned user (assignee)"
        ),
        RECIPIENT_APPROVER: (
            "Request to approve an activation" if end_user
            else "Request to approve a role assignment renewal/extension"
        ),
    }
    rows = []
    for recipient in RECIPIENT_TYPES:
        setting = resolved.notification_for(caller, level, recipient)
        rows.append({
            "Type": labels[recipient],
            "Recipient": recipient,
            "Default Recipients": setting.default_recipients,
            "Additional Recipients": "; ".join(setting.additional_recipients),
            "Critical Only": setting.critical_only,
            "Locked": setting.approver_recipients_locked,
        })
    return rows
