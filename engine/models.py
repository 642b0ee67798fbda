# ================================================================
# File     : engine/models.py
# Purpose  : Typed shapes for PIM policy rules, assignments and the
#            directory roles / PIM groups they belong to
# Notes    : Raw Graph-shaped dicts in, frozen dataclasses out.
#            Rule variants are a closed set keyed by their RULE_* tag.
# ================================================================

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from core.utils import fncPrintMessage

# ----------------------- Constants -------------------------------

CALLER_END_USER = "EndUser"
CALLER_ADMIN = "Admin"
LEVEL_ELIGIBILITY = "Eligibility"
LEVEL_ASSIGNMENT = "Assignment"

RULE_EXPIRATION = "ExpirationRule"
RULE_ENABLEMENT = "EnablementRule"
RULE_APPROVAL = "ApprovalRule"
RULE_AUTH_CONTEXT = "AuthenticationContextRule"
RULE_NOTIFICATION = "NotificationRule"
RULE_VARIANTS = (
    RULE_EXPIRATION,
    RULE_ENABLEMENT,
    RULE_APPROVAL,
    RULE_AUTH_CONTEXT,
    RULE_NOTIFICATION,
)
ODATA_RULE_PREFIX = "#microsoft.graph.unifiedRoleManagementPolicy"

ENABLE_MFA = "MultiFactorAuthentication"
ENABLE_JUSTIFICATION = "Justification"
ENABLE_TICKETING = "Ticketing"

RECIPIENT_ADMIN = "Admin"
RECIPIENT_REQUESTOR = "Requestor"
RECIPIENT_APPROVER = "Approver"
RECIPIENT_TYPES = (RECIPIENT_ADMIN, RECIPIENT_REQUESTOR, RECIPIENT_APPROVER)

CATEGORY_PERMANENT = "permanent"
CATEGORY_ELIGIBLE = "eligible"
CATEGORY_ACTIVE = "active"
CATEGORIES = (CATEGORY_PERMANENT, CATEGORY_ELIGIBLE, CATEGORY_ACTIVE)

MEMBER_TYPE_DIRECT = "Direct"
MEMBER_TYPE_GROUP = "Group"

ACCESS_MEMBER = "member"
ACCESS_OWNER = "owner"

PRINCIPAL_USER = "user"
PRINCIPAL_GROUP = "group"
PRINCIPAL_SP = "servicePrincipal"
PRINCIPAL_UNKNOWN = "unknown"


# ----------------------- Policy rules ----------------------------

@dataclass(frozen=True)
class RuleTarget:
    caller: str = ""
    level: str = ""


@dataclass(frozen=True)
class ApproverRef:
    id: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    user_principal_name: Optional[str] = None
    kind: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.description or self.id or "Unknown"


@dataclass(frozen=True)
class ApprovalStage:
    primary_approvers: Tuple[ApproverRef, ...] = ()


@dataclass(frozen=True)
class ExpirationRule:
    variant: ClassVar[str] = RULE_EXPIRATION
    id: str
    target: RuleTarget
    is_expiration_required: bool = False
    maximum_duration: Optional[str] = None


@dataclass(frozen=True)
class EnablementRule:
    variant: ClassVar[str] = RULE_ENABLEMENT
    id: str
    target: RuleTarget
    enabled_rules: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ApprovalRule:
    variant: ClassVar[str] = RULE_APPROVAL
    id: str
    target: RuleTarget
    is_approval_required: bool = False
    approval_stages: Tuple[ApprovalStage, ...] = ()
    # Older payloads put approvers straight on the setting block
    primary_approvers: Tuple[ApproverRef, ...] = ()

    @property
    def approvers(self) -> Tuple[ApproverRef, ...]:
        if self.approval_stages and self.approval_stages[0].primary_approvers:
            return self.approval_stages[0].primary_approvers
        return self.primary_approvers


@dataclass(frozen=True)
class AuthenticationContextRule:
    variant: ClassVar[str] = RULE_AUTH_CONTEXT
    id: str
    target: RuleTarget
    is_enabled: bool = False
    claim_value: Optional[str] = None


@dataclass(frozen=True)
class NotificationRule:
    variant: ClassVar[str] = RULE_NOTIFICATION
    id: str
    target: RuleTarget
    recipient_type: str = ""
    is_default_recipients_enabled: bool = False
    notification_recipients: Tuple[str, ...] = ()
    notification_level: str = "All"
    notification_type: Optional[str] = None


PolicyRule = Union[
    ExpirationRule,
    EnablementRule,
    ApprovalRule,
    AuthenticationContextRule,
    NotificationRule,
]
RULE_TYPES = (
    ExpirationRule,
    EnablementRule,
    ApprovalRule,
    AuthenticationContextRule,
    NotificationRule,
)


# ----------------------- Assignments -----------------------------

@dataclass(frozen=True)
class Principal:
    id: str
    display_name: Optional[str] = None
    user_principal_name: Optional[str] = None
    mail: Optional[str] = None
    kind: str = PRINCIPAL_UNKNOWN

    @property
    def email(self) -> str:
        return self.mail or self.user_principal_name or ""


@dataclass(frozen=True)
class Expiration:
    type: Optional[str] = None  # noExpiration | afterDateTime | afterDuration
    end_date_time: Optional[str] = None
    duration: Optional[str] = None


@dataclass(frozen=True)
class ScheduleInfo:
    start_date_time: Optional[str] = None
    expiration: Optional[Expiration] = None


@dataclass(frozen=True)
class ScopeInfo:
    type: str = "tenant-wide"
    display_name: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class Assignment:
    id: str
    principal_id: str
    category: str
    principal: Optional[Principal] = None
    member_type: Optional[str] = None
    schedule: Optional[ScheduleInfo] = None
    scope: Optional[ScopeInfo] = None
    status: Optional[str] = None
    directory_scope_id: Optional[str] = None
    created_date_time: Optional[str] = None
    # group assignments only
    access_type: Optional[str] = None
    start_date_time: Optional[str] = None
    end_date_time: Optional[str] = None

    @property
    def expiration_type(self) -> Optional[str]:
        if self.schedule and self.schedule.expiration:
            return self.schedule.expiration.type
        return None

    @property
    def expires_at(self) -> Optional[str]:
        if self.schedule and self.schedule.expiration and self.schedule.expiration.end_date_time:
            return self.schedule.expiration.end_date_time
        return self.end_date_time

    @property
    def starts_at(self) -> Optional[str]:
        if self.schedule and self.schedule.start_date_time:
            return self.schedule.start_date_time
        return self.start_date_time


def derive_member_type(assignment: Assignment) -> str:
    """memberType as sent by PIM, else inferred from the principal kind."""
    if assignment.member_type:
        return assignment.member_type
    if assignment.principal and assignment.principal.kind == PRINCIPAL_GROUP:
        return MEMBER_TYPE_GROUP
    return MEMBER_TYPE_DIRECT


# ----------------------- Resources -------------------------------

@dataclass(frozen=True)
class RoleDefinition:
    id: str
    display_name: str
    description: str = ""
    is_built_in: bool = True
    is_privileged: bool = False


@dataclass(frozen=True)
class RolePolicy:
    rules: Tuple[PolicyRule, ...] = ()
    approvers: Tuple[ApproverRef, ...] = ()
    # raw rule count, unknown rule types included
    rule_count: Optional[int] = None

    @property
    def configured(self) -> bool:
        return bool(self.rules) if self.rule_count is None else self.rule_count > 0


@dataclass(frozen=True)
class RoleResource:
    definition: RoleDefinition
    permanent: Tuple[Assignment, ...] = ()
    eligible: Tuple[Assignment, ...] = ()
    active: Tuple[Assignment, ...] = ()
    policy: Optional[RolePolicy] = None
    config_error: Optional[str] = None
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.definition.display_name

    def assignments_of(self, category: str) -> Tuple[Assignment, ...]:
        if category == CATEGORY_PERMANENT:
            return self.permanent
        if category == CATEGORY_ELIGIBLE:
            return self.eligible
        if category == CATEGORY_ACTIVE:
            return self.active
        raise ValueError(f"Unknown assignment category: {category!r}")

    @property
    def all_assignments(self) -> Tuple[Assignment, ...]:
        return self.permanent + self.eligible + self.active


@dataclass(frozen=True)
class GroupInfo:
    id: str
    display_name: str
    group_type: str = "unknown"
    is_assignable_to_role: bool = False
    description: str = ""


@dataclass(frozen=True)
class GroupPolicy:
    policy_type: str
    rules: Tuple[PolicyRule, ...] = ()


@dataclass(frozen=True)
class GroupSettings:
    member_max_duration: Optional[str] = None
    member_requires_mfa: bool = False
    member_requires_justification: bool = False
    member_requires_approval: bool = False
    owner_max_duration: Optional[str] = None
    owner_requires_mfa: bool = False
    owner_requires_justification: bool = False
    owner_requires_approval: bool = False


@dataclass(frozen=True)
class GroupResource:
    group: GroupInfo
    assignments: Tuple[Assignment, ...] = ()
    member_policy: Optional[GroupPolicy] = None
    owner_policy: Optional[GroupPolicy] = None
    settings: Optional[GroupSettings] = None
    is_managed: Optional[bool] = None
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.group.display_name

    def assignments_of(self, category: str) -> Tuple[Assignment, ...]:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown assignment category: {category!r}")
        return tuple(a for a in self.assignments if a.category == category)

    @property
    def all_assignments(self) -> Tuple[Assignment, ...]:
        return self.assignments

    @property
    def managed(self) -> bool:
        # unset means managed; only an explicit False flags an unmanaged group
        return self.is_managed is not False


Resource = Union[RoleResource, GroupResource]


@dataclass(frozen=True)
class AuthContext:
    id: str
    display_name: str = ""


@dataclass(frozen=True)
class Visibility:
    directory_roles: bool = True
    pim_groups: bool = True
    unmanaged_groups: bool = True

    def includes(self, resource: Resource) -> bool:
        if isinstance(resource, RoleResource):
            return self.directory_roles
        if isinstance(resource, GroupResource):
            return self.pim_groups if resource.managed else self.unmanaged_groups
        raise TypeError(f"Not a role or group resource: {type(resource).__name__}")

    def filter(self, resources: Iterable[Resource]) -> List[Resource]:
        return [r for r in resources if self.includes(r)]


ALL_VISIBLE = Visibility()


@dataclass(frozen=True)
class Snapshot:
    roles: Tuple[RoleResource, ...] = ()
    groups: Tuple[GroupResource, ...] = ()
    auth_contexts: Tuple[AuthContext, ...] = ()


# ----------------------- Parsing ---------------------------------

def _variant_from_tag(tag: str) -> Optional[str]:
    for variant in RULE_VARIANTS:
        if tag.endswith(variant):
            return variant
    return None


def _str_tuple(values: Any) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(dict.fromkeys(str(v) for v in values if v is not None))


def _parse_approver(raw: Dict[str, Any]) -> ApproverRef:
    odata = (raw.get("@odata.type") or "").lower()
    kind = raw.get("type")
    if not kind and odata:
        kind = PRINCIPAL_GROUP if "group" in odata else PRINCIPAL_USER
    return ApproverRef(
        id=raw.get("id") or raw.get("userId") or raw.get("groupId") or "",
        display_name=raw.get("displayName"),
        description=raw.get("description"),
        user_principal_name=raw.get("userPrincipalName"),
        kind=kind,
    )


def _parse_approvers(values: Any) -> Tuple[ApproverRef, ...]:
    return tuple(_parse_approver(a) for a in (values or []) if isinstance(a, dict))


def parse_rule(raw: Any) -> Optional[PolicyRule]:
    """Map one raw '@odata.type' rule record to its typed variant (None if unknown)."""
    if isinstance(raw, RULE_TYPES):
        return raw
    if not isinstance(raw, dict):
        raise TypeError(f"Policy rule must be a dict, got {type(raw).__name__}")

    variant = _variant_from_tag(raw.get("@odata.type") or raw.get("variant") or "")
    if variant is None:
        return None

    tgt = raw.get("target") or {}
    target = RuleTarget(caller=tgt.get("caller") or "", level=tgt.get("level") or "")
    rid = raw.get("id") or ""

    if variant == RULE_EXPIRATION:
        return ExpirationRule(
            id=rid,
            target=target,
            is_expiration_required=bool(raw.get("isExpirationRequired")),
            maximum_duration=raw.get("maximumDuration") or None,
        )

    if variant == RULE_ENABLEMENT:
        return EnablementRule(id=rid, target=target, enabled_rules=_str_tuple(raw.get("enabledRules")))

    if variant == RULE_APPROVAL:
        setting = raw.get("setting") or {}
        stages = tuple(
            ApprovalStage(primary_approvers=_parse_approvers(s.get("primaryApprovers")))
            for s in (setting.get("approvalStages") or [])
            if isinstance(s, dict)
        )
        return ApprovalRule(
            id=rid,
            target=target,
            is_approval_required=bool(setting.get("isApprovalRequired")),
            approval_stages=stages,
            primary_approvers=_parse_approvers(setting.get("primaryApprovers")),
        )

    if variant == RULE_AUTH_CONTEXT:
        return AuthenticationContextRule(
            id=rid,
            target=target,
            is_enabled=bool(raw.get("isEnabled")),
            claim_value=raw.get("claimValue") or None,
        )

    # Roles sometimes carry recipientType as a one-element list
    recipient = raw.get("recipientType") or ""
    if isinstance(recipient, (list, tuple)):
        recipient = recipient[0] if recipient else ""
    return NotificationRule(
        id=rid,
        target=target,
        recipient_type=recipient,
        is_default_recipients_enabled=bool(raw.get("isDefaultRecipientsEnabled")),
        notification_recipients=_str_tuple(raw.get("notificationRecipients")),
        notification_level=raw.get("notificationLevel") or "All",
        notification_type=raw.get("notificationType"),
    )


def parse_rules(raw_rules: Optional[Iterable[Any]]) -> Tuple[PolicyRule, ...]:
    out: List[PolicyRule] = []
    for raw in raw_rules or []:
        rule = parse_rule(raw)
        if rule is None:
            fncPrintMessage(f"Skipping unknown policy rule type: {raw.get('@odata.type')!r}", "debug")
            continue
        out.append(rule)
    return tuple(out)


def _principal_kind(raw: Dict[str, Any]) -> str:
    odata = (raw.get("@odata.type") or "").lower()
    if "group" in odata:
        return PRINCIPAL_GROUP
    if "serviceprincipal" in odata:
        return PRINCIPAL_SP
    if "user" in odata:
        return PRINCIPAL_USER
    kind = (raw.get("type") or "").lower()
    if kind in (PRINCIPAL_USER, PRINCIPAL_GROUP):
        return kind
    if kind == PRINCIPAL_SP.lower():
        return PRINCIPAL_SP
    return PRINCIPAL_UNKNOWN


def _parse_principal(raw: Optional[Dict[str, Any]], principal_id: str) -> Optional[Principal]:
    if not isinstance(raw, dict):
        return None
    return Principal(
        id=raw.get("id") or principal_id,
        display_name=raw.get("displayName"),
        user_principal_name=raw.get("userPrincipalName"),
        mail=raw.get("mail"),
        kind=_principal_kind(raw),
    )


def _parse_schedule(raw: Optional[Dict[str, Any]]) -> Optional[ScheduleInfo]:
    if not isinstance(raw, dict):
        return None
    exp = raw.get("expiration")
    expiration = None
    if isinstance(exp, dict):
        expiration = Expiration(
            type=exp.get("type"),
            end_date_time=exp.get("endDateTime"),
            duration=exp.get("duration"),
        )
    return ScheduleInfo(start_date_time=raw.get("startDateTime"), expiration=expiration)


def _parse_scope(raw: Optional[Dict[str, Any]]) -> Optional[ScopeInfo]:
    if not isinstance(raw, dict):
        return None
    return ScopeInfo(
        type=raw.get("type") or "tenant-wide",
        display_name=raw.get("displayName"),
        id=raw.get("id"),
    )


def parse_assignment(raw: Dict[str, Any], category: Optional[str] = None) -> Assignment:
    if not isinstance(raw, dict):
        raise TypeError(f"Assignment must be a dict, got {type(raw).__name__}")
    category = category or raw.get("assignmentType")
    if category not in CATEGORIES:
        raise ValueError(f"Unknown assignment category: {category!r}")
    pid = raw.get("principalId") or ""
    return Assignment(
        id=raw.get("id") or "",
        principal_id=pid,
        category=category,
        principal=_parse_principal(raw.get("principal"), pid),
        member_type=raw.get("memberType") or None,
        schedule=_parse_schedule(raw.get("scheduleInfo")),
        scope=_parse_scope(raw.get("scopeInfo")),
        status=raw.get("status"),
        directory_scope_id=raw.get("directoryScopeId"),
        created_date_time=raw.get("createdDateTime"),
        access_type=raw.get("accessType"),
        start_date_time=raw.get("startDateTime"),
        end_date_time=raw.get("endDateTime"),
    )


def parse_role(raw: Dict[str, Any]) -> RoleResource:
    """Build a RoleResource from a RoleDetailData-shaped dict."""
    d = raw.get("definition") or {}
    definition = RoleDefinition(
        id=d.get("id") or "",
        display_name=d.get("displayName") or "(unknown role)",
        description=d.get("description") or "",
        is_built_in=bool(d.get("isBuiltIn", True)),
        is_privileged=bool(d.get("isPrivileged")),
    )
    a = raw.get("assignments") or {}

    policy = None
    raw_policy = raw.get("policy")
    if isinstance(raw_policy, dict):
        details = raw_policy.get("details") or {}
        raw_rules = details.get("rules") or []
        policy = RolePolicy(
            rules=parse_rules(raw_rules),
            approvers=_parse_approvers(raw_policy.get("approvers")),
            rule_count=len(raw_rules),
        )

    return RoleResource(
        definition=definition,
        permanent=tuple(parse_assignment(x, CATEGORY_PERMANENT) for x in a.get("permanent") or []),
        eligible=tuple(parse_assignment(x, CATEGORY_ELIGIBLE) for x in a.get("eligible") or []),
        active=tuple(parse_assignment(x, CATEGORY_ACTIVE) for x in a.get("active") or []),
        policy=policy,
        config_error=raw.get("configError"),
        raw=raw,
    )


def _parse_group_policy(raw: Any, policy_type: str) -> Optional[GroupPolicy]:
    if not isinstance(raw, dict):
        return None
    return GroupPolicy(policy_type=raw.get("policyType") or policy_type, rules=parse_rules(raw.get("rules")))


def _parse_group_settings(raw: Any) -> Optional[GroupSettings]:
    if not isinstance(raw, dict):
        return None
    return GroupSettings(
        member_max_duration=raw.get("memberMaxDuration") or None,
        member_requires_mfa=bool(raw.get("memberRequiresMfa")),
        member_requires_justification=bool(raw.get("memberRequiresJustification")),
        member_requires_approval=bool(raw.get("memberRequiresApproval")),
        owner_max_duration=raw.get("ownerMaxDuration") or None,
        owner_requires_mfa=bool(raw.get("ownerRequiresMfa")),
        owner_requires_justification=bool(raw.get("ownerRequiresJustification")),
        owner_requires_approval=bool(raw.get("ownerRequiresApproval")),
    )


def parse_group(raw: Dict[str, Any]) -> GroupResource:
    """Build a GroupResource from a PimGroupData-shaped dict."""
    g = raw.get("group") or {}
    info = GroupInfo(
        id=g.get("id") or "",
        display_name=g.get("displayName") or "(unknown group)",
        group_type=g.get("groupType") or "unknown",
        is_assignable_to_role=bool(g.get("isAssignableToRole")),
        description=g.get("description") or "",
    )
    policies = raw.get("policies") or {}
    is_managed = raw.get("isManaged")
    return GroupResource(
        group=info,
        assignments=tuple(parse_assignment(x) for x in raw.get("assignments") or []),
        member_policy=_parse_group_policy(policies.get(ACCESS_MEMBER), ACCESS_MEMBER),
        owner_policy=_parse_group_policy(policies.get(ACCESS_OWNER), ACCESS_OWNER),
        settings=_parse_group_settings(raw.get("settings")),
        is_managed=None if is_managed is None else bool(is_managed),
        raw=raw,
    )


def parse_snapshot(doc: Dict[str, Any]) -> Snapshot:
    if not isinstance(doc, dict):
        raise TypeError(f"Snapshot must be a JSON object, got {type(doc).__name__}")
    contexts = tuple(
        AuthContext(id=c.get("id") or "", display_name=c.get("displayName") or "")
        for c in doc.get("authenticationContexts") or []
        if isinstance(c, dict)
    )
    return Snapshot(
        roles=tuple(parse_role(r) for r in doc.get("roles") or []),
        groups=tuple(parse_group(g) for g in doc.get("groups") or []),
        auth_contexts=contexts,
    )
