# ================================================================
# File     : engine/rules.py
# Purpose  : Index a policy's rule list by (variant, caller, level)
# Notes    : First rule in list order wins; duplicates are reported
#            at debug level, never raised
# ================================================================

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from core.utils import fncPrintMessage
from engine.models import (
    RULE_NOTIFICATION,
    RULE_VARIANTS,
    NotificationRule,
    PolicyRule,
    parse_rules,
)

RuleKey = Tuple[str, str, str]


def _check_variant(variant: str) -> None:
    if variant not in RULE_VARIANTS:
        raise ValueError(f"Unknown rule variant: {variant!r}")


class RuleIndex:
    """Lookup over one governance surface's rules (a role, or a group member/owner policy)."""

    def __init__(self, rules: Iterable[PolicyRule]):
        self._rules: Tuple[PolicyRule, ...] = tuple(rules)
        self._by_key: Dict[RuleKey, List[PolicyRule]] = {}
        for rule in self._rules:
            key = (rule.variant, rule.target.caller, rule.target.level)
            self._by_key.setdefault(key, []).append(rule)

        self.duplicates: Dict[RuleKey, int] = {k: len(v) for k, v in self._by_key.items() if len(v) > 1}
        for key, count in self.duplicates.items():
            fncPrintMessage(f"{count} rules share key {key}; using the first one", "debug")

    @classmethod
    def build(cls, rules: Optional[Iterable[Any]]) -> "RuleIndex":
        """Accepts typed rules or raw '@odata.type' dicts (unknown tags are dropped)."""
        return cls(parse_rules(rules))

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[PolicyRule]:
        return iter(self._rules)

    def find(self, variant: str, caller: str, level: str) -> Optional[PolicyRule]:
        _check_variant(variant)
        matches = self._by_key.get((variant, caller, level))
        return matches[0] if matches else None

    def filter_by_variant(self, variant: str) -> List[PolicyRule]:
        _check_variant(variant)
        return [r for r in self._rules if r.variant == variant]

    def find_notification(self, caller: str, level: str, recipient_type: str) -> Optional[NotificationRule]:
        for rule in self._by_key.get((RULE_NOTIFICATION, caller, level), []):
            if rule.recipient_type == recipient_type:
                return rule
        return None
