"""Declarative anti-pattern rules and the scanner that runs them."""

from kubescout.patterns.builtin import BUILTIN_RULE_DOCUMENTS, builtin_rules
from kubescout.patterns.scanner import Scanner
from kubescout.patterns.schema import (
    Condition,
    MalformedRuleError,
    ResourceSelector,
    Rule,
    StuckCheck,
    parse_rule,
    parse_rules,
)

__all__ = [
    "BUILTIN_RULE_DOCUMENTS",
    "Condition",
    "MalformedRuleError",
    "ResourceSelector",
    "Rule",
    "Scanner",
    "StuckCheck",
    "builtin_rules",
    "parse_rule",
    "parse_rules",
]
