"""Graph domain: project graph builder, rule engine, built-in rules, linter."""

from specloom.graph.builder import (
    DeclaredLink,
    FrozenContextError,
    HubCategory,
    NodeRecord,
    ProjectContext,
    build_context,
)
from specloom.graph.linter import (
    LintError,
    LintResult,
    format_json,
    format_porcelain,
    format_rich,
    lint,
)
from specloom.graph.rule_engine import (
    CHECK_CATALOG,
    Finding,
    Rule,
    RuleTarget,
    Violation,
    evaluate,
    glob_to_regex,
    load_rules,
    register_check,
)

__all__ = [
    "CHECK_CATALOG",
    "DeclaredLink",
    "Finding",
    "FrozenContextError",
    "HubCategory",
    "LintError",
    "LintResult",
    "NodeRecord",
    "ProjectContext",
    "Rule",
    "RuleTarget",
    "Violation",
    "build_context",
    "evaluate",
    "format_json",
    "format_porcelain",
    "format_rich",
    "glob_to_regex",
    "lint",
    "load_rules",
    "register_check",
]
