"""Rule engine: parse rule documents, target assets, evaluate against the project graph."""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from importlib import resources
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Union

import yaml

from specloom.analyzers.base import clean_content
from specloom.graph.builder import HubCategory

if TYPE_CHECKING:
    from pathlib import Path

    from specloom.assets import Asset
    from specloom.graph.builder import ProjectContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_LEVELS: frozenset[str] = frozenset({"project", "folder", "file", "node"})
VALID_RULE_TYPES: frozenset[str] = frozenset({"structural", "syntax", "metadata", "traceability"})
VALID_ENFORCEMENTS: frozenset[str] = frozenset({"error", "warning"})
_ENFORCEMENT_ALIASES = {"warn": "warning"}
SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})
ASSET_LEVELS: frozenset[str] = frozenset({"folder", "file", "node"})

DEFAULT_RULES_RESOURCE = "default_rules.yml"

_GLOB_CHARS = frozenset("*?{[")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    """One problem reported by a check, optionally attributed to a file/identifier."""

    message: str
    file_path: str | None = None
    ref_id: str | None = None


# A check receives the asset (None for project rules), the shared context
# and the rule being evaluated, and returns messages or findings.
CheckResult = Iterable[Union[str, Finding]]
CheckFn = Callable[["Asset | None", "ProjectContext", "Rule"], CheckResult]


@dataclass(frozen=True)
class Violation:
    """A single rule violation."""

    rule_id: str
    rule_name: str
    rule_type: str  # "structural" | "syntax" | "metadata" | "traceability"
    severity: str  # "error" | "warning"
    file_path: str | None
    ref_id: str | None
    message: str


@functools.lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into an anchored regex.

    ``**/`` matches any number of leading directories (including none),
    ``**`` matches anything, ``*`` and ``?`` stay within one path segment
    and ``{a,b}`` is an alternation.
    """
    out: list[str] = []
    i = 0
    depth = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "{":
            out.append("(?:")
            depth += 1
        elif char == "}" and depth:
            out.append(")")
            depth -= 1
        elif char == "," and depth:
            out.append("|")
        else:
            out.append(re.escape(char))
        i += 1
    out.extend(")" * depth)
    return re.compile("^" + "".join(out) + "$")


@dataclass(frozen=True)
class RuleTarget:
    """Selects assets by identifier prefix OR by relative path glob."""

    id_prefix: str | None = None
    path_pattern: str | None = None

    def matches(self, asset: Asset) -> bool:
        ref_id = asset.declared_id
        if self.id_prefix and ref_id and ref_id.startswith(self.id_prefix):
            return True
        return bool(self.path_pattern) and bool(
            glob_to_regex(self.path_pattern).match(asset.relative_path)
        )

    @property
    def folder(self) -> str | None:
        """The literal directory part of ``path_pattern`` (``personas/*`` -> ``personas``)."""
        if not self.path_pattern:
            return None
        literal: list[str] = []
        for part in PurePosixPath(self.path_pattern).parts:
            if any(ch in _GLOB_CHARS for ch in part):
                break
            literal.append(part)
        else:
            # No glob at all: the pattern names a file, its parent is the folder.
            literal = literal[:-1]
        return "/".join(literal) or None


@dataclass(frozen=True)
class Hub:
    id: str
    title: str


@dataclass(frozen=True)
class Rule:
    """A loaded rule: metadata plus the checks that implement it."""

    id: str
    name: str
    description: str = ""
    level: str = "file"
    target: RuleTarget = field(default_factory=RuleTarget)
    type: str = "structural"
    enforcement: str = "error"
    hub: Hub | None = None
    checks: tuple[CheckFn, ...] = ()
    check_name: str | None = None

    @property
    def is_project(self) -> bool:
        return self.level == "project"

    def applies_to(self, asset: Asset) -> bool:
        return not self.is_project and self.target.matches(asset)

    def findings(self, asset: Asset | None, context: ProjectContext) -> list[Finding]:
        result: list[Finding] = []
        for check in self.checks:
            for item in check(asset, context, self) or ():
                result.append(item if isinstance(item, Finding) else Finding(str(item)))
        return result

    def validate(self, asset: Asset | None, context: ProjectContext) -> list[str]:
        """Return the violation messages of this rule for *asset* (None for project rules)."""
        return [finding.message for finding in self.findings(asset, context)]


# ---------------------------------------------------------------------------
# Check catalog
# ---------------------------------------------------------------------------

CHECK_CATALOG: dict[str, CheckFn] = {}


def register_check(name: str) -> Callable[[CheckFn], CheckFn]:
    """Register a programmatic check under *name* for use by rule documents."""

    def decorator(fn: CheckFn) -> CheckFn:
        CHECK_CATALOG[name] = fn
        return fn

    return decorator


def _ensure_catalog() -> None:
    # Lazy import: builtin_rules registers into CHECK_CATALOG and imports this module.
    import specloom.graph.builtin_rules  # noqa: F401


# ---------------------------------------------------------------------------
# Declarative check families
# ---------------------------------------------------------------------------


def first_line(asset: Asset) -> str:
    """First meaningful line of a diagram body (header and ``%%`` lines removed)."""
    lines = clean_content(asset.body).splitlines()
    return lines[0].strip() if lines else ""


def opens_with(line: str, keyword: str) -> bool:
    token = line.split(None, 1)[0] if line else ""
    return token == keyword or token.startswith(keyword + "-")


@dataclass(frozen=True)
class NotationCheck:
    """The diagram must open with one of ``keywords``; notes are not checked."""

    keywords: tuple[str, ...]

    def __call__(self, asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
        if asset is None or not asset.is_diagram:
            return []
        line = first_line(asset)
        if any(opens_with(line, kw) for kw in self.keywords):
            return []
        expected = " or ".join(f'"{kw}"' for kw in self.keywords)
        found = line or "<empty>"
        return [f'Must use {expected} syntax. Found: "{found}"']


@dataclass(frozen=True)
class RequiredFieldsCheck:
    fields: tuple[str, ...]

    def __call__(self, asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
        if asset is None:
            return []
        return [
            f'Missing required front matter: "{name}"'
            for name in self.fields
            if not asset.front_matter.has(name)
        ]


@dataclass(frozen=True)
class ExtensionCheck:
    extension: str

    def __call__(self, asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
        if asset is None:
            return []
        wanted = "." + self.extension.lstrip(".").lower()
        if asset.suffix == wanted:
            return []
        return [f'File must have extension "{wanted}". Found "{asset.suffix or "<none>"}"']


@dataclass(frozen=True)
class RequiredNodesCheck:
    """Every name in ``nodes`` must be a node of the asset's analysis (case-insensitive)."""

    nodes: tuple[str, ...]

    def __call__(self, asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
        if asset is None:
            return []
        analysis = context.analyses.get(asset.relative_path)
        present = {n.lower() for n in analysis.nodes} if analysis else set()
        return [f'Missing required node: "{n}"' for n in self.nodes if n.lower() not in present]


@dataclass(frozen=True)
class LinkedCheck:
    """Identifiers declared by the asset must be referenced somewhere in the graph."""

    def __call__(self, asset: Asset | None, context: ProjectContext, rule: Rule) -> list[Finding]:
        if asset is None:
            return []
        return [
            Finding(
                f'Orphan detected: "{ref_id}" in {asset.relative_path} '
                "is not linked to by any other document",
                ref_id=ref_id,
            )
            for ref_id in asset.front_matter.all_ids
            if ref_id not in context.referenced_ids and ref_id not in context.exempt_ids
        ]


# ---------------------------------------------------------------------------
# Rule document parsing
# ---------------------------------------------------------------------------


def _str_tuple(value: object, context: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"{context} must be a string or a list of strings"
        raise ValueError(msg)
    return tuple(value)


def _parse_checks(rule_id: str, data: object) -> list[CheckFn]:
    """Parse the declarative ``checks`` block of a rule."""
    if data is None:
        return []
    if not isinstance(data, dict):
        msg = f"Rule '{rule_id}': 'checks' must be a mapping"
        raise ValueError(msg)
    checks: list[CheckFn] = []
    if data.get("mermaidType") is not None:
        keywords = _str_tuple(data["mermaidType"], f"Rule '{rule_id}' mermaidType")
        checks.append(NotationCheck(keywords))
    if data.get("requiredFrontmatter") is not None:
        fields = _str_tuple(data["requiredFrontmatter"], f"Rule '{rule_id}' requiredFrontmatter")
        checks.append(RequiredFieldsCheck(fields))
    if data.get("requiredExtension") is not None:
        ext = data["requiredExtension"]
        if not isinstance(ext, str) or not ext.strip():
            msg = f"Rule '{rule_id}': requiredExtension must be a non-empty string"
            raise ValueError(msg)
        checks.append(ExtensionCheck(ext))
    if data.get("requiredNodes") is not None:
        nodes = _str_tuple(data["requiredNodes"], f"Rule '{rule_id}' requiredNodes")
        checks.append(RequiredNodesCheck(nodes))
    traceability = data.get("traceability")
    if traceability is not None:
        if not isinstance(traceability, dict):
            msg = f"Rule '{rule_id}': checks.traceability must be a mapping"
            raise ValueError(msg)
        if traceability.get("mustBeLinked"):
            checks.append(LinkedCheck())
    return checks


def _parse_target(rule_id: str, data: object, level: str) -> RuleTarget:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Rule '{rule_id}': 'target' must be a mapping"
        raise ValueError(msg)
    id_prefix = data.get("idPrefix", data.get("id_prefix"))
    path_pattern = data.get("pathPattern", data.get("path_pattern"))
    for key, value in (("idPrefix", id_prefix), ("pathPattern", path_pattern)):
        if value is not None and (not isinstance(value, str) or not value):
            msg = f"Rule '{rule_id}': target.{key} must be a non-empty string"
            raise ValueError(msg)
    if level != "project" and id_prefix is None and path_pattern is None:
        msg = f"Rule '{rule_id}': {level} rules need target.idPrefix or target.pathPattern"
        raise ValueError(msg)
    return RuleTarget(id_prefix=id_prefix, path_pattern=path_pattern)


def _choice(
    rule_id: str, data: dict[str, Any], key: str, default: str, valid: frozenset[str]
) -> str:
    value = str(data.get(key, default))
    if key == "enforcement":
        value = _ENFORCEMENT_ALIASES.get(value, value)
    if value not in valid:
        msg = f"Rule '{rule_id}': invalid {key} '{value}', must be one of {sorted(valid)}"
        raise ValueError(msg)
    return value


def parse_rule(data: dict[str, Any]) -> Rule:
    """Build a :class:`Rule` from one rule mapping.  Raises ``ValueError`` on schema errors."""
    rule_id = data.get("id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        msg = "rule is missing required 'id' field"
        raise ValueError(msg)

    level = _choice(rule_id, data, "level", "file", VALID_LEVELS)
    rule_type = _choice(rule_id, data, "type", "structural", VALID_RULE_TYPES)
    enforcement = _choice(rule_id, data, "enforcement", "error", VALID_ENFORCEMENTS)

    hub: Hub | None = None
    hub_data = data.get("hub")
    if hub_data is not None:
        if not isinstance(hub_data, dict) or not isinstance(hub_data.get("id"), str):
            msg = f"Rule '{rule_id}': 'hub' must be a mapping with an 'id'"
            raise ValueError(msg)
        hub = Hub(id=hub_data["id"], title=str(hub_data.get("title", hub_data["id"])))

    checks = _parse_checks(rule_id, data.get("checks"))
    check_name = data.get("check")
    if check_name is not None:
        if check_name not in CHECK_CATALOG:
            msg = (
                f"Rule '{rule_id}': unknown check '{check_name}', "
                f"must be one of {sorted(CHECK_CATALOG)}"
            )
            raise ValueError(msg)
    elif rule_id in CHECK_CATALOG:
        check_name = rule_id
    if check_name is not None:
        checks.append(CHECK_CATALOG[check_name])
    if not checks:
        msg = f"Rule '{rule_id}': no 'check' implementation and no 'checks' block"
        raise ValueError(msg)

    return Rule(
        id=rule_id,
        name=str(data.get("name") or rule_id),
        description=str(data.get("description") or ""),
        level=level,
        target=_parse_target(rule_id, data.get("target"), level),
        type=rule_type,
        enforcement=enforcement,
        hub=hub,
        checks=tuple(checks),
        check_name=check_name,
    )


def _read_rule_document(text: str, source: str) -> list[dict[str, Any]]:
    """Return the raw rule mappings of one document, in order."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"{source}: invalid YAML: {exc}"
        raise ValueError(msg) from exc
    if data is None:
        return []
    if not isinstance(data, dict):
        msg = f"{source} must be a YAML mapping"
        raise ValueError(msg)

    version = data.get("version")
    if version is not None and version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"{source}: unsupported version {version}, expected one of {expected}"
        raise ValueError(msg)

    rules_data = data.get("rules", [])
    if rules_data is None:
        return []
    if not isinstance(rules_data, list):
        msg = f"{source}: 'rules' must be a list"
        raise ValueError(msg)

    seen: set[str] = set()
    result: list[dict[str, Any]] = []
    for idx, rule_data in enumerate(rules_data):
        if not isinstance(rule_data, dict):
            msg = f"{source}: rule at index {idx} must be a mapping"
            raise ValueError(msg)
        rule_id = rule_data.get("id")
        if not isinstance(rule_id, str) or not rule_id.strip():
            msg = f"{source}: rule at index {idx} missing required 'id' field"
            raise ValueError(msg)
        if rule_id in seen:
            msg = f"{source}: duplicate rule id '{rule_id}'"
            raise ValueError(msg)
        seen.add(rule_id)
        result.append(rule_data)
    return result


def default_rule_text() -> str:
    """Text of the packaged default rule set."""
    return (
        resources.files("specloom.graph")
        .joinpath(DEFAULT_RULES_RESOURCE)
        .read_text(encoding="utf-8")
    )


def merge_rule_data(
    base: list[dict[str, Any]], overrides: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Apply user rule mappings on top of *base*, keeping load order.

    A mapping whose ``id`` matches a base rule replaces it in place (its
    keys override the base keys); ``enabled: false`` drops the rule; new
    ids are appended.
    """
    merged: dict[str, dict[str, Any]] = {str(rule["id"]): dict(rule) for rule in base}
    for rule in overrides:
        rule_id = str(rule["id"])
        if rule_id in merged:
            merged[rule_id] = {**merged[rule_id], **rule}
        else:
            merged[rule_id] = dict(rule)
    return [rule for rule in merged.values() if rule.get("enabled", True) is not False]


def load_rules(rules_path: Path | None = None, *, include_defaults: bool = True) -> list[Rule]:
    """Load the built-in rule set, overridden by the document at *rules_path*.

    A missing *rules_path* means "defaults only".  Raises ``ValueError`` on
    unreadable YAML or schema errors.
    """
    _ensure_catalog()
    base = _read_rule_document(default_rule_text(), "default rules") if include_defaults else []
    overrides: list[dict[str, Any]] = []
    if rules_path is not None and rules_path.is_file():
        text = rules_path.read_text(encoding="utf-8")
        overrides = _read_rule_document(text, rules_path.name)
    rules = [parse_rule(data) for data in merge_rule_data(base, overrides)]
    logger.debug("Loaded %d rules (%d overrides)", len(rules), len(overrides))
    return rules


# ---------------------------------------------------------------------------
# Rule set queries
# ---------------------------------------------------------------------------


def hub_categories(rules: Iterable[Rule]) -> list[HubCategory]:
    """Navigation categories registered by rules with a ``hub`` and a folder."""
    result: list[HubCategory] = []
    for rule in rules:
        folder = rule.target.folder
        if rule.hub is not None and folder:
            result.append(
                HubCategory(
                    id=rule.hub.id,
                    title=rule.hub.title,
                    folder=folder,
                    id_prefix=rule.target.id_prefix,
                    rule_id=rule.id,
                )
            )
    return result


def folder_claims(rules: Iterable[Rule]) -> dict[str, list[str]]:
    """Map each folder claimed by a folder-level rule to the claiming rule ids."""
    claims: dict[str, list[str]] = {}
    for rule in rules:
        folder = rule.target.folder
        if rule.level == "folder" and folder:
            claims.setdefault(folder, []).append(rule.id)
    return claims


def folder_prefixes(rules: Iterable[Rule]) -> dict[str, str]:
    """Map each claimed folder to the identifier prefix its rule governs."""
    prefixes: dict[str, str] = {}
    for rule in rules:
        folder = rule.target.folder
        if rule.level == "folder" and folder and rule.target.id_prefix:
            prefixes.setdefault(folder, rule.target.id_prefix)
    return prefixes


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _run_rule(rule: Rule, asset: Asset | None, context: ProjectContext) -> list[Violation]:
    default_file = asset.relative_path if asset is not None else None
    default_ref = asset.declared_id if asset is not None else None
    try:
        findings = rule.findings(asset, context)
    except Exception as exc:
        logger.exception("Rule %s crashed on %s", rule.id, default_file or "project")
        return [
            Violation(
                rule_id=rule.id,
                rule_name=rule.name,
                rule_type=rule.type,
                severity="error",
                file_path=default_file,
                ref_id=default_ref,
                message=f"Rule crashed: {exc.__class__.__name__}: {exc}",
            )
        ]
    return [
        Violation(
            rule_id=rule.id,
            rule_name=rule.name,
            rule_type=rule.type,
            severity=rule.enforcement,
            file_path=finding.file_path or default_file,
            ref_id=finding.ref_id or default_ref,
            message=finding.message,
        )
        for finding in findings
    ]


def evaluate(
    rules: Iterable[Rule], assets: Iterable[Asset], context: ProjectContext
) -> list[Violation]:
    """Evaluate *rules* and return every violation, in evaluation order.

    The context is frozen first.  Then, per asset, each applicable
    folder/file/node rule runs in load order; project rules run last, once
    each, in load order.  Violations are batched: nothing stops early.
    """
    context.freeze()
    rule_list = list(rules)
    asset_rules = [rule for rule in rule_list if rule.level in ASSET_LEVELS]
    project_rules = [rule for rule in rule_list if rule.is_project]

    violations: list[Violation] = []
    for asset in assets:
        for rule in asset_rules:
            if rule.applies_to(asset):
                violations.extend(_run_rule(rule, asset, context))
    for rule in project_rules:
        violations.extend(_run_rule(rule, None, context))
    return violations
