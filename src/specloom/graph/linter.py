"""Linter orchestrator: load rules, collect and analyze assets, build the graph, evaluate."""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from specloom.assets import collect_assets
from specloom.cache import ParseCache
from specloom.config import load_config
from specloom.graph.builder import build_context
from specloom.graph.rule_engine import (
    Violation,
    evaluate,
    folder_claims,
    folder_prefixes,
    hub_categories,
    load_rules,
)

if TYPE_CHECKING:
    from pathlib import Path

    from specloom.analyzers.base import DiagramAnalysis
    from specloom.assets import Asset
    from specloom.config import ProjectConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LintError(Exception):
    """Raised when lint encounters a configuration error."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class LintResult:
    """Result of a lint run."""

    violations: list[Violation] = field(default_factory=list)
    rules_evaluated: int = 0
    assets_scanned: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    elapsed_ms: float = 0.0

    @property
    def errors(self) -> list[Violation]:
        return [v for v in self.violations if v.severity == "error"]

    @property
    def warnings(self) -> list[Violation]:
        return [v for v in self.violations if v.severity == "warning"]

    @property
    def failed(self) -> bool:
        """True when at least one ``error`` violation was found."""
        return any(v.severity == "error" for v in self.violations)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def _analyze_assets(
    assets: list[Asset], cache: ParseCache, workers: int
) -> dict[str, DiagramAnalysis]:
    """Analyze every diagram asset through *cache* on a bounded thread pool."""
    diagrams = [asset for asset in assets if asset.is_diagram]
    if not diagrams:
        return {}

    def _one(asset: Asset) -> DiagramAnalysis:
        # Keyed by body: analyses never read the front matter.
        return cache.analyze(asset.body, file_path=asset.relative_path)

    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        results = list(pool.map(_one, diagrams))
    return {asset.relative_path: analysis for asset, analysis in zip(diagrams, results)}


def lint(
    project_root: Path,
    *,
    config: ProjectConfig | None = None,
    rules_path: Path | None = None,
    use_cache: bool = True,
    workers: int | None = None,
) -> LintResult:
    """Run one validation pass over the project and return its violations.

    Parameters
    ----------
    project_root:
        Root of the project (where ``.specloom/`` lives).
    config:
        Pre-loaded configuration; read from *project_root* when *None*.
    rules_path:
        Optional explicit rule document.  When *None* the configured
        ``rules`` path is used; a missing file means built-in rules only.
    use_cache:
        When *False* the on-disk parse cache is neither read nor written.
    workers:
        Size of the analysis thread pool (defaults to the configured value).

    Returns
    -------
    LintResult
        Summary with violations, counts, and timing.

    Raises
    ------
    LintError
        When the rule document is unreadable or invalid, or the docs
        directory does not exist.  Raised before any asset is processed.
    """
    start = time.monotonic()
    if config is None:
        config = load_config(project_root)

    # Step a: Load rules; a broken rule set aborts the pass.
    if rules_path is None:
        rules_path = config.rules_path
    try:
        rules = load_rules(rules_path)
    except (ValueError, OSError, UnicodeDecodeError) as exc:
        msg = f"Invalid rules configuration: {exc}"
        raise LintError(msg) from exc

    docs_path = config.docs_path
    if not docs_path.is_dir():
        msg = f"Documentation directory not found: {docs_path}"
        raise LintError(msg)

    # Step b: Collect assets.
    collected = collect_assets(docs_path, ignore=config.ignore)

    # Step c: Analyze diagrams through the parse cache.
    persistent = use_cache and config.cache_enabled
    cache = ParseCache(config.cache_file if persistent else None)
    analyses = _analyze_assets(collected.assets, cache, workers or config.workers)
    if persistent:
        cache.prune(config.cache_max_age_days)
        cache.save()

    # Step d: Build the project graph.
    context = build_context(
        collected.assets,
        analyses,
        hubs=hub_categories(rules),
        folders=folder_claims(rules),
        folder_prefixes=folder_prefixes(rules),
        exempt_ids=config.exempt_ids,
        directories=collected.directories,
        foreign_files=collected.foreign_files,
        system_folders=config.system_folders,
    )

    # Step e: Evaluate every rule.
    violations = evaluate(rules, collected.assets, context)

    elapsed = (time.monotonic() - start) * 1000
    logger.debug(
        "Lint finished: %d violations, %d assets, cache %d hits / %d misses",
        len(violations),
        len(collected.assets),
        cache.hits,
        cache.misses,
    )
    return LintResult(
        violations=violations,
        rules_evaluated=len(rules),
        assets_scanned=len(collected.assets),
        cache_hits=cache.hits,
        cache_misses=cache.misses,
        elapsed_ms=elapsed,
    )


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _location(v: Violation) -> str:
    if v.file_path is not None:
        return v.file_path
    return v.ref_id or "project"


def format_rich(result: LintResult) -> str:
    """Format a LintResult as human-readable text, grouped by severity.

    Example output with violations::

        Rules: 25 loaded
        Assets: 14 scanned (cache: 12 hits, 2 misses)

        Errors (1)
        x persona-gate  personas/PER_Admin.mermaid
          Persona mindmap: missing required branch "Goals"

        Warnings (1)
        ! persona-diversity  project
          Missing persona types: [Guardian, Proxy]

        1 error, 1 warning (25 rules evaluated, 0.1s)
    """
    lines: list[str] = []

    lines.append(f"Rules: {result.rules_evaluated} loaded")
    lines.append(
        f"Assets: {result.assets_scanned} scanned "
        f"(cache: {result.cache_hits} hits, {result.cache_misses} misses)"
    )
    lines.append("")

    elapsed_str = f"{result.elapsed_ms / 1000:.1f}s"

    if not result.violations:
        lines.append(
            f"✓ No violations found ({result.rules_evaluated} rules evaluated, {elapsed_str})"
        )
        return "\n".join(lines)

    for title, marker, group in (
        ("Errors", "✗", result.errors),
        ("Warnings", "!", result.warnings),
    ):
        if not group:
            continue
        lines.append(f"{title} ({len(group)})")
        for v in group:
            lines.append(f"{marker} {v.rule_id}  {_location(v)}")
            for message_line in v.message.splitlines():
                lines.append(f"  {message_line}")
        lines.append("")

    n_err, n_warn = len(result.errors), len(result.warnings)
    lines.append(
        f"{n_err} error{'s' if n_err != 1 else ''}, {n_warn} warning{'s' if n_warn != 1 else ''} "
        f"({result.rules_evaluated} rules evaluated, {elapsed_str})"
    )
    return "\n".join(lines)


def format_json(result: LintResult) -> str:
    """Format a LintResult as structured JSON.

    Returns a JSON string with ``violations`` array and ``summary`` object.
    """
    violations_list: list[dict[str, object]] = []
    for v in result.violations:
        violations_list.append(
            {
                "rule_id": v.rule_id,
                "rule_name": v.rule_name,
                "rule_type": v.rule_type,
                "severity": v.severity,
                "file_path": v.file_path,
                "ref_id": v.ref_id,
                "message": v.message,
            }
        )

    output: dict[str, object] = {
        "violations": violations_list,
        "summary": {
            "rules_evaluated": result.rules_evaluated,
            "assets_scanned": result.assets_scanned,
            "errors": len(result.errors),
            "warnings": len(result.warnings),
            "cache_hits": result.cache_hits,
            "cache_misses": result.cache_misses,
            "elapsed_ms": result.elapsed_ms,
        },
    }

    return json.dumps(output, indent=2)


def format_porcelain(result: LintResult) -> str:
    """Format a LintResult as machine-readable one-line-per-violation output.

    Format: ``severity:rule_id:rule_type:file_path:ref_id:message``

    Empty file_path/ref_id are represented as empty strings; newlines in the
    message are folded to spaces.  Returns empty string when there are no
    violations.
    """
    if not result.violations:
        return ""

    lines: list[str] = []
    for v in result.violations:
        file_path = v.file_path if v.file_path is not None else ""
        ref_id = v.ref_id if v.ref_id is not None else ""
        message = " ".join(v.message.split())
        lines.append(f"{v.severity}:{v.rule_id}:{v.rule_type}:{file_path}:{ref_id}:{message}")

    return "\n".join(lines)
