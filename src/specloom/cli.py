"""Specloom CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from specloom import __version__
from specloom.config import ConfigError, ProjectConfig, load_config


@click.group()
@click.version_option(version=__version__, prog_name="specloom")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool) -> None:
    """Specloom - diagram-first documentation validator."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


_PROJECT_OPTION = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)


def _load_config_or_exit(project_root: Path) -> ProjectConfig:
    try:
        return load_config(project_root)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


@main.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option("--no-cache", is_flag=True, default=False, help="Ignore the parse cache.")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Analysis worker threads (default: from config).",
)
@click.option(
    "--fail-on-warn",
    is_flag=True,
    default=False,
    help="Exit 1 on warnings as well as errors.",
)
@_PROJECT_OPTION
def check(
    *,
    fmt: str | None,
    no_cache: bool,
    workers: int | None,
    fail_on_warn: bool,
    project: Path | None,
) -> None:
    """Validate the documentation project against its rules.

    Exit codes: 0 = no error violations, 1 = error violations (or any
    violation with --fail-on-warn), 2 = configuration error.
    """
    from specloom.graph.linter import LintError
    from specloom.graph.linter import format_json as _format_json
    from specloom.graph.linter import format_porcelain as _format_porcelain
    from specloom.graph.linter import format_rich as _format_rich
    from specloom.graph.linter import lint as run_lint

    project_root = project or Path.cwd()
    config = _load_config_or_exit(project_root)

    # Resolve output format: explicit flag > TTY detection.
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        result = run_lint(project_root, config=config, use_cache=not no_cache, workers=workers)
    except LintError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    formatters = {
        "rich": _format_rich,
        "json": _format_json,
        "porcelain": _format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if result.failed or (fail_on_warn and result.warnings):
        sys.exit(1)


@main.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON.")
@_PROJECT_OPTION
def rules(*, as_json: bool, project: Path | None) -> None:
    """List the loaded rules (built-in defaults merged with project overrides)."""
    from specloom.graph.rule_engine import load_rules

    project_root = project or Path.cwd()
    config = _load_config_or_exit(project_root)
    try:
        loaded = load_rules(config.rules_path)
    except (ValueError, OSError) as exc:
        click.echo(f"Error: Invalid rules configuration: {exc}", err=True)
        sys.exit(2)

    if as_json:
        data = [
            {
                "id": r.id,
                "name": r.name,
                "level": r.level,
                "type": r.type,
                "enforcement": r.enforcement,
                "id_prefix": r.target.id_prefix,
                "path_pattern": r.target.path_pattern,
                "hub": r.hub.id if r.hub else None,
            }
            for r in loaded
        ]
        click.echo(json.dumps(data, ensure_ascii=False, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"Rules ({len(loaded)})")
    table.add_column("ID", style="cyan")
    table.add_column("Level")
    table.add_column("Type")
    table.add_column("Enforcement")
    table.add_column("Target")
    for r in loaded:
        target = " | ".join(p for p in (r.target.id_prefix, r.target.path_pattern) if p)
        style = "red" if r.enforcement == "error" else "yellow"
        table.add_row(r.id, r.level, r.type, f"[{style}]{r.enforcement}[/]", target or "-")
    Console().print(table)


@main.group()
def cache() -> None:
    """Inspect or reset the parse cache."""


@cache.command("stats")
@_PROJECT_OPTION
def cache_stats(*, project: Path | None) -> None:
    """Show parse cache location and size."""
    from specloom.cache import ParseCache

    project_root = project or Path.cwd()
    config = _load_config_or_exit(project_root)
    parse_cache = ParseCache(config.cache_file)
    click.echo(f"Path:    {config.cache_file}")
    click.echo(f"Enabled: {'yes' if config.cache_enabled else 'no'}")
    click.echo(f"Entries: {parse_cache.stats()['entries']}")


@cache.command("clear")
@_PROJECT_OPTION
def cache_clear(*, project: Path | None) -> None:
    """Delete every parse cache entry."""
    from specloom.cache import ParseCache

    project_root = project or Path.cwd()
    config = _load_config_or_exit(project_root)
    parse_cache = ParseCache(config.cache_file)
    removed = len(parse_cache)
    parse_cache.clear()
    parse_cache.save()
    click.echo(f"Cleared {removed} cache entries.")
