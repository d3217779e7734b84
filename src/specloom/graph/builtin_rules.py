"""Built-in rule implementations, selected by id from rule documents.

Each function is registered in :data:`~specloom.graph.rule_engine.CHECK_CATALOG`
and receives ``(asset, context, rule)``; project-level checks get ``None``
for the asset.

Metadata side channel: ``persona-gate`` writes ``personaType`` on persona
nodes; ``persona-diversity`` and ``journey-integrity`` read it.  Asset-level
rules always run before project rules, so the readers see every write.
"""

from __future__ import annotations

from collections import deque
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from specloom.graph.builder import (
    META_CLASSIFICATION,
    META_FILE_ROOT,
    OTHERS_FOLDER,
    is_footnote,
)
from specloom.graph.rule_engine import Finding, register_check

if TYPE_CHECKING:
    from specloom.assets import Asset
    from specloom.graph.builder import ProjectContext
    from specloom.graph.rule_engine import Rule

PERSONA_TYPES: tuple[str, ...] = ("actor", "influencer", "guardian", "proxy")
BEHAVIORAL_PERSONA_TYPES: frozenset[str] = frozenset({"actor", "proxy"})
META_PERSONA_TYPE = "personaType"

PERSONA_BRANCHES: tuple[str, ...] = ("Role", "Description", "Goals")
PERSONA_SEMANTIC_IDS: tuple[str, ...] = ("ROLE", "DESCRIPTION")

RULES_GUIDE = "RULES_GUIDE.md"
IMAGE_EXTENSIONS: frozenset[str] = frozenset({".png", ".jpg", ".jpeg", ".svg", ".gif"})


def _is_functional(context: ProjectContext, ref_id: str) -> bool:
    record = context.node_map.get(ref_id)
    if record is None:
        return False
    classification = record.metadata.get(META_CLASSIFICATION)
    if classification:
        return str(classification).lower() == "functional"
    return bool(record.metadata.get(META_FILE_ROOT))


def _has_parent_requirement(context: ProjectContext, ref_id: str) -> bool:
    return any(parent.startswith("REQ_") for parent in context.linked_uplinks(ref_id))


def _declared_with_prefix(context: ProjectContext, prefix: str) -> list[str]:
    return [ref_id for ref_id in context.declared_ids if ref_id.startswith(prefix)]


# ---------------------------------------------------------------------------
# Asset-level checks
# ---------------------------------------------------------------------------


def _persona_type(nodes: tuple[str, ...], labels: dict[str, str]) -> tuple[bool, str | None]:
    """Return (type node found, lower-cased type value) from mindmap nodes."""
    for node in nodes:
        low = node.lower()
        if low.startswith("type:"):
            return True, low.split(":", 1)[1].strip() or None
        if low.startswith("type(") and low.endswith(")"):
            return True, low[5:-1].strip() or None
        if low == "type":
            label = labels.get(node)
            return True, label.strip().lower() if label else None
    return False, None


@register_check("persona-gate")
def persona_gate(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    """Persona mindmaps need Role/Description/Goals branches and a valid ``Type``."""
    if asset is None or not asset.is_diagram:
        return []
    errors: list[str] = []
    analysis = context.analyses.get(asset.relative_path)
    nodes = analysis.nodes if analysis else ()
    labels = analysis.labels if analysis else {}
    names = {n.lower() for n in nodes} | {label.lower() for label in labels.values()}

    for branch in PERSONA_BRANCHES:
        if branch.lower() not in names:
            errors.append(f'Persona mindmap: missing required branch "{branch}"')
    for semantic_id in PERSONA_SEMANTIC_IDS:
        if semantic_id not in nodes:
            errors.append(
                f'Persona mindmap: missing required semantic id "{semantic_id}" '
                f'(e.g. {semantic_id}["..."])'
            )
    if not any(node.startswith("GOAL_") for node in nodes):
        errors.append('Persona mindmap: missing semantic id "GOAL_N" (at least one goal)')

    found, value = _persona_type(nodes, labels)
    if not found:
        errors.append('Persona mindmap: missing mandatory "Type: <value>" node (e.g. Type: Actor)')
    elif value not in PERSONA_TYPES:
        allowed = ", ".join(t.capitalize() for t in PERSONA_TYPES)
        shown = value or ""
        errors.append(
            f'Persona mindmap: invalid persona type "{shown}", must be one of [{allowed}]'
        )
    elif asset.declared_id:
        context.annotate(asset.declared_id, META_PERSONA_TYPE, value, writer=rule.id)
    return errors


@register_check("journey-syntax")
def journey_trace(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    """A journey must trace to a persona."""
    if asset is None or not asset.declared_id:
        return []
    parents = context.linked_uplinks(asset.declared_id)
    if any(parent.startswith("PER_") for parent in parents):
        return []
    return [
        "Journey must trace to a persona (PER_xxx): add it as uplink "
        "or as a participant of the sequence"
    ]


@register_check("footnotes-policy")
def footnotes_policy(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    if asset is None:
        return []
    errors: list[str] = []
    if not asset.is_note:
        errors.append("Footnotes must be Markdown (.md) files")
    for key in ("id", "title", "description"):
        if not asset.front_matter.has(key):
            errors.append(f'Missing required front matter: "{key}"')
    return errors


@register_check("filename-id")
def filename_matches_id(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    """The file's base name must equal its declared ``id``."""
    if asset is None or asset.relative_path == RULES_GUIDE:
        return []
    ref_id = asset.declared_id
    if ref_id is None or ref_id == asset.stem:
        return []
    return [f'File name "{asset.stem}" does not match declared id "{ref_id}"']


@register_check("id-prefix")
def id_prefix(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    """Files in a prefix-governed folder must declare ids with that prefix."""
    if asset is None or is_footnote(asset.relative_path) or not asset.declared_id:
        return []
    path = asset.relative_path
    for folder, prefix in context.folder_prefixes.items():
        if path.startswith(folder + "/") and not asset.declared_id.startswith(prefix):
            return [
                f'Id "{asset.declared_id}" must start with "{prefix}" '
                f'for documents in "{folder}/"'
            ]
    return []


@register_check("front-matter-schema")
def front_matter_schema(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    if asset is None:
        return []
    return [f"Front matter: {error}" for error in asset.front_matter.errors]


# ---------------------------------------------------------------------------
# Project-level checks: structure
# ---------------------------------------------------------------------------


@register_check("document-placement")
def document_placement(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[Finding]:
    """Foreign files belong in ``others/``; notes belong in a ``footnotes/`` folder."""
    findings: list[Finding] = []

    def in_others(path: str) -> bool:
        return PurePosixPath(path).parts[0] == OTHERS_FOLDER

    for path in context.foreign_files:
        if in_others(path) or PurePosixPath(path).suffix.lower() in IMAGE_EXTENSIONS:
            continue
        findings.append(
            Finding(
                f'Foreign file "{path}": non-documentation files must be placed '
                f'in "{OTHERS_FOLDER}/"',
                file_path=path,
            )
        )
    for path in context.files:
        if not path.lower().endswith(".md") or path == RULES_GUIDE:
            continue
        if in_others(path) or is_footnote(path):
            continue
        findings.append(
            Finding(
                f'Markdown file "{path}" must reside in a "footnotes" folder '
                f'(only "{OTHERS_FOLDER}/" and root "{RULES_GUIDE}" are exempt)',
                file_path=path,
            )
        )
    return findings


@register_check("folder-registry")
def folder_registry(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[Finding]:
    """Every directory must be covered by exactly one folder-level rule."""
    findings: list[Finding] = []
    system = set(context.system_folders)
    for directory in context.directories:
        # System folders and everything below them are free-form; their
        # parents are checked as directories of their own.
        if system.intersection(PurePosixPath(directory).parts):
            continue
        covered = [
            folder
            for folder in context.folders
            if directory == folder or directory.startswith(folder + "/")
        ]
        if not covered:
            allowed = ", ".join(context.system_folders)
            findings.append(
                Finding(
                    f'Folder "{directory}" is not registered by any folder rule '
                    f"and is not a system folder [{allowed}]",
                    file_path=directory,
                )
            )
    for folder, rule_ids in context.folders.items():
        if len(rule_ids) > 1:
            findings.append(
                Finding(
                    f'Folder "{folder}" is claimed by several folder rules: {", ".join(rule_ids)}',
                    file_path=folder,
                )
            )
    return findings


@register_check("duplicate-ids")
def duplicate_ids(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[Finding]:
    return [
        Finding(
            f'Identifier "{ref_id}" is declared in multiple files: {", ".join(files)}',
            file_path=files[0],
            ref_id=ref_id,
        )
        for ref_id, files in context.duplicates.items()
    ]


# ---------------------------------------------------------------------------
# Project-level checks: traceability
# ---------------------------------------------------------------------------


@register_check("dangling-references")
def dangling_references(
    asset: Asset | None, context: ProjectContext, rule: Rule
) -> list[Finding]:
    """Explicit links must point at a declared identifier."""
    return [
        Finding(
            f'Dangling reference: "{link.source}" declares {link.kind} "{link.target}", '
            "which is not declared anywhere",
            file_path=link.file_path,
            ref_id=link.source,
        )
        for link in context.declared_links
        if not context.is_declared(link.target) and link.target not in context.exempt_ids
    ]


@register_check("global-traceability")
def global_traceability(
    asset: Asset | None, context: ProjectContext, rule: Rule
) -> list[Finding]:
    """Every declared identifier must be referenced by something else."""
    return [
        Finding(
            f'Orphan detected: "{ref_id}" is disconnected from the graph; mention it '
            "in a diagram, link it from another document or place it in a hub folder",
            file_path=context.id_to_file.get(ref_id),
            ref_id=ref_id,
        )
        for ref_id in context.declared_ids
        if ref_id not in context.referenced_ids and ref_id not in context.exempt_ids
    ]


@register_check("link-reciprocity")
def link_reciprocity(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[Finding]:
    """A downlink A -> B needs B to list A among its uplinks."""
    findings: list[Finding] = []
    seen: set[tuple[str, str]] = set()
    for link in context.declared_links:
        if link.kind != "downlink" or not context.is_declared(link.target):
            continue
        pair = (link.source, link.target)
        if pair in seen:
            continue
        seen.add(pair)
        record = context.node_map.get(link.target)
        if record is not None and link.source in record.uplinks:
            continue
        findings.append(
            Finding(
                f'Asymmetric link: "{link.source}" lists "{link.target}" as a downlink, '
                f'but "{link.target}" has no uplink to "{link.source}"',
                file_path=link.file_path,
                ref_id=link.source,
            )
        )
    return findings


@register_check("persona-diversity")
def persona_diversity(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[str]:
    """At least one persona of each type should exist."""
    personas = _declared_with_prefix(context, "PER_")
    if not personas:
        return []
    found = {
        str(context.node_map[ref_id].metadata.get(META_PERSONA_TYPE, "")).lower()
        for ref_id in personas
        if ref_id in context.node_map
    }
    missing = [t.capitalize() for t in PERSONA_TYPES if t not in found]
    if not missing:
        return []
    return [f"Missing persona types: [{', '.join(missing)}]"]


@register_check("persona-requirement-trace")
def persona_requirement_trace(
    asset: Asset | None, context: ProjectContext, rule: Rule
) -> list[Finding]:
    """Personas drive main requirements; main requirements are driven by a persona."""
    findings: list[Finding] = []
    for ref_id in context.declared_ids:
        file_path = context.id_to_file.get(ref_id)
        if ref_id.startswith("PER_"):
            requirements = [c for c in context.linked_downlinks(ref_id) if c.startswith("REQ_")]
            if not requirements:
                findings.append(
                    Finding(
                        f'Persona "{ref_id}" has no associated requirements; '
                        "every persona must drive at least one main REQ_ node",
                        file_path=file_path,
                        ref_id=ref_id,
                    )
                )
            for req_id in requirements:
                if _has_parent_requirement(context, req_id):
                    findings.append(
                        Finding(
                            f'Persona "{ref_id}" is linked to sub-requirement "{req_id}"; '
                            "link the main requirement instead",
                            file_path=file_path,
                            ref_id=ref_id,
                        )
                    )
        elif ref_id.startswith("REQ_") and not _has_parent_requirement(context, ref_id):
            if not any(p.startswith("PER_") for p in context.linked_uplinks(ref_id)):
                findings.append(
                    Finding(
                        f'Main requirement "{ref_id}" has no linked persona',
                        file_path=file_path,
                        ref_id=ref_id,
                    )
                )
    return findings


@register_check("journey-integrity")
def journey_integrity(asset: Asset | None, context: ProjectContext, rule: Rule) -> list[Finding]:
    """Behavioral personas and functional requirements should be covered by a journey."""
    # Personas drive journeys from above; requirements may also be exercised
    # as steps inside the journey.
    covered: set[str] = set()
    for journey in _declared_with_prefix(context, "JRN_"):
        covered.update(context.linked_uplinks(journey))
        covered.update(
            child for child in context.linked_downlinks(journey) if child.startswith("REQ_")
        )

    findings: list[Finding] = []
    for ref_id in _declared_with_prefix(context, "PER_"):
        record = context.node_map.get(ref_id)
        persona_type = str(record.metadata.get(META_PERSONA_TYPE, "actor")) if record else "actor"
        if persona_type.lower() in BEHAVIORAL_PERSONA_TYPES and ref_id not in covered:
            findings.append(
                Finding(
                    f'{persona_type.capitalize()} persona "{ref_id}" has no associated journey',
                    file_path=context.id_to_file.get(ref_id),
                    ref_id=ref_id,
                )
            )
    for ref_id in _declared_with_prefix(context, "REQ_"):
        if _is_functional(context, ref_id) and ref_id not in covered:
            findings.append(
                Finding(
                    f'Functional requirement "{ref_id}" is not validated by any journey',
                    file_path=context.id_to_file.get(ref_id),
                    ref_id=ref_id,
                )
            )
    return findings


@register_check("flow-requirement-trace")
def flow_requirement_trace(
    asset: Asset | None, context: ProjectContext, rule: Rule
) -> list[Finding]:
    """Every flow must reach a functional requirement by following uplinks."""
    findings: list[Finding] = []
    for ref_id in _declared_with_prefix(context, "FLOW_"):
        seen = {ref_id}
        queue = deque([ref_id])
        traced = False
        while queue and not traced:
            for parent in context.linked_uplinks(queue.popleft()):
                if parent in seen:
                    continue
                if parent.startswith("REQ_") and _is_functional(context, parent):
                    traced = True
                    break
                seen.add(parent)
                queue.append(parent)
        if not traced:
            findings.append(
                Finding(
                    f'Flow "{ref_id}" does not trace to any functional requirement',
                    file_path=context.id_to_file.get(ref_id),
                    ref_id=ref_id,
                )
            )
    return findings
