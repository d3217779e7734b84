"""Graph builder: fold front matter and diagram analyses into one ProjectContext.

Two passes over the assets, in collection order:

1. Register every declared identifier (first file wins, collisions are
   recorded in ``duplicates``) and add the explicit front-matter edges
   (``uplink``, ``downlinks``, ``requirements``) on the declaring node only.
2. Add the implicit edges, mirrored on both ends: hub-folder membership
   (file -> group id) and diagram ownership (file -> semantic identifiers
   found in its diagram).  An ownership edge is only added to a node that
   has no explicitly declared parent.

The builder never validates; every check is a rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from specloom.frontmatter import RequirementFrontMatter

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from specloom.analyzers.base import DiagramAnalysis
    from specloom.assets import Asset

logger = logging.getLogger(__name__)

ROOT_ID = "ROOT"
SEMANTIC_ID_RE = re.compile(r"^[A-Z]{2,}_")
FOOTNOTES_FOLDER = "footnotes"
OTHERS_FOLDER = "others"
SYSTEM_FOLDERS: tuple[str, ...] = (OTHERS_FOLDER, FOOTNOTES_FOLDER)

# Metadata keys written during assembly.
META_FILE_ROOT = "isFileRoot"
META_CLASSIFICATION = "classification"
DEFAULT_CLASSIFICATION = "Functional"


class FrozenContextError(RuntimeError):
    """Raised on a structural write to a context after :meth:`ProjectContext.freeze`."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HubCategory:
    """A folder registered as a navigation category by a rule's ``hub``."""

    id: str
    title: str
    folder: str
    id_prefix: str | None = None
    rule_id: str | None = None


@dataclass(frozen=True)
class DeclaredLink:
    """An edge written explicitly in front matter."""

    source: str
    target: str
    kind: str  # "uplink" | "downlink" | "requirement"
    file_path: str


@dataclass
class NodeRecord:
    """Uplinks, downlinks and metadata of one identifier.

    Edge lists keep first-seen order without repeats.  ``metadata`` is a
    read-only view; it is written through :meth:`ProjectContext.annotate`
    once the context is frozen.
    """

    uplinks: Sequence[str] = field(default_factory=list)
    downlinks: Sequence[str] = field(default_factory=list)
    _metadata: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def metadata(self) -> Mapping[str, Any]:
        return MappingProxyType(self._metadata)

    def add_uplink(self, ref_id: str) -> None:
        if ref_id not in self.uplinks:
            self.uplinks.append(ref_id)  # type: ignore[attr-defined]

    def add_downlink(self, ref_id: str) -> None:
        if ref_id not in self.downlinks:
            self.downlinks.append(ref_id)  # type: ignore[attr-defined]

    def _freeze(self) -> None:
        self.uplinks = tuple(self.uplinks)
        self.downlinks = tuple(self.downlinks)


@dataclass
class ProjectContext:
    """The whole-project graph shared by every rule.

    Built by :func:`build_context`, then frozen before rule evaluation.
    After :meth:`freeze` the only permitted write is :meth:`annotate`.
    """

    referenced_ids: set[str] = field(default_factory=set)
    node_map: dict[str, NodeRecord] = field(default_factory=dict)
    id_to_file: dict[str, str] = field(default_factory=dict)
    duplicates: dict[str, list[str]] = field(default_factory=dict)
    declared_links: list[DeclaredLink] = field(default_factory=list)
    analyses: dict[str, DiagramAnalysis] = field(default_factory=dict)
    hubs: tuple[HubCategory, ...] = ()
    folders: dict[str, list[str]] = field(default_factory=dict)  # folder -> claiming rule ids
    folder_prefixes: dict[str, str] = field(default_factory=dict)  # folder -> id prefix
    files: list[str] = field(default_factory=list)  # every asset, relative paths
    directories: list[str] = field(default_factory=list)
    foreign_files: list[str] = field(default_factory=list)
    system_folders: tuple[str, ...] = SYSTEM_FOLDERS
    exempt_ids: set[str] = field(default_factory=set)
    stem_ids: set[str] = field(default_factory=set)
    metadata_writers: dict[tuple[str, str], str] = field(default_factory=dict)
    frozen: bool = False
    _inverse_cache: tuple[dict[str, list[str]], dict[str, list[str]]] | None = field(
        default=None, init=False, repr=False, compare=False
    )

    # -- assembly helpers ---------------------------------------------------

    def node(self, ref_id: str) -> NodeRecord:
        """Return the record for *ref_id*, creating it while still building."""
        record = self.node_map.get(ref_id)
        if record is None:
            if self.frozen:
                msg = f"cannot add node '{ref_id}' to a frozen context"
                raise FrozenContextError(msg)
            record = NodeRecord()
            self.node_map[ref_id] = record
        return record

    def link(self, parent: str, child: str) -> None:
        """Add the mirrored edge parent -> child.

        Edges do not count as references; callers record which end was
        mentioned by another document.
        """
        self.node(child).add_uplink(parent)
        self.node(parent).add_downlink(child)

    def freeze(self) -> None:
        """End the assembly phase; the graph becomes read-only."""
        if self.frozen:
            return
        for record in self.node_map.values():
            record._freeze()
        self.referenced_ids = frozenset(self.referenced_ids)  # type: ignore[assignment]
        self.node_map = MappingProxyType(self.node_map)  # type: ignore[assignment]
        self.id_to_file = MappingProxyType(self.id_to_file)  # type: ignore[assignment]
        self.frozen = True

    # -- sanctioned metadata channel ---------------------------------------

    def annotate(self, node_id: str, key: str, value: Any, *, writer: str) -> bool:
        """Record ``metadata[key] = value`` on *node_id* on behalf of rule *writer*.

        Additive only: an existing different value is kept and the conflict
        is logged.  Returns True when the value was stored.
        """
        record = self.node_map.get(node_id)
        if record is None:
            logger.debug("%s: no node '%s' to annotate with %s", writer, node_id, key)
            return False
        existing = record._metadata.get(key)
        if existing is not None and existing != value:
            logger.warning(
                "%s: keeping %s=%r on '%s' (written by %s), ignoring %r",
                writer,
                key,
                existing,
                node_id,
                self.metadata_writers.get((node_id, key), "graph builder"),
                value,
            )
            return False
        record._metadata[key] = value
        self.metadata_writers[(node_id, key)] = writer
        return True

    # -- queries ------------------------------------------------------------

    @property
    def declared_ids(self) -> list[str]:
        """Identifiers declared in front matter, in registration order."""
        return [ref_id for ref_id in self.id_to_file if ref_id not in self.stem_ids]

    def is_declared(self, ref_id: str) -> bool:
        return ref_id in self.id_to_file

    def _inverse(self) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
        """Return (parents by child from downlinks, children by parent from uplinks)."""
        if self._inverse_cache is not None:
            return self._inverse_cache
        parents: dict[str, list[str]] = {}
        children: dict[str, list[str]] = {}
        for ref_id, record in self.node_map.items():
            for child in record.downlinks:
                parents.setdefault(child, []).append(ref_id)
            for parent in record.uplinks:
                children.setdefault(parent, []).append(ref_id)
        if self.frozen:
            self._inverse_cache = (parents, children)
        return parents, children

    def linked_uplinks(self, ref_id: str) -> list[str]:
        """Parents of *ref_id* declared on either end of an edge."""
        record = self.node_map.get(ref_id)
        result = list(record.uplinks) if record else []
        for other in self._inverse()[0].get(ref_id, []):
            if other not in result:
                result.append(other)
        return result

    def linked_downlinks(self, ref_id: str) -> list[str]:
        """Children of *ref_id* declared on either end of an edge."""
        record = self.node_map.get(ref_id)
        result = list(record.downlinks) if record else []
        for other in self._inverse()[1].get(ref_id, []):
            if other not in result:
                result.append(other)
        return result

    def hub_for(self, relative_path: str) -> HubCategory | None:
        """Return the hub whose folder contains *relative_path* (footnotes excluded)."""
        if is_footnote(relative_path):
            return None
        for hub in self.hubs:
            if relative_path.startswith(hub.folder + "/"):
                return hub
        return None


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def _register(context: ProjectContext, ref_id: str, file_path: str) -> None:
    owner = context.id_to_file.get(ref_id)
    if owner is None:
        context.id_to_file[ref_id] = file_path
        return
    if owner == file_path:
        return
    files = context.duplicates.setdefault(ref_id, [owner])
    if file_path not in files:
        files.append(file_path)
    logger.debug("Identifier %s declared again in %s (first in %s)", ref_id, file_path, owner)


def is_footnote(relative_path: str) -> bool:
    """True for files inside a ``footnotes/`` folder at any depth."""
    return FOOTNOTES_FOLDER in PurePosixPath(relative_path).parts[:-1]


def _explicit_links(
    context: ProjectContext,
    source: str,
    file_path: str,
    *,
    uplink: str | None,
    downlinks: Iterable[str] | None,
    requirements: Iterable[str] | None,
    explicit_parents: set[str],
) -> None:
    record = context.node(source)
    declared: list[tuple[str, str]] = []
    if uplink:
        declared.append((uplink, "uplink"))
    declared.extend((req, "requirement") for req in requirements or ())
    for target, kind in declared:
        record.add_uplink(target)
        explicit_parents.add(source)
        context.declared_links.append(DeclaredLink(source, target, kind, file_path))
        context.referenced_ids.add(target)
        context.node(target)
    for target in downlinks or ():
        record.add_downlink(target)
        context.declared_links.append(DeclaredLink(source, target, "downlink", file_path))
        context.referenced_ids.add(target)
        context.node(target)


def build_context(
    assets: Sequence[Asset],
    analyses: Mapping[str, DiagramAnalysis],
    *,
    hubs: Iterable[HubCategory] = (),
    folders: Mapping[str, list[str]] | None = None,
    folder_prefixes: Mapping[str, str] | None = None,
    exempt_ids: Iterable[str] = (),
    directories: Iterable[str] = (),
    foreign_files: Iterable[str] = (),
    system_folders: Iterable[str] = SYSTEM_FOLDERS,
) -> ProjectContext:
    """Assemble the project graph from *assets* and their *analyses*.

    *analyses* is keyed by asset relative path; notes without a diagram
    simply have no entry.  Footnotes are attachments: their identifiers
    and file stems resolve to the footnote file only when nothing else
    declares them, and they add no edges.
    """
    hub_list = tuple(hubs)
    context = ProjectContext(
        analyses=dict(analyses),
        hubs=hub_list,
        folders={k: list(v) for k, v in (folders or {}).items()},
        folder_prefixes=dict(folder_prefixes or {}),
        files=[asset.relative_path for asset in assets],
        directories=list(directories),
        foreign_files=list(foreign_files),
        system_folders=tuple(system_folders),
    )
    context.exempt_ids = {ROOT_ID, *(hub.id for hub in hub_list), *exempt_ids}
    context.referenced_ids.add(ROOT_ID)
    context.referenced_ids.update(hub.id for hub in hub_list)
    explicit_parents: set[str] = set()
    documents = [asset for asset in assets if not is_footnote(asset.relative_path)]

    # --- Pass 1: identifiers and explicit edges ---
    for asset in documents:
        fm = asset.front_matter
        for ref_id in fm.all_ids:
            _register(context, ref_id, asset.relative_path)
        if fm.id:
            _explicit_links(
                context,
                fm.id,
                asset.relative_path,
                uplink=fm.uplink,
                downlinks=fm.downlinks,
                requirements=fm.requirements,
                explicit_parents=explicit_parents,
            )
        for entity in fm.entities:
            _explicit_links(
                context,
                entity.id,
                asset.relative_path,
                uplink=entity.uplink,
                downlinks=entity.downlinks,
                requirements=entity.requirements,
                explicit_parents=explicit_parents,
            )

    # Notes are also addressable by file stem; declared ids take precedence.
    for asset in assets:
        aliases = [asset.stem] if asset.is_note else []
        if is_footnote(asset.relative_path) and asset.declared_id:
            aliases.append(asset.declared_id)
        for alias in aliases:
            if alias not in context.id_to_file:
                context.id_to_file[alias] = asset.relative_path
                context.stem_ids.add(alias)

    # --- Pass 2: implicit edges ---
    for asset in documents:
        file_id = asset.declared_id
        analysis = analyses.get(asset.relative_path)
        if analysis is not None:
            # A diagram never references the file that owns it.
            context.referenced_ids.update(
                endpoint for endpoint in analysis.endpoints if endpoint != file_id
            )
        if not file_id:
            continue

        hub = context.hub_for(asset.relative_path)
        if hub is not None and hub.id != file_id:
            context.link(hub.id, file_id)
            context.referenced_ids.add(file_id)

        if analysis is None:
            continue
        for found in analysis.nodes:
            if found == file_id or not SEMANTIC_ID_RE.match(found):
                continue
            if found.startswith("PER_") and file_id.startswith(("JRN_", "REQ_")):
                # A persona in a journey or requirement drives it.
                parent, child = found, file_id
            else:
                parent, child = file_id, found
            context.referenced_ids.add(found)
            if child not in explicit_parents:
                context.link(parent, child)

    _assign_metadata(context, documents)
    logger.debug(
        "Built graph: %d nodes, %d identifiers, %d duplicates",
        len(context.node_map),
        len(context.id_to_file),
        len(context.duplicates),
    )
    return context


def _assign_metadata(context: ProjectContext, assets: Sequence[Asset]) -> None:
    for asset in assets:
        fm = asset.front_matter
        if fm.id:
            meta = context.node(fm.id)._metadata
            meta.setdefault(META_FILE_ROOT, True)
            classification = (
                fm.classification
                if isinstance(fm, RequirementFrontMatter)
                else fm.get("classification")
            )
            if classification:
                meta.setdefault(META_CLASSIFICATION, str(classification))
            elif fm.id.startswith("REQ_") and META_CLASSIFICATION not in meta:
                parents = context.linked_uplinks(fm.id)
                if not any(parent.startswith("REQ_") for parent in parents):
                    meta[META_CLASSIFICATION] = DEFAULT_CLASSIFICATION
        for entity in fm.entities:
            if entity.classification:
                context.node(entity.id)._metadata.setdefault(
                    META_CLASSIFICATION, entity.classification
                )
