"""Asset collector: enumerate documentation files and parse their headers."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from specloom.frontmatter import FrontMatter, parse_front_matter

logger = logging.getLogger(__name__)

DIAGRAM_EXTENSIONS: frozenset[str] = frozenset({".mermaid", ".mmd"})
NOTE_EXTENSIONS: frozenset[str] = frozenset({".md"})
ASSET_EXTENSIONS: frozenset[str] = DIAGRAM_EXTENSIONS | NOTE_EXTENSIONS


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Asset:
    """One documentation file, read once per pass."""

    relative_path: str  # POSIX path relative to the docs directory
    absolute_path: Path
    raw_content: str
    body: str  # content after the front matter block
    front_matter: FrontMatter = field(compare=False)

    @property
    def declared_id(self) -> str | None:
        return self.front_matter.id

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.relative_path).suffix.lower()

    @property
    def stem(self) -> str:
        return PurePosixPath(self.relative_path).stem

    @property
    def folder(self) -> str:
        """Parent directory relative to the docs root (``""`` at the root)."""
        parent = str(PurePosixPath(self.relative_path).parent)
        return "" if parent == "." else parent

    @property
    def is_diagram(self) -> bool:
        return self.suffix in DIAGRAM_EXTENSIONS

    @property
    def is_note(self) -> bool:
        return self.suffix in NOTE_EXTENSIONS


@dataclass
class CollectedAssets:
    """Everything the collector found under the docs directory."""

    assets: list[Asset] = field(default_factory=list)
    directories: list[str] = field(default_factory=list)
    foreign_files: list[str] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Ignore handling
# ---------------------------------------------------------------------------


def read_ignore_file(path: Path) -> list[str]:
    """Return the glob patterns listed in an ignore file (``#`` comments allowed)."""
    if not path.is_file():
        return []
    patterns: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line.rstrip("/"))
    return patterns


def is_ignored(rel_path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    """True when *rel_path* or any of its path segments matches an ignore glob.

    Hidden entries (leading ``.``) are always ignored.
    """
    parts = PurePosixPath(rel_path).parts
    if any(part.startswith(".") for part in parts):
        return True
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_asset(path: Path, docs_dir: Path) -> Asset:
    """Read and parse one file.  Raises ``OSError``/``UnicodeDecodeError`` on read failure."""
    raw = path.read_text(encoding="utf-8")
    front_matter, body = parse_front_matter(raw)
    return Asset(
        relative_path=path.relative_to(docs_dir).as_posix(),
        absolute_path=path,
        raw_content=raw,
        body=body,
        front_matter=front_matter,
    )


def collect_assets(docs_dir: Path, *, ignore: list[str] | tuple[str, ...] = ()) -> CollectedAssets:
    """Walk *docs_dir* and return its assets, directories and foreign files.

    Results are sorted by relative path so every pass sees the same order.
    Files that cannot be read as UTF-8 are listed in ``unreadable`` and
    otherwise skipped.
    """
    result = CollectedAssets()
    for path in sorted(docs_dir.rglob("*")):
        rel = path.relative_to(docs_dir).as_posix()
        if is_ignored(rel, ignore):
            continue
        if path.is_dir():
            result.directories.append(rel)
            continue
        if not path.is_file():
            continue
        if path.suffix.lower() not in ASSET_EXTENSIONS:
            result.foreign_files.append(rel)
            continue
        try:
            result.assets.append(load_asset(path, docs_dir))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping unreadable document %s: %s", rel, exc)
            result.unreadable.append(rel)

    logger.debug(
        "Collected %d assets, %d directories, %d foreign files under %s",
        len(result.assets),
        len(result.directories),
        len(result.foreign_files),
        docs_dir,
    )
    return result
