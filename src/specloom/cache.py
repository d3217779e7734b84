"""Content-addressed parse cache for diagram analyses.

Entries are keyed by the SHA-256 of the file content and persisted as one
versioned JSON document::

    {"version": "1", "lastUpdated": <epoch ms>, "entries": {<hash>: {...}}}

A document with another version, or one that cannot be read, is discarded
and rebuilt.  The cache only ever affects speed: a hit returns exactly what
a fresh analysis of the same content would.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from specloom.analyzers import analyze as analyze_content
from specloom.analyzers.base import DiagramAnalysis, Relationship

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = "1"
_MS_PER_DAY = 24 * 60 * 60 * 1000


def content_hash(content: str) -> str:
    """Return the hex SHA-256 digest of *content*."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParseCacheEntry:
    """A persisted analysis for one content hash."""

    content_hash: str
    timestamp: int  # epoch ms when the entry was created
    diagram_type: str
    nodes: tuple[str, ...]
    relationships: tuple[Relationship, ...]
    file_path: str | None = None
    labels: dict[str, str] = field(default_factory=dict, hash=False)
    version: str = CACHE_FORMAT_VERSION

    def to_analysis(self) -> DiagramAnalysis:
        return DiagramAnalysis(
            diagram_type=self.diagram_type,
            nodes=self.nodes,
            relationships=self.relationships,
            labels=dict(self.labels),
            from_cache=True,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "contentHash": self.content_hash,
            "timestamp": self.timestamp,
            "diagramType": self.diagram_type,
            "nodes": list(self.nodes),
            "relationships": [rel.to_dict() for rel in self.relationships],
            "filePath": self.file_path,
            "labels": dict(self.labels),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> ParseCacheEntry:
        """Rebuild an entry; raises ``KeyError``/``TypeError``/``ValueError`` when malformed."""
        nodes = data["nodes"]
        relationships = data["relationships"]
        if not isinstance(nodes, list) or not isinstance(relationships, list):
            msg = f"cache entry {key}: nodes and relationships must be lists"
            raise TypeError(msg)
        labels = data.get("labels") or {}
        if not isinstance(labels, dict):
            msg = f"cache entry {key}: labels must be a mapping"
            raise TypeError(msg)
        return cls(
            content_hash=str(data.get("contentHash", key)),
            timestamp=int(data["timestamp"]),
            diagram_type=str(data["diagramType"]),
            nodes=tuple(str(n) for n in nodes),
            relationships=tuple(Relationship.from_dict(r) for r in relationships),
            file_path=data.get("filePath"),
            labels={str(k): str(v) for k, v in labels.items()},
            version=str(data.get("version", CACHE_FORMAT_VERSION)),
        )


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class ParseCache:
    """Memoizes :class:`DiagramAnalysis` results by content hash.

    Safe to share between analysis worker threads; the document on disk is
    written only by :meth:`save`, called once at the end of a pass.
    When *path* is None the cache lives in memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._entries: dict[str, ParseCacheEntry] = {}
        self._lock = threading.Lock()
        self._dirty = False
        self._used: set[str] = set()  # keys read or written since construction
        self.hits = 0
        self.misses = 0
        if path is not None:
            self.load()

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, content: object) -> bool:
        return isinstance(content, str) and content_hash(content) in self._entries

    # -- lookups ------------------------------------------------------------

    def get(self, content: str) -> DiagramAnalysis | None:
        """Return the stored analysis for *content* (``from_cache=True``), or None."""
        key = content_hash(content)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
            self._used.add(key)
        return entry.to_analysis()

    def put(
        self, content: str, analysis: DiagramAnalysis, *, file_path: str | None = None
    ) -> ParseCacheEntry:
        """Store *analysis* under the hash of *content*.

        An entry already stored for the same hash is kept as is and returned.
        """
        key = content_hash(content)
        with self._lock:
            self._used.add(key)
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            entry = ParseCacheEntry(
                content_hash=key,
                timestamp=_now_ms(),
                diagram_type=analysis.diagram_type,
                nodes=tuple(analysis.nodes),
                relationships=tuple(analysis.relationships),
                file_path=file_path,
                labels=dict(analysis.labels),
            )
            self._entries[key] = entry
            self._dirty = True
        return entry

    def analyze(self, content: str, *, file_path: str | None = None) -> DiagramAnalysis:
        """Return the cached analysis for *content*, analyzing and storing it on a miss."""
        cached = self.get(content)
        if cached is not None:
            return cached
        analysis = analyze_content(content)
        self.put(content, analysis, file_path=file_path)
        return analysis

    # -- maintenance --------------------------------------------------------

    def prune(self, max_age_days: float) -> int:
        """Drop entries older than *max_age_days*; return how many were removed.

        Entries used by this cache instance are kept whatever their age.
        """
        cutoff = _now_ms() - int(max_age_days * _MS_PER_DAY)
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.timestamp < cutoff and key not in self._used
            ]
            for key in stale:
                del self._entries[key]
            if stale:
                self._dirty = True
        if stale:
            logger.debug(
                "Pruned %d parse cache entries older than %s days", len(stale), max_age_days
            )
        return len(stale)

    def clear(self) -> None:
        """Remove every entry (the document is rewritten on the next save)."""
        with self._lock:
            self._entries.clear()
            self._dirty = True

    def stats(self) -> dict[str, int]:
        """Return cache statistics."""
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    # -- persistence --------------------------------------------------------

    def load(self) -> None:
        """Read the cache document, discarding it when unreadable or outdated."""
        self._entries = {}
        self._dirty = False
        if self._path is None or not self._path.is_file():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.info("Discarding unreadable parse cache %s: %s", self._path, exc)
            self._dirty = True
            return

        if not isinstance(data, dict) or str(data.get("version")) != CACHE_FORMAT_VERSION:
            found = data.get("version") if isinstance(data, dict) else None
            logger.info(
                "Parse cache version %r does not match %r, rebuilding",
                found,
                CACHE_FORMAT_VERSION,
            )
            self._dirty = True
            return

        entries = data.get("entries")
        if not isinstance(entries, dict):
            logger.info("Parse cache %s has no entries mapping, rebuilding", self._path)
            self._dirty = True
            return

        for key, raw in entries.items():
            if not isinstance(raw, dict):
                self._dirty = True
                continue
            try:
                entry = ParseCacheEntry.from_dict(str(key), raw)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed parse cache entry %s", key)
                self._dirty = True
                continue
            if entry.version != CACHE_FORMAT_VERSION:
                self._dirty = True
                continue
            self._entries[str(key)] = entry

    def save(self) -> bool:
        """Write the document when it changed; return True if a write happened.

        Write failures are logged and swallowed: a cache that cannot be
        persisted only costs speed on the next run.
        """
        if self._path is None or not self._dirty:
            return False
        with self._lock:
            payload = {
                "version": CACHE_FORMAT_VERSION,
                "lastUpdated": _now_ms(),
                "entries": {key: entry.to_dict() for key, entry in self._entries.items()},
            }
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(json.dumps(payload, separators=(",", ":")), encoding="utf-8")
                os.replace(tmp_path, self._path)
            except OSError as exc:
                logger.warning("Could not write parse cache %s: %s", self._path, exc)
                return False
            self._dirty = False
        return True
