"""Tests for specloom.cache — content-addressed parse cache."""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING

import pytest

from specloom.analyzers import analyze
from specloom.cache import CACHE_FORMAT_VERSION, ParseCache, ParseCacheEntry, content_hash

if TYPE_CHECKING:
    from pathlib import Path

SEQUENCE = (
    "sequenceDiagram\n"
    "    participant PER_User\n"
    "    participant COMP_Auth\n"
    "    PER_User -> COMP_Auth: Login\n"
)
FLOW = "graph TD\n  A --> B\n"


class TestContentHash:
    def test_stable_and_distinct(self) -> None:
        assert content_hash(FLOW) == content_hash(FLOW)
        assert content_hash(FLOW) != content_hash(FLOW + " ")
        assert len(content_hash(FLOW)) == 64


class TestParseCacheInMemory:
    def test_get_miss(self) -> None:
        cache = ParseCache()
        assert cache.get(FLOW) is None
        assert cache.misses == 1
        assert cache.hits == 0

    def test_put_and_get(self) -> None:
        cache = ParseCache()
        fresh = analyze(SEQUENCE)
        cache.put(SEQUENCE, fresh, file_path="journeys/JRN_Login.mermaid")
        cached = cache.get(SEQUENCE)
        assert cached is not None
        assert cached.from_cache is True
        assert fresh.from_cache is False
        # from_cache does not take part in equality.
        assert cached == fresh
        assert SEQUENCE in cache
        assert len(cache) == 1

    def test_analyze_cold_then_warm(self) -> None:
        cache = ParseCache()
        cold = cache.analyze(FLOW)
        warm = cache.analyze(FLOW)
        assert cold.from_cache is False
        assert warm.from_cache is True
        assert cold.nodes == warm.nodes
        assert cold.relationships == warm.relationships
        assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1}

    def test_changed_content_is_a_miss(self) -> None:
        cache = ParseCache()
        cache.analyze(FLOW)
        changed = FLOW + "  B --> C\n"
        assert cache.get(changed) is None
        result = cache.analyze(changed)
        assert result.nodes == ("A", "B", "C")
        assert len(cache) == 2

    def test_put_keeps_existing_entry(self) -> None:
        cache = ParseCache()
        first = cache.put(FLOW, analyze(FLOW), file_path="a.mermaid")
        second = cache.put(FLOW, analyze(SEQUENCE), file_path="b.mermaid")
        assert second is first
        cached = cache.get(FLOW)
        assert cached is not None
        assert cached.diagram_type == "flowchart"

    def test_clear(self) -> None:
        cache = ParseCache()
        cache.analyze(FLOW)
        cache.clear()
        assert len(cache) == 0
        assert cache.get(FLOW) is None

    def test_save_without_path_is_noop(self) -> None:
        cache = ParseCache()
        cache.analyze(FLOW)
        assert cache.save() is False

    def test_concurrent_analysis(self) -> None:
        cache = ParseCache()
        texts = [f"graph TD\n  N{i} --> M{i}\n" for i in range(20)]

        def _worker() -> None:
            for text in texts:
                cache.analyze(text)

        threads = [threading.Thread(target=_worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 20
        assert cache.hits + cache.misses == 80


class TestParseCachePersistence:
    def test_save_and_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "cache" / "parse-cache.json"
        cache = ParseCache(path)
        cache.analyze(SEQUENCE, file_path="journeys/JRN_Login.mermaid")
        assert cache.save() is True
        assert path.is_file()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["version"] == CACHE_FORMAT_VERSION
        assert isinstance(data["lastUpdated"], int)
        entry = data["entries"][content_hash(SEQUENCE)]
        assert entry["diagramType"] == "sequence"
        assert entry["nodes"] == ["PER_User", "COMP_Auth"]
        assert entry["relationships"] == [
            {"from": "PER_User", "to": "COMP_Auth", "label": "Login"}
        ]
        assert entry["filePath"] == "journeys/JRN_Login.mermaid"

        reloaded = ParseCache(path)
        cached = reloaded.get(SEQUENCE)
        assert cached is not None
        assert cached == analyze(SEQUENCE)

    def test_save_only_when_dirty(self, tmp_path: Path) -> None:
        path = tmp_path / "parse-cache.json"
        cache = ParseCache(path)
        cache.analyze(FLOW)
        assert cache.save() is True
        assert cache.save() is False

        reloaded = ParseCache(path)
        reloaded.analyze(FLOW)
        assert reloaded.save() is False

    def test_version_mismatch_invalidates(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "parse-cache.json"
        path.write_text(
            json.dumps({"version": "0", "lastUpdated": 0, "entries": {"x": {}}}),
            encoding="utf-8",
        )
        with caplog.at_level(logging.INFO, logger="specloom.cache"):
            cache = ParseCache(path)
        assert len(cache) == 0
        assert "rebuilding" in caplog.text
        # The stale document is replaced on the next save.
        assert cache.save() is True
        assert json.loads(path.read_text(encoding="utf-8"))["version"] == CACHE_FORMAT_VERSION

    def test_corrupt_document_is_discarded(self, tmp_path: Path) -> None:
        path = tmp_path / "parse-cache.json"
        path.write_text("{not json", encoding="utf-8")
        cache = ParseCache(path)
        assert len(cache) == 0
        assert cache.analyze(FLOW).nodes == ("A", "B")

    def test_malformed_entry_is_skipped(self, tmp_path: Path) -> None:
        good = ParseCache()
        entry = good.put(FLOW, analyze(FLOW))
        path = tmp_path / "parse-cache.json"
        path.write_text(
            json.dumps(
                {
                    "version": CACHE_FORMAT_VERSION,
                    "lastUpdated": 0,
                    "entries": {
                        entry.content_hash: entry.to_dict(),
                        "broken": {"nodes": "A"},
                    },
                }
            ),
            encoding="utf-8",
        )
        cache = ParseCache(path)
        assert len(cache) == 1
        assert FLOW in cache

    def test_prune_drops_old_entries(self, tmp_path: Path) -> None:
        path = tmp_path / "parse-cache.json"
        old = ParseCacheEntry(
            content_hash=content_hash(FLOW),
            timestamp=0,
            diagram_type="flowchart",
            nodes=("A", "B"),
            relationships=(),
        )
        path.write_text(
            json.dumps(
                {
                    "version": CACHE_FORMAT_VERSION,
                    "lastUpdated": 0,
                    "entries": {old.content_hash: old.to_dict()},
                }
            ),
            encoding="utf-8",
        )
        cache = ParseCache(path)
        cache.analyze(SEQUENCE)
        assert cache.prune(30) == 1
        assert FLOW not in cache
        assert SEQUENCE in cache

    def test_prune_keeps_old_entries_hit_this_pass(self, tmp_path: Path) -> None:
        path = tmp_path / "parse-cache.json"
        entries: dict[str, object] = {}
        for content, diagram_type in ((FLOW, "flowchart"), (SEQUENCE, "sequence")):
            old = ParseCacheEntry(
                content_hash=content_hash(content),
                timestamp=0,
                diagram_type=diagram_type,
                nodes=(),
                relationships=(),
            )
            entries[old.content_hash] = old.to_dict()
        path.write_text(
            json.dumps({"version": CACHE_FORMAT_VERSION, "lastUpdated": 0, "entries": entries}),
            encoding="utf-8",
        )
        cache = ParseCache(path)
        assert cache.analyze(FLOW).from_cache
        assert cache.prune(30) == 1
        assert cache.save()

        reloaded = ParseCache(path)
        assert FLOW in reloaded
        assert SEQUENCE not in reloaded
        assert reloaded.analyze(FLOW).from_cache
        assert reloaded.hits == 1

    def test_unwritable_location_is_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        cache = ParseCache(blocker / "parse-cache.json")
        cache.analyze(FLOW)
        with caplog.at_level(logging.WARNING, logger="specloom.cache"):
            assert cache.save() is False
        assert "Could not write parse cache" in caplog.text


class TestParseCacheEntry:
    def test_dict_round_trip(self) -> None:
        analysis = analyze(SEQUENCE)
        entry = ParseCache().put(SEQUENCE, analysis, file_path="x.mermaid")
        rebuilt = ParseCacheEntry.from_dict(entry.content_hash, entry.to_dict())
        assert rebuilt == entry
        assert rebuilt.to_analysis() == analysis

    def test_missing_field_raises(self) -> None:
        with pytest.raises(KeyError):
            ParseCacheEntry.from_dict("k", {"nodes": [], "relationships": []})
