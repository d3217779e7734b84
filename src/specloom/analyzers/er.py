"""Entity-relationship notation analyzer."""

from __future__ import annotations

import re

from specloom.analyzers.base import (
    DiagramAnalysis,
    DiagramAnalyzer,
    NodeCollector,
    Relationship,
    body_lines,
    strip_quotes,
)

# ``CUSTOMER ||--o{ ORDER : places`` and the ``..`` non-identifying form.
_RELATIONSHIP_RE = re.compile(
    r"^(?P<src>[\w-]+)\s+"
    r"(?P<card>[|}o][|o]?(?:--|\.\.)[|o][|{o]?)\s+"
    r"(?P<dst>[\w-]+)\s*"
    r"(?::\s*(?P<label>.+))?$"
)
# ``CUSTOMER {`` or ``CUSTOMER["Customer"] {`` opening an attribute block.
_ENTITY_RE = re.compile(r'^(?P<id>[\w-]+)\s*(?:\[(?P<alias>[^\]]*)\])?\s*\{')
_BARE_ENTITY_RE = re.compile(r"^(?P<id>[\w-]+)$")


class ErAnalyzer(DiagramAnalyzer):
    """Entities and relationships of an ``erDiagram``.

    Attribute lines inside ``{ ... }`` blocks are skipped.
    """

    diagram_type = "er"
    keywords = ("erDiagram",)

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}
        in_block = False

        for raw in body_lines(content):
            line = raw.strip()
            if not line:
                continue
            if in_block:
                if line.startswith("}"):
                    in_block = False
                continue

            entity = _ENTITY_RE.match(line)
            if entity:
                collector.add(entity.group("id"))
                if entity.group("alias"):
                    labels.setdefault(entity.group("id"), strip_quotes(entity.group("alias")))
                in_block = not line.rstrip().endswith("}")
                continue

            rel = _RELATIONSHIP_RE.match(line)
            if rel:
                src, dst = rel.group("src"), rel.group("dst")
                collector.add(src)
                collector.add(dst)
                label = rel.group("label")
                label = strip_quotes(label) if label else None
                relationships.append(Relationship(src, dst, label))
                continue

            bare = _BARE_ENTITY_RE.match(line)
            if bare:
                collector.add(bare.group("id"))

        return self._result(collector, relationships, labels)
