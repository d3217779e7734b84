"""Requirement notation analyzer."""

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

# ``requirement REQ_Login {``, ``functionalRequirement x {``, ``element api {``.
_BLOCK_RE = re.compile(
    r"^(?:\w+Requirement|requirement|element)\s+(?P<name>\"[^\"]+\"|[\w.-]+)\s*\{",
    re.IGNORECASE,
)
_ID_RE = re.compile(r"^id\s*:\s*(?P<value>\"[^\"]*\"|'[^']*'|[\w.-]+)\s*$")
_FORWARD_RE = re.compile(r"^(?P<src>[\w.-]+)\s*-\s*(?P<verb>\w+)\s*->\s*(?P<dst>[\w.-]+)\s*$")
_BACKWARD_RE = re.compile(r"^(?P<dst>[\w.-]+)\s*<-\s*(?P<verb>\w+)\s*-\s*(?P<src>[\w.-]+)\s*$")


class RequirementAnalyzer(DiagramAnalyzer):
    """Requirements, elements and their typed relationships.

    Both ``a - satisfies -> b`` and ``b <- satisfies - a`` produce the edge
    ``a -> b`` labeled ``satisfies``.  An ``id:`` field inside a block that
    differs from the block name is recorded as an extra node.
    """

    diagram_type = "requirement"
    keywords = ("requirementDiagram",)

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}
        current: str | None = None

        for raw in body_lines(content):
            line = raw.strip()
            if not line:
                continue

            block = _BLOCK_RE.match(line)
            if block:
                current = strip_quotes(block.group("name"))
                collector.add(current)
                continue
            if line.startswith("}"):
                current = None
                continue
            if current is not None:
                ident = _ID_RE.match(line)
                if ident:
                    value = strip_quotes(ident.group("value"))
                    if value and value != current:
                        collector.add(value)
                        labels.setdefault(value, current)
                continue

            for pattern in (_FORWARD_RE, _BACKWARD_RE):
                rel = pattern.match(line)
                if rel:
                    src, dst = rel.group("src"), rel.group("dst")
                    collector.add(src)
                    collector.add(dst)
                    relationships.append(Relationship(src, dst, rel.group("verb")))
                    break

        return self._result(collector, relationships, labels)
