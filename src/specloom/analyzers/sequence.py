"""Sequence notation analyzer."""

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

# ``participant ID``, ``actor ID as Some Label``, ``create participant ID``.
# The identifier is the token right after the keyword; anything after ``as``
# is a display label only.
_DECLARATION_RE = re.compile(
    r"^(?:create\s+)?(?P<kind>participant|actor)\s+(?P<id>[^\s:]+)(?:\s+as\s+(?P<label>.+))?$",
    re.IGNORECASE,
)
# Identifiers may contain hyphens; the lazy source stops at the first arrow.
_MESSAGE_RE = re.compile(
    r"^(?P<src>[\w.-]+?)\s*"
    r"(?P<arrow><<-->>|<<->>|-->>|->>|-->|->|--x|-x|--\)|-\))"
    r"\s*[+-]?\s*(?P<dst>[\w.-]+)\s*"
    r"(?::\s*(?P<label>.*))?$"
)
# Block keywords whose lines never carry a message.
_BLOCK_KEYWORDS = frozenset(
    {
        "loop", "alt", "else", "opt", "par", "and", "critical", "break", "rect",
        "end", "note", "activate", "deactivate", "autonumber", "box", "destroy",
        "title", "links", "link", "properties", "details",
    }
)


class SequenceAnalyzer(DiagramAnalyzer):
    """Participants and messages of a ``sequenceDiagram``.

    Declared participants come first in declaration order, then any message
    endpoint that was never declared.  Aliased declarations
    (``participant A as Alice Smith``) keep ``A`` as the identifier and record
    the alias in ``labels``.
    """

    diagram_type = "sequence"
    keywords = ("sequenceDiagram",)

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}

        for raw in body_lines(content):
            line = raw.strip()
            if not line:
                continue
            decl = _DECLARATION_RE.match(line)
            if decl:
                node_id = decl.group("id")
                collector.add(node_id)
                if decl.group("label"):
                    labels.setdefault(node_id, strip_quotes(decl.group("label")))
                continue
            if line.split(None, 1)[0].lower() in _BLOCK_KEYWORDS:
                continue
            msg = _MESSAGE_RE.match(line)
            if msg is None:
                continue
            src, dst = msg.group("src"), msg.group("dst")
            collector.add(src)
            collector.add(dst)
            label = msg.group("label")
            label = label.strip() if label else None
            relationships.append(Relationship(src, dst, label or None))

        return self._result(collector, relationships, labels)
