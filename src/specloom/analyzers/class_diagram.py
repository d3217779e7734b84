"""Class-diagram notation analyzer."""

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

_CLASS_RE = re.compile(r"^class\s+(?P<id>[\w-]+)(?:~[^~]*~)?(?:\s*\[\"?(?P<label>[^\]\"]*)\"?\])?")
# ``A <|-- B``, ``A "1" *-- "many" B : owns``, ``A ..> B``, ``A -- B``.
_RELATION_RE = re.compile(
    r"^(?P<src>[\w-]+)\s*(?:\"[^\"]*\"\s*)?"
    r"(?P<arrow><\|--|<\|\.\.|--\|>|\.\.\|>|\*--|--\*|o--|--o|<--|-->|<\.\.|\.\.>|--|\.\.)"
    r"\s*(?:\"[^\"]*\"\s*)?(?P<dst>[\w-]+)\s*"
    r"(?::\s*(?P<label>.*))?$"
)
_SKIP_KEYWORDS = frozenset(
    {"direction", "note", "classdef", "style", "cssclass", "link", "click", "namespace"}
)
# Head on the left: ``A <|-- B`` is the edge ``B -> A``.
_REVERSED_ARROWS = frozenset({"<|--", "<|..", "<--", "<.."})


class ClassAnalyzer(DiagramAnalyzer):
    """Classes and relations of a ``classDiagram``.

    Class bodies (``class A { ... }``) contribute only their name.
    """

    diagram_type = "class"
    keywords = ("classDiagram-v2", "classDiagram")

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}
        depth = 0

        for raw in body_lines(content):
            line = raw.strip()
            if not line:
                continue
            if depth:
                depth += line.count("{") - line.count("}")
                continue

            # ``namespace X {`` is skipped but its body is scanned as usual.
            if line.split(None, 1)[0].lower() in _SKIP_KEYWORDS or line == "}":
                continue

            decl = _CLASS_RE.match(line)
            if decl:
                collector.add(decl.group("id"))
                if decl.group("label"):
                    labels.setdefault(decl.group("id"), strip_quotes(decl.group("label")))
                depth = max(0, line.count("{") - line.count("}"))
                continue

            rel = _RELATION_RE.match(line)
            if rel:
                src, dst = rel.group("src"), rel.group("dst")
                if rel.group("arrow") in _REVERSED_ARROWS:
                    src, dst = dst, src
                collector.add(src)
                collector.add(dst)
                label = rel.group("label")
                label = label.strip() if label else None
                relationships.append(Relationship(src, dst, label or None))

        return self._result(collector, relationships, labels)
