"""Mindmap notation analyzer."""

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

# ``GOAL_1["Ship weekly"]``, ``ROLE(Admin)``, ``root((PER_Admin))``, ``X{{text}}``.
_SHAPED_RE = re.compile(
    r"^(?P<id>[\w-]+)\s*"
    r"(?P<shape>\(\(.*\)\)|\)\).*\(\(|\{\{.*\}\}|\(.*\)|\).*\(|\[.*\])$"
)
_SHAPE_TRIM = "[](){}"
_ROOT_WORDS = frozenset({"root", "mindmap"})


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


class MindmapAnalyzer(DiagramAnalyzer):
    """Hierarchical nodes of a ``mindmap``.

    A shaped line (``ROLE["Admin"]``) declares the semantic identifier
    ``ROLE``; a bare line (``Goals`` or ``Type: Actor``) declares its own
    trimmed text.  Every node gets a parent -> child relationship from the
    closest less-indented node, except children of the ``root`` word.
    """

    diagram_type = "mindmap"
    keywords = ("mindmap",)

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}
        # (indent, identifier or None for an unnamed root) from outermost in.
        stack: list[tuple[int, str | None]] = []

        for raw in body_lines(content):
            text = raw.strip()
            if not text or text.startswith("::"):
                continue
            indent = _indent(raw)
            node_id, label = self._parse_node(text)
            if node_id is None:
                continue

            while stack and stack[-1][0] >= indent:
                stack.pop()
            parent = stack[-1][1] if stack else None

            if node_id.lower() in _ROOT_WORDS:
                # ``root((PER_Admin))`` names the map; it is not a branch.
                stack.append((indent, None))
                continue

            collector.add(node_id)
            if label:
                labels.setdefault(node_id, label)
            if parent is not None:
                relationships.append(Relationship(parent, node_id))
            stack.append((indent, node_id))

        return self._result(collector, relationships, labels)

    @staticmethod
    def _parse_node(text: str) -> tuple[str | None, str | None]:
        shaped = _SHAPED_RE.match(text)
        if shaped:
            inner = shaped.group("shape").strip(_SHAPE_TRIM)
            return shaped.group("id"), strip_quotes(inner) or None
        if text[0] in "([{)":
            # Unnamed shaped node: the text itself is the identifier.
            inner = strip_quotes(text.strip(_SHAPE_TRIM))
            return inner or None, None
        return text, None
