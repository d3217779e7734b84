"""Flowchart / graph notation analyzer."""

from __future__ import annotations

import re

from specloom.analyzers.base import (
    DiagramAnalysis,
    DiagramAnalyzer,
    NodeCollector,
    Relationship,
    clean_content,
    strip_quotes,
)

# Statements that never declare nodes or edges.
_SKIP_KEYWORDS = frozenset(
    {
        "classdef",
        "class",
        "style",
        "linkstyle",
        "click",
        "direction",
        "end",
        "acctitle",
        "accdescr",
    }
)

# Arrow tokens, optionally carrying an inline ``-- text -->`` label.
# Groups: ``inline`` (text between the dashes), ``piped`` (``|text|`` after the arrow).
_ARROW_RE = re.compile(
    r"\s*(?:"
    r"--\s+(?P<inline>[^|>]+?)\s+(?:-->|---)"
    r"|==\s+(?P<inline_thick>[^|>]+?)\s+(?:==>|===)"
    r"|-\.\s+(?P<inline_dotted>[^|>]+?)\s+\.->"
    r"|<-->|<==>|<-\.->|-{2,}>|={2,}>|-\.+->|-{3,}|={3,}|-\.+-|--[ox]|==[ox]"
    r")\s*(?:\|(?P<piped>[^|]*)\|)?\s*"
)

# A node reference with an optional shape/label suffix.
_NODE_RE = re.compile(
    r"^(?P<id>[A-Za-z0-9_][\w.-]*?)\s*"
    r"(?P<shape>\(\(\(.*?\)\)\)|\(\(.*?\)\)|\(\[.*?\]\)|\[\[.*?\]\]|\[\(.*?\)\]"
    r"|\{\{.*?\}\}|\[/.*?/\]|\[\\.*?\\\]|\[.*?\]|\(.*?\)|\{.*?\}|>.*?\])?"
    r"(?::::[\w-]+)?$"
)
_SUBGRAPH_RE = re.compile(r"^subgraph\s+(?P<id>[\w.-]+)")
_SHAPE_LABEL_RE = re.compile(r"^[\[({>/\\]+(.*?)[\])}/\\]+$")


def _shape_label(shape: str) -> str:
    match = _SHAPE_LABEL_RE.match(shape)
    text = match.group(1) if match else shape
    return strip_quotes(text)


class FlowchartAnalyzer(DiagramAnalyzer):
    """Extracts vertices and links from ``graph``/``flowchart`` diagrams.

    Handles chained links (``A --> B --> C``), ``&`` fan-out, piped and
    inline edge labels, and shape suffixes such as ``A[Label]``.
    """

    diagram_type = "flowchart"
    keywords = ("flowchart", "graph")

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}

        for statement in self._statements(content):
            sub = _SUBGRAPH_RE.match(statement)
            if sub:
                continue
            first = statement.split(None, 1)[0].rstrip(":").lower()
            if first in _SKIP_KEYWORDS:
                continue
            self._parse_statement(statement, collector, relationships, labels)

        return self._result(collector, relationships, labels)

    @staticmethod
    def _statements(content: str) -> list[str]:
        lines = clean_content(content).splitlines()
        if not lines:
            return []
        # The header may carry statements too: ``graph LR; A-->B``.
        first = lines[0].split(None, 1)
        head_rest = first[1] if len(first) > 1 else ""
        head_rest = re.sub(r"^(?:TB|TD|BT|RL|LR)\b", "", head_rest.strip())
        result: list[str] = []
        for line in [head_rest, *lines[1:]]:
            for part in line.split(";"):
                part = part.strip()
                if part:
                    result.append(part)
        return result

    def _parse_statement(
        self,
        statement: str,
        collector: NodeCollector,
        relationships: list[Relationship],
        labels: dict[str, str],
    ) -> None:
        groups: list[list[str]] = []
        edge_labels: list[str | None] = []
        pos = 0
        for match in _ARROW_RE.finditer(statement):
            groups.append(self._parse_group(statement[pos : match.start()], collector, labels))
            label = (
                match.group("piped")
                or match.group("inline")
                or match.group("inline_thick")
                or match.group("inline_dotted")
            )
            edge_labels.append(strip_quotes(label) if label else None)
            pos = match.end()
        groups.append(self._parse_group(statement[pos:], collector, labels))

        for idx, label in enumerate(edge_labels):
            for src in groups[idx]:
                for dst in groups[idx + 1]:
                    relationships.append(Relationship(src, dst, label))

    @staticmethod
    def _parse_group(
        text: str, collector: NodeCollector, labels: dict[str, str]
    ) -> list[str]:
        ids: list[str] = []
        for chunk in text.split("&"):
            chunk = chunk.strip()
            if not chunk:
                continue
            match = _NODE_RE.match(chunk)
            if match is None:
                continue
            node_id = match.group("id")
            collector.add(node_id)
            shape = match.group("shape")
            if shape and node_id not in labels:
                labels[node_id] = _shape_label(shape)
            ids.append(node_id)
        return ids
