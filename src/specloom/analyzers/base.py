"""Common analysis types and the analyzer interface shared by every notation."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# Leading ``---`` header block (front matter embedded in diagram text).
_HEADER_RE = re.compile(r"\A---\r?\n.*?\r?\n---\r?\n", re.DOTALL)
# Whole-line ``%%`` comments (also ``%%{init: ...}%%`` directives).
_COMMENT_RE = re.compile(r"^\s*%%.*$", re.MULTILINE)
_KEYWORD_RE = re.compile(r"^([A-Za-z0-9_-]+)")


@dataclass(frozen=True)
class Relationship:
    """A directed edge extracted from diagram text."""

    source: str
    target: str
    label: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"from": self.source, "to": self.target, "label": self.label}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Relationship:
        label = data.get("label")
        return cls(
            source=str(data["from"]),
            target=str(data["to"]),
            label=str(label) if label is not None else None,
        )


@dataclass(frozen=True)
class DiagramAnalysis:
    """Normalized result of analyzing one diagram.

    ``nodes`` keeps first-seen order.  ``relationships`` keeps duplicates.
    ``from_cache`` is informational only and does not take part in equality.
    """

    diagram_type: str
    nodes: tuple[str, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    labels: dict[str, str] = field(default_factory=dict, hash=False)
    from_cache: bool = field(default=False, compare=False)

    @property
    def endpoints(self) -> list[str]:
        """Every relationship endpoint, in edge order."""
        result: list[str] = []
        for rel in self.relationships:
            result.append(rel.source)
            result.append(rel.target)
        return result


class NodeCollector:
    """Ordered, de-duplicating node list used while scanning a diagram."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self.nodes: list[str] = []

    def add(self, node_id: str | None) -> None:
        if not node_id or node_id in self._seen:
            return
        self._seen.add(node_id)
        self.nodes.append(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._seen


class DiagramAnalyzer(ABC):
    """Extracts identifiers and relationships from one notation family.

    Implementations must be pure functions of the text and must never raise
    on malformed input: they return whatever they could recognize.
    """

    #: Normalized notation name reported as ``DiagramAnalysis.diagram_type``.
    diagram_type: str = "unknown"
    #: Header keywords that open a diagram of this notation.
    keywords: tuple[str, ...] = ()

    @abstractmethod
    def analyze(self, content: str) -> DiagramAnalysis:
        """Return the analysis for *content*."""

    def _result(
        self,
        collector: NodeCollector,
        relationships: list[Relationship],
        labels: dict[str, str] | None = None,
    ) -> DiagramAnalysis:
        return DiagramAnalysis(
            diagram_type=self.diagram_type,
            nodes=tuple(collector.nodes),
            relationships=tuple(relationships),
            labels=dict(labels or {}),
        )


def clean_content(content: str) -> str:
    """Strip an embedded header block and ``%%`` comment lines."""
    text = _HEADER_RE.sub("", content.lstrip("\ufeff"), count=1)
    return _COMMENT_RE.sub("", text).strip()


def body_lines(content: str) -> list[str]:
    """Return the cleaned diagram lines after the notation keyword line."""
    lines = clean_content(content).splitlines()
    return lines[1:] if lines else []


def header_keyword(content: str) -> str | None:
    """Return the first token of the cleaned content, or None when empty."""
    match = _KEYWORD_RE.match(clean_content(content))
    return match.group(1) if match else None


def strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value
