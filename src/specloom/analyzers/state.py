"""State-machine notation analyzer."""

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

_START_END = "[*]"

# ``state "Waiting for payment" as WAITING`` (quoted alias form).
_ALIAS_RE = re.compile(r'^state\s+"(?P<label>[^"]*)"\s+as\s+(?P<id>[\w.-]+)')
# ``state WAITING``, ``state WAITING {``, ``state fork_1 <<fork>>``.
_BARE_RE = re.compile(r"^state\s+(?P<id>[\w.-]+)")
# ``WAITING : Waiting for payment`` (description form).
_DESCRIPTION_RE = re.compile(r"^(?P<id>[\w.-]+)\s*:\s*(?P<label>.+)$")
_TRANSITION_RE = re.compile(
    r"^(?P<src>\[\*\]|[\w.-]+)\s*-->\s*(?P<dst>\[\*\]|[\w.-]+)\s*(?::\s*(?P<label>.*))?$"
)
_SKIP_KEYWORDS = frozenset({"direction", "note", "end", "classdef", "class", "style", "--"})


class StateAnalyzer(DiagramAnalyzer):
    """States and transitions of a ``stateDiagram`` / ``stateDiagram-v2``.

    The ``[*]`` pseudo-state is neither a node nor an edge endpoint.
    """

    diagram_type = "state"
    keywords = ("stateDiagram-v2", "stateDiagram")

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}

        for raw in body_lines(content):
            line = raw.strip()
            if not line or line == "}":
                continue
            if line.split(None, 1)[0].lower() in _SKIP_KEYWORDS:
                continue

            alias = _ALIAS_RE.match(line)
            if alias:
                collector.add(alias.group("id"))
                labels.setdefault(alias.group("id"), alias.group("label"))
                continue
            bare = _BARE_RE.match(line)
            if bare:
                collector.add(bare.group("id"))
                continue

            transition = _TRANSITION_RE.match(line)
            if transition:
                src, dst = transition.group("src"), transition.group("dst")
                label = transition.group("label")
                label = label.strip() if label else None
                if src != _START_END:
                    collector.add(src)
                if dst != _START_END:
                    collector.add(dst)
                if src != _START_END and dst != _START_END:
                    relationships.append(Relationship(src, dst, label or None))
                continue

            description = _DESCRIPTION_RE.match(line)
            if description:
                node_id = description.group("id")
                collector.add(node_id)
                labels.setdefault(node_id, strip_quotes(description.group("label")))

        return self._result(collector, relationships, labels)
