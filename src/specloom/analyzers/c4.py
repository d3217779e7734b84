"""C4-style notation analyzer.

Reads the parenthesized macro call syntax used by ``C4Context``,
``C4Container``, ``C4Component``, ``C4Dynamic`` and ``C4Deployment``:

- elements: ``Person(id, "Label")``, ``System_Ext(...)``, ``ContainerDb(...)``,
  ``ComponentQueue_Ext(...)``, ``Node(...)``, ``Deployment_Node(...)``
- boundaries: ``System_Boundary(id, "Label") {``, ``Enterprise_Boundary``,
  ``Container_Boundary``, ``Boundary``
- relationships: ``Rel(a, b, "label")``, ``BiRel``, ``Rel_U/D/L/R``,
  ``Rel_Up/Down/Left/Right``, ``Rel_Back``, ``Rel_Neighbor``
"""

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

_CALL_RE = re.compile(r"^(?P<macro>[A-Za-z_]+)\s*\((?P<args>.*)\)\s*\{?\s*$")
_ELEMENT_RE = re.compile(
    r"^(?:Person|System|SystemDb|SystemQueue|Container|ContainerDb|ContainerQueue"
    r"|Component|ComponentDb|ComponentQueue|Node|Node_L|Node_R|Deployment_Node)(?:_Ext)?$"
)
_BOUNDARY_RE = re.compile(r"^(?:\w+_)?Boundary$")
_RELATION_RE = re.compile(
    r"^(?:Rel|BiRel|Rel_(?:U|D|L|R|Up|Down|Left|Right|Back|Neighbor))$"
)
# ``Rel_Back(a, b)`` draws ``b -> a``.
_BACKWARD_RELATIONS = frozenset({"Rel_Back"})


def _split_args(args: str) -> list[str]:
    """Split macro arguments on commas outside double quotes."""
    result: list[str] = []
    current: list[str] = []
    quoted = False
    for char in args:
        if char == '"':
            quoted = not quoted
        if char == "," and not quoted:
            result.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail = "".join(current).strip()
    if tail:
        result.append(tail)
    return result


class C4Analyzer(DiagramAnalyzer):
    diagram_type = "c4"
    keywords = ("C4Context", "C4Container", "C4Component", "C4Dynamic", "C4Deployment")

    def analyze(self, content: str) -> DiagramAnalysis:
        collector = NodeCollector()
        relationships: list[Relationship] = []
        labels: dict[str, str] = {}

        for raw in body_lines(content):
            call = _CALL_RE.match(raw.strip())
            if call is None:
                continue
            macro = call.group("macro")
            args = _split_args(call.group("args"))
            if not args:
                continue

            if _ELEMENT_RE.match(macro) or _BOUNDARY_RE.match(macro):
                node_id = strip_quotes(args[0])
                collector.add(node_id)
                if len(args) > 1 and not args[1].startswith("$"):
                    labels.setdefault(node_id, strip_quotes(args[1]))
            elif _RELATION_RE.match(macro) and len(args) >= 2:
                src, dst = strip_quotes(args[0]), strip_quotes(args[1])
                if macro in _BACKWARD_RELATIONS:
                    src, dst = dst, src
                collector.add(src)
                collector.add(dst)
                label = strip_quotes(args[2]) if len(args) > 2 else None
                relationships.append(Relationship(src, dst, label or None))

        return self._result(collector, relationships, labels)
