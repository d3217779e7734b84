"""Diagram analyzer set: notation detection and per-notation extraction."""

from __future__ import annotations

import logging

from specloom.analyzers.base import (
    DiagramAnalysis,
    DiagramAnalyzer,
    Relationship,
    clean_content,
    header_keyword,
)
from specloom.analyzers.c4 import C4Analyzer
from specloom.analyzers.class_diagram import ClassAnalyzer
from specloom.analyzers.er import ErAnalyzer
from specloom.analyzers.flowchart import FlowchartAnalyzer
from specloom.analyzers.mindmap import MindmapAnalyzer
from specloom.analyzers.requirement import RequirementAnalyzer
from specloom.analyzers.sequence import SequenceAnalyzer
from specloom.analyzers.state import StateAnalyzer

logger = logging.getLogger(__name__)

_ANALYZERS: tuple[DiagramAnalyzer, ...] = (
    FlowchartAnalyzer(),
    SequenceAnalyzer(),
    StateAnalyzer(),
    ErAnalyzer(),
    MindmapAnalyzer(),
    RequirementAnalyzer(),
    ClassAnalyzer(),
    C4Analyzer(),
)

# Header keyword -> analyzer.
_BY_KEYWORD: dict[str, DiagramAnalyzer] = {
    keyword: analyzer for analyzer in _ANALYZERS for keyword in analyzer.keywords
}
_BY_KEYWORD["flowchart-elk"] = _BY_KEYWORD["flowchart"]
# Normalized type -> analyzer.
_BY_TYPE: dict[str, DiagramAnalyzer] = {analyzer.diagram_type: analyzer for analyzer in _ANALYZERS}

DIAGRAM_TYPES: tuple[str, ...] = tuple(_BY_TYPE)


def detect_type(content: str) -> str:
    """Return the normalized notation type of *content*.

    Unknown notations return their raw header keyword, empty content
    returns ``"unknown"``.
    """
    keyword = header_keyword(content)
    if keyword is None:
        return "unknown"
    analyzer = _BY_KEYWORD.get(keyword)
    return analyzer.diagram_type if analyzer is not None else keyword


def get_analyzer(diagram_type: str) -> DiagramAnalyzer | None:
    """Look up an analyzer by normalized type or by header keyword."""
    return _BY_TYPE.get(diagram_type) or _BY_KEYWORD.get(diagram_type)


def analyze(content: str, diagram_type: str | None = None) -> DiagramAnalysis:
    """Analyze *content*, detecting its notation when *diagram_type* is None.

    Never raises on content: unknown notations produce an empty analysis
    typed with the detected keyword.
    """
    if diagram_type is None:
        diagram_type = detect_type(content)
    analyzer = get_analyzer(diagram_type)
    if analyzer is None:
        logger.debug("No analyzer for notation %r, returning empty analysis", diagram_type)
        return DiagramAnalysis(diagram_type=diagram_type)
    try:
        return analyzer.analyze(content)
    except Exception:
        logger.debug("%s analyzer failed, returning empty analysis", diagram_type, exc_info=True)
        return DiagramAnalysis(diagram_type=analyzer.diagram_type)


__all__ = [
    "DIAGRAM_TYPES",
    "DiagramAnalysis",
    "DiagramAnalyzer",
    "Relationship",
    "analyze",
    "clean_content",
    "detect_type",
    "get_analyzer",
]
