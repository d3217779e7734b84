"""Tests for specloom.analyzers — notation detection and per-notation extraction."""

from __future__ import annotations

import pytest

from specloom.analyzers import DIAGRAM_TYPES, analyze, detect_type, get_analyzer
from specloom.analyzers.base import DiagramAnalysis, Relationship, clean_content
from specloom.analyzers.c4 import C4Analyzer
from specloom.analyzers.class_diagram import ClassAnalyzer
from specloom.analyzers.er import ErAnalyzer
from specloom.analyzers.flowchart import FlowchartAnalyzer
from specloom.analyzers.mindmap import MindmapAnalyzer
from specloom.analyzers.requirement import RequirementAnalyzer
from specloom.analyzers.sequence import SequenceAnalyzer
from specloom.analyzers.state import StateAnalyzer

# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class TestDetectType:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("graph TD", "flowchart"),
            ("flowchart LR", "flowchart"),
            ("sequenceDiagram", "sequence"),
            ("stateDiagram-v2", "state"),
            ("stateDiagram", "state"),
            ("erDiagram", "er"),
            ("mindmap", "mindmap"),
            ("requirementDiagram", "requirement"),
            ("classDiagram", "class"),
            ("C4Context", "c4"),
            ("C4Deployment", "c4"),
        ],
    )
    def test_keywords(self, header: str, expected: str) -> None:
        assert detect_type(f"{header}\n  A --> B\n") == expected

    def test_skips_header_block_and_comments(self) -> None:
        text = "---\ntitle: x\n---\n%% a comment\n%%{init: {}}%%\nsequenceDiagram\n"
        assert detect_type(text) == "sequence"

    def test_unknown_keyword_is_returned_raw(self) -> None:
        assert detect_type("gantt\n  title Plan\n") == "gantt"

    def test_empty_content(self) -> None:
        assert detect_type("") == "unknown"
        assert detect_type("%% only a comment\n") == "unknown"

    def test_every_type_has_an_analyzer(self) -> None:
        for diagram_type in DIAGRAM_TYPES:
            assert get_analyzer(diagram_type) is not None

    def test_lookup_by_keyword(self) -> None:
        assert isinstance(get_analyzer("sequenceDiagram"), SequenceAnalyzer)
        assert get_analyzer("gantt") is None


class TestAnalyzeDispatch:
    def test_unknown_notation_gives_empty_analysis(self) -> None:
        result = analyze("pie title Pets\n  \"Dogs\" : 3\n")
        assert result == DiagramAnalysis(diagram_type="pie")
        assert result.nodes == ()
        assert result.relationships == ()

    def test_explicit_type_overrides_detection(self) -> None:
        result = analyze("A --> B\n", diagram_type="flowchart")
        assert result.diagram_type == "flowchart"

    def test_analyzer_failure_degrades_to_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _boom(self: object, content: str) -> DiagramAnalysis:
            raise RuntimeError("bad grammar")

        monkeypatch.setattr(FlowchartAnalyzer, "analyze", _boom)
        result = analyze("graph TD\n  A --> B\n")
        assert result == DiagramAnalysis(diagram_type="flowchart")

    def test_idempotent(self) -> None:
        text = "graph TD\n  A --> B\n  B --> C\n  A --> B\n"
        assert analyze(text) == analyze(text)

    def test_duplicate_relationships_are_preserved(self) -> None:
        result = analyze("graph TD\n  A --> B\n  A --> B\n")
        assert result.relationships == (Relationship("A", "B"), Relationship("A", "B"))
        assert result.nodes == ("A", "B")


class TestCleanContent:
    def test_strips_header_and_comments(self) -> None:
        text = "---\nid: X\n---\n%% note\ngraph TD\n  A --> B\n"
        assert clean_content(text) == "graph TD\n  A --> B"


# ---------------------------------------------------------------------------
# Flowchart
# ---------------------------------------------------------------------------


class TestFlowchartAnalyzer:
    def test_simple_edges(self) -> None:
        result = FlowchartAnalyzer().analyze("graph TD\n  A --> B\n  B --> C\n")
        assert result.nodes == ("A", "B", "C")
        assert result.relationships == (Relationship("A", "B"), Relationship("B", "C"))

    def test_chained_edges(self) -> None:
        result = FlowchartAnalyzer().analyze("flowchart LR\n  A --> B --> C\n")
        assert result.relationships == (Relationship("A", "B"), Relationship("B", "C"))

    def test_fan_out(self) -> None:
        result = FlowchartAnalyzer().analyze("graph TD\n  A & B --> C & D\n")
        pairs = [(r.source, r.target) for r in result.relationships]
        assert pairs == [("A", "C"), ("A", "D"), ("B", "C"), ("B", "D")]

    def test_piped_and_inline_labels(self) -> None:
        text = "graph TD\n  A -->|yes| B\n  B -- no --> C\n  C -.-> D\n  D ==> E\n"
        result = FlowchartAnalyzer().analyze(text)
        labels = [r.label for r in result.relationships]
        assert labels == ["yes", "no", None, None]
        assert result.nodes == ("A", "B", "C", "D", "E")

    def test_shape_labels(self) -> None:
        text = 'graph TD\n  CTX_App[Web App] --> DB[("Orders")]\n  G{Decision}\n'
        result = FlowchartAnalyzer().analyze(text)
        assert result.nodes == ("CTX_App", "DB", "G")
        assert result.labels["CTX_App"] == "Web App"
        assert result.labels["G"] == "Decision"

    def test_header_statements_and_semicolons(self) -> None:
        result = FlowchartAnalyzer().analyze("graph LR; A-->B; B-->C\n")
        assert result.nodes == ("A", "B", "C")
        assert len(result.relationships) == 2

    def test_skips_styling_and_subgraph_lines(self) -> None:
        text = (
            "graph TD\n"
            "  subgraph Backend\n"
            "    API --> DB\n"
            "  end\n"
            "  classDef hot fill:#f00\n"
            "  class API hot\n"
            "  style DB fill:#0f0\n"
        )
        result = FlowchartAnalyzer().analyze(text)
        assert result.nodes == ("API", "DB")
        assert result.relationships == (Relationship("API", "DB"),)

    def test_garbage_never_raises(self) -> None:
        result = FlowchartAnalyzer().analyze("graph TD\n  --> -->\n  [[[ ]]\n")
        assert isinstance(result, DiagramAnalysis)


# ---------------------------------------------------------------------------
# Sequence
# ---------------------------------------------------------------------------


class TestSequenceAnalyzer:
    def test_participants_and_message(self) -> None:
        text = (
            "sequenceDiagram\n"
            "    participant PER_User\n"
            "    participant COMP_Auth\n"
            "    PER_User -> COMP_Auth: Login\n"
        )
        result = SequenceAnalyzer().analyze(text)
        assert result.diagram_type == "sequence"
        assert result.nodes == ("PER_User", "COMP_Auth")
        assert result.relationships == (Relationship("PER_User", "COMP_Auth", "Login"),)

    def test_alias_keeps_canonical_id(self) -> None:
        text = (
            "sequenceDiagram\n"
            "    actor PER_Admin as Site Administrator\n"
            "    participant API as Public API\n"
            "    PER_Admin->>API: Call\n"
        )
        result = SequenceAnalyzer().analyze(text)
        assert result.nodes == ("PER_Admin", "API")
        assert result.labels == {"PER_Admin": "Site Administrator", "API": "Public API"}

    def test_arrow_variants(self) -> None:
        text = (
            "sequenceDiagram\n"
            "    A->>B: one\n"
            "    B-->>A: two\n"
            "    A-xB: three\n"
            "    A-)B: four\n"
            "    A->>+B: five\n"
            "    B-->>-A: six\n"
        )
        result = SequenceAnalyzer().analyze(text)
        assert [r.label for r in result.relationships] == [
            "one",
            "two",
            "three",
            "four",
            "five",
            "six",
        ]
        assert result.nodes == ("A", "B")

    def test_blocks_and_notes_are_ignored(self) -> None:
        text = (
            "sequenceDiagram\n"
            "    autonumber\n"
            "    loop Every minute\n"
            "        A->>B: ping\n"
            "    end\n"
            "    Note right of A: thinking\n"
            "    alt ok\n"
            "        B-->>A: pong\n"
            "    else failure\n"
            "        B-->>A: error\n"
            "    end\n"
        )
        result = SequenceAnalyzer().analyze(text)
        assert result.nodes == ("A", "B")
        assert len(result.relationships) == 3

    def test_undeclared_endpoints_follow_declared(self) -> None:
        text = "sequenceDiagram\n    participant B\n    A->>B: hi\n"
        result = SequenceAnalyzer().analyze(text)
        assert result.nodes == ("B", "A")

    def test_hyphenated_participants(self) -> None:
        text = (
            "sequenceDiagram\n"
            "    participant web-app\n"
            "    web-app->>db: Query\n"
            "    db-->>web-app: Rows\n"
            "    web-xray-)db: Trace\n"
        )
        result = SequenceAnalyzer().analyze(text)
        assert result.nodes == ("web-app", "db", "web-xray")
        assert result.relationships == (
            Relationship("web-app", "db", "Query"),
            Relationship("db", "web-app", "Rows"),
            Relationship("web-xray", "db", "Trace"),
        )


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class TestStateAnalyzer:
    def test_transitions_exclude_start_end(self) -> None:
        text = (
            "stateDiagram-v2\n"
            "    [*] --> Idle\n"
            "    Idle --> Running : start\n"
            "    Running --> [*]\n"
        )
        result = StateAnalyzer().analyze(text)
        assert result.nodes == ("Idle", "Running")
        assert result.relationships == (Relationship("Idle", "Running", "start"),)

    def test_alias_and_bare_declarations(self) -> None:
        text = (
            "stateDiagram-v2\n"
            '    state "Waiting for payment" as WAITING\n'
            "    state PAID\n"
            "    WAITING --> PAID\n"
            "    PAID : Payment received\n"
        )
        result = StateAnalyzer().analyze(text)
        assert result.nodes == ("WAITING", "PAID")
        assert result.labels == {"WAITING": "Waiting for payment", "PAID": "Payment received"}

    def test_composite_state(self) -> None:
        text = "stateDiagram\n    state Active {\n        A --> B\n    }\n"
        result = StateAnalyzer().analyze(text)
        assert result.nodes == ("Active", "A", "B")


# ---------------------------------------------------------------------------
# Entity-relationship
# ---------------------------------------------------------------------------


class TestErAnalyzer:
    def test_relationships_and_entities(self) -> None:
        text = (
            "erDiagram\n"
            "    CUSTOMER ||--o{ ORDER : places\n"
            "    ORDER ||--|{ LINE_ITEM : contains\n"
            "    CUSTOMER }|..|{ ADDRESS : uses\n"
        )
        result = ErAnalyzer().analyze(text)
        assert result.nodes == ("CUSTOMER", "ORDER", "LINE_ITEM", "ADDRESS")
        assert [r.label for r in result.relationships] == ["places", "contains", "uses"]

    def test_attribute_blocks_are_skipped(self) -> None:
        text = (
            "erDiagram\n"
            '    DATA_User["User account"] {\n'
            "        string id PK\n"
            "        string email\n"
            "    }\n"
            "    SESSION\n"
        )
        result = ErAnalyzer().analyze(text)
        assert result.nodes == ("DATA_User", "SESSION")
        assert result.labels == {"DATA_User": "User account"}
        assert result.relationships == ()


# ---------------------------------------------------------------------------
# Mindmap
# ---------------------------------------------------------------------------


class TestMindmapAnalyzer:
    TEXT = (
        "mindmap\n"
        "  root((PER_Admin))\n"
        '    ROLE["Role"]\n'
        "      Operator\n"
        "    Goals\n"
        '      GOAL_1["Ship weekly"]\n'
        "    Type: Actor\n"
    )

    def test_semantic_ids_and_bare_text(self) -> None:
        result = MindmapAnalyzer().analyze(self.TEXT)
        assert result.nodes == ("ROLE", "Operator", "Goals", "GOAL_1", "Type: Actor")
        assert result.labels == {"ROLE": "Role", "GOAL_1": "Ship weekly"}

    def test_hierarchy_from_indentation(self) -> None:
        result = MindmapAnalyzer().analyze(self.TEXT)
        assert Relationship("ROLE", "Operator") in result.relationships
        assert Relationship("Goals", "GOAL_1") in result.relationships
        # Children of the root word carry no edge.
        assert all(r.target != "ROLE" for r in result.relationships)

    def test_icon_and_class_lines_are_skipped(self) -> None:
        text = "mindmap\n  root\n    A\n    ::icon(fa fa-book)\n    B\n"
        result = MindmapAnalyzer().analyze(text)
        assert result.nodes == ("A", "B")


# ---------------------------------------------------------------------------
# Requirement
# ---------------------------------------------------------------------------


class TestRequirementAnalyzer:
    TEXT = (
        "requirementDiagram\n"
        "    requirement REQ_Login {\n"
        "        id: 1\n"
        "        text: Users can sign in\n"
        "    }\n"
        "    functionalRequirement REQ_Reset {\n"
        "        id: REQ_Reset\n"
        "    }\n"
        "    element COMP_Auth {\n"
        "        type: service\n"
        "    }\n"
        "    COMP_Auth - satisfies -> REQ_Login\n"
        "    REQ_Login <- derives - REQ_Reset\n"
    )

    def test_blocks_and_ids(self) -> None:
        result = RequirementAnalyzer().analyze(self.TEXT)
        assert result.nodes == ("REQ_Login", "1", "REQ_Reset", "COMP_Auth")
        assert result.labels == {"1": "REQ_Login"}

    def test_both_relationship_directions(self) -> None:
        result = RequirementAnalyzer().analyze(self.TEXT)
        assert result.relationships == (
            Relationship("COMP_Auth", "REQ_Login", "satisfies"),
            Relationship("REQ_Reset", "REQ_Login", "derives"),
        )


# ---------------------------------------------------------------------------
# Class
# ---------------------------------------------------------------------------


class TestClassAnalyzer:
    def test_classes_and_relations(self) -> None:
        text = (
            "classDiagram\n"
            "    class AuthService {\n"
            "        +login(user) Token\n"
            "    }\n"
            "    class TokenStore\n"
            "    AuthService --> TokenStore : stores\n"
            "    Animal <|-- Dog\n"
        )
        result = ClassAnalyzer().analyze(text)
        assert result.nodes == ("AuthService", "TokenStore", "Dog", "Animal")
        assert result.relationships == (
            Relationship("AuthService", "TokenStore", "stores"),
            Relationship("Dog", "Animal"),
        )

    def test_cardinality_labels(self) -> None:
        text = 'classDiagram\n    Customer "1" --> "*" Ticket : owns\n'
        result = ClassAnalyzer().analyze(text)
        assert result.relationships == (Relationship("Customer", "Ticket", "owns"),)


# ---------------------------------------------------------------------------
# C4
# ---------------------------------------------------------------------------


class TestC4Analyzer:
    def test_elements_boundaries_and_relations(self) -> None:
        text = (
            "C4Context\n"
            '    Person(PER_Customer, "Customer", "Buys things")\n'
            '    Enterprise_Boundary(b0, "Shop") {\n'
            '        System(SYS_Shop, "Shop, Inc.", "Sells things")\n'
            "    }\n"
            '    System_Ext(SYS_Mail, "Mail")\n'
            '    Rel(PER_Customer, SYS_Shop, "Uses")\n'
            '    Rel_Back(SYS_Mail, SYS_Shop, "Sends e-mails")\n'
        )
        result = C4Analyzer().analyze(text)
        assert result.nodes == ("PER_Customer", "b0", "SYS_Shop", "SYS_Mail")
        assert result.labels["SYS_Shop"] == "Shop, Inc."
        assert result.relationships == (
            Relationship("PER_Customer", "SYS_Shop", "Uses"),
            Relationship("SYS_Shop", "SYS_Mail", "Sends e-mails"),
        )
