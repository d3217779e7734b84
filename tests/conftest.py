"""Shared test fixtures for Specloom."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import yaml

if TYPE_CHECKING:
    from pathlib import Path


def write_doc(docs: Path, rel_path: str, body: str, **front: object) -> Path:
    """Write ``docs/<rel_path>`` with a YAML header built from *front*."""
    path = docs / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    header = yaml.safe_dump(front, sort_keys=False) if front else ""
    text = f"---\n{header}---\n{body}" if front else body
    path.write_text(text, encoding="utf-8")
    return path


def persona_body(
    persona_id: str,
    persona_type: str = "Actor",
    *,
    goals: bool = True,
) -> str:
    """A persona mindmap; ``goals=False`` drops the Goals branch (GOAL_1 stays under Role)."""
    lines = [
        "mindmap",
        f"  root(({persona_id}))",
        '    ROLE["Role"]',
        "      Operates the platform",
    ]
    if goals:
        lines += [
            '    DESCRIPTION["Description"]',
            "      Keeps things running",
            "    Goals",
            '      GOAL_1["Ship weekly"]',
        ]
    else:
        lines += [
            '      GOAL_1["Ship weekly"]',
            '    DESCRIPTION["Description"]',
            "      Keeps things running",
        ]
    lines.append(f"    Type: {persona_type}")
    return "\n".join(lines) + "\n"


PERSONAS: dict[str, str] = {
    "PER_Admin": "Actor",
    "PER_Sponsor": "Influencer",
    "PER_Auditor": "Guardian",
    "PER_Bot": "Proxy",
}

REQUIREMENT_BODY = """\
requirementDiagram
    requirement REQ_Login {
        id: REQ_Login
        text: Users can sign in
        risk: high
        verifymethod: test
    }
    element PER_Admin {
        type: persona
    }
    element PER_Sponsor {
        type: persona
    }
    element PER_Auditor {
        type: persona
    }
    element PER_Bot {
        type: persona
    }
    PER_Admin - traces -> REQ_Login
    PER_Sponsor - traces -> REQ_Login
    PER_Auditor - traces -> REQ_Login
    PER_Bot - traces -> REQ_Login
"""

JOURNEY_BODY = """\
sequenceDiagram
    participant PER_Admin
    participant PER_Bot
    participant COMP_Auth
    participant REQ_Login
    PER_Admin->>COMP_Auth: Login
    PER_Bot->>COMP_Auth: Refresh token
    COMP_Auth-->>REQ_Login: Satisfies
"""

COMPONENT_BODY = """\
classDiagram
    class AuthService {
        +login(user) Token
    }
    class TokenStore
    AuthService --> TokenStore : stores
"""


def build_valid_project(root: Path) -> Path:
    """Populate *root* with a project that passes every default rule."""
    docs = root / "docs"
    docs.mkdir(parents=True, exist_ok=True)
    for persona_id, persona_type in PERSONAS.items():
        write_doc(
            docs,
            f"personas/{persona_id}.mermaid",
            persona_body(persona_id, persona_type),
            id=persona_id,
            title=persona_id.removeprefix("PER_"),
            description=f"{persona_type} persona",
        )
    write_doc(
        docs,
        "requirements/REQ_Login.mermaid",
        REQUIREMENT_BODY,
        id="REQ_Login",
        title="Login",
        description="Users can sign in",
    )
    write_doc(
        docs,
        "journeys/JRN_Login.mermaid",
        JOURNEY_BODY,
        id="JRN_Login",
        title="Login journey",
        description="Sign in end to end",
    )
    write_doc(
        docs,
        "components/COMP_Auth.mermaid",
        COMPONENT_BODY,
        id="COMP_Auth",
        title="Auth",
        description="Authentication service",
    )
    write_doc(
        docs,
        "personas/footnotes/NOTE_Admin.md",
        "Interview notes.\n",
        id="NOTE_Admin",
        title="Admin notes",
        description="Background for the administrator persona",
    )
    others = docs / "others"
    others.mkdir()
    (others / "export.csv").write_text("a,b\n1,2\n", encoding="utf-8")
    return root


@pytest.fixture()
def tmp_project(tmp_path: Path) -> Path:
    """Create a minimal project structure for testing."""
    (tmp_path / ".specloom").mkdir()
    (tmp_path / "docs").mkdir()
    return tmp_path


@pytest.fixture()
def valid_project(tmp_project: Path) -> Path:
    """A complete project with no violations under the default rules."""
    return build_valid_project(tmp_project)
