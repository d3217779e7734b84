"""Front matter parsing and schema validation.

Every document may open with a YAML header between ``---`` lines.  The
header is validated once, at ingestion, into one of a small set of
variants chosen by the identifier prefix:

=========  ============================
Prefix     Variant
=========  ============================
``PER_``   :class:`PersonaFrontMatter`
``REQ_``   :class:`RequirementFrontMatter`
``JRN_``   :class:`JourneyFrontMatter`
``COMP_``  :class:`ComponentFrontMatter`
other      :class:`GenericFrontMatter`
=========  ============================

Keys that were not declared stay ``None``; unknown keys are kept in
``extra``.  Type problems never raise, they are collected in ``errors``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar

import yaml

_HEADER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(?P<header>.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)

# Keys every variant understands.
_COMMON_KEYS = frozenset(
    {"id", "title", "description", "uplink", "downlinks", "requirements", "entities"}
)
_ENTITY_KEYS = frozenset({"id", "uplink", "downlinks", "requirements", "classification"})


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Entity:
    """A nested identifier declared under ``entities``."""

    id: str
    uplink: str | None = None
    downlinks: tuple[str, ...] | None = None
    requirements: tuple[str, ...] | None = None
    classification: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class FrontMatter:
    """Validated document header common to every variant."""

    kind: ClassVar[str] = "generic"
    extra_keys: ClassVar[frozenset[str]] = frozenset()

    id: str | None = None
    title: str | None = None
    description: str | None = None
    uplink: str | None = None
    downlinks: tuple[str, ...] | None = None
    requirements: tuple[str, ...] | None = None
    entities: tuple[Entity, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    errors: tuple[str, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, hash=False, compare=False, repr=False)

    @property
    def declared(self) -> bool:
        """True when the document had a header block at all."""
        return bool(self.raw) or bool(self.errors)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value declared for *key* in the header, or *default*."""
        return self.raw.get(key, default)

    def has(self, key: str) -> bool:
        """True when *key* is declared with a non-empty value."""
        value = self.raw.get(key)
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        if isinstance(value, (list, tuple, dict)):
            return bool(value)
        return True

    @property
    def all_ids(self) -> list[str]:
        """The top-level id followed by every entity id."""
        ids = [self.id] if self.id else []
        ids.extend(entity.id for entity in self.entities)
        return ids


@dataclass(frozen=True)
class GenericFrontMatter(FrontMatter):
    pass


@dataclass(frozen=True)
class PersonaFrontMatter(FrontMatter):
    kind: ClassVar[str] = "persona"


@dataclass(frozen=True)
class RequirementFrontMatter(FrontMatter):
    """Requirement header; ``classification`` is e.g. ``Functional``."""

    kind: ClassVar[str] = "requirement"
    extra_keys: ClassVar[frozenset[str]] = frozenset({"classification"})

    classification: str | None = None


@dataclass(frozen=True)
class JourneyFrontMatter(FrontMatter):
    kind: ClassVar[str] = "journey"


@dataclass(frozen=True)
class ComponentFrontMatter(FrontMatter):
    kind: ClassVar[str] = "component"


_VARIANTS: tuple[tuple[str, type[FrontMatter]], ...] = (
    ("PER_", PersonaFrontMatter),
    ("REQ_", RequirementFrontMatter),
    ("JRN_", JourneyFrontMatter),
    ("COMP_", ComponentFrontMatter),
)


def variant_for(ref_id: str | None) -> type[FrontMatter]:
    """Return the front matter class for an identifier prefix."""
    if ref_id:
        for prefix, cls in _VARIANTS:
            if ref_id.startswith(prefix):
                return cls
    return GenericFrontMatter


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def split_front_matter(text: str) -> tuple[str | None, str]:
    """Split *text* into (header YAML or None, body)."""
    match = _HEADER_RE.match(text)
    if match is None:
        return None, text.lstrip("\ufeff")
    return match.group("header"), text[match.end() :]


def _optional_str(data: dict[str, Any], key: str, where: str, errors: list[str]) -> str | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    # Unquoted YAML numbers and dates are accepted as their text.
    if isinstance(value, (bool, list, dict)):
        errors.append(f"{where}'{key}' must be a string, got {type(value).__name__}")
        return None
    return str(value)


def _optional_list(
    data: dict[str, Any], key: str, where: str, errors: list[str]
) -> tuple[str, ...] | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        errors.append(f"{where}'{key}' must be a list of identifiers")
        return None
    items: list[str] = []
    for idx, item in enumerate(value):
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
        else:
            errors.append(f"{where}'{key}[{idx}]' must be a non-empty string")
    return tuple(items)


def _parse_entities(raw: object, errors: list[str]) -> tuple[Entity, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        errors.append("'entities' must be a list")
        return ()
    entities: list[Entity] = []
    for idx, item in enumerate(raw):
        where = f"entities[{idx}]."
        if not isinstance(item, dict):
            errors.append(f"entities[{idx}] must be a mapping")
            continue
        ent_id = _optional_str(item, "id", where, errors)
        if not ent_id:
            errors.append(f"entities[{idx}] is missing 'id'")
            continue
        entities.append(
            Entity(
                id=ent_id,
                uplink=_optional_str(item, "uplink", where, errors),
                downlinks=_optional_list(item, "downlinks", where, errors),
                requirements=_optional_list(item, "requirements", where, errors),
                classification=_optional_str(item, "classification", where, errors),
                extra={k: v for k, v in item.items() if k not in _ENTITY_KEYS},
            )
        )
    return tuple(entities)


def validate_front_matter(data: dict[str, Any], errors: list[str] | None = None) -> FrontMatter:
    """Validate a parsed header mapping into its variant."""
    errors = list(errors or [])
    ref_id = _optional_str(data, "id", "", errors)
    cls = variant_for(ref_id)
    known = _COMMON_KEYS | cls.extra_keys
    kwargs: dict[str, Any] = {
        "id": ref_id,
        "title": _optional_str(data, "title", "", errors),
        "description": _optional_str(data, "description", "", errors),
        "uplink": _optional_str(data, "uplink", "", errors),
        "downlinks": _optional_list(data, "downlinks", "", errors),
        "requirements": _optional_list(data, "requirements", "", errors),
        "entities": _parse_entities(data.get("entities"), errors),
    }
    for key in cls.extra_keys:
        kwargs[key] = _optional_str(data, key, "", errors)
    kwargs["extra"] = {k: v for k, v in data.items() if k not in known}
    kwargs["errors"] = tuple(errors)
    kwargs["raw"] = dict(data)
    return cls(**kwargs)


def parse_front_matter(text: str) -> tuple[FrontMatter, str]:
    """Parse the header of *text*; return (front matter, body).

    A document without a header yields an empty :class:`GenericFrontMatter`.
    Invalid YAML is reported in ``errors`` and the document is kept.
    """
    header, body = split_front_matter(text)
    if header is None:
        return GenericFrontMatter(), body
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        return GenericFrontMatter(errors=(f"invalid YAML front matter: {exc}",)), body
    if data is None:
        return GenericFrontMatter(), body
    if not isinstance(data, dict):
        return GenericFrontMatter(errors=("front matter must be a YAML mapping",)), body
    return validate_front_matter({str(k): v for k, v in data.items()}), body
