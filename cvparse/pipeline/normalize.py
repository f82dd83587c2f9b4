"""Validate an extraction payload and render it into a StructuredRecord.

Each section is rendered by the template registered for its SectionType,
so an item is always formatted according to the section it came from,
never by guessing from which keys it happens to carry. An item the
template cannot fully account for is rendered raw instead, so no value
is dropped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..models import NO_INFORMATION, SectionType, StructuredRecord


logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"


def _value(item: dict[str, Any], *keys: str) -> str:
    """First non-empty value among ``keys``, as text."""
    for key in keys:
        value = item.get(key)
        if value not in (None, "", []):
            return str(value).strip()
    return NOT_SPECIFIED


def _render_education(item: dict[str, Any]) -> str:
    return (
        f"{_value(item, 'institution')} - {_value(item, 'degree')}\n"
        f"{_value(item, 'field')} ({_value(item, 'graduation_year', 'year')})"
    )


def _render_experience(item: dict[str, Any]) -> str:
    lines = [
        f"{_value(item, 'company')} - {_value(item, 'position', 'role')}",
        _value(item, "duration"),
    ]
    responsibilities = item.get("responsibilities") or []
    if isinstance(responsibilities, str):
        responsibilities = [responsibilities]
    if isinstance(responsibilities, list):
        lines.extend(str(r).strip() for r in responsibilities if str(r).strip())
    return "\n".join(lines)


def _render_skill(item: dict[str, Any]) -> str:
    return f"{_value(item, 'name')} - {_value(item, 'level')}"


def _render_language(item: dict[str, Any]) -> str:
    return f"{_value(item, 'language', 'name')} - {_value(item, 'proficiency', 'level')}"


def _render_certification(item: dict[str, Any]) -> str:
    return f"{_value(item, 'name')} - {_value(item, 'issuer')} ({_value(item, 'year')})"


@dataclass(frozen=True)
class SectionTemplate:
    keys: frozenset[str]
    render: Callable[[dict[str, Any]], str]
    identifying: tuple[str, ...]

    def accepts(self, item: dict[str, Any]) -> bool:
        """True when the item names its subject and carries only known keys."""
        return item.keys() <= self.keys and any(key in item for key in self.identifying)


TEMPLATES: dict[SectionType, SectionTemplate] = {
    SectionType.EDUCATION: SectionTemplate(
        frozenset({"institution", "degree", "field", "graduation_year", "year"}),
        _render_education,
        ("institution",),
    ),
    SectionType.EXPERIENCE: SectionTemplate(
        frozenset({"company", "position", "role", "duration", "responsibilities"}),
        _render_experience,
        ("company",),
    ),
    SectionType.SKILLS: SectionTemplate(frozenset({"name", "level"}), _render_skill, ("name",)),
    SectionType.LANGUAGES: SectionTemplate(
        frozenset({"language", "name", "proficiency", "level"}),
        _render_language,
        ("language", "name"),
    ),
    SectionType.CERTIFICATIONS: SectionTemplate(
        frozenset({"name", "issuer", "year"}),
        _render_certification,
        ("name",),
    ),
}


def render_raw(item: Any) -> str:
    """Serialised form of an item no template understands."""
    if isinstance(item, str):
        return item.strip()
    return json.dumps(item, ensure_ascii=False, sort_keys=True, default=str)


def render_item(section: SectionType, item: Any) -> str:
    template = TEMPLATES[section]
    if isinstance(item, dict) and template.accepts(item):
        return template.render(item)
    return render_raw(item)


def render_section(section: SectionType, items: list[Any]) -> str:
    """Render a section's items as one text block separated by blank lines."""
    blocks = [block for block in (render_item(section, item) for item in items) if block]
    return "\n\n".join(blocks) if blocks else NO_INFORMATION


@dataclass
class NormalizationResult:
    record: StructuredRecord
    issues: list[str] = field(default_factory=list)


class ResultNormalizer:
    """Turn any extraction payload into a complete StructuredRecord."""

    def normalize(self, payload: Any) -> NormalizationResult:
        issues: list[str] = []
        if not isinstance(payload, dict):
            issues.append(f"payload is {type(payload).__name__}, not an object")
            payload = {}

        rendered: dict[str, str] = {}
        for section in SectionType:
            items = payload.get(section.value)
            if items is None:
                issues.append(f"section '{section.value}' is missing")
                items = []
            elif not isinstance(items, list):
                issues.append(
                    f"section '{section.value}' is {type(items).__name__}, not a list"
                )
                items = []
            rendered[section.field_name] = render_section(section, items)

        for issue in issues:
            logger.warning("Extraction payload: %s", issue)

        return NormalizationResult(record=StructuredRecord(**rendered), issues=issues)
