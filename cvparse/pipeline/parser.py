"""LLM-backed CV parser used by the extraction endpoint."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..errors import CVParseError


logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"

CV_SCHEMA: dict[str, list[dict[str, Any]]] = {
    "education": [
        {"institution": "string", "degree": "string", "field": "string", "graduation_year": "YYYY"}
    ],
    "experience": [
        {"company": "string", "position": "string", "duration": "string", "responsibilities": ["string"]}
    ],
    "skills": [{"name": "string", "level": "string"}],
    "languages": [{"language": "string", "proficiency": "string"}],
    "certifications": [{"name": "string", "issuer": "string", "year": "YYYY"}],
}

# Per section: field defaults, and the fields of which at least one must be set.
_SECTION_FIELDS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "education": (("institution", "degree", "field", "graduation_year"), ("institution", "degree")),
    "experience": (("company", "position", "duration"), ("company", "position")),
    "skills": (("name", "level"), ("name",)),
    "languages": (("language", "proficiency"), ("language",)),
    "certifications": (("name", "issuer", "year"), ("name",)),
}

_JSON_FINDER = re.compile(r"\{[\s\S]*\}")


def extract_json(raw: str) -> dict[str, Any]:
    """Parse the first JSON object in a model reply."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = _JSON_FINDER.search(raw)
        if not match:
            raise CVParseError("Could not extract JSON from the response")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise CVParseError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise CVParseError("Model returned JSON that is not an object")
    return data


def clean_sections(parsed: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
    """Fill missing fields with "Not specified" and drop unidentifiable items."""
    cleaned: dict[str, list[dict[str, Any]]] = {}
    for section, (fields, identifying) in _SECTION_FIELDS.items():
        items = parsed.get(section)
        if not isinstance(items, list):
            items = []

        kept = []
        for item in items:
            if not isinstance(item, dict):
                continue
            entry = {f: str(item.get(f) or "").strip() or NOT_SPECIFIED for f in fields}
            if section == "experience":
                responsibilities = item.get("responsibilities")
                entry["responsibilities"] = (
                    [str(r) for r in responsibilities] if isinstance(responsibilities, list) else []
                )
            if any(entry[f] != NOT_SPECIFIED for f in identifying):
                kept.append(entry)
        cleaned[section] = kept
    return cleaned


def build_prompt(cv_text: str) -> str:
    return f"""You are a CV parser. Analyze the following CV text and extract structured information in JSON format. The output must strictly follow this format:
{json.dumps(CV_SCHEMA, indent=2)}

CV Content:
{cv_text}

Return only the JSON object in the exact format above. Include every section, using an empty list when the CV has no information for it."""


class CVParser:
    """Extract CV sections from plain text with an LLM.

    Providers:
    - openai (also any OpenAI-compatible server via base_url)
    - ollama (OpenAI-compatible endpoint, default http://localhost:11434/v1)
    - anthropic
    """

    def __init__(
        self,
        provider: str = "openai",
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 4096,
    ):
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            if self.provider == "anthropic":
                import anthropic
                self._client = anthropic.Anthropic(api_key=self.api_key)
            elif self.provider == "openai":
                import openai
                self._client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url)
            elif self.provider == "ollama":
                import openai
                self._client = openai.OpenAI(
                    api_key=self.api_key or "ollama",
                    base_url=self.base_url or "http://localhost:11434/v1",
                )
            else:
                raise ValueError(f"Unknown provider: {self.provider}")
        return self._client

    def complete(self, prompt: str) -> str:
        """Send one prompt and return the reply text."""
        if self.provider == "anthropic":
            response = self._get_client().messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
            return response.content[0].text

        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    def parse(self, cv_text: str) -> dict[str, list[dict[str, Any]]]:
        """Parse CV text into cleaned sections."""
        logger.info("Sending %d characters of CV text to %s/%s", len(cv_text), self.provider, self.model)
        raw = self.complete(build_prompt(cv_text))
        return clean_sections(extract_json(raw.strip().strip("`")))
