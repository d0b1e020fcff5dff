"""Conversion between the shared prompt document and flat prompt records.

The remote document is a two-level mapping::

    {"<category>": {"<alias>": {"content": "<text>"}}}

It travels base64-encoded inside GitLab's file API payloads.
"""

from __future__ import annotations

import base64
import binascii
import json
import random
import time
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ..models import Prompt, make_label
from .errors import ValidationError

UNNAMED_PROMPT = "Unnamed Prompt"


class PromptDocument:
    """Ordered ``category -> alias -> content`` mapping.

    Collision policy is first-wins: adding an alias that already exists in a
    category leaves the earlier content in place.
    """

    def __init__(self) -> None:
        self._categories: Dict[str, Dict[str, str]] = {}

    def add(self, category: str, alias: str, content: str) -> bool:
        """Insert an entry; returns False if ``(category, alias)`` was taken."""
        aliases = self._categories.setdefault(category, {})
        if alias in aliases:
            return False
        aliases[alias] = content
        return True

    def add_category(self, category: str) -> None:
        self._categories.setdefault(category, {})

    @property
    def categories(self) -> List[str]:
        return list(self._categories.keys())

    def entries(self) -> Iterator[Tuple[str, str, str]]:
        """Yield ``(category, alias, content)`` in document order."""
        for category, aliases in self._categories.items():
            for alias, content in aliases.items():
                yield category, alias, content

    def get(self, category: str, alias: str) -> Optional[str]:
        return self._categories.get(category, {}).get(alias)

    def select(self, categories: Iterable[str]) -> "PromptDocument":
        """Return a new document holding only the given categories."""
        wanted = set(categories)
        selected = PromptDocument()
        for category, aliases in self._categories.items():
            if category in wanted:
                selected._categories[category] = dict(aliases)
        return selected

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        return {
            category: {alias: {"content": content} for alias, content in aliases.items()}
            for category, aliases in self._categories.items()
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PromptDocument":
        """Build a document from decoded JSON, validating its shape."""
        if not isinstance(data, dict):
            raise ValidationError(
                f"Invalid prompt data format: expected an object at the top level, got {_type_name(data)}."
            )
        document = cls()
        for category, aliases in data.items():
            if not isinstance(aliases, dict):
                raise ValidationError(
                    f"Invalid prompt data format: '{category}' must be an object, got {_type_name(aliases)}."
                )
            document.add_category(category)
            for alias, entry in aliases.items():
                path = f"{category}.{alias}"
                if not isinstance(entry, dict):
                    raise ValidationError(
                        f"Invalid prompt data format: '{path}' must be an object, got {_type_name(entry)}."
                    )
                content = entry.get("content")
                if not isinstance(content, str):
                    raise ValidationError(
                        f"Invalid prompt data format: '{path}.content' must be a string."
                    )
                document.add(category, alias, content)
        return document

    def __len__(self) -> int:
        return sum(len(aliases) for aliases in self._categories.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PromptDocument):
            return NotImplemented
        return self._categories == other._categories

    def __repr__(self) -> str:
        return f"PromptDocument(categories={len(self._categories)}, prompts={len(self)})"


def parse(raw_text: str) -> PromptDocument:
    """Parse and validate the document's JSON text."""
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON: {exc}") from exc
    return PromptDocument.from_dict(data)


def decode(payload: str) -> PromptDocument:
    """Decode a base64 transport payload into a document."""
    try:
        raw = base64.b64decode(payload, validate=False)
        text = raw.decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"Invalid encoded content: {exc}") from exc
    return parse(text)


def encode(prompts: Iterable[Prompt]) -> PromptDocument:
    """Group prompts into a document, keeping the first prompt per key."""
    document = PromptDocument()
    for prompt in prompts:
        alias = prompt.name if prompt.name is not None else UNNAMED_PROMPT
        document.add(prompt.category_id, alias, prompt.content)
    return document


def serialize(document: PromptDocument) -> str:
    return json.dumps(document.to_dict(), indent=2, ensure_ascii=False)


def to_payload(document: PromptDocument) -> str:
    """Serialize a document and base64-encode it for the file API."""
    return base64.b64encode(serialize(document).encode("utf-8")).decode("ascii")


def document_to_prompts(document: PromptDocument, now: Optional[int] = None) -> List[Prompt]:
    """Flatten a document into prompts with synthesized ids.

    ``is_cloud`` is left unset; callers decide what the prompts represent.
    """
    timestamp = now if now is not None else int(time.time() * 1000)
    prompts: List[Prompt] = []
    for category, alias, content in document.entries():
        prompts.append(
            Prompt(
                id=f"cmd_{timestamp}_{_random_suffix()}",
                label=make_label(content),
                content=content,
                timestamp=timestamp,
                category_id=category,
                alias=alias,
            )
        )
    return prompts


def _random_suffix() -> str:
    return str(random.random())[2:]


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


__all__ = [
    "PromptDocument",
    "UNNAMED_PROMPT",
    "decode",
    "document_to_prompts",
    "encode",
    "parse",
    "serialize",
    "to_payload",
]
