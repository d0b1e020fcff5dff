"""Prompt and category records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

LABEL_LENGTH = 30


def make_label(content: str) -> str:
    """Derive a display label from prompt content."""
    if len(content) > LABEL_LENGTH:
        return f"{content[:LABEL_LENGTH]}..."
    return content


@dataclass
class Prompt:
    """A saved text snippet."""

    id: str
    label: str
    content: str
    timestamp: int
    category_id: str
    alias: Optional[str] = None
    is_cloud: Optional[bool] = None

    @property
    def name(self) -> str:
        """Alias when set, label otherwise."""
        return self.alias if self.alias is not None else self.label

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "content": self.content,
            "timestamp": self.timestamp,
            "category_id": self.category_id,
        }
        if self.alias is not None:
            result["alias"] = self.alias
        if self.is_cloud is not None:
            result["is_cloud"] = self.is_cloud
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Prompt":
        content = str(data.get("content", ""))
        return cls(
            id=str(data.get("id", "")),
            label=str(data.get("label") or make_label(content)),
            content=content,
            timestamp=int(data.get("timestamp", 0) or 0),
            category_id=str(data.get("category_id") or ""),
            alias=data.get("alias"),
            is_cloud=data.get("is_cloud"),
        )


@dataclass
class Category:
    """A named grouping of prompts."""

    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
        )


__all__ = ["Prompt", "Category", "make_label", "LABEL_LENGTH"]
