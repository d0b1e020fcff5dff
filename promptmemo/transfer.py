"""Import and export of local prompts in the shared document format."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .local import LocalService
from .models import Prompt
from .sync import codec
from .sync.errors import ValidationError
from .sync.identity import filter_out_duplicates

logger = logging.getLogger("promptmemo.transfer")


@dataclass
class TransferResult:
    """Counts reported after an import."""

    success: bool
    imported_prompts: int = 0
    duplicate_prompts: int = 0
    imported_categories: int = 0
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "imported_prompts": self.imported_prompts,
            "duplicate_prompts": self.duplicate_prompts,
            "imported_categories": self.imported_categories,
            "error": self.error,
        }


class LocalTransferService:
    """Moves local data in and out as ``category -> alias -> content`` JSON."""

    def __init__(self, local_service: LocalService) -> None:
        self.local_service = local_service

    def export_data(self) -> str:
        return self.export_selected_prompts(self.local_service.get_prompts())

    def export_selected_categories(self, category_ids: Iterable[str]) -> str:
        wanted = set(category_ids)
        prompts = [p for p in self.local_service.get_prompts() if p.category_id in wanted]
        return self.export_selected_prompts(prompts)

    def export_selected_prompts(self, prompts: Sequence[Prompt]) -> str:
        names = {category.id: category.name for category in self.local_service.get_categories()}
        renamed = [
            Prompt(
                id=prompt.id,
                label=prompt.label,
                content=prompt.content,
                timestamp=prompt.timestamp,
                category_id=names.get(prompt.category_id, prompt.category_id),
                alias=prompt.alias,
            )
            for prompt in prompts
        ]
        return codec.serialize(codec.encode(renamed))

    async def import_data(self, text: str) -> TransferResult:
        return await self._import(text, None)

    async def import_selected_data(self, text: str, selected_categories: Sequence[str]) -> TransferResult:
        return await self._import(text, selected_categories)

    async def _import(self, text: str, selected: Optional[Sequence[str]]) -> TransferResult:
        try:
            document = codec.parse(text)
        except ValidationError as exc:
            logger.warning("Import rejected: %s", exc)
            return TransferResult(success=False, error=str(exc))

        if selected is not None:
            document = document.select(selected)

        category_names: List[str] = [name for name in document.categories if name.strip()]
        imported_categories = await self.local_service.add_categories(category_names)

        prompts = codec.document_to_prompts(document)
        unique = filter_out_duplicates(prompts, self.local_service.get_prompts())
        added, duplicates = await self.local_service.add_prompts(unique)

        result = TransferResult(
            success=True,
            imported_prompts=added,
            duplicate_prompts=(len(prompts) - len(unique)) + duplicates,
            imported_categories=imported_categories,
        )
        logger.info(
            "Imported %d prompts (%d duplicates) and %d categories",
            result.imported_prompts,
            result.duplicate_prompts,
            result.imported_categories,
        )
        return result


__all__ = ["LocalTransferService", "TransferResult"]
