"""Local prompts and categories, including start-up integrity repair."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Set, Tuple

from .configuration import DEFAULT_CATEGORY
from .events import ChangeEmitter, SerialQueue, serialized
from .models import Category, Prompt, make_label
from .storage import StateStore
from .sync.identity import filter_out_duplicates, is_duplicate_prompt

logger = logging.getLogger("promptmemo.local")


@dataclass
class LocalResult:
    """Outcome of a local mutation."""

    success: bool
    error: str = ""
    count: int = 0
    prompt: Optional[Prompt] = None


class LocalService:
    """User-owned prompts and categories.

    ``category_id`` doubles as the category's key in exported documents, so a
    category rename rewrites every owned prompt in the same operation.
    """

    LOCAL_PROMPTS_KEY = "local_prompts"
    LOCAL_CATEGORIES_KEY = "local_categories"

    def __init__(self, state_store: StateStore, default_category: str = DEFAULT_CATEGORY) -> None:
        self.state_store = state_store
        self.default_category_id = default_category

        self.on_prompts_changed = ChangeEmitter("local_prompts")
        self.on_categories_changed = ChangeEmitter("local_categories")

        self._queue = SerialQueue()
        self._prompts: List[Prompt] = []
        self._categories: List[Category] = []
        self._initialized = False

    @serialized
    async def initialize(self) -> None:
        """Load stored data and repair category integrity.

        1. Prompts with a blank category move to the default category.
        2. Categories with a blank id or name are dropped; prompts pointing at
           a dropped category's (non-default) id move to the default category.
        3. Exactly one default category remains, named after its id.
        Nothing is written unless something changed.
        """
        if self._initialized:
            return

        stored_prompts = self.state_store.get_value(self.LOCAL_PROMPTS_KEY, [])
        stored_categories = self.state_store.get_value(self.LOCAL_CATEGORIES_KEY, [])

        prompts_changed = False
        self._prompts = []
        for item in stored_prompts:
            prompt = Prompt.from_dict(item)
            if not prompt.category_id.strip():
                prompt = replace(prompt, category_id=self.default_category_id)
                prompts_changed = True
            self._prompts.append(prompt)

        pristine, corrupted_ids, categories_changed = self._partition_categories(stored_categories)

        if corrupted_ids:
            remapped = []
            for prompt in self._prompts:
                if prompt.category_id in corrupted_ids:
                    prompt = replace(prompt, category_id=self.default_category_id)
                    prompts_changed = True
                remapped.append(prompt)
            self._prompts = remapped

        self._categories, default_changed = self._ensure_default(pristine)
        categories_changed = categories_changed or default_changed

        if categories_changed:
            self._save_categories()
        if prompts_changed:
            self._save_prompts()
        if categories_changed:
            self.on_categories_changed.fire()
        if prompts_changed:
            self.on_prompts_changed.fire()

        if categories_changed or prompts_changed:
            logger.warning(
                "Repaired local data: %d corrupted categories, prompts remapped=%s",
                len(stored_categories) - len(pristine),
                prompts_changed,
            )
        self._initialized = True

    def _partition_categories(self, stored: Sequence[dict]) -> Tuple[List[Category], Set[str], bool]:
        pristine: List[Category] = []
        corrupted_ids: Set[str] = set()
        changed = False
        for item in stored:
            category = Category.from_dict(item if isinstance(item, dict) else {})
            if category.id.strip() and category.name.strip():
                pristine.append(category)
                continue
            changed = True
            source_id = category.id.strip()
            if source_id and source_id != self.default_category_id:
                corrupted_ids.add(source_id)
        return pristine, corrupted_ids, changed

    def _ensure_default(self, categories: List[Category]) -> Tuple[List[Category], bool]:
        result: List[Category] = []
        seen_default = False
        changed = False
        for category in categories:
            if category.id != self.default_category_id:
                result.append(category)
                continue
            if seen_default:
                changed = True
                continue
            seen_default = True
            if category.name != self.default_category_id:
                category = Category(id=self.default_category_id, name=self.default_category_id)
                changed = True
            result.append(category)
        if not seen_default:
            result.append(Category(id=self.default_category_id, name=self.default_category_id))
            changed = True
        return result, changed

    def get_prompts(self) -> List[Prompt]:
        return [replace(prompt) for prompt in self._prompts]

    def get_categories(self) -> List[Category]:
        return [replace(category) for category in self._categories]

    def get_prompt(self, prompt_id: str) -> Optional[Prompt]:
        for prompt in self._prompts:
            if prompt.id == prompt_id:
                return replace(prompt)
        return None

    def has_category(self, category_id: str) -> bool:
        return any(category.id == category_id for category in self._categories)

    @serialized
    async def add_prompt(self, content: str, category_id: Optional[str] = None) -> LocalResult:
        if not content.strip():
            return LocalResult(success=False, error="Prompt content cannot be empty.")
        if not category_id or not self.has_category(category_id):
            category_id = self.default_category_id

        now = int(time.time() * 1000)
        prompt = Prompt(
            id=str(now),
            label=make_label(content),
            content=content,
            timestamp=now,
            category_id=category_id,
            is_cloud=False,
        )
        if is_duplicate_prompt(prompt, self._prompts):
            return LocalResult(
                success=False,
                error="A prompt with the same category, name and content already exists.",
            )
        if any(existing.id == prompt.id for existing in self._prompts):
            prompt = replace(prompt, id=f"{now}_{len(self._prompts)}")

        self._prompts.append(prompt)
        self._save_prompts()
        self.on_prompts_changed.fire()
        return LocalResult(success=True, count=1, prompt=replace(prompt))

    @serialized
    async def add_prompts(self, prompts: Sequence[Prompt]) -> Tuple[int, int]:
        """Add prompts in bulk, returning ``(added, duplicates)``."""
        prepared = [
            replace(
                prompt,
                category_id=prompt.category_id if self.has_category(prompt.category_id) else self.default_category_id,
                is_cloud=False,
            )
            for prompt in prompts
        ]
        unique = filter_out_duplicates(prepared, self._prompts)
        duplicates = len(prepared) - len(unique)

        if unique:
            self._prompts.extend(unique)
            self._save_prompts()
            self.on_prompts_changed.fire()
        return len(unique), duplicates

    @serialized
    async def remove_prompt(self, prompt_id: str) -> bool:
        original_length = len(self._prompts)
        self._prompts = [prompt for prompt in self._prompts if prompt.id != prompt_id]
        if len(self._prompts) == original_length:
            return False
        self._save_prompts()
        self.on_prompts_changed.fire()
        return True

    @serialized
    async def rename_prompt(self, prompt_id: str, alias: str) -> LocalResult:
        return self._update_prompt(
            prompt_id,
            lambda prompt: replace(prompt, alias=alias),
            "Renaming would create a duplicate prompt (same category, name and content).",
        )

    @serialized
    async def edit_prompt(self, prompt_id: str, content: str) -> LocalResult:
        def _edit(prompt: Prompt) -> Prompt:
            label = prompt.label if prompt.alias else make_label(content)
            return replace(prompt, content=content, label=label)

        return self._update_prompt(
            prompt_id,
            _edit,
            "Editing would create a duplicate prompt (same category, name and content).",
        )

    @serialized
    async def move_prompt(self, prompt_id: str, target_category_id: str) -> LocalResult:
        if not self.has_category(target_category_id):
            return LocalResult(success=False, error="Target category does not exist.")
        return self._update_prompt(
            prompt_id,
            lambda prompt: replace(prompt, category_id=target_category_id),
            "Moving would create a duplicate prompt in the target category.",
        )

    def _update_prompt(self, prompt_id: str, change, duplicate_error: str) -> LocalResult:
        for index, prompt in enumerate(self._prompts):
            if prompt.id != prompt_id:
                continue
            updated = change(prompt)
            if updated == prompt:
                return LocalResult(success=True, prompt=replace(prompt))
            others = self._prompts[:index] + self._prompts[index + 1:]
            if is_duplicate_prompt(updated, others):
                return LocalResult(success=False, error=duplicate_error)
            self._prompts[index] = updated
            self._save_prompts()
            self.on_prompts_changed.fire()
            return LocalResult(success=True, count=1, prompt=replace(updated))
        return LocalResult(success=False, error="Prompt not found.")

    @serialized
    async def add_category(self, name: str) -> bool:
        added = self._add_categories([name])
        return added > 0

    @serialized
    async def add_categories(self, names: Sequence[str]) -> int:
        return self._add_categories(names)

    def _add_categories(self, names: Sequence[str]) -> int:
        new_categories: List[Category] = []
        for raw in names:
            name = (raw or "").strip()
            if not name or self.has_category(name) or any(c.id == name for c in new_categories):
                continue
            new_categories.append(Category(id=name, name=name))
        if not new_categories:
            return 0
        self._categories.extend(new_categories)
        self._save_categories()
        self.on_categories_changed.fire()
        return len(new_categories)

    @serialized
    async def rename_category(self, category_id: str, new_name: str) -> bool:
        name = (new_name or "").strip()
        if (
            not name
            or category_id == self.default_category_id
            or not self.has_category(category_id)
            or any(c.id != category_id and (c.name == name or c.id == name) for c in self._categories)
        ):
            return False

        self._categories = [
            Category(id=name, name=name) if category.id == category_id else category
            for category in self._categories
        ]
        prompts_updated = False
        renamed = []
        for prompt in self._prompts:
            if prompt.category_id == category_id:
                prompt = replace(prompt, category_id=name)
                prompts_updated = True
            renamed.append(prompt)
        self._prompts = renamed

        self._save_categories()
        if prompts_updated:
            self._save_prompts()
            self.on_prompts_changed.fire()
        self.on_categories_changed.fire()
        return True

    @serialized
    async def delete_category(self, category_id: str) -> LocalResult:
        """Delete a category, moving its prompts to the default category."""
        if (
            not category_id
            or category_id == self.default_category_id
            or not self.has_category(category_id)
        ):
            return LocalResult(success=False, error="Category cannot be deleted.")

        moved = 0
        updated = []
        for prompt in self._prompts:
            if prompt.category_id == category_id:
                prompt = replace(prompt, category_id=self.default_category_id)
                moved += 1
            updated.append(prompt)
        self._prompts = updated
        self._categories = [category for category in self._categories if category.id != category_id]

        if moved:
            self._save_prompts()
        self._save_categories()
        if moved:
            self.on_prompts_changed.fire()
        self.on_categories_changed.fire()
        return LocalResult(success=True, count=moved)

    @serialized
    async def clear_all(self) -> None:
        self._prompts = []
        self._categories = [Category(id=self.default_category_id, name=self.default_category_id)]
        self._save_prompts()
        self._save_categories()
        self.on_prompts_changed.fire()
        self.on_categories_changed.fire()

    def _save_prompts(self) -> None:
        self.state_store.set_value(self.LOCAL_PROMPTS_KEY, [p.to_dict() for p in self._prompts])

    def _save_categories(self) -> None:
        self.state_store.set_value(self.LOCAL_CATEGORIES_KEY, [c.to_dict() for c in self._categories])


__all__ = ["LocalResult", "LocalService"]
