"""Prompt identity and duplicate handling.

Two prompts are the same when they share category, name (alias when it is
not None, label otherwise) and content. The surrogate ``id`` never takes part.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from ..models import Prompt

IdentityKey = Tuple[str, str, str]


def identity_key(prompt: Prompt) -> IdentityKey:
    return (prompt.category_id, prompt.name, prompt.content)


def is_same_prompt(first: Prompt, second: Prompt) -> bool:
    return identity_key(first) == identity_key(second)


def is_duplicate_prompt(prompt: Prompt, existing: Sequence[Prompt]) -> bool:
    key = identity_key(prompt)
    return any(identity_key(other) == key for other in existing)


def remove_duplicates(prompts: Sequence[Prompt]) -> List[Prompt]:
    """Drop later duplicates, keeping the first occurrence in order."""
    seen = set()
    unique: List[Prompt] = []
    for prompt in prompts:
        key = identity_key(prompt)
        if key in seen:
            continue
        seen.add(key)
        unique.append(prompt)
    return unique


def overlay_prompts(base: Sequence[Prompt], overlay: Sequence[Prompt]) -> List[Prompt]:
    """Merge ``overlay`` onto ``base`` by identity, overlay variant winning.

    An overlay prompt identical to a base prompt takes that prompt's position;
    the remaining overlay prompts are appended in order. Duplicates within
    either list collapse to their first occurrence.
    """
    replacements = {}
    for prompt in overlay:
        replacements.setdefault(identity_key(prompt), prompt)
    merged = [replacements.get(identity_key(prompt), prompt) for prompt in base]
    return remove_duplicates([*merged, *overlay])


def filter_out_duplicates(new_prompts: Sequence[Prompt], existing: Sequence[Prompt]) -> List[Prompt]:
    """Keep entries of ``new_prompts`` with no equal in ``existing``.

    Duplicates inside ``new_prompts`` itself are not collapsed.
    """
    existing_keys = {identity_key(prompt) for prompt in existing}
    return [prompt for prompt in new_prompts if identity_key(prompt) not in existing_keys]


__all__ = [
    "IdentityKey",
    "filter_out_duplicates",
    "identity_key",
    "is_duplicate_prompt",
    "is_same_prompt",
    "overlay_prompts",
    "remove_duplicates",
]
