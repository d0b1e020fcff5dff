"""Tests for local prompts, categories and start-up repair."""

from __future__ import annotations

import asyncio
from pathlib import Path

from promptmemo.local import LocalService
from promptmemo.models import Prompt
from promptmemo.storage import StateStore


def _service(tmp_path: Path, **state) -> LocalService:
    store = StateStore(tmp_path / "state.json")
    for key, value in state.items():
        store.set_value(key, value)
    service = LocalService(store)
    asyncio.run(service.initialize())
    return service


def _stored(prompt_id: str, category: str, content: str = "text") -> dict:
    return {
        "id": prompt_id,
        "label": content,
        "content": content,
        "timestamp": 1,
        "category_id": category,
    }


def test_initialize_creates_default_category(tmp_path: Path):
    service = _service(tmp_path)

    assert [(c.id, c.name) for c in service.get_categories()] == [("Default", "Default")]
    assert StateStore(tmp_path / "state.json").get_value("local_categories") == [
        {"id": "Default", "name": "Default"}
    ]


def test_initialize_repairs_corrupted_categories(tmp_path: Path):
    service = _service(
        tmp_path,
        local_categories=[
            {"id": "Default", "name": ""},
            {"id": "Work", "name": ""},
            {"id": "Play", "name": "Play"},
        ],
        local_prompts=[
            _stored("1", "Work", "a"),
            _stored("2", "", "b"),
            _stored("3", "Play", "c"),
        ],
    )

    assert [(c.id, c.name) for c in service.get_categories()] == [
        ("Play", "Play"),
        ("Default", "Default"),
    ]
    assert {p.id: p.category_id for p in service.get_prompts()} == {
        "1": "Default",
        "2": "Default",
        "3": "Play",
    }

    persisted = StateStore(tmp_path / "state.json")
    assert [p["category_id"] for p in persisted.get_value("local_prompts")] == ["Default", "Default", "Play"]


def test_initialize_collapses_duplicate_default_and_fixes_name(tmp_path: Path):
    service = _service(
        tmp_path,
        local_categories=[
            {"id": "Default", "name": "General"},
            {"id": "Default", "name": "Default"},
        ],
    )

    assert [(c.id, c.name) for c in service.get_categories()] == [("Default", "Default")]


def test_initialize_does_not_write_clean_state(tmp_path: Path):
    state_path = tmp_path / "state.json"
    _service(tmp_path)
    before = state_path.stat().st_mtime_ns
    fired = []

    store = StateStore(state_path)
    service = LocalService(store)
    service.on_categories_changed.subscribe(lambda: fired.append("categories"))
    asyncio.run(service.initialize())

    assert fired == []
    assert state_path.stat().st_mtime_ns == before


def test_add_prompt_rejects_duplicates(tmp_path: Path):
    service = _service(tmp_path)

    first = asyncio.run(service.add_prompt("Explain this code"))
    second = asyncio.run(service.add_prompt("Explain this code"))

    assert first.success
    assert first.prompt.category_id == "Default"
    assert first.prompt.is_cloud is False
    assert not second.success
    assert "already exists" in second.error
    assert len(service.get_prompts()) == 1


def test_add_prompt_rejects_blank_content(tmp_path: Path):
    service = _service(tmp_path)

    result = asyncio.run(service.add_prompt("   "))

    assert not result.success
    assert service.get_prompts() == []


def test_add_prompt_falls_back_to_default_for_unknown_category(tmp_path: Path):
    service = _service(tmp_path)

    result = asyncio.run(service.add_prompt("hello", "Nowhere"))

    assert result.prompt.category_id == "Default"


def test_add_prompt_labels_long_content(tmp_path: Path):
    service = _service(tmp_path)

    result = asyncio.run(service.add_prompt("y" * 31))

    assert result.prompt.label == "y" * 30 + "..."


def test_add_prompts_reports_duplicates(tmp_path: Path):
    service = _service(tmp_path)
    asyncio.run(service.add_prompt("one"))
    incoming = [
        Prompt(id="a", label="one", content="one", timestamp=1, category_id="Default"),
        Prompt(id="b", label="two", content="two", timestamp=1, category_id="Missing"),
    ]

    added, duplicates = asyncio.run(service.add_prompts(incoming))

    assert (added, duplicates) == (1, 1)
    assert service.get_prompt("b").category_id == "Default"


def test_rename_prompt_rejects_collision(tmp_path: Path):
    service = _service(tmp_path)
    asyncio.run(service.add_prompts([
        Prompt(id="a", label="same", content="same", timestamp=1, category_id="Default", alias="Alias"),
        Prompt(id="b", label="same", content="same", timestamp=1, category_id="Default"),
    ]))

    result = asyncio.run(service.rename_prompt("b", "Alias"))

    assert not result.success
    assert service.get_prompt("b").alias is None


def test_edit_prompt_updates_label_for_unnamed_prompts(tmp_path: Path):
    service = _service(tmp_path)
    created = asyncio.run(service.add_prompt("old text"))

    result = asyncio.run(service.edit_prompt(created.prompt.id, "new text"))

    assert result.success
    assert service.get_prompt(created.prompt.id).label == "new text"


def test_move_prompt_requires_existing_category(tmp_path: Path):
    service = _service(tmp_path)
    created = asyncio.run(service.add_prompt("movable"))
    asyncio.run(service.add_category("Work"))

    missing = asyncio.run(service.move_prompt(created.prompt.id, "Nope"))
    moved = asyncio.run(service.move_prompt(created.prompt.id, "Work"))

    assert not missing.success
    assert moved.success
    assert service.get_prompt(created.prompt.id).category_id == "Work"


def test_remove_prompt(tmp_path: Path):
    service = _service(tmp_path)
    created = asyncio.run(service.add_prompt("temporary"))

    assert asyncio.run(service.remove_prompt(created.prompt.id))
    assert not asyncio.run(service.remove_prompt(created.prompt.id))


def test_add_categories_skips_blank_and_existing(tmp_path: Path):
    service = _service(tmp_path)

    added = asyncio.run(service.add_categories(["Work", " ", "Default", "Work", "Play"]))

    assert added == 2
    assert [c.id for c in service.get_categories()] == ["Default", "Work", "Play"]


def test_rename_category_moves_prompts(tmp_path: Path):
    service = _service(tmp_path)
    asyncio.run(service.add_category("Work"))
    created = asyncio.run(service.add_prompt("task", "Work"))

    assert asyncio.run(service.rename_category("Work", "Office"))
    assert not asyncio.run(service.rename_category("Default", "Other"))
    assert service.get_prompt(created.prompt.id).category_id == "Office"
    assert service.has_category("Office") and not service.has_category("Work")


def test_delete_category_moves_prompts_to_default(tmp_path: Path):
    service = _service(tmp_path)
    asyncio.run(service.add_category("Work"))
    asyncio.run(service.add_prompt("task", "Work"))

    result = asyncio.run(service.delete_category("Work"))
    refused = asyncio.run(service.delete_category("Default"))

    assert result.success and result.count == 1
    assert not refused.success
    assert [p.category_id for p in service.get_prompts()] == ["Default"]


def test_clear_all_keeps_default_category(tmp_path: Path):
    service = _service(tmp_path)
    asyncio.run(service.add_category("Work"))
    asyncio.run(service.add_prompt("task", "Work"))

    asyncio.run(service.clear_all())

    assert service.get_prompts() == []
    assert [c.id for c in service.get_categories()] == ["Default"]


def test_initialize_replaces_blank_category_records_with_single_default(tmp_path: Path):
    service = _service(
        tmp_path,
        local_categories=[{"id": "", "name": "Work"}, {"id": "Default", "name": ""}],
        local_prompts=[_stored("1", "")],
    )

    assert [(c.id, c.name) for c in service.get_categories()] == [("Default", "Default")]
    assert service.get_prompt("1").category_id == "Default"
