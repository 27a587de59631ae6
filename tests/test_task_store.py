"""Tests for the folder-per-task store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from loguru import logger

from cortex_tasks.cache import Cache, CacheKeys
from cortex_tasks.errors import (
    CIRCULAR_REFERENCE,
    PARENT_NOT_FOUND,
    SELF_REFERENCE,
    ConflictError,
    NotFoundError,
)
from cortex_tasks.task_engine.model import TaskStatus
from cortex_tasks.task_engine.store import TaskStore


@pytest.fixture
def tasks_dir(tmp_path: Path) -> Path:
    return tmp_path / ".cortex" / "tasks"


@pytest.fixture
def store(tasks_dir: Path) -> TaskStore:
    return TaskStore(tasks_dir, cache=Cache())


def _folders(tasks_dir: Path) -> list[str]:
    return sorted(p.name for p in tasks_dir.iterdir() if p.is_dir())


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

class TestCreate:
    def test_sequential_ids(self, store: TaskStore) -> None:
        first = store.create_task({"details": "Implement authentication"})
        second = store.create_task({"details": "Write docs"})
        assert first.id == "001-implement-authentication"
        assert second.id == "002-write-docs"
        assert first.level == 0

    def test_writes_task_json(self, store: TaskStore, tasks_dir: Path) -> None:
        task = store.create_task({"details": "Implement authentication", "tags": ["auth"]})
        data = json.loads((tasks_dir / task.id / "task.json").read_text(encoding="utf-8"))
        assert list(data) == ["id", "details", "status", "tags", "createdAt", "updatedAt"]
        assert data["id"] == task.id
        assert data["status"] == "pending"
        assert data["tags"] == ["auth"]

    def test_child_has_level(self, store: TaskStore) -> None:
        parent = store.create_task({"details": "Parent"})
        child = store.create_task({"details": "Child", "parentId": parent.id})
        grandchild = store.create_task({"details": "Grandchild", "parent_id": child.id})
        assert child.parent_id == parent.id
        assert child.level == 1
        assert grandchild.level == 2
        assert store.get_task(grandchild.id).level == 2  # type: ignore[union-attr]

    def test_missing_parent(self, store: TaskStore, tasks_dir: Path) -> None:
        with pytest.raises(NotFoundError) as excinfo:
            store.create_task({"details": "Orphan", "parentId": "999-nope"})
        assert excinfo.value.code == PARENT_NOT_FOUND
        assert not tasks_dir.exists() or _folders(tasks_dir) == []

    def test_ids_never_reused_after_deletes(self, store: TaskStore) -> None:
        store.create_task({"details": "one"})
        two = store.create_task({"details": "two"})
        three = store.create_task({"details": "three"})
        store.delete_task(three.id)
        four = store.create_task({"details": "four"})
        store.delete_task(two.id)
        five = store.create_task({"details": "five"})
        assert four.id == "004-four"
        assert five.id == "005-five"

    def test_sequence_continues_from_existing_folders(self, tasks_dir: Path) -> None:
        (tasks_dir / "041-legacy").mkdir(parents=True)
        store = TaskStore(tasks_dir, cache=Cache())
        assert store.create_task({"details": "next"}).id == "042-next"
        assert store.highest_sequence() == 42

    def test_same_details_get_distinct_ids(self, store: TaskStore) -> None:
        ids = [store.create_task({"details": "Same"}).id for _ in range(3)]
        assert ids == ["001-same", "002-same", "003-same"]


class TestRead:
    def test_get_missing_and_invalid_ids(self, store: TaskStore) -> None:
        assert store.get_task("001-nope") is None
        assert store.get_task("") is None
        assert store.get_task("../etc") is None
        assert not store.task_exists("../etc")

    def test_get_tasks_in_folder_order(self, store: TaskStore) -> None:
        for details in ("a", "b", "c"):
            store.create_task({"details": details})
        assert [t.id for t in store.get_tasks()] == ["001-a", "002-b", "003-c"]
        assert store.count_tasks() == 3

    def test_get_tasks_by_parent(self, store: TaskStore) -> None:
        root = store.create_task({"details": "root"})
        store.create_task({"details": "child one", "parentId": root.id})
        store.create_task({"details": "child two", "parentId": root.id})
        store.create_task({"details": "other"})
        children = store.get_tasks(parent_id=root.id)
        assert [t.id for t in children] == ["002-child-one", "003-child-two"]
        assert all(t.level == 1 for t in children)
        assert store.get_task_children(root.id) == children

    def test_corrupt_record_is_skipped_and_logged(self, store: TaskStore, tasks_dir: Path) -> None:
        store.create_task({"details": "good"})
        broken = tasks_dir / "002-broken"
        broken.mkdir()
        (broken / "task.json").write_text("{not json", encoding="utf-8")
        store.cache.clear()

        messages: list[str] = []
        sink_id = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            assert store.get_task("002-broken") is None
            assert [t.id for t in store.get_tasks()] == ["001-good"]
        finally:
            logger.remove(sink_id)
        assert any("002-broken" in m for m in messages)

        assert store.create_task({"details": "after"}).id == "003-after"

    def test_folder_name_wins_over_record_id(self, store: TaskStore, tasks_dir: Path) -> None:
        folder = tasks_dir / "007-renamed"
        folder.mkdir(parents=True)
        (folder / "task.json").write_text(json.dumps({"id": "001-old", "details": "x"}), encoding="utf-8")
        task = store.get_task("007-renamed")
        assert task is not None
        assert task.id == "007-renamed"

    def test_folders_without_sequence_are_ignored(self, store: TaskStore, tasks_dir: Path) -> None:
        (tasks_dir / "scratch").mkdir(parents=True)
        (tasks_dir / "scratch" / "task.json").write_text('{"id": "scratch"}', encoding="utf-8")
        assert store.get_tasks() == []

    def test_returned_tasks_do_not_alias_cache(self, store: TaskStore) -> None:
        task = store.create_task({"details": "x", "tags": ["a"]})
        fetched = store.get_task(task.id)
        assert fetched is not None
        fetched.tags.append("mutated")
        fetched.details = "mutated"
        again = store.get_task(task.id)
        assert again is not None
        assert again.tags == ["a"]
        assert again.details == "x"


class TestFilters:
    def test_status_tags_and_done(self, store: TaskStore) -> None:
        a = store.create_task({"details": "a", "tags": ["api"]})
        b = store.create_task({"details": "b", "tags": ["ui"], "status": "in_progress"})
        c = store.create_task({"details": "c", "tags": ["api", "ui"], "status": "done"})

        assert [t.id for t in store.get_tasks_filtered({"status": "done"})] == [c.id]
        assert [t.id for t in store.get_tasks_filtered({"status": ["pending", "in_progress"]})] == [a.id, b.id]
        assert [t.id for t in store.get_tasks_filtered({"tags": ["api"]})] == [a.id, c.id]
        assert [t.id for t in store.get_tasks_filtered({"includeDone": False})] == [a.id, b.id]

    def test_parent_filter(self, store: TaskStore) -> None:
        root = store.create_task({"details": "root"})
        child = store.create_task({"details": "child", "parentId": root.id})
        assert [t.id for t in store.get_tasks_filtered({"parentId": root.id})] == [child.id]


# ---------------------------------------------------------------------------
# Update / move
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_partial_update(self, store: TaskStore) -> None:
        task = store.create_task({"details": "Original", "tags": ["a"], "actualHours": 1})
        updated = store.update_task(task.id, {"status": "done", "details": "Changed"})
        assert updated is not None
        assert updated.status == TaskStatus.DONE
        assert updated.details == "Changed"
        assert updated.tags == ["a"]
        assert updated.actual_hours == 1
        assert updated.id == task.id
        assert updated.created_at == task.created_at

    def test_update_is_visible_on_next_read(self, store: TaskStore) -> None:
        task = store.create_task({"details": "x"})
        assert store.get_task(task.id).status == TaskStatus.PENDING  # type: ignore[union-attr]
        store.update_task(task.id, {"status": "in_progress"})
        assert store.get_task(task.id).status == TaskStatus.IN_PROGRESS  # type: ignore[union-attr]

    def test_update_persists(self, store: TaskStore, tasks_dir: Path) -> None:
        task = store.create_task({"details": "x"})
        store.update_task(task.id, {"actualHours": 2.5})
        fresh = TaskStore(tasks_dir, cache=Cache())
        assert fresh.get_task(task.id).actual_hours == 2.5  # type: ignore[union-attr]

    def test_missing_task_returns_none(self, store: TaskStore) -> None:
        assert store.update_task("001-nope", {"status": "done"}) is None

    def test_clear_parent_and_hours(self, store: TaskStore, tasks_dir: Path) -> None:
        root = store.create_task({"details": "root"})
        child = store.create_task({"details": "child", "parentId": root.id, "actualHours": 3})
        updated = store.update_task(child.id, {"parentId": None, "actualHours": None})
        assert updated is not None
        assert updated.parent_id is None
        assert updated.actual_hours is None
        assert updated.level == 0
        data = json.loads((tasks_dir / child.id / "task.json").read_text(encoding="utf-8"))
        assert "parentId" not in data
        assert "actualHours" not in data

    def test_self_reference(self, store: TaskStore) -> None:
        task = store.create_task({"details": "x"})
        with pytest.raises(ConflictError) as excinfo:
            store.update_task(task.id, {"parentId": task.id})
        assert excinfo.value.code == SELF_REFERENCE

    def test_new_parent_must_exist(self, store: TaskStore) -> None:
        task = store.create_task({"details": "x"})
        with pytest.raises(NotFoundError) as excinfo:
            store.update_task(task.id, {"parentId": "099-missing"})
        assert excinfo.value.code == PARENT_NOT_FOUND

    def test_cycle_rejected_and_links_unchanged(self, store: TaskStore) -> None:
        c = store.create_task({"details": "c"})
        b = store.create_task({"details": "b", "parentId": c.id})
        a = store.create_task({"details": "a", "parentId": b.id})

        assert store.would_create_circular_reference(c.id, a.id)
        with pytest.raises(ConflictError) as excinfo:
            store.update_task(c.id, {"parentId": a.id, "details": "should not apply"})
        assert excinfo.value.code == CIRCULAR_REFERENCE

        unchanged = store.get_task(c.id)
        assert unchanged is not None
        assert unchanged.parent_id is None
        assert unchanged.details == "c"


class TestMove:
    def test_move_and_move_to_top_level(self, store: TaskStore) -> None:
        a = store.create_task({"details": "a"})
        b = store.create_task({"details": "b"})
        moved = store.move_task(b.id, a.id)
        assert moved is not None
        assert moved.parent_id == a.id
        assert moved.level == 1

        top = store.move_task(b.id)
        assert top is not None
        assert top.parent_id is None
        assert top.level == 0

    def test_move_under_descendant(self, store: TaskStore) -> None:
        a = store.create_task({"details": "a"})
        b = store.create_task({"details": "b", "parentId": a.id})
        with pytest.raises(ConflictError):
            store.move_task(a.id, b.id)
        assert store.get_task(a.id).parent_id is None  # type: ignore[union-attr]
        assert store.get_task(b.id).parent_id == a.id  # type: ignore[union-attr]

    def test_move_missing_task(self, store: TaskStore) -> None:
        assert store.move_task("001-nope", None) is None


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestDelete:
    def test_cascade(self, store: TaskStore, tasks_dir: Path) -> None:
        root = store.create_task({"details": "root"})
        child = store.create_task({"details": "child", "parentId": root.id})
        grandchild = store.create_task({"details": "grandchild", "parentId": child.id})
        sibling = store.create_task({"details": "sibling", "parentId": root.id})
        other = store.create_task({"details": "other"})
        (tasks_dir / child.id / "plan.md").write_text("---\n", encoding="utf-8")

        assert store.delete_task(root.id) is True
        assert _folders(tasks_dir) == [other.id]
        for task in (root, child, grandchild, sibling):
            assert store.get_task(task.id) is None

    def test_delete_missing(self, store: TaskStore) -> None:
        assert store.delete_task("001-nope") is False

    def test_delete_drops_cache_entries(self, store: TaskStore) -> None:
        task = store.create_task({"details": "x"})
        store.get_task(task.id)
        store.cache.set(CacheKeys.artifact(task.id, "plan"), "cached")
        store.delete_task(task.id)
        assert not store.cache.has(CacheKeys.task(task.id))
        assert not store.cache.has(CacheKeys.artifact(task.id, "plan"))

    def test_delete_tasks_by_parent(self, store: TaskStore) -> None:
        root = store.create_task({"details": "root"})
        child = store.create_task({"details": "child", "parentId": root.id})
        store.create_task({"details": "grandchild", "parentId": child.id})
        store.create_task({"details": "child two", "parentId": root.id})

        assert store.delete_tasks_by_parent(root.id) == 3
        assert [t.id for t in store.get_tasks()] == [root.id]
        assert store.delete_tasks_by_parent(root.id) == 0


# ---------------------------------------------------------------------------
# Hierarchy queries
# ---------------------------------------------------------------------------

class TestHierarchyQueries:
    def test_ancestors_descendants_and_tree(self, store: TaskStore) -> None:
        a = store.create_task({"details": "a"})
        b = store.create_task({"details": "b", "parentId": a.id})
        c = store.create_task({"details": "c", "parentId": b.id})
        d = store.create_task({"details": "d", "parentId": a.id})

        assert [t.id for t in store.get_task_ancestors(c.id)] == [a.id, b.id]
        assert [t.level for t in store.get_task_ancestors(c.id)] == [0, 1]
        assert [t.id for t in store.get_task_descendants(a.id)] == [b.id, d.id, c.id]
        assert store.get_task_ancestors("001-nope") == []

        tree = store.get_task_hierarchy()
        assert [n.task.id for n in tree] == [a.id]
        assert [n.task.id for n in tree[0].children] == [b.id, d.id]
        assert tree[0].children[0].children[0].task.id == c.id
        assert tree[0].children[0].children[0].depth == 2

        assert [n.task.id for n in store.get_task_hierarchy(b.id)] == [c.id]
