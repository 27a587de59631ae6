"""Folder-per-task store.

Each task lives in ``tasks/{NNN}-{slug}/task.json``.  There is no index file:
tasks are discovered by scanning folder names, and the next sequence number is
one more than the highest ever handed out.  The high-water mark is kept in
``tasks/.sequence`` so numbers are not reused after the newest task is
deleted.

Reads go through a :class:`~cortex_tasks.cache.Cache`; every write rewrites
the file atomically and then drops the affected cache keys.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from loguru import logger

from ..cache import Cache, CacheKeys, InvalidationPatterns
from ..constants import DEFAULT_FOLDER_CACHE_TTL_SECONDS, TASK_FILE, TASK_FOLDER_PATTERN, TASK_ID_MAX_LENGTH
from ..errors import ConflictError, NotFoundError, StorageError, ValidationError
from ..io_utils import atomic_write_json, delete_directory, list_directory, read_json
from ..path_security import resolve_secure_path
from ..utils import make_task_id, next_sequence, sequence_of
from .hierarchy import (
    ancestors,
    build_hierarchy,
    children_index,
    compute_level,
    descendants,
    post_order_ids,
    would_create_cycle,
)
from .inputs import CreateTaskInput, TaskFilters, UpdateTaskInput, parse_input
from .model import Task, TaskHierarchy, TaskStatus, merge_task_update

if TYPE_CHECKING:
    from loguru import Logger

SEQUENCE_FILE = ".sequence"


def _copy(task: Task) -> Task:
    return replace(task, tags=list(task.tags))


class TaskStore:
    """File-backed store for :class:`Task` records.

    Parameters
    ----------
    tasks_dir:
        The ``tasks/`` directory under the storage root.
    cache:
        Shared read cache. A private one is created when omitted.
    log:
        Loguru logger to report through. Defaults to the global logger bound
        to ``component="task_store"``.
    folder_cache_ttl:
        Seconds a folder scan may be reused before rescanning.
    """

    def __init__(
        self,
        tasks_dir: Path,
        cache: Optional[Cache[Any]] = None,
        log: Optional["Logger"] = None,
        folder_cache_ttl: float = DEFAULT_FOLDER_CACHE_TTL_SECONDS,
    ) -> None:
        self.tasks_dir = tasks_dir
        self.cache: Cache[Any] = cache if cache is not None else Cache()
        self._log = log if log is not None else logger.bind(component="task_store")
        self._folder_cache_ttl = folder_cache_ttl

    # -- paths --------------------------------------------------------------

    def task_dir(self, task_id: str) -> Path:
        """Folder for *task_id*.

        Raises:
            ValidationError: if the id is empty or escapes the tasks directory.
        """
        if not task_id or task_id.strip() != task_id or len(task_id) > TASK_ID_MAX_LENGTH:
            raise ValidationError(f"Invalid task ID: {task_id!r}", field="id", value=task_id)
        path = resolve_secure_path(self.tasks_dir, task_id)
        if path.parent != self.tasks_dir.resolve():
            raise ValidationError(f"Task ID must be a single folder name: {task_id}", field="id", value=task_id)
        return path

    def _task_file(self, task_id: str) -> Path:
        return self.task_dir(task_id) / TASK_FILE

    # -- low-level I/O ------------------------------------------------------

    def _list_folders(self) -> list[str]:
        key = CacheKeys.task_folders()
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)
        folders = list_directory(self.tasks_dir, directories_only=True, pattern=TASK_FOLDER_PATTERN)
        self._log.debug("Scanned {} task folders in {}", len(folders), self.tasks_dir)
        self.cache.set(key, list(folders), ttl=self._folder_cache_ttl)
        return folders

    def _load(self, task_id: str) -> Optional[Task]:
        """Cache-or-disk read. Missing, corrupt or invalid ids all yield None."""
        key = CacheKeys.task(task_id)
        cached = self.cache.get(key)
        if cached is not None:
            return _copy(cached)
        try:
            path = self._task_file(task_id)
        except ValidationError:
            return None
        result = read_json(path)
        if not result.found:
            return None
        if result.error:
            self._log.warning("Skipping unreadable task record {}: {}", task_id, result.error)
            return None
        try:
            task = Task.from_dict(result.value or {})
        except ValidationError as exc:
            self._log.warning("Skipping invalid task record {}: {}", task_id, exc.message)
            return None
        if task.id != task_id:
            self._log.warning("Task record id {} does not match folder {}; using folder name", task.id, task_id)
            task.id = task_id
        self.cache.set(key, _copy(task))
        return task

    def _save(self, task: Task) -> None:
        try:
            atomic_write_json(self._task_file(task.id), task.to_dict())
        except StorageError as exc:
            self._log.error("Failed to write task {}: {}", task.id, exc.message)
            raise
        self.cache.set(CacheKeys.task(task.id), _copy(task))

    def _load_all(self) -> list[Task]:
        tasks: list[Task] = []
        for folder in self._list_folders():
            task = self._load(folder)
            if task is not None:
                tasks.append(task)
        return tasks

    def _read_sequence(self) -> int:
        result = read_json(self.tasks_dir / SEQUENCE_FILE)
        if not result.ok:
            if result.error:
                self._log.warning("Ignoring unreadable sequence file: {}", result.error)
            return 0
        value = (result.value or {}).get("last", 0)
        return value if isinstance(value, int) and value >= 0 else 0

    def _allocate_id(self, details: str) -> str:
        folders = list_directory(self.tasks_dir, directories_only=True, pattern=TASK_FOLDER_PATTERN)
        sequence = max(next_sequence(folders), self._read_sequence() + 1)
        task_id = make_task_id(sequence, details)
        # Another writer may have claimed the number since the scan.
        while self.task_dir(task_id).exists():
            sequence += 1
            task_id = make_task_id(sequence, details)
        atomic_write_json(self.tasks_dir / SEQUENCE_FILE, {"last": sequence})
        return task_id

    # -- reads --------------------------------------------------------------

    def _with_levels(self, tasks: list[Task]) -> list[Task]:
        by_id = {t.id: t for t in tasks}
        for task in tasks:
            task.level = compute_level(task, by_id.get)
        return tasks

    def get_tasks(self, parent_id: Optional[str] = None) -> list[Task]:
        """All tasks in folder order, optionally only direct children of *parent_id*."""
        tasks = self._with_levels(self._load_all())
        if parent_id is not None:
            tasks = [t for t in tasks if t.parent_id == parent_id]
        return tasks

    def get_tasks_filtered(self, filters: Union[TaskFilters, dict[str, Any]]) -> list[Task]:
        filters = parse_input(TaskFilters, filters)
        tasks = self.get_tasks(filters.parent_id)
        statuses = filters.statuses
        if statuses:
            tasks = [t for t in tasks if t.status in statuses]
        if filters.tags:
            wanted = set(filters.tags)
            tasks = [t for t in tasks if wanted.intersection(t.tags)]
        if not filters.include_done:
            tasks = [t for t in tasks if t.status != TaskStatus.DONE]
        return tasks

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self._load(task_id)
        if task is None:
            return None
        task.level = compute_level(task, self._load)
        return task

    def task_exists(self, task_id: str) -> bool:
        return self._load(task_id) is not None

    def count_tasks(self) -> int:
        return len(self._load_all())

    def get_task_children(self, task_id: str) -> list[Task]:
        return self.get_tasks(parent_id=task_id)

    def get_task_ancestors(self, task_id: str) -> list[Task]:
        """Parent chain of *task_id*, root first. Empty if the task is unknown."""
        task = self._load(task_id)
        if task is None:
            return []
        chain = ancestors(task, self._load)
        for depth, node in enumerate(chain):
            node.level = depth
        return chain

    def get_task_descendants(self, task_id: str) -> list[Task]:
        return descendants(task_id, self.get_tasks())

    def get_task_hierarchy(self, parent_id: Optional[str] = None) -> list[TaskHierarchy]:
        """Trees rooted at the top-level tasks, or at the children of *parent_id*."""
        return build_hierarchy(self.get_tasks(), parent_id)

    def would_create_circular_reference(self, task_id: str, new_parent_id: str) -> bool:
        return would_create_cycle(task_id, new_parent_id, self._load)

    # -- writes -------------------------------------------------------------

    def create_task(self, data: Union[CreateTaskInput, dict[str, Any]]) -> Task:
        """Create and persist a new task, returning it with ``level`` set.

        Raises:
            NotFoundError: if ``parent_id`` names a task that does not exist.
        """
        data = parse_input(CreateTaskInput, data)
        if data.parent_id and not self.task_exists(data.parent_id):
            raise NotFoundError.parent(data.parent_id)

        task = Task(
            id=self._allocate_id(data.details),
            details=data.details,
            parent_id=data.parent_id,
            status=data.status,
            tags=list(data.tags),
            actual_hours=data.actual_hours,
        )
        self._save(task)
        self.cache.delete(CacheKeys.task_folders())
        task.level = compute_level(task, self._load)
        self._log.info("Created task {}", task.id)
        return task

    def update_task(self, task_id: str, data: Union[UpdateTaskInput, dict[str, Any]]) -> Optional[Task]:
        """Apply a partial update. Returns None if the task does not exist.

        Re-parenting is checked before anything is written.

        Raises:
            ConflictError: if the task would become its own parent or ancestor.
            NotFoundError: if the new parent does not exist.
        """
        data = parse_input(UpdateTaskInput, data)
        task = self._load(task_id)
        if task is None:
            return None

        if "parent_id" in data.model_fields_set and data.parent_id and data.parent_id != task.parent_id:
            self._check_new_parent(task_id, data.parent_id)

        updated = merge_task_update(task, data)
        self._save(updated)
        updated.level = compute_level(updated, self._load)
        self._log.info("Updated task {} ({})", task_id, ", ".join(sorted(data.model_fields_set)) or "no fields")
        return updated

    def move_task(self, task_id: str, new_parent_id: Optional[str] = None) -> Optional[Task]:
        """Re-parent *task_id*; ``None`` makes it top-level."""
        return self.update_task(task_id, UpdateTaskInput(parent_id=new_parent_id))

    def delete_task(self, task_id: str) -> bool:
        """Delete *task_id*, its artifacts and its whole subtree, children first.

        Returns False if the task does not exist.
        """
        if self._load(task_id) is None:
            return False
        doomed = post_order_ids(task_id, self._load_all())
        for doomed_id in doomed:
            self._remove(doomed_id)
        self.cache.delete(CacheKeys.task_folders())
        self._log.info("Deleted task {} ({} task(s) removed)", task_id, len(doomed))
        return True

    def delete_tasks_by_parent(self, parent_id: str) -> int:
        """Delete every child subtree of *parent_id*, keeping the parent itself."""
        tasks = self._load_all()
        removed = 0
        for child in children_index(tasks).get(parent_id, []):
            for doomed_id in post_order_ids(child.id, tasks):
                self._remove(doomed_id)
                removed += 1
        if removed:
            self.cache.delete(CacheKeys.task_folders())
            self._log.info("Deleted {} task(s) under {}", removed, parent_id)
        return removed

    # -- internal -----------------------------------------------------------

    def _check_new_parent(self, task_id: str, new_parent_id: str) -> None:
        if new_parent_id == task_id:
            raise ConflictError.self_reference(task_id, "be its own parent")
        if not self.task_exists(new_parent_id):
            raise NotFoundError.parent(new_parent_id)
        if self.would_create_circular_reference(task_id, new_parent_id):
            self._log.warning("Rejected move of {} under {}: circular reference", task_id, new_parent_id)
            raise ConflictError.circular_reference(task_id, new_parent_id)

    def _remove(self, task_id: str) -> None:
        delete_directory(self.task_dir(task_id))
        self.cache.invalidate(InvalidationPatterns.task(task_id))
        self.cache.invalidate(InvalidationPatterns.artifacts(task_id))

    def highest_sequence(self) -> int:
        """Highest sequence number ever allocated, from folders or the counter."""
        folders = list_directory(self.tasks_dir, directories_only=True, pattern=TASK_FOLDER_PATTERN)
        numbers = [n for n in (sequence_of(f) for f in folders) if n is not None]
        return max(numbers + [self._read_sequence()])
