"""Task model for the folder-per-task store.

A task's ``id`` doubles as its folder name and display title
(``001-implement-auth``).  ``level`` is derived from the parent chain on every
read and is never written to ``task.json``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ..errors import ValidationError
from ..utils import _now_iso

if TYPE_CHECKING:
    from .inputs import UpdateTaskInput


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def coerce(cls, value: Any) -> "TaskStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValidationError.invalid_choice("status", value, [s.value for s in cls]) from None


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

# task.json key order, matching what existing data on disk looks like
_JSON_KEYS = ("id", "details", "parentId", "status", "tags", "actualHours", "createdAt", "updatedAt")


@dataclass
class Task:
    """A unit of work persisted as ``tasks/{id}/task.json``."""

    id: str = ""
    details: str = ""
    parent_id: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    tags: list[str] = field(default_factory=list)
    actual_hours: Optional[float] = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    # Derived on read, never persisted
    level: int = field(default=0, compare=False)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ``task.json`` shape (camelCase, no ``level``)."""
        data: dict[str, Any] = {
            "id": self.id,
            "details": self.details,
            "parentId": self.parent_id,
            "status": self.status.value,
            "tags": list(self.tags),
            "actualHours": self.actual_hours,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        return {k: data[k] for k in _JSON_KEYS if data[k] is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize a ``task.json`` payload.

        Unknown keys (including a stray ``level``) are ignored.

        Raises:
            ValidationError: if ``id`` is missing or a field has the wrong type.
        """
        task_id = data.get("id")
        if not isinstance(task_id, str) or not task_id:
            raise ValidationError("Task record is missing 'id'", field="id", value=task_id)

        details = data.get("details", "")
        if not isinstance(details, str):
            raise ValidationError("'details' must be a string", field="details", value=details)

        parent_id = data.get("parentId")
        if parent_id is not None and not isinstance(parent_id, str):
            raise ValidationError("'parentId' must be a string", field="parentId", value=parent_id)

        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValidationError("'tags' must be a list of strings", field="tags", value=tags)

        hours = data.get("actualHours")
        if hours is not None and (isinstance(hours, bool) or not isinstance(hours, (int, float))):
            raise ValidationError("'actualHours' must be a number", field="actualHours", value=hours)

        now = _now_iso()
        return cls(
            id=task_id,
            details=details,
            parent_id=parent_id or None,
            status=TaskStatus.coerce(data.get("status", TaskStatus.PENDING.value)),
            tags=list(tags),
            actual_hours=hours,
            created_at=str(data.get("createdAt") or now),
            updated_at=str(data.get("updatedAt") or now),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = _now_iso()

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE


@dataclass
class TaskHierarchy:
    """A task with its subtree, as returned by hierarchy queries."""

    task: Task
    children: list["TaskHierarchy"] = field(default_factory=list)
    depth: int = 0


# ---------------------------------------------------------------------------
# Partial updates
# ---------------------------------------------------------------------------

def merge_task_update(task: Task, update: "UpdateTaskInput") -> Task:
    """Return a copy of *task* with the fields *update* explicitly set.

    Rules, one per field:

    * ``details``, ``status``, ``tags``: take the new value when provided;
      an explicit ``None`` keeps the old value.
    * ``parent_id``, ``actual_hours``: take the new value when provided,
      including ``None``, which clears it.
    * ``id`` and ``created_at`` never change; ``updated_at`` is bumped.
    """
    provided = update.model_fields_set
    merged = replace(task, tags=list(task.tags))

    if "details" in provided and update.details is not None:
        merged.details = update.details
    if "status" in provided and update.status is not None:
        merged.status = TaskStatus.coerce(update.status)
    if "tags" in provided and update.tags is not None:
        merged.tags = list(update.tags)
    if "parent_id" in provided:
        merged.parent_id = update.parent_id or None
    if "actual_hours" in provided:
        merged.actual_hours = update.actual_hours

    merged.touch()
    return merged
