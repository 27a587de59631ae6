"""Storage facade: one object owning the task store, artifact store and cache.

The tool layer talks only to :class:`Storage`.  Nothing is touched on disk
until :meth:`Storage.initialize` has run.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, TypeVar, Union

from loguru import logger

from .cache import Cache
from .config import StorageConfig, load_storage_config, resolve_working_directory
from .constants import CURRENT_STORAGE_VERSION, TASKS_DIR_NAME
from .errors import StorageError, ValidationError
from .io_utils import ensure_directory, is_accessible
from .path_security import validate_working_directory
from .task_engine.artifact import Artifact, ArtifactPhase
from .task_engine.artifact_store import ArtifactStore, PhaseLike
from .task_engine.inputs import (
    CreateArtifactInput,
    CreateTaskInput,
    TaskFilters,
    UpdateArtifactInput,
    UpdateTaskInput,
)
from .task_engine.model import Task, TaskHierarchy
from .task_engine.store import TaskStore
from .utils import _now_iso

if TYPE_CHECKING:
    from loguru import Logger

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class StorageStats:
    task_count: int
    artifact_count: int
    cache_hit_rate: float
    last_accessed: str


def _requires_init(method: F) -> F:
    @wraps(method)
    def wrapper(self: "Storage", *args: Any, **kwargs: Any) -> Any:
        if not self._initialized:
            raise StorageError(
                f"Storage is not initialized; call initialize() before {method.__name__}()",
                path=str(self.root),
                operation=method.__name__,
            )
        return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class Storage:
    """File-based task and artifact storage rooted at ``<working_directory>/.cortex``.

    Example::

        storage = Storage.from_config("/path/to/project")
        storage.initialize()
        task = storage.create_task({"details": "Implement authentication"})
        storage.create_artifact(task.id, "explore", {"content": "# Findings"})
    """

    def __init__(
        self,
        working_directory: Union[str, Path],
        config: Optional[StorageConfig] = None,
        cache: Optional[Cache[Any]] = None,
        log: Optional["Logger"] = None,
    ) -> None:
        self.config = config or StorageConfig()
        self.working_directory = Path(working_directory)
        self.root = self.working_directory / self.config.storage_dir_name
        self.tasks_dir = self.root / TASKS_DIR_NAME
        self.cache: Cache[Any] = cache if cache is not None else Cache(
            default_ttl=self.config.cache_ttl_seconds,
            max_size=self.config.cache_max_size,
        )
        self._log = log if log is not None else logger.bind(component="storage")
        self.tasks = TaskStore(
            self.tasks_dir,
            cache=self.cache,
            log=self._log.bind(component="task_store"),
            folder_cache_ttl=self.config.folder_cache_ttl_seconds,
        )
        self.artifacts = ArtifactStore(
            self.tasks,
            cache=self.cache,
            log=self._log.bind(component="artifact_store"),
        )
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        working_directory: Union[str, Path],
        config: Optional[StorageConfig] = None,
        log: Optional["Logger"] = None,
    ) -> "Storage":
        """Build a facade, reading ``.cortex/config.yaml`` when *config* is None.

        An unreadable config file is logged and the defaults are used.
        """
        log = log if log is not None else logger.bind(component="storage")
        if config is None:
            config, err = load_storage_config(working_directory)
            if err:
                log.warning("Ignoring storage config: {}", err)
        return cls(resolve_working_directory(working_directory, config), config=config, log=log)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Validate the working directory and create the storage folders.

        Safe to call more than once.

        Raises:
            StorageError: if the working directory is invalid, missing or not
                accessible, or the folders cannot be created.
        """
        if self._initialized:
            return
        try:
            validate_working_directory(self.working_directory)
        except ValidationError as exc:
            raise StorageError.initialization_error(self.working_directory, exc.message) from exc
        if not is_accessible(self.working_directory):
            raise StorageError.initialization_error(
                self.working_directory,
                f"Working directory does not exist or is not accessible: {self.working_directory}",
            )
        ensure_directory(self.root)
        ensure_directory(self.tasks_dir)
        self._initialized = True
        self._log.info("Initialized storage at {} (version {})", self.root, CURRENT_STORAGE_VERSION)

    def is_initialized(self) -> bool:
        return self._initialized

    def get_version(self) -> str:
        return CURRENT_STORAGE_VERSION

    def get_working_directory(self) -> Path:
        return self.working_directory

    @_requires_init
    def get_stats(self) -> StorageStats:
        return StorageStats(
            task_count=self.tasks.count_tasks(),
            artifact_count=self.artifacts.count_artifacts(),
            cache_hit_rate=self.cache.stats().hit_rate,
            last_accessed=_now_iso(),
        )

    def clear_cache(self) -> None:
        self.cache.clear()
        self.cache.reset_stats()
        self._log.debug("Cleared storage cache")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @_requires_init
    def get_tasks(self, parent_id: Optional[str] = None) -> list[Task]:
        return self.tasks.get_tasks(parent_id)

    @_requires_init
    def get_tasks_filtered(self, filters: Union[TaskFilters, dict[str, Any]]) -> list[Task]:
        return self.tasks.get_tasks_filtered(filters)

    @_requires_init
    def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get_task(task_id)

    @_requires_init
    def task_exists(self, task_id: str) -> bool:
        return self.tasks.task_exists(task_id)

    @_requires_init
    def create_task(self, data: Union[CreateTaskInput, dict[str, Any]]) -> Task:
        return self.tasks.create_task(data)

    @_requires_init
    def update_task(self, task_id: str, data: Union[UpdateTaskInput, dict[str, Any]]) -> Optional[Task]:
        return self.tasks.update_task(task_id, data)

    @_requires_init
    def delete_task(self, task_id: str) -> bool:
        return self.tasks.delete_task(task_id)

    @_requires_init
    def move_task(self, task_id: str, new_parent_id: Optional[str] = None) -> Optional[Task]:
        return self.tasks.move_task(task_id, new_parent_id)

    @_requires_init
    def get_task_children(self, task_id: str) -> list[Task]:
        return self.tasks.get_task_children(task_id)

    @_requires_init
    def get_task_ancestors(self, task_id: str) -> list[Task]:
        return self.tasks.get_task_ancestors(task_id)

    @_requires_init
    def get_task_descendants(self, task_id: str) -> list[Task]:
        return self.tasks.get_task_descendants(task_id)

    @_requires_init
    def get_task_hierarchy(self, parent_id: Optional[str] = None) -> list[TaskHierarchy]:
        return self.tasks.get_task_hierarchy(parent_id)

    @_requires_init
    def delete_tasks_by_parent(self, parent_id: str) -> int:
        return self.tasks.delete_tasks_by_parent(parent_id)

    @_requires_init
    def would_create_circular_reference(self, task_id: str, new_parent_id: str) -> bool:
        return self.tasks.would_create_circular_reference(task_id, new_parent_id)

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    @_requires_init
    def get_artifact(self, task_id: str, phase: PhaseLike) -> Optional[Artifact]:
        return self.artifacts.get_artifact(task_id, phase)

    @_requires_init
    def get_all_artifacts(self, task_id: str) -> dict[ArtifactPhase, Artifact]:
        return self.artifacts.get_all_artifacts(task_id)

    @_requires_init
    def create_artifact(
        self,
        task_id: str,
        phase: PhaseLike,
        data: Union[CreateArtifactInput, dict[str, Any]],
    ) -> Artifact:
        return self.artifacts.create_artifact(task_id, phase, data)

    @_requires_init
    def update_artifact(
        self,
        task_id: str,
        phase: PhaseLike,
        data: Union[UpdateArtifactInput, dict[str, Any]],
    ) -> Optional[Artifact]:
        return self.artifacts.update_artifact(task_id, phase, data)

    @_requires_init
    def delete_artifact(self, task_id: str, phase: PhaseLike) -> bool:
        return self.artifacts.delete_artifact(task_id, phase)

    @_requires_init
    def artifact_exists(self, task_id: str, phase: PhaseLike) -> bool:
        return self.artifacts.artifact_exists(task_id, phase)
