"""Per-phase artifact files stored beside ``task.json``."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from loguru import logger

from ..cache import Cache, CacheKeys
from ..errors import NotFoundError, StorageError
from ..io_utils import atomic_write_text, delete_file, path_exists, read_text
from .artifact import (
    Artifact,
    ArtifactMetadata,
    ArtifactPhase,
    ArtifactStatus,
    FrontmatterError,
    decode_artifact,
    encode_artifact,
    merge_artifact_update,
)
from .inputs import CreateArtifactInput, UpdateArtifactInput, parse_input
from .store import TaskStore

if TYPE_CHECKING:
    from loguru import Logger

PhaseLike = Union[ArtifactPhase, str]


def _copy(artifact: Artifact) -> Artifact:
    return Artifact(metadata=replace(artifact.metadata), content=artifact.content)


class ArtifactStore:
    """Reads and writes ``{phase}.md`` files for tasks owned by *task_store*.

    The cache defaults to the task store's own, so deleting a task also drops
    its cached artifacts.
    """

    def __init__(
        self,
        task_store: TaskStore,
        cache: Optional[Cache[Any]] = None,
        log: Optional["Logger"] = None,
    ) -> None:
        self.task_store = task_store
        self.cache: Cache[Any] = cache if cache is not None else task_store.cache
        self._log = log if log is not None else logger.bind(component="artifact_store")

    def _path(self, task_id: str, phase: ArtifactPhase) -> Path:
        return self.task_store.task_dir(task_id) / phase.filename

    def _save(self, task_id: str, artifact: Artifact) -> None:
        try:
            atomic_write_text(self._path(task_id, artifact.phase), encode_artifact(artifact))
        except StorageError as exc:
            self._log.error("Failed to write {} artifact for task {}: {}", artifact.phase.value, task_id, exc.message)
            raise
        self.cache.set(CacheKeys.artifact(task_id, artifact.phase.value), _copy(artifact))

    # -- reads --------------------------------------------------------------

    def get_artifact(self, task_id: str, phase: PhaseLike) -> Optional[Artifact]:
        """Return the artifact for *phase*, or None if absent or unreadable.

        Raises:
            ValidationError: if *phase* is not a known phase.
        """
        phase = ArtifactPhase.coerce(phase)
        key = CacheKeys.artifact(task_id, phase.value)
        cached = self.cache.get(key)
        if cached is not None:
            return _copy(cached)
        if not self.task_store.task_exists(task_id):
            return None

        result = read_text(self._path(task_id, phase))
        if not result.found:
            return None
        if result.error:
            self._log.warning("Skipping unreadable artifact {}/{}: {}", task_id, phase.value, result.error)
            return None
        try:
            artifact = decode_artifact(result.value or "")
        except FrontmatterError as exc:
            self._log.warning("Skipping corrupt artifact {}/{}: {}", task_id, phase.value, exc)
            return None
        if artifact.phase != phase:
            self._log.warning(
                "Skipping artifact {}/{}: header names phase {}", task_id, phase.value, artifact.phase.value
            )
            return None

        self.cache.set(key, _copy(artifact))
        return artifact

    def get_all_artifacts(self, task_id: str) -> dict[ArtifactPhase, Artifact]:
        """Present artifacts of *task_id*, in workflow order."""
        artifacts: dict[ArtifactPhase, Artifact] = {}
        for phase in ArtifactPhase:
            artifact = self.get_artifact(task_id, phase)
            if artifact is not None:
                artifacts[phase] = artifact
        return artifacts

    def artifact_exists(self, task_id: str, phase: PhaseLike) -> bool:
        return self.get_artifact(task_id, phase) is not None

    def count_artifacts(self) -> int:
        count = 0
        for task in self.task_store.get_tasks():
            count += sum(
                1 for phase in ArtifactPhase if path_exists(self._path(task.id, phase))
            )
        return count

    # -- writes -------------------------------------------------------------

    def create_artifact(
        self,
        task_id: str,
        phase: PhaseLike,
        data: Union[CreateArtifactInput, dict[str, Any]],
    ) -> Artifact:
        """Write a fresh artifact, replacing any existing file for the phase.

        Raises:
            NotFoundError: if the task does not exist.
            ValidationError: on an unknown phase or invalid input.
        """
        phase = ArtifactPhase.coerce(phase)
        data = parse_input(CreateArtifactInput, data)
        if not self.task_store.task_exists(task_id):
            raise NotFoundError.task(task_id)

        artifact = Artifact(
            metadata=ArtifactMetadata(
                phase=phase,
                status=data.status if data.status is not None else ArtifactStatus.COMPLETED,
                retries=data.retries,
                error=data.error,
            ),
            content=data.content,
        )
        self._save(task_id, artifact)
        self._log.info("Created {} artifact for task {}", phase.value, task_id)
        return artifact

    def update_artifact(
        self,
        task_id: str,
        phase: PhaseLike,
        data: Union[UpdateArtifactInput, dict[str, Any]],
    ) -> Optional[Artifact]:
        """Merge provided fields into an existing artifact; None if there is none."""
        phase = ArtifactPhase.coerce(phase)
        data = parse_input(UpdateArtifactInput, data)
        current = self.get_artifact(task_id, phase)
        if current is None:
            return None

        updated = merge_artifact_update(current, data)
        self._save(task_id, updated)
        self._log.info("Updated {} artifact for task {}", phase.value, task_id)
        return updated

    def delete_artifact(self, task_id: str, phase: PhaseLike) -> bool:
        phase = ArtifactPhase.coerce(phase)
        self.cache.delete(CacheKeys.artifact(task_id, phase.value))
        if not self.task_store.task_exists(task_id):
            return False
        deleted = delete_file(self._path(task_id, phase))
        if deleted:
            self._log.info("Deleted {} artifact for task {}", phase.value, task_id)
        return deleted
