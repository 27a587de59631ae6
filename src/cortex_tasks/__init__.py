"""Provide the public `cortex_tasks` package exports."""

from __future__ import annotations

from .cache import Cache
from .config import StorageConfig, load_storage_config
from .errors import CortexError, ConflictError, NotFoundError, StorageError, ValidationError
from .storage import Storage, StorageStats
from .task_engine import Artifact, ArtifactPhase, ArtifactStatus, Task, TaskStatus

__all__ = [
    "Artifact",
    "ArtifactPhase",
    "ArtifactStatus",
    "Cache",
    "ConflictError",
    "CortexError",
    "NotFoundError",
    "Storage",
    "StorageConfig",
    "StorageError",
    "StorageStats",
    "Task",
    "TaskStatus",
    "ValidationError",
    "load_storage_config",
]
