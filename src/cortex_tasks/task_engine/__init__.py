"""Folder-per-task storage engine.

Tasks live one per folder under ``.cortex/tasks/``; each folder holds the
task record (``task.json``) and up to one Markdown artifact per workflow
phase.
"""

from __future__ import annotations

from .artifact import Artifact, ArtifactMetadata, ArtifactPhase, ArtifactStatus
from .artifact_store import ArtifactStore
from .model import Task, TaskHierarchy, TaskStatus
from .store import TaskStore

__all__ = [
    "Artifact",
    "ArtifactMetadata",
    "ArtifactPhase",
    "ArtifactStatus",
    "ArtifactStore",
    "Task",
    "TaskHierarchy",
    "TaskStatus",
    "TaskStore",
]
