"""Tests for the pydantic input models."""

from __future__ import annotations

import pytest

from cortex_tasks.errors import INVALID_INPUT, ValidationError
from cortex_tasks.task_engine.artifact import ArtifactStatus
from cortex_tasks.task_engine.inputs import (
    CreateArtifactInput,
    CreateTaskInput,
    TaskFilters,
    UpdateArtifactInput,
    UpdateTaskInput,
    parse_input,
)
from cortex_tasks.task_engine.model import TaskStatus


class TestCreateTaskInput:
    def test_defaults_and_aliases(self) -> None:
        data = parse_input(CreateTaskInput, {"details": "  Build it  ", "parentId": "001-root", "actualHours": 2})
        assert data.details == "Build it"
        assert data.parent_id == "001-root"
        assert data.actual_hours == 2
        assert data.status == TaskStatus.PENDING
        assert data.tags == []

    def test_blank_parent_is_none(self) -> None:
        assert parse_input(CreateTaskInput, {"details": "x", "parentId": "  "}).parent_id is None

    def test_passes_model_instances_through(self) -> None:
        data = CreateTaskInput(details="x")
        assert parse_input(CreateTaskInput, data) is data

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"details": "   "},
            {"details": "x" * 2001},
            {"details": "x", "tags": ["t"] * 21},
            {"details": "x", "tags": ["t" * 51]},
            {"details": "x", "tags": [""]},
            {"details": "x", "actualHours": -1},
            {"details": "x", "actualHours": 10_001},
            {"details": "x", "status": "blocked"},
        ],
    )
    def test_rejects_invalid(self, payload: dict) -> None:
        with pytest.raises(ValidationError) as excinfo:
            parse_input(CreateTaskInput, payload)
        assert excinfo.value.code == INVALID_INPUT

    def test_error_names_the_field(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            parse_input(CreateTaskInput, {"details": ""})
        assert excinfo.value.field == "details"

    def test_details_at_limit(self) -> None:
        assert len(parse_input(CreateTaskInput, {"details": "x" * 2000}).details) == 2000


class TestUpdateTaskInput:
    def test_tracks_provided_fields(self) -> None:
        data = parse_input(UpdateTaskInput, {"status": "done", "parentId": None})
        assert data.model_fields_set == {"status", "parent_id"}
        assert data.status == TaskStatus.DONE
        assert data.parent_id is None

    def test_empty_update(self) -> None:
        assert parse_input(UpdateTaskInput, {}).model_fields_set == set()


class TestTaskFilters:
    def test_single_and_multiple_status(self) -> None:
        assert parse_input(TaskFilters, {"status": "done"}).statuses == {TaskStatus.DONE}
        multi = parse_input(TaskFilters, {"status": ["pending", "in_progress"]})
        assert multi.statuses == {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}
        assert parse_input(TaskFilters, {}).statuses is None

    def test_include_done_alias(self) -> None:
        assert parse_input(TaskFilters, {"includeDone": False}).include_done is False
        assert parse_input(TaskFilters, {}).include_done is True


class TestArtifactInputs:
    def test_create_defaults(self) -> None:
        data = parse_input(CreateArtifactInput, {"content": "# Notes"})
        assert data.status is None
        assert data.retries is None
        assert data.error is None

    def test_create_accepts_hyphenated_status(self) -> None:
        data = parse_input(CreateArtifactInput, {"content": "", "status": "in-progress"})
        assert data.status == ArtifactStatus.IN_PROGRESS

    @pytest.mark.parametrize(
        "payload",
        [
            {"content": "x", "retries": -1},
            {"content": "x", "retries": 101},
            {"content": "x", "error": "e" * 5001},
            {"content": "x", "status": "done"},
        ],
    )
    def test_create_rejects_invalid(self, payload: dict) -> None:
        with pytest.raises(ValidationError):
            parse_input(CreateArtifactInput, payload)

    def test_content_size_limit_counts_bytes(self) -> None:
        # 3.5M four-byte characters is 14MB once encoded
        with pytest.raises(ValidationError, match="maximum size"):
            parse_input(CreateArtifactInput, {"content": "\U0001F600" * 3_500_000})

    def test_update_tracks_provided_fields(self) -> None:
        data = parse_input(UpdateArtifactInput, {"error": None})
        assert data.model_fields_set == {"error"}
