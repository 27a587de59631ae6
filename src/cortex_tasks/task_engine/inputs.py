"""Pydantic input models for task and artifact operations.

The tool layer validates raw requests against these models before calling the
store.  Field names are snake_case; the camelCase names used on disk and by
existing clients (``parentId``, ``actualHours``, ``includeDone``) are accepted
as aliases.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional, Type, TypeVar, Union

import pydantic
from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints

from ..constants import (
    ARTIFACT_CONTENT_MAX_BYTES,
    ARTIFACT_ERROR_MAX_LENGTH,
    MAX_ACTUAL_HOURS,
    MAX_RETRIES,
    MAX_TAGS,
    TAG_MAX_LENGTH,
    TAG_MIN_LENGTH,
    TASK_DETAILS_MAX_LENGTH,
    TASK_DETAILS_MIN_LENGTH,
)
from ..errors import INVALID_INPUT, ValidationError
from .artifact import ArtifactStatus
from .model import TaskStatus

M = TypeVar("M", bound=BaseModel)


def _check_details(value: str) -> str:
    value = value.strip()
    if len(value) < TASK_DETAILS_MIN_LENGTH:
        raise ValueError("Task details are required")
    if len(value) > TASK_DETAILS_MAX_LENGTH:
        raise ValueError(f"Task details must be {TASK_DETAILS_MAX_LENGTH} characters or less")
    return value


def _check_content(value: str) -> str:
    if len(value.encode("utf-8")) > ARTIFACT_CONTENT_MAX_BYTES:
        raise ValueError(f"Content exceeds maximum size of {ARTIFACT_CONTENT_MAX_BYTES} bytes (10MB)")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value.strip() if isinstance(value, str) else value


Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=TAG_MIN_LENGTH, max_length=TAG_MAX_LENGTH)]
TagList = Annotated[list[Tag], Field(max_length=MAX_TAGS)]
Hours = Annotated[float, Field(ge=0, le=MAX_ACTUAL_HOURS)]
Retries = Annotated[int, Field(ge=0, le=MAX_RETRIES)]
ErrorText = Annotated[str, Field(max_length=ARTIFACT_ERROR_MAX_LENGTH)]
Details = Annotated[str, AfterValidator(_check_details)]
Content = Annotated[str, AfterValidator(_check_content)]
TaskRef = Annotated[Optional[str], BeforeValidator(_blank_to_none)]


class _InputModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class CreateTaskInput(_InputModel):
    details: Details
    parent_id: TaskRef = Field(default=None, alias="parentId")
    status: TaskStatus = TaskStatus.PENDING
    tags: TagList = Field(default_factory=list)
    actual_hours: Optional[Hours] = Field(default=None, alias="actualHours")


class UpdateTaskInput(_InputModel):
    """Partial task update. Only fields explicitly passed are applied."""

    details: Optional[Details] = None
    status: Optional[TaskStatus] = None
    tags: Optional[TagList] = None
    actual_hours: Optional[Hours] = Field(default=None, alias="actualHours")
    parent_id: TaskRef = Field(default=None, alias="parentId")


class TaskFilters(_InputModel):
    status: Optional[Union[TaskStatus, list[TaskStatus]]] = None
    tags: Optional[list[str]] = None
    include_done: bool = Field(default=True, alias="includeDone")
    parent_id: Optional[str] = Field(default=None, alias="parentId")

    @property
    def statuses(self) -> Optional[set[TaskStatus]]:
        if self.status is None:
            return None
        if isinstance(self.status, list):
            return set(self.status)
        return {self.status}


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------

class CreateArtifactInput(_InputModel):
    content: Content
    status: Optional[ArtifactStatus] = None
    retries: Optional[Retries] = None
    error: Optional[ErrorText] = None


class UpdateArtifactInput(_InputModel):
    """Partial artifact update. Only fields explicitly passed are applied."""

    content: Optional[Content] = None
    status: Optional[ArtifactStatus] = None
    retries: Optional[Retries] = None
    error: Optional[ErrorText] = None


def parse_input(model: Type[M], data: Union[M, dict[str, Any]]) -> M:
    """Validate *data* into *model*, raising our own ``ValidationError``."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field_name = ".".join(str(p) for p in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input")
        raise ValidationError(
            f"{field_name}: {message}" if field_name else message,
            field=field_name,
            value=first.get("input"),
            code=INVALID_INPUT,
        ) from exc
