"""Artifact model and the frontmatter codec for ``{phase}.md`` files.

Each task folder holds at most one artifact per workflow phase.  On disk an
artifact is a YAML header between two ``---`` lines, a blank line, then the
Markdown body verbatim::

    ---
    phase: explore
    status: completed
    createdAt: 2025-01-01T00:00:00+00:00
    updatedAt: 2025-01-01T00:00:00+00:00
    ---

    # Findings

The header has a fixed field set.  Decoding reads every scalar as a string
(no YAML type guessing), ignores unknown keys and rejects missing or invalid
required fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

import yaml

from ..constants import ARTIFACT_SUFFIX, FRONTMATTER_MARKER
from ..errors import ValidationError
from ..utils import _now_iso

if TYPE_CHECKING:
    from .inputs import UpdateArtifactInput


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ArtifactPhase(str, Enum):
    """Workflow phase an artifact documents, in workflow order."""

    EXPLORE = "explore"
    SEARCH = "search"
    PLAN = "plan"
    BUILD = "build"
    TEST = "test"

    @classmethod
    def coerce(cls, value: Any) -> "ArtifactPhase":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValidationError.invalid_choice("phase", value, [p.value for p in cls]) from None

    @property
    def filename(self) -> str:
        return f"{self.value}{ARTIFACT_SUFFIX}"

    @property
    def label(self) -> str:
        return PHASE_INFO[self]["label"]

    @property
    def order(self) -> int:
        return PHASE_INFO[self]["order"]

    @property
    def description(self) -> str:
        return PHASE_INFO[self]["description"]


class ArtifactStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def coerce(cls, value: Any) -> "ArtifactStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValidationError.invalid_choice("status", value, [s.value for s in cls]) from None


PHASE_INFO: dict[ArtifactPhase, dict[str, Any]] = {
    ArtifactPhase.EXPLORE: {"label": "Explore", "order": 1, "description": "Codebase analysis and discovery findings"},
    ArtifactPhase.SEARCH: {"label": "Search", "order": 2, "description": "External research and documentation findings"},
    ArtifactPhase.PLAN: {"label": "Plan", "order": 3, "description": "Implementation approach and step-by-step plan"},
    ArtifactPhase.BUILD: {"label": "Build", "order": 4, "description": "Implementation changes and modifications made"},
    ArtifactPhase.TEST: {"label": "Test", "order": 5, "description": "Test execution results and verification status"},
}

REQUIRED_PHASES: tuple[ArtifactPhase, ...] = (ArtifactPhase.EXPLORE, ArtifactPhase.PLAN, ArtifactPhase.BUILD)
OPTIONAL_PHASES: tuple[ArtifactPhase, ...] = (ArtifactPhase.SEARCH, ArtifactPhase.TEST)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ArtifactMetadata:
    phase: ArtifactPhase
    status: ArtifactStatus = ArtifactStatus.COMPLETED
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    retries: Optional[int] = None
    error: Optional[str] = None


@dataclass
class Artifact:
    metadata: ArtifactMetadata
    content: str = ""

    @property
    def phase(self) -> ArtifactPhase:
        return self.metadata.phase

    @property
    def status(self) -> ArtifactStatus:
        return self.metadata.status

    def to_markdown(self) -> str:
        return encode_artifact(self)

    @classmethod
    def from_markdown(cls, text: str) -> "Artifact":
        return decode_artifact(text)


# ---------------------------------------------------------------------------
# Frontmatter codec
# ---------------------------------------------------------------------------

class FrontmatterError(ValueError):
    pass


_PLAIN_SCALAR_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:+\-]*$")
_YAML_PRINTABLE_RE = re.compile("[\x09\x0A\x0D\x20-\x7E\xA0-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")
_SIMPLE_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _quote(text: str) -> str:
    """Render *text* as a YAML double-quoted scalar that fits on one line."""
    out = ['"']
    for ch in text:
        if ch in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[ch])
        elif ch != "\uFEFF" and _YAML_PRINTABLE_RE.match(ch):
            out.append(ch)
        else:
            code = ord(ch)
            if code <= 0xFF:
                out.append(f"\\x{code:02X}")
            elif code <= 0xFFFF:
                out.append(f"\\u{code:04X}")
            else:
                out.append(f"\\U{code:08X}")
    out.append('"')
    return "".join(out)


def _scalar(value: Any) -> str:
    text = str(value)
    if _PLAIN_SCALAR_RE.match(text):
        return text
    return _quote(text)


def encode_header(metadata: ArtifactMetadata) -> str:
    """Encode the fixed header field set, one ``key: value`` line each."""
    lines = [
        f"phase: {metadata.phase.value}",
        f"status: {metadata.status.value}",
        f"createdAt: {_scalar(metadata.created_at)}",
        f"updatedAt: {_scalar(metadata.updated_at)}",
    ]
    if metadata.retries is not None:
        lines.append(f"retries: {int(metadata.retries)}")
    if metadata.error is not None:
        lines.append(f"error: {_quote(metadata.error)}")
    return "\n".join(lines) + "\n"


def decode_header(header: str) -> ArtifactMetadata:
    """Decode a header block into metadata.

    Raises:
        FrontmatterError: on malformed YAML, missing required keys or
            invalid values.
    """
    try:
        data = yaml.load(header, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"Invalid YAML frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise FrontmatterError("Frontmatter must be a mapping")

    for key in ("phase", "status", "createdAt", "updatedAt"):
        if not isinstance(data.get(key), str) or not data[key]:
            raise FrontmatterError(f"Frontmatter missing required field: {key}")

    try:
        phase = ArtifactPhase.coerce(data["phase"])
        status = ArtifactStatus.coerce(data["status"])
    except ValidationError as exc:
        raise FrontmatterError(exc.message) from exc

    retries: Optional[int] = None
    raw_retries = data.get("retries")
    if raw_retries is not None:
        if not isinstance(raw_retries, str) or not (raw_retries.isascii() and raw_retries.isdigit()):
            raise FrontmatterError(f"Invalid retries value: {raw_retries!r}")
        retries = int(raw_retries)

    error = data.get("error")
    if error is not None and not isinstance(error, str):
        raise FrontmatterError("Invalid error value")

    return ArtifactMetadata(
        phase=phase,
        status=status,
        created_at=data["createdAt"],
        updated_at=data["updatedAt"],
        retries=retries,
        error=error,
    )


def encode_artifact(artifact: Artifact) -> str:
    return f"{FRONTMATTER_MARKER}\n{encode_header(artifact.metadata)}{FRONTMATTER_MARKER}\n\n{artifact.content}"


def decode_artifact(text: str) -> Artifact:
    """Parse a ``{phase}.md`` file.

    Raises:
        FrontmatterError: if the header block is missing or invalid.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != FRONTMATTER_MARKER:
        raise FrontmatterError("Artifact file must start with frontmatter (---)")

    for idx in range(1, len(lines)):
        if lines[idx].rstrip("\r\n") == FRONTMATTER_MARKER:
            break
    else:
        raise FrontmatterError("Unterminated frontmatter block")

    metadata = decode_header("".join(lines[1:idx]))
    rest = "".join(lines[idx + 1:])
    if rest.startswith("\r\n"):
        rest = rest[2:]
    elif rest.startswith("\n"):
        rest = rest[1:]
    return Artifact(metadata=metadata, content=rest)


# ---------------------------------------------------------------------------
# Partial updates
# ---------------------------------------------------------------------------

def merge_artifact_update(artifact: Artifact, update: "UpdateArtifactInput") -> Artifact:
    """Return a copy of *artifact* with the fields *update* explicitly set.

    ``content`` and ``status`` are replaced only by non-None values;
    ``retries`` and ``error`` are replaced whenever provided, so an explicit
    ``None`` clears them.  ``phase`` and ``created_at`` never change and
    ``updated_at`` is always refreshed.
    """
    provided = update.model_fields_set
    metadata = replace(artifact.metadata)
    content = artifact.content

    if "content" in provided and update.content is not None:
        content = update.content
    if "status" in provided and update.status is not None:
        metadata.status = ArtifactStatus.coerce(update.status)
    if "retries" in provided:
        metadata.retries = update.retries
    if "error" in provided:
        metadata.error = update.error

    metadata.updated_at = _now_iso()
    return Artifact(metadata=metadata, content=content)


# ---------------------------------------------------------------------------
# Workflow progress
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkflowProgress:
    completed: int
    total: int
    percentage: float
    next_phase: Optional[ArtifactPhase] = None


def workflow_progress(artifacts: Mapping[ArtifactPhase, Artifact]) -> WorkflowProgress:
    """Count completed phases and find the first one still open.

    Skipped phases are neither counted nor offered as the next phase.
    """
    completed = 0
    next_phase: Optional[ArtifactPhase] = None
    for phase in ArtifactPhase:
        artifact = artifacts.get(phase)
        status = artifact.status if artifact else None
        if status == ArtifactStatus.COMPLETED:
            completed += 1
        elif next_phase is None and status != ArtifactStatus.SKIPPED:
            next_phase = phase
    total = len(ArtifactPhase)
    return WorkflowProgress(
        completed=completed,
        total=total,
        percentage=completed / total * 100,
        next_phase=next_phase,
    )


def missing_required_phases(artifacts: Mapping[ArtifactPhase, Artifact]) -> list[ArtifactPhase]:
    return [
        phase
        for phase in REQUIRED_PHASES
        if phase not in artifacts or artifacts[phase].status != ArtifactStatus.COMPLETED
    ]


def is_workflow_complete(artifacts: Mapping[ArtifactPhase, Artifact]) -> bool:
    return not missing_required_phases(artifacts)
