"""Guard against path traversal when joining ids onto the storage root."""

from __future__ import annotations

from pathlib import Path, PurePath
from typing import Union

from .errors import ValidationError


def contains_path_traversal(path: Union[str, PurePath]) -> bool:
    text = str(path)
    if "\0" in text:
        return True
    return any(part == ".." for part in PurePath(text).parts)


def resolve_secure_path(base_dir: Path, target: Union[str, PurePath]) -> Path:
    """Resolve *target* under *base_dir*, refusing anything that escapes it.

    Raises:
        ValidationError: if *target* contains traversal sequences or resolves
            outside *base_dir*.
    """
    if contains_path_traversal(target):
        raise ValidationError(f"Path traversal detected: {target}", field="path", value=str(target))
    base = base_dir.resolve()
    resolved = (base / target).resolve()
    if resolved != base and base not in resolved.parents:
        raise ValidationError(f"Path escapes base directory: {target}", field="path", value=str(target))
    return resolved


def validate_working_directory(working_directory: Union[str, Path]) -> Path:
    """Return the working directory as an absolute, normalized path.

    Raises:
        ValidationError: if the path is empty, relative or contains ``..``.
    """
    text = str(working_directory).strip() if working_directory is not None else ""
    if not text:
        raise ValidationError("Working directory is required", field="working_directory", value=text)
    if contains_path_traversal(text):
        raise ValidationError(
            "Working directory cannot contain path traversal sequences (..)",
            field="working_directory",
            value=text,
        )
    path = Path(text).expanduser()
    if not path.is_absolute():
        raise ValidationError(
            f"Working directory must be an absolute path: {text}",
            field="working_directory",
            value=text,
        )
    return path
