"""Filesystem primitives used by the task and artifact stores.

Reads return a :class:`ReadResult` instead of raising for the expected
"file is not there" case; writes always go through :func:`atomic_write_text`
so a crash never leaves a half-written record behind.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Optional, Pattern, TypeVar, Union

from .errors import StorageError

T = TypeVar("T")


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """Outcome of a read: present with a value, absent, or failed."""

    value: Optional[T] = None
    found: bool = False
    error: Optional[str] = None

    @classmethod
    def present(cls, value: T) -> "ReadResult[T]":
        return cls(value=value, found=True)

    @classmethod
    def absent(cls) -> "ReadResult[T]":
        return cls()

    @classmethod
    def failed(cls, error: str) -> "ReadResult[T]":
        return cls(found=True, error=error)

    @property
    def ok(self) -> bool:
        return self.found and self.error is None


def path_exists(path: Path) -> bool:
    return path.exists()


def is_accessible(path: Path) -> bool:
    """True if *path* is an existing directory we can read, write and enter."""
    return path.is_dir() and os.access(path, os.R_OK | os.W_OK | os.X_OK)


def ensure_directory(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError.directory_error(path, exc) from exc


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to a temp sibling of *path*, then rename it into place.

    Raises:
        StorageError: if any step fails. The temp file is removed first and
            the previously committed file is left untouched.
    """
    ensure_directory(path.parent)
    try:
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    except OSError as exc:
        raise StorageError.write_error(path, exc) from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException as exc:
        Path(tmp).unlink(missing_ok=True)
        if isinstance(exc, (OSError, UnicodeError)):
            raise StorageError.write_error(path, exc) from exc
        raise


def atomic_write_json(path: Path, data: dict[str, Any], indent: int = 2) -> None:
    atomic_write_text(path, json.dumps(data, indent=indent, ensure_ascii=False))


def read_text(path: Path) -> ReadResult[str]:
    try:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return ReadResult.present(handle.read())
    except (FileNotFoundError, NotADirectoryError):
        return ReadResult.absent()
    except (OSError, UnicodeDecodeError) as exc:
        return ReadResult.failed(f"{path.name}: {exc.__class__.__name__}: {exc}")


def read_json(path: Path) -> ReadResult[dict[str, Any]]:
    """Read a JSON object. Anything other than an object is a failure."""
    raw = read_text(path)
    if not raw.ok:
        return ReadResult(found=raw.found, error=raw.error)
    try:
        data = json.loads(raw.value or "")
    except json.JSONDecodeError as exc:
        return ReadResult.failed(f"{path.name}: JSONDecodeError: {exc}")
    if not isinstance(data, dict):
        return ReadResult.failed(f"{path.name}: expected object, got {type(data).__name__}")
    return ReadResult.present(data)


def list_directory(
    path: Path,
    *,
    directories_only: bool = False,
    files_only: bool = False,
    pattern: Union[str, Pattern[str], None] = None,
    sort: bool = True,
) -> list[str]:
    """List entry names under *path*, returning ``[]`` if it does not exist."""
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    try:
        entries = list(os.scandir(path))
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise StorageError.directory_error(path, exc) from exc

    names: list[str] = []
    for entry in entries:
        if directories_only and not entry.is_dir():
            continue
        if files_only and not entry.is_file():
            continue
        if regex is not None and not regex.search(entry.name):
            continue
        names.append(entry.name)
    if sort:
        names.sort()
    return names


def delete_file(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise StorageError.write_error(path, exc) from exc


def delete_directory(path: Path) -> bool:
    """Recursively delete *path*. Not atomic: a crash may leave part of it."""
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise StorageError.directory_error(path, exc) from exc
