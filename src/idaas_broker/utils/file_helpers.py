"""Shared file utilities for idaas-broker.

Provides common utilities used by config, the cache store and the CLI:
- set_secure_permissions: Owner-only file/directory permissions
- atomic_write_bytes: Write-temp-then-rename for crash-safe writes
- write_file_preserve_permissions: Overwrite without touching an existing mode
- load_validated_json: JSON file + Pydantic validation with readable errors
"""

from __future__ import annotations

__all__ = [
    "atomic_write_bytes",
    "load_validated_json",
    "set_secure_permissions",
    "write_file_preserve_permissions",
]

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Restrict `path` to its owner: 0o700 for directories, 0o600 for files.

    A no-op on Windows. Filesystems that refuse chmod are tolerated.
    """
    if sys.platform == "win32":
        return
    try:
        path.chmod(0o700 if is_directory else 0o600)
    except OSError:
        pass


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Atomically replace `path` with `data`.

    Writes to a temporary file in the same directory, fsyncs it, then
    renames it over the target. Readers see either the old content or the
    new content, never a partial write. The result is owner-only (0o600).

    Args:
        path: Destination file.
        data: Bytes to write.

    Raises:
        OSError: If the directory cannot be created or the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(path.parent, is_directory=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        set_secure_permissions(tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_file_preserve_permissions(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write `data` to `path`, keeping the mode of an existing file.

    New files are created with `mode`.
    """
    if path.exists():
        with open(path, "r+b") as f:
            f.truncate(0)
            f.write(data)
        return
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def load_validated_json(
    file_path: Path,
    model_class: type[ModelT],
    file_type: str = "file",
    recovery_hint: str | None = None,
) -> ModelT:
    """Read `file_path` as JSON and validate it into `model_class`.

    Every failure surfaces as a ValueError whose message names the file;
    validation errors are listed one per line as "  - dotted.path: reason",
    followed by `recovery_hint` when given.

    Raises:
        ValueError: If the file is unreadable, not JSON, or fails validation.
    """
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValueError(f"Could not read {file_type} file {file_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_type} file {file_path}: {e}") from e

    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        problems = [
            f"  - {'.'.join(str(part) for part in error['loc']) or '(root)'}: {error['msg']}" for error in e.errors()
        ]
        message = f"Invalid {file_type} file {file_path}:\n" + "\n".join(problems)
        if recovery_hint:
            message = f"{message}\n\n{recovery_hint}"
        raise ValueError(message) from e
