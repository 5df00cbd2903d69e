"""Tests for file helpers."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest
from pydantic import BaseModel

from idaas_broker.utils.env import is_on
from idaas_broker.utils.file_helpers import (
    atomic_write_bytes,
    load_validated_json,
    write_file_preserve_permissions,
)


class _Sample(BaseModel):
    name: str
    port: int


class TestAtomicWriteBytes:
    def test_owner_only_and_no_temp_left(self, tmp_path: Path) -> None:
        """Given a new nested path, writes the file owner-only and cleans up the temp file."""
        target = tmp_path / "nested" / "record.bin"

        atomic_write_bytes(target, b"payload")

        assert target.read_bytes() == b"payload"
        assert stat.S_IMODE(target.stat().st_mode) == 0o600
        assert [p.name for p in target.parent.iterdir()] == ["record.bin"]

    def test_replaces_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "record.bin"
        target.write_bytes(b"old")

        atomic_write_bytes(target, b"new")

        assert target.read_bytes() == b"new"


class TestWriteFilePreservePermissions:
    def test_existing_mode_kept(self, tmp_path: Path) -> None:
        """Given an existing 0o640 file, the content changes and the mode does not."""
        target = tmp_path / "sts.json"
        target.write_text("a much longer original content")
        target.chmod(0o640)

        write_file_preserve_permissions(target, b"{}")

        assert target.read_bytes() == b"{}"
        assert stat.S_IMODE(target.stat().st_mode) == 0o640

    def test_new_file_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "sts.json"

        write_file_preserve_permissions(target, b"{}", mode=0o600)

        assert stat.S_IMODE(target.stat().st_mode) == 0o600


class TestLoadValidatedJson:
    def test_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "sample.json"
        path.write_text(json.dumps({"name": "broker", "port": 1127}))

        assert load_validated_json(path, _Sample) == _Sample(name="broker", port=1127)

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "sample.json"
        path.write_text("{not json")

        with pytest.raises(ValueError, match="Invalid JSON in config file"):
            load_validated_json(path, _Sample, file_type="config")

    def test_validation_errors_listed_with_hint(self, tmp_path: Path) -> None:
        path = tmp_path / "sample.json"
        path.write_text(json.dumps({"name": "broker", "port": "high"}))

        with pytest.raises(ValueError) as exc_info:
            load_validated_json(path, _Sample, recovery_hint="Fix the port.")

        assert "  - port:" in str(exc_info.value)
        assert str(exc_info.value).endswith("Fix the port.")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Could not read"):
            load_validated_json(tmp_path / "absent.json", _Sample)


class TestIsOn:
    @pytest.mark.parametrize(("value", "expected"), [("1", True), (" TRUE ", True), ("on", True), ("0", False), ("", False), (None, False)])
    def test_values(self, value: str | None, expected: bool) -> None:
        assert is_on(value) is expected
