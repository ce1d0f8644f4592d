"""Core domain models for hotswap.

A run is described by a Manifest:
- Manifest: ordered list of file targets, processed in insertion order
- FileTarget: one file's source, destination, backup and verification data
- UpdateOutcome: what one run has touched so far (the rollback scope)
- RunResult: terminal state of a run handed back to the host
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hotswap.domain.enums import SUPPORTED_SCHEMES, RunState

_HEX_DIGEST = re.compile(r"^[0-9a-fA-F]+$")


def _normalise(path: Path) -> str:
    """Comparable form of a path (absolute, case-folded where the OS is)."""
    return os.path.normcase(os.path.abspath(path))


def _derive_name(data: dict[str, Any]) -> str | None:
    url = data.get("downloadUrl") or data.get("download_url")
    if isinstance(url, str) and url:
        segment = PurePosixPath(unquote(urlsplit(url).path)).name
        if segment:
            return segment
    current = data.get("currentPath") or data.get("current_path")
    if current:
        return Path(current).name or None
    return None


class FileTarget(BaseModel):
    """One entry of a manifest.

    Read-only to the engine: a run may decide a target is already up to date,
    but it never mutates it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    is_executable: bool = Field(default=False, alias="isExecutable")
    current_path: Path = Field(alias="currentPath")
    new_path: Path = Field(alias="newPath")
    backup_path: Path = Field(alias="backupPath")
    download_url: str = Field(alias="downloadUrl")
    expected_hash: str = Field(alias="expectedHash")

    @model_validator(mode="before")
    @classmethod
    def fill_name(cls, data: Any) -> Any:
        """Derive the display name from the source when it is not set."""
        if isinstance(data, dict):
            name = data.get("name")
            if not isinstance(name, str) or not name.strip():
                derived = _derive_name(data)
                if derived:
                    data = {**data, "name": derived}
        return data

    @field_validator("download_url")
    @classmethod
    def supported_scheme(cls, v: str) -> str:
        scheme = urlsplit(v).scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported download scheme '{scheme or '<none>'}' in {v}")
        if not urlsplit(v).hostname:
            raise ValueError(f"Download URL has no host: {v}")
        return v

    @field_validator("expected_hash")
    @classmethod
    def hex_digest(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Expected hash must not be empty")
        if not _HEX_DIGEST.match(v):
            raise ValueError("Expected hash must be a hex string")
        return v

    @model_validator(mode="after")
    def distinct_paths(self) -> "FileTarget":
        paths = {_normalise(self.current_path), _normalise(self.new_path), _normalise(self.backup_path)}
        if len(paths) != 3:
            raise ValueError(f"currentPath, newPath and backupPath must be distinct for {self.name}")
        return self

    @property
    def scheme(self) -> str:
        return urlsplit(self.download_url).scheme.lower()


class Manifest(BaseModel):
    """Ordered set of file targets for one run.

    An empty manifest is valid and completes immediately.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    files: list[FileTarget] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.files

    @property
    def executables(self) -> list[FileTarget]:
        """Executable targets, in manifest order."""
        return [target for target in self.files if target.is_executable]


@dataclass
class UpdateOutcome:
    """Bookkeeping for one run of the orchestrator.

    ``committed`` is the rollback scope: a target is appended only after its
    backup and replace have both completed.
    """

    committed: list[FileTarget] = field(default_factory=list)
    downloaded: list[FileTarget] = field(default_factory=list)
    skipped: list[FileTarget] = field(default_factory=list)
    stopped: list[FileTarget] = field(default_factory=list)

    def record_commit(self, target: FileTarget) -> None:
        self.committed.append(target)

    @property
    def touched_filesystem(self) -> bool:
        return bool(self.committed or self.downloaded)


@dataclass
class RunResult:
    """Terminal state of an update run."""

    state: RunState
    outcome: UpdateOutcome
    error: BaseException | None = None
    rolled_back: list[FileTarget] = field(default_factory=list)
    rollback_failures: list[tuple[FileTarget, BaseException]] = field(default_factory=list)
    restart_failures: list[tuple[FileTarget, BaseException]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.DONE

    @property
    def cancelled(self) -> bool:
        return self.state == RunState.CANCELLED
