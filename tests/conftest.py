"""Pytest configuration and fixtures."""

import hashlib
from collections.abc import Callable
from pathlib import Path

import pytest

from hotswap.cancellation import CancellationToken
from hotswap.domain import FileTarget, LogLevel
from hotswap.transport.base import ProgressCallback, Transport, report_progress


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class RecordingReporter:
    """Collects everything the orchestrator reports."""

    def __init__(self) -> None:
        self.progress: list[tuple[int | None, str]] = []
        self.logs: list[tuple[str, LogLevel]] = []
        self.states: list = []

    async def on_progress(self, percent: int | None, label: str) -> None:
        self.progress.append((percent, label))

    async def on_log(self, message: str, level: LogLevel) -> None:
        self.logs.append((message, level))

    async def on_state(self, state) -> None:
        self.states.append(state)

    @property
    def percents(self) -> list[int]:
        return [p for p, _ in self.progress if p is not None]

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [m for m, lvl in self.logs if level is None or lvl == level]


class FakeTransport(Transport):
    """In-memory transport keyed by URL.

    ``before_fetch`` runs before each file transfer, which lets a test trip
    the token or raise at a precise point.
    """

    def __init__(self, payloads: dict[str, bytes] | None = None):
        self.payloads = dict(payloads or {})
        self.fetched: list[str] = []
        self.before_fetch: Callable[[str], None] | None = None
        self.closed = False

    async def fetch_to_file(
        self,
        url: str,
        destination: Path,
        token: CancellationToken,
        progress: ProgressCallback | None = None,
    ) -> int:
        if self.before_fetch is not None:
            self.before_fetch(url)
        token.raise_if_cancelled()
        self.fetched.append(url)
        data = self.payloads[url]
        destination.write_bytes(data)
        await report_progress(progress, len(data), len(data))
        return len(data)

    async def fetch_to_memory(self, url: str, token: CancellationToken) -> bytes:
        token.raise_if_cancelled()
        return self.payloads[url]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def make_target(tmp_path: Path) -> Callable[..., FileTarget]:
    """Build a FileTarget whose paths live under tmp_path.

    ``current`` writes existing content at current_path; ``payload`` sets the
    expected hash (defaults to the hash of ``b"new " + name``).
    """

    def _make(
        name: str,
        *,
        payload: bytes | None = None,
        current: bytes | None = None,
        executable: bool = False,
        expected_hash: str | None = None,
    ) -> FileTarget:
        payload = payload if payload is not None else b"new " + name.encode()
        app = tmp_path / "app"
        app.mkdir(exist_ok=True)
        current_path = app / name
        if current is not None:
            current_path.write_bytes(current)
        return FileTarget(
            name=name,
            is_executable=executable,
            current_path=current_path,
            new_path=tmp_path / "staging" / f"{name}.new",
            backup_path=tmp_path / "backup" / f"{name}.bak",
            download_url=f"https://updates.example.com/files/{name}",
            expected_hash=expected_hash or sha256(payload),
        )

    return _make
