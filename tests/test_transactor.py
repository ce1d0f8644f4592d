"""Tests for backup-then-replace file transactions."""

from pathlib import Path
from unittest.mock import patch

import pytest

from hotswap.transactor import CommitStage, FileTransactor, durable_copy


@pytest.fixture
def transactor() -> FileTransactor:
    return FileTransactor()


def stage_new(target, data: bytes) -> None:
    target.new_path.parent.mkdir(parents=True, exist_ok=True)
    target.new_path.write_bytes(data)


class TestCommit:
    """Tests for FileTransactor.commit()."""

    async def test_replaces_and_backs_up(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")
        stage_new(target, b"new")

        await transactor.commit(target)

        assert target.current_path.read_bytes() == b"new"
        assert target.backup_path.read_bytes() == b"old"
        assert not target.new_path.exists()
        assert transactor.stage(target) == CommitStage.COMMITTED

    async def test_new_file_without_original(self, transactor, make_target) -> None:
        target = make_target("fresh.dll")
        stage_new(target, b"new")

        await transactor.commit(target)

        assert target.current_path.read_bytes() == b"new"
        assert not target.backup_path.exists()

    async def test_stale_backup_is_replaced(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")
        target.backup_path.parent.mkdir(parents=True)
        target.backup_path.write_bytes(b"ancient")
        stage_new(target, b"new")

        await transactor.commit(target)

        assert target.backup_path.read_bytes() == b"old"

    async def test_stale_backup_removed_when_no_original(self, transactor, make_target) -> None:
        target = make_target("fresh.dll")
        target.backup_path.parent.mkdir(parents=True)
        target.backup_path.write_bytes(b"ancient")
        stage_new(target, b"new")

        await transactor.commit(target)
        await transactor.rollback(target)

        assert not target.current_path.exists()
        assert not target.backup_path.exists()

    async def test_creates_missing_directories(self, transactor, make_target, tmp_path: Path) -> None:
        target = make_target("nested.dll")
        target = target.model_copy(update={"current_path": tmp_path / "deep" / "dir" / "nested.dll"})
        stage_new(target, b"new")

        await transactor.commit(target)

        assert target.current_path.read_bytes() == b"new"

    async def test_missing_staged_file_propagates(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")

        with pytest.raises(FileNotFoundError):
            await transactor.commit(target)

        # The original was backed up before the copy failed
        assert transactor.stage(target) == CommitStage.BACKED_UP
        assert target.backup_path.read_bytes() == b"old"


class TestRollback:
    """Tests for FileTransactor.rollback()."""

    async def test_restores_backup(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")
        stage_new(target, b"new")
        await transactor.commit(target)

        await transactor.rollback(target)

        assert target.current_path.read_bytes() == b"old"
        assert not target.backup_path.exists()
        assert transactor.stage(target) is None

    async def test_removes_file_that_did_not_exist(self, transactor, make_target) -> None:
        target = make_target("fresh.dll")
        stage_new(target, b"new")
        await transactor.commit(target)

        await transactor.rollback(target)

        assert not target.current_path.exists()

    async def test_removes_stray_staged_file(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")
        stage_new(target, b"leftover")

        await transactor.rollback(target)

        assert not target.new_path.exists()


class TestRecover:
    """Tests for FileTransactor.recover() after a failed commit."""

    async def test_restores_original_after_partial_commit(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")

        with pytest.raises(FileNotFoundError):
            await transactor.commit(target)
        assert not target.current_path.exists()

        await transactor.recover(target)

        assert target.current_path.read_bytes() == b"old"
        assert not target.backup_path.exists()

    async def test_failure_during_backup_leaves_original(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")
        stage_new(target, b"new")

        with patch("hotswap.transactor.durable_copy", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                await transactor.commit(target)

        assert transactor.stage(target) == CommitStage.STARTED
        await transactor.recover(target)

        assert target.current_path.read_bytes() == b"old"
        assert not target.new_path.exists()
        assert transactor.stage(target) is None

    async def test_unknown_target_is_noop(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")

        await transactor.recover(target)

        assert target.current_path.read_bytes() == b"old"


class TestDiscard:
    """Tests for post-run cleanup."""

    async def test_discard_backup(self, transactor, make_target) -> None:
        target = make_target("app.dll", current=b"old")
        stage_new(target, b"new")
        await transactor.commit(target)

        await transactor.discard_backup(target)

        assert not target.backup_path.exists()
        assert target.current_path.read_bytes() == b"new"

    async def test_discard_missing_files_is_noop(self, transactor, make_target) -> None:
        target = make_target("app.dll")

        await transactor.discard_backup(target)
        await transactor.discard_staged(target)


def test_durable_copy_preserves_content(tmp_path: Path) -> None:
    source = tmp_path / "a.bin"
    source.write_bytes(b"\x00\x01payload")
    destination = tmp_path / "b.bin"

    durable_copy(source, destination)

    assert destination.read_bytes() == b"\x00\x01payload"
    assert source.exists()
