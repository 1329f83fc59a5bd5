"""
@description 文件整理服务测试
@responsibility 验证移动、冲突策略、跨设备回退、撤销、批量操作和预览
"""

import errno
import os
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from jdex.core.errors import DatabaseError, FileSystemError
from jdex.schemas.operations import (
    BatchOperation,
    ConflictStrategy,
    OperationStatus,
    RecordStatus,
)
from jdex.services.file_organizer import FileOrganizer
from jdex.services.path_builder import DestinationPathBuilder


@pytest.fixture
def base(tmp_path):
    return tmp_path / "jd"


@pytest.fixture
def organizer(store, fs, base):
    builder = DestinationPathBuilder(store, fs, str(base))
    return FileOrganizer(store, fs, builder, batch_delay=0)


def paid_dir(base):
    return base / "10-19 Finance" / "12 Invoices" / "12.03 Paid"


class TestMoveFile:
    """单个文件移动"""

    @pytest.mark.asyncio
    async def test_move_and_rollback_round_trip(
        self, organizer, store, base, tmp_path, write_file, hierarchy
    ):
        source = write_file(tmp_path / "inbox" / "invoice.pdf", b"invoice")

        result = await organizer.move_file(source, "12.03", matched_rule_id=None)

        assert result.success
        move = result.data
        assert move.status == OperationStatus.SUCCESS
        assert move.destination_path == str(paid_dir(base) / "invoice.pdf")
        assert not os.path.exists(source)
        assert Path(move.destination_path).read_bytes() == b"invoice"

        record = await store.get_organized_file(move.record_id)
        assert record.status == RecordStatus.MOVED
        assert record.original_path == source
        assert record.jd_folder_number == "12.03"
        assert record.file_size == 7

        rollback = await organizer.rollback_move(move.record_id)
        assert rollback.success
        assert rollback.data.status == OperationStatus.ROLLED_BACK
        assert rollback.data.restored_path == source
        assert Path(source).read_bytes() == b"invoice"
        assert not os.path.exists(move.destination_path)
        assert (await store.get_organized_file(move.record_id)).status == RecordStatus.UNDONE

        # 同一记录不能撤销两次
        again = await organizer.rollback_move(move.record_id)
        assert not again.success
        assert again.error.operation == "rollback"

    @pytest.mark.asyncio
    async def test_rename_never_overwrites(self, organizer, base, tmp_path, write_file, hierarchy):
        write_file(paid_dir(base) / "invoice.pdf", b"existing")
        write_file(paid_dir(base) / "invoice_1.pdf", b"existing-1")
        source = write_file(tmp_path / "inbox" / "invoice.pdf", b"new")

        result = await organizer.move_file(source, "12.03", ConflictStrategy.RENAME)

        assert result.data.filename == "invoice_2.pdf"
        assert (paid_dir(base) / "invoice.pdf").read_bytes() == b"existing"
        assert (paid_dir(base) / "invoice_1.pdf").read_bytes() == b"existing-1"
        assert (paid_dir(base) / "invoice_2.pdf").read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_skip_leaves_source(self, organizer, store, base, tmp_path, write_file, hierarchy):
        write_file(paid_dir(base) / "invoice.pdf", b"existing")
        source = write_file(tmp_path / "inbox" / "invoice.pdf", b"new")

        result = await organizer.move_file(source, "12.03", ConflictStrategy.SKIP)

        assert result.success
        assert result.data.status == OperationStatus.SKIPPED
        assert result.data.record_id is None
        assert os.path.exists(source)
        total, _ = await store.get_organized_files()
        assert total == 0

    @pytest.mark.asyncio
    async def test_overwrite(self, organizer, base, tmp_path, write_file, hierarchy):
        write_file(paid_dir(base) / "invoice.pdf", b"existing")
        source = write_file(tmp_path / "inbox" / "invoice.pdf", b"new")

        result = await organizer.move_file(source, "12.03", ConflictStrategy.OVERWRITE)

        assert result.data.status == OperationStatus.SUCCESS
        assert (paid_dir(base) / "invoice.pdf").read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_unique_name_attempts_exhausted(self, store, fs, base, tmp_path, write_file, hierarchy):
        builder = DestinationPathBuilder(store, fs, str(base))
        organizer = FileOrganizer(store, fs, builder, batch_delay=0, max_rename_attempts=1)
        write_file(paid_dir(base) / "a.pdf")
        write_file(paid_dir(base) / "a_1.pdf")
        source = write_file(tmp_path / "inbox" / "a.pdf")

        result = await organizer.move_file(source, "12.03")

        assert not result.success
        assert result.error.operation == "move"
        assert os.path.exists(source)


class TestMoveFailures:
    """移动失败场景"""

    @pytest.mark.asyncio
    async def test_missing_source(self, organizer, tmp_path, hierarchy):
        result = await organizer.move_file(str(tmp_path / "nope.pdf"), "12.03")
        assert not result.success
        assert result.error.operation == "read"

    @pytest.mark.asyncio
    async def test_unknown_folder(self, organizer, tmp_path, write_file, hierarchy):
        source = write_file(tmp_path / "inbox" / "a.pdf")
        result = await organizer.move_file(source, "55.55")
        assert not result.success
        assert os.path.exists(source)

    @pytest.mark.asyncio
    async def test_filesystem_unavailable(self, store, base):
        builder = DestinationPathBuilder(store, None, str(base))
        organizer = FileOrganizer(store, None, builder)

        move = await organizer.move_file("/data/a.pdf", "12.03")
        rollback = await organizer.rollback_move(1)

        assert move.error.operation == "unavailable"
        assert rollback.error.operation == "unavailable"

    @pytest.mark.asyncio
    async def test_database_failure_moves_file_back(
        self, organizer, store, base, tmp_path, write_file, hierarchy, monkeypatch
    ):
        source = write_file(tmp_path / "inbox" / "invoice.pdf", b"data")
        monkeypatch.setattr(
            store,
            "record_organized_file",
            AsyncMock(side_effect=DatabaseError("disk I/O error", "insert")),
        )

        result = await organizer.move_file(source, "12.03")

        assert not result.success
        assert isinstance(result.error, DatabaseError)
        assert Path(source).read_bytes() == b"data"
        assert not (paid_dir(base) / "invoice.pdf").exists()

    @pytest.mark.asyncio
    async def test_rollback_database_failure_restores_file(
        self, organizer, store, base, tmp_path, write_file, hierarchy, monkeypatch
    ):
        """撤销状态写入失败时文件回到整理位置，记录保持 moved，之后可以重试"""
        source = write_file(tmp_path / "inbox" / "invoice.pdf", b"data")
        moved = await organizer.move_file(source, "12.03")
        record_id = moved.data.record_id
        destination = paid_dir(base) / "invoice.pdf"

        update = store.update_organized_file
        monkeypatch.setattr(
            store,
            "update_organized_file",
            AsyncMock(side_effect=DatabaseError("database is locked", "update")),
        )

        result = await organizer.rollback_move(record_id)

        assert not result.success
        assert isinstance(result.error, DatabaseError)
        assert destination.read_bytes() == b"data"
        assert not os.path.exists(source)
        assert (await store.get_organized_file(record_id)).status == RecordStatus.MOVED

        monkeypatch.setattr(store, "update_organized_file", update)
        retry = await organizer.rollback_move(record_id)

        assert retry.success
        assert Path(source).read_bytes() == b"data"
        assert (await store.get_organized_file(record_id)).status == RecordStatus.UNDONE


class TestCrossDevice:
    """跨设备移动回退"""

    @pytest.mark.asyncio
    async def test_copy_fallback(self, organizer, fs, base, tmp_path, write_file, hierarchy, monkeypatch):
        source = write_file(tmp_path / "inbox" / "big.pdf", b"payload" * 100)
        monkeypatch.setattr(
            fs, "rename", AsyncMock(side_effect=OSError(errno.EXDEV, "Invalid cross-device link"))
        )

        result = await organizer.move_file(source, "12.03")

        assert result.success
        assert not os.path.exists(source)
        assert (paid_dir(base) / "big.pdf").read_bytes() == b"payload" * 100

    @pytest.mark.asyncio
    async def test_verification_failure_keeps_source(
        self, organizer, fs, base, tmp_path, write_file, hierarchy, monkeypatch
    ):
        source = write_file(tmp_path / "inbox" / "big.pdf", b"payload")
        monkeypatch.setattr(
            fs, "rename", AsyncMock(side_effect=OSError(errno.EXDEV, "Invalid cross-device link"))
        )
        monkeypatch.setattr(fs, "file_digest", AsyncMock(side_effect=["aaa", "bbb"]))

        result = await organizer.move_file(source, "12.03")

        assert not result.success
        assert isinstance(result.error, FileSystemError)
        assert os.path.exists(source)
        assert not (paid_dir(base) / "big.pdf").exists()

    @pytest.mark.asyncio
    async def test_source_delete_failure_removes_copy(
        self, organizer, fs, store, base, tmp_path, write_file, hierarchy, monkeypatch
    ):
        """复制校验通过但源文件删不掉时，目标位置不留副本，也不写记录"""
        source = write_file(tmp_path / "inbox" / "big.pdf", b"payload")
        monkeypatch.setattr(
            fs, "rename", AsyncMock(side_effect=OSError(errno.EXDEV, "Invalid cross-device link"))
        )
        unlink = fs.unlink

        async def unlink_except_source(path):
            if path == source:
                raise PermissionError(errno.EACCES, "Permission denied")
            await unlink(path)

        monkeypatch.setattr(fs, "unlink", unlink_except_source)

        result = await organizer.move_file(source, "12.03")

        assert not result.success
        assert isinstance(result.error, FileSystemError)
        assert Path(source).read_bytes() == b"payload"
        assert not (paid_dir(base) / "big.pdf").exists()
        total, _ = await store.get_organized_files()
        assert total == 0

    @pytest.mark.asyncio
    async def test_partial_copy_removed(
        self, organizer, fs, base, tmp_path, write_file, hierarchy, monkeypatch
    ):
        source = write_file(tmp_path / "inbox" / "big.pdf", b"payload")
        monkeypatch.setattr(
            fs, "rename", AsyncMock(side_effect=OSError(errno.EXDEV, "Invalid cross-device link"))
        )

        async def copy_then_fail(src, dst):
            Path(dst).write_bytes(b"pay")
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(fs, "copy_file", copy_then_fail)

        result = await organizer.move_file(source, "12.03")

        assert not result.success
        assert os.path.exists(source)
        assert not (paid_dir(base) / "big.pdf").exists()

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, organizer, fs, tmp_path, write_file, hierarchy, monkeypatch):
        source = write_file(tmp_path / "inbox" / "a.pdf")
        monkeypatch.setattr(
            fs, "rename", AsyncMock(side_effect=OSError(errno.EACCES, "Permission denied"))
        )

        result = await organizer.move_file(source, "12.03")

        assert not result.success
        assert result.error.operation == "move"
        assert os.path.exists(source)


class TestRollbackFailures:
    """撤销失败场景"""

    @pytest.mark.asyncio
    async def test_unknown_record(self, organizer):
        result = await organizer.rollback_move(12345)
        assert not result.success

    @pytest.mark.asyncio
    async def test_original_location_occupied(self, organizer, tmp_path, write_file, hierarchy):
        source = write_file(tmp_path / "inbox" / "a.pdf", b"first")
        moved = await organizer.move_file(source, "12.03")
        write_file(tmp_path / "inbox" / "a.pdf", b"second")

        result = await organizer.rollback_move(moved.data.record_id)

        assert not result.success
        assert (tmp_path / "inbox" / "a.pdf").read_bytes() == b"second"

    @pytest.mark.asyncio
    async def test_file_gone_from_destination(self, organizer, tmp_path, write_file, hierarchy):
        source = write_file(tmp_path / "inbox" / "a.pdf")
        moved = await organizer.move_file(source, "12.03")
        os.unlink(moved.data.destination_path)

        result = await organizer.rollback_move(moved.data.record_id)
        assert not result.success


class TestBatch:
    """批量操作"""

    @pytest.mark.asyncio
    async def test_batch_with_skip(self, organizer, store, base, tmp_path, write_file, hierarchy):
        """3 个文件中 1 个冲突：成功 2，跳过 1，失败 0，只写入 2 条记录"""
        write_file(paid_dir(base) / "b.pdf", b"existing")
        operations = [
            BatchOperation(source_path=write_file(tmp_path / "inbox" / name), folder_number="12.03")
            for name in ("a.pdf", "b.pdf", "c.pdf")
        ]
        progress, completed = [], []

        results = await organizer.batch_move(
            operations,
            on_progress=progress.append,
            on_file_complete=completed.append,
            conflict_strategy=ConflictStrategy.SKIP,
        )

        assert (results.total, results.success, results.skipped, results.failed) == (3, 2, 1, 0)
        assert [op.status for op in results.operations] == [
            OperationStatus.SUCCESS,
            OperationStatus.SKIPPED,
            OperationStatus.SUCCESS,
        ]
        total, _ = await store.get_organized_files()
        assert total == 2
        assert [p.current for p in progress] == [1, 2, 3]
        assert progress[-1].percent == 100
        assert len(completed) == 3

    @pytest.mark.asyncio
    async def test_per_item_strategy_overrides(self, organizer, base, tmp_path, write_file, hierarchy):
        write_file(paid_dir(base) / "a.pdf", b"existing")
        operations = [
            BatchOperation(
                source_path=write_file(tmp_path / "inbox" / "a.pdf"),
                folder_number="12.03",
                conflict_strategy=ConflictStrategy.RENAME,
            )
        ]

        results = await organizer.batch_move(operations, conflict_strategy=ConflictStrategy.SKIP)
        assert results.success == 1
        assert results.operations[0].result.filename == "a_1.pdf"

    @pytest.mark.asyncio
    async def test_stop_on_error(self, organizer, tmp_path, write_file, hierarchy):
        operations = [
            BatchOperation(source_path=str(tmp_path / "missing.pdf"), folder_number="12.03"),
            BatchOperation(source_path=write_file(tmp_path / "inbox" / "b.pdf"), folder_number="12.03"),
        ]

        results = await organizer.batch_move(operations, stop_on_error=True)

        assert results.failed == 1
        assert len(results.operations) == 1
        assert results.operations[0].error

    @pytest.mark.asyncio
    async def test_batch_rollback(self, organizer, tmp_path, write_file, hierarchy):
        ids = []
        for name in ("a.pdf", "b.pdf"):
            moved = await organizer.move_file(write_file(tmp_path / "inbox" / name), "12.03")
            ids.append(moved.data.record_id)

        results = await organizer.batch_rollback(ids + [999])

        assert (results.total, results.success, results.failed) == (3, 2, 1)
        assert (tmp_path / "inbox" / "a.pdf").exists()
        assert (tmp_path / "inbox" / "b.pdf").exists()


class TestPreview:
    """预演"""

    @pytest.mark.asyncio
    async def test_preview_does_not_touch_disk(self, organizer, base, tmp_path, write_file, hierarchy):
        write_file(paid_dir(base) / "b.pdf")
        a = write_file(tmp_path / "inbox" / "a.pdf")
        b = write_file(tmp_path / "inbox" / "b.pdf")

        previews = await organizer.preview_operations(
            [
                BatchOperation(source_path=a, folder_number="12.03"),
                BatchOperation(source_path=b, folder_number="12.03"),
                BatchOperation(source_path=a, folder_number="77.77"),
            ]
        )

        assert previews[0].source_exists and not previews[0].would_conflict
        assert previews[0].destination_path == str(paid_dir(base) / "a.pdf")
        assert previews[1].would_conflict
        assert previews[2].error
        assert os.path.exists(a) and os.path.exists(b)
        assert not (paid_dir(base) / "a.pdf").exists()
