"""
@description 监控目录决策流水线测试
@responsibility 验证自动整理、待确认队列、文件类型过滤、防抖、观察者通知和存量文件处理
"""

import asyncio
import os
from unittest.mock import AsyncMock

import pytest

from jdex.core.errors import FileSystemError, Result
from jdex.schemas.matching import Confidence, RuleCreate
from jdex.schemas.watch import WatchAction, WatchEventType
from jdex.services.file_organizer import FileOrganizer
from jdex.services.matching_engine import MatchingEngine
from jdex.services.path_builder import DestinationPathBuilder
from jdex.tasks.watcher import WatchPipeline


@pytest.fixture
def engine(store):
    return MatchingEngine(store, cache_ttl=0)


@pytest.fixture
def organizer(store, fs, tmp_path):
    builder = DestinationPathBuilder(store, fs, str(tmp_path / "jd"))
    return FileOrganizer(store, fs, builder, batch_delay=0)


@pytest.fixture
def events():
    return []


@pytest.fixture
def pipeline(store, engine, organizer, fs, events):
    return WatchPipeline(
        store, engine, organizer, fs, debounce_seconds=0.01, observers=[events.append]
    )


@pytest.fixture
def watch_dir(tmp_path):
    path = tmp_path / "watch"
    path.mkdir()
    return path


async def _pdf_rule(engine, **extra):
    return await engine.create_rule(
        RuleCreate(
            name="PDF",
            rule_type="extension",
            pattern="pdf",
            target_type="folder",
            target_id="12.03",
            **extra,
        )
    )


class TestProcessFile:
    """单个文件的处理决策"""

    @pytest.mark.asyncio
    async def test_auto_organize(self, pipeline, store, engine, watch_dir, write_file, events, hierarchy):
        rule_id = await _pdf_rule(engine)
        folder_id = await store.create_watched_folder("Inbox", str(watch_dir), auto_organize=True)
        path = write_file(watch_dir / "invoice.pdf")

        outcome = await pipeline.process_file(folder_id, path)

        assert outcome.action == WatchAction.AUTO_ORGANIZED
        assert outcome.folder_number == "12.03"
        assert not os.path.exists(path)
        assert os.path.exists(outcome.destination_path)

        # 自动整理计入规则命中次数
        assert (await store.get_rule(rule_id)).match_count == 1

        folder = await store.get_watched_folder(folder_id)
        assert (folder.files_processed, folder.files_organized) == (1, 1)
        actions = [a.action for a in await store.get_watch_activity(folder_id)]
        assert actions == ["auto_organized", "detected"]

        assert [e.type for e in events] == [WatchEventType.FILE_ORGANIZED]
        assert events[0].destination_path == outcome.destination_path

    @pytest.mark.asyncio
    async def test_below_threshold_is_queued(self, pipeline, store, engine, watch_dir, write_file, events, hierarchy):
        await engine.create_rule(
            RuleCreate(
                name="invoice regex",
                rule_type="regex",
                pattern="invoice",
                target_type="folder",
                target_id="12.03",
            )
        )
        folder_id = await store.create_watched_folder(
            "Inbox", str(watch_dir), auto_organize=True, confidence_threshold=Confidence.MEDIUM
        )
        path = write_file(watch_dir / "invoice.bin")

        outcome = await pipeline.process_file(folder_id, path)

        assert outcome.action == WatchAction.QUEUED
        assert outcome.folder_number == "12.03"
        assert os.path.exists(path)
        assert events[0].type == WatchEventType.FILE_QUEUED
        assert events[0].confidence == Confidence.LOW
        folder = await store.get_watched_folder(folder_id)
        assert (folder.files_processed, folder.files_organized) == (1, 0)

    @pytest.mark.asyncio
    async def test_auto_organize_disabled(self, pipeline, store, engine, watch_dir, write_file, hierarchy):
        await _pdf_rule(engine)
        folder_id = await store.create_watched_folder("Inbox", str(watch_dir))
        path = write_file(watch_dir / "invoice.pdf")

        outcome = await pipeline.process_file(folder_id, path)

        assert outcome.action == WatchAction.QUEUED
        assert os.path.exists(path)

    @pytest.mark.asyncio
    async def test_no_suggestion_is_queued(self, pipeline, store, watch_dir, write_file, hierarchy):
        folder_id = await store.create_watched_folder("Inbox", str(watch_dir), auto_organize=True)
        outcome = await pipeline.process_file(folder_id, write_file(watch_dir / "zz.qqq"))
        assert outcome.action == WatchAction.QUEUED
        assert outcome.folder_number is None

    @pytest.mark.asyncio
    async def test_file_type_filter(self, pipeline, store, engine, watch_dir, write_file, events, hierarchy):
        await _pdf_rule(engine)
        folder_id = await store.create_watched_folder(
            "Photos only", str(watch_dir), auto_organize=True, file_types=["image"]
        )
        path = write_file(watch_dir / "invoice.pdf")

        outcome = await pipeline.process_file(folder_id, path)

        assert outcome.action == WatchAction.SKIPPED
        assert os.path.exists(path)
        assert events == []
        assert [a.action for a in await store.get_watch_activity(folder_id)] == ["skipped"]

    @pytest.mark.asyncio
    async def test_unknown_folder_and_missing_file(self, pipeline, store, watch_dir, write_file):
        assert (await pipeline.process_file(999, write_file(watch_dir / "a.pdf"))).action == WatchAction.SKIPPED

        folder_id = await store.create_watched_folder("Inbox", str(watch_dir))
        outcome = await pipeline.process_file(folder_id, str(watch_dir / "gone.pdf"))
        assert outcome.action == WatchAction.SKIPPED

    @pytest.mark.asyncio
    async def test_move_failure_reports_error(
        self, pipeline, store, engine, organizer, watch_dir, write_file, events, hierarchy, monkeypatch
    ):
        await _pdf_rule(engine)
        folder_id = await store.create_watched_folder("Inbox", str(watch_dir), auto_organize=True)
        monkeypatch.setattr(
            organizer,
            "move_file",
            AsyncMock(return_value=Result.fail(FileSystemError("rename /home/x failed", "move"))),
        )

        outcome = await pipeline.process_file(folder_id, write_file(watch_dir / "invoice.pdf"))

        assert outcome.action == WatchAction.ERROR
        assert outcome.error == FileSystemError.USER_MESSAGES["move"]
        assert events[-1].type == WatchEventType.FILE_ERROR
        activity = await store.get_watch_activity(folder_id)
        assert activity[0].action == "error"
        assert "/home/x" not in activity[0].error_message

    @pytest.mark.asyncio
    async def test_filesystem_unavailable(self, store, engine, organizer, watch_dir):
        pipeline = WatchPipeline(store, engine, organizer, None)
        outcome = await pipeline.process_file(1, str(watch_dir / "a.pdf"))
        assert outcome.action == WatchAction.ERROR


class TestObservers:
    """观察者"""

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_pipeline(
        self, store, engine, organizer, fs, watch_dir, write_file, hierarchy
    ):
        received = []

        def broken(event):
            raise RuntimeError("observer bug")

        async def good(event):
            received.append(event)

        pipeline = WatchPipeline(store, engine, organizer, fs, observers=[broken])
        unsubscribe = pipeline.subscribe(good)
        folder_id = await store.create_watched_folder("Inbox", str(watch_dir))

        outcome = await pipeline.process_file(folder_id, write_file(watch_dir / "a.qqq"))
        assert outcome.action == WatchAction.QUEUED
        assert len(received) == 1

        unsubscribe()
        await pipeline.process_file(folder_id, write_file(watch_dir / "b.qqq"))
        assert len(received) == 1


class TestEventLoop:
    """防抖与消费任务"""

    @pytest.mark.asyncio
    async def test_debounce_processes_once(self, pipeline, store, watch_dir, write_file):
        folder_id = await store.create_watched_folder("Inbox", str(watch_dir))
        path = write_file(watch_dir / "a.qqq")

        await pipeline.start()
        assert pipeline.is_running
        try:
            pipeline.notify(folder_id, path)
            pipeline.notify(folder_id, path)
            assert pipeline.pending_count == 1

            await asyncio.sleep(0.1)
            await pipeline.drain()
        finally:
            await pipeline.stop()

        assert not pipeline.is_running
        actions = [a.action for a in await store.get_watch_activity(folder_id)]
        assert actions.count("detected") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", [".partial", "~$report.docx"])
    async def test_temporary_files_ignored(self, pipeline, watch_dir, name):
        pipeline.notify(1, str(watch_dir / name))
        assert pipeline.pending_count == 0

    @pytest.mark.asyncio
    async def test_forget_cancels_pending(self, pipeline, watch_dir):
        path = str(watch_dir / "a.pdf")
        pipeline.notify(1, path)
        pipeline.forget(path)
        assert pipeline.pending_count == 0


class TestExistingFiles:
    """存量文件处理"""

    @pytest.mark.asyncio
    async def test_process_existing_files(self, pipeline, store, engine, watch_dir, write_file, hierarchy):
        await _pdf_rule(engine)
        folder_id = await store.create_watched_folder(
            "Inbox", str(watch_dir), auto_organize=True, include_subdirs=True
        )
        write_file(watch_dir / "invoice.pdf")
        write_file(watch_dir / "sub" / "mystery.qqq")
        write_file(watch_dir / ".DS_Store")

        results = await pipeline.process_existing_files(folder_id)

        assert (results.processed, results.organized, results.queued) == (2, 1, 1)
        assert results.errors == 0


class TestWatchedFolders:
    """监控目录设置"""

    @pytest.mark.asyncio
    async def test_list_and_settings(self, store, tmp_path):
        first = await store.create_watched_folder(
            "Inbox", str(tmp_path / "a"), file_types=["document", "image"]
        )
        second = await store.create_watched_folder(
            "Desktop", str(tmp_path / "b"), confidence_threshold=Confidence.HIGH
        )

        folders = await store.get_watched_folders()

        assert [f.id for f in folders] == [first, second]
        assert folders[0].file_types == "document,image"
        assert folders[0].confidence_threshold == "medium"
        assert folders[1].confidence_threshold == "high"
        assert folders[1].is_active is True
