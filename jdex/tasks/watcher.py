"""
@description 监控目录决策流水线
@responsibility 对文件事件防抖后逐个匹配规则，按置信度阈值自动整理或加入待确认队列，并通知订阅者
"""

import asyncio
import inspect
import os
from typing import Callable, Optional

from loguru import logger

from jdex.core.errors import AppError, FileSystemError, sanitize_error_for_user
from jdex.schemas.files import FileRecord
from jdex.schemas.matching import Confidence
from jdex.schemas.operations import ConflictStrategy, OperationStatus
from jdex.schemas.watch import (
    ProcessingResults,
    WatchAction,
    WatchEvent,
    WatchEventType,
    WatchOutcome,
)
from jdex.services.file_filter import (
    get_file_extension,
    get_file_type,
    matches_file_types,
    parse_file_types,
    should_skip_directory,
    should_skip_file,
)

WatchObserver = Callable[[WatchEvent], object]


def _is_ignored_name(name: str) -> bool:
    # 以 . 或 ~ 开头的多为隐藏文件和编辑器临时文件
    return name.startswith(".") or name.startswith("~")


class WatchPipeline:
    """监控决策流水线：notify() 接收原始事件，单个消费任务按顺序处理"""

    def __init__(
        self,
        store,
        engine,
        organizer,
        fs,
        debounce_seconds: float = 2.0,
        observers: Optional[list[WatchObserver]] = None,
    ):
        self._store = store
        self._engine = engine
        self._organizer = organizer
        self._fs = fs
        self._debounce_seconds = debounce_seconds
        self._observers: list[WatchObserver] = list(observers or [])

        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # 订阅
    # ------------------------------------------------------------------

    def subscribe(self, observer: WatchObserver) -> Callable[[], None]:
        """注册观察者，返回取消订阅函数"""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def _publish(self, event: WatchEvent) -> None:
        for observer in list(self._observers):
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"监控事件观察者出错: {e}")

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending_count(self) -> int:
        return len(self._pending) + self._queue.qsize()

    async def start(self) -> None:
        """启动消费任务"""
        if self.is_running:
            logger.warning("监控流水线已在运行中")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._consume_loop())
        logger.info("监控流水线已启动")

    async def stop(self) -> None:
        """停止消费任务并取消尚未触发的防抖计时"""
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

        if self._task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("等待监控流水线停止超时，强制取消")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("监控流水线已停止")

    async def _consume_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                folder_id, path = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue

            try:
                await self.process_file(folder_id, path)
            except Exception as e:
                logger.error(f"处理监控文件出错 {path}: {e}")
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # 事件入口
    # ------------------------------------------------------------------

    def notify(self, folder_id: int, path: str) -> None:
        """
        接收文件新增 / 修改事件

        同一路径在防抖时间内的重复事件只会处理一次。
        """
        if _is_ignored_name(os.path.basename(path)):
            return

        loop = asyncio.get_running_loop()
        if handle := self._pending.pop(path, None):
            handle.cancel()
        self._pending[path] = loop.call_later(
            self._debounce_seconds, self._enqueue, folder_id, path
        )

    def forget(self, path: str) -> None:
        """文件被删除时取消尚未触发的事件"""
        if handle := self._pending.pop(path, None):
            handle.cancel()

    def _enqueue(self, folder_id: int, path: str) -> None:
        self._pending.pop(path, None)
        self._queue.put_nowait((folder_id, path))

    async def drain(self) -> None:
        """等待队列中已有的文件处理完毕"""
        await self._queue.join()

    # ------------------------------------------------------------------
    # 决策
    # ------------------------------------------------------------------

    async def process_file(self, folder_id: int, path: str) -> WatchOutcome:
        """
        处理单个文件

        Returns:
            WatchOutcome，action 为 skipped / queued / auto_organized / error
        """
        filename = os.path.basename(path)
        if self._fs is None:
            return WatchOutcome(
                action=WatchAction.ERROR,
                path=path,
                error=sanitize_error_for_user(FileSystemError("文件系统不可用", "unavailable")),
            )

        folder = await self._store.get_watched_folder(folder_id)
        if folder is None or not folder.is_active:
            logger.debug(f"监控目录 {folder_id} 不存在或未启用，忽略 {path}")
            return WatchOutcome(action=WatchAction.SKIPPED, path=path)

        try:
            stat = await self._fs.stat(path)
        except OSError as e:
            logger.debug(f"文件已不可访问 {path}: {e}")
            return WatchOutcome(action=WatchAction.SKIPPED, path=path)
        if not stat.is_file:
            return WatchOutcome(action=WatchAction.SKIPPED, path=path)

        record = FileRecord(
            filename=filename,
            path=path,
            extension=get_file_extension(filename),
            file_type=get_file_type(filename),
            size_bytes=stat.size,
        )

        if not matches_file_types(record.file_type, parse_file_types(folder.file_types)):
            await self._log(folder_id, record, WatchAction.SKIPPED)
            return WatchOutcome(action=WatchAction.SKIPPED, path=path)

        await self._log(folder_id, record, WatchAction.DETECTED)

        try:
            suggestions = await self._engine.match_file(record)
        except AppError as e:
            return await self._fail(folder_id, record, e)

        best = suggestions[0] if suggestions else None
        threshold = Confidence(folder.confidence_threshold or Confidence.MEDIUM.value)

        if best is None or best.confidence.rank < threshold.rank or not folder.auto_organize:
            folder_number = best.target_folder.folder_number if best else None
            await self._log(folder_id, record, WatchAction.QUEUED, folder_number=folder_number)
            await self._store.increment_watched_folder_stats(folder_id, processed=1)
            await self._publish(
                WatchEvent(
                    type=WatchEventType.FILE_QUEUED,
                    folder_id=folder_id,
                    filename=filename,
                    path=path,
                    folder_number=folder_number,
                    confidence=best.confidence if best else None,
                )
            )
            return WatchOutcome(
                action=WatchAction.QUEUED, path=path, folder_number=folder_number
            )

        folder_number = best.target_folder.folder_number
        result = await self._organizer.move_file(
            path,
            folder_number,
            conflict_strategy=ConflictStrategy.RENAME,
            matched_rule_id=best.source_rule.id if best.source_rule else None,
        )
        if not result.success:
            return await self._fail(folder_id, record, result.error, folder_number)

        move = result.data
        if move.status != OperationStatus.SUCCESS:
            await self._log(folder_id, record, WatchAction.SKIPPED, folder_number=folder_number)
            return WatchOutcome(action=WatchAction.SKIPPED, path=path, folder_number=folder_number)

        if best.source_rule:
            await self._engine.record_match(best.source_rule.id)

        await self._log(
            folder_id,
            record,
            WatchAction.AUTO_ORGANIZED,
            folder_number=folder_number,
            moved_to_path=move.destination_path,
        )
        await self._store.increment_watched_folder_stats(folder_id, processed=1, organized=1)
        logger.info(f"监控目录自动整理: {path} -> {move.destination_path}")

        if folder.notify_on_organize:
            await self._publish(
                WatchEvent(
                    type=WatchEventType.FILE_ORGANIZED,
                    folder_id=folder_id,
                    filename=filename,
                    path=path,
                    folder_number=folder_number,
                    confidence=best.confidence,
                    destination_path=move.destination_path,
                )
            )
        return WatchOutcome(
            action=WatchAction.AUTO_ORGANIZED,
            path=path,
            folder_number=folder_number,
            destination_path=move.destination_path,
        )

    async def _fail(
        self,
        folder_id: int,
        record: FileRecord,
        error: AppError,
        folder_number: Optional[str] = None,
    ) -> WatchOutcome:
        message = sanitize_error_for_user(error)
        logger.error(f"监控文件处理失败 {record.path}: {getattr(error, 'message', error)}")
        await self._log(
            folder_id,
            record,
            WatchAction.ERROR,
            folder_number=folder_number,
            error_message=message,
        )
        await self._publish(
            WatchEvent(
                type=WatchEventType.FILE_ERROR,
                folder_id=folder_id,
                filename=record.filename,
                path=record.path,
                folder_number=folder_number,
                error=message,
            )
        )
        return WatchOutcome(
            action=WatchAction.ERROR, path=record.path, folder_number=folder_number, error=message
        )

    async def _log(
        self,
        folder_id: int,
        record: FileRecord,
        action: WatchAction,
        folder_number: Optional[str] = None,
        moved_to_path: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            await self._store.log_watch_activity(
                folder_id,
                record.filename,
                record.path,
                action.value,
                file_size=record.size_bytes,
                file_type=record.file_type.value,
                matched_folder_number=folder_number,
                moved_to_path=moved_to_path,
                error_message=error_message,
            )
        except AppError as e:
            logger.warning(f"写入监控日志失败: {e.message}")

    async def process_existing_files(self, folder_id: int) -> ProcessingResults:
        """处理监控目录中已存在的文件"""
        folder = await self._store.get_watched_folder(folder_id)
        results = ProcessingResults()
        if folder is None:
            logger.warning(f"监控目录 {folder_id} 不存在")
            return results

        for path in await self._list_files(folder.path, folder.include_subdirs):
            outcome = await self.process_file(folder_id, path)
            results.processed += 1
            if outcome.action == WatchAction.AUTO_ORGANIZED:
                results.organized += 1
            elif outcome.action == WatchAction.QUEUED:
                results.queued += 1
            elif outcome.action == WatchAction.SKIPPED:
                results.skipped += 1
            else:
                results.errors += 1

        logger.info(
            f"存量文件处理完成 [{folder.name}]: 处理 {results.processed}, "
            f"自动整理 {results.organized}, 待确认 {results.queued}"
        )
        return results

    async def _list_files(self, root: str, recursive: bool) -> list[str]:
        files: list[str] = []
        directories = [root]
        while directories:
            current = directories.pop(0)
            try:
                entries = await self._fs.readdir(current)
            except OSError as e:
                logger.warning(f"无法读取监控目录 {current}: {e}")
                continue
            for entry in sorted(entries, key=lambda item: item.name):
                if entry.is_symlink or _is_ignored_name(entry.name):
                    continue
                full_path = os.path.join(current, entry.name)
                if entry.is_file and not should_skip_file(entry.name):
                    files.append(full_path)
                elif entry.is_dir and recursive and not should_skip_directory(entry.name):
                    directories.append(full_path)
        return files
