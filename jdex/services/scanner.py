"""
@description 目录扫描服务
@responsibility 递归扫描目录、按扩展名分类文件、推送进度、保存扫描结果，支持取消和深度限制
"""

import inspect
import os
from typing import Callable, Iterable, Optional

from loguru import logger

from jdex.core.errors import AppError, FileSystemError, Result, ValidationError
from jdex.schemas.files import (
    FileRecord,
    QuickCount,
    ScanError,
    ScanProgress,
    ScanResult,
    ScanStats,
)
from jdex.services.file_filter import (
    get_file_extension,
    get_file_type,
    should_skip_directory,
    should_skip_file,
)
from jdex.utils.helpers import format_file_size, new_session_id
from jdex.utils.validation import validate_file_path

DEFAULT_MAX_DEPTH = 10
DEFAULT_PROGRESS_INTERVAL = 50


def _describe_os_error(error: OSError) -> str:
    """目录项错误的简短描述（不带路径）"""
    return error.strerror or type(error).__name__


class FileScanner:
    """目录扫描器，一个实例同一时间只执行一次扫描"""

    def __init__(
        self,
        store=None,
        fs=None,
        allowed_roots: Optional[Iterable[str]] = None,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        self._store = store
        self._fs = fs
        self._allowed_roots = list(allowed_roots or [])
        self._progress_interval = progress_interval

        self.session_id: Optional[str] = None
        self._scanning = False
        self._cancelled = False
        self._progress = ScanProgress()
        self._files: list[FileRecord] = []
        self._on_progress: Optional[Callable] = None
        self._on_file: Optional[Callable] = None
        self._persist = True
        self._max_depth = DEFAULT_MAX_DEPTH

    @property
    def is_running(self) -> bool:
        return self._scanning

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def get_progress(self) -> ScanProgress:
        """当前进度的快照"""
        return self._progress.model_copy(deep=True)

    def cancel(self) -> None:
        """请求取消扫描；正在进行的文件系统调用不会被中断"""
        if self._scanning:
            logger.info(f"扫描取消请求: {self.session_id}")
        self._cancelled = True

    def reset(self) -> None:
        self.session_id = None
        self._scanning = False
        self._cancelled = False
        self._progress = ScanProgress()
        self._files = []

    async def scan(
        self,
        root_path: str,
        on_progress: Optional[Callable] = None,
        on_file: Optional[Callable] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        persist: bool = True,
    ) -> Result[ScanResult]:
        """
        扫描目录

        Args:
            root_path: 根目录
            on_progress: 进度回调，参数为 ScanProgress 快照
            on_file: 单文件回调，参数为 FileRecord
            max_depth: 最大递归深度（根目录为 0）
            persist: 是否保存扫描结果

        Returns:
            Result[ScanResult]；被取消时仍然返回成功，files 为取消前已收集的部分
        """
        if self._fs is None:
            return Result.fail(FileSystemError("文件系统不可用", "unavailable"))
        if self._scanning:
            return Result.fail(ValidationError("已有扫描正在进行", "root_path"))

        try:
            root = validate_file_path(root_path, self._allowed_roots, "root_path")
        except ValidationError as e:
            logger.warning(f"扫描路径校验失败: {root_path}: {e.message}")
            return Result.fail(FileSystemError(f"扫描路径无效: {e.message}", "scan"))

        try:
            root_stat = await self._fs.stat(root)
        except OSError as e:
            logger.warning(f"扫描路径不可访问: {root}: {e}")
            return Result.fail(FileSystemError(f"扫描路径不可访问: {root}", "scan"))
        if not root_stat.is_dir:
            return Result.fail(FileSystemError(f"扫描路径不是目录: {root}", "scan"))

        self.reset()
        self.session_id = new_session_id()
        self._scanning = True
        self._on_progress = on_progress
        self._on_file = on_file
        self._persist = persist and self._store is not None
        self._max_depth = max_depth

        logger.info(f"开始扫描: {root} (session={self.session_id}, max_depth={max_depth})")

        try:
            if self._persist:
                await self._store.clear_scanned_files(self.session_id)

            await self._scan_directory(root, 0)
            await self._emit(self._on_progress, self.get_progress())
        except AppError as e:
            logger.error(f"扫描失败: {root}: {e.message}")
            return Result.fail(e)
        finally:
            self._scanning = False
            self._on_progress = None
            self._on_file = None

        progress = self._progress
        result = ScanResult(
            session_id=self.session_id,
            files=list(self._files),
            stats=ScanStats(
                total_files=progress.scanned_files,
                total_dirs=progress.scanned_dirs,
                total_size_bytes=progress.total_size_bytes,
                errors=list(progress.errors),
            ),
            cancelled=self._cancelled,
        )
        logger.info(
            f"扫描{'已取消' if self._cancelled else '完成'}: {progress.scanned_files} 个文件, "
            f"{progress.scanned_dirs} 个目录, 共 {format_file_size(progress.total_size_bytes)}, "
            f"{len(progress.errors)} 个错误"
        )
        return Result.ok(result)

    async def _scan_directory(self, dir_path: str, depth: int) -> None:
        if self._cancelled or depth > self._max_depth:
            return

        self._progress.current_path = dir_path
        self._progress.scanned_dirs += 1
        await self._emit(self._on_progress, self.get_progress())

        try:
            entries = await self._fs.readdir(dir_path)
        except OSError as e:
            logger.warning(f"无法读取目录 {dir_path}: {e}")
            self._progress.errors.append(ScanError(path=dir_path, error=_describe_os_error(e)))
            return

        for entry in entries:
            if self._cancelled:
                break

            full_path = os.path.join(dir_path, entry.name)

            if entry.is_symlink:
                logger.debug(f"跳过符号链接: {full_path}")
                continue

            if entry.is_dir:
                if should_skip_directory(entry.name):
                    continue
                await self._scan_directory(full_path, depth + 1)
            elif entry.is_file:
                if should_skip_file(entry.name):
                    continue
                await self._process_file(full_path, entry.name)

    async def _process_file(self, full_path: str, filename: str) -> None:
        try:
            stat = await self._fs.stat(full_path)
        except OSError as e:
            logger.warning(f"无法读取文件信息 {full_path}: {e}")
            self._progress.errors.append(ScanError(path=full_path, error=_describe_os_error(e)))
            return

        record = FileRecord(
            filename=filename,
            path=full_path,
            extension=get_file_extension(filename),
            file_type=get_file_type(filename),
            size_bytes=stat.size,
            scan_session_id=self.session_id,
        )

        self._files.append(record)
        self._progress.scanned_files += 1
        self._progress.total_size_bytes += record.size_bytes

        await self._emit(self._on_file, record)

        if self._persist:
            try:
                await self._store.add_scanned_file(record)
            except AppError as e:
                logger.warning(f"保存扫描结果失败 {full_path}: {e.message}")
                self._progress.errors.append(ScanError(path=full_path, error=e.user_message))

        if self._progress.scanned_files % self._progress_interval == 0:
            await self._emit(self._on_progress, self.get_progress())

    @staticmethod
    async def _emit(callback: Optional[Callable], payload) -> None:
        if callback is None:
            return
        result = callback(payload)
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # 辅助功能
    # ------------------------------------------------------------------

    async def quick_count(self, dir_path: str, max_depth: int = DEFAULT_MAX_DEPTH) -> QuickCount:
        """快速统计文件和目录数量（不读取文件信息，不保存）"""
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")

        root = validate_file_path(dir_path, self._allowed_roots, "path")
        count = QuickCount()

        async def walk(path: str, depth: int) -> None:
            if depth > max_depth:
                return
            try:
                entries = await self._fs.readdir(path)
            except OSError as e:
                logger.debug(f"快速统计时无法读取 {path}: {e}")
                return
            for entry in entries:
                if entry.is_symlink:
                    continue
                if entry.is_dir and not should_skip_directory(entry.name):
                    count.dirs += 1
                    await walk(os.path.join(path, entry.name), depth + 1)
                elif entry.is_file and not should_skip_file(entry.name):
                    count.files += 1

        await walk(root, 0)
        return count

    async def list_subdirectories(self, dir_path: str) -> list[str]:
        """列出未被跳过的直接子目录（绝对路径，按名称排序）"""
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")

        root = validate_file_path(dir_path, self._allowed_roots, "path")
        try:
            entries = await self._fs.readdir(root)
        except OSError as e:
            raise FileSystemError(f"无法读取目录 {root}: {e}", "read") from e

        return sorted(
            os.path.join(root, entry.name)
            for entry in entries
            if entry.is_dir and not entry.is_symlink and not should_skip_directory(entry.name)
        )
