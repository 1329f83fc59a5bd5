"""
@description 批量重命名服务
@responsibility 按规则生成新文件名、预览冲突、执行重命名并记录撤销日志
"""

import inspect
import os
import re
from typing import Callable, Iterable, Optional

from loguru import logger

from jdex.core.errors import FileSystemError, sanitize_error_for_user
from jdex.schemas.operations import ProgressInfo
from jdex.schemas.rename import (
    BatchRenameResult,
    RenameError,
    RenameOptions,
    RenamePreviewItem,
    UndoLogEntry,
    UndoRenameResult,
)
from jdex.utils.helpers import new_undo_id
from jdex.utils.sanitizer import get_base_name, get_extension, sanitize_filename
from jdex.utils.validation import sanitize_text


def _apply_case(name: str, case: str) -> str:
    if case == "lower":
        return name.lower()
    if case == "upper":
        return name.upper()
    if case == "title":
        return re.sub(r"\b\w", lambda m: m.group(0).upper(), name.lower())
    if case == "sentence":
        lowered = name.lower()
        return lowered[:1].upper() + lowered[1:]
    return name


def generate_new_name(original_name: str, options: RenameOptions, index: int = 0) -> str:
    """
    生成新文件名（扩展名保持不变）

    处理顺序：查找替换 -> 大小写 -> 前缀 -> 后缀 -> 序号

    Args:
        original_name: 原文件名
        options: 重命名选项
        index: 文件在批次中的序号（从 0 开始）

    Returns:
        清洗后的新文件名
    """
    extension = get_extension(original_name)
    name = get_base_name(original_name)

    find_replace = options.find_replace
    if find_replace and find_replace.find:
        flags = 0 if find_replace.case_sensitive else re.IGNORECASE
        pattern = re.compile(re.escape(find_replace.find), flags)
        name = pattern.sub(
            lambda _: find_replace.replace,
            name,
            count=0 if find_replace.replace_all else 1,
        )

    if options.case:
        name = _apply_case(name, options.case)

    if options.prefix:
        name = sanitize_text(options.prefix) + name

    if options.suffix:
        name = name + sanitize_text(options.suffix)

    if options.sequence:
        seq = options.sequence
        number = str(seq.start + index).zfill(seq.padding)
        if seq.position == "prefix":
            name = f"{number}{seq.separator}{name}"
        else:
            name = f"{name}{seq.separator}{number}"

    return sanitize_filename(f"{name}{extension}")


async def _emit(callback: Optional[Callable], payload) -> None:
    if callback is None:
        return
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


class BatchRenamer:
    """批量重命名，撤销日志保存在数据库中（只保留最近若干批）"""

    def __init__(self, store, fs):
        self._store = store
        self._fs = fs

    async def read_directory_files(self, dir_path: str) -> list[str]:
        """目录下的普通文件（不含以点开头的文件），按名称排序"""
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")
        try:
            entries = await self._fs.readdir(dir_path)
        except OSError as e:
            raise FileSystemError(f"无法读取目录 {dir_path}: {e}", "read") from e
        return sorted(
            os.path.join(dir_path, entry.name)
            for entry in entries
            if entry.is_file and not entry.name.startswith(".")
        )

    async def generate_preview(
        self, file_paths: Iterable[str], options: RenameOptions
    ) -> list[RenamePreviewItem]:
        """
        生成重命名预览

        冲突类型：duplicate 表示批次内新名称重复，exists 表示磁盘上已有同名文件。
        """
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")

        file_paths = list(file_paths)
        seen: dict[str, int] = {}
        previews: list[RenamePreviewItem] = []

        for index, path in enumerate(file_paths):
            directory, original_name = os.path.split(path)
            new_name = generate_new_name(original_name, options, index)
            new_path = os.path.join(directory, new_name)
            has_change = new_name != original_name

            item = RenamePreviewItem(
                original_path=path,
                original_name=original_name,
                new_name=new_name,
                new_path=new_path,
                has_change=has_change,
            )

            key = os.path.normcase(new_path)
            if key in seen:
                item.conflict = True
                item.conflict_type = "duplicate"
                first = previews[seen[key]]
                if not first.conflict:
                    first.conflict = True
                    first.conflict_type = "duplicate"
            else:
                seen[key] = index
                if (
                    has_change
                    and key != os.path.normcase(path)
                    and await self._fs.exists(new_path)
                ):
                    item.conflict = True
                    item.conflict_type = "exists"

            previews.append(item)
        return previews

    async def execute_batch_rename(
        self,
        previews: list[RenamePreviewItem],
        on_progress: Optional[Callable] = None,
    ) -> BatchRenameResult:
        """执行重命名：跳过未改变和冲突的项，成功项写入撤销日志"""
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")

        result = BatchRenameResult()
        entries: list[UndoLogEntry] = []

        for index, item in enumerate(previews, start=1):
            await _emit(
                on_progress,
                ProgressInfo(
                    current=index,
                    total=len(previews),
                    percent=round(index / len(previews) * 100),
                    current_file=item.original_name,
                ),
            )

            if not item.has_change or item.conflict:
                result.skipped += 1
                continue

            try:
                if await self._fs.exists(item.new_path):
                    raise FileSystemError(f"目标已存在: {item.new_path}", "move")
                await self._fs.rename(item.original_path, item.new_path)
            except (OSError, FileSystemError) as e:
                logger.warning(f"重命名失败 {item.original_path}: {e}")
                result.failed += 1
                result.errors.append(
                    RenameError(path=item.original_path, error=sanitize_error_for_user(e))
                )
                continue

            result.success += 1
            entries.append(
                UndoLogEntry(
                    original_path=item.original_path,
                    renamed_path=item.new_path,
                    original_name=item.original_name,
                    new_name=item.new_name,
                )
            )

        if entries:
            undo_id = new_undo_id()
            await self._store.save_undo_log(undo_id, entries)
            result.undo_id = undo_id

        logger.info(
            f"批量重命名完成: 成功 {result.success}, 失败 {result.failed}, 跳过 {result.skipped}"
        )
        return result

    async def undo_batch_rename(self, undo_id: str) -> UndoRenameResult:
        """
        撤销一批重命名（逆序恢复）

        Raises:
            FileSystemError: 撤销日志不存在
        """
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")

        entries = await self._store.get_undo_log(undo_id)
        if entries is None:
            raise FileSystemError(f"撤销记录不存在: {undo_id}", "rollback")

        result = UndoRenameResult()
        for entry in reversed(entries):
            if not await self._fs.exists(entry.renamed_path):
                logger.warning(f"撤销跳过，文件已不存在: {entry.renamed_path}")
                result.skipped += 1
                continue
            if await self._fs.exists(entry.original_path):
                logger.warning(f"撤销跳过，原文件名已被占用: {entry.original_path}")
                result.skipped += 1
                continue
            try:
                await self._fs.rename(entry.renamed_path, entry.original_path)
                result.restored += 1
            except OSError as e:
                logger.warning(f"撤销重命名失败 {entry.renamed_path}: {e}")
                result.failed += 1
                result.errors.append(
                    RenameError(path=entry.renamed_path, error=sanitize_error_for_user(e))
                )

        await self._store.remove_undo_log(undo_id)
        logger.info(f"撤销重命名 {undo_id}: 恢复 {result.restored}, 跳过 {result.skipped}")
        return result

    async def get_latest_undo_id(self) -> Optional[str]:
        return await self._store.get_latest_undo_id()
