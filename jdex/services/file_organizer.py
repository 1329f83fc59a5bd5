"""
@description 文件整理服务核心逻辑
@responsibility 执行单个 / 批量移动、冲突处理、跨设备回退、撤销以及预览
"""

import asyncio
import errno
import inspect
import os
from typing import Callable, Iterable, Optional

from loguru import logger

from jdex.core.errors import (
    AppError,
    DatabaseError,
    FileSystemError,
    Result,
    sanitize_error_for_user,
)
from jdex.schemas.operations import (
    BatchMoveResults,
    BatchOperation,
    BatchOperationResult,
    BatchRollbackItem,
    BatchRollbackResults,
    ConflictStrategy,
    MoveResult,
    OperationStatus,
    PreviewResult,
    ProgressInfo,
    RecordStatus,
    RollbackResult,
)
from jdex.services.file_filter import get_file_extension, get_file_type
from jdex.services.path_builder import DestinationPathBuilder
from jdex.utils.sanitizer import build_numbered_name
from jdex.utils.validation import validate_file_path

SKIP_REASON = "目标位置已存在同名文件"


async def _emit(callback: Optional[Callable], payload) -> None:
    """调用进度回调，支持普通函数和协程函数"""
    if callback is None:
        return
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


class FileOrganizer:
    """文件整理服务：所有操作按顺序执行，不并发修改文件系统"""

    def __init__(
        self,
        store,
        fs,
        path_builder: DestinationPathBuilder,
        allowed_roots: Optional[Iterable[str]] = None,
        batch_delay: float = 0.01,
        max_rename_attempts: int = 1000,
        verify_copies: bool = True,
    ):
        self._store = store
        self._fs = fs
        self._path_builder = path_builder
        self._allowed_roots = list(allowed_roots or [])
        self._batch_delay = batch_delay
        self._max_rename_attempts = max_rename_attempts
        self._verify_copies = verify_copies
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # 底层移动
    # ------------------------------------------------------------------

    async def generate_unique_filename(self, directory: str, filename: str) -> str:
        """
        在目录内生成不冲突的文件名：report.pdf -> report_1.pdf -> report_2.pdf ...

        Raises:
            FileSystemError: 超过最大尝试次数
        """
        if not await self._fs.exists(os.path.join(directory, filename)):
            return filename

        for counter in range(1, self._max_rename_attempts + 1):
            candidate = build_numbered_name(filename, counter)
            if not await self._fs.exists(os.path.join(directory, candidate)):
                return candidate

        raise FileSystemError(
            f"无法为 {filename} 生成唯一文件名（已尝试 {self._max_rename_attempts} 次）",
            "move",
        )

    async def relocate(self, source: str, destination: str) -> None:
        """
        移动文件：优先原子重命名，跨设备时回退为 复制 -> 校验 -> 删除源文件

        Raises:
            OSError: 文件系统操作失败
            FileSystemError: 复制校验失败
        """
        try:
            await self._fs.rename(source, destination)
            return
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            logger.info(f"跨设备移动，改为复制: {source} -> {destination}")

        # 源文件删除成功之前，目标位置的副本都要在失败时清理掉
        try:
            await self._fs.copy_file(source, destination)
            await self._verify_copy(source, destination)
            await self._fs.unlink(source)
        except (OSError, FileSystemError):
            await self._discard_copy(destination)
            raise

    async def _discard_copy(self, destination: str) -> None:
        try:
            if await self._fs.exists(destination):
                await self._fs.unlink(destination)
        except OSError as e:
            logger.error(f"清理跨设备复制的副本失败 {destination}: {e}")

    async def _verify_copy(self, source: str, destination: str) -> None:
        if not self._verify_copies:
            return
        source_stat = await self._fs.stat(source)
        destination_stat = await self._fs.stat(destination)
        if source_stat.size != destination_stat.size:
            raise FileSystemError(
                f"复制校验失败（大小不一致）: {destination}", "move"
            )
        if await self._fs.file_digest(source) != await self._fs.file_digest(destination):
            raise FileSystemError(
                f"复制校验失败（内容不一致）: {destination}", "move"
            )

    # ------------------------------------------------------------------
    # 单个移动 / 撤销
    # ------------------------------------------------------------------

    async def move_file(
        self,
        source_path: str,
        folder_number: str,
        conflict_strategy: ConflictStrategy = ConflictStrategy.RENAME,
        drive_id: Optional[int] = None,
        matched_rule_id: Optional[int] = None,
    ) -> Result[MoveResult]:
        """
        将文件移动到 Johnny Decimal 文件夹

        Args:
            source_path: 源文件路径
            folder_number: 目标文件夹编号
            conflict_strategy: 目标已存在时的处理方式
            drive_id: 指定存储盘
            matched_rule_id: 触发本次移动的规则（仅记录，不累加命中次数）

        Returns:
            Result[MoveResult]，跳过时 status 为 skipped 且不写入记录
        """
        if self._fs is None:
            return Result.fail(FileSystemError("文件系统不可用", "unavailable"))

        try:
            async with self._lock:
                return Result.ok(
                    await self._move(
                        source_path,
                        folder_number,
                        ConflictStrategy(conflict_strategy),
                        drive_id,
                        matched_rule_id,
                    )
                )
        except AppError as e:
            logger.error(f"移动文件失败 {source_path} -> {folder_number}: {e.message}")
            return Result.fail(e)
        except OSError as e:
            logger.error(f"移动文件失败 {source_path} -> {folder_number}: {e}")
            return Result.fail(FileSystemError(f"移动文件失败: {e}", "move"))

    async def _move(
        self,
        source_path: str,
        folder_number: str,
        conflict_strategy: ConflictStrategy,
        drive_id: Optional[int],
        matched_rule_id: Optional[int],
    ) -> MoveResult:
        source = validate_file_path(source_path, self._allowed_roots, "source_path")

        if not await self._fs.exists(source):
            raise FileSystemError(f"源文件不存在: {source}", "read")
        source_stat = await self._fs.stat(source)
        if not source_stat.is_file:
            raise FileSystemError(f"源路径不是文件: {source}", "read")

        filename = os.path.basename(source)
        destination = await self._path_builder.build(folder_number, filename, drive_id)
        destination_dir = destination.folder_path
        final_name = os.path.basename(destination.full_path)
        final_path = destination.full_path

        try:
            await self._fs.mkdir(destination_dir, parents=True)
        except OSError as e:
            raise FileSystemError(f"创建目标目录失败: {destination_dir}: {e}", "create") from e

        if await self._fs.exists(final_path):
            if conflict_strategy == ConflictStrategy.SKIP:
                logger.info(f"目标已存在，跳过: {final_path}")
                return MoveResult(
                    status=OperationStatus.SKIPPED,
                    source_path=source,
                    destination_path=final_path,
                    filename=final_name,
                    folder_number=folder_number,
                    reason=SKIP_REASON,
                )
            if conflict_strategy == ConflictStrategy.RENAME:
                final_name = await self.generate_unique_filename(destination_dir, final_name)
                final_path = os.path.join(destination_dir, final_name)
            else:
                logger.warning(f"覆盖已存在的文件: {final_path}")

        await self.relocate(source, final_path)

        try:
            record_id = await self._store.record_organized_file(
                filename=final_name,
                original_path=source,
                current_path=final_path,
                folder_number=folder_number,
                extension=get_file_extension(final_name),
                file_type=get_file_type(final_name).value,
                size_bytes=source_stat.size,
                matched_rule_id=matched_rule_id,
                drive_id=drive_id,
            )
        except DatabaseError:
            # 没有记录就无法撤销，把文件移回原处
            logger.error(f"整理记录保存失败，恢复文件: {final_path} -> {source}")
            try:
                await self.relocate(final_path, source)
            except (OSError, FileSystemError) as restore_error:
                logger.error(f"恢复文件失败，文件仍在 {final_path}: {restore_error}")
            raise

        logger.info(f"文件已整理: {source} -> {final_path} (记录 {record_id})")
        return MoveResult(
            status=OperationStatus.SUCCESS,
            source_path=source,
            destination_path=final_path,
            filename=final_name,
            folder_number=folder_number,
            record_id=record_id,
        )

    async def rollback_move(self, record_id: int) -> Result[RollbackResult]:
        """
        撤销一次移动：文件移回原路径，记录状态改为 undone

        记录不存在、状态不是 moved、当前文件不存在或原路径已被占用时失败。
        """
        if self._fs is None:
            return Result.fail(FileSystemError("文件系统不可用", "unavailable"))

        try:
            async with self._lock:
                return Result.ok(await self._rollback(record_id))
        except AppError as e:
            logger.error(f"撤销失败 (记录 {record_id}): {e.message}")
            return Result.fail(e)
        except OSError as e:
            logger.error(f"撤销失败 (记录 {record_id}): {e}")
            return Result.fail(FileSystemError(f"撤销失败: {e}", "rollback"))

    async def _rollback(self, record_id: int) -> RollbackResult:
        record = await self._store.get_organized_file(record_id)
        if record is None:
            raise FileSystemError(f"整理记录不存在: {record_id}", "rollback")
        if record.status != RecordStatus.MOVED:
            raise FileSystemError(
                f"记录 {record_id} 的状态为 {record.status.value}，无法撤销", "rollback"
            )
        if not await self._fs.exists(record.current_path):
            raise FileSystemError(f"文件已不在整理位置: {record.current_path}", "rollback")
        if await self._fs.exists(record.original_path):
            raise FileSystemError(f"原位置已被占用: {record.original_path}", "rollback")

        original_dir = os.path.dirname(record.original_path)
        try:
            await self._fs.mkdir(original_dir, parents=True)
        except OSError as e:
            raise FileSystemError(f"创建原目录失败: {original_dir}: {e}", "create") from e

        await self.relocate(record.current_path, record.original_path)
        try:
            await self._store.update_organized_file(record_id, status=RecordStatus.UNDONE)
        except DatabaseError:
            # 记录仍为 moved，文件必须回到记录中的位置
            logger.error(
                f"撤销状态保存失败，恢复文件: {record.original_path} -> {record.current_path}"
            )
            try:
                await self.relocate(record.original_path, record.current_path)
            except (OSError, FileSystemError) as restore_error:
                logger.error(f"恢复文件失败，文件仍在 {record.original_path}: {restore_error}")
            raise

        logger.info(f"已撤销: {record.current_path} -> {record.original_path}")
        return RollbackResult(
            status=OperationStatus.ROLLED_BACK,
            record_id=record_id,
            restored_path=record.original_path,
            from_path=record.current_path,
        )

    # ------------------------------------------------------------------
    # 批量操作
    # ------------------------------------------------------------------

    async def batch_move(
        self,
        operations: list[BatchOperation],
        on_progress: Optional[Callable] = None,
        on_file_complete: Optional[Callable] = None,
        conflict_strategy: ConflictStrategy = ConflictStrategy.RENAME,
        stop_on_error: bool = False,
    ) -> BatchMoveResults:
        """
        按顺序批量移动

        Returns:
            {total, success, failed, skipped, operations}，逐项结果完整保留
        """
        results = BatchMoveResults(total=len(operations))

        for index, operation in enumerate(operations, start=1):
            await _emit(
                on_progress,
                ProgressInfo(
                    current=index,
                    total=len(operations),
                    percent=round(index / len(operations) * 100),
                    current_file=os.path.basename(operation.source_path),
                ),
            )

            result = await self.move_file(
                operation.source_path,
                operation.folder_number,
                conflict_strategy=operation.conflict_strategy or conflict_strategy,
                drive_id=operation.drive_id,
                matched_rule_id=operation.matched_rule_id,
            )

            if result.success and result.data.status == OperationStatus.SKIPPED:
                results.skipped += 1
                item = BatchOperationResult(
                    source_path=operation.source_path,
                    folder_number=operation.folder_number,
                    status=OperationStatus.SKIPPED,
                    success=True,
                    result=result.data,
                )
            elif result.success:
                results.success += 1
                item = BatchOperationResult(
                    source_path=operation.source_path,
                    folder_number=operation.folder_number,
                    status=OperationStatus.SUCCESS,
                    success=True,
                    result=result.data,
                )
            else:
                results.failed += 1
                item = BatchOperationResult(
                    source_path=operation.source_path,
                    folder_number=operation.folder_number,
                    status=OperationStatus.FAILED,
                    success=False,
                    error=result.user_message,
                )

            results.operations.append(item)
            await _emit(on_file_complete, item)

            if not result.success and stop_on_error:
                logger.warning(f"批量移动在第 {index} 项失败后停止")
                break

            if index < len(operations) and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        logger.info(
            f"批量移动完成: 成功 {results.success}, 失败 {results.failed}, 跳过 {results.skipped}"
        )
        return results

    async def batch_rollback(
        self, record_ids: list[int], on_progress: Optional[Callable] = None
    ) -> BatchRollbackResults:
        """按顺序批量撤销"""
        results = BatchRollbackResults(total=len(record_ids))

        for index, record_id in enumerate(record_ids, start=1):
            await _emit(
                on_progress,
                ProgressInfo(
                    current=index,
                    total=len(record_ids),
                    percent=round(index / len(record_ids) * 100),
                    current_file=str(record_id),
                ),
            )

            result = await self.rollback_move(record_id)
            if result.success:
                results.success += 1
                results.operations.append(
                    BatchRollbackItem(
                        record_id=record_id,
                        status=OperationStatus.ROLLED_BACK,
                        success=True,
                        result=result.data,
                    )
                )
            else:
                results.failed += 1
                results.operations.append(
                    BatchRollbackItem(
                        record_id=record_id,
                        status=OperationStatus.FAILED,
                        success=False,
                        error=result.user_message,
                    )
                )

            if index < len(record_ids) and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        logger.info(f"批量撤销完成: 成功 {results.success}, 失败 {results.failed}")
        return results

    async def preview_operations(self, operations: list[BatchOperation]) -> list[PreviewResult]:
        """预演：只计算目标路径与冲突情况，不修改文件系统"""
        previews = []
        for operation in operations:
            preview = PreviewResult(
                source_path=operation.source_path,
                folder_number=operation.folder_number,
            )
            if self._fs is None:
                preview.error = sanitize_error_for_user(
                    FileSystemError("文件系统不可用", "unavailable")
                )
                previews.append(preview)
                continue

            try:
                source = validate_file_path(
                    operation.source_path, self._allowed_roots, "source_path"
                )
                preview.source_exists = await self._fs.exists(source)
                destination = await self._path_builder.build(
                    operation.folder_number, os.path.basename(source), operation.drive_id
                )
                preview.destination_path = destination.full_path
                preview.folder = destination.folder
                preview.would_conflict = await self._fs.exists(destination.full_path)
            except (AppError, OSError) as e:
                logger.debug(f"预览失败 {operation.source_path}: {e}")
                preview.error = sanitize_error_for_user(e)

            previews.append(preview)
        return previews
