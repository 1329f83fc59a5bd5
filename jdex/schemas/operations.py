"""
@description 文件操作相关的数据结构
@responsibility 定义冲突策略、操作状态、移动 / 撤销 / 预览结果
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from jdex.schemas.matching import FolderContext


class ConflictStrategy(str, Enum):
    RENAME = "rename"
    SKIP = "skip"
    OVERWRITE = "overwrite"


class OperationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"


class RecordStatus(str, Enum):
    MOVED = "moved"
    UNDONE = "undone"


class DestinationPath(BaseModel):
    base_path: str = Field(..., description="存储根目录")
    folder_path: str = Field(..., description="目标文件夹完整路径")
    full_path: str = Field(..., description="目标文件完整路径")
    folder: FolderContext = Field(..., description="目标文件夹")


class MoveResult(BaseModel):
    status: OperationStatus = Field(..., description="操作状态")
    source_path: str = Field(..., description="源路径")
    destination_path: str = Field(..., description="目标路径")
    filename: str = Field(..., description="最终文件名")
    folder_number: str = Field(..., description="目标文件夹编号")
    record_id: Optional[int] = Field(None, description="整理记录 ID（跳过时为空）")
    reason: Optional[str] = Field(None, description="跳过原因")


class RollbackResult(BaseModel):
    status: OperationStatus = Field(..., description="操作状态")
    record_id: int = Field(..., description="整理记录 ID")
    restored_path: str = Field(..., description="恢复后的路径")
    from_path: str = Field(..., description="撤销前所在路径")


class BatchOperation(BaseModel):
    source_path: str = Field(..., description="源文件路径")
    folder_number: str = Field(..., description="目标文件夹编号")
    conflict_strategy: Optional[ConflictStrategy] = Field(
        None, description="冲突策略（为空则使用批量默认值）"
    )
    drive_id: Optional[int] = Field(None, description="存储盘 ID")
    matched_rule_id: Optional[int] = Field(None, description="来源规则 ID")


class ProgressInfo(BaseModel):
    current: int = Field(..., description="当前序号（从 1 开始）")
    total: int = Field(..., description="总数")
    percent: int = Field(..., description="百分比")
    current_file: str = Field("", description="当前处理的文件")


class BatchOperationResult(BaseModel):
    source_path: str = Field(..., description="源文件路径")
    folder_number: str = Field(..., description="目标文件夹编号")
    status: OperationStatus = Field(..., description="操作状态")
    success: bool = Field(..., description="是否成功")
    result: Optional[MoveResult] = Field(None, description="移动结果")
    error: Optional[str] = Field(None, description="面向用户的错误信息")


class BatchMoveResults(BaseModel):
    total: int = Field(0, description="总数")
    success: int = Field(0, description="成功数")
    failed: int = Field(0, description="失败数")
    skipped: int = Field(0, description="跳过数")
    operations: list[BatchOperationResult] = Field(default_factory=list, description="逐项结果")


class BatchRollbackItem(BaseModel):
    record_id: int = Field(..., description="整理记录 ID")
    status: OperationStatus = Field(..., description="操作状态")
    success: bool = Field(..., description="是否成功")
    result: Optional[RollbackResult] = Field(None, description="撤销结果")
    error: Optional[str] = Field(None, description="面向用户的错误信息")


class BatchRollbackResults(BaseModel):
    total: int = Field(0, description="总数")
    success: int = Field(0, description="成功数")
    failed: int = Field(0, description="失败数")
    operations: list[BatchRollbackItem] = Field(default_factory=list, description="逐项结果")


class PreviewResult(BaseModel):
    source_path: str = Field(..., description="源文件路径")
    folder_number: str = Field(..., description="目标文件夹编号")
    source_exists: bool = Field(False, description="源文件是否存在")
    destination_path: Optional[str] = Field(None, description="目标路径")
    would_conflict: bool = Field(False, description="目标是否已存在")
    folder: Optional[FolderContext] = Field(None, description="目标文件夹")
    error: Optional[str] = Field(None, description="面向用户的错误信息")


class OrganizedFileInfo(BaseModel):
    id: int = Field(..., description="记录 ID")
    filename: str = Field(..., description="文件名")
    original_path: str = Field(..., description="原始路径")
    current_path: str = Field(..., description="当前路径")
    jd_folder_number: str = Field(..., description="文件夹编号")
    file_extension: Optional[str] = Field(None, description="扩展名")
    file_type: Optional[str] = Field(None, description="文件类型")
    file_size: int = Field(0, description="文件大小")
    matched_rule_id: Optional[int] = Field(None, description="来源规则 ID")
    storage_drive_id: Optional[int] = Field(None, description="存储盘 ID")
    status: RecordStatus = Field(..., description="记录状态")
    organized_at: Optional[datetime] = Field(None, description="整理时间")
