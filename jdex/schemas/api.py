"""
@description API 请求/响应模型
@responsibility 定义所有 API 接口的数据结构
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from jdex.schemas.files import FileRecord
from jdex.schemas.operations import BatchOperation, ConflictStrategy, OrganizedFileInfo
from jdex.schemas.rename import RenameOptions, RenamePreviewItem

T = TypeVar("T")


class ScanRequest(BaseModel):
    root_path: str = Field(..., description="扫描根目录")
    max_depth: Optional[int] = Field(None, ge=0, description="最大深度（为空使用配置值）")
    persist: bool = Field(True, description="是否保存扫描结果")


class MatchRequest(BaseModel):
    files: list[FileRecord] = Field(..., description="待匹配的文件")


class MoveRequest(BaseModel):
    source_path: str = Field(..., description="源文件路径")
    folder_number: str = Field(..., description="目标文件夹编号")
    conflict_strategy: Optional[ConflictStrategy] = Field(None, description="冲突策略")
    drive_id: Optional[int] = Field(None, description="存储盘 ID")
    matched_rule_id: Optional[int] = Field(None, description="采用的规则 ID")


class BatchMoveRequest(BaseModel):
    operations: list[BatchOperation] = Field(..., description="移动操作列表")
    conflict_strategy: Optional[ConflictStrategy] = Field(None, description="默认冲突策略")
    stop_on_error: bool = Field(False, description="首个失败后停止")


class PreviewRequest(BaseModel):
    operations: list[BatchOperation] = Field(..., description="待预览的移动操作")


class BatchRollbackRequest(BaseModel):
    record_ids: list[int] = Field(..., description="整理记录 ID 列表")


class RenamePreviewRequest(BaseModel):
    file_paths: list[str] = Field(..., description="待重命名的文件路径")
    options: RenameOptions = Field(..., description="重命名选项")


class RenameExecuteRequest(BaseModel):
    previews: list[RenamePreviewItem] = Field(..., description="预览结果")


class RuleItem(BaseModel):
    id: int = Field(..., description="规则 ID")
    name: str = Field(..., description="规则名称")
    rule_type: str = Field(..., description="规则类型")
    pattern: str = Field(..., description="规则模式")
    target_type: str = Field(..., description="目标类型")
    target_id: str = Field(..., description="目标标识")
    priority: int = Field(..., description="优先级")
    exclude_pattern: Optional[str] = Field(None, description="排除模式")
    is_active: bool = Field(..., description="是否启用")
    match_count: int = Field(0, description="命中次数")
    notes: Optional[str] = Field(None, description="备注")
    created_at: Optional[datetime] = Field(None, description="创建时间")


class OrganizedRecordsResponse(BaseModel):
    total: int = Field(..., description="记录总数")
    records: list[OrganizedFileInfo] = Field(..., description="整理记录列表")


class StatusResponse(BaseModel):
    watcher_running: bool = Field(..., description="监控流水线是否运行中")
    pending_events: int = Field(..., description="等待处理的文件事件数")
    scan_running: bool = Field(..., description="是否有扫描正在进行")
    filesystem_available: bool = Field(..., description="文件系统是否可用")
    cache_age_seconds: Optional[float] = Field(None, description="规则缓存已存在的时间")


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""

    code: int = Field(..., description="响应码（0=成功，非0=错误）")
    message: str = Field(..., description="响应消息")
    data: Optional[T] = Field(None, description="响应数据")


def success_response(data: T, message: str = "操作成功") -> ApiResponse[T]:
    """创建成功响应"""
    return ApiResponse(code=0, message=message, data=data)


def error_response(code: int, message: str, data: Optional[T] = None) -> ApiResponse[T]:
    """创建错误响应"""
    return ApiResponse(code=code, message=message, data=data)
