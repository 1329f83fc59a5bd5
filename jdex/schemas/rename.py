"""
@description 批量重命名相关的数据结构
@responsibility 定义重命名选项、预览项、执行结果和撤销日志条目
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class FindReplaceOptions(BaseModel):
    find: str = Field("", description="查找文本")
    replace: str = Field("", description="替换文本")
    replace_all: bool = Field(True, description="替换全部匹配")
    case_sensitive: bool = Field(False, description="区分大小写")


class SequenceOptions(BaseModel):
    start: int = Field(1, ge=0, description="起始编号")
    padding: int = Field(3, ge=1, le=10, description="编号位数")
    position: Literal["prefix", "suffix"] = Field("suffix", description="编号位置")
    separator: str = Field("_", description="分隔符")


class RenameOptions(BaseModel):
    """按顺序生效：查找替换 -> 大小写 -> 前缀 -> 后缀 -> 序号"""

    find_replace: Optional[FindReplaceOptions] = Field(None, description="查找替换")
    case: Optional[Literal["lower", "upper", "title", "sentence"]] = Field(
        None, description="大小写转换"
    )
    prefix: Optional[str] = Field(None, description="前缀")
    suffix: Optional[str] = Field(None, description="后缀")
    sequence: Optional[SequenceOptions] = Field(None, description="序号")


class RenamePreviewItem(BaseModel):
    original_path: str = Field(..., description="原始路径")
    original_name: str = Field(..., description="原始文件名")
    new_name: str = Field(..., description="新文件名")
    new_path: str = Field(..., description="新路径")
    has_change: bool = Field(..., description="文件名是否改变")
    conflict: bool = Field(False, description="是否冲突")
    conflict_type: Optional[Literal["duplicate", "exists"]] = Field(
        None, description="冲突类型"
    )


class UndoLogEntry(BaseModel):
    original_path: str = Field(..., description="原始路径")
    renamed_path: str = Field(..., description="重命名后的路径")
    original_name: str = Field(..., description="原始文件名")
    new_name: str = Field(..., description="新文件名")


class RenameError(BaseModel):
    path: str = Field(..., description="文件路径")
    error: str = Field(..., description="面向用户的错误信息")


class BatchRenameResult(BaseModel):
    success: int = Field(0, description="成功数")
    failed: int = Field(0, description="失败数")
    skipped: int = Field(0, description="跳过数")
    undo_id: Optional[str] = Field(None, description="撤销 ID（没有成功项时为空）")
    errors: list[RenameError] = Field(default_factory=list, description="错误列表")


class UndoRenameResult(BaseModel):
    restored: int = Field(0, description="恢复数")
    failed: int = Field(0, description="失败数")
    skipped: int = Field(0, description="跳过数")
    errors: list[RenameError] = Field(default_factory=list, description="错误列表")
