"""
@description 文件与扫描相关的数据结构
@responsibility 定义 FileRecord、扫描进度和扫描结果
"""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FileType(str, Enum):
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    ARCHIVE = "archive"
    CODE = "code"
    DATA = "data"
    FONT = "font"
    EBOOK = "ebook"
    DESIGN = "design"
    OTHER = "other"


class FileRecord(BaseModel):
    """扫描得到的单个文件，创建后不可修改"""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., description="文件名")
    path: str = Field(..., description="绝对路径")
    extension: str = Field("", description="小写扩展名（不含点号）")
    file_type: FileType = Field(FileType.OTHER, description="文件类型")
    size_bytes: int = Field(0, ge=0, description="文件大小（字节）")
    scan_session_id: Optional[str] = Field(None, description="扫描会话 ID")

    @property
    def parent_folder(self) -> str:
        return os.path.dirname(self.path)


class ScanError(BaseModel):
    path: str = Field(..., description="出错的路径")
    error: str = Field(..., description="错误描述")


class ScanProgress(BaseModel):
    scanned_files: int = Field(0, description="已扫描文件数")
    scanned_dirs: int = Field(0, description="已扫描目录数")
    total_size_bytes: int = Field(0, description="已扫描文件总大小")
    current_path: str = Field("", description="当前扫描的目录")
    errors: list[ScanError] = Field(default_factory=list, description="扫描过程中的错误")


class ScanStats(BaseModel):
    total_files: int = Field(0, description="文件总数")
    total_dirs: int = Field(0, description="目录总数")
    total_size_bytes: int = Field(0, description="文件总大小")
    errors: list[ScanError] = Field(default_factory=list, description="错误列表")


class ScanResult(BaseModel):
    session_id: str = Field(..., description="扫描会话 ID")
    files: list[FileRecord] = Field(default_factory=list, description="扫描到的文件")
    stats: ScanStats = Field(default_factory=ScanStats, description="统计信息")
    cancelled: bool = Field(False, description="扫描是否被取消")


class QuickCount(BaseModel):
    files: int = Field(0, description="文件数")
    dirs: int = Field(0, description="目录数")
