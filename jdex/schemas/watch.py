"""
@description 监控目录相关的数据结构
@responsibility 定义监控动作、监控事件和存量文件处理结果
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from jdex.schemas.matching import Confidence


class WatchAction(str, Enum):
    DETECTED = "detected"
    QUEUED = "queued"
    AUTO_ORGANIZED = "auto_organized"
    SKIPPED = "skipped"
    ERROR = "error"


class WatchEventType(str, Enum):
    FILE_QUEUED = "file_queued"
    FILE_ORGANIZED = "file_organized"
    FILE_ERROR = "file_error"


class WatchEvent(BaseModel):
    type: WatchEventType = Field(..., description="事件类型")
    folder_id: int = Field(..., description="监控目录 ID")
    filename: str = Field(..., description="文件名")
    path: str = Field(..., description="文件路径")
    folder_number: Optional[str] = Field(None, description="建议或目标文件夹编号")
    confidence: Optional[Confidence] = Field(None, description="最佳建议的置信度")
    destination_path: Optional[str] = Field(None, description="移动后的路径")
    error: Optional[str] = Field(None, description="面向用户的错误信息")


class WatchOutcome(BaseModel):
    action: WatchAction = Field(..., description="最终动作")
    path: str = Field(..., description="文件路径")
    folder_number: Optional[str] = Field(None, description="建议或目标文件夹编号")
    destination_path: Optional[str] = Field(None, description="移动后的路径")
    error: Optional[str] = Field(None, description="面向用户的错误信息")


class ProcessingResults(BaseModel):
    processed: int = Field(0, description="处理数")
    organized: int = Field(0, description="自动整理数")
    queued: int = Field(0, description="进入待确认队列数")
    skipped: int = Field(0, description="跳过数")
    errors: int = Field(0, description="错误数")
