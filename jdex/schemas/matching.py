"""
@description 规则匹配相关的数据结构
@responsibility 定义置信度、规则类型、文件夹上下文、匹配建议等模型
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from jdex.schemas.files import FileRecord


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def rank(self) -> int:
        return CONFIDENCE_ORDER[self]


CONFIDENCE_ORDER = {
    Confidence.HIGH: 3,
    Confidence.MEDIUM: 2,
    Confidence.LOW: 1,
    Confidence.NONE: 0,
}


class RuleType(str, Enum):
    EXTENSION = "extension"
    KEYWORD = "keyword"
    PATH = "path"
    REGEX = "regex"
    COMPOUND = "compound"
    DATE = "date"


class TargetType(str, Enum):
    FOLDER = "folder"
    CATEGORY = "category"
    AREA = "area"


class RuleSummary(BaseModel):
    """建议中引用的规则信息"""

    id: int = Field(..., description="规则 ID")
    name: str = Field(..., description="规则名称")
    rule_type: RuleType = Field(..., description="规则类型")
    pattern: str = Field(..., description="规则模式")
    target_type: TargetType = Field(..., description="目标类型")
    target_id: str = Field(..., description="目标标识")
    priority: int = Field(50, description="优先级")
    match_count: int = Field(0, description="已确认匹配次数")


class FolderContext(BaseModel):
    """带类别 / 区域信息的文件夹"""

    id: int = Field(..., description="文件夹 ID")
    folder_number: str = Field(..., description="文件夹编号 CC.NN")
    name: str = Field(..., description="文件夹名称")
    keywords: Optional[str] = Field(None, description="逗号分隔的关键词")
    storage_path: Optional[str] = Field(None, description="显式存储路径")
    category_id: int = Field(..., description="类别 ID")
    category_number: int = Field(..., description="类别编号")
    category_name: str = Field("", description="类别名称")
    area_id: Optional[int] = Field(None, description="区域 ID")
    area_name: str = Field("", description="区域名称")
    area_range_start: Optional[int] = Field(None, description="区域起始编号")
    area_range_end: Optional[int] = Field(None, description="区域结束编号")


class Suggestion(BaseModel):
    """匹配引擎输出的单条建议（不持久化）"""

    target_folder: FolderContext = Field(..., description="建议的目标文件夹")
    source_rule: Optional[RuleSummary] = Field(None, description="来源规则，None 表示启发式匹配")
    confidence: Confidence = Field(..., description="置信度")
    reason: str = Field(..., description="可读的匹配原因")


class BatchMatchResult(BaseModel):
    file: FileRecord = Field(..., description="文件")
    suggestions: list[Suggestion] = Field(default_factory=list, description="排序后的建议")


class RuleSuggestion(BaseModel):
    """根据文件夹现有文件推导出的规则建议"""

    rule_type: RuleType = Field(..., description="规则类型")
    pattern: str = Field(..., description="规则模式")
    count: int = Field(..., description="出现次数")
    confidence: Confidence = Field(..., description="置信度")
    description: str = Field(..., description="描述")


class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, description="规则名称")
    rule_type: RuleType = Field(..., description="规则类型")
    pattern: str = Field(..., description="规则模式")
    target_type: TargetType = Field(..., description="目标类型")
    target_id: str = Field(..., min_length=1, description="目标标识")
    priority: int = Field(50, description="优先级（0-100）")
    exclude_pattern: Optional[str] = Field(None, description="排除模式")
    is_active: bool = Field(True, description="是否启用")
    notes: Optional[str] = Field(None, description="备注")


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, description="规则名称")
    rule_type: Optional[RuleType] = Field(None, description="规则类型")
    pattern: Optional[str] = Field(None, description="规则模式")
    target_type: Optional[TargetType] = Field(None, description="目标类型")
    target_id: Optional[str] = Field(None, min_length=1, description="目标标识")
    priority: Optional[int] = Field(None, description="优先级（0-100）")
    exclude_pattern: Optional[str] = Field(None, description="排除模式")
    is_active: Optional[bool] = Field(None, description="是否启用")
    notes: Optional[str] = Field(None, description="备注")
