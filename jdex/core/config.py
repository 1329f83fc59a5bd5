"""
@description 配置管理模块
@responsibility 加载和验证 config.yaml，支持环境变量覆盖
"""

import os
import sys
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """数据库配置"""

    url: str = Field(
        default="sqlite+aiosqlite:///./db/jdex.db", description="SQLAlchemy 异步连接串"
    )


class LoggingConfig(BaseModel):
    """日志配置"""

    level: str = Field(default="INFO", description="日志级别")
    file: Optional[str] = Field(default=None, description="日志文件路径（为空则只输出到终端）")
    rotation: str = Field(default="10 MB", description="日志文件轮转大小")
    retention: str = Field(default="7 days", description="日志文件保留时长")

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"未知的日志级别: {value}")
        return level


class StorageConfig(BaseModel):
    """存储根目录配置"""

    fallback_root: str = Field(
        default="~/JohnnyDecimal", description="未配置存储盘时使用的根目录"
    )
    allowed_roots: list[str] = Field(
        default_factory=list, description="允许扫描/移动的根目录列表（为空表示不限制）"
    )


class ScannerConfig(BaseModel):
    """目录扫描配置"""

    max_depth: int = Field(default=10, ge=0, description="最大递归深度")
    progress_interval: int = Field(default=50, ge=1, description="每扫描多少个文件推送一次进度")


class MatchingConfig(BaseModel):
    """规则匹配配置"""

    cache_ttl_seconds: float = Field(default=30, ge=0, description="规则/文件夹缓存有效期（秒）")
    regex_timeout_ms: int = Field(default=100, ge=1, description="单次正则匹配的超时时间（毫秒）")


class OperationsConfig(BaseModel):
    """文件操作配置"""

    default_conflict_strategy: Literal["rename", "skip", "overwrite"] = Field(
        default="rename", description="默认冲突处理策略"
    )
    batch_delay_ms: int = Field(default=10, ge=0, description="批量操作每项之间的间隔（毫秒）")
    max_rename_attempts: int = Field(default=1000, ge=1, description="生成唯一文件名的最大尝试次数")
    verify_copies: bool = Field(default=True, description="跨设备复制后是否校验大小和哈希")


class WatcherConfig(BaseModel):
    """监控目录配置"""

    debounce_ms: int = Field(default=2000, ge=0, description="文件事件防抖时间（毫秒）")


class RenameConfig(BaseModel):
    """批量重命名配置"""

    max_undo_logs: int = Field(default=10, ge=1, description="保留的撤销记录批次数")


class Config(BaseModel):
    """全局配置"""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig, description="数据库配置")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="日志配置")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="存储配置")
    scanner: ScannerConfig = Field(default_factory=ScannerConfig, description="扫描配置")
    matching: MatchingConfig = Field(default_factory=MatchingConfig, description="匹配配置")
    operations: OperationsConfig = Field(
        default_factory=OperationsConfig, description="文件操作配置"
    )
    watcher: WatcherConfig = Field(default_factory=WatcherConfig, description="监控配置")
    rename: RenameConfig = Field(default_factory=RenameConfig, description="批量重命名配置")


def get_config_path() -> Path:
    """获取配置文件路径"""
    # 优先使用 CONFIG_PATH 环境变量，否则使用项目根目录的 config.yaml
    if config_path_str := os.environ.get("CONFIG_PATH"):
        return Path(config_path_str)
    return Path(__file__).parent.parent.parent / "config.yaml"


def load_config() -> Config:
    """加载配置文件并应用环境变量覆盖"""
    config_path = get_config_path()

    # 配置文件不存在时生成模板并退出
    if not config_path.exists():
        _generate_config_template(config_path)
        print(f"错误: 配置文件不存在: {config_path}")
        print(f"已生成配置模板: {config_path.parent / 'config.example.yaml'}")
        sys.exit(1)

    with open(config_path, encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    config = Config(**config_data)

    # 应用环境变量覆盖
    if database_url := os.environ.get("JDEX_DATABASE_URL"):
        config.database.url = database_url
    if log_level := os.environ.get("JDEX_LOG_LEVEL"):
        config.logging = LoggingConfig(
            **{**config.logging.model_dump(), "level": log_level}
        )

    return config


CONFIG_TEMPLATE = """# 数据库配置
database:
  # SQLAlchemy 异步连接串，默认使用项目目录下的 sqlite 文件
  url: "sqlite+aiosqlite:///./db/jdex.db"

# 日志配置
logging:
  level: "INFO"
  # 日志文件路径，留空则只输出到终端
  file: null
  rotation: "10 MB"
  retention: "7 days"

# 存储配置
storage:
  # 没有配置存储盘时，整理后的文件存放在这个目录下
  fallback_root: "~/JohnnyDecimal"
  # 允许扫描和移动的根目录，留空表示不限制（系统目录始终被拒绝）
  allowed_roots: []

# 目录扫描配置
scanner:
  max_depth: 10
  # 每扫描多少个文件推送一次进度
  progress_interval: 50

# 规则匹配配置
matching:
  # 规则和文件夹缓存的有效期（秒）
  cache_ttl_seconds: 30
  # 用户自定义正则的单次匹配超时（毫秒）
  regex_timeout_ms: 100

# 文件操作配置
operations:
  # 目标已存在时的处理方式：rename / skip / overwrite
  default_conflict_strategy: "rename"
  batch_delay_ms: 10
  max_rename_attempts: 1000
  # 跨磁盘移动时复制后校验大小和哈希
  verify_copies: true

# 监控目录配置
watcher:
  debounce_ms: 2000

# 批量重命名配置
rename:
  # 保留最近多少批撤销记录
  max_undo_logs: 10
"""


def _generate_config_template(config_path: Path) -> None:
    """生成配置模板文件"""
    template_path = config_path.parent / "config.example.yaml"

    if template_path.exists():
        return

    with open(template_path, "w", encoding="utf-8") as f:
        f.write(CONFIG_TEMPLATE)
