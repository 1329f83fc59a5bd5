"""
@description 监控目录数据模型
@responsibility 保存监控目录设置与监控活动日志
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)

from jdex.core.database import Base


class WatchedFolder(Base):
    __tablename__ = "watched_folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    path = Column(String(2048), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    auto_organize = Column(Boolean, default=False, nullable=False)
    confidence_threshold = Column(String(10), default="medium", nullable=False)
    include_subdirs = Column(Boolean, default=False, nullable=False)
    # 逗号分隔的文件类型，空表示全部
    file_types = Column(Text, nullable=True)
    notify_on_organize = Column(Boolean, default=True, nullable=False)
    files_processed = Column(Integer, default=0, nullable=False)
    files_organized = Column(Integer, default=0, nullable=False)
    last_checked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class WatchActivity(Base):
    __tablename__ = "watch_activity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    watched_folder_id = Column(
        Integer, ForeignKey("watched_folders.id", ondelete="CASCADE"), nullable=False
    )
    filename = Column(String(512), nullable=False)
    path = Column(String(2048), nullable=False)
    file_size = Column(BigInteger, nullable=True)
    file_type = Column(String(20), nullable=True)
    action = Column(String(20), nullable=False, index=True)
    matched_folder_number = Column(String(5), nullable=True)
    moved_to_path = Column(String(2048), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
